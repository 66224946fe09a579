"""File naming for stored uploads."""

import re
from concurrent.futures import ThreadPoolExecutor

from services_uploads import unique_name


class TestUniqueName:

    def test_extension_from_original_name(self):
        name = unique_name("cat.JPG", "image/jpeg")
        assert re.fullmatch(r"\d{13}-[0-9a-f]{12}\.jpg", name)

    def test_extension_from_mimetype_when_name_has_none(self):
        assert unique_name("blob", "image/png").endswith(".png")

    def test_no_extension_available(self):
        assert re.fullmatch(r"\d{13}-[0-9a-f]{12}", unique_name("", None))

    def test_no_path_traversal(self):
        name = unique_name("../../etc/passwd.png", "image/png")
        assert "/" not in name and "\\" not in name and ".." not in name

    def test_keep_original_name(self):
        name = unique_name("my receipt.png", "image/png", keep_original=True)
        m = re.fullmatch(r"(\d{13})-(\d+)-my_receipt\.png", name)
        assert m
        assert 0 <= int(m.group(2)) <= 10**9

    def test_keep_original_name_sanitised(self):
        name = unique_name("../../secret.txt", None, keep_original=True)
        assert name.endswith("-secret.txt")
        assert "/" not in name

    def test_concurrent_names_are_distinct(self):
        with ThreadPoolExecutor(max_workers=16) as pool:
            names = list(pool.map(lambda _: unique_name("cat.jpg", "image/jpeg"), range(50)))
        assert len(set(names)) == 50

    def test_non_ascii_name_keeps_extension(self):
        assert re.fullmatch(r"\d{13}-[0-9a-f]{12}\.jpg", unique_name("фото.JPG", "image/jpeg"))

    def test_compound_mimetype_subtype(self):
        assert unique_name("drawing", "image/svg+xml").endswith(".svg")

    def test_windows_path_uses_basename(self):
        assert unique_name("C:\\Users\\me\\shot.png", "image/png").endswith(".png")

    def test_keep_original_non_ascii_name(self):
        name = unique_name("фото.jpg", "image/jpeg", keep_original=True)
        assert re.fullmatch(r"\d{13}-\d+-upload\.jpg", name)
