import io

from PIL import Image


def jpeg_bytes(size=2048):
    return b"\xff\xd8\xff\xe0" + bytes(range(256)) * (size // 256) + b"\xff\xd9"


def png_bytes(w=4, h=3):
    buf = io.BytesIO()
    Image.new("RGB", (w, h), (200, 10, 10)).save(buf, "PNG")
    return buf.getvalue()


def file_part(data, name, mimetype):
    return (io.BytesIO(data), name, mimetype)


def post_upload(client, **fields):
    return client.post("/upload", data=fields, content_type="multipart/form-data")
