import pytest

from app import create_app
from extensions import db


@pytest.fixture
def make_app(tmp_path):
    apps = []

    def _make(**overrides):
        cfg = {
            "TESTING": True,
            "UPLOADS_DIR": str(tmp_path / "uploads"),
            "PUBLIC_DIR": str(tmp_path / "public"),
            "LOG_DIR": str(tmp_path / "logs"),
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
        }
        cfg.update(overrides)
        app = create_app(cfg)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def upload_dir(app):
    return app.config["UPLOADS_DIR"]

