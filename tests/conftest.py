import pytest

from app.menfem import create_app
from app.menfem.auth import _login_attempts


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAILS", "Editor@Example.com")
    for k in ("DIRECT_URL", "SESSION_LIFETIME_DAYS", "EMAIL_TOKEN_TTL_HOURS", "PASSWORD_RESET_TTL_HOURS"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.extensions["store"].create_all()
    _login_attempts.clear()
    yield app
    app.extensions["store"].dispose()


@pytest.fixture()
def store(app):
    return app.extensions["store"]


@pytest.fixture()
def client(app):
    return app.test_client()
