import pytest
import requests
from fastapi.testclient import TestClient

from web3dash import coingecko, config
from web3dash.auth import create_jwt_token
from web3dash.catalog import reset_catalog
from web3dash.db import get_database, reset_database
from web3dash.rate_limit import auth_limiter
from web3dash.whales import reset_whale_store

ADMIN_EMAIL = "admin@example.com"


def _no_network(*args, **kwargs):
    raise requests.ConnectionError("network access disabled in tests")


def _reset_stores():
    reset_database()
    reset_catalog()
    reset_whale_store()
    auth_limiter.reset()
    coingecko._id_cache.clear()
    coingecko._response_cache.clear()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point every store at a temp directory and cut off outbound HTTP."""
    monkeypatch.setattr(config, "DATA_DIR", tmp_path)
    monkeypatch.setattr(config, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(config, "INVITE_ONLY", False)
    monkeypatch.setattr(config, "ADMIN_EMAILS", {ADMIN_EMAIL})
    monkeypatch.setattr(config, "CRON_SECRET", "cron-test-secret")
    monkeypatch.setattr(config, "GOOGLE_CLIENT_ID", None)
    monkeypatch.setattr(config, "MAILGUN_API_KEY", None)
    monkeypatch.setattr(config, "MAILGUN_DOMAIN", None)
    monkeypatch.setattr(config, "COINGECKO_RATE_LIMIT_DELAY", 0)
    monkeypatch.setattr(requests, "get", _no_network)
    monkeypatch.setattr(requests, "post", _no_network)
    _reset_stores()
    yield tmp_path
    _reset_stores()


@pytest.fixture
def client():
    from web3dash.server import app

    return TestClient(app)


@pytest.fixture
def db():
    return get_database()


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_jwt_token(user)}"}


@pytest.fixture
def make_user(db):
    """Create a user and return (user, auth headers)."""

    def _make(email="alice@example.com", username=None):
        user = db.create_user(email, username or email.split("@")[0])
        return user, auth_headers(user)

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(ADMIN_EMAIL, "admin")


@pytest.fixture
def cron_headers():
    return {"Authorization": "Bearer cron-test-secret"}
