"""Settings — environment-derived cookie security and database URL coercion."""

import pytest

from rostergraph.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.delenv("SESSION_COOKIE_SECURE", raising=False)


def test_cookie_not_secure_in_development():
    assert Settings().session_cookie_secure is False


def test_production_environment_makes_cookie_secure(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    assert Settings().session_cookie_secure is True


def test_explicit_cookie_flag_wins(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "false")
    assert Settings().session_cookie_secure is False


def test_postgres_url_coerced_to_asyncpg():
    settings = Settings(database_url="postgresql://u:p@host:5432/db")
    assert settings.database_url == "postgresql+asyncpg://u:p@host:5432/db"
