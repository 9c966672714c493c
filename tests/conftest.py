"""Pytest configuration and fixtures for VidHub tests."""

import logging

import pytest

from vidhub.config.settings import Settings

TEST_JWT_SECRET = "test-jwt-secret-for-testing-only"
TEST_ADMIN_PASSWORD = "admin-test-password"

ISOLATED_ENV_KEYS = (
    "SQL_DSN",
    "PG_CONNECTION_STRING",
    "PG_TABLE_NAME",
    "KV_URL",
    "KV_PREFIX",
    "API_HOST",
    "API_PORT",
    "API_ROOT_PATH",
    "API_CORS_ORIGINS",
    "DEV_MODE",
)


@pytest.fixture(autouse=True)
def mock_environment_variables(monkeypatch):
    """Isolate every test from the developer's environment and .env file."""
    for key in ISOLATED_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("LOGIN_JWT_SECRET_KEY", TEST_JWT_SECRET)
    monkeypatch.setenv("ADMIN_PASSWORD", TEST_ADMIN_PASSWORD)
    monkeypatch.setenv("LOGIN_TOKEN_EXPIRE_HOURS", "24")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    Settings.refresh_from_env()
    yield
    monkeypatch.undo()
    Settings.refresh_from_env()


@pytest.fixture(autouse=True)
def reset_globals():
    """Drop process-wide singletons so tests do not leak state."""
    from vidhub.db import engine
    from vidhub.utils import http_client

    yield
    engine._database = None
    http_client._global_client = None


# Disable logging to reduce noise during tests
logging.getLogger().setLevel(logging.ERROR)
