"""Test configuration and fixtures."""

import base64
import os

import pytest

from atrest.config import Settings, get_settings
from atrest.core.cipher_engine import CipherEngine

SETTINGS_ENV_VARS = (
    "ENVIRONMENT",
    "DEV_MODE",
    "ENCRYPTION_KEY",
    "ENCRYPTION_AAD",
    "API_KEY_PREFIX",
    "PASSWORD_ITERATIONS",
    "LOG_LEVEL",
    "LOG_JSON",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate every test from the host environment and any .env file."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def raw_key():
    """32 random key bytes."""
    return os.urandom(32)


@pytest.fixture
def hex_key(raw_key):
    return raw_key.hex()


@pytest.fixture
def base64_key(raw_key):
    return base64.b64encode(raw_key).decode("ascii")


@pytest.fixture
def engine(base64_key):
    """Engine with a random base64 key, as in a typical deployment."""
    return CipherEngine(base64_key)


@pytest.fixture
def settings(hex_key):
    """Settings with a fixed key and a cheap password work factor."""
    return Settings(encryption_key=hex_key, password_iterations=1_000)
