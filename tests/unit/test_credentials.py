"""
Unit Tests for the Credential Stores

Tests keychain-style entry naming, replacement and deletion, and the
environment-backed fallback.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from balance_sync.credentials import (
    API_KEY_ENV,
    API_SECRET_ENV,
    EnvCredentialStore,
    InMemoryCredentialStore,
    api_key_entry,
    secret_entry,
)
from balance_sync.errors import MissingCredentialsError
from balance_sync.models import Credentials


@pytest.fixture
def clean_environment(monkeypatch):
    monkeypatch.delenv(API_KEY_ENV, raising=False)
    monkeypatch.delenv(API_SECRET_ENV, raising=False)
    return monkeypatch


class TestEntryNames:

    def test_names(self) -> None:
        assert api_key_entry(3) == "apiKey institutionId: 3"
        assert secret_entry(3) == "secret institutionId: 3"


class TestInMemoryCredentialStore:

    def test_set_and_get(self) -> None:
        store = InMemoryCredentialStore()
        credentials = Credentials(api_key="key-0000-1111", secret="secret")
        store.set(1, credentials)

        assert store.get(1) == credentials
        assert store.entry("apiKey institutionId: 1") == "key-0000-1111"
        assert store.entry("secret institutionId: 1") == "secret"

    def test_get_missing(self) -> None:
        assert InMemoryCredentialStore().get(1) is None

    def test_replace(self) -> None:
        store = InMemoryCredentialStore()
        store.set(1, Credentials(api_key="first-key-000", secret="a"))
        store.set(1, Credentials(api_key="second-key-00", secret="b"))
        assert store.get(1).api_key == "second-key-00"

    def test_delete(self) -> None:
        store = InMemoryCredentialStore()
        store.set(1, Credentials(api_key="key-0000-1111", secret="secret"))

        assert store.delete(1) is True
        assert store.delete(1) is False
        assert store.get(1) is None

    def test_secret_not_logged(self, caplog) -> None:
        caplog.set_level("DEBUG")
        InMemoryCredentialStore().set(1, Credentials(api_key="key-0000-1111", secret="hunter2-secret"))
        assert "hunter2-secret" not in caplog.text
        assert "key-0000-1111" not in caplog.text


class TestEnvCredentialStore:

    def test_environment_fallback(self, clean_environment) -> None:
        clean_environment.setenv(API_KEY_ENV, " env-key-12345 ")
        clean_environment.setenv(API_SECRET_ENV, "env-secret")

        credentials = EnvCredentialStore(load_env=False).get(5)
        assert credentials == Credentials(api_key="env-key-12345", secret="env-secret")

    def test_unset(self, clean_environment) -> None:
        assert EnvCredentialStore(load_env=False).get(1) is None

    def test_blank_value_rejected(self, clean_environment) -> None:
        clean_environment.setenv(API_KEY_ENV, "env-key-12345")
        clean_environment.setenv(API_SECRET_ENV, "   ")

        with pytest.raises(MissingCredentialsError):
            EnvCredentialStore.from_environment()

    def test_stored_credentials_take_precedence(self, clean_environment) -> None:
        clean_environment.setenv(API_KEY_ENV, "env-key-12345")
        clean_environment.setenv(API_SECRET_ENV, "env-secret")
        store = EnvCredentialStore(load_env=False)
        store.set(2, Credentials(api_key="stored-key-123", secret="stored"))

        assert store.get(2).api_key == "stored-key-123"
        assert store.get(3).api_key == "env-key-12345"
