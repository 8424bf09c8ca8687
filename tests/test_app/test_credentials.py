"""Tests for the credential stores."""

import os

import pytest

from jmapmail.app.credentials import CredentialStore, Credentials, EnvCredentialStore, MemoryCredentialStore

CREDS = Credentials("https://jmap.example.com", "alice@example.com", "secret")


class TestMemoryCredentialStore:
    def test_save_load_clear(self) -> None:
        store = MemoryCredentialStore()
        assert store.load() is None
        store.save(CREDS)
        assert store.load() == CREDS
        store.clear()
        assert store.load() is None

    def test_satisfies_protocol(self) -> None:
        assert isinstance(MemoryCredentialStore(), CredentialStore)
        assert isinstance(EnvCredentialStore(), CredentialStore)


class TestEnvCredentialStore:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("JMAP_SERVER", "JMAP_USERNAME", "JMAP_PASSWORD"):
            monkeypatch.delenv(key, raising=False)

    def test_load_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JMAP_SERVER", CREDS.server)
        monkeypatch.setenv("JMAP_USERNAME", CREDS.username)
        monkeypatch.setenv("JMAP_PASSWORD", CREDS.password)
        assert EnvCredentialStore().load() == CREDS

    def test_partial_environment_is_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JMAP_SERVER", CREDS.server)
        monkeypatch.setenv("JMAP_USERNAME", CREDS.username)
        assert EnvCredentialStore().load() is None

    def test_save_and_clear(self) -> None:
        store = EnvCredentialStore()
        store.save(CREDS)
        assert os.environ["JMAP_USERNAME"] == "alice@example.com"
        store.clear()
        assert "JMAP_SERVER" not in os.environ
        assert store.load() is None
