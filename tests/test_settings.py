"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from codepanel.services.auth import CREDENTIAL_MISSING, ApiKeyCredentialProvider
from codepanel.services.settings import (
    SecretVault,
    Settings,
    SettingsStore,
    default_settings_dir,
    redact_secret,
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("CODEPANEL_"):
            monkeypatch.delenv(name, raising=False)


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "settings.key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = _store(tmp_path).load()

    assert settings == Settings()
    assert settings.tab_binding_retry_ms == 20


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    original = Settings(
        base_url="https://example.com/v1",
        api_key="super-secret",
        model="gpt-4.1-mini",
        organization="acme",
        default_headers={"X-Test": "1"},
        tab_binding_retry_ms=50,
        max_file_text_chars=1000,
        telemetry_opt_in=True,
    )

    store.save(original)
    reloaded = _store(tmp_path).load()

    assert reloaded == original


def test_api_key_is_encrypted_on_disk(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.save(Settings(api_key="super-secret"))

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert "api_key" not in payload
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert "super-secret" not in store.path.read_text(encoding="utf-8")
    assert payload["version"] == 1
    assert payload["secret_backend"] == "fernet"


def test_load_legacy_plaintext_api_key_is_migrated(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(
        json.dumps({"base_url": "https://old", "api_key": "plain-key", "model": "gpt-3.5"}),
        encoding="utf-8",
    )

    loaded = store.load()

    assert loaded.api_key == "plain-key"
    assert loaded.base_url == "https://old"
    migrated = json.loads(store.path.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert "api_key_ciphertext" in migrated


def test_unknown_keys_and_invalid_json_are_tolerated(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")
    assert store.load().model == "m"

    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() == Settings()


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(
        json.dumps({"api_key_ciphertext": "fernet:garbage", "version": 1}),
        encoding="utf-8",
    )

    assert store.load().api_key == ""


def test_cli_overrides_merge_headers(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(default_headers={"X-One": "1"}))

    loaded = store.load(overrides={"default_headers": {"X-Two": "2"}, "model": "cli-model", "bogus": 1})

    assert loaded.default_headers == {"X-One": "1", "X-Two": "2"}
    assert loaded.model == "cli-model"


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(base_url="https://local", api_key="abc"))
    monkeypatch.setenv("CODEPANEL_BASE_URL", "https://env-base")
    monkeypatch.setenv("CODEPANEL_API_KEY", "env-key")
    monkeypatch.setenv("CODEPANEL_TAB_BINDING_RETRY_MS", "5")
    monkeypatch.setenv("CODEPANEL_TELEMETRY_OPT_IN", "yes")
    monkeypatch.setenv("CODEPANEL_TEMPERATURE", "0.7")

    overridden = store.load(overrides={"base_url": "https://cli"})

    assert overridden.base_url == "https://env-base"
    assert overridden.api_key == "env-key"
    assert overridden.tab_binding_retry_ms == 5
    assert overridden.telemetry_opt_in is True
    assert overridden.temperature == pytest.approx(0.7)


def test_invalid_numeric_env_override_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEPANEL_MAX_RETRIES", "many")

    assert _store(tmp_path).load().max_retries == 3


def test_vault_roundtrip_reuses_key_file(tmp_path: Path) -> None:
    key_path = tmp_path / "vault.key"
    token = SecretVault(key_path=key_path).encrypt("s3cret")

    assert key_path.exists()
    assert SecretVault(key_path=key_path).decrypt(token) == "s3cret"
    assert SecretVault(key_path=key_path).decrypt("") == ""


def test_vault_rejects_foreign_token(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "vault.key")

    with pytest.raises(ValueError):
        vault.decrypt("fernet:not-a-token")


def test_default_settings_dir_honours_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEPANEL_HOME", str(tmp_path))

    assert default_settings_dir() == tmp_path


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abcd", "****"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected


@pytest.mark.asyncio
async def test_credential_state_tracks_api_key() -> None:
    settings = Settings(api_key="  ")
    provider = ApiKeyCredentialProvider(settings)

    assert await provider.get_credential_state() == CREDENTIAL_MISSING

    settings.api_key = "sk-live"

    assert await provider.get_credential_state() is None
