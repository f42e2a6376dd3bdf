from __future__ import annotations

from pathlib import Path

import pytest

from ssh_compliance_plugin import config
from ssh_compliance_plugin.config import PluginOptions, Settings, is_truthy, load_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "load_dotenv", lambda **_: False)
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in config.ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)

    settings = load_settings()

    assert settings.logging.level == "INFO"
    assert settings.collection.sudo is False
    assert settings.collection.timeout_seconds is None
    assert settings.policy.namespace == "local_ssh"
    assert settings.policy.paths == ()
    assert settings.evidence.expiry_hours == 24
    assert Path(settings.evidence.artifact_path).is_absolute()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SSH_PLUGIN_SUDO", "1")
    monkeypatch.setenv("SSH_PLUGIN_REMOTE_HOST", "bastion")
    monkeypatch.setenv("SSHD_TIMEOUT_SECONDS", "15")
    monkeypatch.setenv("POLICY_NAMESPACE", "compliance_framework.local_ssh")
    monkeypatch.setenv("POLICY_PATHS", "bundles/a, bundles/b,,")
    monkeypatch.setenv("ARTIFACT_PATH", str(tmp_path / "out"))
    monkeypatch.setenv("EVIDENCE_EXPIRY_HOURS", "48")

    settings = load_settings()

    assert settings.collection.sudo is True
    assert settings.collection.remote_host == "bastion"
    assert settings.collection.timeout_seconds == 15.0
    assert settings.policy.namespace == "compliance_framework.local_ssh"
    assert settings.policy.paths == ("bundles/a", "bundles/b")
    assert settings.evidence.artifact_path == str(tmp_path / "out")
    assert settings.evidence.expiry_hours == 48


def test_invalid_integer_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EVIDENCE_EXPIRY_HOURS", "a day")

    assert load_settings().evidence.expiry_hours == 24


def test_invalid_configuration_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLICY_NAMESPACE", "   ")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_settings()


@pytest.mark.parametrize(
    ("value", "expected"),
    [("true", True), ("1", True), (" TRUE ", True), ("yes", False), ("0", False), (None, False)],
)
def test_is_truthy(value: str | None, expected: bool) -> None:
    assert is_truthy(value) is expected


def test_plugin_options_from_settings_and_merge() -> None:
    settings = Settings.model_validate(
        {"collection": {"sudo": True, "sshd_command": "/usr/sbin/sshd"}}
    )
    options = PluginOptions.from_settings(settings)

    merged = options.merged_with({"sudo": "false", "namespace": " custom ", "remote_host": "h1"})

    assert options.sudo is True
    assert merged.sudo is False
    assert merged.namespace == "custom"
    assert merged.remote_host == "h1"
    assert merged.sshd_command == "/usr/sbin/sshd"


def test_plugin_options_are_immutable() -> None:
    options = PluginOptions()

    with pytest.raises(Exception):
        options.sudo = True  # type: ignore[misc]


def test_blank_remote_host_keeps_configured_host() -> None:
    options = PluginOptions(remote_host="bastion", namespace="local_ssh")

    merged = options.merged_with({"remote_host": "  ", "namespace": ""})

    assert merged.remote_host == "bastion"
    assert merged.namespace == "local_ssh"
    assert merged.raw == {"remote_host": "  ", "namespace": ""}
