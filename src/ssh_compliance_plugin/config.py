"""Configuration management for the SSH compliance plugin."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)

DEFAULT_POLICY_NAMESPACE = "local_ssh"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class CollectionSettings(BaseModel):
    sshd_command: str = Field(default="sshd", description="Path or name of the sshd binary")
    sudo: bool = Field(default=False)
    remote_host: str | None = Field(
        default=None,
        description="Collect over ssh from this host instead of the local machine",
    )
    timeout_seconds: float | None = Field(default=None, gt=0)


class PolicySettings(BaseModel):
    namespace: str = Field(default=DEFAULT_POLICY_NAMESPACE)
    paths: tuple[str, ...] = Field(default=())

    @field_validator("namespace")
    @classmethod
    def _validate_namespace(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("policy namespace must not be empty")
        return value


class EvidenceSettings(BaseModel):
    artifact_path: str = Field(default="./data/evidence")
    expiry_hours: int = Field(default=24, ge=1, le=24 * 365)


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    collection: CollectionSettings = Field(default_factory=CollectionSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    evidence: EvidenceSettings = Field(default_factory=EvidenceSettings)


ENV_KEYS = {
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "sshd_command": "SSHD_COMMAND",
    "sudo": "SSH_PLUGIN_SUDO",
    "remote_host": "SSH_PLUGIN_REMOTE_HOST",
    "timeout": "SSHD_TIMEOUT_SECONDS",
    "policy_namespace": "POLICY_NAMESPACE",
    "policy_paths": "POLICY_PATHS",
    "artifact_path": "ARTIFACT_PATH",
    "expiry_hours": "EVIDENCE_EXPIRY_HOURS",
}

_TRUE_VALUES = frozenset({"1", "true"})


def is_truthy(value: str | None) -> bool:
    """Host options and env flags only accept ``"true"`` or ``"1"`` as enabled."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate.resolve())
    return str((_project_root() / candidate).resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return is_truthy(value)


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float | None) -> float | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "collection": {
            "sshd_command": os.getenv(
                ENV_KEYS["sshd_command"], CollectionSettings().sshd_command
            ),
            "sudo": _env_bool(ENV_KEYS["sudo"], CollectionSettings().sudo),
            "remote_host": os.getenv(ENV_KEYS["remote_host"], "").strip() or None,
            "timeout_seconds": _env_float(
                ENV_KEYS["timeout"], CollectionSettings().timeout_seconds
            ),
        },
        "policy": {
            "namespace": os.getenv(ENV_KEYS["policy_namespace"], PolicySettings().namespace),
            "paths": tuple(_split_csv(os.getenv(ENV_KEYS["policy_paths"]))),
        },
        "evidence": {
            "artifact_path": _resolve_path(
                os.getenv(ENV_KEYS["artifact_path"], EvidenceSettings().artifact_path)
            ),
            "expiry_hours": _env_int(ENV_KEYS["expiry_hours"], EvidenceSettings().expiry_hours),
        },
    }

    try:
        return Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


class PluginOptions(BaseModel):
    """Options applied by the host through ``configure`` before an evaluation."""

    model_config = {"frozen": True}

    sudo: bool = False
    remote_host: str | None = None
    namespace: str = DEFAULT_POLICY_NAMESPACE
    sshd_command: str = "sshd"
    timeout_seconds: float | None = None
    expiry_hours: int = 24
    raw: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> PluginOptions:
        return cls(
            sudo=settings.collection.sudo,
            remote_host=settings.collection.remote_host,
            namespace=settings.policy.namespace,
            sshd_command=settings.collection.sshd_command,
            timeout_seconds=settings.collection.timeout_seconds,
            expiry_hours=settings.evidence.expiry_hours,
        )

    def merged_with(self, options: Mapping[str, str]) -> PluginOptions:
        """Layer host-supplied string options over these defaults.

        Unknown keys are kept in ``raw`` and otherwise ignored.
        """
        update: dict[str, object] = {"raw": {**self.raw, **dict(options)}}
        if "sudo" in options:
            update["sudo"] = is_truthy(options["sudo"])
        if options.get("remote_host", "").strip():
            update["remote_host"] = options["remote_host"].strip()
        if options.get("namespace", "").strip():
            update["namespace"] = options["namespace"].strip()
        return self.model_copy(update=update)
