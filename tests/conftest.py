from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest
import yaml

from ssh_compliance_plugin.collection.fetcher import FetchResult, StaticSSHFetcher
from ssh_compliance_plugin.errors import BundleExecutionError, FetchError
from ssh_compliance_plugin.evidence.models import (
    Finding,
    Observation,
    PolicyRef,
    PolicyResult,
    Step,
    Violation,
)
from ssh_compliance_plugin.evidence.subjects import SubjectContext, resolve_subject

SAMPLE_CONFIG = {
    "authorizedkeysfile": [".ssh/authorized_keys", ".ssh/authorized_keys2"],
    "listenaddress": ["[::]:22", "0.0.0.0:22"],
    "passwordauthentication": ["yes"],
    "permitrootlogin": ["without-password"],
    "port": ["22"],
    "pubkeyauthentication": ["yes"],
}

COLLECTION_STEPS = [
    Step(title="Fetch SSH configuration from host machine", description="sshd -T"),
]


def make_result(
    package: str = "compliance_framework.local_ssh.deny_password_auth",
    file: str = "password_authentication.yaml",
    bundle_path: str = "bundle-a",
    violations: Sequence[Violation] = (),
) -> PolicyResult:
    return PolicyResult(
        policy=PolicyRef(package=package, file=file),
        bundle_path=bundle_path,
        violations=tuple(violations),
    )


class FakeExecutor:
    """Returns canned results per bundle path; raises for paths mapped to exceptions."""

    def __init__(self, results: Mapping[str, list[PolicyResult] | Exception]) -> None:
        self._results = results
        self.calls: list[tuple[str, str]] = []

    def execute(
        self,
        config: Mapping[str, Sequence[str]],
        bundle_path: str,
        namespace: str,
    ) -> list[PolicyResult]:
        self.calls.append((bundle_path, namespace))
        outcome = self._results[bundle_path]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FailingFetcher:
    def __init__(self, message: str = "sshd: command not found") -> None:
        self._message = message

    def fetch_ssh_configuration(self) -> FetchResult:
        raise FetchError(self._message, COLLECTION_STEPS)


class RecordingHostApi:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.observations: list[Observation] = []
        self.findings: list[Finding] = []
        self._fail_with = fail_with

    def create_observations(self, observations: Sequence[Observation]) -> None:
        if self._fail_with is not None:
            raise self._fail_with
        self.observations.extend(observations)

    def create_findings(self, findings: Sequence[Finding]) -> None:
        self.findings.extend(findings)


@pytest.fixture
def subject() -> SubjectContext:
    return resolve_subject(hostname="web-01")


@pytest.fixture
def static_fetcher() -> StaticSSHFetcher:
    return StaticSSHFetcher(SAMPLE_CONFIG, steps=COLLECTION_STEPS)


@pytest.fixture
def bundle_error() -> BundleExecutionError:
    return BundleExecutionError("bundle-a", "rego_parse_error: unexpected token")


def write_policy(directory: Path, name: str, *documents: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(yaml.safe_dump_all(list(documents)), encoding="utf-8")
    return path


@pytest.fixture
def policy_bundle(tmp_path: Path) -> Path:
    bundle = tmp_path / "policies"
    write_policy(
        bundle,
        "password.yaml",
        {
            "package": "compliance_framework.local_ssh.deny_password_auth",
            "rules": [
                {
                    "directive": "passwordauthentication",
                    "operator": "equals",
                    "values": ["no"],
                    "violation": {
                        "title": "password auth enabled",
                        "description": "passwordauthentication is {actual}",
                    },
                }
            ],
        },
    )
    write_policy(
        bundle,
        "pubkey.yaml",
        {
            "package": "compliance_framework.local_ssh.pubkey_auth",
            "rules": [
                {"directive": "pubkeyauthentication", "operator": "equals", "values": ["yes"]}
            ],
        },
    )
    return bundle
