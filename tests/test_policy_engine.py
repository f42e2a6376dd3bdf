from __future__ import annotations

from pathlib import Path

import pytest
from conftest import SAMPLE_CONFIG, write_policy

from ssh_compliance_plugin.errors import BundleExecutionError, PolicyLoadError
from ssh_compliance_plugin.policy.engine import PolicyEngine


def _single_rule_bundle(tmp_path: Path, rule: dict, package: str = "local_ssh.check") -> str:
    write_policy(tmp_path, "policy.yaml", {"package": package, "rules": [rule]})
    return str(tmp_path)


def _violations(tmp_path: Path, rule: dict, config: dict | None = None) -> int:
    bundle = _single_rule_bundle(tmp_path, rule)
    results = PolicyEngine().execute(config or SAMPLE_CONFIG, bundle, "local_ssh")
    assert len(results) == 1
    return len(results[0].violations)


@pytest.fixture
def engine() -> PolicyEngine:
    return PolicyEngine()


def test_execute_bundle_reports_pass_and_fail(engine: PolicyEngine, policy_bundle: Path) -> None:
    results = engine.execute(SAMPLE_CONFIG, str(policy_bundle), "local_ssh")

    by_package = {result.policy.package: result for result in results}
    password = by_package["compliance_framework.local_ssh.deny_password_auth"]
    pubkey = by_package["compliance_framework.local_ssh.pubkey_auth"]

    assert not password.passed
    assert password.violations[0].title == "password auth enabled"
    assert password.violations[0].description == "passwordauthentication is yes"
    assert password.policy.file == "password.yaml"
    assert password.bundle_path == str(policy_bundle)
    assert pubkey.passed


def test_execute_filters_by_namespace(engine: PolicyEngine, policy_bundle: Path) -> None:
    write_policy(policy_bundle, "other.yaml", {"package": "compliance_framework.remote.x"})

    results = engine.execute(SAMPLE_CONFIG, str(policy_bundle), "local_ssh")

    assert all("local_ssh" in result.policy.package for result in results)
    assert engine.execute(SAMPLE_CONFIG, str(policy_bundle), "windows") == []


def test_execute_missing_bundle_raises_bundle_error(engine: PolicyEngine, tmp_path: Path) -> None:
    with pytest.raises(PolicyLoadError):
        engine.execute(SAMPLE_CONFIG, str(tmp_path / "nope"), "local_ssh")


def test_unsafe_regex_is_rejected(engine: PolicyEngine, tmp_path: Path) -> None:
    bundle = _single_rule_bundle(
        tmp_path, {"directive": "ciphers", "operator": "matches", "values": ["(a+)+"]}
    )

    with pytest.raises(BundleExecutionError, match="nested quantifiers"):
        engine.execute(SAMPLE_CONFIG, bundle, "local_ssh")


def test_invalid_regex_is_rejected(engine: PolicyEngine, tmp_path: Path) -> None:
    bundle = _single_rule_bundle(
        tmp_path, {"directive": "ciphers", "operator": "matches", "values": ["[unclosed"]}
    )

    with pytest.raises(BundleExecutionError):
        engine.execute(SAMPLE_CONFIG, bundle, "local_ssh")


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        ({"directive": "port", "operator": "equals", "values": ["22"]}, 0),
        ({"directive": "port", "operator": "not_equals", "values": ["22"]}, 1),
        (
            {"directive": "permitrootlogin", "operator": "in", "values": ["no", "without-password"]},
            0,
        ),
        ({"directive": "permitrootlogin", "operator": "not_in", "values": ["yes"]}, 0),
        ({"directive": "listenaddress", "operator": "contains", "values": ["0.0.0.0:22"]}, 0),
        ({"directive": "listenaddress", "operator": "not_contains", "values": ["[::]:22"]}, 1),
        ({"directive": "listenaddress", "operator": "matches", "values": [":22$"]}, 0),
        (
            {"directive": "listenaddress", "operator": "not_matches", "values": ["^0\\.0\\.0\\.0"]},
            1,
        ),
        ({"directive": "port", "operator": "present"}, 0),
        ({"directive": "banner", "operator": "absent"}, 0),
        ({"directive": "port", "operator": "max", "values": [1024]}, 0),
        ({"directive": "port", "operator": "min", "values": [1024]}, 1),
        ({"directive": "maxauthtries", "operator": "max", "values": [4]}, 1),
        (
            {"directive": "maxauthtries", "operator": "max", "values": [4], "allow_missing": True},
            0,
        ),
    ],
)
def test_operators(tmp_path: Path, rule: dict, expected: int) -> None:
    assert _violations(tmp_path, rule) == expected


def test_comparison_is_case_insensitive_by_default(tmp_path: Path) -> None:
    rule = {"directive": "passwordauthentication", "operator": "equals", "values": ["YES"]}

    assert _violations(tmp_path, rule) == 0


def test_case_sensitive_comparison(tmp_path: Path) -> None:
    rule = {
        "directive": "passwordauthentication",
        "operator": "equals",
        "values": ["YES"],
        "case_sensitive": True,
    }

    assert _violations(tmp_path, rule) == 1


def test_non_numeric_value_fails_numeric_rule(tmp_path: Path) -> None:
    rule = {"directive": "logingracetime", "operator": "max", "values": [60]}

    assert _violations(tmp_path, rule, {"logingracetime": ["2m"]}) == 1


def test_violation_template_placeholders(engine: PolicyEngine, tmp_path: Path) -> None:
    bundle = _single_rule_bundle(
        tmp_path,
        {
            "directive": "banner",
            "operator": "equals",
            "values": ["/etc/issue.net"],
            "violation": {
                "title": "{directive} not configured",
                "remarks": "found {actual}, wanted {expected}",
            },
        },
    )

    (result,) = engine.execute(SAMPLE_CONFIG, bundle, "local_ssh")

    assert result.violations[0].title == "banner not configured"
    assert result.violations[0].description is None
    assert result.violations[0].remarks == "found <unset>, wanted /etc/issue.net"


def test_policy_variables_are_passed_through(engine: PolicyEngine, tmp_path: Path) -> None:
    write_policy(
        tmp_path,
        "policy.yaml",
        {"package": "local_ssh.vars", "variables": {"severity": "high"}},
    )

    (result,) = engine.execute(SAMPLE_CONFIG, str(tmp_path), "local_ssh")

    assert result.passed
    assert result.additional_variables == {"severity": "high"}


def test_example_bundle(engine: PolicyEngine) -> None:
    bundle = Path(__file__).resolve().parents[1] / "examples" / "policies"

    results = engine.execute(SAMPLE_CONFIG, str(bundle), "local_ssh")

    failing = {r.policy.package for r in results if not r.passed}
    assert "compliance_framework.local_ssh.deny_password_auth" in failing
    assert "compliance_framework.local_ssh.deny_root_login" not in failing
    assert "compliance_framework.local_ssh.port" not in failing


@pytest.mark.parametrize("operator", ["not_equals", "not_in", "not_contains", "not_matches"])
def test_negated_operators_hold_for_unset_directive(tmp_path: Path, operator: str) -> None:
    rule = {"directive": "permitemptypasswords", "operator": operator, "values": ["yes"]}

    assert _violations(tmp_path, rule, {"port": ["22"]}) == 0


def test_positive_operator_fails_for_unset_directive(tmp_path: Path) -> None:
    rule = {"directive": "permitemptypasswords", "operator": "equals", "values": ["no"]}

    assert _violations(tmp_path, rule, {"port": ["22"]}) == 1
