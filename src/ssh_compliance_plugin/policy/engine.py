"""Policy evaluation engine."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from ssh_compliance_plugin.errors import BundleExecutionError
from ssh_compliance_plugin.evidence.models import (
    PolicyRef,
    PolicyResult,
    Violation,
)
from ssh_compliance_plugin.policy.loader import LoadedPolicy, load_bundle
from ssh_compliance_plugin.policy.models import Operator, PolicyRule

logger = logging.getLogger(__name__)

_MAX_POLICY_REGEX_LENGTH = 256
_BACKREFERENCE_PATTERN = re.compile(r"\\[1-9]")
_NESTED_QUANTIFIER_PATTERN = re.compile(
    r"\((?:[^()\\]|\\.)*[+*](?:[^()\\]|\\.)*\)\s*(?:[+*]|\{\d+(?:,\d*)?\})"
)
_LOOKBEHIND_TOKENS = ("(?<=", "(?<!")

# An unset directive cannot equal, contain or match a forbidden value.
_NEGATED_OPERATORS = frozenset(
    {Operator.NOT_EQUALS, Operator.NOT_IN, Operator.NOT_CONTAINS, Operator.NOT_MATCHES}
)


class PolicyExecutor(Protocol):
    def execute(
        self,
        config: Mapping[str, Sequence[str]],
        bundle_path: str,
        namespace: str,
    ) -> list[PolicyResult]:
        """Evaluate one bundle, raising ``BundleExecutionError`` if it cannot run."""


@dataclass(frozen=True)
class _CompiledRule:
    rule: PolicyRule
    patterns: tuple[re.Pattern[str], ...] = ()


@dataclass(frozen=True)
class _CompiledPolicy:
    loaded: LoadedPolicy
    rules: tuple[_CompiledRule, ...]


class PolicyEngine:
    """Evaluates YAML policy bundles against a structured sshd configuration."""

    def execute(
        self,
        config: Mapping[str, Sequence[str]],
        bundle_path: str,
        namespace: str,
    ) -> list[PolicyResult]:
        try:
            bundle = load_bundle(bundle_path)
        except OSError as exc:
            raise BundleExecutionError(bundle_path, f"unable to read bundle: {exc}") from exc

        selected = self.build_query(bundle.policies, namespace)
        logger.debug(
            "Evaluating %d of %d policies in %s for namespace %s",
            len(selected),
            len(bundle.policies),
            bundle_path,
            namespace,
        )
        if not selected:
            logger.warning("No policies in %s match namespace %s", bundle_path, namespace)

        compiled = [self._compile_policy(policy, bundle_path) for policy in selected]
        return [self._evaluate_policy(policy, config, bundle_path) for policy in compiled]

    @staticmethod
    def build_query(
        policies: Sequence[LoadedPolicy],
        namespace: str,
    ) -> list[LoadedPolicy]:
        return [policy for policy in policies if policy.document.in_namespace(namespace)]

    @classmethod
    def _compile_policy(cls, policy: LoadedPolicy, bundle_path: str) -> _CompiledPolicy:
        rules: list[_CompiledRule] = []
        for rule in policy.document.rules:
            if rule.operator not in (Operator.MATCHES, Operator.NOT_MATCHES):
                rules.append(_CompiledRule(rule=rule))
                continue
            label = f"{policy.document.package}:{rule.directive}"
            flags = 0 if rule.case_sensitive else re.IGNORECASE
            patterns: list[re.Pattern[str]] = []
            for pat in rule.values:
                try:
                    cls._validate_pattern_safety(pat, label)
                    patterns.append(re.compile(pat, flags))
                except (ValueError, re.error) as exc:
                    raise BundleExecutionError(bundle_path, f"{policy.file}: {exc}") from exc
            rules.append(_CompiledRule(rule=rule, patterns=tuple(patterns)))
        return _CompiledPolicy(loaded=policy, rules=tuple(rules))

    @staticmethod
    def _validate_pattern_safety(pattern: str, label: str) -> None:
        if len(pattern) > _MAX_POLICY_REGEX_LENGTH:
            raise ValueError(
                f"Unsafe regex in {label} policy pattern '{pattern}': exceeds "
                f"{_MAX_POLICY_REGEX_LENGTH} characters"
            )
        if any(token in pattern for token in _LOOKBEHIND_TOKENS):
            raise ValueError(
                f"Unsafe regex in {label} policy pattern '{pattern}': look-behind is not allowed"
            )
        if _BACKREFERENCE_PATTERN.search(pattern):
            raise ValueError(
                f"Unsafe regex in {label} policy pattern '{pattern}': "
                "backreferences are not allowed"
            )
        if _NESTED_QUANTIFIER_PATTERN.search(pattern):
            raise ValueError(
                f"Unsafe regex in {label} policy pattern '{pattern}': "
                "nested quantifiers are not allowed"
            )

    def _evaluate_policy(
        self,
        policy: _CompiledPolicy,
        config: Mapping[str, Sequence[str]],
        bundle_path: str,
    ) -> PolicyResult:
        document = policy.loaded.document
        violations: list[Violation] = []
        for compiled in policy.rules:
            actual = config.get(compiled.rule.directive)
            if not self._rule_holds(compiled, actual):
                violations.append(_render_violation(compiled.rule, actual))
        return PolicyResult(
            policy=PolicyRef(package=document.package, file=policy.loaded.file),
            bundle_path=bundle_path,
            violations=tuple(violations),
            additional_variables=dict(document.variables),
        )

    @staticmethod
    def _rule_holds(compiled: _CompiledRule, actual: Sequence[str] | None) -> bool:
        rule = compiled.rule
        if rule.operator is Operator.ABSENT:
            return not actual
        if rule.operator is Operator.PRESENT:
            return bool(actual)
        if not actual:
            return rule.allow_missing or rule.operator in _NEGATED_OPERATORS

        if compiled.patterns:
            hits = [any(p.search(value) for p in compiled.patterns) for value in actual]
            if rule.operator is Operator.MATCHES:
                return all(hits)
            return not any(hits)

        if rule.operator in (Operator.MAX, Operator.MIN):
            limit = int(rule.values[0])
            try:
                numbers = [int(value) for value in actual]
            except ValueError:
                return False
            if rule.operator is Operator.MAX:
                return all(number <= limit for number in numbers)
            return all(number >= limit for number in numbers)

        observed = _normalise(actual, rule.case_sensitive)
        expected = _normalise(rule.values, rule.case_sensitive)
        if rule.operator is Operator.EQUALS:
            return observed == expected
        if rule.operator is Operator.NOT_EQUALS:
            return observed != expected
        if rule.operator is Operator.IN:
            return all(value in expected for value in observed)
        if rule.operator is Operator.NOT_IN:
            return not any(value in expected for value in observed)
        if rule.operator is Operator.CONTAINS:
            return all(value in observed for value in expected)
        if rule.operator is Operator.NOT_CONTAINS:
            return not any(value in observed for value in expected)
        raise ValueError(f"Unsupported operator: {rule.operator}")


def _normalise(values: Sequence[str], case_sensitive: bool) -> list[str]:
    if case_sensitive:
        return list(values)
    return [value.lower() for value in values]


def _render(template: str | None, rule: PolicyRule, actual: Sequence[str] | None) -> str | None:
    if template is None:
        return None
    return (
        template.replace("{directive}", rule.directive)
        .replace("{actual}", " ".join(actual) if actual else "<unset>")
        .replace("{expected}", " ".join(rule.values))
    )


def _render_violation(rule: PolicyRule, actual: Sequence[str] | None) -> Violation:
    template = rule.violation
    return Violation(
        title=_render(template.title, rule, actual),
        description=_render(template.description, rule, actual),
        remarks=_render(template.remarks, rule, actual),
    )
