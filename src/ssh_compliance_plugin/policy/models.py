"""Policy document models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_PACKAGE_SEGMENT_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789_")


def _ensure_list(v: Any) -> list:
    """Convert None to empty list, wrap scalars, pass through lists."""
    if v is None:
        return []
    if isinstance(v, (str, int, float, bool)):
        return [v]
    return v


def _scalar_text(item: Any) -> str:
    if isinstance(item, bool):
        return "yes" if item else "no"
    return str(item)


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    MATCHES = "matches"
    NOT_MATCHES = "not_matches"
    PRESENT = "present"
    ABSENT = "absent"
    MAX = "max"
    MIN = "min"


_NO_VALUE_OPERATORS = frozenset({Operator.PRESENT, Operator.ABSENT})
_SINGLE_VALUE_OPERATORS = frozenset({Operator.MAX, Operator.MIN})


class ViolationTemplate(BaseModel):
    title: str | None = None
    description: str | None = None
    remarks: str | None = None


class PolicyRule(BaseModel):
    directive: str
    operator: Operator = Field(default=Operator.EQUALS)
    values: list[str] = Field(default_factory=list)
    case_sensitive: bool = Field(default=False)
    allow_missing: bool = Field(
        default=False,
        description="Treat an absent directive as compliant instead of a violation.",
    )
    violation: ViolationTemplate = Field(default_factory=ViolationTemplate)

    @field_validator("directive")
    @classmethod
    def _validate_directive(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("directive must not be empty")
        return v

    @field_validator("values", mode="before")
    @classmethod
    def _validate_values(cls, v: Any) -> list:
        # YAML turns bare yes/no into booleans; sshd -T prints them as yes/no.
        items = _ensure_list(v)
        return [_scalar_text(item) for item in items]

    @model_validator(mode="after")
    def _validate_arity(self) -> PolicyRule:
        if self.operator in _NO_VALUE_OPERATORS:
            return self
        if not self.values:
            raise ValueError(f"operator '{self.operator.value}' requires at least one value")
        if self.operator in _SINGLE_VALUE_OPERATORS:
            if len(self.values) != 1:
                raise ValueError(f"operator '{self.operator.value}' takes exactly one value")
            try:
                int(self.values[0])
            except ValueError as exc:
                raise ValueError(
                    f"operator '{self.operator.value}' needs an integer, got '{self.values[0]}'"
                ) from exc
        return self


class PolicyDocument(BaseModel):
    package: str
    title: str | None = None
    description: str | None = None
    controls: list[str] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    rules: list[PolicyRule] = Field(default_factory=list)

    @field_validator("package")
    @classmethod
    def _validate_package(cls, v: str) -> str:
        v = v.strip()
        segments = v.split(".")
        if not v or any(not seg or not set(seg) <= _PACKAGE_SEGMENT_CHARS for seg in segments):
            raise ValueError(f"invalid policy package name '{v}'")
        return v

    @field_validator("controls", "rules", mode="before")
    @classmethod
    def _validate_lists(cls, v: Any) -> list:
        if v is None:
            return []
        return v

    @field_validator("variables", mode="before")
    @classmethod
    def _validate_variables(cls, v: Any) -> dict:
        if v is None:
            return {}
        return v

    def in_namespace(self, namespace: str) -> bool:
        """True when ``namespace`` appears as whole consecutive segments of the package."""
        wanted = namespace.split(".")
        segments = self.package.split(".")
        return any(
            segments[start : start + len(wanted)] == wanted
            for start in range(len(segments) - len(wanted) + 1)
        )

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> PolicyDocument:
        return cls.model_validate(data)
