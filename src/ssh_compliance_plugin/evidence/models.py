"""Data models for collected configuration, policy results and emitted evidence."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

StructuredConfig = dict[str, list[str]]


@dataclass(frozen=True)
class Step:
    title: str
    description: str
    remarks: str | None = None


@dataclass(frozen=True)
class Activity:
    title: str
    description: str
    steps: tuple[Step, ...] = ()
    remarks: str | None = None


@dataclass(frozen=True)
class Property:
    name: str
    value: str
    remarks: str | None = None


@dataclass(frozen=True)
class Link:
    href: str
    text: str | None = None


@dataclass(frozen=True)
class PolicyRef:
    package: str
    file: str


@dataclass(frozen=True)
class Violation:
    title: str | None = None
    description: str | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class PolicyResult:
    policy: PolicyRef
    bundle_path: str
    violations: tuple[Violation, ...] = ()
    additional_variables: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class OriginActor:
    type: str
    uuid: str
    title: str
    links: tuple[Link, ...] = ()


@dataclass(frozen=True)
class Subject:
    """Reference to the assessed thing, keyed by its identity attributes."""

    type: str
    title: str
    attributes: Mapping[str, str]
    remarks: str | None = None


@dataclass(frozen=True)
class Component:
    identifier: str
    type: str
    title: str
    description: str
    purpose: str


@dataclass(frozen=True)
class InventoryItem:
    identifier: str
    type: str
    title: str
    props: tuple[Property, ...] = ()
    implemented_components: tuple[str, ...] = ()


class FindingState(str, enum.Enum):
    SATISFIED = "satisfied"
    NOT_SATISFIED = "not-satisfied"


@dataclass(frozen=True)
class FindingStatus:
    state: FindingState
    remarks: str | None = None


@dataclass
class Observation:
    id: str
    uuid: str
    title: str
    description: str
    collected: datetime
    expires: datetime
    remarks: str | None = None
    methods: list[str] = field(default_factory=lambda: ["TEST-AUTOMATED"])
    labels: dict[str, str] = field(default_factory=dict)
    props: list[Property] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    origins: list[OriginActor] = field(default_factory=list)
    subjects: list[Subject] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    inventory: list[InventoryItem] = field(default_factory=list)
    relevant_evidence: list[Link] = field(default_factory=list)


@dataclass
class Finding:
    id: str
    uuid: str
    title: str
    description: str
    collected: datetime
    status: FindingStatus
    related_observations: list[str]
    remarks: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    origins: list[OriginActor] = field(default_factory=list)
    subjects: list[Subject] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    inventory: list[InventoryItem] = field(default_factory=list)
