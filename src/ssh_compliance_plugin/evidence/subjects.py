"""Resolve the assessed host and build the static descriptors shared by all evidence."""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ssh_compliance_plugin.evidence.models import (
    Component,
    InventoryItem,
    Link,
    OriginActor,
    Property,
    Subject,
)

logger = logging.getLogger(__name__)

PLATFORM_ACTOR = OriginActor(
    type="assessment-platform",
    uuid="c0a3c4f1-5e0b-4d4e-9a43-4b1f0f3d2a11",
    title="Continuous Compliance Framework",
    links=(
        Link(
            href="https://compliance-framework.github.io/docs/",
            text="Continuous Compliance Framework",
        ),
    ),
)

PLUGIN_ACTOR = OriginActor(
    type="tool",
    uuid="9b1e2f7c-3d64-4a2b-8f55-7e0c2d9a6b34",
    title="Continuous Compliance Framework - Local SSH Plugin",
    links=(
        Link(
            href="https://github.com/compliance-framework/plugin-local-ssh",
            text="Local SSH Plugin",
        ),
    ),
)

SSH_COMPONENT = Component(
    identifier="common-components/ssh",
    type="software",
    title="Secure Shell (SSH)",
    description=(
        "Secure Shell (SSH) is a cryptographic network protocol for operating network "
        "services securely over an unsecured network."
    ),
    purpose="Remote administrative access to the machine instance.",
)


@dataclass(frozen=True)
class SubjectContext:
    """Immutable per-run description of what is assessed and who assesses it."""

    hostname: str
    attributes: Mapping[str, str]
    subjects: tuple[Subject, ...]
    components: tuple[Component, ...]
    inventory: tuple[InventoryItem, ...]
    actors: tuple[OriginActor, ...]
    labels: Mapping[str, str]


def resolve_hostname(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    hostname = (env.get("HOSTNAME") or "").strip()
    if hostname:
        return hostname
    fallback = socket.gethostname()
    logger.debug("HOSTNAME is not set, using socket hostname %s", fallback)
    return fallback


def resolve_subject(
    hostname: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> SubjectContext:
    host = hostname or resolve_hostname(environ)
    attributes = MappingProxyType({"type": "machine-instance", "hostname": host})

    inventory_item = InventoryItem(
        identifier=f"machine-instance/{host}",
        type="operating-system",
        title=f"Machine Instance {host}",
        props=(Property(name="hostname", value=host),),
        implemented_components=(SSH_COMPONENT.identifier,),
    )
    subjects = (
        Subject(
            type="component",
            title="Component: Secure Shell (SSH)",
            attributes=MappingProxyType({"component_id": SSH_COMPONENT.identifier}),
        ),
        Subject(
            type="inventory-item",
            title=f"Machine Instance: {host}",
            attributes=MappingProxyType(dict(attributes)),
            remarks="Machine instance the sshd configuration was collected from.",
        ),
    )
    labels = MappingProxyType({"hostname": host, "type": "ssh"})
    return SubjectContext(
        hostname=host,
        attributes=attributes,
        subjects=subjects,
        components=(SSH_COMPONENT,),
        inventory=(inventory_item,),
        actors=(PLATFORM_ACTOR, PLUGIN_ACTOR),
        labels=labels,
    )
