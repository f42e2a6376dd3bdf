"""Deterministic identities for observations and findings."""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping

from ssh_compliance_plugin.errors import IdentitySeedError
from ssh_compliance_plugin.evidence.models import PolicyResult

EVIDENCE_NAMESPACE = uuid.UUID("6f1c3f2e-8a0d-4b8e-9c57-2d5e1a7b4c90")


def merge_maps(*maps: Mapping[str, str]) -> dict[str, str]:
    """Merge maps left to right; later keys override earlier ones."""
    result: dict[str, str] = {}
    for item in maps:
        result.update(item)
    return result


def seeded_uuid(seed: Mapping[str, str]) -> str:
    """Return a UUID that depends only on the key/value pairs of ``seed``.

    Keys are sorted before hashing so insertion order never changes the result.
    """
    if not seed:
        raise IdentitySeedError("identity seed is empty")
    for key, value in seed.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise IdentitySeedError(
                f"identity seed entries must be strings, got {key!r}={value!r}"
            )
        if not value:
            raise IdentitySeedError(f"identity seed attribute {key!r} is empty")
    canonical = json.dumps(dict(seed), sort_keys=True, separators=(",", ":"))
    return str(uuid.uuid5(EVIDENCE_NAMESPACE, canonical))


def evidence_seed(
    kind: str,
    subject_attributes: Mapping[str, str],
    result: PolicyResult,
) -> dict[str, str]:
    return merge_maps(
        subject_attributes,
        {
            "type": kind,
            "policy": result.policy.package,
            "policy_file": result.policy.file,
            "policy_path": result.bundle_path,
        },
    )


def observation_uuid(subject_attributes: Mapping[str, str], result: PolicyResult) -> str:
    return seeded_uuid(evidence_seed("observation", subject_attributes, result))


def finding_uuid(subject_attributes: Mapping[str, str], result: PolicyResult) -> str:
    return seeded_uuid(evidence_seed("finding", subject_attributes, result))
