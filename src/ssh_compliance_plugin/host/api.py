"""Host ingestion API used to hand compiled evidence back to the platform."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from ssh_compliance_plugin.errors import IngestionError
from ssh_compliance_plugin.evidence.models import Finding, Observation
from ssh_compliance_plugin.host.artifacts import ArtifactRecord, ArtifactStore
from ssh_compliance_plugin.utils.serialization import to_plain

logger = logging.getLogger(__name__)


class HostApi(Protocol):
    def create_observations(self, observations: Sequence[Observation]) -> None: ...

    def create_findings(self, findings: Sequence[Finding]) -> None: ...


class ArtifactHostApi:
    """Stores evidence as checksummed JSON artifacts in a local directory.

    Each call writes a single artifact; ``records`` lists them in call order.
    """

    def __init__(self, store: ArtifactStore, prefix: str | None = None) -> None:
        self._store = store
        self._prefix = prefix
        self.records: list[ArtifactRecord] = []

    def create_observations(self, observations: Sequence[Observation]) -> None:
        self._write("observations", [to_plain(obs) for obs in observations])

    def create_findings(self, findings: Sequence[Finding]) -> None:
        self._write("findings", [to_plain(finding) for finding in findings])

    def _write(self, kind: str, payload: list[object]) -> None:
        try:
            record = self._store.write_json(kind, payload, prefix=self._prefix, count=len(payload))
        except (OSError, TypeError, ValueError) as exc:
            raise IngestionError(f"failed to store {kind}: {exc}") from exc
        logger.info("Stored %d %s in %s", len(payload), kind, record.location)
        self.records.append(record)
