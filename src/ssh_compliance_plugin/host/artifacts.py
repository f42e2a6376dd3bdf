"""Evidence artifact storage."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from ssh_compliance_plugin.utils.hashing import sha256_bytes
from ssh_compliance_plugin.utils.serialization import json_default
from ssh_compliance_plugin.utils.time import utc_now_iso


@dataclass
class ArtifactRecord:
    artifact_id: str
    kind: str
    location: str
    checksum: str
    created_at: str
    count: int = 0


class ArtifactStore:
    def __init__(self, base_path: str) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def write_json(
        self,
        kind: str,
        payload: object,
        prefix: str | None = None,
        count: int = 0,
    ) -> ArtifactRecord:
        data = json.dumps(payload, ensure_ascii=True, indent=2, default=json_default).encode(
            "utf-8"
        )
        artifact_id = uuid4().hex
        filename = f"{prefix + '-' if prefix else ''}{kind}-{artifact_id}.json"
        path = self._base / filename
        path.write_bytes(data)
        return ArtifactRecord(
            artifact_id=artifact_id,
            kind=kind,
            location=str(path),
            checksum=sha256_bytes(data),
            created_at=utc_now_iso(),
            count=count,
        )

    def read_json(self, location: str) -> object:
        path = Path(location).resolve()
        if not path.is_relative_to(self._base.resolve()):
            raise ValueError(f"Path is outside base directory: {location}")
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
