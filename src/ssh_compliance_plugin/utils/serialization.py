"""JSON serialization utilities."""

from __future__ import annotations

import dataclasses
import datetime
import enum
from collections.abc import Mapping


def json_default(obj: object) -> object:
    """JSON serializer for evidence objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return to_plain(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    return str(obj)


def to_plain(obj: object) -> object:
    """Recursively convert dataclasses, mappings and sequences into JSON-ready values.

    ``None`` fields are dropped from dataclasses so emitted records only carry
    the attributes that were actually populated.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        result: dict[str, object] = {}
        for field in dataclasses.fields(obj):
            value = getattr(obj, field.name)
            if value is None:
                continue
            result[field.name] = to_plain(value)
        return result
    if isinstance(obj, Mapping):
        return {str(key): to_plain(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(item) for item in obj]
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj
