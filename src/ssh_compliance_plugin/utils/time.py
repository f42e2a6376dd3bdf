"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def expires_after(collected: datetime, hours: int) -> datetime:
    """Return the expiry timestamp for evidence collected at ``collected``."""
    return collected + timedelta(hours=hours)
