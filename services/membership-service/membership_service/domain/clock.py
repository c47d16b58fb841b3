from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Default clock for services; tests substitute a fixed callable."""
    return datetime.now(timezone.utc)
