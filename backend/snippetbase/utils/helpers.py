"""Small shared helpers for timestamps and payload filtering."""

from datetime import datetime
from typing import Any, Dict, Iterable


def utcnow() -> datetime:
    # Naive UTC, matching what the database server_default timestamps store.
    return datetime.utcnow()


def strip_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def pick(values: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    allowed = set(keys)
    return {k: v for k, v in values.items() if k in allowed}
