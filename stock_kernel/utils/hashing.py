"""
Canonical JSON and hashing for idempotency and engine fingerprints.

A movement's ``payload_hash`` is compared when an idempotency key is
re-used, possibly by another process days later, so the canonical form
must not depend on dict order, set order or the type used for a date.
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _to_json(obj: Any) -> Any:
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        # json calls back here for elements it cannot encode itself
        return sorted(obj, key=str)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"Cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, ISO dates, enum values, sorted sets, dataclasses as dicts."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_to_json)


def hash_payload(payload: dict) -> str:
    """SHA-256 hex digest (64 chars) of the canonical payload."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def fingerprint(data: Any, length: int = 16) -> str:
    """Short SHA-256 prefix: trace correlation and key suffixes, not conflict detection."""
    return hashlib.sha256(canonicalize_json(data).encode("utf-8")).hexdigest()[:length]
