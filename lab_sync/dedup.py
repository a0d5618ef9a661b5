from __future__ import annotations

import logging
from typing import Any, Dict, Mapping
from zoneinfo import ZoneInfo

from .normalize import normalize_timestamp

LOGGER = logging.getLogger(__name__)


def request_key(timestamp: Any, email: Any, tz: ZoneInfo) -> str:
    """Composite natural key of a request: local timestamp + trimmed email."""

    return f"{normalize_timestamp(timestamp, tz)}_{str(email).strip()}"


def build_dedup_index(records: Mapping[str, Any], tz: ZoneInfo) -> Dict[str, str]:
    """Map request keys to remote ids.

    Records lacking a timestamp or an email are not indexed. When several
    records share a key, the first one visited keeps it: historical re-imports
    may have produced duplicates and the oldest mapping stays authoritative.
    """

    index: Dict[str, str] = {}
    shadowed = 0
    for record_id, record in records.items():
        if not isinstance(record, Mapping):
            continue
        timestamp = record.get("timestamp")
        email = record.get("email")
        if not timestamp or not email:
            continue
        key = request_key(timestamp, email, tz)
        if key in index:
            shadowed += 1
            continue
        index[key] = record_id
    if shadowed:
        LOGGER.info("%s remote records share a key with an earlier record; ignored", shadowed)
    return index
