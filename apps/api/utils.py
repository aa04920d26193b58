from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser


def parse_any_date(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp or a date filter into a naive UTC datetime.

    Accepts datetimes (Firestore returns DatetimeWithNanoseconds), ISO-8601
    strings with or without a trailing Z, and plain dates such as 2024-05-01.
    Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parser.isoparse(str(value).strip())
        except (ValueError, OverflowError):
            try:
                parsed = parser.parse(str(value))
            except (ValueError, OverflowError):
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_stored_iso(dt: datetime) -> str:
    """Naive UTC datetime as the fixed-width ISO string stored in Firestore."""
    return dt.isoformat(timespec="milliseconds") + "Z"


def utcnow_iso() -> str:
    return to_stored_iso(utcnow())


def new_doc_id() -> str:
    return uuid.uuid4().hex
