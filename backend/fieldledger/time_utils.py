# Overview: Ledger timestamps are stored UTC-naive and rendered with a trailing Z.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def _as_utc_naive(dt: datetime) -> datetime:
    # Naive values are already UTC by convention
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return _as_utc_naive(datetime.now(timezone.utc))


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read a client-supplied ISO-8601 date or datetime into ledger time.

    Blank input gives None. Offsets (including "Z") are converted to UTC;
    values without an offset, and bare dates, are taken as UTC already.
    Malformed input raises ValueError for the schema layer to report.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return _as_utc_naive(dt).isoformat(timespec="seconds") + "Z"
