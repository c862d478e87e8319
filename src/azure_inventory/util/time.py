from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_iso_utc(value: Any) -> Optional[datetime]:
    """
    Parse ARM timestamps ("2021-01-01T00:00:00.1234567Z") into aware UTC datetimes.
    Returns None for empty or unparseable values.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        raw = str(value or "").strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        # fromisoformat on older interpreters only accepts 3 or 6 fractional digits
        raw = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_date(value: Any, default: str = "-") -> str:
    dt = parse_iso_utc(value)
    return dt.strftime("%Y-%m-%d") if dt else default


def format_datetime(value: Any, default: str = "-") -> str:
    dt = parse_iso_utc(value)
    return dt.strftime("%Y-%m-%d %H:%M") if dt else default
