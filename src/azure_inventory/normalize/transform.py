from __future__ import annotations

from dataclasses import fields, is_dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .schema import Row

MISSING = "-"
BYTES_PER_DISPLAY_GB = 1_048_576


def _get(d: Mapping[str, Any], *keys: str) -> Any:
    """
    Walk a nested dict path; returns None as soon as a level is missing.
    """
    cur: Any = d
    for k in keys:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(k)
        if cur is None:
            return None
    return cur


def text(value: Any, default: str = MISSING) -> str:
    if value is None:
        return default
    if isinstance(value, bool):
        return "Yes" if value else "No"
    s = str(value).strip()
    return s if s else default


def joined(values: Iterable[Any], default: str = MISSING, sep: str = ", ") -> str:
    items = [str(v).strip() for v in values or [] if v is not None and str(v).strip()]
    return sep.join(items) if items else default


def first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], Mapping):
        return dict(items[0])
    return {}


def bytes_to_display_gb(value: Any) -> str:
    """
    Convert a byte counter for display: round-half-up(bytes / 1,048,576).

    The divisor yields MiB; the column is labelled "GB" by convention, so the
    figure is an approximation rather than a true GB/GiB value.
    """
    try:
        raw = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        return MISSING
    if not raw.is_finite():
        return MISSING
    return str(int((raw / Decimal(BYTES_PER_DISPLAY_GB)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def to_row(record: Any) -> Row:
    """
    Project a per-kind record dataclass into an ordered column -> display string mapping.
    """
    if not is_dataclass(record):
        raise TypeError(f"Expected a record dataclass, got {type(record).__name__}")
    return {f.name: str(getattr(record, f.name)) for f in fields(record)}


def sort_rows(rows: Sequence[Row], sort_by: Sequence[str]) -> List[Row]:
    """
    Deterministic ordering by the given columns (case-insensitive, numbers numerically).
    """
    if not sort_by:
        return list(rows)

    def _cell(value: str) -> tuple[int, Any]:
        try:
            return (0, int(value))
        except (TypeError, ValueError):
            return (1, (value or "").casefold())

    return sorted(rows, key=lambda r: tuple(_cell(r.get(c, "")) for c in sort_by))
