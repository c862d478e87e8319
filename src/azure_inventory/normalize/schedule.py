from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from ..util.time import parse_iso_utc
from .transform import MISSING, _get, joined

_TERM_RE = re.compile(r"^P(\d+)([A-Za-z])$")

TIERS = ("daily", "weekly", "monthly", "yearly")


def parse_term(term: Any) -> Optional[tuple[int, str]]:
    """
    Split an ISO-8601 style term code ("P1Y", "P3Y", "P6M") into (count, unit).
    Returns None for anything that does not match the code shape.
    """
    m = _TERM_RE.match(str(term or "").strip())
    if not m:
        return None
    return int(m.group(1)), m.group(2).upper()


def _add_years(start: date, years: int) -> date:
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        # Feb 29 anniversary in a non-leap year
        return start.replace(year=start.year + years, day=28)


def term_end_date(start: Any, term: Any) -> Optional[date]:
    """
    End date of a reservation/policy term.

    Only the years unit ("Y") is evaluated. Any other unit (e.g. "P6M") leaves the
    end date unset and returns None; this is a known limitation, not an error.
    """
    if isinstance(start, datetime):
        start_date: Optional[date] = start.date()
    elif isinstance(start, date):
        start_date = start
    else:
        parsed = parse_iso_utc(start)
        start_date = parsed.date() if parsed else None
    if start_date is None:
        return None
    parsed_term = parse_term(term)
    if parsed_term is None:
        return None
    count, unit = parsed_term
    if unit == "Y":
        return _add_years(start_date, count)
    return None


def _times(values: Any) -> str:
    out: List[str] = []
    for v in values or []:
        dt = parse_iso_utc(v)
        if dt is not None:
            out.append(dt.strftime("%H:%M"))
        elif v:
            out.append(str(v))
    return joined(out)


def _duration(retention_duration: Any) -> str:
    if not isinstance(retention_duration, Mapping):
        return MISSING
    count = retention_duration.get("count")
    unit = retention_duration.get("duration_type")
    if count is None:
        return MISSING
    return f"{count} {unit or ''}".strip()


def _weekly_format(weekly: Any) -> str:
    if not isinstance(weekly, Mapping):
        return ""
    weeks = joined(weekly.get("weeks_of_the_month") or [], default="")
    days = joined(weekly.get("days_of_the_week") or [], default="")
    return " ".join(p for p in (weeks, days) if p)


def _daily_format(daily: Any) -> str:
    if not isinstance(daily, Mapping):
        return ""
    out: List[str] = []
    for d in daily.get("days_of_the_month") or []:
        if not isinstance(d, Mapping):
            continue
        out.append("Last" if d.get("is_last") else str(d.get("date")))
    return joined(out, default="")


def _tier_detail(tier: str, schedule: Mapping[str, Any]) -> str:
    parts: List[str] = [f"keep {_duration(schedule.get('retention_duration'))}"]
    if tier == "weekly":
        days = joined(schedule.get("days_of_the_week") or [], default="")
        if days:
            parts.append(f"on {days}")
    elif tier in ("monthly", "yearly"):
        if tier == "yearly":
            months = joined(schedule.get("months_of_year") or [], default="")
            if months:
                parts.append(f"in {months}")
        fmt = str(schedule.get("retention_schedule_format_type") or "")
        if fmt == "Daily":
            days = _daily_format(schedule.get("retention_schedule_daily"))
            if days:
                parts.append(f"on day {days}")
        else:
            weekly = _weekly_format(schedule.get("retention_schedule_weekly"))
            if weekly:
                parts.append(f"on {weekly}")
    times = _times(schedule.get("retention_times"))
    if times != MISSING:
        parts.append(f"at {times}")
    return ", ".join(parts)


def describe_backup_retention(retention_policy: Any) -> str:
    """
    Render a backup retention policy as one line per cadence tier.

    Long-term policies list daily/weekly/monthly/yearly tiers; each tier is
    either "Disabled" or "Enabled" followed by the fields that apply to it.
    Simple retention policies only carry a single duration.
    """
    if not isinstance(retention_policy, Mapping) or not retention_policy:
        return MISSING
    if retention_policy.get("retention_policy_type") == "SimpleRetentionPolicy":
        return f"Keep {_duration(retention_policy.get('retention_duration'))}"
    lines: List[str] = []
    for tier in TIERS:
        schedule = retention_policy.get(f"{tier}_schedule")
        label = tier.capitalize()
        if isinstance(schedule, Mapping) and schedule:
            lines.append(f"{label}: Enabled, {_tier_detail(tier, schedule)}")
        else:
            lines.append(f"{label}: Disabled")
    return "\n".join(lines)


def describe_backup_schedule(schedule_policy: Any, time_zone: Any = None) -> str:
    if not isinstance(schedule_policy, Mapping) or not schedule_policy:
        return MISSING
    tz = f" {time_zone}" if time_zone else ""
    frequency = str(schedule_policy.get("schedule_run_frequency") or "")
    if frequency == "Hourly" or schedule_policy.get("hourly_schedule"):
        hourly = schedule_policy.get("hourly_schedule") or {}
        interval = hourly.get("interval")
        start = _times([hourly.get("schedule_window_start_time")])
        window = hourly.get("schedule_window_duration")
        return f"Hourly every {interval}h from {start}{tz} for {window}h"
    if frequency == "Weekly":
        days = joined(
            schedule_policy.get("schedule_run_days") or _get(schedule_policy, "weekly_schedule", "schedule_run_days") or []
        )
        times = _times(
            schedule_policy.get("schedule_run_times") or _get(schedule_policy, "weekly_schedule", "schedule_run_times")
        )
        return f"Weekly on {days} at {times}{tz}"
    times = _times(
        schedule_policy.get("schedule_run_times") or _get(schedule_policy, "daily_schedule", "schedule_run_times")
    )
    label = frequency or "Daily"
    return f"{label} at {times}{tz}"


def _frequency_line(label: str, minutes: Any) -> str:
    if minutes in (None, ""):
        return f"{label}: {MISSING}"
    try:
        value = int(minutes)
    except (TypeError, ValueError):
        return f"{label}: {minutes}"
    if value <= 0:
        return f"{label}: Disabled"
    return f"{label}: every {value} minutes"


def describe_replication_retention(provider_details: Any) -> str:
    """
    Render an ASR replication policy's recovery point retention and snapshot cadence.
    """
    if not isinstance(provider_details, Mapping) or not provider_details:
        return MISSING
    d: Dict[str, Any] = dict(provider_details)
    lines: List[str] = []
    history = d.get("recovery_point_history")
    if history is None:
        history = d.get("recovery_point_history_in_minutes")
    if history is not None:
        try:
            minutes = int(history)
            if minutes and minutes % 60 == 0:
                lines.append(f"Recovery point retention: {minutes // 60} hours")
            else:
                lines.append(f"Recovery point retention: {minutes} minutes")
        except (TypeError, ValueError):
            lines.append(f"Recovery point retention: {history}")
    app = d.get("app_consistent_frequency_in_minutes")
    if app is None and d.get("application_consistent_snapshot_frequency_in_hours") is not None:
        app = int(d["application_consistent_snapshot_frequency_in_hours"]) * 60
    lines.append(_frequency_line("App-consistent snapshots", app))
    crash = d.get("crash_consistent_frequency_in_minutes")
    if crash is not None:
        lines.append(_frequency_line("Crash-consistent snapshots", crash))
    sync = d.get("multi_vm_sync_status")
    if sync:
        lines.append(f"Multi-VM sync: {sync}")
    return "\n".join(lines)
