from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Sequence

from ..util.time import format_datetime, parse_iso_utc
from . import resource_id as rid
from .schedule import describe_backup_retention, describe_backup_schedule, describe_replication_retention
from .schema import (
    BackupItemRecord,
    BackupJobRecord,
    BackupPolicyRecord,
    RecoveryVaultRecord,
    ReplicationItemRecord,
    ReplicationPolicyRecord,
)
from .transform import MISSING, _get, text

FAILED_JOB_STATUS = "Failed"

_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>[\d.]+)S)?)?$"
)


def _props(raw: Mapping[str, Any]) -> Dict[str, Any]:
    props = raw.get("properties")
    return dict(props) if isinstance(props, Mapping) else {}


def format_duration(value: Any) -> str:
    """
    Render a job duration (timedelta or ISO-8601 "PT1H2M3S") as H:MM:SS.
    """
    if isinstance(value, timedelta):
        total = int(value.total_seconds())
    else:
        m = _ISO_DURATION_RE.match(str(value or "").strip())
        if not m or not any(m.groupdict().values()):
            return MISSING
        total = int(
            int(m.group("days") or 0) * 86400
            + int(m.group("hours") or 0) * 3600
            + int(m.group("minutes") or 0) * 60
            + float(m.group("seconds") or 0)
        )
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def normalize_vault(vault: Dict[str, Any]) -> RecoveryVaultRecord:
    return RecoveryVaultRecord(
        name=text(vault.get("name")),
        resource_group=rid.name_or_default(vault.get("id"), rid.RESOURCE_GROUP),
        location=text(vault.get("location")),
        sku=text(_get(vault, "sku", "name")),
    )


def normalize_backup_job(vault_name: str, job: Dict[str, Any]) -> BackupJobRecord:
    props = _props(job)
    return BackupJobRecord(
        vault=vault_name,
        item=text(props.get("entity_friendly_name")),
        operation=text(props.get("operation")),
        status=text(props.get("status")),
        start_time=format_datetime(props.get("start_time")),
        duration=format_duration(props.get("duration")),
    )


def count_failed_jobs(jobs: Sequence[Mapping[str, str]]) -> int:
    return sum(1 for j in jobs if j.get("status") == FAILED_JOB_STATUS)


def failed_jobs_narrative(rows: Sequence[Mapping[str, str]], days: int) -> str:
    failed = count_failed_jobs(rows)
    if failed == 0:
        return f"No backup jobs failed in the last {days} days."
    noun = "backup" if failed == 1 else "backups"
    return f"{failed} {noun} failed in the last {days} days."


def normalize_backup_policy(vault_name: str, policy: Dict[str, Any]) -> BackupPolicyRecord:
    props = _props(policy)
    schedule = props.get("schedule_policy")
    retention = props.get("retention_policy")
    if not schedule and not retention:
        # workload policies (SQL/SAP HANA) nest the full-backup policy
        for sub in props.get("sub_protection_policy") or []:
            if isinstance(sub, Mapping) and sub.get("policy_type") == "Full":
                schedule = sub.get("schedule_policy")
                retention = sub.get("retention_policy")
                break
    return BackupPolicyRecord(
        vault=vault_name,
        name=text(policy.get("name")),
        management_type=text(props.get("backup_management_type")),
        schedule=describe_backup_schedule(schedule, props.get("time_zone")),
        retention=describe_backup_retention(retention),
    )


def _latest_point(points: Sequence[Mapping[str, Any]]) -> str:
    latest = None
    for point in points:
        dt = parse_iso_utc(_props(point).get("recovery_point_time"))
        if dt is not None and (latest is None or dt > latest):
            latest = dt
    return latest.strftime("%Y-%m-%d %H:%M") if latest else MISSING


def protected_item_path(item: Mapping[str, Any]) -> Optional[tuple[str, str, str]]:
    """
    (fabric, container, item) names from a protected item id, or None when the
    item carries no id. An id too short to be a protected-item path raises
    MalformedIdError, which the report renders in place of the whole table.
    """
    item_id = str(item.get("id") or "")
    if not item_id:
        return None
    parsed = rid.ResourceId(item_id)
    return parsed.backup_fabric, parsed.protection_container, parsed.protected_item


def normalize_backup_item(
    vault_name: str,
    item: Dict[str, Any],
    recovery_points: Sequence[Mapping[str, Any]],
) -> BackupItemRecord:
    props = _props(item)
    policy = props.get("policy_name") or rid.name_or_default(props.get("policy_id"), rid.CHILD_NAME)
    return BackupItemRecord(
        vault=vault_name,
        item=text(props.get("friendly_name") or item.get("name")),
        workload=text(props.get("workload_type")),
        policy=text(policy),
        last_backup_status=text(props.get("last_backup_status")),
        last_backup_time=format_datetime(props.get("last_backup_time")),
        latest_recovery_point=_latest_point(recovery_points),
        recovery_points=str(len(recovery_points)),
    )


def normalize_replication_item(
    vault_name: str,
    item: Dict[str, Any],
    recovery_points: Sequence[Mapping[str, Any]],
) -> ReplicationItemRecord:
    props = _props(item)
    return ReplicationItemRecord(
        vault=vault_name,
        item=text(props.get("friendly_name") or item.get("name")),
        source=text(props.get("primary_fabric_friendly_name")),
        target=text(props.get("recovery_fabric_friendly_name")),
        health=text(props.get("replication_health")),
        state=text(props.get("protection_state_description") or props.get("protection_state")),
        policy=text(props.get("policy_friendly_name")),
        latest_recovery_point=_latest_point(recovery_points),
        recovery_points=str(len(recovery_points)),
    )


def normalize_replication_policy(vault_name: str, policy: Dict[str, Any]) -> ReplicationPolicyRecord:
    props = _props(policy)
    details = props.get("provider_specific_details") or {}
    return ReplicationPolicyRecord(
        vault=vault_name,
        name=text(props.get("friendly_name") or policy.get("name")),
        provider=text(details.get("instance_type") if isinstance(details, Mapping) else None),
        retention=describe_replication_retention(details),
    )