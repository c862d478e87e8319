from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_BACKUP_JOB_DAYS = 7
COMMANDS = ("run", "validate-auth", "list-subscriptions")
ALLOWED_CONFIG_KEYS = {
    "customer",
    "report_path",
    "tenant_id",
    "subscription_id",
    "skip_vaults",
    "backup_job_days",
    "progress",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"skip_vaults", "progress", "json_logs"}
INT_CONFIG_KEYS = {"backup_job_days"}
STR_CONFIG_KEYS = {"customer", "report_path", "tenant_id", "subscription_id", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Report
    customer: Optional[str] = None
    report_path: Optional[Path] = None
    skip_vaults: bool = False
    backup_job_days: int = DEFAULT_BACKUP_JOB_DAYS

    # Identity
    tenant_id: Optional[str] = None
    subscription_id: Optional[str] = None

    # Console
    progress: bool = False
    json_logs: bool = False
    log_level: str = "INFO"

    # Internal/derived
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds"))


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            # YAML is a superset of JSON
            data = yaml.safe_load(text) or {}
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_bool(name: str) -> Optional[bool]:
    raw = _env_str(name)
    if raw is None:
        return None
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        warnings.warn(f"Ignoring non-integer {name}={raw!r}")
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise ConfigError(f"Config field '{key}' must be an integer")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    # accept kebab-case keys as written on the command line
    data = {str(k).replace("-", "_"): v for k, v in data.items()}
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, (str, int)):
                raise ConfigError(f"Config field '{key}' must be a string")
            normalized[key] = str(value)
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="azure-inv",
        description="Document an Azure subscription as a Word report",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--tenant", dest="tenant_id", default=None, help="Azure AD tenant id")
        p.add_argument(
            "--subscription",
            dest="subscription_id",
            default=None,
            help="Subscription id or name (default: first enabled subscription)",
        )

    p_run = subparsers.add_parser("run", help="Inventory the subscription and write the report")
    add_common(p_run)
    p_run.add_argument("--customer", default=None, help="Customer name for the title and file name")
    p_run.add_argument("--report-path", type=Path, default=None, help="Directory for <customer>-Azure.docx")
    p_run.add_argument(
        "--skip-vaults",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Do not inventory backup and replication vaults",
    )
    p_run.add_argument(
        "--backup-job-days",
        type=int,
        default=None,
        help=f"Backup job lookback window in days (default {DEFAULT_BACKUP_JOB_DAYS})",
    )
    p_run.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar and a run summary table",
    )

    p_val = subparsers.add_parser("validate-auth", help="Authenticate and show the selected subscription")
    add_common(p_val)

    p_ls = subparsers.add_parser("list-subscriptions", help="List subscriptions visible to the identity")
    add_common(p_ls)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of run|validate-auth|list-subscriptions
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "customer": None,
        "report_path": None,
        "tenant_id": None,
        "subscription_id": None,
        "skip_vaults": False,
        "backup_job_days": DEFAULT_BACKUP_JOB_DAYS,
        "progress": False,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "customer": _env_str("AZ_INV_CUSTOMER"),
            "report_path": _env_str("AZ_INV_REPORT_PATH"),
            "tenant_id": _env_str("AZURE_TENANT_ID"),
            "subscription_id": _env_str("AZURE_SUBSCRIPTION_ID"),
            "skip_vaults": _env_bool("AZ_INV_SKIP_VAULTS"),
            "backup_job_days": _env_int("AZ_INV_BACKUP_JOB_DAYS"),
            "progress": _env_bool("AZ_INV_PROGRESS"),
            "json_logs": _env_bool("AZ_INV_JSON_LOGS"),
            "log_level": _env_str("AZ_INV_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict({key: getattr(ns, key, None) for key in ALLOWED_CONFIG_KEYS})

    merged = {**base, **file_cfg, **env_cfg, **cli_cfg}

    backup_job_days = int(merged["backup_job_days"])
    if backup_job_days < 1:
        raise ConfigError("backup_job_days must be at least 1")

    customer = str(merged["customer"]).strip() if merged.get("customer") else None
    report_path = Path(merged["report_path"]) if merged.get("report_path") else None
    if command == "run":
        if not customer:
            raise ConfigError("--customer is required for run")
        if report_path is None:
            raise ConfigError("--report-path is required for run")

    cfg = RunConfig(
        customer=customer,
        report_path=report_path,
        skip_vaults=bool(merged["skip_vaults"]),
        backup_job_days=backup_job_days,
        tenant_id=str(merged["tenant_id"]) if merged.get("tenant_id") else None,
        subscription_id=str(merged["subscription_id"]) if merged.get("subscription_id") else None,
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "customer": cfg.customer,
        "report_path": str(cfg.report_path) if cfg.report_path else None,
        "tenant_id": cfg.tenant_id,
        "subscription_id": cfg.subscription_id,
        "skip_vaults": cfg.skip_vaults,
        "backup_job_days": cfg.backup_job_days,
        "progress": cfg.progress,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "started_at": cfg.started_at,
    }
