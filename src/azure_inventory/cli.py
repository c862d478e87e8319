from __future__ import annotations

import logging
import sys
from time import perf_counter
from typing import Any, Dict, List, Optional

from .auth.providers import AuthContext, AuthError, build_credential, list_subscriptions, resolve_auth
from .azure.discovery import AzureResourceSource
from .config import RunConfig, dump_config, load_run_config
from .export.word import DocxBackend
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .normalize.schema import resolve_output_paths
from .report import write_report
from .util.errors import AuthResolutionError, ConfigError, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _resolve_auth(cfg: RunConfig) -> AuthContext:
    try:
        return resolve_auth(cfg.tenant_id, cfg.subscription_id)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def cmd_run(cfg: RunConfig) -> int:
    if not cfg.customer or cfg.report_path is None:
        raise ConfigError("run requires a customer and a report path")
    timers = _StepTimers()
    started = perf_counter()

    # Authentication is fatal and happens before anything touches the disk.
    _log_event(LOG, logging.INFO, "Authenticating", step="auth", phase="start", timers=timers)
    try:
        ctx = _resolve_auth(cfg)
    except AuthResolutionError as e:
        _log_event(LOG, logging.ERROR, "Authentication failed", step="auth", phase="error", timers=timers, error=str(e))
        raise
    _log_event(
        LOG,
        logging.INFO,
        "Authenticated",
        step="auth",
        phase="complete",
        timers=timers,
        subscription_id=ctx.subscription_id,
        subscription_name=ctx.subscription_name,
    )

    paths = resolve_output_paths(cfg.report_path, cfg.customer)
    add_run_log_file(paths.run_log)
    _log_event(LOG, logging.INFO, "Run configuration", step="config", phase="loaded", config=dump_config(cfg))

    _log_event(
        LOG,
        logging.INFO,
        "Building report",
        step="report",
        phase="start",
        timers=timers,
        skip_vaults=cfg.skip_vaults,
        backup_job_days=cfg.backup_job_days,
    )
    source = AzureResourceSource(ctx)
    with RunProgress(enabled=cfg.progress) as progress:
        stats = write_report(
            source,
            paths.report_docx,
            DocxBackend(),
            customer=cfg.customer,
            subscription_name=ctx.subscription_name,
            skip_vaults=cfg.skip_vaults,
            backup_job_days=cfg.backup_job_days,
            progress=progress,
        )
    _log_event(
        LOG,
        logging.INFO,
        "Report written",
        step="report",
        phase="complete",
        timers=timers,
        path=str(paths.report_docx),
        tables=stats.tables,
        empty_parts=stats.empty_parts,
        fetch_errors=stats.fetch_errors,
    )

    elapsed = perf_counter() - started
    print(f"OK: report written to {paths.report_docx} in {elapsed:.1f}s")
    render_run_summary_table(
        enabled=cfg.progress,
        status="OK",
        metrics={
            "subscription": ctx.subscription_name or ctx.subscription_id,
            "tables": stats.tables,
            "empty_parts": stats.empty_parts,
            "fetch_errors": stats.fetch_errors,
            "elapsed_s": elapsed,
        },
        sections=stats.sections,
        output=str(paths.report_docx),
    )
    return 0


def cmd_validate_auth(cfg: RunConfig) -> int:
    ctx = _resolve_auth(cfg)
    LOG.info(
        "Authentication validated",
        extra={"subscription_id": ctx.subscription_id, "tenant_id": ctx.tenant_id},
    )
    label = f"{ctx.subscription_name} ({ctx.subscription_id})" if ctx.subscription_name else ctx.subscription_id
    print(f"OK: authentication validated; subscription: {label}")
    return 0


def cmd_list_subscriptions(cfg: RunConfig) -> int:
    try:
        subs: List[Dict[str, str]] = list_subscriptions(build_credential(cfg.tenant_id))
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e
    for sub in subs:
        print(f'{sub["id"]},{sub["name"]},{sub["state"]}')
    return 0


def _report_failure(exc: BaseException, code: int) -> None:
    print(f"ERROR: {exc}", file=sys.stderr)
    print(f"azure-inv aborted with exit code {code}.", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "run":
            code = cmd_run(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        elif command == "list-subscriptions":
            code = cmd_list_subscriptions(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head`; avoid logging after stdout is closed.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        code = as_exit_code(e)
        LOG.error("Execution failed", extra={"error": str(e)})
        _report_failure(e, code)
        sys.exit(code)


if __name__ == "__main__":
    main()
