from __future__ import annotations

from pathlib import Path

import pytest

from azure_inventory.config import DEFAULT_BACKUP_JOB_DAYS, RunConfig, dump_config, load_run_config
from azure_inventory.util.errors import ConfigError

RUN = ["run", "--customer", "Contoso", "--report-path", "out"]


def test_defaults_for_run() -> None:
    command, cfg = load_run_config(argv=RUN)
    assert command == "run"
    assert isinstance(cfg, RunConfig)
    assert cfg.customer == "Contoso"
    assert cfg.report_path == Path("out")
    assert cfg.backup_job_days == DEFAULT_BACKUP_JOB_DAYS == 7
    assert cfg.skip_vaults is False
    assert cfg.progress is False
    assert cfg.tenant_id is None and cfg.subscription_id is None
    assert cfg.log_level == "INFO"


@pytest.mark.parametrize(
    "argv,message",
    [
        (["run", "--report-path", "out"], "--customer"),
        (["run", "--customer", "Contoso"], "--report-path"),
        (["run", "--customer", "   ", "--report-path", "out"], "--customer"),
    ],
)
def test_run_requires_customer_and_report_path(argv, message) -> None:
    with pytest.raises(ConfigError, match=message):
        load_run_config(argv=argv)


def test_other_commands_do_not_require_report_inputs() -> None:
    command, cfg = load_run_config(argv=["list-subscriptions", "--tenant", "t1"])
    assert command == "list-subscriptions"
    assert cfg.tenant_id == "t1"
    assert cfg.customer is None


def test_env_overrides_file_and_cli_overrides_env(tmp_path, monkeypatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "customer: FromFile\nreport-path: from-file\nbackup_job_days: 14\nskip_vaults: yes\n",
        encoding="utf-8",
    )
    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert (cfg.customer, cfg.report_path, cfg.backup_job_days, cfg.skip_vaults) == (
        "FromFile",
        Path("from-file"),
        14,
        True,
    )

    monkeypatch.setenv("AZ_INV_CUSTOMER", "FromEnv")
    monkeypatch.setenv("AZ_INV_BACKUP_JOB_DAYS", "3")
    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert (cfg.customer, cfg.backup_job_days) == ("FromEnv", 3)

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path), "--customer", "FromCli", "--no-skip-vaults"])
    assert cfg.customer == "FromCli"
    assert cfg.skip_vaults is False


def test_subscription_from_azure_env(monkeypatch) -> None:
    monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", "sub-env")
    monkeypatch.setenv("AZURE_TENANT_ID", "tenant-env")
    _, cfg = load_run_config(argv=RUN)
    assert (cfg.subscription_id, cfg.tenant_id) == ("sub-env", "tenant-env")
    _, cfg = load_run_config(argv=RUN + ["--subscription", "prod"])
    assert cfg.subscription_id == "prod"


def test_json_config_file(tmp_path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text('{"customer": "Json", "report_path": "r", "progress": true}', encoding="utf-8")
    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.customer == "Json"
    assert cfg.progress is True


def test_unknown_config_keys_warn(tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("customer: C\nreport_path: r\nworkers: 4\n", encoding="utf-8")
    with pytest.warns(UserWarning, match="workers"):
        load_run_config(argv=["run", "--config", str(cfg_path)])


@pytest.mark.parametrize(
    "content,name",
    [
        ("- a\n- b\n", "config.yaml"),
        ("customer: [unclosed\n", "config.yaml"),
        ("{not json", "config.json"),
        ("skip_vaults: maybe\n", "config.yaml"),
        ("backup_job_days: soon\n", "config.yaml"),
    ],
)
def test_bad_config_files_raise_config_error(tmp_path, content, name) -> None:
    cfg_path = tmp_path / name
    cfg_path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_run_config(argv=RUN + ["--config", str(cfg_path)])


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_run_config(argv=RUN + ["--config", str(tmp_path / "nope.yaml")])


def test_backup_job_days_must_be_positive() -> None:
    with pytest.raises(ConfigError):
        load_run_config(argv=RUN + ["--backup-job-days", "0"])


def test_dump_config_is_plain() -> None:
    _, cfg = load_run_config(argv=RUN + ["--log-level", "debug"])
    dumped = dump_config(cfg)
    assert dumped["report_path"] == "out"
    assert dumped["log_level"] == "DEBUG"
    assert dumped["started_at"]
