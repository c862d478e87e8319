from __future__ import annotations

import types

import pytest
from azure.core.exceptions import HttpResponseError

from azure_inventory.normalize.schema import resolve_output_paths
from azure_inventory.util.errors import (
    AuthResolutionError,
    AzureClientError,
    ConfigError,
    ExitCode,
    ExportError,
    MalformedIdError,
    as_exit_code,
    is_azure_error,
    map_azure_error,
)


class _ForeignSdkError(Exception):
    __module__ = "azure.mgmt.network.models"


@pytest.mark.parametrize(
    "exc,code",
    [
        (ConfigError("x"), ExitCode.CONFIG_ERROR),
        (ValueError("x"), ExitCode.CONFIG_ERROR),
        (AuthResolutionError("x"), ExitCode.AUTH_ERROR),
        (AzureClientError("x"), ExitCode.AZURE_ERROR),
        (ExportError("x"), ExitCode.RUNTIME_ERROR),
        (MalformedIdError("/a", 8), ExitCode.RUNTIME_ERROR),
        (RuntimeError("x"), 1),
    ],
)
def test_exit_codes(exc, code) -> None:
    assert as_exit_code(exc) == int(code)


def test_map_azure_error_includes_status() -> None:
    err = HttpResponseError(message="Forbidden")
    err.status_code = 403
    mapped = map_azure_error(err, "Azure SDK error while listing disks")
    assert isinstance(mapped, AzureClientError)
    assert str(mapped).startswith("Azure SDK error while listing disks (status 403)")


def test_map_azure_error_ignores_other_exceptions() -> None:
    assert map_azure_error(KeyError("x"), "ctx") is None
    assert is_azure_error(_ForeignSdkError("x")) is True


def test_output_paths_follow_customer_name(tmp_path) -> None:
    paths = resolve_output_paths(tmp_path, " Contoso/EU ")
    assert paths.report_docx == tmp_path / "Contoso_EU-Azure.docx"
    assert paths.run_log == tmp_path / "Contoso_EU-Azure.log"
