from __future__ import annotations

from enum import IntEnum

from azure.core.exceptions import AzureError


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    AZURE_ERROR = 4
    RUNTIME_ERROR = 5


class InventoryError(Exception):
    """Base error for the report pipeline."""


class ConfigError(InventoryError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(InventoryError):
    """Raised when authentication or subscription selection cannot be resolved."""


class AzureClientError(InventoryError):
    """Raised when Azure SDK operations fail in a non-retriable way."""


class ExportError(InventoryError):
    """Raised when writing the report document fails."""


class MalformedIdError(InventoryError):
    """Raised when a resource id does not have the expected path depth."""

    def __init__(self, resource_id: str, offset: int) -> None:
        super().__init__(f"Resource id has no segment at offset {offset}: {resource_id!r}")
        self.resource_id = resource_id
        self.offset = offset


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, AzureClientError):
        return int(ExitCode.AZURE_ERROR)
    if isinstance(exc, (ExportError, MalformedIdError, InventoryError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def is_azure_error(exc: BaseException) -> bool:
    """
    Return True if the exception looks like an Azure SDK error.
    """
    if isinstance(exc, AzureError):
        return True
    module = exc.__class__.__module__
    return module.startswith("azure.") or module.startswith("msal")


def status_code_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def map_azure_error(exc: BaseException, context: str) -> AzureClientError | None:
    """
    Wrap Azure SDK errors with AzureClientError for consistent exit codes.
    """
    if not is_azure_error(exc):
        return None
    status = status_code_of(exc)
    suffix = f" (status {status})" if status is not None else ""
    return AzureClientError(f"{context}{suffix}: {exc}")
