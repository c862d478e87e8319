from __future__ import annotations

from typing import Any, Callable, Dict, Tuple

from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.keyvault import KeyVaultManagementClient
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.recoveryservices import RecoveryServicesClient
from azure.mgmt.recoveryservicesbackup import RecoveryServicesBackupClient
from azure.mgmt.recoveryservicessiterecovery import SiteRecoveryManagementClient
from azure.mgmt.reservations import AzureReservationAPI
from azure.mgmt.resource import ResourceManagementClient

from ..auth.providers import AuthContext

_CLIENT_CACHE: Dict[Tuple[str, ...], Any] = {}


def clear_client_cache() -> None:
    _CLIENT_CACHE.clear()


def _cached(key: Tuple[str, ...], factory: Callable[[], Any]) -> Any:
    client = _CLIENT_CACHE.get(key)
    if client is None:
        client = factory()
        _CLIENT_CACHE[key] = client
    return client


def get_resource_client(ctx: AuthContext) -> Any:
    return _cached(
        ("resource", ctx.subscription_id),
        lambda: ResourceManagementClient(ctx.credential, ctx.subscription_id),
    )


def get_compute_client(ctx: AuthContext) -> Any:
    return _cached(
        ("compute", ctx.subscription_id),
        lambda: ComputeManagementClient(ctx.credential, ctx.subscription_id),
    )


def get_network_client(ctx: AuthContext) -> Any:
    return _cached(
        ("network", ctx.subscription_id),
        lambda: NetworkManagementClient(ctx.credential, ctx.subscription_id),
    )


def get_reservation_client(ctx: AuthContext) -> Any:
    """
    Reservation orders live at tenant scope; the client takes no subscription.
    """
    return _cached(("reservations",), lambda: AzureReservationAPI(ctx.credential))


def get_recovery_services_client(ctx: AuthContext) -> Any:
    return _cached(
        ("recoveryservices", ctx.subscription_id),
        lambda: RecoveryServicesClient(ctx.credential, ctx.subscription_id),
    )


def get_backup_client(ctx: AuthContext) -> Any:
    return _cached(
        ("backup", ctx.subscription_id),
        lambda: RecoveryServicesBackupClient(ctx.credential, ctx.subscription_id),
    )


def get_site_recovery_client(ctx: AuthContext, resource_group: str, vault_name: str) -> Any:
    """
    Site Recovery clients are bound to a single vault.
    """
    return _cached(
        ("siterecovery", ctx.subscription_id, resource_group.lower(), vault_name.lower()),
        lambda: SiteRecoveryManagementClient(ctx.credential, ctx.subscription_id, resource_group, vault_name),
    )


def get_key_vault_client(ctx: AuthContext) -> Any:
    return _cached(
        ("keyvault", ctx.subscription_id),
        lambda: KeyVaultManagementClient(ctx.credential, ctx.subscription_id),
    )
