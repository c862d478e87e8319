from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from ..auth.providers import AuthContext
from ..util.errors import map_azure_error
from ..util.serialization import model_to_dict
from .clients import (
    get_backup_client,
    get_compute_client,
    get_key_vault_client,
    get_network_client,
    get_recovery_services_client,
    get_reservation_client,
    get_resource_client,
    get_site_recovery_client,
)

# Backup job filters use the service's own timestamp format.
BACKUP_JOB_TIME_FORMAT = "%Y-%m-%d %I:%M:%S %p"

Raw = Dict[str, Any]


class ResourceSource(Protocol):
    """
    Read-only listing surface the report builder consumes. Every method returns
    plain dicts; an empty list is a normal answer.
    """

    subscription_id: str

    def list_resource_groups(self) -> List[Raw]: ...
    def list_virtual_machines(self) -> List[Raw]: ...
    def get_virtual_machine_instance_view(self, resource_group: str, name: str) -> Raw: ...
    def list_disks(self) -> List[Raw]: ...
    def list_reservation_orders(self) -> List[Raw]: ...
    def list_reservations(self, order_id: str) -> List[Raw]: ...
    def list_network_interfaces(self) -> List[Raw]: ...
    def get_network_interface(self, resource_group: str, name: str) -> Raw: ...
    def list_network_security_groups(self) -> List[Raw]: ...
    def list_virtual_networks(self) -> List[Raw]: ...
    def list_public_ips(self) -> List[Raw]: ...
    def list_gateway_connections(self) -> List[Raw]: ...
    def list_local_network_gateways(self) -> List[Raw]: ...
    def list_nat_gateways(self) -> List[Raw]: ...
    def list_bastions(self) -> List[Raw]: ...
    def list_firewalls(self) -> List[Raw]: ...
    def list_firewall_policies(self) -> List[Raw]: ...
    def list_rule_collection_groups(self, resource_group: str, policy_name: str) -> List[Raw]: ...
    def list_ip_groups(self) -> List[Raw]: ...
    def list_load_balancers(self) -> List[Raw]: ...
    def list_recovery_vaults(self) -> List[Raw]: ...
    def list_backup_jobs(self, resource_group: str, vault_name: str, since: datetime) -> List[Raw]: ...
    def list_backup_policies(self, resource_group: str, vault_name: str) -> List[Raw]: ...
    def list_backup_protected_items(self, resource_group: str, vault_name: str) -> List[Raw]: ...
    def list_backup_recovery_points(
        self, resource_group: str, vault_name: str, fabric: str, container: str, item: str
    ) -> List[Raw]: ...
    def list_replication_fabrics(self, resource_group: str, vault_name: str) -> List[Raw]: ...
    def list_replication_containers(self, resource_group: str, vault_name: str, fabric: str) -> List[Raw]: ...
    def list_replication_protected_items(
        self, resource_group: str, vault_name: str, fabric: str, container: str
    ) -> List[Raw]: ...
    def list_replication_recovery_points(
        self, resource_group: str, vault_name: str, fabric: str, container: str, item: str
    ) -> List[Raw]: ...
    def list_replication_policies(self, resource_group: str, vault_name: str) -> List[Raw]: ...
    def list_key_vaults(self) -> List[Raw]: ...


def _collect(context: str, call: Callable[[], Iterable[Any]]) -> List[Raw]:
    """
    Drain an SDK pager into dicts. Pagers are lazy, so iteration stays inside
    the error mapping.
    """
    try:
        return [model_to_dict(item) for item in call() or []]
    except Exception as e:
        mapped = map_azure_error(e, context)
        if mapped:
            raise mapped from e
        raise


def _fetch_one(context: str, call: Callable[[], Any]) -> Raw:
    try:
        return model_to_dict(call())
    except Exception as e:
        mapped = map_azure_error(e, context)
        if mapped:
            raise mapped from e
        raise


def backup_job_filter(since: datetime, until: Optional[datetime] = None) -> str:
    end = until or datetime.now(timezone.utc)
    return (
        f"startTime eq '{since.strftime(BACKUP_JOB_TIME_FORMAT)}' "
        f"and endTime eq '{end.strftime(BACKUP_JOB_TIME_FORMAT)}'"
    )


def job_window_start(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


class AzureResourceSource:
    """
    Azure Resource Manager implementation of ResourceSource for one subscription.
    Failures surface as AzureClientError so callers can degrade per section.
    """

    def __init__(self, ctx: AuthContext) -> None:
        self.ctx = ctx
        self.subscription_id = ctx.subscription_id

    # Resource groups

    def list_resource_groups(self) -> List[Raw]:
        client = get_resource_client(self.ctx)
        return _collect("Azure SDK error while listing resource groups", client.resource_groups.list)

    # Compute

    def list_virtual_machines(self) -> List[Raw]:
        client = get_compute_client(self.ctx)
        return _collect("Azure SDK error while listing virtual machines", client.virtual_machines.list_all)

    def get_virtual_machine_instance_view(self, resource_group: str, name: str) -> Raw:
        client = get_compute_client(self.ctx)
        return _fetch_one(
            f"Azure SDK error while reading instance view of {name}",
            lambda: client.virtual_machines.instance_view(resource_group, name),
        )

    def list_disks(self) -> List[Raw]:
        client = get_compute_client(self.ctx)
        return _collect("Azure SDK error while listing disks", client.disks.list)

    def list_reservation_orders(self) -> List[Raw]:
        client = get_reservation_client(self.ctx)
        return _collect("Azure SDK error while listing reservation orders", client.reservation_order.list)

    def list_reservations(self, order_id: str) -> List[Raw]:
        client = get_reservation_client(self.ctx)
        return _collect(
            f"Azure SDK error while listing reservations of order {order_id}",
            lambda: client.reservation.list(order_id),
        )

    # Network

    def list_network_interfaces(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing network interfaces", client.network_interfaces.list_all)

    def get_network_interface(self, resource_group: str, name: str) -> Raw:
        client = get_network_client(self.ctx)
        return _fetch_one(
            f"Azure SDK error while reading network interface {name}",
            lambda: client.network_interfaces.get(resource_group, name),
        )

    def list_network_security_groups(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect(
            "Azure SDK error while listing network security groups", client.network_security_groups.list_all
        )

    def list_virtual_networks(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing virtual networks", client.virtual_networks.list_all)

    def list_public_ips(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing public IP addresses", client.public_ip_addresses.list_all)

    def _per_resource_group(self, context: str, lister: Callable[[str], Iterable[Any]]) -> List[Raw]:
        out: List[Raw] = []
        for group in self.list_resource_groups():
            name = str(group.get("name") or "")
            if name:
                out.extend(_collect(f"{context} in {name}", lambda: lister(name)))
        return out

    def list_gateway_connections(self) -> List[Raw]:
        # connections have no subscription-wide list operation
        client = get_network_client(self.ctx)
        return self._per_resource_group(
            "Azure SDK error while listing gateway connections",
            client.virtual_network_gateway_connections.list,
        )

    def list_local_network_gateways(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return self._per_resource_group(
            "Azure SDK error while listing local network gateways",
            client.local_network_gateways.list,
        )

    def list_nat_gateways(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing NAT gateways", client.nat_gateways.list_all)

    def list_bastions(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing bastion hosts", client.bastion_hosts.list)

    def list_firewalls(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing firewalls", client.azure_firewalls.list_all)

    def list_firewall_policies(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing firewall policies", client.firewall_policies.list_all)

    def list_rule_collection_groups(self, resource_group: str, policy_name: str) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect(
            f"Azure SDK error while listing rule collection groups of {policy_name}",
            lambda: client.firewall_policy_rule_collection_groups.list(resource_group, policy_name),
        )

    def list_ip_groups(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing IP groups", client.ip_groups.list)

    def list_load_balancers(self) -> List[Raw]:
        client = get_network_client(self.ctx)
        return _collect("Azure SDK error while listing load balancers", client.load_balancers.list_all)

    # Recovery Services

    def list_recovery_vaults(self) -> List[Raw]:
        client = get_recovery_services_client(self.ctx)
        return _collect(
            "Azure SDK error while listing Recovery Services vaults", client.vaults.list_by_subscription_id
        )

    def list_backup_jobs(self, resource_group: str, vault_name: str, since: datetime) -> List[Raw]:
        client = get_backup_client(self.ctx)
        flt = backup_job_filter(since)
        return _collect(
            f"Azure SDK error while listing backup jobs of {vault_name}",
            lambda: client.backup_jobs.list(vault_name, resource_group, filter=flt),
        )

    def list_backup_policies(self, resource_group: str, vault_name: str) -> List[Raw]:
        client = get_backup_client(self.ctx)
        return _collect(
            f"Azure SDK error while listing backup policies of {vault_name}",
            lambda: client.backup_policies.list(vault_name, resource_group),
        )

    def list_backup_protected_items(self, resource_group: str, vault_name: str) -> List[Raw]:
        client = get_backup_client(self.ctx)
        return _collect(
            f"Azure SDK error while listing protected items of {vault_name}",
            lambda: client.backup_protected_items.list(vault_name, resource_group),
        )

    def list_backup_recovery_points(
        self, resource_group: str, vault_name: str, fabric: str, container: str, item: str
    ) -> List[Raw]:
        client = get_backup_client(self.ctx)
        return _collect(
            f"Azure SDK error while listing recovery points of {item}",
            lambda: client.recovery_points.list(vault_name, resource_group, fabric, container, item),
        )

    def list_replication_fabrics(self, resource_group: str, vault_name: str) -> List[Raw]:
        client = get_site_recovery_client(self.ctx, resource_group, vault_name)
        return _collect(
            f"Azure SDK error while listing replication fabrics of {vault_name}",
            client.replication_fabrics.list,
        )

    def list_replication_containers(self, resource_group: str, vault_name: str, fabric: str) -> List[Raw]:
        client = get_site_recovery_client(self.ctx, resource_group, vault_name)
        return _collect(
            f"Azure SDK error while listing protection containers of fabric {fabric}",
            lambda: client.replication_protection_containers.list_by_replication_fabrics(fabric),
        )

    def list_replication_protected_items(
        self, resource_group: str, vault_name: str, fabric: str, container: str
    ) -> List[Raw]:
        client = get_site_recovery_client(self.ctx, resource_group, vault_name)
        return _collect(
            f"Azure SDK error while listing replicated items of container {container}",
            lambda: client.replication_protected_items.list_by_replication_protection_containers(fabric, container),
        )

    def list_replication_recovery_points(
        self, resource_group: str, vault_name: str, fabric: str, container: str, item: str
    ) -> List[Raw]:
        client = get_site_recovery_client(self.ctx, resource_group, vault_name)
        return _collect(
            f"Azure SDK error while listing recovery points of replicated item {item}",
            lambda: client.recovery_points.list_by_replication_protected_items(fabric, container, item),
        )

    def list_replication_policies(self, resource_group: str, vault_name: str) -> List[Raw]:
        client = get_site_recovery_client(self.ctx, resource_group, vault_name)
        return _collect(
            f"Azure SDK error while listing replication policies of {vault_name}",
            client.replication_policies.list,
        )

    # Key Vault

    def list_key_vaults(self) -> List[Raw]:
        client = get_key_vault_client(self.ctx)
        return _collect("Azure SDK error while listing key vaults", client.vaults.list_by_subscription)
