from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .azure.discovery import ResourceSource, job_window_start
from .export.document import DocumentAssembler
from .export.tables import TableRenderer
from .normalize import resource_id as rid
from .normalize.compute import (
    first_private_ip,
    normalize_disk,
    normalize_network_interface,
    normalize_reservation,
    normalize_virtual_machine,
    vm_by_nic_index,
)
from .normalize.network import (
    normalize_bastion,
    normalize_gateway_connection,
    normalize_lb_backends,
    normalize_lb_frontends,
    normalize_lb_probes,
    normalize_lb_rules,
    normalize_load_balancer,
    normalize_local_gateway,
    normalize_nat_gateway,
    normalize_public_ip,
    normalize_virtual_network,
    normalize_virtual_network_peerings,
)
from .normalize.recovery import (
    failed_jobs_narrative,
    normalize_backup_item,
    normalize_backup_job,
    normalize_backup_policy,
    normalize_replication_item,
    normalize_replication_policy,
    normalize_vault,
    protected_item_path,
)
from .normalize.schema import (
    BackupItemRecord,
    BackupJobRecord,
    BackupPolicyRecord,
    BastionRecord,
    DiskRecord,
    FirewallRecord,
    FirewallRuleRecord,
    GatewayConnectionRecord,
    IpGroupRecord,
    KeyVaultRecord,
    LoadBalancerBackendRecord,
    LoadBalancerFrontendRecord,
    LoadBalancerProbeRecord,
    LoadBalancerRecord,
    LoadBalancerRuleRecord,
    LocalGatewayRecord,
    NatGatewayRecord,
    NetworkInterfaceRecord,
    PublicIpRecord,
    RecoveryVaultRecord,
    ReplicationItemRecord,
    ReplicationPolicyRecord,
    ReservationRecord,
    Row,
    SecurityGroupRecord,
    SecurityRuleRecord,
    TableSpec,
    VirtualMachineRecord,
    VirtualNetworkPeeringRecord,
    VirtualNetworkSubnetRecord,
)
from .normalize.security import (
    ip_group_index,
    normalize_firewall,
    normalize_firewall_rules,
    normalize_ip_group,
    normalize_key_vault,
    normalize_security_group,
    normalize_security_rule,
)
from .normalize.transform import sort_rows, to_row
from .normalize.xref import CrossReferenceIndex
from .util.errors import AzureClientError, MalformedIdError
from .util.rich_progress import NullProgress, ProgressObserver

LOG = logging.getLogger(__name__)

NO_DATA_TEXT = "No {subject} were found in this subscription."
MALFORMED_ID_TEXT = "{subject} could not be documented because a resource identifier had an unexpected format."
SKIPPED_VAULTS_TEXT = "Recovery Services vaults were not inventoried for this report."
DEFAULT_BACKUP_JOB_DAYS = 7

Raw = Dict[str, Any]
Records = Sequence[Any]


def table_spec(record_type: type, headers: Sequence[str], sort_by: Sequence[str] = ()) -> TableSpec:
    """
    Column keys come from the record's fields, so every row of the table shares
    the same key set by construction.
    """
    columns = tuple(f.name for f in fields(record_type))
    return TableSpec(columns=columns, headers=tuple(headers), sort_by=tuple(sort_by))


@dataclass
class ReportStats:
    sections: List[str] = field(default_factory=list)
    tables: int = 0
    rows: int = 0
    empty_parts: int = 0
    fetch_errors: int = 0
    malformed_parts: int = 0


class SectionContext:
    """
    Scratch state owned by one section: memoized collections, lookup indices
    and the progress hook. Discarded when the section is done.

    A listing that fails with an Azure error is logged and treated as empty so
    one missing permission or unregistered provider never aborts the run.
    """

    def __init__(
        self,
        source: ResourceSource,
        section: str,
        *,
        progress: ProgressObserver,
        stats: ReportStats,
        backup_job_days: int = DEFAULT_BACKUP_JOB_DAYS,
    ) -> None:
        self.source = source
        self.section = section
        self.backup_job_days = backup_job_days
        self._progress = progress
        self._stats = stats
        self._collections: Dict[str, Any] = {}
        self._indices: Dict[str, CrossReferenceIndex] = {}

    def fetch(self, key: str, loader: Callable[[], Any], *, empty: Callable[[], Any] = list) -> Any:
        if key in self._collections:
            return self._collections[key]
        try:
            value = loader()
        except AzureClientError as e:
            LOG.warning(
                "Listing failed, treating as empty",
                extra={"step": "section", "phase": "fetch", "section": self.section, "key": key, "error": str(e)},
            )
            self._stats.fetch_errors += 1
            value = empty()
        self._collections[key] = value
        return value

    def index(self, key: str, builder: Callable[[], CrossReferenceIndex]) -> CrossReferenceIndex:
        if key not in self._indices:
            self._indices[key] = builder()
        return self._indices[key]

    def progress(self, current: int, total: int) -> None:
        self._progress.on_progress(self.section, current, total)

    # Shared collections

    def virtual_machines(self) -> List[Raw]:
        return self.fetch("virtual_machines", self.source.list_virtual_machines)

    def vm_by_nic(self) -> CrossReferenceIndex:
        return self.index("vm_by_nic", lambda: vm_by_nic_index(self.virtual_machines()))

    def recovery_vaults(self) -> List[Raw]:
        return self.fetch("recovery_vaults", self.source.list_recovery_vaults)

    def nic_private_ip(self, resource_group: str, nic_name: str) -> str:
        nic = self.fetch(
            f"nic:{resource_group}/{nic_name}".lower(),
            lambda: self.source.get_network_interface(resource_group, nic_name),
            empty=dict,
        )
        return first_private_ip(nic)


@dataclass(frozen=True)
class TablePart:
    """
    One (subheading, table-or-fallback-text) pair of a section.
    """

    subject: str
    records: Callable[[SectionContext], Records]
    spec: TableSpec
    subheading: Optional[str] = None
    narrative: Optional[Callable[[List[Row], SectionContext], Optional[str]]] = None

    @property
    def empty_text(self) -> str:
        return NO_DATA_TEXT.format(subject=self.subject)


@dataclass(frozen=True)
class Section:
    key: str
    heading: str
    parts: Tuple[TablePart, ...] = ()
    # parts that depend on fetched data, e.g. one rule table per NSG
    dynamic_parts: Optional[Callable[[SectionContext], Sequence[TablePart]]] = None
    level: int = 1
    vault_scoped: bool = False


# -----------------
# Compute
# -----------------


def _vm_records(ctx: SectionContext) -> List[VirtualMachineRecord]:
    vms = ctx.virtual_machines()
    out: List[VirtualMachineRecord] = []
    for idx, vm in enumerate(vms, start=1):
        ctx.progress(idx, len(vms))
        vm = dict(vm)
        vm_id = str(vm.get("id") or "")
        if vm_id and not vm.get("instance_view"):
            parsed = rid.ResourceId(vm_id)
            vm["instance_view"] = ctx.fetch(
                f"instance_view:{vm_id}".lower(),
                lambda: ctx.source.get_virtual_machine_instance_view(parsed.resource_group, parsed.resource_name),
                empty=dict,
            )
        out.append(normalize_virtual_machine(vm))
    return out


def _reservation_records(ctx: SectionContext) -> List[ReservationRecord]:
    orders = ctx.fetch("reservation_orders", ctx.source.list_reservation_orders)
    out: List[ReservationRecord] = []
    for idx, order in enumerate(orders, start=1):
        ctx.progress(idx, len(orders))
        order_id = str(order.get("name") or "")
        reservations = (
            ctx.fetch(f"reservations:{order_id}", lambda: ctx.source.list_reservations(order_id)) if order_id else []
        )
        if reservations:
            out.extend(normalize_reservation(order, r) for r in reservations)
        else:
            out.append(normalize_reservation(order))
    return out


def _disk_records(ctx: SectionContext) -> List[DiskRecord]:
    return [normalize_disk(d) for d in ctx.fetch("disks", ctx.source.list_disks)]


def _nic_records(ctx: SectionContext) -> List[NetworkInterfaceRecord]:
    vm_by_nic = ctx.vm_by_nic()
    nics = ctx.fetch("network_interfaces", ctx.source.list_network_interfaces)
    return [normalize_network_interface(nic, vm_by_nic) for nic in nics]


# -----------------
# Network
# -----------------


def _nsgs(ctx: SectionContext) -> List[Raw]:
    return ctx.fetch("network_security_groups", ctx.source.list_network_security_groups)


def _nsg_rule_parts(ctx: SectionContext) -> List[TablePart]:
    parts: List[TablePart] = []
    for nsg in sorted(_nsgs(ctx), key=lambda n: str(n.get("name") or "").casefold()):
        name = str(nsg.get("name") or "-")
        parts.append(
            TablePart(
                subject=f"custom rules on {name}",
                subheading=f"{name}: Custom Rules",
                records=lambda _ctx, nsg=nsg: [normalize_security_rule(r) for r in nsg.get("security_rules") or []],
                spec=SECURITY_RULE_SPEC,
            )
        )
        parts.append(
            TablePart(
                subject=f"default rules on {name}",
                subheading=f"{name}: Default Rules",
                records=lambda _ctx, nsg=nsg: [
                    normalize_security_rule(r) for r in nsg.get("default_security_rules") or []
                ],
                spec=SECURITY_RULE_SPEC,
            )
        )
    return parts


def _virtual_networks(ctx: SectionContext) -> List[Raw]:
    return ctx.fetch("virtual_networks", ctx.source.list_virtual_networks)


def _subnet_records(ctx: SectionContext) -> List[VirtualNetworkSubnetRecord]:
    out: List[VirtualNetworkSubnetRecord] = []
    for vnet in _virtual_networks(ctx):
        out.extend(normalize_virtual_network(vnet))
    return out


def _peering_records(ctx: SectionContext) -> List[VirtualNetworkPeeringRecord]:
    out: List[VirtualNetworkPeeringRecord] = []
    for vnet in _virtual_networks(ctx):
        out.extend(normalize_virtual_network_peerings(vnet))
    return out


def _firewall_rule_records(ctx: SectionContext) -> List[FirewallRuleRecord]:
    ip_groups = ctx.index("ip_groups", lambda: ip_group_index(ctx.fetch("ip_groups", ctx.source.list_ip_groups)))
    policies = ctx.fetch("firewall_policies", ctx.source.list_firewall_policies)
    out: List[FirewallRuleRecord] = []
    for idx, policy in enumerate(policies, start=1):
        ctx.progress(idx, len(policies))
        policy_id = str(policy.get("id") or "")
        if not policy_id:
            continue
        parsed = rid.ResourceId(policy_id)
        groups = ctx.fetch(
            f"rule_collection_groups:{policy_id}".lower(),
            lambda: ctx.source.list_rule_collection_groups(parsed.resource_group, parsed.resource_name),
        )
        for group in groups:
            out.extend(normalize_firewall_rules(parsed.resource_name, group, ip_groups))
    return out


def _load_balancers(ctx: SectionContext) -> List[Raw]:
    return ctx.fetch("load_balancers", ctx.source.list_load_balancers)


def _lb_backend_records(ctx: SectionContext) -> List[LoadBalancerBackendRecord]:
    vm_by_nic = ctx.vm_by_nic()
    out: List[LoadBalancerBackendRecord] = []
    lbs = _load_balancers(ctx)
    for idx, lb in enumerate(lbs, start=1):
        ctx.progress(idx, len(lbs))
        out.extend(normalize_lb_backends(lb, vm_by_nic, ctx.nic_private_ip))
    return out


def _flatten(ctx: SectionContext, collection: Callable[[SectionContext], List[Raw]], fn: Callable[[Raw], Records]):
    out: List[Any] = []
    for raw in collection(ctx):
        out.extend(fn(raw))
    return out


# -----------------
# Recovery Services
# -----------------


def _vault_scope(vault: Raw) -> Tuple[str, str]:
    parsed = rid.ResourceId(str(vault.get("id") or ""))
    return parsed.resource_group, parsed.resource_name


def _backup_job_records(ctx: SectionContext) -> List[BackupJobRecord]:
    since = job_window_start(ctx.backup_job_days)
    out: List[BackupJobRecord] = []
    vaults = ctx.recovery_vaults()
    for idx, vault in enumerate(vaults, start=1):
        ctx.progress(idx, len(vaults))
        rg, name = _vault_scope(vault)
        jobs = ctx.fetch(f"backup_jobs:{rg}/{name}", lambda: ctx.source.list_backup_jobs(rg, name, since))
        out.extend(normalize_backup_job(name, job) for job in jobs)
    return out


def _backup_jobs_narrative(rows: List[Row], ctx: SectionContext) -> str:
    return failed_jobs_narrative(rows, ctx.backup_job_days)


def _backup_policy_records(ctx: SectionContext) -> List[BackupPolicyRecord]:
    out: List[BackupPolicyRecord] = []
    for vault in ctx.recovery_vaults():
        rg, name = _vault_scope(vault)
        policies = ctx.fetch(f"backup_policies:{rg}/{name}", lambda: ctx.source.list_backup_policies(rg, name))
        out.extend(normalize_backup_policy(name, p) for p in policies)
    return out


def _backup_item_records(ctx: SectionContext) -> List[BackupItemRecord]:
    """
    vault -> protected item -> recovery points; each item costs one extra call.
    """
    out: List[BackupItemRecord] = []
    for vault in ctx.recovery_vaults():
        rg, name = _vault_scope(vault)
        items = ctx.fetch(f"backup_items:{rg}/{name}", lambda: ctx.source.list_backup_protected_items(rg, name))
        for idx, item in enumerate(items, start=1):
            ctx.progress(idx, len(items))
            path = protected_item_path(item)
            points: List[Raw] = []
            if path:
                fabric, container, item_name = path
                points = ctx.fetch(
                    f"backup_points:{item.get('id')}".lower(),
                    lambda: ctx.source.list_backup_recovery_points(rg, name, fabric, container, item_name),
                )
            out.append(normalize_backup_item(name, item, points))
    return out


def _replication_item_records(ctx: SectionContext) -> List[ReplicationItemRecord]:
    """
    vault -> fabric -> protection container -> replicated item -> recovery points.
    """
    out: List[ReplicationItemRecord] = []
    for vault in ctx.recovery_vaults():
        rg, vault_name = _vault_scope(vault)
        scope = f"{rg}/{vault_name}"
        fabrics = ctx.fetch(f"fabrics:{scope}", lambda: ctx.source.list_replication_fabrics(rg, vault_name))
        for fabric in fabrics:
            fabric_name = str(fabric.get("name") or "")
            containers = ctx.fetch(
                f"containers:{scope}/{fabric_name}",
                lambda: ctx.source.list_replication_containers(rg, vault_name, fabric_name),
            )
            for container in containers:
                container_name = str(container.get("name") or "")
                items = ctx.fetch(
                    f"replicated:{scope}/{fabric_name}/{container_name}",
                    lambda: ctx.source.list_replication_protected_items(rg, vault_name, fabric_name, container_name),
                )
                for idx, item in enumerate(items, start=1):
                    ctx.progress(idx, len(items))
                    item_name = str(item.get("name") or "")
                    points = ctx.fetch(
                        f"replication_points:{scope}/{fabric_name}/{container_name}/{item_name}",
                        lambda: ctx.source.list_replication_recovery_points(
                            rg, vault_name, fabric_name, container_name, item_name
                        ),
                    )
                    out.append(normalize_replication_item(vault_name, item, points))
    return out


def _replication_policy_records(ctx: SectionContext) -> List[ReplicationPolicyRecord]:
    out: List[ReplicationPolicyRecord] = []
    for vault in ctx.recovery_vaults():
        rg, name = _vault_scope(vault)
        policies = ctx.fetch(
            f"replication_policies:{rg}/{name}", lambda: ctx.source.list_replication_policies(rg, name)
        )
        out.extend(normalize_replication_policy(name, p) for p in policies)
    return out


# -----------------
# Table layouts
# -----------------

VM_SPEC = table_spec(
    VirtualMachineRecord,
    ("Name", "Computer Name", "Resource Group", "Location", "Zone", "Size", "OS", "Power State", "Network Interfaces"),
    sort_by=("name",),
)
RESERVATION_SPEC = table_spec(
    ReservationRecord,
    ("Name", "Resource Type", "SKU", "Quantity", "Term", "Start Date", "End Date", "State"),
    sort_by=("end_date", "name"),
)
DISK_SPEC = table_spec(
    DiskRecord,
    ("Name", "Resource Group", "Server", "Size (GB)", "SKU", "State", "OS"),
    sort_by=("server", "name"),
)
NIC_SPEC = table_spec(
    NetworkInterfaceRecord,
    (
        "Name",
        "Resource Group",
        "Virtual Machine",
        "Private IP",
        "Allocation",
        "Virtual Network",
        "Subnet",
        "NSG",
        "Accelerated Networking",
    ),
    sort_by=("virtual_machine", "name"),
)
NSG_SPEC = table_spec(
    SecurityGroupRecord,
    ("Name", "Resource Group", "Location", "Custom Rules", "Subnets", "Network Interfaces"),
    sort_by=("name",),
)
SECURITY_RULE_SPEC = table_spec(
    SecurityRuleRecord,
    (
        "Priority",
        "Name",
        "Direction",
        "Access",
        "Protocol",
        "Source",
        "Source Ports",
        "Destination",
        "Destination Ports",
    ),
    sort_by=("direction", "priority"),
)
SUBNET_SPEC = table_spec(
    VirtualNetworkSubnetRecord,
    ("Virtual Network", "Address Space", "Subnet", "Prefix", "NSG", "Route Table", "NAT Gateway"),
    sort_by=("virtual_network", "subnet"),
)
PEERING_SPEC = table_spec(
    VirtualNetworkPeeringRecord,
    ("Virtual Network", "Peering", "Remote Network", "State", "Gateway Transit", "Use Remote Gateways"),
    sort_by=("virtual_network", "peering"),
)
PUBLIC_IP_SPEC = table_spec(
    PublicIpRecord,
    ("Name", "Resource Group", "Address", "Allocation", "SKU", "Associated To"),
    sort_by=("name",),
)
CONNECTION_SPEC = table_spec(
    GatewayConnectionRecord,
    (
        "Name",
        "Gateway",
        "Type",
        "ExpressRoute",
        "Local Endpoint",
        "Status",
        "Ingress (GB, approx.)",
        "Egress (GB, approx.)",
    ),
    sort_by=("gateway", "name"),
)
LOCAL_GATEWAY_SPEC = table_spec(
    LocalGatewayRecord,
    ("Name", "Resource Group", "Gateway Address", "Address Space", "BGP ASN"),
    sort_by=("name",),
)
NAT_SPEC = table_spec(
    NatGatewayRecord,
    ("Name", "Resource Group", "Public IPs", "Subnets", "Idle Timeout (min)"),
    sort_by=("name",),
)
BASTION_SPEC = table_spec(
    BastionRecord,
    ("Name", "Resource Group", "SKU", "Public IP", "Virtual Network"),
    sort_by=("name",),
)
FIREWALL_SPEC = table_spec(
    FirewallRecord,
    ("Name", "Resource Group", "Tier", "Threat Intel", "Policy", "Private IP", "Public IPs"),
    sort_by=("name",),
)
FIREWALL_RULE_SPEC = table_spec(
    FirewallRuleRecord,
    (
        "Policy",
        "Collection Group",
        "Collection",
        "Priority",
        "Action",
        "Rule Type",
        "Name",
        "Source",
        "Destination",
        "Ports",
    ),
    sort_by=("policy", "priority", "collection", "name"),
)
IP_GROUP_SPEC = table_spec(IpGroupRecord, ("Name", "Resource Group", "Location", "Addresses"), sort_by=("name",))
LB_SPEC = table_spec(
    LoadBalancerRecord,
    ("Name", "Resource Group", "SKU", "Frontends", "Backend Pools", "Rules"),
    sort_by=("name",),
)
LB_FRONTEND_SPEC = table_spec(
    LoadBalancerFrontendRecord,
    ("Load Balancer", "Name", "Private IP", "Public IP", "Subnet"),
    sort_by=("load_balancer", "name"),
)
LB_BACKEND_SPEC = table_spec(
    LoadBalancerBackendRecord,
    ("Load Balancer", "Pool", "Virtual Machine", "Network Interface", "Private IP"),
    sort_by=("load_balancer", "pool", "virtual_machine"),
)
LB_PROBE_SPEC = table_spec(
    LoadBalancerProbeRecord,
    ("Load Balancer", "Name", "Protocol", "Port", "Interval (s)", "Probes", "Path"),
    sort_by=("load_balancer", "name"),
)
LB_RULE_SPEC = table_spec(
    LoadBalancerRuleRecord,
    (
        "Load Balancer",
        "Name",
        "Frontend",
        "Backend Pool",
        "Probe",
        "Protocol",
        "Frontend Port",
        "Backend Port",
        "Floating IP",
    ),
    sort_by=("load_balancer", "name"),
)
VAULT_SPEC = table_spec(RecoveryVaultRecord, ("Name", "Resource Group", "Location", "SKU"), sort_by=("name",))
BACKUP_JOB_SPEC = table_spec(
    BackupJobRecord,
    ("Vault", "Item", "Operation", "Status", "Start Time", "Duration"),
    sort_by=("vault", "start_time", "item"),
)
BACKUP_POLICY_SPEC = table_spec(
    BackupPolicyRecord,
    ("Vault", "Name", "Management Type", "Schedule", "Retention"),
    sort_by=("vault", "name"),
)
BACKUP_ITEM_SPEC = table_spec(
    BackupItemRecord,
    (
        "Vault",
        "Item",
        "Workload",
        "Policy",
        "Last Backup Status",
        "Last Backup Time",
        "Latest Recovery Point",
        "Recovery Points",
    ),
    sort_by=("vault", "item"),
)
REPLICATION_ITEM_SPEC = table_spec(
    ReplicationItemRecord,
    (
        "Vault",
        "Item",
        "Source",
        "Target",
        "Health",
        "State",
        "Policy",
        "Latest Recovery Point",
        "Recovery Points",
    ),
    sort_by=("vault", "item"),
)
REPLICATION_POLICY_SPEC = table_spec(
    ReplicationPolicyRecord, ("Vault", "Name", "Provider", "Retention"), sort_by=("vault", "name")
)
KEY_VAULT_SPEC = table_spec(
    KeyVaultRecord,
    ("Name", "Resource Group", "Location", "SKU", "Soft Delete", "Purge Protection", "RBAC Authorization"),
    sort_by=("name",),
)


def _listing(method: str) -> Callable[[SectionContext], List[Raw]]:
    def _fetch(ctx: SectionContext) -> List[Raw]:
        return ctx.fetch(method, getattr(ctx.source, method))

    return _fetch


def _mapped(method: str, fn: Callable[[Raw], Any]) -> Callable[[SectionContext], List[Any]]:
    return lambda ctx: [fn(raw) for raw in _listing(method)(ctx)]


# Reading order of the document; sections are emitted exactly in this order.
SECTIONS: Tuple[Section, ...] = (
    Section(
        key="virtual_machines",
        heading="Virtual Machines",
        parts=(TablePart(subject="virtual machines", records=_vm_records, spec=VM_SPEC),),
    ),
    Section(
        key="reservations",
        heading="Reservations",
        parts=(TablePart(subject="reservations", records=_reservation_records, spec=RESERVATION_SPEC),),
    ),
    Section(
        key="disks",
        heading="Disks",
        parts=(TablePart(subject="managed disks", records=_disk_records, spec=DISK_SPEC),),
    ),
    Section(
        key="network_interfaces",
        heading="Network Interfaces",
        parts=(TablePart(subject="network interfaces", records=_nic_records, spec=NIC_SPEC),),
    ),
    Section(
        key="network_security_groups",
        heading="Network Security Groups",
        parts=(
            TablePart(
                subject="network security groups",
                records=lambda ctx: [normalize_security_group(n) for n in _nsgs(ctx)],
                spec=NSG_SPEC,
            ),
        ),
        dynamic_parts=_nsg_rule_parts,
    ),
    Section(
        key="virtual_networks",
        heading="Virtual Networks",
        parts=(
            TablePart(subject="virtual networks", subheading="Subnets", records=_subnet_records, spec=SUBNET_SPEC),
            TablePart(
                subject="virtual network peerings", subheading="Peerings", records=_peering_records, spec=PEERING_SPEC
            ),
        ),
    ),
    Section(
        key="public_ips",
        heading="Public IP Addresses",
        parts=(
            TablePart(
                subject="public IP addresses",
                records=_mapped("list_public_ips", normalize_public_ip),
                spec=PUBLIC_IP_SPEC,
            ),
        ),
    ),
    Section(
        key="vpn",
        heading="VPN",
        parts=(
            TablePart(
                subject="gateway connections",
                subheading="Gateway Connections",
                records=_mapped("list_gateway_connections", normalize_gateway_connection),
                spec=CONNECTION_SPEC,
            ),
            TablePart(
                subject="local network gateways",
                subheading="Local Network Gateways",
                records=_mapped("list_local_network_gateways", normalize_local_gateway),
                spec=LOCAL_GATEWAY_SPEC,
            ),
        ),
    ),
    Section(
        key="nat_gateways",
        heading="NAT Gateways",
        parts=(
            TablePart(
                subject="NAT gateways", records=_mapped("list_nat_gateways", normalize_nat_gateway), spec=NAT_SPEC
            ),
        ),
    ),
    Section(
        key="bastions",
        heading="Bastions",
        parts=(
            TablePart(subject="bastion hosts", records=_mapped("list_bastions", normalize_bastion), spec=BASTION_SPEC),
        ),
    ),
    Section(
        key="firewalls",
        heading="Firewalls",
        parts=(
            TablePart(
                subject="Azure firewalls",
                subheading="Firewalls",
                records=_mapped("list_firewalls", normalize_firewall),
                spec=FIREWALL_SPEC,
            ),
            TablePart(
                subject="firewall policy rules",
                subheading="Policy Rules",
                records=_firewall_rule_records,
                spec=FIREWALL_RULE_SPEC,
            ),
            TablePart(
                subject="IP groups",
                subheading="IP Groups",
                records=_mapped("list_ip_groups", normalize_ip_group),
                spec=IP_GROUP_SPEC,
            ),
        ),
    ),
    Section(
        key="load_balancers",
        heading="Load Balancers",
        parts=(
            TablePart(
                subject="load balancers",
                records=lambda ctx: [normalize_load_balancer(lb) for lb in _load_balancers(ctx)],
                spec=LB_SPEC,
            ),
            TablePart(
                subject="load balancer frontends",
                subheading="Frontend IP Configurations",
                records=lambda ctx: _flatten(ctx, _load_balancers, normalize_lb_frontends),
                spec=LB_FRONTEND_SPEC,
            ),
            TablePart(
                subject="load balancer backend pools",
                subheading="Backend Pools",
                records=_lb_backend_records,
                spec=LB_BACKEND_SPEC,
            ),
            TablePart(
                subject="health probes",
                subheading="Health Probes",
                records=lambda ctx: _flatten(ctx, _load_balancers, normalize_lb_probes),
                spec=LB_PROBE_SPEC,
            ),
            TablePart(
                subject="load balancing rules",
                subheading="Load Balancing Rules",
                records=lambda ctx: _flatten(ctx, _load_balancers, normalize_lb_rules),
                spec=LB_RULE_SPEC,
            ),
        ),
    ),
    Section(
        key="backup",
        heading="Backup",
        vault_scoped=True,
        parts=(
            TablePart(
                subject="Recovery Services vaults",
                subheading="Recovery Services Vaults",
                records=lambda ctx: [normalize_vault(v) for v in ctx.recovery_vaults()],
                spec=VAULT_SPEC,
            ),
            TablePart(
                subject="backup jobs",
                subheading="Backup Jobs",
                records=_backup_job_records,
                spec=BACKUP_JOB_SPEC,
                narrative=_backup_jobs_narrative,
            ),
            TablePart(
                subject="backup policies",
                subheading="Backup Policies",
                records=_backup_policy_records,
                spec=BACKUP_POLICY_SPEC,
            ),
            TablePart(
                subject="protected items",
                subheading="Protected Items",
                records=_backup_item_records,
                spec=BACKUP_ITEM_SPEC,
            ),
        ),
    ),
    Section(
        key="replication",
        heading="Replication",
        vault_scoped=True,
        parts=(
            TablePart(
                subject="replicated items",
                subheading="Replicated Items",
                records=_replication_item_records,
                spec=REPLICATION_ITEM_SPEC,
            ),
            TablePart(
                subject="replication policies",
                subheading="Replication Policies",
                records=_replication_policy_records,
                spec=REPLICATION_POLICY_SPEC,
            ),
        ),
    ),
    Section(
        key="key_vaults",
        heading="Key Vaults",
        parts=(
            TablePart(subject="key vaults", records=_mapped("list_key_vaults", normalize_key_vault), spec=KEY_VAULT_SPEC),
        ),
    ),
)


class SectionBuilder:
    """
    Runs each section part through Fetching -> Normalizing -> Sorting ->
    Rendering. An empty row set renders the part's fixed fallback sentence
    instead of a table.
    """

    def __init__(
        self,
        source: ResourceSource,
        assembler: DocumentAssembler,
        renderer: TableRenderer,
        *,
        progress: Optional[ProgressObserver] = None,
        skip_vaults: bool = False,
        backup_job_days: int = DEFAULT_BACKUP_JOB_DAYS,
        stats: Optional[ReportStats] = None,
    ) -> None:
        self.source = source
        self.assembler = assembler
        self.renderer = renderer
        self.progress = progress or NullProgress()
        self.skip_vaults = skip_vaults
        self.backup_job_days = backup_job_days
        self.stats = stats or ReportStats()

    def build(self, section: Section) -> None:
        self.assembler.add_section(section.heading, section.level)
        self.stats.sections.append(section.heading)
        if section.vault_scoped and self.skip_vaults:
            self.assembler.add_text(SKIPPED_VAULTS_TEXT, italic=True)
            return
        ctx = SectionContext(
            self.source,
            section.heading,
            progress=self.progress,
            stats=self.stats,
            backup_job_days=self.backup_job_days,
        )
        for part in section.parts:
            self.build_part(ctx, part, level=section.level + 1)
        if section.dynamic_parts is not None:
            try:
                dynamic = list(section.dynamic_parts(ctx))
            except MalformedIdError as e:
                LOG.error(
                    "Skipping generated parts", extra={"step": "section", "phase": "normalize", "error": str(e)}
                )
                dynamic = []
            for part in dynamic:
                self.build_part(ctx, part, level=section.level + 1)

    def build_part(self, ctx: SectionContext, part: TablePart, *, level: int = 2) -> None:
        if part.subheading:
            self.assembler.add_section(part.subheading, level)
        try:
            records = part.records(ctx)
            rows = sort_rows([to_row(r) for r in records], part.spec.sort_by)
        except MalformedIdError as e:
            LOG.error(
                "Unexpected resource identifier",
                extra={"step": "section", "phase": "normalize", "section": ctx.section, "error": str(e)},
            )
            self.stats.malformed_parts += 1
            self.assembler.add_text(MALFORMED_ID_TEXT.format(subject=part.subject.capitalize()))
            return
        if not rows:
            self.stats.empty_parts += 1
            self.assembler.add_text(part.empty_text)
            return
        if part.narrative is not None:
            narrative = part.narrative(rows, ctx)
            if narrative:
                self.assembler.add_text(narrative)
        self.renderer.render(rows, part.spec.columns, part.spec.headers, style=part.spec.style)
        self.stats.tables += 1
        self.stats.rows += len(rows)
        LOG.debug(
            "Rendered table",
            extra={"step": "section", "phase": "render", "section": ctx.section, "rows": len(rows)},
        )


def report_title(customer: str) -> str:
    return f"{customer} - Azure Infrastructure Documentation"


def build_report(
    source: ResourceSource,
    assembler: DocumentAssembler,
    *,
    customer: str,
    subscription_name: Optional[str] = None,
    skip_vaults: bool = False,
    backup_job_days: int = DEFAULT_BACKUP_JOB_DAYS,
    progress: Optional[ProgressObserver] = None,
    renderer: Optional[TableRenderer] = None,
    sections: Sequence[Section] = SECTIONS,
    generated_at: Optional[datetime] = None,
) -> ReportStats:
    """
    Write the title page and every section into the assembler. The caller
    resolves the ToC and saves (DocumentAssembler.finalize).
    """
    generated = generated_at or datetime.now(timezone.utc)
    subscription = source.subscription_id
    if subscription_name:
        subscription = f"{subscription_name} ({source.subscription_id})"
    assembler.start(
        report_title(customer),
        subtitle_lines=(f"Subscription: {subscription}", f"Generated: {generated.strftime('%Y-%m-%d %H:%M')} UTC"),
        header=f"{customer} - Azure",
        footer=f"Generated {generated.strftime('%Y-%m-%d')}",
    )
    builder = SectionBuilder(
        source,
        assembler,
        renderer or TableRenderer(assembler.backend),
        progress=progress,
        skip_vaults=skip_vaults,
        backup_job_days=backup_job_days,
    )
    for idx, section in enumerate(sections):
        if idx:
            assembler.insert_page_break()
        LOG.info("Documenting section", extra={"step": "section", "phase": "start", "section": section.heading})
        builder.build(section)
    return builder.stats


def write_report(
    source: ResourceSource,
    path: Path,
    backend: Any,
    **kwargs: Any,
) -> ReportStats:
    """
    Build and save the report. The backend is released on every exit path.
    """
    with DocumentAssembler(backend) as assembler:
        stats = build_report(source, assembler, **kwargs)
        assembler.finalize(path)
    return stats
