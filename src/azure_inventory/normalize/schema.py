from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

Row = Dict[str, str]

DEFAULT_TABLE_STYLE = "Light Grid Accent 1"
REPORT_SUFFIX = "-Azure.docx"


@dataclass(frozen=True)
class TableSpec:
    columns: Tuple[str, ...]
    headers: Tuple[str, ...]
    sort_by: Tuple[str, ...] = ()
    style: str = DEFAULT_TABLE_STYLE


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    report_docx: Path
    run_log: Path


_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|]+')


def resolve_output_paths(report_path: Path, customer: str) -> OutputPaths:
    """
    The report is written as <report_path>/<customer>-Azure.docx, with the run log beside it.
    """
    safe = _UNSAFE_FILENAME.sub("_", customer.strip()) or "Customer"
    root = Path(report_path)
    return OutputPaths(
        root=root,
        report_docx=root / f"{safe}{REPORT_SUFFIX}",
        run_log=root / f"{safe}-Azure.log",
    )


# -----------------
# Per-kind records
# -----------------
# Every field is a display string. Tables project records with to_row(); the
# dataclass field order is the canonical column order.


@dataclass(frozen=True)
class VirtualMachineRecord:
    name: str
    computer_name: str
    resource_group: str
    location: str
    zone: str
    size: str
    os_type: str
    power_state: str
    network_interfaces: str


@dataclass(frozen=True)
class DiskRecord:
    name: str
    resource_group: str
    server: str
    size_gb: str
    sku: str
    state: str
    os_type: str


@dataclass(frozen=True)
class ReservationRecord:
    name: str
    resource_type: str
    sku: str
    quantity: str
    term: str
    start_date: str
    end_date: str
    state: str


@dataclass(frozen=True)
class NetworkInterfaceRecord:
    name: str
    resource_group: str
    virtual_machine: str
    private_ip: str
    allocation: str
    virtual_network: str
    subnet: str
    security_group: str
    accelerated: str


@dataclass(frozen=True)
class SecurityGroupRecord:
    name: str
    resource_group: str
    location: str
    custom_rules: str
    subnets: str
    network_interfaces: str


@dataclass(frozen=True)
class SecurityRuleRecord:
    priority: str
    name: str
    direction: str
    access: str
    protocol: str
    source: str
    source_ports: str
    destination: str
    destination_ports: str


@dataclass(frozen=True)
class VirtualNetworkSubnetRecord:
    virtual_network: str
    address_space: str
    subnet: str
    prefix: str
    security_group: str
    route_table: str
    nat_gateway: str


@dataclass(frozen=True)
class VirtualNetworkPeeringRecord:
    virtual_network: str
    peering: str
    remote_network: str
    state: str
    gateway_transit: str
    remote_gateways: str


@dataclass(frozen=True)
class PublicIpRecord:
    name: str
    resource_group: str
    address: str
    allocation: str
    sku: str
    associated_to: str


@dataclass(frozen=True)
class GatewayConnectionRecord:
    name: str
    gateway: str
    connection_type: str
    express_route: str
    local_endpoint: str
    status: str
    ingress_gb: str
    egress_gb: str


@dataclass(frozen=True)
class LocalGatewayRecord:
    name: str
    resource_group: str
    gateway_address: str
    address_space: str
    bgp_asn: str


@dataclass(frozen=True)
class NatGatewayRecord:
    name: str
    resource_group: str
    public_ips: str
    subnets: str
    idle_timeout: str


@dataclass(frozen=True)
class BastionRecord:
    name: str
    resource_group: str
    sku: str
    public_ip: str
    virtual_network: str


@dataclass(frozen=True)
class FirewallRecord:
    name: str
    resource_group: str
    tier: str
    threat_intel: str
    policy: str
    private_ip: str
    public_ips: str


@dataclass(frozen=True)
class FirewallRuleRecord:
    policy: str
    collection_group: str
    collection: str
    priority: str
    action: str
    rule_type: str
    name: str
    source: str
    destination: str
    ports: str


@dataclass(frozen=True)
class IpGroupRecord:
    name: str
    resource_group: str
    location: str
    addresses: str


@dataclass(frozen=True)
class LoadBalancerRecord:
    name: str
    resource_group: str
    sku: str
    frontends: str
    backend_pools: str
    rules: str


@dataclass(frozen=True)
class LoadBalancerFrontendRecord:
    load_balancer: str
    name: str
    private_ip: str
    public_ip: str
    subnet: str


@dataclass(frozen=True)
class LoadBalancerBackendRecord:
    load_balancer: str
    pool: str
    virtual_machine: str
    network_interface: str
    private_ip: str


@dataclass(frozen=True)
class LoadBalancerProbeRecord:
    load_balancer: str
    name: str
    protocol: str
    port: str
    interval: str
    probes: str
    path: str


@dataclass(frozen=True)
class LoadBalancerRuleRecord:
    load_balancer: str
    name: str
    frontend: str
    backend_pool: str
    probe: str
    protocol: str
    frontend_port: str
    backend_port: str
    floating_ip: str


@dataclass(frozen=True)
class RecoveryVaultRecord:
    name: str
    resource_group: str
    location: str
    sku: str


@dataclass(frozen=True)
class BackupJobRecord:
    vault: str
    item: str
    operation: str
    status: str
    start_time: str
    duration: str


@dataclass(frozen=True)
class BackupPolicyRecord:
    vault: str
    name: str
    management_type: str
    schedule: str
    retention: str


@dataclass(frozen=True)
class BackupItemRecord:
    vault: str
    item: str
    workload: str
    policy: str
    last_backup_status: str
    last_backup_time: str
    latest_recovery_point: str
    recovery_points: str


@dataclass(frozen=True)
class ReplicationItemRecord:
    vault: str
    item: str
    source: str
    target: str
    health: str
    state: str
    policy: str
    latest_recovery_point: str
    recovery_points: str


@dataclass(frozen=True)
class ReplicationPolicyRecord:
    vault: str
    name: str
    provider: str
    retention: str


@dataclass(frozen=True)
class KeyVaultRecord:
    name: str
    resource_group: str
    location: str
    sku: str
    soft_delete: str
    purge_protection: str
    rbac_authorization: str


RECORD_TYPES: List[type] = [
    VirtualMachineRecord,
    DiskRecord,
    ReservationRecord,
    NetworkInterfaceRecord,
    SecurityGroupRecord,
    SecurityRuleRecord,
    VirtualNetworkSubnetRecord,
    VirtualNetworkPeeringRecord,
    PublicIpRecord,
    GatewayConnectionRecord,
    LocalGatewayRecord,
    NatGatewayRecord,
    BastionRecord,
    FirewallRecord,
    FirewallRuleRecord,
    IpGroupRecord,
    LoadBalancerRecord,
    LoadBalancerFrontendRecord,
    LoadBalancerBackendRecord,
    LoadBalancerProbeRecord,
    LoadBalancerRuleRecord,
    RecoveryVaultRecord,
    BackupJobRecord,
    BackupPolicyRecord,
    BackupItemRecord,
    ReplicationItemRecord,
    ReplicationPolicyRecord,
    KeyVaultRecord,
]
