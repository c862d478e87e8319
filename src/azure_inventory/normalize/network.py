from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Tuple

from . import resource_id as rid
from .schema import (
    BastionRecord,
    GatewayConnectionRecord,
    LoadBalancerBackendRecord,
    LoadBalancerFrontendRecord,
    LoadBalancerProbeRecord,
    LoadBalancerRecord,
    LoadBalancerRuleRecord,
    LocalGatewayRecord,
    NatGatewayRecord,
    PublicIpRecord,
    VirtualNetworkPeeringRecord,
    VirtualNetworkSubnetRecord,
)
from .transform import MISSING, _get, bytes_to_display_gb, first, joined, text
from .xref import CrossReferenceIndex

PUBLIC_IP_UNUSED = "Unused or NAT"
LOCAL_GATEWAY_UNKNOWN = "Unknown"
LOCAL_ENDPOINT_EMPTY = "Empty"
EXPRESS_ROUTE_KIND = "expressRouteCircuits"

# (resource_group, nic_name) -> first private IP of the NIC, or "-"
NicIpResolver = Callable[[str, str], str]


def _rg(raw: Mapping[str, Any]) -> str:
    return rid.name_or_default(raw.get("id"), rid.RESOURCE_GROUP)


def _names(refs: Any, offset: int) -> str:
    return joined(rid.name_or_default(r, offset, default="") for r in refs or [])


def normalize_virtual_network(vnet: Dict[str, Any]) -> List[VirtualNetworkSubnetRecord]:
    """
    One row per subnet; a virtual network without subnets still yields one row.
    """
    name = text(vnet.get("name"))
    address_space = joined(_get(vnet, "address_space", "address_prefixes") or [])
    subnets = [s for s in vnet.get("subnets") or [] if isinstance(s, Mapping)]
    if not subnets:
        return [
            VirtualNetworkSubnetRecord(
                virtual_network=name,
                address_space=address_space,
                subnet=MISSING,
                prefix=MISSING,
                security_group=MISSING,
                route_table=MISSING,
                nat_gateway=MISSING,
            )
        ]
    out: List[VirtualNetworkSubnetRecord] = []
    for subnet in subnets:
        prefix = subnet.get("address_prefix") or joined(subnet.get("address_prefixes") or [])
        out.append(
            VirtualNetworkSubnetRecord(
                virtual_network=name,
                address_space=address_space,
                subnet=text(subnet.get("name")),
                prefix=text(prefix),
                security_group=rid.name_or_default(subnet.get("network_security_group"), rid.RESOURCE_NAME),
                route_table=rid.name_or_default(subnet.get("route_table"), rid.RESOURCE_NAME),
                nat_gateway=rid.name_or_default(subnet.get("nat_gateway"), rid.RESOURCE_NAME),
            )
        )
    return out


def normalize_virtual_network_peerings(vnet: Dict[str, Any]) -> List[VirtualNetworkPeeringRecord]:
    name = text(vnet.get("name"))
    out: List[VirtualNetworkPeeringRecord] = []
    for peering in vnet.get("virtual_network_peerings") or []:
        if not isinstance(peering, Mapping):
            continue
        out.append(
            VirtualNetworkPeeringRecord(
                virtual_network=name,
                peering=text(peering.get("name")),
                remote_network=rid.name_or_default(peering.get("remote_virtual_network"), rid.RESOURCE_NAME),
                state=text(peering.get("peering_state")),
                gateway_transit=text(bool(peering.get("allow_gateway_transit"))),
                remote_gateways=text(bool(peering.get("use_remote_gateways"))),
            )
        )
    return out


def normalize_public_ip(pip: Dict[str, Any]) -> PublicIpRecord:
    # ip_configuration id offset 8 is the owning resource (NIC, LB, gateway...)
    associated = rid.name_or_default(pip.get("ip_configuration"), rid.RESOURCE_NAME, default=PUBLIC_IP_UNUSED)
    return PublicIpRecord(
        name=text(pip.get("name")),
        resource_group=_rg(pip),
        address=text(pip.get("ip_address")),
        allocation=text(pip.get("public_ip_allocation_method")),
        sku=text(_get(pip, "sku", "name")),
        associated_to=associated,
    )


def classify_connection(conn: Mapping[str, Any]) -> Tuple[bool, str]:
    """
    Return (is_express_route, local_endpoint) for a gateway connection.

    A second local-gateway reference means site-to-site. Without one, the peer
    reference decides: its resource-kind segment (offset 7) names an
    ExpressRoute circuit or not. With neither, the endpoint is "Empty".
    """
    local_gateway = rid.reference_id(conn.get("local_network_gateway2"))
    if local_gateway:
        return False, rid.segment_at(local_gateway, rid.RESOURCE_NAME)
    peer = rid.reference_id(conn.get("peer"))
    if peer:
        peer_id = rid.ResourceId(peer)
        if peer_id.provider_kind.casefold() == EXPRESS_ROUTE_KIND.casefold():
            return True, peer_id.resource_name
    return False, LOCAL_ENDPOINT_EMPTY


def normalize_gateway_connection(conn: Dict[str, Any]) -> GatewayConnectionRecord:
    express_route, local_endpoint = classify_connection(conn)
    if express_route:
        connection_type = "ExpressRoute"
    elif local_endpoint != LOCAL_ENDPOINT_EMPTY:
        connection_type = "Site-to-Site"
    else:
        connection_type = text(conn.get("connection_type"))
    return GatewayConnectionRecord(
        name=text(conn.get("name")),
        gateway=rid.name_or_default(conn.get("virtual_network_gateway1"), rid.RESOURCE_NAME),
        connection_type=connection_type,
        express_route=text(express_route),
        local_endpoint=local_endpoint,
        status=text(conn.get("connection_status")),
        ingress_gb=bytes_to_display_gb(conn.get("ingress_bytes_transferred")),
        egress_gb=bytes_to_display_gb(conn.get("egress_bytes_transferred")),
    )


def local_gateway_address(gateway: Mapping[str, Any]) -> str:
    return text(gateway.get("gateway_ip_address") or gateway.get("fqdn"), default=LOCAL_GATEWAY_UNKNOWN)


def normalize_local_gateway(gateway: Dict[str, Any]) -> LocalGatewayRecord:
    return LocalGatewayRecord(
        name=text(gateway.get("name")),
        resource_group=_rg(gateway),
        gateway_address=local_gateway_address(gateway),
        address_space=joined(_get(gateway, "local_network_address_space", "address_prefixes") or []),
        bgp_asn=text(_get(gateway, "bgp_settings", "asn")),
    )


def normalize_nat_gateway(nat: Dict[str, Any]) -> NatGatewayRecord:
    return NatGatewayRecord(
        name=text(nat.get("name")),
        resource_group=_rg(nat),
        public_ips=_names(nat.get("public_ip_addresses"), rid.RESOURCE_NAME),
        subnets=_names(nat.get("subnets"), rid.CHILD_NAME),
        idle_timeout=text(nat.get("idle_timeout_in_minutes")),
    )


def normalize_bastion(bastion: Dict[str, Any]) -> BastionRecord:
    ip = first(bastion.get("ip_configurations"))
    return BastionRecord(
        name=text(bastion.get("name")),
        resource_group=_rg(bastion),
        sku=text(_get(bastion, "sku", "name")),
        public_ip=rid.name_or_default(ip.get("public_ip_address"), rid.RESOURCE_NAME),
        virtual_network=rid.name_or_default(ip.get("subnet"), rid.RESOURCE_NAME),
    )


def normalize_load_balancer(lb: Dict[str, Any]) -> LoadBalancerRecord:
    return LoadBalancerRecord(
        name=text(lb.get("name")),
        resource_group=_rg(lb),
        sku=text(_get(lb, "sku", "name")),
        frontends=str(len(lb.get("frontend_ip_configurations") or [])),
        backend_pools=str(len(lb.get("backend_address_pools") or [])),
        rules=str(len(lb.get("load_balancing_rules") or [])),
    )


def normalize_lb_frontends(lb: Dict[str, Any]) -> List[LoadBalancerFrontendRecord]:
    name = text(lb.get("name"))
    out: List[LoadBalancerFrontendRecord] = []
    for fe in lb.get("frontend_ip_configurations") or []:
        if not isinstance(fe, Mapping):
            continue
        out.append(
            LoadBalancerFrontendRecord(
                load_balancer=name,
                name=text(fe.get("name")),
                private_ip=text(fe.get("private_ip_address")),
                public_ip=rid.name_or_default(fe.get("public_ip_address"), rid.RESOURCE_NAME),
                subnet=rid.name_or_default(fe.get("subnet"), rid.CHILD_NAME),
            )
        )
    return out


def normalize_lb_backends(
    lb: Dict[str, Any],
    vm_by_nic: CrossReferenceIndex,
    resolve_nic_ip: NicIpResolver,
) -> List[LoadBalancerBackendRecord]:
    """
    One row per backend pool member, resolving the owning VM through the NIC.

    Members are NIC ip configurations (".../networkInterfaces/<nic>/ipConfigurations/<cfg>",
    offset 8 = NIC name, offset 4 = resource group). When the pool entry carries
    no private IP, the NIC is fetched by name and its first IP configuration used.
    """
    lb_name = text(lb.get("name"))
    out: List[LoadBalancerBackendRecord] = []
    for pool in lb.get("backend_address_pools") or []:
        if not isinstance(pool, Mapping):
            continue
        pool_name = text(pool.get("name"))
        members: List[LoadBalancerBackendRecord] = []
        for cfg in pool.get("backend_ip_configurations") or []:
            cfg_id = rid.reference_id(cfg)
            if not cfg_id:
                continue
            parsed = rid.ResourceId(cfg_id)
            nic_name = parsed.resource_name
            ip = cfg.get("private_ip_address") if isinstance(cfg, Mapping) else None
            if not ip:
                ip = resolve_nic_ip(parsed.resource_group, nic_name)
            members.append(
                LoadBalancerBackendRecord(
                    load_balancer=lb_name,
                    pool=pool_name,
                    virtual_machine=vm_by_nic.lookup(nic_name),
                    network_interface=nic_name,
                    private_ip=text(ip),
                )
            )
        if not members:
            for addr in pool.get("load_balancer_backend_addresses") or []:
                if not isinstance(addr, Mapping):
                    continue
                nic_name = rid.name_or_default(addr.get("network_interface_ip_configuration"), rid.RESOURCE_NAME)
                members.append(
                    LoadBalancerBackendRecord(
                        load_balancer=lb_name,
                        pool=pool_name,
                        virtual_machine=vm_by_nic.lookup(nic_name),
                        network_interface=nic_name,
                        private_ip=text(addr.get("ip_address")),
                    )
                )
        if not members:
            members.append(
                LoadBalancerBackendRecord(
                    load_balancer=lb_name,
                    pool=pool_name,
                    virtual_machine=MISSING,
                    network_interface=MISSING,
                    private_ip=MISSING,
                )
            )
        out.extend(members)
    return out


def normalize_lb_probes(lb: Dict[str, Any]) -> List[LoadBalancerProbeRecord]:
    name = text(lb.get("name"))
    out: List[LoadBalancerProbeRecord] = []
    for probe in lb.get("probes") or []:
        if not isinstance(probe, Mapping):
            continue
        out.append(
            LoadBalancerProbeRecord(
                load_balancer=name,
                name=text(probe.get("name")),
                protocol=text(probe.get("protocol")),
                port=text(probe.get("port")),
                interval=text(probe.get("interval_in_seconds")),
                probes=text(probe.get("number_of_probes") or probe.get("probe_threshold")),
                path=text(probe.get("request_path")),
            )
        )
    return out


def normalize_lb_rules(lb: Dict[str, Any]) -> List[LoadBalancerRuleRecord]:
    name = text(lb.get("name"))
    out: List[LoadBalancerRuleRecord] = []
    for rule in lb.get("load_balancing_rules") or []:
        if not isinstance(rule, Mapping):
            continue
        pool_ref = rule.get("backend_address_pool") or first(rule.get("backend_address_pools"))
        out.append(
            LoadBalancerRuleRecord(
                load_balancer=name,
                name=text(rule.get("name")),
                # sub-resource ids: offset 10 is the frontend/pool/probe name
                frontend=rid.name_or_default(rule.get("frontend_ip_configuration"), rid.CHILD_NAME),
                backend_pool=rid.name_or_default(pool_ref, rid.CHILD_NAME),
                probe=rid.name_or_default(rule.get("probe"), rid.CHILD_NAME),
                protocol=text(rule.get("protocol")),
                frontend_port=text(rule.get("frontend_port")),
                backend_port=text(rule.get("backend_port")),
                floating_ip=text(bool(rule.get("enable_floating_ip"))),
            )
        )
    return out
