from __future__ import annotations

from typing import List, Tuple

import pytest

from azure_inventory.normalize import network
from azure_inventory.normalize.transform import bytes_to_display_gb
from azure_inventory.normalize.xref import CrossReferenceIndex

from conftest import arm_id


def test_site_to_site_connection() -> None:
    conn = {
        "name": "conn-branch",
        "virtual_network_gateway1": {"id": arm_id("rg", "Microsoft.Network", "virtualNetworkGateways", "vpngw")},
        "local_network_gateway2": {"id": arm_id("rg", "Microsoft.Network", "localNetworkGateways", "lgw-branch")},
        "connection_status": "Connected",
        "ingress_bytes_transferred": 1048576,
        "egress_bytes_transferred": 2621440,
    }
    assert network.classify_connection(conn) == (False, "lgw-branch")
    record = network.normalize_gateway_connection(conn)
    assert record.connection_type == "Site-to-Site"
    assert record.express_route == "No"
    assert record.gateway == "vpngw"
    assert record.ingress_gb == "1"
    assert record.egress_gb == "3"


def test_express_route_connection() -> None:
    conn = {
        "name": "conn-er",
        "peer": {"id": arm_id("rg", "Microsoft.Network", "expressRouteCircuits", "er-circuit")},
    }
    assert network.classify_connection(conn) == (True, "er-circuit")
    assert network.normalize_gateway_connection(conn).connection_type == "ExpressRoute"


def test_connection_without_endpoint_is_empty() -> None:
    conn = {"name": "conn-v2v", "connection_type": "Vnet2Vnet"}
    assert network.classify_connection(conn) == (False, "Empty")
    record = network.normalize_gateway_connection(conn)
    assert record.connection_type == "Vnet2Vnet"
    assert record.ingress_gb == "0"


def test_peer_that_is_not_a_circuit_is_empty() -> None:
    conn = {"peer": {"id": arm_id("rg", "Microsoft.Network", "virtualNetworkGateways", "other")}}
    assert network.classify_connection(conn) == (False, "Empty")


def test_express_route_kind_matches_regardless_of_case() -> None:
    conn = {"peer": {"id": arm_id("rg", "microsoft.network", "expressroutecircuits", "er1")}}
    assert network.classify_connection(conn) == (True, "er1")


@pytest.mark.parametrize(
    "value,expected",
    [(0, "0"), (None, "0"), (524288, "1"), (524287, "0"), (1048576, "1"), (2621440, "3"), ("bogus", "-"), ("NaN", "-")],
)
def test_bytes_to_display_gb_rounds_half_up(value, expected) -> None:
    assert bytes_to_display_gb(value) == expected


def test_public_ip_association() -> None:
    used = {
        "id": arm_id("rg", "Microsoft.Network", "publicIPAddresses", "pip-web"),
        "name": "pip-web",
        "ip_address": "20.1.2.3",
        "ip_configuration": {
            "id": arm_id("rg", "Microsoft.Network", "networkInterfaces", "nic-web", "ipConfigurations", "ipconfig1")
        },
    }
    unused = {"id": arm_id("rg", "Microsoft.Network", "publicIPAddresses", "pip-spare"), "name": "pip-spare"}
    assert network.normalize_public_ip(used).associated_to == "nic-web"
    assert network.normalize_public_ip(unused).associated_to == "Unused or NAT"


def test_local_gateway_address_fallbacks() -> None:
    assert network.local_gateway_address({"gateway_ip_address": "1.2.3.4", "fqdn": "vpn.example.com"}) == "1.2.3.4"
    assert network.local_gateway_address({"fqdn": "vpn.example.com"}) == "vpn.example.com"
    assert network.local_gateway_address({}) == "Unknown"


def test_virtual_network_without_subnets_yields_one_row() -> None:
    rows = network.normalize_virtual_network({"name": "vnet-empty", "address_space": {"address_prefixes": ["10.9.0.0/16"]}})
    assert len(rows) == 1
    assert rows[0].subnet == "-"
    assert rows[0].address_space == "10.9.0.0/16"


def test_virtual_network_subnets_and_peerings() -> None:
    vnet = {
        "name": "vnet-hub",
        "address_space": {"address_prefixes": ["10.0.0.0/16"]},
        "subnets": [
            {
                "name": "app",
                "address_prefix": "10.0.1.0/24",
                "network_security_group": {"id": arm_id("rg", "Microsoft.Network", "networkSecurityGroups", "nsg-app")},
            },
            {"name": "GatewaySubnet", "address_prefix": "10.0.255.0/27"},
        ],
        "virtual_network_peerings": [
            {
                "name": "hub-to-spoke",
                "remote_virtual_network": {"id": arm_id("rg2", "Microsoft.Network", "virtualNetworks", "vnet-spoke")},
                "peering_state": "Connected",
                "allow_gateway_transit": True,
            }
        ],
    }
    subnets = network.normalize_virtual_network(vnet)
    assert [s.subnet for s in subnets] == ["app", "GatewaySubnet"]
    assert subnets[0].security_group == "nsg-app"
    assert subnets[1].security_group == "-"
    peerings = network.normalize_virtual_network_peerings(vnet)
    assert peerings[0].remote_network == "vnet-spoke"
    assert peerings[0].gateway_transit == "Yes"
    assert peerings[0].remote_gateways == "No"


def test_nat_gateway_and_bastion() -> None:
    nat = {
        "id": arm_id("rg-net", "Microsoft.Network", "natGateways", "nat1"),
        "name": "nat1",
        "public_ip_addresses": [{"id": arm_id("rg-net", "Microsoft.Network", "publicIPAddresses", "pip-nat")}],
        "subnets": [{"id": arm_id("rg-net", "Microsoft.Network", "virtualNetworks", "vnet", "subnets", "app")}],
        "idle_timeout_in_minutes": 4,
    }
    record = network.normalize_nat_gateway(nat)
    assert (record.public_ips, record.subnets, record.idle_timeout) == ("pip-nat", "app", "4")

    bastion = {
        "id": arm_id("rg-net", "Microsoft.Network", "bastionHosts", "bas1"),
        "name": "bas1",
        "sku": {"name": "Standard"},
        "ip_configurations": [
            {
                "public_ip_address": {"id": arm_id("rg-net", "Microsoft.Network", "publicIPAddresses", "pip-bas")},
                "subnet": {"id": arm_id("rg-net", "Microsoft.Network", "virtualNetworks", "vnet", "subnets", "AzureBastionSubnet")},
            }
        ],
    }
    record = network.normalize_bastion(bastion)
    assert (record.public_ip, record.virtual_network, record.resource_group) == ("pip-bas", "vnet", "rg-net")


def _lb() -> dict:
    nic_cfg = lambda nic: {  # noqa: E731
        "id": arm_id("rg-app", "Microsoft.Network", "networkInterfaces", nic, "ipConfigurations", "ipconfig1")
    }
    return {
        "id": arm_id("rg-app", "Microsoft.Network", "loadBalancers", "lb-web"),
        "name": "lb-web",
        "sku": {"name": "Standard"},
        "frontend_ip_configurations": [
            {
                "name": "fe",
                "private_ip_address": "10.0.1.10",
                "subnet": {"id": arm_id("rg-net", "Microsoft.Network", "virtualNetworks", "vnet", "subnets", "app")},
            }
        ],
        "backend_address_pools": [
            {"name": "pool-web", "backend_ip_configurations": [dict(nic_cfg("nic-web-1"), private_ip_address="10.0.1.4"), nic_cfg("nic-web-2")]},
            {"name": "pool-empty"},
        ],
        "probes": [{"name": "http", "protocol": "Http", "port": 80, "interval_in_seconds": 5, "number_of_probes": 2, "request_path": "/"}],
        "load_balancing_rules": [
            {
                "name": "rule-http",
                "frontend_ip_configuration": {"id": arm_id("rg-app", "Microsoft.Network", "loadBalancers", "lb-web", "frontendIPConfigurations", "fe")},
                "backend_address_pool": {"id": arm_id("rg-app", "Microsoft.Network", "loadBalancers", "lb-web", "backendAddressPools", "pool-web")},
                "probe": {"id": arm_id("rg-app", "Microsoft.Network", "loadBalancers", "lb-web", "probes", "http")},
                "protocol": "Tcp",
                "frontend_port": 80,
                "backend_port": 8080,
            }
        ],
    }


def test_lb_backends_resolve_vm_and_fetch_missing_ip() -> None:
    index = CrossReferenceIndex({"nic-web-1": "vm-web-1"})
    lookups: List[Tuple[str, str]] = []

    def resolver(rg: str, nic: str) -> str:
        lookups.append((rg, nic))
        return "10.0.1.5"

    rows = network.normalize_lb_backends(_lb(), index, resolver)
    assert [(r.pool, r.virtual_machine, r.network_interface, r.private_ip) for r in rows] == [
        ("pool-web", "vm-web-1", "nic-web-1", "10.0.1.4"),
        ("pool-web", "-", "nic-web-2", "10.0.1.5"),
        ("pool-empty", "-", "-", "-"),
    ]
    assert lookups == [("rg-app", "nic-web-2")]


def test_lb_summary_frontends_probes_rules() -> None:
    lb = _lb()
    summary = network.normalize_load_balancer(lb)
    assert (summary.frontends, summary.backend_pools, summary.rules) == ("1", "2", "1")
    assert network.normalize_lb_frontends(lb)[0].subnet == "app"
    probe = network.normalize_lb_probes(lb)[0]
    assert (probe.port, probe.probes, probe.path) == ("80", "2", "/")
    rule = network.normalize_lb_rules(lb)[0]
    assert (rule.frontend, rule.backend_pool, rule.probe, rule.backend_port) == ("fe", "pool-web", "http", "8080")
    assert rule.floating_ip == "No"
