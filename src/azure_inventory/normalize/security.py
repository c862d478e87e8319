from __future__ import annotations

from typing import Any, Dict, List, Mapping

from . import resource_id as rid
from .schema import FirewallRecord, FirewallRuleRecord, IpGroupRecord, KeyVaultRecord, SecurityGroupRecord, SecurityRuleRecord
from .transform import MISSING, _get, first, joined, text
from .xref import CrossReferenceIndex

RULE_TYPE_LABELS = {
    "NetworkRule": "Network",
    "ApplicationRule": "Application",
    "NatRule": "DNAT",
}

COLLECTION_TYPE_LABELS = {
    "FirewallPolicyFilterRuleCollection": "Filter",
    "FirewallPolicyNatRuleCollection": "DNAT",
}


def _ref_names(refs: Any, offset: int) -> List[str]:
    out: List[str] = []
    for ref in refs or []:
        name = rid.name_or_default(ref, offset, default="")
        if name:
            out.append(name)
    return out


def normalize_security_group(nsg: Dict[str, Any]) -> SecurityGroupRecord:
    return SecurityGroupRecord(
        name=text(nsg.get("name")),
        resource_group=rid.name_or_default(nsg.get("id"), rid.RESOURCE_GROUP),
        location=text(nsg.get("location")),
        custom_rules=str(len(nsg.get("security_rules") or [])),
        # subnet ids: offset 10 is the subnet name
        subnets=joined(_ref_names(nsg.get("subnets"), rid.CHILD_NAME)),
        network_interfaces=joined(_ref_names(nsg.get("network_interfaces"), rid.RESOURCE_NAME)),
    )


def _prefixes(rule: Mapping[str, Any], single: str, plural: str, asg: str | None = None) -> str:
    value = rule.get(single)
    if value:
        return text(value)
    values = list(rule.get(plural) or [])
    if asg:
        values.extend(_ref_names(rule.get(asg), rid.RESOURCE_NAME))
    return joined(values)


def normalize_security_rule(rule: Dict[str, Any]) -> SecurityRuleRecord:
    return SecurityRuleRecord(
        priority=text(rule.get("priority")),
        name=text(rule.get("name")),
        direction=text(rule.get("direction")),
        access=text(rule.get("access")),
        protocol=text(rule.get("protocol")),
        source=_prefixes(
            rule, "source_address_prefix", "source_address_prefixes", "source_application_security_groups"
        ),
        source_ports=_prefixes(rule, "source_port_range", "source_port_ranges"),
        destination=_prefixes(
            rule,
            "destination_address_prefix",
            "destination_address_prefixes",
            "destination_application_security_groups",
        ),
        destination_ports=_prefixes(rule, "destination_port_range", "destination_port_ranges"),
    )


def normalize_firewall(fw: Dict[str, Any]) -> FirewallRecord:
    ip_configs = fw.get("ip_configurations") or []
    public_ips = [
        rid.name_or_default(c.get("public_ip_address"), rid.RESOURCE_NAME, default="")
        for c in ip_configs
        if isinstance(c, Mapping)
    ]
    hub_ips = _get(fw, "hub_ip_addresses", "public_i_ps", "addresses") or []
    public_ips.extend(str(a.get("address")) for a in hub_ips if isinstance(a, Mapping) and a.get("address"))
    private_ip = first(ip_configs).get("private_ip_address") or _get(fw, "hub_ip_addresses", "private_ip_address")
    return FirewallRecord(
        name=text(fw.get("name")),
        resource_group=rid.name_or_default(fw.get("id"), rid.RESOURCE_GROUP),
        tier=text(_get(fw, "sku", "tier")),
        threat_intel=text(fw.get("threat_intel_mode")),
        policy=rid.name_or_default(fw.get("firewall_policy"), rid.RESOURCE_NAME),
        private_ip=text(private_ip),
        public_ips=joined(public_ips),
    )


def classify_rule_type(rule_type: Any) -> str:
    raw = str(rule_type or "")
    return RULE_TYPE_LABELS.get(raw, raw or MISSING)


def ip_group_index(ip_groups: List[Dict[str, Any]]) -> CrossReferenceIndex:
    """IP group id -> IP group name."""
    return CrossReferenceIndex.build(ip_groups, lambda g: g.get("id"), lambda g: g.get("name"))


def _endpoints(addresses: Any, groups: Any, fqdns: Any, ip_groups: CrossReferenceIndex) -> str:
    values: List[str] = [str(a) for a in addresses or []]
    values.extend(ip_groups.lookup(g) for g in groups or [])
    values.extend(str(f) for f in fqdns or [])
    return joined(values)


def _rule_ports(rule: Mapping[str, Any]) -> str:
    ports = list(rule.get("destination_ports") or [])
    if rule.get("translated_port"):
        ports = [f"{p} -> {rule['translated_port']}" for p in ports] or [str(rule["translated_port"])]
    for proto in rule.get("protocols") or []:
        if isinstance(proto, Mapping):
            ports.append(f"{proto.get('protocol_type')}:{proto.get('port')}")
    return joined(ports)


def normalize_firewall_rules(
    policy_name: str,
    group: Dict[str, Any],
    ip_groups: CrossReferenceIndex,
) -> List[FirewallRuleRecord]:
    """
    Flatten one firewall-policy rule collection group into one row per rule.
    """
    out: List[FirewallRuleRecord] = []
    group_name = text(group.get("name"))
    for collection in group.get("rule_collections") or []:
        if not isinstance(collection, Mapping):
            continue
        collection_type = str(collection.get("rule_collection_type") or "")
        action = _get(collection, "action", "type") or COLLECTION_TYPE_LABELS.get(collection_type)
        for rule in collection.get("rules") or []:
            if not isinstance(rule, Mapping):
                continue
            destination = _endpoints(
                rule.get("destination_addresses"),
                rule.get("destination_ip_groups"),
                list(rule.get("destination_fqdns") or []) + list(rule.get("target_fqdns") or []),
                ip_groups,
            )
            if rule.get("translated_address") or rule.get("translated_fqdn"):
                destination = f"{destination} -> {rule.get('translated_address') or rule.get('translated_fqdn')}"
            out.append(
                FirewallRuleRecord(
                    policy=policy_name,
                    collection_group=group_name,
                    collection=text(collection.get("name")),
                    priority=text(collection.get("priority")),
                    action=text(action),
                    rule_type=classify_rule_type(rule.get("rule_type")),
                    name=text(rule.get("name")),
                    source=_endpoints(rule.get("source_addresses"), rule.get("source_ip_groups"), None, ip_groups),
                    destination=destination,
                    ports=_rule_ports(rule),
                )
            )
    return out


def normalize_ip_group(group: Dict[str, Any]) -> IpGroupRecord:
    return IpGroupRecord(
        name=text(group.get("name")),
        resource_group=rid.name_or_default(group.get("id"), rid.RESOURCE_GROUP),
        location=text(group.get("location")),
        addresses=joined(group.get("ip_addresses") or []),
    )


def normalize_key_vault(vault: Dict[str, Any]) -> KeyVaultRecord:
    props = vault.get("properties") or {}
    return KeyVaultRecord(
        name=text(vault.get("name")),
        resource_group=rid.name_or_default(vault.get("id"), rid.RESOURCE_GROUP),
        location=text(vault.get("location")),
        sku=text(_get(props, "sku", "name")),
        soft_delete=text(props.get("enable_soft_delete") is not False),
        purge_protection=text(bool(props.get("enable_purge_protection"))),
        rbac_authorization=text(bool(props.get("enable_rbac_authorization"))),
    )
