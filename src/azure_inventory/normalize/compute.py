from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..util.time import format_date
from . import resource_id as rid
from .schedule import term_end_date
from .schema import DiskRecord, NetworkInterfaceRecord, ReservationRecord, VirtualMachineRecord
from .transform import MISSING, _get, first, joined, text
from .xref import CrossReferenceIndex

UNATTACHED_DISK_SERVER = "Unknown"
UNKNOWN_POWER_STATE = "Unknown"


def _resource_group(raw: Mapping[str, Any]) -> str:
    resource_id = str(raw.get("id") or "")
    if not resource_id:
        return MISSING
    return rid.ResourceId(resource_id).resource_group


def _nic_ids(vm: Mapping[str, Any]) -> List[str]:
    out: List[str] = []
    for nic in _get(vm, "network_profile", "network_interfaces") or []:
        if isinstance(nic, Mapping) and nic.get("id"):
            out.append(str(nic["id"]))
    return out


def vm_nic_names(vm: Mapping[str, Any]) -> List[str]:
    # NIC id offset 8 is the NIC name
    return [rid.segment_at(nic_id, rid.RESOURCE_NAME) for nic_id in _nic_ids(vm)]


def power_state(vm: Mapping[str, Any]) -> str:
    for status in _get(vm, "instance_view", "statuses") or []:
        if not isinstance(status, Mapping):
            continue
        code = str(status.get("code") or "")
        if code.startswith("PowerState/"):
            return text(status.get("display_status"), default=code.split("/", 1)[1])
    return UNKNOWN_POWER_STATE


def normalize_virtual_machine(vm: Dict[str, Any]) -> VirtualMachineRecord:
    name = text(vm.get("name"))
    computer_name = _get(vm, "os_profile", "computer_name") or _get(vm, "instance_view", "computer_name")
    zones = vm.get("zones") or []
    os_type = _get(vm, "storage_profile", "os_disk", "os_type") or _get(vm, "instance_view", "os_name")
    return VirtualMachineRecord(
        name=name,
        computer_name=text(computer_name, default=f"({name})"),
        resource_group=_resource_group(vm),
        location=text(vm.get("location")),
        zone=joined(zones),
        size=text(_get(vm, "hardware_profile", "vm_size")),
        os_type=text(os_type),
        power_state=power_state(vm),
        network_interfaces=joined(vm_nic_names(vm)),
    )


def normalize_disk(disk: Dict[str, Any]) -> DiskRecord:
    managed_by = disk.get("managed_by")
    server = rid.name_or_default(managed_by, rid.RESOURCE_NAME, default=UNATTACHED_DISK_SERVER)
    size = disk.get("disk_size_gb")
    return DiskRecord(
        name=text(disk.get("name")),
        resource_group=_resource_group(disk),
        server=server,
        size_gb=text(size),
        sku=text(_get(disk, "sku", "name")),
        state=text(disk.get("disk_state")),
        os_type=text(disk.get("os_type")),
    )


def normalize_reservation(order: Dict[str, Any], reservation: Optional[Dict[str, Any]] = None) -> ReservationRecord:
    """
    A reservation row combines the order (term, benefit start) with one of its
    reservations (SKU, quantity). Orders listed without reservation detail still
    produce a row from the order alone.
    """
    props: Dict[str, Any] = dict((reservation or {}).get("properties") or {})
    term = props.get("term") or order.get("term")
    start = order.get("benefit_start_time") or props.get("effective_date_time") or order.get("created_date_time")
    end = term_end_date(start, term)
    name = props.get("display_name") or order.get("display_name") or (reservation or {}).get("name")
    return ReservationRecord(
        name=text(name),
        resource_type=text(props.get("reserved_resource_type")),
        sku=text(_get(reservation or {}, "sku", "name")),
        quantity=text(props.get("quantity") if props.get("quantity") is not None else order.get("original_quantity")),
        term=text(term),
        start_date=format_date(start),
        end_date=end.isoformat() if end else MISSING,
        state=text(props.get("display_provisioning_state") or props.get("provisioning_state") or order.get("provisioning_state")),
    )


def vm_by_nic_index(vms: List[Dict[str, Any]]) -> CrossReferenceIndex:
    """NIC name -> owning VM name, built from the VM collection."""
    return CrossReferenceIndex.build(vms, vm_nic_names, lambda vm: vm.get("name"))


def normalize_network_interface(nic: Dict[str, Any], vm_by_nic: CrossReferenceIndex) -> NetworkInterfaceRecord:
    name = text(nic.get("name"))
    ip = first(nic.get("ip_configurations"))
    subnet_ref = ip.get("subnet")
    vm_name = vm_by_nic.lookup(name)
    if vm_name == MISSING:
        # VM id offset 8 is the VM name
        vm_name = rid.name_or_default(nic.get("virtual_machine"), rid.RESOURCE_NAME)
    return NetworkInterfaceRecord(
        name=name,
        resource_group=_resource_group(nic),
        virtual_machine=vm_name,
        private_ip=text(ip.get("private_ip_address")),
        allocation=text(ip.get("private_ip_allocation_method")),
        # subnet id: offset 8 = virtual network, offset 10 = subnet
        virtual_network=rid.name_or_default(subnet_ref, rid.RESOURCE_NAME),
        subnet=rid.name_or_default(subnet_ref, rid.CHILD_NAME),
        security_group=rid.name_or_default(nic.get("network_security_group"), rid.RESOURCE_NAME),
        accelerated=text(bool(nic.get("enable_accelerated_networking"))),
    )


def first_private_ip(nic: Mapping[str, Any]) -> str:
    return text(first(nic.get("ip_configurations")).get("private_ip_address"))
