from __future__ import annotations

import pytest

from azure_inventory.normalize.compute import (
    first_private_ip,
    normalize_disk,
    normalize_network_interface,
    normalize_reservation,
    normalize_virtual_machine,
    power_state,
    vm_by_nic_index,
)
from azure_inventory.normalize.xref import CrossReferenceIndex
from azure_inventory.util.errors import MalformedIdError

from conftest import arm_id


def _vm(name: str, nics=("nic1",), computer_name=None, statuses=None) -> dict:
    vm = {
        "id": arm_id("rg-app", "Microsoft.Compute", "virtualMachines", name),
        "name": name,
        "location": "westeurope",
        "hardware_profile": {"vm_size": "Standard_D2s_v5"},
        "storage_profile": {"os_disk": {"os_type": "Linux"}},
        "network_profile": {
            "network_interfaces": [
                {"id": arm_id("rg-app", "Microsoft.Network", "networkInterfaces", nic)} for nic in nics
            ]
        },
    }
    if computer_name is not None:
        vm["os_profile"] = {"computer_name": computer_name}
    if statuses is not None:
        vm["instance_view"] = {"statuses": statuses}
    return vm


def test_virtual_machine_row() -> None:
    vm = _vm(
        "vm-web",
        nics=("nic-web-1", "nic-web-2"),
        computer_name="web01",
        statuses=[
            {"code": "ProvisioningState/succeeded"},
            {"code": "PowerState/running", "display_status": "VM running"},
        ],
    )
    vm["zones"] = ["1"]
    record = normalize_virtual_machine(vm)
    assert record.name == "vm-web"
    assert record.computer_name == "web01"
    assert record.resource_group == "rg-app"
    assert record.zone == "1"
    assert record.size == "Standard_D2s_v5"
    assert record.os_type == "Linux"
    assert record.power_state == "VM running"
    assert record.network_interfaces == "nic-web-1, nic-web-2"


def test_computer_name_falls_back_to_parenthesised_name() -> None:
    record = normalize_virtual_machine(_vm("vm-off"))
    assert record.computer_name == "(vm-off)"
    assert record.zone == "-"
    assert record.power_state == "Unknown"


def test_power_state_uses_code_when_display_missing() -> None:
    assert power_state({"instance_view": {"statuses": [{"code": "PowerState/deallocated"}]}}) == "deallocated"


def test_unattached_disk_reports_unknown_server() -> None:
    disk = {
        "id": arm_id("rg-data", "Microsoft.Compute", "disks", "orphan"),
        "name": "orphan",
        "managed_by": None,
        "disk_size_gb": 128,
        "sku": {"name": "Premium_LRS"},
        "disk_state": "Unattached",
    }
    record = normalize_disk(disk)
    assert record.server == "Unknown"
    assert record.size_gb == "128"
    assert record.resource_group == "rg-data"
    assert record.os_type == "-"


def test_attached_disk_reports_vm_name() -> None:
    disk = {
        "id": arm_id("rg-data", "Microsoft.Compute", "disks", "osdisk"),
        "name": "osdisk",
        "managed_by": arm_id("rg-app", "Microsoft.Compute", "virtualMachines", "vm-web"),
    }
    assert normalize_disk(disk).server == "vm-web"


def test_disk_with_truncated_owner_id_raises() -> None:
    disk = {"id": arm_id("rg", "Microsoft.Compute", "disks", "d"), "managed_by": "/subscriptions/x/resourceGroups/rg"}
    with pytest.raises(MalformedIdError):
        normalize_disk(disk)


def test_reservation_row_computes_end_date_for_years() -> None:
    order = {"display_name": "ri-order", "term": "P3Y", "benefit_start_time": "2022-03-01T00:00:00Z"}
    reservation = {
        "name": "order/res",
        "sku": {"name": "Standard_D2s_v5"},
        "properties": {
            "display_name": "ri-d2",
            "reserved_resource_type": "VirtualMachines",
            "quantity": 2,
            "display_provisioning_state": "Succeeded",
        },
    }
    record = normalize_reservation(order, reservation)
    assert record.name == "ri-d2"
    assert record.sku == "Standard_D2s_v5"
    assert record.quantity == "2"
    assert record.start_date == "2022-03-01"
    assert record.end_date == "2025-03-01"
    assert record.state == "Succeeded"


def test_reservation_order_alone_and_monthly_term() -> None:
    order = {"display_name": "ri-monthly", "term": "P6M", "created_date_time": "2023-01-15", "original_quantity": 1}
    record = normalize_reservation(order)
    assert record.name == "ri-monthly"
    assert record.quantity == "1"
    assert record.end_date == "-"
    assert record.sku == "-"


def test_network_interface_resolves_vm_and_subnet() -> None:
    vms = [_vm("vm-web", nics=("nic-web",))]
    index = vm_by_nic_index(vms)
    nic = {
        "id": arm_id("rg-app", "Microsoft.Network", "networkInterfaces", "nic-web"),
        "name": "nic-web",
        "enable_accelerated_networking": True,
        "network_security_group": {"id": arm_id("rg-app", "Microsoft.Network", "networkSecurityGroups", "nsg-web")},
        "ip_configurations": [
            {
                "private_ip_address": "10.0.1.4",
                "private_ip_allocation_method": "Static",
                "subnet": {"id": arm_id("rg-net", "Microsoft.Network", "virtualNetworks", "vnet-hub", "subnets", "app")},
            }
        ],
    }
    record = normalize_network_interface(nic, index)
    assert record.virtual_machine == "vm-web"
    assert record.private_ip == "10.0.1.4"
    assert record.virtual_network == "vnet-hub"
    assert record.subnet == "app"
    assert record.security_group == "nsg-web"
    assert record.accelerated == "Yes"
    assert first_private_ip(nic) == "10.0.1.4"


def test_detached_network_interface_has_dash_vm() -> None:
    nic = {"id": arm_id("rg", "Microsoft.Network", "networkInterfaces", "spare"), "name": "spare"}
    record = normalize_network_interface(nic, CrossReferenceIndex())
    assert record.virtual_machine == "-"
    assert record.subnet == "-"
    assert record.accelerated == "No"
    assert first_private_ip(nic) == "-"
