from __future__ import annotations

import pytest

from azure_inventory.normalize import resource_id as rid
from azure_inventory.util.errors import MalformedIdError

SUB = "/subscriptions/x/resourceGroups/rg1/providers"


@pytest.mark.parametrize(
    "resource_id,offset,expected",
    [
        (f"{SUB}/Microsoft.Network/networkInterfaces/nic1", rid.RESOURCE_NAME, "nic1"),
        (f"{SUB}/Microsoft.Network/networkInterfaces/nic1", rid.RESOURCE_GROUP, "rg1"),
        (f"{SUB}/Microsoft.Compute/virtualMachines/vm1", rid.RESOURCE_NAME, "vm1"),
        (f"{SUB}/Microsoft.Network/virtualNetworks/vnet1/subnets/app", rid.CHILD_NAME, "app"),
        (f"{SUB}/Microsoft.Network/virtualNetworks/vnet1/subnets/app", rid.RESOURCE_NAME, "vnet1"),
        (f"{SUB}/Microsoft.Network/expressRouteCircuits/er1", rid.PROVIDER_KIND, "expressRouteCircuits"),
        (f"{SUB}/Microsoft.Network/loadBalancers/lb1/probes/http", rid.CHILD_NAME, "http"),
        (
            f"{SUB}/Microsoft.Network/networkInterfaces/nic7/ipConfigurations/ipconfig1",
            rid.RESOURCE_NAME,
            "nic7",
        ),
        (f"{SUB}/Microsoft.KeyVault/vaults/kv1", rid.RESOURCE_NAME, "kv1"),
    ],
)
def test_segment_at_documented_offsets(resource_id: str, offset: int, expected: str) -> None:
    assert rid.segment_at(resource_id, offset) == expected


def test_protected_item_offsets() -> None:
    item = rid.ResourceId(
        f"{SUB}/Microsoft.RecoveryServices/vaults/rsv1/backupFabrics/Azure"
        "/protectionContainers/IaasVMContainer;iaasvmcontainerv2;rg1;vm1"
        "/protectedItems/VM;iaasvmcontainerv2;rg1;vm1"
    )
    assert item.resource_name == "rsv1"
    assert item.backup_fabric == "Azure"
    assert item.protection_container == "IaasVMContainer;iaasvmcontainerv2;rg1;vm1"
    assert item.protected_item == "VM;iaasvmcontainerv2;rg1;vm1"


def test_segment_past_end_raises_malformed_id() -> None:
    with pytest.raises(MalformedIdError) as exc:
        rid.segment_at("/subscriptions/x/resourceGroups/rg1", rid.RESOURCE_NAME)
    assert exc.value.offset == rid.RESOURCE_NAME
    assert "rg1" in exc.value.resource_id


def test_typed_accessors_raise_on_short_ids() -> None:
    short = rid.ResourceId(f"{SUB}/Microsoft.Network/networkInterfaces/nic1")
    with pytest.raises(MalformedIdError):
        _ = short.child_name


def test_name_or_default_handles_absent_references() -> None:
    assert rid.name_or_default(None) == "-"
    assert rid.name_or_default({"id": None}, default="Unknown") == "Unknown"
    assert rid.name_or_default({"id": f"{SUB}/Microsoft.Compute/virtualMachines/vm9"}) == "vm9"


def test_name_or_default_still_raises_for_present_malformed_id() -> None:
    with pytest.raises(MalformedIdError):
        rid.name_or_default({"id": "/subscriptions/x"}, rid.RESOURCE_NAME)
