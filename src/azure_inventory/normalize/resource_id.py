from __future__ import annotations

from typing import Any, List

from ..util.errors import MalformedIdError

# Offsets into "/subscriptions/<sub>/resourceGroups/<rg>/providers/<ns>/<kind>/<name>/<child-kind>/<child>".
# Parsing is positional: a change in path depth is reported as MalformedIdError.
RESOURCE_GROUP = 4
PROVIDER_KIND = 7
RESOURCE_NAME = 8
CHILD_NAME = 10

# Recovery Services protected items:
# .../vaults/<vault>/backupFabrics/<fabric>/protectionContainers/<container>/protectedItems/<item>
BACKUP_FABRIC = 10
PROTECTION_CONTAINER = 12
PROTECTED_ITEM = 14


def segment_at(resource_id: str, offset: int) -> str:
    """
    Return the slash-delimited segment of resource_id at offset.
    Raises MalformedIdError if the id is shorter than offset.
    """
    parts = str(resource_id or "").split("/")
    if offset < 0 or offset >= len(parts):
        raise MalformedIdError(str(resource_id), offset)
    return parts[offset]


def name_or_default(reference: Any, offset: int = RESOURCE_NAME, default: str = "-") -> str:
    """
    Resolve a reference ({"id": ...} or an id string) to the segment at offset.
    Absent references return default; present but malformed ids still raise.
    """
    resource_id = reference_id(reference)
    if not resource_id:
        return default
    return segment_at(resource_id, offset) or default


def reference_id(reference: Any) -> str:
    if isinstance(reference, dict):
        return str(reference.get("id") or "")
    if isinstance(reference, str):
        return reference
    return ""


class ResourceId:
    """
    Typed view over an ARM resource id with named accessors.

    Each accessor documents the offset it reads; callers pick the accessor that
    matches the kind of id they hold rather than indexing by hand.
    """

    def __init__(self, value: str) -> None:
        self.value = str(value or "")
        self._parts: List[str] = self.value.split("/")

    def __repr__(self) -> str:
        return f"ResourceId({self.value!r})"

    def __str__(self) -> str:
        return self.value

    def segment_at(self, offset: int) -> str:
        if offset < 0 or offset >= len(self._parts):
            raise MalformedIdError(self.value, offset)
        return self._parts[offset]

    @property
    def resource_group(self) -> str:
        return self.segment_at(RESOURCE_GROUP)

    @property
    def provider_kind(self) -> str:
        """Resource-kind segment, e.g. 'networkInterfaces' or 'expressRouteCircuits'."""
        return self.segment_at(PROVIDER_KIND)

    @property
    def resource_name(self) -> str:
        """Top-level resource name; also the owner name for sub-resource ids."""
        return self.segment_at(RESOURCE_NAME)

    @property
    def child_name(self) -> str:
        """Sub-resource name (subnet, LB frontend, probe, backend pool...)."""
        return self.segment_at(CHILD_NAME)

    @property
    def backup_fabric(self) -> str:
        return self.segment_at(BACKUP_FABRIC)

    @property
    def protection_container(self) -> str:
        return self.segment_at(PROTECTION_CONTAINER)

    @property
    def protected_item(self) -> str:
        return self.segment_at(PROTECTED_ITEM)
