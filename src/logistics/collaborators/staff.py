"""Authorization port — which staff may perform which warehouse step."""

from abc import ABC, abstractmethod
from enum import Enum


class Capability(Enum):
    ASSIGN = "fulfillment.assign"
    PICK = "fulfillment.pick"
    QUALITY_CHECK = "fulfillment.quality_check"
    PACK = "fulfillment.pack"
    SHIP = "fulfillment.ship"
    DELIVER = "fulfillment.deliver"
    CANCEL = "fulfillment.cancel"
    RETURN = "fulfillment.return"


ALL_WAREHOUSES = "*"


class StaffDirectoryPort(ABC):
    @abstractmethod
    def check_staff_permission(self, staff_id: str, capability: Capability, warehouse_id: str) -> bool: ...


class InMemoryStaffDirectory(StaffDirectoryPort):
    """Grants kept in a dict. ``allow_all`` short-circuits every check."""

    def __init__(self, allow_all: bool = False):
        self.allow_all = allow_all
        self._grants: dict[str, set[tuple[Capability, str]]] = {}

    def grant(self, staff_id: str, *capabilities: Capability, warehouse_id: str = ALL_WAREHOUSES) -> None:
        capabilities = capabilities or tuple(Capability)
        self._grants.setdefault(staff_id, set()).update((c, warehouse_id) for c in capabilities)

    def revoke(self, staff_id: str) -> None:
        self._grants.pop(staff_id, None)

    def check_staff_permission(self, staff_id: str, capability: Capability, warehouse_id: str) -> bool:
        if self.allow_all:
            return True
        grants = self._grants.get(staff_id, set())
        return (capability, warehouse_id) in grants or (capability, ALL_WAREHOUSES) in grants
