"""Warehouse/zone directory port — where a product sits inside a warehouse."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class BinLookupFailed(Exception):
    """The directory has no usable location for the product."""


@dataclass(frozen=True)
class BinLocation:
    zone: str
    aisle: str
    shelf: str

    @property
    def code(self) -> str:
        return f"{self.zone}-{self.aisle}-{self.shelf}"


class BinDirectoryPort(ABC):
    @abstractmethod
    def get_bin_location(self, product_id: str, warehouse_id: str) -> BinLocation:
        """Return the bin holding the product, or raise BinLookupFailed."""
        ...


class InMemoryBinDirectory(BinDirectoryPort):
    def __init__(self):
        self._bins: dict[tuple[str, str], BinLocation] = {}
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        """Make every lookup fail, as an unreachable directory would."""
        self.should_succeed = should_succeed

    def place(self, product_id: str, warehouse_id: str, zone: str, aisle: str = "01", shelf: str = "A") -> BinLocation:
        location = BinLocation(zone=zone, aisle=aisle, shelf=shelf)
        self._bins[(product_id, warehouse_id)] = location
        return location

    def get_bin_location(self, product_id: str, warehouse_id: str) -> BinLocation:
        if not self.should_succeed:
            raise BinLookupFailed("Bin directory unavailable")
        location = self._bins.get((product_id, warehouse_id))
        if location is None:
            raise BinLookupFailed(f"No bin recorded for {product_id} at {warehouse_id}")
        return location
