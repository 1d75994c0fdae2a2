"""Catalog port — read-only product facts owned by the catalog service."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError


@dataclass(frozen=True)
class Product:
    product_id: str
    sku: str
    name: str
    base_price: float
    weight: float = 0.0  # kg
    length: float = 0.0  # cm
    width: float = 0.0
    height: float = 0.0
    hazardous: bool = False

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height

    @property
    def largest_dimension(self) -> float:
        return max(self.length, self.width, self.height)


class CatalogPort(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> Product:
        """Return the product or raise ObjectNotFoundError."""
        ...


class InMemoryCatalog(CatalogPort):
    def __init__(self, products: list[Product] | None = None):
        self._products = {p.product_id: p for p in products or []}

    def add(self, product: Product) -> Product:
        self._products[product.product_id] = product
        return product

    def get_product(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ObjectNotFoundError(f"Product {product_id} is not in the catalog")
