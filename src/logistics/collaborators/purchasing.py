"""Purchasing port — asks the buying team to replenish a product."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReorderRequest:
    product_id: str
    warehouse_id: str
    quantity: int


class PurchasingPort(ABC):
    @abstractmethod
    def request_reorder(self, product_id: str, warehouse_id: str, quantity: int) -> None: ...


class LoggingPurchasing(PurchasingPort):
    def request_reorder(self, product_id: str, warehouse_id: str, quantity: int) -> None:
        logger.info("Reorder requested", product_id=product_id, warehouse_id=warehouse_id, quantity=quantity)


class InMemoryPurchasing(PurchasingPort):
    def __init__(self):
        self.requests: list[ReorderRequest] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        self.should_succeed = should_succeed

    def request_reorder(self, product_id: str, warehouse_id: str, quantity: int) -> None:
        if not self.should_succeed:
            raise ConnectionError("Purchasing service unavailable")
        self.requests.append(ReorderRequest(product_id, warehouse_id, quantity))
