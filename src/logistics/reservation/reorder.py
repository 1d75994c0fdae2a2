"""Reorder requests, raised off the reservation path.

A hold that leaves a stock record at or below its reorder level raises
LowStockDetected. The handler here asks purchasing for the record's
reorder quantity once per suppression window; a slow or failing
purchasing service never touches the reservation that tripped it.
"""

from datetime import timedelta

import structlog
from protean.utils.mixins import handle

from logistics.collaborators import deliver, get_purchasing
from logistics.collaborators.purchasing import PurchasingPort
from logistics.domain import logistics
from logistics.stock.events import LowStockDetected
from logistics.stock.stock import StockRecord
from logistics.utils.cache import TTLCache
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)


class ReorderRequester:
    def __init__(
        self,
        purchasing: PurchasingPort | None = None,
        suppress_for: timedelta = timedelta(hours=1),
        clock: Clock = utc_now,
    ):
        self.purchasing = purchasing
        self.recent: TTLCache[str, bool] = TTLCache(ttl=suppress_for, clock=clock, name="reorder-suppression")

    def request(self, stock_record_id: str, product_id: str, warehouse_id: str, quantity: int) -> bool:
        """Ask purchasing for ``quantity`` units unless asked recently. Returns whether a request went out."""
        if not quantity:
            return False
        if self.recent.get(stock_record_id):
            logger.debug("Reorder suppressed", stock_record_id=stock_record_id)
            return False
        self.recent.set(stock_record_id, True)

        purchasing = self.purchasing if self.purchasing is not None else get_purchasing()
        sent = deliver("purchasing", purchasing.request_reorder, product_id, warehouse_id, quantity)
        if sent:
            logger.info("Reorder requested", product_id=product_id, warehouse_id=warehouse_id, quantity=quantity)
        return sent


_current_requester: ReorderRequester | None = None


def get_reorder_requester() -> ReorderRequester:
    """Return the current requester. Defaults to one on the registered purchasing service."""
    global _current_requester
    if _current_requester is None:
        _current_requester = ReorderRequester()
    return _current_requester


def set_reorder_requester(requester: ReorderRequester) -> None:
    global _current_requester
    _current_requester = requester


def reset_reorder_requester() -> None:
    global _current_requester
    _current_requester = None


@logistics.event_handler(part_of=StockRecord)
class LowStockReorderHandler:
    """Turns low stock into purchasing requests."""

    @handle(LowStockDetected)
    def on_low_stock_detected(self, event: LowStockDetected) -> None:
        logger.info(
            "Low stock detected",
            product_id=str(event.product_id),
            warehouse_id=str(event.warehouse_id),
            available=event.current_available,
            reorder_level=event.reorder_level,
        )
        get_reorder_requester().request(
            str(event.stock_record_id),
            str(event.product_id),
            str(event.warehouse_id),
            event.reorder_quantity or 0,
        )
