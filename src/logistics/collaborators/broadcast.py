"""Real-time broadcast port for fulfillment progress.

Updates are a UX signal, not a source of truth: delivery is best effort.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FulfillmentUpdate:
    fulfillment_id: str
    order_id: str
    status: str
    step: str | None
    progress_percent: int
    estimated_completion: datetime | None
    timestamp: datetime
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "fulfillment_id": self.fulfillment_id,
            "order_id": self.order_id,
            "status": self.status,
            "step": self.step,
            "progress_percent": self.progress_percent,
            "estimated_completion": self.estimated_completion.isoformat() if self.estimated_completion else None,
            "timestamp": self.timestamp.isoformat(),
            "notes": list(self.notes),
        }


class BroadcastPort(ABC):
    @abstractmethod
    def publish(self, topic: str, update: FulfillmentUpdate) -> None: ...


class LoggingBroadcast(BroadcastPort):
    def publish(self, topic: str, update: FulfillmentUpdate) -> None:
        logger.info("Fulfillment update", topic=topic, **update.to_dict())


class InMemoryBroadcast(BroadcastPort):
    def __init__(self):
        self.messages: dict[str, list[FulfillmentUpdate]] = defaultdict(list)
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        self.should_succeed = should_succeed

    def publish(self, topic: str, update: FulfillmentUpdate) -> None:
        if not self.should_succeed:
            raise ConnectionError("Broadcast channel unavailable")
        self.messages[topic].append(update)

    def statuses(self, topic: str) -> list[str]:
        return [u.status for u in self.messages.get(topic, [])]
