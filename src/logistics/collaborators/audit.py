"""Audit log sink port. Writes are fire-and-forget."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    actor: str
    action: str
    entity_type: str
    entity_id: str
    timestamp: datetime
    details: dict = field(default_factory=dict)


class AuditSinkPort(ABC):
    @abstractmethod
    def record(self, entry: AuditEntry) -> None: ...


class LoggingAuditSink(AuditSinkPort):
    """Writes audit entries to the structured log."""

    def record(self, entry: AuditEntry) -> None:
        logger.info(
            "Audit",
            actor=entry.actor,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            details=entry.details,
            timestamp=entry.timestamp.isoformat(),
        )


class InMemoryAuditSink(AuditSinkPort):
    def __init__(self):
        self.entries: list[AuditEntry] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        self.should_succeed = should_succeed

    def record(self, entry: AuditEntry) -> None:
        if not self.should_succeed:
            raise ConnectionError("Audit sink unavailable")
        self.entries.append(entry)

    def actions_for(self, entity_id: str) -> list[str]:
        return [e.action for e in self.entries if e.entity_id == entity_id]
