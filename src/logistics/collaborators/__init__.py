"""Collaborator registry for event handlers.

Event handlers run away from the call that raised their event (right after
the unit of work commits, or later inside the Engine), so they look their
collaborators up here. ``build_services`` registers the adapters it was
given; until then the logging adapters answer.

Deliveries are counted per collaborator. A failing collaborator is logged
and counted, never raised into the unit of work that produced the event.
"""

import threading
from collections import defaultdict
from collections.abc import Callable

import structlog

from logistics.collaborators.audit import AuditSinkPort, LoggingAuditSink
from logistics.collaborators.broadcast import BroadcastPort, LoggingBroadcast
from logistics.collaborators.purchasing import LoggingPurchasing, PurchasingPort

logger = structlog.get_logger(__name__)

_current_audit_sink: AuditSinkPort | None = None
_current_broadcast: BroadcastPort | None = None
_current_purchasing: PurchasingPort | None = None


def get_audit_sink() -> AuditSinkPort:
    """Return the current audit sink. Defaults to LoggingAuditSink."""
    global _current_audit_sink
    if _current_audit_sink is None:
        _current_audit_sink = LoggingAuditSink()
    return _current_audit_sink


def set_audit_sink(sink: AuditSinkPort) -> None:
    global _current_audit_sink
    _current_audit_sink = sink


def get_broadcast() -> BroadcastPort:
    """Return the current progress broadcaster. Defaults to LoggingBroadcast."""
    global _current_broadcast
    if _current_broadcast is None:
        _current_broadcast = LoggingBroadcast()
    return _current_broadcast


def set_broadcast(broadcast: BroadcastPort) -> None:
    global _current_broadcast
    _current_broadcast = broadcast


def get_purchasing() -> PurchasingPort:
    """Return the current purchasing service. Defaults to LoggingPurchasing."""
    global _current_purchasing
    if _current_purchasing is None:
        _current_purchasing = LoggingPurchasing()
    return _current_purchasing


def set_purchasing(purchasing: PurchasingPort) -> None:
    global _current_purchasing
    _current_purchasing = purchasing


def reset_collaborators() -> None:
    """Reset to the logging adapters and zero the delivery counters."""
    global _current_audit_sink, _current_broadcast, _current_purchasing
    _current_audit_sink = None
    _current_broadcast = None
    _current_purchasing = None
    delivery_stats.reset()


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------
class DeliveryStats:
    def __init__(self):
        self._lock = threading.Lock()
        self._counts: dict[str, dict[str, int]] = defaultdict(lambda: {"delivered": 0, "failed": 0})

    def count(self, name: str, outcome: str) -> None:
        with self._lock:
            self._counts[name][outcome] += 1

    def delivered(self, name: str) -> int:
        with self._lock:
            return self._counts[name]["delivered"] if name in self._counts else 0

    def failed(self, name: str) -> int:
        with self._lock:
            return self._counts[name]["failed"] if name in self._counts else 0

    def snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {name: dict(counts) for name, counts in self._counts.items()}

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


delivery_stats = DeliveryStats()


def deliver(name: str, fn: Callable, *args) -> bool:
    """Call a collaborator; a failure is logged and counted against ``name``."""
    try:
        fn(*args)
    except Exception as exc:
        delivery_stats.count(name, "failed")
        logger.warning(
            "Collaborator delivery failed",
            collaborator=name,
            call=getattr(fn, "__name__", repr(fn)),
            error=str(exc),
        )
        return False
    delivery_stats.count(name, "delivered")
    return True
