"""Progress feed and audit trail for fulfillment transitions.

Reacts to FulfillmentProgressed once the transition is stored: publishes a
FulfillmentUpdate on the order's topic and writes an audit entry. Both are
best effort; a failure is logged and counted, and the transition stands.
"""

import json

import structlog
from protean.utils.mixins import handle

from logistics.collaborators import deliver, get_audit_sink, get_broadcast
from logistics.collaborators.audit import AuditEntry
from logistics.collaborators.broadcast import FulfillmentUpdate
from logistics.domain import logistics
from logistics.fulfillment.events import FulfillmentProgressed
from logistics.fulfillment.record import FulfillmentRecord

logger = structlog.get_logger(__name__)

ENTITY_TYPE = "FulfillmentRecord"


def update_from(event: FulfillmentProgressed) -> FulfillmentUpdate:
    return FulfillmentUpdate(
        fulfillment_id=str(event.fulfillment_id),
        order_id=str(event.order_id),
        status=event.status,
        step=event.step,
        progress_percent=event.progress_percent,
        estimated_completion=event.estimated_completion,
        timestamp=event.occurred_at,
        notes=json.loads(event.notes) if event.notes else [],
    )


def audit_entry_from(event: FulfillmentProgressed) -> AuditEntry:
    details = json.loads(event.details) if event.details else {}
    return AuditEntry(
        actor=event.actor,
        action=event.action,
        entity_type=ENTITY_TYPE,
        entity_id=str(event.fulfillment_id),
        timestamp=event.occurred_at,
        details={"status": event.status, "revision": event.revision, **details},
    )


@logistics.event_handler(part_of=FulfillmentRecord)
class FulfillmentProgressPublisher:
    """Publishes progress updates and audit entries for stored transitions."""

    @handle(FulfillmentProgressed)
    def on_progressed(self, event: FulfillmentProgressed) -> None:
        deliver("broadcast", get_broadcast().publish, str(event.order_id), update_from(event))
        deliver("audit", get_audit_sink().record, audit_entry_from(event))
        logger.debug(
            "Fulfillment progress published",
            fulfillment_id=str(event.fulfillment_id),
            action=event.action,
            status=event.status,
        )
