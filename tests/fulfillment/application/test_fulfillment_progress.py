"""Tests for the handler that publishes fulfillment progress and audit entries."""

import json
from datetime import UTC, datetime, timedelta

from logistics.collaborators import delivery_stats, set_audit_sink, set_broadcast
from logistics.collaborators.audit import InMemoryAuditSink
from logistics.collaborators.broadcast import InMemoryBroadcast
from logistics.fulfillment.events import FulfillmentProgressed
from logistics.fulfillment.progress import FulfillmentProgressPublisher, audit_entry_from, update_from

NOW = datetime(2026, 4, 15, 10, 0, tzinfo=UTC)


def _event(**overrides):
    values = {
        "fulfillment_id": "ff-001",
        "order_id": "ord-001",
        "actor": "staff-01",
        "action": "fulfillment.picking_completed",
        "status": "Picked",
        "step": "Quality_Check",
        "progress_percent": 40,
        "estimated_completion": NOW + timedelta(minutes=30),
        "revision": 3,
        "details": json.dumps({"discrepancies": ["prod-kb: condition scratched"]}),
        "notes": json.dumps(["prod-kb: condition scratched"]),
        "occurred_at": NOW,
    }
    values.update(overrides)
    return FulfillmentProgressed(**values)


class TestConversions:
    def test_update_carries_progress_and_notes(self):
        update = update_from(_event())
        assert update.order_id == "ord-001"
        assert update.step == "Quality_Check"
        assert update.progress_percent == 40
        assert update.notes == ["prod-kb: condition scratched"]
        assert update.timestamp == NOW

    def test_audit_entry_merges_status_and_revision(self):
        entry = audit_entry_from(_event())
        assert entry.entity_type == "FulfillmentRecord"
        assert entry.entity_id == "ff-001"
        assert entry.details == {
            "status": "Picked",
            "revision": 3,
            "discrepancies": ["prod-kb: condition scratched"],
        }

    def test_empty_details_and_notes(self):
        event = _event(details=None, notes=None)
        assert update_from(event).notes == []
        assert audit_entry_from(event).details == {"status": "Picked", "revision": 3}


class TestFulfillmentProgressPublisher:
    def test_publishes_and_audits(self):
        broadcast, audit = InMemoryBroadcast(), InMemoryAuditSink()
        set_broadcast(broadcast)
        set_audit_sink(audit)

        FulfillmentProgressPublisher().on_progressed(_event())

        assert broadcast.statuses("ord-001") == ["Picked"]
        assert audit.actions_for("ff-001") == ["fulfillment.picking_completed"]
        assert delivery_stats.delivered("broadcast") == delivery_stats.delivered("audit") == 1

    def test_broadcast_outage_still_audits(self):
        broadcast, audit = InMemoryBroadcast(), InMemoryAuditSink()
        broadcast.configure(should_succeed=False)
        set_broadcast(broadcast)
        set_audit_sink(audit)

        FulfillmentProgressPublisher().on_progressed(_event())

        assert delivery_stats.failed("broadcast") == 1
        assert audit.actions_for("ff-001") == ["fulfillment.picking_completed"]
