"""Logistics bounded context — Warehouse Operations, Pricing and Fulfillment.

Owns the stock ledger of the four regional warehouses, the reservations held
against it, price quotes, and the fulfillment workflow that turns a reserved
order into a shipped parcel. Uses CQRS: aggregates are persisted as current
state and every change is recorded as a domain event for downstream readers.
"""

from protean.domain import Domain

from logistics.config import Settings
from logistics.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

# Domain Composition Root
logistics = Domain(name="logistics")

# PROTEAN_ENV picks the mode:
#   - "test", "development" → event_processing = "sync"  (handlers fire after each UoW commit)
#   - "production", "staging" → event_processing = "async" (handlers fire via the Engine)
logistics.config["event_processing"] = Settings.from_env().event_processing
