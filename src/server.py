"""Standalone workers for the logistics domain.

Two jobs run outside the web server:
- the expired-reservation sweep on a fixed interval, so several API
  instances can share one sweeper (or several: the sweep is idempotent per
  reservation)
- the Protean Engine, which runs the event handlers (reorder requests,
  progress broadcasts, audit entries) when ``event_processing`` is "async"

Usage:
    python src/server.py                 # sweep every LOGISTICS_SWEEP_INTERVAL_MINUTES
    python src/server.py --interval 5    # sweep every 5 minutes
    python src/server.py --once          # run one sweep and exit
    python src/server.py --engine        # run the event handlers
"""

import argparse
import asyncio

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from protean.server.engine import Engine

from logistics.config import Settings
from logistics.domain import logistics
from logistics.services import build_services
from logistics.stock.ledger import InventoryLedger

logger = structlog.get_logger(__name__)


def sweep(ledger: InventoryLedger) -> int:
    with logistics.domain_context():
        released = ledger.sweep_expired()
    logger.info("Sweep finished", released=released)
    return released


def run(interval_minutes: float, once: bool = False) -> None:
    logistics.init()
    settings = Settings.from_env()
    ledger = InventoryLedger()

    if once:
        sweep(ledger)
        return

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        sweep,
        trigger=IntervalTrigger(minutes=interval_minutes or settings.sweep_interval_minutes),
        args=[ledger],
        id="reservations.sweep_expired",
        max_instances=1,
        coalesce=True,
    )
    logger.info("Sweep worker started", every_minutes=interval_minutes or settings.sweep_interval_minutes)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Sweep worker stopped")


async def run_engine() -> None:
    logistics.init()
    # Registers the collaborators the handlers deliver to
    build_services(Settings.from_env().model_copy(update={"scheduler_enabled": False}))
    logger.info("Engine starting", event_processing=logistics.config["event_processing"])
    await Engine(logistics).run()


def main():
    parser = argparse.ArgumentParser(description="Logistics workers")
    parser.add_argument("--interval", type=float, default=None, help="Minutes between sweeps")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument("--engine", action="store_true", help="Run the Engine for event handlers")
    args = parser.parse_args()

    if args.engine:
        asyncio.run(run_engine())
        return
    run(args.interval, once=args.once)


if __name__ == "__main__":
    main()
