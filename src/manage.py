"""Logistics management CLI.

Provides commands to create and drop database schemas, register the
warehouse network and run the reservation sweep by hand.

Usage:
    python src/manage.py setup-db       # Create all tables
    python src/manage.py drop-db        # Drop all tables
    python src/manage.py seed-network   # Register the US/EU/JP/AU warehouses
    python src/manage.py sweep          # Release expired reservations now
"""

import argparse
import sys


def _domain():
    from logistics.domain import logistics

    logistics.init()
    return logistics


def setup_database():
    """Create database schemas for the logistics domain."""
    from logistics.utils.db import setup_db

    print("Initializing logistics domain...")
    domain = _domain()
    print("Creating logistics database schema...")
    touched = setup_db(domain)
    print(f"  Schema ready for: {', '.join(touched) or 'no RDBMS provider configured'}.")
    print("Done.")


def drop_database():
    """Drop database schemas for the logistics domain."""
    from logistics.utils.db import drop_db

    print("Initializing logistics domain...")
    domain = _domain()
    print("Dropping logistics database schema...")
    touched = drop_db(domain)
    print(f"  Schema dropped for: {', '.join(touched) or 'no RDBMS provider configured'}.")
    print("Done.")


def seed_network(primary_id=None):
    """Register every default warehouse not yet stored."""
    from logistics.config import Settings
    from logistics.network.warehouse import seed_network as seed

    domain = _domain()
    primary_id = primary_id or Settings.from_env().primary_warehouse_id
    with domain.domain_context():
        added = seed(primary_id=primary_id)
    print(f"Registered warehouses: {', '.join(added) or 'none (already present)'}")


def sweep():
    """Release every expired held reservation."""
    from logistics.stock.ledger import InventoryLedger

    domain = _domain()
    with domain.domain_context():
        released = InventoryLedger().sweep_expired()
    print(f"Released {released} expired reservation(s).")


def main():
    parser = argparse.ArgumentParser(description="Logistics management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    seed_parser = subparsers.add_parser("seed-network", help="Register the regional warehouses")
    seed_parser.add_argument("--primary", help="Warehouse code to mark as primary (default: settings)")
    subparsers.add_parser("sweep", help="Release expired reservations")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "seed-network":
        seed_network(args.primary)
    elif args.command == "sweep":
        sweep()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
