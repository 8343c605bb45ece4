"""Storefront management CLI.

Provides commands to create and drop the database schema, and to run a
single stuck-payment sweep from an external scheduler (cron, K8s CronJob).

Usage:
    python src/manage.py setup-db                  # Create all tables
    python src/manage.py drop-db                   # Drop all tables
    python src/manage.py sweep                     # Expire stuck payment attempts once
    python src/manage.py sweep --timeout-minutes 45
"""

import argparse
import sys


def _init_domain():
    from storefront.domain import storefront
    from storefront.utils.logging import configure_logging

    configure_logging()
    storefront.init()
    return storefront


def setup_database():
    """Create database tables for the storefront domain."""
    from storefront.utils.db import setup_db

    domain = _init_domain()
    print("Creating storefront database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    """Drop database tables for the storefront domain."""
    from storefront.utils.db import drop_db

    domain = _init_domain()
    print("Dropping storefront database schema...")
    drop_db(domain)
    print("Done.")


def run_sweep(timeout_minutes=None):
    """Expire stuck payment attempts once. Returns how many were expired."""
    from storefront.payments.sweeper import sweep_stuck_payments

    domain = _init_domain()
    with domain.domain_context():
        expired = sweep_stuck_payments(timeout_minutes=timeout_minutes)
    print(f"Expired {expired} stuck payment attempt(s).")
    return expired


def main():
    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sweep_parser = subparsers.add_parser("sweep", help="Expire stuck payment attempts once")
    sweep_parser.add_argument(
        "--timeout-minutes",
        type=int,
        default=None,
        help="Age after which a pending attempt is stuck (default: from settings)",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sweep":
        run_sweep(args.timeout_minutes)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
