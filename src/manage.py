"""Checkout management CLI.

Usage:
    python src/manage.py setup-db                 # Create all tables
    python src/manage.py drop-db                  # Drop all tables
    python src/manage.py dispatch-notifications   # Deliver due outbox messages
"""

import argparse
import sys


def setup_database():
    from checkout.domain import checkout
    from checkout.utils.db import setup_db

    print("Initializing checkout domain...")
    checkout.init()
    touched = setup_db(checkout)
    if touched:
        print(f"  Schema ready on: {', '.join(touched)}")
    else:
        print("  No SQL provider configured, nothing to create.")
    print("Done.")


def drop_database():
    from checkout.domain import checkout
    from checkout.utils.db import drop_db

    print("Initializing checkout domain...")
    checkout.init()
    touched = drop_db(checkout)
    print(f"  Schema dropped on: {', '.join(touched) or 'none'}")
    print("Done.")


def dispatch_notifications():
    from checkout.domain import checkout
    from checkout.notification.dispatch import dispatch_pending

    checkout.init()
    with checkout.domain_context():
        counts = dispatch_pending()
    print(
        f"Sent: {counts['Sent']}  Retrying: {counts['Pending']}  Gave up: {counts['Failed']}",
    )
    return counts


def main():
    parser = argparse.ArgumentParser(description="Checkout engine management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("dispatch-notifications", help="Deliver notifications whose next attempt is due")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "dispatch-notifications":
        dispatch_notifications()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
