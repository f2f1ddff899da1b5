"""Run, inspect or create schema migrations for the booking database."""

import argparse
import sys

from alembic import command
from alembic.config import Config

from clinic_booking.config import settings


def _config() -> Config:
    # alembic/env.py reads the database URL from settings
    return Config("alembic.ini")


def upgrade(revision: str) -> None:
    """Upgrade the schema to ``revision``."""
    try:
        print(f"Upgrading booking schema to {revision}...")
        command.upgrade(_config(), revision)
        print("✓ Schema is up to date")
    except Exception as e:
        print(f"✗ Upgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


def downgrade(revision: str) -> None:
    """Roll the schema back to ``revision``."""
    if settings.is_production:
        print("✗ Refusing to downgrade a production database", file=sys.stderr)
        sys.exit(1)

    try:
        print(f"Downgrading booking schema to {revision}...")
        command.downgrade(_config(), revision)
        print("✓ Downgrade completed")
    except Exception as e:
        print(f"✗ Downgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


def create_migration(message: str) -> None:
    """Autogenerate a migration from the table metadata."""
    try:
        print(f"Creating migration: {message}")
        command.revision(_config(), message=message, autogenerate=True)
        print("✓ Migration created")
    except Exception as e:
        print(f"✗ Migration creation failed: {e}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    subcommands = parser.add_subparsers(dest="command")

    up = subcommands.add_parser("upgrade", help="Apply migrations (default)")
    up.add_argument("revision", nargs="?", default="head")

    down = subcommands.add_parser("downgrade", help="Revert migrations")
    down.add_argument("revision", nargs="?", default="-1")

    subcommands.add_parser("current", help="Show the applied revision")

    create = subcommands.add_parser("create", help="Autogenerate a new migration")
    create.add_argument("message", nargs="+")

    args = parser.parse_args()

    if args.command == "downgrade":
        downgrade(args.revision)
    elif args.command == "current":
        command.current(_config(), verbose=True)
    elif args.command == "create":
        create_migration(" ".join(args.message))
    else:
        upgrade(getattr(args, "revision", "head"))


if __name__ == "__main__":
    main()
