import argparse
import os
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

from subscription_manager.core.logging import configure_logging
from subscription_manager.infrastructure.persistence.migrations import (
    applied_versions,
    apply_migrations,
    available_migrations,
)


def main() -> None:
    load_dotenv()
    configure_logging()

    parser = argparse.ArgumentParser(description="Apply subscription database migrations.")
    parser.add_argument(
        "--database",
        default=os.getenv("DATABASE_PATH", "data/subscriptions.db"),
        help="SQLite database file (defaults to DATABASE_PATH)",
    )
    parser.add_argument("--status", action="store_true", help="List migrations without applying them")
    args = parser.parse_args()

    path = Path(args.database).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        if args.status:
            done = set(applied_versions(conn))
            for version, _ in available_migrations():
                print(f"{'applied' if version in done else 'pending'}  {version}")
            return

        applied = apply_migrations(conn)
    finally:
        conn.close()

    if applied:
        print("Applied migrations:", ", ".join(applied))
    else:
        print("Database already up to date:", path)


if __name__ == "__main__":
    main()
