"""
scripts/setup_db.py — Initialize the database schema.

Run once before starting the application for the first time:
    python scripts/setup_db.py [--seed-admin USER_ID EMAIL]

This creates all tables defined in leadengine/db/models.py directly via
SQLAlchemy metadata. With --seed-admin, a profile with the admin role is
created (or promoted) so that user's bearer token can reach admin routes.
"""

import argparse
import sys
import os

# Ensure the project root is on the path so we can import `leadengine`
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import inspect, text

from leadengine.config import settings
from leadengine.db import repository
from leadengine.db.models import UserRole
from leadengine.db.session import engine, init_db, session_scope


def setup_db(seed_admin: tuple[str, str] | None = None) -> None:
    print("🔌 Connecting to database...")
    print(f"   URL: {settings.database_url[:40]}...")

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    print("✅ Connection successful.")

    print("\n📦 Creating tables if they don't exist...")
    init_db()

    # Report which tables were found
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print(f"✅ Tables in database: {tables}")

    if seed_admin:
        user_id, email = seed_admin
        with session_scope() as db:
            repository.save_profile(db, user_id, email=email, role=UserRole.ADMIN)
        print(f"👤 Admin profile ready: {user_id} ({email})")

    print("\n🎉 Database setup complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the lead engine tables.")
    parser.add_argument(
        "--seed-admin",
        nargs=2,
        metavar=("USER_ID", "EMAIL"),
        help="Create or promote a profile with the admin role",
    )
    args = parser.parse_args()
    setup_db(tuple(args.seed_admin) if args.seed_admin else None)
