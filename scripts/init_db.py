#!/usr/bin/env python3
"""
Database initialization script for the checklist service.

Runs every SQL file in sql/ in name order, then seeds the default
checklists unless --no-seed is given.

Usage:
    python scripts/init_db.py [--no-seed]
"""

import asyncio
import sys
from pathlib import Path

import psycopg

from checklist.config import settings
from checklist.engine import ChecklistEngine
from checklist.models import ChecklistType

project_root = Path(__file__).parent.parent


def run_sql_file(conn: psycopg.Connection, sql_file: Path) -> None:
    """Execute a SQL file."""
    print(f"  Running {sql_file.name}...")

    sql_content = sql_file.read_text(encoding="utf-8")

    try:
        with conn.cursor() as cur:
            cur.execute(sql_content)
        conn.commit()
        print(f"  ✓ {sql_file.name} completed")
    except psycopg.Error as e:
        conn.rollback()
        print(f"  ✗ Error in {sql_file.name}: {e}")
        raise


async def seed_checklists() -> None:
    """Create default items for every checklist type that has none."""
    engine = ChecklistEngine.from_settings(settings)
    try:
        for kind in ChecklistType:
            created = await engine.items.ensure_defaults(kind)
            if created:
                print(f"  ✓ {kind.value}: {len(created)} items created")
            else:
                print(f"  ⊘ {kind.value}: already has items")
    finally:
        await engine.stop()


def init_database(seed: bool = True):
    """Initialize the database schema."""
    print("=" * 60)
    print("Checklist Service - Database Initialization")
    print("=" * 60)

    sql_dir = project_root / "sql"
    if not sql_dir.exists():
        print(f"Error: SQL directory not found at {sql_dir}")
        sys.exit(1)

    sql_files = sorted(sql_dir.glob("*.sql"))
    if not sql_files:
        print(f"Error: No SQL files found in {sql_dir}")
        sys.exit(1)

    print(f"\nFound {len(sql_files)} SQL migration files:")
    for f in sql_files:
        print(f"  - {f.name}")

    print("\nConnecting to database...")
    print(f"  Host: {settings.db_host}")
    print(f"  Port: {settings.db_port}")
    print(f"  Database: {settings.db_name}")
    print(f"  User: {settings.db_user}")

    try:
        with psycopg.connect(settings.database_url) as conn:
            print("✓ Connected successfully\n")

            print("Running migrations:")
            for sql_file in sql_files:
                run_sql_file(conn, sql_file)

            print("\nVerifying installation:")
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT tablename FROM pg_tables WHERE schemaname = 'public' AND tablename = ANY(%s) ORDER BY tablename",
                    ([settings.items_table, settings.results_table],),
                )
                tables = [row[0] for row in cur.fetchall()]
                print(f"  ✓ Found {len(tables)} checklist tables:")
                for table in tables:
                    print(f"    - {table}")

        if seed:
            print("\nSeeding default checklists:")
            asyncio.run(seed_checklists())

        print("\n" + "=" * 60)
        print("✓ Database initialization completed successfully!")
        print("=" * 60)

    except psycopg.OperationalError as e:
        print(f"\n✗ Connection failed: {e}")
        print("\nTroubleshooting:")
        print("  1. Check if PostgreSQL container is running: docker compose ps db")
        print("  2. Verify DB_* environment variables are set correctly")
        print(f"  3. Ensure database '{settings.db_name}' exists")
        sys.exit(1)
    except Exception as e:
        print(f"\n✗ Error during initialization: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    init_database(seed="--no-seed" not in sys.argv[1:])
