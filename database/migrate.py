#!/usr/bin/env python3
"""Database migration runner."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from database.manager import DatabaseManager
from utils.error_handling import PersistenceFailure

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

logger = logging.getLogger(__name__)


async def create_migrations_table(db: DatabaseManager) -> None:
    """Create migrations tracking table if it doesn't exist."""
    await db.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version VARCHAR(255) PRIMARY KEY,
            applied_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)


async def get_applied_migrations(db: DatabaseManager) -> List[str]:
    """Get list of applied migrations from the database."""
    rows = await db.fetch_all("SELECT version FROM schema_migrations ORDER BY version")
    return [row["version"] for row in rows]


def pending_migrations(applied: List[str], migrations_dir: Path = MIGRATIONS_DIR) -> List[Path]:
    """SQL files not yet recorded in schema_migrations, in version order."""
    applied_set = set(applied)
    return [
        path
        for path in sorted(migrations_dir.glob("*.sql"))
        if path.stem not in applied_set
    ]


async def apply_migration(db: DatabaseManager, migration_file: Path) -> None:
    """Apply a single migration file and record it."""
    version = migration_file.stem
    logger.info("Applying migration: %s", version)
    sql = migration_file.read_text(encoding="utf-8")
    await db.execute(sql)
    await db.execute("INSERT INTO schema_migrations (version) VALUES ($1)", version)
    logger.info("Applied: %s", version)


async def migrate(database_url: Optional[str] = None) -> List[str]:
    """Apply every pending migration; returns the versions applied."""
    db = DatabaseManager(database_url)
    await db.init_pool(min_size=1, max_size=1)
    try:
        await create_migrations_table(db)
        todo = pending_migrations(await get_applied_migrations(db))
        for migration_file in todo:
            await apply_migration(db, migration_file)
        return [path.stem for path in todo]
    finally:
        await db.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply database migrations")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    try:
        applied = asyncio.run(migrate(args.database_url))
    except PersistenceFailure as exc:
        logger.error("Migration failed: %s", exc)
        return 1

    if applied:
        logger.info("Applied %d migration(s)", len(applied))
    else:
        logger.info("Database is up to date")
    return 0


if __name__ == "__main__":
    sys.exit(main())
