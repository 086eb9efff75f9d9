"""Versioned schema changes for the routing database.

RoutingDatabase creates the base tables; the ``.sql`` files in
``migrations/`` add indexes and later changes on top. Each file runs in its
own transaction and is recorded in ``schema_migrations``, so a file applies
exactly once and a failing file leaves nothing behind.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Iterator, List, Optional, Set

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_applied_migrations(conn: sqlite3.Connection) -> Set[str]:
    """Versions already recorded in schema_migrations."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    cursor = conn.execute("SELECT version FROM schema_migrations")
    return {row[0] for row in cursor.fetchall()}


def _statements(sql: str) -> Iterator[str]:
    lines = [
        line for line in sql.splitlines()
        if line.strip() and not line.strip().startswith("--")
    ]
    for statement in "\n".join(lines).split(";"):
        statement = statement.strip()
        if statement:
            yield statement


def _migration_files(migrations_dir: Optional[Path]) -> List[Path]:
    return sorted((migrations_dir or MIGRATIONS_DIR).glob("*.sql"))


def pending_migrations(db_path: str, migrations_dir: Optional[Path] = None) -> List[str]:
    """Versions not yet applied, in the order they would run."""
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        applied = get_applied_migrations(conn)
    finally:
        conn.close()
    return [f.stem for f in _migration_files(migrations_dir) if f.stem not in applied]


def _apply(conn: sqlite3.Connection, migration_file: Path):
    version = migration_file.stem
    conn.execute("BEGIN")
    try:
        for statement in _statements(migration_file.read_text()):
            conn.execute(statement)
        conn.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        logger.error(f"Migration {version} failed and was rolled back: {e}")
        raise
    conn.execute("COMMIT")


def run_migrations(db_path: str, migrations_dir: Optional[Path] = None) -> int:
    """Apply pending migrations in version order. Returns how many were applied."""
    # Autocommit mode so each migration's BEGIN/COMMIT covers its DDL
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        applied = get_applied_migrations(conn)
        applied_count = 0

        for migration_file in _migration_files(migrations_dir):
            if migration_file.stem in applied:
                continue
            logger.info(f"Applying migration {migration_file.stem}")
            _apply(conn, migration_file)
            applied_count += 1
    finally:
        conn.close()

    return applied_count
