"""
SyndiFeed Database Schema
=========================

SQLite schema for the syndication store:
- source_groups: one local group per upstream feed URL
- syndicated_items: local records mirroring upstream feed items
- schedules: persisted recurring triggers for the poll orchestrator
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


EXPECTED_TABLES = {"source_groups", "syndicated_items", "schedules"}


class DatabaseSchema:
    """Database schema manager for the SyndiFeed SQLite database."""

    def __init__(self, db_path: str = "data/syndifeed.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables and indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_source_groups_table(conn)
            self._create_syndicated_items_table(conn)
            self._create_schedules_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_source_groups_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS source_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_key TEXT UNIQUE NOT NULL,
                display_name TEXT NOT NULL,
                source_link TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """
        )

    def _create_syndicated_items_table(self, conn: sqlite3.Connection) -> None:
        """Items are unique per (group, slug); slug carries the trash suffix."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS syndicated_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_key TEXT NOT NULL,
                slug TEXT NOT NULL,
                group_key TEXT NOT NULL,
                state TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                body TEXT NOT NULL DEFAULT '',
                summary TEXT NOT NULL DEFAULT '',
                published_at TEXT,
                source_permalink TEXT NOT NULL DEFAULT '',
                source_guid TEXT NOT NULL,
                source_site_link TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                modified_at TEXT NOT NULL,
                FOREIGN KEY (group_key) REFERENCES source_groups(group_key),
                UNIQUE(group_key, slug)
            )
        """
        )

    def _create_schedules_table(self, conn: sqlite3.Connection) -> None:
        """One row per recurring trigger, keyed by hook name and argument."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schedules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hook TEXT NOT NULL,
                arg TEXT NOT NULL DEFAULT '',
                interval_seconds INTEGER NOT NULL CHECK (interval_seconds > 0),
                next_run_at TEXT NOT NULL,
                last_run_at TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(hook, arg)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_items_group_state ON syndicated_items(group_key, state)",
            "CREATE INDEX IF NOT EXISTS idx_items_item_key ON syndicated_items(group_key, item_key)",
            "CREATE INDEX IF NOT EXISTS idx_items_state_modified ON syndicated_items(state, modified_at)",
            "CREATE INDEX IF NOT EXISTS idx_schedules_next_run ON schedules(next_run_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in ("syndicated_items", "schedules", "source_groups"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            conn = self.get_connection()
            try:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}
            finally:
                conn.close()

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False

        missing = EXPECTED_TABLES - tables
        if missing:
            logger.error(f"Missing tables: {sorted(missing)}")
            return False

        logger.info("Database schema verification passed")
        return True


def create_tables(db_path: str = "data/syndifeed.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
