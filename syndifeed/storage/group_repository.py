"""
Source Group Repository
=======================

Repository for the local groups that collect one feed's items.
"""

import sqlite3
from typing import Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import SourceGroup, to_db_timestamp, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class SourceGroupRepository:
    """Repository for source group records."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("group_repository")

    def get_by_key(self, group_key: str) -> Optional[SourceGroup]:
        """Get a group by its key.

        Raises:
            DatabaseError: If the lookup itself fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM source_groups WHERE group_key = ?", (group_key,)
                ).fetchone()
                return SourceGroup.from_db_row(row) if row else None

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load source group {group_key}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def get_existing_keys(self, group_keys: Iterable[str]) -> List[str]:
        """Return the subset of group keys that exist in the store."""
        keys = list(group_keys)
        if not keys:
            return []

        placeholders = ",".join("?" for _ in keys)
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    f"SELECT group_key FROM source_groups WHERE group_key IN ({placeholders})",
                    keys,
                ).fetchall()
                return [row["group_key"] for row in rows]

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to look up source groups: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def create(self, group: SourceGroup) -> SourceGroup:
        """Insert a new group and return it with its id.

        Raises:
            DatabaseError: If the insert fails
        """
        now = utc_now()
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO source_groups (
                        group_key, display_name, source_link, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?)
                """,
                    (
                        group.group_key,
                        group.display_name,
                        group.source_link,
                        to_db_timestamp(now),
                        to_db_timestamp(now),
                    ),
                )
                conn.commit()

                self.logger.info(
                    f"Created source group {group.display_name}",
                    extra={"group_key": group.group_key},
                )
                return group.model_copy(
                    update={"id": cursor.lastrowid, "created_at": now, "updated_at": now}
                )

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create source group {group.group_key}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def update(self, group_key: str, display_name: str, source_link: str) -> bool:
        """Update a group's name and link in place.

        Returns:
            True if a row was updated
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE source_groups
                    SET display_name = ?, source_link = ?, updated_at = ?
                    WHERE group_key = ?
                """,
                    (display_name, source_link, to_db_timestamp(utc_now()), group_key),
                )
                conn.commit()
                return cursor.rowcount > 0

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to update source group {group_key}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def list_all(self) -> List[SourceGroup]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM source_groups ORDER BY display_name"
            ).fetchall()
            return [SourceGroup.from_db_row(row) for row in rows]
