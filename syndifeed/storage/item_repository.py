"""
Syndicated Item Repository
==========================

Store primitives for syndicated item records.

An item's slug is its item key. Moving an item to the trash renames the slug
to ``<item_key>__trashed`` so the live slug is free, and every lookup by item
key matches both variants. That convention stays inside this module.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import (
    ItemState,
    SyndicatedItem,
    to_db_timestamp,
    utc_now,
)
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


TRASH_SUFFIX = "__trashed"

# Columns reconciliation may rewrite. published_at is set once at creation.
UPDATABLE_FIELDS = {
    "title",
    "body",
    "summary",
    "source_permalink",
    "source_site_link",
}


def trashed_slug(item_key: str) -> str:
    return f"{item_key}{TRASH_SUFFIX}"


class SyndicatedItemRepository:
    """Repository for syndicated item records."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("item_repository")

    def find(self, group_key: str, state: Optional[ItemState] = None) -> List[SyndicatedItem]:
        """All items in a group, optionally restricted to one state."""
        query = "SELECT * FROM syndicated_items WHERE group_key = ?"
        params: List[Any] = [group_key]
        if state is not None:
            query += " AND state = ?"
            params.append(ItemState(state).value)
        query += " ORDER BY id"

        rows = self._fetch_all(query, params, f"find items in group {group_key}")
        return [SyndicatedItem.from_db_row(row) for row in rows]

    def find_by_item_key(self, group_key: str, item_key: str) -> Optional[SyndicatedItem]:
        """Look up an item by key, matching the live and the trashed slug.

        Raises:
            DatabaseError: If the lookup itself fails
        """
        rows = self._fetch_all(
            """
            SELECT * FROM syndicated_items
            WHERE group_key = ? AND slug IN (?, ?)
            ORDER BY slug = ? DESC, id
            LIMIT 1
        """,
            [group_key, item_key, trashed_slug(item_key), item_key],
            f"look up item {item_key}",
        )
        return SyndicatedItem.from_db_row(rows[0]) if rows else None

    def get_by_id(self, item_id: int) -> Optional[SyndicatedItem]:
        rows = self._fetch_all(
            "SELECT * FROM syndicated_items WHERE id = ?", [item_id], f"load item {item_id}"
        )
        return SyndicatedItem.from_db_row(rows[0]) if rows else None

    def create(self, item: SyndicatedItem) -> SyndicatedItem:
        """Insert a new item record and return it with its id.

        Raises:
            DatabaseError: If the insert fails
        """
        now = utc_now()
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO syndicated_items (
                        item_key, slug, group_key, state, title, body, summary,
                        published_at, source_permalink, source_guid, source_site_link,
                        created_at, modified_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        item.item_key,
                        item.slug,
                        item.group_key,
                        item.state.value,
                        item.title,
                        item.body,
                        item.summary,
                        to_db_timestamp(item.published_at),
                        item.source_permalink,
                        item.source_guid,
                        item.source_site_link,
                        to_db_timestamp(now),
                        to_db_timestamp(now),
                    ),
                )
                conn.commit()

                return item.model_copy(
                    update={"id": cursor.lastrowid, "created_at": now, "modified_at": now}
                )

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create item {item.item_key}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def update_fields(self, item_id: int, fields: Dict[str, Any]) -> bool:
        """Rewrite content fields of one item and bump modified_at.

        Raises:
            ValueError: If a field outside UPDATABLE_FIELDS is given
            DatabaseError: If the update fails
        """
        return self._write(item_id, fields=fields)

    def set_state(
        self,
        item_id: int,
        state: ItemState,
        expected_state: Optional[ItemState] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Move an item to a new state, optionally rewriting content fields.

        With expected_state the write only happens if the record is still in
        that state, which makes read-modify-write safe against a concurrent
        local edit.

        Returns:
            True if the record was written
        """
        return self._write(item_id, fields=fields or {}, state=state, expected_state=expected_state)

    def delete(
        self,
        item_id: int,
        expected_state: Optional[ItemState] = None,
        modified_before: Optional[datetime] = None,
    ) -> bool:
        """Delete one item.

        With expected_state the row must still be in that state, and with
        modified_before it must not have been written since that moment.
        """
        query = "DELETE FROM syndicated_items WHERE id = ?"
        params: List[Any] = [item_id]
        if expected_state is not None:
            query += " AND state = ?"
            params.append(ItemState(expected_state).value)
        if modified_before is not None:
            query += " AND modified_at < ?"
            params.append(to_db_timestamp(modified_before))

        return self._execute(query, params, f"delete item {item_id}") > 0

    def find_expired_before(self, cutoff: datetime) -> List[SyndicatedItem]:
        """Expired items last modified before the cutoff."""
        rows = self._fetch_all(
            """
            SELECT * FROM syndicated_items
            WHERE state = ? AND modified_at < ?
            ORDER BY modified_at
        """,
            [ItemState.EXPIRED.value, to_db_timestamp(cutoff)],
            "find expired items",
        )
        return [SyndicatedItem.from_db_row(row) for row in rows]

    def list_items(
        self,
        excluded_groups: Optional[Iterable[str]] = None,
        state: Optional[ItemState] = ItemState.PUBLISHED,
        limit: Optional[int] = None,
    ) -> List[SyndicatedItem]:
        """List items newest first, leaving out the given groups."""
        query = "SELECT * FROM syndicated_items WHERE 1 = 1"
        params: List[Any] = []

        if state is not None:
            query += " AND state = ?"
            params.append(ItemState(state).value)

        excluded = list(excluded_groups or [])
        if excluded:
            placeholders = ",".join("?" for _ in excluded)
            query += f" AND group_key NOT IN ({placeholders})"
            params.extend(excluded)

        query += " ORDER BY published_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._fetch_all(query, params, "list items")
        return [SyndicatedItem.from_db_row(row) for row in rows]

    def count_by_state(self) -> Dict[str, int]:
        rows = self._fetch_all(
            "SELECT state, COUNT(*) AS total FROM syndicated_items GROUP BY state",
            [],
            "count items",
        )
        return {row["state"]: row["total"] for row in rows}

    # Local overrides made on the ingesting side

    def trash(self, item_id: int) -> bool:
        """Soft-delete an item, freeing its live slug."""
        item = self.get_by_id(item_id)
        if item is None:
            return False

        return self._execute(
            "UPDATE syndicated_items SET state = ?, slug = ?, modified_at = ? WHERE id = ?",
            [
                ItemState.TRASH.value,
                trashed_slug(item.item_key),
                to_db_timestamp(utc_now()),
                item_id,
            ],
            f"trash item {item_id}",
        ) > 0

    def set_local_state(self, item_id: int, state: ItemState) -> bool:
        """Apply a locally chosen state, restoring the live slug if leaving trash."""
        state = ItemState(state)
        if state == ItemState.TRASH:
            return self.trash(item_id)

        item = self.get_by_id(item_id)
        if item is None:
            return False

        return self._execute(
            "UPDATE syndicated_items SET state = ?, slug = ?, modified_at = ? WHERE id = ?",
            [state.value, item.item_key, to_db_timestamp(utc_now()), item_id],
            f"set state of item {item_id}",
        ) > 0

    def _write(
        self,
        item_id: int,
        fields: Dict[str, Any],
        state: Optional[ItemState] = None,
        expected_state: Optional[ItemState] = None,
    ) -> bool:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in fields]
        params: List[Any] = list(fields.values())

        if state is not None:
            assignments.append("state = ?")
            params.append(ItemState(state).value)

        assignments.append("modified_at = ?")
        params.append(to_db_timestamp(utc_now()))

        query = f"UPDATE syndicated_items SET {', '.join(assignments)} WHERE id = ?"
        params.append(item_id)

        if expected_state is not None:
            query += " AND state = ?"
            params.append(ItemState(expected_state).value)

        return self._execute(query, params, f"update item {item_id}") > 0

    def _execute(self, query: str, params: List[Any], operation: str) -> int:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to {operation}: {e}",
                query=query,
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def _fetch_all(self, query: str, params: List[Any], operation: str) -> List[sqlite3.Row]:
        try:
            with self.db.get_connection() as conn:
                return conn.execute(query, params).fetchall()

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to {operation}: {e}",
                query=query,
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e
