"""
Schedule Repository
===================

Persisted recurring triggers. A trigger is identified by its hook name and
argument, e.g. ("syndicate_feed", feed_url) or ("sweep_expired", "").
"""

import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple

from ..database.connection import DatabaseConnection
from ..database.models import Schedule, to_db_timestamp, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class ScheduleRepository:
    """Repository for recurring trigger records."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("schedule_repository")

    def get(self, hook: str, arg: str = "") -> Optional[Schedule]:
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM schedules WHERE hook = ? AND arg = ?", (hook, arg)
            ).fetchone()
            return Schedule.from_db_row(row) if row else None

    def ensure(
        self, hook: str, arg: str, interval_seconds: int, first_run_at: datetime
    ) -> Tuple[Schedule, bool]:
        """Create the trigger unless it already exists.

        Returns:
            (schedule, created) where created is False for an existing trigger
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO schedules (
                        hook, arg, interval_seconds, next_run_at, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                """,
                    (
                        hook,
                        arg,
                        interval_seconds,
                        to_db_timestamp(first_run_at),
                        to_db_timestamp(utc_now()),
                    ),
                )
                conn.commit()
                created = cursor.rowcount > 0

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to schedule {hook}({arg}): {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        if created:
            self.logger.info(f"Scheduled {hook} every {interval_seconds}s", extra={"arg": arg})

        return self.get(hook, arg), created

    def clear(self, hook: str, arg: str = "") -> bool:
        """Remove a trigger. Returns True if one existed."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM schedules WHERE hook = ? AND arg = ?", (hook, arg)
            )
            conn.commit()
            cleared = cursor.rowcount > 0

        if cleared:
            self.logger.info(f"Cleared schedule {hook}", extra={"arg": arg})
        return cleared

    def due(self, now: datetime) -> List[Schedule]:
        """Triggers whose next run time has passed."""
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM schedules WHERE next_run_at <= ? ORDER BY next_run_at, id",
                (to_db_timestamp(now),),
            ).fetchall()
            return [Schedule.from_db_row(row) for row in rows]

    def reschedule(self, schedule_id: int, ran_at: datetime, next_run_at: datetime) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE schedules SET last_run_at = ?, next_run_at = ? WHERE id = ?",
                (to_db_timestamp(ran_at), to_db_timestamp(next_run_at), schedule_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_all(self) -> List[Schedule]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM schedules ORDER BY hook, arg"
            ).fetchall()
            return [Schedule.from_db_row(row) for row in rows]
