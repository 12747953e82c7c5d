"""
Expiry Sweeper
==============

Deletes syndicated items that have been expired for longer than the
retention window. Runs independently of feed polls.
"""

from datetime import datetime, timedelta
from typing import Optional

from ..database.models import ItemState, utc_now
from ..storage.item_repository import SyndicatedItemRepository
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.exceptions import DatabaseError


DEFAULT_RETENTION_DAYS = 30


class ExpirySweeper:
    """Removes long-expired items from the store."""

    def __init__(
        self,
        item_repository: SyndicatedItemRepository,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self.items = item_repository
        self.retention_days = retention_days
        self.logger = get_logger_for_component("sweeper")
        self.last_failed = 0

    def sweep(self, now: Optional[datetime] = None, retention_days: Optional[int] = None) -> int:
        """Delete items expired for longer than the retention window.

        Each delete only happens if the record is still expired and has not
        been written since the cutoff, so an item republished (or republished
        and expired again) since it was selected survives. Deletes that fail
        are logged, counted in ``last_failed`` and skipped.

        Args:
            now: Reference time (defaults to the current UTC time)
            retention_days: Override for the configured retention

        Returns:
            Number of records deleted

        Raises:
            DatabaseError: If the candidate query fails
        """
        now = now or utc_now()
        days = retention_days if retention_days is not None else self.retention_days
        cutoff = now - timedelta(days=days)

        with PerformanceLogger(self.logger, "expiry sweep", retention_days=days) as perf:
            candidates = self.items.find_expired_before(cutoff)

            deleted = 0
            failed = 0
            for item in candidates:
                try:
                    if self.items.delete(
                        item.id, expected_state=ItemState.EXPIRED, modified_before=cutoff
                    ):
                        deleted += 1
                except DatabaseError as e:
                    failed += 1
                    self.logger.warning(
                        f"Failed to delete expired item: {e}",
                        extra={"item_key": item.item_key},
                    )

            self.last_failed = failed
            perf.note(candidates=len(candidates), deleted=deleted, failed=failed)

        return deleted
