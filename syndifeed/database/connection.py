"""
SyndiFeed Database Connection Management
========================================

Pooled SQLite connections shared by the repositories and the poll
orchestrator. Connections are opened lazily up to ``pool_size``; a borrower
that finds the pool empty waits briefly and then gets an overflow connection
which is closed on return.
"""

import sqlite3
import threading
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Generator, Dict, Any
from queue import LifoQueue, Empty, Full

logger = logging.getLogger(__name__)

PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 30000",
)

TABLES = ("source_groups", "syndicated_items", "schedules")


class DatabaseConnection:
    """Thread-safe SQLite connection pool."""

    def __init__(
        self,
        db_path: str = "data/syndifeed.db",
        pool_size: int = 5,
        acquire_timeout: float = 10.0,
    ):
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self._idle: LifoQueue = LifoQueue(maxsize=pool_size)
        self._lock = threading.Lock()
        self._opened = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _open(self) -> sqlite3.Connection:
        # Pooled connections move between threads and the event loop executor
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        for pragma in PRAGMAS:
            conn.execute(pragma)
        conn.row_factory = sqlite3.Row

        with self._lock:
            self._opened += 1
            opened = self._opened
        logger.debug(f"Opened SQLite connection #{opened} to {self.db_path}")
        return conn

    def _discard(self, conn: sqlite3.Connection) -> None:
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Error closing SQLite connection: {e}")
        with self._lock:
            self._opened -= 1

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except Empty:
            pass

        with self._lock:
            can_open = self._opened < self.pool_size
        if can_open:
            return self._open()

        started = time.monotonic()
        try:
            conn = self._idle.get(timeout=self.acquire_timeout)
        except Empty:
            logger.warning(
                f"No pooled connection free after {self.acquire_timeout:.0f}s, opening overflow connection"
            )
            return self._open()

        waited = time.monotonic() - started
        if waited > 1.0:
            logger.warning(f"Waited {waited:.2f}s for a pooled database connection")
        return conn

    def _release(self, conn: sqlite3.Connection, broken: bool) -> None:
        if broken:
            self._discard(conn)
            return
        try:
            self._idle.put_nowait(conn)
        except Full:
            self._discard(conn)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection for the duration of the block.

        Writers commit explicitly. Uncommitted work is rolled back when the
        block raises, and a connection whose rollback fails is not reused::

            with db.get_connection() as conn:
                conn.execute("UPDATE syndicated_items SET state = ? WHERE id = ?", ...)
                conn.commit()
        """
        conn = self._acquire()
        broken = False
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                try:
                    conn.rollback()
                except sqlite3.Error as e:
                    logger.warning(f"Rollback failed, dropping connection: {e}")
                    broken = True
            raise
        finally:
            self._release(conn, broken)

    def get_database_info(self) -> Dict[str, Any]:
        """File size, row counts and pool usage."""
        with self.get_connection() as conn:
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            table_counts = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in TABLES
            }

        return {
            "database_size_mb": (page_count * page_size) / (1024 * 1024),
            "page_count": page_count,
            "page_size": page_size,
            "table_counts": table_counts,
            "idle_connections": self._idle.qsize(),
            "total_connections": self._opened,
        }

    def close_all_connections(self) -> None:
        """Close idle connections. Borrowed ones are closed when returned."""
        closed = 0
        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            self._discard(conn)
            closed += 1
        logger.info(f"Closed {closed} database connections")


_db_manager: Optional[DatabaseConnection] = None
_db_manager_lock = threading.Lock()


def get_db_manager(db_path: Optional[str] = None, pool_size: Optional[int] = None) -> DatabaseConnection:
    """Process-wide connection pool, created on first use.

    Args:
        db_path: Path to database file, defaults to the configured path
        pool_size: Pool size, defaults to the configured size
    """
    global _db_manager

    with _db_manager_lock:
        if _db_manager is None:
            if db_path is None or pool_size is None:
                from ..config.settings import get_settings
                settings = get_settings()
                db_path = db_path or settings.database.path
                pool_size = pool_size or settings.database.pool_size
            _db_manager = DatabaseConnection(db_path, pool_size)

    return _db_manager
