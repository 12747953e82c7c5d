"""
SyndiFeed - RSS Syndication Reconciliation
==========================================

Pulls external RSS/Atom feeds on a schedule and keeps a local store of
syndicated items in step with them.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables and .env with Pydantic validation
- Ingestion: feed fetching, parsing and content cleaning
- Syndication: source groups, item reconciliation, expiry sweeps
- Scheduler: per-feed poll triggers and the service loop
"""

__version__ = "1.0.0"
__author__ = "SyndiFeed Development Team"
__description__ = "RSS syndication reconciliation engine"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import SyndiFeedError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "SyndiFeedError",
]
