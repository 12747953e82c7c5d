"""
SyndiFeed Data Models
=====================

Pydantic data models for type safety and validation throughout the application.
These models correspond to the database schema and provide validation,
serialization, and type hints.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, field_validator

from ..utils.validators import URLValidator
from ..utils.exceptions import ValidationError


DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a sortable UTC string.

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp written by to_db_timestamp back into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class FeedConfig(BaseModel):
    """Configuration for one syndicated feed.

    Identity is the feed URL, which is kept exactly as configured since the
    source group key is derived from it.
    """

    title: str = Field(..., min_length=1, description="Feed display title")
    feed_url: str = Field(..., description="URL of the RSS/Atom feed")
    site_link: str = Field(..., description="URL for linking to the source site")
    ingest: bool = Field(default=True, description="Pull new and changed content")
    display: bool = Field(default=True, description="Show this feed's items")

    model_config = {"frozen": True}

    @field_validator("feed_url", "site_link")
    @classmethod
    def validate_urls(cls, v):
        """Reject anything that is not an http(s) URL, keep the value verbatim."""
        try:
            URLValidator.validate_feed_url(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e
        return v.strip()

    def __str__(self) -> str:
        return f"FeedConfig({self.title}:{self.feed_url})"


class ItemState(str, Enum):
    """Status of a syndicated item record.

    PUBLISHED and EXPIRED are owned by syndication. Every other status is set
    by a person on the ingesting side and counts as locally suppressed.
    """

    PUBLISHED = "published"
    EXPIRED = "expired"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    TRASH = "trash"

    @property
    def is_locally_suppressed(self) -> bool:
        return self not in (ItemState.PUBLISHED, ItemState.EXPIRED)


class SourceGroup(BaseModel):
    """Local grouping record for one upstream feed."""

    id: Optional[int] = Field(default=None, description="Database primary key")
    group_key: str = Field(..., min_length=64, max_length=64, description="Hash of the feed URL")
    display_name: str = Field(..., description="Feed title with markup stripped")
    source_link: str = Field(default="", description="Link to the source site")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "SourceGroup":
        data = dict(row)
        data["created_at"] = from_db_timestamp(data.get("created_at"))
        data["updated_at"] = from_db_timestamp(data.get("updated_at"))
        return cls(**data)

    def __str__(self) -> str:
        return f"SourceGroup({self.display_name}:{self.group_key[:12]})"


class SyndicatedItem(BaseModel):
    """Local record mirroring one upstream feed item."""

    id: Optional[int] = Field(default=None, description="Database primary key")
    item_key: str = Field(..., min_length=64, max_length=64, description="Hash of the upstream GUID")
    slug: Optional[str] = Field(default=None, description="Store slug, may carry a soft-delete suffix")
    group_key: str = Field(..., description="Owning source group")
    state: ItemState = Field(default=ItemState.PUBLISHED)
    title: str = Field(default="")
    body: str = Field(default="")
    summary: str = Field(default="")
    published_at: Optional[datetime] = Field(default=None, description="Upstream publication date, set once")
    source_permalink: str = Field(default="")
    source_guid: str = Field(..., min_length=1, description="Immutable upstream identifier")
    source_site_link: str = Field(default="", description="Feed site link at ingest time")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    modified_at: Optional[datetime] = Field(default_factory=utc_now)

    def model_post_init(self, __context: Any) -> None:
        if not self.slug:
            self.slug = self.item_key

    @property
    def is_locally_suppressed(self) -> bool:
        return self.state.is_locally_suppressed

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "SyndicatedItem":
        data = dict(row)
        for column in ("published_at", "created_at", "modified_at"):
            data[column] = from_db_timestamp(data.get(column))
        return cls(**data)

    def __str__(self) -> str:
        return f"SyndicatedItem({self.title[:50]}:{self.state.value})"


class Schedule(BaseModel):
    """A persisted recurring trigger: run `hook(arg)` every interval."""

    id: Optional[int] = Field(default=None)
    hook: str = Field(..., min_length=1)
    arg: str = Field(default="")
    interval_seconds: int = Field(..., gt=0)
    next_run_at: datetime
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Schedule":
        data = dict(row)
        for column in ("next_run_at", "last_run_at", "created_at"):
            data[column] = from_db_timestamp(data.get(column))
        return cls(**data)

    def is_due(self, now: datetime) -> bool:
        return self.next_run_at <= now


@dataclass
class UpstreamItem:
    """One item as parsed out of a feed payload."""

    guid: str
    title: str = ""
    description: str = ""
    content: str = ""
    permalink: str = ""
    date: Optional[datetime] = None


@dataclass
class FeedMetadata:
    """Channel-level data from a parsed feed."""

    title: str = ""
    link: str = ""
    description: str = ""


@dataclass
class GroupEvent:
    """Emitted when a source group is created or its metadata changes."""

    kind: str  # "created" or "updated"
    group: SourceGroup
    changed_fields: List[str] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    """Outcome of reconciling one feed poll against the store."""

    feed_url: str
    group_key: str
    created: int = 0
    updated: int = 0
    expired: int = 0
    republished: int = 0
    unchanged: int = 0
    skipped: int = 0
    protected: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def total_writes(self) -> int:
        return self.created + self.updated + self.expired + self.republished

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed_url": self.feed_url,
            "group_key": self.group_key,
            "created": self.created,
            "updated": self.updated,
            "expired": self.expired,
            "republished": self.republished,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "protected": self.protected,
            "errors": [
                {"item_key": item_key, "cause": cause}
                for item_key, cause in self.errors
            ],
        }
