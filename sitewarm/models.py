"""Models for warming statistics and cached content."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PingStatistics(BaseModel):
    """Cumulative keep-alive statistics.

    Instances are immutable; the pinger replaces its statistics wholesale at
    the end of every cycle, so a reader never sees a half-applied update.
    """

    model_config = ConfigDict(frozen=True)

    total_pings: int = Field(default=0, ge=0)
    successful_pings: int = Field(default=0, ge=0)
    last_ping_time: datetime | None = None
    last_success_time: datetime | None = None
    current_streak: int = Field(default=0, ge=0)
    is_active: bool = False

    @model_validator(mode="after")
    def validate_counts(self) -> "PingStatistics":
        """Successful pings can never outnumber attempted ones."""
        if self.successful_pings > self.total_pings:
            raise ValueError("successful_pings cannot exceed total_pings")
        return self

    @property
    def success_rate(self) -> float:
        """Percentage of cycles that succeeded, 0 before the first ping."""
        if self.total_pings == 0:
            return 0.0
        return self.successful_pings / self.total_pings * 100


class ContentSource(Enum):
    """Where a snapshot was last loaded from."""

    CACHE = "cache"
    API = "api"


class ContentItem(BaseModel):
    """A single item of the top-content listing.

    The listing is server-defined, so unknown fields are kept as-is.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    @property
    def media_url(self) -> str | None:
        """The item's cover image URL, if it has one."""
        extra = self.model_extra or {}
        for field in ("coverImage", "imageUrl"):
            value = extra.get(field)
            if isinstance(value, str) and value:
                return value
        return None


class SnapshotMetadata(BaseModel):
    """Bookkeeping attached to a content snapshot."""

    model_config = ConfigDict(frozen=True)

    total_available: int = Field(default=0, ge=0)
    fetched_count: int = Field(default=0, ge=0)
    source: ContentSource = ContentSource.API


class CachedContentSnapshot(BaseModel):
    """A wholesale-replaced copy of the top-content listing."""

    model_config = ConfigDict(frozen=True)

    items: list[ContentItem] = Field(default_factory=list)
    timestamp: datetime
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @field_validator("timestamp")
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure timestamp is timezone-aware."""
        if v.tzinfo is None:
            raise ValueError("Timestamp must be timezone-aware")
        return v

    def age(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the snapshot was captured."""
        if now is None:
            now = datetime.now(UTC)
        return (now - self.timestamp).total_seconds()

    def is_fresh(self, timeout: float, now: datetime | None = None) -> bool:
        """Check freshness; an age equal to the timeout counts as expired.

        A timestamp in the future (negative age) also counts as expired.
        """
        return 0 <= self.age(now) < timeout
