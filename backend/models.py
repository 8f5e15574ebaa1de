from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class Mood(str, Enum):
    UMAZING = "umazing"
    OK = "ok"
    GLUE = "glue"


class VoteRecord(SQLModel):
    """One user's mood for one calendar day."""

    user_id: str
    user_name: str  # Display name, not identity-bearing
    mood: Mood
    date: str  # YYYY-MM-DD format
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )

    def same_payload(self, other: "VoteRecord") -> bool:
        return (
            self.user_id == other.user_id
            and self.user_name == other.user_name
            and self.mood == other.mood
            and self.date == other.date
            and self.timestamp == other.timestamp
        )


class DateVote(VoteRecord, table=True):
    """Votes keyed by (date, user_id) for per-day lookups."""

    __tablename__ = "votes"

    date: str = Field(primary_key=True, index=True)
    user_id: str = Field(primary_key=True)


class UserVote(VoteRecord, table=True):
    """Votes keyed by (user_id, date) for per-user history."""

    __tablename__ = "user_votes"

    user_id: str = Field(primary_key=True)
    date: str = Field(primary_key=True)


def to_record(row: VoteRecord) -> VoteRecord:
    """Strip a table row down to a plain VoteRecord."""
    timestamp = row.timestamp
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return VoteRecord(
        user_id=row.user_id,
        user_name=row.user_name,
        mood=row.mood,
        date=row.date,
        timestamp=timestamp.astimezone(UTC),
    )
