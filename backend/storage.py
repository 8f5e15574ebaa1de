"""Vote storage and aggregation.

Every vote is written under two keys: (date, user_id) for per-day queries and
(user_id, date) for a user's history. Both writes succeed together or the
call fails; a vote is never left in only one index.
"""
import logging
from datetime import UTC, date, datetime, timedelta
from typing import Iterable, Protocol

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import DateVote, Mood, UserVote, VoteRecord, to_record
from schemas import DailyStats, IndexMismatch

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

# Streaks are counted over this many most recent votes, so a streak longer
# than the window is reported as the window size.
HISTORY_LOOKBACK_DAYS = 30

# Native upserts, so concurrent writes to the same pair resolve in the database
UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class StorageError(Exception):
    """Base class for storage failures."""


class InvalidArgument(StorageError, ValueError):
    """Input rejected before reaching the store."""


class StorageUnavailable(StorageError):
    """The underlying store failed to read or write."""


def parse_date(value: str, field: str = "date") -> date:
    """Parse a strict YYYY-MM-DD string."""
    try:
        parsed = datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"{field} must be a YYYY-MM-DD date, got {value!r}") from e
    # strptime accepts "2025-1-5"; lexicographic range checks need zero padding
    if parsed.strftime(DATE_FORMAT) != value:
        raise InvalidArgument(f"{field} must be a YYYY-MM-DD date, got {value!r}")
    return parsed


def validate_vote(user_id: str, user_name: str, mood, vote_date: str) -> Mood:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidArgument("user_id must be a non-empty string")
    if not isinstance(user_name, str) or not user_name.strip():
        raise InvalidArgument("user_name must be a non-empty string")
    try:
        valid_mood = Mood(mood)
    except ValueError as e:
        valid_moods = [m.value for m in Mood]
        raise InvalidArgument(f"mood must be one of: {valid_moods}") from e
    parse_date(vote_date)
    return valid_mood


def build_daily_stats(
    records: Iterable[VoteRecord], start_date: str, end_date: str
) -> list[DailyStats]:
    """
    Zero-filled per-day mood counts for [start_date, end_date], oldest first.

    A reversed range has no days and yields an empty list.
    """
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")

    stats_by_date = {}
    day = start
    while day <= end:
        key = day.strftime(DATE_FORMAT)
        stats_by_date[key] = DailyStats(date=key)
        day += timedelta(days=1)

    for record in records:
        if start_date <= record.date <= end_date:
            stats = stats_by_date.get(record.date)
            if stats:
                stats.add(Mood(record.mood))

    return sorted(stats_by_date.values(), key=lambda s: s.date)


def leading_glue_count(history: Iterable[VoteRecord]) -> int:
    """Count glue votes from the most recent backwards, stopping at the first other mood."""
    count = 0
    for record in history:
        if record.mood != Mood.GLUE:
            break
        count += 1
    return count


def check_limit(limit: int) -> None:
    if limit < 0:
        raise InvalidArgument(f"limit must be >= 0, got {limit}")


class StorageService(Protocol):
    async def record_vote(self, user_id: str, user_name: str, mood: Mood, date: str) -> None: ...

    async def get_user_history(self, user_id: str, limit: int = HISTORY_LOOKBACK_DAYS) -> list[VoteRecord]: ...

    async def get_votes_for_date(self, date: str) -> list[VoteRecord]: ...

    async def get_stats(self, start_date: str, end_date: str) -> list[DailyStats]: ...

    async def get_consecutive_glue_count(self, user_id: str) -> int: ...

    async def get_users_at_risk(self, threshold: int) -> list[list[VoteRecord]]: ...

    async def find_index_mismatches(self) -> list[IndexMismatch]: ...


class StreakQueries:
    """Queries shared by every backend, built on get_user_history."""

    async def get_consecutive_glue_count(self, user_id: str) -> int:
        history = await self.get_user_history(user_id, HISTORY_LOOKBACK_DAYS)
        return leading_glue_count(history)

    async def get_users_at_risk(self, threshold: int) -> list[list[VoteRecord]]:
        """Most recent `threshold` votes of every user whose glue streak reaches `threshold`."""
        if threshold < 1:
            raise InvalidArgument(f"threshold must be >= 1, got {threshold}")

        at_risk = []
        for user_id in await self._known_user_ids():
            count = await self.get_consecutive_glue_count(user_id)
            if count >= threshold:
                at_risk.append(await self.get_user_history(user_id, threshold))

        logger.info(f"{len(at_risk)} user(s) at or above glue threshold {threshold}")
        return at_risk

    async def find_index_mismatches(self) -> list[IndexMismatch]:
        """Every (user_id, date) that is missing from one index or differs between them."""
        by_date, by_user = await self._index_snapshot()

        mismatches = []
        for user_id, vote_date in sorted(set(by_date) | set(by_user)):
            date_record = by_date.get((user_id, vote_date))
            user_record = by_user.get((user_id, vote_date))
            if date_record and user_record and date_record.same_payload(user_record):
                continue
            mismatches.append(
                IndexMismatch(
                    user_id=user_id,
                    date=vote_date,
                    by_date=date_record,
                    by_user=user_record,
                )
            )
        return mismatches


class MemoryStorage(StreakQueries):
    """In-process store, used for tests and local runs without a database."""

    def __init__(self):
        self._by_date: dict[str, dict[str, VoteRecord]] = {}
        self._by_user: dict[str, dict[str, VoteRecord]] = {}

    async def record_vote(self, user_id, user_name, mood, date):
        valid_mood = validate_vote(user_id, user_name, mood, date)
        record = VoteRecord(user_id=user_id, user_name=user_name, mood=valid_mood, date=date)

        # No await between the writes, so other coroutines never see just one
        self._by_date.setdefault(date, {})[user_id] = record
        self._by_user.setdefault(user_id, {})[date] = record.model_copy()
        logger.debug(f"Recorded vote: {user_name} ({user_id}) = {valid_mood.value} on {date}")

    async def get_user_history(self, user_id, limit=HISTORY_LOOKBACK_DAYS):
        check_limit(limit)
        records = sorted(
            self._by_user.get(user_id, {}).values(),
            key=lambda r: r.date,
            reverse=True,
        )
        return [r.model_copy() for r in records[:limit]]

    async def get_votes_for_date(self, date):
        parse_date(date)
        return [r.model_copy() for r in self._by_date.get(date, {}).values()]

    async def get_stats(self, start_date, end_date):
        records = (r for day in self._by_date.values() for r in day.values())
        return build_daily_stats(records, start_date, end_date)

    async def _known_user_ids(self) -> list[str]:
        return list(self._by_user)

    async def _index_snapshot(self):
        by_date = {
            (user_id, vote_date): record
            for vote_date, votes in self._by_date.items()
            for user_id, record in votes.items()
        }
        by_user = {
            (user_id, vote_date): record
            for user_id, votes in self._by_user.items()
            for vote_date, record in votes.items()
        }
        return by_date, by_user


def upsert_statement(session: AsyncSession, table, keys: list[str], fields: dict):
    """INSERT ... ON CONFLICT DO UPDATE for the session's database."""
    dialect = session.bind.dialect.name
    if dialect not in UPSERT_DIALECTS:
        raise StorageUnavailable(f"Unsupported database dialect: {dialect}")

    stmt = UPSERT_DIALECTS[dialect](table).values(**fields)
    return stmt.on_conflict_do_update(
        index_elements=keys,
        set_={name: stmt.excluded[name] for name in fields if name not in keys},
    )


class SqlStorage(StreakQueries):
    """Store backed by the `votes` and `user_votes` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record_vote(self, user_id, user_name, mood, date):
        valid_mood = validate_vote(user_id, user_name, mood, date)
        fields = {
            "user_id": user_id,
            "user_name": user_name,
            "mood": valid_mood,
            "date": date,
            "timestamp": datetime.now(UTC),
        }

        try:
            async with self.session_factory() as session:
                # Single transaction: both rows are committed or neither is
                async with session.begin():
                    await session.exec(upsert_statement(session, DateVote, ["date", "user_id"], fields))
                    await session.exec(upsert_statement(session, UserVote, ["user_id", "date"], fields))
        except SQLAlchemyError as e:
            logger.error(f"Failed to record vote for user_id={user_id} on {date}: {str(e)}")
            raise StorageUnavailable(f"Could not record vote: {e}") from e

        logger.debug(f"Recorded vote: {user_name} ({user_id}) = {valid_mood.value} on {date}")

    async def get_user_history(self, user_id, limit=HISTORY_LOOKBACK_DAYS):
        check_limit(limit)
        stmt = (
            select(UserVote)
            .where(UserVote.user_id == user_id)
            .order_by(UserVote.date.desc())
            .limit(limit)
        )
        return await self._fetch_records(stmt)

    async def get_votes_for_date(self, date):
        parse_date(date)
        return await self._fetch_records(select(DateVote).where(DateVote.date == date))

    async def get_stats(self, start_date, end_date):
        parse_date(start_date, "start_date")
        parse_date(end_date, "end_date")
        if start_date > end_date:
            return []

        stmt = (
            select(DateVote)
            .where(DateVote.date >= start_date)
            .where(DateVote.date <= end_date)
        )
        records = await self._fetch_records(stmt)
        return build_daily_stats(records, start_date, end_date)

    async def _known_user_ids(self) -> list[str]:
        return await self._fetch(select(UserVote.user_id).distinct())

    async def _index_snapshot(self):
        by_date = {(r.user_id, r.date): r for r in await self._fetch_records(select(DateVote))}
        by_user = {(r.user_id, r.date): r for r in await self._fetch_records(select(UserVote))}
        return by_date, by_user

    async def _fetch_records(self, stmt) -> list[VoteRecord]:
        return [to_record(row) for row in await self._fetch(stmt)]

    async def _fetch(self, stmt) -> list:
        try:
            async with self.session_factory() as session:
                result = await session.exec(stmt)
                return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Storage read failed: {str(e)}")
            raise StorageUnavailable(f"Could not read votes: {e}") from e
