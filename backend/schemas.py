from datetime import datetime

from pydantic import BaseModel, field_validator

from models import Mood, VoteRecord


class DailyStats(BaseModel):
    date: str
    umazing: int = 0
    ok: int = 0
    glue: int = 0
    total: int = 0

    def add(self, mood: Mood) -> None:
        setattr(self, mood.value, getattr(self, mood.value) + 1)
        self.total += 1


class IndexMismatch(BaseModel):
    user_id: str
    date: str
    by_date: VoteRecord | None = None
    by_user: VoteRecord | None = None

    @property
    def reason(self) -> str:
        if self.by_date is None:
            return "missing from votes-by-date index"
        if self.by_user is None:
            return "missing from votes-by-user index"
        return "payloads differ"


class VoteCreate(BaseModel):
    user_id: str
    user_name: str = "TestUser"
    mood: Mood
    date: str | None = None  # YYYY-MM-DD format, defaults to today

    @field_validator("user_id", "user_name")
    @classmethod
    def validate_not_blank(cls, v):
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class VoteResponse(BaseModel):
    ok: bool
    user_id: str
    mood: Mood
    date: str


class VoteRow(BaseModel):
    user_id: str
    user_name: str
    mood: Mood
    date: str
    timestamp: datetime


class StatsResponse(BaseModel):
    start_date: str
    end_date: str
    stats: list[DailyStats]
    embed: dict


class UserHistoryResponse(BaseModel):
    user_id: str
    consecutive_glue: int
    history: list[VoteRow]


class AtRiskUser(BaseModel):
    user_id: str
    user_name: str
    consecutive_days: int


class AlertCheckResponse(BaseModel):
    threshold: int
    users_at_risk: list[AtRiskUser]


class IndexCheckResponse(BaseModel):
    ok: bool
    mismatches: list[dict]
