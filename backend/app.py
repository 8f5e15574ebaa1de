import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig, ConfigError, configured_time_zone, load_config
from db import create_db_and_tables, make_engine, make_session_factory
from discord_client import DiscordClient
from report import (
    build_alert_embed,
    build_stats_embed,
    post_daily_poll,
    send_stats_summary,
    send_wellness_alerts,
    stats_window,
)
from schemas import (
    AlertCheckResponse,
    AtRiskUser,
    IndexCheckResponse,
    StatsResponse,
    UserHistoryResponse,
    VoteCreate,
    VoteResponse,
    VoteRow,
)
from storage import (
    DATE_FORMAT,
    HISTORY_LOOKBACK_DAYS,
    InvalidArgument,
    SqlStorage,
    StorageService,
    StorageUnavailable,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    engine = make_engine()
    await create_db_and_tables(engine)
    app.state.storage = SqlStorage(make_session_factory(engine))
    logger.info("Database initialized")
    yield
    await engine.dispose()


# Create FastAPI app
app = FastAPI(title="Mood Tracker API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


@lru_cache
def get_config() -> AppConfig:
    try:
        return load_config()
    except ConfigError as e:
        logger.error(str(e))
        raise HTTPException(status_code=503, detail=str(e)) from e


async def get_discord(config: AppConfig = Depends(get_config)):
    async with DiscordClient(config.discord_token) as client:
        yield client


def storage_error_to_http(e: Exception) -> HTTPException:
    if isinstance(e, InvalidArgument):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=503, detail=f"Storage unavailable: {e}")


def today_string() -> str:
    return datetime.now(ZoneInfo(configured_time_zone())).strftime(DATE_FORMAT)


@app.post("/votes", response_model=VoteResponse)
async def record_vote(vote: VoteCreate, storage: StorageService = Depends(get_storage)):
    """Record (or overwrite) a user's mood for a day."""
    vote_date = vote.date or today_string()
    logger.info(f"Vote request: {vote.user_name} ({vote.user_id}) = {vote.mood.value} on {vote_date}")

    try:
        await storage.record_vote(vote.user_id, vote.user_name, vote.mood, vote_date)
    except (InvalidArgument, StorageUnavailable) as e:
        logger.error(f"Error recording vote: {str(e)}")
        raise storage_error_to_http(e) from e

    return VoteResponse(ok=True, user_id=vote.user_id, mood=vote.mood, date=vote_date)


@app.get("/votes", response_model=list[VoteRow])
async def get_votes_for_date(
    date: str = Query(..., description="Date in YYYY-MM-DD format"),
    storage: StorageService = Depends(get_storage),
):
    """Get all votes for a single date."""
    try:
        records = await storage.get_votes_for_date(date)
    except (InvalidArgument, StorageUnavailable) as e:
        raise storage_error_to_http(e) from e

    return [VoteRow(**r.model_dump()) for r in sorted(records, key=lambda r: r.user_name.lower())]


@app.get("/stats", response_model=StatsResponse)
async def get_stats(
    days: int = Query(7, ge=0, description="Number of days back from today"),
    start_date: str = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: str = Query(None, description="End date (YYYY-MM-DD)"),
    storage: StorageService = Depends(get_storage),
):
    """Get daily mood stats, either for an explicit range or the last `days` days."""
    if (start_date is None) != (end_date is None):
        raise HTTPException(status_code=400, detail="Provide both start_date and end_date, or neither")

    if start_date is None:
        start_date, end_date = stats_window(configured_time_zone(), days)
        title = f"📊 Mood Stats (Last {days} Days)"
    else:
        title = f"📊 Mood Stats ({start_date} to {end_date})"
    logger.info(f"Stats request from {start_date} to {end_date}")

    try:
        stats = await storage.get_stats(start_date, end_date)
    except (InvalidArgument, StorageUnavailable) as e:
        logger.error(f"Error getting stats: {str(e)}")
        raise storage_error_to_http(e) from e

    return StatsResponse(
        start_date=start_date,
        end_date=end_date,
        stats=stats,
        embed=build_stats_embed(stats, title),
    )


@app.get("/users/{user_id}/history", response_model=UserHistoryResponse)
async def get_user_history(
    user_id: str,
    limit: int = Query(HISTORY_LOOKBACK_DAYS, ge=0, description="Maximum number of votes"),
    storage: StorageService = Depends(get_storage),
):
    """Get a user's votes (most recent first) and their current glue streak."""
    try:
        history = await storage.get_user_history(user_id, limit)
        consecutive_glue = await storage.get_consecutive_glue_count(user_id)
    except (InvalidArgument, StorageUnavailable) as e:
        logger.error(f"Error getting user history: {str(e)}")
        raise storage_error_to_http(e) from e

    return UserHistoryResponse(
        user_id=user_id,
        consecutive_glue=consecutive_glue,
        history=[VoteRow(**r.model_dump()) for r in history],
    )


@app.get("/alerts/check", response_model=AlertCheckResponse)
async def check_alerts(
    threshold: int = Query(None, ge=1, description="Override the configured glue threshold"),
    storage: StorageService = Depends(get_storage),
    config: AppConfig = Depends(get_config),
):
    """List users at risk without posting anything to Discord."""
    if threshold is None:
        threshold = config.glue_alert_threshold

    try:
        at_risk = await storage.get_users_at_risk(threshold)
    except (InvalidArgument, StorageUnavailable) as e:
        logger.error(f"Error checking alerts: {str(e)}")
        raise storage_error_to_http(e) from e

    users = [
        AtRiskUser(
            user_id=history[0].user_id,
            user_name=history[0].user_name,
            consecutive_days=len(history),
        )
        for history in at_risk
    ]
    return AlertCheckResponse(threshold=threshold, users_at_risk=users)


@app.get("/admin/index-check", response_model=IndexCheckResponse)
async def check_indexes(storage: StorageService = Depends(get_storage)):
    """Compare the by-date and by-user vote indexes."""
    try:
        mismatches = await storage.find_index_mismatches()
    except StorageUnavailable as e:
        raise storage_error_to_http(e) from e

    if mismatches:
        logger.warning(f"Found {len(mismatches)} index mismatch(es)")

    return IndexCheckResponse(
        ok=not mismatches,
        mismatches=[
            {"user_id": m.user_id, "date": m.date, "reason": m.reason}
            for m in mismatches
        ],
    )


@app.post("/admin/trigger-poll")
async def trigger_poll(
    discord: DiscordClient = Depends(get_discord),
    config: AppConfig = Depends(get_config),
):
    """Post today's mood poll to the main channel."""
    result = await post_daily_poll(discord, config)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result.get("error", "Failed to post poll"))
    return {"ok": True, **result}


@app.post("/admin/send-wellness-alerts")
async def trigger_wellness_alerts(
    storage: StorageService = Depends(get_storage),
    discord: DiscordClient = Depends(get_discord),
    config: AppConfig = Depends(get_config),
):
    """
    Run the wellness check and post an alert for each user at risk.

    This endpoint is designed to be called by a cron job once a day,
    after the daily poll has closed.
    """
    result = await send_wellness_alerts(storage, discord, config)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result)
    return {"ok": True, **result}


@app.post("/admin/send-stats")
async def trigger_stats_summary(
    days: int = Query(7, ge=1, description="Number of days to summarise"),
    storage: StorageService = Depends(get_storage),
    discord: DiscordClient = Depends(get_discord),
    config: AppConfig = Depends(get_config),
):
    """Post a mood stats summary for the last `days` days."""
    result = await send_stats_summary(storage, discord, config, days=days)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result.get("error", "Failed to post stats"))
    return {"ok": True, **result}


@app.post("/admin/trigger-alert")
async def trigger_test_alert(
    name: str = Query("TestUser", description="Display name to put in the alert"),
    days: int = Query(7, ge=1, description="Consecutive days to report"),
    discord: DiscordClient = Depends(get_discord),
    config: AppConfig = Depends(get_config),
):
    """Post a sample wellness alert, for checking the embed in the channel."""
    logger.info(f"Triggering test alert for {name} ({days} days)")
    try:
        response = await discord.post_message(config.alerts_channel, build_alert_embed(name, days))
    except httpx.HTTPError as e:
        logger.error(f"Error posting test alert: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    if not response.is_success:
        logger.error(f"Failed to post test alert: {response.status_code}")
        raise HTTPException(status_code=502, detail=f"Discord returned {response.status_code}")
    return {"ok": True, "message": "Alert posted"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Mood Tracker API", "docs": "/docs"}
