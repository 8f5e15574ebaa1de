"""Daily mood polls, stats summaries and wellness alerts posted to Discord."""
import logging
from datetime import UTC, datetime, timedelta
from typing import Dict, List
from zoneinfo import ZoneInfo

import httpx

from config import AppConfig
from discord_client import DiscordClient
from models import Mood
from schemas import DailyStats
from storage import DATE_FORMAT, StorageError, StorageService

logger = logging.getLogger(__name__)

COLOR_GREY = 0x808080
COLOR_GREEN = 0x00FF00
COLOR_RED = 0xFF6B6B
COLOR_YELLOW = 0xFFCC00
COLOR_BLURPLE = 0x5865F2

FOOTER_TEXT = "Weabot • Mood Tracker"

POLL_DURATION_HOURS = 24


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def build_bar(count: int, total: int) -> str:
    """Ten-cell bar with percentage and raw count, e.g. '███░░░░░░░ 30% (3)'."""
    if total == 0:
        return "No data"
    pct = _round_half_up(count / total * 100)
    filled = _round_half_up(pct / 10)
    return f"{'█' * filled}{'░' * (10 - filled)} {pct}% ({count})"


def dominant_emoji(umazing: int, ok: int, glue: int) -> str:
    if umazing >= ok and umazing >= glue:
        return "🌟"
    if glue > ok:
        return "🩹"
    return "😐"


def sum_stats(stats: List[DailyStats]) -> Dict[str, int]:
    totals = {"umazing": 0, "ok": 0, "glue": 0, "total": 0}
    for day in stats:
        totals["umazing"] += day.umazing
        totals["ok"] += day.ok
        totals["glue"] += day.glue
        totals["total"] += day.total
    return totals


def build_stats_embed(stats: List[DailyStats], title: str = "📊 Mood Stats") -> dict:
    """Build a Discord embed payload summarising mood distribution over the given days."""
    totals = sum_stats(stats)

    fields = [
        {"name": "🌟 Umazing", "value": build_bar(totals["umazing"], totals["total"]), "inline": False},
        {"name": "😐 Ok", "value": build_bar(totals["ok"], totals["total"]), "inline": False},
        {"name": "🩹 Glue", "value": build_bar(totals["glue"], totals["total"]), "inline": False},
    ]

    # Daily breakdown only makes sense for a range
    if len(stats) > 1:
        recent_days = [
            f"{day.date}: {dominant_emoji(day.umazing, day.ok, day.glue)} ({day.total} votes)"
            for day in stats[-7:]
        ]
        fields.append({
            "name": "📅 Recent Days",
            "value": "\n".join(recent_days) or "No data",
            "inline": False,
        })

    color = COLOR_GREY
    if totals["total"] > 0:
        if totals["umazing"] >= totals["ok"] and totals["umazing"] >= totals["glue"]:
            color = COLOR_GREEN
        elif totals["glue"] > totals["ok"]:
            color = COLOR_RED
        else:
            color = COLOR_YELLOW

    return {
        "embeds": [
            {
                "title": title,
                "description": f"Total responses: {totals['total']}",
                "color": color,
                "fields": fields,
                "footer": {"text": FOOTER_TEXT},
                "timestamp": datetime.now(UTC).isoformat(),
            }
        ]
    }


def build_alert_embed(user_name: str, consecutive_days: int) -> dict:
    """Build the wellness-check embed for a user on a glue streak."""
    return {
        "embeds": [
            {
                "title": "💙 Wellness Check",
                "description": (
                    f'Hey **{user_name}**, we noticed you\'ve been feeling "glue" '
                    f"for {consecutive_days} days in a row. "
                    "Just wanted to check in and remind you that it's okay to have tough days. "
                    "Your friends are here for you. 💪"
                ),
                "color": COLOR_BLURPLE,
                "fields": [
                    {
                        "name": "Resources",
                        "value": (
                            "• Talk to someone you trust\n"
                            "• Take a break if you need it\n"
                            "• Remember: this too shall pass"
                        ),
                        "inline": False,
                    }
                ],
                "footer": {"text": "This is an automated wellness check • Weabot"},
            }
        ]
    }


def stats_window(time_zone: str, days: int) -> tuple[str, str]:
    """Start and end dates covering the last `days` days, ending today in `time_zone`."""
    today = datetime.now(ZoneInfo(time_zone)).date()
    start = today - timedelta(days=days)
    return start.strftime(DATE_FORMAT), today.strftime(DATE_FORMAT)


def poll_date_string(time_zone: str) -> str:
    """Today in `time_zone`, written out for the poll question, e.g. 'December 10, 2025'."""
    today = datetime.now(ZoneInfo(time_zone)).date()
    return f"{today:%B} {today.day}, {today.year}"


def build_poll_payload(
    date_string: str,
    duration_hours: int = POLL_DURATION_HOURS,
    allow_multiselect: bool = False,
) -> dict:
    """Build a Discord poll message asking for the day's mood."""
    return {
        "poll": {
            "question": {"text": f"Mood ({date_string})"},
            "answers": [{"poll_media": {"text": mood.value}} for mood in Mood],
            "duration": duration_hours,
            "allow_multiselect": allow_multiselect,
        }
    }


async def post_daily_poll(discord: DiscordClient, config: AppConfig) -> dict:
    """
    Post today's mood poll to the main channel.

    Returns:
        dict with success status and details
    """
    date_string = poll_date_string(config.time_zone)
    logger.info(f"Posting mood poll for {date_string}...")

    try:
        response = await discord.post_message(config.channel_id, build_poll_payload(date_string))
    except httpx.HTTPError as e:
        logger.error(f"Error posting poll: {str(e)}")
        return {"success": False, "error": str(e)}

    if not response.is_success:
        logger.error(f"Failed to post poll: {response.status_code}")
        logger.error(response.text)
        return {"success": False, "error": f"Discord returned {response.status_code}"}

    logger.info("Poll posted successfully!")
    return {"success": True, "question": f"Mood ({date_string})"}


async def send_wellness_alerts(
    storage: StorageService,
    discord: DiscordClient,
    config: AppConfig,
) -> dict:
    """
    Post a wellness alert for every user at or above the glue threshold.

    Returns:
        dict with success status and details
    """
    threshold = config.glue_alert_threshold
    logger.info(f"Starting wellness check (threshold={threshold})...")

    try:
        at_risk = await storage.get_users_at_risk(threshold)
    except StorageError as e:
        logger.error(f"Wellness check could not read votes: {str(e)}")
        return {"success": False, "error": str(e)}

    if not at_risk:
        logger.info("No users at risk. Everyone is doing okay!")
        return {"success": True, "users_at_risk": 0, "alerts_sent": 0, "failed": []}

    sent = 0
    failed = []
    for history in at_risk:
        user = history[0]
        payload = build_alert_embed(user.user_name, len(history))
        try:
            response = await discord.post_message(config.alerts_channel, payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send alert for {user.user_name}: {str(e)}")
            failed.append(user.user_id)
            continue

        if response.is_success:
            logger.info(f"Alert sent for {user.user_name}")
            sent += 1
        else:
            logger.error(f"Failed to send alert for {user.user_name}: {response.status_code}")
            failed.append(user.user_id)

    return {
        "success": not failed,
        "users_at_risk": len(at_risk),
        "alerts_sent": sent,
        "failed": failed,
    }


async def send_stats_summary(
    storage: StorageService,
    discord: DiscordClient,
    config: AppConfig,
    days: int = 7,
) -> dict:
    """
    Post a mood stats summary for the last `days` days.

    Returns:
        dict with success status and details
    """
    start_date, end_date = stats_window(config.time_zone, days)
    logger.info(f"Starting stats summary for {start_date} to {end_date}...")

    try:
        stats = await storage.get_stats(start_date, end_date)
        title = "📊 Weekly Mood Summary" if days == 7 else f"📊 Mood Stats (Last {days} Days)"
        response = await discord.post_message(config.channel_id, build_stats_embed(stats, title))
    except (StorageError, httpx.HTTPError) as e:
        logger.error(f"Error posting stats summary: {str(e)}")
        return {"success": False, "error": str(e)}

    if not response.is_success:
        logger.error(f"Failed to post stats summary: {response.status_code}")
        logger.error(response.text)
        return {"success": False, "error": f"Discord returned {response.status_code}"}

    logger.info("Stats summary posted successfully!")
    return {
        "success": True,
        "start_date": start_date,
        "end_date": end_date,
        "total_votes": sum(day.total for day in stats),
    }
