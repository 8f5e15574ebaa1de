"""Application settings loaded from environment variables.

Required settings fail fast at startup instead of surfacing later as a
failed Discord call.
"""
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ValidationError, field_validator

DEFAULT_TIME_ZONE = "America/Los_Angeles"
DEFAULT_GLUE_ALERT_THRESHOLD = 7


class ConfigError(RuntimeError):
    pass


class AppConfig(BaseModel):
    discord_token: str
    channel_id: str
    alert_channel_id: str | None = None
    time_zone: str = DEFAULT_TIME_ZONE
    glue_alert_threshold: int = DEFAULT_GLUE_ALERT_THRESHOLD

    @field_validator("time_zone")
    @classmethod
    def validate_time_zone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @field_validator("glue_alert_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if v < 1:
            raise ValueError("GLUE_ALERT_THRESHOLD must be at least 1")
        return v

    @property
    def alerts_channel(self) -> str:
        return self.alert_channel_id or self.channel_id


def get_env_or_raise(key: str) -> str:
    value = os.getenv(key)
    if not value:
        raise ConfigError(f"FATAL: Missing required environment variable: {key}")
    return value


def load_config() -> AppConfig:
    """Build the config from the environment, raising ConfigError if it is unusable."""
    try:
        return AppConfig(
            discord_token=get_env_or_raise("DISCORD_TOKEN"),
            channel_id=get_env_or_raise("CHANNEL_ID"),
            alert_channel_id=os.getenv("ALERT_CHANNEL_ID") or None,
            time_zone=os.getenv("TIME_ZONE", DEFAULT_TIME_ZONE),
            glue_alert_threshold=os.getenv("GLUE_ALERT_THRESHOLD", str(DEFAULT_GLUE_ALERT_THRESHOLD)),
        )
    except ValidationError as e:
        raise ConfigError(f"FATAL: Invalid configuration: {e}") from e


def configured_time_zone() -> str:
    """Time zone used to decide what "today" is, readable without the Discord settings."""
    return os.getenv("TIME_ZONE") or DEFAULT_TIME_ZONE
