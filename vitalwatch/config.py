"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class FeedConfig(BaseModel):
    """Connection settings for the push-based vitals feed."""

    url: str = Field(default="http://localhost:3001", description="Feed server URL")
    socketio_path: str = Field(default="websocket", description="Socket.IO endpoint path")
    transports: list[str] = Field(
        default_factory=lambda: ["websocket"], description="Allowed Socket.IO transports"
    )

    connect_timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Timeout for the initial handshake"
    )
    max_connect_attempts: int = Field(
        default=5, gt=0, description="Attempts before giving up on the initial connection"
    )
    reconnect_delay_seconds: float = Field(
        default=1.0, gt=0.0, description="Initial delay between reconnection attempts"
    )
    reconnect_delay_max_seconds: float = Field(
        default=5.0, gt=0.0, description="Upper bound for the reconnection backoff"
    )

    @model_validator(mode="after")
    def delay_bounds_ordered(self) -> "FeedConfig":
        if self.reconnect_delay_max_seconds < self.reconnect_delay_seconds:
            raise ValueError("reconnect_delay_max_seconds must be >= reconnect_delay_seconds")
        return self


class ClassificationConfig(BaseModel):
    """Heart-rate classification settings."""

    # Substituted for freshly assigned patients with no configured bounds
    default_min_heart_rate: float = Field(
        default=55.0, gt=0.0, description="Default lower heart-rate bound"
    )
    default_max_heart_rate: float = Field(
        default=120.0, gt=0.0, description="Default upper heart-rate bound"
    )
    guard_band_ratio: float = Field(
        default=0.10, ge=0.0, lt=0.5, description="Proportional warning margin inside the bounds"
    )

    @model_validator(mode="after")
    def defaults_ordered(self) -> "ClassificationConfig":
        if self.default_min_heart_rate >= self.default_max_heart_rate:
            raise ValueError("default_min_heart_rate must be lower than default_max_heart_rate")
        return self


class AlarmConfig(BaseModel):
    """Alarm and alert history settings."""

    sound_file: str = Field(default="sounds/alarm.mp3", description="Looping alarm sound")
    alert_history_size: int = Field(
        default=1000, gt=0, description="Number of alert events kept in memory"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    feed: FeedConfig = Field(default_factory=FeedConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    alarms: AlarmConfig = Field(default_factory=AlarmConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    feed_config = FeedConfig(
        url=os.getenv("FEED_URL", "http://localhost:3001"),
        socketio_path=os.getenv("FEED_SOCKETIO_PATH", "websocket"),
        transports=[
            t.strip() for t in os.getenv("FEED_TRANSPORTS", "websocket").split(",") if t.strip()
        ],
        connect_timeout_seconds=float(os.getenv("FEED_CONNECT_TIMEOUT_SECONDS", "5.0")),
        max_connect_attempts=int(os.getenv("FEED_MAX_CONNECT_ATTEMPTS", "5")),
        reconnect_delay_seconds=float(os.getenv("FEED_RECONNECT_DELAY_SECONDS", "1.0")),
        reconnect_delay_max_seconds=float(os.getenv("FEED_RECONNECT_DELAY_MAX_SECONDS", "5.0")),
    )

    classification_config = ClassificationConfig(
        default_min_heart_rate=float(os.getenv("DEFAULT_MIN_HEART_RATE", "55")),
        default_max_heart_rate=float(os.getenv("DEFAULT_MAX_HEART_RATE", "120")),
    )

    alarm_config = AlarmConfig(
        sound_file=os.getenv("ALARM_SOUND_FILE", "sounds/alarm.mp3"),
        alert_history_size=int(os.getenv("ALERT_HISTORY_SIZE", "1000")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        feed=feed_config,
        classification=classification_config,
        alarms=alarm_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
        print(f"Vitals feed: {config.feed.url} (path /{config.feed.socketio_path})")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nFEED")
    print(f"URL: {config.feed.url}")
    print(f"Transports: {', '.join(config.feed.transports)}")
    print(
        f"Reconnect: {config.feed.reconnect_delay_seconds}s"
        f" .. {config.feed.reconnect_delay_max_seconds}s"
    )

    print("\nCLASSIFICATION")
    print(
        f"Default bounds: {config.classification.default_min_heart_rate:g}"
        f" - {config.classification.default_max_heart_rate:g} bpm"
    )
    print(f"Guard band: {config.classification.guard_band_ratio:.0%}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
