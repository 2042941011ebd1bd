"""Configuration management for shamebot."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/shamebot.db", description="Path to the SQLite database file")

    # Discord Configuration
    discord_bot_token: str | None = Field(default=None, description="Discord bot token used for REST API calls")
    discord_api_base_url: str = Field(default="https://discord.com/api/v10", description="Discord REST API base URL")
    discord_default_channel_id: str | None = Field(
        default=None, description="Channel that receives guild notices when a guild has no send_to channel"
    )
    discord_operator_channel_id: str | None = Field(
        default=None, description="Channel that receives operator alerts (delivery failures, dead letters)"
    )
    shamebot_url: str = Field(default="http://localhost:3000", description="Front-end URL used in task links")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="production", description="Deployment environment name reported to Logfire")

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value

    # Dispatcher Configuration
    dispatch_poll_interval_seconds: float = Field(
        default=15.0, description="How often the dispatcher polls for due jobs (in seconds)"
    )
    dispatch_max_attempts: int = Field(default=3, description="Delivery attempts per job firing before giving up")
    dispatch_backoff_base_seconds: float = Field(
        default=2.0, description="Base delay for exponential backoff between delivery attempts (in seconds)"
    )

    # Task Job Configuration
    reminder_lead_seconds: int = Field(default=3600, description="How long before the due time the reminder fires")
    overdue_grace_seconds: int = Field(default=0, description="Delay after the due time before the overdue alert")
    default_pester_limit: int = Field(default=5, description="Maximum pester reminders per task unless overridden")

    # Admin Notification Configuration
    enable_admin_notifications: bool = Field(
        default=True, description="Enable/disable operator notifications for delivery failures"
    )
    admin_notification_cooldown_minutes: int = Field(
        default=60, description="Cooldown period between notifications for the same error kind (in minutes)"
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # Rate Limiting
    MAX_REQUESTS_PER_MINUTE: int = 30

    # Task limits (title column is VARCHAR(80))
    MAX_TITLE_LENGTH: int = 80
    MIN_PESTER_INTERVAL_SECONDS: int = 60

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100
    TRACKER_CONSECUTIVE_FAILURE_THRESHOLD: int = 3

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100
    DUE_JOBS_BATCH_LIMIT: int = 200


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
