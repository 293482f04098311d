"""Configuration management for Herald."""

import logging
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from herald.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Herald configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HERALD_ prefix. For example:
        HERALD_QDRANT_URL=http://localhost:6333
        HERALD_DISPATCH_BATCH_SIZE=100
        HERALD_BACKOFF_SCHEDULE='[30, 120, 600]'
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="herald",
        description="Prefix for Qdrant collection names",
    )
    storage_scroll_page_size: int = Field(
        default=256,
        ge=1,
        le=10000,
        description="Page size used when scrolling delivery records",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format: json for production, text for development",
    )

    # Envelope
    source_identity: str = Field(
        default="herald",
        description="Source identity placed in every envelope's meta block",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="HTTP timeout for a single webhook POST",
    )
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempt ceiling assigned to new deliveries",
    )
    dispatch_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum deliveries claimed per dispatch run",
    )
    max_concurrent_deliveries: int = Field(
        default=1,
        ge=1,
        le=100,
        description=(
            "Maximum concurrent HTTP sends within one dispatch run. "
            "1 processes the batch strictly sequentially."
        ),
    )
    backoff_schedule: list[int] = Field(
        default_factory=lambda: [60, 300, 900],
        description="Retry delays in seconds, indexed by attempt number",
    )
    backoff_default_seconds: int = Field(
        default=3600,
        ge=1,
        description="Retry delay for attempt numbers beyond the schedule",
    )
    response_body_max_chars: int = Field(
        default=1000,
        ge=0,
        le=100000,
        description="Response bodies are truncated to this length before storage",
    )

    # Endpoint health
    endpoint_failure_threshold: int = Field(
        default=5,
        ge=0,
        description=(
            "Consecutive failed attempts after which an endpoint is suspended. "
            "0 disables suspension."
        ),
    )

    # Scheduling
    dispatch_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between dispatch runs",
    )
    sweep_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Interval between failed-delivery sweeps",
    )
    sweep_quiet_period_seconds: int = Field(
        default=3600,
        ge=0,
        description="A failed delivery must be idle this long before the sweep re-evaluates it",
    )
    stale_claim_seconds: int = Field(
        default=600,
        ge=1,
        description=(
            "A delivery left in processing this long by a dead dispatch run "
            "is returned to pending by the sweep"
        ),
    )
    purge_interval_seconds: float = Field(
        default=86400.0,
        gt=0,
        description="Interval between retention purges",
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Terminal deliveries older than this are purged",
    )

    # Reporting
    recent_deliveries_limit: int = Field(
        default=10,
        ge=0,
        le=500,
        description="Number of recent deliveries included in queue status",
    )

    # HTTP API
    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the admin API binds to",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the admin API listens on",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description=(
            "List of allowed CORS origins. Use ['*'] for permissive mode (dev only). "
            "In production, specify exact origins like ['https://admin.example.com']."
        ),
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )
    cors_max_age: int = Field(
        default=600,
        ge=0,
        le=86400,
        description="Max age (seconds) for CORS preflight cache",
    )

    model_config = {
        "env_prefix": "HERALD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_backoff_schedule(self) -> "Settings":
        """Validate the retry schedule.

        The schedule must have at least one entry and every delay must be
        positive, otherwise a failed delivery would be retried immediately
        in the same dispatch window.
        """
        if not self.backoff_schedule:
            raise ValueError("backoff_schedule must contain at least one delay")
        if any(delay <= 0 for delay in self.backoff_schedule):
            raise ValueError(
                f"backoff_schedule delays must be positive, got {self.backoff_schedule}"
            )
        if self.env == "production" and self.cors_allow_origins == ["*"]:
            logger.warning("CORS allows all origins in production")
        return self


def load_settings(**overrides: Any) -> Settings:
    """Build Settings from the environment, reporting bad values as ConfigurationError.

    Raises:
        ConfigurationError: If any setting is missing or invalid.
    """
    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


# Global settings instance
settings = Settings()
