"""Application settings and configuration.

This module defines all configuration options for the marketplace chat service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Marketplace Chat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./marketplace_chat.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis configuration for the shared typing limiter store
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Symmetric conversation chat (v2) switch
    chat_v2_enabled: bool = Field(default=True, alias="CHAT_V2_ENABLED")

    # Hosted broadcast (Pusher Channels compatible) service
    broadcast_app_id: str | None = Field(default=None, alias="BROADCAST_APP_ID")
    broadcast_key: str | None = Field(default=None, alias="BROADCAST_KEY")
    broadcast_secret: str | None = Field(default=None, alias="BROADCAST_SECRET")
    broadcast_cluster: str = Field(default="mt1", alias="BROADCAST_CLUSTER")
    broadcast_host: str | None = Field(default=None, alias="BROADCAST_HOST")
    broadcast_http_timeout_seconds: float = Field(
        default=10.0,
        alias="BROADCAST_HTTP_TIMEOUT_SECONDS",
    )

    # Web push delivery
    vapid_public_key: str | None = Field(default=None, alias="VAPID_PUBLIC_KEY")
    vapid_private_key: str | None = Field(default=None, alias="VAPID_PRIVATE_KEY")
    vapid_claims_email: str = Field(
        default="mailto:notifications@example.com",
        alias="VAPID_CLAIMS_EMAIL",
    )
    push_timeout_seconds: float = Field(default=10.0, alias="PUSH_TIMEOUT_SECONDS")

    # Typing indicator debounce
    typing_rate_backend: Literal["memory", "redis"] = Field(
        default="memory",
        alias="TYPING_RATE_BACKEND",
    )
    typing_window_seconds: float = Field(default=1.0, alias="TYPING_WINDOW_SECONDS")
    typing_soft_limit: int = Field(default=5000, alias="TYPING_SOFT_LIMIT")
    typing_max_age_seconds: float = Field(default=60.0, alias="TYPING_MAX_AGE_SECONDS")

    # Client outbox retry policy (None keeps retrying forever)
    outbox_max_attempts: int | None = Field(default=25, alias="OUTBOX_MAX_ATTEMPTS")
    outbox_request_timeout_seconds: float = Field(
        default=10.0,
        alias="OUTBOX_REQUEST_TIMEOUT_SECONDS",
    )

    # Message validation
    message_body_max_length: int = Field(default=10_000, alias="MESSAGE_BODY_MAX_LENGTH")

    # Public storage base used to expand relative avatar paths
    avatar_public_base_url: str | None = Field(default=None, alias="AVATAR_PUBLIC_BASE_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def push_configured(self) -> bool:
        """Return True when VAPID keys are available for web push."""
        return bool(self.vapid_public_key and (self.vapid_private_key or "").strip())


settings = Settings()  # type: ignore[call-arg]
