# volunteer_board/core/config.py - Environment-driven configuration
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional


class Settings(BaseSettings):
    """
    Settings for the volunteer board API
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database Settings
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./volunteer_board.db",
        description="Async SQLAlchemy database URL (postgresql+asyncpg or sqlite+aiosqlite)"
    )

    # Application Settings
    ENVIRONMENT: str = Field("development", description="Environment name")
    LOG_LEVEL: str = Field("INFO", description="Log level")
    BOARD_NAME: str = Field("Makerspace Task Board", description="Name shown in announcements")
    PUBLIC_BASE_URL: str = Field("http://localhost:3000", description="Base URL used to build task links")

    # Logging Configuration
    ENABLE_JSON_LOGGING: bool = Field(False, description="Enable JSON structured logging")

    # OpenTelemetry Configuration
    ENABLE_OTEL_EXPORTER: bool = Field(True, description="Enable OpenTelemetry tracing")
    ENABLE_OTEL_CONSOLE_EXPORT: bool = Field(False, description="Print finished spans to the console")
    ENABLE_EXTERNAL_TRACING: bool = Field(False, description="Export spans to an OTLP collector")
    OTLP_ENDPOINT: str = Field("http://localhost:4317", description="OTLP gRPC collector endpoint")

    # CORS Settings
    CORS_ORIGINS: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Performance Settings
    DB_POOL_SIZE: int = Field(20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(0, description="Database max overflow connections")

    # Realtime Settings
    CHANGE_FEED_QUEUE_SIZE: int = Field(1000, ge=1, description="Pending events allowed per subscriber")

    # Notification Settings
    NOTIFY_WEBHOOK_URL: Optional[str] = Field(None, description="Chat webhook receiving announcements")
    NOTIFY_DM_WEBHOOK_URL: Optional[str] = Field(None, description="Bot relay for direct messages (default: NOTIFY_WEBHOOK_URL)")
    NOTIFY_TIMEOUT_SECONDS: float = Field(5.0, gt=0, description="Timeout for a single announcement")
    NOTIFY_MAX_RETRIES: int = Field(3, ge=1, description="Delivery attempts per announcement")
    NOTIFY_WORKERS: int = Field(2, ge=1, description="Concurrent delivery workers")

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert CORS_ORIGINS string to list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def should_use_json_logging(self) -> bool:
        """Use JSON logging in production or when explicitly enabled"""
        return self.ENVIRONMENT == "production" or self.ENABLE_JSON_LOGGING

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


# Create settings instance
settings = Settings()
