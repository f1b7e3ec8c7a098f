"""Pydantic-settings configuration for the DeFi position alerts service.

Loads service connection parameters, Telegram credentials, monitor timing
and upstream guard limits from the .env file with sensible defaults for
local development. Computed fields produce fully-formed connection URLs.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Public Aave V3 subgraph endpoints, keyed by chain id
DEFAULT_SUBGRAPH_ENDPOINTS: dict[int, str] = {
    1: "https://api.thegraph.com/subgraphs/name/aave/aave-v3-ethereum",
    137: "https://api.thegraph.com/subgraphs/name/aave/aave-v3-polygon",
    10: "https://api.thegraph.com/subgraphs/name/aave/aave-v3-optimism",
    42161: "https://api.thegraph.com/subgraphs/name/aave/aave-v3-arbitrum",
    43114: "https://api.thegraph.com/subgraphs/name/aave/aave-v3-avalanche",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = "DeFi Alerts"
    debug: bool = False

    # PostgreSQL (alert store)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "defi_alerts"
    postgres_user: str = "alerts_user"
    postgres_password: str = ""

    # SQLAlchemy pool settings
    db_pool_size: int = 10
    db_max_overflow: int = 5
    db_pool_pre_ping: bool = True
    db_sslmode: str = "prefer"  # Set to "require" in production

    # Redis (response cache + rate-limit counters)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str = ""
    redis_max_connections: int = 50

    # Telegram
    telegram_bot_token: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0
    dashboard_url: str = ""  # Appended to alert messages when set

    # Alert monitor
    monitor_interval_seconds: float = 60.0
    monitor_alert_timeout_seconds: float = 30.0
    monitor_max_concurrency: int = 10
    monitor_autostart: bool = False

    # Metrics provider (external service that computes position metrics)
    metrics_service_url: str = ""
    metrics_timeout_seconds: float = 10.0

    # Upstream subgraph guard
    upstream_timeout_seconds: float = 12.0
    subgraph_cache_ttl_seconds: int = 600
    subgraph_max_query_length: int = 5000
    subgraph_endpoints: dict[int, str] = DEFAULT_SUBGRAPH_ENDPOINTS

    # Per-action rate limits (requests per window)
    rate_limit_window_seconds: int = 60
    rate_limit_alerts_read: int = 30
    rate_limit_alerts_write: int = 5
    rate_limit_subgraph: int = 60
    rate_limit_default: str = "100/minute"  # slowapi global limit

    # CORS
    allowed_origins: str = ""  # Comma-separated extra CORS origins

    # JWT Authentication
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60

    @computed_field
    @property
    def async_database_url(self) -> str:
        """Async connection string for asyncpg."""
        base = (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        if self.db_sslmode and self.db_sslmode != "disable":
            return f"{base}?ssl={self.db_sslmode}"
        return base

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync connection string for psycopg2 (used by Alembic)."""
        base = (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        if self.db_sslmode and self.db_sslmode != "disable":
            return f"{base}?sslmode={self.db_sslmode}"
        return base

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @computed_field
    @property
    def telegram_configured(self) -> bool:
        """True when a bot token is available."""
        return bool(self.telegram_bot_token)


# Singleton instance
settings = Settings()
