from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Database
    DATABASE_URL: str

    # Logging
    LOG_LEVEL: str = "INFO"
    SLACK_WEBHOOK_URL: str | None = None

    # Chain access (bonding-curve reads over JSON-RPC)
    RPC_URL: str = "https://mainnet.base.org"
    DIAMOND_ADDRESS: str = "0xba5502db2aC2cBff189965e991C07109B14eB3f5"
    CHAIN_TIMEOUT_SECONDS: float = 10.0
    CHAIN_BATCH_SIZE: int = 25  # addresses per JSON-RPC batch request

    # External indexer (subgraph) used for catalog catch-up
    SUBGRAPH_URL: str | None = None
    INDEXER_TIMEOUT_SECONDS: float = 10.0

    # Self-healing catalog sync
    SELF_HEAL_THRESHOLD: int = 5
    SELF_HEAL_PAGE_SIZE: int = 50
    SELF_HEAL_MAX_UPSERTS: int = 10
    SELF_HEAL_CONCURRENCY: int = 3

    # Scheduled chain -> catalog sync
    CRON_SECRET: str | None = None
    SYNC_BATCH_SIZE: int = 5
    SYNC_BATCH_DELAY_SECONDS: float = 2.0

    # Request handling
    REQUEST_DEADLINE_SECONDS: float = 25.0
    CACHE_TAG_HEADER: str = "Cache-Tag"
    CACHE_DOMAIN_TAG: str = "market"

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development


settings = Settings()
