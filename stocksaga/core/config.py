"""
Stocksaga — Configuration

One settings object is shared by the inventory, order and store services;
each deployment overrides SERVICE_NAME / PORT through its environment.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "stocksaga"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "stocksaga"
    POSTGRES_USER: str = "stocksaga"
    POSTGRES_PASSWORD: str = "stocksaga"
    DATABASE_URL: str | None = None  # full override, e.g. for sqlite in tests

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis (event streams) ─────────────────────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Event Topics ──────────────────────────────────────────
    TOPIC_NEW_INVENTORY: str = "new-inventory"
    TOPIC_INVENTORY_UPDATED: str = "inventory-updated"
    TOPIC_NEW_CATEGORY: str = "new-category"

    # ── Event Consumer (store service) ────────────────────────
    CONSUMER_GROUP: str = "store-group"
    CONSUMER_NAME: str = "store-1"
    CONSUMER_BLOCK_MS: int = 1000
    CONSUMER_BATCH_SIZE: int = 50
    CONSUMER_MAX_DELIVERIES: int = 5          # failed deliveries before an entry is dead-lettered
    DEAD_LETTER_SUFFIX: str = ".dead-letter"  # <topic><suffix> holds dead-lettered entries

    # ── Remote Inventory Calls (order service) ────────────────
    INVENTORY_SERVICE_URL: str = "http://inventory-service:8001"
    HTTP_TIMEOUT_SECONDS: float = 5.0
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_DELAY_MS: int = 200
    RETRY_BACKOFF_MULTIPLIER: float = 1.0  # 1.0 = fixed spacing

    # ── Optimistic Locking Retry (ledger) ─────────────────────
    OPT_LOCK_MAX_RETRIES: int = 5
    OPT_LOCK_BASE_DELAY_MS: int = 50      # base exponential backoff delay in ms
    OPT_LOCK_MAX_DELAY_MS: int = 1000     # max backoff cap in ms
    OPT_LOCK_JITTER_MS: int = 50          # random jitter range in ms

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
