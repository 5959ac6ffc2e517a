from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    PIGEWATCH_DB_URL: str = "sqlite+aiosqlite:///./pigewatch.db"
    LOG_LEVEL: str = "INFO"

    # --- Minimal B2B Auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Aggregation API (paid, paginated) ---
    AGGREGATOR_API_KEY: str | None = None
    AGGREGATOR_BASE_URL: str = "https://moteurimmo.fr"

    # --- Outbound HTTP resilience ---
    HTTP_TIMEOUT_S: float = 30.0
    HTTP_MAX_RETRIES: int = 2
    HTTP_BACKOFF_BASE_S: float = 0.5
    HTTP_CIRCUIT_FAIL_THRESHOLD: int = 5
    HTTP_CIRCUIT_RESET_S: float = 60.0
    HTTP_RATE_LIMIT_RPS: float = 4.0  # provider quota is 300 req/min

    # --- Classifieds site (public pages) ---
    CLASSIFIEDS_BASE_URL: str = "https://www.leboncoin.fr"
    CLASSIFIEDS_API_URL: str = "https://api.leboncoin.fr"
    CLASSIFIEDS_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    CLASSIFIEDS_TIMEOUT_S: int = 30
    CLASSIFIEDS_PAGES: int = 3
    CLASSIFIEDS_RETRIES: int = 3
    CLASSIFIEDS_RETRY_SLEEP_S: float = 2.0
    CLASSIFIEDS_PAGE_SLEEP_MIN_S: float = 2.0
    CLASSIFIEDS_PAGE_SLEEP_MAX_S: float = 5.0
    CLASSIFIEDS_VERIFY_SSL: bool = True
    # Optional: custom CA bundle path
    CLASSIFIEDS_CA_BUNDLE: str | None = None

    # --- Pige search caps ---
    PIGE_PAGE_SIZE: int = 50
    PIGE_MAX_PAGES: int = 3
    PIGE_MAX_TOTAL_RESULTS: int = 150
    PIGE_MAX_SCANS_PER_HOUR: int = 20
    SCAN_RETENTION_HOURS: int = 24

    # --- Sync / cleanup ---
    SYNC_DEFAULT_LIMIT: int = 2000
    LISTING_RETENTION_DAYS: int = 30

    # --- Scheduler tuning ---
    SCHED_SYNC_INTERVAL_MINUTES: int = 60
    SCHED_CLEAN_INTERVAL_MINUTES: int = 1440  # daily


settings = Settings()
