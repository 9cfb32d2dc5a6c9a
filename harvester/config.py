from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Target site
    BASE_URL: str = "https://www.amazon.com.br"
    CAMPAIGN_PATH: str = "/promotion/psp/{campaign_id}"
    CATEGORY_QUERY_PARAM: str = "productCategory"
    REFERER: str = "https://www.amazon.com.br/"

    # Selenium
    SELENIUM_REMOTE_URL: Optional[str] = None  # None -> local headless Chrome
    HEADLESS: bool = True

    # Browser timings (seconds)
    PAGE_LOAD_TIMEOUT_SECONDS: float = 30.0
    CONTENT_WAIT_TIMEOUT_SECONDS: float = 10.0
    CONTENT_SETTLE_SECONDS: float = 2.0
    FILTER_PANEL_TIMEOUT_SECONDS: float = 5.0
    FILTER_ATTEMPTS: int = 3
    FILTER_BACKOFF_SECONDS: float = 2.0
    FILTER_SETTLE_SECONDS: float = 2.0
    LOAD_MORE_SCROLL_PAUSE_SECONDS: float = 0.5
    LOAD_MORE_CLICK_SETTLE_SECONDS: float = 1.0
    LOAD_MORE_GROWTH_TIMEOUT_SECONDS: float = 5.0
    LOAD_MORE_BETWEEN_CLICKS_SECONDS: float = 2.0
    SCROLL_PASSES: int = 5
    SCROLL_PASS_DELAY_SECONDS: float = 1.0
    DISCOVERY_RETRIES: int = 2
    DISCOVERY_RETRY_DELAY_SECONDS: float = 2.0
    DISCOVERY_SETTLE_SECONDS: float = 2.0

    # Scheduler / orchestrator
    MAX_CONCURRENT_JOBS: int = 2
    DEFAULT_LOAD_MORE_CLICKS: int = 5
    MAX_LOAD_MORE_CLICKS: int = 50
    CHILD_JOB_LIMIT: int = 50
    CHILD_BATCH_SIZE: int = 5
    CHILD_BATCH_DELAY_SECONDS: float = 2.0
    AGGREGATION_POLL_SECONDS: float = 5.0
    AGGREGATION_TIMEOUT_SECONDS: float = 600.0

    # Cache
    CACHE_TTL_SECONDS: int = 1800
    CACHE_CHECK_PERIOD_SECONDS: float = 120.0

    # Durable storage
    STORAGE_BACKEND: str = "json"  # json, mongo, none
    STORAGE_PATH: str = "data/storage"
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "promo_harvest"

    # Console
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    TIMEZONE: str = "America/Sao_Paulo"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
