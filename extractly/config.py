import logging
import os

from pydantic_settings import BaseSettings
from typing import List

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Extractly"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # CORS: any origin, the service is called from browser extensions and sheets
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Fetcher
    FETCH_TIMEOUT_SECONDS: float = 30.0
    FETCH_MAX_REDIRECTS: int = 5
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_BACKOFF_BASE_SECONDS: float = 0.8
    FETCH_REFERER: str = "https://finance.yahoo.com/"

    # Browser
    BROWSER_EXECUTABLE_PATH: str = ""
    BROWSER_HEADLESS: bool = True
    BROWSER_LAUNCH_ATTEMPTS: int = 2
    BROWSER_LAUNCH_RETRY_DELAY_MS: int = 200  # multiplied by the attempt number
    NAVIGATION_TIMEOUT_MS: int = 30000
    CONSENT_SETTLE_MS: int = 500
    MAX_CONCURRENT_BROWSERS: int = 4  # across all requests in this process
    BROWSER_SLOT_TIMEOUT_SECONDS: float = 30.0

    # Cache
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 60
    CACHE_HTML_TTL_SECONDS: int = 300

    # Request limits
    MAX_JSON_BODY_BYTES: int = 2 * 1024 * 1024
    MAX_HTML_BODY_BYTES: int = 10 * 1024 * 1024

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2
    SENTRY_ENVIRONMENT: str = "development"

    # Logging
    LOG_FORMAT: str = "json"  # "json" for production, "text" for development
    LOG_LEVEL: str = "INFO"

    # Metrics
    METRICS_ENABLED: bool = True

    def model_post_init(self, __context) -> None:
        # Container images built for the original service export this variable
        if not self.BROWSER_EXECUTABLE_PATH:
            legacy = os.environ.get("PUPPETEER_EXECUTABLE_PATH", "")
            if legacy:
                _logger.info("Using PUPPETEER_EXECUTABLE_PATH=%s as browser binary", legacy)
                object.__setattr__(self, "BROWSER_EXECUTABLE_PATH", legacy)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
