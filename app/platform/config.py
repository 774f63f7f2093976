from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings

from app.features.diagnostic.errors import ConfigurationError


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Website Diagnostic AI"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True

    # ── Database ────────────────────────────────
    DATABASE_URL: str
    DATABASE_AUTO_CREATE: bool = True

    # ── Collaborator credentials ────────────────
    GOOGLE_GEMINI_API_KEY: Optional[str] = None
    BUILTWITH_API_KEY: Optional[str] = None
    PAGESPEED_API_KEY: Optional[str] = None

    # ── Insight generation ──────────────────────
    INSIGHT_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    INSIGHT_MODEL: str = "gemini-1.5-flash"
    INSIGHT_TEMPERATURE: float = 0.7
    INSIGHT_MAX_OUTPUT_TOKENS: int = 8192
    INSIGHT_FALLBACK_ENABLED: bool = True

    # ── Upstream APIs ───────────────────────────
    BUILTWITH_API_URL: str = "https://api.builtwith.com/v21/api.json"
    BUILTWITH_REQUEST_DELAY_SECONDS: float = 1.0
    PAGESPEED_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PERFORMANCE_STRATEGY: Literal["mobile", "desktop"] = "mobile"

    # ── Headless browser ────────────────────────
    CHROMEDRIVER_PATH: Optional[str] = None
    SCRAPER_VIEWPORT_WIDTH: int = 1920
    SCRAPER_VIEWPORT_HEIGHT: int = 1080
    SCRAPER_NAVIGATION_TIMEOUT_SECONDS: int = 30

    # ── Stage timeouts (seconds) ────────────────
    CONTENT_TIMEOUT_SECONDS: float = 45
    TECHNOLOGY_TIMEOUT_SECONDS: float = 30
    PERFORMANCE_TIMEOUT_SECONDS: float = 60
    INSIGHT_TIMEOUT_SECONDS: float = 60

    # ── Rate-limit backoff ──────────────────────
    RETRY_MAX_RETRIES: int = 3
    RETRY_INITIAL_DELAY_SECONDS: float = 1.0

    # Rough duration of a full run, used for progress estimates
    ANALYSIS_ESTIMATED_TOTAL_SECONDS: int = 90

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def require_credentials(self) -> None:
        """
        Fail fast when a collaborator credential is missing.

        Called once at startup so a misconfigured process never accepts a run
        that would die halfway through the pipeline.
        """
        required = {
            "GOOGLE_GEMINI_API_KEY": self.GOOGLE_GEMINI_API_KEY,
            "BUILTWITH_API_KEY": self.BUILTWITH_API_KEY,
            "PAGESPEED_API_KEY": self.PAGESPEED_API_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(missing)


@lru_cache
def get_settings() -> Settings:
    return Settings()
