"""
API configuration and settings management.
"""
import os


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Application configuration."""

    # Database
    DB_PATH: str = os.getenv("INGEST_DB", "./data/db/ebay_ingest.db")

    # API settings
    API_TITLE: str = "eBay Ingestion API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Scrape job submission, status and results for eBay listing ingestion"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Extraction
    EBAY_APP_ID: str = os.getenv("EBAY_APP_ID", "")
    EBAY_ENVIRONMENT: str = os.getenv("EBAY_ENVIRONMENT", "SANDBOX").upper()
    EXTRACTION_STRATEGY: str = os.getenv("EXTRACTION_STRATEGY", "api" if os.getenv("EBAY_APP_ID") else "sample")
    FALLBACK_TO_SAMPLE: bool = _env_bool("FALLBACK_TO_SAMPLE")
    HEADLESS: bool = _env_bool("HEADLESS", "true")
    GLOBAL_DAILY_LIMIT: int = int(os.getenv("GLOBAL_DAILY_LIMIT", "5000"))
    MAX_RESULTS: int = int(os.getenv("MAX_RESULTS", "100"))
    MAX_PAGES: int = int(os.getenv("MAX_PAGES", "3"))

    # Queue drain
    DRAIN_BATCH_SIZE: int = int(os.getenv("DRAIN_BATCH_SIZE", "5"))
    DRAIN_PAUSE_SECONDS: float = float(os.getenv("DRAIN_PAUSE_SECONDS", "3"))
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def validate(self) -> None:
        """Validate configuration on startup."""
        if self.EXTRACTION_STRATEGY not in ("api", "dom", "sample"):
            raise ValueError(f"Unknown EXTRACTION_STRATEGY: {self.EXTRACTION_STRATEGY}")
        if self.EXTRACTION_STRATEGY == "api" and not self.EBAY_APP_ID:
            raise ValueError("EBAY_APP_ID is required when EXTRACTION_STRATEGY=api")
        if self.EBAY_ENVIRONMENT not in ("SANDBOX", "PRODUCTION"):
            raise ValueError(f"Unknown EBAY_ENVIRONMENT: {self.EBAY_ENVIRONMENT}")
        if self.DRAIN_BATCH_SIZE < 1:
            raise ValueError("DRAIN_BATCH_SIZE must be at least 1")


# Global config instance
config = Config()
