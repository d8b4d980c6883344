import logging
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

_config_logger = logging.getLogger(__name__)

_BACKEND_DIR = Path(__file__).resolve().parents[1]
_ENV_FILES = (
    _BACKEND_DIR / ".env",
    ".env",
)
_TIMESTAMP_STYLES = frozenset({"iso8601", "epoch_seconds"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_title: str = "Inventory Backend"
    app_version: str = "0.1.0"
    app_env: str = "development"
    database_url: str = "sqlite:///data/inventory.db"

    # Document store
    document_store_timeout_seconds: float = 10.0
    document_timestamp_style: str = "iso8601"   # "iso8601" | "epoch_seconds"

    # Recognition service (barcode + CNN classifier)
    recognition_classifier_url: str = "http://localhost:5000/predict"
    recognition_barcode_url: str = ""           # empty disables barcode scanning
    recognition_timeout_seconds: float = 15.0
    recognition_confidence_threshold: float = 0.5

    # Logging: per-category log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = "INFO"                  # Root / app-wide
    log_level_sql: str = "WARNING"           # sqlalchemy.engine SQL statements
    log_level_http: str = "WARNING"          # httpx / httpcore outbound HTTP
    log_level_pipeline: str = "INFO"         # RecognitionPipeline stages

    model_config = {
        "env_file": _ENV_FILES,
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def model_post_init(self, __context: object) -> None:
        """Fall back to ISO-8601 timestamps when an unknown style is configured."""
        style = self.document_timestamp_style.lower()
        if style not in _TIMESTAMP_STYLES:
            _config_logger.warning(
                "Unknown document_timestamp_style '%s', using iso8601",
                self.document_timestamp_style,
            )
            style = "iso8601"
        object.__setattr__(self, "document_timestamp_style", style)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — reads .env once."""
    return Settings()
