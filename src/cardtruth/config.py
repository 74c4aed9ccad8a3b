"""Application configuration using Pydantic settings.

Every pipeline and service receives a ``Settings`` instance at construction
time. Feature flags and merge thresholds live here instead of module-level
globals so tests can build isolated configurations.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``CARDTRUTH_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        env_prefix="CARDTRUTH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Database (string-keyed layer store)
    database_url: str = "sqlite+aiosqlite:///./cardtruth.db"
    db_echo: bool = False

    # Uploads
    upload_max_size_mb: int = 25

    # Feature flags
    feature_ingestion_enabled: bool = True
    feature_statement_ingestion: bool = True
    feature_plan_inference: bool = True
    feature_reconciliation: bool = True
    feature_synthetic_transactions: bool = False

    # Text extraction
    ocr_languages: str = "eng+spa"
    ocr_dpi: int = 300
    pdf_min_text_chars: int = 50
    min_ingest_text_chars: int = 100

    # Truth-layer merge thresholds
    structured_min_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    summary_min_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    pdf_min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    # Billing defaults
    default_grace_days: int = 25
    default_minimum_due: Decimal = Decimal("25")
    add_installments_to_total_due: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
