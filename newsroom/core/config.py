"""
Configuration management for the newsroom pipeline.

Every endpoint, threshold and batch size the pipeline uses is read from
the environment (or a .env file) so tests and deployments can swap them
without touching code.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    database_url: str = Field(default="sqlite+aiosqlite:///./newsroom.db", alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    # Stage transport: "local" calls services in-process, "http" calls stage endpoints
    stage_transport: str = Field(default="local", alias="STAGE_TRANSPORT")
    collector_url: str = Field(default="http://localhost:8000/api/v1/collect", alias="COLLECTOR_URL")
    scorer_url: str = Field(default="http://localhost:8000/api/v1/score", alias="SCORER_URL")
    generator_url: str = Field(default="http://localhost:8000/api/v1/generate", alias="GENERATOR_URL")
    validator_url: str = Field(default="http://localhost:8000/api/v1/validate", alias="VALIDATOR_URL")
    publisher_url: str = Field(default="http://localhost:8000/api/v1/publish", alias="PUBLISHER_URL")
    stage_timeout_seconds: float = Field(default=60.0, alias="STAGE_TIMEOUT_SECONDS")

    # Feed collection
    feed_timeout_seconds: float = Field(default=10.0, alias="FEED_TIMEOUT_SECONDS")
    items_per_feed: int = Field(default=10, alias="ITEMS_PER_FEED")
    min_title_length: int = Field(default=10, alias="MIN_TITLE_LENGTH")
    min_body_length: int = Field(default=20, alias="MIN_BODY_LENGTH")

    # Gates. Validation and publication are deliberately separate thresholds.
    qualification_threshold: float = Field(default=0.6, alias="QUALIFICATION_THRESHOLD")
    validation_threshold: float = Field(default=0.8, alias="VALIDATION_THRESHOLD")
    publish_threshold: float = Field(default=0.85, alias="PUBLISH_THRESHOLD")

    # Bounded batches per run
    scoring_batch_size: int = Field(default=100, alias="SCORING_BATCH_SIZE")
    generation_batch_size: int = Field(default=10, alias="GENERATION_BATCH_SIZE")
    validation_batch_size: int = Field(default=5, alias="VALIDATION_BATCH_SIZE")
    publish_batch_size: int = Field(default=3, alias="PUBLISH_BATCH_SIZE")
    stage_concurrency: int = Field(default=3, alias="STAGE_CONCURRENCY")

    # Regions / audience segments
    default_region: str = Field(default="praha4", alias="DEFAULT_REGION")
    city_segments: List[str] = Field(
        default=["praha1", "praha2", "praha4", "praha5", "vinohrady", "karlin"],
        alias="CITY_SEGMENTS",
    )

    # Text generation service
    generation_base_url: Optional[str] = Field(default=None, alias="ANTHROPIC_BASE_URL")
    generation_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    generation_model: str = Field(default="claude-3-haiku-20240307", alias="GENERATION_MODEL")
    generation_max_tokens: int = Field(default=800, alias="GENERATION_MAX_TOKENS")
    generation_timeout_seconds: float = Field(default=60.0, alias="GENERATION_TIMEOUT_SECONDS")

    # Scheduler
    min_daily_published: int = Field(default=3, alias="MIN_DAILY_PUBLISHED")
    backfill_score_threshold: float = Field(default=0.7, alias="BACKFILL_SCORE_THRESHOLD")
    backfill_batch_size: int = Field(default=2, alias="BACKFILL_BATCH_SIZE")
    newsletter_hour: int = Field(default=8, alias="NEWSLETTER_HOUR")
    newsletter_url: str = Field(default="", alias="NEWSLETTER_URL")

    # Retention
    retention_days: int = Field(default=30, alias="RETENTION_DAYS")
    purge_score_threshold: float = Field(default=0.5, alias="PURGE_SCORE_THRESHOLD")

    # Key-value ledger retention
    run_record_ttl_seconds: int = Field(default=7 * 24 * 3600, alias="RUN_RECORD_TTL_SECONDS")
    source_health_ttl_seconds: int = Field(default=7 * 24 * 3600, alias="SOURCE_HEALTH_TTL_SECONDS")
    scheduler_record_ttl_seconds: int = Field(default=24 * 3600, alias="SCHEDULER_RECORD_TTL_SECONDS")
    run_lease_seconds: int = Field(default=15 * 60, alias="RUN_LEASE_SECONDS")

    # Logging
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
