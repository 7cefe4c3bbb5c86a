from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://postgres:postgres@db:5432/correlator"
    redis_url: str = "redis://redis:6379/0"
    log_level: str = "INFO"

    # Shared secret for the scheduled batch endpoint (Authorization: Bearer ...)
    cron_secret: str = ""  # Empty disables the endpoint (always 401)

    # Correlation engine
    correlation_cache_ttl_hours: int = 24
    correlation_min_sample_size: int = 3
    correlation_default_range_days: int = 30
    correlation_batch_max_pairs: int = 50

    # Combination detection
    combination_max_pairs: int = 50
    combination_synergy_threshold: float = 0.15
    combination_max_size: int = 2  # Pairs only; 3 allows triples

    # Trend analytics
    trend_max_buckets: int = 1000  # Longest series a single trend request may build

    # Auto-recalculation
    recalculation_debounce_seconds: int = 300

    class Config:
        env_file = ".env"


settings = Settings()
