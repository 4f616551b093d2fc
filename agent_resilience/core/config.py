from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RESILIENCE_",
        extra="ignore",
    )

    # Retry / backoff (seconds)
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    # Circuit breaker
    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 30.0  # seconds in OPEN before a probe is allowed
    breaker_half_open_max_calls: int = 3

    # Request deduplication
    dedupe_ttl: float = 5.0  # seconds a settled request stays shared

    # Sliding-window rate limiter
    rate_limit_default_limit: int = 10
    rate_limit_default_window: float = 60.0
    rate_limit_cleanup_probability: float = 0.01

    # User-facing notifications
    toast_duration: float = 4.0
    toast_critical_duration: float = 10.0

    # App
    app_env: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings(config: Settings | None = None) -> None:
    """Validate settings. Called once when an application wires the pipeline."""
    config = config or settings
    errors: list[str] = []

    if config.retry_max_retries < 0:
        errors.append("RETRY_MAX_RETRIES must be >= 0")
    if config.retry_base_delay < 0:
        errors.append("RETRY_BASE_DELAY must be >= 0")
    if config.retry_max_delay < config.retry_base_delay:
        errors.append("RETRY_MAX_DELAY must be >= RETRY_BASE_DELAY")
    if config.retry_backoff_multiplier < 1:
        errors.append("RETRY_BACKOFF_MULTIPLIER must be >= 1")

    if config.breaker_failure_threshold < 1:
        errors.append("BREAKER_FAILURE_THRESHOLD must be >= 1")
    if config.breaker_half_open_max_calls < 1:
        errors.append("BREAKER_HALF_OPEN_MAX_CALLS must be >= 1")

    if not 0.0 <= config.rate_limit_cleanup_probability <= 1.0:
        errors.append("RATE_LIMIT_CLEANUP_PROBABILITY must be between 0 and 1")

    if config.app_env == "production" and config.log_level.upper() == "DEBUG":
        errors.append("LOG_LEVEL must not be DEBUG in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
