"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Moderation Console"
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database
    DATABASE_URL: str = "sqlite:///./modconsole.db"
    DATABASE_ECHO: bool = False
    DB_CIRCUIT_BREAKER_SECONDS: int = 10

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    EVENT_FANOUT_ENABLED: bool = False

    # Auth
    JWT_SECRET: str = "super-secret-jwt-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 60
    LOGIN_RATE_LIMIT: str = "5/15 minutes"

    # Security policy defaults (per-community overrides live in community_settings)
    SECURITY_TWO_PERSON_DEFAULT: bool = True
    SECURITY_REQUIRE_SENSITIVE_MODE_DEFAULT: bool = True
    SECURITY_HIGH_RISK_COOLDOWN_SECONDS: int = 60
    SENSITIVE_MODE_TTL_MINUTES: int = 10

    # Security signals
    SIGNAL_WINDOW_MINUTES: int = 10
    HIGH_RISK_BURST_THRESHOLD: int = 3
    HIGH_RISK_BURST_CRITICAL_THRESHOLD: int = 6
    APPROVAL_SPAM_THRESHOLD: int = 5
    LOGIN_FAILED_BURST_THRESHOLD: int = 5
    SIGNAL_DISPATCH: str = "inline"  # inline | celery

    # Logging
    LOG_THROTTLE_SECONDS: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
