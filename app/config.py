from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    database_url: str = "postgresql://localhost:5432/duesync"

    LOG_LEVEL: str = "INFO"
    CORS_ORIGIN_REGEX: str = "https?://.*"

    # Email (digests + test mail)
    EMAIL_HOST: str | None = None
    EMAIL_PORT: int = 587
    EMAIL_USER: str | None = None
    EMAIL_PASS: str | None = None
    EMAIL_FROM: str | None = None

    # Security
    SECRET_KEY: str = "something"
    ALGORITHM: str = "HS256"
    SESSION_MAX_AGE_DAYS: int = 30

    # Google OAuth / Calendar
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    CALENDAR_ID: str = "primary"
    CALENDAR_TIMEOUT_SECONDS: float = 15.0

    # Periodic jobs
    CRON_SECRET: str | None = None
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_LOCK_FILE: str = "/tmp/duesync_scheduler.lock"

    # Per-user query cache for category and tag listings, 0 disables it.
    # Process-local: only turn it on when running a single worker.
    CACHE_TTL_SECONDS: float = 0.0

    # Per-IP request limits on sign-in, push and calendar routes
    RATE_LIMIT_ENABLED: bool = True

    class Config:
        env_file = ".env"

settings = Settings()
