from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


class OsrmSettings(BaseSettings):
    OSRM_BASE_URL: str = "https://router.project-osrm.org"
    OSRM_PROFILE: str = "driving"
    OSRM_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class CelerySettings(BaseSettings):
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TASK_TIME_LIMIT: int = 300  # 5 minutes
    CELERY_TASK_SOFT_TIME_LIMIT: int = 270  # 4.5 minutes
    PENDING_LEGS_SWEEP_SECONDS: float = 300.0
    LEG_REFRESH_RATE_LIMIT: str = "30/m"  # Public OSRM servers throttle bursts

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class Settings(BaseSettings):
    # Database - No default password for security
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""  # Required via .env
    POSTGRES_DB: str = "itinerary_dev"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # Full SQLAlchemy URL, e.g. sqlite:///itinerary.db; replaces the POSTGRES_* parts
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False  # Default to False for security

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"

    # Scheduling
    DEFAULT_TIMEZONE: str = "Europe/Berlin"
    MAX_SAVE_RETRIES: int = 3  # Read-compute-write attempts on version conflicts

    # Routing provider settings (nested)
    osrm: OsrmSettings = OsrmSettings()

    # Celery settings (nested)
    celery: CelerySettings = CelerySettings()

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def has_valid_default_timezone(self) -> bool:
        try:
            ZoneInfo(self.DEFAULT_TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError):
            return False
        return True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def validate_production_settings(self) -> None:
        """Validate critical settings for production environment.

        Call this during application startup.
        Raises ValueError if production settings are invalid.
        """
        errors = []

        if self.is_production:
            # Check POSTGRES_PASSWORD
            if not self.POSTGRES_PASSWORD or self.POSTGRES_PASSWORD == "postgres":
                errors.append(
                    "POSTGRES_PASSWORD must be set to a secure value in production"
                )

            # Check DEBUG is disabled
            if self.DEBUG:
                errors.append("DEBUG must be False in production")

            if self.MAX_SAVE_RETRIES < 1:
                errors.append("MAX_SAVE_RETRIES must be at least 1")

            if not self.osrm.OSRM_BASE_URL.startswith("https://"):
                errors.append("OSRM_BASE_URL must use https in production")

            if not self.has_valid_default_timezone:
                errors.append(f"DEFAULT_TIMEZONE is not a known IANA zone: {self.DEFAULT_TIMEZONE}")

        if errors:
            raise ValueError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )

    def validate_development_settings(self) -> None:
        """Set sensible defaults for development if not configured."""
        # Use default password for development if not set
        if not self.POSTGRES_PASSWORD:
            self.POSTGRES_PASSWORD = "postgres"
            print("WARNING: Using default POSTGRES_PASSWORD for development")

        if self.MAX_SAVE_RETRIES < 1:
            self.MAX_SAVE_RETRIES = 1
            print("WARNING: MAX_SAVE_RETRIES below 1, using a single attempt")

        if not self.has_valid_default_timezone:
            print(f"WARNING: Unknown DEFAULT_TIMEZONE {self.DEFAULT_TIMEZONE}, using Europe/Berlin")
            self.DEFAULT_TIMEZONE = "Europe/Berlin"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create settings instance
settings = Settings()

# Validate based on environment
if settings.is_production:
    settings.validate_production_settings()
else:
    settings.validate_development_settings()
