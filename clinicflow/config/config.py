from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from the environment (or a local .env file).
    """

    # ==================== APPLICATION ====================
    PROJECT_NAME: str = "ClinicFlow Front Desk API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field("development", description="development | staging | production")
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    LOG_LEVEL: str = "INFO"

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./clinicflow.db",
        description="Async SQLAlchemy URL (postgresql+asyncpg://... in production)",
    )
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    # Seconds allowed for a single repository call before it is treated as transient
    REPOSITORY_TIMEOUT_SECONDS: float = Field(10.0, gt=0)

    TRANSIENT_RETRY_ATTEMPTS: int = Field(3, ge=1, le=10)
    TRANSIENT_RETRY_INITIAL_DELAY: float = Field(0.2, ge=0)
    TRANSIENT_RETRY_MAX_DELAY: float = Field(5.0, ge=0)

    # Audit entries share the primary transaction when True; best-effort savepoint otherwise
    STRICT_AUDIT: bool = True

    # ==================== IDENTIFIERS ====================
    PATIENT_TOKEN_PREFIX: str = "TKN"
    BILL_NUMBER_PREFIX: str = "BILL"

    # ==================== SECURITY ====================
    SECRET_KEY: str = Field("change-me-in-production", min_length=8)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=True
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be development, staging, production or test")
        return v

    @field_validator("PATIENT_TOKEN_PREFIX", "BILL_NUMBER_PREFIX")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip().upper()
        if not v or not v.isalnum():
            raise ValueError("Identifier prefixes must be non-empty and alphanumeric")
        return v


settings = Settings()
