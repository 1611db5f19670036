from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


DEFAULT_JWT_SECRET = "dev-secret-change-me-0123456789abcdef"


class Settings(BaseSettings):
    """Application settings loaded from the environment or a .env file"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    APP_TITLE: str = Field(default="University Registrar API", description="API title")
    APP_VERSION: str = Field(default="1.0.0", description="API version")
    ENABLE_REGISTRATION: bool = Field(default=True, description="Allow student self-registration")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./registrar.db", description="Database connection URL")
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL statements")

    # JWT
    JWT_SECRET: str = Field(default=DEFAULT_JWT_SECRET, min_length=32, description="JWT signing secret")
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1, le=10080, description="Access token expiry")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FILE: Optional[str] = Field(default="api.log", description="Log file path, empty to disable")

    @field_validator("ENV")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed_envs = ["dev", "development", "test", "staging", "prod", "production"]
        if v.lower() not in allowed_envs:
            raise ValueError(f"ENV must be one of: {allowed_envs}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed_levels}")
        return v.upper()

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        allowed_prefixes = ("postgresql://", "postgresql+psycopg2://", "postgresql+psycopg://", "sqlite://")
        if not v.startswith(allowed_prefixes):
            raise ValueError("DATABASE_URL must be a postgresql or sqlite connection string")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENV in ["prod", "production"]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()

if settings.is_production and settings.JWT_SECRET == DEFAULT_JWT_SECRET:
    raise ValueError("JWT_SECRET must be changed in production")

__all__ = ["settings", "Settings"]
