"""
Configuration management for the attendance backend
"""
import json
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Optional, List, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Required settings
    DATABASE_URL: str = Field(..., description="PostgreSQL database URL")
    JWT_SECRET_KEY: str = Field(..., description="JWT secret key for token signing")

    # Optional settings with defaults
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="JWT token expiration in minutes")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Attendance calendar: timestamps are stored in UTC, the Daily work date is
    # the calendar day in this zone
    ATTENDANCE_TZ: str = Field(default="Asia/Kolkata", description="IANA zone used to derive attendance work dates")

    # Regularization rules
    REGULARIZATION_MAX_DAYS_BACK: int = Field(
        default=30,
        description="Oldest target date (in days before today) a regularization may be raised for",
    )
    REGULARIZATION_REASON_MIN_LENGTH: int = Field(default=10, description="Minimum reason length")
    REGULARIZATION_REASON_MAX_LENGTH: int = Field(default=500, description="Maximum reason length")

    # Transaction helper
    TRANSACTION_MAX_RETRIES: int = Field(
        default=3,
        description="Attempts made by run_in_transaction before a transient failure is surfaced",
    )

    # Device ingestion: extra vendor status code mappings, JSON object of
    # {"provider": {"code": "type"}} merged over the built-in tables
    MACHINE_STATUS_OVERRIDES: str = Field(
        default="",
        description='JSON map of device status overrides, e.g. {"zkteco": {"4": "in"}}',
    )

    # Version (can be git SHA or semver)
    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    # Initial admin bootstrap settings
    INITIAL_ADMIN_EMAIL: str = Field(
        default="admin@company.com",
        description="Email for initial admin user (used when no admin exists)"
    )
    INITIAL_ADMIN_PASSWORD: str = Field(
        default="Admin@12345",
        description="Password for initial admin user (used when no admin exists)"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("ATTENDANCE_TZ")
    @classmethod
    def validate_attendance_tz(cls, v: str) -> str:
        """Validate ATTENDANCE_TZ is a known IANA zone"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"ATTENDANCE_TZ is not a valid timezone: {v}")
        return v

    @field_validator("REGULARIZATION_MAX_DAYS_BACK", "TRANSACTION_MAX_RETRIES")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("MACHINE_STATUS_OVERRIDES")
    @classmethod
    def validate_status_overrides(cls, v: str) -> str:
        """MACHINE_STATUS_OVERRIDES must be empty or a JSON object of objects"""
        if not v:
            return v
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError as e:
            raise ValueError(f"MACHINE_STATUS_OVERRIDES is not valid JSON: {e}")
        if not isinstance(parsed, dict) or not all(isinstance(m, dict) for m in parsed.values()):
            raise ValueError("MACHINE_STATUS_OVERRIDES must map provider names to code objects")
        return v

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            # JWT_SECRET_KEY must be at least 32 characters in production
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )

            # ALLOWED_ORIGINS must not be wildcard in production
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def get_machine_status_overrides(self) -> Dict[str, Dict[str, str]]:
        """Parsed MACHINE_STATUS_OVERRIDES, keys normalised to lower-case strings"""
        if not self.MACHINE_STATUS_OVERRIDES:
            return {}
        parsed = json.loads(self.MACHINE_STATUS_OVERRIDES)
        return {
            provider.lower(): {str(code).lower(): str(log_type) for code, log_type in codes.items()}
            for provider, codes in parsed.items()
        }


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
