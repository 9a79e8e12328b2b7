from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "QR Ordering Auth"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Database settings
    database_url: str

    # Security settings
    secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_expires_in: str = "1h"
    jwt_refresh_token_expires_in: str = "7d"
    bcrypt_rounds: int = 10

    # Registration / OTP
    otp_length: int = 6
    registration_data_expiry_seconds: int = 600
    registration_max_otp_resends: int = 5

    # Password reset
    password_reset_expiry_seconds: int = 900
    tenant_app_url: str = "http://localhost:3000"

    # Registration and password reset caches: "redis" or "memory"
    cache_backend: str = "redis"
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_socket_timeout_seconds: float = 5.0

    # Email (OTP delivery)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: str = "QR Ordering <noreply@qr-ordering.com>"
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0

    # Housekeeping
    session_cleanup_interval_minutes: int = 60

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("secret_key")
    @classmethod
    def secret_key_length(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters")
        return v

    @field_validator("cache_backend")
    @classmethod
    def known_cache_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("redis", "memory"):
            raise ValueError("CACHE_BACKEND must be 'redis' or 'memory'")
        return v


settings = Settings()
