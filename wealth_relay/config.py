from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    ENVIRONMENT: str = "development"
    APP_NAME: str = "EliteWealth Relay"

    # Upload - Use absolute path derived from the working directory
    UPLOAD_DIR: str = os.path.join(os.getcwd(), "uploads")
    UPLOAD_URL_PREFIX: str = "/uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    # Ceiling for the whole request body; multipart framing needs headroom above MAX_UPLOAD_SIZE
    MAX_REQUEST_BODY_SIZE: Optional[int] = None

    # CORS - comma-separated list, "*" allows any origin
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | plain

    # Error Tracking (Sentry)
    SENTRY_DSN: Optional[str] = None

    # Realtime fan-out
    OUTBOUND_QUEUE_SIZE: int = 256

    # Rate limits
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "120/minute"
    RATE_LIMIT_UPLOADS_PER_MINUTE: int = 30

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def request_body_limit(self) -> int:
        return self.MAX_REQUEST_BODY_SIZE or self.MAX_UPLOAD_SIZE * 2

    @property
    def upload_rate_limit(self) -> str:
        return f"{self.RATE_LIMIT_UPLOADS_PER_MINUTE}/minute"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
