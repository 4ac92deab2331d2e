"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Client Portal API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    # WHY: Tokens are issued by the external auth service; we only verify them
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./client_portal.db"

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"

    # Redis (token blacklist, rate limiting)
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True

    # Razorpay
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None
    RAZORPAY_API_BASE: str = "https://api.razorpay.com/v1"

    # S3-compatible object storage (Cloudflare R2 in production)
    S3_ENDPOINT: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_BUCKET: str = "client-portal-uploads"
    S3_REGION: str = "auto"
    PRESIGNED_URL_EXPIRY_SECONDS: int = 3600

    # Comments and attachments
    MAX_ATTACHMENT_SIZE_BYTES: int = 10 * 1024 * 1024
    COMMENT_POLL_INTERVAL_SECONDS: float = 10.0
    # WHY: Comments commit out of created_at order; `since` fetches re-read this window
    COMMENT_POLL_OVERLAP_SECONDS: float = 30.0

    # Outbound HTTP
    # WHY: Every collaborator call shares this timeout
    EXTERNAL_REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Access control
    # WHY: Inquiries submitted anonymously have no owner. When False, ownership
    # is only enforced for inquiries that record a client_user_id.
    STRICT_INQUIRY_OWNERSHIP: bool = False

    # Slack Notifications
    SLACK_WEBHOOK_URL: Optional[str] = None
    SLACK_WEBHOOK_ENABLED: bool = False

    # Background jobs
    SCHEDULER_ENABLED: bool = False
    PAYMENT_REMINDER_INTERVAL_HOURS: int = 6
    PAYMENT_REMINDER_AFTER_HOURS: int = 48

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def storage_configured(self) -> bool:
        """
        Check if object storage credentials are present.

        WHY: Presigning works offline, but without credentials every
        uploaded object would be rejected by the bucket.
        """
        return all([self.S3_ACCESS_KEY, self.S3_SECRET_KEY])

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
