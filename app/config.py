"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "EventDesk"
    app_env: Literal["development", "staging", "production"] = "development"
    app_base_url: str = "http://localhost:8000"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Cloud object storage (S3-compatible, Cloudflare R2)
    use_cloud_storage: bool = False
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "eventdesk-files"
    r2_public_url: str | None = None
    cloud_folder_root: str = "eventdesk"

    # Local storage
    upload_dir: str = "uploads"
    rulebook_filename: str = "rulebook.pdf"
    rulebook_download_name: str = "EventDesk_Rulebook.pdf"

    # Email (SMTP)
    email_host: str = ""
    email_port: int = 587
    email_user: str = ""
    email_pass: str = ""
    email_from_name: str = "EventDesk"
    email_timeout_seconds: float = 45.0
    email_max_attempts: int = 3
    email_retry_base_delay_ms: int = 2000
    email_pool_max_connections: int = 5
    email_pool_max_messages: int = 100

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def async_database_url(self) -> str:
        """Get database URL with asyncpg driver for async SQLAlchemy."""
        url = self.database_url
        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    @property
    def sync_database_url(self) -> str:
        """Get database URL without the async driver, for offline Alembic SQL."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        if "+asyncpg" in url:
            url = url.replace("+asyncpg", "", 1)
        return url

    @property
    def r2_endpoint_url(self) -> str:
        """Get the R2 endpoint URL."""
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def cloud_credentials_complete(self) -> bool:
        """Check that all three cloud credential fields are set."""
        return bool(
            self.r2_account_id.strip()
            and self.r2_access_key_id.strip()
            and self.r2_secret_access_key.strip()
        )

    @property
    def upload_path(self) -> Path:
        """Get the local upload root as a resolved path."""
        return Path(self.upload_dir).resolve()

    @property
    def email_secure(self) -> bool:
        """Port 465 uses implicit TLS, anything else STARTTLS."""
        return self.email_port == 465


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
