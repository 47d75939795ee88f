"""Application configuration loaded from environment variables."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment."""

    def __init__(self):
        self.database_url: str = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL", "")
        self.firestore_project_id: str = os.getenv("FIRESTORE_PROJECT_ID", "")
        self.firestore_credentials: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
        self.firestore_database: str = os.getenv("FIRESTORE_DATABASE", "(default)")
        self.data_dir: str = os.getenv("DATA_DIR", "./data")
        self.admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")
        self.token_secret: str = os.getenv(
            "TOKEN_SECRET", self.admin_password + "_newsdesk_secret"
        )
        self.token_max_age_hours: int = int(os.getenv("TOKEN_MAX_AGE_HOURS", "24"))
        self.page_size: int = int(os.getenv("PAGE_SIZE", "20"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def has_relational(self) -> bool:
        return bool(self.database_url)

    @property
    def has_document_store(self) -> bool:
        return bool(self.firestore_project_id and self.firestore_credentials)

    @property
    def async_database_url(self) -> str:
        """Database URL with an async driver selected."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
