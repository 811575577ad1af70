"""
Configuration management for the AliTools B2B catalog
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


LOCAL_DATABASE_URL = "sqlite:///./alitools.db"


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "AliTools B2B"
    APP_VERSION: str = "1.0.0"
    NODE_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database (connection strings are mutually substitutable, see database_url)
    NEON_DB_URL: Optional[str] = None
    POSTGRES_URL: Optional[str] = None   # Vercel Postgres
    DATABASE_URL: Optional[str] = None
    DB_SSL: Optional[bool] = None        # unset = decide from the URL

    # Security (consumed by the auth and encryption layers)
    JWT_SECRET: str = "development-secret-key"
    ENCRYPTION_KEY: str = ""

    # GEKO import
    GEKO_XML_PATH: str = "geko_products_en.xml"
    IMPORT_BATCH_SIZE: int = 500
    UPLOAD_DIR: str = "uploads/imports"
    MAX_UPLOAD_MB: int = 50
    IMPORT_JOB_TTL_MINUTES: int = 60

    # GEKO API sync
    GEKO_API_URL: Optional[str] = None
    GEKO_SYNC_INTERVAL_MINUTES: int = 30
    GEKO_SYNC_ON_STARTUP: bool = False
    GEKO_FETCH_TIMEOUT_SECONDS: float = 30.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV == "production"

    @property
    def database_url_source(self) -> str:
        """Name of the variable the connection string is taken from."""
        if self.is_production and self.POSTGRES_URL:
            return "POSTGRES_URL"
        for name in ("NEON_DB_URL", "POSTGRES_URL", "DATABASE_URL"):
            if getattr(self, name):
                return name
        return "local"

    @property
    def database_url(self) -> str:
        source = self.database_url_source
        if source == "local":
            return LOCAL_DATABASE_URL
        return getattr(self, source)

    @property
    def use_ssl(self) -> bool:
        if self.DB_SSL is not None:
            return self.DB_SSL
        if self.database_url_source in ("NEON_DB_URL", "POSTGRES_URL"):
            return True
        return "sslmode=" in self.database_url and "sslmode=disable" not in self.database_url


@lru_cache()
def get_settings() -> Settings:
    return Settings()
