"""
API Configuration

Manages environment-based configuration for the API server.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings can be overridden with environment variables or .env file.
    """

    # API Settings
    app_version: str = "1.0.0"

    # Database (empty until DATABASE_URL is set; health reports it as unhealthy)
    database_url: str = ""
    db_pool_size: int = 5

    # Query Limits
    default_page_size: int = 50
    max_page_size: int = 500
    search_limit: int = 20
    default_metros: int = 100
    max_metros: int = 1000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once per process.
    """
    return Settings()
