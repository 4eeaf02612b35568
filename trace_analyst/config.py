"""
Environment configuration and constants.
"""
import logging
from typing import Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables from .env file at module import time
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI Configuration
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4-turbo"
    openai_insights_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 60.0

    # Deployment Configuration
    # Self-hosted deployments have no metered billing, so AI analysis is never quota-gated
    self_hosted: bool = False

    # Database Configuration
    database_url: Optional[str] = None

    # Application Configuration
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables that aren't defined in the model


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Log level name (defaults to settings.log_level)
    """
    level_name = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Global settings instance (construct once at process start, then pass explicitly)
settings = Settings()
