"""
Configuration for the Instagram metrics API server.

Server-level settings only; engine settings (credentials, windowing, retry
budgets, cache location) live in apps.metrics.config. All settings have sane
defaults so the application starts without a .env file.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings with environment variable fallbacks."""

    # Server configuration
    host: str = "127.0.0.1"
    port: int = 3001
    debug: bool = False

    # Serve placeholder KPIs when the live calculation fails
    sample_fallback: bool = True

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """
    Load settings from environment variables with fallbacks.

    Returns:
        Settings: Configuration object with all server settings
    """
    return Settings(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "3001")),
        debug=os.getenv("DEBUG", "false").lower() == "true",
        sample_fallback=os.getenv("SAMPLE_FALLBACK", "true").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
