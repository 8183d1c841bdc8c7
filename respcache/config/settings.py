"""
RESP-Cache Configuration Settings

This module contains all configuration constants for the RESP-Cache server.
Every network-facing value can be overridden through the environment.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Server configuration settings."""

    # Network settings
    HOST: str = os.environ.get("RESP_CACHE_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("RESP_CACHE_PORT", "6379"))

    # Authentication (empty password disables AUTH enforcement)
    PASSWORD: str = os.environ.get("RESP_CACHE_PASSWORD", "")

    # Connection settings
    MAX_CONNECTIONS: int = int(os.environ.get("RESP_CACHE_MAX_CONNECTIONS", "1000"))
    READ_BUFFER_SIZE: int = 4096

    # Frame limits
    MAX_BULK_LENGTH: int = 512 * 1024 * 1024
    MAX_ARRAY_LENGTH: int = 1024 * 1024

    # Client settings
    CLIENT_TIMEOUT: float = 5.0

    # Logging settings
    DEBUG: bool = os.environ.get("RESP_CACHE_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("RESP_CACHE_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
