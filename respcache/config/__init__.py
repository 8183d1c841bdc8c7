"""Configuration module for RESP-Cache."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
