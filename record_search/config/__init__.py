"""Configuration management for the record search engine."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
