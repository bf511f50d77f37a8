"""Configuration module for arcollect."""

from arcollect.config.logging import configure_logging, redact_secrets
from arcollect.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "redact_secrets"]
