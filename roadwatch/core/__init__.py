"""Core configuration and utilities package."""

from roadwatch.core.config import Settings, get_settings
from roadwatch.core.logging import get_logger, set_correlation_id, setup_logging
from roadwatch.core.security import (
    Actor,
    check_rate_limit,
    create_access_token,
    decode_access_token,
    get_current_actor,
    verify_api_key,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    # Security
    "Actor",
    "check_rate_limit",
    "create_access_token",
    "decode_access_token",
    "get_current_actor",
    "verify_api_key",
]
