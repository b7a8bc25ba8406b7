"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from preorder.core.config import (
    get_settings,
    setup_logging,
    Settings,
    EnvironmentMode,
    OrderBackend,
)

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode", "OrderBackend"]
