"""
Utility modules.

Common helpers for configuration loading and logging.
"""

from src.utils.config_loader import AppConfig, load_config, load_env
from src.utils.logging_config import LogContext, setup_logging

__all__ = [
    "load_config",
    "load_env",
    "AppConfig",
    "setup_logging",
    "LogContext",
]
