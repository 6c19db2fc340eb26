"""
Utility functions and helpers.
"""

from .log_utils import configure_logging, get_logger, parse_log_level, LOG_LEVELS

__all__ = ["configure_logging", "get_logger", "parse_log_level", "LOG_LEVELS"]
