import logging
from typing import Optional, Union

from rich.logging import RichHandler

LOG_LEVELS = ["debug", "info", "warning", "error", "critical", "none"]


def configure_logging(level: int = logging.INFO, show_path: bool = False) -> None:
    """
    Configure the root logger with a Rich handler.

    Safe to call more than once (e.g. in a forked worker that inherited the
    parent's handlers); only the first call installs a handler.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=show_path)]
    )
    logging.getLogger().setLevel(level)


def parse_log_level(name: Union[str, int, None]) -> Optional[int]:
    """Map a --log-level choice to a logging level; 'none' disables logging."""
    if name is None or isinstance(name, int):
        return name
    if name.lower() == "none":
        return None
    return getattr(logging, name.upper())


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger (after logging is configured).
    """
    return logging.getLogger(name)
