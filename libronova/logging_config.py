import logging
from typing import Optional

from rich.logging import RichHandler

from libronova.config import Settings

LOGGER_NAME = "libronova"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def configure_logging(settings: Settings, console: bool = True) -> logging.Logger:
    """Attach console and file handlers to the package logger.

    Calling it twice replaces the handlers instead of stacking them.
    """
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    level = getattr(logging, settings.log_level, logging.INFO)
    root.setLevel(logging.DEBUG if settings.debug else level)
    root.propagate = False

    if console:
        rich_handler = RichHandler(rich_tracebacks=True, show_path=False)
        rich_handler.setLevel(level)
        root.addHandler(rich_handler)

    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    root.debug(f"Logging configured (level={settings.log_level}, file={settings.log_file})")
    return root


def log_request(logger: logging.Logger, method: str, endpoint: str, user: Optional[str] = None) -> None:
    """Request-style trace line emitted at the start of each service operation."""
    logger.info(f"[{method}] {endpoint} - User: {user or 'system'}")
