"""
Centralized logging and error handling for Anime Organizer.

This module owns the root logger configuration (file + rich console) and the
exception hierarchy shared by the search engine, providers and CLI.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Optional, Union
from rich.logging import RichHandler
from rich.console import Console
from rich.panel import Panel

# Global console instance for the entire application
console = Console()


class AnimeOrganizerError(Exception):
    """Base exception for all Anime Organizer errors."""
    pass


class ConfigError(AnimeOrganizerError):
    """Raised when there's a configuration-related error."""
    pass


class APIError(AnimeOrganizerError):
    """Raised when an external service call fails (LLM providers, AnimeDB, SubShare mirrors)."""
    pass


class FileError(AnimeOrganizerError):
    """Raised when a file operation fails."""
    pass


class ValidationError(AnimeOrganizerError):
    """Raised when data validation fails."""
    pass


class OperationCancelled(AnimeOrganizerError):
    """Raised when a long-running operation observes its cancellation signal."""
    pass


def check_cancelled(cancel: Optional[threading.Event], what: str = "operation") -> None:
    """
    Raise OperationCancelled if the given cancellation event is set.

    Args:
        cancel: Cancellation signal shared with the caller (may be None)
        what: Short label used in the exception message
    """
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} cancelled")


class AnimeOrganizerLogger:
    """
    Centralized logging configuration for Anime Organizer.

    Full detail goes to a UTF-8 log file, warnings and errors go to the
    shared rich console.
    """

    def __init__(self, log_file: str = "anime_organizer.log"):
        self.log_file = log_file
        self.console = console
        self._setup_root_logger()

    def _setup_root_logger(self) -> None:
        """Configure the root logger with file and console handlers."""
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # UTF-8 so Japanese/Chinese titles survive on Windows consoles
        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(file_formatter)

        console_handler = RichHandler(
            console=self.console,
            show_path=False,
            show_time=True,
            show_level=True,
            markup=True,
            keywords=[]
        )
        console_handler.setLevel(logging.WARNING)

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        root_logger.handlers = []
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def _apply_level(self, handler_cls: type, level: Union[str, int]) -> Optional[logging.Handler]:
        root_logger = logging.getLogger()

        numeric_level = level
        if isinstance(level, str):
            numeric_level = getattr(logging, level.upper(), logging.INFO)

        # Root logger must let the records through to the handler
        if numeric_level < root_logger.level:
            root_logger.setLevel(numeric_level)

        for handler in root_logger.handlers:
            if isinstance(handler, handler_cls):
                handler.setLevel(numeric_level)
                return handler
        return None

    def set_console_level(self, level: Union[str, int], clean: bool = False) -> None:
        """
        Set the console logging level.

        Args:
            level: Logging level (e.g., 'DEBUG', 'INFO', 'WARNING')
            clean: If True, hides time and level for a cleaner look
        """
        handler = self._apply_level(RichHandler, level)
        if handler is not None:
            handler.show_time = not clean
            handler.show_level = not clean
            handler.markup = True

    def set_file_level(self, level: Union[str, int]) -> None:
        """Set the file logging level."""
        self._apply_level(logging.FileHandler, level)


# Global logger instance
_logger_instance: Optional[AnimeOrganizerLogger] = None


def setup_logging(log_file: str = "anime_organizer.log") -> AnimeOrganizerLogger:
    """
    Set up the global logging configuration.

    Args:
        log_file: Path to the log file

    Returns:
        The configured AnimeOrganizerLogger instance
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = AnimeOrganizerLogger(log_file)
    return _logger_instance


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Modules call this as:
        from anime_organizer.anime_organizer.logging import get_logger
        logger = get_logger(__name__)
    """
    if _logger_instance is None:
        setup_logging()
    return logging.getLogger(name)


def set_log_level(level: Union[str, int], handler_type: str = "both", clean: bool = False) -> None:
    """
    Set the logging level for console, file, or both handlers.

    Args:
        level: Logging level (e.g., 'DEBUG', 'INFO', 'WARNING', 'ERROR')
        handler_type: 'console', 'file', or 'both'
        clean: If True, hides time and level for console handler
    """
    if _logger_instance is None:
        setup_logging()

    if handler_type in ("console", "both"):
        _logger_instance.set_console_level(level, clean=clean)
    if handler_type in ("file", "both"):
        _logger_instance.set_file_level(level)


@contextmanager
def temporary_log_level(level: Union[str, int], handler_type: str = "console"):
    """
    Temporarily change the log level of one handler.

    Usage:
        with temporary_log_level("DEBUG"):
            ...
    """
    if _logger_instance is None:
        setup_logging()

    handler_cls = RichHandler if handler_type == "console" else logging.FileHandler
    target = None
    previous_level = None
    for handler in logging.getLogger().handlers:
        if isinstance(handler, handler_cls):
            target = handler
            previous_level = handler.level
            handler.setLevel(level)
            break

    try:
        yield
    finally:
        if target is not None:
            target.setLevel(previous_level)


def log_step(message: str) -> None:
    """
    Log a major step with a visual panel.
    Logs to file as INFO, prints to console as Panel if level <= INFO.
    """
    if _logger_instance is None:
        setup_logging()

    logging.getLogger("anime_organizer.step").info(f"STEP: {message}")

    for handler in logging.getLogger().handlers:
        if isinstance(handler, RichHandler):
            if handler.level <= logging.INFO:
                _logger_instance.console.print(Panel(message, style="bold magenta"))
            break


def log_substep(message: str) -> None:
    """Log a sub-step with indentation."""
    logger = get_logger("anime_organizer.substep")
    logger.info(f"  [bold cyan]->[/bold cyan] {message}")


def log_api_call(url: str, method: str, params: Optional[dict] = None) -> None:
    """
    Log an API call with sensitive data masking.
    Logs at DEBUG level.
    """
    logger = get_logger("anime_organizer.api")

    if not logger.isEnabledFor(logging.DEBUG):
        return

    safe_params = "None"
    if params:
        masked = params.copy()
        keys_to_mask = ['api_key', 'token', 'password', 'secret', 'key']
        for k in masked:
            if isinstance(k, str) and any(m in k.lower() for m in keys_to_mask):
                masked[k] = "********"
        safe_params = str(masked)

    logger.debug(f"API CALL: {method} {url} | Params: {safe_params}")


__all__ = [
    "console",
    "AnimeOrganizerError",
    "ConfigError",
    "APIError",
    "FileError",
    "ValidationError",
    "OperationCancelled",
    "check_cancelled",
    "AnimeOrganizerLogger",
    "setup_logging",
    "get_logger",
    "set_log_level",
    "temporary_log_level",
    "log_step",
    "log_substep",
    "log_api_call",
]
