"""
Centralized logging setup for the Word Coop relay and clients.
"""
import json
import logging
import datetime
import os
import sys
import tempfile
from typing import Any, Optional


def _resolve_log_dir() -> str:
    """Determine a writable log directory."""
    candidates = []

    env_dir = os.environ.get("WORDCOOP_LOG_DIR")
    if env_dir:
        candidates.append(env_dir)

    candidates.append(os.path.join(tempfile.gettempdir(), "wordcoop-logs"))

    for directory in candidates:
        try:
            os.makedirs(directory, exist_ok=True)
            if os.access(directory, os.W_OK):
                return directory
        except OSError:
            continue

    return os.getcwd()


def setup_logging(level: str = "INFO", log_file: Optional[str] = "wordcoop_relay.log") -> logging.Logger:
    """Setup logging configuration with console and (when possible) file output."""
    handlers = [logging.StreamHandler()]
    log_path = None

    if log_file:
        log_path = os.path.join(_resolve_log_dir(), log_file)
        try:
            handlers.append(logging.FileHandler(log_path, mode='a', encoding='utf-8'))
        except OSError as e:
            print(f"WARNING: Cannot write to log file {log_path}: {e}", file=sys.stderr)
            print("Logging to console only", file=sys.stderr)
            log_path = None

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )

    logger = logging.getLogger("wordcoop")
    logger.info(f"Logging initialized - output will be written to: {log_path or 'console only'}")

    return logger


def debug_log(message: str, data: Optional[Any] = None, level: str = "INFO",
              logger: Optional[logging.Logger] = None) -> None:
    """
    Log a message with optional structured data.

    Args:
        message: The log message
        data: Optional data to log; dicts are rendered as indented JSON
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        logger: Logger to use, defaults to the package logger
    """
    target = logger or logging.getLogger("wordcoop")
    numeric_level = getattr(logging, level.upper())
    if not target.isEnabledFor(numeric_level):
        return

    timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]

    if data:
        if isinstance(data, dict):
            data_str = json.dumps(data, indent=2, default=str)
            target.log(numeric_level, f"[{timestamp}] {message}\nData: {data_str}")
        else:
            target.log(numeric_level, f"[{timestamp}] {message} - {data}")
    else:
        target.log(numeric_level, f"[{timestamp}] {message}")


class LoggerMixin:
    """Mixin class to add logging capabilities to other classes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_debug(self, message: str, data: Optional[Any] = None):
        """Log debug message."""
        debug_log(message, data, "DEBUG", self.logger)

    def log_info(self, message: str, data: Optional[Any] = None):
        """Log info message."""
        debug_log(message, data, "INFO", self.logger)

    def log_warning(self, message: str, data: Optional[Any] = None):
        """Log warning message."""
        debug_log(message, data, "WARNING", self.logger)

    def log_error(self, message: str, data: Optional[Any] = None):
        """Log error message."""
        debug_log(message, data, "ERROR", self.logger)
