# =============================================================================
# finca_core/logging/config.py
# Logging Configuration for the offline data layer
# =============================================================================

import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER = "finca_core"

# Chatty HTTP stack underneath the Supabase client
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest")


def resolve_level(level: Union[int, str]) -> int:
    """Accept ``logging.DEBUG`` or a name such as ``"debug"`` from secrets.toml."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    quiet_loggers: Sequence[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """
    Attach stdout (and optionally file) handlers to the ``finca_core`` logger.

    Only the package logger is configured; the host application's root
    logger is left alone. Calling again replaces the handlers added by the
    previous call.

    Args:
        level: Level for every ``finca_core.*`` logger
        log_file: Also write to this file (parent directories are created)
        quiet_loggers: Third-party loggers capped at WARNING

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(resolve_level(level))

    for handler in list(package_logger.handlers):
        if getattr(handler, "finca_managed", False):
            package_logger.removeHandler(handler)
            handler.close()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.finca_managed = True
        package_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.info(f"Logging initialized at {logging.getLevelName(package_logger.level)}")
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from finca_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Draining queue")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Usage:
        with LogContext(logger, "Refreshing animales cache"):
            store.replace_collection("animales", rows)
        # Logs: "Refreshing animales cache... started"
        # Logs: "Refreshing animales cache... completed (0.03s)"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({elapsed:.2f}s): {exc_val}",
                exc_info=True
            )

        return False
