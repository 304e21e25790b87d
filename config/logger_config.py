# File: config/logger_config.py
# Named loggers for every reconciliation component: console output plus a rotating file per component.

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

# Overrides the default logs directory (tests point it at a temporary directory)
LOG_DIR_ENV = "RECONCILER_LOG_DIR"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
OUTPUT_TARGETS = ("file", "console", "both")


def _default_log_dir() -> str:
    """Returns RECONCILER_LOG_DIR when set, else <project root>/logs."""
    override = os.getenv(LOG_DIR_ENV)
    if override:
        return override
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(project_root, "logs")


def configure_logger(
    name: Optional[str] = None,
    log_dir: Optional[str] = None,
    log_file: str = "sample_reconciliation.log",
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    output: str = "both",
) -> logging.Logger:
    """
    Returns the named logger, attaching handlers the first time it is requested.

    Later calls for the same name reuse the existing handlers and only change their level,
    so components built repeatedly (one per test, one per run) never duplicate log lines.

    Args:
        name (Optional[str]): Logger name, usually the component class name. None is the root logger.
        log_dir (Optional[str]): Directory for the log file. Defaults to RECONCILER_LOG_DIR or <project>/logs.
        log_file (str): File name inside log_dir.
        level (int): Level applied to the logger and all of its handlers.
        max_bytes (int): Size at which the file rotates (10 MB).
        backup_count (int): Rotated files kept.
        output (str): "file", "console" or "both".

    Returns:
        logging.Logger: The configured logger.

    Raises:
        ValueError: If output is not one of OUTPUT_TARGETS.
        RuntimeError: If the log directory or file cannot be created.
    """
    if output not in OUTPUT_TARGETS:
        raise ValueError(f"Unsupported logger output '{output}'. Use one of {OUTPUT_TARGETS}.")

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if output in ("file", "both"):
        target_dir = log_dir or _default_log_dir()
        try:
            os.makedirs(target_dir, exist_ok=True)
            handlers.append(RotatingFileHandler(
                os.path.join(target_dir, log_file), maxBytes=max_bytes, backupCount=backup_count
            ))
        except OSError as e:
            raise RuntimeError(f"Failed to create or access log directory '{target_dir}': {e}") from e
    if output in ("console", "both"):
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
