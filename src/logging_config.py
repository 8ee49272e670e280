"""Logging configuration using Loguru.

Provides structured logging with:
- Console output for development
- File rotation for production
- No customer identifiers or API keys in logs
"""

import re
import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# (file name pattern, minimum level or None for the configured level, rotation, retention)
_FILE_SINKS: tuple[tuple[str, str | None, str, str], ...] = (
    ("carevoice_{time:YYYY-MM-DD}.log", None, "100 MB", "30 days"),
    ("errors_{time:YYYY-MM-DD}.log", "ERROR", "50 MB", "90 days"),
)


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "logs",
    enable_file: bool = True,
    diagnose: bool = True,
) -> None:
    """Configure application logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        enable_file: Whether to enable rotating file logs
        diagnose: Show variable values in console tracebacks (off in production)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=diagnose,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        for pattern, sink_level, rotation, retention in _FILE_SINKS:
            error_only = sink_level == "ERROR"
            logger.add(
                log_path / pattern,
                format=FILE_FORMAT + ("\n{exception}" if error_only else ""),
                level=sink_level or level,
                rotation=rotation,
                retention=retention,
                compression="gz",
                backtrace=True,
                # Never write variable values to disk
                diagnose=False,
            )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger instance with the given name.

    Usage:
        from src.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Message")
    """
    return logger.bind(name=name)


_API_KEY_PARAM_RE = re.compile(r"(api[-_]key=)[^&]+", re.IGNORECASE)


def mask_customer_id(customer_id: str) -> str:
    """Mask a customer identifier for logging: cust_123456 -> cuXXXX3456."""
    if not customer_id or len(customer_id) < 6:
        return "XXXX"
    return f"{customer_id[:2]}XXXX{customer_id[-4:]}"


def redact_url(url: str) -> str:
    """Strip API keys from a URL query string before logging it."""
    return _API_KEY_PARAM_RE.sub(r"\1[REDACTED]", url)


def sanitize_for_log(data: dict) -> dict:
    """Remove or mask sensitive values from a dict before logging.

    Removes: api keys, customer_info
    Masks: any field named like customer_id
    """
    sensitive_fields = {"murf_api_key", "groq_api_key", "deepgram_api_key", "customer_info"}
    result = {}

    for key, value in data.items():
        lowered = key.lower()
        if lowered in sensitive_fields or lowered.endswith("api_key"):
            result[key] = "[REDACTED]"
        elif "customer" in lowered and isinstance(value, str):
            result[key] = mask_customer_id(value)
        elif isinstance(value, dict):
            result[key] = sanitize_for_log(value)
        else:
            result[key] = value

    return result
