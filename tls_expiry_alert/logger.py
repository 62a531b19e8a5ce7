"""
Standardized logging configuration for TLS Expiry Alert.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Optional

from tls_expiry_alert.config import RunConfig

CONSOLE_HANDLER_NAME = "tls_expiry_alert.console"


class CustomFormatter(logging.Formatter):
    """Custom formatter with colored output for console."""

    # Color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def __init__(self, use_color: bool = True) -> None:
        self.use_color = use_color
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with optional colors."""
        if self.use_color and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            reset = self.COLORS["RESET"]
            level_name = f"{color}{record.levelname:<8}{reset}"
        else:
            level_name = f"{record.levelname:<8}"

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = record.getMessage()

        if record.exc_info:
            if not message.endswith("\n"):
                message += "\n"
            message += self.formatException(record.exc_info)

        return f"{timestamp} | {level_name} | {record.name:<26} | {message}"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured transcripts."""

    EXTRA_FIELDS = ("host", "port", "category", "days_remaining", "expiry_date", "issuer")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config: Optional[RunConfig] = None, log_level: str = "INFO") -> None:
    """
    Setup console logging.

    Args:
        config: Configuration object; its log level wins over ``log_level``
        log_level: Level used before a configuration is available
    """
    level_name = config.log_level if config else log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace only our own console handler; a transcript may already be attached
    for handler in list(root_logger.handlers):
        if handler.get_name() == CONSOLE_HANDLER_NAME:
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.set_name(CONSOLE_HANDLER_NAME)
    console_handler.setLevel(level)

    use_color = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
    console_handler.setFormatter(CustomFormatter(use_color=use_color))
    root_logger.addHandler(console_handler)

    # Resolver internals are noise in the transcript
    logging.getLogger("dns").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(f"tls_expiry_alert.{name}")


# Logging helpers for probe operations
def log_probe_start(logger: logging.Logger, host: str, port: int) -> None:
    """Log the start of a single endpoint probe."""
    logger.debug(f"Probing {host}:{port}", extra={"host": host, "port": port})


def log_certificate_read(
    logger: logging.Logger, host: str, port: int, issuer: str, expiry: datetime, now: datetime
) -> None:
    """Log the certificate fields read from a successful handshake."""
    extra = {"host": host, "port": port, "issuer": issuer, "expiry_date": expiry.isoformat()}
    logger.info(f"{host}:{port} certificate issuer: {issuer}", extra=extra)
    logger.info(f"{host}:{port} current date: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}", extra=extra)
    logger.info(
        f"{host}:{port} expiry date: {expiry.strftime('%Y-%m-%d %H:%M:%S %Z')}", extra=extra
    )


def log_probe_failure(
    logger: logging.Logger, host: str, port: int, category: str, message: str
) -> None:
    """Log a classified connection failure."""
    logger.info(message, extra={"host": host, "port": port, "category": category})


def log_run_complete(
    logger: logging.Logger, duration: float, probed: int, expiring: int, failed: int
) -> None:
    """Log run completion."""
    logger.info(
        f"Run completed - Duration: {duration:.2f}s, "
        f"Endpoints: {probed}, Expiring: {expiring}, Failed: {failed}"
    )
