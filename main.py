#!/usr/bin/env python3
"""
TLS Expiry Alert - Main Application Entry Point
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from tls_expiry_alert import __version__
from tls_expiry_alert.config import create_example_config, load_config
from tls_expiry_alert.exceptions import ConfigError
from tls_expiry_alert.logger import setup_logging
from tls_expiry_alert.models import Severity
from tls_expiry_alert.notifier import EventLogWriter
from tls_expiry_alert.runner import EXIT_FATAL, ExpiryAlertRunner


@click.command()
@click.option("--host", "-H", "hosts", multiple=True, help="Host name to probe (repeatable)")
@click.option(
    "--port",
    "-p",
    "ports",
    multiple=True,
    type=click.IntRange(0, 65535),
    help="Port to probe on every host (repeatable, default 443)",
)
@click.option("--threshold-days", "-t", type=click.IntRange(min=0), help="Alert threshold in days")
@click.option("--from", "sender", help="Alert sender address")
@click.option("--to", "recipient", help="Alert recipient address")
@click.option(
    "--smtp-server",
    "smtp_servers",
    multiple=True,
    help="SMTP server (repeatable; default: MX records of the recipient's domain)",
)
@click.option(
    "--ignore-validation/--enforce-validation",
    default=None,
    help="Accept any peer certificate (default: ignore)",
)
@click.option("--log-retention", type=click.IntRange(1, 365), help="Transcripts to keep")
@click.option("--log-dir", type=click.Path(file_okay=False, path_type=Path), help="Transcript directory")
@click.option("--timeout", "connect_timeout", type=float, help="Connection timeout in seconds")
@click.option(
    "--config",
    "-f",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Console log level",
)
@click.option(
    "--example-config",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an example configuration file and exit",
)
@click.option("--version", "-v", is_flag=True, help="Show version information")
def main(
    hosts: Tuple[str, ...],
    ports: Tuple[int, ...],
    threshold_days: Optional[int],
    sender: Optional[str],
    recipient: Optional[str],
    smtp_servers: Tuple[str, ...],
    ignore_validation: Optional[bool],
    log_retention: Optional[int],
    log_dir: Optional[Path],
    connect_timeout: Optional[float],
    config: Optional[Path],
    log_level: Optional[str],
    example_config: Optional[Path],
    version: bool,
) -> None:
    """TLS Expiry Alert - Warn before TLS certificates on host:port endpoints expire."""

    if version:
        print(f"TLS Expiry Alert v{__version__}")
        return

    if example_config:
        create_example_config(str(example_config))
        print(f"Example configuration written to {example_config}")
        return

    setup_logging(log_level=log_level or "INFO")

    overrides = {
        "hosts": list(hosts) or None,
        "ports": list(ports) or None,
        "threshold_days": threshold_days,
        "sender": sender,
        "recipient": recipient,
        "smtp_servers": list(smtp_servers) or None,
        "ignore_validation": ignore_validation,
        "log_retention": log_retention,
        "log_dir": str(log_dir) if log_dir else None,
        "connect_timeout": connect_timeout,
        "log_level": log_level.upper() if log_level else None,
    }

    try:
        run_config = load_config(str(config) if config else None, overrides)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    setup_logging(run_config)

    try:
        exit_code = ExpiryAlertRunner(run_config).run()
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(EXIT_FATAL)
    except Exception as e:
        logging.getLogger("tls_expiry_alert").exception("Run failed")
        EventLogWriter(run_config.event_source, event_id=run_config.event_id).write(
            f"TLS Expiry Alert failed: {e}", Severity.ERROR
        )
        print(f"Application failed: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
