"""
Per-run state threaded through the probe loop.
"""

import logging
from pathlib import Path
from typing import List, Optional

from tls_expiry_alert.models import ProbeResult, RunOutcome

APP_LOGGER = "tls_expiry_alert"


class _LineCollector(logging.Handler):
    """Collects the run's diagnostic lines in emission order."""

    def __init__(self, lines: List[str]) -> None:
        super().__init__(level=logging.INFO)
        self.lines = lines

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(record.getMessage())


class RunContext:
    """
    Mutable state for one run.

    The error and warning flags can be raised by any iteration but are never
    cleared. Used as a context manager, it collects every diagnostic line
    logged by the application into the outcome.
    """

    def __init__(self, transcript_path: Optional[Path] = None) -> None:
        self.transcript_path = transcript_path
        self._outcome = RunOutcome()
        self._collector = _LineCollector(self._outcome.lines)
        self.logger = logging.getLogger(f"{APP_LOGGER}.run")

    def __enter__(self) -> "RunContext":
        logging.getLogger(APP_LOGGER).addHandler(self._collector)
        return self

    def __exit__(self, *exc_info: object) -> None:
        logging.getLogger(APP_LOGGER).removeHandler(self._collector)

    def record_error(self, message: str) -> None:
        if not self._outcome.error_occurred:
            self.logger.debug(f"Run marked as failed: {message}")
        self._outcome.error_occurred = True

    def record_warning(self) -> None:
        self._outcome.warning_occurred = True

    def add_result(self, result: ProbeResult) -> None:
        self._outcome.results.append(result)

    @property
    def error_occurred(self) -> bool:
        return self._outcome.error_occurred

    @property
    def outcome(self) -> RunOutcome:
        return self._outcome
