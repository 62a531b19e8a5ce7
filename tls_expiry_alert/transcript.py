"""
Run transcript management for TLS Expiry Alert.

Each run writes one transcript file named ``<script>_<timestamp>.log`` into a
per-user log directory. Older transcripts beyond the retention count are
removed before the new one is created.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.exceptions import TranscriptError
from tls_expiry_alert.logger import CustomFormatter, StructuredFormatter, get_logger

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def default_log_dir(script_name: str) -> Path:
    """Get the per-user log directory for a script."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path.home() / ".cache"
    return base / script_name / "logs"


class Transcript:
    """Append-only log file capturing everything logged during one run."""

    def __init__(self, config: RunConfig, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.script_name = config.script_name
        self.directory = Path(config.log_dir) if config.log_dir else default_log_dir(
            config.script_name
        )
        self.retention = config.log_retention
        self.structured = config.transcript_format == "json"
        self.clock = clock or datetime.now
        self.path: Optional[Path] = None
        self.logger = get_logger("transcript")
        self._handler: Optional[logging.FileHandler] = None

    def existing(self) -> List[Path]:
        """List this script's transcripts, oldest first."""
        if not self.directory.is_dir():
            return []
        return sorted(self.directory.glob(f"{self.script_name}_*.log"), key=lambda p: p.name)

    def prune(self) -> List[Path]:
        """
        Delete the oldest transcripts so at most ``retention`` remain.

        Returns:
            The files that were removed
        """
        files = self.existing()
        excess = files[: max(len(files) - self.retention, 0)]

        removed = []
        for path in excess:
            try:
                path.unlink()
                removed.append(path)
            except OSError as e:
                self.logger.warning(f"Could not remove old transcript {path}: {e}")

        if removed:
            self.logger.debug(f"Removed {len(removed)} transcript(s) beyond retention")
        return removed

    def open(self) -> Path:
        """
        Create the transcript file and attach it to the root logger.

        Raises:
            TranscriptError: If the directory or file cannot be created
        """
        timestamp = self.clock().strftime(TIMESTAMP_FORMAT)
        path = self.directory / f"{self.script_name}_{timestamp}.log"

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            raise TranscriptError(f"Could not create transcript {path}: {e}") from e

        if self.structured:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(CustomFormatter(use_color=False))

        logging.getLogger().addHandler(handler)
        self._handler = handler
        self.path = path
        self.logger.info(f"Transcript: {path}")
        return path

    def close(self) -> None:
        """Detach and flush the transcript. Safe to call more than once."""
        if self._handler is None:
            return
        logging.getLogger().removeHandler(self._handler)
        self._handler.close()
        self._handler = None
