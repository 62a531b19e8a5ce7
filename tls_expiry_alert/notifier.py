"""
Alert delivery for TLS Expiry Alert.

Two best-effort channels are exposed to the probe engine:

- email over SMTP submission with STARTTLS
- the Windows event log via pywin32, degrading to plain log lines where
  the platform or privilege level does not allow it

Neither channel raises; delivery problems are logged and reported through
the ``on_failure`` callback so the run can flag them.
"""

import smtplib
import socket
from email.message import EmailMessage
from typing import Callable, List, Optional

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.logger import get_logger
from tls_expiry_alert.models import Severity

try:
    import pywintypes
    import win32evtlog
    import win32evtlogutil
except ImportError:
    # Not on Windows or pywin32 not available
    pywintypes = None
    win32evtlog = None
    win32evtlogutil = None

FailureCallback = Callable[[str], None]
AlertCallback = Callable[[str, str], None]


def _registration_errors() -> tuple:
    if pywintypes is not None:
        return (OSError, pywintypes.error)
    return (OSError,)


class EmailNotifier:
    """Send plain-text alerts to a single recipient."""

    def __init__(self, config: RunConfig, on_failure: Optional[FailureCallback] = None) -> None:
        self.sender = config.sender
        self.recipient = config.recipient
        self.smtp_servers = list(config.smtp_servers)
        self.smtp_port = config.smtp_port
        self.timeout = config.connect_timeout
        self.on_failure = on_failure
        self.logger = get_logger("notifier.email")

    @property
    def enabled(self) -> bool:
        return bool(self.sender and self.recipient and self.smtp_servers)

    def send(self, subject: str, body: str) -> bool:
        """
        Deliver an alert via the first configured SMTP server.

        Returns:
            True if the message was handed to the server
        """
        if not self.enabled:
            self.logger.debug(f"Alerting not configured, skipping: {subject}")
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg.set_content(body)

        server_name = self.smtp_servers[0]
        try:
            with smtplib.SMTP(server_name, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.send_message(msg)
            self.logger.info(f"Alert sent to {self.recipient} via {server_name}: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"Failed to send alert via {server_name}: {e}")
            if self.on_failure:
                self.on_failure(f"Alert delivery via {server_name} failed: {e}")
            return False


class EventLogWriter:
    """
    Write entries to the local system event log.

    The event source is registered lazily on the first write and only once;
    if registration fails every later entry falls back to a log line.
    """

    EVENT_TYPES = {
        Severity.INFO: "EVENTLOG_INFORMATION_TYPE",
        Severity.WARNING: "EVENTLOG_WARNING_TYPE",
        Severity.ERROR: "EVENTLOG_ERROR_TYPE",
    }

    FALLBACK_LEVELS = {
        Severity.INFO: "info",
        Severity.WARNING: "warning",
        Severity.ERROR: "error",
    }

    def __init__(
        self,
        source: str,
        event_id: int = 1000,
        alert: Optional[AlertCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> None:
        self.source = source
        self.event_id = event_id
        self.alert = alert
        self.on_failure = on_failure
        self.logger = get_logger("notifier.eventlog")
        self._registered: Optional[bool] = None

    @property
    def available(self) -> bool:
        return win32evtlogutil is not None

    def _ensure_source(self) -> bool:
        if self._registered is not None:
            return self._registered

        if not self.available:
            self.logger.debug("Event log not available on this platform, using log output")
            self._registered = False
            return False

        try:
            win32evtlogutil.AddSourceToRegistry(self.source, eventLogType="Application")
            self._registered = True
        except _registration_errors() as e:
            self._registered = False
            message = f"Could not register event log source '{self.source}': {e}"
            self.logger.error(message)
            if self.on_failure:
                self.on_failure(message)
            if self.alert:
                self.alert(f"{self.source}: event log registration failed", message)

        return self._registered

    def write(self, message: str, severity: Severity = Severity.INFO) -> None:
        """Write an entry, or a log line when the event log is unusable."""
        if self._ensure_source():
            try:
                win32evtlogutil.ReportEvent(
                    self.source,
                    self.event_id,
                    eventCategory=0,
                    eventType=getattr(win32evtlog, self.EVENT_TYPES[severity]),
                    strings=[message],
                )
                return
            except _registration_errors() as e:
                self.logger.warning(f"Event log write failed, using log output: {e}")

        log = getattr(self.logger, self.FALLBACK_LEVELS[severity])
        log(f"[{severity.value}] {message}")


class Notifier:
    """Facade combining email alerts and event log entries."""

    def __init__(self, config: RunConfig, on_failure: Optional[FailureCallback] = None) -> None:
        self.email = EmailNotifier(config, on_failure=on_failure)
        self.event_log = EventLogWriter(
            config.event_source,
            event_id=config.event_id,
            alert=self.send_alert,
            on_failure=on_failure,
        )

    @property
    def on_failure(self) -> Optional[FailureCallback]:
        return self.email.on_failure

    @on_failure.setter
    def on_failure(self, callback: Optional[FailureCallback]) -> None:
        """Route delivery and registration failures to ``callback``."""
        self.email.on_failure = callback
        self.event_log.on_failure = callback

    def send_alert(self, subject: str, body: str) -> None:
        self.email.send(subject, body)

    def log_event(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.event_log.write(message, severity)


def default_alert_body(lines: List[str]) -> str:
    """Build an alert body with the originating host name."""
    header = f"Reported by {socket.gethostname()}"
    return "\n".join([header, ""] + lines)
