"""
Run orchestration for TLS Expiry Alert.

A run prunes and opens the transcript, probes every endpoint, sends one
summary alert if anything went wrong, and always closes the transcript.
"""

from typing import Optional

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.context import RunContext
from tls_expiry_alert.exceptions import TranscriptError
from tls_expiry_alert.logger import get_logger
from tls_expiry_alert.models import RunOutcome, Severity
from tls_expiry_alert.notifier import Notifier, default_alert_body
from tls_expiry_alert.probe import ProbeEngine
from tls_expiry_alert.transcript import Transcript

EXIT_OK = 0
EXIT_ALERTS = 1
EXIT_FATAL = 2


class ExpiryAlertRunner:
    """Run wrapper around the probe engine."""

    def __init__(
        self,
        config: RunConfig,
        transcript: Optional[Transcript] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.config = config
        self.transcript = transcript or Transcript(config)
        self.notifier = notifier
        self.outcome: Optional[RunOutcome] = None
        self.logger = get_logger("runner")

    def run(self) -> int:
        """
        Execute one run.

        Returns:
            EXIT_OK when nothing was found, EXIT_ALERTS when certificates are
            expiring or an error was flagged, EXIT_FATAL when setup failed
        """
        context = RunContext()
        notifier = self.notifier or Notifier(self.config)
        notifier.on_failure = context.record_error

        try:
            self.transcript.prune()
            try:
                context.transcript_path = self.transcript.open()
            except TranscriptError as e:
                self.logger.error(f"Aborting run: {e}")
                notifier.send_alert(
                    f"{self.config.script_name}: transcript could not be created",
                    default_alert_body([str(e)]),
                )
                notifier.log_event(str(e), Severity.ERROR)
                return EXIT_FATAL

            self._log_configuration()

            with context:
                engine = ProbeEngine(self.config, notifier)
                self.outcome = engine.run(context)

                if context.error_occurred:
                    self._send_summary(notifier, context)

            if self.outcome.error_occurred or self.outcome.warning_occurred:
                return EXIT_ALERTS
            return EXIT_OK
        finally:
            self.transcript.close()

    def _log_configuration(self) -> None:
        config = self.config
        self.logger.info(f"Hosts: {', '.join(config.hosts)}")
        self.logger.info(f"Ports: {', '.join(str(p) for p in config.ports)}")
        self.logger.info(
            f"Threshold: {config.threshold_days} days, "
            f"TLS {config.min_tls_version}-{config.max_tls_version}, "
            f"timeout {config.connect_timeout}s"
        )
        if config.alerting_enabled:
            self.logger.info(
                f"Alerts: {config.sender} -> {config.recipient} via {config.smtp_servers[0]}"
            )
        else:
            self.logger.info("Alerts: email not configured")
        if not config.ignore_validation:
            self.logger.warning(
                "Certificate validation is never enforced by the probe; "
                "ignore_validation=false only changes this notice"
            )

    def _send_summary(self, notifier: Notifier, context: RunContext) -> None:
        subject = f"{self.config.script_name}: errors occurred during certificate check"
        body = default_alert_body(
            [
                "One or more errors occurred during the certificate expiry check.",
                f"See the transcript for details: {context.transcript_path}",
            ]
        )
        notifier.send_alert(subject, body)
