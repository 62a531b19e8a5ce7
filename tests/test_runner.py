"""
Tests for run orchestration.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.exceptions import TranscriptError
from tls_expiry_alert.models import ConnectionFailure, ExpiringSoon, FailureCategory, Healthy
from tls_expiry_alert.notifier import Notifier
from tls_expiry_alert.probe import ProbeEngine
from tls_expiry_alert.runner import EXIT_ALERTS, EXIT_FATAL, EXIT_OK, ExpiryAlertRunner
from tls_expiry_alert.transcript import Transcript


def fake_certificate(days: int) -> MagicMock:
    """Build a stand-in for an x509 certificate expiring in ``days`` days."""
    cert = MagicMock()
    cert.not_valid_after_utc = datetime.now(timezone.utc) + timedelta(days=days, hours=1)
    cert.issuer.rfc4514_string.return_value = "CN=Test CA,O=Test Org"
    return cert


@pytest.fixture(autouse=True)
def info_logging(caplog):
    """Let INFO diagnostics reach the transcript and run context."""
    caplog.set_level(logging.INFO)


@pytest.fixture
def config(tmp_path):
    """Create a run configuration writing transcripts under tmp_path."""
    return RunConfig(
        hosts=["example.com"],
        ports=[443],
        threshold_days=20,
        log_dir=str(tmp_path / "logs"),
        log_retention=3,
    )


@pytest.fixture
def notifier():
    """Create a mock notifier."""
    return MagicMock(spec=Notifier)


def transcript_handlers(log_dir: str) -> list:
    return [
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.FileHandler) and h.baseFilename.startswith(log_dir)
    ]


class TestExpiryAlertRunner:
    """Test the run wrapper."""

    def test_healthy_run(self, config, notifier):
        """Test a clean run exits 0 and leaves a closed transcript."""
        runner = ExpiryAlertRunner(config, notifier=notifier)

        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(90)):
            exit_code = runner.run()

        assert exit_code == EXIT_OK
        assert isinstance(runner.outcome.results[0], Healthy)
        notifier.send_alert.assert_not_called()

        logs = list(Path(config.log_dir).glob("tls-expiry-alert_*.log"))
        assert len(logs) == 1
        assert "certificate issuer: CN=Test CA,O=Test Org" in logs[0].read_text()
        assert transcript_handlers(config.log_dir) == []

    def test_expiring_run(self, config, notifier):
        """Test an expiring certificate alerts and exits 1."""
        runner = ExpiryAlertRunner(config, notifier=notifier)

        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(15)):
            exit_code = runner.run()

        assert exit_code == EXIT_ALERTS
        result = runner.outcome.results[0]
        assert isinstance(result, ExpiringSoon)
        assert result.days_remaining == 15
        notifier.send_alert.assert_called_once()
        notifier.log_event.assert_called_once()
        assert runner.outcome.error_occurred is False

    def test_connection_failure_is_not_an_error(self, config, notifier):
        """Test a failed endpoint is reported without a summary alert."""
        runner = ExpiryAlertRunner(config, notifier=notifier)

        with patch.object(ProbeEngine, "fetch_certificate", side_effect=ConnectionResetError()):
            exit_code = runner.run()

        assert exit_code == EXIT_OK
        result = runner.outcome.results[0]
        assert isinstance(result, ConnectionFailure)
        assert result.category is FailureCategory.ACCESS_DENIED
        notifier.send_alert.assert_not_called()

    def test_error_sends_summary_with_transcript_path(self, config):
        """Test flagged errors produce one summary alert naming the transcript."""
        runner = ExpiryAlertRunner(config)

        def fake_send(self, subject, body):
            self.on_failure(f"delivery failed for {subject}")
            return False

        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(5)), \
                patch("tls_expiry_alert.notifier.EmailNotifier.send", autospec=True,
                      side_effect=fake_send) as mock_send:
            exit_code = runner.run()

        assert exit_code == EXIT_ALERTS
        assert runner.outcome.error_occurred is True

        subjects = [c.args[1] for c in mock_send.call_args_list]
        summaries = [s for s in subjects if "errors occurred" in s]
        assert len(summaries) == 1
        summary_body = mock_send.call_args_list[-1].args[2]
        assert str(runner.transcript.path) in summary_body

    def test_prunes_before_creating_transcript(self, config, notifier):
        """Test retention keeps the newest files and then adds the new one."""
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True)
        for day in range(1, 6):
            (log_dir / f"tls-expiry-alert_202601{day:02d}_000000.log").write_text("old\n")

        runner = ExpiryAlertRunner(config, notifier=notifier)
        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(90)):
            runner.run()

        names = sorted(p.name for p in log_dir.iterdir())
        assert len(names) == 4
        assert "tls-expiry-alert_20260101_000000.log" not in names
        assert "tls-expiry-alert_20260102_000000.log" not in names
        assert "tls-expiry-alert_20260103_000000.log" in names
        assert runner.transcript.path.name in names

    def test_transcript_failure_aborts(self, config, notifier):
        """Test a transcript that cannot be created aborts with exit code 2."""
        transcript = MagicMock(spec=Transcript)
        transcript.open.side_effect = TranscriptError("disk full")
        runner = ExpiryAlertRunner(config, transcript=transcript, notifier=notifier)

        with patch("tls_expiry_alert.runner.ProbeEngine") as mock_engine:
            exit_code = runner.run()

        assert exit_code == EXIT_FATAL
        mock_engine.assert_not_called()
        notifier.send_alert.assert_called_once()
        assert "disk full" in notifier.send_alert.call_args.args[1]
        transcript.prune.assert_called_once()
        transcript.close.assert_called_once()

    def test_transcript_closed_on_unexpected_error(self, config, notifier):
        """Test the transcript is closed when the run blows up."""
        runner = ExpiryAlertRunner(config, notifier=notifier)

        with patch("tls_expiry_alert.runner.ProbeEngine", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                runner.run()

        assert transcript_handlers(config.log_dir) == []

    def test_no_recipient_still_writes_diagnostics(self, config):
        """Test alerting is a no-op without a recipient while diagnostics are kept."""
        runner = ExpiryAlertRunner(config)

        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(3)), \
                patch("tls_expiry_alert.notifier.smtplib.SMTP") as mock_smtp:
            exit_code = runner.run()

        assert exit_code == EXIT_ALERTS
        mock_smtp.assert_not_called()
        assert any("expires in 3 day(s)" in line for line in runner.outcome.lines)

        content = runner.transcript.path.read_text(encoding="utf-8")
        assert "expires in 3 day(s)" in content

    def test_injected_notifier_failures_flag_errors(self, config):
        """Test delivery failures from a supplied notifier still set the error flag."""
        mail_config = config.model_copy(
            update={
                "sender": "certs@example.com",
                "recipient": "ops@example.com",
                "smtp_servers": ["mx.example.com"],
            }
        )
        runner = ExpiryAlertRunner(mail_config, notifier=Notifier(mail_config))

        with patch.object(ProbeEngine, "fetch_certificate", return_value=fake_certificate(5)), \
                patch("tls_expiry_alert.notifier.smtplib.SMTP",
                      side_effect=ConnectionRefusedError("refused")) as mock_smtp:
            exit_code = runner.run()

        assert exit_code == EXIT_ALERTS
        assert runner.outcome.error_occurred is True
        # expiring alert plus the summary
        assert mock_smtp.call_count == 2
