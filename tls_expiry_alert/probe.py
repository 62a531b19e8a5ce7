"""
Certificate expiry probe for TLS Expiry Alert.
"""

import errno
import socket
import ssl
import time
import warnings
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, Optional

from cryptography import x509

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.context import RunContext
from tls_expiry_alert.logger import (
    get_logger,
    log_certificate_read,
    log_probe_failure,
    log_probe_start,
    log_run_complete,
)
from tls_expiry_alert.models import (
    ConnectionFailure,
    Endpoint,
    ExpiringSoon,
    FailureCategory,
    Healthy,
    ProbeResult,
    RunOutcome,
    Severity,
)
from tls_expiry_alert.notifier import Notifier, default_alert_body

FAILURE_MESSAGES: Dict[FailureCategory, str] = {
    FailureCategory.ACCESS_DENIED: (
        "{endpoint}: connection was reset by the remote host, access may be denied ({error})"
    ),
    FailureCategory.HANDSHAKE_FAILURE: (
        "{endpoint}: TLS handshake failed, the port may not be serving TLS ({error})"
    ),
    FailureCategory.FIREWALL_BLOCKED: (
        "{endpoint}: connection blocked locally, check firewall or socket permissions ({error})"
    ),
    FailureCategory.UNKNOWN: "{endpoint}: connection failed ({error})",
}

_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}


def classify_failure(error: BaseException) -> FailureCategory:
    """
    Map a connect/handshake exception to a failure category.

    Args:
        error: Exception raised while connecting or negotiating TLS

    Returns:
        The matching category, UNKNOWN when nothing matches
    """
    # SSLEOFError is the peer hanging up mid-handshake; check it before SSLError
    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, ssl.SSLEOFError)):
        return FailureCategory.ACCESS_DENIED
    if isinstance(error, ssl.SSLError):
        return FailureCategory.HANDSHAKE_FAILURE
    if isinstance(error, PermissionError):
        return FailureCategory.FIREWALL_BLOCKED
    if isinstance(error, OSError) and error.errno in _PERMISSION_ERRNOS:
        return FailureCategory.FIREWALL_BLOCKED
    return FailureCategory.UNKNOWN


def evaluate_certificate(
    endpoint: Endpoint, cert: x509.Certificate, threshold_days: int, now: datetime
) -> ProbeResult:
    """
    Classify a certificate against the expiry threshold.

    A certificate is expiring soon only when strictly fewer than
    ``threshold_days`` whole days remain.
    """
    expiry = cert.not_valid_after_utc
    issuer = cert.issuer.rfc4514_string()
    days_remaining = (expiry - now).days

    if days_remaining < threshold_days:
        return ExpiringSoon(
            host=endpoint.host,
            port=endpoint.port,
            issuer=issuer,
            expiry_date=expiry,
            days_remaining=days_remaining,
        )
    return Healthy(host=endpoint.host, port=endpoint.port, issuer=issuer, expiry_date=expiry)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProbeEngine:
    """
    Probe every configured endpoint once and report expiring certificates.

    Endpoints are probed sequentially, hosts in the outer loop and ports in
    the inner loop. The TLS context accepts any peer certificate: the probe
    reads certificate metadata and never decides trust.
    """

    def __init__(
        self,
        config: RunConfig,
        notifier: Notifier,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.notifier = notifier
        self.clock = clock or _utcnow
        self.logger = get_logger("probe")
        self.ssl_context = self._create_ssl_context()

    def _create_ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        minimum, maximum = self.config.tls_version_bounds
        with warnings.catch_warnings():
            # Assigning TLSv1_1 warns on Python 3.10+
            warnings.simplefilter("ignore", DeprecationWarning)
            context.minimum_version = minimum
            context.maximum_version = maximum

        # Verification is disabled on this context only, never process-wide
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        # OpenSSL 3 refuses TLS 1.1 at the default security level
        if context.minimum_version < ssl.TLSVersion.TLSv1_2:
            context.set_ciphers("DEFAULT:@SECLEVEL=0")

        return context

    def endpoints(self) -> Iterator[Endpoint]:
        """Yield hosts x ports in configuration order, duplicates included."""
        for host in self.config.hosts:
            for port in self.config.ports:
                yield Endpoint(host, port)

    def fetch_certificate(self, endpoint: Endpoint) -> x509.Certificate:
        """
        Connect to an endpoint and return its peer certificate.

        Raises:
            OSError: Connect or handshake failure (ssl.SSLError included)
            ValueError: The certificate could not be parsed
        """
        with socket.create_connection(
            (endpoint.host, endpoint.port), timeout=self.config.connect_timeout
        ) as sock:
            with self.ssl_context.wrap_socket(sock, server_hostname=endpoint.host) as tls_sock:
                der = tls_sock.getpeercert(binary_form=True)

        if not der:
            raise ssl.SSLError(f"{endpoint} presented no certificate")

        return x509.load_der_x509_certificate(der)

    def probe(self, endpoint: Endpoint) -> ProbeResult:
        """Probe a single endpoint. Never raises."""
        log_probe_start(self.logger, endpoint.host, endpoint.port)

        try:
            cert = self.fetch_certificate(endpoint)
            now = self.clock()
            result = evaluate_certificate(endpoint, cert, self.config.threshold_days, now)
        except Exception as e:
            category = classify_failure(e)
            message = FAILURE_MESSAGES[category].format(endpoint=endpoint, error=e)
            log_probe_failure(self.logger, endpoint.host, endpoint.port, category.value, message)
            return ConnectionFailure(
                host=endpoint.host, port=endpoint.port, category=category, raw_message=str(e)
            )

        log_certificate_read(
            self.logger, endpoint.host, endpoint.port, result.issuer, result.expiry_date, now
        )
        return result

    def run(self, context: RunContext) -> RunOutcome:
        """
        Probe all endpoints, alerting on each expiring certificate.

        Args:
            context: State for the current run

        Returns:
            The run outcome held by ``context``
        """
        start_time = time.time()
        self.logger.info(
            f"Checking {len(self.config.hosts) * len(self.config.ports)} endpoint(s), "
            f"threshold {self.config.threshold_days} days"
        )

        for endpoint in self.endpoints():
            result = self.probe(endpoint)
            context.add_result(result)

            if isinstance(result, ExpiringSoon):
                context.record_warning()
                self._report_expiring(result)

        outcome = context.outcome
        log_run_complete(
            self.logger,
            time.time() - start_time,
            len(outcome.results),
            len(outcome.expiring),
            len(outcome.failures),
        )
        return outcome

    def _report_expiring(self, result: ExpiringSoon) -> None:
        endpoint = f"{result.host}:{result.port}"
        if result.days_remaining < 0:
            summary = (
                f"TLS certificate on {endpoint} expired {-result.days_remaining} day(s) ago"
            )
        else:
            summary = f"TLS certificate on {endpoint} expires in {result.days_remaining} day(s)"

        self.logger.warning(
            summary,
            extra={
                "host": result.host,
                "port": result.port,
                "days_remaining": result.days_remaining,
            },
        )

        body = default_alert_body(
            [
                summary,
                f"Issuer: {result.issuer}",
                f"Expiry date: {result.expiry_date.strftime('%Y-%m-%d %H:%M:%S %Z')}",
                f"Alert threshold: {self.config.threshold_days} days",
            ]
        )
        self.notifier.send_alert(summary, body)
        self.notifier.log_event(summary, Severity.WARNING)
