"""
TLS Expiry Alert

Checks TLS certificate expiry across host:port endpoints and raises email
and event log alerts when a certificate nears expiry.
"""

__version__ = "1.0.0"
__author__ = "TLS Expiry Alert Team"
__description__ = "TLS certificate expiry probe with email and event log alerts"

from tls_expiry_alert.config import RunConfig
from tls_expiry_alert.probe import ProbeEngine
from tls_expiry_alert.runner import ExpiryAlertRunner

__all__ = [
    "RunConfig",
    "ProbeEngine",
    "ExpiryAlertRunner",
]
