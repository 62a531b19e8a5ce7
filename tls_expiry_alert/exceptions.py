"""
Exceptions raised by TLS Expiry Alert.
"""


class TLSExpiryAlertError(Exception):
    """Base class for all application errors."""


class ConfigError(TLSExpiryAlertError):
    """Configuration could not be loaded, validated or resolved."""


class TranscriptError(TLSExpiryAlertError):
    """The run transcript could not be created."""
