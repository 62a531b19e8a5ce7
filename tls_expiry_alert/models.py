"""
Data model for TLS Expiry Alert.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Union


class FailureCategory(str, Enum):
    """Actionable categories for connect/handshake failures."""

    ACCESS_DENIED = "AccessDenied"
    HANDSHAKE_FAILURE = "HandshakeFailure"
    FIREWALL_BLOCKED = "FirewallBlocked"
    UNKNOWN = "Unknown"


class Severity(str, Enum):
    """Event log severity."""

    INFO = "Information"
    WARNING = "Warning"
    ERROR = "Error"


@dataclass(frozen=True)
class Endpoint:
    """A host:port pair to probe."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Healthy:
    host: str
    port: int
    issuer: str
    expiry_date: datetime


@dataclass(frozen=True)
class ExpiringSoon:
    host: str
    port: int
    issuer: str
    expiry_date: datetime
    days_remaining: int


@dataclass(frozen=True)
class ConnectionFailure:
    host: str
    port: int
    category: FailureCategory
    raw_message: str


ProbeResult = Union[Healthy, ExpiringSoon, ConnectionFailure]


@dataclass
class RunOutcome:
    """Aggregate result of one run."""

    error_occurred: bool = False
    warning_occurred: bool = False
    results: List[ProbeResult] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)

    @property
    def expiring(self) -> List[ExpiringSoon]:
        return [r for r in self.results if isinstance(r, ExpiringSoon)]

    @property
    def failures(self) -> List[ConnectionFailure]:
        return [r for r in self.results if isinstance(r, ConnectionFailure)]
