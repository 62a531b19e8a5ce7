"""
Configuration management for TLS Expiry Alert.
"""

import logging
import os
import re
import ssl
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import dns.exception
import dns.resolver
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tls_expiry_alert.exceptions import ConfigError

TLS_VERSIONS = {
    "TLSv1_1": ssl.TLSVersion.TLSv1_1,
    "TLSv1_2": ssl.TLSVersion.TLSv1_2,
    "TLSv1_3": ssl.TLSVersion.TLSv1_3,
}

_MAIL_ADDRESS = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RunConfig(BaseModel):
    """Resolved, immutable configuration for a single run."""

    model_config = ConfigDict(frozen=True)

    # Probe targets
    hosts: List[str]
    ports: List[int] = Field(default_factory=lambda: [443])
    threshold_days: int = Field(default=20, ge=0)

    # TLS client settings
    connect_timeout: float = Field(default=10.0, gt=0, le=300)
    min_tls_version: str = Field(default="TLSv1_1")
    max_tls_version: str = Field(default="TLSv1_2")
    ignore_validation: bool = Field(default=True)

    # Alerting
    sender: Optional[str] = None
    recipient: Optional[str] = None
    smtp_servers: List[str] = Field(default_factory=list)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    event_source: str = Field(default="TLSExpiryAlert")
    event_id: int = Field(default=1000, ge=0, le=65535)

    # Transcript and logging
    script_name: str = Field(default="tls-expiry-alert")
    log_dir: Optional[str] = None
    log_retention: int = Field(default=90, ge=1, le=365)
    log_level: str = Field(default="INFO")
    transcript_format: str = Field(default="text")

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, v: List[str]) -> List[str]:
        """Host names must be non-empty and free of whitespace."""
        hosts = []
        for host in v:
            host = host.strip()
            if not host or re.search(r"\s", host):
                raise ValueError(f"Invalid host name: '{host}'")
            hosts.append(host)
        if not hosts:
            raise ValueError("At least one host is required")
        return hosts

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: List[int]) -> List[int]:
        """Validate every port is within 0-65535."""
        for port in v:
            if not 0 <= port <= 65535:
                raise ValueError(f"Port out of range 0-65535: {port}")
        if not v:
            raise ValueError("At least one port is required")
        return v

    @field_validator("sender", "recipient")
    @classmethod
    def validate_mail_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not _MAIL_ADDRESS.match(v):
            raise ValueError(f"Invalid mail address: '{v}'")
        return v

    @field_validator("smtp_servers")
    @classmethod
    def validate_smtp_servers(cls, v: List[str]) -> List[str]:
        return [server.strip() for server in v if server.strip()]

    @field_validator("min_tls_version", "max_tls_version")
    @classmethod
    def validate_tls_version(cls, v: str) -> str:
        """Validate TLS version name."""
        if v not in TLS_VERSIONS:
            raise ValueError(f"TLS version must be one of: {sorted(TLS_VERSIONS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("transcript_format")
    @classmethod
    def validate_transcript_format(cls, v: str) -> str:
        valid_formats = {"text", "json"}
        if v.lower() not in valid_formats:
            raise ValueError(f"transcript_format must be one of {valid_formats}, got '{v}'")
        return v.lower()

    @model_validator(mode="after")
    def validate_tls_range(self) -> "RunConfig":
        if TLS_VERSIONS[self.min_tls_version] > TLS_VERSIONS[self.max_tls_version]:
            raise ValueError("min_tls_version must not be newer than max_tls_version")
        return self

    @model_validator(mode="after")
    def validate_alert_addresses(self) -> "RunConfig":
        if self.recipient and not self.sender:
            raise ValueError("sender is required when a recipient is configured")
        return self

    @property
    def tls_version_bounds(self) -> Tuple[ssl.TLSVersion, ssl.TLSVersion]:
        """Get the (minimum, maximum) TLS versions for the probe context."""
        return TLS_VERSIONS[self.min_tls_version], TLS_VERSIONS[self.max_tls_version]

    @property
    def alerting_enabled(self) -> bool:
        return bool(self.sender and self.recipient and self.smtp_servers)


def resolve_smtp_servers(recipient: str) -> List[str]:
    """
    Resolve the mail exchangers for a recipient's domain.

    Args:
        recipient: Mail address whose domain is looked up

    Returns:
        Exchange host names ordered by MX preference

    Raises:
        ConfigError: If the lookup fails or yields no records
    """
    domain = recipient.rsplit("@", 1)[-1]
    try:
        answers = dns.resolver.resolve(domain, "MX")
    except dns.exception.DNSException as e:
        raise ConfigError(f"MX lookup for {domain} failed: {e}") from e

    records = sorted(answers, key=lambda r: r.preference)
    servers = [str(r.exchange).rstrip(".") for r in records]
    if not servers:
        raise ConfigError(f"No MX records found for {domain}")

    logging.getLogger("tls_expiry_alert.config").debug(
        f"Resolved SMTP servers for {domain}: {', '.join(servers)}"
    )
    return servers


def load_config(
    config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None
) -> RunConfig:
    """
    Load configuration from file, environment variables and explicit overrides.

    Later sources win: file < environment < overrides. When a recipient is
    configured without SMTP servers, the servers are resolved via MX lookup.

    Args:
        config_path: Path to configuration file
        overrides: Values from the command line; None entries are ignored

    Returns:
        RunConfig object
    """
    config_data: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                try:
                    config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
            if not isinstance(config_data, dict):
                raise ConfigError("Configuration file must contain a mapping")
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config_data.update(_get_env_overrides())

    if overrides:
        config_data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = RunConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e

    if config.recipient and not config.smtp_servers:
        config = config.model_copy(
            update={"smtp_servers": resolve_smtp_servers(config.recipient)}
        )

    return config


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, Tuple[str, Callable[[str], Any]]] = {
        "TLS_EXPIRY_HOSTS": ("hosts", _split),
        "TLS_EXPIRY_PORTS": ("ports", lambda x: [int(p) for p in _split(x)]),
        "TLS_EXPIRY_THRESHOLD_DAYS": ("threshold_days", int),
        "TLS_EXPIRY_TIMEOUT": ("connect_timeout", float),
        "TLS_EXPIRY_MIN_TLS": ("min_tls_version", str),
        "TLS_EXPIRY_MAX_TLS": ("max_tls_version", str),
        "TLS_EXPIRY_IGNORE_VALIDATION": ("ignore_validation", _to_bool),
        "TLS_EXPIRY_FROM": ("sender", str),
        "TLS_EXPIRY_TO": ("recipient", str),
        "TLS_EXPIRY_SMTP_SERVERS": ("smtp_servers", _split),
        "TLS_EXPIRY_SMTP_PORT": ("smtp_port", int),
        "TLS_EXPIRY_LOG_DIR": ("log_dir", str),
        "TLS_EXPIRY_LOG_RETENTION": ("log_retention", int),
        "TLS_EXPIRY_LOG_LEVEL": ("log_level", str),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    return overrides


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example_config = {
        "hosts": ["example.com", "mail.example.com"],
        "ports": [443, 8443],
        "threshold_days": 20,
        "connect_timeout": 10.0,
        "min_tls_version": "TLSv1_1",
        "max_tls_version": "TLSv1_2",
        "ignore_validation": True,
        "sender": "certs@example.com",
        "recipient": "ops@example.com",
        "smtp_servers": [],  # empty: resolved from the recipient's MX records
        "smtp_port": 587,
        "log_retention": 90,
        "log_level": "INFO",
        "transcript_format": "text",
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
