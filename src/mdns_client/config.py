"""Configuration loading for the discovery engine."""
from __future__ import annotations

import dataclasses
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)

IP_VERSIONS: tuple[str, ...] = ("v4", "v6")


@dataclass(slots=True)
class Config:
    """Engine settings.

    Attributes:
        interface: Local address the group is joined on. The unspecified
            address ("0.0.0.0" or "::", the default for the chosen
            ``ip_version``) joins on every non-loopback interface.
        ip_version: "v4" (224.0.0.251) or "v6" (ff02::fb).
        multicast_ttl: Hop limit for outgoing queries.
        multicast_loop: Deliver our own multicast traffic back to local sockets.
        query_interval: First re-query delay, and the minimum delay, in seconds.
        max_query_interval: Cap of the re-query backoff, in seconds.
        backoff_factor: Growth factor of the re-query delay.
        refresh_fraction: Fraction of a record's TTL after which it is re-queried.
        max_transport_errors: Consecutive transport errors before the engine
            marks itself degraded and stops its background task.
        startup_timeout: Seconds to wait for the background task to come up.
        shutdown_timeout: Seconds to wait for the background task on close.
    """

    interface: str = ""
    ip_version: str = "v4"
    multicast_ttl: int = 255
    multicast_loop: bool = True
    query_interval: float = 1.0
    max_query_interval: float = 60.0
    backoff_factor: float = 2.0
    refresh_fraction: float = 0.8
    max_transport_errors: int = 10
    startup_timeout: float = 5.0
    shutdown_timeout: float = 2.0

    def __post_init__(self) -> None:
        if not self.interface:
            self.interface = "::" if self.ip_version == "v6" else "0.0.0.0"
        self.validate()

    def validate(self) -> None:
        """Check field ranges.

        Raises:
            ValueError: On the first invalid field.
        """
        if self.ip_version not in IP_VERSIONS:
            raise ValueError(f"ip_version must be one of {IP_VERSIONS}, got {self.ip_version!r}")
        try:
            address = ipaddress.ip_address(self.interface)
        except ValueError as exc:
            raise ValueError(f"invalid interface address: {exc}") from exc
        if (address.version == 4) != (self.ip_version == "v4"):
            raise ValueError(
                f"interface {self.interface} does not match ip_version {self.ip_version}"
            )
        if not 1 <= self.multicast_ttl <= 255:
            raise ValueError(f"multicast_ttl must be within 1..255, got {self.multicast_ttl}")
        if self.query_interval <= 0:
            raise ValueError("query_interval must be positive")
        if self.max_query_interval < self.query_interval:
            raise ValueError("max_query_interval must not be below query_interval")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")
        if not 0 < self.refresh_fraction < 1:
            raise ValueError("refresh_fraction must be between 0 and 1")
        if self.max_transport_errors < 1:
            raise ValueError("max_transport_errors must be at least 1")
        if self.startup_timeout <= 0 or self.shutdown_timeout <= 0:
            raise ValueError("timeouts must be positive")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Config":
        """Build a config from a parsed mapping, coercing field types.

        Raises:
            ValueError: On unknown keys, uncoercible values or invalid ranges.
        """
        fields = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - set(fields))
        if unknown:
            raise ValueError(f"unknown configuration keys: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, raw in data.items():
            default = fields[key].default
            try:
                if isinstance(default, bool):
                    if not isinstance(raw, bool):
                        raise TypeError(f"expected true/false, got {raw!r}")
                    values[key] = raw
                elif isinstance(default, (int, float)):
                    if isinstance(raw, bool):
                        raise TypeError(f"expected a number, got {raw!r}")
                    values[key] = type(default)(raw)
                else:
                    values[key] = str(raw).strip()
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid {key}: {exc}") from exc
        return cls(**values)

    @classmethod
    def from_file(cls, path: str) -> "Config":
        """Load configuration from a YAML file.

        Args:
            path: Path to YAML file. An empty file yields the defaults.

        Raises:
            ValueError: On invalid YAML structure or field values.
            FileNotFoundError: If the file is missing.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML parsing error: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError(f"configuration must be a mapping, got {type(data).__name__}")

        config = cls.from_mapping(data)
        logger.info("configuration loaded from %s", path)
        return config
