"""Multicast DNS service discovery client."""
from __future__ import annotations

from .config import Config
from .engine import DiscoveryEngine, EngineStats
from .errors import (
    CodecError,
    InitError,
    InvalidNameError,
    MalformedPacketError,
    MdnsError,
    TransportUnavailableError,
    TruncatedPacketError,
)
from .resolver import ServiceInstance

__all__ = [
    "CodecError",
    "Config",
    "DiscoveryEngine",
    "EngineStats",
    "InitError",
    "InvalidNameError",
    "MalformedPacketError",
    "MdnsError",
    "ServiceInstance",
    "TransportUnavailableError",
    "TruncatedPacketError",
]
