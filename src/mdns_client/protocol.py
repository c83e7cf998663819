"""Asyncio UDP protocol feeding received mDNS datagrams to the engine."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .engine import DiscoveryEngine

logger = logging.getLogger(__name__)


class MdnsClientProtocol(asyncio.DatagramProtocol):
    """Receive side of the multicast transport.

    Attributes:
        transport: Active UDP transport or None until connected.
        engine: Engine that decodes and stores what arrives.
    """

    def __init__(self, engine: DiscoveryEngine) -> None:
        """Initialize the protocol.

        Args:
            engine: Discovery engine owning the record store.
        """
        self.transport: asyncio.DatagramTransport | None = None
        self.engine = engine

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Called by asyncio when the UDP socket is ready.

        Args:
            transport: Created datagram transport.
        """
        self.transport = transport  # type: ignore[assignment]
        sock = self.transport.get_extra_info("socket")
        logger.info("mDNS listening on %s", sock.getsockname() if sock else "?")

    def datagram_received(self, data: bytes, addr: Any) -> None:
        """Hand a single datagram to the engine.

        Args:
            data: Raw DNS message bytes.
            addr: Sender address tuple as provided by asyncio.
        """
        logger.debug("received %d bytes from %s", len(data), addr)
        self.engine.ingest(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("transport error: %s", exc)
        self.engine.report_transport_error(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("transport lost: %s", exc)
            self.engine.report_transport_lost(exc)
