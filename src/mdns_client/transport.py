"""Multicast UDP socket setup for the mDNS group."""
from __future__ import annotations

import ipaddress
import logging
import socket
import struct

import ifaddr

from .config import Config

logger = logging.getLogger(__name__)

MDNS_PORT = 5353
MDNS_IPV4_GROUP = "224.0.0.251"
MDNS_IPV6_GROUP = "ff02::fb"

ANY_IPV4 = "0.0.0.0"


def interface_addresses() -> list[str]:
    """Return the IPv4 address of every non-loopback interface, deduplicated."""
    addresses: list[str] = []
    for adapter in ifaddr.get_adapters():
        for ip in adapter.ips:
            if not ip.is_IPv4 or ipaddress.IPv4Address(ip.ip).is_loopback:
                continue
            if ip.ip not in addresses:
                addresses.append(ip.ip)
    return addresses


class MulticastTransport:
    """Owns the socket bound to the mDNS port and its group memberships.

    The opened socket is handed to asyncio for receiving. Queries go out
    through ``send``, once per joined interface. For IPv4 the unspecified
    interface address means every non-loopback interface; when none can be
    found the kernel's default interface is used.

    Args:
        group: Multicast group address.
        port: UDP port to bind and send to.
        interface: Local interface address used for the membership.
        multicast_ttl: Hop limit for outgoing datagrams.
        multicast_loop: Whether local sockets see our own datagrams.
    """

    def __init__(
        self,
        group: str = MDNS_IPV4_GROUP,
        port: int = MDNS_PORT,
        interface: str = ANY_IPV4,
        multicast_ttl: int = 255,
        multicast_loop: bool = True,
    ) -> None:
        self.group = group
        self.port = port
        self.interface = interface
        self.multicast_ttl = multicast_ttl
        self.multicast_loop = multicast_loop
        self.family = socket.AF_INET6 if ":" in group else socket.AF_INET
        self.sock: socket.socket | None = None
        self.joined: list[str] = []

    @classmethod
    def from_config(cls, config: Config) -> "MulticastTransport":
        if config.ip_version == "v6":
            group = MDNS_IPV6_GROUP
        else:
            group = MDNS_IPV4_GROUP
        return cls(
            group=group,
            interface=config.interface,
            multicast_ttl=config.multicast_ttl,
            multicast_loop=config.multicast_loop,
        )

    @property
    def destination(self) -> tuple[str, int]:
        """Address queries are sent to."""
        return (self.group, self.port)

    def open(self) -> socket.socket:
        """Create, bind and join; return the non-blocking socket.

        Raises:
            OSError: If the socket cannot be bound or no interface could join
                the group.
        """
        sock = socket.socket(self.family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    logger.debug("SO_REUSEPORT not supported")
            sock.bind(("::" if self.family == socket.AF_INET6 else "", self.port))
            self._configure(sock)
            self._join(sock)
            sock.setblocking(False)
        except OSError:
            sock.close()
            self.joined = []
            raise
        self.sock = sock
        logger.info(
            "joined %s on port %d via %s", self.group, self.port, ", ".join(self.joined)
        )
        return sock

    def _configure(self, sock: socket.socket) -> None:
        if self.family == socket.AF_INET6:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, self.multicast_ttl)
            sock.setsockopt(
                socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_LOOP, int(self.multicast_loop)
            )
        else:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.multicast_ttl)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, int(self.multicast_loop))

    def _interfaces(self) -> list[str]:
        if self.family == socket.AF_INET and self.interface == ANY_IPV4:
            return interface_addresses() or [ANY_IPV4]
        return [self.interface]

    def _join(self, sock: socket.socket) -> None:
        error: OSError | None = None
        for interface in self._interfaces():
            try:
                if self.family == socket.AF_INET6:
                    sock.setsockopt(
                        socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, self._mreq(interface)
                    )
                else:
                    sock.setsockopt(
                        socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._mreq(interface)
                    )
            except OSError as exc:
                logger.warning("cannot join %s on %s: %s", self.group, interface, exc)
                error = exc
                continue
            self.joined.append(interface)
        if not self.joined:
            raise error or OSError(f"no interface available for {self.group}")

    def _mreq(self, interface: str | None = None) -> bytes:
        if self.family == socket.AF_INET6:
            # Interface index 0 lets the kernel pick the default interface.
            return socket.inet_pton(socket.AF_INET6, self.group) + struct.pack("@I", 0)
        return socket.inet_aton(self.group) + socket.inet_aton(interface or self.interface)

    def send(self, packet: bytes) -> int:
        """Send ``packet`` to the group out of every joined interface.

        Returns:
            int: Number of interfaces the packet went out on.

        Raises:
            OSError: If the transport is not open or every send failed.
        """
        if self.sock is None:
            raise OSError("transport is not open")
        if self.family == socket.AF_INET6 or not self.joined:
            self.sock.sendto(packet, self.destination)
            return 1

        sent = 0
        error: OSError | None = None
        for interface in self.joined:
            try:
                self.sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(interface)
                )
                self.sock.sendto(packet, self.destination)
            except OSError as exc:
                logger.debug("send via %s failed: %s", interface, exc)
                error = exc
                continue
            sent += 1
        if not sent and error is not None:
            raise error
        return sent

    def leave_group(self) -> None:
        """Drop every group membership; failures are logged, not raised."""
        if self.sock is None:
            return
        joined, self.joined = self.joined, []
        for interface in joined:
            try:
                if self.family == socket.AF_INET6:
                    self.sock.setsockopt(
                        socket.IPPROTO_IPV6, socket.IPV6_LEAVE_GROUP, self._mreq(interface)
                    )
                else:
                    self.sock.setsockopt(
                        socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._mreq(interface)
                    )
            except OSError as exc:
                logger.warning("failed to leave %s on %s: %s", self.group, interface, exc)

    def close(self) -> None:
        """Leave the group and close the socket. Safe to call repeatedly."""
        if self.sock is None:
            return
        self.leave_group()
        self.sock.close()
        self.sock = None
