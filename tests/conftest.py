"""Shared fixtures: controllable clock, loopback transport, packet builders."""

from __future__ import annotations

import os
import socket
import sys

import pytest
from dnslib import AAAA, A, DNSHeader, DNSLabel, DNSRecord, PTR, QTYPE, RR, SRV, TXT

# Ensure 'src' is on sys.path so 'mdns_client' is importable without installing.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from mdns_client.transport import MulticastTransport  # noqa: E402

PRINTER = "Printer._http._tcp.local"
HTTP_TYPE = "_http._tcp.local"


class FakeClock:
    """Monotonic clock whose reading tests set explicitly."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class LoopbackTransport(MulticastTransport):
    """Transport bound to 127.0.0.1 that sends queries to a peer socket."""

    def __init__(self, destination: tuple[str, int]) -> None:
        super().__init__(group="127.0.0.1", port=0, interface="127.0.0.1")
        self._destination = destination

    @property
    def destination(self) -> tuple[str, int]:
        return self._destination

    def open(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        sock.setblocking(False)
        self.sock = sock
        return sock

    @property
    def address(self) -> tuple[str, int]:
        assert self.sock is not None
        return self.sock.getsockname()


def label(name: str) -> DNSLabel:
    return DNSLabel([part.encode("utf-8") for part in name.split(".")])


def ptr(owner: str, target: str, ttl: int = 120) -> RR:
    return RR(label(owner), QTYPE.PTR, ttl=ttl, rdata=PTR(label(target)))


def srv(owner: str, host: str, port: int, ttl: int = 120, rclass: int = 1) -> RR:
    return RR(label(owner), QTYPE.SRV, rclass=rclass, ttl=ttl, rdata=SRV(port=port, target=label(host)))


def txt(owner: str, *strings: str, ttl: int = 120) -> RR:
    return RR(label(owner), QTYPE.TXT, ttl=ttl, rdata=TXT(list(strings)))


def a(owner: str, address: str, ttl: int = 120, rclass: int = 1) -> RR:
    return RR(label(owner), QTYPE.A, rclass=rclass, ttl=ttl, rdata=A(address))


def aaaa(owner: str, address: str, ttl: int = 120) -> RR:
    return RR(label(owner), QTYPE.AAAA, ttl=ttl, rdata=AAAA(address))


def response(*answers: RR, additionals: tuple[RR, ...] = ()) -> bytes:
    message = DNSRecord(DNSHeader(id=0, qr=1, aa=1))
    for rr in answers:
        message.add_answer(rr)
    for rr in additionals:
        message.add_ar(rr)
    return message.pack()


def printer_response(ttl: int = 120) -> bytes:
    """PTR -> SRV -> A -> TXT announcement of the test printer."""
    return response(
        ptr(HTTP_TYPE, PRINTER, ttl),
        additionals=(
            srv(PRINTER, "printer.local", 631, ttl),
            a("printer.local", "192.168.1.50", ttl),
            txt(PRINTER, "path=/print", ttl=ttl),
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def peer():
    """UDP socket standing in for the multicast group."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def loopback(peer) -> LoopbackTransport:
    return LoopbackTransport(peer.getsockname())
