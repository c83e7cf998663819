"""Data structures representing decoded mDNS messages and records."""
from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass
from typing import Union

from dnslib import QTYPE

# Top bit of the class field: cache-flush in records, unicast-response in questions.
CLASS_TOP_BIT = 0x8000
CLASS_MASK = 0x7FFF
FLAG_QR = 0x8000


class RecordType(enum.IntEnum):
    """Record types the client understands; anything else is ``OTHER``."""

    OTHER = 0
    A = QTYPE.A
    PTR = QTYPE.PTR
    TXT = QTYPE.TXT
    AAAA = QTYPE.AAAA
    SRV = QTYPE.SRV

    @classmethod
    def from_code(cls, code: int) -> "RecordType":
        """Map a numeric DNS type to a member, falling back to ``OTHER``."""
        try:
            member = cls(code)
        except ValueError:
            return cls.OTHER
        return member


@dataclass(frozen=True, slots=True)
class SrvData:
    """SRV payload.

    Attributes:
        priority (int): Target priority.
        weight (int): Relative weight among equal priorities.
        port (int): Service port.
        target (str): Host name providing the service.
    """

    priority: int
    weight: int
    port: int
    target: str


@dataclass(frozen=True, slots=True)
class TxtData:
    """TXT payload as the raw character-strings it carries."""

    strings: tuple[bytes, ...]


@dataclass(frozen=True, slots=True)
class OpaqueData:
    """Payload of an unrecognised record type, kept uninterpreted."""

    type_code: int
    raw: bytes


RecordData = Union[
    ipaddress.IPv4Address, ipaddress.IPv6Address, str, SrvData, TxtData, OpaqueData
]


@dataclass(frozen=True, slots=True)
class ResourceRecord:
    """Single decoded resource record.

    Attributes:
        name (str): Owner name without trailing dot.
        record_type (RecordType): Record type.
        rclass (int): DNS class with the cache-flush bit removed.
        ttl (int): Time to live, in seconds. Zero announces a goodbye.
        data (RecordData): Type-specific payload.
        cache_flush (bool): Whether the sender set the mDNS cache-flush bit.
    """

    name: str
    record_type: RecordType
    rclass: int
    ttl: int
    data: RecordData
    cache_flush: bool = False

    @property
    def is_goodbye(self) -> bool:
        return self.ttl == 0


@dataclass(frozen=True, slots=True)
class Question:
    """Question section entry."""

    name: str
    qtype: int
    qclass: int
    unicast_response: bool = False


@dataclass(frozen=True, slots=True)
class DecodedMessage:
    """Fully decoded DNS message.

    Attributes:
        id (int): Transaction id.
        flags (int): Raw 16-bit flags word.
        questions: Question section.
        answers: Answer section.
        authorities: Authority section.
        additionals: Additional section.
    """

    id: int
    flags: int
    questions: tuple[Question, ...] = ()
    answers: tuple[ResourceRecord, ...] = ()
    authorities: tuple[ResourceRecord, ...] = ()
    additionals: tuple[ResourceRecord, ...] = ()

    @property
    def is_response(self) -> bool:
        return bool(self.flags & FLAG_QR)
