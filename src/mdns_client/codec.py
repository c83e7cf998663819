"""Encoding of mDNS queries and decoding of mDNS responses."""
from __future__ import annotations

import ipaddress
import logging
import random
from typing import Iterable

from dnslib import CLASS, DNSHeader, DNSLabel, DNSQuestion, DNSRecord, TXT
from dnslib.buffer import Buffer
from dnslib.buffer import BufferError as DNSBufferError
from dnslib.dns import DNSError

from .errors import MalformedPacketError, TruncatedPacketError
from .names import MAX_NAME_LENGTH, join_labels, split_labels
from .records import (
    CLASS_MASK,
    CLASS_TOP_BIT,
    DecodedMessage,
    OpaqueData,
    Question,
    RecordType,
    ResourceRecord,
    SrvData,
    TxtData,
)

logger = logging.getLogger(__name__)

HEADER_LENGTH = 12
MAX_TTL = 0x7FFFFFFF

_POINTER = 0xC0


def _to_label(name: str) -> DNSLabel:
    # Built from raw labels so instance names with spaces bypass IDNA encoding.
    return DNSLabel([part.encode("utf-8") for part in split_labels(name)])


def encode_query(
    names: Iterable[tuple[str, int]], unicast_response: bool = False
) -> bytes:
    """Build a standard mDNS query message.

    Args:
        names: Ordered ``(domain_name, qtype)`` pairs; ``qtype`` may be a
            ``RecordType`` or any numeric type such as ``QTYPE.ANY``.
        unicast_response: Set the QU bit on every question.

    Returns:
        bytes: Wire-format query with a fresh transaction id and RD clear.
    """
    qclass = CLASS.IN | (CLASS_TOP_BIT if unicast_response else 0)
    query = DNSRecord(DNSHeader(id=random.randint(0, 0xFFFF), bitmap=0))
    for name, qtype in names:
        query.add_question(DNSQuestion(_to_label(name), int(qtype), qclass))
    return query.pack()


def _unpack(buffer: Buffer, fmt: str) -> tuple:
    try:
        return buffer.unpack(fmt)
    except DNSBufferError as exc:
        raise TruncatedPacketError(str(exc)) from exc


def _get(buffer: Buffer, length: int) -> bytes:
    try:
        return buffer.get(length)
    except DNSBufferError as exc:
        raise TruncatedPacketError(str(exc)) from exc


def _read_name(buffer: Buffer) -> str:
    """Read a possibly compressed domain name at the buffer offset.

    Every pointer must refer strictly before the start of the label run that
    contains it, so decoding always terminates. Dots and backslashes inside a
    label come back escaped.
    """
    data = buffer.data
    offset = buffer.offset
    run_start = offset
    resume: int | None = None
    labels: list[str] = []
    size = 1

    while True:
        if offset >= len(data):
            raise TruncatedPacketError(f"name runs past end of packet at offset {offset}")
        length = data[offset]
        kind = length & _POINTER
        if kind == _POINTER:
            if offset + 1 >= len(data):
                raise TruncatedPacketError(f"compression pointer cut short at offset {offset}")
            pointer = ((length & 0x3F) << 8) | data[offset + 1]
            if pointer >= run_start:
                raise MalformedPacketError(
                    f"invalid compression pointer {pointer} at offset {offset}"
                )
            if resume is None:
                resume = offset + 2
            offset = run_start = pointer
            continue
        if kind:
            raise MalformedPacketError(f"reserved label type 0x{kind:02x} at offset {offset}")

        offset += 1
        if length == 0:
            break
        if offset + length > len(data):
            raise TruncatedPacketError(f"label runs past end of packet at offset {offset}")
        size += length + 1
        if size > MAX_NAME_LENGTH:
            raise MalformedPacketError(f"name exceeds {MAX_NAME_LENGTH} bytes")
        labels.append(bytes(data[offset : offset + length]).decode("utf-8", errors="replace"))
        offset += length

    buffer.offset = resume if resume is not None else offset
    return join_labels(labels)


def _read_question(buffer: Buffer) -> Question:
    name = _read_name(buffer)
    qtype, qclass = _unpack(buffer, "!HH")
    return Question(
        name=name,
        qtype=qtype,
        qclass=qclass & CLASS_MASK,
        unicast_response=bool(qclass & CLASS_TOP_BIT),
    )


def _read_name_in_rdata(buffer: Buffer, end: int) -> str:
    name = _read_name(buffer)
    if buffer.offset > end:
        raise MalformedPacketError("name overruns record data")
    return name


def _read_rdata(buffer: Buffer, record_type: RecordType, type_code: int, length: int):
    start = buffer.offset
    end = start + length
    if end > len(buffer.data):
        raise TruncatedPacketError(
            f"record data of {length} bytes runs past end of packet at offset {start}"
        )

    if record_type is RecordType.PTR:
        data = _read_name_in_rdata(buffer, end)
    elif record_type is RecordType.SRV:
        if length < 7:
            raise MalformedPacketError(f"SRV record data too short ({length} bytes)")
        priority, weight, port = _unpack(buffer, "!HHH")
        data = SrvData(priority, weight, port, _read_name_in_rdata(buffer, end))
    else:
        raw = _get(buffer, length)
        try:
            if record_type is RecordType.A:
                data = ipaddress.IPv4Address(raw)
            elif record_type is RecordType.AAAA:
                data = ipaddress.IPv6Address(raw)
            elif record_type is RecordType.TXT:
                data = TxtData(tuple(TXT.parse(Buffer(raw), length).data))
            else:
                data = OpaqueData(type_code, raw)
        except ipaddress.AddressValueError as exc:
            raise MalformedPacketError(f"invalid {record_type.name} record: {exc}") from exc
        except DNSError as exc:
            raise MalformedPacketError(f"invalid TXT record: {exc}") from exc

    buffer.offset = end
    return data


def _read_record(buffer: Buffer) -> ResourceRecord:
    name = _read_name(buffer)
    type_code, rclass, ttl, length = _unpack(buffer, "!HHIH")
    if ttl > MAX_TTL:
        raise MalformedPacketError(f"TTL {ttl} out of range for {name!r}")
    record_type = RecordType.from_code(type_code)
    data = _read_rdata(buffer, record_type, type_code, length)
    return ResourceRecord(
        name=name,
        record_type=record_type,
        rclass=rclass & CLASS_MASK,
        ttl=ttl,
        data=data,
        cache_flush=bool(rclass & CLASS_TOP_BIT),
    )


def decode_message(packet: bytes) -> DecodedMessage:
    """Decode a DNS message received from the multicast group.

    Unknown record types are kept as ``RecordType.OTHER`` with their payload
    stored as ``OpaqueData``. Bytes after the declared sections are ignored.

    Args:
        packet: Raw datagram.

    Returns:
        DecodedMessage: Header fields and all four sections.

    Raises:
        TruncatedPacketError: A declared count or length exceeds the packet.
        MalformedPacketError: Invalid compression pointer or out-of-range field.
    """
    if len(packet) < HEADER_LENGTH:
        raise TruncatedPacketError(
            f"packet of {len(packet)} bytes is shorter than the DNS header"
        )

    buffer = Buffer(packet)
    msg_id, flags, qdcount, ancount, nscount, arcount = _unpack(buffer, "!HHHHHH")

    questions = tuple(_read_question(buffer) for _ in range(qdcount))
    answers = tuple(_read_record(buffer) for _ in range(ancount))
    authorities = tuple(_read_record(buffer) for _ in range(nscount))
    additionals = tuple(_read_record(buffer) for _ in range(arcount))

    if buffer.remaining():
        logger.debug("ignoring %d trailing bytes", buffer.remaining())

    return DecodedMessage(
        id=msg_id,
        flags=flags,
        questions=questions,
        answers=answers,
        authorities=authorities,
        additionals=additionals,
    )
