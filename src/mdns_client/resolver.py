"""Joins cached PTR/SRV/TXT/A/AAAA records into service instances."""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Iterable, Union

from .names import DiscoveryTarget, name_key
from .records import RecordType, SrvData, TxtData
from .store import RecordStore

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True, slots=True)
class ServiceInstance:
    """Resolved service instance.

    Attributes:
        instance_name (str): Full instance name, e.g. ``Printer._http._tcp.local``.
        host (str): Target host from the SRV record.
        addresses (frozenset): IPv4/IPv6 addresses known for ``host``.
        port (int): Port from the SRV record.
        txt (dict[str, str]): DNS-SD key/value metadata.

    Instances compare by value but are unhashable, since ``txt`` is a dict.
    """

    instance_name: str
    host: str
    port: int
    addresses: frozenset[IPAddress] = frozenset()
    txt: dict[str, str] = field(default_factory=dict)

    __hash__ = None  # type: ignore[assignment]


def parse_txt(strings: Iterable[bytes]) -> dict[str, str]:
    """Decode DNS-SD TXT strings into a mapping.

    Keys are split at the first ``=``; a bare key maps to ``""``. When a key
    repeats (compared case-insensitively) the first occurrence wins.
    """
    txt: dict[str, str] = {}
    seen: set[str] = set()
    for raw in strings:
        key, _, value = raw.partition(b"=")
        name = key.decode("utf-8", errors="replace")
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        txt[name] = value.decode("utf-8", errors="replace")
    return txt


def _candidate_instances(target: DiscoveryTarget, store: RecordStore, now: float) -> list[str]:
    names: dict[str, str] = {}
    for ptr in store.lookup(target.service_type, RecordType.PTR, now):
        names.setdefault(name_key(ptr.data), ptr.data)
    if target.is_instance:
        wanted = name_key(target.name)
        return [names.get(wanted, target.name)]
    return list(names.values())


def resolve(target: DiscoveryTarget, store: RecordStore, now: float) -> list[ServiceInstance]:
    """Materialize service instances for ``target`` from the store.

    Instances without a live SRV record are skipped; addresses and TXT data
    are optional. The result is sorted by case-folded instance name, then
    host and port.

    Args:
        target: What is being discovered.
        store: Record store to read; it is not modified.
        now: Clock reading used to exclude expired entries.

    Returns:
        list[ServiceInstance]: One entry per resolvable SRV of each instance.
    """
    services: list[ServiceInstance] = []
    for instance in _candidate_instances(target, store, now):
        srv_records = store.lookup(instance, RecordType.SRV, now)
        if not srv_records:
            continue

        txt: dict[str, str] = {}
        for record in store.lookup(instance, RecordType.TXT, now):
            if isinstance(record.data, TxtData):
                txt = parse_txt(record.data.strings)

        for record in srv_records:
            srv = record.data
            if not isinstance(srv, SrvData):
                continue
            addresses = frozenset(
                rr.data
                for rtype in (RecordType.A, RecordType.AAAA)
                for rr in store.lookup(srv.target, rtype, now)
            )
            services.append(
                ServiceInstance(
                    instance_name=instance,
                    host=srv.target,
                    port=srv.port,
                    addresses=addresses,
                    txt=txt,
                )
            )

    services.sort(key=lambda s: (s.instance_name.casefold(), s.host.casefold(), s.port))
    return services
