"""Tests for the TTL-aware record store."""

from __future__ import annotations

import ipaddress

import pytest

from mdns_client.records import RecordType, ResourceRecord, SrvData, TxtData
from mdns_client.store import RecordKey, RecordStore


def _srv(port: int = 631, ttl: int = 120, name: str = "Printer._http._tcp.local") -> ResourceRecord:
    return ResourceRecord(name, RecordType.SRV, 1, ttl, SrvData(0, 0, port, "printer.local"))


def _a(address: str, ttl: int = 120, cache_flush: bool = False) -> ResourceRecord:
    return ResourceRecord(
        "printer.local", RecordType.A, 1, ttl, ipaddress.IPv4Address(address), cache_flush
    )


def _ptr(target: str, ttl: int = 4500) -> ResourceRecord:
    return ResourceRecord("_http._tcp.local", RecordType.PTR, 1, ttl, target)


def test_upsert_inserts_and_refreshes_without_duplicates(clock) -> None:
    store = RecordStore(clock)
    store.upsert(_srv(), now=0.0)
    store.upsert(_srv(), now=10.0)

    assert len(store) == 1
    [entry] = store.entries("Printer._http._tcp.local", RecordType.SRV, now=10.0)
    assert entry.received_at == 10.0
    assert entry.expires_at == 130.0


def test_single_valued_types_are_last_writer_wins() -> None:
    store = RecordStore()
    store.upsert(_srv(port=631), now=0.0)
    store.upsert(_srv(port=8631), now=1.0)

    [record] = store.lookup("Printer._http._tcp.local", RecordType.SRV, now=1.0)
    assert record.data.port == 8631


def test_multi_valued_types_keep_each_value() -> None:
    store = RecordStore()
    store.upsert(_ptr("A._http._tcp.local"), now=0.0)
    store.upsert(_ptr("B._http._tcp.local"), now=0.0)
    store.upsert(_a("192.168.1.50"), now=0.0)
    store.upsert(_a("192.168.1.51"), now=0.0)

    assert len(store.lookup("_http._tcp.local", RecordType.PTR, now=0.0)) == 2
    assert len(store.lookup("printer.local", RecordType.A, now=0.0)) == 2


def test_lookup_is_case_insensitive() -> None:
    store = RecordStore()
    store.upsert(_srv(), now=0.0)
    assert store.lookup("PRINTER._HTTP._TCP.LOCAL.", RecordType.SRV, now=0.0)


def test_goodbye_removes_entry() -> None:
    store = RecordStore()
    store.upsert(_srv(), now=0.0)
    assert store.upsert(_srv(ttl=0), now=5.0)
    assert store.lookup("Printer._http._tcp.local", RecordType.SRV, now=6.0) == []
    assert len(store) == 0


@pytest.mark.parametrize("goodbye_first", [True, False])
def test_goodbye_wins_over_earlier_refresh_in_any_order(goodbye_first: bool) -> None:
    store = RecordStore()
    updates = [(_srv(ttl=0), 5.0), (_srv(), 3.0)]
    if not goodbye_first:
        updates.reverse()
    for record, now in updates:
        store.upsert(record, now)

    assert store.lookup("Printer._http._tcp.local", RecordType.SRV, now=5.5) == []


def test_refresh_after_goodbye_reinstates_entry() -> None:
    store = RecordStore()
    store.upsert(_srv(ttl=0), now=5.0)
    store.upsert(_srv(), now=7.0)
    assert store.lookup("Printer._http._tcp.local", RecordType.SRV, now=7.0)


def test_stale_update_is_ignored() -> None:
    store = RecordStore()
    store.upsert(_srv(port=1), now=10.0)
    assert not store.upsert(_srv(port=2), now=4.0)
    [record] = store.lookup("Printer._http._tcp.local", RecordType.SRV, now=10.0)
    assert record.data.port == 1


def test_purge_expired_removes_exactly_expired_entries(clock) -> None:
    store = RecordStore(clock)
    store.upsert(_srv(ttl=10), now=0.0)
    store.upsert(_a("192.168.1.50", ttl=20), now=0.0)
    store.upsert(_ptr("Printer._http._tcp.local", ttl=30), now=5.0)
    before = store.entries("_http._tcp.local", RecordType.PTR, now=10.0)

    # expires_at == now counts as expired.
    assert store.purge_expired(20.0) == 2
    clock.now = 20.0
    assert len(store) == 1
    assert store.entries("_http._tcp.local", RecordType.PTR, now=20.0) == before


def test_lookups_never_return_expired_entries_before_purge(clock) -> None:
    store = RecordStore(clock)
    store.upsert(_srv(ttl=10), now=0.0)
    assert store.lookup("Printer._http._tcp.local", RecordType.SRV, now=10.0) == []
    assert store.lookup_prefix("Printer._http._tcp.local", now=10.0) == []


def test_len_counts_only_live_entries(clock) -> None:
    store = RecordStore(clock)
    store.upsert(_srv(ttl=10), now=0.0)
    store.upsert(_a("192.168.1.50", ttl=100), now=0.0)
    assert len(store) == 2

    clock.now = 50.0
    assert len(store) == 1
    assert store.purge_expired(50.0) == 1
    assert len(store) == 1


def test_lookup_defaults_to_store_clock() -> None:
    now = {"value": 0.0}
    store = RecordStore(clock=lambda: now["value"])
    store.upsert(_srv(ttl=10), now=0.0)
    assert store.lookup("Printer._http._tcp.local", RecordType.SRV)
    now["value"] = 11.0
    assert store.lookup("Printer._http._tcp.local", RecordType.SRV) == []


def test_lookup_prefix_returns_all_types_for_owner() -> None:
    store = RecordStore()
    store.upsert(_srv(), now=0.0)
    store.upsert(
        ResourceRecord("Printer._http._tcp.local", RecordType.TXT, 1, 120, TxtData((b"a=1",))),
        now=0.0,
    )
    store.upsert(_a("192.168.1.50"), now=0.0)

    types = {r.record_type for r in store.lookup_prefix("Printer._http._tcp.local", now=1.0)}
    assert types == {RecordType.SRV, RecordType.TXT}


def test_cache_flush_evicts_older_values() -> None:
    store = RecordStore()
    store.upsert(_a("192.168.1.50"), now=0.0)
    store.upsert(_a("192.168.1.51"), now=0.5)
    store.upsert(_a("192.168.1.52", cache_flush=True), now=1.2)

    addresses = {str(r.data) for r in store.lookup("printer.local", RecordType.A, now=1.2)}
    # Only records received more than a second earlier are flushed.
    assert addresses == {"192.168.1.51", "192.168.1.52"}


def test_record_key_for_single_and_multi_valued_types() -> None:
    assert RecordKey.for_record(_srv()) == ("printer._http._tcp.local", RecordType.SRV, None)
    key = RecordKey.for_record(_a("192.168.1.50"))
    assert key.discriminator == ipaddress.IPv4Address("192.168.1.50")


def test_clear_discards_everything() -> None:
    store = RecordStore()
    store.upsert(_srv(), now=0.0)
    store.clear()
    assert len(store) == 0
