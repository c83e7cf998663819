"""TTL-aware in-memory table of discovered resource records."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Hashable, NamedTuple

from .names import name_key
from .records import RecordType, ResourceRecord

logger = logging.getLogger(__name__)

# Records older than this are replaced by a cache-flush announcement (RFC 6762 10.2).
CACHE_FLUSH_GRACE = 1.0
# How long a goodbye shadows refreshes stamped before it.
GOODBYE_HOLD = 1.0

_MULTI_VALUED: frozenset[RecordType] = frozenset({RecordType.PTR, RecordType.A, RecordType.AAAA})


class RecordKey(NamedTuple):
    """Uniqueness key of a cache entry.

    ``discriminator`` is ``None`` for single-valued types (SRV, TXT) so they
    are keyed by owner name and type alone; multi-valued types (PTR, A, AAAA)
    carry their payload so that every value is its own entry.
    """

    name: str
    record_type: RecordType
    discriminator: Hashable = None

    @classmethod
    def for_record(cls, record: ResourceRecord) -> "RecordKey":
        if record.record_type in _MULTI_VALUED:
            data = record.data
            discriminator = name_key(data) if isinstance(data, str) else data
        elif record.record_type is RecordType.OTHER:
            discriminator = getattr(record.data, "type_code", None)
        else:
            discriminator = None
        return cls(name_key(record.name), record.record_type, discriminator)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Cached record with its receipt time.

    Attributes:
        record (ResourceRecord): The record as last received.
        received_at (float): Clock reading when it was received.
    """

    record: ResourceRecord
    received_at: float
    expires_at: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "expires_at", self.received_at + self.record.ttl)

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class RecordStore:
    """Resource records keyed by ``RecordKey``, never surfacing expired ones.

    The store does no locking of its own; the discovery engine serializes
    access to it.

    Args:
        clock: Time source used when a lookup is made without ``now``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[RecordKey, CacheEntry] = {}
        self._goodbyes: dict[RecordKey, float] = {}

    def __len__(self) -> int:
        """Number of entries still live at the store clock."""
        now = self._clock()
        return sum(1 for entry in self._entries.values() if not entry.is_expired(now))

    def upsert(self, record: ResourceRecord, now: float) -> bool:
        """Insert or refresh the entry for ``record``.

        A zero TTL removes the entry instead. Updates stamped earlier than the
        stored entry, or earlier than a goodbye for the same key, are ignored.

        Args:
            record: Decoded record.
            now: Receipt time of the record.

        Returns:
            bool: True if the store changed.
        """
        key = RecordKey.for_record(record)
        current = self._entries.get(key)
        if current is not None and current.received_at > now:
            return False
        goodbye_at = self._goodbyes.get(key)
        if goodbye_at is not None:
            if goodbye_at >= now:
                return False
            del self._goodbyes[key]

        if record.is_goodbye:
            self._goodbyes[key] = now
            logger.debug("goodbye for %s %s", record.record_type.name, record.name)
            return self._entries.pop(key, None) is not None

        if record.cache_flush and record.record_type in _MULTI_VALUED:
            self._flush(key, now)
        self._entries[key] = CacheEntry(record=record, received_at=now)
        return True

    def _flush(self, key: RecordKey, now: float) -> None:
        stale = [
            other
            for other, entry in self._entries.items()
            if other[:2] == key[:2]
            and other != key
            and entry.received_at < now - CACHE_FLUSH_GRACE
        ]
        for other in stale:
            del self._entries[other]

    def purge_expired(self, now: float) -> int:
        """Remove every entry with ``expires_at <= now``.

        Returns:
            int: Number of entries removed.
        """
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        for key in [k for k, at in self._goodbyes.items() if at + GOODBYE_HOLD <= now]:
            del self._goodbyes[key]
        if expired:
            logger.debug("purged %d expired records", len(expired))
        return len(expired)

    def entries(
        self, name: str, record_type: RecordType, now: float | None = None
    ) -> list[CacheEntry]:
        """Return live entries for ``(name, record_type)`` in insertion order."""
        if now is None:
            now = self._clock()
        wanted = name_key(name)
        return [
            entry
            for key, entry in self._entries.items()
            if key.name == wanted and key.record_type is record_type and not entry.is_expired(now)
        ]

    def lookup(
        self, name: str, record_type: RecordType, now: float | None = None
    ) -> list[ResourceRecord]:
        """Return live records for an owner name and type."""
        return [entry.record for entry in self.entries(name, record_type, now)]

    def lookup_prefix(self, name: str, now: float | None = None) -> list[ResourceRecord]:
        """Return live records of any type owned by ``name``."""
        if now is None:
            now = self._clock()
        wanted = name_key(name)
        return [
            entry.record
            for key, entry in self._entries.items()
            if key.name == wanted and not entry.is_expired(now)
        ]

    def clear(self) -> None:
        self._entries.clear()
        self._goodbyes.clear()
