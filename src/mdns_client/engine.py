"""Discovery engine: background query/receive task and snapshot API."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from .codec import decode_message, encode_query
from .config import Config
from .errors import CodecError, InvalidNameError, TransportUnavailableError
from .names import DiscoveryTarget
from .protocol import MdnsClientProtocol
from .records import RecordType
from .resolver import ServiceInstance, resolve
from .schedule import QuerySchedule
from .store import CacheEntry, RecordStore
from .transport import MulticastTransport

logger = logging.getLogger(__name__)

# Refresh queries go out at these fractions of a record's TTL past the first (RFC 6762 5.2).
REFRESH_STEP = 0.05
REFRESH_ATTEMPTS = 4


@dataclass(slots=True)
class EngineStats:
    """Counters of the background task.

    Attributes:
        received (int): Datagrams received.
        dropped (int): Datagrams that failed to decode.
        records (int): Records that changed the store.
        queries_sent (int): Queries handed to the transport.
        transport_errors (int): Errors reported by the transport.
    """

    received: int = 0
    dropped: int = 0
    records: int = 0
    queries_sent: int = 0
    transport_errors: int = 0


class DiscoveryEngine:
    """Tracks the services matching one discovery target.

    A daemon thread runs an asyncio loop that owns the multicast socket: it
    sends queries on a backoff schedule and feeds every received datagram
    into the record store. ``get_services`` reads the store from any thread
    and never waits on the network.

    After ``close`` the store is frozen and ``get_services`` keeps answering
    from it, still omitting expired records.

    Args:
        target: Instance name (``Printer._http._tcp.local``) or service type
            (``_http._tcp.local``) to discover.
        config: Engine settings; defaults are used when omitted.
        transport: Socket owner; defaults to the mDNS group from ``config``.
        clock: Monotonic time source in seconds.

    Raises:
        InvalidNameError: ``target`` is not a valid domain name.
        TransportUnavailableError: The socket could not be opened, the group
            joined, or the background task failed to start.
    """

    def __init__(
        self,
        target: str,
        config: Config | None = None,
        *,
        transport: MulticastTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        try:
            self.target = DiscoveryTarget.parse(target)
        except ValueError as exc:
            raise InvalidNameError(f"invalid discovery target {target!r}: {exc}") from exc

        self.config = config or Config()
        self._clock = clock
        self._lock = threading.Lock()
        self._store = RecordStore(clock)
        self._stats = EngineStats()
        self._schedule = QuerySchedule(
            self.config.query_interval,
            self.config.max_query_interval,
            self.config.backoff_factor,
        )
        self._transport = transport or MulticastTransport.from_config(self.config)
        self._consecutive_errors = 0
        self._degraded = False
        self._closed = False
        self._ready = threading.Event()
        self._startup_error: BaseException | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop: asyncio.Event | None = None
        self._endpoint: asyncio.DatagramTransport | None = None

        try:
            sock = self._transport.open()
        except OSError as exc:
            raise TransportUnavailableError(
                f"cannot join {self._transport.group} port {self._transport.port}: {exc}"
            ) from exc

        self._thread = threading.Thread(
            target=self._run, args=(sock,), name=f"mdns-{self.target.name}", daemon=True
        )
        self._thread.start()

        if not self._ready.wait(self.config.startup_timeout):
            self.close()
            raise TransportUnavailableError("discovery task did not start in time")
        if self._startup_error is not None:
            error = self._startup_error
            self.close()
            raise TransportUnavailableError(f"discovery task failed to start: {error}") from error

        logger.info("discovering %s", self.target.name)

    def __enter__(self) -> "DiscoveryEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def degraded(self) -> bool:
        """True once the background task stopped because of transport failure."""
        return self._degraded

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    @property
    def stats(self) -> EngineStats:
        with self._lock:
            return dataclasses.replace(self._stats)

    def get_services(self) -> list[ServiceInstance]:
        """Return the services currently known for the target.

        Expired records are purged first. The order is deterministic: by
        case-folded instance name, then host and port.
        """
        with self._lock:
            now = self._clock()
            self._store.purge_expired(now)
            return resolve(self.target, self._store, now)

    def close(self) -> None:
        """Stop the background task, leave the group and release the socket.

        Idempotent.
        """
        if self._closed:
            return
        self._closed = True

        loop = self._loop
        if loop is not None and self._thread.is_alive():
            try:
                loop.call_soon_threadsafe(self._wake)
            except RuntimeError:
                logger.debug("event loop already closed")
            self._thread.join(self.config.shutdown_timeout)
            if self._thread.is_alive():
                logger.warning("discovery task for %s did not stop in time", self.target.name)
        self._transport.close()

    def ingest(self, data: bytes, addr: Any = None, now: float | None = None) -> int:
        """Decode one datagram and apply its records to the store.

        Only responses are applied; answers and additionals are upserted,
        authority records and unrecognised types are ignored. Datagrams that
        fail to decode are counted and dropped.

        Args:
            data: Raw datagram.
            addr: Sender address, for logging.
            now: Receipt time; defaults to the engine clock.

        Returns:
            int: Number of records that changed the store.
        """
        if now is None:
            now = self._clock()
        self._consecutive_errors = 0
        try:
            message = decode_message(data)
        except CodecError as exc:
            with self._lock:
                self._stats.received += 1
                self._stats.dropped += 1
            logger.debug("dropped datagram from %s: %s", addr, exc)
            return 0

        applied = 0
        with self._lock:
            self._stats.received += 1
            if not message.is_response:
                return 0
            for record in message.answers + message.additionals:
                if record.record_type is RecordType.OTHER:
                    continue
                if self._store.upsert(record, now):
                    applied += 1
            self._stats.records += applied
        return applied

    def report_transport_error(self, exc: Exception) -> None:
        with self._lock:
            self._stats.transport_errors += 1
        self._consecutive_errors += 1
        if self._consecutive_errors >= self.config.max_transport_errors:
            self._mark_degraded(f"{self._consecutive_errors} consecutive transport errors")

    def report_transport_lost(self, exc: Exception) -> None:
        self._mark_degraded(f"transport lost: {exc}")

    def _mark_degraded(self, reason: str) -> None:
        if not self._degraded:
            logger.warning("discovery of %s degraded: %s", self.target.name, reason)
        self._degraded = True
        self._wake()

    def _wake(self) -> None:
        if self._stop is not None:
            self._stop.set()

    def _run(self, sock: Any) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        try:
            loop.run_until_complete(self._serve(sock))
        except Exception:
            logger.exception("discovery task for %s crashed", self.target.name)
            self._degraded = True
        finally:
            self._ready.set()
            loop.close()

    async def _serve(self, sock: Any) -> None:
        loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        try:
            endpoint, _ = await loop.create_datagram_endpoint(
                lambda: MdnsClientProtocol(self), sock=sock
            )
        except OSError as exc:
            self._startup_error = exc
            return
        self._endpoint = endpoint

        try:
            self._send_query()
            self._ready.set()
            await self._query_loop()
        finally:
            self._transport.leave_group()
            endpoint.close()
            # Let the transport run connection_lost and release the socket.
            await asyncio.sleep(0)
            logger.info("stopped discovering %s", self.target.name)

    async def _query_loop(self) -> None:
        stop = self._stop
        if stop is None:
            return
        while not self._closed and not self._degraded:
            delay = self._next_delay()
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                self._send_query()

    def _questions(self) -> list[tuple[str, RecordType]]:
        questions = [(self.target.service_type, RecordType.PTR)]
        if self.target.is_instance:
            questions.append((self.target.name, RecordType.SRV))
            questions.append((self.target.name, RecordType.TXT))
        return questions

    def _send_query(self) -> None:
        if self._endpoint is None or self._endpoint.is_closing():
            return
        try:
            self._transport.send(encode_query(self._questions()))
        except OSError as exc:
            logger.warning("failed to send query for %s: %s", self.target.name, exc)
            self.report_transport_error(exc)
            return
        with self._lock:
            self._stats.queries_sent += 1
        logger.debug("queried %s", self.target.name)

    def _next_delay(self) -> float:
        delay = self._schedule.next_delay()
        with self._lock:
            now = self._clock()
            self._store.purge_expired(now)
            refresh = self._refresh_due(now)
        if refresh is not None:
            delay = min(delay, max(refresh, self.config.query_interval))
        return delay

    def _relevant_entries(self, now: float) -> list[CacheEntry]:
        entries = self._store.entries(self.target.service_type, RecordType.PTR, now)
        for service in resolve(self.target, self._store, now):
            entries.extend(self._store.entries(service.instance_name, RecordType.SRV, now))
        return entries

    def _refresh_due(self, now: float) -> float | None:
        """Seconds until the next refresh point of a relevant record, if any."""
        due: float | None = None
        for entry in self._relevant_entries(now):
            for step in range(REFRESH_ATTEMPTS):
                fraction = self.config.refresh_fraction + step * REFRESH_STEP
                if fraction >= 1:
                    break
                point = entry.received_at + entry.record.ttl * fraction
                if point > now:
                    if due is None or point - now < due:
                        due = point - now
                    break
        return due
