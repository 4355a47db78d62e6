"""Idempotency cache for safely handling duplicate create requests.

``IdempotencyCache`` stores the outcome of a create request under its
client-supplied idempotency key so retries can short-circuit. Entries expire
after a fixed TTL and the oldest-written entries are evicted once the cache
grows past its maximum size.

``get_or_compute`` is single-flight: when several callers race with the same
key, exactly one runs the computation while the others wait for it and share
its outcome. Reusing a key with a different payload raises
``IdempotencyConflict``.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import ConcurrentModification, IdempotencyConflict, OrderError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_WAIT_TIMEOUT_SECONDS = 15.0


def _hash(payload: Any) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class IdempotencyRecord:
    """A completed request stored under its idempotency key.

    Exactly one of ``value`` and ``error`` is meaningful: ``error`` holds the
    fault raised by the first execution when it failed.
    """

    key: str
    request_hash: Optional[str]
    created_at: float
    value: Any = None
    error: Optional[BaseException] = None

    def replay(self) -> Any:
        if self.error is not None:
            raise self.error.with_traceback(None)
        return self.value


class _Flight:
    """A computation in progress for one key."""

    def __init__(self, request_hash: Optional[str], started_at: float):
        self.request_hash = request_hash
        self.started_at = started_at
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None

    def outcome(self) -> Any:
        if self.error is not None:
            raise self.error.with_traceback(None)
        return self.value


class IdempotencyCache:
    """Bounded, time-expiring key -> outcome store with single-flight execution.

    Args:
        ttl_seconds: Lifetime of a stored record, measured from its write.
        max_entries: Maximum number of stored records.
        wait_timeout: How long a caller waits for a concurrent computation
            with the same key before giving up with ``ConcurrentModification``.
        takeover_after: Age after which an in-flight computation is
            considered abandoned and the next caller takes it over. Must
            exceed the worst-case duration of ``compute``; never lower than
            ``wait_timeout``. Defaults to ``wait_timeout``.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        takeover_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.wait_timeout = wait_timeout
        self.takeover_after = max(wait_timeout, takeover_after or wait_timeout)
        self._clock = clock
        self._lock = threading.Lock()
        self._records: "OrderedDict[str, IdempotencyRecord]" = OrderedDict()
        self._in_flight: dict[str, _Flight] = {}

    # ---- atomic form ----

    def get_or_compute(self, key: Optional[str], compute: Callable[[], Any], payload: Any = None):
        """Return the cached outcome for ``key`` or run ``compute`` at most once.

        Args:
            key: Client idempotency key. ``None`` or empty disables caching.
            compute: Zero-argument callable producing the response.
            payload: Optional request payload; its fingerprint is compared
                with the one stored for ``key``.

        Returns:
            tuple[bool, Any]: ``(replayed, value)`` where ``replayed`` is
            False only for the caller that actually executed ``compute``.

        Raises:
            IdempotencyConflict: The key was used with a different payload.
            ConcurrentModification: A concurrent computation for the key did
                not finish within ``wait_timeout``.
            Exception: Whatever ``compute`` raised, for the executing caller
                and for every caller sharing or replaying that outcome.
        """
        if not key:
            return False, compute()

        request_hash = _hash(payload) if payload is not None else None
        with self._lock:
            record = self._live_record(key)
            if record is not None:
                self._check_hash(key, record.request_hash, request_hash)
                logger.info("idempotent replay", extra={"idempotency_key": key})
                return True, record.replay()

            flight = self._in_flight.get(key)
            if flight is not None and self._clock() - flight.started_at >= self.takeover_after:
                logger.warning("abandoned in-flight request taken over", extra={"idempotency_key": key})
                flight = None
            leader = flight is None
            if leader:
                flight = _Flight(request_hash, self._clock())
                self._in_flight[key] = flight

        if not leader:
            self._check_hash(key, flight.request_hash, request_hash)
            if not flight.done.wait(self.wait_timeout):
                raise ConcurrentModification("A request with this idempotency key is still in progress")
            return True, flight.outcome()

        try:
            value = compute()
        except BaseException as exc:
            flight.error = exc
            store = isinstance(exc, OrderError) and exc.cacheable
            self._finish(key, flight, store)
            raise
        flight.value = value
        self._finish(key, flight, True)
        return False, value

    # ---- plain get/put ----

    def get_response(self, key: Optional[str]) -> Any:
        """Return the stored successful response for ``key``, or None."""
        if not key:
            return None
        with self._lock:
            record = self._live_record(key)
        if record is None or record.error is not None:
            return None
        return record.value

    def store_response(self, key: Optional[str], value: Any) -> None:
        if not key or value is None:
            return
        with self._lock:
            self._put(IdempotencyRecord(key=key, request_hash=None, created_at=self._clock(), value=value))

    # ---- housekeeping ----

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._in_flight.clear()

    def stats(self) -> dict:
        with self._lock:
            self._purge_expired()
            return {
                "entries": len(self._records),
                "in_flight": len(self._in_flight),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
            }

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._records)

    # ---- internals (caller holds self._lock) ----

    def _expired(self, record: IdempotencyRecord) -> bool:
        return self._clock() - record.created_at >= self.ttl_seconds

    def _live_record(self, key: str) -> Optional[IdempotencyRecord]:
        record = self._records.get(key)
        if record is not None and self._expired(record):
            del self._records[key]
            return None
        return record

    def _purge_expired(self) -> None:
        # Records are kept in write order, so expired ones are at the front.
        while self._records:
            oldest = next(iter(self._records.values()))
            if not self._expired(oldest):
                break
            self._records.popitem(last=False)

    def _put(self, record: IdempotencyRecord) -> None:
        self._records[record.key] = record
        self._records.move_to_end(record.key)
        self._purge_expired()
        while len(self._records) > self.max_entries:
            evicted, _ = self._records.popitem(last=False)
            logger.debug("idempotency record evicted", extra={"idempotency_key": evicted})

    def _finish(self, key: str, flight: _Flight, store: bool) -> None:
        with self._lock:
            owner = self._in_flight.get(key) is flight
            if owner:
                del self._in_flight[key]
                if store:
                    self._put(
                        IdempotencyRecord(
                            key=key,
                            request_hash=flight.request_hash,
                            created_at=self._clock(),
                            value=flight.value,
                            error=flight.error,
                        )
                    )
            else:
                # taken over: the new owner's outcome is the one replayed
                logger.warning("stale in-flight request finished after takeover", extra={"idempotency_key": key})
        flight.done.set()

    @staticmethod
    def _check_hash(key: str, stored: Optional[str], incoming: Optional[str]) -> None:
        if stored is not None and incoming is not None and stored != incoming:
            logger.warning("idempotency key reused with a different payload", extra={"idempotency_key": key})
            raise IdempotencyConflict(f"Idempotency key '{key}' was already used with a different payload")
