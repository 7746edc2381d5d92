import threading
import time
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float
    tenant_id: str | None


@dataclass
class _Flight(Generic[V]):
    done: threading.Event = field(default_factory=threading.Event)
    value: V | None = None
    error: BaseException | None = None


class ResolutionCache(Generic[V]):
    """
    Bounded, time-limited, thread-safe cache keyed by normalized hostname.

    Concurrent misses for the same key share one loader call. Entries are
    indexed by tenant id so deactivation or domain re-verification can drop
    every host that points at a tenant. A load that started before an
    invalidation is returned to its callers but not stored.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()
        self._by_tenant: dict[str, set[str]] = defaultdict(set)
        self._inflight: dict[str, _Flight[V]] = {}
        self._generation = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _get_fresh(self, key: str, now: float) -> _Entry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            self._drop(key)
            return None
        self._entries.move_to_end(key)
        return entry

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None and entry.tenant_id:
            keys = self._by_tenant.get(entry.tenant_id)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    self._by_tenant.pop(entry.tenant_id, None)

    def _store(self, key: str, value: V, tenant_id: str | None, now: float) -> None:
        self._drop(key)
        self._entries[key] = _Entry(value=value, expires_at=now + self.ttl_seconds, tenant_id=tenant_id)
        if tenant_id:
            self._by_tenant[tenant_id].add(key)
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            self._drop(oldest)

    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._get_fresh(key, self._clock())
            return entry.value if entry else None

    def get_or_load(
        self,
        key: str,
        loader: Callable[[], V],
        *,
        cacheable: Callable[[V], bool] = lambda _v: True,
        tenant_of: Callable[[V], str | None] = lambda _v: None,
    ) -> V:
        with self._lock:
            entry = self._get_fresh(key, self._clock())
            if entry is not None:
                return entry.value
            flight = self._inflight.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._inflight[key] = flight
                generation = self._generation

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            value = loader()
        except BaseException as exc:
            flight.error = exc
            raise
        else:
            flight.value = value
            if cacheable(value):
                with self._lock:
                    if self._generation == generation:
                        self._store(key, value, tenant_of(value), self._clock())
            return value
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            flight.done.set()

    def invalidate_host(self, key: str) -> None:
        with self._lock:
            self._generation += 1
            self._drop(key)

    def invalidate_tenant(self, tenant_id: str) -> int:
        with self._lock:
            self._generation += 1
            keys = list(self._by_tenant.get(tenant_id, ()))
            for key in keys:
                self._drop(key)
            return len(keys)
