"""Resolver -- dependency-aware scheduling of named queries.

A batch is a mapping of names to queries or query functions. The resolver
runs rounds over the batch: every name that can produce a ready query is
resolved from the cache, attached to an in-flight fetch, or submitted to the
transport of the first matching provider. Whenever a fetch completes another
round runs, because query functions may now see the value they were waiting
for. Dependency edges are never built up front; they show up as functions
that start returning queries.

Rounds are synchronous and the per-signature PENDING status is the only
mutual exclusion, so several ``resolve()`` calls may share one resolver and
one in-flight fetch.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from strata.errors import (
    InvalidRecordError,
    InvalidTransitionError,
    NoMatchingProviderError,
    TransportError,
    UnsatisfiableDependencyError,
)
from strata.filters import FilterPipeline, is_ready
from strata.models import Model, ReturnType
from strata.provider import Provider, with_timeout
from strata.query import Query, QueryDeclaration, concretize
from strata.registry import ProviderRegistry
from strata.status import QueryStatus, Status, StatusListener, StatusTracker
from strata.store import Store
from strata.telemetry import (
    BATCH_SETTLED,
    FETCH_FAILED,
    FETCH_STARTED,
    FETCH_SUCCEEDED,
    QUERY_UNFULFILLED,
    NoOpTelemetrySink,
    TelemetryEvent,
    TelemetrySink,
)

logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"1", "true", "yes", "on"})

ChangeCallback = Callable[[str, QueryStatus, Any], None]


@dataclass
class ResolverConfig:
    """Knobs for a :class:`Resolver`.

    Attributes:
        raise_on_unsatisfiable: Raise UnsatisfiableDependencyError from
            ``resolve()`` instead of only reporting it on the result.
        fetch_timeout: Seconds before a transport call is abandoned and the
            query moves to ERROR. None means no limit.
    """

    raise_on_unsatisfiable: bool = False
    fetch_timeout: float | None = None

    @classmethod
    def from_env(cls) -> ResolverConfig:
        """Read ``STRATA_RAISE_ON_UNSATISFIABLE`` and ``STRATA_FETCH_TIMEOUT``."""
        raise_flag = os.environ.get("STRATA_RAISE_ON_UNSATISFIABLE", "").strip().lower()
        raw_timeout = os.environ.get("STRATA_FETCH_TIMEOUT", "").strip()
        timeout: float | None = None
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ValueError(
                    f"STRATA_FETCH_TIMEOUT must be a number, got {raw_timeout!r}"
                ) from None
            if timeout <= 0:
                raise ValueError("STRATA_FETCH_TIMEOUT must be positive")
        return cls(raise_on_unsatisfiable=raise_flag in _TRUTHY, fetch_timeout=timeout)


@dataclass
class QueryResult:
    """Where one named query ended up. ``status`` is None if it never became ready."""

    status: QueryStatus | None = None
    value: Any = None
    query: Query | None = None


@dataclass
class BatchResult:
    results: dict[str, QueryResult]
    unsatisfied_error: UnsatisfiableDependencyError | None = None

    def __getitem__(self, name: str) -> QueryResult:
        return self.results[name]

    def __contains__(self, name: object) -> bool:
        return name in self.results

    def __iter__(self):
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def unsatisfied(self) -> list[str]:
        return self.unsatisfied_error.names if self.unsatisfied_error else []

    def value_map(self) -> dict[str, Any]:
        return {name: r.value for name, r in self.results.items()}

    def status_map(self) -> dict[str, QueryStatus | None]:
        return {name: r.status for name, r in self.results.items()}


@dataclass(eq=False)
class _Fetch:
    query: Query
    provider: Provider
    key: str | None
    task: asyncio.Task | None = None
    started: float = field(default_factory=time.monotonic)


class _Batch:
    def __init__(
        self,
        declarations: Mapping[str, QueryDeclaration],
        on_change: ChangeCallback | None,
    ) -> None:
        self.declarations = dict(declarations)
        self.on_change = on_change
        self.results = {name: QueryResult() for name in self.declarations}
        self.queries: dict[str, Query] = {}
        # Filtered values of names that reached SUCCESS; query functions see these.
        self.values: dict[str, Any] = {}
        self.settled: set[str] = set()
        # Names whose value arrived but whose filter chain awaits other names.
        self.awaiting: dict[str, Any] = {}
        self.waiting_on: dict[str, Hashable] = {}
        # Signatures this batch submitted or saw in flight; their errors are final.
        self.observed: set[Hashable] = set()


class Resolver:
    """Resolves batches of named queries through a provider registry."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: Store | None = None,
        tracker: StatusTracker | None = None,
        *,
        config: ResolverConfig | None = None,
        telemetry_sink: TelemetrySink | None = None,
    ) -> None:
        self.registry = registry
        self.store = store if store is not None else Store()
        self.tracker = tracker if tracker is not None else StatusTracker()
        self.config = config or ResolverConfig()
        self._telemetry = telemetry_sink or NoOpTelemetrySink()
        self._inflight: dict[Hashable, _Fetch] = {}
        self._unfulfilled_at: dict[Hashable, int] = {}

    # -- public API -----------------------------------------------------------

    async def resolve(
        self,
        queries: Mapping[str, QueryDeclaration],
        on_change: ChangeCallback | None = None,
    ) -> BatchResult:
        """Resolve every named query, calling ``on_change`` as each one moves."""
        batch = _Batch(queries, on_change)
        while True:
            while self._round(batch):
                pass
            pending = {
                self._inflight[sig].task
                for sig in set(batch.waiting_on.values())
                if sig in self._inflight
            }
            if not pending:
                break
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        return self._finish(batch)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener(signature, status)`` on every status change."""
        return self.tracker.subscribe(listener)

    def status_of(self, query: Query) -> Status | None:
        return self.tracker.get(query.signature)

    def read(self, query: Query) -> Any:
        """Current unfiltered value of ``query`` from the store, if it resolved."""
        entry = self.store.cached(query.signature)
        if entry is None or entry.status is not Status.SUCCESS:
            return None
        return self._extract(query, entry.raw_result)

    def invalidate(self, query: Query) -> bool:
        """Forget the cached outcome so the next submit fetches again.

        Returns False, and changes nothing, while a fetch is in flight.
        """
        sig = query.signature
        if self.tracker.is_pending(sig):
            return False
        self.store.evict(sig)
        self._unfulfilled_at.pop(sig, None)
        self.tracker.forget(sig)
        return True

    def fail(self, query: Query, error: BaseException | None = None) -> TransportError:
        """Move an in-flight query to ERROR now, e.g. when a caller's timer fires.

        The outstanding transport call is cancelled and its result ignored.
        """
        sig = query.signature
        fetch = self._inflight.pop(sig, None)
        if fetch is None:
            raise InvalidTransitionError(f"{query.describe()} has no fetch in flight")
        exc = TransportError(fetch.provider.id, error)
        exc.__cause__ = error
        self.store.cache_error(sig, exc)
        self.tracker.fail(sig)
        if fetch.task is not None:
            fetch.task.cancel()
        return exc

    # -- rounds ---------------------------------------------------------------

    def _round(self, batch: _Batch) -> bool:
        progress = False
        for name, declaration in batch.declarations.items():
            if name in batch.settled:
                continue
            if name in batch.awaiting:
                if is_ready(batch.queries[name].filters, batch.values):
                    self._apply_filters(batch, name, batch.awaiting.pop(name))
                    progress = True
                continue
            query = batch.queries.get(name)
            if query is None:
                try:
                    query = concretize(declaration, MappingProxyType(batch.values))
                except Exception as exc:
                    logger.exception("Query declaration failed for %r", name)
                    self._settle(batch, name, QueryStatus(Status.ERROR, exc), None)
                    progress = True
                    continue
                if query is None:
                    continue
                batch.queries[name] = query
                batch.results[name].query = query
                progress = True
            if self._resolve_one(batch, name, query):
                progress = True
        return progress

    def _resolve_one(self, batch: _Batch, name: str, query: Query) -> bool:
        sig = query.signature
        status = self.tracker.get(sig)

        if status is Status.PENDING:
            batch.observed.add(sig)
            if batch.waiting_on.get(name) == sig:
                return False
            batch.waiting_on[name] = sig
            self._update(batch, name, QueryStatus(Status.PENDING), None)
            return True

        entry = self.store.cached(sig)
        if status is Status.SUCCESS and entry is not None:
            self._deliver(batch, name, query, entry.raw_result)
            return True
        if status is Status.ERROR and entry is not None and sig in batch.observed:
            self._settle(batch, name, QueryStatus(Status.ERROR, entry.error), None)
            return True
        if (
            status is Status.UNFULFILLED
            and self._unfulfilled_at.get(sig) == self.registry.revision
        ):
            error = NoMatchingProviderError(query.describe())
            self._settle(batch, name, QueryStatus(Status.UNFULFILLED, error), None)
            return True

        batch.observed.add(sig)
        self._submit(sig, query)
        return True

    def _submit(self, sig: Hashable, query: Query) -> None:
        self.tracker.submit(sig)
        provider = self.registry.match(query)
        if provider is None:
            logger.warning("No provider satisfies %s", query.describe())
            self.store.evict(sig)
            self._unfulfilled_at[sig] = self.registry.revision
            self._telemetry.emit(
                TelemetryEvent(QUERY_UNFULFILLED, {"query": query.describe()})
            )
            self.tracker.unfulfilled(sig)
            return

        match = provider.return_for(query)
        key = match[0] if match else None
        fetch = _Fetch(query=query, provider=provider, key=key)
        self._inflight[sig] = fetch
        fetch.task = asyncio.get_running_loop().create_task(self._run_fetch(sig, fetch))

    # -- fetches --------------------------------------------------------------

    async def _run_fetch(self, sig: Hashable, fetch: _Fetch) -> None:
        provider = fetch.provider
        self._telemetry.emit(
            TelemetryEvent(
                FETCH_STARTED,
                {"provider": provider.id, "query": fetch.query.describe()},
            )
        )
        call = provider.fetch
        if self.config.fetch_timeout is not None:
            call = with_timeout(call, self.config.fetch_timeout)

        try:
            raw = await call(fetch.query.params)
        except asyncio.CancelledError:
            if self._inflight.get(sig) is fetch:
                self._fetch_failed(sig, fetch, TransportError(provider.id))
            raise
        except Exception as exc:
            if self._inflight.get(sig) is not fetch:
                return
            logger.exception("Transport for provider %s failed", provider.id)
            error = TransportError(provider.id, exc)
            error.__cause__ = exc
            self._fetch_failed(sig, fetch, error)
            return

        if self._inflight.get(sig) is not fetch:
            logger.debug("Dropping late result for %s", fetch.query.describe())
            return
        try:
            payload = self._normalize(fetch, raw)
        except InvalidRecordError as exc:
            logger.warning("Provider %s returned bad data: %s", provider.id, exc)
            self._fetch_failed(sig, fetch, exc)
            return
        except Exception as exc:
            logger.exception("Normalizing result from provider %s failed", provider.id)
            self._fetch_failed(sig, fetch, exc)
            return

        del self._inflight[sig]
        self.store.cache_result(sig, payload)
        self._telemetry.emit(
            TelemetryEvent(
                FETCH_SUCCEEDED,
                {
                    "provider": provider.id,
                    "query": fetch.query.describe(),
                    "latency_ms": (time.monotonic() - fetch.started) * 1000,
                },
            )
        )
        self.tracker.succeed(sig)

    def _fetch_failed(self, sig: Hashable, fetch: _Fetch, error: BaseException) -> None:
        self._inflight.pop(sig, None)
        self.store.cache_error(sig, error)
        self._telemetry.emit(
            TelemetryEvent(
                FETCH_FAILED,
                {
                    "provider": fetch.provider.id,
                    "query": fetch.query.describe(),
                    "error": repr(error),
                },
            )
        )
        self.tracker.fail(sig)

    def _normalize(self, fetch: _Fetch, raw: Any) -> Any:
        """Validate every payload of ``raw``, then write them all to the store."""
        writes: list[tuple[Model, ReturnType, Any]] = []
        for key, part in fetch.provider.parts():
            if key == fetch.key:
                continue
            if isinstance(raw, Mapping) and key in raw:
                writes.append((part.model, part.return_type, raw[key]))
        payload = fetch.provider.extract(raw, fetch.key)
        writes.append((fetch.query.model, fetch.query.return_type, payload))

        for model, return_type, data in writes:
            if return_type is ReturnType.LIST:
                self.store.keys_of(model, data)
            elif data is not None:
                self.store.identity_of(model, data)
        for model, return_type, data in writes:
            if return_type is ReturnType.LIST:
                self.store.write_many(model, data)
            elif data is not None:
                self.store.write(model, data)
        return payload

    def _extract(self, query: Query, raw: Any) -> Any:
        if query.return_type is ReturnType.LIST:
            keys = [self.store.identity_of(query.model, r) for r in raw]
            return self.store.read_many(query.model, keys)
        if raw is None:
            return None
        return self.store.read(query.model, self.store.identity_of(query.model, raw))

    # -- delivery -------------------------------------------------------------

    def _deliver(self, batch: _Batch, name: str, query: Query, raw: Any) -> None:
        batch.waiting_on.pop(name, None)
        value = self._extract(query, raw)
        if is_ready(query.filters, batch.values):
            self._apply_filters(batch, name, value)
        else:
            batch.awaiting[name] = value
            self._update(batch, name, QueryStatus(Status.SUCCESS), None)

    def _apply_filters(self, batch: _Batch, name: str, value: Any) -> None:
        query = batch.queries[name]
        try:
            output = FilterPipeline.apply(query.filters, value, batch.values)
        except Exception as exc:
            logger.exception("Filter chain failed for %r", name)
            self._settle(batch, name, QueryStatus(Status.ERROR, exc), None)
            return
        batch.values[name] = output
        self._settle(batch, name, QueryStatus(Status.SUCCESS), output)

    def _settle(
        self, batch: _Batch, name: str, status: QueryStatus, value: Any
    ) -> None:
        batch.settled.add(name)
        batch.waiting_on.pop(name, None)
        batch.awaiting.pop(name, None)
        self._update(batch, name, status, value)

    def _update(
        self, batch: _Batch, name: str, status: QueryStatus, value: Any
    ) -> None:
        result = batch.results[name]
        if result.status == status and result.value is value:
            return
        result.status = status
        result.value = value
        if batch.on_change is None:
            return
        try:
            batch.on_change(name, status, value)
        except Exception:
            logger.exception("on_change callback failed for %r", name)

    def _finish(self, batch: _Batch) -> BatchResult:
        unsatisfied = [n for n in batch.declarations if n not in batch.settled]
        error: UnsatisfiableDependencyError | None = None
        if unsatisfied:
            error = UnsatisfiableDependencyError(unsatisfied)
            logger.warning("%s", error)
        self._telemetry.emit(
            TelemetryEvent(
                BATCH_SETTLED,
                {"queries": len(batch.declarations), "unsatisfied": sorted(unsatisfied)},
            )
        )
        if error is not None and self.config.raise_on_unsatisfiable:
            raise error
        return BatchResult(results=batch.results, unsatisfied_error=error)
