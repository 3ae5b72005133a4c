"""Normalized entity cache plus a side cache of raw results per query signature.

Entities are keyed by ``(model name, primary key)`` and shared by reference:
every fetch touching an identity merges into the same dict, so a fetch of a
field subset never erases fields an earlier fetch supplied. Writes run on the
event loop thread without awaiting, so readers only ever see a fully merged
entry.
"""

from __future__ import annotations

import time
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from strata.errors import InvalidRecordError
from strata.models import Model
from strata.status import Status

EntityKey = tuple[str, Hashable]


@dataclass
class CacheEntry:
    """Outcome of the last fetch for one signature."""

    status: Status
    raw_result: Any = None
    error: BaseException | None = None
    resolved_at: float = field(default_factory=time.time)


class Store:
    def __init__(self) -> None:
        self._entities: dict[EntityKey, dict[str, Any]] = {}
        self._results: dict[Hashable, CacheEntry] = {}

    # -- entities -----------------------------------------------------------

    @staticmethod
    def identity_of(model: Model, raw: Any) -> Hashable:
        if not isinstance(raw, Mapping):
            raise InvalidRecordError(model.name, raw, "expected a mapping")
        if model.primary_key not in raw:
            raise InvalidRecordError(
                model.name, raw, f"missing primary key {model.primary_key!r}"
            )
        key = raw[model.primary_key]
        if key is None:
            raise InvalidRecordError(model.name, raw, "unusable primary key None")
        try:
            hash(key)
        except TypeError:
            raise InvalidRecordError(
                model.name, raw, f"unusable primary key {key!r}"
            ) from None
        return key

    def write(self, model: Model, raw: Any) -> Hashable:
        """Upsert one record, merging its fields into any existing entry."""
        key = self.identity_of(model, raw)
        entry = self._entities.get((model.name, key))
        if entry is None:
            self._entities[(model.name, key)] = dict(raw)
        else:
            entry.update(raw)
        return key

    @classmethod
    def keys_of(cls, model: Model, raws: Any) -> list[Hashable]:
        if isinstance(raws, (str, bytes, Mapping)) or not isinstance(raws, Iterable):
            raise InvalidRecordError(model.name, raws, "expected a list of records")
        return [cls.identity_of(model, raw) for raw in raws]

    def write_many(self, model: Model, raws: Any) -> list[Hashable]:
        """Upsert an ordered list of records; returns their keys in order.

        Every identity is checked before the first write.
        """
        records = list(raws) if isinstance(raws, (list, tuple)) else raws
        keys = self.keys_of(model, records)
        for raw in records:
            self.write(model, raw)
        return keys

    def read(self, model: Model, key: Hashable) -> dict[str, Any] | None:
        return self._entities.get((model.name, key))

    def read_many(self, model: Model, keys: Iterable[Hashable]) -> list[dict[str, Any]]:
        return [
            entity
            for entity in (self._entities.get((model.name, k)) for k in keys)
            if entity is not None
        ]

    def entity_count(self) -> int:
        return len(self._entities)

    # -- raw results by signature ---------------------------------------------

    def cache_result(self, signature: Hashable, raw: Any) -> CacheEntry:
        entry = CacheEntry(status=Status.SUCCESS, raw_result=raw)
        self._results[signature] = entry
        return entry

    def cache_error(self, signature: Hashable, error: BaseException) -> CacheEntry:
        entry = CacheEntry(status=Status.ERROR, error=error)
        self._results[signature] = entry
        return entry

    def cached(self, signature: Hashable) -> CacheEntry | None:
        return self._results.get(signature)

    def evict(self, signature: Hashable) -> CacheEntry | None:
        return self._results.pop(signature, None)
