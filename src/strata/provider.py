"""Provider descriptors: what a data source returns and which params it needs."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from strata.errors import InvalidRecordError
from strata.models import (
    ALL_FIELDS,
    FieldSelection,
    ReturnType,
    _normalize_string_list,
    coerce_fields,
)

if TYPE_CHECKING:
    from strata.models import Model
    from strata.query import Query


@runtime_checkable
class Transport(Protocol):
    """Injected fetch capability.

    Called with the query params; returns the raw payload or raises.
    Implementations live with the consumer (HTTP clients, fixtures, caches).
    """

    async def __call__(self, params: dict[str, Any]) -> Any: ...


def with_timeout(transport: Transport, seconds: float) -> Transport:
    """Wrap ``transport`` so a call that outlives ``seconds`` raises ``TimeoutError``."""

    async def _call(params: dict[str, Any]) -> Any:
        return await asyncio.wait_for(transport(params), timeout=seconds)

    return _call


@dataclass(frozen=True)
class ProviderReturn:
    """One payload a provider returns: a model, item or list, and its fields."""

    model: Model
    return_type: ReturnType
    fields: FieldSelection = ALL_FIELDS

    @classmethod
    def build(
        cls,
        model: Model,
        return_type: ReturnType | str,
        fields: str | Iterable[str] | None = ALL_FIELDS,
    ) -> ProviderReturn:
        selection = coerce_fields(fields)
        if selection != ALL_FIELDS:
            model.assert_fields_exist(selection)
        return cls(model=model, return_type=ReturnType(return_type), fields=selection)

    def validate(self) -> None:
        if self.fields != ALL_FIELDS:
            self.model.assert_fields_exist(self.fields)

    def covers(self, query: Query) -> bool:
        if self.model.name != query.model.name or self.return_type != query.return_type:
            return False
        if self.fields == ALL_FIELDS:
            return True
        if query.fields == ALL_FIELDS:
            return False
        return query.fields <= self.fields

    def describe(self) -> str:
        fields = (
            ALL_FIELDS if self.fields == ALL_FIELDS else ",".join(sorted(self.fields))
        )
        return f"{self.model.name}.{self.return_type.value}[{fields}]"


@dataclass(eq=False)
class Provider:
    """A data source the resolver can fetch through.

    ``returns`` is a single :class:`ProviderReturn`, or a mapping of payload
    keys to returns for a source whose response carries several entities at
    once (a post together with its comments, say). In the mapped case the raw
    response must be a mapping holding one payload per key.

    A provider satisfies a query only when the query passes exactly
    ``required_params``: a provider requiring ``{"id"}`` does not serve a
    query passing ``{"id", "name"}``.
    """

    returns: ProviderReturn | Mapping[str, ProviderReturn]
    transport: Transport
    required_params: frozenset[str] = frozenset()
    id: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.required_params, str):
            self.required_params = frozenset([self.required_params.strip()])
        else:
            self.required_params = frozenset(_normalize_string_list(self.required_params))
        if isinstance(self.returns, Mapping):
            if not self.returns:
                raise ValueError("Provider must declare at least one return")
            self.returns = dict(self.returns)
        self.id = self.id.strip()

    @property
    def polymorphic(self) -> bool:
        return isinstance(self.returns, Mapping)

    def parts(self) -> list[tuple[str | None, ProviderReturn]]:
        """Every payload this provider returns, keyed (``None`` for a plain source)."""
        if isinstance(self.returns, Mapping):
            return list(self.returns.items())
        return [(None, self.returns)]

    def validate(self) -> None:
        for _key, part in self.parts():
            part.validate()

    def return_for(self, query: Query) -> tuple[str | None, ProviderReturn] | None:
        """The payload that serves ``query``, or ``None`` if this provider can't."""
        if query.param_names != self.required_params:
            return None
        for key, part in self.parts():
            if part.covers(query):
                return key, part
        return None

    def satisfies(self, query: Query) -> bool:
        return self.return_for(query) is not None

    def extract(self, raw: Any, key: str | None) -> Any:
        """Pick the payload for ``key`` out of a raw response."""
        if key is None:
            return raw
        if not isinstance(raw, Mapping) or key not in raw:
            raise InvalidRecordError(
                self.id or "provider", raw, f"response has no {key!r} payload"
            )
        return raw[key]

    async def fetch(self, params: Mapping[str, Any]) -> Any:
        """Call the transport with a copy of ``params``."""
        return await self.transport(dict(params))

    def describe(self) -> str:
        returns = ", ".join(
            part.describe() if key is None else f"{key}={part.describe()}"
            for key, part in self.parts()
        )
        params = ",".join(sorted(self.required_params))
        return f"{returns} <- ({params})"
