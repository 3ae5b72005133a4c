"""Query declarations and their signatures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from strata.models import ALL_FIELDS, FieldSelection, ReturnType, coerce_fields

if TYPE_CHECKING:
    from strata.filters import FilterStage
    from strata.models import Model

logger = logging.getLogger(__name__)

# (model name, return type, frozen params, fields)
QuerySignature = tuple[str, ReturnType, frozenset, FieldSelection]


def _freeze(value: Any) -> Any:
    """Build a hashable, order-independent form of a parameter value."""
    if isinstance(value, Mapping):
        return frozenset((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, set):
        return frozenset(_freeze(v) for v in value)
    return value


@dataclass(frozen=True, eq=False)
class Query:
    """What a consumer needs: a model, item or list, params and a field subset.

    Filters ride along with the query but are not part of its signature, so two
    queries that differ only in their filters share one fetch.

    A ``None`` param value means the input has not resolved yet, so a query
    holding one is never submitted. Querying for a null value is not possible.
    """

    model: Model
    return_type: ReturnType
    params: Mapping[str, Any] = field(default_factory=dict)
    fields: FieldSelection = ALL_FIELDS
    filters: tuple[FilterStage, ...] = ()

    @classmethod
    def build(
        cls,
        model: Model,
        return_type: ReturnType | str,
        params: Mapping[str, Any] | None = None,
        fields: str | Iterable[str] | None = ALL_FIELDS,
    ) -> Query:
        selection = coerce_fields(fields)
        if selection != ALL_FIELDS:
            model.assert_fields_exist(selection)
        return cls(
            model=model,
            return_type=ReturnType(return_type),
            params=dict(params or {}),
            fields=selection,
        )

    @property
    def signature(self) -> QuerySignature:
        return (
            self.model.name,
            self.return_type,
            frozenset((k, _freeze(v)) for k, v in self.params.items()),
            self.fields,
        )

    @property
    def param_names(self) -> frozenset[str]:
        return frozenset(self.params)

    def is_ready(self) -> bool:
        """Params holding ``None`` are inputs that have not resolved yet."""
        return all(v is not None for v in self.params.values())

    def filter(self, stages: FilterStage | Sequence[FilterStage]) -> Query:
        """Return a copy with ``stages`` appended to the filter chain."""
        if not isinstance(stages, (list, tuple)):
            stages = [stages]
        return Query(
            model=self.model,
            return_type=self.return_type,
            params=self.params,
            fields=self.fields,
            filters=self.filters + tuple(stages),
        )

    def same_signature(self, other: Query) -> bool:
        return self.signature == other.signature

    def describe(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in sorted(self.params.items()))
        fields = (
            ALL_FIELDS if self.fields == ALL_FIELDS else ",".join(sorted(self.fields))
        )
        return f"{self.model.name}.{self.return_type.value}({params})[{fields}]"

    def __repr__(self) -> str:
        return f"Query({self.describe()})"


QueryFunction = Callable[[Mapping[str, Any]], Union[Query, None]]
QueryDeclaration = Union[Query, QueryFunction]


def concretize(
    declaration: QueryDeclaration, resolved: Mapping[str, Any]
) -> Query | None:
    """Evaluate a declaration against the current resolved values.

    Returns ``None`` while the query's inputs are not available: the function
    returned nothing, looked up a name that has not resolved (``KeyError``), or
    the query still carries ``None`` params.
    """
    if isinstance(declaration, Query):
        query = declaration
    else:
        try:
            query = declaration(resolved)
        except KeyError as exc:
            logger.debug("Query function not ready, missing input %s", exc)
            return None
        if query is None:
            return None
        if not isinstance(query, Query):
            raise TypeError(
                f"Query function returned {type(query).__name__}, expected Query"
            )
    return query if query.is_ready() else None
