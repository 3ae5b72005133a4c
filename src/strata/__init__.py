"""Strata -- declarative query resolution.

Consumers declare what data they need; the resolver finds a provider for each
query, fetches through its transport, caches the result and reports status
per query. Queries may be functions of other queries' resolved values.

Public API::

    from strata import Model, ProviderRegistry, Resolver

    User = Model(name="User", fields=["id", "name", "email"])
    registry = ProviderRegistry()
    registry.add_provider(User, "*", "item", ["id"], fetch_user)

    result = await Resolver(registry).resolve({"user": User.get_item({"id": 1})})
"""

from strata.errors import (
    InvalidRecordError,
    InvalidTransitionError,
    NoMatchingProviderError,
    StrataError,
    TransportError,
    UnknownFieldError,
    UnsatisfiableDependencyError,
)
from strata.filters import ChainRef, FilterPipeline
from strata.models import ALL_FIELDS, Model, ModelCatalog, ReturnType
from strata.provider import Provider, ProviderReturn, Transport, with_timeout
from strata.query import Query, QueryFunction
from strata.registry import ProviderRegistry
from strata.resolver import BatchResult, QueryResult, Resolver, ResolverConfig
from strata.status import QueryStatus, Status, StatusTracker
from strata.store import CacheEntry, Store

__all__ = [
    "ALL_FIELDS",
    "BatchResult",
    "CacheEntry",
    "ChainRef",
    "FilterPipeline",
    "InvalidRecordError",
    "InvalidTransitionError",
    "Model",
    "ModelCatalog",
    "NoMatchingProviderError",
    "Provider",
    "ProviderRegistry",
    "ProviderReturn",
    "Query",
    "QueryFunction",
    "QueryResult",
    "QueryStatus",
    "Resolver",
    "ResolverConfig",
    "ReturnType",
    "Status",
    "StatusTracker",
    "Store",
    "StrataError",
    "Transport",
    "TransportError",
    "UnknownFieldError",
    "UnsatisfiableDependencyError",
    "with_timeout",
]
__version__ = "0.1.0"
