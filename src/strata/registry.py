"""Provider registry -- insertion-ordered index of provider descriptors.

The registry maintains two lookup structures:
  - _providers: primary index by provider id, in registration order
  - _by_model: secondary index mapping model names to provider ids

Matching walks the providers declared for the query's model in registration
order and returns the first one that satisfies the query. Competing
registrations are allowed; avoiding ambiguous ones is up to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from strata.models import Model, ReturnType
from strata.provider import Provider, ProviderReturn, Transport
from strata.query import Query

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """In-memory registry of every provider the resolver may fetch through."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._by_model: dict[str, list[str]] = {}
        self._revision = 0

    @property
    def revision(self) -> int:
        """Incremented on every registration; lets unfulfilled queries retry."""
        return self._revision

    def register(self, provider: Provider) -> Provider:
        """Validate and add a provider.

        Raises UnknownFieldError if a declared field is missing from its model,
        and ValueError if the provider id is already taken.
        """
        provider.validate()
        if not provider.id:
            provider.id = f"{provider.describe()}#{len(self._providers) + 1}"
        if provider.id in self._providers:
            raise ValueError(f"Duplicate provider id registered: {provider.id!r}")
        self._providers[provider.id] = provider

        for _key, part in provider.parts():
            ids = self._by_model.setdefault(part.model.name, [])
            if provider.id not in ids:
                ids.append(provider.id)

        self._revision += 1
        logger.debug("Registered provider %s", provider.id)
        return provider

    def add_provider(
        self,
        model: Model,
        fields: str | Iterable[str] | None,
        return_type: ReturnType | str,
        required_params: Iterable[str],
        transport: Transport,
        *,
        provider_id: str = "",
        meta: dict[str, Any] | None = None,
    ) -> Provider:
        """Build a single-payload provider from its parts and register it."""
        provider = Provider(
            returns=ProviderReturn.build(model, return_type, fields),
            transport=transport,
            required_params=frozenset(required_params),
            id=provider_id,
            meta=meta or {},
        )
        return self.register(provider)

    def match(self, query: Query) -> Provider | None:
        """First registered provider that satisfies ``query``. No side effects."""
        for provider_id in self._by_model.get(query.model.name, []):
            provider = self._providers[provider_id]
            if provider.satisfies(query):
                return provider
        return None

    def candidates(self, query: Query) -> list[Provider]:
        """Every provider satisfying ``query``, in registration order."""
        return [
            self._providers[pid]
            for pid in self._by_model.get(query.model.name, [])
            if self._providers[pid].satisfies(query)
        ]

    def get(self, provider_id: str) -> Provider | None:
        return self._providers.get(provider_id)

    def for_model(self, model_name: str) -> list[Provider]:
        return [self._providers[pid] for pid in self._by_model.get(model_name, [])]

    def all(self) -> list[Provider]:
        return list(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
