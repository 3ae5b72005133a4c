"""YAML model and provider declarations. Files starting with underscore are skipped.

A model file holds one model::

    name: User
    primary_key: id
    fields: [id, name, email]

A provider file holds a list of providers. ``returns`` is either one payload
or a mapping of payload keys to payloads::

    providers:
      - id: user_by_id
        params: [id]
        returns: {model: User, type: item}
        transport: users_api
      - id: timeline
        params: [start, end]
        returns:
          user: {model: User, type: item, fields: [id, name]}
          posts: {model: Post, type: list}
        transport: timeline_api
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import Field, field_validator

from strata.models import (
    ALL_FIELDS,
    Model,
    ModelCatalog,
    ReturnType,
    _normalize_string_list,
    _StrictModel,
)
from strata.provider import Provider, ProviderReturn, Transport
from strata.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ReturnSpec(_StrictModel):
    model: str
    type: ReturnType = ReturnType.ITEM
    fields: Union[str, list[str]] = ALL_FIELDS

    @field_validator("model")
    @classmethod
    def normalize_model(cls, value: str) -> str:
        return value.strip()


class ProviderSpec(_StrictModel):
    id: str = ""
    params: list[str] = Field(default_factory=list)
    returns: Union[ReturnSpec, dict[str, ReturnSpec]]
    transport: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "transport")
    @classmethod
    def normalize_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("params")
    @classmethod
    def normalize_params(cls, values: list[str]) -> list[str]:
        return _normalize_string_list(values)


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        raise ValueError(f"Empty YAML file: {path}")
    return data


def load_model_file(path: Path) -> Model:
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ValueError(f"Model YAML root must be a mapping: {path}")
    return Model(
        name=data["name"],
        primary_key=data.get("primary_key", "id"),
        fields=data["fields"],
        description=data.get("description", ""),
    )


def load_model_directory(directory: str | Path, catalog: ModelCatalog) -> int:
    """Load all YAML models from a directory recursively. Returns count loaded."""
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Model directory does not exist: %s", directory)
        return 0

    count = 0
    for path in sorted(directory.rglob("*.yaml")):
        if path.name.startswith("_"):
            continue
        try:
            catalog.register(load_model_file(path))
            count += 1
        except (yaml.YAMLError, KeyError, ValueError, TypeError) as exc:
            logger.exception("Failed to load model from %s: %s", path, exc)
    return count


def load_provider_specs(path: str | Path) -> list[ProviderSpec]:
    path = Path(path)
    data = _read_yaml(path)
    if not isinstance(data, dict) or not isinstance(data.get("providers"), list):
        raise ValueError(f"Provider YAML must hold a 'providers' list: {path}")
    return [ProviderSpec.model_validate(entry) for entry in data["providers"]]


def _unbound_transport(name: str) -> Transport:
    async def _call(params: dict[str, Any]) -> Any:
        raise LookupError(f"No transport bound under {name!r}")

    return _call


def build_provider(
    spec: ProviderSpec,
    catalog: ModelCatalog,
    transports: Mapping[str, Transport] | None = None,
) -> Provider:
    """Turn a declaration into a Provider, binding its transport by name.

    Unknown transport names get a transport that fails every call, so the
    provider still matches queries and the failure shows up as an ERROR.
    """

    def _build_return(ret: ReturnSpec) -> ProviderReturn:
        return ProviderReturn.build(catalog.require(ret.model), ret.type, ret.fields)

    if isinstance(spec.returns, ReturnSpec):
        returns: ProviderReturn | dict[str, ProviderReturn] = _build_return(spec.returns)
    else:
        returns = {key: _build_return(ret) for key, ret in spec.returns.items()}

    transport_name = spec.transport or spec.id
    transport = (transports or {}).get(transport_name)
    if transport is None:
        logger.debug("No transport bound for %r", transport_name)
        transport = _unbound_transport(transport_name)

    return Provider(
        returns=returns,
        transport=transport,
        required_params=frozenset(spec.params),
        id=spec.id,
        meta=dict(spec.meta),
    )


def load_provider_file(
    path: str | Path,
    catalog: ModelCatalog,
    registry: ProviderRegistry,
    transports: Mapping[str, Transport] | None = None,
) -> int:
    """Register every provider declared in ``path``. Returns count registered.

    Declarations that fail (unknown model or field, duplicate id) are logged
    and skipped; the rest still register.
    """
    count = 0
    for index, spec in enumerate(load_provider_specs(path)):
        try:
            registry.register(build_provider(spec, catalog, transports))
            count += 1
        except (KeyError, ValueError, TypeError) as exc:
            logger.exception(
                "Failed to register provider #%d (%s) from %s: %s",
                index, spec.id or "unnamed", path, exc,
            )
    return count
