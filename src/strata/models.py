"""Model metadata: the field sets that providers and queries are checked against."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator, model_validator

from strata.errors import UnknownFieldError

if TYPE_CHECKING:
    from strata.provider import ProviderReturn
    from strata.query import Query

ALL_FIELDS: Literal["*"] = "*"

FieldSelection = Union[Literal["*"], frozenset[str]]


class ReturnType(str, Enum):
    ITEM = "item"
    LIST = "list"


class _StrictModel(BaseModel):
    """Shared strict settings for declarative models."""

    model_config = ConfigDict(extra="forbid", frozen=True)


def _normalize_string_list(values: Iterable[str]) -> list[str]:
    """Trim whitespace and drop empty entries while preserving order."""
    normalized: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        cleaned = value.strip()
        if cleaned:
            normalized.append(cleaned)
    return normalized


def coerce_fields(fields: str | Iterable[str] | None) -> FieldSelection:
    """Turn a field declaration into ``ALL_FIELDS`` or a frozenset of names.

    A bare string other than ``"*"`` is treated as a single field name.
    """
    if fields is None or fields == ALL_FIELDS:
        return ALL_FIELDS
    if isinstance(fields, str):
        fields = [fields]
    if not isinstance(fields, Iterable):
        raise TypeError(f"Unknown field type {type(fields).__name__}")
    normalized = frozenset(_normalize_string_list(fields))
    if not normalized:
        raise ValueError("Field selection must be '*' or a non-empty set of names")
    return normalized


class Model(_StrictModel):
    """A kind of entity: its name, primary key and declared fields.

    Field membership checks use a frozenset built once at construction.
    """

    name: str
    primary_key: str = "id"
    fields: tuple[str, ...]
    description: str = ""

    _field_set: frozenset[str] = PrivateAttr(default_factory=frozenset)

    @field_validator("name", "primary_key", "description")
    @classmethod
    def normalize_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("fields", mode="before")
    @classmethod
    def normalize_fields(cls, values: Any) -> tuple[str, ...]:
        if isinstance(values, str):
            values = [values]
        cleaned = _normalize_string_list(values)
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Model fields must be unique")
        return tuple(cleaned)

    @model_validator(mode="after")
    def check_primary_key(self) -> Model:
        if not self.name:
            raise ValueError("Model name must not be empty")
        if not self.fields:
            raise ValueError(f"Model {self.name!r} declares no fields")
        if self.primary_key not in self.fields:
            raise ValueError(
                f"Primary key {self.primary_key!r} is not a field of {self.name!r}"
            )
        return self

    def model_post_init(self, __context: Any) -> None:
        self._field_set = frozenset(self.fields)

    @property
    def field_set(self) -> frozenset[str]:
        return self._field_set

    def has_field(self, name: str) -> bool:
        return name in self._field_set

    def assert_fields_exist(self, fields: Iterable[str]) -> None:
        missing = [f for f in fields if f not in self._field_set]
        if missing:
            raise UnknownFieldError(self.name, missing)

    # -- declaration helpers ------------------------------------------------

    def as_item(self, fields: str | Iterable[str] | None = ALL_FIELDS) -> ProviderReturn:
        """Describe a provider payload holding a single entity of this model."""
        from strata.provider import ProviderReturn

        return ProviderReturn.build(self, ReturnType.ITEM, fields)

    def as_list(self, fields: str | Iterable[str] | None = ALL_FIELDS) -> ProviderReturn:
        """Describe a provider payload holding an ordered list of entities."""
        from strata.provider import ProviderReturn

        return ProviderReturn.build(self, ReturnType.LIST, fields)

    def get_item(
        self,
        params: Mapping[str, Any] | None = None,
        fields: str | Iterable[str] | None = ALL_FIELDS,
    ) -> Query:
        from strata.query import Query

        return Query.build(self, ReturnType.ITEM, params, fields)

    def get_list(
        self,
        params: Mapping[str, Any] | None = None,
        fields: str | Iterable[str] | None = ALL_FIELDS,
    ) -> Query:
        from strata.query import Query

        return Query.build(self, ReturnType.LIST, params, fields)

    def getter(self, field: str) -> Callable[[Any], Any]:
        """Filter stage that reads ``field`` from a resolved entity."""
        self.assert_fields_exist([field])

        def _get(entity: Any) -> Any:
            if entity is None:
                return None
            return entity.get(field)

        _get.__name__ = f"get_{field}"
        return _get


class ModelCatalog:
    """Models indexed by name, used when loading declarations from YAML."""

    def __init__(self) -> None:
        self._models: dict[str, Model] = {}

    def register(self, model: Model) -> None:
        if model.name in self._models:
            raise ValueError(f"Duplicate model registered: {model.name!r}")
        self._models[model.name] = model

    def get(self, name: str) -> Model | None:
        return self._models.get(name)

    def require(self, name: str) -> Model:
        model = self._models.get(name)
        if model is None:
            raise KeyError(f"Unknown model: {name!r}")
        return model

    def all(self) -> list[Model]:
        return list(self._models.values())

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)
