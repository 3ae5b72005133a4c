"""Error taxonomy for query resolution.

Registration errors are raised to the caller. Everything that happens while
resolving a batch is attached to the affected query's status instead, so one
failing query never aborts its siblings.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class StrataError(Exception):
    """Base class for all strata errors."""


class UnknownFieldError(StrataError, ValueError):
    """A provider declared fields that the model does not have."""

    def __init__(self, model_name: str, fields: Iterable[str]) -> None:
        self.model_name = model_name
        self.fields = sorted(fields)
        super().__init__(
            f"Unknown field(s) on model {model_name!r}: {', '.join(self.fields)}"
        )


class NoMatchingProviderError(StrataError):
    """No registered provider satisfies a query."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"No provider satisfies query {description}")


class TransportError(StrataError):
    """A transport call failed. The underlying error is kept on ``original``."""

    def __init__(self, provider_id: str, original: BaseException | None = None) -> None:
        self.provider_id = provider_id
        self.original = original
        detail = f": {original!r}" if original is not None else ""
        super().__init__(f"Transport for provider {provider_id!r} failed{detail}")


class InvalidRecordError(StrataError):
    """A raw record could not be normalized into the store."""

    def __init__(self, model_name: str, record: Any, reason: str) -> None:
        self.model_name = model_name
        self.record = record
        super().__init__(f"Invalid {model_name} record ({reason}): {record!r}")


class InvalidTransitionError(StrataError):
    """A status change that the lifecycle state machine does not allow."""


class UnsatisfiableDependencyError(StrataError):
    """Queries that never became ready after the rest of a batch settled."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = sorted(names)
        super().__init__(
            f"Queries never became ready: {', '.join(self.names)}"
        )
