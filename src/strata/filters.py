"""Filter chains applied to a query's resolved value.

A chain is an ordered sequence of stages; each plain stage is a pure callable
taking the previous stage's output. A :class:`ChainRef` stage pulls in another
named query's resolved (and filtered) value, so the chain can only run once
that value exists.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union


def _second(_value: Any, upstream: Any) -> Any:
    return upstream


@dataclass(frozen=True)
class ChainRef:
    """Stage combining the running value with another query's value.

    ``combine(value, upstream)`` produces the stage output; by default the
    upstream value replaces the running one.
    """

    name: str
    combine: Callable[[Any, Any], Any] = _second


FilterStage = Union[Callable[[Any], Any], ChainRef]


def upstream_names(chain: Iterable[FilterStage]) -> list[str]:
    return [stage.name for stage in chain if isinstance(stage, ChainRef)]


def is_ready(chain: Iterable[FilterStage], available: Mapping[str, Any]) -> bool:
    return all(name in available for name in upstream_names(chain))


class FilterPipeline:
    """Runs filter chains. Stateless; memoization is the caller's concern."""

    @staticmethod
    def apply(
        chain: Iterable[FilterStage],
        value: Any,
        available: Mapping[str, Any] | None = None,
    ) -> Any:
        available = available or {}
        for stage in chain:
            if isinstance(stage, ChainRef):
                if stage.name not in available:
                    raise KeyError(stage.name)
                value = stage.combine(value, available[stage.name])
            else:
                value = stage(value)
        return value
