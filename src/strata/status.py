"""Per-signature lifecycle tracking.

::

    (none) --submit--> PENDING --success--> SUCCESS
                       PENDING --failure--> ERROR
    PENDING --no provider--> UNFULFILLED    (no transport call)
    SUCCESS/ERROR/UNFULFILLED --re-submit--> PENDING

A signature is never submitted twice while PENDING; that flag is the only
mutual exclusion the resolver relies on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from enum import Enum

from strata.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class Status(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    UNFULFILLED = "UNFULFILLED"


_ALLOWED: dict[Status | None, frozenset[Status]] = {
    None: frozenset({Status.PENDING}),
    Status.PENDING: frozenset({Status.SUCCESS, Status.ERROR, Status.UNFULFILLED}),
    Status.SUCCESS: frozenset({Status.PENDING}),
    Status.ERROR: frozenset({Status.PENDING}),
    Status.UNFULFILLED: frozenset({Status.PENDING}),
}


@dataclass(frozen=True)
class QueryStatus:
    """Status of one named query as handed to consumers."""

    status: Status
    error: BaseException | None = None

    def is_pending(self) -> bool:
        return self.status is Status.PENDING

    def is_success(self) -> bool:
        return self.status is Status.SUCCESS

    def is_error(self) -> bool:
        return self.status is Status.ERROR

    def is_unfulfilled(self) -> bool:
        return self.status is Status.UNFULFILLED

    def is_settled(self) -> bool:
        return self.status is not Status.PENDING


StatusListener = Callable[[Hashable, Status], None]


class StatusTracker:
    def __init__(self) -> None:
        self._statuses: dict[Hashable, Status] = {}
        self._listeners: list[StatusListener] = []

    def get(self, signature: Hashable) -> Status | None:
        return self._statuses.get(signature)

    def is_pending(self, signature: Hashable) -> bool:
        return self._statuses.get(signature) is Status.PENDING

    def transition(self, signature: Hashable, status: Status) -> None:
        current = self._statuses.get(signature)
        if status not in _ALLOWED[current]:
            raise InvalidTransitionError(
                f"Cannot move {signature!r} from {current} to {status.value}"
            )
        self._statuses[signature] = status
        self._notify(signature, status)

    def submit(self, signature: Hashable) -> None:
        self.transition(signature, Status.PENDING)

    def succeed(self, signature: Hashable) -> None:
        self.transition(signature, Status.SUCCESS)

    def fail(self, signature: Hashable) -> None:
        self.transition(signature, Status.ERROR)

    def unfulfilled(self, signature: Hashable) -> None:
        self.transition(signature, Status.UNFULFILLED)

    def forget(self, signature: Hashable) -> None:
        """Drop a settled signature so its next submit starts from scratch."""
        if self._statuses.get(signature) is Status.PENDING:
            raise InvalidTransitionError(f"Cannot forget pending {signature!r}")
        self._statuses.pop(signature, None)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener(signature, status)`` on every transition."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, signature: Hashable, status: Status) -> None:
        for listener in list(self._listeners):
            try:
                listener(signature, status)
            except Exception:
                logger.exception("Status listener failed for %r", signature)

    def __len__(self) -> int:
        return len(self._statuses)
