"""Test fixtures for strata tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from strata.models import Model


def make_user_model() -> Model:
    return Model(name="User", fields=["id", "name", "email"])


def make_post_model() -> Model:
    return Model(name="Post", fields=["id", "title", "userID"])


USER_DATA = {"id": 1, "name": "works", "email": "some@example.com"}

POSTS_DATA = [
    {"id": 1, "title": "some post"},
    {"id": 2, "title": "On the mechanics of economic development"},
]


class RecordingTransport:
    """Transport double that records params and returns canned data.

    ``returns`` may be a value (deep-copied per call) or a callable taking the
    params. When ``gate`` is set, every call waits on it before answering.
    """

    def __init__(
        self,
        returns: Any = None,
        *,
        error: BaseException | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.returns = returns
        self.error = error
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def __call__(self, params: dict[str, Any]) -> Any:
        self.calls.append(dict(params))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if callable(self.returns):
            return self.returns(params)
        return copy.deepcopy(self.returns)


@pytest.fixture()
def user_model() -> Model:
    return make_user_model()


@pytest.fixture()
def post_model() -> Model:
    return make_post_model()
