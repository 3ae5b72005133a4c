"""Tests for Provider descriptors and transport wrappers."""

from __future__ import annotations

import asyncio
import logging

import pytest
from conftest import POSTS_DATA, USER_DATA, RecordingTransport, make_post_model, make_user_model

from strata.errors import InvalidRecordError
from strata.provider import Provider, Transport, with_timeout
from strata.telemetry import (
    FETCH_STARTED,
    InMemoryTelemetrySink,
    LoggerTelemetrySink,
    TelemetryEvent,
    TelemetrySink,
)


class TestProvider:
    def test_params_normalized(self):
        user = make_user_model()
        provider = Provider(user.as_item(), RecordingTransport(), [" id ", "id"], id=" u ")
        assert provider.required_params == frozenset({"id"})
        assert provider.id == "u"
        assert not provider.polymorphic

    def test_single_param_string(self):
        provider = Provider(make_user_model().as_item(), RecordingTransport(), "id")
        assert provider.required_params == frozenset({"id"})

    def test_empty_returns_rejected(self):
        with pytest.raises(ValueError, match="at least one"):
            Provider({}, RecordingTransport())

    def test_extract(self):
        user = make_user_model()
        post = make_post_model()
        provider = Provider(
            {"user": user.as_item(), "posts": post.as_list()}, RecordingTransport()
        )
        raw = {"user": USER_DATA, "posts": POSTS_DATA}
        assert provider.extract(raw, "posts") == POSTS_DATA
        assert provider.extract(raw, None) is raw
        with pytest.raises(InvalidRecordError):
            provider.extract({"user": USER_DATA}, "posts")
        with pytest.raises(InvalidRecordError):
            provider.extract([USER_DATA], "user")

    def test_describe(self):
        user = make_user_model()
        post = make_post_model()
        provider = Provider(
            {"user": user.as_item(["id", "name"]), "posts": post.as_list()},
            RecordingTransport(),
            frozenset({"start", "end"}),
        )
        assert provider.describe() == (
            "user=User.item[id,name], posts=Post.list[*] <- (end,start)"
        )

    @pytest.mark.asyncio
    async def test_fetch_copies_params(self):
        transport = RecordingTransport(USER_DATA)
        provider = Provider(make_user_model().as_item(), transport, ["id"])
        params = {"id": 1}
        assert await provider.fetch(params) == USER_DATA
        assert transport.calls == [params]

    def test_recording_transport_is_a_transport(self):
        assert isinstance(RecordingTransport(), Transport)


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_fast_call_passes_through(self):
        wrapped = with_timeout(RecordingTransport(USER_DATA), 1.0)
        assert await wrapped({"id": 1}) == USER_DATA

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self):
        wrapped = with_timeout(RecordingTransport(gate=asyncio.Event()), 0.01)
        with pytest.raises(asyncio.TimeoutError):
            await wrapped({"id": 1})


class TestTelemetrySinks:
    def test_in_memory_sink(self):
        sink = InMemoryTelemetrySink()
        sink.emit(TelemetryEvent(FETCH_STARTED, {"provider": "p"}))
        sink.emit(TelemetryEvent("other"))
        assert isinstance(sink, TelemetrySink)
        assert [e.attributes for e in sink.named(FETCH_STARTED)] == [{"provider": "p"}]

    def test_logger_sink(self, caplog):
        sink = LoggerTelemetrySink()
        with caplog.at_level(logging.INFO, logger="strata.telemetry"):
            sink.emit(TelemetryEvent(FETCH_STARTED, {"provider": "p"}))
        record = caplog.records[-1]
        assert record.getMessage() == FETCH_STARTED
        assert record.event_attributes == {"provider": "p"}
