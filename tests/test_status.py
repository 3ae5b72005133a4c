"""Tests for the per-signature status state machine."""

from __future__ import annotations

import logging

import pytest

from strata.errors import InvalidTransitionError
from strata.status import QueryStatus, Status, StatusTracker


class TestTransitions:
    def test_happy_path(self):
        tracker = StatusTracker()
        tracker.submit("a")
        assert tracker.is_pending("a")
        tracker.succeed("a")
        assert tracker.get("a") is Status.SUCCESS

    def test_failure_path(self):
        tracker = StatusTracker()
        tracker.submit("a")
        tracker.fail("a")
        assert tracker.get("a") is Status.ERROR

    def test_unfulfilled_goes_through_pending(self):
        tracker = StatusTracker()
        with pytest.raises(InvalidTransitionError):
            tracker.unfulfilled("a")
        tracker.submit("a")
        tracker.unfulfilled("a")
        assert tracker.get("a") is Status.UNFULFILLED

    def test_cannot_submit_pending_twice(self):
        tracker = StatusTracker()
        tracker.submit("a")
        with pytest.raises(InvalidTransitionError):
            tracker.submit("a")

    def test_settled_states_are_terminal_until_resubmit(self):
        tracker = StatusTracker()
        tracker.submit("a")
        tracker.succeed("a")
        with pytest.raises(InvalidTransitionError):
            tracker.fail("a")
        tracker.submit("a")
        tracker.fail("a")
        tracker.submit("a")
        assert tracker.is_pending("a")

    def test_success_requires_pending(self):
        with pytest.raises(InvalidTransitionError):
            StatusTracker().succeed("a")

    def test_forget(self):
        tracker = StatusTracker()
        tracker.submit("a")
        with pytest.raises(InvalidTransitionError):
            tracker.forget("a")
        tracker.succeed("a")
        tracker.forget("a")
        assert tracker.get("a") is None
        assert len(tracker) == 0


class TestListeners:
    def test_subscribe_and_unsubscribe(self):
        tracker = StatusTracker()
        seen = []
        unsubscribe = tracker.subscribe(lambda sig, status: seen.append((sig, status)))
        tracker.submit("a")
        tracker.succeed("a")
        unsubscribe()
        tracker.submit("b")
        assert seen == [("a", Status.PENDING), ("a", Status.SUCCESS)]

    def test_failing_listener_does_not_block_others(self, caplog):
        tracker = StatusTracker()
        seen = []

        def broken(sig, status):
            raise RuntimeError("listener bug")

        tracker.subscribe(broken)
        tracker.subscribe(lambda sig, status: seen.append(status))
        with caplog.at_level(logging.ERROR, logger="strata.status"):
            tracker.submit("a")
        assert seen == [Status.PENDING]
        assert "Status listener failed" in caplog.text


class TestQueryStatus:
    def test_helpers(self):
        assert QueryStatus(Status.PENDING).is_pending()
        assert not QueryStatus(Status.PENDING).is_settled()
        assert QueryStatus(Status.SUCCESS).is_success()
        assert QueryStatus(Status.ERROR, RuntimeError("x")).is_error()
        assert QueryStatus(Status.UNFULFILLED).is_unfulfilled()
        assert QueryStatus(Status.UNFULFILLED).is_settled()

    def test_equality(self):
        assert QueryStatus(Status.SUCCESS) == QueryStatus(Status.SUCCESS)
