"""Tests for cancellation tokens and the run registry."""

import pytest

from devagent.cancellation import CancellationToken
from devagent.errors import RunConflictError
from devagent.runs import RunRegistry


class TestCancellationToken:

    def test_cancel_once(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.cancel() is True
        assert token.cancel() is False
        assert token.cancelled
        assert token.wait(0)

    def test_callbacks_fire_on_cancel(self):
        token = CancellationToken()
        fired = []
        token.on_cancel(lambda: fired.append("a"))
        token.cancel()
        assert fired == ["a"]

    def test_unregister(self):
        token = CancellationToken()
        fired = []
        unregister = token.on_cancel(lambda: fired.append("a"))
        unregister()
        token.cancel()
        assert fired == []

    def test_late_callback_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        fired = []
        token.on_cancel(lambda: fired.append("late"))
        assert fired == ["late"]

    def test_failing_callback_does_not_block_others(self):
        token = CancellationToken()
        fired = []

        def broken():
            raise RuntimeError("socket already closed")

        token.on_cancel(broken)
        token.on_cancel(lambda: fired.append("b"))
        token.cancel()
        assert fired == ["b"]


class TestRunRegistry:

    def test_register_generates_ids(self):
        runs = RunRegistry()
        a, b = runs.register(), runs.register()
        assert a.run_id != b.run_id
        assert len(a.run_id) == 12
        assert runs.active == [a.run_id, b.run_id]

    def test_stop_latest(self):
        runs = RunRegistry()
        first = runs.register("first")
        second = runs.register("second")
        assert runs.stop() == "second"
        assert second.token.cancelled
        assert not first.token.cancelled

    def test_stop_by_id(self):
        runs = RunRegistry()
        first = runs.register("first")
        runs.register("second")
        assert runs.stop("first") == "first"
        assert first.token.cancelled

    def test_stop_nothing(self):
        runs = RunRegistry()
        assert runs.stop() is None
        assert runs.stop("ghost") is None

    def test_finish_removes(self):
        runs = RunRegistry()
        runs.register("a")
        runs.finish("a")
        runs.finish("a")
        assert runs.active == []
        assert runs.get("a") is None

    def test_active_id_conflicts(self):
        runs = RunRegistry()
        first = runs.register("a")
        with pytest.raises(RunConflictError, match="'a' is already active"):
            runs.register("a")
        assert runs.get("a") is first
        assert runs.active == ["a"]

    def test_id_reusable_after_finish(self):
        runs = RunRegistry()
        runs.register("a")
        runs.register("b")
        runs.finish("a")
        again = runs.register("a")
        assert runs.active == ["b", "a"]
        assert runs.get("a") is again
