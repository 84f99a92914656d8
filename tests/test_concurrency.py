"""
Tests for the worker pool helpers and cancellation tokens.
"""

import pytest

from circleskinner.concurrency import (
    CancellationToken,
    ChunkExecutionError,
    is_cancelled,
    largest_axis,
    resolve_workers,
    run_tasks,
    split_range,
)


class TestSplitRange:
    """Tests for contiguous chunking."""

    def test_remainder_goes_to_last_chunk(self):
        assert split_range(10, 3) == [(0, 3), (3, 6), (6, 10)]

    def test_never_more_chunks_than_elements(self):
        assert split_range(2, 5) == [(0, 1), (1, 2)]

    def test_empty_range(self):
        assert split_range(0, 4) == []

    def test_covers_range_once(self):
        for length in (1, 7, 64, 101):
            for n_chunks in (1, 2, 3, 8):
                chunks = split_range(length, n_chunks)
                covered = [i for start, stop in chunks for i in range(start, stop)]
                assert covered == list(range(length))


class TestHelpers:
    """Tests for pool sizing and axis selection."""

    def test_resolve_workers(self):
        assert resolve_workers(3) == 3
        assert resolve_workers(0) == 1
        assert resolve_workers(None) >= 1

    def test_largest_axis_first_on_ties(self):
        assert largest_axis((4, 9, 2)) == 1
        assert largest_axis((5, 5)) == 0

    def test_largest_axis_of_scalar_shape(self):
        with pytest.raises(ValueError):
            largest_axis(())


class TestRunTasks:
    """Tests for running tasks on the pool."""

    def test_all_tasks_run(self):
        out = [0] * 8

        def make(i):
            def task():
                out[i] = i * i
            return task

        failures = run_tasks([make(i) for i in range(8)], n_workers=4)

        assert failures == []
        assert out == [i * i for i in range(8)]

    def test_failure_raised_after_join(self):
        """A failing task does not stop its siblings; the error comes after."""
        done = []

        def ok(i):
            def task():
                done.append(i)
            return task

        def bad():
            raise ArithmeticError("boom")

        tasks = [ok(0), bad, ok(2), ok(3)]

        with pytest.raises(ChunkExecutionError) as excinfo:
            run_tasks(tasks, n_workers=2)

        assert sorted(done) == [0, 2, 3]
        assert len(excinfo.value.failures) == 1
        index, error = excinfo.value.failures[0]
        assert index == 1
        assert isinstance(error, ArithmeticError)

    def test_failures_returned_when_incomplete_allowed(self):
        def bad():
            raise ValueError("skip me")

        failures = run_tasks([bad, lambda: None], n_workers=1, require_complete=False)

        assert [i for i, _ in failures] == [0]

    def test_chunk_error_is_runtime_error(self):
        assert issubclass(ChunkExecutionError, RuntimeError)


class TestCancellationToken:
    """Tests for the cancellation flag."""

    def test_initially_active(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None
        assert not is_cancelled(token)

    def test_cancel_with_reason(self):
        token = CancellationToken()
        token.cancel("user abort")
        assert token.cancelled
        assert token.reason == "user abort"
        assert is_cancelled(token)

    def test_cancel_without_reason(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled

    def test_no_token_is_never_cancelled(self):
        assert not is_cancelled(None)
