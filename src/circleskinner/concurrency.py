"""
Worker pool helpers and cooperative cancellation.

The numeric stages (gradients, eigenvalues, extremum search) split their
output into disjoint slices and hand each slice to a thread of a fixed-size
pool. numpy and scipy release the GIL inside their kernels, so threads give
real parallelism here without copying arrays between processes.

Every helper joins all of its tasks before returning: a stage's output is
never visible to the next stage while a worker is still writing into it.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)


class ChunkExecutionError(RuntimeError):
    """Raised after the join when one or more pool tasks failed."""

    def __init__(self, failures: list[tuple[int, BaseException]]):
        self.failures = failures
        details = ", ".join(f"task {i}: {e!r}" for i, e in failures)
        super().__init__(f"{len(failures)} parallel task(s) failed ({details})")


class CancellationToken:
    """
    Cancellation flag handed to long-running calls.

    The caller keeps a reference and calls :meth:`cancel`; the running stage
    polls :attr:`cancelled` at its defined checkpoints and returns an empty
    result when it is set.
    """

    def __init__(self):
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation, optionally recording why."""
        self._reason = "" if reason is None else reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason!r})" if self.cancelled else "active"
        return f"CancellationToken<{state}>"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    """True when a token was given and has been cancelled."""
    return token is not None and token.cancelled


def resolve_workers(n_workers: Optional[int] = None) -> int:
    """Pool size: the explicit value, else the number of CPUs, never below 1."""
    if n_workers is None:
        n_workers = os.cpu_count() or 1
    return max(int(n_workers), 1)


def largest_axis(shape: Sequence[int]) -> int:
    """Index of the longest axis (first one on ties)."""
    if len(shape) == 0:
        raise ValueError("Cannot pick an axis of a 0-dimensional shape")
    return max(range(len(shape)), key=lambda d: (shape[d], -d))


def split_range(length: int, n_chunks: int) -> list[tuple[int, int]]:
    """
    Partition ``range(length)`` into contiguous half-open chunks.

    All chunks but the last have ``length // n_chunks`` elements; the last one
    absorbs the remainder. Never returns more chunks than elements.

    Args:
        length: Number of elements to split.
        n_chunks: Requested number of chunks (values below 1 mean 1).

    Returns:
        List of ``(start, stop)`` pairs covering ``[0, length)`` exactly once.
    """
    if length <= 0:
        return []

    n_chunks = min(max(n_chunks, 1), length)
    step = length // n_chunks

    bounds = []
    for i in range(n_chunks):
        start = i * step
        stop = length if i == n_chunks - 1 else start + step
        bounds.append((start, stop))

    return bounds


def run_tasks(
    tasks: Sequence[Callable[[], object]],
    n_workers: Optional[int] = None,
    require_complete: bool = True,
) -> list[tuple[int, BaseException]]:
    """
    Run tasks on a thread pool and wait for all of them.

    Tasks must write to disjoint outputs; no locking is done here. A failing
    task does not stop its siblings.

    Args:
        tasks: Zero-argument callables.
        n_workers: Pool size (see :func:`resolve_workers`).
        require_complete: If True, raise :class:`ChunkExecutionError` once all
            tasks have joined and at least one failed. If False, failures are
            logged and returned.

    Returns:
        List of ``(task_index, exception)`` for failed tasks.
    """
    n_workers = resolve_workers(n_workers)
    failures: list[tuple[int, BaseException]] = []

    if n_workers == 1 or len(tasks) <= 1:
        for i, task in enumerate(tasks):
            try:
                task()
            except Exception as e:
                failures.append((i, e))
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(task) for task in tasks]
            # Join barrier: exception() blocks until each task is done.
            for i, future in enumerate(futures):
                exc = future.exception()
                if exc is not None:
                    failures.append((i, exc))

    if failures:
        if require_complete:
            raise ChunkExecutionError(failures)
        for i, exc in failures:
            logger.warning("Parallel task %d failed and was skipped: %r", i, exc)

    return failures
