"""
Per-sample eigenvalues of packed tensor fields.

The solver is picked once per call from the matrix size n:

- n = 1: the single entry is its own eigenvalue
- n = 2: closed form, (trace +/- sqrt((a11 - a22)^2 + 4 a12 a21)) / 2
- n > 2: dense decomposition with numpy.linalg

All paths return eigenvalues sorted in descending order (largest first).

The work is split along the largest spatial axis into one contiguous chunk
per worker; each worker writes only its own slice of the output.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from ..concurrency import largest_axis, resolve_workers, run_tasks, split_range
from .packed import rank_from_length, unpack_square, unpack_symmetric
from .tensor_field import TensorField

logger = logging.getLogger(__name__)

Solver = Callable[[np.ndarray], np.ndarray]


def _scalar(packed: np.ndarray) -> np.ndarray:
    return packed[..., :1].copy()


def _symmetric_2d(packed: np.ndarray) -> np.ndarray:
    a11 = packed[..., 0]
    a12 = packed[..., 1]
    a22 = packed[..., 2]

    trace = a11 + a22
    root = np.sqrt((a11 - a22) ** 2 + 4.0 * a12 * a12)

    out = np.empty(packed.shape[:-1] + (2,), dtype=np.float64)
    out[..., 0] = 0.5 * (trace + root)
    out[..., 1] = 0.5 * (trace - root)
    return out


def _symmetric_nd(packed: np.ndarray) -> np.ndarray:
    # eigvalsh returns ascending order.
    return np.linalg.eigvalsh(unpack_symmetric(packed))[..., ::-1]


def _square_2d(packed: np.ndarray) -> np.ndarray:
    a11 = packed[..., 0]
    a12 = packed[..., 1]
    a21 = packed[..., 2]
    a22 = packed[..., 3]

    trace = a11 + a22
    # A negative discriminant means a complex pair; both real parts are trace/2.
    discriminant = (a11 - a22) ** 2 + 4.0 * a12 * a21
    root = np.sqrt(np.maximum(discriminant, 0.0))

    out = np.empty(packed.shape[:-1] + (2,), dtype=np.float64)
    out[..., 0] = 0.5 * (trace + root)
    out[..., 1] = 0.5 * (trace - root)
    return out


def _square_nd(packed: np.ndarray) -> np.ndarray:
    values = np.linalg.eigvals(unpack_square(packed)).real
    return -np.sort(-values, axis=-1)


def symmetric_solver(n: int) -> Solver:
    """Eigenvalue routine for packed symmetric n x n matrices."""
    if n < 1:
        raise ValueError(f"Matrix size must be at least 1, got {n}")
    if n == 1:
        return _scalar
    if n == 2:
        return _symmetric_2d
    return _symmetric_nd


def square_solver(n: int) -> Solver:
    """Eigenvalue routine for row-major packed square n x n matrices."""
    if n < 1:
        raise ValueError(f"Matrix size must be at least 1, got {n}")
    if n == 1:
        return _scalar
    if n == 2:
        return _square_2d
    return _square_nd


def _solve_chunked(
    packed: np.ndarray,
    n: int,
    solver: Solver,
    n_workers: Optional[int],
    require_complete: bool,
) -> np.ndarray:
    spatial_shape = packed.shape[:-1]
    out = np.full(spatial_shape + (n,), np.nan, dtype=np.float64)

    if len(spatial_shape) == 0:
        out[...] = solver(packed)
        return out

    axis = largest_axis(spatial_shape)
    chunks = split_range(spatial_shape[axis], resolve_workers(n_workers))

    def chunk_task(start: int, stop: int):
        index = [slice(None)] * len(spatial_shape)
        index[axis] = slice(start, stop)
        index = tuple(index)

        def task():
            out[index] = solver(packed[index])
        return task

    run_tasks(
        [chunk_task(start, stop) for start, stop in chunks],
        n_workers,
        require_complete=require_complete,
    )
    logger.debug("Eigenvalues of %s computed in %d chunk(s) along axis %d",
                 spatial_shape, len(chunks), axis)
    return out


def tensor_eigenvalues(
    tensor: TensorField | np.ndarray,
    n_workers: Optional[int] = None,
    require_complete: bool = True,
) -> np.ndarray:
    """
    Eigenvalues of every symmetric tensor of a field.

    Args:
        tensor: TensorField, or an array whose last axis holds packed
            symmetric matrices (length n(n+1)/2).
        n_workers: Number of chunks/threads (default: CPU count).
        require_complete: If False, a failing chunk is logged and its slice
            is left as NaN instead of raising.

    Returns:
        Read-only array of shape ``(*spatial_shape, n)``, eigenvalues sorted
        largest first.
    """
    packed = tensor.data if isinstance(tensor, TensorField) else np.asarray(tensor, dtype=np.float64)
    n = rank_from_length(packed.shape[-1], symmetric=True)

    out = _solve_chunked(packed, n, symmetric_solver(n), n_workers, require_complete)
    out.flags.writeable = False
    return out


def square_eigenvalues(
    tensor: np.ndarray,
    n_workers: Optional[int] = None,
    require_complete: bool = True,
) -> np.ndarray:
    """
    Real parts of the eigenvalues of row-major packed square matrices.

    Args:
        tensor: Array whose last axis holds n*n entries per sample.
        n_workers: Number of chunks/threads (default: CPU count).
        require_complete: See :func:`tensor_eigenvalues`.

    Returns:
        Read-only array of shape ``(*spatial_shape, n)``, sorted largest first.
    """
    packed = np.asarray(tensor, dtype=np.float64)
    n = rank_from_length(packed.shape[-1], symmetric=False)

    out = _solve_chunked(packed, n, square_solver(n), n_workers, require_complete)
    out.flags.writeable = False
    return out
