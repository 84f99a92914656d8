"""
Packed storage of per-pixel symmetric matrices.

A symmetric n x n matrix has n(n+1)/2 distinct entries. Tensor fields store
them on their last axis in upper-triangular, row-major order:

    (0,0), (0,1), ..., (0,n-1), (1,1), (1,2), ..., (n-1,n-1)

Square (non-symmetric) tensors use plain row-major order with n*n slots.
"""

from __future__ import annotations

import math

import numpy as np


def n_packed(n: int, symmetric: bool = True) -> int:
    """Number of slots needed to store one n x n matrix."""
    return n * (n + 1) // 2 if symmetric else n * n


def rank_from_length(length: int, symmetric: bool = True) -> int:
    """
    Recover the matrix size n from a packed slot count.

    Raises:
        ValueError: If ``length`` is not a valid packed length.
    """
    if symmetric:
        n = int(round((math.sqrt(8 * length + 1) - 1) / 2))
    else:
        n = int(round(math.sqrt(length)))

    if n < 1 or n_packed(n, symmetric) != length:
        kind = "symmetric" if symmetric else "square"
        raise ValueError(f"{length} is not a valid packed length for a {kind} matrix")

    return n


def packed_index(row: int, col: int, n: int) -> int:
    """
    Slot of entry (row, col) in a packed symmetric n x n matrix.

    (row, col) and (col, row) map to the same slot.

    Raises:
        IndexError: If row or col is outside ``[0, n)``.
    """
    if not 0 <= row < n:
        raise IndexError(f"Row {row} out of range for a {n}x{n} matrix")
    if not 0 <= col < n:
        raise IndexError(f"Column {col} out of range for a {n}x{n} matrix")

    d1, d2 = (row, col) if row <= col else (col, row)
    return d1 * n - d1 * (d1 - 1) // 2 + (d2 - d1)


def square_index(row: int, col: int, n: int) -> int:
    """Slot of entry (row, col) in a row-major packed square n x n matrix."""
    if not 0 <= row < n:
        raise IndexError(f"Row {row} out of range for a {n}x{n} matrix")
    if not 0 <= col < n:
        raise IndexError(f"Column {col} out of range for a {n}x{n} matrix")
    return row * n + col


def symmetric_slot_table(n: int) -> np.ndarray:
    """n x n integer table with ``table[i, j] == packed_index(i, j, n)``."""
    table = np.empty((n, n), dtype=np.intp)
    for i in range(n):
        for j in range(n):
            table[i, j] = packed_index(i, j, n)
    return table


def unpack_symmetric(packed: np.ndarray) -> np.ndarray:
    """
    Expand packed symmetric matrices on the last axis to dense matrices.

    Args:
        packed: Array of shape ``(..., n(n+1)/2)``.

    Returns:
        Array of shape ``(..., n, n)``.
    """
    n = rank_from_length(packed.shape[-1], symmetric=True)
    return packed[..., symmetric_slot_table(n)]


def unpack_square(packed: np.ndarray) -> np.ndarray:
    """Reshape row-major packed square matrices ``(..., n*n)`` to ``(..., n, n)``."""
    n = rank_from_length(packed.shape[-1], symmetric=False)
    return packed.reshape(packed.shape[:-1] + (n, n))


class PackedSymmetricMatrixView:
    """
    Matrix view over one packed slot vector, without copying it.

    Writes go straight to the underlying vector, so ``set(i, j, v)`` is seen by
    both ``get(i, j)`` and ``get(j, i)``.
    """

    def __init__(self, data: np.ndarray, n: int | None = None):
        if data.ndim != 1:
            raise ValueError(f"Expected a 1D slot vector, got shape {data.shape}")

        if n is None:
            n = rank_from_length(data.shape[0])
        elif n_packed(n) != data.shape[0]:
            raise ValueError(
                f"A {n}x{n} symmetric matrix needs {n_packed(n)} slots, got {data.shape[0]}"
            )

        self.data = data
        self.n = n

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n, self.n)

    def get(self, row: int, col: int) -> float:
        return float(self.data[packed_index(row, col, self.n)])

    def set(self, row: int, col: int, value: float) -> None:
        self.data[packed_index(row, col, self.n)] = value

    def to_array(self) -> np.ndarray:
        """Dense copy of the matrix."""
        return self.data[symmetric_slot_table(self.n)]

    def __array__(self, dtype=None, copy=None):
        if copy is False:
            raise ValueError("A dense array cannot be built from packed slots without copying")
        # to_array() already returns a new array.
        return self.to_array().astype(dtype, copy=False) if dtype is not None else self.to_array()

    def __repr__(self) -> str:
        return f"PackedSymmetricMatrixView(n={self.n}, data={self.data!r})"
