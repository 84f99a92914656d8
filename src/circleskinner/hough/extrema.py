"""
Local extremum search and sub-pixel peak refinement in n-dimensional arrays.

Extrema are searched over the full 3^n - 1 neighbourhood. Samples on the
array border have an incomplete neighbourhood and are never reported.

Refinement fits a quadratic to the 3^n neighbourhood of a peak (gradient and
Hessian by central differences) and moves to the fitted optimum. When the
optimum lies more than half a sample away along some axis, the peak is moved
one sample in that direction and the fit is repeated, a bounded number of
times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import ndimage

from ..concurrency import largest_axis, resolve_workers, run_tasks, split_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefinedPeak:
    """A peak with sub-pixel position and interpolated value."""

    position: tuple[float, ...]
    value: float
    origin: tuple[int, ...]  # Integer position the search started from
    stable: bool  # True if the fit converged to an extremum of the right kind


def _neighbour_footprint(ndim: int) -> np.ndarray:
    footprint = np.ones((3,) * ndim, dtype=bool)
    footprint[(1,) * ndim] = False
    return footprint


def find_local_extrema(
    volume: np.ndarray,
    threshold: float,
    kind: str = "max",
    n_workers: Optional[int] = None,
) -> np.ndarray:
    """
    Find local maxima (or minima) of an n-dimensional array.

    For maxima a sample qualifies when it is >= threshold and > all of its
    neighbours. A sample tied with its highest neighbour is not a maximum, so
    plateaus, flat or raised, yield none. Minima mirror these rules
    (<= threshold, < all neighbours).

    The search runs in chunks along the longest axis, one task per worker.

    Args:
        volume: Array to search.
        threshold: Value a sample must reach (maxima) or not exceed (minima).
        kind: 'max' or 'min'.
        n_workers: Number of chunks/threads.

    Returns:
        (N, ndim) integer array of extremum positions in C order.
    """
    if kind not in ("max", "min"):
        raise ValueError(f"Unknown extremum kind: {kind!r}")

    volume = np.asarray(volume, dtype=np.float64)
    if kind == "min":
        volume = -volume
        threshold = -threshold

    ndim = volume.ndim
    if ndim == 0 or min(volume.shape) < 3:
        return np.empty((0, ndim), dtype=np.intp)

    footprint = _neighbour_footprint(ndim)
    is_peak = np.zeros(volume.shape, dtype=bool)

    # Interior samples only; chunks split the interior of the longest axis.
    axis = largest_axis(volume.shape)
    chunks = split_range(volume.shape[axis] - 2, resolve_workers(n_workers))

    interior = [slice(1, -1)] * ndim

    def chunk_task(start: int, stop: int):
        # Block with a one-sample halo around interior indices [1+start, 1+stop).
        block_index = [slice(None)] * ndim
        block_index[axis] = slice(start, stop + 2)
        out_index = list(interior)
        out_index[axis] = slice(1 + start, 1 + stop)

        def task():
            block = volume[tuple(block_index)]
            neighbour_max = ndimage.maximum_filter(block, footprint=footprint, mode="nearest")
            center = block[tuple(interior)]
            upper = neighbour_max[tuple(interior)]

            # Ties with the highest neighbour are rejected.
            is_peak[tuple(out_index)] = (center >= threshold) & (center > upper)
        return task

    run_tasks([chunk_task(start, stop) for start, stop in chunks], n_workers)

    return np.argwhere(is_peak)


def _quadratic_fit(volume: np.ndarray, p: np.ndarray) -> tuple[float, np.ndarray, np.ndarray]:
    """Value, gradient and Hessian at p by central differences."""
    ndim = volume.ndim
    center = float(volume[tuple(p)])
    gradient = np.zeros(ndim)
    hessian = np.zeros((ndim, ndim))

    def at(*steps):
        q = p.copy()
        for d, s in steps:
            q[d] += s
        return float(volume[tuple(q)])

    for d in range(ndim):
        plus = at((d, 1))
        minus = at((d, -1))
        gradient[d] = (plus - minus) / 2.0
        hessian[d, d] = plus - 2.0 * center + minus

        for e in range(d + 1, ndim):
            mixed = (at((d, 1), (e, 1)) - at((d, 1), (e, -1))
                     - at((d, -1), (e, 1)) + at((d, -1), (e, -1))) / 4.0
            hessian[d, e] = hessian[e, d] = mixed

    return center, gradient, hessian


def _is_extremum(hessian: np.ndarray, kind: str) -> bool:
    eig = np.linalg.eigvalsh(hessian)
    return bool(np.all(eig < 0)) if kind == "max" else bool(np.all(eig > 0))


def refine_peak(
    volume: np.ndarray,
    peak: np.ndarray,
    kind: str = "max",
    max_moves: int = 10,
    allow_tolerance: bool = True,
    tolerance: float = 0.01,
) -> Optional[RefinedPeak]:
    """
    Sub-pixel position and value of one peak.

    Args:
        volume: Array the peak was found in.
        peak: Integer position of the peak (interior sample).
        kind: 'max' or 'min'.
        max_moves: Maximum number of one-sample moves towards the fitted
            optimum.
        allow_tolerance: Accept fits that did not converge to a proper
            extremum, with the offset clamped to half a sample, as long as the
            fitted value is no worse than the sample value by more than
            ``tolerance`` (relative). Otherwise such peaks keep their integer
            position.
        tolerance: Relative tolerance on the fitted value.

    Returns:
        RefinedPeak, never None when ``allow_tolerance`` is True. With
        ``allow_tolerance=False``, unstable peaks are rejected (None).
    """
    volume = np.asarray(volume, dtype=np.float64)
    origin = tuple(int(v) for v in peak)
    p = np.array(origin, dtype=np.intp)
    lo = np.ones(volume.ndim, dtype=np.intp)
    hi = np.array(volume.shape, dtype=np.intp) - 2

    if np.any(p < lo) or np.any(p > hi):
        # No full neighbourhood, nothing to fit.
        return RefinedPeak(tuple(float(v) for v in p), float(volume[tuple(p)]), origin, False)

    stable = False
    offset = np.zeros(volume.ndim)
    center = float(volume[tuple(p)])
    gradient = np.zeros(volume.ndim)
    hessian = np.eye(volume.ndim)

    for n_moves in range(max_moves + 1):
        center, gradient, hessian = _quadratic_fit(volume, p)
        try:
            offset = -np.linalg.solve(hessian, gradient)
        except np.linalg.LinAlgError:
            offset = np.zeros(volume.ndim)
            break

        if np.all(np.abs(offset) <= 0.5):
            stable = _is_extremum(hessian, kind)
            break
        if n_moves == max_moves:
            break

        moved = np.clip(p + np.where(np.abs(offset) > 0.5, np.sign(offset), 0).astype(np.intp), lo, hi)
        if np.array_equal(moved, p):
            break
        p = moved

    offset = np.clip(offset, -0.5, 0.5)
    fitted = center + 0.5 * float(gradient @ offset)

    if stable:
        return RefinedPeak(tuple(float(v) for v in p + offset), fitted, origin, True)

    if not allow_tolerance:
        return None

    worse = center - fitted if kind == "max" else fitted - center
    if worse <= tolerance * max(abs(center), 1.0):
        return RefinedPeak(tuple(float(v) for v in p + offset), fitted, origin, False)

    return RefinedPeak(tuple(float(v) for v in p), center, origin, False)


def refine_peaks(
    volume: np.ndarray,
    peaks: np.ndarray,
    kind: str = "max",
    max_moves: int = 10,
    allow_tolerance: bool = True,
) -> list[RefinedPeak]:
    """Refine several peaks; rejected ones (see :func:`refine_peak`) are left out."""
    refined = []
    for peak in peaks:
        result = refine_peak(volume, peak, kind=kind, max_moves=max_moves,
                             allow_tolerance=allow_tolerance)
        if result is not None:
            refined.append(result)
    return refined
