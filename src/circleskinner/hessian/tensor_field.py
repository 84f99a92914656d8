"""
Second-derivative (Hessian) tensor fields of n-dimensional images.

The tensor field is built the way ridge filters usually do it:

1. Smooth the image with a Gaussian of per-axis sigma (pixel units)
2. Take the central-difference gradient along every axis
3. Differentiate each gradient component again along every axis d2 >= d1

Only the upper triangle is computed; the result is stored packed on a
trailing axis of length n(n+1)/2 (see :mod:`circleskinner.hessian.packed`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy import ndimage

from ..concurrency import run_tasks
from .packed import PackedSymmetricMatrixView, n_packed, packed_index

logger = logging.getLogger(__name__)

# Border extension names (scipy.ndimage vocabulary) -> numpy.pad modes.
EXTENSION_MODES = {
    "mirror": "reflect",
    "reflect": "symmetric",
    "nearest": "edge",
    "constant": "constant",
    "wrap": "wrap",
}


@dataclass(frozen=True)
class TensorField:
    """Packed symmetric second-derivative tensor per sample."""

    data: np.ndarray  # shape (*spatial_shape, n(n+1)/2)
    sigma: tuple[float, ...]  # Smoothing used, per axis

    @property
    def ndim(self) -> int:
        """Number of spatial dimensions n."""
        return self.data.ndim - 1

    @property
    def shape(self) -> tuple[int, ...]:
        return self.data.shape[:-1]

    def component(self, d1: int, d2: int) -> np.ndarray:
        """Second derivative along axes d1 and d2 (order does not matter)."""
        return self.data[..., packed_index(d1, d2, self.ndim)]

    def matrix_at(self, index: Sequence[int]) -> PackedSymmetricMatrixView:
        """Matrix view of the tensor at one sample position."""
        return PackedSymmetricMatrixView(self.data[tuple(index)], self.ndim)


def central_difference(
    field: np.ndarray,
    axis: int,
    mode: str = "mirror",
) -> np.ndarray:
    """
    Central-difference derivative ``(f[i+1] - f[i-1]) / 2`` along one axis.

    The field is extended by one sample on both sides of ``axis`` using the
    given border mode.

    Raises:
        ValueError: If the mode is unknown or the axis is too short to extend.
    """
    if mode not in EXTENSION_MODES:
        raise ValueError(
            f"Unknown extension mode: {mode!r} (expected one of {sorted(EXTENSION_MODES)})"
        )
    if field.shape[axis] < 2:
        raise ValueError(
            f"Axis {axis} has {field.shape[axis]} sample(s); at least 2 are needed "
            "to extend the field by one sample"
        )

    pad = [(0, 0)] * field.ndim
    pad[axis] = (1, 1)
    padded = np.pad(field, pad, mode=EXTENSION_MODES[mode])

    upper = [slice(None)] * field.ndim
    lower = [slice(None)] * field.ndim
    upper[axis] = slice(2, None)
    lower[axis] = slice(None, -2)

    return (padded[tuple(upper)] - padded[tuple(lower)]) / 2.0


def _per_axis_sigma(sigma: float | Sequence[float], ndim: int) -> tuple[float, ...]:
    if np.isscalar(sigma):
        sigmas = (float(sigma),) * ndim
    else:
        sigmas = tuple(float(s) for s in sigma)
        if len(sigmas) != ndim:
            raise ValueError(f"Got {len(sigmas)} sigma values for a {ndim}D image")

    if any(s < 0 for s in sigmas):
        raise ValueError(f"Sigma must be non-negative, got {sigmas}")

    return sigmas


def build_tensor_field(
    source: np.ndarray,
    sigma: float | Sequence[float],
    mode: str = "mirror",
    n_workers: Optional[int] = None,
) -> TensorField:
    """
    Compute the Hessian tensor field of an n-dimensional image.

    Args:
        source: n-dimensional real image.
        sigma: Gaussian smoothing in pixel units, scalar or one per axis.
        mode: Border extension used for smoothing and differences
            ('mirror', 'reflect', 'nearest', 'constant', 'wrap').
        n_workers: Number of threads for the derivative passes.

    Returns:
        TensorField with n(n+1)/2 packed entries per sample.

    Raises:
        ValueError: On a 0-dimensional source, an axis shorter than 2 samples,
            a sigma/axis count mismatch or an unknown mode.
    """
    source = np.asarray(source, dtype=np.float64)
    n = source.ndim

    if n == 0:
        raise ValueError("Cannot compute a tensor field of a 0-dimensional image")
    if mode not in EXTENSION_MODES:
        raise ValueError(f"Unknown extension mode: {mode!r}")
    if min(source.shape) < 2:
        raise ValueError(
            f"Every axis needs at least 2 samples for border extension, got shape {source.shape}"
        )

    sigmas = _per_axis_sigma(sigma, n)
    shape = source.shape

    smoothed = ndimage.gaussian_filter(source, sigma=sigmas, mode=mode)

    # First derivatives, one task per axis.
    gradient = np.empty(shape + (n,), dtype=np.float64)

    def gradient_task(d: int):
        def task():
            gradient[..., d] = central_difference(smoothed, d, mode)
        return task

    run_tasks([gradient_task(d) for d in range(n)], n_workers)

    # Second derivatives, one task per (d1 <= d2) pair.
    hessian = np.empty(shape + (n_packed(n),), dtype=np.float64)

    def hessian_task(d1: int, d2: int):
        slot = packed_index(d1, d2, n)

        def task():
            hessian[..., slot] = central_difference(gradient[..., d1], d2, mode)
        return task

    pairs = [(d1, d2) for d1 in range(n) for d2 in range(d1, n)]
    run_tasks([hessian_task(d1, d2) for d1, d2 in pairs], n_workers)

    hessian.flags.writeable = False
    logger.debug("Tensor field %s built with sigma=%s", hessian.shape, sigmas)

    return TensorField(data=hessian, sigma=sigmas)
