"""
Tubeness: a ridge-strength scalar derived from Hessian eigenvalues.

Across a bright ridge the intensity curves downward, so the Hessian has
strongly negative eigenvalues in the directions perpendicular to the ridge
and one eigenvalue near zero along it. With eigenvalues sorted largest first,
the n-1 smallest ones describe the cross-section:

    tubeness = sigma^2 * (|l_2| * ... * |l_n|) ** (1 / (n - 1))

when all of l_2..l_n are negative, 0 otherwise. In 2D this is
sigma^2 * |l_2|, in 3D sigma^2 * sqrt(l_2 * l_3). A 1D signal uses its single
eigenvalue. The sigma^2 factor makes responses comparable across scales.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .eigenvalues import tensor_eigenvalues
from .tensor_field import build_tensor_field


def tubeness_from_eigenvalues(eigenvalues: np.ndarray, sigma: float) -> np.ndarray:
    """
    Tubeness from eigenvalues sorted in descending order.

    Args:
        eigenvalues: Array of shape ``(..., n)``, largest eigenvalue first.
        sigma: Scale at which the Hessian was computed.

    Returns:
        Non-negative array of shape ``(...)``.
    """
    n = eigenvalues.shape[-1]
    scale = sigma * sigma

    if n == 1:
        values = eigenvalues[..., 0]
        return np.where(values < 0, scale * np.abs(values), 0.0)

    cross_section = eigenvalues[..., 1:]
    is_ridge = np.all(cross_section < 0, axis=-1)
    magnitude = np.prod(np.abs(cross_section), axis=-1) ** (1.0 / (n - 1))

    return np.where(is_ridge, scale * magnitude, 0.0)


def tubeness(
    image: np.ndarray,
    sigma: float,
    calibration: Optional[Sequence[float]] = None,
    mode: str = "mirror",
    n_workers: Optional[int] = None,
) -> np.ndarray:
    """
    Enhance bright tubular (2D: line-like) structures of an image.

    Args:
        image: n-dimensional image.
        sigma: Scale in physical units.
        calibration: Pixel size per axis (default 1 for all axes). The
            smoothing along axis d is ``sigma / calibration[d]`` pixels.
        mode: Border extension mode for the Hessian computation.
        n_workers: Number of threads.

    Returns:
        Read-only tubeness image with the same shape as ``image``.
    """
    image = np.asarray(image, dtype=np.float64)

    if calibration is None:
        calibration = [1.0] * image.ndim
    if len(calibration) != image.ndim:
        raise ValueError(f"Got {len(calibration)} calibration values for a {image.ndim}D image")

    sigmas = [sigma / c for c in calibration]

    field = build_tensor_field(image, sigmas, mode=mode, n_workers=n_workers)
    eigenvalues = tensor_eigenvalues(field, n_workers=n_workers)

    result = tubeness_from_eigenvalues(eigenvalues, sigma)
    result.flags.writeable = False
    return result
