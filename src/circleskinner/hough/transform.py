"""
Circular Hough transform of binary images.

Every foreground pixel votes for all the circles that pass through it: for
each candidate radius r, the pixels at distance r from it (a rasterized
circle) receive one vote each. A circle of radius r centered at c then
collects roughly one vote per foreground pixel lying on it.

The vote volume has one axis more than the image: the last axis indexes the
candidate radii min_radius, min_radius + step_radius, ...

Circles are rasterized with the midpoint circle algorithm. The point set of
one radius is computed once and reused for every foreground pixel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import numpy as np
from tqdm import tqdm

from ..concurrency import CancellationToken, is_cancelled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteVolume:
    """Hough accumulator: image axes plus one radius-bin axis."""

    votes: np.ndarray  # shape (*image_shape, n_bins)
    min_radius: int
    step_radius: int

    @property
    def n_bins(self) -> int:
        return self.votes.shape[-1]

    @property
    def max_radius(self) -> int:
        return self.min_radius + (self.n_bins - 1) * self.step_radius

    @property
    def radii(self) -> np.ndarray:
        return self.min_radius + self.step_radius * np.arange(self.n_bins)

    def radius_at(self, index: float) -> float:
        """Radius of a (possibly fractional) bin index."""
        return self.min_radius + index * self.step_radius

    def radius_slice(self, index: int) -> np.ndarray:
        """Votes for one radius bin, shaped like the image."""
        return self.votes[..., index]


@lru_cache(maxsize=512)
def _midpoint_circle(radius: int) -> np.ndarray:
    x = 0
    y = radius
    f = 1 - radius
    ddx = 1
    ddy = -2 * radius

    octant = [(x, y)]
    while x < y:
        if f >= 0:
            y -= 1
            ddy += 2
            f += ddy
        x += 1
        ddx += 2
        f += ddx
        octant.append((x, y))

    points = set()
    for a, b in octant:
        for sa in (1, -1):
            for sb in (1, -1):
                points.add((sa * a, sb * b))
                points.add((sb * b, sa * a))

    arr = np.array(sorted(points), dtype=np.intp)
    arr.flags.writeable = False
    return arr


def midpoint_circle(radius: int) -> np.ndarray:
    """
    Integer offsets of a rasterized circle (midpoint circle algorithm).

    One octant is traced from (0, r) while x < y; the 8-fold reflections
    (+/-x, +/-y) and (+/-y, +/-x) of its points form the circle. Points on the
    axes and on the diagonals are shared by two octants and appear once.

    For r = 5 the octant is (0,5), (1,5), (2,5), (3,4), giving 28 points.

    Args:
        radius: Non-negative integer radius. Radius 0 gives the single
            point (0, 0).

    Returns:
        Read-only (N, 2) integer array of offsets, sorted, without duplicates.
    """
    radius = int(radius)
    if radius < 0:
        raise ValueError(f"Radius must be non-negative, got {radius}")
    return _midpoint_circle(radius)


def normalize_radius_range(
    min_radius: int,
    max_radius: int,
    step_radius: int,
) -> tuple[int, int, int]:
    """
    Validate a radius range, swapping the bounds if given in reverse.

    Raises:
        ValueError: If a radius or the step is below 1.
    """
    min_radius, max_radius, step_radius = int(min_radius), int(max_radius), int(step_radius)

    if max_radius < min_radius:
        min_radius, max_radius = max_radius, min_radius

    if min_radius < 1:
        raise ValueError(f"Minimum radius must be at least 1, got {min_radius}")
    if step_radius < 1:
        raise ValueError(f"Radius step must be at least 1, got {step_radius}")

    return min_radius, max_radius, step_radius


def n_radius_bins(min_radius: int, max_radius: int, step_radius: int) -> int:
    """floor((max - min) / step) + 1, after normalizing the range."""
    min_radius, max_radius, step_radius = normalize_radius_range(min_radius, max_radius, step_radius)
    return (max_radius - min_radius) // step_radius + 1


def accumulate(
    mask: np.ndarray,
    min_radius: int,
    max_radius: int,
    step_radius: int,
    cancel: Optional[CancellationToken] = None,
    progress: bool = False,
) -> VoteVolume:
    """
    Hough transform of a 2D binary image.

    Args:
        mask: 2D array; non-zero samples are foreground.
        min_radius: Smallest candidate radius (pixels).
        max_radius: Largest candidate radius (pixels). Swapped with
            min_radius if smaller.
        step_radius: Radius increment between bins.
        cancel: Token polled after each foreground pixel.
        progress: Show a progress bar over the foreground pixels.

    Returns:
        VoteVolume of shape ``(*mask.shape, n_bins)``. If the token was
        cancelled the volume is incomplete and must be discarded.

    Raises:
        ValueError: If the mask is not 2D or the radius range is invalid.
    """
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise ValueError(f"Cannot compute Hough transform of non-2D images. Got {mask.ndim}D image.")

    min_radius, max_radius, step_radius = normalize_radius_range(min_radius, max_radius, step_radius)
    n_bins = (max_radius - min_radius) // step_radius + 1
    height, width = mask.shape

    votes = np.zeros((height, width, n_bins), dtype=np.float64)

    # Offsets of all radii stacked, with the bin each offset votes into.
    # Within one radius the offsets are distinct, and bins differ between
    # radii, so one pixel never increments the same voxel twice.
    circles = [midpoint_circle(min_radius + i * step_radius) for i in range(n_bins)]
    offsets = np.concatenate(circles)
    bins = np.concatenate([np.full(len(c), i, dtype=np.intp) for i, c in enumerate(circles)])

    foreground = np.argwhere(mask)
    logger.debug("Hough transform: %d foreground pixels, %d radius bins (%d-%d step %d)",
                 len(foreground), n_bins, min_radius, max_radius, step_radius)

    iterator = tqdm(foreground, desc="Hough transform") if progress else foreground
    for row, col in iterator:
        rows = row + offsets[:, 0]
        cols = col + offsets[:, 1]
        inside = (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)
        votes[rows[inside], cols[inside], bins[inside]] += 1.0

        if is_cancelled(cancel):
            logger.debug("Hough transform cancelled")
            break

    votes.flags.writeable = False
    return VoteVolume(votes=votes, min_radius=min_radius, step_radius=step_radius)
