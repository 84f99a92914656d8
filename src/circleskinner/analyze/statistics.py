"""
Intensity statistics over ring annuli.

A sample belongs to a ring's annulus when its squared distance to the center
lies in [(r - t/2)^2, (r + t/2)^2], bounds included. Only the bounding box
floor(center +/- (r + t/2)), clipped to the channel, is scanned.

Rings are measured independently: a sample shared by two annuli counts for
both.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

import numpy as np

from ..hough.ring import Ring, RingSet, RingStatistics

logger = logging.getLogger(__name__)


def annulus_mask(ring: Ring, shape: tuple[int, ...]) -> tuple[tuple[slice, ...], np.ndarray]:
    """
    Boolean annulus mask of a ring within its clipped bounding box.

    Returns:
        (box, mask): ``box`` indexes the channel, ``mask`` has the box's
        shape. Both are empty when the box falls outside the channel.
    """
    if len(ring.center) != len(shape):
        raise ValueError(
            f"Ring center has {len(ring.center)} coordinates, channel has {len(shape)} axes"
        )

    reach = ring.radius + ring.thickness / 2.0
    box = []
    for c, size in zip(ring.center, shape):
        lo = max(int(math.floor(c - reach)), 0)
        hi = min(int(math.floor(c + reach)), size - 1)
        box.append(slice(lo, max(hi + 1, lo)))
    box = tuple(box)

    grids = np.ogrid[box]
    dr2 = sum((g - c) ** 2 for g, c in zip(grids, ring.center))
    box_shape = tuple(s.stop - s.start for s in box)
    dr2 = np.broadcast_to(dr2, box_shape)

    r_min = ring.inner_radius
    r_max = ring.outer_radius
    mask = (dr2 >= r_min * r_min) & (dr2 <= r_max * r_max)
    return box, mask


def measure(ring: Ring, channel: np.ndarray) -> RingStatistics:
    """Statistics of the channel samples on the ring's annulus."""
    channel = np.asarray(channel)
    box, mask = annulus_mask(ring, channel.shape)
    values = channel[box][mask].astype(np.float64)

    count = int(values.size)
    if count == 0:
        return RingStatistics.no_data()

    std = float(np.std(values, ddof=1)) if count > 1 else 0.0
    return RingStatistics(
        count=count,
        mean=float(np.mean(values)),
        std=std,
        median=float(np.median(values)),
    )


def annotate(ring: Ring, channel: np.ndarray) -> Ring:
    """
    Attach the channel's annulus statistics to a ring.

    Annotating twice with the same channel returns an equal ring. Annotating
    a ring that already carries statistics from another channel raises
    ValueError; measure it from the unannotated ring instead.
    """
    return ring.with_statistics(measure(ring, channel))


def annotate_all(rings: Iterable[Ring], channel: np.ndarray) -> RingSet:
    """Annotate every ring, keeping their order."""
    annotated = [annotate(ring, channel) for ring in rings]
    empty = sum(1 for ring in annotated if not ring.statistics.has_data)
    if empty:
        logger.debug("%d of %d rings cover no sample of the channel", empty, len(annotated))
    return annotated
