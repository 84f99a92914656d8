"""
Detected rings and their intensity statistics.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence


@dataclass(frozen=True)
class RingStatistics:
    """Intensity statistics over a ring's annulus in one channel."""

    count: int  # Number of samples in the annulus
    mean: Optional[float] = None  # None when count == 0
    std: Optional[float] = None  # Sample standard deviation (ddof=1)
    median: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return self.count > 0

    @classmethod
    def no_data(cls) -> "RingStatistics":
        """Marker for an annulus that covers no sample of the channel."""
        return cls(count=0)


@dataclass(frozen=True)
class Ring:
    """
    A detected ring.

    Coordinates are in array-axis order (row, column for 2D images). The
    score is cost-like: lower means a stronger detection.
    """

    center: tuple[float, ...]
    radius: float
    thickness: float
    score: float
    statistics: Optional[RingStatistics] = None

    @property
    def x(self) -> float:
        """Column coordinate of the center (2D images)."""
        return self.center[1]

    @property
    def y(self) -> float:
        """Row coordinate of the center (2D images)."""
        return self.center[0]

    @property
    def inner_radius(self) -> float:
        return self.radius - self.thickness / 2.0

    @property
    def outer_radius(self) -> float:
        return self.radius + self.thickness / 2.0

    def area(self) -> float:
        """Area of the annulus."""
        return math.pi * (self.outer_radius ** 2 - self.inner_radius ** 2)

    def _squared_distance(self, point: Sequence[float]) -> float:
        return sum((c - p) ** 2 for c, p in zip(self.center, point))

    def contains(self, point: Sequence[float]) -> bool:
        """True when the point lies on the annulus (bounds included)."""
        dr2 = self._squared_distance(point)
        r_min = self.inner_radius
        r_max = self.outer_radius
        return r_min * r_min <= dr2 <= r_max * r_max

    def contains_center(self, point: Sequence[float]) -> bool:
        """True when the point lies inside the ring's disk of radius ``radius``."""
        return self._squared_distance(point) <= self.radius * self.radius

    def with_statistics(self, statistics: RingStatistics) -> "Ring":
        """
        Copy of this ring carrying the given statistics.

        Statistics are write-once: attaching different statistics to a ring
        that already has some raises ValueError.
        """
        if self.statistics is not None and self.statistics != statistics:
            raise ValueError("Ring already carries different statistics")
        return replace(self, statistics=statistics)

    def to_dict(self) -> dict:
        """Flat dictionary for tables and JSON."""
        out = {
            "center": list(self.center),
            "radius": self.radius,
            "thickness": self.thickness,
            "score": self.score,
        }
        if self.statistics is not None:
            out.update({
                "mean": self.statistics.mean,
                "std": self.statistics.std,
                "count": self.statistics.count,
                "median": self.statistics.median,
            })
        return out

    def __str__(self) -> str:
        center = ",".join(f"{c:.1f}" for c in self.center)
        return (f"({center})\tR={self.radius:.1f}\t±\t{self.thickness / 2:.1f}"
                f"\tSensitivity={self.score:.1f}")


RingSet = list[Ring]


def sort_by_score(rings: Sequence[Ring]) -> RingSet:
    """Rings sorted ascending by score (strongest first)."""
    return sorted(rings, key=lambda ring: ring.score)


def ring_score(radius: float, thickness: float, strength: float) -> float:
    """
    Detection score 2*pi*radius*thickness / strength.

    A perfect ring of that size would collect about 2*pi*radius*thickness
    votes, so the score is the inverse of the fraction actually collected.
    Returns inf for a zero strength.
    """
    if strength == 0:
        return math.inf
    return 2.0 * math.pi * radius * thickness / strength


def score_is_valid(score: float, sensitivity: float) -> bool:
    """Finite, non-negative and not above the sensitivity ceiling."""
    return math.isfinite(score) and 0 <= score <= sensitivity
