"""
Ring detection in Hough vote volumes.

Two detectors share one contract: given a vote volume (image axes plus a
radius-bin axis), return the rings it supports, sorted by ascending score.

- DogRingDetector treats the radius axis as one more scale axis and looks for
  minima of a difference of Gaussians. It smooths away isolated noisy votes.
- LocalMaxRingDetector takes the local maxima of the raw votes, removes
  duplicates by non-maximum suppression, then refines the survivors.

Scores follow 2*pi*radius*thickness / votes: a perfect ring of that size
collects about 2*pi*radius*thickness votes, so 1 means a complete ring and
larger values mean weaker evidence. Only scores up to the sensitivity are
kept.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np
from scipy import ndimage

from ..concurrency import CancellationToken, is_cancelled, run_tasks
from .extrema import find_local_extrema, refine_peaks
from .ring import Ring, RingSet, ring_score, score_is_valid, sort_by_score
from .transform import VoteVolume

logger = logging.getLogger(__name__)

# Ratio between the outer and inner scale of the difference of Gaussians.
K = 1.6


def vote_threshold(min_radius: float, circle_thickness: float, sensitivity: float) -> float:
    """Fewest votes a ring of the smallest radius needs to score within sensitivity."""
    return 2.0 * math.pi * min_radius * circle_thickness / sensitivity


def _votes_array(votes: VoteVolume | np.ndarray) -> np.ndarray:
    if isinstance(votes, VoteVolume):
        return votes.votes
    return np.asarray(votes, dtype=np.float64)


def _check_parameters(circle_thickness: float, step_radius: float, sensitivity: float) -> None:
    if circle_thickness < 1:
        raise ValueError(f"Circle thickness must be at least 1, got {circle_thickness}")
    if step_radius <= 0:
        raise ValueError(f"Radius step must be positive, got {step_radius}")
    if sensitivity <= 0:
        raise ValueError(f"Sensitivity must be positive, got {sensitivity}")


class RingDetector(ABC):
    """Extracts rings from a vote volume."""

    name = "abstract"

    def __init__(self, n_workers: Optional[int] = None):
        self.n_workers = n_workers

    @abstractmethod
    def detect(
        self,
        votes: VoteVolume | np.ndarray,
        circle_thickness: float,
        min_radius: float,
        step_radius: float,
        sensitivity: float,
        cancel: Optional[CancellationToken] = None,
    ) -> RingSet:
        """
        Detect rings.

        Args:
            votes: Vote volume, radius bins on the last axis.
            circle_thickness: Ring thickness in pixels.
            min_radius: Radius of bin 0.
            step_radius: Radius increment between bins.
            sensitivity: Highest score kept.
            cancel: Token checked between phases.

        Returns:
            Rings sorted by ascending score; empty if cancelled.
        """


class DogRingDetector(RingDetector):
    """
    Difference-of-Gaussians extremum search over (position, radius).

    The vote volume is smoothed at sigma = thickness / sqrt(ndim) and at
    sigma / K. Their difference G(sigma) - G(sigma / K) is strongly negative
    on vote peaks, so rings are found as strict local minima at or below
    minus the vote threshold.
    """

    name = "dog"

    def detect(self, votes, circle_thickness, min_radius, step_radius, sensitivity, cancel=None):
        _check_parameters(circle_thickness, step_radius, sensitivity)
        if is_cancelled(cancel):
            return []

        volume = _votes_array(votes)
        ndim = volume.ndim
        threshold = vote_threshold(min_radius, circle_thickness, sensitivity)
        sigma = circle_thickness / math.sqrt(ndim)

        smoothed = {}

        def smooth_task(key: str, s: float):
            def task():
                smoothed[key] = ndimage.gaussian_filter(volume, sigma=s, mode="constant")
            return task

        run_tasks([smooth_task("inner", sigma / K), smooth_task("outer", sigma)], self.n_workers)
        dog = smoothed["outer"] - smoothed["inner"]

        minima = find_local_extrema(dog, -threshold, kind="min", n_workers=self.n_workers)
        refined = refine_peaks(dog, minima, kind="min")

        if is_cancelled(cancel):
            return []

        rings = []
        for peak in refined:
            radius = min_radius + peak.position[-1] * step_radius
            # Minima are negative.
            score = ring_score(radius, circle_thickness, -peak.value)
            if not score_is_valid(score, sensitivity) or score <= 0:
                continue
            rings.append(Ring(
                center=peak.position[:-1],
                radius=radius,
                thickness=circle_thickness,
                score=score,
            ))

        logger.debug("DoG detector: %d minima, %d rings kept", len(minima), len(rings))
        return sort_by_score(rings)


def non_maximum_suppression(candidates: Sequence[Ring]) -> RingSet:
    """
    Remove rings whose center falls inside a stronger ring's disk.

    Candidates are visited strongest (lowest score) first. A candidate is kept
    unless its center lies within ``radius`` of the center of a ring already
    kept, whatever its own radius. Of two rings containing each other's
    centers, only the stronger survives.

    Returns:
        Kept rings, sorted by ascending score.
    """
    kept: list[Ring] = []
    for candidate in sort_by_score(candidates):
        if any(ring.contains_center(candidate.center) for ring in kept):
            continue
        kept.append(candidate)
    return kept


class LocalMaxRingDetector(RingDetector):
    """
    Local maxima of the raw votes, non-maximum suppression, refinement.

    Candidates must reach the vote threshold and exceed all their
    3^(n+1) - 1 neighbours; a sample tied with a neighbour is not a candidate.
    After suppression the remaining peaks are refined to sub-pixel precision
    and rescored.
    """

    name = "local-max"

    def __init__(self, n_workers: Optional[int] = None, max_moves: int = 10):
        super().__init__(n_workers)
        self.max_moves = max_moves

    def detect(self, votes, circle_thickness, min_radius, step_radius, sensitivity, cancel=None):
        _check_parameters(circle_thickness, step_radius, sensitivity)
        if is_cancelled(cancel):
            return []

        volume = _votes_array(votes)
        threshold = vote_threshold(min_radius, circle_thickness, sensitivity)

        # 1-2. Gated local maxima.
        peaks = find_local_extrema(volume, threshold, kind="max", n_workers=self.n_workers)
        if is_cancelled(cancel):
            return []

        # 3-5. Tentative rings, strongest first, suppressed by containment.
        by_center: dict[tuple, np.ndarray] = {}
        candidates = []
        for peak in peaks:
            center = tuple(float(v) for v in peak[:-1])
            radius = min_radius + peak[-1] * step_radius
            score = ring_score(radius, circle_thickness, float(volume[tuple(peak)]))
            ring = Ring(center=center, radius=radius, thickness=circle_thickness, score=score)
            candidates.append(ring)
            by_center[(center, radius)] = peak

        retained = non_maximum_suppression(candidates)
        if is_cancelled(cancel):
            return []

        # 6. Sub-pixel refinement.
        retained_peaks = np.array([by_center[(r.center, r.radius)] for r in retained], dtype=np.intp)
        refined = refine_peaks(volume, retained_peaks, kind="max", max_moves=self.max_moves)
        if is_cancelled(cancel):
            return []

        # 7-8. Final scores.
        rings = []
        for peak in refined:
            radius = min_radius + peak.position[-1] * step_radius
            score = ring_score(radius, circle_thickness, peak.value)
            if not score_is_valid(score, sensitivity):
                continue
            rings.append(Ring(
                center=peak.position[:-1],
                radius=radius,
                thickness=circle_thickness,
                score=score,
            ))

        logger.debug("Local-max detector: %d maxima, %d after suppression, %d rings kept",
                     len(peaks), len(retained), len(rings))
        return sort_by_score(rings)


DETECTORS = {
    DogRingDetector.name: DogRingDetector,
    LocalMaxRingDetector.name: LocalMaxRingDetector,
}


def get_detector(name: str, n_workers: Optional[int] = None) -> RingDetector:
    """
    Instantiate a detector by name ('dog' or 'local-max').

    Raises:
        ValueError: For an unknown name.
    """
    try:
        cls = DETECTORS[name]
    except KeyError:
        raise ValueError(f"Unknown detector: {name!r} (expected one of {sorted(DETECTORS)})") from None
    return cls(n_workers=n_workers)
