"""Circular Hough transform and ring detection."""

from .ring import Ring, RingSet, RingStatistics, ring_score, sort_by_score
from .transform import VoteVolume, accumulate, midpoint_circle
from .extrema import RefinedPeak, find_local_extrema, refine_peak, refine_peaks
from .detectors import (
    DogRingDetector,
    LocalMaxRingDetector,
    RingDetector,
    get_detector,
    non_maximum_suppression,
)

__all__ = [
    "Ring",
    "RingSet",
    "RingStatistics",
    "ring_score",
    "sort_by_score",
    "VoteVolume",
    "accumulate",
    "midpoint_circle",
    "RefinedPeak",
    "find_local_extrema",
    "refine_peak",
    "refine_peaks",
    "RingDetector",
    "DogRingDetector",
    "LocalMaxRingDetector",
    "get_detector",
    "non_maximum_suppression",
]
