"""
Detection parameters.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Optional

from .hessian.tensor_field import EXTENSION_MODES
from .hough.detectors import DETECTORS
from .hough.transform import normalize_radius_range


@dataclass
class DetectionConfig:
    """Parameters of a ring detection run."""

    circle_thickness: int = 9  # Ring thickness in pixels
    threshold_factor: float = 1.0  # Multiplies the automatic threshold
    sensitivity: float = 100.0  # Highest score kept
    min_radius: int = 50
    max_radius: int = 100
    step_radius: int = 2
    max_detections: Optional[int] = None  # Per channel; None keeps all
    detector: str = "dog"  # 'dog' or 'local-max'
    segmentation_channel: Optional[int] = None  # None: detect in every channel
    enhance_ridges: bool = True  # Tubeness filter before thresholding
    extension_mode: str = "mirror"  # Border handling of derivative filters
    n_workers: Optional[int] = None  # None: one per CPU
    keep_votes: bool = False  # Keep the last vote volume for inspection

    def validate(self) -> "DetectionConfig":
        """
        Check every parameter.

        Returns:
            self, for chaining.

        Raises:
            ValueError: Describing the first invalid parameter.
        """
        if self.circle_thickness < 1:
            raise ValueError(f"circle_thickness must be at least 1, got {self.circle_thickness}")
        if self.threshold_factor <= 0:
            raise ValueError(f"threshold_factor must be positive, got {self.threshold_factor}")
        if self.sensitivity <= 0:
            raise ValueError(f"sensitivity must be positive, got {self.sensitivity}")
        normalize_radius_range(self.min_radius, self.max_radius, self.step_radius)
        if self.max_detections is not None and self.max_detections < 0:
            raise ValueError(f"max_detections must be non-negative, got {self.max_detections}")
        if self.detector not in DETECTORS:
            raise ValueError(f"Unknown detector: {self.detector!r} (expected one of {sorted(DETECTORS)})")
        if self.segmentation_channel is not None and self.segmentation_channel < 0:
            raise ValueError(f"segmentation_channel must be non-negative, got {self.segmentation_channel}")
        if self.extension_mode not in EXTENSION_MODES:
            raise ValueError(
                f"Unknown extension mode: {self.extension_mode!r} (expected one of {sorted(EXTENSION_MODES)})"
            )
        if self.n_workers is not None and self.n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {self.n_workers}")
        return self

    def normalized_radii(self) -> tuple[int, int, int]:
        """(min_radius, max_radius, step_radius) with the bounds in order."""
        return normalize_radius_range(self.min_radius, self.max_radius, self.step_radius)

    def updated(self, **changes) -> "DetectionConfig":
        """Copy with some parameters changed."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)
