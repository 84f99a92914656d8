"""
Ring detection pipeline.

For each channel:
    1. Optional ridge enhancement (tubeness at sigma = thickness / 2 / sqrt(ndim))
    2. Automatic threshold (Otsu, scaled by threshold_factor) into a binary mask
    3. Circular Hough transform of the mask
    4. Ring detection in the vote volume
    5. Truncation to max_detections
    6. Annulus intensity statistics

With a segmentation channel, steps 1-5 run once on that channel and the
rings are measured in every channel.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Optional

import numpy as np
import pandas as pd
from skimage.filters import threshold_otsu

from .analyze.statistics import annotate_all
from .concurrency import CancellationToken, is_cancelled
from .config import DetectionConfig
from .hessian.tubeness import tubeness
from .hough.detectors import get_detector
from .hough.ring import RingSet, sort_by_score
from .hough.transform import VoteVolume, accumulate

logger = logging.getLogger(__name__)


DATAFRAME_COLUMNS = [
    "Image",
    "Channel",
    "Circle #",
    "X (pixels)",
    "Y (pixels)",
    "R (pixels)",
    "Mean",
    "Std",
    "N",
    "Median",
    "Sensitivity",
    "Thickness (pixels)",
    "Threshold adj.",
]


def split_channels(image: np.ndarray, channel_axis: Optional[int] = None) -> list[np.ndarray]:
    """
    Split an image into its channels.

    Args:
        image: Image array.
        channel_axis: Axis holding the channels, or None for a single
            channel image.

    Returns:
        List of channel arrays, in channel order.
    """
    image = np.asarray(image)
    if channel_axis is None:
        return [image]
    if not -image.ndim <= channel_axis < image.ndim:
        raise ValueError(f"Channel axis {channel_axis} out of range for a {image.ndim}D image")
    return [np.take(image, i, axis=channel_axis) for i in range(image.shape[channel_axis])]


def threshold_mask(field: np.ndarray, threshold_factor: float = 1.0) -> np.ndarray:
    """
    Binary mask of samples above the scaled Otsu threshold.

    A constant field has no threshold and gives an empty mask.
    """
    field = np.asarray(field, dtype=np.float64)
    if field.size == 0 or np.ptp(field) == 0:
        logger.warning("Constant image, no foreground")
        return np.zeros(field.shape, dtype=bool)
    threshold = threshold_otsu(field) * threshold_factor
    return field > threshold


class CircleSkinner:
    """
    Detects rings in multi-channel images.

    Example:
        >>> skinner = CircleSkinner(DetectionConfig(min_radius=20, max_radius=40))
        >>> results = skinner.run(image)
        >>> for ring in results[0]:
        ...     print(ring)
    """

    def __init__(self, config: Optional[DetectionConfig] = None, progress: bool = False):
        """
        Args:
            config: Detection parameters (defaults if None).
            progress: Show a progress bar during the Hough transform.
        """
        self.config = (config or DetectionConfig()).validate()
        self.progress = progress
        self.last_votes: Optional[VoteVolume] = None
        self.detector = get_detector(self.config.detector, n_workers=self.config.n_workers)

    def segment(self, channel: np.ndarray) -> np.ndarray:
        """Binary mask the Hough transform runs on."""
        config = self.config
        field = np.asarray(channel, dtype=np.float64)

        if config.enhance_ridges:
            sigma = config.circle_thickness / 2.0 / math.sqrt(field.ndim)
            start = time.perf_counter()
            field = tubeness(field, sigma, mode=config.extension_mode, n_workers=config.n_workers)
            logger.debug("Tubeness at sigma %.2f: %.2fs", sigma, time.perf_counter() - start)

        mask = threshold_mask(field, config.threshold_factor)
        logger.debug("Mask: %d foreground pixels", int(mask.sum()))
        return mask

    def detect(self, channel: np.ndarray, cancel: Optional[CancellationToken] = None) -> Optional[RingSet]:
        """
        Rings of one channel, without statistics.

        Returns:
            Rings sorted by ascending score, at most max_detections of them;
            None if cancelled.
        """
        config = self.config
        min_radius, max_radius, step_radius = config.normalized_radii()

        mask = self.segment(channel)
        if is_cancelled(cancel):
            return None

        start = time.perf_counter()
        votes = accumulate(mask, min_radius, max_radius, step_radius, cancel=cancel, progress=self.progress)
        if is_cancelled(cancel):
            return None
        logger.debug("Hough transform: %.2fs", time.perf_counter() - start)

        if config.keep_votes:
            self.last_votes = votes

        start = time.perf_counter()
        rings = self.detector.detect(
            votes,
            config.circle_thickness,
            min_radius,
            step_radius,
            config.sensitivity,
            cancel=cancel,
        )
        if is_cancelled(cancel):
            return None
        logger.debug("Detection (%s): %.2fs", self.detector.name, time.perf_counter() - start)

        rings = sort_by_score(rings)
        if config.max_detections is not None:
            rings = rings[:config.max_detections]
        return rings

    def run(
        self,
        image: np.ndarray,
        channel_axis: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> dict[int, RingSet]:
        """
        Detect and measure rings in every channel.

        Args:
            image: 2D image, or a stack of 2D channels along ``channel_axis``.
            channel_axis: Axis holding the channels (None: single channel).
            cancel: Token to stop the run early.

        Returns:
            Channel index -> annotated rings sorted by ascending score.
            Empty if the run was cancelled.
        """
        channels = split_channels(image, channel_axis)
        results: dict[int, RingSet] = {}

        segmentation = self.config.segmentation_channel
        if segmentation is None:
            for index, channel in enumerate(channels):
                rings = self.detect(channel, cancel)
                if rings is None:
                    logger.info("Detection cancelled")
                    return {}
                results[index] = annotate_all(rings, channel)
                logger.info("Channel %d: %d rings", index, len(rings))
            return results

        if segmentation >= len(channels):
            logger.warning("Segmentation channel %d out of range (%d channels), using channel 0",
                           segmentation, len(channels))
            segmentation = 0

        rings = self.detect(channels[segmentation], cancel)
        if rings is None:
            logger.info("Detection cancelled")
            return {}
        logger.info("Channel %d: %d rings", segmentation, len(rings))

        for index, channel in enumerate(channels):
            results[index] = annotate_all(rings, channel)
        return results


def rings_to_dataframe(
    results: dict[int, RingSet],
    image_name: str = "",
    threshold_factor: float = 1.0,
) -> pd.DataFrame:
    """
    Results table, one row per ring and channel.

    Circle numbers start at 1 within each channel. Statistics of rings
    without data are left empty (NaN), with N = 0.
    """
    rows = []
    for channel, rings in sorted(results.items()):
        for number, ring in enumerate(rings, start=1):
            stats = ring.statistics
            rows.append({
                "Image": image_name,
                "Channel": channel,
                "Circle #": number,
                "X (pixels)": ring.x,
                "Y (pixels)": ring.y,
                "R (pixels)": ring.radius,
                "Mean": stats.mean if stats is not None else None,
                "Std": stats.std if stats is not None else None,
                "N": stats.count if stats is not None else 0,
                "Median": stats.median if stats is not None else None,
                "Sensitivity": ring.score,
                "Thickness (pixels)": ring.thickness,
                "Threshold adj.": threshold_factor,
            })
    return pd.DataFrame(rows, columns=DATAFRAME_COLUMNS)
