"""
Ring detection in microscopy images.

Rings are found with a circular Hough transform of a thresholded,
ridge-enhanced image and measured in every channel.
"""

from .concurrency import CancellationToken, ChunkExecutionError
from .config import DetectionConfig
from .hough.ring import Ring, RingStatistics
from .pipeline import CircleSkinner, rings_to_dataframe

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ChunkExecutionError",
    "CircleSkinner",
    "DetectionConfig",
    "Ring",
    "RingStatistics",
    "rings_to_dataframe",
]
