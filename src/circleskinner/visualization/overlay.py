"""
Overlay plots of detected rings.

Each ring is drawn as its center circle (solid) and the inner and outer
bounds of its annulus (dashed), over the image it was found in.
"""

from typing import Optional

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from ..hough.ring import Ring, RingSet


def _ring_patches(ring: Ring, color: str) -> list[mpatches.Circle]:
    # matplotlib takes (x, y) = (column, row)
    xy = (ring.x, ring.y)
    patches = [mpatches.Circle(xy, ring.radius, fill=False, edgecolor=color, linewidth=1.5)]
    for radius in (ring.inner_radius, ring.outer_radius):
        if radius > 0:
            patches.append(mpatches.Circle(
                xy, radius, fill=False, edgecolor=color, linewidth=0.8, linestyle="--", alpha=0.7,
            ))
    return patches


def plot_rings(
    image: np.ndarray,
    rings: RingSet,
    ax: Optional[plt.Axes] = None,
    color: str = "yellow",
    label: bool = True,
) -> plt.Axes:
    """
    Plot rings over a 2D image.

    Args:
        image: 2D image (one channel).
        rings: Rings to draw, with (row, column) centers.
        ax: Matplotlib axes to plot on (creates new if None).
        color: Ring color.
        label: Number the rings (1 = lowest score) next to their centers.

    Returns:
        The matplotlib Axes object.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 8))

    image = np.asarray(image)
    if image.ndim != 2:
        raise ValueError(f"Can only overlay rings on 2D images, got {image.ndim}D")

    ax.imshow(image, cmap="gray", interpolation="nearest")

    for number, ring in enumerate(rings, start=1):
        for patch in _ring_patches(ring, color):
            ax.add_patch(patch)
        ax.plot(ring.x, ring.y, marker="+", color=color, markersize=6)
        if label:
            ax.annotate(str(number), (ring.x, ring.y), xytext=(4, 4),
                        textcoords="offset points", color=color, fontsize=8)

    ax.set_xlim(-0.5, image.shape[1] - 0.5)
    ax.set_ylim(image.shape[0] - 0.5, -0.5)
    ax.set_title(f"{len(rings)} rings")
    ax.set_axis_off()

    return ax


def plot_results(
    channels: list[np.ndarray],
    results: dict[int, RingSet],
    color: str = "yellow",
    figsize: Optional[tuple[float, float]] = None,
) -> plt.Figure:
    """
    One overlay panel per channel.

    Args:
        channels: Channel images, indexed like ``results``.
        results: Channel index -> rings, as returned by the pipeline.
        color: Ring color.
        figsize: Figure size (default: 5 inches per panel).

    Returns:
        Matplotlib Figure.
    """
    n = max(len(channels), 1)
    if figsize is None:
        figsize = (5 * n, 5)

    fig, axes = plt.subplots(1, n, figsize=figsize, squeeze=False, constrained_layout=True)
    for index, channel in enumerate(channels):
        ax = axes[0, index]
        plot_rings(channel, results.get(index, []), ax=ax, color=color)
        ax.set_title(f"Channel {index}: {len(results.get(index, []))} rings")

    return fig
