"""Ring overlay plots."""

from .overlay import plot_rings, plot_results

__all__ = ["plot_rings", "plot_results"]
