"""Measurements over detected rings."""

from .statistics import annotate, annotate_all, annulus_mask, measure

__all__ = ["annotate", "annotate_all", "annulus_mask", "measure"]
