"""
Tests for rings and their annulus statistics.
"""

import numpy as np
import pytest

from circleskinner.analyze.statistics import annotate, annotate_all, annulus_mask, measure
from circleskinner.hough.ring import Ring, RingStatistics, sort_by_score


def brute_force_annulus(ring, shape):
    """Mask from Ring.contains over every sample."""
    mask = np.zeros(shape, dtype=bool)
    for index in np.ndindex(*shape):
        mask[index] = ring.contains(index)
    return mask


class TestRing:
    """Tests for the ring value type."""

    def test_geometry(self):
        ring = Ring(center=(10.0, 20.0), radius=8.0, thickness=4.0, score=1.0)
        assert ring.y == 10.0
        assert ring.x == 20.0
        assert ring.inner_radius == 6.0
        assert ring.outer_radius == 10.0
        assert ring.area() == pytest.approx(np.pi * (100 - 36))

    def test_contains_closed_bounds(self):
        ring = Ring(center=(0.0, 0.0), radius=5.0, thickness=2.0, score=1.0)
        assert ring.contains((4.0, 0.0))
        assert ring.contains((0.0, 6.0))
        assert ring.contains((5.0, 0.0))
        assert not ring.contains((3.9, 0.0))
        assert not ring.contains((0.0, 6.1))

    def test_contains_center(self):
        ring = Ring(center=(0.0, 0.0), radius=5.0, thickness=2.0, score=1.0)
        assert ring.contains_center((3.0, 4.0))
        assert not ring.contains_center((3.0, 4.1))

    def test_sort_by_score(self):
        rings = [Ring((0.0, 0.0), 5, 1, s) for s in (3.0, 1.0, 2.0)]
        assert [r.score for r in sort_by_score(rings)] == [1.0, 2.0, 3.0]

    def test_statistics_write_once(self):
        ring = Ring(center=(0.0, 0.0), radius=5.0, thickness=2.0, score=1.0)
        stats = RingStatistics(count=3, mean=1.0, std=0.0, median=1.0)

        annotated = ring.with_statistics(stats)

        assert annotated.statistics == stats
        assert ring.statistics is None
        assert annotated.with_statistics(stats) == annotated
        with pytest.raises(ValueError):
            annotated.with_statistics(RingStatistics(count=1, mean=2.0, std=0.0, median=2.0))

    def test_str(self):
        ring = Ring(center=(12.0, 34.5), radius=20.0, thickness=9.0, score=42.25)
        assert str(ring) == "(12.0,34.5)\tR=20.0\t±\t4.5\tSensitivity=42.2"

    def test_to_dict(self):
        ring = Ring(center=(1.0, 2.0), radius=3.0, thickness=1.0, score=0.5)
        assert ring.to_dict() == {"center": [1.0, 2.0], "radius": 3.0, "thickness": 1.0, "score": 0.5}


class TestAnnulusMask:
    """Tests for annulus membership."""

    def test_matches_contains(self):
        ring = Ring(center=(15.3, 14.6), radius=7.2, thickness=3.0, score=1.0)
        shape = (32, 30)

        box, mask = annulus_mask(ring, shape)
        full = np.zeros(shape, dtype=bool)
        full[box] = mask

        np.testing.assert_array_equal(full, brute_force_annulus(ring, shape))

    def test_clipped_at_border(self):
        ring = Ring(center=(2.0, 3.0), radius=6.0, thickness=2.0, score=1.0)
        shape = (20, 20)

        box, mask = annulus_mask(ring, shape)
        full = np.zeros(shape, dtype=bool)
        full[box] = mask

        assert box[0].start == 0 and box[1].start == 0
        np.testing.assert_array_equal(full, brute_force_annulus(ring, shape))

    def test_dimension_mismatch(self):
        ring = Ring(center=(2.0, 3.0), radius=6.0, thickness=2.0, score=1.0)
        with pytest.raises(ValueError):
            annulus_mask(ring, (10, 10, 10))


class TestMeasure:
    """Tests for annulus statistics."""

    def test_uniform_channel(self):
        channel = np.full((50, 50), 7, dtype=np.uint8)
        ring = Ring(center=(25.0, 25.0), radius=12.0, thickness=5.0, score=1.0)

        stats = measure(ring, channel)

        assert stats.count == brute_force_annulus(ring, channel.shape).sum()
        assert stats.mean == pytest.approx(7.0)
        assert stats.std == pytest.approx(0.0)
        assert stats.median == pytest.approx(7.0)

    def test_sample_std_and_median(self):
        rng = np.random.default_rng(0)
        channel = rng.normal(100.0, 10.0, size=(40, 40))
        ring = Ring(center=(20.0, 19.5), radius=9.0, thickness=4.0, score=1.0)

        stats = measure(ring, channel)
        values = channel[brute_force_annulus(ring, channel.shape)]

        assert stats.count == values.size
        assert stats.mean == pytest.approx(values.mean())
        assert stats.std == pytest.approx(values.std(ddof=1))
        assert stats.median == pytest.approx(np.median(values))

    def test_single_sample_has_zero_std(self):
        channel = np.arange(25.0).reshape(5, 5)
        # Zero-width ring mostly above the channel: only (0, 2) lies on it.
        ring = Ring(center=(-1.0, 2.0), radius=1.0, thickness=0.0, score=1.0)

        stats = measure(ring, channel)

        assert stats.count == 1
        assert stats.mean == 2.0
        assert stats.std == 0.0
        assert stats.median == 2.0

    def test_ring_outside_channel(self):
        ring = Ring(center=(200.0, 200.0), radius=5.0, thickness=2.0, score=1.0)

        stats = measure(ring, np.ones((20, 20)))

        assert stats.count == 0
        assert not stats.has_data
        assert stats.mean is None and stats.std is None and stats.median is None


class TestAnnotate:
    """Tests for attaching statistics."""

    def test_idempotent(self):
        channel = np.full((30, 30), 3.0)
        ring = Ring(center=(15.0, 15.0), radius=6.0, thickness=2.0, score=1.0)

        once = annotate(ring, channel)
        twice = annotate(once, channel)

        assert once == twice

    def test_other_channel_rejected(self):
        ring = Ring(center=(15.0, 15.0), radius=6.0, thickness=2.0, score=1.0)
        once = annotate(ring, np.full((30, 30), 3.0))
        with pytest.raises(ValueError):
            annotate(once, np.full((30, 30), 4.0))

    def test_overlapping_rings_share_samples(self):
        """Each ring counts every sample of its own annulus."""
        channel = np.ones((40, 40))
        a = Ring(center=(20.0, 17.0), radius=6.0, thickness=3.0, score=1.0)
        b = Ring(center=(20.0, 23.0), radius=6.0, thickness=3.0, score=2.0)

        annotated = annotate_all([a, b], channel)

        assert annotated[0].statistics.count == measure(a, channel).count
        assert annotated[1].statistics.count == measure(b, channel).count
        assert [r.score for r in annotated] == [1.0, 2.0]
