"""
End-to-end tests of the detection pipeline on synthetic images.
"""

import numpy as np
import pytest

from circleskinner.concurrency import CancellationToken
from circleskinner.config import DetectionConfig
from circleskinner.pipeline import (
    DATAFRAME_COLUMNS,
    CircleSkinner,
    rings_to_dataframe,
    split_channels,
    threshold_mask,
)


CENTER = (100.0, 100.0)
RADIUS = 60.0
THICKNESS = 9


def ring_image(shape=(200, 200), center=CENTER, radius=RADIUS, thickness=THICKNESS, value=255):
    yy, xx = np.mgrid[0:shape[0], 0:shape[1]]
    distance = np.hypot(yy - center[0], xx - center[1])
    image = np.zeros(shape, dtype=np.uint8)
    image[np.abs(distance - radius) <= thickness / 2] = value
    return image


def config(**changes):
    params = dict(
        circle_thickness=THICKNESS,
        sensitivity=200.0,
        min_radius=50,
        max_radius=100,
        step_radius=2,
        n_workers=2,
    )
    params.update(changes)
    return DetectionConfig(**params)


@pytest.fixture(scope="module")
def single_ring_results():
    return CircleSkinner(config()).run(ring_image())


class TestThresholdMask:
    """Tests for automatic thresholding."""

    def test_constant_field_is_empty(self):
        assert not threshold_mask(np.full((10, 10), 4.0)).any()

    def test_two_levels(self):
        field = np.zeros((10, 10))
        field[:, 5:] = 10.0
        mask = threshold_mask(field)
        assert mask[:, 5:].all()
        assert not mask[:, :5].any()

    def test_factor_raises_threshold(self):
        field = np.zeros((10, 10))
        field[:, 5:] = 10.0
        assert not threshold_mask(field, threshold_factor=1000.0).any()


class TestSplitChannels:
    """Tests for channel splitting."""

    def test_single_channel(self):
        image = np.zeros((4, 5))
        channels = split_channels(image)
        assert len(channels) == 1 and channels[0].shape == (4, 5)

    def test_last_axis(self):
        image = np.zeros((4, 5, 3))
        image[..., 2] = 1.0
        channels = split_channels(image, channel_axis=-1)
        assert len(channels) == 3
        assert channels[2].shape == (4, 5)
        assert channels[2].all()

    def test_invalid_axis(self):
        with pytest.raises(ValueError):
            split_channels(np.zeros((4, 5)), channel_axis=2)


class TestCircleSkinner:
    """Tests for the full detection run."""

    def test_finds_single_ring(self, single_ring_results):
        """The strongest ring matches the drawn one."""
        assert list(single_ring_results) == [0]
        rings = single_ring_results[0]
        assert len(rings) >= 1

        best = rings[0]
        assert best.y == pytest.approx(CENTER[0], abs=1.0)
        assert best.x == pytest.approx(CENTER[1], abs=1.0)
        assert best.radius == pytest.approx(RADIUS, abs=2.0)
        assert best.thickness == THICKNESS
        assert best.score <= 200.0

    def test_ring_measured(self, single_ring_results):
        stats = single_ring_results[0][0].statistics
        assert stats is not None
        assert stats.count > 0
        assert stats.mean > 200

    def test_rings_sorted(self, single_ring_results):
        scores = [ring.score for ring in single_ring_results[0]]
        assert scores == sorted(scores)

    def test_max_detections(self):
        results = CircleSkinner(config(max_detections=1, keep_votes=True)).run(ring_image())
        assert len(results[0]) == 1

    def test_keep_votes(self):
        skinner = CircleSkinner(config(max_detections=0, keep_votes=True))
        results = skinner.run(ring_image())
        assert results == {0: []}
        assert skinner.last_votes is not None
        assert skinner.last_votes.votes.shape == (200, 200, 26)

    def test_votes_dropped_by_default(self):
        skinner = CircleSkinner(config(max_detections=0))
        skinner.run(ring_image())
        assert skinner.last_votes is None

    def test_blank_image(self):
        results = CircleSkinner(config()).run(np.zeros((120, 120), dtype=np.uint8))
        assert results == {0: []}

    def test_cancelled_run_is_empty(self):
        token = CancellationToken()
        token.cancel("test")
        assert CircleSkinner(config()).run(ring_image(), cancel=token) == {}

    def test_segmentation_channel_measures_all(self):
        """Rings found in one channel are measured in every channel."""
        image = np.stack([ring_image(), np.full((200, 200), 10, dtype=np.uint8)], axis=-1)

        results = CircleSkinner(config(segmentation_channel=0, max_detections=1)).run(image, channel_axis=-1)

        assert sorted(results) == [0, 1]
        assert results[0][0].center == results[1][0].center
        assert results[1][0].statistics.mean == pytest.approx(10.0)

    def test_segmentation_channel_out_of_range(self):
        """An out-of-range segmentation channel falls back to channel 0."""
        image = np.stack([ring_image(), np.zeros((200, 200), dtype=np.uint8)], axis=-1)

        results = CircleSkinner(config(segmentation_channel=5, max_detections=1)).run(image, channel_axis=-1)

        assert len(results[0]) == 1
        assert len(results[1]) == 1

    def test_independent_channels(self):
        """Without a segmentation channel each channel gets its own rings."""
        image = np.stack([ring_image(), np.zeros((200, 200), dtype=np.uint8)], axis=-1)

        results = CircleSkinner(config(max_detections=1)).run(image, channel_axis=-1)

        assert len(results[0]) == 1
        assert results[1] == []

    def test_raw_threshold(self):
        results = CircleSkinner(config(enhance_ridges=False, max_detections=1)).run(ring_image())
        best = results[0][0]
        assert best.y == pytest.approx(CENTER[0], abs=1.0)
        assert best.x == pytest.approx(CENTER[1], abs=1.0)
        assert best.radius == pytest.approx(RADIUS, abs=2.0)

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            CircleSkinner(config(sensitivity=0))


class TestRingsToDataFrame:
    """Tests for the results table."""

    def test_columns_and_rows(self, single_ring_results):
        table = rings_to_dataframe(single_ring_results, "ring.png", threshold_factor=1.0)

        assert list(table.columns) == DATAFRAME_COLUMNS
        assert len(table) == len(single_ring_results[0])
        first = table.iloc[0]
        assert first["Image"] == "ring.png"
        assert first["Channel"] == 0
        assert first["Circle #"] == 1
        assert first["X (pixels)"] == pytest.approx(CENTER[1], abs=1.0)
        assert first["N"] > 0

    def test_empty(self):
        table = rings_to_dataframe({0: []}, "blank.png")
        assert list(table.columns) == DATAFRAME_COLUMNS
        assert len(table) == 0


class TestSingleBrightRing:
    """A 255-valued ring (r=60, t=9) centered in a 200x200 image, detected with
    the default detector over radii 50-100 in steps of 2, sensitivity 150."""

    @staticmethod
    def run(**changes):
        params = dict(
            circle_thickness=9,
            sensitivity=150.0,
            min_radius=50,
            max_radius=100,
            step_radius=2,
        )
        params.update(changes)
        return CircleSkinner(DetectionConfig(**params)).run(ring_image())

    def test_exactly_one_ring(self):
        results = self.run()

        assert list(results) == [0]
        assert len(results[0]) == 1
        ring = results[0][0]
        assert ring.y == pytest.approx(100.0, abs=1.0)
        assert ring.x == pytest.approx(100.0, abs=1.0)
        assert ring.radius == pytest.approx(60.0, abs=2.0)
        assert ring.statistics.mean == pytest.approx(255.0, abs=1.0)

    def test_exactly_one_ring_without_ridge_filter(self):
        results = self.run(enhance_ridges=False)

        assert len(results[0]) == 1
        ring = results[0][0]
        assert ring.y == pytest.approx(100.0, abs=1.0)
        assert ring.x == pytest.approx(100.0, abs=1.0)
        assert ring.radius == pytest.approx(60.0, abs=2.0)
        assert ring.statistics.mean > 240
