"""Tests for the importance field, candidate generator and scorer."""

from __future__ import annotations

import numpy as np
import pytest

from smartcrop_config import CropSettings
from smartcrop_scoring import (
    ChannelWeights,
    Crop,
    Score,
    importance,
    importance_map,
    iter_crops,
    sample_canvas,
    score_crop,
    thirds,
)


def _make_settings(**overrides: object) -> CropSettings:
    return CropSettings(**overrides)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Importance field
# ---------------------------------------------------------------------------


class TestThirds:
    def test_peaks_on_thirds_line(self) -> None:
        assert thirds(1.0 / 3.0) == pytest.approx(1.0)

    def test_zero_at_center_and_edge(self) -> None:
        assert thirds(0.0) == 0.0
        assert thirds(1.0) == 0.0

    def test_never_negative(self) -> None:
        for v in np.linspace(0.0, 1.0, 101):
            assert thirds(float(v)) >= 0.0


class TestImportance:
    def test_outside_is_constant_penalty(self) -> None:
        settings = _make_settings()
        crop = Crop(10, 10, 50, 50)
        for x, y in [(0, 0), (9, 30), (60, 30), (30, 60), (200, 200)]:
            assert importance(crop, x, y, settings) == settings.outside_importance

    def test_center_value(self) -> None:
        settings = _make_settings()
        crop = Crop(0, 0, 100, 100)
        assert importance(crop, 50, 50, settings) == pytest.approx(1.41)

    def test_border_is_penalised(self) -> None:
        settings = _make_settings()
        crop = Crop(0, 0, 100, 100)
        assert importance(crop, 0, 0, settings) < 0.0
        assert importance(crop, 50, 50, settings) > importance(crop, 95, 50, settings)

    def test_symmetric_in_square_crop(self) -> None:
        settings = _make_settings()
        crop = Crop(10, 20, 60, 60)
        for d in range(1, 60, 7):
            for e in range(1, 60, 11):
                value = importance(crop, crop.x + d, crop.y + e, settings)
                assert importance(crop, crop.right - d, crop.y + e, settings) == pytest.approx(value)
                assert importance(crop, crop.x + d, crop.bottom - e, settings) == pytest.approx(value)
                assert importance(crop, crop.right - d, crop.bottom - e, settings) == pytest.approx(value)

    def test_stronger_edge_weight_never_raises_importance(self) -> None:
        soft = _make_settings(edge_weight=-20.0)
        hard = _make_settings(edge_weight=-40.0)
        crop = Crop(0, 0, 100, 100)
        for x in range(0, 100, 5):
            for y in range(0, 100, 5):
                assert importance(crop, x, y, hard) <= importance(crop, x, y, soft)
        assert importance(crop, 95, 50, hard) < importance(crop, 95, 50, soft)
        assert importance(crop, 50, 50, hard) == importance(crop, 50, 50, soft)

    def test_rule_of_thirds_bonus(self) -> None:
        crop = Crop(0, 0, 90, 90)
        on_line = (30, 45)
        with_thirds = importance(crop, *on_line, _make_settings(rule_of_thirds=True))
        without = importance(crop, *on_line, _make_settings(rule_of_thirds=False))
        assert with_thirds > without

    def test_map_matches_scalar(self) -> None:
        settings = _make_settings()
        crop = Crop(12, 4, 70, 45)
        ys, xs = np.mgrid[0:60:3, 0:100:3]
        values = importance_map(crop, xs, ys, settings)
        for (y, x), value in np.ndenumerate(values):
            assert value == pytest.approx(importance(crop, int(xs[y, x]), int(ys[y, x]), settings))


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


class TestIterCrops:
    def test_order_scale_then_y_then_x(self) -> None:
        crops = list(iter_crops(100, 100, 100, 100, 0.9, _make_settings()))
        assert crops == [
            Crop(0, 0, 100, 100),
            Crop(0, 0, 90, 90),
            Crop(8, 0, 90, 90),
            Crop(0, 8, 90, 90),
            Crop(8, 8, 90, 90),
        ]

    def test_zero_size_uses_smaller_dimension(self) -> None:
        crops = list(iter_crops(200, 100, 0, 0, 1.0, _make_settings()))
        assert crops[0] == Crop(0, 0, 100, 100)
        assert len(crops) == 13
        assert all(c.width == 100 and c.height == 100 and c.y == 0 for c in crops)

    def test_candidates_fit_inside_canvas(self) -> None:
        settings = _make_settings(min_scale=0.5)
        for crop in iter_crops(173, 91, 120, 80, 0.5, settings):
            assert crop.x >= 0 and crop.y >= 0
            assert crop.right <= 173
            assert crop.bottom <= 91
            assert crop.width > 0 and crop.height > 0

    def test_restartable_and_deterministic(self) -> None:
        settings = _make_settings()
        first = list(iter_crops(150, 120, 100, 100, 0.9, settings))
        second = list(iter_crops(150, 120, 100, 100, 0.9, settings))
        assert first == second
        assert len(first) > 0

    def test_step_setting(self) -> None:
        crops = list(iter_crops(40, 20, 20, 20, 1.0, _make_settings(step=10)))
        assert [c.x for c in crops] == [0, 10, 20]


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class TestSampleCanvas:
    def test_stride_and_bounds(self) -> None:
        canvas = np.zeros((20, 17, 3), dtype=np.uint8)
        samples = sample_canvas(canvas, _make_settings())
        assert sorted(set(samples.xs.tolist())) == [0, 8]
        assert sorted(set(samples.ys.tolist())) == [0, 8]
        assert samples.detail.shape == (4,)

    def test_too_small_canvas_has_no_samples(self) -> None:
        canvas = np.full((5, 5, 3), 255, dtype=np.uint8)
        samples = sample_canvas(canvas, _make_settings())
        assert samples.xs.size == 0


class TestScoreCrop:
    def test_empty_canvas_scores_zero(self) -> None:
        settings = _make_settings()
        samples = sample_canvas(np.zeros((64, 64, 3), dtype=np.uint8), settings)
        score = score_crop(Crop(0, 0, 32, 32), samples, ChannelWeights(1.0, 1.0, 0.5, 1.0, 0.5), settings)
        assert score == Score(0.0, 0.0, 0.0, 0.0)

    def test_detail_is_importance_weighted_sum(self) -> None:
        settings = _make_settings()
        canvas = np.zeros((32, 32, 3), dtype=np.uint8)
        canvas[..., 1] = 255
        samples = sample_canvas(canvas, settings)
        crop = Crop(0, 0, 24, 24)

        expected = sum(importance(crop, x, y, settings) for y in range(0, 25, 8) for x in range(0, 25, 8))
        score = score_crop(crop, samples, ChannelWeights(detail_weight=1.0), settings)

        assert score.detail == pytest.approx(expected)
        assert score.total == pytest.approx(expected / (24 * 24))

    def test_skin_uses_bias_when_no_detail(self) -> None:
        settings = _make_settings()
        canvas = np.zeros((16, 16, 3), dtype=np.uint8)
        canvas[..., 0] = 255
        samples = sample_canvas(canvas, settings)
        crop = Crop(0, 0, 16, 16)

        expected = sum(0.5 * importance(crop, x, y, settings) for y in (0, 8) for x in (0, 8))
        score = score_crop(crop, samples, ChannelWeights(skin_weight=2.0, skin_bias=0.5), settings)

        assert score.skin == pytest.approx(expected)
        assert score.detail == 0.0
        assert score.total == pytest.approx(2.0 * expected / 256)

    def test_total_is_area_normalised(self) -> None:
        settings = _make_settings(rule_of_thirds=False)
        canvas = np.zeros((128, 128, 3), dtype=np.uint8)
        canvas[..., 2] = 255
        samples = sample_canvas(canvas, settings)
        weights = ChannelWeights(saturation_weight=1.0, saturation_bias=1.0)

        small = score_crop(Crop(0, 0, 64, 64), samples, weights, settings)
        large = score_crop(Crop(0, 0, 128, 128), samples, weights, settings)

        assert small.total == pytest.approx(small.saturation / (64 * 64))
        assert large.total == pytest.approx(large.saturation / (128 * 128))
