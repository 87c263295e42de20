"""
test_distortion_shapes.py - Unit tests for star patterns and exposures

Run with:
    python -m pytest tests/test_distortion_shapes.py -v
"""

import numpy as np
import pytest

from fpa_distortion.distortion_mission import QUAD_DETECTOR_MISSION, SINGLE_DETECTOR_MISSION
from fpa_distortion.distortion_shapes import (
    Exposure,
    create_lattice,
    create_line,
    flatten_unique,
    is_main_line,
    make_phase_noise,
)


class TestLines:
    def test_endpoints_and_spacing(self):
        line = create_line((0.0, 0.5), (1.0, 0.5), 5, scale=1.0)
        assert [p.x for p in line] == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])
        assert all(p.y == pytest.approx(0.5) for p in line)

    def test_scale_applied(self):
        line = create_line((0.0, 0.0), (1.0, 0.0), 3, scale=3.0)
        assert [p.x for p in line] == pytest.approx([-1.0, 0.5, 2.0])

    def test_phase_noise_is_clamped(self):
        noise = np.array([0.0, 0.0, -0.5, 0.2, 0.9])
        line = create_line((0.0, 0.0), (1.0, 0.0), 3, 1.0, noise, offset=2)
        assert [p.x for p in line] == pytest.approx([0.0, 0.7, 1.0])

    def test_main_lines(self):
        assert [is_main_line(i, 5) for i in range(5)] == [True, False, True, False, True]


class TestLattice:
    def test_layout(self):
        lines = create_lattice(4, 3, 2, scale=1.0)
        assert len(lines) == 5
        assert all(len(line.points) == 4 for line in lines)
        assert [line.main for line in lines] == [True, True, True, True, True]
        assert lines[1].points[0].y == pytest.approx(0.5)
        assert lines[4].points[2].x == pytest.approx(1.0)

    def test_short_phase_noise_rejected(self):
        with pytest.raises(ValueError):
            create_lattice(5, 5, 5, 1.0, phase_noise=np.zeros(10))

    def test_flatten_unique_removes_crossings(self):
        lines = create_lattice(5, 5, 5, scale=1.0)
        points = flatten_unique(lines)
        assert len(points) == 25
        # First occurrences, in line order.
        assert points[0] is lines[0].points[0]
        assert points[5] is lines[1].points[0]

    def test_flatten_unique_keeps_distinct_points(self):
        lines = create_lattice(4, 3, 3, scale=1.0)
        xy = {(round(p.x, 9), round(p.y, 9)) for line in lines for p in line.points}
        assert len(flatten_unique(lines)) == len(xy)

    def test_empty(self):
        assert flatten_unique([]) == []


class TestPhaseNoise:
    def test_range_and_size(self):
        noise = make_phase_noise(1000, 0.05, np.random.default_rng(3))
        assert noise.shape == (1000,)
        assert np.all(np.abs(noise) <= 0.05)
        assert noise.std() > 0.0

    def test_zero_amplitude(self):
        assert np.all(make_phase_noise(10, 0.0) == 0.0)

    def test_reproducible(self):
        a = make_phase_noise(5, 0.1, np.random.default_rng(9))
        b = make_phase_noise(5, 0.1, np.random.default_rng(9))
        np.testing.assert_array_equal(a, b)


class TestExposure:
    def test_count_visible_inner_pattern(self):
        exposure = Exposure("Exposure 1", 0.9).build(5, 5, 5)
        m = SINGLE_DETECTOR_MISSION
        assert exposure.count_visible(m, 0, m, 0) == 25

    def test_count_visible_wide_pattern(self):
        exposure = Exposure("Catalog", 3.0).build(5, 5, 5)
        m = SINGLE_DETECTOR_MISSION
        assert exposure.count_visible(m, 0, m, 0) == 1

    def test_wide_pattern_on_quad_detectors(self):
        exposure = Exposure("Exposure 1", 3.0).build(5, 5, 5)
        counts = [
            exposure.count_visible(SINGLE_DETECTOR_MISSION, 0, QUAD_DETECTOR_MISSION, n)
            for n in range(4)
        ]
        assert counts == [1, 1, 1, 1]

    def test_prepare_fills_cache(self):
        exposure = Exposure("Exposure 1", 1.0).build(3, 2, 2)
        exposure.prepare(SINGLE_DETECTOR_MISSION)
        assert all(p.prepared is not None for line in exposure.lines for p in line.points)
        assert exposure.center.prepared.eta_tilde == pytest.approx(0.5)

    def test_copy_is_independent(self):
        exposure = Exposure("Exposure 1", 3.0)
        exposure.calib.set_term(1, 0, eta=0.5)
        other = exposure.copy("Exposure 2")
        other.calib.set_term(1, 0, eta=-1.0)
        assert other.name == "Exposure 2"
        assert exposure.calib.term(1, 0)["eta"] == 0.5

    def test_document_round_trip(self):
        exposure = Exposure("Exposure 3", 2.0)
        exposure.visible = False
        exposure.calib.set_term(2, 2, zeta=1.25, enabled=False)
        restored = Exposure.from_dict(exposure.to_dict())
        assert restored.name == "Exposure 3"
        assert restored.scale == 2.0
        assert restored.visible is False
        assert restored.calib.to_dict() == exposure.calib.to_dict()

    def test_document_missing_calibration(self):
        with pytest.raises(ValueError, match="calib"):
            Exposure.from_dict({"name": "x", "scale": 1.0})
