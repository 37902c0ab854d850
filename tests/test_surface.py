"""
Tests for the recording/datuming surface model.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from kdatum.data.surface import (
    ClampPolicy,
    SurfaceKind,
    SurfaceModel,
    read_surface_file,
)
from kdatum.errors import GeometryRangeError, ResourceError


@pytest.fixture
def surface():
    rec = np.array([100.0, 110.0, 130.0, 130.0, 120.0])
    dat = np.array([200.0, 210.0, 220.0, 230.0, 240.0])
    return SurfaceModel(rec, dat, fxi=0.0, dxi=10.0)


class TestDepthAt:
    """Tests for point depth queries."""

    def test_node_values(self, surface):
        for k, z in enumerate(surface.recording[:-1]):
            assert surface.recording_depth(k * 10.0) == pytest.approx(z)

    def test_midpoint_is_mean_of_neighbours(self, surface):
        for k in range(surface.nxi - 1):
            z0, z1 = surface.recording[k], surface.recording[k + 1]
            assert surface.recording_depth(k * 10.0 + 5.0) == pytest.approx((z0 + z1) / 2)

    def test_beyond_last_node_returns_last_value(self, surface):
        assert surface.recording_depth(40.0) == pytest.approx(120.0)
        assert surface.recording_depth(1000.0) == pytest.approx(120.0)

    def test_datum_clamp_uses_next_to_last_node(self, surface):
        assert surface.datum_depth(40.0) == pytest.approx(230.0)
        assert surface.datum_depth(1000.0) == pytest.approx(230.0)

    def test_explicit_clamp_policies(self, surface):
        assert surface.depth_at(SurfaceKind.DATUM, 50.0, ClampPolicy.LAST_NODE) == pytest.approx(240.0)
        assert surface.depth_at(SurfaceKind.RECORDING, 50.0, ClampPolicy.NEXT_TO_LAST_NODE) == pytest.approx(130.0)

    def test_fraction_snapping(self, surface):
        # 0.5% of an interval from node 1 snaps onto node 1
        assert surface.recording_depth(10.05) == pytest.approx(110.0)
        # 0.5% short of node 2 snaps onto node 2
        assert surface.recording_depth(19.95) == pytest.approx(130.0)

    def test_left_of_first_node_uses_first_segment(self, surface):
        assert surface.recording_depth(-5.0) == pytest.approx(100.0)

    def test_absolute_value_returned(self):
        s = SurfaceModel(np.array([-50.0, -50.0]), np.array([10.0, 10.0]), 0.0, 10.0)
        assert s.recording_depth(5.0) == pytest.approx(50.0)


class TestSlope:
    """Tests for surface slope estimates."""

    def test_forward_difference_at_first_node(self, surface):
        assert surface.slope_at(0.0) == pytest.approx(1.0)

    def test_centered_difference_inside(self, surface):
        assert surface.slope_at(10.0) == pytest.approx((130.0 - 100.0) / 20.0)
        assert surface.slope_at(30.0) == pytest.approx((120.0 - 130.0) / 20.0)

    def test_beyond_last_node_uses_last_interior_node(self, surface):
        assert surface.slope_at(100.0) == pytest.approx((120.0 - 130.0) / 20.0)

    def test_flat_surface_has_zero_slope(self):
        s = SurfaceModel.flat(100.0, 200.0, nxi=4, fxi=0.0, dxi=10.0)
        assert s.slope_at(15.0) == 0.0


class TestCoverage:
    """Tests for gather coverage checks."""

    def test_covered(self, surface):
        surface.check_coverage(fxin=0.0, nxe=4)

    def test_not_covered(self, surface):
        with pytest.raises(GeometryRangeError, match="Topography"):
            surface.check_coverage(fxin=10.0, nxe=4)


class TestConstruction:
    """Tests for surface construction."""

    def test_flat(self):
        s = SurfaceModel.flat(100.0, 150.0, nxi=3, fxi=5.0, dxi=2.0)
        assert s.nxi == 3
        assert np.all(s.recording == 100.0)
        assert np.all(s.datum == 150.0)

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            SurfaceModel(np.zeros(3), np.zeros(4), 0.0, 1.0)

    def test_from_files(self):
        with tempfile.TemporaryDirectory() as d:
            rec = Path(d) / "rec.txt"
            rec.write_text("10\n20\n30\n40\n")
            s = SurfaceModel.from_files(nxi=3, fxi=0.0, dxi=10.0, recfile=rec, zdat=50.0)
            np.testing.assert_array_equal(s.recording, [10.0, 20.0, 30.0])
            np.testing.assert_array_equal(s.datum, [50.0, 50.0, 50.0])


class TestReadSurfaceFile:
    """Tests for surface file reading."""

    def test_reads_first_n_values(self):
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "surf.txt"
            path.write_text("1.5\n\n2.5\n3.5\n")
            values = read_surface_file(path, 2)
            np.testing.assert_array_equal(values, [1.5, 2.5])

    def test_too_few_values(self):
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "surf.txt"
            path.write_text("1\n2\n")
            with pytest.raises(ResourceError, match="2 values"):
                read_surface_file(path, 3)

    def test_missing_file(self):
        with pytest.raises(ResourceError):
            read_surface_file("/nonexistent/surface.txt", 3)

    def test_non_numeric(self):
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "surf.txt"
            path.write_text("1\nabc\n3\n")
            with pytest.raises(ResourceError):
                read_surface_file(path, 3)
