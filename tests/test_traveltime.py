"""
Tests for traveltime table loading and interpolation.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from kdatum.data.traveltime import TableGeometry, TraveltimeTableStore, weighted_sum
from kdatum.errors import ResourceError
from tests.fixtures.synthetic import straight_ray_tables, write_table_file


@pytest.fixture
def geometry():
    return TableGeometry(
        fzt=0.0, nzt=6, dzt=10.0,
        fxt=0.0, nxt=5, dxt=10.0,
        fs=0.0, ns=3, ds=20.0,
    )


@pytest.fixture
def store(geometry):
    tables = np.zeros((geometry.ns, geometry.nxt, geometry.nzt), dtype=np.float32)
    for i in range(geometry.ns):
        for ix in range(geometry.nxt):
            tables[i, ix, :] = 100 * i + 10 * ix + np.arange(geometry.nzt)
    return TraveltimeTableStore(tables, geometry)


class TestTableGeometry:
    def test_extents(self, geometry):
        assert geometry.ext == 40.0
        assert geometry.ezt == 50.0
        assert geometry.es == 40.0
        assert geometry.slice_size == 30


class TestWeightedSum:
    """Tests for the two-table combination."""

    def test_unit_weight_on_first(self):
        rng = np.random.default_rng(0)
        t1 = rng.random((4, 5)).astype(np.float32)
        t2 = rng.random((4, 5)).astype(np.float32)
        np.testing.assert_array_equal(weighted_sum(1.0, 0.0, t1, t2), t1)

    def test_unit_weight_on_second(self):
        rng = np.random.default_rng(1)
        t1 = rng.random((4, 5)).astype(np.float32)
        t2 = rng.random((4, 5)).astype(np.float32)
        np.testing.assert_array_equal(weighted_sum(0.0, 1.0, t1, t2), t2)

    def test_half_weights(self):
        t1 = np.full((2, 2), 2.0, dtype=np.float32)
        t2 = np.full((2, 2), 4.0, dtype=np.float32)
        np.testing.assert_allclose(weighted_sum(0.5, 0.5, t1, t2), 3.0)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            weighted_sum(0.5, 0.5, np.zeros((2, 2)), np.zeros((2, 3)))


class TestSourceInterpolation:
    """Tests for source-slice blending."""

    def test_on_source_position(self, store):
        np.testing.assert_array_equal(store.source_interpolated_table(20.0), store.slice(1))

    def test_between_sources(self, store):
        table = store.source_interpolated_table(10.0)
        np.testing.assert_allclose(table, 0.5 * (store.slice(0) + store.slice(1)))

    def test_last_source_uses_upper_slice(self, store):
        np.testing.assert_array_equal(store.source_interpolated_table(40.0), store.slice(2))

    def test_snap_near_source(self, store):
        # (20.1 - 0) / 20 = 1.005, weight 0.005 snaps to 0
        np.testing.assert_array_equal(store.source_interpolated_table(20.1), store.slice(1))

    def test_single_source(self):
        g = TableGeometry(fzt=0.0, nzt=2, dzt=1.0, fxt=0.0, nxt=2, dxt=1.0, fs=0.0, ns=1, ds=1.0)
        tables = np.arange(4, dtype=np.float32).reshape(1, 2, 2)
        store = TraveltimeTableStore(tables, g)
        np.testing.assert_array_equal(store.source_interpolated_table(0.0), tables[0])

    def test_tables_are_read_only(self, store):
        with pytest.raises(ValueError):
            store.tables[0, 0, 0] = 1.0


class TestColumnInterpolation:
    """Tests for lateral column interpolation and depth lookup."""

    def test_on_column(self, store):
        table = store.slice(0)
        np.testing.assert_allclose(store.interpolated_column(table, 20.0), table[2])

    def test_between_columns(self, store):
        table = store.slice(0)
        np.testing.assert_allclose(store.interpolated_column(table, 15.0), 0.5 * (table[1] + table[2]))

    def test_beyond_last_column(self, store):
        table = store.slice(0)
        np.testing.assert_allclose(store.interpolated_column(table, 40.0), table[4])

    def test_time_at_depth(self, store):
        column = np.arange(6, dtype=np.float64) * 2.0
        assert store.time_at_depth(column, 25.0, fzo=0.0) == pytest.approx(5.0)
        assert store.time_at_depth(column, 50.0, fzo=0.0) == pytest.approx(10.0)


class TestTableFile:
    """Tests for reading raw float32 table files."""

    def test_round_trip(self, geometry):
        tables = straight_ray_tables(geometry, source_depth=0.0, v0=1500.0)
        with tempfile.TemporaryDirectory() as d:
            path = write_table_file(Path(d) / "tt.bin", tables)
            store = TraveltimeTableStore.from_file(path, geometry)
        np.testing.assert_array_equal(store.tables, tables)

    def test_slices_are_lateral_major(self, geometry):
        tables = straight_ray_tables(geometry, source_depth=0.0, v0=1000.0)
        with tempfile.TemporaryDirectory() as d:
            path = write_table_file(Path(d) / "tt.bin", tables)
            store = TraveltimeTableStore.from_file(path, geometry)
        # Source 1 at x=20, surface point x=20 z=0
        assert store.slice(1)[2, 0] == 0.0
        assert store.slice(1)[2, 3] == pytest.approx(0.03)

    def test_missing_file(self, geometry):
        with pytest.raises(ResourceError, match="Cannot open"):
            TraveltimeTableStore.from_file("/nonexistent/tt.bin", geometry)

    def test_short_file(self, geometry):
        tables = np.zeros((2, geometry.nxt, geometry.nzt), dtype=np.float32)
        with tempfile.TemporaryDirectory() as d:
            path = write_table_file(Path(d) / "tt.bin", tables)
            with pytest.raises(ResourceError, match="too short"):
                TraveltimeTableStore.from_file(path, geometry)
