"""
Tests for the datuming executor.
"""

import math
import tempfile

import numpy as np
import pytest

from kdatum.data.traveltime import TableGeometry, TraveltimeTableStore
from kdatum.errors import (
    ConfigurationError,
    GeometryRangeError,
    NumericalDegeneracyError,
    ResourceError,
)
from kdatum.kernels.stationary_phase import GuardReason
from kdatum.pipeline.executor import (
    DatumingExecutor,
    ExecutionPhase,
    check_table_coverage,
    table_geometry,
)
from tests.fixtures.synthetic import (
    MemorySink,
    identity_geometry,
    make_config,
    make_trace,
    ricker_trace,
    straight_ray_tables,
    write_table_file,
)

V0 = 1500.0


def wide_geometry() -> TableGeometry:
    """Table grid with four sources at 0, 10, 20, 30."""
    return TableGeometry(
        fzt=0.0, nzt=21, dzt=10.0,
        fxt=-100.0, nxt=21, dxt=10.0,
        fs=0.0, ns=4, ds=10.0,
    )


def store_for(geometry: TableGeometry, zrec: float = 100.0) -> TraveltimeTableStore:
    return TraveltimeTableStore(straight_ray_tables(geometry, source_depth=zrec, v0=V0), geometry)


@pytest.fixture
def work_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


class TestIdentityDatuming:
    """Datuming onto the recording surface itself."""

    def test_coincident_source_and_receiver(self, work_dir):
        config = make_config(work_dir)
        data = np.array([1.0, -2.0, 3.0, 0.5], dtype=np.float32)
        sink = MemorySink()

        executor = DatumingExecutor(config, table=store_for(identity_geometry()))
        result = executor.run([make_trace(data, sx=0.0, gx=0.0, index=7)], sink)

        scale = 10.0 / math.sqrt(2 * math.pi * V0)
        assert result.global_scale == pytest.approx(scale)
        assert sink.calls == 1
        assert len(sink.records) == 1
        header, samples = sink.records[0]
        assert header.index == 7
        np.testing.assert_allclose(samples, data * scale, rtol=1e-6)
        assert result.gather_counts == [1]
        assert executor.phase == ExecutionPhase.COMPLETE

    def test_user_scale(self, work_dir):
        config = make_config(work_dir, scale=2.0)
        data = np.array([1.0, 2.0, 3.0, 4.0], dtype=np.float32)
        sink = MemorySink()
        DatumingExecutor(config, table=store_for(identity_geometry())).run(
            [make_trace(data, sx=0.0, gx=0.0)], sink
        )
        scale = 2.0 * 10.0 / math.sqrt(2 * math.pi * V0)
        np.testing.assert_allclose(sink.records[0][1], data * scale, rtol=1e-6)

    def test_table_read_from_file(self, work_dir):
        config = make_config(work_dir)
        write_table_file(config.table.path, straight_ray_tables(identity_geometry(), 100.0, V0))
        data = np.array([0.0, 1.0, 0.0, 0.0], dtype=np.float32)
        sink = MemorySink()
        DatumingExecutor(config).run([make_trace(data, sx=0.0, gx=0.0)], sink)
        assert sink.records[0][1][1] == pytest.approx(10.0 / math.sqrt(2 * math.pi * V0), rel=1e-6)


class TestTraceSelection:
    """Tests for offset and source-range exclusion."""

    def test_offset_limit(self, work_dir):
        config = make_config(work_dir, nxgo=2, zdat=150.0, offmax=5.0)
        traces = [
            make_trace(np.zeros(16), sx=0.0, gx=0.0, index=0),
            make_trace(np.zeros(16), sx=0.0, gx=10.0, index=1),
        ]
        sink = MemorySink()
        executor = DatumingExecutor(config, table=store_for(identity_geometry()))
        result = executor.run(traces, sink)

        assert [h.index for h, _ in sink.records] == [0]
        assert result.metrics.n_traces_read == 2
        assert result.metrics.n_traces_rejected == 1

    def test_outside_table_sources(self, work_dir):
        config = make_config(work_dir, nxgo=2, zdat=150.0)
        traces = [
            make_trace(np.zeros(16), sx=0.0, gx=0.0, index=0),
            make_trace(np.zeros(16), sx=0.0, gx=20.0, index=1),
        ]
        sink = MemorySink()
        DatumingExecutor(config, table=store_for(identity_geometry())).run(traces, sink)
        assert [h.index for h, _ in sink.records] == [0]

    def test_excluded_traces_contribute_nothing(self, work_dir):
        config = make_config(work_dir, offmax=5.0)
        data = np.array([1.0, -2.0, 3.0, 0.5], dtype=np.float32)
        loud = np.full(4, 100.0, dtype=np.float32)
        traces = [
            make_trace(loud, sx=-5.0, gx=0.0, index=0),  # source before the first table source
            make_trace(loud, sx=0.0, gx=10.0, index=1),  # offset beyond offmax
            make_trace(data, sx=0.0, gx=0.0, index=2),
        ]
        sink = MemorySink()
        result = DatumingExecutor(config, table=store_for(identity_geometry())).run(traces, sink)

        assert result.metrics.n_traces_rejected == 2
        assert result.gather_counts == [1]
        assert [h.index for h, _ in sink.records] == [2]
        scale = 10.0 / math.sqrt(2 * math.pi * V0)
        np.testing.assert_allclose(sink.records[0][1], data * scale, rtol=1e-6)


class TestGathers:
    """Tests for gather bookkeeping across shots."""

    def _config(self, work_dir, **kwargs):
        return make_config(
            work_dir, geometry=wide_geometry(), nxso=2, dxso=10.0, nxgo=2, dxgo=10.0,
            zdat=150.0, **kwargs,
        )

    def _traces(self, nt=64):
        data = ricker_trace(nt, 0.004, 0.12)
        return [
            make_trace(data, sx=0.0, gx=0.0, index=0),
            make_trace(data, sx=0.0, gx=10.0, index=1),
            make_trace(data, sx=10.0, gx=10.0, index=2),
            make_trace(data, sx=10.0, gx=20.0, index=3),
        ]

    def test_emission_follows_input_order(self, work_dir):
        sink = MemorySink()
        result = DatumingExecutor(self._config(work_dir), table=store_for(wide_geometry())).run(
            self._traces(), sink
        )
        assert [h.index for h, _ in sink.records] == [0, 1, 2, 3]
        assert result.gather_counts == [2, 2]
        assert result.n_traces_written == 4
        assert all(samples.shape == (64,) for _, samples in sink.records)

    def test_downward_datuming_produces_output(self, work_dir):
        sink = MemorySink()
        result = DatumingExecutor(self._config(work_dir), table=store_for(wide_geometry())).run(
            self._traces(), sink
        )
        assert result.metrics.n_contributions > 0
        assert result.metrics.guard_counts.get(GuardReason.BEFORE_ARRIVAL, 0) > 0
        assert any(np.any(samples != 0.0) for _, samples in sink.records)
        assert all(np.all(np.isfinite(samples)) for _, samples in sink.records)

    def test_gather_overflow(self, work_dir):
        config = make_config(work_dir)
        traces = [
            make_trace(np.zeros(4), sx=0.0, gx=0.0, index=0),
            make_trace(np.zeros(4), sx=0.0, gx=0.0, index=1),
        ]
        sink = MemorySink()
        executor = DatumingExecutor(config, table=store_for(identity_geometry()))
        with pytest.raises(GeometryRangeError, match="more than nxgo"):
            executor.run(traces, sink)
        assert sink.calls == 0
        assert executor.phase == ExecutionPhase.FAILED

    def test_shot_outside_survey(self, work_dir):
        config = make_config(work_dir, geometry=wide_geometry())
        sink = MemorySink()
        with pytest.raises(GeometryRangeError):
            DatumingExecutor(config, table=store_for(wide_geometry())).run(
                [make_trace(np.zeros(4), sx=10.0, gx=10.0)], sink
            )
        assert sink.calls == 0


class TestFailures:
    """Fatal conditions abort without output."""

    def test_changed_trace_length(self, work_dir):
        config = make_config(work_dir, nxgo=2, zdat=150.0)
        traces = [
            make_trace(np.zeros(16), sx=0.0, gx=0.0),
            make_trace(np.zeros(17), sx=0.0, gx=0.0),
        ]
        sink = MemorySink()
        with pytest.raises(ConfigurationError, match="changed"):
            DatumingExecutor(config, table=store_for(identity_geometry())).run(traces, sink)
        assert sink.calls == 0

    def test_no_input_traces(self, work_dir):
        sink = MemorySink()
        with pytest.raises(ResourceError, match="No input traces"):
            DatumingExecutor(make_config(work_dir), table=store_for(identity_geometry())).run([], sink)
        assert sink.calls == 0

    def test_table_coverage(self, work_dir):
        config = make_config(work_dir, nxso=20, dxso=10.0)
        with pytest.raises(GeometryRangeError, match="Output range is out of traveltime table"):
            check_table_coverage(config)
        sink = MemorySink()
        with pytest.raises(GeometryRangeError):
            DatumingExecutor(config, table=store_for(identity_geometry())).run(
                [make_trace(np.zeros(4), sx=0.0, gx=0.0)], sink
            )
        assert sink.calls == 0

    def test_overlapping_surfaces_with_offset(self, work_dir):
        config = make_config(work_dir, nxgo=2)
        sink = MemorySink()
        with pytest.raises(NumericalDegeneracyError):
            DatumingExecutor(config, table=store_for(identity_geometry())).run(
                [make_trace(np.zeros(4), sx=0.0, gx=10.0)], sink
            )
        assert sink.calls == 0

    def test_missing_table_file(self, work_dir):
        sink = MemorySink()
        with pytest.raises(ResourceError, match="Cannot open traveltime table"):
            DatumingExecutor(make_config(work_dir)).run(
                [make_trace(np.zeros(4), sx=0.0, gx=0.0)], sink
            )


class TestExecution:
    """Tests for limits, warnings and progress reporting."""

    def test_trace_limit(self, work_dir):
        config = make_config(work_dir)
        config.execution.ntr = 1
        # The second trace would overflow the single-receiver gather
        traces = [
            make_trace(np.ones(4), sx=0.0, gx=0.0, index=0),
            make_trace(np.ones(4), sx=0.0, gx=0.0, index=1),
        ]
        sink = MemorySink()
        result = DatumingExecutor(config, table=store_for(identity_geometry())).run(traces, sink)
        assert result.metrics.n_traces_read == 1
        assert len(sink.records) == 1

    def test_nyquist_warning(self, work_dir):
        config = make_config(work_dir, freq=200.0)
        sink = MemorySink()
        result = DatumingExecutor(config, table=store_for(identity_geometry())).run(
            [make_trace(np.zeros(4), sx=0.0, gx=0.0, dt=0.004)], sink
        )
        assert any("Nyquist" in w for w in result.metrics.warnings)

    def test_progress_callback(self, work_dir):
        config = make_config(work_dir)
        updates = []
        executor = DatumingExecutor(
            config, table=store_for(identity_geometry()), progress_callback=updates.append
        )
        executor.run([make_trace(np.zeros(4), sx=0.0, gx=0.0)], MemorySink())

        phases = [u.phase for u in updates]
        for phase in (
            ExecutionPhase.INIT,
            ExecutionPhase.DATUMING,
            ExecutionPhase.FINALIZATION,
            ExecutionPhase.COMPLETE,
        ):
            assert phase in phases
        assert any(u.message == "trace 1" and u.traces_accepted == 1 for u in updates)

    def test_table_geometry_from_config(self, work_dir):
        config = make_config(work_dir, geometry=wide_geometry())
        assert table_geometry(config) == wide_geometry()
