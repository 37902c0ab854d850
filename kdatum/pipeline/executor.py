"""
Datuming executor for KDATUM.

Runs one sequential pass over a common-source trace stream: every accepted
trace is filtered and mapped into the buffer of its shot gather; after the
last trace the gathers are scaled and handed to the output sink. A fatal
error aborts the run before anything is written.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from kdatum.config.models import DatumingConfig, SurfaceMode
from kdatum.data.output import OutputAccumulator
from kdatum.data.surface import SurfaceModel
from kdatum.data.traces import Trace, TraceSink, TraceSource, ZarrTraceReader, ZarrTraceWriter
from kdatum.data.traveltime import TableGeometry, TraveltimeTableStore
from kdatum.errors import DatumingError, GeometryRangeError, ResourceError
from kdatum.kernels.filter import FilterPlan
from kdatum.kernels.stationary_phase import GuardReason, StationaryPhaseMapper
from kdatum.utils.logging import (
    get_logger,
    log_exception,
    print_guard_counts,
    print_metrics,
    print_section,
    print_status,
)
from kdatum.utils.units import format_duration

logger = get_logger(__name__)


class ExecutionPhase(Enum):
    """Datuming execution phases."""

    INIT = "initialization"
    DATUMING = "datuming"
    FINALIZATION = "finalization"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ExecutionMetrics:
    """Accumulated execution metrics."""

    start_time: float = 0.0
    end_time: float = 0.0

    n_traces_read: int = 0
    n_traces_accepted: int = 0
    n_traces_written: int = 0
    n_contributions: int = 0
    guard_counts: dict[GuardReason, int] = field(default_factory=dict)

    compute_time_total: float = 0.0

    warnings: list[str] = field(default_factory=list)

    @property
    def elapsed_time(self) -> float:
        """Total elapsed time."""
        if self.end_time > 0:
            return self.end_time - self.start_time
        return time.time() - self.start_time

    @property
    def n_traces_rejected(self) -> int:
        """Traces excluded by the offset or source-range test."""
        return self.n_traces_read - self.n_traces_accepted

    @property
    def traces_per_second(self) -> float:
        """Average processing rate."""
        if self.compute_time_total > 0:
            return self.n_traces_accepted / self.compute_time_total
        return 0.0


@dataclass
class ProgressInfo:
    """Progress information passed to callback."""
    phase: ExecutionPhase
    message: str
    traces_read: int = 0
    traces_accepted: int = 0
    trace_limit: int = 0


# Type for progress callback - accepts ProgressInfo
ProgressCallback = Callable[[ProgressInfo], None]


@dataclass
class DatumingResult:
    """Outcome of a successful run."""

    metrics: ExecutionMetrics
    gather_counts: list[int]
    global_scale: float

    @property
    def n_traces_written(self) -> int:
        return self.metrics.n_traces_written


def table_geometry(config: DatumingConfig) -> TableGeometry:
    """Table grid described by a job configuration."""
    t = config.table
    return TableGeometry(
        fzt=t.fzt, nzt=t.nzt, dzt=t.dzt,
        fxt=t.fxt, nxt=t.nxt, dxt=t.dxt,
        fs=t.fs, ns=t.ns, ds=t.ds,
    )


def check_table_coverage(config: DatumingConfig) -> None:
    """
    Ensure the traveltime tables bound the survey and the depth grid.

    Raises:
        GeometryRangeError: if shots, surface nodes or depths fall outside the tables
    """
    t = config.table
    s = config.survey
    if (
        t.fxt > s.fxso
        or t.fxt > s.fxgo
        or t.ext < s.exso
        or t.ext < s.exgo
        or t.fzt > config.fzo
        or t.ezt < config.ezo
    ):
        raise GeometryRangeError(
            "Output range is out of traveltime table: "
            f"table x [{t.fxt:g}, {t.ext:g}] z [{t.fzt:g}, {t.ezt:g}], "
            f"shots [{s.fxso:g}, {s.exso:g}], surface [{s.fxgo:g}, {s.exgo:g}], "
            f"depths [{config.fzo:g}, {config.ezo:g}]"
        )


def build_surface(config: DatumingConfig) -> SurfaceModel:
    """Recording and datuming surfaces described by a job configuration."""
    sf = config.surfaces
    s = config.survey
    return SurfaceModel.from_files(
        nxi=s.nxi,
        fxi=s.fxgo,
        dxi=s.dxgo,
        zrec=sf.zrec,
        recfile=sf.recfile if sf.recsurf == SurfaceMode.FILE else None,
        zdat=sf.zdat,
        datfile=sf.datfile if sf.datsurf == SurfaceMode.FILE else None,
    )


class DatumingExecutor:
    """
    Executor of a receiver datuming run.

    Orchestrates:
    1. Initialization (table coverage, table and surface loading)
    2. Datuming loop over the trace stream
    3. Finalization (global scale, output emission)
    """

    def __init__(
        self,
        config: DatumingConfig,
        table: TraveltimeTableStore | None = None,
        surface: SurfaceModel | None = None,
        progress_callback: ProgressCallback | None = None,
    ):
        """
        Initialize the executor.

        Args:
            config: Job configuration
            table: Preloaded traveltime tables (read from config.table.path if None)
            surface: Prebuilt surfaces (built from config.surfaces if None)
            progress_callback: Optional callback for progress updates
        """
        self.config = config
        self.progress_callback = progress_callback

        self.phase = ExecutionPhase.INIT
        self.metrics = ExecutionMetrics()

        self._table = table
        self._surface = surface
        self._plan: FilterPlan | None = None
        self._accumulator: OutputAccumulator | None = None
        self._mapper: StationaryPhaseMapper | None = None

    @property
    def accumulator(self) -> OutputAccumulator | None:
        return self._accumulator

    def run(self, source: TraceSource, sink: TraceSink) -> DatumingResult:
        """
        Execute the datuming run.

        Args:
            source: Ordered input traces
            sink: Output writer, called once after a successful run

        Returns:
            DatumingResult with metrics and gather counts

        Raises:
            DatumingError: on any fatal condition; nothing is written
        """
        self.metrics.start_time = time.time()

        try:
            self._report_phase(ExecutionPhase.INIT)
            self._initialize()

            self._report_phase(ExecutionPhase.DATUMING)
            self._datum(source)

            self._report_phase(ExecutionPhase.FINALIZATION)
            result = self._finalize(sink)

            self._report_phase(ExecutionPhase.COMPLETE)
            self.metrics.end_time = time.time()
            if self.config.execution.verbose:
                self._print_summary()
            return result

        except DatumingError as e:
            log_exception(logger, e, "Datuming failed")
            self.phase = ExecutionPhase.FAILED
            self.metrics.end_time = time.time()
            raise

    # =========================================================================
    # Phases
    # =========================================================================

    def _initialize(self) -> None:
        """Check coverage, then load tables and surfaces."""
        cfg = self.config
        check_table_coverage(cfg)

        if self._table is None:
            self._table = TraveltimeTableStore.from_file(cfg.table.path, table_geometry(cfg))
        if self._surface is None:
            self._surface = build_surface(cfg)

        self._mapper = StationaryPhaseMapper(
            table=self._table,
            surface=self._surface,
            nxgo=cfg.survey.nxgo,
            dxgo=cfg.survey.dxgo,
            fzo=cfg.fzo,
            depth_limit=cfg.depth_limit,
            v0=cfg.extrapolation.v0,
            freq=cfg.extrapolation.freq,
        )

        if cfg.execution.verbose:
            self._print_parameters()

    def _start_output(self, first: Trace) -> None:
        """Build the filter plan and the output buffers from the first trace."""
        cfg = self.config
        self._plan = FilterPlan(first.nt, first.dt)
        self._accumulator = OutputAccumulator(
            n_shots=cfg.survey.nxso,
            n_receivers=cfg.survey.nxgo,
            n_samples=first.nt,
            dxgo=cfg.survey.dxgo,
            v0=cfg.extrapolation.v0,
        )
        if 1.0 / (2.0 * cfg.extrapolation.freq) < first.dt:
            msg = (
                f"freq={cfg.extrapolation.freq:g} exceeds the Nyquist frequency of "
                f"dt={first.dt:g}; possible singularities in the output"
            )
            self.metrics.warnings.append(msg)
            logger.warning(msg)

    def _accepts(self, sx: float, gx: float) -> bool:
        """Source-range and offset test of one trace."""
        geometry = self._table.geometry
        return (
            min(sx, gx) >= geometry.fs
            and max(sx, gx) <= geometry.es
            and abs(gx - sx) <= self.config.offset_limit
        )

    def _datum(self, source: TraceSource) -> None:
        """Filter and map every accepted trace into its gather."""
        cfg = self.config
        survey = cfg.survey
        ntr = cfg.execution.ntr
        mtr = cfg.execution.mtr
        aperture = cfg.aperture

        fxin = survey.fxgo
        current_sx = survey.fxso

        for jtr, trace in enumerate(source, start=1):
            if jtr > ntr:
                break
            self.metrics.n_traces_read += 1

            if self._plan is None:
                self._start_output(trace)
            else:
                self._plan.check(trace.nt, trace.dt)

            sx, gx = trace.sx, trace.gx

            # A new source coordinate starts a new gather
            if sx != current_sx:
                current_sx = sx
                if gx > survey.fxgo:
                    fxin = gx

            io = int((sx - survey.fxso) / survey.dxso)

            if not self._accepts(sx, gx):
                continue

            t0 = time.time()
            self._accumulator.accept(trace.header, io)
            table2d = self._table.source_interpolated_table(gx)
            filtered = self._plan.apply(trace.data)
            mapped = self._mapper.map_trace(
                trace, filtered, table2d, aperture, self._accumulator.gather(io), fxin
            )
            self.metrics.compute_time_total += time.time() - t0

            self.metrics.n_traces_accepted += 1
            self.metrics.n_contributions += mapped.n_contributions
            for reason, n in mapped.guard_counts.items():
                self.metrics.guard_counts[reason] = self.metrics.guard_counts.get(reason, 0) + n

            if (jtr - 1) % mtr == 0:
                logger.info(f"Datumed receiver in trace {jtr}")
                self._report_progress(f"trace {jtr}")

        if self._plan is None:
            raise ResourceError("No input traces")
        logger.info(f"Datumed receivers in {self.metrics.n_traces_accepted} total traces")

    def _finalize(self, sink: TraceSink) -> DatumingResult:
        """Scale the gathers and emit one record per accepted trace."""
        accumulator = self._accumulator
        accumulator.finalize(self.config.extrapolation.scale)
        records = list(accumulator.iter_output())
        self.metrics.n_traces_written = sink.write_all(records)
        logger.info("Output done")
        return DatumingResult(
            metrics=self.metrics,
            gather_counts=[int(n) for n in accumulator.counts],
            global_scale=accumulator.global_scale(self.config.extrapolation.scale),
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def _report_phase(self, phase: ExecutionPhase) -> None:
        """Report phase change."""
        self.phase = phase
        logger.debug(f"Phase: {phase.value}")
        if self.progress_callback:
            self.progress_callback(self._progress_info(""))

    def _report_progress(self, message: str) -> None:
        """Report progress within the datuming loop."""
        if self.progress_callback:
            self.progress_callback(self._progress_info(message))

    def _progress_info(self, message: str) -> ProgressInfo:
        return ProgressInfo(
            phase=self.phase,
            message=message,
            traces_read=self.metrics.n_traces_read,
            traces_accepted=self.metrics.n_traces_accepted,
            trace_limit=self.config.execution.ntr,
        )

    def _print_parameters(self) -> None:
        """Print the run parameters."""
        print_section("Receiver Datuming Parameters")
        print_metrics("Job", self.config.get_summary())
        if math.isinf(self.config.offset_limit):
            print_status("No offset limit (offmax unset)", "warn")

    def _print_summary(self) -> None:
        """Print execution summary."""
        print_section("Datuming Complete")
        print_metrics(
            "Run",
            {
                "Total time": format_duration(self.metrics.elapsed_time),
                "Traces read": self.metrics.n_traces_read,
                "Traces datumed": self.metrics.n_traces_accepted,
                "Traces written": self.metrics.n_traces_written,
                "Contributions": self.metrics.n_contributions,
                "Processing rate": f"{self.metrics.traces_per_second:.0f} traces/s",
            },
        )
        if self.metrics.guard_counts:
            print_guard_counts(self.metrics.guard_counts)

        if self.metrics.warnings:
            logger.warning(f"{len(self.metrics.warnings)} warnings during execution")
        print_status("Output written", "ok")


def run_datuming(
    config: DatumingConfig,
    source: TraceSource | None = None,
    sink: TraceSink | None = None,
    progress_callback: ProgressCallback | None = None,
) -> DatumingResult:
    """
    Convenience function to run datuming.

    Args:
        config: Job configuration
        source: Input traces (Zarr/Parquet reader from config.input if None)
        sink: Output writer (Zarr/Parquet writer to config.output if None)
        progress_callback: Optional progress callback

    Returns:
        DatumingResult of the run
    """
    reader: ZarrTraceReader | None = None
    if source is None:
        reader = ZarrTraceReader(
            config.input.traces_path,
            config.input.headers_path,
            columns=config.input.columns,
            dt=config.extrapolation.dt,
            ft=config.extrapolation.ft,
        )
        source = reader.open()
    if sink is None:
        sink = ZarrTraceWriter(
            config.output.traces_path,
            config.output.headers_path,
            columns=config.input.columns,
            dt=reader.dt if reader is not None else config.extrapolation.dt,
            ft=reader.ft if reader is not None else config.extrapolation.ft,
            schema=reader.header_schema if reader is not None else None,
        )

    executor = DatumingExecutor(config, progress_callback=progress_callback)
    try:
        return executor.run(source, sink)
    finally:
        if reader is not None:
            reader.close()
