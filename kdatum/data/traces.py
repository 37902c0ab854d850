"""
Trace records and Zarr/Parquet trace I/O for KDATUM.

Input traces live in a 2D Zarr array ``(n_traces, nt)`` with attributes
``sample_rate_ms`` and ``start_time_ms``; their headers live in a Parquet
table with one row per trace. Every header column is carried through to the
output unchanged.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import numpy as np
import polars as pl
import zarr
from numcodecs import Blosc
from numpy.typing import NDArray

from kdatum.config.models import ColumnMapping
from kdatum.errors import ConfigurationError, ResourceError
from kdatum.settings import get_settings
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Trace records
# =============================================================================


@dataclass(frozen=True)
class TraceHeader:
    """Header record of one trace."""

    index: int
    source_x: float
    receiver_x: float

    # Remaining header columns, carried through untouched
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def offset(self) -> float:
        """Absolute source-receiver offset."""
        return abs(self.receiver_x - self.source_x)


@dataclass
class Trace:
    """One input trace: samples, time axis and header."""

    data: NDArray[np.float32]
    dt: float  # seconds
    ft: float  # seconds
    header: TraceHeader

    @property
    def nt(self) -> int:
        """Number of samples."""
        return self.data.shape[0]

    @property
    def sx(self) -> float:
        """Source lateral coordinate."""
        return self.header.source_x

    @property
    def gx(self) -> float:
        """Receiver lateral coordinate."""
        return self.header.receiver_x


class TraceSource(Protocol):
    """Ordered stream of input traces."""

    def __iter__(self) -> Iterator[Trace]: ...


class TraceSink(Protocol):
    """Receiver of datumed traces, called once after the run succeeded."""

    def write_all(self, records: list[tuple[TraceHeader, NDArray[np.float32]]]) -> int: ...


# =============================================================================
# Zarr + Parquet reader
# =============================================================================


class ZarrTraceReader:
    """
    Sequential reader of traces from a Zarr array and a Parquet header table.

    Headers are read in file order; ``trace_idx`` selects the Zarr row of
    each header.
    """

    def __init__(
        self,
        traces_path: Path | str,
        headers_path: Path | str,
        columns: ColumnMapping | None = None,
        dt: float | None = None,
        ft: float | None = None,
        chunk_size: int | None = None,
    ):
        """
        Args:
            traces_path: Path to Zarr array
            headers_path: Path to Parquet headers
            columns: Header column names
            dt: Sample interval override in seconds
            ft: First sample time override in seconds
            chunk_size: Traces per read chunk (settings default if None)
        """
        self.traces_path = Path(traces_path)
        self.headers_path = Path(headers_path)
        self.columns = columns or ColumnMapping()
        self._dt_override = dt
        self._ft_override = ft
        self.chunk_size = chunk_size or get_settings().io.trace_chunk_size

        self._zarr: zarr.Array | None = None
        self._headers: pl.DataFrame | None = None

    def open(self) -> "ZarrTraceReader":
        """Open the trace array and load the header table."""
        if self._zarr is not None:
            return self

        if not self.traces_path.exists():
            raise ResourceError(f"Zarr array not found: {self.traces_path}")
        if not self.headers_path.exists():
            raise ResourceError(f"Parquet file not found: {self.headers_path}")

        logger.debug(f"Opening Zarr array: {self.traces_path}")
        self._zarr = zarr.open(str(self.traces_path), mode="r")
        if self._zarr.ndim != 2:
            raise ResourceError(f"Expected 2D trace array, got {self._zarr.ndim}D")

        self._headers = pl.read_parquet(self.headers_path)
        required = [self.columns.trace_index, self.columns.source_x, self.columns.receiver_x]
        missing = [c for c in required if c not in self._headers.columns]
        if missing:
            raise ResourceError(f"Missing required header columns: {missing}")

        logger.info(
            f"Opened trace data: {self._headers.height:,} headers, "
            f"{self._zarr.shape[0]:,} traces × {self._zarr.shape[1]:,} samples"
        )
        return self

    def close(self) -> None:
        """Release the array and header table."""
        self._zarr = None
        self._headers = None

    def __enter__(self) -> "ZarrTraceReader":
        return self.open()

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def dt(self) -> float:
        """Sample interval in seconds."""
        if self._dt_override is not None:
            return self._dt_override
        self.open()
        assert self._zarr is not None
        rate_ms = self._zarr.attrs.get("sample_rate_ms")
        if rate_ms is None:
            raise ConfigurationError(
                f"No sample_rate_ms attribute on {self.traces_path}; set extrapolation.dt"
            )
        return float(rate_ms) / 1000.0

    @property
    def ft(self) -> float:
        """First sample time in seconds."""
        if self._ft_override is not None:
            return self._ft_override
        self.open()
        assert self._zarr is not None
        return float(self._zarr.attrs.get("start_time_ms", 0.0)) / 1000.0

    @property
    def n_traces(self) -> int:
        """Number of header records."""
        self.open()
        assert self._headers is not None
        return self._headers.height

    @property
    def header_schema(self) -> dict[str, pl.DataType]:
        """Schema of the header table."""
        self.open()
        assert self._headers is not None
        return dict(self._headers.schema)

    def _to_header(self, row: dict[str, Any]) -> TraceHeader:
        c = self.columns
        extra = {k: v for k, v in row.items() if k not in (c.trace_index, c.source_x, c.receiver_x)}
        return TraceHeader(
            index=int(row[c.trace_index]),
            source_x=float(row[c.source_x]),
            receiver_x=float(row[c.receiver_x]),
            extra=extra,
        )

    def __iter__(self) -> Iterator[Trace]:
        self.open()
        assert self._zarr is not None and self._headers is not None
        dt, ft = self.dt, self.ft
        n_array = self._zarr.shape[0]

        for start in range(0, self._headers.height, self.chunk_size):
            chunk = self._headers.slice(start, self.chunk_size)
            indices = chunk[self.columns.trace_index].to_numpy().astype(np.int64)
            if indices.size and (indices.min() < 0 or indices.max() >= n_array):
                raise ResourceError(
                    f"Header trace index out of range 0..{n_array - 1} in {self.headers_path}"
                )
            data = np.asarray(self._zarr.oindex[indices, :], dtype=np.float32)
            for row, samples in zip(chunk.iter_rows(named=True), data):
                yield Trace(data=samples.copy(), dt=dt, ft=ft, header=self._to_header(row))


# =============================================================================
# Zarr + Parquet writer
# =============================================================================


class ZarrTraceWriter:
    """Writes datumed traces and their headers in emission order."""

    def __init__(
        self,
        traces_path: Path | str,
        headers_path: Path | str,
        columns: ColumnMapping | None = None,
        dt: float | None = None,
        ft: float | None = None,
        schema: dict[str, pl.DataType] | None = None,
    ):
        self.traces_path = Path(traces_path)
        self.headers_path = Path(headers_path)
        self.columns = columns or ColumnMapping()
        self.dt = dt
        self.ft = ft
        self.schema = schema

    def write_all(self, records: list[tuple[TraceHeader, NDArray[np.float32]]]) -> int:
        """
        Write all records.

        Returns:
            Number of traces written
        """
        io = get_settings().io
        n = len(records)
        nt = records[0][1].shape[0] if n else 0

        self.traces_path.parent.mkdir(parents=True, exist_ok=True)
        compressor = None
        if io.zarr_compressor == "blosc":
            compressor = Blosc(cname="zstd", clevel=io.zarr_compression_level, shuffle=Blosc.BITSHUFFLE)
        z = zarr.open(
            str(self.traces_path),
            mode="w",
            shape=(n, nt),
            chunks=(max(1, min(n, io.trace_chunk_size)), max(1, nt)),
            dtype=np.float32,
            zarr_format=2,
            compressor=compressor,
        )
        if n:
            z[:] = np.stack([data for _, data in records]).astype(np.float32)
        if self.dt is not None:
            z.attrs["sample_rate_ms"] = self.dt * 1000.0
        if self.ft is not None:
            z.attrs["start_time_ms"] = self.ft * 1000.0
        z.attrs["description"] = "Receiver-datumed common-source gathers"

        c = self.columns
        rows = []
        for out_idx, (header, _) in enumerate(records):
            row = {
                c.trace_index: out_idx,
                c.source_x: header.source_x,
                c.receiver_x: header.receiver_x,
            }
            row.update(header.extra)
            rows.append(row)

        if rows:
            df = pl.DataFrame(rows, schema_overrides=self._overrides(rows[0]))
        else:
            df = pl.DataFrame(schema=self.schema or {
                c.trace_index: pl.Int64, c.source_x: pl.Float64, c.receiver_x: pl.Float64,
            })
        self.headers_path.parent.mkdir(parents=True, exist_ok=True)
        df.write_parquet(self.headers_path)

        logger.info(f"Wrote {n:,} traces to {self.traces_path}")
        return n

    def _overrides(self, row: dict[str, Any]) -> dict[str, pl.DataType] | None:
        if self.schema is None:
            return None
        overrides = {k: v for k, v in self.schema.items() if k in row}
        overrides[self.columns.trace_index] = pl.Int64
        return overrides
