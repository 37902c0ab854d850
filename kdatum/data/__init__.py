"""Data access: surfaces, traveltime tables, traces and output gathers."""

from kdatum.data.output import OutputAccumulator
from kdatum.data.surface import ClampPolicy, SurfaceKind, SurfaceModel, read_surface_file
from kdatum.data.traces import Trace, TraceHeader, TraceSink, ZarrTraceReader, ZarrTraceWriter
from kdatum.data.traveltime import TableGeometry, TraveltimeTableStore, weighted_sum

__all__ = [
    # Surfaces
    "SurfaceModel",
    "SurfaceKind",
    "ClampPolicy",
    "read_surface_file",
    # Traveltime tables
    "TableGeometry",
    "TraveltimeTableStore",
    "weighted_sum",
    # Traces
    "Trace",
    "TraceHeader",
    "TraceSink",
    "ZarrTraceReader",
    "ZarrTraceWriter",
    # Output
    "OutputAccumulator",
]
