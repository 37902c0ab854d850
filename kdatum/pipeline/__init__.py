"""Run orchestration for KDATUM."""

from kdatum.pipeline.executor import (
    DatumingExecutor,
    DatumingResult,
    ExecutionMetrics,
    ExecutionPhase,
    ProgressInfo,
    run_datuming,
)

__all__ = [
    "DatumingExecutor",
    "DatumingResult",
    "ExecutionMetrics",
    "ExecutionPhase",
    "ProgressInfo",
    "run_datuming",
]
