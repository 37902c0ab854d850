"""
Pydantic configuration models for KDATUM.

This module defines the job configuration of a receiver datuming run.
All models are validated and serializable to JSON.
"""

from __future__ import annotations

import math
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from kdatum.errors import ConfigurationError


# =============================================================================
# Enumerations
# =============================================================================


class SurfaceMode(str, Enum):
    """How a reference surface is defined."""
    FLAT = "flat"
    FILE = "file"


# =============================================================================
# Type Aliases
# =============================================================================

PositiveFloat = Annotated[float, Field(gt=0)]
NonNegativeFloat = Annotated[float, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]


# =============================================================================
# Base Configuration
# =============================================================================


class BaseConfig(BaseModel):
    """Base configuration with common settings."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        str_strip_whitespace=True,
        use_enum_values=False,
    )


# =============================================================================
# Input / Output Configuration
# =============================================================================


class ColumnMapping(BaseConfig):
    """Mapping of header column names to internal names."""

    trace_index: str = Field(default="trace_idx", description="Global trace index column")
    source_x: str = Field(default="SOU_X", description="Source lateral coordinate column")
    receiver_x: str = Field(default="REC_X", description="Receiver lateral coordinate column")


class InputConfig(BaseConfig):
    """Configuration for input data."""

    traces_path: Path = Field(description="Path to Zarr trace data")
    headers_path: Path = Field(description="Path to Parquet headers")
    columns: ColumnMapping = Field(default_factory=ColumnMapping)

    @field_validator("traces_path", "headers_path")
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure path is absolute."""
        return v.resolve() if v else v


class OutputConfig(BaseConfig):
    """Configuration for datumed output traces."""

    traces_path: Path = Field(description="Path of the output Zarr trace array")
    headers_path: Path = Field(description="Path of the output Parquet headers")

    @field_validator("traces_path", "headers_path")
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure path is absolute."""
        return v.resolve() if v else v


# =============================================================================
# Traveltime Table Configuration
# =============================================================================


class TraveltimeTableConfig(BaseConfig):
    """Geometry of the precomputed traveltime tables and their file."""

    path: Path = Field(description="Raw float32 table file (ns slices of nxt*nzt)")

    fzt: float = Field(description="First depth sample in table")
    nzt: int = Field(ge=2, description="Number of depth samples in table")
    dzt: PositiveFloat = Field(description="Depth interval in table")

    fxt: float = Field(description="First lateral sample in table")
    nxt: int = Field(ge=2, description="Number of lateral samples in table")
    dxt: PositiveFloat = Field(description="Lateral interval in table")

    fs: float = Field(description="Lateral coordinate of first source in table")
    ns: PositiveInt = Field(description="Number of sources in table")
    ds: PositiveFloat = Field(description="Lateral increment of sources in table")

    @property
    def ext(self) -> float:
        """Last lateral sample."""
        return self.fxt + (self.nxt - 1) * self.dxt

    @property
    def ezt(self) -> float:
        """Last depth sample."""
        return self.fzt + (self.nzt - 1) * self.dzt

    @property
    def es(self) -> float:
        """Lateral coordinate of the last source."""
        return self.fs + (self.ns - 1) * self.ds


# =============================================================================
# Survey Configuration
# =============================================================================


class SurveyConfig(BaseConfig):
    """Shot and receiver layout of the common-source data."""

    nxso: PositiveInt = Field(description="Number of shots")
    dxso: PositiveFloat = Field(description="Shot interval")
    fxso: float = Field(default=0.0, description="Lateral coordinate of first shot")

    nxgo: PositiveInt = Field(description="Number of receiver offsets per shot")
    dxgo: PositiveFloat = Field(description="Receiver offset interval")
    fxgo: float = Field(default=0.0, description="First receiver offset")

    @model_validator(mode="after")
    def validate_spacing(self) -> "SurveyConfig":
        """Shot spacing must equal receiver spacing when there are several shots."""
        if self.nxso > 1 and self.dxso != self.dxgo:
            raise ValueError(
                f"dxso ({self.dxso}) must equal dxgo ({self.dxgo}) when nxso > 1"
            )
        return self

    @property
    def nxi(self) -> int:
        """Number of independent surface locations spanning the survey."""
        n = int((self.fxgo + (self.nxgo + self.nxso - 2) * self.dxgo) / self.dxgo) + 1
        # At least one surface segment
        return max(n, 2)

    @property
    def exso(self) -> float:
        """Lateral coordinate of the last shot."""
        return self.fxso + (self.nxso - 1) * self.dxso

    @property
    def exgo(self) -> float:
        """Lateral coordinate of the last surface location."""
        return self.fxgo + (self.nxi - 1) * self.dxgo


# =============================================================================
# Surface Configuration
# =============================================================================


class SurfaceConfig(BaseConfig):
    """Recording and datuming surface definitions."""

    recsurf: SurfaceMode = Field(default=SurfaceMode.FLAT, description="Recording surface mode")
    zrec: float | None = Field(default=None, description="Recording surface depth (flat mode)")
    recfile: Path | None = Field(default=None, description="Recording surface file (file mode)")

    datsurf: SurfaceMode = Field(default=SurfaceMode.FLAT, description="Datuming surface mode")
    zdat: float | None = Field(default=None, description="Datuming surface depth (flat mode)")
    datfile: Path | None = Field(default=None, description="Datuming surface file (file mode)")

    @model_validator(mode="after")
    def validate_surfaces(self) -> "SurfaceConfig":
        """Each surface needs its depth or its file, depending on the mode."""
        if self.recsurf == SurfaceMode.FLAT and self.zrec is None:
            raise ValueError("zrec required when recsurf is flat")
        if self.recsurf == SurfaceMode.FILE and self.recfile is None:
            raise ValueError("recfile required when recsurf is file")
        if self.datsurf == SurfaceMode.FLAT and self.zdat is None:
            raise ValueError("zdat required when datsurf is flat")
        if self.datsurf == SurfaceMode.FILE and self.datfile is None:
            raise ValueError("datfile required when datsurf is file")
        return self


# =============================================================================
# Extrapolation Configuration
# =============================================================================


class ExtrapolationConfig(BaseConfig):
    """Parameters of the datuming operator."""

    dzo: PositiveFloat | None = Field(
        default=None,
        description="Vertical spacing in surface determination (default 0.2*dzt)",
    )
    offmax: NonNegativeFloat | None = Field(
        default=None,
        description="Maximum absolute offset allowed (None = unlimited)",
    )
    aperx: PositiveFloat | None = Field(
        default=None,
        description="Lateral half-aperture (default nxt*dxt/2)",
    )
    v0: PositiveFloat = Field(default=1500.0, description="Reference wavespeed (m/s)")
    freq: PositiveFloat = Field(
        default=50.0,
        description="Dominant frequency, sets the minimum path contrast below the datum",
    )
    scale: float = Field(default=1.0, description="User scale factor for output")

    # Overrides of the trace time axis (seconds)
    dt: PositiveFloat | None = Field(default=None, description="Sample interval override (s)")
    ft: float | None = Field(default=None, description="First sample time override (s)")

    @property
    def min_path_contrast(self) -> float:
        """Smallest rig - rog for which the stationary point is resolved."""
        return self.v0 / (4.0 * self.freq)


class ExecutionConfig(BaseConfig):
    """Configuration for execution parameters."""

    mtr: PositiveInt = Field(default=100, description="Report progress every mtr traces")
    ntr: PositiveInt = Field(default=100000, description="Maximum number of input traces")

    verbose: bool = Field(default=True, description="Enable verbose output")
    log_file: Path | None = Field(default=None, description="Log file path")


# =============================================================================
# Root Configuration
# =============================================================================


class DatumingConfig(BaseConfig):
    """
    Root configuration model for receiver datuming.

    Combines the traveltime table, survey layout, surfaces and operator
    parameters. It can be serialized to/from JSON for persistence.
    """

    input: InputConfig
    output: OutputConfig
    table: TraveltimeTableConfig
    survey: SurveyConfig
    surfaces: SurfaceConfig
    extrapolation: ExtrapolationConfig = Field(default_factory=ExtrapolationConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)

    name: str = Field(default="unnamed_datuming", description="Project/job name")
    description: str | None = Field(default=None, description="Project description")

    @property
    def dzo(self) -> float:
        """Vertical spacing of the depth grid."""
        if self.extrapolation.dzo is not None:
            return self.extrapolation.dzo
        return 0.2 * self.table.dzt

    @property
    def fzo(self) -> float:
        """First depth of the depth grid."""
        return self.table.fzt

    @property
    def nzo(self) -> int:
        """Number of depth grid samples."""
        return 1 + int(((self.table.nzt - 1) * self.table.dzt) / self.dzo)

    @property
    def ezo(self) -> float:
        """Last depth of the depth grid."""
        return self.fzo + (self.nzo - 1) * self.dzo

    @property
    def depth_limit(self) -> float:
        """Depths at or beyond this value are outside the tables."""
        return self.fzo + self.nzo * self.dzo

    @property
    def aperture(self) -> float:
        """Lateral half-aperture."""
        if self.extrapolation.aperx is not None:
            return self.extrapolation.aperx
        return 0.5 * self.table.nxt * self.table.dxt

    @property
    def offset_limit(self) -> float:
        """Maximum absolute offset."""
        if self.extrapolation.offmax is None:
            return math.inf
        return self.extrapolation.offmax

    def to_json(self, path: Path | str, indent: int = 2) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        path.write_text(self.model_dump_json(indent=indent))

    @classmethod
    def from_json(cls, path: Path | str) -> "DatumingConfig":
        """Load configuration from JSON file."""
        path = Path(path)
        return cls.model_validate_json(path.read_text())

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of key configuration parameters."""
        t = self.table
        s = self.survey
        return {
            "name": self.name,
            "input_traces": str(self.input.traces_path),
            "output_traces": str(self.output.traces_path),
            "ttfile": str(t.path),
            "table_z": f"nzt={t.nzt} fzt={t.fzt:g} dzt={t.dzt:g}",
            "table_x": f"nxt={t.nxt} fxt={t.fxt:g} dxt={t.dxt:g}",
            "table_sources": f"ns={t.ns} fs={t.fs:g} ds={t.ds:g}",
            "surface_nodes": f"nxi={s.nxi} fxi={s.fxgo:g} dxi={s.dxgo:g}",
            "depth_grid": f"nzo={self.nzo} fzo={self.fzo:g} dzo={self.dzo:g}",
            "shots": f"nxso={s.nxso} fxso={s.fxso:g} dxso={s.dxso:g}",
            "receivers": f"nxgo={s.nxgo} fxgo={s.fxgo:g} dxgo={s.dxgo:g}",
            "operator": f"freq={self.extrapolation.freq:g} v0={self.extrapolation.v0:g}",
            "aperture": f"aperx={self.aperture:g} offmax={self.offset_limit:g}",
            "limits": f"ntr={self.execution.ntr} mtr={self.execution.mtr}",
        }


# =============================================================================
# Convenience functions
# =============================================================================


def load_config(path: Path | str) -> DatumingConfig:
    """
    Load and validate a job configuration.

    Raises:
        ConfigurationError: if the file is missing or fails validation
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        return DatumingConfig.from_json(path)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {path}:\n{e}") from e


def create_template_config(
    work_dir: str | Path,
    zrec: float = 0.0,
    zdat: float = 100.0,
) -> DatumingConfig:
    """
    Create a template configuration with flat surfaces.

    Args:
        work_dir: Directory holding input, output and table files
        zrec: Recording surface depth
        zdat: Datuming surface depth

    Returns:
        Configured DatumingConfig instance
    """
    work_dir = Path(work_dir)
    return DatumingConfig(
        name="template",
        input=InputConfig(
            traces_path=work_dir / "input.zarr",
            headers_path=work_dir / "input_headers.parquet",
        ),
        output=OutputConfig(
            traces_path=work_dir / "datumed.zarr",
            headers_path=work_dir / "datumed_headers.parquet",
        ),
        table=TraveltimeTableConfig(
            path=work_dir / "ttable.bin",
            fzt=0.0, nzt=101, dzt=10.0,
            fxt=0.0, nxt=201, dxt=10.0,
            fs=0.0, ns=41, ds=50.0,
        ),
        survey=SurveyConfig(nxso=1, dxso=10.0, fxso=0.0, nxgo=48, dxgo=10.0, fxgo=0.0),
        surfaces=SurfaceConfig(zrec=zrec, zdat=zdat),
    )
