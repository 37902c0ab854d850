"""Configuration models and validation for KDATUM."""

from kdatum.config.models import (
    ColumnMapping,
    DatumingConfig,
    ExecutionConfig,
    ExtrapolationConfig,
    InputConfig,
    OutputConfig,
    SurfaceConfig,
    SurfaceMode,
    SurveyConfig,
    TraveltimeTableConfig,
    create_template_config,
    load_config,
)

__all__ = [
    # Main config
    "DatumingConfig",
    # Sub-configs
    "InputConfig",
    "OutputConfig",
    "TraveltimeTableConfig",
    "SurveyConfig",
    "SurfaceConfig",
    "ExtrapolationConfig",
    "ExecutionConfig",
    "ColumnMapping",
    # Enums
    "SurfaceMode",
    # Factory functions
    "load_config",
    "create_template_config",
]
