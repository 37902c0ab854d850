"""Utility modules for KDATUM."""

from kdatum.utils.logging import (
    console,
    get_logger,
    log_exception,
    print_banner,
    print_guard_counts,
    print_metrics,
    print_section,
    print_status,
    setup_logging,
)
from kdatum.utils.units import format_duration

__all__ = [
    # Logging
    "console",
    "setup_logging",
    "get_logger",
    "log_exception",
    # Console reports
    "print_banner",
    "print_section",
    "print_status",
    "print_metrics",
    "print_guard_counts",
    # Formatting
    "format_duration",
]
