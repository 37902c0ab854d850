"""
Console output and logging for KDATUM.

Records from ``kdatum.*`` loggers go to a Rich handler on the shared console
and, for a run with a log file, to a plain-text file as well. Run reports
(parameter tables, guard statistics, status lines) are printed straight to
the console and never pass through logging.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

PACKAGE_LOGGER = "kdatum"

console = Console(
    theme=Theme(
        {
            "ok": "green",
            "warn": "yellow",
            "fail": "red bold",
            "note": "cyan",
            "value": "magenta",
        }
    )
)

_STATUS_MARKS = {"ok": "✓", "warn": "⚠", "fail": "✗", "note": "ℹ"}

_FILE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


# =============================================================================
# Logging
# =============================================================================


def setup_logging(level: str = "INFO", log_file: Path | str | None = None) -> logging.Logger:
    """
    Route ``kdatum.*`` records to the console and optionally to a file.

    Calling it again replaces the previous handlers, which is how the CLI
    switches to the log file named in a job configuration. Both handlers
    share ``level``.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False

    rich_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the package hierarchy; ``kdatum.*`` names are used as-is."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "") -> None:
    """Log a fatal error on one line, attaching the traceback only at DEBUG."""
    message = f"{type(exc).__name__}: {exc}"
    if context:
        message = f"{context}: {message}"
    logger.error(message, exc_info=exc if logger.isEnabledFor(logging.DEBUG) else None)


# =============================================================================
# Console reports
# =============================================================================


def print_banner(version: str) -> None:
    console.print(
        Panel.fit(
            "[note]2.5D Kirchhoff receiver datuming of common-source gathers[/note]\n"
            "[dim]constant-background stationary-phase data mapping[/dim]",
            title=f"KDATUM {version}",
            border_style="blue",
        )
    )


def print_section(title: str) -> None:
    console.rule(f"[bold]{title}[/bold]")


def print_status(message: str, kind: str = "note") -> None:
    """Print a status line; ``kind`` is one of ok, warn, fail, note."""
    console.print(f"[{kind}]{_STATUS_MARKS[kind]}[/{kind}] {message}")


def format_value(value: object) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:.6g}"
    if value is None:
        return "-"
    return str(value)


def print_metrics(title: str, metrics: Mapping[str, object]) -> None:
    """Print name/value pairs as a two-column table."""
    table = Table(title=title, show_header=False, box=None, title_justify="left")
    table.add_column(style="dim")
    table.add_column(style="value", justify="right")
    for name, value in metrics.items():
        table.add_row(name, format_value(value))
    console.print(table)


def guard_count_rows(counts: Mapping[Enum, int]) -> list[tuple[str, str, str]]:
    """
    Rows of (reason, count, share) for stationary-point guard statistics.

    ``counts`` maps each guard reason to the number of output points it
    decided, the ``NONE`` entry being the points that contributed. Shares
    are relative to all evaluated points. Rows follow the reason order.
    """
    total = sum(counts.values())
    rows = []
    for reason in sorted(counts, key=lambda r: r.value):
        n = counts[reason]
        label = "contributed" if reason.name == "NONE" else reason.name.lower().replace("_", " ")
        share = f"{100.0 * n / total:.1f}%" if total else "-"
        rows.append((label, f"{n:,}", share))
    return rows


def print_guard_counts(counts: Mapping[Enum, int]) -> None:
    table = Table(title="Stationary points", title_justify="left", box=None)
    table.add_column("Outcome", style="dim")
    table.add_column("Points", style="value", justify="right")
    table.add_column("Share", justify="right")
    for row in guard_count_rows(counts):
        table.add_row(*row)
    console.print(table)
