"""
KDATUM Command Line Interface.

Entry point for the receiver datuming application.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from kdatum import __version__
from kdatum.errors import DatumingError
from kdatum.settings import get_settings_manager
from kdatum.utils.logging import (
    console,
    get_logger,
    print_banner,
    print_metrics,
    print_section,
    print_status,
    setup_logging,
)

logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kdatum",
        description="2.5D Kirchhoff receiver datuming of common-source gathers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kdatum run job.json             Run datuming from config file
  kdatum validate job.json        Validate configuration file
  kdatum create-config job.json   Write a template configuration
  kdatum info input.zarr          Show information about input data
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        help="Write logs to file",
    )

    parser.add_argument(
        "--settings",
        type=Path,
        help="Application settings file (TOML or JSON)",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -------------------------------------------------------------------------
    # run command
    # -------------------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        help="Run datuming from configuration file",
    )
    run_parser.add_argument(
        "config",
        type=Path,
        help="Path to configuration JSON file",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration without running",
    )

    # -------------------------------------------------------------------------
    # validate command
    # -------------------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate configuration file",
    )
    validate_parser.add_argument(
        "config",
        type=Path,
        help="Path to configuration JSON file",
    )
    validate_parser.add_argument(
        "--check-data",
        action="store_true",
        help="Also check table coverage and that input files exist",
    )

    # -------------------------------------------------------------------------
    # info command
    # -------------------------------------------------------------------------
    info_parser = subparsers.add_parser(
        "info",
        help="Show information about input data",
    )
    info_parser.add_argument(
        "path",
        type=Path,
        help="Path to Zarr or Parquet file",
    )

    # -------------------------------------------------------------------------
    # create-config command
    # -------------------------------------------------------------------------
    create_parser_cmd = subparsers.add_parser(
        "create-config",
        help="Create a template configuration file",
    )
    create_parser_cmd.add_argument(
        "output",
        type=Path,
        help="Output configuration file path",
    )
    create_parser_cmd.add_argument(
        "--zrec",
        type=float,
        default=0.0,
        help="Flat recording surface depth (default: 0)",
    )
    create_parser_cmd.add_argument(
        "--zdat",
        type=float,
        default=100.0,
        help="Flat datuming surface depth (default: 100)",
    )

    return parser


def cmd_run(args: argparse.Namespace) -> int:
    """Run datuming from configuration file."""
    from kdatum.config import load_config

    print_section("Loading Configuration")

    try:
        config = load_config(args.config)
        print_status(f"Loaded configuration: {config.name}", "ok")
    except DatumingError as e:
        print_status(f"Failed to load configuration: {e}", "fail")
        return 1

    if config.execution.log_file is not None and args.log_file is None:
        log_level = "DEBUG" if args.verbose else ("WARNING" if args.quiet else "INFO")
        setup_logging(level=log_level, log_file=config.execution.log_file)

    if args.dry_run:
        print_metrics("Job parameters", config.get_summary())
        print_section("Dry Run Complete")
        print_status("Configuration is valid.", "ok")
        return 0

    print_section("Starting Datuming")

    from kdatum.pipeline.executor import run_datuming

    try:
        result = run_datuming(config)
    except DatumingError as e:
        print_status(f"Datuming failed: {e}", "fail")
        return 1

    print_status(f"Datuming completed: {result.n_traces_written:,} traces written", "ok")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate configuration file."""
    from kdatum.config import load_config
    from kdatum.pipeline.executor import check_table_coverage

    print_section("Validating Configuration")

    try:
        config = load_config(args.config)
        print_status("Configuration syntax is valid.", "ok")
    except DatumingError as e:
        print_status(f"Configuration validation failed: {e}", "fail")
        return 1

    if 1.0 / (2.0 * config.extrapolation.freq) < (config.extrapolation.dt or 0.0):
        print_status("freq exceeds the Nyquist frequency of dt; possible singularities", "warn")

    if args.check_data:
        print_status("Checking table coverage and input files...")

        try:
            check_table_coverage(config)
        except DatumingError as e:
            print_status(str(e), "fail")
            return 1
        print_status("Traveltime table covers the survey", "ok")

        paths = {
            "Traces": config.input.traces_path,
            "Headers": config.input.headers_path,
            "Traveltime table": config.table.path,
        }
        if config.surfaces.recfile is not None:
            paths["Recording surface"] = config.surfaces.recfile
        if config.surfaces.datfile is not None:
            paths["Datuming surface"] = config.surfaces.datfile

        for label, path in paths.items():
            if not path.exists():
                print_status(f"{label} file not found: {path}", "fail")
                return 1
            print_status(f"{label} file exists: {path}", "ok")

    print_section("Validation Complete")
    print_status("All checks passed.", "ok")

    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Show information about input data."""
    import polars as pl
    import zarr

    path = args.path

    if not path.exists():
        print_status(f"File not found: {path}", "fail")
        return 1

    print_section(f"Information: {path.name}")

    if path.suffix == ".zarr" or (path.is_dir() and (path / ".zarray").exists()):
        z = zarr.open(str(path), mode="r")
        print_metrics(
            "Zarr array",
            {"Shape": str(z.shape), "Dtype": str(z.dtype), "Chunks": str(z.chunks)},
        )
        if z.attrs:
            print_metrics("Attributes", dict(z.attrs))

    elif path.suffix == ".parquet":
        df = pl.scan_parquet(path)
        schema = df.collect_schema()

        count = df.select(pl.len()).collect().item()
        print_metrics("Parquet file", {"Columns": len(schema), "Rows": count})
        print_metrics("Schema", {name: str(dtype) for name, dtype in schema.items()})

    else:
        print_status(f"Unsupported file type: {path.suffix}", "fail")
        return 1

    return 0


def cmd_create_config(args: argparse.Namespace) -> int:
    """Create a template configuration file."""
    from kdatum.config import create_template_config

    output_path = args.output

    print_section("Creating Configuration Template")

    work_dir = output_path.resolve().parent
    config = create_template_config(work_dir, zrec=args.zrec, zdat=args.zdat)
    config.name = "example_datuming"
    config.description = "Example datuming configuration - edit paths and geometry before use"

    config.to_json(output_path)
    print_status(f"Created configuration template: {output_path}", "ok")
    print_status("Edit the file to set correct paths and parameters.")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = "DEBUG" if args.verbose else ("WARNING" if args.quiet else "INFO")
    setup_logging(level=log_level, log_file=args.log_file)

    manager = get_settings_manager()
    try:
        if args.settings is not None:
            manager.load_from_file(args.settings)
            manager.load_from_env()
        else:
            manager.auto_load()
    except (OSError, ValueError, TypeError) as e:
        # TOML and JSON decode errors are ValueErrors; unknown keys are TypeErrors
        print_status(f"Failed to load settings: {e}", "fail")
        return 1

    # Print banner unless quiet
    if not args.quiet:
        print_banner(__version__)

    # Dispatch to command handler
    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "run": cmd_run,
        "validate": cmd_validate,
        "info": cmd_info,
        "create-config": cmd_create_config,
    }

    handler = commands.get(args.command)
    if handler is None:
        print_status(f"Unknown command: {args.command}", "fail")
        return 1

    try:
        return handler(args)
    except KeyboardInterrupt:
        print_status("\nOperation cancelled by user.")
        return 130
    except Exception as e:
        print_status(f"Unexpected error: {e}", "fail")
        logger.debug("Unexpected error details", exc_info=True)
        if args.verbose:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
