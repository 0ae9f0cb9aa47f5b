"""Command-line interface for dmrcombp."""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from .config import load_config
from .errors import DMRCombpError
from .pipeline import run_pipeline
from .validators import validate_input_file
from .version import __version__

logger = logging.getLogger("dmrcombp")


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for dmrcombp CLI."""
    parser = argparse.ArgumentParser(
        description="dmrcombp: Find differentially methylated regions with comb-p."
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"dmrcombp {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to configuration file (JSON), layered over the packaged defaults",
        default=None,
    )

    # Core Input/Output
    io_group = parser.add_argument_group("Core Input/Output")
    io_group.add_argument(
        "-p",
        "--probes",
        required=True,
        help="Probe table: chromosome, start, [end], p-value and probe id columns "
        "(with header, or headerless BED-like in that order)",
    )
    io_group.add_argument(
        "-m",
        "--methylation",
        help="Samples x probes methylation matrix (first column = sample id). "
        "When given, regions are summarised into DMR vectors.",
    )
    io_group.add_argument(
        "--output-dir",
        help="Directory to store output files",
        default="output",
    )
    io_group.add_argument(
        "--bed",
        action="store_true",
        default=False,
        help="Also write the regions (or DMRs) as a BED file with 0-based starts",
    )
    io_group.add_argument(
        "--diagnostics",
        metavar="DIR",
        help="Write autocorrelation and inflation diagnostics to this directory",
    )

    # P-value Columns
    pval_group = parser.add_argument_group("P-value Columns")
    pval_group.add_argument(
        "--pval-column",
        help="Name of the p-value column if it is not one of pval/p/p_value/pvalue",
    )
    pval_group.add_argument(
        "--exposure-column",
        help="Exposure p-value column; with --outcome-column the probe p-value is "
        "max(p_exposure, p_outcome)^2",
    )
    pval_group.add_argument("--outcome-column", help="Outcome p-value column (see --exposure-column)")

    # Region Search
    search_group = parser.add_argument_group("Region Search")
    search_group.add_argument(
        "--dist-cutoff",
        type=int,
        help="Maximum distance (bp) for autocorrelation pairs and region merging (default: 1000)",
    )
    search_group.add_argument(
        "--bin-size",
        type=int,
        help="Autocorrelation bin width and pass-1 window half-width in bp (default: 310)",
    )
    search_group.add_argument(
        "--seed",
        type=float,
        help="FDR threshold for a probe to seed a region (default: 0.01)",
    )
    search_group.add_argument(
        "--min-cpg",
        type=int,
        help="Minimum number of probes for a region to be summarised (default: 2)",
    )
    search_group.add_argument(
        "--correction-method",
        choices=["fdr", "bonferroni"],
        help="Multiple testing correction for both passes (default: fdr)",
    )
    search_group.add_argument(
        "--acf-alpha",
        type=float,
        help="Significance level of the per-bin autocorrelation test (default: 0.05)",
    )
    search_group.add_argument(
        "--no-acf-truncation",
        action="store_true",
        default=False,
        help="Keep every autocorrelation bin instead of zeroing bins past the first "
        "non-significant one",
    )

    # Performance
    perf_group = parser.add_argument_group("Performance")
    perf_group.add_argument(
        "--workers",
        type=int,
        help="Worker processes for per-chromosome work; -1 = all cores. "
        "Values above the CPU count are clamped (default: 1)",
    )

    return parser


def parse_args(args_list=None):
    """Parse command line arguments.

    Parameters
    ----------
    args_list : list, optional
        List of arguments to parse. If None, uses sys.argv

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def _apply_cli_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Copy explicitly given CLI flags over the file configuration."""
    overrides = {
        "dist_cutoff": args.dist_cutoff,
        "bin_size": args.bin_size,
        "seed": args.seed,
        "min_cpg": args.min_cpg,
        "correction_method": args.correction_method,
        "acf_alpha": args.acf_alpha,
        "n_workers": args.workers,
        "diagnostics_output": args.diagnostics,
    }
    for key, value in overrides.items():
        if value is not None:
            cfg[key] = value
    if args.no_acf_truncation:
        cfg["truncate_acf"] = False
    return cfg


def main(args_list=None) -> int:
    """Run main entry point for dmrcombp CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Validate input files.
        4. Update configuration with CLI parameters.
        5. Run the pipeline.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    args: argparse.Namespace = parse_args(args_list)

    # Configure logging level
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    logging.getLogger("dmrcombp").setLevel(log_level_map[args.log_level])

    # If a log file is specified, add a file handler
    if args.log_file:
        log_file_path = Path(args.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(args.log_file)
        fh.setLevel(log_level_map[args.log_level])
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {args.log_file}")

    start_time: datetime.datetime = datetime.datetime.now()
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg: Dict[str, Any] = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1
    logger.debug(f"Configuration loaded: {cfg}")

    if bool(args.exposure_column) != bool(args.outcome_column):
        logger.error("--exposure-column and --outcome-column must be given together.")
        return 1
    if args.pval_column and args.exposure_column:
        logger.error("--pval-column cannot be combined with --exposure-column/--outcome-column.")
        return 1

    try:
        validate_input_file(args.probes, "Probe table", logger)
        if args.methylation:
            validate_input_file(args.methylation, "Methylation matrix", logger)

        cfg = _apply_cli_overrides(cfg, args)
        run_pipeline(args, cfg, start_time)
        return 0
    except SystemExit as e:
        return e.code if e.code is not None else 1
    except DMRCombpError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
