# File: dmrcombp/pipeline.py
# Location: dmrcombp/dmrcombp/pipeline.py

"""
Pipeline orchestration module for dmrcombp.

This module provides high-level orchestration of the analysis steps:
- Loads the probe table (p-values from one column or from max2 of two)
- Runs the comb-p region search
- Optionally writes search diagnostics
- Optionally builds DMR representative vectors from a methylation matrix
- Writes region tables, BED export and run metadata

All steps are coordinated within the run_pipeline function.
"""

import argparse
import datetime
import logging
import os
import sys
from typing import Any, Dict

from .dmr.base import DMRConfig
from .dmr.build import build_dmrs
from .dmr.engine import RegionSearchEngine
from .loaders import load_methylation_matrix, load_probe_table
from .output import write_bed, write_members, write_table
from .utils import ensure_directory
from .version import __version__

logger = logging.getLogger("dmrcombp")

_TABLE_EXTENSIONS = (".tsv", ".txt", ".csv", ".bed", ".tab")


def compute_base_name(probes_path: str) -> str:
    """
    Compute a base name for output files from the probe table filename.

    Parameters
    ----------
    probes_path : str
        Path to the probe table, possibly ending in .gz and a table extension.

    Returns
    -------
    str
        The filename base without compression and table extensions.
    """
    base = os.path.basename(probes_path)
    if base.endswith(".gz"):
        base = base[:-3]
    root, ext = os.path.splitext(base)
    if ext.lower() in _TABLE_EXTENSIONS:
        base = root
    return base or "dmrcombp"


def build_dmr_config(cfg: Dict[str, Any]) -> DMRConfig:
    """Build and validate the search configuration from the merged config dictionary."""
    dmr_cfg = DMRConfig.from_dict(cfg)
    dmr_cfg.validate()
    return dmr_cfg


def _write_metadata(
    path: str,
    cfg: Dict[str, Any],
    start_time: datetime.datetime,
    end_time: datetime.datetime,
) -> None:
    with open(path, "w", encoding="utf-8") as mf:
        mf.write("Parameter\tValue\n")

        def meta_write(param, val):
            p = str(param).replace("\t", " ").replace("\n", " ")
            v = str(val).replace("\t", " ").replace("\n", " ")
            mf.write(f"{p}\t{v}\n")

        meta_write("Tool", "dmrcombp")
        meta_write("Version", __version__)
        meta_write("Run_start_time", start_time.isoformat())
        meta_write("Run_end_time", end_time.isoformat())
        meta_write("Run_duration_seconds", (end_time - start_time).total_seconds())
        meta_write("Command_line", " ".join(sys.argv))
        for k, v in cfg.items():
            meta_write(f"config.{k}", v)


def run_pipeline(
    args: argparse.Namespace, cfg: Dict[str, Any], start_time: datetime.datetime
) -> Dict[str, str]:
    """
    High-level orchestration of the pipeline steps.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments (input paths, output options).
    cfg : dict
        Configuration dictionary merged from config files and CLI flags.
    start_time : datetime.datetime
        The start time of the run.

    Returns
    -------
    dict
        Mapping of output kind ("regions", "combined", "vectors", ...) to the
        path written.
    """
    ensure_directory(args.output_dir)
    base_name = compute_base_name(args.probes)
    outputs: Dict[str, str] = {}

    dmr_cfg = build_dmr_config(cfg)
    logger.debug(f"Search configuration: {dmr_cfg}")

    probes = load_probe_table(
        args.probes,
        pval_column=args.pval_column,
        exposure_column=args.exposure_column,
        outcome_column=args.outcome_column,
    )

    result = RegionSearchEngine(dmr_cfg).run(probes)

    outputs["regions"] = os.path.join(args.output_dir, f"{base_name}.regions.tsv")
    write_table(result.regions, outputs["regions"])
    outputs["combined"] = os.path.join(args.output_dir, f"{base_name}.combined.tsv.gz")
    write_table(result.combined, outputs["combined"])

    if dmr_cfg.diagnostics_output:
        from .dmr.diagnostics import write_diagnostics

        write_diagnostics(result, dmr_cfg.diagnostics_output)
        outputs["diagnostics"] = dmr_cfg.diagnostics_output

    bed_source = result.regions
    if args.methylation:
        methylation = load_methylation_matrix(args.methylation)
        built = build_dmrs(result, methylation, min_cpg=dmr_cfg.min_cpg)

        outputs["dmrs"] = os.path.join(args.output_dir, f"{base_name}.dmrs.tsv")
        write_table(built.regions, outputs["dmrs"])
        outputs["vectors"] = os.path.join(args.output_dir, f"{base_name}.dmr_vectors.tsv")
        write_table(built.vectors, outputs["vectors"], index=True)
        outputs["members"] = os.path.join(args.output_dir, f"{base_name}.dmr_members.json")
        write_members(built.members, outputs["members"])
        bed_source = built.regions

    if args.bed:
        outputs["bed"] = os.path.join(args.output_dir, f"{base_name}.regions.bed")
        write_bed(bed_source, outputs["bed"])

    end_time = datetime.datetime.now()
    duration = (end_time - start_time).total_seconds()
    logger.info(f"Run ended at {end_time.isoformat()}, duration: {duration} seconds")

    outputs["metadata"] = os.path.join(args.output_dir, f"{base_name}.metadata.tsv")
    _write_metadata(outputs["metadata"], cfg, start_time, end_time)

    for kind, path in outputs.items():
        logger.info(f"Output {kind}: {path}")
    return outputs
