# File: dmrcombp/output.py
# Location: dmrcombp/dmrcombp/output.py

"""
Output writers for search and build results.

All tables are tab separated; a ``.gz`` suffix on the output path selects
gzip compression. Region coordinates are written inclusive (1-based style)
in every table; only the BED export shifts ``start`` down by one to follow
the 0-based, half-open BED convention.
"""

import json
import logging
from typing import Dict, List

import pandas as pd

from .utils import smart_open

logger = logging.getLogger("dmrcombp")

BED_COLUMNS = ["chrom", "chromStart", "chromEnd", "name", "score"]


def write_table(df: pd.DataFrame, path: str, index: bool = False) -> None:
    """
    Write a DataFrame as TSV.

    Parameters
    ----------
    df : pd.DataFrame
        Table to write
    path : str
        Output path (gzip compressed when it ends with .gz)
    index : bool
        Whether to write the index as the first column
    """
    with smart_open(path, "w") as fh:
        df.to_csv(fh, sep="\t", index=index, float_format="%.6g", na_rep="NA")
    logger.debug(f"Wrote {len(df)} rows to {path}")


def write_members(members: Dict[str, List[str]], path: str) -> None:
    """
    Write the DMR -> member probe mapping as JSON.

    Parameters
    ----------
    members : dict
        Mapping of DMR label to ordered member probe identifiers
    path : str
        Output path
    """
    with smart_open(path, "w") as fh:
        json.dump(members, fh, indent=2)
        fh.write("\n")
    logger.debug(f"Wrote members of {len(members)} DMRs to {path}")


def regions_to_bed(regions: pd.DataFrame) -> pd.DataFrame:
    """
    Convert a region table to BED layout.

    Parameters
    ----------
    regions : pd.DataFrame
        Region table with inclusive ``start``/``end``. A ``DMR`` column, if
        present, becomes the BED name; otherwise regions are named by
        chromosome and coordinates.

    Returns
    -------
    pd.DataFrame
        Columns ``chrom``, ``chromStart`` (start - 1), ``chromEnd``, ``name``
        and ``score`` (the region q-value).
    """
    if "DMR" in regions.columns:
        names = regions["DMR"].astype(str)
    else:
        names = (
            regions["chr"].astype(str)
            + ":"
            + regions["start"].astype(str)
            + "-"
            + regions["end"].astype(str)
        )
    return pd.DataFrame(
        {
            "chrom": regions["chr"].astype(str),
            "chromStart": regions["start"].astype("int64") - 1,
            "chromEnd": regions["end"].astype("int64"),
            "name": names,
            "score": regions["fdr"].astype(float),
        },
        columns=BED_COLUMNS,
    )


def write_bed(regions: pd.DataFrame, path: str) -> None:
    """Write regions as a headerless BED file (see ``regions_to_bed``)."""
    bed = regions_to_bed(regions)
    with smart_open(path, "w") as fh:
        bed.to_csv(fh, sep="\t", index=False, header=False, float_format="%.6g")
    logger.debug(f"Wrote {len(bed)} BED records to {path}")
