# File: dmrcombp/loaders.py
# Location: dmrcombp/dmrcombp/loaders.py
"""
Input loading for probe tables and methylation matrices.

Probe tables
------------
Tab or comma separated, optionally gzipped. Two layouts are accepted:

- with a header naming the columns (aliases below, matched case-insensitively);
- without a header, BED-like: chromosome, start, end, p-value, probe id
  (columns ``V1`` .. ``V5``).

The p-value column can instead be derived from an exposure and an outcome
p-value column through ``max2``.

Methylation matrices
--------------------
Samples as rows, probes as columns, first column = sample id, header row of
probe identifiers. No missing values.

Public API
----------
load_probe_table(filepath, pval_column=None, exposure_column=None, outcome_column=None)
load_methylation_matrix(filepath)
"""

from __future__ import annotations

import csv
import logging
import os

import pandas as pd

from dmrcombp.errors import DataValidationError
from dmrcombp.pvalues import max2
from dmrcombp.utils import smart_open
from dmrcombp.validators import validate_methylation_matrix, validate_probe_table

logger = logging.getLogger("dmrcombp")

COLUMN_ALIASES: dict[str, list[str]] = {
    "chr": ["chr", "chrom", "chromosome", "seqnames", "#chr", "#chrom", "v1"],
    "start": ["start", "pos", "position", "chromstart", "v2"],
    "end": ["end", "chromend", "v3"],
    "pval": ["pval", "p", "p_value", "pvalue", "p.value", "v4"],
    "probe": ["probe", "cpg", "probe_id", "id", "name", "v5"],
}

_HEADERLESS_COLUMNS: list[str] = ["V1", "V2", "V3", "V4", "V5"]


def _is_numeric(s: str) -> bool:
    """Return True if *s* can be parsed as a float."""
    try:
        float(s)
        return True
    except (ValueError, TypeError):
        return False


def _detect_separator(filepath: str) -> str:
    """Pick the field separator from the extension, falling back to csv.Sniffer."""
    name = filepath[:-3] if filepath.endswith(".gz") else filepath
    ext = os.path.splitext(name)[1].lower()
    if ext in (".tsv", ".tab", ".txt", ".bed"):
        return "\t"
    if ext == ".csv":
        return ","
    with smart_open(filepath, "r") as fh:
        sample_text = fh.read(2048)
    try:
        return csv.Sniffer().sniff(sample_text, delimiters="\t,").delimiter
    except csv.Error:
        return "\t"


def _first_line(filepath: str) -> str:
    with smart_open(filepath, "r") as fh:
        for line in fh:
            if line.strip():
                return line.rstrip("\r\n")
    return ""


def _canonical_columns(columns: list[str]) -> dict[str, str]:
    """Map input column names onto canonical names via ``COLUMN_ALIASES``."""
    renames: dict[str, str] = {}
    lowered = {str(col).strip().lower(): col for col in columns}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lowered and lowered[alias] not in renames:
                renames[lowered[alias]] = canonical
                break
    return renames


def load_probe_table(
    filepath: str,
    pval_column: str | None = None,
    exposure_column: str | None = None,
    outcome_column: str | None = None,
) -> pd.DataFrame:
    """Load and validate a probe table.

    Parameters
    ----------
    filepath : str
        Path to the probe table (TSV/CSV/BED, optionally gzipped).
    pval_column : str, optional
        Name of the p-value column when it is not one of the known aliases.
    exposure_column, outcome_column : str, optional
        When both are given, the probe p-value is ``max2`` of these columns
        and any p-value column in the file is ignored.

    Returns
    -------
    pd.DataFrame
        Validated probe table with columns ``chr``, ``start``, ``end``,
        ``pval``, ``probe``.

    Raises
    ------
    DataValidationError
        If a required column is missing or holds invalid values.
    """
    sep = _detect_separator(filepath)
    first = _first_line(filepath).split(sep)
    has_header = not (len(first) >= 2 and _is_numeric(first[1].strip()))

    if has_header:
        df = pd.read_csv(filepath, sep=sep, header=0)
    else:
        df = pd.read_csv(filepath, sep=sep, header=None)
        if df.shape[1] < len(_HEADERLESS_COLUMNS):
            logger.warning(
                f"Headerless probe table {filepath} has {df.shape[1]} columns; "
                f"expected chromosome, start, end, p-value, probe id"
            )
        df.columns = _HEADERLESS_COLUMNS[: df.shape[1]] + [
            f"V{i}" for i in range(len(_HEADERLESS_COLUMNS) + 1, df.shape[1] + 1)
        ]
    logger.debug(f"Read {len(df)} rows from {filepath} (header={has_header})")

    for requested in (pval_column, exposure_column, outcome_column):
        if requested and requested not in df.columns:
            raise DataValidationError(
                f"Column not found in {filepath}; available columns: {list(df.columns)}",
                requested,
            )

    if exposure_column and outcome_column:
        combined = max2(df[exposure_column].to_numpy(), df[outcome_column].to_numpy())
        df = df.drop(columns=[exposure_column, outcome_column])
        df["pval"] = combined.pval
        logger.info(
            f"P-values from max2({exposure_column}, {outcome_column}); eta0 = {combined.eta0:.3f}"
        )
    elif pval_column and pval_column != "pval":
        df = df.drop(columns=["pval"], errors="ignore").rename(columns={pval_column: "pval"})

    renames = {
        col: canonical
        for col, canonical in _canonical_columns(list(df.columns)).items()
        if canonical not in df.columns
    }
    df = df.rename(columns=renames)

    probes = validate_probe_table(df)
    logger.info(
        f"Loaded {len(probes)} probes on {probes['chr'].nunique()} chromosomes from {filepath}"
    )
    return probes


def load_methylation_matrix(filepath: str) -> pd.DataFrame:
    """Load and validate a samples x probes methylation matrix.

    The first column holds the sample ids and becomes the index; every other
    column is one probe.

    Raises
    ------
    DataValidationError
        If the matrix holds missing or non-numeric values.
    """
    sep = _detect_separator(filepath)
    df = pd.read_csv(filepath, sep=sep, header=0, index_col=0)
    df.index = df.index.astype(str)
    matrix = validate_methylation_matrix(df)
    logger.info(
        f"Loaded methylation matrix: {matrix.shape[0]} samples x {matrix.shape[1]} probes"
    )
    return matrix
