# File: dmrcombp/validators.py
# Location: dmrcombp/dmrcombp/validators.py

"""
Validation module for dmrcombp.

This module provides functions to validate:
- Input files (existence, non-empty)
- Probe annotations and p-values (aligned lengths, numeric positions,
  p-values in [0, 1], unique probe identifiers, no missing values)
- Methylation matrices (numeric, no missing values)

File checks log the problem and exit, as the CLI needs no traceback for a
missing file. Data checks raise DataValidationError naming the offending
input and row so library callers can handle them.
"""

import logging
import os
import sys
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import DataValidationError

logger = logging.getLogger("dmrcombp")

# Canonical column layout of a validated probe table.
PROBE_COLUMNS = ["chr", "start", "end", "pval", "probe"]


def validate_input_file(path: Optional[str], label: str, logger: logging.Logger) -> None:
    """
    Validate that an input file exists and is non-empty.

    Parameters
    ----------
    path : str or None
        Path to the file to validate.
    label : str
        Human readable name of the input (used in the error message).
    logger : logging.Logger
        Logger instance for logging errors and debug information.

    Raises
    ------
    SystemExit
        If the file is missing or empty.
    """
    if not path or not os.path.exists(path):
        logger.error("%s not found: %s", label, path)
        sys.exit(1)
    if os.path.getsize(path) == 0:
        logger.error("%s %s is empty.", label, path)
        sys.exit(1)
    logger.debug("%s validated: %s", label, path)


def _first_bad_row(mask: np.ndarray, index: Sequence[Any]) -> Any:
    """Index label of the first True entry of ``mask``."""
    return index[int(np.flatnonzero(mask)[0])]


def _integer_column(values: pd.Series, name: str) -> np.ndarray:
    """Convert a position column to int64, failing on missing or non-integral entries."""
    numeric = pd.to_numeric(values, errors="coerce")
    bad = numeric.isna().to_numpy()
    if bad.any():
        raise DataValidationError(
            "Genomic position is missing or not numeric",
            name,
            _first_bad_row(bad, values.index),
        )
    as_float = numeric.to_numpy(dtype=float)
    non_integral = as_float != np.floor(as_float)
    if non_integral.any():
        raise DataValidationError(
            "Genomic position is not an integer",
            name,
            _first_bad_row(non_integral, values.index),
        )
    return as_float.astype(np.int64)


def validate_probe_table(probes: pd.DataFrame) -> pd.DataFrame:
    """
    Validate a probe table and return it in canonical form.

    The table must hold ``chr``, ``start``, ``pval`` and ``probe`` columns;
    ``end`` is optional and defaults to ``start``.

    Parameters
    ----------
    probes : pd.DataFrame
        Probe annotations with one p-value per probe.

    Returns
    -------
    pd.DataFrame
        A new frame with exactly ``PROBE_COLUMNS``: ``chr`` and ``probe`` as
        str, ``start``/``end`` as int64, ``pval`` as float. Row order and
        index are preserved.

    Raises
    ------
    DataValidationError
        On a missing column, a missing value, a non-integral position, a
        start after its end, a p-value outside [0, 1], or a duplicated probe
        identifier.
    """
    missing_cols = [c for c in ("chr", "start", "pval", "probe") if c not in probes.columns]
    if missing_cols:
        raise DataValidationError(
            f"Probe table is missing required column(s) {missing_cols}; "
            f"available columns: {list(probes.columns)}",
            missing_cols[0],
        )

    index = probes.index
    chrom = probes["chr"]
    bad_chrom = chrom.isna().to_numpy()
    if bad_chrom.any():
        raise DataValidationError("Chromosome label is missing", "chr", _first_bad_row(bad_chrom, index))

    start = _integer_column(probes["start"], "start")
    end = _integer_column(probes["end"], "end") if "end" in probes.columns else start.copy()
    reversed_span = start > end
    if reversed_span.any():
        raise DataValidationError("start > end", "end", _first_bad_row(reversed_span, index))

    pval = pd.to_numeric(probes["pval"], errors="coerce").to_numpy(dtype=float)
    bad_p = np.isnan(pval)
    if bad_p.any():
        raise DataValidationError("P-value is missing or not numeric", "pval", _first_bad_row(bad_p, index))
    out_of_range = (pval < 0.0) | (pval > 1.0)
    if out_of_range.any():
        raise DataValidationError(
            "P-value outside [0, 1]", "pval", _first_bad_row(out_of_range, index)
        )
    n_zero = int(np.sum(pval == 0.0))
    if n_zero:
        logger.warning(
            f"{n_zero} p-value(s) equal to 0; they are treated as the smallest "
            "representable positive p-value"
        )

    probe_ids = probes["probe"]
    bad_id = probe_ids.isna().to_numpy()
    if bad_id.any():
        raise DataValidationError("Probe identifier is missing", "probe", _first_bad_row(bad_id, index))
    probe_ids = probe_ids.astype(str)
    duplicated = probe_ids.duplicated().to_numpy()
    if duplicated.any():
        row = _first_bad_row(duplicated, index)
        raise DataValidationError(
            f"Duplicated probe identifier '{probe_ids.loc[row]}'", "probe", row
        )

    return pd.DataFrame(
        {
            "chr": chrom.astype(str).to_numpy(),
            "start": start,
            "end": end,
            "pval": pval,
            "probe": probe_ids.to_numpy(),
        },
        index=index,
        columns=PROBE_COLUMNS,
    )


def validate_probe_vectors(
    chrom: Sequence[Any],
    start: Sequence[Any],
    end: Optional[Sequence[Any]],
    pval: Sequence[Any],
    probe: Sequence[Any],
) -> pd.DataFrame:
    """
    Validate parallel probe vectors and assemble them into a probe table.

    Raises
    ------
    DataValidationError
        If the vectors differ in length (the first mismatching vector is
        named) or if the assembled table fails ``validate_probe_table``.
    """
    vectors = {"chr": chrom, "start": start, "pval": pval, "probe": probe}
    if end is not None:
        vectors["end"] = end

    expected = len(chrom)
    for name, values in vectors.items():
        if len(values) != expected:
            raise DataValidationError(
                f"Vector length {len(values)} does not match chromosome vector length {expected}",
                name,
            )

    frame = pd.DataFrame({name: list(values) for name, values in vectors.items()})
    return validate_probe_table(frame)


def validate_methylation_matrix(matrix: pd.DataFrame) -> pd.DataFrame:
    """
    Validate a samples x probes methylation matrix.

    Parameters
    ----------
    matrix : pd.DataFrame
        Rows are samples (index = sample ids), columns are probe identifiers.

    Returns
    -------
    pd.DataFrame
        The matrix as float64 with string column labels.

    Raises
    ------
    DataValidationError
        If a column is not numeric, a value is missing, or a probe
        identifier is duplicated. The error names the probe column and the
        sample row.
    """
    if matrix.shape[0] == 0:
        raise DataValidationError("Methylation matrix has no samples", "methylation")

    columns = [str(c) for c in matrix.columns]
    seen: set[str] = set()
    for col in columns:
        if col in seen:
            raise DataValidationError(f"Duplicated probe column '{col}'", "methylation")
        seen.add(col)

    numeric = matrix.apply(pd.to_numeric, errors="coerce")
    for position, col in enumerate(matrix.columns):
        original = matrix[col]
        converted = numeric[col]
        not_numeric = (converted.isna() & original.notna()).to_numpy()
        if not_numeric.any():
            raise DataValidationError(
                f"Non-numeric value in probe column '{columns[position]}'",
                "methylation",
                _first_bad_row(not_numeric, matrix.index),
            )
        missing = converted.isna().to_numpy()
        if missing.any():
            raise DataValidationError(
                f"Missing value in probe column '{columns[position]}'",
                "methylation",
                _first_bad_row(missing, matrix.index),
            )

    numeric = numeric.astype(np.float64)
    numeric.columns = columns
    return numeric
