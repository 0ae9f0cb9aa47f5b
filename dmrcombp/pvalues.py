# File: dmrcombp/pvalues.py
# Location: dmrcombp/dmrcombp/pvalues.py
"""
Per-probe p-value combination of an exposure and an outcome test.

A probe is a mediator candidate only when it is associated with both the
exposure and the outcome. ``max2`` takes the larger of the two p-values and
squares it, which is the p-value of the intersection-union test under
independence of the two tests. The result is the ``pval`` input of the
region search.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from dmrcombp.dmr.correction import apply_correction, storey_eta0
from dmrcombp.errors import DataValidationError

logger = logging.getLogger("dmrcombp")


@dataclass
class Max2Result:
    """Combined p-values with their q-values and null proportion estimate."""

    pval: np.ndarray
    qval: np.ndarray
    eta0: float


def _as_pvalues(values: Sequence[float] | np.ndarray, name: str) -> np.ndarray:
    array = np.asarray(values, dtype=float)
    invalid = np.isnan(array) | (array < 0.0) | (array > 1.0)
    if invalid.any():
        raise DataValidationError(
            "P-value is missing or outside [0, 1]", name, int(np.flatnonzero(invalid)[0])
        )
    return array


def max2(
    pval1: Sequence[float] | np.ndarray,
    pval2: Sequence[float] | np.ndarray,
    method: str = "fdr",
) -> Max2Result:
    """
    Combine two aligned p-value vectors as ``max(p1, p2) ** 2``.

    Parameters
    ----------
    pval1, pval2 : array-like of float
        Exposure and outcome p-values, one per probe, in [0, 1].
    method : str
        Correction used for the q-values ("fdr" or "bonferroni").

    Returns
    -------
    Max2Result
        ``pval`` (combined), ``qval`` (corrected) and ``eta0`` (Storey's
        estimate of the proportion of null probes).

    Raises
    ------
    DataValidationError
        If the vectors differ in length or hold missing or out-of-range values.
    """
    if len(pval1) != len(pval2):
        raise DataValidationError(
            f"Vector length {len(pval2)} does not match pval1 length {len(pval1)}", "pval2"
        )
    p1 = _as_pvalues(pval1, "pval1")
    p2 = _as_pvalues(pval2, "pval2")

    pval = np.maximum(p1, p2) ** 2
    qval = apply_correction(pval, method)
    eta0 = storey_eta0(pval)
    logger.info(f"max2: {len(pval)} probes combined, eta0 = {eta0:.3f}")
    return Max2Result(pval=pval, qval=qval, eta0=eta0)
