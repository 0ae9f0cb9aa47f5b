# File: dmrcombp/dmr/correction.py
# Location: dmrcombp/dmrcombp/dmr/correction.py
"""
Multiple testing correction for the comb-p region search.

Provides:
- apply_correction(): standalone wrapper around statsmodels multipletests
  for standard FDR/Bonferroni correction. Used twice per search: once over
  the pass-1 per-probe p-values (seed selection) and once over the pass-2
  region p-values.
- storey_eta0(): Storey (2002) estimate of the proportion of null p-values.

This module is intentionally leaf-level: it imports only stdlib, numpy and
statsmodels. No imports from other dmrcombp modules.
"""

from __future__ import annotations

import logging

import numpy as np
import statsmodels.stats.multitest as smm

logger = logging.getLogger("dmrcombp")


def apply_correction(
    pvals: list[float] | np.ndarray,
    method: str = "fdr",
) -> np.ndarray:
    """
    Apply multiple testing correction to a sequence of p-values.

    Produces output identical to R's ``p.adjust(p, method = "fdr")`` (and to
    a direct ``smm.multipletests(method="fdr_bh")`` call) for the same inputs.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values to correct. Must be in [0, 1].
    method : str
        Correction method: "fdr" (Benjamini-Hochberg, default) or
        "bonferroni". Any other value is treated as "fdr".

    Returns
    -------
    np.ndarray
        Corrected p-values in the same order as input. An empty input returns
        an empty float array.
    """
    pvals_array = np.asarray(pvals, dtype=float)

    if len(pvals_array) == 0:
        return pvals_array

    if method == "bonferroni":
        corrected: np.ndarray = smm.multipletests(pvals_array, method="bonferroni")[1]
    else:
        corrected = smm.multipletests(pvals_array, method="fdr_bh")[1]

    return corrected


def storey_eta0(pvals: list[float] | np.ndarray, lam: float = 0.5) -> float:
    """
    Estimate the proportion of true null hypotheses (eta0 / pi0).

    Uses Storey's single-lambda estimator
    ``eta0 = #{p > lam} / ((1 - lam) * m)``, capped at 1.0. A conservative
    choice is eta0 = 1; the estimate is reported alongside q-values as a
    sanity check on the p-value distribution.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values in [0, 1].
    lam : float
        Tuning parameter in (0, 1). Default: 0.5.

    Returns
    -------
    float
        eta0 in [0, 1]; 1.0 for an empty input.
    """
    pvals_array = np.asarray(pvals, dtype=float)
    m = len(pvals_array)
    if m == 0:
        return 1.0
    if not 0.0 < lam < 1.0:
        raise ValueError(f"lam must be in (0, 1), got {lam}")

    eta0 = float(np.sum(pvals_array > lam) / ((1.0 - lam) * m))
    return min(eta0, 1.0)
