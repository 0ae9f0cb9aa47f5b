# File: dmrcombp/dmr/autocorrelation.py
# Location: dmrcombp/dmrcombp/dmr/autocorrelation.py
"""
Empirical spatial autocorrelation of probe-level statistics.

The comb-p procedure needs to know how strongly the normal quantiles of
neighbouring probes are correlated as a function of their genomic distance.
The estimate proceeds in two phases:

1. Pair collection (per chromosome, parallelisable): for lag 1, 2, ... pair
   each probe with the probe ``lag`` positions further along, keeping pairs
   closer than ``dist_cutoff`` bp. The lag loop stops at the first lag that
   contributes no pair.
2. Estimation (once, after all chromosomes are joined): pairs are binned by
   distance in ``bin_size`` steps and a one-sided Pearson test is run per
   bin. From the first tested bin that is not significant onward every bin
   is set to zero correlation. Bins with too few pairs for a test are zero
   themselves but do not stop the curve.

Phase 2 must complete before any combination pass starts; the resulting
vector is read-only from then on.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy.stats import norm, pearsonr

from dmrcombp.dmr.base import AutocorrelationResult, ChromosomeProbes, DistanceBin

logger = logging.getLogger("dmrcombp")

# Pearson's r on fewer than three pairs has no residual degrees of freedom.
MIN_PAIRS_PER_BIN: int = 3

_P_FLOOR: float = float(np.finfo(float).tiny)
_P_CEILING: float = 1.0 - float(np.finfo(float).eps)


def to_normal_quantiles(pvals: np.ndarray) -> np.ndarray:
    """Inverse normal CDF of p-values, clamped so that p = 0 or 1 stays finite."""
    return norm.ppf(np.clip(np.asarray(pvals, dtype=float), _P_FLOOR, _P_CEILING))


def bin_edges(max_distance: int, bin_size: int) -> np.ndarray:
    """
    Inner edges ``bin_size, 2*bin_size, ...`` strictly below ``max_distance``.

    Used with ``np.searchsorted(edges, d, side="right")`` this reproduces R's
    ``findInterval(d, seq(bin_size, max_distance, bin_size))``: distances in
    ``[k*bin_size, (k+1)*bin_size)`` get label ``k``.
    """
    n_bins = max(1, math.ceil(max_distance / bin_size))
    return np.arange(1, n_bins, dtype=np.int64) * bin_size


def lagged_pairs(
    positions: np.ndarray,
    values: np.ndarray,
    dist_cutoff: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Collect (value_i, value_{i+lag}, distance) for all lags within the cutoff.

    ``positions`` must be sorted ascending. Lag growth is monotone in
    distance, so the loop stops at the first lag where no pair is closer
    than ``dist_cutoff``.

    Returns
    -------
    tuple of np.ndarray
        ``(x1, x2, dist)``, concatenated over lags (lag 1 first).
    """
    x1_parts: list[np.ndarray] = []
    x2_parts: list[np.ndarray] = []
    dist_parts: list[np.ndarray] = []

    n = len(positions)
    lag = 1
    while lag < n:
        dist = positions[lag:] - positions[:-lag]
        index = dist < dist_cutoff
        if not index.any():
            break
        x1_parts.append(values[:-lag][index])
        x2_parts.append(values[lag:][index])
        dist_parts.append(dist[index])
        lag += 1

    if not dist_parts:
        empty = np.empty(0, dtype=float)
        return empty, empty.copy(), np.empty(0, dtype=np.int64)

    return (
        np.concatenate(x1_parts),
        np.concatenate(x2_parts),
        np.concatenate(dist_parts).astype(np.int64),
    )


def collect_chromosome_pairs(
    chrom: ChromosomeProbes,
    dist_cutoff: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Phase 1 for one chromosome: lagged quantile pairs within ``dist_cutoff``."""
    z = to_normal_quantiles(chrom.pvalues)
    x1, x2, dist = lagged_pairs(chrom.positions, z, dist_cutoff)
    logger.debug(f"{chrom.chrom}: {len(dist)} probe pairs within {dist_cutoff} bp")
    return x1, x2, dist


def _test_bin(x1: np.ndarray, x2: np.ndarray) -> tuple[float, float, bool]:
    """One-sided (greater) Pearson test; (0, NaN, False) when the test is undefined."""
    if len(x1) < MIN_PAIRS_PER_BIN:
        return 0.0, float("nan"), False
    if np.ptp(x1) == 0 or np.ptp(x2) == 0:
        return 0.0, float("nan"), False
    result = pearsonr(x1, x2, alternative="greater")
    r = float(result.statistic)
    p = float(result.pvalue)
    if not (np.isfinite(r) and np.isfinite(p)):
        return 0.0, float("nan"), False
    return r, p, True


def estimate_from_pairs(
    x1: np.ndarray,
    x2: np.ndarray,
    dist: np.ndarray,
    dist_cutoff: int,
    bin_size: int,
    truncate: bool = True,
    alpha: float = 0.05,
) -> AutocorrelationResult:
    """
    Phase 2: bin joined pairs by distance and estimate a correlation per bin.

    Parameters
    ----------
    x1, x2 : np.ndarray
        Normal quantiles of the two probes of each pair.
    dist : np.ndarray
        Distance in bp of each pair; all values must be < ``dist_cutoff``.
    dist_cutoff : int
        Upper bound of the distance range; there are ``ceil(dist_cutoff /
        bin_size)`` bins.
    bin_size : int
        Bin width in bp.
    truncate : bool
        Zero every bin from the first tested bin whose p-value exceeds
        ``alpha`` onward. Untested bins are zero but never start truncation.
        Disable only for synthetic data with a non-monotone correlation curve.
    alpha : float
        Significance level of the per-bin test.

    Returns
    -------
    AutocorrelationResult
        ``correlations[k]`` is the estimate used for pairs in bin ``k``.
    """
    edges = bin_edges(dist_cutoff, bin_size)
    n_bins = len(edges) + 1
    labels = np.searchsorted(edges, dist, side="right")

    bins: list[DistanceBin] = []
    for k in range(n_bins):
        in_bin = labels == k
        r, p, tested = _test_bin(x1[in_bin], x2[in_bin])
        bins.append(
            DistanceBin(
                index=k,
                lower=k * bin_size,
                upper=min((k + 1) * bin_size, dist_cutoff),
                n_pairs=int(in_bin.sum()),
                correlation=r,
                p_value=p,
                tested=tested,
            )
        )

    correlations = np.array([b.correlation for b in bins], dtype=float)

    truncated_at: int | None = None
    if truncate:
        for b in bins:
            # Untested bins already carry zero and do not end the curve.
            if b.tested and b.p_value > alpha:
                truncated_at = b.index
                break
        if truncated_at is not None:
            correlations[truncated_at:] = 0.0
            for b in bins[truncated_at:]:
                b.truncated = True

    n_untested = sum(1 for b in bins if not b.tested)
    if n_untested:
        logger.warning(
            f"Autocorrelation: {n_untested}/{n_bins} distance bins had fewer than "
            f"{MIN_PAIRS_PER_BIN} usable pairs and were set to zero correlation"
        )
    logger.info(
        f"Autocorrelation: {len(dist)} pairs in {n_bins} bins of {bin_size} bp; "
        + (
            f"curve truncated from bin {truncated_at} ({truncated_at * bin_size} bp)"
            if truncated_at is not None
            else "no truncation"
        )
    )
    logger.debug(f"Autocorrelation curve: {np.round(correlations, 4).tolist()}")

    return AutocorrelationResult(
        correlations=correlations,
        bins=bins,
        truncated_at=truncated_at,
        n_pairs=int(len(dist)),
    )


def estimate_autocorrelation(
    chromosomes: list[ChromosomeProbes],
    dist_cutoff: int,
    bin_size: int,
    truncate: bool = True,
    alpha: float = 0.05,
) -> AutocorrelationResult:
    """
    Estimate the correlation curve sequentially over all chromosomes.

    Convenience wrapper combining phase 1 and phase 2; the search engine
    calls the two phases separately so that phase 1 can run in worker
    processes.
    """
    pairs = [collect_chromosome_pairs(chrom, dist_cutoff) for chrom in chromosomes]
    return join_and_estimate(pairs, dist_cutoff, bin_size, truncate=truncate, alpha=alpha)


def join_and_estimate(
    pairs: list[tuple[np.ndarray, np.ndarray, np.ndarray]],
    dist_cutoff: int,
    bin_size: int,
    truncate: bool = True,
    alpha: float = 0.05,
) -> AutocorrelationResult:
    """Concatenate per-chromosome pairs and run the phase 2 estimate."""
    if pairs:
        x1 = np.concatenate([p[0] for p in pairs])
        x2 = np.concatenate([p[1] for p in pairs])
        dist = np.concatenate([p[2] for p in pairs])
    else:
        x1 = np.empty(0, dtype=float)
        x2 = np.empty(0, dtype=float)
        dist = np.empty(0, dtype=np.int64)
    return estimate_from_pairs(x1, x2, dist, dist_cutoff, bin_size, truncate=truncate, alpha=alpha)
