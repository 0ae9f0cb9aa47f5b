# File: dmrcombp/dmr/combine.py
# Location: dmrcombp/dmrcombp/dmr/combine.py
"""
Autocorrelation-corrected Stouffer combination of neighbouring p-values.

Summing normal quantiles is only a valid Stouffer combination under
independence. When the combined probes are spatially correlated, the
variance of the sum is inflated by twice the sum of the pairwise
correlations, looked up from the distance-binned autocorrelation curve:

    var = n + 2 * sum_{i<j} acf[bin(d_ij)]
    p   = Phi(sum_i z_i / sqrt(var))

The same arithmetic runs in two passes:

- pass 1 (``combine_probe_windows``): one window per probe, containing every
  probe closer than ``bin_size`` bp;
- pass 2 (``combine_region_windows``): one window per merged region,
  containing every probe inside the region.

A window holding a single probe passes that probe's raw p-value through.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial.distance import pdist
from scipy.stats import norm

from dmrcombp.dmr.autocorrelation import to_normal_quantiles
from dmrcombp.dmr.base import ChromosomeProbes

logger = logging.getLogger("dmrcombp")


def _clamp_probability(p: float) -> float:
    """Clamp to [0, 1]; NaN becomes 1.0 (no evidence)."""
    if np.isnan(p):
        return 1.0
    return float(min(max(p, 0.0), 1.0))


def pair_correlation_sum(
    positions: np.ndarray,
    acf: np.ndarray,
    edges: np.ndarray,
) -> float:
    """
    Sum of the correlations of all unordered probe pairs in a window.

    Each pairwise distance is labelled with ``searchsorted(edges, d, "right")``
    (R ``findInterval``). Labels past the end of ``acf`` contribute zero: the
    curve is not extrapolated beyond the estimated range.
    """
    dist = pdist(positions.reshape(-1, 1).astype(float))
    if len(dist) == 0 or len(acf) == 0:
        return 0.0
    labels = np.searchsorted(edges, dist, side="right")
    in_range = labels < len(acf)
    return float(acf[labels[in_range]].sum())


def stouffer_combine(
    positions: np.ndarray,
    z: np.ndarray,
    acf: np.ndarray,
    edges: np.ndarray,
) -> float:
    """
    Combine the normal quantiles of one window into a single p-value.

    Parameters
    ----------
    positions : np.ndarray
        Positions of the probes in the window (at least two).
    z : np.ndarray
        Normal quantiles of their p-values, aligned with ``positions``.
    acf : np.ndarray
        Per-bin correlation curve.
    edges : np.ndarray
        Inner bin edges used to label pairwise distances.

    Returns
    -------
    float
        Combined p-value in [0, 1].
    """
    n = len(z)
    variance = n + 2.0 * pair_correlation_sum(positions, acf, edges)
    if not variance > 0:
        # Only reachable with truncation disabled and negative estimates.
        logger.warning(
            f"Non-positive combined variance ({variance:.4g}) for a window of {n} probes; "
            "falling back to the independence variance"
        )
        variance = float(n)
    p = norm.cdf(float(np.sum(z)), loc=0.0, scale=np.sqrt(variance))
    return _clamp_probability(float(p))


def window_edges(bin_size: int, max_distance: int) -> np.ndarray:
    """
    Bin edges ``bin_size, 2*bin_size, ..., max_distance + bin_size``.

    Mirrors ``seq(bin_size, max_distance + bin_size, bin_size)``: every
    distance up to ``max_distance`` falls on a label ``floor(d / bin_size)``.
    """
    n_edges = max(1, int(max_distance // bin_size) + 1)
    return np.arange(1, n_edges + 1, dtype=np.int64) * bin_size


def combine_probe_windows(
    chrom: ChromosomeProbes,
    acf: np.ndarray,
    bin_size: int,
) -> np.ndarray:
    """
    Pass 1: combine each probe with every probe closer than ``bin_size`` bp.

    Parameters
    ----------
    chrom : ChromosomeProbes
        Position-sorted probes of one chromosome.
    acf : np.ndarray
        Per-bin correlation curve (read-only).
    bin_size : int
        Window half-width and bin width in bp.

    Returns
    -------
    np.ndarray
        One combined p-value per probe, aligned with ``chrom``.
    """
    positions = chrom.positions
    z = to_normal_quantiles(chrom.pvalues)
    # Pairwise distances inside a window are < 2 * bin_size.
    edges = window_edges(bin_size, 2 * bin_size)

    lower = np.searchsorted(positions, positions - bin_size, side="right")
    upper = np.searchsorted(positions, positions + bin_size, side="left")

    combined = np.empty(len(positions), dtype=float)
    for i in range(len(positions)):
        lo, hi = lower[i], upper[i]
        if hi - lo > 1:
            combined[i] = stouffer_combine(positions[lo:hi], z[lo:hi], acf, edges)
        else:
            combined[i] = chrom.pvalues[i]

    logger.debug(
        f"{chrom.chrom}: pass 1 combined {len(positions)} probes, "
        f"{int(np.sum(upper - lower > 1))} with neighbours"
    )
    return combined


def combine_region_windows(
    chrom: ChromosomeProbes,
    starts: np.ndarray,
    ends: np.ndarray,
    acf: np.ndarray,
    bin_size: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Pass 2: combine every probe inside each merged region.

    Distance labels are computed on edges running to the widest region of
    the chromosome plus one bin; labels beyond the correlation curve count
    as uncorrelated.

    Parameters
    ----------
    chrom : ChromosomeProbes
        Position-sorted probes of one chromosome.
    starts, ends : np.ndarray
        Inclusive region bounds, aligned.
    acf : np.ndarray
        Per-bin correlation curve (read-only).
    bin_size : int
        Bin width in bp.

    Returns
    -------
    tuple of np.ndarray
        ``(combined_p, n_members)``, one entry per region in input order.
    """
    starts = np.asarray(starts, dtype=np.int64)
    ends = np.asarray(ends, dtype=np.int64)
    combined = np.empty(len(starts), dtype=float)
    n_members = np.zeros(len(starts), dtype=np.int64)
    if len(starts) == 0:
        return combined, n_members

    region_max = int(np.max(ends - starts + 1))
    edges = window_edges(bin_size, region_max)
    z = to_normal_quantiles(chrom.pvalues)

    for i, (start, end) in enumerate(zip(starts, ends)):
        idx = chrom.members(int(start), int(end))
        n_members[i] = len(idx)
        if len(idx) > 1:
            combined[i] = stouffer_combine(chrom.positions[idx], z[idx], acf, edges)
        elif len(idx) == 1:
            combined[i] = chrom.pvalues[idx[0]]
        else:
            logger.warning(
                f"{chrom.chrom}:{start}-{end}: region holds no probe; reporting p = 1.0"
            )
            combined[i] = 1.0

    return combined, n_members
