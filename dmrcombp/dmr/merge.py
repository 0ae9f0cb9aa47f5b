# File: dmrcombp/dmr/merge.py
# Location: dmrcombp/dmrcombp/dmr/merge.py
"""
Seed selection and interval merging.

Seeds are probes whose pass-1 combined p-value survives genome-wide
correction. Per chromosome, each seed becomes a unit interval
``[pos, pos]`` and intervals are reduced with a gap tolerance: two intervals
are merged when the number of uncovered positions between them
(``next_start - current_end - 1``) is smaller than ``dist_cutoff``. This is
the ``IRanges::reduce(min.gapwidth = dist_cutoff)`` rule.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import pandas as pd

from dmrcombp.dmr.correction import apply_correction

logger = logging.getLogger("dmrcombp")

SPAN_COLUMNS: list[str] = ["chr", "start", "end"]


def merge_intervals(
    starts: Sequence[int] | np.ndarray,
    ends: Sequence[int] | np.ndarray,
    dist_cutoff: int,
) -> list[tuple[int, int]]:
    """
    Reduce inclusive intervals into maximal spans with a gap tolerance.

    Parameters
    ----------
    starts, ends : sequence of int
        Inclusive interval bounds, aligned. Need not be sorted.
    dist_cutoff : int
        Intervals separated by fewer than ``dist_cutoff`` uncovered positions
        are merged. Overlapping and abutting intervals always merge.

    Returns
    -------
    list of (int, int)
        Sorted, disjoint ``(start, end)`` spans. Re-merging the output with
        the same cutoff returns it unchanged.
    """
    starts_arr = np.asarray(starts, dtype=np.int64)
    ends_arr = np.asarray(ends, dtype=np.int64)
    if len(starts_arr) == 0:
        return []

    order = np.lexsort((ends_arr, starts_arr))
    spans: list[tuple[int, int]] = []
    cur_start = int(starts_arr[order[0]])
    cur_end = int(ends_arr[order[0]])
    for i in order[1:]:
        s, e = int(starts_arr[i]), int(ends_arr[i])
        if s - cur_end - 1 < dist_cutoff:
            cur_end = max(cur_end, e)
        else:
            spans.append((cur_start, cur_end))
            cur_start, cur_end = s, e
    spans.append((cur_start, cur_end))
    return spans


def merge_positions(
    positions: Sequence[int] | np.ndarray,
    dist_cutoff: int,
) -> list[tuple[int, int]]:
    """Merge unit intervals at ``positions`` (see ``merge_intervals``)."""
    return merge_intervals(positions, positions, dist_cutoff)


def select_seed_probes(
    combined: pd.DataFrame,
    seed: float,
    method: str = "fdr",
) -> pd.DataFrame:
    """
    Correct pass-1 p-values genome-wide and keep probes below ``seed``.

    Parameters
    ----------
    combined : pd.DataFrame
        Pass-1 table with at least ``chr``, ``pos`` and ``combined_p``.
    seed : float
        Threshold on the corrected value (strict ``<``).
    method : str
        Correction method passed to ``apply_correction``.

    Returns
    -------
    pd.DataFrame
        The retained rows (input order), with ``combined_q`` filled in on the
        input frame as a side effect.
    """
    combined["combined_q"] = apply_correction(combined["combined_p"].to_numpy(), method)
    retained = combined[combined["combined_q"] < seed]
    logger.info(
        f"Seed selection: {len(retained)}/{len(combined)} probes below "
        f"{method.upper()} threshold {seed}"
    )
    return retained


def merge_seed_probes(retained: pd.DataFrame, dist_cutoff: int) -> pd.DataFrame:
    """
    Merge retained probes into candidate regions, chromosome by chromosome.

    Chromosomes are visited in order of first appearance in ``retained``;
    spans within a chromosome are position-sorted.

    Returns
    -------
    pd.DataFrame
        Columns ``chr``, ``start``, ``end`` (inclusive). Zero rows when no
        probe was retained.
    """
    rows: list[dict] = []
    for chrom, frame in retained.groupby("chr", sort=False):
        spans = merge_positions(frame["pos"].to_numpy(), dist_cutoff)
        logger.debug(f"{chrom}: {len(frame)} seed probes merged into {len(spans)} regions")
        rows.extend({"chr": chrom, "start": s, "end": e} for s, e in spans)

    if not rows:
        return pd.DataFrame(
            {
                "chr": pd.Series(dtype=object),
                "start": pd.Series(dtype=np.int64),
                "end": pd.Series(dtype=np.int64),
            }
        )
    return pd.DataFrame(rows, columns=SPAN_COLUMNS)
