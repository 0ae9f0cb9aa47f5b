# File: dmrcombp/dmr/base.py
# Location: dmrcombp/dmrcombp/dmr/base.py
"""
Core data containers for the comb-p region search.

Defines the DMRConfig dataclass shared by every step of the search, the
per-chromosome working set (ChromosomeProbes), and the result containers
returned by the autocorrelation estimator, the search engine, and the
DMR builder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

import numpy as np
import pandas as pd

from dmrcombp.errors import ConfigurationError

logger = logging.getLogger("dmrcombp")

# Column layout of the region table produced by the search engine.
REGION_COLUMNS: list[str] = ["chr", "start", "end", "p", "fdr", "n_cpg"]

# Column layout of the per-probe pass-1 table.
COMBINED_COLUMNS: list[str] = ["chr", "pos", "probe", "pval", "combined_p", "combined_q"]


@dataclass
class DMRConfig:
    """
    Configuration for the comb-p region search and DMR build.

    Defaults mirror the ones used by the ENmix comb-p implementation.

    Fields
    ------
    dist_cutoff : int
        Maximum distance in base pairs used both to pair probes for the
        autocorrelation estimate and to merge seed probes into regions.
        Default: 1000.
    bin_size : int
        Width in base pairs of one autocorrelation distance bin. Also the
        half-width of the pass-1 combination window. Default: 310.
    seed : float
        FDR threshold for retaining a probe as a region seed after pass 1.
        Default: 0.01.
    min_cpg : int
        Minimum number of member probes for a region to be summarized.
        Default: 2.
    n_workers : int
        Number of worker processes for per-chromosome work. Values above the
        hardware concurrency are clamped; -1 means all cores. Default: 1.
    """

    dist_cutoff: int = 1000
    bin_size: int = 310
    seed: float = 0.01
    min_cpg: int = 2
    n_workers: int = 1

    truncate_acf: bool = True
    """Zero every distance bin from the first tested, non-significant one onward."""

    acf_alpha: float = 0.05
    """Significance level of the per-bin correlation test used for truncation."""

    correction_method: str = "fdr"
    """Multiple-testing correction for both passes: "fdr" (BH) or "bonferroni"."""

    diagnostics_output: str | None = None
    """Directory for autocorrelation/inflation diagnostics. None = no diagnostics."""

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> DMRConfig:
        """Build a config from a dict, ignoring keys that are not config fields."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.debug(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in values.items() if k in known})

    def validate(self) -> None:
        """
        Check that every parameter is inside its valid range.

        Raises
        ------
        ConfigurationError
            On the first invalid parameter.
        """
        if int(self.dist_cutoff) <= 0:
            raise ConfigurationError("dist_cutoff", self.dist_cutoff, "must be a positive integer")
        if int(self.bin_size) <= 0:
            raise ConfigurationError("bin_size", self.bin_size, "must be a positive integer")
        if not 0.0 < float(self.seed) <= 1.0:
            raise ConfigurationError("seed", self.seed, "must be in (0, 1]")
        if int(self.min_cpg) < 1:
            raise ConfigurationError("min_cpg", self.min_cpg, "must be at least 1")
        if not 0.0 < float(self.acf_alpha) < 1.0:
            raise ConfigurationError("acf_alpha", self.acf_alpha, "must be in (0, 1)")
        if self.correction_method not in ("fdr", "bonferroni"):
            raise ConfigurationError(
                "correction_method", self.correction_method, "expected 'fdr' or 'bonferroni'"
            )


@dataclass(frozen=True)
class ChromosomeProbes:
    """
    Position-sorted probes of a single chromosome.

    This is the working set handed to every per-chromosome step (and pickled
    to worker processes). Arrays are aligned and sorted by position with a
    stable sort, so probes sharing a position keep their input order.
    """

    chrom: str
    positions: np.ndarray
    pvalues: np.ndarray
    probe_ids: tuple[str, ...]

    @classmethod
    def from_frame(cls, chrom: str, frame: pd.DataFrame) -> ChromosomeProbes:
        """Build the sorted working set from the rows of a probe table."""
        order = np.argsort(frame["end"].to_numpy(), kind="stable")
        positions = frame["end"].to_numpy(dtype=np.int64)[order]
        pvalues = frame["pval"].to_numpy(dtype=float)[order]
        probe_ids = tuple(str(p) for p in frame["probe"].to_numpy()[order])
        return cls(chrom=str(chrom), positions=positions, pvalues=pvalues, probe_ids=probe_ids)

    def __len__(self) -> int:
        return len(self.positions)

    def members(self, start: int, end: int) -> np.ndarray:
        """Indices of probes whose position lies in the inclusive span [start, end]."""
        lo = np.searchsorted(self.positions, start, side="left")
        hi = np.searchsorted(self.positions, end, side="right")
        return np.arange(lo, hi)


def split_by_chromosome(probes: pd.DataFrame) -> list[ChromosomeProbes]:
    """Split a validated probe table into working sets, in order of first appearance."""
    chromosomes: list[ChromosomeProbes] = []
    for chrom, frame in probes.groupby("chr", sort=False):
        chromosomes.append(ChromosomeProbes.from_frame(chrom, frame))
    return chromosomes


@dataclass
class DistanceBin:
    """
    One autocorrelation distance bin: pairs separated by ``[lower, upper)`` bp.

    ``tested`` is False when the bin had too few pairs (or a constant
    quantile series) for a correlation test; such bins carry a zero
    correlation and a NaN p-value.
    """

    index: int
    lower: int
    upper: int
    n_pairs: int
    correlation: float
    p_value: float
    tested: bool
    truncated: bool = False


@dataclass
class AutocorrelationResult:
    """Per-bin correlation curve after truncation, plus the underlying bins."""

    correlations: np.ndarray
    bins: list[DistanceBin]
    truncated_at: int | None
    n_pairs: int

    def to_frame(self) -> pd.DataFrame:
        """Return the bins as a DataFrame (one row per bin, nearest first)."""
        return pd.DataFrame(
            [
                {
                    "bin": b.index,
                    "lower": b.lower,
                    "upper": b.upper,
                    "n_pairs": b.n_pairs,
                    "correlation": b.correlation,
                    "p_value": b.p_value,
                    "tested": b.tested,
                    "truncated": b.truncated,
                    "acf": float(self.correlations[b.index]),
                }
                for b in self.bins
            ],
            columns=[
                "bin",
                "lower",
                "upper",
                "n_pairs",
                "correlation",
                "p_value",
                "tested",
                "truncated",
                "acf",
            ],
        )


@dataclass
class RegionSearchResult:
    """
    Output of the comb-p region search.

    Fields
    ------
    regions : pd.DataFrame
        One row per merged region with columns ``REGION_COLUMNS``, sorted by
        ascending raw region p-value (stable). Zero rows is a valid result.
    probes : pd.DataFrame
        The validated probe table the search ran on (``dmrcombp.validators.PROBE_COLUMNS``).
    combined : pd.DataFrame
        Pass-1 combined p-values per probe (``COMBINED_COLUMNS``).
    autocorrelation : AutocorrelationResult
        The correlation curve used by both combination passes.
    config : DMRConfig
        Configuration of the run.
    """

    regions: pd.DataFrame
    probes: pd.DataFrame
    combined: pd.DataFrame
    autocorrelation: AutocorrelationResult
    config: DMRConfig = field(default_factory=DMRConfig)


@dataclass
class DMRBuildResult:
    """
    Output of the DMR build step.

    Fields
    ------
    vectors : pd.DataFrame
        Samples x DMRs matrix of first-principal-component scores. Columns are
        the DMR labels (``DMR1``, ``DMR2``, ...), index is the sample index of
        the methylation matrix.
    regions : pd.DataFrame
        Region table restricted to regions with at least ``min_cpg`` members,
        with a leading ``DMR`` label column.
    members : dict[str, list[str]]
        Member probe identifiers of each DMR, in position order.
    """

    vectors: pd.DataFrame
    regions: pd.DataFrame
    members: dict[str, list[str]]
