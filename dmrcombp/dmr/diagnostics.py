# File: dmrcombp/dmr/diagnostics.py
# Location: dmrcombp/dmrcombp/dmr/diagnostics.py
"""
Diagnostics for the comb-p region search.

Provides:
- compute_lambda_gc(): Genomic inflation factor from a p-value distribution
- compute_qq_data(): Observed vs expected -log10(p) for QQ plots
- write_diagnostics(): Write all diagnostics files to an output directory

The autocorrelation curve is the main thing worth inspecting after a run:
a curve that truncates at bin 0 means the combination passes ran under
independence, and a lambda_GC far above 1 for the raw probe p-values usually
means the upstream regression was miscalibrated.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
from scipy.stats import chi2 as chi2_dist

from dmrcombp.dmr.base import RegionSearchResult
from dmrcombp.dmr.correction import storey_eta0

logger = logging.getLogger("dmrcombp")

# Median of chi2(df=1), i.e. chi2.ppf(0.5, df=1).
_EXPECTED_CHI2_MEDIAN: float = 0.45493642311957174

_QQ_COLUMNS: list[str] = ["source", "expected_neg_log10_p", "observed_neg_log10_p"]


def _valid(p_values: np.ndarray | list[float]) -> np.ndarray:
    values = np.asarray(p_values, dtype=float)
    return values[~np.isnan(values)]


def compute_lambda_gc(p_values: np.ndarray | list[float]) -> float | None:
    """
    Compute genomic inflation factor (lambda_GC) from p-values.

    Lambda_GC is the ratio of the observed median chi2(1) statistic to the
    expected median under the null. A well-calibrated analysis has lambda_GC
    near 1.0.

    Parameters
    ----------
    p_values : array-like of float
        Raw (uncorrected) p-values. NaN values are filtered out.

    Returns
    -------
    float | None
        lambda_GC, or None if fewer than 2 valid p-values are available.
    """
    valid = _valid(p_values)
    if len(valid) < 2:
        return None

    valid = np.clip(valid, 1e-300, 1.0 - 1e-15)
    if len(valid) < 100:
        logger.warning(f"lambda_GC computed on {len(valid)} tests; unreliable for n < 100")

    chi2_obs = chi2_dist.isf(valid, df=1)
    return float(np.median(chi2_obs) / _EXPECTED_CHI2_MEDIAN)


def compute_qq_data(p_values: np.ndarray | list[float], source: str) -> pd.DataFrame:
    """
    Compute observed vs expected -log10(p) data for QQ plots.

    Expected quantiles use i/(n+1) for rank i in 1..n. Rows are sorted by
    ascending expected value.

    Returns
    -------
    pd.DataFrame
        Columns: "source", "expected_neg_log10_p", "observed_neg_log10_p".
        Empty DataFrame with the same columns if no valid p-values.
    """
    valid = _valid(p_values)
    if len(valid) == 0:
        return pd.DataFrame(columns=_QQ_COLUMNS)

    n = len(valid)
    # Largest observed p pairs with the largest expected p (rank n).
    observed_sorted = np.sort(valid)[::-1]
    expected_p = np.arange(n, 0, -1, dtype=float) / (n + 1)

    return pd.DataFrame(
        {
            "source": source,
            "expected_neg_log10_p": -np.log10(expected_p),
            "observed_neg_log10_p": -np.log10(np.clip(observed_sorted, 1e-300, 1.0)),
        },
        columns=_QQ_COLUMNS,
    )


def write_diagnostics(result: RegionSearchResult, diagnostics_dir: str | Path) -> None:
    """
    Write diagnostics files for a region search.

    Creates four files:
    - autocorrelation_bins.tsv: one row per distance bin (pairs, r, p, truncation)
    - lambda_gc.tsv: lambda_GC and Storey eta0 for raw probe, pass-1 and region p-values
    - qq_data.tsv: QQ data for the same three p-value sets
    - summary.txt: human-readable summary of the run

    Parameters
    ----------
    result : RegionSearchResult
        Output of the region search.
    diagnostics_dir : str | Path
        Directory to write output files. Created if it does not exist.
    """
    diag_dir = Path(diagnostics_dir)
    diag_dir.mkdir(parents=True, exist_ok=True)

    acf_frame = result.autocorrelation.to_frame()
    acf_frame.to_csv(diag_dir / "autocorrelation_bins.tsv", sep="\t", index=False)

    sources = {
        "probe": result.probes["pval"].to_numpy(dtype=float),
        "pass1": result.combined["combined_p"].to_numpy(dtype=float),
        "region": result.regions["p"].to_numpy(dtype=float),
    }

    lambda_rows: list[dict] = []
    qq_frames: list[pd.DataFrame] = []
    for source, p_values in sources.items():
        lam = compute_lambda_gc(p_values)
        lambda_rows.append(
            {
                "source": source,
                "lambda_gc": lam if lam is not None else np.nan,
                "eta0": storey_eta0(_valid(p_values)),
                "n_tests": len(_valid(p_values)),
            }
        )
        qq_df = compute_qq_data(p_values, source)
        if not qq_df.empty:
            qq_frames.append(qq_df)

    lambda_df = pd.DataFrame(lambda_rows, columns=["source", "lambda_gc", "eta0", "n_tests"])
    lambda_df.to_csv(diag_dir / "lambda_gc.tsv", sep="\t", index=False)

    if qq_frames:
        qq_combined = pd.concat(qq_frames, ignore_index=True)
    else:
        qq_combined = pd.DataFrame(columns=_QQ_COLUMNS)
    qq_combined.to_csv(diag_dir / "qq_data.tsv", sep="\t", index=False)

    cfg = result.config
    acf = result.autocorrelation
    n_seed = int((result.combined["combined_q"] < cfg.seed).sum())
    lines: list[str] = [
        "Region Search Diagnostics Summary",
        "=" * 33,
        "",
        "Parameters:",
        f"  dist_cutoff = {cfg.dist_cutoff}",
        f"  bin_size    = {cfg.bin_size}",
        f"  seed        = {cfg.seed}",
        f"  truncation  = {'on' if cfg.truncate_acf else 'off'} (alpha = {cfg.acf_alpha})",
        "",
        "Autocorrelation:",
        f"  probe pairs   = {acf.n_pairs}",
        f"  distance bins = {len(acf.bins)}",
    ]
    if acf.truncated_at is None:
        lines.append("  truncated at  = (none)")
    else:
        lines.append(
            f"  truncated at  = bin {acf.truncated_at} ({acf.truncated_at * cfg.bin_size} bp)"
        )

    lines += [
        "",
        "Counts:",
        f"  probes        = {len(result.probes)}",
        f"  seed probes   = {n_seed}",
        f"  regions       = {len(result.regions)}",
        "",
        "Lambda_GC (genomic inflation factor):",
    ]
    for row in lambda_rows:
        lam_str = "NA" if np.isnan(row["lambda_gc"]) else f"{row['lambda_gc']:.4f}"
        flag = " [UNRELIABLE: n < 100]" if row["n_tests"] < 100 else ""
        lines.append(f"  {row['source']:<8s} {lam_str}  (n={row['n_tests']}){flag}")
    lines.append("")

    (diag_dir / "summary.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info(f"Diagnostics written to {diag_dir}")
