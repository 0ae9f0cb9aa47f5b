# File: dmrcombp/dmr/engine.py
# Location: dmrcombp/dmrcombp/dmr/engine.py
"""
RegionSearchEngine: orchestrator for the comb-p region search.

The search runs in a fixed order:

1. Autocorrelation pair collection, one task per chromosome.
2. Autocorrelation estimate on the joined pairs. This is a barrier: no
   combination starts before the correlation curve is final, and the curve
   is read-only afterwards.
3. Pass 1: every probe is combined with its neighbours closer than
   ``bin_size`` bp, one task per chromosome.
4. Genome-wide correction of the pass-1 p-values; probes below ``seed`` are
   retained and merged into candidate regions within ``dist_cutoff`` bp.
5. Pass 2: every probe inside each region is combined, one task per
   chromosome holding at least one region.
6. Correction of the region p-values across all regions, then a stable sort
   by raw region p-value.

Per-chromosome tasks (steps 1, 3 and 5) run in a process pool when
``n_workers`` > 1. Results are collected in chromosome order, so the output
does not depend on the worker count. A ``threading.Event`` passed to
``run()`` cancels the search between tasks: pending work is dropped and
SearchCancelledError is raised.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import fields, replace
from typing import Any

import numpy as np
import pandas as pd

from dmrcombp.dmr.autocorrelation import collect_chromosome_pairs, join_and_estimate
from dmrcombp.dmr.base import (
    COMBINED_COLUMNS,
    REGION_COLUMNS,
    ChromosomeProbes,
    DMRConfig,
    RegionSearchResult,
    split_by_chromosome,
)
from dmrcombp.dmr.combine import combine_probe_windows, combine_region_windows
from dmrcombp.dmr.correction import apply_correction
from dmrcombp.dmr.merge import merge_seed_probes, select_seed_probes
from dmrcombp.errors import ConfigurationError, SearchCancelledError
from dmrcombp.resources import resolve_workers
from dmrcombp.validators import validate_probe_table, validate_probe_vectors

logger = logging.getLogger("dmrcombp")

# Seconds between cancellation checks while waiting on a worker.
_CANCEL_POLL_SECONDS: float = 0.2


def _worker_initializer() -> None:
    """Set BLAS thread counts to 1 in worker processes to prevent oversubscription."""
    os.environ["OPENBLAS_NUM_THREADS"] = "1"
    os.environ["MKL_NUM_THREADS"] = "1"
    os.environ["OMP_NUM_THREADS"] = "1"


def _pairs_worker(
    args: tuple[ChromosomeProbes, int],
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Collect autocorrelation pairs for one chromosome in a subprocess worker."""
    chrom, dist_cutoff = args
    return collect_chromosome_pairs(chrom, dist_cutoff)


def _probe_windows_worker(args: tuple[ChromosomeProbes, np.ndarray, int]) -> np.ndarray:
    """Run pass 1 for one chromosome in a subprocess worker."""
    chrom, acf, bin_size = args
    return combine_probe_windows(chrom, acf, bin_size)


def _region_windows_worker(
    args: tuple[ChromosomeProbes, np.ndarray, np.ndarray, np.ndarray, int],
) -> tuple[np.ndarray, np.ndarray]:
    """Run pass 2 for the regions of one chromosome in a subprocess worker."""
    chrom, starts, ends, acf, bin_size = args
    return combine_region_windows(chrom, starts, ends, acf, bin_size)


def empty_region_table() -> pd.DataFrame:
    """Zero-row region table with the ``REGION_COLUMNS`` schema."""
    return pd.DataFrame(
        {
            "chr": pd.Series(dtype=object),
            "start": pd.Series(dtype=np.int64),
            "end": pd.Series(dtype=np.int64),
            "p": pd.Series(dtype=float),
            "fdr": pd.Series(dtype=float),
            "n_cpg": pd.Series(dtype=np.int64),
        },
        columns=REGION_COLUMNS,
    )


class RegionSearchEngine:
    """
    Runs the comb-p region search over a validated probe table.

    Usage
    -----
    >>> engine = RegionSearchEngine(DMRConfig(dist_cutoff=1000, bin_size=310))
    >>> result = engine.run(probes)
    >>> result.regions.head()

    Parameters
    ----------
    config : DMRConfig, optional
        Search parameters. Validated on construction.
    """

    def __init__(self, config: DMRConfig | None = None) -> None:
        self._config = config if config is not None else DMRConfig()
        self._config.validate()

    @property
    def config(self) -> DMRConfig:
        return self._config

    def _map_chromosomes(
        self,
        func: Callable[[Any], Any],
        tasks: Sequence[Any],
        phase: str,
        cancel_event: threading.Event | None,
    ) -> list[Any]:
        """
        Apply ``func`` to every task and return the results in task order.

        Runs in-process when a single worker is resolved, otherwise in a
        ProcessPoolExecutor. The cancel event is checked before each task
        (sequential) or while waiting on each result (parallel).
        """
        n_tasks = len(tasks)
        workers = resolve_workers(int(self._config.n_workers), n_tasks)

        if workers <= 1:
            results: list[Any] = []
            for i, task in enumerate(tasks):
                if cancel_event is not None and cancel_event.is_set():
                    raise SearchCancelledError(phase, i, n_tasks)
                results.append(func(task))
            return results

        logger.info(f"Parallel {phase}: {workers} workers for {n_tasks} chromosomes")
        executor = concurrent.futures.ProcessPoolExecutor(
            max_workers=workers,
            initializer=_worker_initializer,
        )
        try:
            futures = [executor.submit(func, task) for task in tasks]
            results = []
            for i, future in enumerate(futures):
                while True:
                    if cancel_event is not None and cancel_event.is_set():
                        raise SearchCancelledError(phase, i, n_tasks)
                    try:
                        results.append(future.result(timeout=_CANCEL_POLL_SECONDS))
                        break
                    except concurrent.futures.TimeoutError:
                        continue
            return results
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def run(
        self,
        probes: pd.DataFrame,
        cancel_event: threading.Event | None = None,
    ) -> RegionSearchResult:
        """
        Search for differentially methylated regions.

        Parameters
        ----------
        probes : pd.DataFrame
            Probe table with ``chr``, ``start``, ``end`` (optional), ``pval``
            and ``probe`` columns. Validated before the search starts.
        cancel_event : threading.Event, optional
            When set, the search stops at the next task boundary.

        Returns
        -------
        RegionSearchResult
            Regions sorted by ascending raw p-value plus the intermediate
            per-probe and autocorrelation results.

        Raises
        ------
        DataValidationError
            If the probe table is malformed.
        SearchCancelledError
            If ``cancel_event`` was set before the search completed.
        """
        cfg = self._config
        probes = validate_probe_table(probes)
        chromosomes = split_by_chromosome(probes)
        t_start = time.time()
        logger.info(
            f"Region search: {len(probes)} probes on {len(chromosomes)} chromosomes "
            f"(dist_cutoff={cfg.dist_cutoff}, bin_size={cfg.bin_size}, seed={cfg.seed})"
        )

        # Autocorrelation: per-chromosome pairs, then one joint estimate.
        pairs = self._map_chromosomes(
            _pairs_worker,
            [(chrom, int(cfg.dist_cutoff)) for chrom in chromosomes],
            "autocorrelation",
            cancel_event,
        )
        acf_result = join_and_estimate(
            pairs,
            int(cfg.dist_cutoff),
            int(cfg.bin_size),
            truncate=cfg.truncate_acf,
            alpha=cfg.acf_alpha,
        )
        acf = acf_result.correlations
        acf.setflags(write=False)

        # Pass 1
        pass1 = self._map_chromosomes(
            _probe_windows_worker,
            [(chrom, acf, int(cfg.bin_size)) for chrom in chromosomes],
            "pass 1",
            cancel_event,
        )
        combined = self._combined_table(chromosomes, pass1)

        retained = select_seed_probes(combined, float(cfg.seed), cfg.correction_method)
        spans = merge_seed_probes(retained, int(cfg.dist_cutoff))

        if spans.empty:
            logger.info("Region search: no probe passed the seed threshold; no regions")
            regions = empty_region_table()
        else:
            regions = self._combine_regions(chromosomes, spans, acf, cancel_event)

        logger.info(
            f"Region search complete: {len(regions)} regions in {time.time() - t_start:.2f}s"
        )
        return RegionSearchResult(
            regions=regions,
            probes=probes,
            combined=combined[COMBINED_COLUMNS],
            autocorrelation=acf_result,
            config=cfg,
        )

    @staticmethod
    def _combined_table(
        chromosomes: list[ChromosomeProbes],
        pass1: list[np.ndarray],
    ) -> pd.DataFrame:
        """Assemble pass-1 results into one position-sorted table per chromosome."""
        frames = [
            pd.DataFrame(
                {
                    "chr": chrom.chrom,
                    "pos": chrom.positions,
                    "probe": list(chrom.probe_ids),
                    "pval": chrom.pvalues,
                    "combined_p": combined_p,
                }
            )
            for chrom, combined_p in zip(chromosomes, pass1)
        ]
        if not frames:
            table = pd.DataFrame(
                {
                    "chr": pd.Series(dtype=object),
                    "pos": pd.Series(dtype=np.int64),
                    "probe": pd.Series(dtype=object),
                    "pval": pd.Series(dtype=float),
                    "combined_p": pd.Series(dtype=float),
                }
            )
        else:
            table = pd.concat(frames, ignore_index=True)
        table["combined_q"] = np.nan
        return table

    def _combine_regions(
        self,
        chromosomes: list[ChromosomeProbes],
        spans: pd.DataFrame,
        acf: np.ndarray,
        cancel_event: threading.Event | None,
    ) -> pd.DataFrame:
        """Pass 2 over the merged spans, then region-level correction and sort."""
        cfg = self._config
        by_name = {chrom.chrom: chrom for chrom in chromosomes}
        groups = list(spans.groupby("chr", sort=False))

        tasks = [
            (
                by_name[name],
                frame["start"].to_numpy(dtype=np.int64),
                frame["end"].to_numpy(dtype=np.int64),
                acf,
                int(cfg.bin_size),
            )
            for name, frame in groups
        ]
        pass2 = self._map_chromosomes(_region_windows_worker, tasks, "pass 2", cancel_event)

        frames = []
        for (name, frame), (combined_p, n_members) in zip(groups, pass2):
            frames.append(
                pd.DataFrame(
                    {
                        "chr": name,
                        "start": frame["start"].to_numpy(dtype=np.int64),
                        "end": frame["end"].to_numpy(dtype=np.int64),
                        "p": combined_p,
                        "n_cpg": n_members,
                    }
                )
            )
        regions = pd.concat(frames, ignore_index=True)
        regions["fdr"] = apply_correction(regions["p"].to_numpy(), cfg.correction_method)
        regions = regions[REGION_COLUMNS]
        return regions.sort_values("p", kind="mergesort").reset_index(drop=True)


def dmr_search(
    chrom: Sequence[Any],
    start: Sequence[Any],
    end: Sequence[Any] | None,
    pval: Sequence[Any],
    probe_id: Sequence[Any],
    config: DMRConfig | None = None,
    cancel_event: threading.Event | None = None,
    **overrides: Any,
) -> RegionSearchResult:
    """
    Run the region search on parallel probe vectors.

    Parameters
    ----------
    chrom, start, end, pval, probe_id : sequence
        Aligned per-probe annotation and p-values. ``end`` may be None, in
        which case ``start`` is used as the probe position.
    config : DMRConfig, optional
        Base configuration; keyword ``overrides`` replace individual fields
        (e.g. ``dmr_search(..., dist_cutoff=500, seed=0.05)``).
    cancel_event : threading.Event, optional
        Cooperative cancellation flag.

    Returns
    -------
    RegionSearchResult

    Raises
    ------
    DataValidationError
        If the vectors differ in length or contain invalid values.
    ConfigurationError
        If a parameter is out of range or an override names no
        ``DMRConfig`` field.
    """
    probes = validate_probe_vectors(chrom, start, end, pval, probe_id)
    cfg = config if config is not None else DMRConfig()
    if overrides:
        known = {f.name for f in fields(DMRConfig)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(
                unknown[0], overrides[unknown[0]], "not a region search parameter"
            )
        cfg = replace(cfg, **overrides)
    return RegionSearchEngine(cfg).run(probes, cancel_event=cancel_event)
