# File: dmrcombp/dmr/build.py
# Location: dmrcombp/dmrcombp/dmr/build.py
"""
Summarise search regions into one representative vector per DMR.

Regions with fewer than ``min_cpg`` member probes are dropped. For each
surviving region the member probes' columns are taken from the
samples x probes methylation matrix and reduced to the sample scores of the
first principal component.

Public API
----------
first_principal_component(matrix)
    Sample scores of the first PC with a fixed sign convention.
build_dmrs(search_result, methylation, min_cpg=None)
    Filter regions, collect members and compute representative vectors.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from dmrcombp.dmr.base import (
    REGION_COLUMNS,
    DMRBuildResult,
    RegionSearchResult,
    split_by_chromosome,
)
from dmrcombp.errors import DataValidationError
from dmrcombp.validators import validate_methylation_matrix

logger = logging.getLogger("dmrcombp")

DMR_REGION_COLUMNS: list[str] = ["DMR", *REGION_COLUMNS]


def first_principal_component(matrix: np.ndarray) -> np.ndarray:
    """Return the first principal component scores of a samples x probes matrix.

    Columns are centred (not scaled) and decomposed by SVD; the scores are
    ``U[:, 0] * S[0]``. The component is oriented so that the loading of the
    first column is non-negative (the first non-zero loading when the first
    column's loading is exactly zero).

    A single-column matrix is returned unchanged: the representative vector of
    a one-probe region is the probe's own measurements.

    Parameters
    ----------
    matrix : np.ndarray, shape (n_samples, n_probes)
        Numeric matrix without missing values.

    Returns
    -------
    np.ndarray, shape (n_samples,)
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {matrix.shape}")
    if matrix.shape[1] == 1:
        return matrix[:, 0].copy()

    centred = matrix - matrix.mean(axis=0)
    if not np.any(centred):
        logger.warning("PCA on a constant sub-matrix; representative vector is all zeros")
        return np.zeros(matrix.shape[0], dtype=np.float64)

    u, s, vt = np.linalg.svd(centred, full_matrices=False)
    loadings = vt[0]
    nonzero = np.flatnonzero(loadings)
    if len(nonzero) and loadings[nonzero[0]] < 0:
        u = -u
    return u[:, 0] * s[0]


def build_dmrs(
    search_result: RegionSearchResult,
    methylation: pd.DataFrame,
    min_cpg: int | None = None,
) -> DMRBuildResult:
    """Build the final DMR set from a region search.

    Parameters
    ----------
    search_result : RegionSearchResult
        Output of ``RegionSearchEngine.run`` / ``dmr_search``.
    methylation : pd.DataFrame
        Samples x probes matrix (index = sample ids, columns = probe ids).
        Only the columns of member probes are read.
    min_cpg : int, optional
        Minimum member count. Defaults to ``search_result.config.min_cpg``.

    Returns
    -------
    DMRBuildResult
        Representative vectors (samples x ``DMR1..DMRk``), the filtered region
        table with a leading ``DMR`` column, and the DMR -> member probes map.
        All three are empty (with full schema) when no region survives.

    Raises
    ------
    DataValidationError
        If the matrix holds missing or non-numeric values, or if a member
        probe of a surviving region has no column in the matrix.
    """
    if min_cpg is None:
        min_cpg = int(search_result.config.min_cpg)

    matrix = validate_methylation_matrix(methylation)
    column_index = {probe: i for i, probe in enumerate(matrix.columns)}
    values = matrix.to_numpy()

    regions = search_result.regions
    kept = regions[regions["n_cpg"] >= min_cpg].reset_index(drop=True)
    n_dropped = len(regions) - len(kept)
    if n_dropped:
        logger.info(f"DMR build: {n_dropped} regions with fewer than {min_cpg} probes dropped")

    chromosomes = {chrom.chrom: chrom for chrom in split_by_chromosome(search_result.probes)}

    labels: list[str] = []
    vectors: dict[str, np.ndarray] = {}
    members: dict[str, list[str]] = {}
    for i, row in enumerate(kept.itertuples(index=False), start=1):
        label = f"DMR{i}"
        chrom = chromosomes[row.chr]
        probe_ids = [chrom.probe_ids[j] for j in chrom.members(int(row.start), int(row.end))]

        missing = [p for p in probe_ids if p not in column_index]
        if missing:
            raise DataValidationError(
                f"{len(missing)} member probe(s) of {label} ({row.chr}:{row.start}-{row.end}) "
                f"not found in methylation matrix, first: '{missing[0]}'",
                "methylation",
            )

        columns = [column_index[p] for p in probe_ids]
        vectors[label] = first_principal_component(values[:, columns])
        members[label] = probe_ids
        labels.append(label)
        logger.debug(f"{label} {row.chr}:{row.start}-{row.end}: {len(probe_ids)} probes")

    kept.insert(0, "DMR", labels)
    if not labels:
        logger.info("DMR build: no region passed the member-count filter")
        kept = pd.DataFrame(
            {"DMR": pd.Series(dtype=object)}
            | {col: pd.Series(dtype=regions[col].dtype) for col in REGION_COLUMNS}
        )

    vector_frame = pd.DataFrame(vectors, index=matrix.index, columns=labels)
    logger.info(f"DMR build: {len(labels)} DMRs summarised over {len(matrix)} samples")
    return DMRBuildResult(vectors=vector_frame, regions=kept[DMR_REGION_COLUMNS], members=members)
