"""Shared pytest fixtures for all test modules."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from dmrcombp.dmr.base import DMRConfig


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of a single module")
    config.addinivalue_line("markers", "integration: end-to-end tests through the CLI")


@pytest.fixture
def scenario_a_probes() -> pd.DataFrame:
    """Three probes on one chromosome; all three fall within 1000 bp of a neighbour."""
    return pd.DataFrame(
        {
            "chr": ["chr1", "chr1", "chr1"],
            "start": [100, 200, 900],
            "end": [100, 200, 900],
            "pval": [0.001, 0.002, 0.5],
            "probe": ["cg01", "cg02", "cg03"],
        }
    )


@pytest.fixture
def scenario_b_probes() -> pd.DataFrame:
    """Two significant probes 4900 bp apart."""
    return pd.DataFrame(
        {
            "chr": ["chr1", "chr1"],
            "start": [100, 5000],
            "end": [100, 5000],
            "pval": [1e-6, 2e-6],
            "probe": ["cg01", "cg02"],
        }
    )


@pytest.fixture
def two_region_probes() -> pd.DataFrame:
    """A two-probe cluster at 100-200 and a lone significant probe at 5000."""
    return pd.DataFrame(
        {
            "chr": ["chr1", "chr1", "chr1"],
            "start": [100, 200, 5000],
            "end": [100, 200, 5000],
            "pval": [0.001, 0.002, 1e-4],
            "probe": ["cg01", "cg02", "cg03"],
        }
    )


@pytest.fixture
def synthetic_probes() -> pd.DataFrame:
    """
    Three chromosomes of background probes with one planted signal cluster each.

    Background p-values are uniform; cluster probes (every 50 bp over 500 bp)
    carry p-values around 1e-5.
    """
    rng = np.random.default_rng(20240501)
    frames = []
    for c, chrom in enumerate(["chr1", "chr2", "chr3"]):
        background = np.sort(rng.choice(np.arange(1, 200_000), size=300, replace=False))
        cluster_start = 50_000 + c * 30_000
        cluster = np.arange(cluster_start, cluster_start + 500, 50)
        positions = np.unique(np.concatenate([background, cluster]))
        pvals = rng.uniform(0.0, 1.0, size=len(positions))
        in_cluster = np.isin(positions, cluster)
        pvals[in_cluster] = rng.uniform(1e-6, 1e-4, size=int(in_cluster.sum()))
        frames.append(
            pd.DataFrame(
                {
                    "chr": chrom,
                    "start": positions,
                    "end": positions,
                    "pval": pvals,
                    "probe": [f"{chrom}_{p}" for p in positions],
                }
            )
        )
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def default_config() -> DMRConfig:
    return DMRConfig()


def make_methylation(probe_ids, n_samples: int = 12, seed: int = 7) -> pd.DataFrame:
    """Random beta-like methylation matrix (samples x probes) without missing values."""
    rng = np.random.default_rng(seed)
    values = rng.uniform(0.05, 0.95, size=(n_samples, len(probe_ids)))
    return pd.DataFrame(
        values,
        index=[f"S{i + 1}" for i in range(n_samples)],
        columns=list(probe_ids),
    )


@pytest.fixture
def methylation_factory():
    return make_methylation


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def write_text():
    return _write
