"""
Tests for RegionSearchEngine and the dmr_search facade.

Covers the end-to-end scenarios on tiny inputs, ordering of the region
table, empty results, parallel/sequential equivalence, cooperative
cancellation and input validation.
"""

from __future__ import annotations

import logging
import threading

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm

from dmrcombp.dmr.base import COMBINED_COLUMNS, REGION_COLUMNS, DMRConfig
from dmrcombp.dmr.engine import RegionSearchEngine, dmr_search
from dmrcombp.errors import ConfigurationError, DataValidationError, SearchCancelledError

# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestScenarios:
    def test_scenario_a_single_region_of_three(self, scenario_a_probes):
        # seed 0.6 keeps the p = 0.5 probe so that all three probes seed
        result = RegionSearchEngine(DMRConfig(seed=0.6)).run(scenario_a_probes)

        assert len(result.regions) == 1
        region = result.regions.iloc[0]
        assert region["chr"] == "chr1"
        assert (region["start"], region["end"]) == (100, 900)
        assert region["n_cpg"] == 3

        # every distance bin has fewer than three pairs: independence
        assert np.all(result.autocorrelation.correlations == 0.0)
        z = norm.ppf([0.001, 0.002, 0.5])
        assert region["p"] == pytest.approx(norm.cdf(z.sum() / np.sqrt(3)))
        assert region["fdr"] == pytest.approx(region["p"])

    def test_scenario_a_default_seed_drops_weak_probe(self, scenario_a_probes):
        result = RegionSearchEngine().run(scenario_a_probes)
        assert len(result.regions) == 1
        region = result.regions.iloc[0]
        assert (region["start"], region["end"], region["n_cpg"]) == (100, 200, 2)

    def test_pass_one_values(self, scenario_a_probes):
        result = RegionSearchEngine().run(scenario_a_probes)
        combined = result.combined
        assert list(combined.columns) == COMBINED_COLUMNS
        pair = norm.cdf((norm.ppf(0.001) + norm.ppf(0.002)) / np.sqrt(2))
        np.testing.assert_allclose(combined["combined_p"], [pair, pair, 0.5])
        assert combined["combined_q"].notna().all()

    def test_scenario_b_two_single_probe_regions(self, scenario_b_probes):
        result = RegionSearchEngine().run(scenario_b_probes)
        regions = result.regions
        assert len(regions) == 2
        assert list(regions["start"]) == [100, 5000]
        assert list(regions["end"]) == [100, 5000]
        assert list(regions["n_cpg"]) == [1, 1]
        # single members pass their raw p-values through
        np.testing.assert_allclose(regions["p"], [1e-6, 2e-6])
        np.testing.assert_allclose(regions["fdr"], [2e-6, 2e-6])

    def test_scenario_b_strict_seed_gives_no_regions(self, scenario_b_probes):
        result = RegionSearchEngine(DMRConfig(seed=1e-7)).run(scenario_b_probes)
        assert result.regions.empty


# ---------------------------------------------------------------------------
# Output shape and ordering
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRegionTable:
    def test_empty_result_keeps_schema(self):
        probes = pd.DataFrame(
            {
                "chr": ["chr1"] * 4,
                "start": [100, 200, 300, 400],
                "pval": [0.9, 0.8, 0.7, 0.95],
                "probe": ["a", "b", "c", "d"],
            }
        )
        result = RegionSearchEngine().run(probes)
        assert result.regions.empty
        assert list(result.regions.columns) == REGION_COLUMNS
        assert result.regions["n_cpg"].dtype == np.int64
        assert len(result.combined) == 4

    def test_sorted_by_p_with_stable_ties(self):
        probes = pd.DataFrame(
            {
                "chr": ["chr2", "chr1", "chr1"],
                "start": [500, 100, 90_000],
                "pval": [1e-6, 1e-6, 1e-8],
                "probe": ["a", "b", "c"],
            }
        )
        regions = RegionSearchEngine().run(probes).regions
        assert list(zip(regions["chr"], regions["start"])) == [
            ("chr1", 90_000),
            ("chr2", 500),
            ("chr1", 100),
        ]

    def test_member_counts_match_probe_positions(self, synthetic_probes):
        result = RegionSearchEngine().run(synthetic_probes)
        assert not result.regions.empty
        for row in result.regions.itertuples(index=False):
            on_chrom = synthetic_probes[synthetic_probes["chr"] == row.chr]
            inside = on_chrom[(on_chrom["end"] >= row.start) & (on_chrom["end"] <= row.end)]
            assert len(inside) == row.n_cpg

    def test_planted_clusters_found(self, synthetic_probes):
        regions = RegionSearchEngine().run(synthetic_probes).regions
        for c, chrom in enumerate(["chr1", "chr2", "chr3"]):
            cluster_start = 50_000 + c * 30_000
            on_chrom = regions[regions["chr"] == chrom]
            assert (
                (on_chrom["start"] <= cluster_start + 450) & (on_chrom["end"] >= cluster_start)
            ).any()

    def test_correlation_curve_is_read_only(self, synthetic_probes):
        result = RegionSearchEngine().run(synthetic_probes)
        assert not result.autocorrelation.correlations.flags.writeable

    def test_regions_disjoint_per_chromosome(self, synthetic_probes):
        regions = RegionSearchEngine().run(synthetic_probes).regions
        for _, frame in regions.groupby("chr"):
            frame = frame.sort_values("start")
            assert (frame["start"].to_numpy()[1:] > frame["end"].to_numpy()[:-1]).all()

    def test_larger_cutoff_never_adds_regions(self, synthetic_probes):
        narrow = RegionSearchEngine(DMRConfig(dist_cutoff=1000)).run(synthetic_probes).regions
        wide = RegionSearchEngine(DMRConfig(dist_cutoff=3000)).run(synthetic_probes).regions
        assert len(wide) <= len(narrow)
        for row in narrow.itertuples(index=False):
            same_chrom = wide[wide["chr"] == row.chr]
            assert ((same_chrom["start"] <= row.start) & (same_chrom["end"] >= row.end)).any()


# ---------------------------------------------------------------------------
# Parallelism and cancellation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestWorkers:
    def test_parallel_matches_sequential(self, synthetic_probes):
        sequential = RegionSearchEngine(DMRConfig(n_workers=1)).run(synthetic_probes)
        parallel = RegionSearchEngine(DMRConfig(n_workers=2)).run(synthetic_probes)
        pd.testing.assert_frame_equal(sequential.regions, parallel.regions)
        pd.testing.assert_frame_equal(sequential.combined, parallel.combined)
        np.testing.assert_array_equal(
            sequential.autocorrelation.correlations, parallel.autocorrelation.correlations
        )

    def test_worker_count_above_cpu_count_is_clamped(self, synthetic_probes, monkeypatch):
        monkeypatch.setattr("dmrcombp.resources.detect_cpu_count", lambda: 1)
        result = RegionSearchEngine(DMRConfig(n_workers=512)).run(synthetic_probes)
        assert not result.regions.empty

    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_cancelled_before_start(self, scenario_a_probes, n_workers):
        event = threading.Event()
        event.set()
        engine = RegionSearchEngine(DMRConfig(n_workers=n_workers))
        with pytest.raises(SearchCancelledError) as excinfo:
            engine.run(scenario_a_probes, cancel_event=event)
        assert excinfo.value.phase == "autocorrelation"
        assert excinfo.value.completed == 0

    def test_unset_event_runs_to_completion(self, scenario_a_probes):
        result = RegionSearchEngine().run(scenario_a_probes, cancel_event=threading.Event())
        assert len(result.regions) == 1


# ---------------------------------------------------------------------------
# Validation and facade
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestValidation:
    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError, match="bin_size"):
            RegionSearchEngine(DMRConfig(bin_size=0))

    def test_missing_pvalue_names_row(self, scenario_a_probes):
        scenario_a_probes.loc[1, "pval"] = np.nan
        with pytest.raises(DataValidationError) as excinfo:
            RegionSearchEngine().run(scenario_a_probes)
        assert excinfo.value.field == "pval"
        assert excinfo.value.row == 1


@pytest.mark.unit
class TestDmrSearch:
    def test_vectors_with_overrides(self):
        result = dmr_search(
            chrom=["chr1", "chr1", "chr1"],
            start=[100, 200, 900],
            end=[100, 200, 900],
            pval=[0.001, 0.002, 0.5],
            probe_id=["cg01", "cg02", "cg03"],
            seed=0.6,
        )
        assert result.config.seed == 0.6
        assert result.regions["n_cpg"].tolist() == [3]
        assert list(result.probes["probe"]) == ["cg01", "cg02", "cg03"]

    def test_end_defaults_to_start(self):
        result = dmr_search(["chr1", "chr1"], [100, 5000], None, [1e-6, 2e-6], ["a", "b"])
        assert list(result.probes["end"]) == [100, 5000]
        assert len(result.regions) == 2

    def test_length_mismatch_names_vector(self):
        with pytest.raises(DataValidationError) as excinfo:
            dmr_search(["chr1", "chr1"], [100, 200], None, [0.1], ["a", "b"])
        assert excinfo.value.field == "pval"

    def test_unknown_override_is_configuration_error(self):
        with pytest.raises(ConfigurationError) as excinfo:
            dmr_search(["chr1"], [100], None, [0.01], ["a"], bogus=1)
        assert excinfo.value.parameter == "bogus"

    def test_reversed_span_rejected(self):
        with pytest.raises(DataValidationError) as excinfo:
            dmr_search(["chr1", "chr1"], [100, 300], [150, 200], [0.01, 0.02], ["a", "b"])
        assert excinfo.value.field == "end"
        assert excinfo.value.row == 1

    def test_zero_pvalue_accepted(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dmrcombp"):
            result = dmr_search(["chr1", "chr1"], [100, 5000], None, [0.0, 0.3], ["a", "b"])
        assert result.probes["pval"].tolist() == [0.0, 0.3]
        assert "equal to 0" in caplog.text
        assert result.regions["p"].between(0.0, 1.0).all()
