"""
Unit tests for dmrcombp.dmr.build.

Covers the first-principal-component reduction (values and sign convention),
the member-count filter, member collection and the fail-fast checks on the
methylation matrix.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from dmrcombp.dmr.build import DMR_REGION_COLUMNS, build_dmrs, first_principal_component
from dmrcombp.dmr.engine import RegionSearchEngine
from dmrcombp.errors import DataValidationError

# ---------------------------------------------------------------------------
# first_principal_component
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestFirstPrincipalComponent:
    def test_single_column_returned_unchanged(self):
        column = np.array([[0.2], [0.5], [0.9]])
        np.testing.assert_array_equal(first_principal_component(column), [0.2, 0.5, 0.9])

    def test_rank_one_scores(self):
        x = np.array([1.0, 2.0, 3.0, 4.0])
        matrix = np.column_stack([x, 2 * x])
        centred = x - x.mean()
        # loading (1, 2) / sqrt(5); score = centred * sqrt(5)
        np.testing.assert_allclose(first_principal_component(matrix), centred * np.sqrt(5))

    def test_sign_follows_first_column(self):
        x = np.array([0.1, 0.4, 0.3, 0.8, 0.5])
        matrix = np.column_stack([x, -x])
        scores = first_principal_component(matrix)
        assert np.corrcoef(scores, x)[0, 1] > 0.999

    def test_sign_invariant_to_column_flip_of_others(self):
        rng = np.random.default_rng(1)
        base = rng.normal(size=(20, 1))
        matrix = base + 0.1 * rng.normal(size=(20, 3))
        flipped = matrix.copy()
        flipped[:, 1:] *= -1
        a = first_principal_component(matrix)
        b = first_principal_component(flipped)
        assert np.corrcoef(a, matrix[:, 0])[0, 1] > 0
        assert np.corrcoef(b, flipped[:, 0])[0, 1] > 0

    def test_constant_matrix_gives_zeros(self):
        matrix = np.full((4, 3), 0.5)
        np.testing.assert_array_equal(first_principal_component(matrix), np.zeros(4))

    def test_scores_are_centred(self):
        rng = np.random.default_rng(2)
        scores = first_principal_component(rng.uniform(size=(15, 4)))
        assert scores.mean() == pytest.approx(0.0, abs=1e-12)


# ---------------------------------------------------------------------------
# build_dmrs
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestBuildDmrs:
    def test_scenario_c_filter_by_member_count(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        # the two-probe region and the lone probe are both regions
        assert sorted(search.regions["n_cpg"].tolist()) == [1, 2]

        methylation = methylation_factory(["cg01", "cg02", "cg03"])
        built = build_dmrs(search, methylation, min_cpg=2)

        assert list(built.regions.columns) == DMR_REGION_COLUMNS
        assert built.regions["DMR"].tolist() == ["DMR1"]
        assert (built.regions.iloc[0]["start"], built.regions.iloc[0]["end"]) == (100, 200)
        assert list(built.vectors.columns) == ["DMR1"]
        assert built.members == {"DMR1": ["cg01", "cg02"]}
        assert list(built.vectors.index) == list(methylation.index)

    def test_default_min_cpg_from_search_config(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        built = build_dmrs(search, methylation_factory(["cg01", "cg02", "cg03"]))
        assert built.regions["DMR"].tolist() == ["DMR1"]

    def test_single_member_region_returns_probe_column(
        self, two_region_probes, methylation_factory
    ):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cg01", "cg02", "cg03"])
        built = build_dmrs(search, methylation, min_cpg=1)

        lone = built.regions[built.regions["start"] == 5000]["DMR"].iloc[0]
        assert built.members[lone] == ["cg03"]
        np.testing.assert_array_equal(built.vectors[lone].to_numpy(), methylation["cg03"])

    def test_labels_follow_region_order(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        built = build_dmrs(search, methylation_factory(["cg01", "cg02", "cg03"]), min_cpg=1)
        assert built.regions["DMR"].tolist() == ["DMR1", "DMR2"]
        assert built.regions["p"].is_monotonic_increasing

    def test_member_count_round_trip(self, synthetic_probes, methylation_factory):
        search = RegionSearchEngine().run(synthetic_probes)
        methylation = methylation_factory(synthetic_probes["probe"])
        built = build_dmrs(search, methylation, min_cpg=1)
        assert len(built.regions) == len(search.regions)
        for row in built.regions.itertuples(index=False):
            members = built.members[row.DMR]
            assert methylation[members].shape[1] == row.n_cpg

    def test_no_surviving_region_is_well_formed(self, scenario_b_probes, methylation_factory):
        search = RegionSearchEngine().run(scenario_b_probes)
        methylation = methylation_factory(["cg01", "cg02"])
        built = build_dmrs(search, methylation, min_cpg=2)
        assert built.regions.empty
        assert list(built.regions.columns) == DMR_REGION_COLUMNS
        assert built.vectors.shape == (len(methylation), 0)
        assert built.members == {}

    def test_extra_matrix_columns_ignored(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cgXX", "cg03", "cg02", "cg01"])
        built = build_dmrs(search, methylation, min_cpg=2)
        assert built.members["DMR1"] == ["cg01", "cg02"]

    def test_missing_value_names_probe_and_sample(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cg01", "cg02", "cg03"])
        methylation.loc["S3", "cg02"] = np.nan
        with pytest.raises(DataValidationError, match="cg02") as excinfo:
            build_dmrs(search, methylation)
        assert excinfo.value.row == "S3"

    def test_member_missing_from_matrix(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cg01", "cg03"])
        with pytest.raises(DataValidationError, match="cg02"):
            build_dmrs(search, methylation)

    def test_non_numeric_column_rejected(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cg01", "cg02", "cg03"]).astype(object)
        methylation.loc["S1", "cg01"] = "high"
        with pytest.raises(DataValidationError, match="Non-numeric"):
            build_dmrs(search, methylation)

    def test_matrix_is_not_mutated(self, two_region_probes, methylation_factory):
        search = RegionSearchEngine().run(two_region_probes)
        methylation = methylation_factory(["cg01", "cg02", "cg03"])
        before = methylation.copy()
        build_dmrs(search, methylation)
        pd.testing.assert_frame_equal(methylation, before)
