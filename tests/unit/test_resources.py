"""Unit tests for CPU detection and worker-count resolution."""

import pytest

from dmrcombp import resources
from dmrcombp.resources import detect_cpu_count, resolve_workers


@pytest.fixture
def four_cpus(monkeypatch):
    monkeypatch.setattr(resources, "detect_cpu_count", lambda: 4)


@pytest.mark.unit
class TestResolveWorkers:
    def test_detect_cpu_count_positive(self):
        assert detect_cpu_count() >= 1

    def test_within_limit(self, four_cpus):
        assert resolve_workers(3) == 3

    def test_clamped_silently(self, four_cpus, caplog):
        assert resolve_workers(64) == 4
        assert not [r for r in caplog.records if r.levelname in ("WARNING", "ERROR")]

    @pytest.mark.parametrize("requested", [-1, 0])
    def test_all_cores(self, four_cpus, requested):
        assert resolve_workers(requested) == 4

    def test_capped_by_task_count(self, four_cpus):
        assert resolve_workers(4, n_tasks=2) == 2

    def test_zero_tasks_still_one_worker(self, four_cpus):
        assert resolve_workers(4, n_tasks=0) == 1

    def test_psutil_failure_falls_back(self, monkeypatch):
        def _boom(logical=True):
            raise RuntimeError("no cpu info")

        monkeypatch.setattr(resources.psutil, "cpu_count", _boom)
        monkeypatch.setattr(resources.os, "cpu_count", lambda: 2)
        assert detect_cpu_count() == 2
