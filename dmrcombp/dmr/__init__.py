# File: dmrcombp/dmr/__init__.py
# Location: dmrcombp/dmrcombp/dmr/__init__.py
"""
dmrcombp.dmr: comb-p search for differentially methylated regions.

Per-probe p-values are combined with their spatially correlated neighbours
(Stouffer's method with an autocorrelation-corrected variance), significant
probes are merged into regions, regions are re-tested as a whole and finally
summarised into one representative vector per region.

Public API
----------
DMRConfig            : Search and build parameters
RegionSearchEngine   : Orchestrator: autocorrelation, both combination passes, FDR
RegionSearchResult   : Region table plus intermediate results
dmr_search           : Facade over RegionSearchEngine for parallel vectors
build_dmrs           : Member-count filter and first-PC summarisation
DMRBuildResult       : Representative vectors, DMR table, member mapping
apply_correction     : Standalone FDR/Bonferroni correction function
"""

from dmrcombp.dmr.base import DMRBuildResult, DMRConfig, RegionSearchResult
from dmrcombp.dmr.build import build_dmrs
from dmrcombp.dmr.correction import apply_correction
from dmrcombp.dmr.engine import RegionSearchEngine, dmr_search

__all__ = [
    "DMRBuildResult",
    "DMRConfig",
    "RegionSearchEngine",
    "RegionSearchResult",
    "apply_correction",
    "build_dmrs",
    "dmr_search",
]
