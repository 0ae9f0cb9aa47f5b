# File: dmrcombp/__init__.py
# Location: dmrcombp/dmrcombp/__init__.py

"""
dmrcombp Package.

This package detects differentially methylated regions (DMRs) from per-probe
p-values with a modified comb-p procedure and summarizes each region into a
single representative vector per sample for downstream mediation analysis.
"""

from .version import __version__
