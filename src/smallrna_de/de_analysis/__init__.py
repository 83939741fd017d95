"""
Differential Expression Analysis module.
"""

from .differential_expression import (
    DEAnalysis,
    adjust_pvalues,
    get_top_genes,
    filter_significant,
    summarize_results
)
from .lookup import lookup_markers
from .sample_structure import SampleStructureAnalyzer

__all__ = [
    'DEAnalysis',
    'adjust_pvalues',
    'get_top_genes',
    'filter_significant',
    'summarize_results',
    'lookup_markers',
    'SampleStructureAnalyzer'
]
