"""
Preprocessing module for small RNA-seq DE analysis.
"""

from .data_loader import SmallRNADataLoader, read_table
from .validation import (
    QCWarning,
    ValidationReport,
    check_unique,
    rrna_fraction,
    check_rrna_contamination,
    validate_inputs
)
from .merging import merge_tables, filter_rrna
from .count_matrix import (
    build_count_matrix,
    align_metadata,
    make_unique,
    restrict_to_samples,
    library_sizes,
    to_model_counts
)
from .consistency import (
    check_labels_match,
    check_labels_ordered,
    check_alignment,
    check_count_values
)

__all__ = [
    'SmallRNADataLoader',
    'read_table',
    'QCWarning',
    'ValidationReport',
    'check_unique',
    'rrna_fraction',
    'check_rrna_contamination',
    'validate_inputs',
    'merge_tables',
    'filter_rrna',
    'build_count_matrix',
    'align_metadata',
    'make_unique',
    'restrict_to_samples',
    'library_sizes',
    'to_model_counts',
    'check_labels_match',
    'check_labels_ordered',
    'check_alignment',
    'check_count_values'
]
