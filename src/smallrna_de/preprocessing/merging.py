"""
Join the counts, sample and marker tables and drop ribosomal RNA.
"""

import logging

import pandas as pd

logger = logging.getLogger(__name__)


def merge_tables(
    counts: pd.DataFrame,
    samples: pd.DataFrame,
    markers: pd.DataFrame
) -> pd.DataFrame:
    """
    Inner-join counts with sample metadata on ``sample_id`` and marker
    metadata on ``marker_id``.

    Count rows whose sample or marker is missing from the metadata are
    dropped; the number dropped is logged.

    Parameters
    ----------
    counts : pd.DataFrame
        Long-format read counts
    samples : pd.DataFrame
        Sample metadata
    markers : pd.DataFrame
        Marker metadata

    Returns
    -------
    pd.DataFrame
        Joined observations, one row per surviving count record
    """
    joined = (
        counts
        .merge(samples, on='sample_id', how='inner')
        .merge(markers, on='marker_id', how='inner')
    )

    n_dropped = len(counts) - len(joined)
    if n_dropped > 0:
        unknown_samples = set(counts['sample_id']) - set(samples['sample_id'])
        unknown_markers = set(counts['marker_id']) - set(markers['marker_id'])
        logger.info(f"Inner join dropped {n_dropped} count rows "
                    f"({len(unknown_samples)} samples, {len(unknown_markers)} markers without metadata)")

    logger.info(f"Joined table: {len(joined)} rows")
    return joined


def filter_rrna(
    joined: pd.DataFrame,
    rrna_label: str = 'R_RNA',
    type_column: str = 'mapped_gene_type'
) -> pd.DataFrame:
    """Keep rows whose ``type_column`` differs from ``rrna_label``."""
    keep = joined[type_column] != rrna_label
    filtered = joined.loc[keep].copy()

    logger.info(f"Removed {int((~keep).sum())} {rrna_label} rows: {len(joined)} -> {len(filtered)}")
    return filtered
