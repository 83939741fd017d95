"""
Counts Matrix Construction
==========================

Builds the marker x sample matrix consumed by the DE model and the ordered
sample table that must line up with its columns:

1. Mean read count per (marker, sample), zero filled
2. Sample metadata indexed and sorted by sample_id
3. Replicate labels made unique
4. Condition column cast to a two-level categorical
"""

from typing import Iterable, List, Optional
import logging

import numpy as np
import pandas as pd

from ..errors import SchemaError

logger = logging.getLogger(__name__)


def build_count_matrix(filtered: pd.DataFrame) -> pd.DataFrame:
    """
    Pivot joined observations into a marker x sample matrix.

    Repeated observations of the same marker in the same sample are
    averaged, not summed. Absent pairs are filled with 0 and both axes are
    sorted ascending, so identical input always gives an identical matrix.

    Parameters
    ----------
    filtered : pd.DataFrame
        Joined observations with ``marker_id``, ``sample_id``, ``read_count``

    Returns
    -------
    pd.DataFrame
        Mean read counts, index ``marker_id``, columns ``sample_id``
    """
    matrix = (
        filtered
        .groupby(['marker_id', 'sample_id'])['read_count']
        .mean()
        .unstack('sample_id', fill_value=0.0)
        .astype(float)
        .sort_index(axis=0)
        .sort_index(axis=1)
    )
    matrix.columns.name = 'sample_id'
    matrix.index.name = 'marker_id'

    logger.info(f"Counts matrix: {matrix.shape[0]} markers x {matrix.shape[1]} samples")
    return matrix


def make_unique(values: Iterable) -> List[str]:
    """
    Disambiguate repeated labels by suffixing ``.1``, ``.2``, ...

    The first occurrence keeps its label. Suffixes skip any label already
    present, so the output never contains a repeat.
    """
    values = [str(v) for v in values]
    taken = set(values)
    seen = set()
    counters = {}
    unique = []

    for value in values:
        if value not in seen:
            seen.add(value)
            unique.append(value)
            continue

        n = counters.get(value, 0)
        while True:
            n += 1
            candidate = f"{value}.{n}"
            if candidate not in taken:
                break
        counters[value] = n
        taken.add(candidate)
        unique.append(candidate)

    return unique


def align_metadata(
    samples: pd.DataFrame,
    condition: str = 'matrix_type',
    levels: Optional[List[str]] = None,
    reference: Optional[str] = None
) -> pd.DataFrame:
    """
    Order sample metadata for the DE model.

    Parameters
    ----------
    samples : pd.DataFrame
        Sample metadata with ``sample_id``, ``replicate_id`` and ``condition``
    condition : str
        Column defining the experimental groups
    levels : List[str], optional
        The two allowed condition values (default Serum, PAXgene)
    reference : str, optional
        Baseline level, placed first among the categories

    Returns
    -------
    pd.DataFrame
        Indexed by ``sample_id`` and sorted ascending, with unique
        ``replicate_id`` values and a categorical ``condition``
    """
    levels = list(levels or ['Serum', 'PAXgene'])
    reference = reference or levels[0]
    if reference not in levels:
        raise ValueError(f"Reference level '{reference}' not in {levels}")

    observed = set(samples[condition].dropna().astype(str))
    unexpected = sorted(observed - set(levels))
    if unexpected:
        raise SchemaError(
            f"Unexpected values in '{condition}': {unexpected} (allowed: {levels})",
            columns=[condition]
        )
    if samples[condition].isna().any():
        missing = samples.loc[samples[condition].isna(), 'sample_id'].tolist()
        raise SchemaError(f"Missing '{condition}' for samples: {missing[:10]}", columns=[condition])

    aligned = samples.set_index('sample_id').sort_index()

    replicates = make_unique(aligned['replicate_id'])
    n_renamed = int((pd.Series(replicates, index=aligned.index) != aligned['replicate_id'].astype(str)).sum())
    if n_renamed:
        logger.info(f"Renamed {n_renamed} repeated replicate_id values")
    aligned['replicate_id'] = replicates

    categories = [reference] + [level for level in levels if level != reference]
    aligned[condition] = pd.Categorical(aligned[condition].astype(str), categories=categories)

    logger.info(f"Aligned metadata for {len(aligned)} samples; reference level '{reference}'")
    return aligned


def restrict_to_samples(samples: pd.DataFrame, sample_ids: Iterable) -> pd.DataFrame:
    """Keep metadata rows whose ``sample_id`` is in ``sample_ids``."""
    sample_ids = set(sample_ids)
    keep = samples['sample_id'].isin(sample_ids)

    dropped = samples.loc[~keep, 'sample_id'].tolist()
    if dropped:
        logger.warning(f"Dropping {len(dropped)} samples without counts: {dropped[:10]}")

    return samples.loc[keep].copy()


def library_sizes(matrix: pd.DataFrame) -> pd.DataFrame:
    """
    Per-sample library statistics of a counts matrix.

    Parameters
    ----------
    matrix : pd.DataFrame
        Counts matrix (markers x samples)

    Returns
    -------
    pd.DataFrame
        Total counts, detected markers, mean and median count per sample
    """
    return pd.DataFrame({
        'sample_id': matrix.columns,
        'total_counts': matrix.sum(axis=0).values,
        'detected_markers': (matrix > 0).sum(axis=0).values,
        'mean_count': matrix.mean(axis=0).values,
        'median_count': matrix.median(axis=0).values
    })


def to_model_counts(matrix: pd.DataFrame) -> pd.DataFrame:
    """
    Transpose to samples x markers integer counts for the DE model.

    Averaged counts that are not whole numbers are rounded half to even.
    """
    rounded = np.rint(matrix.values)
    n_rounded = int((rounded != matrix.values).sum())
    if n_rounded:
        logger.info(f"Rounded {n_rounded} non-integer mean counts")

    counts = pd.DataFrame(rounded.astype(np.int64), index=matrix.index, columns=matrix.columns)
    return counts.T
