"""
Marker lookup by explicit identifiers or gene names.
"""

from typing import Iterable, List, Optional, Tuple
import logging

import pandas as pd

from ..preprocessing.validation import QCWarning

logger = logging.getLogger(__name__)


def lookup_markers(
    results: pd.DataFrame,
    markers: pd.DataFrame,
    marker_ids: Optional[Iterable[str]] = None,
    gene_names: Optional[Iterable[str]] = None
) -> Tuple[pd.DataFrame, List[QCWarning]]:
    """
    Pull DE results for selected markers, annotated with marker metadata.

    Parameters
    ----------
    results : pd.DataFrame
        DE results indexed by marker_id
    markers : pd.DataFrame
        Marker metadata with ``marker_id`` and ``mapped_gene_name``
    marker_ids : Iterable[str], optional
        Markers requested by identifier
    gene_names : Iterable[str], optional
        Markers requested by mapped gene name (case-insensitive)

    Returns
    -------
    Tuple[pd.DataFrame, List[QCWarning]]
        Matching rows in request order, and one warning per identifier
        or name that matched nothing
    """
    marker_ids = [str(m) for m in (marker_ids or [])]
    gene_names = [str(g) for g in (gene_names or [])]
    warnings = []

    annotation = markers.drop_duplicates('marker_id').set_index('marker_id')
    annotated = results.join(annotation, how='left')

    selected = []
    for marker_id in marker_ids:
        if marker_id in annotated.index:
            selected.append(marker_id)
        else:
            warnings.append(QCWarning(
                code='unknown_marker',
                message=f"Marker '{marker_id}' not found in results",
                details={'marker_id': marker_id}
            ))

    names = annotated['mapped_gene_name'].astype(str).str.lower()
    for gene_name in gene_names:
        matches = annotated.index[names == gene_name.lower()].tolist()
        if matches:
            selected.extend(matches)
        else:
            warnings.append(QCWarning(
                code='unknown_gene',
                message=f"Gene '{gene_name}' not found in results",
                details={'gene_name': gene_name}
            ))

    for warning in warnings:
        logger.warning(warning.message)

    # Preserve request order, drop repeats
    selected = list(dict.fromkeys(selected))
    return annotated.loc[selected], warnings
