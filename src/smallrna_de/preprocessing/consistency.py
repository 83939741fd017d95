"""
Checks that the counts matrix and sample metadata correspond before the
DE model sees them. A mismatch here silently invalidates the design, so
failures are fatal unless ``strict=False`` is requested.
"""

from collections import Counter
from typing import List, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from ..errors import AlignmentError, InvalidCountsError
from .validation import QCWarning

logger = logging.getLogger(__name__)


def check_labels_match(matrix_columns: Sequence, metadata_rows: Sequence) -> bool:
    """True if both sides hold the same set of labels, ignoring order."""
    return set(matrix_columns) == set(metadata_rows)


def check_labels_ordered(matrix_columns: Sequence, metadata_rows: Sequence) -> bool:
    """True if both sides hold the same labels at every position."""
    matrix_columns = list(matrix_columns)
    metadata_rows = list(metadata_rows)
    return len(matrix_columns) == len(metadata_rows) and all(
        a == b for a, b in zip(matrix_columns, metadata_rows)
    )


def _first_unmatched(matrix_columns: List, metadata_rows: List) -> Tuple[str, tuple]:
    """Describe the first label that breaks correspondence, and name it."""
    column_counts, row_counts = Counter(matrix_columns), Counter(metadata_rows)
    only_matrix = [label for label in matrix_columns if label not in row_counts]
    if only_matrix:
        return f"'{only_matrix[0]}' is a matrix column with no metadata row", (only_matrix[0],)
    only_metadata = [label for label in metadata_rows if label not in column_counts]
    if only_metadata:
        return f"'{only_metadata[0]}' is a metadata row with no matrix column", (only_metadata[0],)

    repeated = [label for label in list(dict.fromkeys(matrix_columns + metadata_rows))
                if column_counts[label] != row_counts[label]]
    label = repeated[0]
    return (f"'{label}' appears {column_counts[label]} time(s) in matrix columns vs "
            f"{row_counts[label]} in metadata rows (repeated sample_id)"), tuple(repeated)


def check_alignment(
    matrix_columns: Sequence,
    metadata_rows: Sequence,
    strict: bool = True
) -> List[QCWarning]:
    """
    Require matrix columns and metadata rows to agree in content and order.

    Parameters
    ----------
    matrix_columns : Sequence
        Sample labels of the counts matrix columns
    metadata_rows : Sequence
        Sample labels of the metadata rows
    strict : bool
        Raise AlignmentError on mismatch; otherwise log and return warnings

    Returns
    -------
    List[QCWarning]
        Empty when aligned; mismatch warnings when ``strict`` is False

    Raises
    ------
    AlignmentError
        On the first mismatch when ``strict`` is True
    """
    matrix_columns = list(matrix_columns)
    metadata_rows = list(metadata_rows)
    warnings = []

    if Counter(matrix_columns) != Counter(metadata_rows):
        detail, labels = _first_unmatched(matrix_columns, metadata_rows)
        message = f"Sample labels differ: {detail}"
        if strict:
            raise AlignmentError(message, labels=labels)
        logger.warning(message)
        warnings.append(QCWarning(
            code='labels_mismatch',
            message=message,
            details={'labels': list(labels)}
        ))

    elif not check_labels_ordered(matrix_columns, metadata_rows):
        position = next(i for i, (a, b) in enumerate(zip(matrix_columns, metadata_rows)) if a != b)
        labels = (matrix_columns[position], metadata_rows[position])
        message = (f"Sample order differs at position {position}: "
                   f"matrix column '{labels[0]}' vs metadata row '{labels[1]}'")
        if strict:
            raise AlignmentError(message, position=position, labels=labels)
        logger.warning(message)
        warnings.append(QCWarning(
            code='labels_unordered',
            message=message,
            details={'position': position, 'labels': list(labels)}
        ))

    else:
        logger.info(f"Matrix columns and metadata rows aligned ({len(matrix_columns)} samples)")

    return warnings


def check_count_values(matrix: pd.DataFrame) -> None:
    """Raise InvalidCountsError naming the first NaN or negative cell."""
    values = matrix.values.astype(float)
    bad = np.isnan(values) | (values < 0)
    if not bad.any():
        return

    row, col = np.argwhere(bad)[0]
    marker_id, sample_id = matrix.index[row], matrix.columns[col]
    raise InvalidCountsError(
        f"Invalid count {values[row, col]} for marker '{marker_id}' in sample '{sample_id}' "
        f"({int(bad.sum())} invalid cells)",
        marker_id=marker_id,
        sample_id=sample_id
    )
