"""
Input validation for the small RNA DE pipeline.

Checks here are advisory by default: they return structured warnings for the
caller to surface rather than stopping the run.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import logging

import pandas as pd

from ..errors import DuplicateKeyError

logger = logging.getLogger(__name__)

RRNA_THRESHOLD = 10.0


@dataclass
class QCWarning:
    """Advisory condition found while checking inputs."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationReport:
    """Outcome of validate_inputs."""
    duplicate_samples: List[str] = field(default_factory=list)
    duplicate_markers: List[str] = field(default_factory=list)
    warnings: List[QCWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.duplicate_samples or self.duplicate_markers)


def check_unique(table: pd.DataFrame, key_column: str, strict: bool = False) -> List:
    """
    Return the values of ``key_column`` that occur more than once.

    Each duplicated value is listed once, in order of first appearance.
    An empty list means every key is distinct.

    Parameters
    ----------
    table : pd.DataFrame
        Table to check
    key_column : str
        Identifier column
    strict : bool
        Raise DuplicateKeyError instead of only reporting

    Returns
    -------
    list
        Duplicated keys
    """
    keys = table[key_column]
    duplicates = keys[keys.duplicated(keep='first')].drop_duplicates().tolist()

    if duplicates:
        logger.warning(f"{len(duplicates)} duplicated value(s) in '{key_column}': {duplicates[:10]}")
        if strict:
            raise DuplicateKeyError(key_column, duplicates)

    return duplicates


def rrna_fraction(joined: pd.DataFrame, type_column: str, rrna_label: str) -> float:
    """Percentage (0-100) of rows whose ``type_column`` equals ``rrna_label``."""
    if len(joined) == 0:
        return 0.0
    return float((joined[type_column] == rrna_label).sum() / len(joined) * 100)


def check_rrna_contamination(
    joined: pd.DataFrame,
    type_column: str = 'mapped_gene_type',
    rrna_label: str = 'R_RNA',
    threshold: float = RRNA_THRESHOLD
) -> Optional[QCWarning]:
    """
    Warn when the rRNA share of the joined table exceeds ``threshold`` percent.

    Returns
    -------
    QCWarning or None
        Warning when the fraction is strictly above the threshold
    """
    fraction = rrna_fraction(joined, type_column, rrna_label)
    logger.info(f"rRNA fraction: {fraction:.2f}% of {len(joined)} rows")

    if fraction > threshold:
        message = (f"rRNA contamination {fraction:.2f}% exceeds {threshold:.1f}% "
                   f"({rrna_label} in '{type_column}')")
        logger.warning(message)
        return QCWarning(
            code='rrna_contamination',
            message=message,
            details={'fraction': fraction, 'threshold': threshold, 'label': rrna_label}
        )
    return None


def validate_inputs(
    samples: pd.DataFrame,
    markers: pd.DataFrame,
    strict: bool = False
) -> ValidationReport:
    """
    Check sample and marker identifiers for duplicates.

    Parameters
    ----------
    samples : pd.DataFrame
        Sample metadata with ``sample_id``
    markers : pd.DataFrame
        Marker metadata with ``marker_id``
    strict : bool
        Raise DuplicateKeyError on the first table with duplicates

    Returns
    -------
    ValidationReport
        Duplicates per table plus a warning for each affected table
    """
    report = ValidationReport()
    report.duplicate_samples = check_unique(samples, 'sample_id', strict=strict)
    report.duplicate_markers = check_unique(markers, 'marker_id', strict=strict)

    for column, keys in [('sample_id', report.duplicate_samples),
                         ('marker_id', report.duplicate_markers)]:
        if keys:
            report.warnings.append(QCWarning(
                code='duplicate_keys',
                message=f"{len(keys)} duplicated value(s) in '{column}'",
                details={'column': column, 'keys': keys}
            ))

    if report.ok:
        logger.info("Sample and marker identifiers are unique")

    return report
