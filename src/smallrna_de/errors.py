"""
Error types for the small RNA DE pipeline.

Missing or unreadable input files surface as the built-in ``OSError``
family and are not wrapped here.
"""

from typing import List, Optional


class SmallRNADEError(Exception):
    """Base class for pipeline errors."""


class SchemaError(SmallRNADEError, ValueError):
    """Expected column absent or column content of the wrong type."""

    def __init__(self, message: str, columns: Optional[List[str]] = None, source: Optional[str] = None):
        super().__init__(message)
        self.columns = list(columns or [])
        self.source = source


class DuplicateKeyError(SmallRNADEError, ValueError):
    """Identifier column contains repeated values."""

    def __init__(self, column: str, keys: List[str]):
        self.column = column
        self.keys = list(keys)
        preview = ', '.join(str(k) for k in self.keys[:5])
        super().__init__(f"Duplicate values in '{column}': {preview}"
                         f"{' ...' if len(self.keys) > 5 else ''}")


class AlignmentError(SmallRNADEError, ValueError):
    """Counts matrix columns and metadata rows do not correspond."""

    def __init__(self, message: str, position: Optional[int] = None, labels: Optional[tuple] = None):
        super().__init__(message)
        self.position = position
        self.labels = labels


class InvalidCountsError(SmallRNADEError, ValueError):
    """Negative or missing read counts."""

    def __init__(self, message: str, marker_id: Optional[str] = None, sample_id: Optional[str] = None):
        super().__init__(message)
        self.marker_id = marker_id
        self.sample_id = sample_id
