"""
Small RNA-seq Input Loader
==========================

Reads the three delimited input tables of a Serum vs PAXgene run:

1. Read counts (long format: one row per sample/marker observation)
2. Sample metadata (one row per sample)
3. Marker metadata (one row per marker)
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

from ..errors import SchemaError, InvalidCountsError

logger = logging.getLogger(__name__)

COUNTS_COLUMNS = ['sample_id', 'marker_id', 'read_count']
SAMPLES_COLUMNS = ['sample_id', 'matrix_type', 'donor_id', 'replicate_id', 'study']
MARKERS_COLUMNS = ['marker_id', 'mapped_gene_type', 'mapped_gene_name']

# Identifier columns are kept as strings so "001" and "1" stay distinct
ID_COLUMNS = ['sample_id', 'marker_id', 'donor_id', 'replicate_id']


def infer_separator(path: Path) -> str:
    """Comma for .csv files, tab for everything else."""
    return ',' if path.suffix.lower() == '.csv' else '\t'


def read_table(
    path: str,
    required_columns: List[str],
    sep: Optional[str] = None
) -> pd.DataFrame:
    """
    Read a delimited table with a header row and check its columns.

    Parameters
    ----------
    path : str
        File to read
    required_columns : List[str]
        Columns that must be present in the header
    sep : str, optional
        Field separator; inferred from the extension when omitted

    Returns
    -------
    pd.DataFrame
        Table with pandas-inferred column types (identifiers as strings)

    Raises
    ------
    FileNotFoundError
        If the path does not exist
    SchemaError
        If any required column is absent
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input table not found: {path}")

    sep = sep or infer_separator(path)
    try:
        header = pd.read_csv(path, sep=sep, nrows=0).columns
    except pd.errors.EmptyDataError as e:
        raise SchemaError(
            f"No header in {path.name}; expected columns {required_columns}",
            columns=required_columns,
            source=str(path)
        ) from e

    # dtype keys must match the raw (possibly padded) header names
    dtypes = {raw: str for raw in header if raw.strip() in ID_COLUMNS}
    df = pd.read_csv(path, sep=sep, dtype=dtypes)
    df.columns = df.columns.str.strip()

    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise SchemaError(
            f"Missing required columns in {path.name}: {missing}",
            columns=missing,
            source=str(path)
        )

    logger.info(f"Read {len(df)} rows x {df.shape[1]} columns from {path.name}")
    return df


def coerce_read_counts(counts: pd.DataFrame, source: Optional[str] = None) -> pd.DataFrame:
    """
    Cast ``read_count`` to integers.

    Raises SchemaError for missing or non-numeric values and
    InvalidCountsError for negative or fractional ones.
    """
    counts = counts.copy()
    values = pd.to_numeric(counts['read_count'], errors='coerce')

    bad = values.isna()
    if bad.any():
        row = counts.loc[bad].iloc[0]
        raise SchemaError(
            f"Non-numeric or missing read_count for sample '{row['sample_id']}', "
            f"marker '{row['marker_id']}' ({int(bad.sum())} rows affected)",
            columns=['read_count'],
            source=source
        )

    negative = values < 0
    if negative.any():
        row = counts.loc[negative].iloc[0]
        raise InvalidCountsError(
            f"Negative read_count {values[negative].iloc[0]} for sample "
            f"'{row['sample_id']}', marker '{row['marker_id']}'",
            marker_id=row['marker_id'],
            sample_id=row['sample_id']
        )

    fractional = values != np.floor(values)
    if fractional.any():
        row = counts.loc[fractional].iloc[0]
        raise InvalidCountsError(
            f"Fractional read_count {values[fractional].iloc[0]} for sample "
            f"'{row['sample_id']}', marker '{row['marker_id']}'",
            marker_id=row['marker_id'],
            sample_id=row['sample_id']
        )

    counts['read_count'] = values.astype(np.int64)
    return counts


class SmallRNADataLoader:
    """Load the counts, sample and marker tables of a run."""

    def __init__(
        self,
        counts_file: str,
        samples_file: str,
        markers_file: str,
        sep: Optional[str] = None
    ):
        self.counts_file = Path(counts_file)
        self.samples_file = Path(samples_file)
        self.markers_file = Path(markers_file)
        self.sep = sep
        self.counts_df: Optional[pd.DataFrame] = None
        self.samples_df: Optional[pd.DataFrame] = None
        self.markers_df: Optional[pd.DataFrame] = None

    def load_counts(self) -> pd.DataFrame:
        """Load long-format read counts."""
        logger.info(f"Loading counts from {self.counts_file}")
        counts = read_table(self.counts_file, COUNTS_COLUMNS, self.sep)
        self.counts_df = coerce_read_counts(counts, source=str(self.counts_file))

        logger.info(f"Loaded {len(self.counts_df)} count records for "
                    f"{self.counts_df['sample_id'].nunique()} samples x "
                    f"{self.counts_df['marker_id'].nunique()} markers")
        return self.counts_df

    def load_samples(self) -> pd.DataFrame:
        """Load sample metadata."""
        logger.info(f"Loading sample metadata from {self.samples_file}")
        self.samples_df = read_table(self.samples_file, SAMPLES_COLUMNS, self.sep)

        logger.info(f"Matrix types: {self.samples_df['matrix_type'].value_counts().to_dict()}")
        return self.samples_df

    def load_markers(self) -> pd.DataFrame:
        """Load marker metadata."""
        logger.info(f"Loading marker metadata from {self.markers_file}")
        self.markers_df = read_table(self.markers_file, MARKERS_COLUMNS, self.sep)

        logger.info(f"Loaded {len(self.markers_df)} markers across "
                    f"{self.markers_df['mapped_gene_type'].nunique()} gene types")
        return self.markers_df

    def load_all(self) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
        """Load counts, samples and markers, in that order."""
        return self.load_counts(), self.load_samples(), self.load_markers()

    def summary(self) -> Dict[str, int]:
        """Row counts of whatever has been loaded so far."""
        tables = {
            'counts': self.counts_df,
            'samples': self.samples_df,
            'markers': self.markers_df,
        }
        return {name: len(df) for name, df in tables.items() if df is not None}
