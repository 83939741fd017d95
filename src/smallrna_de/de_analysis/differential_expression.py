"""
Differential Expression Analysis
================================

Hands the aligned counts matrix and sample metadata to PyDESeq2:

1. Negative binomial GLM fit with dispersion shrinkage (DeseqDataSet)
2. Wald test for the condition contrast (DeseqStats)
3. Empirical-Bayes LFC shrinkage (apeGLM prior)
4. Optional re-adjustment of p-values with another correction method

The statistics are computed by PyDESeq2; this module only arranges its
inputs and collects its outputs.
"""

import pandas as pd
import numpy as np
from statsmodels.stats.multitest import multipletests
from pydeseq2.dds import DeseqDataSet
from pydeseq2.ds import DeseqStats
from pydeseq2.default_inference import DefaultInference
from typing import Optional, Dict
import logging

from ..preprocessing.consistency import check_alignment, check_count_values
from ..preprocessing.count_matrix import to_model_counts

logger = logging.getLogger(__name__)


class DEAnalysis:
    """Serum vs PAXgene differential expression with PyDESeq2."""

    def __init__(
        self,
        counts: pd.DataFrame,
        metadata: pd.DataFrame,
        condition_col: str = 'matrix_type',
        reference: str = 'Serum',
        test_level: str = 'PAXgene',
        n_cpus: Optional[int] = None
    ):
        """
        Initialize DE analysis.

        Parameters
        ----------
        counts : pd.DataFrame
            Counts matrix (markers x samples)
        metadata : pd.DataFrame
            Aligned sample metadata indexed by sample_id
        condition_col : str
            Column defining the two groups
        reference : str
            Baseline level (denominator of the fold change)
        test_level : str
            Level compared against the reference (numerator)
        n_cpus : int, optional
            Processes used by PyDESeq2

        Raises
        ------
        AlignmentError
            If matrix columns and metadata rows differ in content or order
        InvalidCountsError
            If the matrix holds NaN or negative counts
        """
        check_alignment(counts.columns, metadata.index, strict=True)
        check_count_values(counts)

        observed = set(metadata[condition_col].dropna().astype(str))
        missing_levels = {reference, test_level} - observed
        if missing_levels:
            raise ValueError(f"No samples for level(s) {sorted(missing_levels)} in '{condition_col}'")

        self.counts = counts
        self.metadata = metadata
        self.condition_col = condition_col
        self.reference = reference
        self.test_level = test_level
        self.inference = DefaultInference(n_cpus=n_cpus)

        self.dds = None
        self.stats = None

        logger.info(f"Initialized DE analysis with {counts.shape[1]} samples x {counts.shape[0]} markers")

    @property
    def design(self) -> str:
        return f"~{self.condition_col}"

    @property
    def contrast(self):
        return [self.condition_col, self.test_level, self.reference]

    def fit(self) -> DeseqDataSet:
        """Fit size factors, dispersions and LFCs."""
        logger.info(f"Fitting DESeq2 model with design {self.design}")

        self.dds = DeseqDataSet(
            counts=to_model_counts(self.counts),
            metadata=self.metadata,
            design=self.design,
            refit_cooks=True,
            inference=self.inference
        )
        self.dds.deseq2()

        logger.info("DESeq2 fit complete")
        return self.dds

    def _shrinkage_coeff(self) -> Optional[str]:
        """Design matrix column of the test level, if identifiable."""
        columns = list(self.dds.obsm['design_matrix'].columns)
        candidates = [c for c in columns if self.condition_col in c and self.test_level in c]
        return candidates[0] if candidates else None

    def results(
        self,
        alpha: float = 0.05,
        shrink: bool = True,
        padj_method: str = 'fdr_bh'
    ) -> pd.DataFrame:
        """
        Run the Wald test for the test level against the reference.

        Parameters
        ----------
        alpha : float
            Significance level used for independent filtering
        shrink : bool
            Add ``log2FoldChange_shrunk`` from LFC shrinkage
        padj_method : str
            ``fdr_bh`` keeps PyDESeq2's adjustment; any other
            statsmodels ``multipletests`` method recomputes padj

        Returns
        -------
        pd.DataFrame
            baseMean, log2FoldChange, lfcSE, stat, pvalue, padj
            (and log2FoldChange_shrunk) indexed by marker_id
        """
        if self.dds is None:
            self.fit()

        logger.info(f"Testing {self.test_level} vs {self.reference}")

        self.stats = DeseqStats(
            self.dds,
            contrast=self.contrast,
            alpha=alpha,
            inference=self.inference
        )
        self.stats.summary()
        results_df = self.stats.results_df.copy()

        if shrink:
            coeff = self._shrinkage_coeff()
            if coeff is None:
                logger.warning(f"No design coefficient for '{self.test_level}'; skipping LFC shrinkage")
            else:
                self.stats.lfc_shrink(coeff=coeff)
                results_df['log2FoldChange_shrunk'] = self.stats.results_df['log2FoldChange']
                results_df['lfcSE_shrunk'] = self.stats.results_df['lfcSE']

        if padj_method != 'fdr_bh':
            results_df['padj'] = adjust_pvalues(results_df['pvalue'], method=padj_method)

        results_df.index.name = 'marker_id'

        logger.info(f"Found {(results_df['padj'] < alpha).sum()} significant markers (padj < {alpha})")
        return results_df

    def normalized_counts(self) -> pd.DataFrame:
        """Size-factor normalized counts (markers x samples)."""
        if self.dds is None:
            self.fit()
        return self._layer('normed_counts')

    def vst_counts(self) -> pd.DataFrame:
        """Variance stabilized counts (markers x samples)."""
        if self.dds is None:
            self.fit()
        if 'vst_counts' not in self.dds.layers:
            self.dds.vst(use_design=False)
        return self._layer('vst_counts')

    def _layer(self, name: str) -> pd.DataFrame:
        layer = pd.DataFrame(
            np.asarray(self.dds.layers[name]),
            index=self.dds.obs_names,
            columns=self.dds.var_names
        ).T
        layer.index.name = 'marker_id'
        layer.columns.name = 'sample_id'
        return layer


def adjust_pvalues(pvalues: pd.Series, method: str = 'fdr_bh') -> pd.Series:
    """Multiple-testing correction over non-missing p-values; NaN stays NaN."""
    adjusted = pd.Series(np.nan, index=pvalues.index, dtype=float)
    tested = pvalues.notna()
    if tested.any():
        _, padj, _, _ = multipletests(pvalues[tested], method=method)
        adjusted[tested] = padj
    return adjusted


def get_top_genes(
    de_results: pd.DataFrame,
    n_top: int = 50,
    by: str = 'padj'
) -> pd.DataFrame:
    """Get top differentially expressed markers."""
    return de_results.sort_values(by, na_position='last').head(n_top)


def filter_significant(
    de_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    log2fc_threshold: float = 1.0,
    lfc_col: str = 'log2FoldChange'
) -> pd.DataFrame:
    """Filter for significant markers based on padj and |log2FC|."""
    mask = (
        (de_results['padj'] < padj_threshold) &
        (de_results[lfc_col].abs() > log2fc_threshold)
    )
    return de_results[mask]


def summarize_results(
    de_results: pd.DataFrame,
    alpha: float = 0.05,
    lfc_col: str = 'log2FoldChange'
) -> Dict[str, int]:
    """Counts of tested, significant, up- and down-regulated markers."""
    significant = de_results['padj'] < alpha
    return {
        'n_markers': int(len(de_results)),
        'n_tested': int(de_results['padj'].notna().sum()),
        'n_significant': int(significant.sum()),
        'n_up': int((significant & (de_results[lfc_col] > 0)).sum()),
        'n_down': int((significant & (de_results[lfc_col] < 0)).sum())
    }
