"""Tests for the PyDESeq2 adapter and result helpers.

Most tests replace the PyDESeq2 classes with mocks to cover how inputs are
arranged and how outputs are collected. TestDEAnalysisFit runs the real
model once on simulated counts.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from smallrna_de.errors import AlignmentError, InvalidCountsError
from smallrna_de.de_analysis.differential_expression import (
    DEAnalysis,
    adjust_pvalues,
    filter_significant,
    get_top_genes,
    summarize_results,
)
from smallrna_de.preprocessing.count_matrix import align_metadata, build_count_matrix
from smallrna_de.preprocessing.merging import filter_rrna, merge_tables

MODULE = "smallrna_de.de_analysis.differential_expression"


@pytest.fixture
def aligned_inputs(counts_df, samples_df, markers_df):
    matrix = build_count_matrix(filter_rrna(merge_tables(counts_df, samples_df, markers_df)))
    metadata = align_metadata(samples_df)
    return matrix, metadata


def _results_frame():
    return pd.DataFrame({
        "baseMean": [10.0, 20.0, 5.0],
        "log2FoldChange": [2.0, -1.5, 0.1],
        "lfcSE": [0.5, 0.4, 0.9],
        "stat": [4.0, -3.75, 0.11],
        "pvalue": [0.01, 0.02, np.nan],
        "padj": [0.03, 0.03, np.nan],
    }, index=["M1", "M2", "M3"])


def _mock_stats():
    stats = MagicMock()
    stats.results_df = _results_frame()

    def shrink(coeff):
        stats.results_df = stats.results_df.assign(
            log2FoldChange=stats.results_df["log2FoldChange"] / 2,
            lfcSE=stats.results_df["lfcSE"] / 2,
        )

    stats.lfc_shrink.side_effect = shrink
    return stats


def _mock_dds(matrix):
    dds = MagicMock()
    dds.obsm = {"design_matrix": pd.DataFrame(columns=["Intercept", "matrix_type[T.PAXgene]"])}
    dds.obs_names = list(matrix.columns)
    dds.var_names = list(matrix.index)
    dds.layers = {"normed_counts": matrix.T.values * 2}
    return dds


class TestDEAnalysisInit:

    def test_misordered_metadata_rejected(self, aligned_inputs):
        """Model never sees metadata in a different order than the matrix."""
        matrix, metadata = aligned_inputs
        with pytest.raises(AlignmentError):
            DEAnalysis(matrix, metadata.iloc[::-1])

    def test_missing_sample_rejected(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        with pytest.raises(AlignmentError):
            DEAnalysis(matrix, metadata.drop("S4"))

    def test_invalid_counts_rejected(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        matrix = matrix.copy()
        matrix.iloc[0, 0] = np.nan
        with pytest.raises(InvalidCountsError):
            DEAnalysis(matrix, metadata)

    def test_level_without_samples(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        with pytest.raises(ValueError, match="Plasma"):
            DEAnalysis(matrix, metadata, test_level="Plasma")

    def test_contrast_and_design(self, aligned_inputs):
        de = DEAnalysis(*aligned_inputs)
        assert de.design == "~matrix_type"
        assert de.contrast == ["matrix_type", "PAXgene", "Serum"]


class TestDEAnalysisResults:

    def test_fit_passes_samples_by_markers(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        with patch(f"{MODULE}.DeseqDataSet") as dds_cls:
            dds_cls.return_value = _mock_dds(matrix)
            de = DEAnalysis(matrix, metadata)
            de.fit()

        kwargs = dds_cls.call_args.kwargs
        assert list(kwargs["counts"].index) == list(metadata.index)
        assert list(kwargs["counts"].columns) == list(matrix.index)
        assert kwargs["counts"].loc["S1", "M1"] == 6
        assert kwargs["design"] == "~matrix_type"
        dds_cls.return_value.deseq2.assert_called_once()

    def test_results_with_shrinkage(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        stats = _mock_stats()
        with patch(f"{MODULE}.DeseqDataSet") as dds_cls, \
                patch(f"{MODULE}.DeseqStats", return_value=stats) as stats_cls:
            dds_cls.return_value = _mock_dds(matrix)
            results = DEAnalysis(matrix, metadata).results(alpha=0.05)

        assert stats_cls.call_args.kwargs["contrast"] == ["matrix_type", "PAXgene", "Serum"]
        stats.lfc_shrink.assert_called_once_with(coeff="matrix_type[T.PAXgene]")
        assert list(results["log2FoldChange"]) == [2.0, -1.5, 0.1]
        assert list(results["log2FoldChange_shrunk"]) == [1.0, -0.75, 0.05]
        assert results.index.name == "marker_id"

    def test_results_without_shrinkage(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        stats = _mock_stats()
        with patch(f"{MODULE}.DeseqDataSet") as dds_cls, \
                patch(f"{MODULE}.DeseqStats", return_value=stats):
            dds_cls.return_value = _mock_dds(matrix)
            results = DEAnalysis(matrix, metadata).results(shrink=False)

        stats.lfc_shrink.assert_not_called()
        assert "log2FoldChange_shrunk" not in results.columns

    def test_unknown_coefficient_skips_shrinkage(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        dds = _mock_dds(matrix)
        dds.obsm = {"design_matrix": pd.DataFrame(columns=["Intercept"])}
        stats = _mock_stats()
        with patch(f"{MODULE}.DeseqDataSet", return_value=dds), \
                patch(f"{MODULE}.DeseqStats", return_value=stats):
            results = DEAnalysis(matrix, metadata).results()

        stats.lfc_shrink.assert_not_called()
        assert "log2FoldChange_shrunk" not in results.columns

    def test_alternative_padj_method(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        with patch(f"{MODULE}.DeseqDataSet") as dds_cls, \
                patch(f"{MODULE}.DeseqStats", return_value=_mock_stats()):
            dds_cls.return_value = _mock_dds(matrix)
            results = DEAnalysis(matrix, metadata).results(shrink=False, padj_method="bonferroni")

        assert results["padj"].iloc[:2].tolist() == pytest.approx([0.02, 0.04])
        assert np.isnan(results["padj"].iloc[2])

    def test_normalized_counts_orientation(self, aligned_inputs):
        matrix, metadata = aligned_inputs
        with patch(f"{MODULE}.DeseqDataSet") as dds_cls:
            dds_cls.return_value = _mock_dds(matrix)
            normed = DEAnalysis(matrix, metadata).normalized_counts()

        assert list(normed.index) == list(matrix.index)
        assert list(normed.columns) == list(matrix.columns)
        assert normed.loc["M1", "S1"] == 12.0


@pytest.fixture
def simulated_inputs():
    """8 samples x 40 markers of negative binomial counts; M01-M05 up in PAXgene."""
    rng = np.random.default_rng(7)
    sample_ids = [f"S{i:02d}" for i in range(1, 9)]
    marker_ids = [f"M{i:02d}" for i in range(1, 41)]
    paxgene = np.array([i % 2 == 1 for i in range(8)])

    means = rng.uniform(50, 500, size=(40, 1)) * np.ones((1, 8))
    means[:5, paxgene] *= 4
    # numpy parameterises NB by (n, p); dispersion 0.1 gives n = 10
    counts = rng.negative_binomial(10, 10 / (10 + means))

    matrix = pd.DataFrame(
        counts.astype(float),
        index=pd.Index(marker_ids, name="marker_id"),
        columns=pd.Index(sample_ids, name="sample_id"),
    )
    samples = pd.DataFrame({
        "sample_id": sample_ids,
        "matrix_type": np.where(paxgene, "PAXgene", "Serum"),
        "donor_id": [f"D{i // 2}" for i in range(8)],
        "replicate_id": ["R1"] * 8,
        "study": "sim",
    })
    return matrix, align_metadata(samples)


class TestDEAnalysisFit:
    """Fits the real PyDESeq2 model on a small simulated dataset."""

    def test_results_and_transforms(self, simulated_inputs):
        matrix, metadata = simulated_inputs
        de = DEAnalysis(matrix, metadata, n_cpus=1)
        results = de.results(alpha=0.05, shrink=True)

        assert "matrix_type[T.PAXgene]" in de.dds.obsm["design_matrix"].columns
        assert list(results.index) == list(matrix.index)
        for col in ["baseMean", "log2FoldChange", "pvalue", "padj", "log2FoldChange_shrunk"]:
            assert col in results.columns
        # PAXgene / Serum orientation: the boosted markers come out positive
        assert (results.loc["M01":"M05", "log2FoldChange"] > 0).all()

        vst = de.vst_counts()
        assert vst.shape == (40, 8)
        assert list(vst.columns) == list(matrix.columns)
        assert de.normalized_counts().shape == (40, 8)


class TestResultHelpers:

    def test_adjust_pvalues_keeps_nan(self):
        pvalues = pd.Series([0.01, np.nan, 0.04], index=["a", "b", "c"])
        adjusted = adjust_pvalues(pvalues, method="bonferroni")

        assert adjusted["a"] == pytest.approx(0.02)
        assert adjusted["c"] == pytest.approx(0.08)
        assert np.isnan(adjusted["b"])

    def test_filter_significant(self):
        sig = filter_significant(_results_frame(), padj_threshold=0.05, log2fc_threshold=1.0)
        assert list(sig.index) == ["M1", "M2"]

        sig = filter_significant(_results_frame(), padj_threshold=0.05, log2fc_threshold=1.8)
        assert list(sig.index) == ["M1"]

    def test_top_genes_nan_last(self):
        results = _results_frame()
        results.loc["M1", "padj"] = 0.5
        top = get_top_genes(results, n_top=3)
        assert list(top.index) == ["M2", "M1", "M3"]

    def test_summarize_results(self):
        summary = summarize_results(_results_frame(), alpha=0.05)
        assert summary == {
            "n_markers": 3,
            "n_tested": 2,
            "n_significant": 2,
            "n_up": 1,
            "n_down": 1,
        }
