"""
Serum vs PAXgene Small RNA Pipeline
===================================

Orchestrates:
1. Data loading
2. Input validation (duplicates, rRNA contamination)
3. Merging and rRNA filtering
4. Counts matrix and metadata alignment
5. Consistency checks
6. Differential expression analysis
7. Sample structure (PCA, sample distances)
8. Marker lookup

Usage:
    smallrna-de --config configs/config.yaml
"""

import argparse
import json
import logging
from datetime import datetime
from typing import List, Optional

import pandas as pd

from .config import AnalysisConfig, load_config
from .preprocessing.data_loader import SmallRNADataLoader
from .preprocessing.validation import QCWarning, validate_inputs, check_rrna_contamination, rrna_fraction
from .preprocessing.merging import merge_tables, filter_rrna
from .preprocessing.count_matrix import (
    build_count_matrix,
    align_metadata,
    restrict_to_samples,
    library_sizes
)
from .preprocessing.consistency import check_alignment, check_count_values
from .de_analysis.differential_expression import (
    DEAnalysis,
    filter_significant,
    get_top_genes,
    summarize_results
)
from .de_analysis.lookup import lookup_markers
from .de_analysis.sample_structure import SampleStructureAnalyzer

logger = logging.getLogger(__name__)


class SmallRNADEPipeline:
    """Complete Serum vs PAXgene DE pipeline."""

    def __init__(self, config: AnalysisConfig):
        """
        Initialize pipeline with configuration.

        Parameters
        ----------
        config : AnalysisConfig
            Parsed configuration (see ``load_config``)
        """
        self.config = config
        self.results_dir = config.resolve(config.results_dir)

        # Initialize containers
        self.counts = None
        self.samples = None
        self.markers = None
        self.joined = None
        self.filtered = None
        self.count_matrix = None
        self.metadata = None
        self.de = None
        self.de_results = None
        self.pca_scores = None
        self.lookup_results = None
        self.input_rows = {}
        self.warnings: List[QCWarning] = []

        logger.info(f"Initialized pipeline for: {config.project_name}")

    def step1_load_data(self):
        """Load counts, sample and marker tables."""
        logger.info("=== Step 1: Loading Data ===")

        loader = SmallRNADataLoader(
            str(self.config.resolve(self.config.counts_file)),
            str(self.config.resolve(self.config.samples_file)),
            str(self.config.resolve(self.config.markers_file)),
            sep=self.config.sep
        )
        self.counts, self.samples, self.markers = loader.load_all()
        self.input_rows = loader.summary()
        logger.info(f"Input rows: {self.input_rows}")

        return self.counts, self.samples, self.markers

    def step2_validate(self):
        """Check identifier uniqueness."""
        logger.info("=== Step 2: Validating Inputs ===")

        if self.samples is None:
            self.step1_load_data()

        report = validate_inputs(self.samples, self.markers, strict=self.config.strict_duplicates)
        self.warnings.extend(report.warnings)

        return report

    def step3_merge_and_filter(self):
        """Join tables, report rRNA share and drop rRNA rows."""
        logger.info("=== Step 3: Merging and rRNA Filtering ===")

        if self.samples is None:
            self.step1_load_data()

        self.joined = merge_tables(self.counts, self.samples, self.markers)

        warning = check_rrna_contamination(
            self.joined,
            type_column=self.config.rrna_type_column,
            rrna_label=self.config.rrna_label,
            threshold=self.config.rrna_threshold
        )
        if warning is not None:
            self.warnings.append(warning)

        self.filtered = filter_rrna(
            self.joined,
            rrna_label=self.config.rrna_label,
            type_column=self.config.rrna_type_column
        )

        return self.filtered

    def step4_build_matrix(self):
        """Build the counts matrix and the ordered sample table."""
        logger.info("=== Step 4: Building Counts Matrix ===")

        if self.filtered is None:
            self.step3_merge_and_filter()

        self.count_matrix = build_count_matrix(self.filtered)

        samples = restrict_to_samples(self.samples, self.count_matrix.columns)
        self.metadata = align_metadata(
            samples,
            condition=self.config.condition,
            levels=self.config.levels,
            reference=self.config.reference
        )

        return self.count_matrix, self.metadata

    def step5_check_consistency(self):
        """Verify matrix and metadata line up before model fitting."""
        logger.info("=== Step 5: Consistency Checks ===")

        if self.count_matrix is None:
            self.step4_build_matrix()

        check_count_values(self.count_matrix)
        warnings = check_alignment(
            self.count_matrix.columns,
            self.metadata.index,
            strict=self.config.strict_alignment
        )
        self.warnings.extend(warnings)

        return warnings

    def step6_differential_expression(self):
        """Run differential expression analysis."""
        logger.info("=== Step 6: Differential Expression Analysis ===")

        if self.count_matrix is None:
            self.step5_check_consistency()

        self.de = DEAnalysis(
            self.count_matrix,
            self.metadata,
            condition_col=self.config.condition,
            reference=self.config.reference,
            test_level=self.config.test_level,
            n_cpus=self.config.n_cpus
        )
        self.de_results = self.de.results(
            alpha=self.config.alpha,
            shrink=self.config.shrink,
            padj_method=self.config.padj_method
        )

        summary = summarize_results(self.de_results, alpha=self.config.alpha)
        logger.info(f"DE summary: {summary}")

        return self.de_results

    def step7_sample_structure(self):
        """PCA and sample distances on variance stabilized counts."""
        logger.info("=== Step 7: Sample Structure ===")

        if self.de is None:
            self.step6_differential_expression()

        analyzer = SampleStructureAnalyzer(self.de.vst_counts(), self.metadata)
        self.pca_scores, variance = analyzer.pca_analysis(n_components=2)
        distances = analyzer.sample_distances()

        return self.pca_scores, variance, distances

    def step8_lookup(self, marker_ids: Optional[List[str]] = None, gene_names: Optional[List[str]] = None):
        """Look up DE results for configured or given markers."""
        logger.info("=== Step 8: Marker Lookup ===")

        if self.de_results is None:
            self.step6_differential_expression()

        marker_ids = marker_ids if marker_ids is not None else self.config.lookup_marker_ids
        gene_names = gene_names if gene_names is not None else self.config.lookup_gene_names

        self.lookup_results, warnings = lookup_markers(
            self.de_results, self.markers, marker_ids=marker_ids, gene_names=gene_names
        )
        self.warnings.extend(warnings)

        return self.lookup_results

    def run_full_pipeline(self):
        """Run the complete analysis pipeline."""
        logger.info("=" * 60)
        logger.info("Starting Serum vs PAXgene Small RNA DE Pipeline")
        logger.info("=" * 60)

        start_time = datetime.now()

        self.step1_load_data()
        self.step2_validate()
        self.step3_merge_and_filter()
        self.step4_build_matrix()
        self.step5_check_consistency()
        self.step6_differential_expression()
        _, _, distances = self.step7_sample_structure()
        self.step8_lookup()

        self._save_outputs(distances)

        duration = datetime.now() - start_time
        logger.info("=" * 60)
        logger.info(f"Pipeline completed in {duration}")
        logger.info(f"Results saved to: {self.results_dir}")
        logger.info("=" * 60)

        self._generate_summary_report()

        return self.de_results

    def _save_outputs(self, distances: pd.DataFrame):
        self.results_dir.mkdir(parents=True, exist_ok=True)

        self.count_matrix.to_csv(self.results_dir / "count_matrix.csv")
        library_sizes(self.count_matrix).to_csv(self.results_dir / "library_sizes.csv", index=False)
        self.de_results.to_csv(self.results_dir / "de_results.csv")

        lfc_col = 'log2FoldChange_shrunk' if 'log2FoldChange_shrunk' in self.de_results else 'log2FoldChange'
        filter_significant(
            self.de_results,
            padj_threshold=self.config.padj_threshold,
            log2fc_threshold=self.config.log2fc_threshold,
            lfc_col=lfc_col
        ).to_csv(self.results_dir / "significant_markers.csv")

        self.pca_scores.to_csv(self.results_dir / "pca_scores.csv")
        distances.to_csv(self.results_dir / "sample_distances.csv")
        if self.lookup_results is not None and len(self.lookup_results):
            self.lookup_results.to_csv(self.results_dir / "marker_lookup.csv")

    def _generate_summary_report(self):
        """Write a JSON summary of the run, including every QC warning."""
        summary = {
            'project': self.config.project_name,
            'date': datetime.now().isoformat(),
            'contrast': f"{self.config.test_level} vs {self.config.reference}",
            'data': {
                'input_rows': self.input_rows,
                'count_records': len(self.counts) if self.counts is not None else None,
                'joined_rows': len(self.joined) if self.joined is not None else None,
                'rrna_pct': rrna_fraction(
                    self.joined, self.config.rrna_type_column, self.config.rrna_label
                ) if self.joined is not None else None,
                'markers': self.count_matrix.shape[0] if self.count_matrix is not None else None,
                'samples': self.count_matrix.shape[1] if self.count_matrix is not None else None
            },
            'de_analysis': summarize_results(
                self.de_results, alpha=self.config.alpha
            ) if self.de_results is not None else None,
            'top_markers': get_top_genes(
                self.de_results, n_top=10
            ).index.tolist() if self.de_results is not None else None,
            'warnings': [w.to_dict() for w in self.warnings]
        }

        self.results_dir.mkdir(parents=True, exist_ok=True)
        with open(self.results_dir / "pipeline_summary.json", 'w') as f:
            json.dump(summary, f, indent=2, default=str)

        return summary


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Serum vs PAXgene small RNA DE pipeline')
    parser.add_argument(
        '--config',
        type=str,
        default='configs/config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--step',
        type=str,
        choices=['all', 'load', 'validate', 'merge', 'matrix', 'check', 'de', 'structure', 'lookup'],
        default='all',
        help='Pipeline step to run'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    pipeline = SmallRNADEPipeline(load_config(args.config))

    steps = {
        'load': pipeline.step1_load_data,
        'validate': pipeline.step2_validate,
        'merge': pipeline.step3_merge_and_filter,
        'matrix': pipeline.step4_build_matrix,
        'check': pipeline.step5_check_consistency,
        'de': pipeline.step6_differential_expression,
        'structure': pipeline.step7_sample_structure,
        'lookup': pipeline.step8_lookup
    }

    if args.step == 'all':
        pipeline.run_full_pipeline()
    else:
        steps[args.step]()


if __name__ == "__main__":
    main()
