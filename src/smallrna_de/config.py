"""
Analysis configuration loaded from YAML.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any
import logging

import yaml

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Settings for one pipeline run."""

    project_name: str = "Serum vs PAXgene small RNA"
    project_root: Path = field(default_factory=Path.cwd)

    # Inputs
    counts_file: Optional[str] = None
    samples_file: Optional[str] = None
    markers_file: Optional[str] = None
    sep: Optional[str] = None

    # QC
    rrna_label: str = "R_RNA"
    rrna_type_column: str = "mapped_gene_type"
    rrna_threshold: float = 10.0
    strict_duplicates: bool = False
    strict_alignment: bool = True

    # Design
    condition: str = "matrix_type"
    levels: List[str] = field(default_factory=lambda: ["Serum", "PAXgene"])
    reference: str = "Serum"

    # DE
    alpha: float = 0.05
    padj_threshold: float = 0.05
    log2fc_threshold: float = 1.0
    shrink: bool = True
    padj_method: str = "fdr_bh"
    n_cpus: Optional[int] = None

    # Output
    results_dir: str = "results"

    # Lookup
    lookup_marker_ids: List[str] = field(default_factory=list)
    lookup_gene_names: List[str] = field(default_factory=list)

    def __post_init__(self):
        if len(self.levels) != 2:
            raise ValueError(f"Design needs exactly two levels, got {self.levels}")
        if self.reference not in self.levels:
            raise ValueError(f"Reference level '{self.reference}' not in levels {self.levels}")

    @property
    def test_level(self) -> str:
        """The non-reference level of the condition."""
        return next(level for level in self.levels if level != self.reference)

    def resolve(self, path: Optional[str]) -> Optional[Path]:
        """Resolve a configured path against the project root."""
        if path is None:
            return None
        path = Path(path)
        return path if path.is_absolute() else self.project_root / path

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], project_root: Optional[Path] = None) -> "AnalysisConfig":
        project = raw.get('project', {}) or {}
        data = raw.get('data', {}) or {}
        qc = raw.get('qc', {}) or {}
        design = raw.get('design', {}) or {}
        de = raw.get('de_analysis', {}) or {}
        thresholds = de.get('thresholds', {}) or {}
        output = raw.get('output', {}) or {}
        lookup = raw.get('lookup', {}) or {}

        defaults = cls()
        return cls(
            project_name=project.get('name', defaults.project_name),
            project_root=Path(project_root) if project_root is not None else defaults.project_root,
            counts_file=data.get('counts'),
            samples_file=data.get('samples'),
            markers_file=data.get('markers'),
            sep=data.get('sep'),
            rrna_label=qc.get('rrna_label', defaults.rrna_label),
            rrna_type_column=qc.get('rrna_type_column', defaults.rrna_type_column),
            rrna_threshold=float(qc.get('rrna_threshold', defaults.rrna_threshold)),
            strict_duplicates=bool(qc.get('strict_duplicates', defaults.strict_duplicates)),
            strict_alignment=bool(qc.get('strict_alignment', defaults.strict_alignment)),
            condition=design.get('condition', defaults.condition),
            levels=list(design.get('levels', defaults.levels)),
            reference=design.get('reference', defaults.reference),
            alpha=float(de.get('alpha', defaults.alpha)),
            padj_threshold=float(thresholds.get('padj', defaults.padj_threshold)),
            log2fc_threshold=float(thresholds.get('log2fc', defaults.log2fc_threshold)),
            shrink=bool(de.get('shrink', defaults.shrink)),
            padj_method=de.get('padj_method', defaults.padj_method),
            n_cpus=de.get('n_cpus', defaults.n_cpus),
            results_dir=output.get('results_dir', defaults.results_dir),
            lookup_marker_ids=[str(m) for m in lookup.get('marker_ids', []) or []],
            lookup_gene_names=[str(g) for g in lookup.get('gene_names', []) or []],
        )


def load_config(config_path: str) -> AnalysisConfig:
    """
    Load pipeline configuration from a YAML file.

    Relative paths in the file are resolved against the parent of the
    directory holding the config (``configs/config.yaml`` -> project root).

    Parameters
    ----------
    config_path : str
        Path to YAML configuration file

    Returns
    -------
    AnalysisConfig
        Parsed configuration
    """
    config_path = Path(config_path)
    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    config = AnalysisConfig.from_dict(raw, project_root=config_path.resolve().parent.parent)
    logger.info(f"Loaded configuration for: {config.project_name}")
    return config
