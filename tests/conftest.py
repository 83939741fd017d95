"""Shared fixtures: a small Serum vs PAXgene run."""

import pandas as pd
import pytest


@pytest.fixture
def samples_df():
    return pd.DataFrame({
        "sample_id": ["S3", "S1", "S4", "S2"],
        "matrix_type": ["PAXgene", "Serum", "PAXgene", "Serum"],
        "donor_id": ["D1", "D1", "D2", "D2"],
        "replicate_id": ["R1", "R1", "R2", "R1"],
        "study": ["ST1"] * 4,
    })


@pytest.fixture
def markers_df():
    return pd.DataFrame({
        "marker_id": ["M1", "M2", "M3", "M4"],
        "mapped_gene_type": ["MIRNA", "MIRNA", "PIRNA", "R_RNA"],
        "mapped_gene_name": ["MIR21", "MIR16", "PIR1", "RNA45S"],
    })


@pytest.fixture
def counts_df():
    rows = [
        ("S1", "M1", 5), ("S1", "M1", 7), ("S1", "M2", 10), ("S1", "M4", 50),
        ("S2", "M1", 3), ("S2", "M2", 12), ("S2", "M3", 4), ("S2", "M4", 40),
        ("S3", "M1", 30), ("S3", "M2", 2), ("S3", "M3", 9), ("S3", "M4", 60),
        ("S4", "M1", 25), ("S4", "M2", 1), ("S4", "M4", 55),
        # no metadata for S9 / M9
        ("S9", "M1", 100), ("S1", "M9", 100),
    ]
    return pd.DataFrame(rows, columns=["sample_id", "marker_id", "read_count"])


@pytest.fixture
def input_files(tmp_path, counts_df, samples_df, markers_df):
    """Write the fixture tables as TSV files under data/raw."""
    raw = tmp_path / "data" / "raw"
    raw.mkdir(parents=True)
    paths = {
        "counts": raw / "read_counts.tsv",
        "samples": raw / "samples.tsv",
        "markers": raw / "markers.tsv",
    }
    counts_df.to_csv(paths["counts"], sep="\t", index=False)
    samples_df.to_csv(paths["samples"], sep="\t", index=False)
    markers_df.to_csv(paths["markers"], sep="\t", index=False)
    return paths


@pytest.fixture
def config_file(tmp_path, input_files):
    """YAML config in <tmp>/configs pointing at the fixture inputs."""
    configs = tmp_path / "configs"
    configs.mkdir()
    path = configs / "config.yaml"
    path.write_text(
        "project:\n"
        "  name: test run\n"
        "data:\n"
        "  counts: data/raw/read_counts.tsv\n"
        "  samples: data/raw/samples.tsv\n"
        "  markers: data/raw/markers.tsv\n"
        "qc:\n"
        "  rrna_threshold: 10.0\n"
        "design:\n"
        "  levels: [Serum, PAXgene]\n"
        "  reference: Serum\n"
        "de_analysis:\n"
        "  alpha: 0.1\n"
        "  thresholds:\n"
        "    padj: 0.1\n"
        "    log2fc: 0.5\n"
        "output:\n"
        "  results_dir: results\n"
        "lookup:\n"
        "  marker_ids: [M1, M404]\n"
        "  gene_names: [mir16]\n"
    )
    return path
