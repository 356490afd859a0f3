"""
Pytest configuration and shared fixtures.

Provides small hand-built count matrices with known answers and a synthetic
lineage-tracing experiment with technical replicates.
"""

import numpy as np
import pandas as pd
import pytest

from lintrace.domain.models import CountMatrix


@pytest.fixture
def example_matrix():
    """Single sample S1 with barcodes B1=100, B2=50, B3=0"""
    return CountMatrix.from_arrays([[100], [50], [0]], ["B1", "B2", "B3"], ["S1"])


@pytest.fixture
def replicate_matrix():
    """Two technical replicates R1 and R2 of group G over three barcodes"""
    counts = pd.DataFrame(
        {"R1": [10, 20, 30], "R2": [12, 18, 30]}, index=["B1", "B2", "B3"]
    )
    samples = pd.DataFrame(
        {"group": ["G", "G"], "timepoint": ["d7", "d7"], "lane": ["L1", "L2"]},
        index=["R1", "R2"],
    )
    return CountMatrix(counts, samples)


def generate_lineage_matrix(
    n_barcodes: int = 200,
    groups=("ctrl_d0", "ctrl_d14", "drug_d14"),
    n_replicates: int = 2,
    seed: int = 42,
) -> CountMatrix:
    """
    Generate a synthetic barcode experiment with technical replicates.

    Barcode abundances follow a heavy-tailed library distribution; each group
    draws a clonal composition from it and each technical replicate resamples
    reads from that composition.

    Args:
        n_barcodes: Number of barcodes in the library
        groups: Replicate group names
        n_replicates: Technical replicates per group
        seed: Random seed for reproducibility

    Returns:
        CountMatrix with sample metadata (group, condition, timepoint, replicate)
    """
    rng = np.random.default_rng(seed)
    library = np.sort(rng.pareto(1.5, n_barcodes) + 1)[::-1]
    library = library / library.sum()

    columns = {}
    rows = []
    for group in groups:
        composition = rng.dirichlet(library * 500)
        depth = int(rng.integers(20_000, 60_000))
        for replicate in range(1, n_replicates + 1):
            name = f"{group}_R{replicate}"
            columns[name] = rng.multinomial(depth, composition)
            condition, timepoint = group.split("_")
            rows.append(
                {
                    "sample": name,
                    "group": group,
                    "condition": condition,
                    "timepoint": timepoint,
                    "replicate": f"R{replicate}",
                }
            )

    barcodes = [f"BC{i:04d}" for i in range(1, n_barcodes + 1)]
    counts = pd.DataFrame(columns, index=barcodes)
    samples = pd.DataFrame(rows).set_index("sample")
    return CountMatrix(counts, samples)


@pytest.fixture
def lineage_matrix():
    return generate_lineage_matrix()


@pytest.fixture
def count_files(tmp_path):
    """Metadata table plus per-sample count files on disk"""
    counts_dir = tmp_path / "counts"
    counts_dir.mkdir()

    per_sample = {
        "A_R1": {"AAAA": 50, "CCCC": 30, "GGGG": 5},
        "A_R2": {"AAAA": 45, "CCCC": 35, "TTTT": 1},
        "B_R1": {"AAAA": 10, "GGGG": 80},
    }
    for sample, counts in per_sample.items():
        pd.DataFrame(
            {"barcode": list(counts.keys()), "count": list(counts.values())}
        ).to_csv(counts_dir / f"{sample}.csv", index=False)

    metadata = pd.DataFrame(
        {
            "sample": ["A_R1", "A_R2", "B_R1"],
            "group": ["A", "A", "B"],
            "treatment": ["ctrl", "ctrl", "drug"],
        }
    )
    metadata_file = tmp_path / "metadata.csv"
    metadata.to_csv(metadata_file, index=False)
    return {"metadata_file": str(metadata_file), "counts_dir": str(counts_dir)}
