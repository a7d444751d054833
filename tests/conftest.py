"""
Shared pytest fixtures for tagcount tests.
"""

import gzip
from pathlib import Path

import pytest

# Anchors of the default context: last 5 nt of the BA primer, first 5 nt of R2-amp97
FIVE_P_ANCHOR = "GTCAG"
THREE_P_ANCHOR = "CCGCC"

JUNK_SEQ = "ACACACACACACACACACACACACACAC"


def tagged_read(tag, prefix="TTAT", suffix="ATTA"):
    """Read with a tag between the default anchors."""
    return f"{prefix}{FIVE_P_ANCHOR}{tag}{THREE_P_ANCHOR}{suffix}"


def fastq_text(seqs, name="read"):
    lines = []
    for idx, seq in enumerate(seqs, start=1):
        lines.extend([f"@{name}_{idx}", seq, "+", "I" * len(seq)])
    return "\n".join(lines) + "\n"


def write_fastq(path, seqs, name="read"):
    path = Path(path)
    text = fastq_text(seqs, name=name)
    if path.name.endswith(".gz"):
        with gzip.open(path, "wt") as fh:
            fh.write(text)
    else:
        path.write_text(text)
    return path


@pytest.fixture
def barcodes_csv(tmp_path):
    """Barcode table with two genes, geneB having two tags."""
    path = tmp_path / "barcodes.csv"
    path.write_text(
        "gene_id,barcode\n"
        "geneA,AAAAAAAA\n"
        "geneB,GAGAGAGA\n"
        "geneB,TGTGTGTGTG\n"
        "geneC,none\n"
    )
    return path


@pytest.fixture
def single_gene_csv(tmp_path):
    path = tmp_path / "single_gene.csv"
    path.write_text("gene_id,barcode\ngeneA,aaaaaaaa\n")
    return path


@pytest.fixture
def fastq_dir(tmp_path):
    """Directory with one sample 's1': one tagged read and three junk reads."""
    path = tmp_path / "fastq"
    path.mkdir()
    write_fastq(path / "s1.fastq", [tagged_read("AAAAAAAA"), JUNK_SEQ, JUNK_SEQ, JUNK_SEQ])
    return path
