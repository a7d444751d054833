"""Tests for count table construction and output."""

import io

import pandas as pd
import pytest

from tagcount.barcodes import BarcodeReference
from tagcount.constants import NO_MATCH
from tagcount.read_db import ReadDB
from tagcount.report import build_count_table, summary_table, write_count_table


@pytest.fixture
def reference():
    return BarcodeReference({
        "aaaaaaaa": "geneA",
        "gagagaga": "geneB",
        "tgtgtgtgtg": "geneB",
        "cccccccc": "geneC",
    })


@pytest.fixture
def counts_df():
    db = ReadDB(sample_list=["s1", "s2"])
    db.increment_count(NO_MATCH, "s1", 3)
    db.increment_count("aaaaaaaa", "s1", 1)
    db.increment_count("gagagaga", "s1", 2)
    db.increment_count("tgtgtgtgtg", "s1", 5)
    db.increment_count("tgtgtgtgtg", "s2", 4)
    return db.counts()


def test_by_tag(counts_df, reference):
    table = build_count_table(counts_df, reference, by_tag=True)
    assert list(table.columns) == ["barcode", "gene", "s1", "s2"]
    assert table["barcode"].tolist() == [NO_MATCH, "aaaaaaaa", "gagagaga", "tgtgtgtgtg"]
    assert table["gene"].tolist() == ["", "geneA", "geneB", "geneB"]
    assert table["s1"].tolist() == [3, 1, 2, 5]
    assert table["s2"].tolist() == [0, 0, 0, 4]


def test_grouped_by_gene(counts_df, reference):
    table = build_count_table(counts_df, reference)
    assert table["barcode"].tolist() == [NO_MATCH, "aaaaaaaa", "gagagaga;tgtgtgtgtg"]
    assert table["gene"].tolist() == ["", "geneA", "geneB"]
    assert table["s1"].tolist() == [3, 1, 7]
    assert table["s2"].tolist() == [0, 0, 4]


def test_grouping_keeps_sample_totals(counts_df, reference):
    grouped = build_count_table(counts_df, reference)
    per_tag = build_count_table(counts_df, reference, by_tag=True)
    for sample in ["s1", "s2"]:
        assert grouped[sample].sum() == per_tag[sample].sum() == counts_df[sample].sum()


def test_single_tag_per_gene_same_either_way(reference):
    db = ReadDB(sample_list=["s1"])
    db.increment_count(NO_MATCH, "s1", 3)
    db.increment_count("cccccccc", "s1", 2)
    db.increment_count("aaaaaaaa", "s1", 1)
    counts = db.counts()
    pd.testing.assert_frame_equal(
        build_count_table(counts, reference),
        build_count_table(counts, reference, by_tag=True),
    )


def test_write_csv():
    reference = BarcodeReference({"aaaaaaaa": "geneA"})
    db = ReadDB(sample_list=["s1"])
    db.increment_count(NO_MATCH, "s1", 3)
    db.increment_count("aaaaaaaa", "s1")

    buffer = io.StringIO()
    write_count_table(build_count_table(db.counts(), reference), buffer)
    assert buffer.getvalue() == "barcode,gene,s1\nno_match,,3\naaaaaaaa,geneA,1\n"


def test_write_excel(tmp_path, counts_df, reference):
    path = tmp_path / "counts.xlsx"
    table = build_count_table(counts_df, reference, by_tag=True)
    write_count_table(table, path, format="excel")
    loaded = pd.read_excel(path, dtype={"barcode": str, "gene": str}, keep_default_na=False)
    assert loaded["barcode"].tolist() == table["barcode"].tolist()
    assert loaded["s1"].tolist() == table["s1"].tolist()


def test_write_unknown_format(counts_df, reference):
    with pytest.raises(ValueError):
        write_count_table(build_count_table(counts_df, reference), io.StringIO(), format="tsv")


def test_summary_table():
    stats = {
        "s2": {"reads": 4, "resolved": 1, "no_match": 3, "ambiguous": 1},
        "s1": {"reads": 0, "resolved": 0, "no_match": 0, "ambiguous": 0},
    }
    df = summary_table(stats)
    assert list(df.columns) == ["sample", "reads", "resolved", "no_match", "ambiguous"]
    assert df["sample"].tolist() == ["s1", "s2"]
    assert df["reads"].tolist() == [0, 4]


def test_gene_named_no_match_kept_apart():
    reference = BarcodeReference({"aaaaaaaa": "no_match", "gagagaga": "geneB"})
    db = ReadDB(sample_list=["s1"])
    db.increment_count(NO_MATCH, "s1", 3)
    db.increment_count("aaaaaaaa", "s1", 2)
    db.increment_count("gagagaga", "s1", 1)

    table = build_count_table(db.counts(), reference)
    assert table["barcode"].tolist() == [NO_MATCH, "aaaaaaaa", "gagagaga"]
    assert table["gene"].tolist() == ["", "no_match", "geneB"]
    assert table["s1"].tolist() == [3, 2, 1]


def test_grouped_without_any_gene_rows():
    db = ReadDB(sample_list=["s1"])
    db.increment_count(NO_MATCH, "s1", 2)
    table = build_count_table(db.counts(), BarcodeReference({"aaaaaaaa": "geneA"}))
    assert table["barcode"].tolist() == [NO_MATCH]
    assert table["s1"].tolist() == [2]


def test_gene_named_no_match_by_tag():
    reference = BarcodeReference({"aaaaaaaa": "no_match"})
    db = ReadDB(sample_list=["s1"])
    db.increment_count(NO_MATCH, "s1", 3)
    db.increment_count("aaaaaaaa", "s1", 2)

    table = build_count_table(db.counts(), reference, by_tag=True)
    assert table["gene"].tolist() == ["", "no_match"]
    assert table["s1"].tolist() == [3, 2]
