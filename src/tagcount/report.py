"""
Count table reporting.

Turns the per-barcode count matrix into the output table (optionally
merging tags of the same gene) and writes it to disk.
"""

from os import PathLike
from typing import Dict, IO, Literal, Mapping, Union

import pandas as pd

from .barcodes import BarcodeReference
from .constants import BARCODE_COL, GENE_COL, NO_MATCH
from .read_db import sort_barcodes

SUMMARY_COLUMNS = ['sample', 'reads', 'resolved', 'no_match', 'ambiguous']


def _order_rows(table: pd.DataFrame) -> pd.DataFrame:
    table = table.set_index(BARCODE_COL)
    present = set(table.index)
    table = table.loc[[b for b in sort_barcodes(table.index) if b in present]]
    return table.reset_index()


def build_count_table(
    counts_df: pd.DataFrame,
    reference: BarcodeReference,
    by_tag: bool = False,
) -> pd.DataFrame:
    """
    Build the output count table.

    Parameters
    ----------
    counts_df : pd.DataFrame
        Count matrix from `ReadDB.counts`, barcodes as rows and samples
        as columns.
    reference : BarcodeReference
        Used to look up the gene of each barcode.
    by_tag : bool, default False
        Keep one row per tag. By default, counts of tags that belong to
        the same gene are combined into one row, whose barcode column
        lists the combined tags separated by ';'.

    Returns
    -------
    pd.DataFrame
        Columns 'barcode', 'gene' followed by the samples in sorted order.
        The 'no_match' row comes first, the other rows are sorted by the
        barcode column. The gene of 'no_match' is empty.
    """
    samples = sorted(counts_df.columns)
    counts_df = counts_df[samples]
    barcodes = [str(b) for b in counts_df.index]

    if by_tag:
        table = counts_df.reset_index(drop=True)
        table.insert(0, BARCODE_COL, barcodes)
        table.insert(1, GENE_COL, ['' if b == NO_MATCH else reference.gene_for(b) or '' for b in barcodes])
        return _order_rows(table)

    # no_match and barcodes without a gene stay on their own rows
    genes = [None if b == NO_MATCH else reference.gene_for(b) for b in barcodes]
    has_gene = [g is not None for g in genes]
    no_gene = [not g for g in has_gene]

    single = counts_df.loc[no_gene].reset_index(drop=True)
    single.insert(0, BARCODE_COL, [b for b, keep in zip(barcodes, no_gene) if keep])
    single.insert(1, GENE_COL, '')

    grouped_df = counts_df.loc[has_gene]
    gene_keys = pd.Series([g for g in genes if g is not None], index=grouped_df.index)
    summed = grouped_df.groupby(gene_keys, sort=False).sum()
    labels = pd.Series(grouped_df.index.astype(str), index=grouped_df.index).groupby(
        gene_keys, sort=False
    ).agg(lambda s: ';'.join(sorted(s)))

    grouped = summed.reset_index(drop=True)
    grouped.insert(0, BARCODE_COL, [labels[g] for g in summed.index])
    grouped.insert(1, GENE_COL, list(summed.index))

    table = pd.concat([single, grouped], ignore_index=True)
    return _order_rows(table)


def write_count_table(
    table: pd.DataFrame,
    output: Union[PathLike, str, IO[str]],
    format: Literal['csv', 'excel'] = 'csv',
) -> None:
    """Write the count table as CSV (to a path or open text stream) or Excel."""
    if format == 'csv':
        table.to_csv(output, index=False)
    elif format == 'excel':
        table.to_excel(output, index=False, engine='openpyxl')
    else:
        raise ValueError(f"Unknown output format: {format}")


def summary_table(stats: Mapping[str, Mapping[str, int]]) -> pd.DataFrame:
    """
    Per-sample matching summary.

    Parameters
    ----------
    stats : mapping
        sample -> {'reads', 'resolved', 'no_match', 'ambiguous'}.
    """
    rows = [{'sample': sample, **dict(stats[sample])} for sample in sorted(stats)]
    df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    return df.fillna(0).astype({c: int for c in SUMMARY_COLUMNS[1:]})


def empty_stats() -> Dict[str, int]:
    return {'reads': 0, 'resolved': 0, NO_MATCH: 0, 'ambiguous': 0}
