"""
Barcode reference table.

Loads the gene id to barcode tag table and validates it. Tags are stored
lowercase so that lookups are case-insensitive.
"""

import logging
from os import PathLike
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from .constants import (
    BARCODE_COLUMNS,
    GENE_ID_COLUMNS,
    MAX_BARCODE_LENGTH,
    MIN_BARCODE_LENGTH,
    NO_TAG,
)

logger = logging.getLogger(__name__)


class BarcodeReferenceError(ValueError):
    """Raised when the barcode table can't be trusted."""
    pass


def _first_value(row: Mapping[str, Optional[str]], columns: Iterable[str]) -> Optional[str]:
    for col in columns:
        value = row.get(col)
        if value is None or pd.isna(value):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def load_barcodes(
    rows: Iterable[Mapping[str, Optional[str]]],
    ignore_missing_tag: bool = False,
    duplicates: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, str]:
    """
    Build the tag to gene id mapping from barcode table rows.

    Parameters
    ----------
    rows : iterable of mapping
        Table rows keyed by column name. The gene id is read from
        'gene id' or 'gene_id', the tag from 'tag', 'Barcode' or 'barcode'.
    ignore_missing_tag : bool, default False
        Skip rows without a tag instead of failing. Allows design tables
        with empty barcodes to be used as the barcode list.
    duplicates : list, optional
        If given, a record is appended for every tag that is redefined
        with a different gene id.

    Returns
    -------
    dict
        Lowercase tag -> gene id. A tag listed more than once keeps the
        gene id of its last row.

    Raises
    ------
    BarcodeReferenceError
        If a row has no gene id, has no tag (unless ignore_missing_tag)
        or has a tag outside the allowed length range.
    """
    barcode_to_gene: Dict[str, str] = {}

    for row_num, row in enumerate(rows, start=1):
        gene_id = _first_value(row, GENE_ID_COLUMNS)
        if gene_id is None:
            raise BarcodeReferenceError(f"could not read gene id in barcode table row {row_num}")

        tag = _first_value(row, BARCODE_COLUMNS)
        if tag is None:
            if ignore_missing_tag:
                logger.debug(f"No tag for {gene_id}, skipping")
                continue
            raise BarcodeReferenceError(f"could not read barcode tag for {gene_id} (row {row_num})")

        if tag.lower() == NO_TAG:
            continue

        if not MIN_BARCODE_LENGTH <= len(tag) <= MAX_BARCODE_LENGTH:
            raise BarcodeReferenceError(
                f"found a barcode outside allowed length range "
                f"({MIN_BARCODE_LENGTH}-{MAX_BARCODE_LENGTH}): {tag}, length: {len(tag)}"
            )

        key = tag.lower()
        old_gene = barcode_to_gene.get(key)
        if old_gene is not None and old_gene != gene_id:
            logger.warning(f"Barcode '{key}' maps to both '{old_gene}' and '{gene_id}', keeping '{gene_id}'")
            if duplicates is not None:
                duplicates.append({'barcode': key, 'gene_old': old_gene, 'gene_new': gene_id})
        barcode_to_gene[key] = gene_id

    return barcode_to_gene


def read_barcode_table(barcodes_fn: Union[PathLike, str]) -> List[Dict[str, str]]:
    """
    Read a barcode table CSV into a list of row dicts.

    All values are read as strings; empty cells become empty strings.
    """
    barcodes_fn = Path(barcodes_fn)
    if not barcodes_fn.is_file():
        raise FileNotFoundError(f"Barcode table not found: {barcodes_fn}")

    df = pd.read_csv(barcodes_fn, dtype=str, keep_default_na=False)

    if not any(col in df.columns for col in GENE_ID_COLUMNS):
        raise BarcodeReferenceError(
            f"{barcodes_fn} has no gene id column (expected one of {list(GENE_ID_COLUMNS)})"
        )
    if not any(col in df.columns for col in BARCODE_COLUMNS):
        logger.warning(f"{barcodes_fn} has no barcode column (expected one of {list(BARCODE_COLUMNS)})")

    return df.to_dict(orient='records')


class BarcodeReference:
    """
    Validated lookup of barcode tags to gene ids.

    Parameters
    ----------
    barcode_to_gene : mapping
        Tag -> gene id. Tags are lowercased.
    duplicates : list of dict, optional
        Tags that were defined for more than one gene.

    Examples
    --------
    >>> ref = BarcodeReference.from_rows([{'gene_id': 'geneA', 'barcode': 'AAAAAAAA'}])
    >>> 'aaaaaaaa' in ref
    True
    >>> ref.gene_for('AAAAAAAA')
    'geneA'
    """

    def __init__(
        self,
        barcode_to_gene: Mapping[str, str],
        duplicates: Optional[List[Dict[str, str]]] = None,
    ):
        self._barcode_to_gene = {k.lower(): v for k, v in barcode_to_gene.items()}
        self.duplicates: List[Dict[str, str]] = list(duplicates or [])

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Optional[str]]],
        ignore_missing_tag: bool = False,
    ) -> "BarcodeReference":
        duplicates: List[Dict[str, str]] = []
        barcode_to_gene = load_barcodes(rows, ignore_missing_tag=ignore_missing_tag, duplicates=duplicates)
        return cls(barcode_to_gene, duplicates)

    @classmethod
    def from_csv(
        cls,
        barcodes_fn: Union[PathLike, str],
        ignore_missing_tag: bool = False,
    ) -> "BarcodeReference":
        reference = cls.from_rows(read_barcode_table(barcodes_fn), ignore_missing_tag=ignore_missing_tag)
        logger.info(f"Read {len(reference)} barcodes for {reference.n_genes} genes from {barcodes_fn}")
        return reference

    @property
    def barcode_to_gene(self) -> Dict[str, str]:
        return dict(self._barcode_to_gene)

    @property
    def n_genes(self) -> int:
        return len(set(self._barcode_to_gene.values()))

    def gene_for(self, barcode: str) -> Optional[str]:
        return self._barcode_to_gene.get(barcode.lower())

    def __contains__(self, barcode: object) -> bool:
        return isinstance(barcode, str) and barcode.lower() in self._barcode_to_gene

    def __len__(self) -> int:
        return len(self._barcode_to_gene)
