"""
tagcount - barcode tag counting for pooled tag sequencing.

This package counts barcode tags in FASTQ files (one file per sample)
against a table mapping gene ids to barcode tags. Tags are located by the
5 bases of primer context on each side, on either strand.

Main Classes
------------
ReadTagFASTQ
    Count tags in a directory of FASTQ files.

ReadFASTQ
    Abstract base class for FASTQ parsing (for subclassing).

SequencingRead
    Extract and resolve tag candidates of an individual read.

BarcodeReference
    Validated barcode to gene lookup.

ReadDB
    In-memory database for accumulating read counts.

Examples
--------
>>> from tagcount import ReadTagFASTQ
>>> reader = ReadTagFASTQ(
...     fastq_path='/path/to/fastq',
...     barcodes_fn='/path/to/barcodes.csv',
... )
>>> reader.read()
>>> reader.serialize('/path/to/results')
"""

from .barcodes import BarcodeReference, BarcodeReferenceError, load_barcodes, read_barcode_table
from .base import FASTQParseError, ReadFASTQ, read_fastq_records
from .constants import (
    BA_PRIMER,
    R2_TO_AMP97,
    NO_MATCH,
)
from .read_db import ReadDB
from .report import build_count_table, summary_table, write_count_table
from .sequencing_read import (
    MatchOutcome,
    MatchStatus,
    PrimerContext,
    SequencingRead,
    classify,
    find_candidates,
)
from .tags import ReadTagFASTQ, parse_sample_name

__all__ = [
    # Main classes
    "ReadTagFASTQ",
    "ReadFASTQ",
    "FASTQParseError",
    # Barcode reference
    "BarcodeReference",
    "BarcodeReferenceError",
    "load_barcodes",
    "read_barcode_table",
    # Matching
    "PrimerContext",
    "SequencingRead",
    "MatchOutcome",
    "MatchStatus",
    "classify",
    "find_candidates",
    # Counting and reporting
    "ReadDB",
    "build_count_table",
    "summary_table",
    "write_count_table",
    # Utilities
    "parse_sample_name",
    "read_fastq_records",
    # Constants
    "BA_PRIMER",
    "R2_TO_AMP97",
    "NO_MATCH",
]

__version__ = "0.1.0"
