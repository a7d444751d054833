"""
Barcode tag FASTQ reader.

Counts barcode tags from a directory of FASTQ files. Sample names are
extracted from the FASTQ file names and a table is generated with counts
for each of the barcodes in the barcodes list (only if there is at least
one occurrence) for each of the samples (libraries).
"""

import argparse
import logging
import re
import sys
from os import PathLike
from os.path import basename
from pathlib import Path
from typing import List, Literal, Optional, Union

import pandas as pd

from .barcodes import BarcodeReference
from .base import FASTQParseError, ReadFASTQ, check_output_path
from .constants import BA_PRIMER, BARCODE_COL, GENE_COL, R2_TO_AMP97, SAMPLE_NAME_PATTERN
from .report import build_count_table, write_count_table

logger = logging.getLogger(__name__)

_SAMPLE_NAME_RE = re.compile(SAMPLE_NAME_PATTERN)


def parse_sample_name(fastq_fn: Union[PathLike, str]) -> str:
    """
    Extract the sample name from a FASTQ file name.

    The sample name is everything up to and including the run of digits
    directly in front of the '.fastq' extension.

    Examples
    --------
    >>> parse_sample_name('/data/run1/lib_12.fastq.gz')
    'lib_12'
    """
    filename = basename(str(fastq_fn))
    match = _SAMPLE_NAME_RE.match(filename)
    if match is None:
        raise FASTQParseError(f"could not parse fastq file name '{filename}'")
    return match.group(1)


class ReadTagFASTQ(ReadFASTQ):
    """
    FASTQ reader for barcode tag counting.

    Parses FASTQ files (one per sample) containing barcode tags flanked by
    the primer context, matching reads to the barcode table and
    aggregating counts per sample.

    Parameters
    ----------
    fastq_path : PathLike or str
        Directory of FASTQ files, one per sample.
    barcodes_fn : PathLike or str
        CSV mapping genes to barcodes. Must contain a 'gene id' or
        'gene_id' column and a 'tag', 'Barcode' or 'barcode' column.
    by_tag : bool, default False
        Keep counts separated by tag even if several tags map to the same
        gene. By default, counts of tags of the same gene are combined.
    ignore_missing_tag : bool, default False
        Skip barcode table rows without a tag instead of failing. Allows
        design tables with empty barcodes to be used as barcode list.
    five_p_seq : str, default BA_PRIMER
        Sequence context 5' of the tag, in the orientation of the barcode
        table. Only the 5 bases adjacent to the tag are used.
    three_p_seq : str, default R2_TO_AMP97
        Sequence context 3' of the tag. Only the 5 bases adjacent to the
        tag are used.
    nomatch_out_file : PathLike or str, optional
        Write reads that match no tag (or more than one) to this FASTQ file.
    debug : bool, default False
        Enable debug mode.
    num_cores : int, optional
        Number of CPU cores for parallel processing.

    Attributes
    ----------
    duplicate_barcodes : list of dict
        Tags listed for more than one gene; the last gene listed is used.

    Examples
    --------
    >>> reader = ReadTagFASTQ(
    ...     fastq_path='/path/to/fastq',
    ...     barcodes_fn='/path/to/barcodes.csv',
    ... )
    >>> reader.read()
    >>> reader.count_table.head()
    """

    def __init__(
        self,
        fastq_path: Union[PathLike, str],
        barcodes_fn: Union[PathLike, str],
        by_tag: bool = False,
        ignore_missing_tag: bool = False,
        five_p_seq: str = BA_PRIMER,
        three_p_seq: str = R2_TO_AMP97,
        nomatch_out_file: Optional[Union[PathLike, str]] = None,
        debug: bool = False,
        num_cores: Optional[int] = None,
    ):
        self.by_tag = by_tag
        self._ignore_missing_tag = ignore_missing_tag
        self.duplicate_barcodes: List[dict] = []

        super().__init__(
            fastq_path=fastq_path,
            feature_metadata_fn=barcodes_fn,
            debug=debug,
            five_p_seq=five_p_seq,
            three_p_seq=three_p_seq,
            nomatch_out_file=nomatch_out_file,
            num_cores=num_cores,
        )

    def _parse_feature_metadata(
        self,
        feature_metadata_fn: Optional[Union[PathLike, str]] = None,
    ) -> None:
        """Load and validate the barcode table."""
        reference = BarcodeReference.from_csv(
            feature_metadata_fn,
            ignore_missing_tag=self._ignore_missing_tag,
        )

        self._reference = reference
        self.duplicate_barcodes = reference.duplicates
        self.feature_metadata_df = pd.DataFrame(
            sorted(reference.barcode_to_gene.items()),
            columns=[BARCODE_COL, GENE_COL],
        )

    def _parse_sample_metadata(self) -> None:
        """Infer sample names from FASTQ filenames."""
        samples = [parse_sample_name(fn) for fn in self._fastq_file_list]

        df = pd.DataFrame({'Sample': samples, 'FASTQ_Path': self._fastq_file_list})
        df = df.sort_values(['Sample', 'FASTQ_Path']).reset_index(drop=True)

        n_shared = len(df) - df['Sample'].nunique()
        if n_shared:
            logger.warning(f"{n_shared} FASTQ files share a sample name with another file; their counts are combined")

        self.sample_metadata_df = df
        self._fastq_path_to_sample = dict(zip(df['FASTQ_Path'], df['Sample']))

    @property
    def count_table(self) -> pd.DataFrame:
        """Output table, per tag or per gene depending on `by_tag`."""
        return build_count_table(self.merged_counts_df, self._reference, by_tag=self.by_tag)

    def serialize(
        self,
        results_path: Union[PathLike, str],
        format: Literal['excel', 'csv'] = 'csv',
    ) -> None:
        """
        Save results to disk, including the duplicate barcode report.

        Parameters
        ----------
        results_path : PathLike or str
            Directory to save results.
        format : {'excel', 'csv'}, default 'csv'
            Output format.
        """
        super().serialize(results_path, format=format)

        if self.duplicate_barcodes:
            dup_df = pd.DataFrame(self.duplicate_barcodes)
            results_path = Path(results_path)
            if format == 'excel':
                dup_df.to_excel(results_path / 'duplicate_barcodes_report.xlsx', index=False)
            else:
                dup_df.to_csv(results_path / 'duplicate_barcodes_report.csv', index=False)
            logger.info(f"Saved {len(self.duplicate_barcodes)} duplicate barcode records")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tagcount',
        description=(
            'Count barcode tags from a directory of fastq files. Sample names are '
            'extracted from the fastq file names (text up to and including the digits '
            'before .fastq) and a table is generated with counts for each of the '
            'barcodes for each of the samples.'
        ),
    )

    parser.add_argument(
        '--seq_dir',
        required=True,
        help='Directory of fastq files - one per sample',
    )
    parser.add_argument(
        '--barcodes',
        required=True,
        help='CSV file of mappings of genes to barcodes (columns gene_id,barcode)',
    )
    parser.add_argument(
        '--by_tag',
        action='store_true',
        help='Keep counts separated by tag even if tags map to the same gene',
    )
    parser.add_argument(
        '--five_p_seq',
        default=BA_PRIMER,
        help="Sequence context 5' of the tag (default: BA primer)",
    )
    parser.add_argument(
        '--three_p_seq',
        default=R2_TO_AMP97,
        help="Sequence context 3' of the tag (default: R2 to amp97 cassette sequence)",
    )
    parser.add_argument(
        '--ignore_missing_tag',
        action='store_true',
        help='Skip rows of the barcodes file without a barcode instead of failing',
    )
    parser.add_argument(
        '--nomatch_out_file',
        default=None,
        help="Write reads that don't match any tag (or match more than once) to this fastq file",
    )
    parser.add_argument(
        '-o', '--output',
        default=None,
        help='Output count table (default: stdout)',
    )
    parser.add_argument(
        '--format',
        choices=['csv', 'excel'],
        default='csv',
        help='Output format (excel requires --output)',
    )
    parser.add_argument(
        '--summary_out',
        default=None,
        help='Write per-sample matching summary CSV to this file',
    )
    parser.add_argument(
        '--num_cores',
        type=int,
        default=1,
        help='Number of CPU cores',
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        help='Enable debug mode',
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Command-line interface for ReadTagFASTQ."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.format == 'excel' and args.output is None:
        parser.error('--format excel requires --output')

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    # Output paths are checked before any read is counted
    for output_fn in (args.output, args.summary_out):
        if output_fn:
            check_output_path(output_fn)

    # Create reader and process
    reader = ReadTagFASTQ(
        fastq_path=args.seq_dir,
        barcodes_fn=args.barcodes,
        by_tag=args.by_tag,
        ignore_missing_tag=args.ignore_missing_tag,
        five_p_seq=args.five_p_seq,
        three_p_seq=args.three_p_seq,
        nomatch_out_file=args.nomatch_out_file,
        debug=args.debug,
        num_cores=args.num_cores,
    )

    reader.read()

    write_count_table(reader.count_table, args.output or sys.stdout, format=args.format)
    if args.summary_out:
        reader.summary_df.to_csv(args.summary_out, index=False)
    reader.print_summary()


if __name__ == '__main__':
    main()
