"""
Base class for FASTQ tag counting.

Provides the foundation for tag counting FASTQ readers with
multiprocessing support, metadata handling, and count aggregation.
"""

import gzip
import itertools
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from multiprocessing import Pool, cpu_count
from os import PathLike
from pathlib import Path
from typing import IO, Dict, Iterator, List, Literal, Optional, Tuple, Union

import pandas as pd

from .barcodes import BarcodeReference
from .constants import BA_PRIMER, FASTQ_SUFFIXES, NO_MATCH, R2_TO_AMP97
from .read_db import ReadDB
from .report import build_count_table, empty_stats, summary_table, write_count_table
from .sequencing_read import MatchStatus, PrimerContext, SequencingRead

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100000
DEBUG_MAX_READS = 100000

FastqRecord = Tuple[str, str, str, str]


class FASTQParseError(Exception):
    """Raised when FASTQ parsing encounters an error."""
    pass


def check_output_path(output_fn: Union[PathLike, str]) -> Path:
    """
    Check that an output file can be created before any work is done.

    Raises
    ------
    FileNotFoundError
        If the parent directory doesn't exist.
    PermissionError
        If the parent directory (or an existing file) isn't writable.
    """
    output_fn = Path(output_fn)
    parent = output_fn.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Output directory does not exist: {parent}")
    if output_fn.is_dir():
        raise IsADirectoryError(f"Output path is a directory: {output_fn}")
    if not os.access(output_fn if output_fn.exists() else parent, os.W_OK):
        raise PermissionError(f"Output path is not writable: {output_fn}")
    return output_fn


def open_fastq(fastq_fn: Union[PathLike, str]) -> IO[str]:
    """Open a FASTQ file for reading, gzip compressed if it ends in .gz."""
    if str(fastq_fn).endswith('.gz'):
        return gzip.open(fastq_fn, 'rt')
    return open(fastq_fn, 'r')


def read_fastq_records(handle: IO[str]) -> Iterator[FastqRecord]:
    """
    Iterate over 4-line FASTQ records.

    Yields (read_id, seq, read_id2, qual) with line endings stripped.
    Blank lines between records are skipped.

    Raises
    ------
    FASTQParseError
        If the last record has fewer than four lines.
    """
    while True:
        read_id = handle.readline()
        if not read_id:
            return
        read_id = read_id.rstrip('\r\n')
        if not read_id.strip():
            continue
        lines = [handle.readline() for _ in range(3)]
        if not lines[2]:
            raise FASTQParseError(f"Truncated FASTQ record: {read_id}")
        seq, read_id2, qual = (line.rstrip('\r\n') for line in lines)
        yield read_id, seq, read_id2, qual


class ReadFASTQ(ABC):
    """
    Abstract base class for FASTQ tag counting with multiprocessing support.

    Provides infrastructure for:
    - Locating FASTQ files (one per sample)
    - Building the primer context used to find tags
    - Parallel read processing across multiple cores
    - Count aggregation, unmatched read output and serialization

    Subclasses must implement:
    - `_parse_feature_metadata()`: Load the barcode reference
    - `_parse_sample_metadata()`: Derive sample names for the FASTQ files

    Parameters
    ----------
    fastq_path : PathLike or str
        Directory containing FASTQ files (*.fastq or *.fastq.gz).
    feature_metadata_fn : PathLike or str, optional
        Path to the barcode table.
    debug : bool, default False
        Enable debug mode (limits reads processed per file).
    five_p_seq : str, default BA_PRIMER
        Sequence context 5' of the tag.
    three_p_seq : str, default R2_TO_AMP97
        Sequence context 3' of the tag.
    nomatch_out_file : PathLike or str, optional
        If given, reads that don't resolve to exactly one tag are written
        here in FASTQ format.
    num_cores : int, optional
        Number of CPU cores for parallel processing.
        Defaults to (available cores - 2).

    Attributes
    ----------
    merged_counts_df : pd.DataFrame
        Per-barcode count matrix after calling `read()`.
    feature_metadata_df : pd.DataFrame
        Barcode table after parsing.
    sample_metadata_df : pd.DataFrame
        Sample names and FASTQ paths.
    sample_stats : dict
        Per-sample read, resolved, no_match and ambiguous counts.
    """

    def __init__(
        self,
        fastq_path: Union[PathLike, str],
        feature_metadata_fn: Optional[Union[PathLike, str]] = None,
        debug: bool = False,
        five_p_seq: str = BA_PRIMER,
        three_p_seq: str = R2_TO_AMP97,
        nomatch_out_file: Optional[Union[PathLike, str]] = None,
        num_cores: Optional[int] = None,
    ):
        self._debug = debug
        self._fastq_path = Path(fastq_path)
        self._nomatch_out_file = check_output_path(nomatch_out_file) if nomatch_out_file else None

        # Anchors are derived once here; raises on short context sequences
        self._context = PrimerContext(five_p_seq=five_p_seq, three_p_seq=three_p_seq)

        if self._debug:
            logger.info(f"Running in DEBUG mode, reading at most {DEBUG_MAX_READS:,} reads per file")

        # Determine number of cores
        if num_cores is None:
            if hasattr(os, 'sched_getaffinity'):
                self._num_cores = max(1, len(os.sched_getaffinity(0)) - 2)
            else:
                self._num_cores = max(1, cpu_count() - 2)
        else:
            self._num_cores = max(1, num_cores)
        logger.info(f"Using {self._num_cores} cores for parallel processing")

        # Find FASTQ files
        self._find_fastq_files()

        # Initialize metadata placeholders
        self.feature_metadata_df = pd.DataFrame()
        self.sample_metadata_df = pd.DataFrame()
        self.merged_counts_df = pd.DataFrame()
        self.read_db = ReadDB()
        self.sample_stats: Dict[str, Dict[str, int]] = {}

        # Populated by subclass
        self._reference = BarcodeReference({})
        self._fastq_path_to_sample: Dict[str, str] = {}

        # Parse metadata (subclass implementations)
        self._parse_feature_metadata(feature_metadata_fn)
        self._parse_sample_metadata()

    def _find_fastq_files(self) -> None:
        """Locate FASTQ files in the specified directory."""
        if not self._fastq_path.exists():
            raise FileNotFoundError(f"FASTQ path does not exist: {self._fastq_path}")
        if not self._fastq_path.is_dir():
            raise NotADirectoryError(f"FASTQ path is not a directory: {self._fastq_path}")

        self._fastq_file_list = sorted(
            str(f) for f in self._fastq_path.iterdir()
            if f.is_file() and f.name.endswith(FASTQ_SUFFIXES)
        )

        if not self._fastq_file_list:
            raise FASTQParseError(f"No FASTQ files found in {self._fastq_path}")

        logger.info(f"Found {len(self._fastq_file_list)} FASTQ files")

    @abstractmethod
    def _parse_feature_metadata(
        self,
        feature_metadata_fn: Optional[Union[PathLike, str]] = None,
    ) -> None:
        """
        Parse the barcode table.

        Must populate:
        - self.feature_metadata_df
        - self._reference
        """
        pass

    @abstractmethod
    def _parse_sample_metadata(self) -> None:
        """
        Derive sample metadata for the FASTQ files.

        Must populate:
        - self.sample_metadata_df
        - self._fastq_path_to_sample
        """
        pass

    @property
    def samples(self) -> List[str]:
        return sorted(set(self._fastq_path_to_sample.values()))

    def read(self) -> None:
        """
        Read all FASTQ files and aggregate counts.

        Uses multiprocessing to parse files in parallel. Results are
        merged into `self.merged_counts_df`. Unmatched reads are collected
        per file and written to the nomatch file in file order.
        """
        with tempfile.TemporaryDirectory(prefix='tagcount_') as tmp_dir:
            arguments = []
            for idx, fastq_fn in enumerate(self._fastq_file_list):
                part_fn = None
                if self._nomatch_out_file:
                    part_fn = os.path.join(tmp_dir, f"nomatch_{idx:05d}.fastq")
                arguments.append((
                    fastq_fn,
                    self._fastq_path_to_sample[fastq_fn],
                    self._reference,
                    self._context,
                    self._debug,
                    part_fn,
                ))

            logger.info(f"Processing {len(arguments)} FASTQ files...")

            if self._num_cores == 1 or len(arguments) == 1:
                results = list(itertools.starmap(self._count_tags, arguments))
            else:
                with Pool(processes=min(self._num_cores, len(arguments))) as pool:
                    results = pool.starmap(self._count_tags, arguments)

            # Only written once every file has been counted
            if self._nomatch_out_file:
                with open(self._nomatch_out_file, 'w') as nomatch_fh:
                    for args in arguments:
                        with open(args[-1], 'r') as part_fh:
                            shutil.copyfileobj(part_fh, nomatch_fh)
                logger.info(f"Unmatched reads written to {self._nomatch_out_file}")

        # Merge results
        logger.info("Merging counts from all samples...")
        read_db = ReadDB(sample_list=self.samples)
        sample_stats = {sample: empty_stats() for sample in self.samples}
        for file_db, file_stats in results:
            read_db.merge(file_db)
            for sample, stats in file_stats.items():
                for key, value in stats.items():
                    sample_stats[sample][key] += value

        self.read_db = read_db
        self.sample_stats = sample_stats
        self.merged_counts_df = read_db.counts()

        logger.info(
            f"Merged counts: {self.merged_counts_df.shape[0]} barcodes x "
            f"{self.merged_counts_df.shape[1]} samples"
        )

    @staticmethod
    def _count_tags(
        fastq_fn: str,
        sample: str,
        reference: BarcodeReference,
        context: PrimerContext,
        debug: bool,
        nomatch_part_fn: Optional[str] = None,
    ) -> Tuple[ReadDB, Dict[str, Dict[str, int]]]:
        """
        Count tags in a single FASTQ file.

        This is a static method to enable multiprocessing.
        """
        read_db = ReadDB(sample_list=[sample])
        stats = empty_stats()
        logger.info(f"Reading file {fastq_fn} (sample {sample})")

        try:
            with open_fastq(fastq_fn) as fh:
                nomatch_fh = open(nomatch_part_fn, 'w') if nomatch_part_fn else None
                try:
                    for read_num, record in enumerate(read_fastq_records(fh), start=1):
                        seq = record[1]
                        outcome = SequencingRead(seq, context).match_to_reference(reference)
                        read_db.increment_count(outcome.key, sample)
                        stats['reads'] += 1

                        if outcome.resolved:
                            stats['resolved'] += 1
                        else:
                            stats[NO_MATCH] += 1
                            if outcome.status is MatchStatus.AMBIGUOUS:
                                stats['ambiguous'] += 1
                                logger.warning(
                                    f"Found {outcome.n_found} matching tags in sequence {seq} "
                                    f"- counting as 'no match'"
                                )
                            logger.debug(f"NOMATCH {seq}")
                            if nomatch_fh:
                                nomatch_fh.write('\n'.join(record) + '\n')

                        # Log progress every 100k reads
                        if read_num % PROGRESS_INTERVAL == 0:
                            logger.info(f"{sample}: {read_num:,} reads processed...")

                        # Debug mode: limit reads
                        if debug and read_num >= DEBUG_MAX_READS:
                            break
                finally:
                    if nomatch_fh:
                        nomatch_fh.close()

        except (OSError, FASTQParseError) as e:
            logger.error(f"Error processing {fastq_fn}: {e}")
            raise

        logger.info(
            f"{sample}: Complete - {stats['reads']:,} reads, {stats['resolved']:,} matched, "
            f"{stats[NO_MATCH]:,} no match ({stats['ambiguous']:,} ambiguous)"
        )
        return read_db, {sample: stats}

    @property
    def count_table(self) -> pd.DataFrame:
        """Output table with one row per tag."""
        return build_count_table(self.merged_counts_df, self._reference, by_tag=True)

    @property
    def summary_df(self) -> pd.DataFrame:
        return summary_table(self.sample_stats)

    def serialize(
        self,
        results_path: Union[PathLike, str],
        format: Literal['excel', 'csv'] = 'csv',
    ) -> None:
        """
        Save results to disk.

        Parameters
        ----------
        results_path : PathLike or str
            Directory to save results.
        format : {'excel', 'csv'}, default 'csv'
            Output format.
        """
        results_path = Path(results_path)
        results_path.mkdir(parents=True, exist_ok=True)

        if format == 'excel':
            write_count_table(self.count_table, results_path / 'counts.xlsx', format='excel')
            self.summary_df.to_excel(results_path / 'summary.xlsx', index=False)
        else:
            write_count_table(self.count_table, results_path / 'counts.csv')
            self.summary_df.to_csv(results_path / 'summary.csv', index=False)

        logger.info(f"Results saved to {results_path}")

    def print_summary(self) -> None:
        """Log a summary of the parsed data."""
        logger.info(f"FASTQ Path: {self._fastq_path}")
        logger.info(f"FASTQ Files: {len(self._fastq_file_list)}")
        logger.info(f"Barcodes in reference: {len(self._reference)}")
        if len(self.merged_counts_df) > 0:
            logger.info(
                f"Count matrix: {self.merged_counts_df.shape[0]} barcodes x "
                f"{self.merged_counts_df.shape[1]} samples"
            )
            logger.info(f"Total counts: {int(self.merged_counts_df.to_numpy().sum()):,}")
        for sample, stats in sorted(self.sample_stats.items()):
            logger.info(
                f"{sample}: {stats['reads']:,} reads, {stats['resolved']:,} matched, "
                f"{stats[NO_MATCH]:,} no match, {stats['ambiguous']:,} ambiguous"
            )
