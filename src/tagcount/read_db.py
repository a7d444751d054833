"""
Read database for accumulating tag counts from FASTQ parsing.

Provides in-memory storage for barcode counts across samples during
parallel FASTQ processing.
"""

from typing import Dict, Iterable, List, Optional

import pandas as pd

from .constants import NO_MATCH


def sort_barcodes(keys: Iterable[str]) -> List[str]:
    """no_match first, everything else in lexicographic order."""
    return [NO_MATCH] + sorted(k for k in keys if k != NO_MATCH)


class ReadDB:
    """
    In-memory database for accumulating read counts.

    Stores counts of barcode occurrences per sample during FASTQ parsing.
    Each worker process gets its own instance; instances are combined
    with `merge`, which sums counts and so doesn't depend on merge order.

    Parameters
    ----------
    sample_list : list of str, optional
        Pre-defined list of sample names. These samples appear in the
        count matrix even if no reads were counted for them.

    Examples
    --------
    >>> db = ReadDB(sample_list=['s1'])
    >>> db.increment_count('aaaaaaaa', 's1')
    >>> db.increment_count('no_match', 's1')
    >>> int(db.counts().loc['aaaaaaaa', 's1'])
    1
    """

    def __init__(self, sample_list: Optional[List[str]] = None):
        self._samples: Dict[str, None] = dict.fromkeys(sample_list or [])

        # Structure: {barcode: {sample: count}}
        self._counts: Dict[str, Dict[str, int]] = {}

    def add_sample(self, sample: str) -> None:
        self._samples.setdefault(sample, None)

    def increment_count(self, barcode: str, sample: str, count: int = 1) -> None:
        """
        Increment the count for a barcode-sample pair.

        Parameters
        ----------
        barcode : str
            Barcode key (lowercase tag or 'no_match').
        sample : str
            Sample identifier.
        count : int, default 1
            Amount to increment by.
        """
        self.add_sample(sample)
        sample_counts = self._counts.setdefault(barcode, {})
        sample_counts[sample] = sample_counts.get(sample, 0) + count

    def get_count(self, barcode: str, sample: str) -> int:
        """Count for a barcode-sample pair, 0 if never seen."""
        return self._counts.get(barcode, {}).get(sample, 0)

    def merge(self, other: "ReadDB") -> "ReadDB":
        """Add the counts of another ReadDB to this one."""
        for sample in other._samples:
            self.add_sample(sample)
        for barcode, sample_counts in other._counts.items():
            for sample, count in sample_counts.items():
                self.increment_count(barcode, sample, count)
        return self

    def sample_total(self, sample: str) -> int:
        """Total count of one sample across all barcodes."""
        return sum(sample_counts.get(sample, 0) for sample_counts in self._counts.values())

    def counts(self) -> pd.DataFrame:
        """
        Export counts as a DataFrame.

        Returns
        -------
        pd.DataFrame
            Count matrix with barcodes as rows and samples as columns.
            The 'no_match' row is always present and comes first, the
            other rows and the columns are sorted lexicographically.
            Missing values are filled with 0.
        """
        df = pd.DataFrame.from_dict(self._counts, orient='index')
        df = df.reindex(index=sort_barcodes(self._counts), columns=sorted(self._samples))

        # Fill NaN with 0 and convert to int
        df = df.fillna(0).astype(int)
        df.index.name = 'barcode'

        return df

    @property
    def samples(self) -> List[str]:
        return sorted(self._samples)

    @property
    def n_features(self) -> int:
        """Number of unique barcodes with counts (including no_match)."""
        return len(self._counts)

    @property
    def n_samples(self) -> int:
        return len(self._samples)

    @property
    def total_counts(self) -> int:
        """Total count across all barcodes and samples."""
        total = 0
        for sample_counts in self._counts.values():
            total += sum(sample_counts.values())
        return total
