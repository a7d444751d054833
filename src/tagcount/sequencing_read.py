"""
Sequencing read tag extraction and matching.

Locates barcode tags inside a read using short anchors taken from the
primer context on either side of the tag, on the forward strand and on the
reverse-complement strand, and resolves them against the barcode reference.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from Bio.Seq import reverse_complement

from .barcodes import BarcodeReference
from .constants import (
    ANCHOR_LENGTH,
    BA_PRIMER,
    MAX_BARCODE_LENGTH,
    MIN_BARCODE_LENGTH,
    NO_MATCH,
    R2_TO_AMP97,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimerContext:
    """
    Sequence context around the tag and the anchors derived from it.

    Only the ANCHOR_LENGTH bases directly adjacent to the tag are used,
    so the context strings may be longer or shorter than the real amplicon.
    Both must be given in the orientation of the barcode table.

    Parameters
    ----------
    five_p_seq : str, default BA_PRIMER
        Sequence 5' of the tag; its last bases form the 5' anchor.
    three_p_seq : str, default R2_TO_AMP97
        Sequence 3' of the tag; its first bases form the 3' anchor.

    Raises
    ------
    ValueError
        If either context is shorter than ANCHOR_LENGTH.
    """

    five_p_seq: str = BA_PRIMER
    three_p_seq: str = R2_TO_AMP97
    five_p_anchor: str = field(init=False)
    three_p_anchor: str = field(init=False)
    forward_pattern: "re.Pattern[str]" = field(init=False, repr=False)
    reverse_pattern: "re.Pattern[str]" = field(init=False, repr=False)

    def __post_init__(self):
        if not self.five_p_seq or len(self.five_p_seq) < ANCHOR_LENGTH:
            raise ValueError(f"five_p_seq (BA-primer) must be at least {ANCHOR_LENGTH}nt long")
        if not self.three_p_seq or len(self.three_p_seq) < ANCHOR_LENGTH:
            raise ValueError(f"three_p_seq (R2-amp97) must be at least {ANCHOR_LENGTH}nt long")

        five_p_anchor = self.five_p_seq[-ANCHOR_LENGTH:].lower()
        three_p_anchor = self.three_p_seq[:ANCHOR_LENGTH].lower()
        tag = rf"(\w{{{MIN_BARCODE_LENGTH},{MAX_BARCODE_LENGTH}}})"

        # frozen dataclass, so derived fields are set through object.__setattr__
        object.__setattr__(self, 'five_p_anchor', five_p_anchor)
        object.__setattr__(self, 'three_p_anchor', three_p_anchor)
        object.__setattr__(self, 'forward_pattern', re.compile(
            re.escape(five_p_anchor) + tag + re.escape(three_p_anchor),
            re.IGNORECASE | re.ASCII,
        ))
        object.__setattr__(self, 'reverse_pattern', re.compile(
            re.escape(reverse_complement(three_p_anchor)) + tag + re.escape(reverse_complement(five_p_anchor)),
            re.IGNORECASE | re.ASCII,
        ))


class MatchStatus(Enum):
    RESOLVED = "resolved"
    NO_CANDIDATE = "no_candidate"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class MatchOutcome:
    """Result of matching one read against the barcode reference."""

    status: MatchStatus
    barcode: Optional[str] = None
    candidates: tuple = ()
    n_found: int = 0

    @property
    def resolved(self) -> bool:
        return self.status is MatchStatus.RESOLVED

    @property
    def key(self) -> str:
        """Count matrix row for this read."""
        return self.barcode if self.resolved else NO_MATCH


def find_candidates(seq: str, context: PrimerContext) -> List[str]:
    """
    Find all anchor-flanked spans in a read.

    Forward-strand spans come first, followed by reverse-strand spans
    reverse-complemented into the orientation of the barcode table.
    All candidates are lowercase.
    """
    forward = [m.group(1).lower() for m in context.forward_pattern.finditer(seq)]
    reverse = [reverse_complement(m.group(1)).lower() for m in context.reverse_pattern.finditer(seq)]
    return forward + reverse


class SequencingRead:
    """
    Tag candidates of a single sequencing read.

    Parameters
    ----------
    seq : str
        Raw read sequence, any case.
    context : PrimerContext, optional
        Anchors to search for. Defaults to the BA primer / R2-amp97 context.

    Attributes
    ----------
    candidates : list of str
        Anchor-flanked spans (see `find_candidates`).

    Notes
    -----
    The anchors are short, so a read can contain spans that are not tags.
    Only candidates present in the reference count, and the read is
    resolved only if exactly one such candidate is found.

    Examples
    --------
    >>> ref = BarcodeReference({'aaaaaaaa': 'geneA'})
    >>> read = SequencingRead("ttGTCAGaaaaaaaaCCGCCtt")
    >>> read.match_to_reference(ref).key
    'aaaaaaaa'
    """

    def __init__(self, seq: str, context: Optional[PrimerContext] = None):
        self.seq = seq
        self.candidates = find_candidates(seq, context or PrimerContext())

    def empty(self) -> bool:
        """Check if no anchor-flanked span was found."""
        return not self.candidates

    def match_to_reference(self, reference: BarcodeReference) -> MatchOutcome:
        """
        Resolve the candidates against the barcode reference.

        Duplicate hits are counted, so a tag found on both strands of the
        same read is ambiguous.
        """
        existing = [tag for tag in self.candidates if tag in reference]
        candidates = tuple(self.candidates)

        if len(existing) == 1:
            return MatchOutcome(MatchStatus.RESOLVED, existing[0], candidates, 1)
        if existing:
            return MatchOutcome(MatchStatus.AMBIGUOUS, None, candidates, len(existing))
        return MatchOutcome(MatchStatus.NO_CANDIDATE, None, candidates, 0)


def classify(
    seq: str,
    reference: BarcodeReference,
    context: Optional[PrimerContext] = None,
) -> MatchOutcome:
    """
    Convenience function to match a read sequence to the barcode reference.

    Parameters
    ----------
    seq : str
        Raw read sequence.
    reference : BarcodeReference
        Known tags.
    context : PrimerContext, optional
        Anchors to search for.

    Returns
    -------
    MatchOutcome
    """
    return SequencingRead(seq, context).match_to_reference(reference)
