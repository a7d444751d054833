"""Tests for tag candidate extraction and matching."""

import pytest
from Bio.Seq import reverse_complement

from tagcount.barcodes import BarcodeReference
from tagcount.constants import NO_MATCH
from tagcount.sequencing_read import (
    MatchStatus,
    PrimerContext,
    SequencingRead,
    classify,
    find_candidates,
)

from conftest import JUNK_SEQ, tagged_read


@pytest.fixture
def reference():
    return BarcodeReference({"aaaaaaaa": "geneA", "gagagaga": "geneB", "ttgcattgcattgcat": "geneC"})


class TestPrimerContext:
    def test_default_anchors(self):
        context = PrimerContext()
        assert context.five_p_anchor == "gtcag"
        assert context.three_p_anchor == "ccgcc"

    def test_custom_anchors_use_adjacent_bases(self):
        context = PrimerContext(five_p_seq="NNNNNACGTA", three_p_seq="TTGCAGGGGG")
        assert context.five_p_anchor == "acgta"
        assert context.three_p_anchor == "ttgca"

    @pytest.mark.parametrize("five_p_seq,three_p_seq", [
        ("GTCA", "CCGCCTA"),
        ("GTCAG", "CCGC"),
        ("", "CCGCC"),
    ])
    def test_short_context_raises(self, five_p_seq, three_p_seq):
        with pytest.raises(ValueError):
            PrimerContext(five_p_seq=five_p_seq, three_p_seq=three_p_seq)

    def test_exactly_five_bases_allowed(self):
        context = PrimerContext(five_p_seq="GTCAG", three_p_seq="CCGCC")
        assert context.five_p_anchor == "gtcag"


class TestFindCandidates:
    def test_forward_strand(self):
        assert find_candidates(tagged_read("AAAAAAAA"), PrimerContext()) == ["aaaaaaaa"]

    def test_reverse_strand_is_normalised(self):
        seq = reverse_complement(tagged_read("GAGAGAGA"))
        assert find_candidates(seq, PrimerContext()) == ["gagagaga"]

    def test_forward_before_reverse(self):
        seq = tagged_read("AAAAAAAA") + reverse_complement(tagged_read("GAGAGAGA"))
        assert find_candidates(seq, PrimerContext()) == ["aaaaaaaa", "gagagaga"]

    def test_no_anchors(self):
        assert find_candidates(JUNK_SEQ, PrimerContext()) == []

    @pytest.mark.parametrize("length,found", [(7, False), (8, True), (16, True), (17, False)])
    def test_tag_length_bounds(self, length, found):
        tag = "T" * length
        candidates = find_candidates(tagged_read(tag), PrimerContext())
        assert (candidates == [tag.lower()]) is found
        if not found:
            assert candidates == []


class TestSequencingRead:
    def test_resolved_forward(self, reference):
        outcome = SequencingRead(tagged_read("AAAAAAAA")).match_to_reference(reference)
        assert outcome.status is MatchStatus.RESOLVED
        assert outcome.resolved
        assert outcome.key == "aaaaaaaa"
        assert outcome.n_found == 1

    def test_resolved_reverse_complement(self, reference):
        seq = tagged_read("TTGCATTGCATTGCAT")
        forward = classify(seq, reference)
        reverse = classify(reverse_complement(seq), reference)
        assert forward.key == reverse.key == "ttgcattgcattgcat"

    @pytest.mark.parametrize("transform", [str.lower, str.upper, str.swapcase])
    def test_case_insensitive_read(self, reference, transform):
        outcome = classify(transform(tagged_read("GAGAGAGA")), reference)
        assert outcome.key == "gagagaga"

    def test_case_insensitive_reference(self):
        reference = BarcodeReference({"AAAAAAAA": "geneA"})
        assert classify(tagged_read("aaaaaaaa"), reference).key == "aaaaaaaa"

    def test_no_anchor_is_no_match(self, reference):
        read = SequencingRead(JUNK_SEQ)
        outcome = read.match_to_reference(reference)
        assert read.empty()
        assert outcome.status is MatchStatus.NO_CANDIDATE
        assert outcome.key == NO_MATCH

    def test_unknown_span_is_no_match(self, reference):
        outcome = classify(tagged_read("CTCTCTCTCT"), reference)
        assert outcome.candidates == ("ctctctctct",)
        assert outcome.status is MatchStatus.NO_CANDIDATE
        assert outcome.key == NO_MATCH

    def test_unknown_span_ignored_next_to_known_tag(self, reference):
        seq = tagged_read("CTCTCTCTCT") + tagged_read("AAAAAAAA")
        assert classify(seq, reference).key == "aaaaaaaa"

    def test_two_tags_are_ambiguous(self, reference):
        seq = tagged_read("AAAAAAAA") + tagged_read("GAGAGAGA")
        outcome = classify(seq, reference)
        assert outcome.status is MatchStatus.AMBIGUOUS
        assert outcome.n_found == 2
        assert outcome.key == NO_MATCH

    def test_same_tag_twice_is_ambiguous(self, reference):
        seq = tagged_read("AAAAAAAA") + reverse_complement(tagged_read("AAAAAAAA"))
        outcome = classify(seq, reference)
        assert outcome.status is MatchStatus.AMBIGUOUS
        assert outcome.n_found == 2

    def test_custom_context(self, reference):
        context = PrimerContext(five_p_seq="GGGGGACGTA", three_p_seq="TTGCAGGG")
        seq = "CCACGTAgagagagaTTGCACC"
        assert classify(seq, reference, context).key == "gagagaga"
        assert classify(tagged_read("GAGAGAGA"), reference, context).key == NO_MATCH


class TestNonNucleotideInput:
    @pytest.mark.parametrize("seq", [
        "GGCGG" + "AAAAééAA" + "CTGAC",
        "GTCAG" + "AAAAééAA" + "CCGCC",
    ])
    def test_non_ascii_span_is_no_match(self, reference, seq):
        outcome = classify(seq, reference)
        assert outcome.candidates == ()
        assert outcome.key == NO_MATCH

    def test_non_ascii_elsewhere_in_read(self, reference):
        seq = "éé" + reverse_complement(tagged_read("AAAAAAAA")) + "ü"
        assert classify(seq, reference).key == "aaaaaaaa"
