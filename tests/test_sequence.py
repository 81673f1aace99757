# ================================================================================
# Tests for DNA sequence and variant helpers
# ================================================================================

import pytest

from conftest import AMPLICON, SNV_INDEX, PenaltyGateway
from usnapback.designer.models import Mismatch, SNVSite
from usnapback.designer.snapback import create_snapback
from usnapback.exceptions import InputValidationError, InvalidSequenceError
from usnapback.utils.sequence import (
    build_mismatch_sequence,
    complement_sequence,
    is_self_complementary,
    is_valid_dna_sequence,
    is_valid_mismatch_object,
    is_valid_snv_object,
    normalize_amplicon,
    rev_comp_snv,
    reverse_complement,
    reverse_sequence,
    to_snv_site,
)

VALID_SEQUENCES = ["A", "ACGT", "GATTACA", "CCCCGGGG", "ATGCGTACCTGAGCTTCAGG"]
INVALID_SEQUENCES = ["", "acgt", "ACGt", "AC GT", "ACGU", "ACGN", "AC-GT", "ACGT\n", None, 42, ["A"]]


class TestIsValidDNASequence:
    @pytest.mark.parametrize("seq", VALID_SEQUENCES)
    def test_valid(self, seq):
        assert is_valid_dna_sequence(seq)

    @pytest.mark.parametrize("seq", INVALID_SEQUENCES)
    def test_invalid(self, seq):
        """Empty, lowercase, whitespace, non-ACGT and non-string inputs are rejected."""
        assert not is_valid_dna_sequence(seq)


class TestTransforms:
    def test_complement(self):
        assert complement_sequence("ACGTTG") == "TGCAAC"

    def test_reverse(self):
        assert reverse_sequence("ACGTTG") == "GTTGCA"

    def test_reverse_complement(self):
        assert reverse_complement("ACGTTG") == "CAACGT"

    @pytest.mark.parametrize("seq", VALID_SEQUENCES)
    def test_reverse_complement_is_involutive(self, seq):
        assert reverse_complement(reverse_complement(seq)) == seq

    @pytest.mark.parametrize("transform", [complement_sequence, reverse_complement, reverse_sequence])
    @pytest.mark.parametrize("seq", INVALID_SEQUENCES)
    def test_transforms_reject_invalid(self, transform, seq):
        with pytest.raises(InvalidSequenceError, match="Invalid DNA sequence"):
            transform(seq)


class TestSelfComplementary:
    def test_palindrome(self):
        assert is_self_complementary("GAATTC")
        assert is_self_complementary("ACGT")

    def test_not_palindrome(self):
        assert not is_self_complementary("GAATTG")

    @pytest.mark.parametrize("seq", ["A", "ACG", "GAATC", "CCCGGGA"])
    def test_odd_length_never_self_complementary(self, seq):
        assert not is_self_complementary(seq)

    @pytest.mark.parametrize("seq", VALID_SEQUENCES)
    def test_matches_reverse_complement(self, seq):
        assert is_self_complementary(seq) == (seq == reverse_complement(seq))


class TestShapeValidators:
    def test_snv_dataclass(self):
        assert is_valid_snv_object(SNVSite(index=0, variant_base="T"))

    def test_snv_mapping(self):
        assert is_valid_snv_object({"index": 5, "variantBase": "G"})
        assert is_valid_snv_object({"index": 5, "variant_base": "G"})

    def test_to_snv_site_accepts_both_key_spellings(self):
        expected = SNVSite(index=5, variant_base="T")
        assert to_snv_site({"index": 5, "variantBase": "T"}) == expected
        assert to_snv_site({"index": 5, "variant_base": "T"}) == expected

    @pytest.mark.parametrize(
        "obj",
        [
            None,
            [5, "G"],
            {"index": 5},
            {"index": 5, "variant_base": "G", "extra": 1},
            {"index": 5, "variantBase": "G", "variant_base": "G"},
            {"index": 5, "variantbase": "G"},
            {"index": -1, "variantBase": "G"},
            {"index": 5, "variantBase": "N"},
            {"index": -1, "variant_base": "G"},
            {"index": 1.0, "variant_base": "G"},
            {"index": True, "variant_base": "G"},
            {"index": 5, "variant_base": "g"},
            {"index": 5, "variant_base": "GA"},
            {"index": 5, "variant_base": "N"},
            SNVSite(index=-2, variant_base="A"),
        ],
    )
    def test_snv_rejects(self, obj):
        assert not is_valid_snv_object(obj)

    def test_mismatch_shapes(self):
        assert is_valid_mismatch_object(Mismatch(position=3, type="A"))
        assert is_valid_mismatch_object({"position": 0, "type": "C"})
        assert not is_valid_mismatch_object({"position": 0, "base": "C"})
        assert not is_valid_mismatch_object({"position": "0", "type": "C"})
        assert not is_valid_mismatch_object({"index": 0, "variant_base": "C"})


class TestRevCompSNV:
    def test_mirror(self):
        """Index 2 of a 10-mer sits at index 7 on the other strand, base complemented."""
        assert rev_comp_snv(SNVSite(index=2, variant_base="A"), 10) == SNVSite(
            index=7, variant_base="T"
        )

    def test_mapping_input(self):
        assert rev_comp_snv({"index": 0, "variant_base": "G"}, 4) == SNVSite(3, "C")
        assert rev_comp_snv({"index": 0, "variantBase": "G"}, 4) == SNVSite(3, "C")

    def test_round_trip(self):
        snv = SNVSite(index=13, variant_base="C")
        assert rev_comp_snv(rev_comp_snv(snv, 40), 40) == snv

    def test_index_out_of_range(self):
        with pytest.raises(InputValidationError):
            rev_comp_snv(SNVSite(index=10, variant_base="A"), 10)

    def test_bad_shape(self):
        with pytest.raises(InputValidationError):
            rev_comp_snv({"index": 1}, 10)


class TestMismatchSequence:
    def test_substitution(self):
        assert build_mismatch_sequence("ACGTAC", Mismatch(position=2, type="T")) == "ACTTAC"

    def test_position_out_of_range(self):
        with pytest.raises(InputValidationError):
            build_mismatch_sequence("ACGT", Mismatch(position=4, type="A"))


class TestNormalizeAmplicon:
    def test_strips_whitespace_and_uppercases(self):
        assert normalize_amplicon("  acgt\nACGT\t gg ") == "ACGTACGTGG"

    @pytest.mark.parametrize("raw", ["", "   ", "ACGTN", None])
    def test_rejects(self, raw):
        with pytest.raises(InvalidSequenceError):
            normalize_amplicon(raw)


class TestSnvMappingThroughDesign:
    def test_camel_case_snv_mapping(self, config):
        """An ``{index, variantBase}`` mapping designs the same primer as an SNVSite."""
        gateway = PenaltyGateway("A")
        from_mapping = create_snapback(
            AMPLICON,
            20,
            20,
            {"index": SNV_INDEX, "variantBase": "A"},
            50.0,
            gateway=gateway,
            config=config,
        )
        from_site = create_snapback(
            AMPLICON, 20, 20, SNVSite(SNV_INDEX, "A"), 50.0, gateway=gateway, config=config
        )
        assert from_mapping.snapback_seq == from_site.snapback_seq
        assert from_mapping.stem_location.contains(SNV_INDEX)
