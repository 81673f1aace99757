# ================================================================================
# DNA sequence and variant helpers
#
# All transforms reject anything that is not an uppercase A/C/G/T string.
# ================================================================================

from __future__ import annotations

import re
from collections.abc import Mapping

from usnapback.designer.models import Mismatch, SNVSite
from usnapback.exceptions import InputValidationError, InvalidSequenceError

DNA_BASES = "ACGT"
COMPLEMENT = {"A": "T", "T": "A", "C": "G", "G": "C"}

_COMPLEMENT_TABLE = str.maketrans(COMPLEMENT)
_DNA_PATTERN = re.compile(r"[ACGT]+")
_WHITESPACE = re.compile(r"\s+")

# Exact key sets accepted for an SNV mapping, each paired with its base key.
SNV_KEY_SETS = {
    frozenset({"index", "variantBase"}): "variantBase",
    frozenset({"index", "variant_base"}): "variant_base",
}
MISMATCH_KEYS = frozenset({"position", "type"})


def is_valid_dna_sequence(seq: object) -> bool:
    """True iff ``seq`` is a non-empty string of uppercase A, C, G and T."""
    return isinstance(seq, str) and _DNA_PATTERN.fullmatch(seq) is not None


def _require_dna(seq: object, field: str = "sequence") -> str:
    if not is_valid_dna_sequence(seq):
        raise InvalidSequenceError(seq, field)
    return seq


def complement_sequence(seq: str) -> str:
    """Base-wise complement, read in the same direction."""
    return _require_dna(seq).translate(_COMPLEMENT_TABLE)


def reverse_sequence(seq: str) -> str:
    return _require_dna(seq)[::-1]


def reverse_complement(seq: str) -> str:
    return complement_sequence(seq)[::-1]


def complement_base(base: str) -> str:
    if not is_valid_base(base):
        raise InvalidSequenceError(base, "base")
    return COMPLEMENT[base]


def is_valid_base(base: object) -> bool:
    return isinstance(base, str) and len(base) == 1 and base in DNA_BASES


def is_self_complementary(seq: str) -> bool:
    """True iff ``seq`` reads the same as its reverse complement.

    Odd-length sequences can never satisfy this, since the middle base would
    have to be its own complement.
    """
    if len(_require_dna(seq)) % 2:
        return False
    return seq == reverse_complement(seq)


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def is_valid_snv_object(obj: object) -> bool:
    """
    Strict shape check for an SNV.

    Accepts an :class:`SNVSite` or a mapping with exactly the keys ``index``
    and ``variantBase`` (``variant_base`` is accepted in place of the latter).
    """
    if isinstance(obj, SNVSite):
        index, base = obj.index, obj.variant_base
    elif isinstance(obj, Mapping) and frozenset(obj.keys()) in SNV_KEY_SETS:
        index, base = obj["index"], obj[SNV_KEY_SETS[frozenset(obj.keys())]]
    else:
        return False
    return _is_non_negative_int(index) and is_valid_base(base)


def is_valid_mismatch_object(obj: object) -> bool:
    """
    Strict shape check for a mismatch.

    Accepts a :class:`Mismatch` or a mapping with exactly the keys
    ``position`` and ``type``.
    """
    if isinstance(obj, Mismatch):
        position, base = obj.position, obj.type
    elif isinstance(obj, Mapping) and set(obj.keys()) == MISMATCH_KEYS:
        position, base = obj["position"], obj["type"]
    else:
        return False
    return _is_non_negative_int(position) and is_valid_base(base)


def to_snv_site(obj: object, field: str = "snv_site") -> SNVSite:
    """Validate ``obj`` and return it as an :class:`SNVSite`."""
    if not is_valid_snv_object(obj):
        raise InputValidationError(
            f"Invalid SNV for {field}: expected index >= 0 and variantBase in A/C/G/T, "
            f"got {obj!r}",
            field,
            obj,
        )
    if isinstance(obj, SNVSite):
        return obj
    base_key = SNV_KEY_SETS[frozenset(obj.keys())]
    return SNVSite(index=obj["index"], variant_base=obj[base_key])


def to_mismatch(obj: object, field: str = "mismatch") -> Mismatch:
    """Validate ``obj`` and return it as a :class:`Mismatch`."""
    if not is_valid_mismatch_object(obj):
        raise InputValidationError(
            f"Invalid mismatch for {field}: expected position >= 0 and type in A/C/G/T, "
            f"got {obj!r}",
            field,
            obj,
        )
    if isinstance(obj, Mismatch):
        return obj
    return Mismatch(position=obj["position"], type=obj["type"])


def rev_comp_snv(snv: SNVSite | Mapping, seq_len: int) -> SNVSite:
    """Express an SNV on the reverse-complement strand of a ``seq_len`` sequence."""
    site = to_snv_site(snv, "snv")
    if not _is_non_negative_int(seq_len) or seq_len == 0:
        raise InputValidationError(
            f"seq_len must be a positive integer, got {seq_len!r}", "seq_len", seq_len
        )
    if site.index >= seq_len:
        raise InputValidationError(
            f"SNV index {site.index} is outside a sequence of length {seq_len}",
            "snv",
            site.index,
        )
    return SNVSite(
        index=seq_len - 1 - site.index, variant_base=COMPLEMENT[site.variant_base]
    )


def build_mismatch_sequence(sequence: str, mismatch: Mismatch | Mapping) -> str:
    """Return ``sequence`` with the mismatch base substituted at its position."""
    _require_dna(sequence)
    mm = to_mismatch(mismatch)
    if mm.position >= len(sequence):
        raise InputValidationError(
            f"Mismatch position {mm.position} is outside a sequence of length "
            f"{len(sequence)}",
            "mismatch",
            mm.position,
        )
    return sequence[: mm.position] + mm.type + sequence[mm.position + 1 :]


def normalize_amplicon(raw: object) -> str:
    """
    Clean user-supplied amplicon text.

    Removes all whitespace (including line breaks from pasted FASTA bodies) and
    upper-cases the result before validating it.
    """
    if not isinstance(raw, str):
        raise InvalidSequenceError(raw, "amplicon")
    cleaned = _WHITESPACE.sub("", raw).upper()
    return _require_dna(cleaned, "amplicon")
