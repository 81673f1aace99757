# ================================================================================
# Data containers for snapback primer design
#
# Everything here is created fresh for one design call and never mutated once
# returned.
# ================================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class SNVSite:
    """Single-nucleotide variant: position in the amplicon and the variant base."""

    index: int
    variant_base: str


@dataclass(frozen=True)
class Mismatch:
    """Single-base substitution applied to one strand of a duplex."""

    position: int
    type: str


@dataclass(frozen=True)
class PrimerLengths:
    """
    Primer lengths on a strand.

        primer_len: primer at the 5' end of the strand
        comp_primer_len: primer binding the 3' end of the strand
    """

    primer_len: int
    comp_primer_len: int

    def swapped(self) -> PrimerLengths:
        return PrimerLengths(self.comp_primer_len, self.primer_len)


@dataclass(frozen=True)
class StemLocation:
    """Inclusive stem interval in strand coordinates."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def mirrored(self, seq_len: int) -> StemLocation:
        """Same bases expressed on the reverse-complement strand."""
        return StemLocation(seq_len - 1 - self.end, seq_len - 1 - self.start)


@dataclass(frozen=True)
class TailBaseChoice:
    """Outcome of comparing wild-matching and variant-matching tails."""

    tail_base_at_snv: str
    tm_separation: float
    matches_wild: bool


@dataclass(frozen=True)
class TailOrientation:
    """Which primer carries the tail and which base the tail puts at the SNV."""

    tail_on_forward_primer: bool
    best_snapback_tail_base_at_snv: str
    snapback_tail_matches_wild: bool


@dataclass(frozen=True)
class MeltingTemps:
    """Hairpin melting temperatures (°C) for the two alleles."""

    wild_tm: float
    variant_tm: float

    @property
    def separation(self) -> float:
        return abs(self.wild_tm - self.variant_tm)


@dataclass(frozen=True)
class StemResult:
    """Final state of the stem search."""

    location: StemLocation
    melting_temps: MeltingTemps


@dataclass(frozen=True)
class AlleleTmDiffs:
    """Wild/variant Tm separation for a tail matching each allele."""

    match_wild: float
    match_variant: float


@dataclass(frozen=True)
class MeltingTempDiffs:
    """Tm separations for every primer orientation and tail allele."""

    on_forward_primer: AlleleTmDiffs
    on_reverse_primer: AlleleTmDiffs


@dataclass(frozen=True)
class UnextendedSnapbackSegments:
    """The snapback primer as synthesized, 5' to 3'."""

    terminal_mismatches: str
    stem: str
    inner_loop_mismatches: str
    primer: str

    @property
    def sequence(self) -> str:
        return self.terminal_mismatches + self.stem + self.inner_loop_mismatches + self.primer


@dataclass(frozen=True)
class ExtendedSnapbackSegments:
    """
    The hairpin formed after extension.

        five_prime_inner_loop_mismatches: tail bases opening the loop
        stuff_between: primer plus amplicon bases before the stem's partner
        three_prime_inner_loop_mismatches: amplicon bases facing the inner mismatches
        three_prime_stem: amplicon bases pairing with the tail
        snv_index_in_three_prime_stem: SNV offset within three_prime_stem
    """

    five_prime_inner_loop_mismatches: str
    stuff_between: str
    three_prime_inner_loop_mismatches: str
    three_prime_stem: str
    snv_index_in_three_prime_stem: int

    @property
    def loop_len(self) -> int:
        return (
            len(self.five_prime_inner_loop_mismatches)
            + len(self.stuff_between)
            + len(self.three_prime_inner_loop_mismatches)
        )


@dataclass(frozen=True)
class FinalSnapback:
    """Assembled snapback primer and its segment breakdowns."""

    snapback_seq: str
    unextended: UnextendedSnapbackSegments
    extended: ExtendedSnapbackSegments


@dataclass(frozen=True)
class SnapbackDescriptor:
    """
    Result of a snapback design.

        snapback_seq: full snapback primer, 5' to 3'
        tail_on_forward_primer: True when the tail extends the forward primer
        matches_wild: True when the tail pairs perfectly with the wild-type allele
        snapback_melting_tms: hairpin Tms under the loop model used for the search
        rochester_tms: hairpin Tms with Rochester loop parameters
        santalucia_hicks_tms: hairpin Tms with SantaLucia-Hicks loop parameters
        limiting_primer_seq: the untailed primer, 5' to 3'
        melting_temp_diffs: Tm separation for every orientation and tail allele
        stem_location: stem in forward-strand coordinates
        unextended: segments of the primer as synthesized
        extended: segments of the hairpin after extension
        limiting_primer_tm: primer3 Tm of the limiting primer
        snapback_primer_tm: primer3 Tm of the snapback's priming segment
    """

    snapback_seq: str
    tail_on_forward_primer: bool
    matches_wild: bool
    snapback_melting_tms: MeltingTemps
    rochester_tms: MeltingTemps
    santalucia_hicks_tms: MeltingTemps
    limiting_primer_seq: str
    melting_temp_diffs: MeltingTempDiffs
    stem_location: StemLocation
    unextended: UnextendedSnapbackSegments
    extended: ExtendedSnapbackSegments
    limiting_primer_tm: float
    snapback_primer_tm: float

    def to_dict(self) -> dict:
        """JSON-ready representation."""
        data = asdict(self)
        data["extended"]["loop_len"] = self.extended.loop_len
        return data
