# ================================================================================
# Snapback primer assembly and design orchestration
#
# create_snapback validates every input before any thermodynamic work, then
# chooses the tailed primer, grows the stem, assembles the primer sequence and
# collects the reporting melting temperatures.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
from collections.abc import Mapping
from functools import partial

import primer3
from loguru import logger

from usnapback.config import ReactionConditions, SnapbackConfig
from usnapback.constants import (
    INNER_LOOP_MISMATCH_LEN,
    MAX_AMPLICON_LEN,
    SNV_BASE_BUFFER,
    TERMINAL_MISMATCH_LEN,
)
from usnapback.designer.models import (
    AlleleTmDiffs,
    ExtendedSnapbackSegments,
    FinalSnapback,
    MeltingTempDiffs,
    PrimerLengths,
    SnapbackDescriptor,
    SNVSite,
    StemLocation,
    UnextendedSnapbackSegments,
)
from usnapback.designer.stem import (
    create_stem,
    run_concurrently,
    stem_melting_temps,
    use_forward_primer,
    validate_primer_lengths,
    validate_snv_in_sequence,
)
from usnapback.exceptions import (
    AmpliconTooLongError,
    InputValidationError,
    InvalidSequenceError,
    SNVTooCloseError,
)
from usnapback.thermo.gateway import ThermoGateway, resolve_gateway
from usnapback.thermo.tables import HairpinLoopModel
from usnapback.utils.sequence import (
    complement_base,
    is_valid_base,
    is_valid_dna_sequence,
    rev_comp_snv,
    reverse_complement,
)


def snv_too_close_to_primer(
    seq_len: int, primer_len: int, comp_primer_len: int, snv_index: int
) -> bool:
    """True if the minimal stem around the SNV would overlap either primer."""
    return (
        snv_index - SNV_BASE_BUFFER < primer_len
        or snv_index + SNV_BASE_BUFFER > seq_len - comp_primer_len - 1
    )


def validate_stem_location(
    stem_location: StemLocation | Mapping, seq_len: int, snv_index: int
) -> StemLocation:
    """Shape, ordering and bounds checks; the SNV must lie inside the stem."""
    if isinstance(stem_location, Mapping) and set(stem_location) == {"start", "end"}:
        stem_location = StemLocation(stem_location["start"], stem_location["end"])
    if not isinstance(stem_location, StemLocation):
        raise InputValidationError(
            f"stem_location must provide start and end, got {stem_location!r}",
            "stem_location",
            stem_location,
        )

    start, end = stem_location.start, stem_location.end
    for name, value in (("start", start), ("end", end)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InputValidationError(
                f"stem_location.{name} must be a non-negative integer, got {value!r}",
                "stem_location",
                stem_location,
            )
    if start > end:
        raise InputValidationError(
            f"stem_location start ({start}) must not exceed end ({end})",
            "stem_location",
            stem_location,
        )
    if end >= seq_len:
        raise InputValidationError(
            f"stem_location end ({end}) is outside a sequence of length {seq_len}",
            "stem_location",
            stem_location,
        )
    if not stem_location.contains(snv_index):
        raise InputValidationError(
            f"SNV index {snv_index} lies outside the stem [{start}, {end}]",
            "stem_location",
            stem_location,
        )
    return stem_location


def build_final_snapback(
    target_seq_strand: str,
    snv_site: SNVSite | Mapping,
    primer_lens: PrimerLengths | Mapping,
    stem_location: StemLocation | Mapping,
    tail_base_at_snv: str,
) -> FinalSnapback:
    """
    Assemble the snapback primer on the strand whose 5' primer carries the tail.

    5'-[terminal mismatches][tail stem][inner-loop mismatches][primer]-3'

    The tail stem is the reverse complement of the stem region with the tail
    pairing ``tail_base_at_snv`` at the SNV. Each blocking mismatch repeats the
    amplicon base it faces, so it can pair neither Watson-Crick nor G·T.
    """
    if not is_valid_dna_sequence(target_seq_strand):
        raise InvalidSequenceError(target_seq_strand, "target_seq_strand")
    seq_len = len(target_seq_strand)
    snv = validate_snv_in_sequence(target_seq_strand, snv_site)
    lens = validate_primer_lengths(primer_lens, seq_len)
    stem = validate_stem_location(stem_location, seq_len, snv.index)
    if stem.start < lens.primer_len or stem.end > seq_len - lens.comp_primer_len - 1:
        raise InputValidationError(
            f"stem_location [{stem.start}, {stem.end}] overlaps a primer; it must lie "
            f"within [{lens.primer_len}, {seq_len - lens.comp_primer_len - 1}]",
            "stem_location",
            stem,
        )
    if not is_valid_base(tail_base_at_snv):
        raise InputValidationError(
            f"tail_base_at_snv must be one of A/C/G/T, got {tail_base_at_snv!r}",
            "tail_base_at_snv",
            tail_base_at_snv,
        )

    snv_offset = snv.index - stem.start
    wild_region = target_seq_strand[stem.start : stem.end + 1]
    paired_region = (
        wild_region[:snv_offset]
        + complement_base(tail_base_at_snv)
        + wild_region[snv_offset + 1 :]
    )
    loop_start = stem.start - INNER_LOOP_MISMATCH_LEN

    unextended = UnextendedSnapbackSegments(
        terminal_mismatches=target_seq_strand[
            stem.end + 1 : stem.end + 1 + TERMINAL_MISMATCH_LEN
        ][::-1],
        stem=reverse_complement(paired_region),
        inner_loop_mismatches=target_seq_strand[loop_start : stem.start][::-1],
        primer=target_seq_strand[: lens.primer_len],
    )
    extended = ExtendedSnapbackSegments(
        five_prime_inner_loop_mismatches=unextended.inner_loop_mismatches,
        stuff_between=target_seq_strand[:loop_start],
        three_prime_inner_loop_mismatches=target_seq_strand[loop_start : stem.start],
        three_prime_stem=paired_region,
        snv_index_in_three_prime_stem=snv_offset,
    )
    return FinalSnapback(
        snapback_seq=unextended.sequence, unextended=unextended, extended=extended
    )


def calculate_melting_temp_differences(
    target_seq_strand: str,
    snv_site: SNVSite | Mapping,
    stem_location: StemLocation | Mapping,
    tail_on_forward_primer: bool,
    *,
    loop_model: HairpinLoopModel | str | None = None,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> MeltingTempDiffs:
    """
    Wild/variant hairpin Tm separation for every primer and tail allele.

    ``target_seq_strand``, ``snv_site`` and ``stem_location`` describe the
    strand the tail was designed on; ``tail_on_forward_primer`` says whether
    that is the forward strand. The same stem bases are evaluated with the tail
    on the opposite primer by mirroring onto the reverse complement.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)
    loop_model = loop_model or config.search_parameters.loop_model

    snv = validate_snv_in_sequence(target_seq_strand, snv_site)
    seq_len = len(target_seq_strand)
    stem = validate_stem_location(stem_location, seq_len, snv.index)
    if not isinstance(tail_on_forward_primer, bool):
        raise InputValidationError(
            f"tail_on_forward_primer must be a bool, got {tail_on_forward_primer!r}",
            "tail_on_forward_primer",
            tail_on_forward_primer,
        )

    strands = {
        "designed": (target_seq_strand, snv, stem),
        "opposite": (
            reverse_complement(target_seq_strand),
            rev_comp_snv(snv, seq_len),
            stem.mirrored(seq_len),
        ),
    }
    tasks = {}
    for name, (seq, site, location) in strands.items():
        temps = partial(
            stem_melting_temps,
            seq,
            site,
            location,
            loop_model=loop_model,
            gateway=gateway,
            config=config,
        )
        tasks[(name, "wild")] = partial(temps, complement_base(seq[site.index]))
        tasks[(name, "variant")] = partial(temps, complement_base(site.variant_base))

    results = run_concurrently(tasks, config.search_parameters.max_workers)
    diffs = {
        name: AlleleTmDiffs(
            match_wild=round(results[(name, "wild")].separation, 2),
            match_variant=round(results[(name, "variant")].separation, 2),
        )
        for name in strands
    }

    if tail_on_forward_primer:
        return MeltingTempDiffs(
            on_forward_primer=diffs["designed"], on_reverse_primer=diffs["opposite"]
        )
    return MeltingTempDiffs(
        on_forward_primer=diffs["opposite"], on_reverse_primer=diffs["designed"]
    )


def primer_tm(sequence: str, dna_conc_um: float, conditions: ReactionConditions) -> float:
    """Primer3 SantaLucia Tm of a free primer under the reaction conditions."""
    return round(
        primer3.bindings.calc_tm(
            seq=sequence,
            mv_conc=conditions.mono_conc,
            dv_conc=conditions.mg_conc,
            dntp_conc=conditions.dntp_conc,
            dna_conc=dna_conc_um * 1000,  # nM
            tm_method="santalucia",
            salt_corrections_method="santalucia",
        ),
        2,
    )


def _validate_target_tm(target_snap_melt_temp: object) -> float:
    if (
        isinstance(target_snap_melt_temp, bool)
        or not isinstance(target_snap_melt_temp, (int, float))
        or not math.isfinite(target_snap_melt_temp)
        or target_snap_melt_temp <= 0
    ):
        raise InputValidationError(
            f"target_snap_melt_temp must be a finite positive temperature (°C), got "
            f"{target_snap_melt_temp!r}",
            "target_snap_melt_temp",
            target_snap_melt_temp,
        )
    return float(target_snap_melt_temp)


def create_snapback(
    target_seq_strand: str,
    primer_len: int,
    comp_primer_len: int,
    snv_site: SNVSite | Mapping,
    target_snap_melt_temp: float,
    *,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> SnapbackDescriptor:
    """
    Design a snapback primer for an SNV.

    Parameters
    ----------
    target_seq_strand : str
        Amplicon, forward strand, 5' to 3'.
    primer_len : int
        Forward primer length.
    comp_primer_len : int
        Reverse primer length.
    snv_site : SNVSite | Mapping
        SNV position and variant base on the forward strand.
    target_snap_melt_temp : float
        Wild-type hairpin melting temperature to reach (°C).
    gateway : ThermoGateway | None
        Thermodynamics source. Resolved from ``config`` when omitted.
    config : SnapbackConfig | None
        Reaction conditions and search settings.

    Returns
    -------
    SnapbackDescriptor
        The assembled primer and its reporting data.

    Raises
    ------
    InputValidationError
        For any malformed or out-of-range input, checked before any
        thermodynamic computation.
    SnapbackTmNotReachedError
        If no stem between the primers reaches the target Tm.
    """
    config = config or SnapbackConfig()

    # Sequence and amplicon length
    if not is_valid_dna_sequence(target_seq_strand):
        raise InvalidSequenceError(target_seq_strand, "target_seq_strand")
    seq_len = len(target_seq_strand)
    if seq_len > MAX_AMPLICON_LEN:
        raise AmpliconTooLongError(
            f"Amplicon length {seq_len} exceeds maximum allowed length of "
            f"{MAX_AMPLICON_LEN}",
            "target_seq_strand",
            seq_len,
        )

    # Primer lengths
    forward_lens = validate_primer_lengths(
        PrimerLengths(primer_len, comp_primer_len), seq_len
    )

    # SNV
    snv = validate_snv_in_sequence(target_seq_strand, snv_site)
    if snv_too_close_to_primer(seq_len, primer_len, comp_primer_len, snv.index):
        raise SNVTooCloseError(
            f"SNV at index {snv.index} is too close to a primer: {SNV_BASE_BUFFER} bases "
            f"are needed between the SNV and the primers "
            f"(forward primer ends at {primer_len - 1}, reverse primer starts at "
            f"{seq_len - comp_primer_len})",
            "snv_site",
            snv.index,
        )

    target_tm = _validate_target_tm(target_snap_melt_temp)

    gateway = gateway or resolve_gateway(config)
    logger.info(
        f"Designing snapback for {seq_len} bp amplicon, SNV {snv.index} "
        f"{target_seq_strand[snv.index]}>{snv.variant_base}, target {target_tm} °C"
    )

    orientation = use_forward_primer(
        target_seq_strand, snv, gateway=gateway, config=config
    )
    if orientation.tail_on_forward_primer:
        strand, strand_snv, lens = target_seq_strand, snv, forward_lens
    else:
        strand = reverse_complement(target_seq_strand)
        strand_snv = rev_comp_snv(snv, seq_len)
        lens = forward_lens.swapped()

    tail_base = orientation.best_snapback_tail_base_at_snv
    search_model = config.search_parameters.loop_model
    stem = create_stem(
        strand,
        strand_snv,
        lens,
        tail_base,
        target_tm,
        loop_model=search_model,
        gateway=gateway,
        config=config,
    )
    final = build_final_snapback(strand, strand_snv, lens, stem.location, tail_base)
    diffs = calculate_melting_temp_differences(
        strand,
        strand_snv,
        stem.location,
        orientation.tail_on_forward_primer,
        loop_model=search_model,
        gateway=gateway,
        config=config,
    )

    # The search model's Tms come with the stem; only the other model is computed
    model_tms = {search_model: stem.melting_temps}
    for model in HairpinLoopModel:
        if model not in model_tms:
            model_tms[model] = stem_melting_temps(
                strand,
                strand_snv,
                stem.location,
                tail_base,
                loop_model=model,
                gateway=gateway,
                config=config,
            )

    conditions = config.reaction_conditions
    limiting_primer_seq = reverse_complement(strand[seq_len - lens.comp_primer_len :])
    forward_stem = (
        stem.location
        if orientation.tail_on_forward_primer
        else stem.location.mirrored(seq_len)
    )

    descriptor = SnapbackDescriptor(
        snapback_seq=final.snapback_seq,
        tail_on_forward_primer=orientation.tail_on_forward_primer,
        matches_wild=orientation.snapback_tail_matches_wild,
        snapback_melting_tms=stem.melting_temps,
        rochester_tms=model_tms[HairpinLoopModel.ROCHESTER],
        santalucia_hicks_tms=model_tms[HairpinLoopModel.SANTALUCIA_HICKS],
        limiting_primer_seq=limiting_primer_seq,
        melting_temp_diffs=diffs,
        stem_location=forward_stem,
        unextended=final.unextended,
        extended=final.extended,
        limiting_primer_tm=primer_tm(
            limiting_primer_seq, conditions.limiting_primer_conc, conditions
        ),
        snapback_primer_tm=primer_tm(
            final.unextended.primer, conditions.snapback_primer_conc, conditions
        ),
    )
    logger.info(
        f"Snapback primer {descriptor.snapback_seq} "
        f"(wild {descriptor.snapback_melting_tms.wild_tm} °C, "
        f"variant {descriptor.snapback_melting_tms.variant_tm} °C)"
    )
    return descriptor
