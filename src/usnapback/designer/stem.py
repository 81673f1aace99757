# ================================================================================
# Snapback stem selection
#
# Picks the primer that carries the tail and the tail base facing the SNV, then
# grows the hairpin stem outwards from the SNV until the wild-type hairpin
# reaches the requested melting temperature.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from loguru import logger

from usnapback.config import SnapbackConfig
from usnapback.constants import (
    INNER_LOOP_MISMATCH_LEN,
    MIN_PRIMER_LEN,
    SNV_BASE_BUFFER,
)
from usnapback.designer.models import (
    MeltingTemps,
    Mismatch,
    PrimerLengths,
    SNVSite,
    StemLocation,
    StemResult,
    TailBaseChoice,
    TailOrientation,
)
from usnapback.exceptions import (
    InputValidationError,
    InvalidSequenceError,
    SnapbackTmNotReachedError,
    SNVTooCloseError,
)
from usnapback.thermo.gateway import ThermoGateway, resolve_gateway
from usnapback.thermo.tables import HairpinLoopModel
from usnapback.thermo.tm import calculate_snapback_tm_wittwer, get_stem_tm
from usnapback.utils.sequence import (
    build_mismatch_sequence,
    complement_base,
    is_valid_base,
    is_valid_dna_sequence,
    rev_comp_snv,
    reverse_complement,
    to_snv_site,
)


def run_concurrently(tasks: dict[str, Callable[[], object]], max_workers: int) -> dict:
    """Run independent zero-argument callables in threads, keyed like ``tasks``."""
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {key: executor.submit(task) for key, task in tasks.items()}
        return {key: future.result() for key, future in futures.items()}


def validate_snv_in_sequence(
    target_seq_strand: str, snv_site: SNVSite | Mapping, field: str = "snv_site"
) -> SNVSite:
    """Shape, bounds and reference-base checks for an SNV on a given strand."""
    if not is_valid_dna_sequence(target_seq_strand):
        raise InvalidSequenceError(target_seq_strand, "target_seq_strand")
    snv = to_snv_site(snv_site, field)
    if snv.index >= len(target_seq_strand):
        raise InputValidationError(
            f"SNV index {snv.index} is outside a sequence of length "
            f"{len(target_seq_strand)}",
            field,
            snv.index,
        )
    if target_seq_strand[snv.index] == snv.variant_base:
        raise InputValidationError(
            f"Variant base {snv.variant_base} equals the reference base at index "
            f"{snv.index}",
            field,
            snv.variant_base,
        )
    return snv


def minimal_stem(snv_index: int) -> StemLocation:
    """Smallest stem that keeps SNV_BASE_BUFFER paired bases on each side of the SNV."""
    return StemLocation(snv_index - SNV_BASE_BUFFER, snv_index + SNV_BASE_BUFFER)


def evaluate_snapback_tail_matching_options(
    init_stem: str,
    mismatch_pos: int,
    variant_base: str,
    *,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> TailBaseChoice:
    """
    Compare a tail matching the wild-type allele with one matching the variant.

    For each choice the stem is melted against both alleles; the choice with the
    larger wild/variant Tm separation wins, ties going to the wild-type match.

    Parameters
    ----------
    init_stem : str
        Wild-type stem bases on the extended strand.
    mismatch_pos : int
        SNV offset within ``init_stem``.
    variant_base : str
        Variant allele on the same strand.

    Returns
    -------
    TailBaseChoice
        Tail base at the SNV, the separation it achieves and whether it pairs
        with the wild-type allele.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)

    if not is_valid_dna_sequence(init_stem):
        raise InvalidSequenceError(init_stem, "init_stem")
    if (
        not isinstance(mismatch_pos, int)
        or isinstance(mismatch_pos, bool)
        or not 0 <= mismatch_pos < len(init_stem)
    ):
        raise InputValidationError(
            f"mismatch_pos must be an index into the {len(init_stem)} bp stem, "
            f"got {mismatch_pos!r}",
            "mismatch_pos",
            mismatch_pos,
        )
    wild_base = init_stem[mismatch_pos]
    if not is_valid_base(variant_base) or variant_base == wild_base:
        raise InputValidationError(
            f"variant_base must be A/C/G/T and differ from {wild_base}, got "
            f"{variant_base!r}",
            "variant_base",
            variant_base,
        )

    variant_stem = build_mismatch_sequence(
        init_stem, Mismatch(mismatch_pos, variant_base)
    )
    stem_tm = partial(get_stem_tm, gateway=gateway, config=config)
    tms = run_concurrently(
        {
            "wild_tail_wild": partial(stem_tm, init_stem),
            "wild_tail_variant": partial(
                stem_tm, init_stem, Mismatch(mismatch_pos, variant_base)
            ),
            "variant_tail_variant": partial(stem_tm, variant_stem),
            "variant_tail_wild": partial(
                stem_tm, variant_stem, Mismatch(mismatch_pos, wild_base)
            ),
        },
        config.search_parameters.max_workers,
    )

    wild_separation = abs(tms["wild_tail_wild"] - tms["wild_tail_variant"])
    variant_separation = abs(tms["variant_tail_variant"] - tms["variant_tail_wild"])
    matches_wild = wild_separation >= variant_separation
    logger.debug(
        f"Tail options for {init_stem}: wild match separates {wild_separation:.2f} °C, "
        f"variant match separates {variant_separation:.2f} °C"
    )

    return TailBaseChoice(
        tail_base_at_snv=complement_base(wild_base if matches_wild else variant_base),
        tm_separation=round(max(wild_separation, variant_separation), 2),
        matches_wild=matches_wild,
    )


def use_forward_primer(
    target_seq_strand: str,
    snv_site: SNVSite | Mapping,
    *,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> TailOrientation:
    """
    Decide whether the tail goes on the forward or the reverse primer.

    The minimal SNV-straddling stem is evaluated on both strands and the strand
    with the larger Tm separation wins, ties going to the forward primer. The
    returned tail base is expressed on the winning strand.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)
    snv = validate_snv_in_sequence(target_seq_strand, snv_site)

    seq_len = len(target_seq_strand)
    if not SNV_BASE_BUFFER <= snv.index <= seq_len - 1 - SNV_BASE_BUFFER:
        raise SNVTooCloseError(
            f"SNV at index {snv.index} is too close to the sequence edge; at least "
            f"{SNV_BASE_BUFFER} bases are required on each side",
            "snv_site",
            snv.index,
        )

    evaluate = partial(
        evaluate_snapback_tail_matching_options, gateway=gateway, config=config
    )
    stem = minimal_stem(snv.index)
    forward = evaluate(
        target_seq_strand[stem.start : stem.end + 1],
        SNV_BASE_BUFFER,
        snv.variant_base,
    )

    rc_seq = reverse_complement(target_seq_strand)
    rc_snv = rev_comp_snv(snv, seq_len)
    rc_stem = minimal_stem(rc_snv.index)
    reverse = evaluate(
        rc_seq[rc_stem.start : rc_stem.end + 1],
        SNV_BASE_BUFFER,
        rc_snv.variant_base,
    )

    on_forward = forward.tm_separation >= reverse.tm_separation
    chosen = forward if on_forward else reverse
    logger.info(
        f"Tail on {'forward' if on_forward else 'reverse'} primer "
        f"(separation {forward.tm_separation} vs {reverse.tm_separation} °C), "
        f"tail base {chosen.tail_base_at_snv} matches "
        f"{'wild-type' if chosen.matches_wild else 'variant'}"
    )
    return TailOrientation(
        tail_on_forward_primer=on_forward,
        best_snapback_tail_base_at_snv=chosen.tail_base_at_snv,
        snapback_tail_matches_wild=chosen.matches_wild,
    )


def stem_melting_temps(
    target_seq_strand: str,
    snv: SNVSite,
    stem: StemLocation,
    tail_base_at_snv: str,
    *,
    loop_model: HairpinLoopModel | str,
    gateway: ThermoGateway,
    config: SnapbackConfig,
) -> MeltingTemps:
    """
    Hairpin Tms for both alleles with the tail pairing ``tail_base_at_snv``.

    The loop spans the inner-loop mismatches, the primer and every amplicon
    base before the stem.
    """
    wild_base = target_seq_strand[snv.index]
    matched_base = complement_base(tail_base_at_snv)
    if matched_base not in (wild_base, snv.variant_base):
        raise InputValidationError(
            f"Tail base {tail_base_at_snv} pairs with neither allele "
            f"({wild_base}/{snv.variant_base})",
            "tail_base_at_snv",
            tail_base_at_snv,
        )

    position = snv.index - stem.start
    loop_len = stem.start + INNER_LOOP_MISMATCH_LEN
    wild_stem = target_seq_strand[stem.start : stem.end + 1]
    hairpin_tm = partial(
        calculate_snapback_tm_wittwer,
        loop_model=loop_model,
        gateway=gateway,
        config=config,
    )

    if matched_base == wild_base:
        return MeltingTemps(
            wild_tm=hairpin_tm(wild_stem, loop_len),
            variant_tm=hairpin_tm(
                wild_stem, loop_len, Mismatch(position, snv.variant_base)
            ),
        )

    variant_stem = build_mismatch_sequence(
        wild_stem, Mismatch(position, snv.variant_base)
    )
    return MeltingTemps(
        wild_tm=hairpin_tm(variant_stem, loop_len, Mismatch(position, wild_base)),
        variant_tm=hairpin_tm(variant_stem, loop_len),
    )


def validate_primer_lengths(
    primer_lens: PrimerLengths | Mapping, seq_len: int
) -> PrimerLengths:
    """Primer lengths must each reach MIN_PRIMER_LEN and leave sequence between them."""
    if isinstance(primer_lens, Mapping) and set(primer_lens) == {
        "primer_len",
        "comp_primer_len",
    }:
        primer_lens = PrimerLengths(
            primer_lens["primer_len"], primer_lens["comp_primer_len"]
        )
    if not isinstance(primer_lens, PrimerLengths):
        raise InputValidationError(
            f"primer_lens must provide primer_len and comp_primer_len, got {primer_lens!r}",
            "primer_lens",
            primer_lens,
        )

    for field in ("primer_len", "comp_primer_len"):
        value = getattr(primer_lens, field)
        if not isinstance(value, int) or isinstance(value, bool) or value < MIN_PRIMER_LEN:
            raise InputValidationError(
                f"{field} must be an integer >= {MIN_PRIMER_LEN}, got {value!r}",
                field,
                value,
            )
    total = primer_lens.primer_len + primer_lens.comp_primer_len
    if total >= seq_len:
        raise InputValidationError(
            f"primer_len + comp_primer_len ({total}) must be less than the sequence "
            f"length ({seq_len})",
            "primer_lens",
            total,
        )
    return primer_lens


def create_stem(
    target_seq_strand: str,
    snv_site: SNVSite | Mapping,
    primer_lens: PrimerLengths | Mapping,
    tail_base_at_snv: str,
    target_snap_melt_temp: float,
    *,
    loop_model: HairpinLoopModel | str | None = None,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> StemResult:
    """
    Grow the hairpin stem until the wild-type Tm reaches the target.

    Coordinates refer to the strand whose 5' primer carries the tail. The stem
    starts as the minimal SNV-straddling interval and widens by one base per
    step, never entering either primer's footprint. When both sides can grow,
    the extension giving the larger wild/variant separation is kept (ties grow
    left); otherwise the remaining side grows.

    Raises
    ------
    SNVTooCloseError
        If the minimal stem already overlaps a primer.
    SnapbackTmNotReachedError
        If the region between the primers is used up before the target is met.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)
    search = config.search_parameters
    loop_model = loop_model or search.loop_model

    snv = validate_snv_in_sequence(target_seq_strand, snv_site)
    lens = validate_primer_lengths(primer_lens, len(target_seq_strand))
    if not is_valid_base(tail_base_at_snv):
        raise InputValidationError(
            f"tail_base_at_snv must be one of A/C/G/T, got {tail_base_at_snv!r}",
            "tail_base_at_snv",
            tail_base_at_snv,
        )
    if (
        isinstance(target_snap_melt_temp, bool)
        or not isinstance(target_snap_melt_temp, (int, float))
        or not math.isfinite(target_snap_melt_temp)
    ):
        raise InputValidationError(
            f"target_snap_melt_temp must be a finite number, got {target_snap_melt_temp!r}",
            "target_snap_melt_temp",
            target_snap_melt_temp,
        )

    lowest_start = lens.primer_len
    highest_end = len(target_seq_strand) - lens.comp_primer_len - 1
    location = minimal_stem(snv.index)
    if location.start < lowest_start or location.end > highest_end:
        raise SNVTooCloseError(
            f"SNV at index {snv.index} is too close to a primer; the stem "
            f"[{location.start}, {location.end}] must lie within "
            f"[{lowest_start}, {highest_end}]",
            "snv_site",
            snv.index,
        )

    temps = partial(
        stem_melting_temps,
        target_seq_strand,
        snv,
        tail_base_at_snv=tail_base_at_snv,
        loop_model=loop_model,
        gateway=gateway,
        config=config,
    )
    threshold = target_snap_melt_temp - search.tm_acceptance_band
    state = StemResult(location, temps(location))
    logger.debug(
        f"Initial stem [{location.start}, {location.end}]: "
        f"wild {state.melting_temps.wild_tm} °C, variant {state.melting_temps.variant_tm} °C"
    )

    while state.melting_temps.wild_tm < threshold:
        current = state.location
        candidates = []
        if current.start > lowest_start:
            candidates.append(StemLocation(current.start - 1, current.end))
        if current.end < highest_end:
            candidates.append(StemLocation(current.start, current.end + 1))

        if not candidates:
            raise SnapbackTmNotReachedError(
                target_tm=target_snap_melt_temp,
                best_tm=state.melting_temps.wild_tm,
                start=current.start,
                end=current.end,
            )

        if len(candidates) == 1:
            state = StemResult(candidates[0], temps(candidates[0]))
        else:
            left, right = candidates
            results = run_concurrently(
                {"left": partial(temps, left), "right": partial(temps, right)},
                search.max_workers,
            )
            if results["left"].separation >= results["right"].separation:
                state = StemResult(left, results["left"])
            else:
                state = StemResult(right, results["right"])

        logger.debug(
            f"Stem [{state.location.start}, {state.location.end}]: "
            f"wild {state.melting_temps.wild_tm} °C, "
            f"variant {state.melting_temps.variant_tm} °C"
        )

    logger.info(
        f"Stem [{state.location.start}, {state.location.end}] "
        f"({state.location.length} bp) reaches {state.melting_temps.wild_tm} °C "
        f"(target {target_snap_melt_temp} °C)"
    )
    return state
