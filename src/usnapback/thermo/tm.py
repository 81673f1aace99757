# ================================================================================
# Melting temperature calculations
#
# Two-state van't Hoff melting for bimolecular duplexes and for the unimolecular
# snapback hairpin (stem duplex plus hairpin loop).
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
from collections.abc import Mapping

from usnapback.config import SnapbackConfig
from usnapback.constants import (
    GAS_CONSTANT,
    HAIRPIN_REFERENCE_CONC_UM,
    MIN_LOOP_LEN,
    SNV_BASE_BUFFER,
    T_KELVIN,
    TM_DECIMAL_PLACES,
)
from usnapback.designer.models import Mismatch
from usnapback.exceptions import (
    InfiniteTmError,
    InputValidationError,
    InvalidSequenceError,
    NonPhysicalTmError,
    SNVTooCloseError,
)
from usnapback.thermo.gateway import ThermoGateway, resolve_gateway
from usnapback.thermo.tables import HairpinLoopModel, get_hairpin_loop_params
from usnapback.utils.sequence import (
    is_self_complementary,
    is_valid_dna_sequence,
    to_mismatch,
)

# Denominators smaller than this are treated as zero
_DENOMINATOR_EPSILON = 1e-9


def _is_finite_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_finite(value: object, field: str) -> float:
    if not _is_finite_number(value):
        raise InputValidationError(
            f"{field} must be a finite number, got {value!r}", field, value
        )
    return float(value)


def _require_concentration(value: object, field: str) -> float:
    if not _is_finite_number(value) or value <= 0:
        raise InputValidationError(
            f"{field} must be a finite positive concentration (µM), got {value!r}",
            field,
            value,
        )
    return float(value)


def effective_concentration(
    conc_a: float, conc_b: float, self_complementary: bool
) -> float:
    """
    Strand concentration term CT (µM) of the van't Hoff equation.

    Self-complementary: [A]. Equimolar: ([A] + [B]) / 4. Otherwise the excess
    strand dominates: max - min / 2.
    """
    if self_complementary:
        return conc_a
    if conc_a == conc_b:
        return (conc_a + conc_b) / 4
    return max(conc_a, conc_b) - min(conc_a, conc_b) / 2


def calculate_tm(
    sum_delta_h: float,
    sum_delta_s: float,
    conc_a: float,
    conc_b: float | None = None,
    self_complementary: bool = False,
    salt_correction: float = 0.0,
) -> float:
    """
    Two-state melting temperature in °C.

    Tm = dH·1000 / (dS + salt_correction + R·ln(CT)) - 273.15

    Parameters
    ----------
    sum_delta_h : float
        Total enthalpy (kcal/mol).
    sum_delta_s : float
        Total entropy (cal/(K·mol)).
    conc_a : float
        Concentration of strand A (µM).
    conc_b : float | None
        Concentration of strand B (µM). Defaults to ``conc_a``.
    self_complementary : bool
        Use the single-strand concentration term.
    salt_correction : float
        Entropy salt correction (cal/(K·mol)).

    Returns
    -------
    float
        Melting temperature rounded to two decimals.

    Raises
    ------
    InputValidationError
        If an argument is not finite, a concentration is not positive or
        ``self_complementary`` is not a bool.
    InfiniteTmError
        If the denominator is effectively zero.
    NonPhysicalTmError
        If the temperature is at or below 0 K.
    """
    dH = _require_finite(sum_delta_h, "sum_delta_h")
    dS = _require_finite(sum_delta_s, "sum_delta_s")
    salt = _require_finite(salt_correction, "salt_correction")
    if not isinstance(self_complementary, bool):
        raise InputValidationError(
            f"self_complementary must be a bool, got {self_complementary!r}",
            "self_complementary",
            self_complementary,
        )
    conc_a = _require_concentration(conc_a, "conc_a")
    conc_b = conc_a if conc_b is None else _require_concentration(conc_b, "conc_b")

    ct_molar = effective_concentration(conc_a, conc_b, self_complementary) * 1e-6
    denominator = dS + salt + GAS_CONSTANT * math.log(ct_molar)
    if abs(denominator) < _DENOMINATOR_EPSILON:
        raise InfiniteTmError(
            f"Melting temperature is infinite: dS ({dS}) + salt ({salt}) + R·ln(CT) is zero"
        )

    tm_kelvin = dH * 1000 / denominator
    if tm_kelvin <= 0:
        raise NonPhysicalTmError(
            f"Melting temperature of {tm_kelvin:.2f} K is not physical "
            f"(dH={dH}, dS={dS}, salt={salt})"
        )
    return round(tm_kelvin - T_KELVIN, TM_DECIMAL_PLACES)


def calculate_snapback_tm_wittwer(
    stem_seq: str,
    loop_len: int,
    mismatch: Mismatch | Mapping | None = None,
    *,
    loop_model: HairpinLoopModel | str | None = None,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> float:
    """
    Melting temperature of a snapback hairpin.

    The stem duplex thermodynamics come from the gateway (with the mismatched
    pair when ``mismatch`` is given) and are combined with the hairpin loop
    increment for ``loop_len`` unpaired bases. Melting is unimolecular, so the
    concentration term is evaluated at 1 M where it vanishes.

    Parameters
    ----------
    stem_seq : str
        Stem bases on the extended strand, 5' to 3'.
    loop_len : int
        Unpaired bases closing the hairpin.
    mismatch : Mismatch | None
        Substitution on ``stem_seq`` that the tail does not pair with. Must be at
        least three bases from either stem end.
    loop_model : HairpinLoopModel | str | None
        Loop parameter set. Defaults to the configured search model.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)
    loop_model = loop_model or config.search_parameters.loop_model

    if not is_valid_dna_sequence(stem_seq):
        raise InvalidSequenceError(stem_seq, "stem_seq")
    if not isinstance(loop_len, int) or isinstance(loop_len, bool) or loop_len < MIN_LOOP_LEN:
        raise InputValidationError(
            f"loop_len must be an integer >= {MIN_LOOP_LEN}, got {loop_len!r}",
            "loop_len",
            loop_len,
        )

    mm = None
    if mismatch is not None:
        mm = to_mismatch(mismatch)
        if not SNV_BASE_BUFFER <= mm.position <= len(stem_seq) - 1 - SNV_BASE_BUFFER:
            raise SNVTooCloseError(
                f"Mismatch at position {mm.position} is too close to the end of a "
                f"{len(stem_seq)} bp stem; at least {SNV_BASE_BUFFER} paired bases "
                f"are required on each side",
                "mismatch",
                mm.position,
            )

    conc = config.reaction_conditions.snapback_primer_conc
    stem = gateway.get_thermo_params(stem_seq, conc, conc, mm)
    loop = get_hairpin_loop_params(loop_len, loop_model)

    return calculate_tm(
        stem.dH + loop.dH,
        stem.dS + loop.dS,
        HAIRPIN_REFERENCE_CONC_UM,
        self_complementary=True,
        salt_correction=stem.salt_correction,
    )


def get_stem_tm(
    sequence: str,
    mismatch: Mismatch | Mapping | None = None,
    *,
    gateway: ThermoGateway | None = None,
    config: SnapbackConfig | None = None,
) -> float:
    """
    Bimolecular melting temperature of ``sequence`` against its complement.

    The snapback primer is in excess over the limiting primer's product, which
    sets the strand concentration term.
    """
    config = config or SnapbackConfig()
    gateway = gateway or resolve_gateway(config)
    conditions = config.reaction_conditions

    params = gateway.get_thermo_params(
        sequence,
        conditions.snapback_primer_conc,
        conditions.limiting_primer_conc,
        mismatch,
    )
    return calculate_tm(
        params.dH,
        params.dS,
        conditions.snapback_primer_conc,
        conditions.limiting_primer_conc,
        self_complementary=is_self_complementary(sequence),
        salt_correction=params.salt_correction,
    )
