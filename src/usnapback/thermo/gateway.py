# ================================================================================
# Duplex thermodynamics gateway
#
# The stem search only needs summed enthalpy, entropy and a salt correction for
# a (possibly mismatched) duplex. Two providers implement that contract:
#   - RemoteThermoGateway queries an HTTP service returning a markup fragment
#     with <dH>, <dS> and <saltCorrection> tags.
#   - NearestNeighborGateway computes the same quantities locally from the
#     published nearest-neighbor tables, so designs run offline.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

import requests
from loguru import logger

from usnapback.config import GatewayParameters, ReactionConditions, SnapbackConfig
from usnapback.designer.models import Mismatch
from usnapback.exceptions import (
    GatewayError,
    InputValidationError,
    InvalidSequenceError,
    ResponseParseError,
    ThermodynamicsError,
)
from usnapback.thermo.tables import (
    SYMMETRY_CORRECTION,
    ThermoIncrement,
    get_initiation_params,
    get_nn_params,
    get_terminal_mismatch_params,
)
from usnapback.utils.sequence import (
    build_mismatch_sequence,
    complement_sequence,
    is_self_complementary,
    is_valid_dna_sequence,
    to_mismatch,
)


@dataclass(frozen=True)
class ThermoParams:
    """
    Duplex thermodynamics.

        dH: enthalpy (kcal/mol)
        dS: entropy (cal/(K·mol))
        salt_correction: entropy correction for cation concentration (cal/(K·mol))
    """

    dH: float
    dS: float
    salt_correction: float


def _check_concentration(value: object, field: str) -> float:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value <= 0
    ):
        raise InputValidationError(
            f"{field} must be a finite positive concentration (µM), got {value!r}",
            field,
            value,
        )
    return float(value)


def validate_request(
    sequence: str,
    concentration: float,
    limiting_conc: float,
    mismatch: Mismatch | Mapping | None,
) -> Mismatch | None:
    """Shared input checks for every gateway; returns the normalized mismatch."""
    if not is_valid_dna_sequence(sequence):
        raise InvalidSequenceError(sequence)
    _check_concentration(concentration, "concentration")
    _check_concentration(limiting_conc, "limiting_conc")
    if mismatch is None:
        return None

    mm = to_mismatch(mismatch)
    if mm.position >= len(sequence):
        raise InputValidationError(
            f"Mismatch position {mm.position} is outside a sequence of length "
            f"{len(sequence)}",
            "mismatch",
            mm.position,
        )
    if sequence[mm.position] == mm.type:
        raise InputValidationError(
            f"Mismatch base {mm.type} at position {mm.position} equals the sequence "
            f"base",
            "mismatch",
            mm,
        )
    return mm


class ThermoGateway(ABC):
    """Source of summed duplex thermodynamics."""

    @abstractmethod
    def get_thermo_params(
        self,
        sequence: str,
        concentration: float,
        limiting_conc: float,
        mismatch: Mismatch | Mapping | None = None,
    ) -> ThermoParams:
        """
        Thermodynamics of ``sequence`` paired with its exact complement.

        When ``mismatch`` is given, the base at ``mismatch.position`` of
        ``sequence`` is replaced by ``mismatch.type`` while the complementary
        strand is left untouched, producing one mismatched pair.

        Concentrations are in µM.
        """


# ================================================================================
# Local nearest-neighbor model
# ================================================================================


def sodium_equivalent(mono_conc: float, mg_conc: float, dntp_conc: float) -> float:
    """
    Sodium-equivalent cation concentration in mM.

    Free Mg2+ (total minus dNTP-chelated) is converted with the 120·sqrt([Mg])
    relation of von Ahsen et al. (2001).
    """
    free_mg = max(mg_conc - dntp_conc, 0.0)
    return mono_conc + 120 * math.sqrt(free_mg)


class NearestNeighborGateway(ThermoGateway):
    """Local SantaLucia (1998) nearest-neighbor duplex model."""

    def __init__(self, conditions: ReactionConditions | None = None):
        self.conditions = conditions or ReactionConditions()

    def salt_correction(self, seq_len: int) -> float:
        """SantaLucia entropy salt correction for a duplex of ``seq_len`` pairs."""
        na_eq = sodium_equivalent(
            self.conditions.mono_conc,
            self.conditions.mg_conc,
            self.conditions.dntp_conc,
        )
        if na_eq <= 0:
            raise ThermodynamicsError(
                "Salt correction needs a positive sodium-equivalent concentration"
            )
        return 0.368 * (seq_len - 1) * math.log(na_eq / 1000)

    def duplex_increment(
        self, sequence: str, mismatch: Mismatch | None = None
    ) -> ThermoIncrement:
        """Sum of initiation, stacking and symmetry terms for the duplex."""
        if len(sequence) < 2:
            raise InputValidationError(
                f"A duplex needs at least two base pairs, got {sequence!r}",
                "sequence",
                sequence,
            )

        bottom = complement_sequence(sequence)
        mismatch_steps: tuple[int, ...] = ()
        top = sequence
        if mismatch is not None:
            if not 0 < mismatch.position < len(sequence) - 1:
                raise InputValidationError(
                    f"Mismatch at position {mismatch.position} must have a paired "
                    f"neighbor on both sides",
                    "mismatch",
                    mismatch.position,
                )
            top = build_mismatch_sequence(sequence, mismatch)
            mismatch_steps = (mismatch.position - 1, mismatch.position)

        total = get_initiation_params(sequence[0]) + get_initiation_params(sequence[-1])
        for i in range(len(sequence) - 1):
            if i in mismatch_steps:
                total += get_terminal_mismatch_params(top[i : i + 2], bottom[i : i + 2])
            else:
                total += get_nn_params(top[i : i + 2])

        if mismatch is None and is_self_complementary(sequence):
            total += SYMMETRY_CORRECTION
        return total

    def get_thermo_params(
        self,
        sequence: str,
        concentration: float,
        limiting_conc: float,
        mismatch: Mismatch | Mapping | None = None,
    ) -> ThermoParams:
        mm = validate_request(sequence, concentration, limiting_conc, mismatch)
        increment = self.duplex_increment(sequence, mm)
        return ThermoParams(
            dH=increment.dH,
            dS=increment.dS,
            salt_correction=self.salt_correction(len(sequence)),
        )


# ================================================================================
# Remote service
# ================================================================================


def _find_tag(raw: str, tag: str) -> str | None:
    match = re.search(rf"<{tag}>\s*([^<]*?)\s*</{tag}>", raw)
    return match.group(1) if match else None


def _to_finite_float(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _retry_after_seconds(header: str | None) -> float:
    """Delay from a Retry-After header, 1 s when absent or an HTTP-date."""
    seconds = _to_finite_float(header)
    return seconds if seconds is not None and seconds >= 0 else 1.0


def parse_thermo_params_from_response(raw_response: str) -> ThermoParams:
    """
    Extract ``<dH>``, ``<dS>`` and ``<saltCorrection>`` from a service response.

    Raises
    ------
    TypeError
        If ``raw_response`` is not a string.
    ResponseParseError
        If any of the three tags is missing or not a finite number.
    """
    if not isinstance(raw_response, str):
        raise TypeError(
            f"raw_response must be a string, got {type(raw_response).__name__}"
        )

    values = {}
    for tag in ("dH", "dS", "saltCorrection"):
        value = _to_finite_float(_find_tag(raw_response, tag))
        if value is None:
            raise ResponseParseError(
                f"Thermodynamics response has no numeric <{tag}>: {raw_response[:200]!r}"
            )
        values[tag] = value

    return ThermoParams(
        dH=values["dH"], dS=values["dS"], salt_correction=values["saltCorrection"]
    )


def parse_tm_from_response(raw_html: str, mismatch: bool = False) -> float | None:
    """
    Extract a precomputed Tm from a legacy service response.

    Reads ``<mmtm>`` when ``mismatch`` is True, otherwise ``<tm>``. Returns None
    when the tag is absent or not numeric so callers can choose a fallback.

    Raises
    ------
    TypeError
        If ``raw_html`` is not a string or ``mismatch`` is not a bool.
    """
    if not isinstance(raw_html, str):
        raise TypeError(f"raw_html must be a string, got {type(raw_html).__name__}")
    if not isinstance(mismatch, bool):
        raise TypeError(f"mismatch must be a bool, got {type(mismatch).__name__}")

    tag = "mmtm" if mismatch else "tm"
    value = _to_finite_float(_find_tag(raw_html, tag))
    if value is None:
        logger.debug(f"No numeric <{tag}> in response")
    return value


class RemoteThermoGateway(ThermoGateway):
    """Client for an HTTP duplex thermodynamics service."""

    def __init__(
        self,
        params: GatewayParameters,
        conditions: ReactionConditions | None = None,
    ):
        if not params.api_url:
            raise GatewayError("RemoteThermoGateway needs an api_url")
        self.params = params
        self.conditions = conditions or ReactionConditions()

    def _build_query(
        self,
        sequence: str,
        concentration: float,
        limiting_conc: float,
        mismatch: Mismatch | None,
    ) -> dict:
        query = {
            "seq": sequence,
            "cna": concentration,
            "cnb": limiting_conc,
            "mono": self.conditions.mono_conc,
            "mg": self.conditions.mg_conc,
            "dntp": self.conditions.dntp_conc,
            "nn": self.params.parameter_set,
            "saltcalctype": self.params.salt_calc_type,
            "decimal": self.params.decimal_places,
        }
        if mismatch is not None:
            query["mmseq"] = build_mismatch_sequence(sequence, mismatch)
        return query

    def _request(self, query: dict) -> str:
        url = self.params.api_url
        try:
            response = requests.get(url, params=query, timeout=self.params.timeout)
            if response.status_code == 429:
                # Rate limited, wait and retry once
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
                logger.warning(f"Thermodynamics service rate limited, waiting {retry_after}s...")
                time.sleep(retry_after)
                response = requests.get(url, params=query, timeout=self.params.timeout)
        except requests.RequestException as e:
            raise GatewayError(f"Thermodynamics service unreachable at {url}: {e}") from e

        if not response.ok:
            raise GatewayError(
                f"Thermodynamics service error for {query['seq']}: "
                f"{response.status_code} {response.text[:200]}"
            )
        return response.text

    def get_thermo_params(
        self,
        sequence: str,
        concentration: float,
        limiting_conc: float,
        mismatch: Mismatch | Mapping | None = None,
    ) -> ThermoParams:
        mm = validate_request(sequence, concentration, limiting_conc, mismatch)
        query = self._build_query(sequence, concentration, limiting_conc, mm)
        return parse_thermo_params_from_response(self._request(query))

    def fetch_tm(
        self,
        sequence: str,
        concentration: float,
        limiting_conc: float,
        mismatch: Mismatch | Mapping | None = None,
    ) -> float | None:
        """Single-value query: the service's own Tm for the (mis)matched duplex."""
        mm = validate_request(sequence, concentration, limiting_conc, mismatch)
        query = self._build_query(sequence, concentration, limiting_conc, mm)
        return parse_tm_from_response(self._request(query), mismatch=mm is not None)


def resolve_gateway(config: SnapbackConfig | None = None) -> ThermoGateway:
    """Remote gateway when a service URL is configured, otherwise the local model."""
    config = config or SnapbackConfig()
    if config.gateway_parameters.api_url:
        logger.debug(f"Using thermodynamics service at {config.gateway_parameters.api_url}")
        return RemoteThermoGateway(config.gateway_parameters, config.reaction_conditions)
    return NearestNeighborGateway(config.reaction_conditions)
