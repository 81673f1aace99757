# ================================================================================
# Thermodynamic parameter tables
#
# Nearest-neighbor, terminal-mismatch and dangling-end increments come from the
# published tables shipped with Biopython:
#   - SantaLucia J (1998) PNAS 95:1460-1465           (Bio DNA_NN3)
#   - Bommarito S et al. (2000) NAR 28:1929-1934      (Bio DNA_TMM1)
#   - Bommarito S et al. (2000) NAR 28:1929-1934      (Bio DNA_DE1)
# Hairpin loop increments follow SantaLucia & Hicks (2004) Annu Rev Biophys
# Biomol Struct 33:415-440, and the Rochester (Turner/Mathews) loop set.
#
# All tables are built once at import time and exposed read-only.
# dH in kcal/mol, dS in cal/(K·mol).
# ================================================================================

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from Bio.SeqUtils import MeltingTemp as mt

from usnapback.constants import T_REFERENCE
from usnapback.exceptions import (
    InputValidationError,
    MalformedTableKeyError,
    MissingTableEntryError,
)

_BASES = "ACGT"
_COMPLEMENT = {"A": "T", "T": "A", "C": "G", "G": "C"}


@dataclass(frozen=True)
class ThermoIncrement:
    """Enthalpy (kcal/mol) and entropy (cal/(K·mol)) contribution."""

    dH: float
    dS: float

    def __add__(self, other: ThermoIncrement) -> ThermoIncrement:
        return ThermoIncrement(self.dH + other.dH, self.dS + other.dS)


def _revcomp(step: str) -> str:
    return "".join(_COMPLEMENT[b] for b in reversed(step))


def normalize_nn_step(step: object) -> str:
    """Upper-case and validate a dinucleotide step such as ``"ag"``."""
    if not isinstance(step, str):
        raise MalformedTableKeyError(
            f"Nearest-neighbor step must be a string, got {step!r}", "step", step
        )
    normalized = step.upper()
    if len(normalized) != 2 or any(b not in _BASES for b in normalized):
        raise MalformedTableKeyError(
            f"Nearest-neighbor step must be two of A/C/G/T, got {step!r}",
            "step",
            step,
        )
    return normalized


# --------------------------------------------------------------------------------
# Watson-Crick nearest neighbors
# --------------------------------------------------------------------------------


def _build_nn_table() -> MappingProxyType:
    table = {}
    for key, (dh, ds) in mt.DNA_NN3.items():
        top, sep, bottom = key.partition("/")
        if not sep or len(top) != 2 or any(b not in _BASES for b in top):
            continue
        increment = ThermoIncrement(float(dh), float(ds))
        # 5'-XY-3'/3'-X'Y'-5' is the same stack as its reverse complement
        table[top] = increment
        table[_revcomp(top)] = increment
    return MappingProxyType(table)


NN_TABLE = _build_nn_table()

INIT_AT = ThermoIncrement(*map(float, mt.DNA_NN3["init_A/T"]))
INIT_GC = ThermoIncrement(*map(float, mt.DNA_NN3["init_G/C"]))
SYMMETRY_CORRECTION = ThermoIncrement(*map(float, mt.DNA_NN3["sym"]))


def get_nn_params(step: str) -> ThermoIncrement:
    """Increment for a Watson-Crick stack, e.g. ``"AG"`` for 5'-AG-3'/3'-TC-5'."""
    return NN_TABLE[normalize_nn_step(step)]


def get_initiation_params(terminal_base: str) -> ThermoIncrement:
    """Initiation penalty for a duplex end closed by ``terminal_base``."""
    if terminal_base in ("A", "T"):
        return INIT_AT
    if terminal_base in ("G", "C"):
        return INIT_GC
    raise MalformedTableKeyError(
        f"Terminal base must be one of A/C/G/T, got {terminal_base!r}",
        "terminal_base",
        terminal_base,
    )


# --------------------------------------------------------------------------------
# Dangling ends
# --------------------------------------------------------------------------------

FIVE_PRIME = "fivePrime"
THREE_PRIME = "threePrime"

_ORIENTATION_SYNONYMS = {
    "5p": FIVE_PRIME,
    "fiveprime": FIVE_PRIME,
    "3p": THREE_PRIME,
    "threeprime": THREE_PRIME,
}


def normalize_dangling_orientation(token: object) -> str:
    """Map ``5p``/``fivePrime``/``3p``/``threePrime`` (any case) to a table name."""
    if isinstance(token, str):
        orientation = _ORIENTATION_SYNONYMS.get(token.strip().lower())
        if orientation is not None:
            return orientation
    raise InputValidationError(
        f"Unknown dangling-end orientation {token!r}; expected 5p, fivePrime, 3p "
        f"or threePrime",
        "orientation",
        token,
    )


def _build_dangling_tables() -> MappingProxyType:
    five_prime = {}
    three_prime = {}
    for key, (dh, ds) in mt.DNA_DE1.items():
        top, _, bottom = key.partition("/")
        increment = ThermoIncrement(float(dh), float(ds))
        if bottom.startswith("."):
            # "XY/.Z": X overhangs the 5' end of the top strand; step read 5'->3'
            five_prime[top] = increment
        elif top.startswith("."):
            # ".X/ZY": Z overhangs the 3' end of the bottom strand; read the bottom
            # strand 5'->3' so the step is paired base then dangling base
            three_prime[bottom[::-1]] = increment
    return MappingProxyType(
        {
            FIVE_PRIME: MappingProxyType(five_prime),
            THREE_PRIME: MappingProxyType(three_prime),
        }
    )


DANGLING_END_TABLE = _build_dangling_tables()


def get_dangling_end_params(step: str, orientation: str) -> ThermoIncrement:
    """
    Increment for a single unpaired base next to a duplex end.

    For ``fivePrime`` the step is the dangling base followed by its paired
    neighbor; for ``threePrime`` it is the paired base followed by the dangling
    base. Both are read 5' to 3' along the strand carrying the overhang.
    """
    table = DANGLING_END_TABLE[normalize_dangling_orientation(orientation)]
    normalized = normalize_nn_step(step)
    try:
        return table[normalized]
    except KeyError as e:
        raise MissingTableEntryError(
            f"Dangling-end table has no entry for {normalized} ({orientation})"
        ) from e


# --------------------------------------------------------------------------------
# Terminal mismatches
# --------------------------------------------------------------------------------


def _mirror_terminal_mismatch_key(key: str) -> str:
    """Token for the same motif read from the other strand: "XY/ZW" -> "WZ/YX"."""
    top, bottom = key[:2], key[3:]
    return f"{bottom[::-1]}/{top[::-1]}"


def _build_terminal_mismatch_table() -> MappingProxyType:
    table = {}
    for key, (dh, ds) in mt.DNA_TMM1.items():
        if len(key) != 5 or key[2] != "/":
            continue
        increment = ThermoIncrement(float(dh), float(ds))
        table[key] = increment
        # Canonical keys open on a Watson-Crick pair; their mirrors open on the
        # mismatch, so the two spellings never collide.
        table.setdefault(_mirror_terminal_mismatch_key(key), increment)
    return MappingProxyType(table)


TERMINAL_MISMATCH_TABLE = _build_terminal_mismatch_table()


def build_terminal_mismatch_key(top2: str, bottom2: str) -> str:
    """
    Token for a 2x2 motif.

    ``top2`` is read 5'->3' and ``bottom2`` 3'->5', so column ``i`` of each
    forms one base pair.
    """
    top = normalize_nn_step(top2)
    bottom = normalize_nn_step(bottom2)
    return f"{top}/{bottom}"


def parse_terminal_mismatch_token(token: object) -> tuple[str, str]:
    """Split and validate an ``"XY/ZW"`` token into its two strands."""
    if not isinstance(token, str) or token.count("/") != 1:
        raise MalformedTableKeyError(
            f"Terminal-mismatch token must look like 'XY/ZW', got {token!r}",
            "token",
            token,
        )
    top, bottom = token.strip().split("/")
    return normalize_nn_step(top), normalize_nn_step(bottom)


def get_terminal_mismatch_params(top2: str, bottom2: str) -> ThermoIncrement:
    key = build_terminal_mismatch_key(top2, bottom2)
    try:
        return TERMINAL_MISMATCH_TABLE[key]
    except KeyError as e:
        raise MissingTableEntryError(
            f"Terminal-mismatch table has no entry for {key}"
        ) from e


def get_terminal_mismatch_params_from_token(token: str) -> ThermoIncrement:
    return get_terminal_mismatch_params(*parse_terminal_mismatch_token(token))


# --------------------------------------------------------------------------------
# Hairpin loops
# --------------------------------------------------------------------------------


class HairpinLoopModel(str, Enum):
    ROCHESTER = "rochester"
    SANTALUCIA_HICKS = "santalucia_hicks"


# Loop initiation free energy at 37 °C (kcal/mol) for N = 3..30
ROCHESTER_LOOP_DG = MappingProxyType(
    dict(
        zip(
            range(3, 31),
            (
                3.5, 3.5, 3.3, 4.0, 4.2, 4.3, 4.5, 4.6, 4.7, 4.8,
                4.9, 5.0, 5.1, 5.2, 5.3, 5.4, 5.5, 5.6, 5.7, 5.8,
                5.9, 6.0, 6.0, 6.1, 6.2, 6.3, 6.4, 6.5,
            ),
        )
    )
)
ROCHESTER_LOOP_DH = -14.1


def _rochester_increment(dg: float) -> ThermoIncrement:
    return ThermoIncrement(
        ROCHESTER_LOOP_DH, (ROCHESTER_LOOP_DH - dg) * 1000 / T_REFERENCE
    )


ROCHESTER_HAIRPIN_TABLE = MappingProxyType(
    {n: _rochester_increment(dg) for n, dg in ROCHESTER_LOOP_DG.items()}
)

# Loop initiation free energy at 37 °C (kcal/mol) for the tabulated loop sizes
SANTALUCIA_HICKS_LOOP_DG = MappingProxyType(
    {
        3: 3.5, 4: 3.5, 5: 3.3, 6: 4.0, 7: 4.2, 8: 4.3, 9: 4.5, 10: 4.6,
        12: 5.0, 14: 5.1, 16: 5.3, 18: 5.5, 20: 5.7, 25: 6.1, 30: 6.3,
    }
)

SANTALUCIA_HICKS_HAIRPIN_TABLE = MappingProxyType(
    {
        n: ThermoIncrement(0.0, -dg * 1000 / T_REFERENCE)
        for n, dg in SANTALUCIA_HICKS_LOOP_DG.items()
    }
)


def _validate_loop_size(n: object) -> int:
    if not isinstance(n, int) or isinstance(n, bool):
        raise InputValidationError(
            f"Hairpin loop size must be an integer, got {n!r}", "loop_len", n
        )
    if n < 3:
        raise InputValidationError(
            f"Hairpin loop size must be at least 3, got {n}", "loop_len", n
        )
    return n


def get_rochester_hairpin_loop_params(n: int) -> ThermoIncrement:
    """
    Rochester hairpin loop increment for a loop of ``n`` unpaired bases.

    Beyond 30 bases the enthalpy is held at the table baseline and the free
    energy grows by 0.1 kcal/mol per additional base.
    """
    _validate_loop_size(n)
    if n in ROCHESTER_HAIRPIN_TABLE:
        return ROCHESTER_HAIRPIN_TABLE[n]
    dS = -(14.1 + 6.5 + 0.1 * (n - 30)) * 1000 / T_REFERENCE
    return ThermoIncrement(ROCHESTER_LOOP_DH, dS)


def get_santalucia_hicks_hairpin_params(n: int) -> ThermoIncrement:
    """
    SantaLucia-Hicks hairpin loop increment for a loop of ``n`` unpaired bases.

    The loop is purely entropic. Sizes between tabulated anchors are linearly
    interpolated; beyond 30 bases a logarithmic extrapolation is used.
    """
    _validate_loop_size(n)
    if n in SANTALUCIA_HICKS_HAIRPIN_TABLE:
        return SANTALUCIA_HICKS_HAIRPIN_TABLE[n]
    if n > 30:
        return ThermoIncrement(0.0, -(6.3 + 1.5 * math.log(n / 30)) * 1000 / T_REFERENCE)

    anchors = sorted(SANTALUCIA_HICKS_HAIRPIN_TABLE)
    lower = max(a for a in anchors if a < n)
    upper = min(a for a in anchors if a > n)
    ds_lower = SANTALUCIA_HICKS_HAIRPIN_TABLE[lower].dS
    ds_upper = SANTALUCIA_HICKS_HAIRPIN_TABLE[upper].dS
    fraction = (n - lower) / (upper - lower)
    return ThermoIncrement(0.0, ds_lower + fraction * (ds_upper - ds_lower))


_HAIRPIN_MODELS = {
    HairpinLoopModel.ROCHESTER: get_rochester_hairpin_loop_params,
    HairpinLoopModel.SANTALUCIA_HICKS: get_santalucia_hicks_hairpin_params,
}


def get_hairpin_loop_params(
    n: int, model: HairpinLoopModel | str = HairpinLoopModel.SANTALUCIA_HICKS
) -> ThermoIncrement:
    """Dispatch to the selected hairpin loop model."""
    try:
        model = HairpinLoopModel(model)
    except ValueError as e:
        raise InputValidationError(
            f"Unknown hairpin loop model {model!r}", "loop_model", model
        ) from e
    return _HAIRPIN_MODELS[model](n)
