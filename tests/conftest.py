"""Shared pytest fixtures for snapback design tests."""

from __future__ import annotations

import pytest

from usnapback.config import API_URL_ENV_VAR, SnapbackConfig
from usnapback.designer.models import SNVSite
from usnapback.thermo.gateway import NearestNeighborGateway, ThermoGateway, ThermoParams
from usnapback.utils.sequence import to_mismatch

# 100 bp amplicon: 20 bp forward primer, 60 bp between the primers, 20 bp
# reverse primer binding site. Index 50 is a G.
FORWARD_PRIMER = "ATGCGTACCTGAGCTTCAGG"
INSERT = "TCCAGATGCACTGGTCAAGCTGTACGATCGGCATTCAGCTAGGCTTACCGTGACGTAGCA"
REVERSE_SITE = "GGCTATCCGTAACGTTGCAG"
AMPLICON = FORWARD_PRIMER + INSERT + REVERSE_SITE

SNV_INDEX = 50
PRIMER_LEN = 20
COMP_PRIMER_LEN = 20


class PenaltyGateway(ThermoGateway):
    """
    Deterministic stand-in for the thermodynamics service.

    Every stack contributes the same increment; a mismatch of type
    ``penalized_base`` costs ``penalty`` kcal/mol, any other mismatch ``mild``.
    """

    def __init__(
        self, penalized_base: str | None = None, penalty: float = 20.0, mild: float = 2.0
    ):
        self.penalized_base = penalized_base
        self.penalty = penalty
        self.mild = mild
        self.calls = []

    def get_thermo_params(self, sequence, concentration, limiting_conc, mismatch=None):
        self.calls.append((sequence, mismatch))
        steps = len(sequence) - 1
        dH = -8.0 * steps
        dS = -21.0 * steps
        if mismatch is not None:
            mm = to_mismatch(mismatch)
            dH += self.penalty if mm.type == self.penalized_base else self.mild
        return ThermoParams(dH=dH, dS=dS, salt_correction=0.0)


@pytest.fixture(autouse=True)
def no_api_url_env(monkeypatch):
    """Keep a developer's USNAPBACK_API_URL from leaking into tests."""
    monkeypatch.delenv(API_URL_ENV_VAR, raising=False)


@pytest.fixture
def config() -> SnapbackConfig:
    return SnapbackConfig()


@pytest.fixture
def nn_gateway(config) -> NearestNeighborGateway:
    return NearestNeighborGateway(config.reaction_conditions)


@pytest.fixture
def amplicon() -> str:
    return AMPLICON


@pytest.fixture
def snv() -> SNVSite:
    return SNVSite(index=SNV_INDEX, variant_base="A")
