# ================================================================================
# Configuration models for snapback primer design
#
# Uses Pydantic for runtime validation of configuration parameters.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from usnapback.thermo.tables import HairpinLoopModel

API_URL_ENV_VAR = "USNAPBACK_API_URL"


class ReactionConditions(BaseModel):
    """PCR reaction conditions for thermodynamic calculations."""

    snapback_primer_conc: float = Field(default=0.5, gt=0.0, le=100.0)  # µM
    limiting_primer_conc: float = Field(default=0.05, gt=0.0, le=100.0)  # µM
    mono_conc: float = Field(default=20.0, ge=0.0, le=1000.0)  # mM (monovalent)
    mg_conc: float = Field(default=2.2, ge=0.0, le=50.0)  # mM (divalent)
    dntp_conc: float = Field(default=0.2, ge=0.0, le=10.0)  # mM

    @model_validator(mode="after")
    def validate_cation_balance(self) -> ReactionConditions:
        """Validate that some free cation remains to stabilize the duplex."""
        if self.mono_conc == 0.0 and self.mg_conc <= self.dntp_conc:
            raise ValueError(
                f"No free cations: monovalent is 0 mM and Mg2+ ({self.mg_conc} mM) "
                f"is fully chelated by dNTPs ({self.dntp_conc} mM)"
            )
        return self


class GatewayParameters(BaseModel):
    """Parameters for the duplex thermodynamics service."""

    api_url: str | None = Field(
        default=None,
        description=f"Thermodynamics service URL. None uses the local nearest-neighbor "
        f"model. Overridden by the {API_URL_ENV_VAR} environment variable.",
    )
    timeout: float = Field(default=30.0, gt=0.0, le=600.0)  # seconds
    parameter_set: str = Field(default="SantaLucia")
    salt_calc_type: str = Field(default="bpdenominator")
    decimal_places: int = Field(default=2, ge=0, le=10)

    @model_validator(mode="after")
    def apply_env_override(self) -> GatewayParameters:
        """Let the environment point the gateway at a different service."""
        env_url = os.environ.get(API_URL_ENV_VAR)
        if env_url:
            self.api_url = env_url
        return self


class SearchParameters(BaseModel):
    """Parameters for the stem search."""

    loop_model: HairpinLoopModel = Field(default=HairpinLoopModel.SANTALUCIA_HICKS)
    tm_acceptance_band: float = Field(
        default=0.0,
        ge=0.0,
        le=10.0,
        description="The search stops once the wild-type Tm is within this many "
        "degrees below the target.",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Threads used for independent thermodynamics queries.",
    )


class SnapbackConfig(BaseModel):
    """Complete configuration for snapback primer design."""

    reaction_conditions: ReactionConditions = Field(default_factory=ReactionConditions)
    gateway_parameters: GatewayParameters = Field(default_factory=GatewayParameters)
    search_parameters: SearchParameters = Field(default_factory=SearchParameters)

    @classmethod
    def from_json_file(cls, file_path: str | Path) -> SnapbackConfig:
        """
        Load configuration from a JSON file.

        Parameters
        ----------
        file_path : str | Path
            Path to the JSON configuration file.

        Returns
        -------
        SnapbackConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError
            If the configuration file does not exist.
        ValidationError
            If the configuration fails validation.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> SnapbackConfig:
        """
        Load configuration from a dictionary.

        Raises
        ------
        ValidationError
            If the configuration fails validation.
        """
        return cls.model_validate(config_dict)

    def to_dict(self) -> dict[str, Any]:
        """Export configuration to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    def to_json_file(self, file_path: str | Path) -> None:
        """
        Save configuration to a JSON file.

        Parameters
        ----------
        file_path : str | Path
            Destination path. Parent directories are created as needed.
        """
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=4)
        logger.info(f"Configuration saved to: {path}")


def load_config(config_path: str | Path | None = None) -> SnapbackConfig:
    """
    Load and validate design configuration.

    Parameters
    ----------
    config_path : str | Path | None
        Path to a custom configuration JSON file. Defaults are used when omitted.

    Returns
    -------
    SnapbackConfig
        Validated configuration object.

    Raises
    ------
    ValidationError
        If the configuration fails validation.
    FileNotFoundError
        If the specified config file does not exist.
    """
    if config_path is not None:
        logger.info(f"Loading config from: {config_path}")
        return SnapbackConfig.from_json_file(config_path)

    logger.debug("Using default configuration")
    return SnapbackConfig()
