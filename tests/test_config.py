# ================================================================================
# Tests for configuration loading and validation
# ================================================================================

import json

import pytest
from pydantic import ValidationError

from usnapback.config import (
    API_URL_ENV_VAR,
    GatewayParameters,
    ReactionConditions,
    SearchParameters,
    SnapbackConfig,
    load_config,
)
from usnapback.thermo.tables import HairpinLoopModel


class TestReactionConditions:
    """Tests for ReactionConditions model."""

    def test_default_values(self):
        """Test that default values are set correctly."""
        conditions = ReactionConditions()
        assert conditions.snapback_primer_conc == 0.5
        assert conditions.limiting_primer_conc == 0.05
        assert conditions.mono_conc == 20.0
        assert conditions.mg_conc == 2.2
        assert conditions.dntp_conc == 0.2

    @pytest.mark.parametrize(
        "field, value",
        [
            ("snapback_primer_conc", 0.0),
            ("limiting_primer_conc", -0.1),
            ("mono_conc", -1.0),
            ("mg_conc", 100.0),
            ("dntp_conc", -0.2),
        ],
    )
    def test_out_of_range(self, field, value):
        """Test that out-of-range concentrations raise ValidationError."""
        with pytest.raises(ValidationError):
            ReactionConditions(**{field: value})

    def test_no_free_cations(self):
        """Test that a buffer without any free cation is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            ReactionConditions(mono_conc=0.0, mg_conc=0.5, dntp_conc=0.8)
        assert "No free cations" in str(exc_info.value)

    def test_monovalent_only_is_valid(self):
        conditions = ReactionConditions(mono_conc=50.0, mg_conc=0.0)
        assert conditions.mg_conc == 0.0


class TestGatewayParameters:
    """Tests for GatewayParameters model."""

    def test_default_values(self):
        params = GatewayParameters()
        assert params.api_url is None
        assert params.timeout == 30.0
        assert params.parameter_set == "SantaLucia"
        assert params.salt_calc_type == "bpdenominator"
        assert params.decimal_places == 2

    def test_environment_override(self, monkeypatch):
        """Test that the environment variable replaces the configured URL."""
        monkeypatch.setenv(API_URL_ENV_VAR, "https://env.example.org/thermo")
        params = GatewayParameters(api_url="https://file.example.org/thermo")
        assert params.api_url == "https://env.example.org/thermo"

    def test_empty_environment_is_ignored(self, monkeypatch):
        monkeypatch.setenv(API_URL_ENV_VAR, "")
        assert GatewayParameters().api_url is None

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            GatewayParameters(timeout=0)


class TestSearchParameters:
    """Tests for SearchParameters model."""

    def test_default_values(self):
        params = SearchParameters()
        assert params.loop_model is HairpinLoopModel.SANTALUCIA_HICKS
        assert params.tm_acceptance_band == 0.0
        assert params.max_workers == 4

    def test_loop_model_from_string(self):
        params = SearchParameters(loop_model="rochester")
        assert params.loop_model is HairpinLoopModel.ROCHESTER

    def test_unknown_loop_model(self):
        with pytest.raises(ValidationError):
            SearchParameters(loop_model="turner")

    @pytest.mark.parametrize(
        "kwargs",
        [{"tm_acceptance_band": -1.0}, {"tm_acceptance_band": 11.0}, {"max_workers": 0}],
    )
    def test_out_of_range(self, kwargs):
        with pytest.raises(ValidationError):
            SearchParameters(**kwargs)


class TestSnapbackConfig:
    """Tests for SnapbackConfig model."""

    def test_default_config(self):
        """Test creating config with all defaults."""
        config = SnapbackConfig()
        assert isinstance(config.reaction_conditions, ReactionConditions)
        assert isinstance(config.gateway_parameters, GatewayParameters)
        assert isinstance(config.search_parameters, SearchParameters)

    def test_from_dict_partial(self):
        """Test that omitted sections keep their defaults."""
        config = SnapbackConfig.from_dict({"reaction_conditions": {"mg_conc": 3.0}})
        assert config.reaction_conditions.mg_conc == 3.0
        assert config.reaction_conditions.mono_conc == 20.0
        assert config.search_parameters.max_workers == 4

    def test_from_dict_invalid(self):
        with pytest.raises(ValidationError):
            SnapbackConfig.from_dict({"reaction_conditions": {"mg_conc": "lots"}})

    def test_to_dict(self):
        data = SnapbackConfig().to_dict()
        assert data["search_parameters"]["loop_model"] == "santalucia_hicks"
        assert data["gateway_parameters"]["api_url"] is None

    def test_json_round_trip(self, tmp_path):
        """Test saving and reloading a configuration file."""
        config = SnapbackConfig.from_dict(
            {
                "reaction_conditions": {"mono_conc": 50.0},
                "search_parameters": {"loop_model": "rochester", "max_workers": 2},
            }
        )
        path = tmp_path / "nested" / "config.json"
        config.to_json_file(path)

        assert json.loads(path.read_text())["reaction_conditions"]["mono_conc"] == 50.0
        assert SnapbackConfig.from_json_file(path) == config

    def test_from_json_file_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SnapbackConfig.from_json_file(tmp_path / "missing.json")


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults(self):
        assert load_config() == SnapbackConfig()

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"search_parameters": {"tm_acceptance_band": 1.5}}))
        assert load_config(path).search_parameters.tm_acceptance_band == 1.5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json")

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"reaction_conditions": {"dntp_conc": -1}}))
        with pytest.raises(ValidationError):
            load_config(path)
