# ================================================================================
# Tests for the command-line interface
# ================================================================================

import json
import re
from unittest.mock import patch

import pytest
from loguru import logger
from typer.testing import CliRunner

from conftest import AMPLICON, PenaltyGateway
from usnapback.cli import app
from usnapback.designer.models import SNVSite
from usnapback.designer.snapback import create_snapback
from usnapback.exceptions import SnapbackTmNotReachedError
from usnapback.version import __version__

runner = CliRunner()


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from a string."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


@pytest.fixture(autouse=True)
def drop_cli_log_sinks():
    """The CLI binds loguru to the runner's streams, which close after each invoke."""
    yield
    logger.remove()


@pytest.fixture
def descriptor(config):
    return create_snapback(
        AMPLICON, 20, 20, SNVSite(50, "A"), 50.0, gateway=PenaltyGateway("A"), config=config
    )


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self):
        """Test that --help works."""
        result = runner.invoke(app, ["--help"], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "Design snapback primers for SNV genotyping" in output

    def test_version(self):
        """Test that --version shows version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        """Test that no arguments shows help/usage."""
        result = runner.invoke(app, [], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert "Usage:" in output
        assert "COMMAND" in output


class TestDesignCommand:
    """Tests for the design command."""

    def test_design_help(self):
        result = runner.invoke(app, ["design", "--help"], env={"COLUMNS": "120"})
        output = strip_ansi(result.output)
        assert result.exit_code == 0
        assert "Design a snapback primer for one SNV" in output
        assert "--snv-index" in output
        assert "--target-tm" in output

    def test_design_missing_snv(self):
        """Typer uses exit code 2 for missing required options."""
        result = runner.invoke(app, ["design", AMPLICON, "-b", "A"])
        assert result.exit_code == 2

    def test_design_success(self):
        result = runner.invoke(
            app, ["design", AMPLICON, "-i", "50", "-b", "A", "-t", "50"], env={"COLUMNS": "120"}
        )
        output = strip_ansi(result.output)
        assert result.exit_code == 0, output
        assert "Snapback primer designed" in output
        assert "Rochester" in output
        assert "SantaLucia-Hicks" in output

    def test_design_json(self, descriptor):
        with patch(
            "usnapback.designer.snapback.create_snapback", return_value=descriptor
        ) as mock_create:
            result = runner.invoke(app, ["design", AMPLICON, "-i", "50", "-b", "a", "--json"])

        assert result.exit_code == 0
        output = strip_ansi(result.output)
        data = json.loads(output[output.index("{") :])
        assert data["snapback_seq"] == descriptor.snapback_seq
        assert data["extended"]["loop_len"] == descriptor.extended.loop_len

        args = mock_create.call_args.args
        assert args[0] == AMPLICON
        assert args[3] == SNVSite(50, "A")
        assert args[4] == 60.0

    def test_design_options_reach_config(self, descriptor):
        with patch(
            "usnapback.designer.snapback.create_snapback", return_value=descriptor
        ) as mock_create:
            result = runner.invoke(
                app,
                [
                    "design",
                    AMPLICON,
                    "-i",
                    "50",
                    "-b",
                    "A",
                    "--loop-model",
                    "rochester",
                    "--api-url",
                    "https://thermo.example.org/api",
                ],
            )
        assert result.exit_code == 0
        config = mock_create.call_args.kwargs["config"]
        assert config.search_parameters.loop_model.value == "rochester"
        assert config.gateway_parameters.api_url == "https://thermo.example.org/api"

    def test_design_unreachable_target(self):
        with patch(
            "usnapback.designer.snapback.create_snapback",
            side_effect=SnapbackTmNotReachedError(80.0, 71.2, 20, 79),
        ):
            result = runner.invoke(
                app,
                ["design", AMPLICON, "-i", "50", "-b", "A", "-t", "80"],
                env={"COLUMNS": "200"},
            )
        output = strip_ansi(result.output)
        assert result.exit_code == 1
        assert "Design failed" in output
        assert "Lower the target Tm" in output

    @pytest.mark.parametrize("target_tm", ["39", "81", "150", "60.5"])
    def test_design_rejects_target_tm(self, target_tm):
        """Target Tm must be a whole number from 40 to 80 °C."""
        with patch("usnapback.designer.snapback.create_snapback") as mock_create:
            result = runner.invoke(
                app,
                ["design", AMPLICON, "-i", "50", "-b", "A", "-t", target_tm],
                env={"COLUMNS": "200"},
            )
        assert result.exit_code == 1
        assert "Invalid input (target_tm)" in strip_ansi(result.output)
        mock_create.assert_not_called()

    @pytest.mark.parametrize("target_tm", ["40", "80"])
    def test_design_accepts_target_tm_bounds(self, target_tm, descriptor):
        with patch(
            "usnapback.designer.snapback.create_snapback", return_value=descriptor
        ) as mock_create:
            result = runner.invoke(
                app, ["design", AMPLICON, "-i", "50", "-b", "A", "-t", target_tm]
            )
        assert result.exit_code == 0
        assert mock_create.call_args.args[4] == float(target_tm)

    def test_design_rejects_short_amplicon(self):
        with patch("usnapback.designer.snapback.create_snapback") as mock_create:
            result = runner.invoke(
                app,
                ["design", AMPLICON[:32], "-i", "16", "-b", "A", "-p", "12", "-r", "12"],
                env={"COLUMNS": "200"},
            )
        assert result.exit_code == 1
        assert "at least 33 nt" in strip_ansi(result.output)
        mock_create.assert_not_called()

    def test_design_variant_equals_reference(self):
        result = runner.invoke(
            app, ["design", AMPLICON, "-i", "50", "-b", "G"], env={"COLUMNS": "200"}
        )
        assert result.exit_code == 1
        assert "Invalid input (snv_site)" in strip_ansi(result.output)

    def test_design_snv_too_close(self):
        result = runner.invoke(
            app, ["design", AMPLICON, "-i", "5", "-b", "A"], env={"COLUMNS": "200"}
        )
        assert result.exit_code == 1
        assert "too close" in strip_ansi(result.output)

    def test_design_invalid_sequence(self):
        result = runner.invoke(app, ["design", "ACGTNNACGT", "-i", "5", "-b", "A"])
        assert result.exit_code == 1
        assert "Invalid input" in strip_ansi(result.output)

    def test_design_needs_exactly_one_input(self, tmp_path):
        fasta = tmp_path / "amplicon.fa"
        fasta.write_text(f">amp\n{AMPLICON}\n")

        neither = runner.invoke(app, ["design", "-i", "50", "-b", "A"])
        both = runner.invoke(app, ["design", AMPLICON, "-f", str(fasta), "-i", "50", "-b", "A"])

        assert neither.exit_code == 1
        assert both.exit_code == 1
        assert "either" in strip_ansi(both.output)

    def test_design_from_fasta(self, tmp_path, descriptor):
        fasta = tmp_path / "amplicon.fa"
        fasta.write_text(f">amp\n{AMPLICON[:50].lower()}\n{AMPLICON[50:]}\n")
        with patch(
            "usnapback.designer.snapback.create_snapback", return_value=descriptor
        ) as mock_create:
            result = runner.invoke(app, ["design", "-f", str(fasta), "-i", "50", "-b", "A"])
        assert result.exit_code == 0
        assert mock_create.call_args.args[0] == AMPLICON

    def test_design_missing_fasta(self, tmp_path):
        result = runner.invoke(
            app, ["design", "-f", str(tmp_path / "missing.fa"), "-i", "50", "-b", "A"]
        )
        assert result.exit_code == 1

    def test_design_missing_config(self, tmp_path):
        result = runner.invoke(
            app,
            ["design", AMPLICON, "-i", "50", "-b", "A", "-c", str(tmp_path / "missing.json")],
            env={"COLUMNS": "200"},
        )
        assert result.exit_code == 1
        assert "Error loading config" in strip_ansi(result.output)

    def test_design_writes_log_file(self, tmp_path, descriptor):
        with patch("usnapback.designer.snapback.create_snapback", return_value=descriptor):
            result = runner.invoke(
                app,
                ["design", AMPLICON, "-i", "50", "-b", "A", "--log-dir", str(tmp_path)],
                env={"COLUMNS": "200"},
            )
        assert result.exit_code == 0
        assert list(tmp_path.glob("usnapback_*.log"))
