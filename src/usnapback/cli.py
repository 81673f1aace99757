# ================================================================================
# Command-line interface for snapback primer design
#
# Thin wrapper around create_snapback.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

import json
from pathlib import Path
from typing import Annotated

import typer
from Bio import SeqIO
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from usnapback.config import load_config
from usnapback.constants import MIN_AMPLICON_LEN, TARGET_TM_MAX, TARGET_TM_MIN
from usnapback.designer.models import SnapbackDescriptor, SNVSite
from usnapback.exceptions import (
    InputValidationError,
    SnapbackError,
    SnapbackTmNotReachedError,
)
from usnapback.logging import configure_console_logging, configure_file_logging
from usnapback.thermo.tables import HairpinLoopModel
from usnapback.utils.sequence import normalize_amplicon
from usnapback.version import __version__

app = typer.Typer(
    name="usnapback",
    help="Design snapback primers for SNV genotyping by melting analysis.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold green]uSnapback[/bold green] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """uSnapback - Design snapback primers for SNV genotyping."""
    configure_console_logging("INFO")


def _read_amplicon(sequence: str | None, fasta_file: Path | None) -> str:
    if (sequence is None) == (fasta_file is None):
        console.print(
            "[bold red]Error: provide either an amplicon SEQUENCE or --fasta[/bold red]"
        )
        raise typer.Exit(code=1)
    if fasta_file is not None:
        try:
            record = SeqIO.read(fasta_file, "fasta")
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[bold red]Error reading FASTA: {e}[/bold red]")
            raise typer.Exit(code=1) from e
        sequence = str(record.seq)
    try:
        amplicon = normalize_amplicon(sequence)
    except InputValidationError as e:
        console.print(f"[bold red]Invalid input: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    if len(amplicon) < MIN_AMPLICON_LEN:
        console.print(
            f"[bold red]Invalid input: amplicon is {len(amplicon)} nt, at least "
            f"{MIN_AMPLICON_LEN} nt are required[/bold red]"
        )
        raise typer.Exit(code=1)
    return amplicon


def _print_descriptor(descriptor: SnapbackDescriptor) -> None:
    primer = "forward" if descriptor.tail_on_forward_primer else "reverse"
    allele = "wild-type" if descriptor.matches_wild else "variant"

    console.print()
    console.print("[bold green]Snapback primer designed[/bold green]")
    console.print(f"  Snapback primer: [bold]{descriptor.snapback_seq}[/bold]")
    console.print(f"  Limiting primer: {descriptor.limiting_primer_seq}")
    console.print(f"  Tail on:         {primer} primer, matching the {allele} allele")
    console.print(
        f"  Stem:            {descriptor.stem_location.start}-"
        f"{descriptor.stem_location.end} ({descriptor.stem_location.length} bp), "
        f"loop {descriptor.extended.loop_len} nt"
    )
    console.print(
        f"  Primer Tm:       snapback {descriptor.snapback_primer_tm} °C, "
        f"limiting {descriptor.limiting_primer_tm} °C"
    )
    console.print()

    table = Table(title="Snapback melting temperatures (°C)")
    table.add_column("Loop model")
    table.add_column("Wild-type", justify="right")
    table.add_column("Variant", justify="right")
    table.add_column("Difference", justify="right")
    for label, tms in (
        ("Search", descriptor.snapback_melting_tms),
        ("Rochester", descriptor.rochester_tms),
        ("SantaLucia-Hicks", descriptor.santalucia_hicks_tms),
    ):
        table.add_row(
            label, f"{tms.wild_tm:.2f}", f"{tms.variant_tm:.2f}", f"{tms.separation:.2f}"
        )
    console.print(table)


@app.command()
def design(
    snv_index: Annotated[
        int,
        typer.Option("--snv-index", "-i", help="0-based SNV position in the amplicon."),
    ],
    variant_base: Annotated[
        str,
        typer.Option("--variant-base", "-b", help="Variant allele (A, C, G or T)."),
    ],
    sequence: Annotated[
        str | None,
        typer.Argument(help="Amplicon sequence, forward strand 5' to 3'."),
    ] = None,
    fasta_file: Annotated[
        Path | None,
        typer.Option("--fasta", "-f", help="FASTA file holding a single amplicon."),
    ] = None,
    primer_len: Annotated[
        int,
        typer.Option("--primer-len", "-p", help="Forward primer length."),
    ] = 20,
    comp_primer_len: Annotated[
        int,
        typer.Option("--comp-primer-len", "-r", help="Reverse primer length."),
    ] = 20,
    target_tm: Annotated[
        float,
        typer.Option("--target-tm", "-t", help="Wild-type snapback Tm to reach (°C)."),
    ] = 60.0,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to custom configuration JSON file."),
    ] = None,
    api_url: Annotated[
        str | None,
        typer.Option(
            "--api-url",
            help="Thermodynamics service URL. Omit to use the local nearest-neighbor model.",
        ),
    ] = None,
    loop_model: Annotated[
        HairpinLoopModel | None,
        typer.Option("--loop-model", help="Hairpin loop parameters used for the search."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
    log_dir: Annotated[
        Path | None,
        typer.Option("--log-dir", help="Also write a log file to this directory."),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Write DEBUG-level messages to the log file (default: INFO+ only).",
        ),
    ] = False,
) -> None:
    """
    Design a snapback primer for one SNV.

    Example:
        usnapback design ACGT... --snv-index 100 --variant-base T --target-tm 60
    """
    amplicon = _read_amplicon(sequence, fasta_file)

    try:
        config = load_config(config_file)
    except (FileNotFoundError, ValidationError) as e:
        console.print(f"[bold red]Error loading config: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    if api_url is not None:
        config.gateway_parameters.api_url = api_url
    if loop_model is not None:
        config.search_parameters.loop_model = loop_model

    if log_dir is not None:
        log_file = configure_file_logging(log_dir, debug=debug)
        console.print(f"  Log file: {log_file}")

    if not target_tm.is_integer() or not TARGET_TM_MIN <= target_tm <= TARGET_TM_MAX:
        console.print(
            f"[bold red]Invalid input (target_tm): {target_tm} °C must be a whole "
            f"number from {TARGET_TM_MIN:.0f} to {TARGET_TM_MAX:.0f} °C[/bold red]"
        )
        raise typer.Exit(code=1)

    from usnapback.designer.snapback import create_snapback

    try:
        descriptor = create_snapback(
            amplicon,
            primer_len,
            comp_primer_len,
            SNVSite(index=snv_index, variant_base=variant_base.strip().upper()),
            target_tm,
            config=config,
        )
    except SnapbackTmNotReachedError as e:
        console.print(f"[bold red]Design failed: {e}[/bold red]")
        console.print(
            "[yellow]Lower the target Tm or use a longer amplicon so the stem has "
            "room to grow.[/yellow]"
        )
        raise typer.Exit(code=1) from e
    except InputValidationError as e:
        console.print(f"[bold red]Invalid input ({e.field}): {e}[/bold red]")
        raise typer.Exit(code=1) from e
    except SnapbackError as e:
        console.print(f"[bold red]Design failed: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    if as_json:
        typer.echo(json.dumps(descriptor.to_dict(), indent=2))
    else:
        _print_descriptor(descriptor)
