"""CLI interface for validus using Typer framework."""

import json as jsonlib
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from validus import __description__, __version__
from validus.config import LogLevel, OutputFormat, ValidusConfig, load_config
from validus.models import ValidationResult
from validus.sample import FIELDS, RegistrationForm

app = typer.Typer(
    name="validus",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

_LOG_LEVELS = {
    LogLevel.ERROR.value: logging.ERROR,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.DEBUG.value: logging.DEBUG,
}


def version_callback(value: bool) -> None:
    """Show version information and exit."""
    if value:
        console.print(f"validus version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, help="Show version and exit")
    ] = False,
) -> None:
    """validus - Declarative rule-based validation engine."""


def _configure_logging(config: ValidusConfig) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS.get(config.logging.level, logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config_or_exit(config: Path | None) -> ValidusConfig:
    try:
        return load_config(config)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _output_table(result: ValidationResult) -> None:
    status_color = "green" if result.is_valid else "red"
    status = "VALID" if result.is_valid else "INVALID"
    console.print(f"[{status_color}]Validation Status: {status}[/{status_color}]")

    if not result.target_results:
        console.print("\n[dim]No rules were evaluated[/dim]")
        return

    table = Table()
    table.add_column("Target", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("Errors", style="white")

    for target, target_result in result.target_results.items():
        if target_result.pending:
            status_cell = "[yellow]PENDING[/yellow]"
        elif target_result.is_valid:
            status_cell = "[green]VALID[/green]"
        else:
            status_cell = "[red]INVALID[/red]"
        table.add_row(escape(str(target)), status_cell, escape("\n".join(target_result.errors)))

    console.print(table)


def _output_markdown(result: ValidationResult) -> None:
    console.print("# Validation Report")
    console.print(f"**Valid:** {result.is_valid}")
    console.print()

    if result.errors:
        console.print("## Errors")
        for target, target_result in result.target_results.items():
            for message in target_result.errors:
                console.print(f"- **{escape(str(target))}**: {escape(message)}")


@app.command()
def form(
    values: Annotated[
        Path,
        typer.Argument(help="JSON file with registration form field values")
    ],
    target: Annotated[
        Optional[str],
        typer.Option("--target", "-t", help=f"Validate a single field: {', '.join(FIELDS)}")
    ] = None,
    format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Output format: table, json, markdown (default: from config)")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .validus.json)")
    ] = None,
    fault_report: Annotated[
        Optional[Path],
        typer.Option("--fault-report", help="Write rule faults to this JSON file")
    ] = None,
) -> None:
    """Validate registration form values and report the result."""
    validus_config = _load_config_or_exit(config)
    _configure_logging(validus_config)

    output_format = format or validus_config.output.format
    valid_formats = [f.value for f in OutputFormat]
    if output_format not in valid_formats:
        console.print(f"[red]Error:[/red] Invalid format '{output_format}'. Must be one of: {', '.join(valid_formats)}")
        raise typer.Exit(1)

    if target is not None and target not in FIELDS:
        console.print(f"[red]Error:[/red] Invalid target '{target}'. Must be one of: {', '.join(FIELDS)}")
        raise typer.Exit(1)

    try:
        with open(values, encoding="utf-8") as f:
            field_values = jsonlib.load(f)
        registration = RegistrationForm.from_values(field_values, config=validus_config)
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Values file not found: {values}")
        raise typer.Exit(1)
    except (jsonlib.JSONDecodeError, ValueError, AttributeError, TypeError) as e:
        console.print(f"[red]Error:[/red] Invalid values file {values}: {escape(str(e))}")
        raise typer.Exit(1)

    if target is None:
        result = registration.submit()
    else:
        result = registration.validator.validate(target)

    if output_format == OutputFormat.JSON.value:
        print(jsonlib.dumps(result.to_dict(), indent=2))
    elif output_format == OutputFormat.MARKDOWN.value:
        _output_markdown(result)
    else:
        _output_table(result)

    if fault_report is not None:
        written = registration.validator.faults.write_report(fault_report)
        if written:
            console.print(f"[yellow]Rule faults written to {written}[/yellow]")

    raise typer.Exit(0 if result.is_valid else 1)


@app.command("config")
def show_config(
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .validus.json)")
    ] = None,
) -> None:
    """Show the effective configuration as JSON."""
    validus_config = _load_config_or_exit(config)
    print(jsonlib.dumps(validus_config.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    app()
