"""adamforge CLI application entry point.

Provides commands for deriving ADaM population flags and baseline/change
variables, validating a study across datasets, and printing shift tables.

Usage:
    adamforge derive <adsl> <bds>... --output-dir <dir>
    adamforge validate <adsl> <bds>...
    adamforge shift <adsl> <bds>... --population safety
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

if TYPE_CHECKING:
    from adamforge.models.subject import PopulationFlag
    from adamforge.pipeline import PipelineResult

app = typer.Typer(
    name="adamforge",
    help="Derive and validate ADaM analysis datasets for clinical trials.",
    no_args_is_help=True,
)

console = Console()

SubjectsArg = Annotated[
    Path,
    typer.Argument(help="Subject-level dataset (ADSL-like .csv, .sas7bdat or .xpt)"),
]
MeasurementsArg = Annotated[
    list[Path],
    typer.Argument(help="Measurement datasets (BDS-like, e.g. adlb.csv advs.xpt)"),
]
ConfigOpt = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="JSON file with derivation settings"),
]


def _run(
    subjects: Path,
    measurements: list[Path],
    config_path: Path | None,
    population: str | None = None,
    derive: bool = True,
) -> PipelineResult:
    """Load, derive and validate; any load or config error exits with code 1."""
    from pydantic import ValidationError

    from adamforge.io.readers import load_study
    from adamforge.models.config import load_config
    from adamforge.pipeline import run_pipeline

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValidationError) as e:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {escape(str(e))}")
        raise typer.Exit(code=1) from e

    shift_population = _parse_population(population) if population else None

    console.print(
        f"\n[bold blue][1/2][/bold blue] Loading {1 + len(measurements)} dataset(s)..."
    )
    try:
        loaded = load_study(subjects, measurements)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error reading datasets:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    step = "Deriving and validating" if derive else "Validating as loaded"
    console.print(f"[bold blue][2/2][/bold blue] {step}...")
    return run_pipeline(
        loaded.dataset,
        config,
        load_issues=loaded.issues,
        shift_population=shift_population,
        derive=derive,
    )


def _parse_population(value: str) -> PopulationFlag:
    """Accept a population name ('safety') or its ADSL flag ('SAFFL')."""
    from adamforge.models.subject import PopulationFlag

    for flag in PopulationFlag:
        if value.lower() == flag.value or value.upper() == flag.adam_variable:
            return flag
    choices = ", ".join(f"{f.value} ({f.adam_variable})" for f in PopulationFlag)
    console.print(f"[bold red]Error:[/bold red] Unknown population '{value}'.")
    console.print(f"Available populations: {choices}")
    raise typer.Exit(code=1)


def _write_report(result: PipelineResult, output: Path) -> None:
    if output.suffix.lower() == ".csv":
        result.report.to_frame().to_csv(output, index=False)
    else:
        output.write_text(result.report.to_markdown())
    console.print(f"\n[green]Report written to {output}[/green]")


@app.command()
def version() -> None:
    """Show the current version."""
    from adamforge import __version__

    console.print(f"adamforge {__version__}")


@app.command()
def derive(
    subjects: SubjectsArg,
    measurements: MeasurementsArg,
    output_dir: Annotated[
        Path,
        typer.Option("--output-dir", "-o", help="Directory for the derived datasets"),
    ],
    config: ConfigOpt = None,
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: csv or xpt"),
    ] = "csv",
    report: Annotated[
        Path | None,
        typer.Option("--report", "-r", help="Also write the validation report (.md or .csv)"),
    ] = None,
) -> None:
    """Derive population flags and baseline/change variables.

    Writes ADSL and every measurement dataset to the output directory and
    prints population counts and a validation summary. Datasets are written
    even when the study is not submittable.
    """
    from adamforge.cli.display import display_population_summary, display_validation_summary
    from adamforge.derivation.populations import summarize_populations
    from adamforge.io.writers import write_dataset

    fmt = fmt.lower()
    if fmt not in ("csv", "xpt"):
        console.print(f"[bold red]Error:[/bold red] Unsupported format '{fmt}' (use csv or xpt)")
        raise typer.Exit(code=1)

    result = _run(subjects, measurements, config)

    try:
        written = write_dataset(result.dataset, output_dir, fmt=fmt)  # type: ignore[arg-type]
    except (RuntimeError, ValueError) as e:
        console.print(f"[bold red]Error writing datasets:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    console.print()
    display_population_summary(
        summarize_populations(result.dataset.subjects),
        len(result.dataset.subjects),
        console,
    )
    console.print()
    display_validation_summary(result.report, console)

    console.print(
        Panel(
            "\n".join(str(p) for p in written),
            title=f"Wrote {len(written)} dataset(s)",
            border_style="green",
        )
    )

    if report is not None:
        _write_report(result, report)


@app.command()
def validate(
    subjects: SubjectsArg,
    measurements: MeasurementsArg,
    config: ConfigOpt = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the report as Markdown (.md) or CSV (.csv)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of issues to display"),
    ] = 20,
    derive_first: Annotated[
        bool,
        typer.Option(
            "--derive/--no-derive",
            help="Re-derive flags and baselines before checking, or check stored values as loaded",
        ),
    ] = True,
) -> None:
    """Run cross-dataset validation.

    By default the datasets are derived first. With --no-derive the stored
    population flags, ABLFL, BASE, CHG and PCHG are checked as loaded.
    Exits with code 1 when any critical issue makes the study not submittable.
    """
    from adamforge.cli.display import display_validation_issues, display_validation_summary

    result = _run(subjects, measurements, config, derive=derive_first)

    console.print()
    display_validation_summary(result.report, console)
    console.print()
    display_validation_issues(result.report.issues, console=console, limit=limit)

    if output is not None:
        _write_report(result, output)

    if not result.report.submittable:
        raise typer.Exit(code=1)


@app.command()
def shift(
    subjects: SubjectsArg,
    measurements: MeasurementsArg,
    config: ConfigOpt = None,
    population: Annotated[
        str | None,
        typer.Option("--population", "-p", help="Restrict to a population (e.g. safety, SAFFL)"),
    ] = None,
    parameter: Annotated[
        str | None,
        typer.Option("--parameter", help="Show only this parameter code"),
    ] = None,
) -> None:
    """Print baseline-to-worst-post-baseline shift tables."""
    from adamforge.cli.display import display_shift_table

    result = _run(subjects, measurements, config, population=population)

    tables = result.shift_tables
    if parameter is not None:
        tables = [t for t in tables if t.parameter_code == parameter.upper()]
        if not tables:
            console.print(
                f"[bold red]Error:[/bold red] No shift data for parameter '{parameter.upper()}'."
            )
            raise typer.Exit(code=1)

    if not tables:
        console.print("[dim]No post-baseline measurements to tabulate.[/dim]")
        return

    for table in tables:
        console.print()
        display_shift_table(table, console)
