"""Rich display helpers for the adamforge CLI.

Provides formatted table output for population counts, validation
reports, and shift tables.
"""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from adamforge.models.subject import PopulationFlag
from adamforge.reporting.shift import SHIFT_CATEGORY_ORDER, ShiftTable
from adamforge.validation.issues import IssueSeverity, ValidationIssue
from adamforge.validation.report import ValidationReport


def display_population_summary(counts: dict[str, int], total: int, console: Console) -> None:
    """Print subject counts per analysis population."""
    table = Table(title="Analysis Populations", show_lines=True)
    table.add_column("Population", style="bold cyan")
    table.add_column("Flag", style="dim")
    table.add_column("Subjects", justify="right")
    table.add_column("% of Total", justify="right")

    for flag in PopulationFlag:
        n = counts.get(flag.value, 0)
        pct = f"{n / total:.0%}" if total else "-"
        table.add_row(flag.value, flag.adam_variable, str(n), pct)

    table.add_section()
    table.add_row("[bold]Total[/bold]", "", f"[bold]{total}[/bold]", "")
    console.print(table)


def _count_text(n: int, style: str) -> Text:
    return Text(str(n), style=style if n > 0 else "green")


def display_validation_summary(report: ValidationReport, console: Console) -> None:
    """Print severity counts and submission status for a report.

    Args:
        report: ValidationReport to display.
        console: Rich Console for output.
    """
    table = Table(title=f"Validation Summary: {report.study_id}", show_lines=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Datasets Validated", str(len(report.datasets_validated)))
    table.add_row("Total Issues", str(len(report.issues)))
    table.add_row("Critical", _count_text(report.critical_count, "bold red"))
    table.add_row("Major", _count_text(report.major_count, "yellow"))
    table.add_row("Minor", str(report.minor_count))

    status = (
        Text("SUBMITTABLE", style="bold green")
        if report.submittable
        else Text("NOT SUBMITTABLE", style="bold red")
    )
    table.add_row("Status", status)
    console.print(table)

    if report.summary_by_dataset:
        ds_table = Table(title="Per-Dataset Breakdown", show_lines=True)
        ds_table.add_column("Dataset", style="bold cyan")
        ds_table.add_column("Critical", justify="right")
        ds_table.add_column("Major", justify="right")
        ds_table.add_column("Minor", justify="right")

        for name in sorted(report.summary_by_dataset):
            counts = report.summary_by_dataset[name]
            ds_table.add_row(
                name,
                _count_text(counts["critical"], "bold red"),
                _count_text(counts["major"], "yellow"),
                str(counts["minor"]),
            )
        console.print(ds_table)


_SEVERITY_STYLES = {
    IssueSeverity.CRITICAL: "bold red",
    IssueSeverity.MAJOR: "yellow",
    IssueSeverity.MINOR: "dim",
}


def display_validation_issues(
    issues: list[ValidationIssue],
    *,
    console: Console,
    limit: int = 20,
) -> None:
    """Print the first ``limit`` issues in report order."""
    if not issues:
        console.print("[dim]No validation issues found.[/dim]")
        return

    shown = issues[:limit]
    table = Table(title=f"Issues ({len(shown)} of {len(issues)} shown)", show_lines=True)
    table.add_column("#", justify="right", style="dim", width=4)
    table.add_column("Severity", no_wrap=True)
    table.add_column("Check", style="bold", no_wrap=True)
    table.add_column("Dataset", no_wrap=True)
    table.add_column("Subject", no_wrap=True)
    table.add_column("Message", max_width=60)

    for idx, issue in enumerate(shown, 1):
        msg = issue.message
        if len(msg) > 60:
            msg = msg[:57] + "..."
        table.add_row(
            str(idx),
            Text(issue.severity.display_name, style=_SEVERITY_STYLES[issue.severity]),
            issue.check_id,
            issue.dataset or "-",
            issue.subject_id or "-",
            msg,
        )

    console.print(table)
    if len(issues) > limit:
        console.print(f"[dim]{len(issues) - limit} more issue(s) not shown[/dim]")


def display_shift_table(shift: ShiftTable, console: Console) -> None:
    """Print one dataset parameter's baseline-by-worst-post-baseline cross-tab."""
    title = f"{shift.dataset} / {shift.parameter_code}"
    if shift.parameter:
        title += f" ({shift.parameter})"

    categories = [c.value for c in SHIFT_CATEGORY_ORDER]
    table = Table(title=f"Shift Table: {title}", caption=shift.convention, show_lines=True)
    table.add_column("Treatment", style="bold cyan")
    table.add_column("Baseline", style="bold")
    for post in categories:
        table.add_column(post, justify="right")

    for treatment in sorted(shift.counts):
        for baseline in categories:
            if baseline not in shift.counts[treatment]:
                continue
            table.add_row(
                treatment,
                baseline,
                *(str(shift.count(treatment, baseline, post)) for post in categories),
            )

    console.print(table)
