"""Validation report model.

Aggregates validation issues into a structured report with severity
counts, dataset and category breakdowns, and a submittability verdict.
Supports Markdown rendering and a flat pandas frame for CSV output.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pandas as pd
from pydantic import BaseModel, Field

from adamforge.validation.issues import (
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    sort_issues,
)

REPORT_COLUMNS = [
    "check_id",
    "category",
    "severity",
    "dataset",
    "subject_id",
    "variable",
    "message",
    "expected",
    "actual",
    "record_refs",
]


def _severity_counts(issues: list[ValidationIssue]) -> dict[str, int]:
    return {
        "critical": sum(1 for i in issues if i.severity == IssueSeverity.CRITICAL),
        "major": sum(1 for i in issues if i.severity == IssueSeverity.MAJOR),
        "minor": sum(1 for i in issues if i.severity == IssueSeverity.MINOR),
    }


class ValidationReport(BaseModel):
    """Aggregated validation report for one study.

    ``submittable`` is True when there are zero critical issues. The report
    only classifies; refusing to export a non-submittable study is the
    caller's decision.
    """

    study_id: str = Field(..., description="Study identifier")
    datasets_validated: list[str] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    critical_count: int = 0
    major_count: int = 0
    minor_count: int = 0
    submittable: bool = True
    generated_at: str = Field(default="", description="ISO 8601 timestamp of report generation")
    summary_by_dataset: dict[str, dict[str, int]] = Field(
        default_factory=dict, description="Dataset -> {critical, major, minor} counts"
    )
    summary_by_category: dict[str, dict[str, int]] = Field(
        default_factory=dict, description="Category -> {critical, major, minor} counts"
    )

    @classmethod
    def from_issues(
        cls,
        study_id: str,
        issues: list[ValidationIssue],
        datasets: list[str],
    ) -> ValidationReport:
        """Create a report by sorting issues and computing summaries.

        Args:
            study_id: Study identifier.
            issues: All findings, from the loader and the validator.
            datasets: Names of the datasets that were validated.
        """
        ordered = sort_issues(issues)
        counts = _severity_counts(ordered)

        summary_by_dataset = {
            name: _severity_counts([i for i in ordered if i.dataset == name])
            for name in datasets
        }
        summary_by_category: dict[str, dict[str, int]] = {}
        for cat in IssueCategory:
            cat_issues = [i for i in ordered if i.category == cat]
            if cat_issues:
                summary_by_category[cat.value] = _severity_counts(cat_issues)

        return cls(
            study_id=study_id,
            datasets_validated=datasets,
            issues=ordered,
            critical_count=counts["critical"],
            major_count=counts["major"],
            minor_count=counts["minor"],
            submittable=counts["critical"] == 0,
            generated_at=datetime.now(tz=UTC).isoformat(),
            summary_by_dataset=summary_by_dataset,
            summary_by_category=summary_by_category,
        )

    @property
    def critical_issues(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.is_critical]

    def to_frame(self) -> pd.DataFrame:
        """One row per issue, in report order."""
        rows = []
        for issue in self.issues:
            row = issue.model_dump(mode="json")
            row["record_refs"] = "; ".join(issue.record_refs)
            rows.append(row)
        return pd.DataFrame(rows, columns=REPORT_COLUMNS)

    def to_markdown(self) -> str:
        """Render the report as a Markdown document."""
        lines: list[str] = []

        lines.append(f"# Validation Report: {self.study_id}")
        lines.append("")
        lines.append(f"**Generated:** {self.generated_at}")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append("| Metric | Value |")
        lines.append("|--------|-------|")
        lines.append(f"| Datasets Validated | {len(self.datasets_validated)} |")
        lines.append(f"| Total Issues | {len(self.issues)} |")
        lines.append(f"| Critical | {self.critical_count} |")
        lines.append(f"| Major | {self.major_count} |")
        lines.append(f"| Minor | {self.minor_count} |")
        status = "SUBMITTABLE" if self.submittable else "NOT SUBMITTABLE"
        lines.append(f"| Status | {status} |")
        lines.append("")

        if self.summary_by_dataset:
            lines.append("## Per-Dataset Breakdown")
            lines.append("")
            lines.append("| Dataset | Critical | Major | Minor |")
            lines.append("|---------|----------|-------|-------|")
            for name in sorted(self.summary_by_dataset):
                c = self.summary_by_dataset[name]
                lines.append(f"| {name} | {c['critical']} | {c['major']} | {c['minor']} |")
            lines.append("")

        if self.summary_by_category:
            lines.append("## Per-Category Breakdown")
            lines.append("")
            lines.append("| Category | Critical | Major | Minor |")
            lines.append("|----------|----------|-------|-------|")
            for cat in self.summary_by_category:
                c = self.summary_by_category[cat]
                lines.append(f"| {cat} | {c['critical']} | {c['major']} | {c['minor']} |")
            lines.append("")

        if self.issues:
            lines.append("## Issues")
            lines.append("")
            lines.append("| # | Severity | Check | Dataset | Subject | Variable | Message |")
            lines.append("|---|----------|-------|---------|---------|----------|---------|")
            for n, issue in enumerate(self.issues, 1):
                msg = issue.message.replace("|", "\\|")
                lines.append(
                    f"| {n} | {issue.severity.display_name} | {issue.check_id} | "
                    f"{issue.dataset or '-'} | {issue.subject_id or '-'} | "
                    f"{issue.variable or '-'} | {msg} |"
                )
            lines.append("")

        lines.append("## Submission Readiness")
        lines.append("")
        if self.submittable:
            lines.append("**SUBMITTABLE** -- No critical issues found.")
        else:
            blocking = self.critical_issues
            lines.append(
                f"**NOT SUBMITTABLE** -- {len(blocking)} critical issue(s) must be resolved:"
            )
            lines.append("")
            for issue in blocking:
                where = f" [{issue.dataset}]" if issue.dataset else ""
                lines.append(f"- **{issue.check_id}**{where}: {issue.message}")
        lines.append("")

        return "\n".join(lines)
