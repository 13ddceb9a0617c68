"""Tests for ValidationReport aggregation and rendering."""

from __future__ import annotations

from adamforge.validation.issues import (
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    sort_issues,
)
from adamforge.validation.report import REPORT_COLUMNS, ValidationReport


def _issue(
    check_id: str,
    category: IssueCategory,
    severity: IssueSeverity,
    dataset: str = "ADLB",
    subject_id: str | None = "S1",
) -> ValidationIssue:
    return ValidationIssue(
        check_id=check_id,
        category=category,
        severity=severity,
        dataset=dataset,
        subject_id=subject_id,
        message=f"{check_id} finding",
        record_refs=["S1/ALT/1", "S1/ALT/2"],
    )


def _issues() -> list[ValidationIssue]:
    return [
        _issue("AF-C007", IssueCategory.CALCULATION_MISMATCH, IssueSeverity.MAJOR),
        _issue("AF-C001", IssueCategory.REFERENTIAL_INTEGRITY, IssueSeverity.CRITICAL, "ADVS"),
        _issue("AF-C009", IssueCategory.CALCULATION_MISMATCH, IssueSeverity.MINOR),
    ]


class TestSortIssues:
    def test_category_then_subject(self) -> None:
        issues = [
            _issue("B", IssueCategory.DATE_ORDER, IssueSeverity.MAJOR, subject_id="S2"),
            _issue("A", IssueCategory.DATE_ORDER, IssueSeverity.MAJOR, subject_id="S1"),
            _issue("C", IssueCategory.STRUCTURAL, IssueSeverity.CRITICAL, subject_id="S3"),
        ]
        assert [i.check_id for i in sort_issues(issues)] == ["C", "A", "B"]

    def test_stable_for_equal_keys(self) -> None:
        issues = [
            _issue("X", IssueCategory.DUPLICATE_KEY, IssueSeverity.CRITICAL),
            _issue("Y", IssueCategory.DUPLICATE_KEY, IssueSeverity.CRITICAL),
        ]
        assert [i.check_id for i in sort_issues(issues)] == ["X", "Y"]

    def test_missing_subject_sorts_first(self) -> None:
        issues = [
            _issue("B", IssueCategory.STRUCTURAL, IssueSeverity.CRITICAL, subject_id="S1"),
            _issue("A", IssueCategory.STRUCTURAL, IssueSeverity.CRITICAL, subject_id=None),
        ]
        assert [i.check_id for i in sort_issues(issues)] == ["A", "B"]


class TestFromIssues:
    def test_counts(self) -> None:
        report = ValidationReport.from_issues("STUDY1", _issues(), ["ADSL", "ADLB", "ADVS"])
        assert report.critical_count == 1
        assert report.major_count == 1
        assert report.minor_count == 1
        assert not report.submittable
        assert [i.check_id for i in report.critical_issues] == ["AF-C001"]

    def test_issues_sorted(self) -> None:
        report = ValidationReport.from_issues("STUDY1", _issues(), ["ADLB", "ADVS"])
        assert [i.check_id for i in report.issues] == ["AF-C001", "AF-C007", "AF-C009"]

    def test_summary_by_dataset(self) -> None:
        report = ValidationReport.from_issues("STUDY1", _issues(), ["ADSL", "ADLB", "ADVS"])
        assert report.summary_by_dataset["ADLB"] == {"critical": 0, "major": 1, "minor": 1}
        assert report.summary_by_dataset["ADVS"] == {"critical": 1, "major": 0, "minor": 0}
        assert report.summary_by_dataset["ADSL"] == {"critical": 0, "major": 0, "minor": 0}

    def test_summary_by_category_only_present(self) -> None:
        report = ValidationReport.from_issues("STUDY1", _issues(), ["ADLB"])
        assert set(report.summary_by_category) == {
            "REFERENTIAL_INTEGRITY",
            "CALCULATION_MISMATCH",
        }

    def test_no_critical_is_submittable(self) -> None:
        issues = [_issue("AF-C007", IssueCategory.CALCULATION_MISMATCH, IssueSeverity.MAJOR)]
        report = ValidationReport.from_issues("STUDY1", issues, ["ADLB"])
        assert report.submittable

    def test_empty(self) -> None:
        report = ValidationReport.from_issues("STUDY1", [], [])
        assert report.submittable
        assert report.issues == []
        assert report.generated_at


class TestToFrame:
    def test_columns_and_refs(self) -> None:
        report = ValidationReport.from_issues("STUDY1", _issues(), ["ADLB", "ADVS"])
        frame = report.to_frame()
        assert list(frame.columns) == REPORT_COLUMNS
        assert len(frame) == 3
        assert frame.iloc[0]["check_id"] == "AF-C001"
        assert frame.iloc[0]["severity"] == "CRITICAL"
        assert frame.iloc[0]["record_refs"] == "S1/ALT/1; S1/ALT/2"

    def test_empty_frame_has_columns(self) -> None:
        frame = ValidationReport.from_issues("STUDY1", [], []).to_frame()
        assert list(frame.columns) == REPORT_COLUMNS
        assert frame.empty


class TestToMarkdown:
    def test_sections(self) -> None:
        md = ValidationReport.from_issues("STUDY1", _issues(), ["ADLB", "ADVS"]).to_markdown()
        assert md.startswith("# Validation Report: STUDY1")
        for heading in (
            "## Summary",
            "## Per-Dataset Breakdown",
            "## Per-Category Breakdown",
            "## Issues",
            "## Submission Readiness",
        ):
            assert heading in md
        assert "**NOT SUBMITTABLE**" in md
        assert "**AF-C001** [ADVS]" in md

    def test_submittable(self) -> None:
        md = ValidationReport.from_issues("STUDY1", [], ["ADLB"]).to_markdown()
        assert "**SUBMITTABLE** -- No critical issues found." in md
        assert "## Issues" not in md

    def test_pipe_in_message_escaped(self) -> None:
        issue = ValidationIssue(
            check_id="AF-S001",
            category=IssueCategory.STRUCTURAL,
            severity=IssueSeverity.CRITICAL,
            message="bad | value",
        )
        md = ValidationReport.from_issues("STUDY1", [issue], []).to_markdown()
        assert "bad \\| value" in md
