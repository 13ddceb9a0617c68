"""Validation issue model.

Defines IssueSeverity, IssueCategory, and ValidationIssue. Issues are
immutable findings appended to a report; nothing downstream edits them.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class IssueSeverity(StrEnum):
    """Severity classification for validation findings.

    CRITICAL: Blocks export -- the dataset is not submittable.
    MAJOR: Business-rule violation that needs review or explanation.
    MINOR: Informational or cosmetic finding.
    """

    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"

    @property
    def display_name(self) -> str:
        """Human-friendly display name."""
        return self.value.capitalize()


class IssueCategory(StrEnum):
    """Kind of finding. Definition order is the report sort order."""

    STRUCTURAL = "STRUCTURAL"
    REFERENTIAL_INTEGRITY = "REFERENTIAL_INTEGRITY"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    DATE_ORDER = "DATE_ORDER"
    CALCULATION_MISMATCH = "CALCULATION_MISMATCH"
    POPULATION_FLAG = "POPULATION_FLAG"
    BASELINE_UNIQUENESS = "BASELINE_UNIQUENESS"

    @property
    def sort_rank(self) -> int:
        return list(IssueCategory).index(self)


class ValidationIssue(BaseModel):
    """A single reported finding."""

    model_config = ConfigDict(frozen=True)

    check_id: str = Field(..., description="Check identifier (e.g. 'AF-C001')")
    category: IssueCategory
    severity: IssueSeverity
    message: str = Field(..., description="Human-readable finding")
    dataset: str | None = Field(default=None, description="Dataset name if dataset-specific")
    subject_id: str | None = Field(default=None, description="Offending subject, if any")
    variable: str | None = Field(default=None, description="Offending variable, if any")
    record_refs: list[str] = Field(
        default_factory=list, description="References to the offending records"
    )
    expected: str | None = Field(default=None, description="Recomputed / expected value")
    actual: str | None = Field(default=None, description="Stored / actual value")

    @property
    def is_critical(self) -> bool:
        return self.severity == IssueSeverity.CRITICAL


def sort_issues(issues: list[ValidationIssue]) -> list[ValidationIssue]:
    """Order issues by category, then subject id; emission order breaks ties."""
    return sorted(issues, key=lambda i: (i.category.sort_rank, i.subject_id or ""))
