"""Cross-dataset validation of derived ADaM datasets.

Checks produce immutable ValidationIssue findings with severity levels;
ValidationReport aggregates them and decides submittability.
"""

from adamforge.validation.cross_dataset import CrossDatasetValidator
from adamforge.validation.issues import (
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    sort_issues,
)
from adamforge.validation.report import ValidationReport

__all__ = [
    "CrossDatasetValidator",
    "IssueCategory",
    "IssueSeverity",
    "ValidationIssue",
    "ValidationReport",
    "sort_issues",
]
