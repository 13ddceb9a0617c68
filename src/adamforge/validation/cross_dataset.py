"""Cross-dataset consistency validation.

The CrossDatasetValidator sees the subject-level records and every
measurement dataset together and checks invariants that span them:
subject references, composite-key uniqueness, date ordering, required
identifiers, stored derived values, and population flag consistency.

Validation only reports. It never edits the dataset, and it never raises
for bad data: every finding becomes a ValidationIssue.
"""

from __future__ import annotations

from collections import Counter, defaultdict

from loguru import logger

from adamforge.derivation.baseline import compute_change, compute_percent_change
from adamforge.models.config import DerivationConfig
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import MeasurementRecord, PercentChangeStatus
from adamforge.models.subject import PopulationFlag
from adamforge.transforms.dates import definitely_before
from adamforge.validation.issues import (
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    sort_issues,
)

SUBJECT_DATASET = "ADSL"


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _fmt(value: float | PercentChangeStatus | None) -> str:
    if value is None:
        return "<missing>"
    if isinstance(value, PercentChangeStatus):
        return value.value
    return repr(value)


class CrossDatasetValidator:
    """Validates consistency between the subject set and measurement datasets."""

    def __init__(self, config: DerivationConfig) -> None:
        self._config = config

    def validate(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """Run all cross-dataset checks.

        Returns:
            Issues ordered by category, then subject id.
        """
        issues: list[ValidationIssue] = []

        issues.extend(self._check_referential_integrity(dataset))
        issues.extend(self._check_duplicate_keys(dataset))
        issues.extend(self._check_date_order(dataset))
        issues.extend(self._check_required_fields(dataset))
        issues.extend(self._check_derived_values(dataset))
        issues.extend(self._check_population_flags(dataset))
        issues.extend(self._check_baseline_uniqueness(dataset))

        ordered = sort_issues(issues)
        n_critical = sum(1 for i in ordered if i.is_critical)
        logger.info(
            "Cross-dataset validation: {} issue(s), {} critical", len(ordered), n_critical
        )
        return ordered

    def _check_referential_integrity(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C001: every measurement subject id must resolve to a subject record."""
        issues: list[ValidationIssue] = []
        known = dataset.subject_index()

        for name, records in sorted(dataset.measurements.items()):
            orphans: dict[str, list[MeasurementRecord]] = defaultdict(list)
            for record in records:
                if _blank(record.subject_id):
                    continue
                if record.subject_id not in known:
                    orphans[record.subject_id].append(record)  # type: ignore[index]

            for subject_id, orphan_records in orphans.items():
                issues.append(
                    ValidationIssue(
                        check_id="AF-C001",
                        category=IssueCategory.REFERENTIAL_INTEGRITY,
                        severity=IssueSeverity.CRITICAL,
                        dataset=name,
                        subject_id=subject_id,
                        variable="USUBJID",
                        record_refs=[r.reference for r in orphan_records],
                        message=(
                            f"{name} has {len(orphan_records)} record(s) for subject "
                            f"'{subject_id}' which is not in {SUBJECT_DATASET}"
                        ),
                    )
                )
            if orphans:
                logger.warning("AF-C001: {} has {} orphan subject(s)", name, len(orphans))

        return issues

    def _check_duplicate_keys(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C002 / AF-C003: composite record keys and subject ids must be unique."""
        issues: list[ValidationIssue] = []

        subject_counts = Counter(
            s.subject_id for s in dataset.subjects if not _blank(s.subject_id)
        )
        for subject_id, count in subject_counts.items():
            if count > 1:
                issues.append(
                    ValidationIssue(
                        check_id="AF-C003",
                        category=IssueCategory.DUPLICATE_KEY,
                        severity=IssueSeverity.CRITICAL,
                        dataset=SUBJECT_DATASET,
                        subject_id=subject_id,
                        variable="USUBJID",
                        message=f"Subject '{subject_id}' appears {count} times in {SUBJECT_DATASET}",
                    )
                )

        for name, records in sorted(dataset.measurements.items()):
            groups: dict[tuple[str, str, str], list[MeasurementRecord]] = defaultdict(list)
            for record in records:
                timepoint = record.timepoint
                if _blank(record.subject_id) or _blank(record.parameter_code) or timepoint is None:
                    continue
                key = (record.subject_id, record.parameter_code, timepoint)
                groups[key].append(record)  # type: ignore[index]

            for (subject_id, param, timepoint), dupes in groups.items():
                if len(dupes) < 2:
                    continue
                issues.append(
                    ValidationIssue(
                        check_id="AF-C002",
                        category=IssueCategory.DUPLICATE_KEY,
                        severity=IssueSeverity.CRITICAL,
                        dataset=name,
                        subject_id=subject_id,
                        variable="PARAMCD",
                        record_refs=[r.reference for r in dupes],
                        message=(
                            f"{len(dupes)} {name} records share the key "
                            f"(subject={subject_id}, parameter={param}, timepoint={timepoint})"
                        ),
                    )
                )
                logger.warning(
                    "AF-C002: duplicate key {}/{}/{} in {}", subject_id, param, timepoint, name
                )

        return issues

    def _check_date_order(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C004 / AF-C005: dose dates in order; no assessments before consent.

        Partial dates only count as a violation when every possible reading
        of them is out of order.
        """
        issues: list[ValidationIssue] = []

        for subject in dataset.subjects:
            if definitely_before(subject.last_dose_date, subject.first_dose_date):
                issues.append(
                    ValidationIssue(
                        check_id="AF-C004",
                        category=IssueCategory.DATE_ORDER,
                        severity=IssueSeverity.MAJOR,
                        dataset=SUBJECT_DATASET,
                        subject_id=subject.subject_id,
                        variable="TRTEDT",
                        message=(
                            f"Last dose date {subject.last_dose_date} precedes first dose "
                            f"date {subject.first_dose_date}"
                        ),
                        expected=f">= {subject.first_dose_date}",
                        actual=str(subject.last_dose_date),
                    )
                )

        known = dataset.subject_index()
        for name, records in sorted(dataset.measurements.items()):
            early: dict[str, list[MeasurementRecord]] = defaultdict(list)
            for record in records:
                subject = known.get(record.subject_id) if record.subject_id else None
                if subject is None:
                    continue
                if definitely_before(record.collection_date, subject.consent_date):
                    early[subject.subject_id].append(record)  # type: ignore[index]

            for subject_id, early_records in early.items():
                consent = known[subject_id].consent_date
                issues.append(
                    ValidationIssue(
                        check_id="AF-C005",
                        category=IssueCategory.DATE_ORDER,
                        severity=IssueSeverity.MAJOR,
                        dataset=name,
                        subject_id=subject_id,
                        variable="ADT",
                        record_refs=[r.reference for r in early_records],
                        message=(
                            f"{len(early_records)} {name} record(s) collected before "
                            f"consent date {consent}"
                        ),
                    )
                )

        return issues

    def _check_required_fields(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C006: identifiers must be populated on every record."""
        issues: list[ValidationIssue] = []

        for variable, attr in (("USUBJID", "subject_id"), ("STUDYID", "study_id")):
            missing = [
                pos for pos, s in enumerate(dataset.subjects, 1) if _blank(getattr(s, attr))
            ]
            for pos in missing:
                subject = dataset.subjects[pos - 1]
                issues.append(
                    ValidationIssue(
                        check_id="AF-C006",
                        category=IssueCategory.MISSING_REQUIRED_FIELD,
                        severity=IssueSeverity.CRITICAL,
                        dataset=SUBJECT_DATASET,
                        subject_id=subject.subject_id,
                        variable=variable,
                        record_refs=[f"{SUBJECT_DATASET} record {pos}"],
                        message=f"{SUBJECT_DATASET} record {pos} has no {variable}",
                    )
                )

        for name, records in sorted(dataset.measurements.items()):
            for variable, attr in (
                ("USUBJID", "subject_id"),
                ("STUDYID", "study_id"),
                ("PARAMCD", "parameter_code"),
            ):
                for record in records:
                    if not _blank(getattr(record, attr)):
                        continue
                    issues.append(
                        ValidationIssue(
                            check_id="AF-C006",
                            category=IssueCategory.MISSING_REQUIRED_FIELD,
                            severity=IssueSeverity.CRITICAL,
                            dataset=name,
                            subject_id=record.subject_id,
                            variable=variable,
                            record_refs=[record.reference],
                            message=f"{name} record {record.reference} has no {variable}",
                        )
                    )

        return issues

    def _check_derived_values(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C007..C009: stored CHG / PCHG must match an independent recomputation."""
        issues: list[ValidationIssue] = []
        tolerance = self._config.change_tolerance

        for name, records in sorted(dataset.measurements.items()):
            for record in records:
                expected_chg = compute_change(record.numeric_value, record.baseline_value)
                stored_chg = record.change

                if stored_chg is None and expected_chg is not None:
                    issues.append(
                        self._calculation_issue(
                            "AF-C009",
                            IssueSeverity.MINOR,
                            name,
                            record,
                            "CHG",
                            expected_chg,
                            stored_chg,
                            "CHG is computable from AVAL and BASE but was not derived",
                        )
                    )
                elif stored_chg is not None and (
                    expected_chg is None or abs(stored_chg - expected_chg) > tolerance
                ):
                    issues.append(
                        self._calculation_issue(
                            "AF-C007",
                            IssueSeverity.MAJOR,
                            name,
                            record,
                            "CHG",
                            expected_chg,
                            stored_chg,
                            f"Stored CHG {_fmt(stored_chg)} does not match "
                            f"AVAL - BASE = {_fmt(expected_chg)}",
                        )
                    )

                stored_pchg = record.percent_change
                if stored_pchg is None:
                    continue
                expected_pchg = compute_percent_change(expected_chg, record.baseline_value)
                if not self._percent_change_matches(stored_pchg, expected_pchg):
                    issues.append(
                        self._calculation_issue(
                            "AF-C008",
                            IssueSeverity.MAJOR,
                            name,
                            record,
                            "PCHG",
                            expected_pchg,
                            stored_pchg,
                            f"Stored PCHG {_fmt(stored_pchg)} does not match "
                            f"recomputed {_fmt(expected_pchg)}",
                        )
                    )

        if issues:
            logger.warning("AF-C007..C009: {} derived-value finding(s)", len(issues))
        return issues

    def _percent_change_matches(
        self,
        stored: float | PercentChangeStatus,
        expected: float | PercentChangeStatus | None,
    ) -> bool:
        if expected is None:
            return False
        if isinstance(stored, PercentChangeStatus) or isinstance(expected, PercentChangeStatus):
            return stored == expected
        return abs(stored - expected) <= self._config.change_tolerance

    @staticmethod
    def _calculation_issue(
        check_id: str,
        severity: IssueSeverity,
        dataset_name: str,
        record: MeasurementRecord,
        variable: str,
        expected: float | PercentChangeStatus | None,
        actual: float | PercentChangeStatus | None,
        message: str,
    ) -> ValidationIssue:
        return ValidationIssue(
            check_id=check_id,
            category=IssueCategory.CALCULATION_MISMATCH,
            severity=severity,
            dataset=dataset_name,
            subject_id=record.subject_id,
            variable=variable,
            record_refs=[record.reference],
            message=f"{record.reference}: {message}",
            expected=_fmt(expected),
            actual=_fmt(actual),
        )

    def _check_population_flags(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C010: per-protocol membership requires intent-to-treat membership."""
        issues: list[ValidationIssue] = []
        for subject in dataset.subjects:
            if subject.flag(PopulationFlag.PER_PROTOCOL) and not subject.flag(
                PopulationFlag.INTENT_TO_TREAT
            ):
                issues.append(
                    ValidationIssue(
                        check_id="AF-C010",
                        category=IssueCategory.POPULATION_FLAG,
                        severity=IssueSeverity.CRITICAL,
                        dataset=SUBJECT_DATASET,
                        subject_id=subject.subject_id,
                        variable=PopulationFlag.PER_PROTOCOL.adam_variable,
                        message=(
                            f"Subject '{subject.subject_id}' is in the per-protocol "
                            f"population but not in intent-to-treat"
                        ),
                        expected="ITTFL = Y",
                        actual="ITTFL = N",
                    )
                )
        return issues

    def _check_baseline_uniqueness(self, dataset: StudyDataset) -> list[ValidationIssue]:
        """AF-C011: at most one baseline record per subject x parameter."""
        issues: list[ValidationIssue] = []
        for name, records in sorted(dataset.measurements.items()):
            baselines: dict[tuple[str, str], list[MeasurementRecord]] = defaultdict(list)
            for record in records:
                if record.is_baseline and record.subject_id and record.parameter_code:
                    baselines[(record.subject_id, record.parameter_code)].append(record)

            for (subject_id, param), flagged in baselines.items():
                if len(flagged) < 2:
                    continue
                issues.append(
                    ValidationIssue(
                        check_id="AF-C011",
                        category=IssueCategory.BASELINE_UNIQUENESS,
                        severity=IssueSeverity.CRITICAL,
                        dataset=name,
                        subject_id=subject_id,
                        variable="ABLFL",
                        record_refs=[r.reference for r in flagged],
                        message=(
                            f"{len(flagged)} baseline records flagged for "
                            f"{subject_id}/{param} in {name}"
                        ),
                    )
                )
        return issues
