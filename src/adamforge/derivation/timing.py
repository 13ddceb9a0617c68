"""Placement of measurement records relative to the baseline window.

Both the population and baseline derivers decide "is this record a
baseline candidate / is it post-baseline" the same way, so the rules live
here once.
"""

from __future__ import annotations

from datetime import date

from adamforge.models.config import BaselineRule, DerivationConfig
from adamforge.models.measurement import MeasurementRecord
from adamforge.models.subject import SubjectRecord
from adamforge.models.values import is_missing


def _dates(record: MeasurementRecord, subject: SubjectRecord) -> tuple[date, date] | None:
    if record.collection_date is None or subject.first_dose_date is None:
        return None
    collected = record.collection_date.as_date()
    first_dose = subject.first_dose_date.as_date()
    if collected is None or first_dose is None:
        return None
    return collected, first_dose


def in_baseline_window(
    record: MeasurementRecord,
    subject: SubjectRecord,
    config: DerivationConfig,
) -> bool:
    """True if the record's timing allows it to serve as baseline (value not considered)."""
    if config.baseline_rule == BaselineRule.DESIGNATED_VISIT:
        return record.visit_number is not None and (
            record.visit_number == config.baseline_visit_number
        )

    dates = _dates(record, subject)
    if dates is None:
        return False
    collected, first_dose = dates
    if config.baseline_rule == BaselineRule.LAST_BEFORE_FIRST_DOSE:
        return collected < first_dose
    return collected <= first_dose


def is_baseline_candidate(
    record: MeasurementRecord,
    subject: SubjectRecord,
    config: DerivationConfig,
) -> bool:
    """True if the record has a value and falls in the baseline window."""
    return not is_missing(record.value) and in_baseline_window(record, subject, config)


def is_post_baseline(
    record: MeasurementRecord,
    subject: SubjectRecord,
    config: DerivationConfig,
) -> bool:
    """True if the record is placed after the baseline window.

    Records whose timing cannot be determined (partial or missing dates,
    no first dose, no visit number) are neither baseline nor post-baseline.
    """
    if config.baseline_rule == BaselineRule.DESIGNATED_VISIT:
        return (
            record.visit_number is not None
            and record.visit_number > config.baseline_visit_number  # type: ignore[operator]
        )

    dates = _dates(record, subject)
    if dates is None:
        return False
    collected, first_dose = dates
    if config.baseline_rule == BaselineRule.LAST_BEFORE_FIRST_DOSE:
        return collected >= first_dose
    return collected > first_dose
