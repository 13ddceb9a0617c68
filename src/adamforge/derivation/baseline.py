"""Baseline selection and change-from-baseline derivation.

For each subject x parameter group within a measurement dataset:

1. Select at most one baseline record according to the configured rule.
   Ties on collection date go to the higher visit number (the later-entered
   assessment), then to the later source position.
2. Populate BASE on the baseline record and every post-baseline record.
3. CHG = AVAL - BASE when both are numeric.
4. PCHG = CHG / BASE * 100, or the ZERO_BASELINE sentinel when BASE is 0.

Incoming ABLFL/BASE/CHG/PCHG values are discarded and recomputed, so the
output depends only on the source values and the configuration. Running
the deriver on its own output reproduces it exactly.
"""

from __future__ import annotations

import math
from datetime import date

from loguru import logger

from adamforge.derivation.timing import is_baseline_candidate, is_post_baseline
from adamforge.models.config import DerivationConfig
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import (
    MeasurementRecord,
    PercentChangeStatus,
    RangeIndicator,
)
from adamforge.models.subject import SubjectRecord
from adamforge.transforms.study_day import calculate_analysis_day


def compute_change(value: float | None, baseline: float | None) -> float | None:
    """CHG, defined only when both value and baseline are present."""
    if value is None or baseline is None:
        return None
    return value - baseline


def compute_percent_change(
    change: float | None,
    baseline: float | None,
) -> float | PercentChangeStatus | None:
    """PCHG, with a sentinel instead of a division error for a zero baseline."""
    if change is None or baseline is None:
        return None
    if baseline == 0:
        return PercentChangeStatus.ZERO_BASELINE
    return change / baseline * 100


def derive_range_indicator(record: MeasurementRecord) -> RangeIndicator | None:
    """Collected indicator if present, otherwise classify the value against its bounds."""
    if record.range_indicator is not None:
        return record.range_indicator
    value = record.numeric_value
    if value is None or (record.range_low is None and record.range_high is None):
        return None
    if record.range_low is not None and value < record.range_low:
        return RangeIndicator.LOW
    if record.range_high is not None and value > record.range_high:
        return RangeIndicator.HIGH
    return RangeIndicator.NORMAL


def _selection_key(position: int, record: MeasurementRecord) -> tuple[date, float, int]:
    collected = record.collection_date.as_date() if record.collection_date else None
    visit = record.visit_number if record.visit_number is not None else -math.inf
    return (collected or date.min, visit, position)


def select_baseline(
    records: list[MeasurementRecord],
    subject: SubjectRecord,
    config: DerivationConfig,
) -> int | None:
    """Return the position of the baseline record within a group, or None."""
    candidates = [
        (position, record)
        for position, record in enumerate(records)
        if is_baseline_candidate(record, subject, config)
    ]
    if not candidates:
        return None
    position, _record = max(candidates, key=lambda c: _selection_key(*c))
    return position


class BaselineDeriver:
    """Assigns baseline flags and change values for all measurement datasets."""

    def __init__(self, config: DerivationConfig) -> None:
        self._config = config

    def derive_group(
        self,
        records: list[MeasurementRecord],
        subject: SubjectRecord,
    ) -> list[MeasurementRecord]:
        """Derive one subject x parameter group, preserving record order."""
        baseline_pos = select_baseline(records, subject, self._config)

        base_value: float | None = None
        base_indicator: RangeIndicator | None = None
        if baseline_pos is not None:
            base_record = records[baseline_pos]
            base_value = base_record.numeric_value
            base_indicator = derive_range_indicator(base_record)
        else:
            logger.debug(
                "No baseline candidate for {}/{}",
                subject.subject_id,
                records[0].parameter_code if records else "?",
            )

        derived: list[MeasurementRecord] = []
        for position, record in enumerate(records):
            is_baseline = position == baseline_pos
            anchored = baseline_pos is not None and (
                is_baseline or is_post_baseline(record, subject, self._config)
            )
            baseline = base_value if anchored else None
            change = compute_change(record.numeric_value, baseline)
            derived.append(
                record.model_copy(
                    update={
                        "is_baseline": is_baseline,
                        "baseline_value": baseline,
                        "change": change,
                        "percent_change": compute_percent_change(change, baseline),
                        "range_indicator": derive_range_indicator(record),
                        "baseline_range_indicator": base_indicator if anchored else None,
                        "analysis_day": calculate_analysis_day(
                            record.collection_date, subject.first_dose_date
                        ),
                    }
                )
            )
        return derived

    def derive_records(
        self,
        records: list[MeasurementRecord],
        subjects: dict[str, SubjectRecord],
    ) -> list[MeasurementRecord]:
        """Derive every group in one measurement dataset.

        Records without a subject id or parameter code, and records whose
        subject does not exist, are returned unchanged.
        """
        groups: dict[tuple[str, str], list[int]] = {}
        for position, record in enumerate(records):
            if record.subject_id is None or record.parameter_code is None:
                continue
            if record.subject_id not in subjects:
                continue
            groups.setdefault((record.subject_id, record.parameter_code), []).append(position)

        output = list(records)
        for (subject_id, _param), positions in groups.items():
            group = [records[p] for p in positions]
            for position, record in zip(
                positions, self.derive_group(group, subjects[subject_id]), strict=True
            ):
                output[position] = record
        return output

    def derive(self, dataset: StudyDataset) -> StudyDataset:
        """Return a copy of the dataset with baseline and change values derived."""
        subjects = dataset.subject_index()
        measurements: dict[str, list[MeasurementRecord]] = {}
        for name, records in dataset.measurements.items():
            measurements[name] = self.derive_records(records, subjects)
            n_baseline = sum(1 for r in measurements[name] if r.is_baseline)
            logger.info(
                "Derived baselines for {}: {} records, {} baseline records",
                name,
                len(records),
                n_baseline,
            )
        return dataset.model_copy(update={"measurements": measurements})
