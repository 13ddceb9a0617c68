"""In-memory study dataset: subjects plus named measurement datasets."""

from __future__ import annotations

from collections import defaultdict

from pydantic import BaseModel, ConfigDict, Field

from adamforge.models.measurement import MeasurementRecord
from adamforge.models.subject import SubjectRecord


class StudyDataset(BaseModel):
    """All records for one study.

    ``measurements`` maps a dataset name (e.g. 'ADLB', 'ADVS') to its
    records in source order. Source order is significant: it is the last
    tie-break in baseline selection.
    """

    model_config = ConfigDict(frozen=True)

    study_id: str | None = None
    subjects: list[SubjectRecord] = Field(default_factory=list)
    measurements: dict[str, list[MeasurementRecord]] = Field(default_factory=dict)

    def subject_index(self) -> dict[str, SubjectRecord]:
        """Subject id -> record. On duplicate ids the first record wins."""
        index: dict[str, SubjectRecord] = {}
        for subject in self.subjects:
            if subject.subject_id is not None and subject.subject_id not in index:
                index[subject.subject_id] = subject
        return index

    def all_measurements(self) -> list[tuple[str, MeasurementRecord]]:
        """Flatten measurement datasets into (dataset name, record) pairs."""
        return [
            (name, record)
            for name in sorted(self.measurements)
            for record in self.measurements[name]
        ]

    def measurements_by_subject(self) -> dict[str, list[MeasurementRecord]]:
        """Group measurement records by subject id, skipping records without one."""
        grouped: dict[str, list[MeasurementRecord]] = defaultdict(list)
        for _name, record in self.all_measurements():
            if record.subject_id is not None:
                grouped[record.subject_id].append(record)
        return dict(grouped)

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.measurements.values())
