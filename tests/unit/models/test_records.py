"""Tests for analysis values, subject and measurement records, and StudyDataset."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import MeasurementRecord
from adamforge.models.subject import PopulationFlag, SubjectRecord
from adamforge.models.values import (
    AnalysisValue,
    DateValue,
    MissingValue,
    NumericValue,
    TextValue,
    is_missing,
    numeric_or_none,
)
from adamforge.transforms.dates import parse_partial_iso8601


def _record(subject_id: str = "S1", **kwargs) -> MeasurementRecord:
    kwargs.setdefault("parameter_code", "ALT")
    return MeasurementRecord(subject_id=subject_id, study_id="STUDY1", **kwargs)


class TestAnalysisValue:
    def test_missing_is_not_zero(self) -> None:
        assert numeric_or_none(MissingValue()) is None
        assert numeric_or_none(NumericValue(value=0.0)) == 0.0
        assert is_missing(MissingValue(reason="not done"))
        assert not is_missing(NumericValue(value=0.0))

    def test_text_and_date_are_not_numeric(self) -> None:
        assert numeric_or_none(TextValue(value="NEGATIVE")) is None
        date_value = DateValue(value=parse_partial_iso8601("2023-01"))
        assert numeric_or_none(date_value) is None

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NumericValue(value=float("nan"))

    def test_empty_text_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TextValue(value="")

    def test_discriminated_by_kind(self) -> None:
        adapter = TypeAdapter(AnalysisValue)
        value = adapter.validate_python({"kind": "missing", "reason": "hemolyzed"})
        assert isinstance(value, MissingValue)
        assert value.reason == "hemolyzed"
        assert isinstance(adapter.validate_python({"kind": "numeric", "value": 3}), NumericValue)


class TestSubjectRecord:
    def test_flag_defaults_false(self) -> None:
        subject = SubjectRecord(subject_id="S1", study_id="STUDY1")
        assert not subject.flag(PopulationFlag.SAFETY)

    def test_adam_variable_names(self) -> None:
        assert [f.adam_variable for f in PopulationFlag] == [
            "SAFFL",
            "ITTFL",
            "PPROTFL",
            "EFFFL",
        ]

    def test_treatment_group_fallback(self) -> None:
        subject = SubjectRecord(subject_id="S1", study_id="STUDY1", planned_treatment="Drug A")
        assert subject.treatment_group("actual") == "Drug A"
        assert subject.treatment_group("planned") == "Drug A"

    def test_treatment_group_unassigned(self) -> None:
        subject = SubjectRecord(subject_id="S1", study_id="STUDY1")
        assert subject.treatment_group() == "UNASSIGNED"

    def test_negative_compliance_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SubjectRecord(subject_id="S1", study_id="STUDY1", compliance=-0.1)

    def test_ids_may_be_null(self) -> None:
        subject = SubjectRecord(subject_id=None, study_id=None)
        assert subject.subject_id is None


class TestMeasurementRecord:
    def test_default_value_is_missing(self) -> None:
        assert isinstance(_record().value, MissingValue)
        assert _record().numeric_value is None

    def test_timepoint_prefers_visit_number(self) -> None:
        record = _record(visit="WEEK 2", visit_number=3.0)
        assert record.timepoint == "3"

    @pytest.mark.parametrize(
        ("visit_number", "expected"),
        [(1000001.0, "1000001"), (1000002.0, "1000002"), (2.5, "2.5"), (101.25, "101.25")],
    )
    def test_timepoint_keeps_full_visit_number(self, visit_number: float, expected: str) -> None:
        assert _record(visit_number=visit_number).timepoint == expected

    def test_timepoint_falls_back_to_visit_then_date(self) -> None:
        assert _record(visit="WEEK 2").timepoint == "WEEK 2"
        dated = _record(collection_date=parse_partial_iso8601("2023-01-05"))
        assert dated.timepoint == "2023-01-05"
        assert _record().timepoint is None

    def test_reference(self) -> None:
        record = _record(visit_number=3.0, sequence=7)
        assert record.reference == "S1/ALT/3 (seq 7)"

    def test_reference_without_ids(self) -> None:
        record = MeasurementRecord(subject_id=None, study_id=None, parameter_code=None)
        assert record.reference == "<no subject>/<no param>"


class TestStudyDataset:
    def test_subject_index_first_wins(self) -> None:
        first = SubjectRecord(subject_id="S1", study_id="STUDY1", sex="F")
        second = SubjectRecord(subject_id="S1", study_id="STUDY1", sex="M")
        dataset = StudyDataset(subjects=[first, second])
        assert dataset.subject_index()["S1"].sex == "F"

    def test_measurements_by_subject_skips_missing_ids(self) -> None:
        dataset = StudyDataset(
            measurements={
                "ADVS": [_record("S2", parameter_code="SYSBP")],
                "ADLB": [_record("S1"), _record(None)],  # type: ignore[arg-type]
            }
        )
        grouped = dataset.measurements_by_subject()
        assert set(grouped) == {"S1", "S2"}
        assert dataset.record_count == 3

    def test_all_measurements_sorted_by_dataset(self) -> None:
        dataset = StudyDataset(
            measurements={"ADVS": [_record("S2")], "ADLB": [_record("S1")]}
        )
        assert [name for name, _ in dataset.all_measurements()] == ["ADLB", "ADVS"]
