"""Tests for loading subject and measurement datasets."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from adamforge.io.readers import (
    load_measurements,
    load_study,
    measurement_from_row,
    read_table,
    subject_from_row,
)
from adamforge.models.measurement import PercentChangeStatus, RangeIndicator
from adamforge.models.subject import PopulationFlag
from adamforge.models.values import MissingValue, NumericValue, TextValue
from adamforge.transforms.dates import DatePrecision
from adamforge.validation.issues import IssueCategory, IssueSeverity


def _write_csv(path: Path, rows: list[dict[str, object]]) -> Path:
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


@pytest.fixture()
def adsl_csv(tmp_path) -> Path:
    return _write_csv(
        tmp_path / "adsl.csv",
        [
            {
                "STUDYID": "STUDY1",
                "USUBJID": "S1",
                "ARM": "Drug A",
                "TRTSDTC": "2023-01-10",
                "RANDDTC": "2023-01-02",
                "COMPLRT": "0.95",
                "MAJDVFL": "N",
                "AGE": "54",
            },
            {
                "STUDYID": "STUDY1",
                "USUBJID": "S2",
                "ARM": "Placebo",
                "TRTSDTC": "2023-01",
                "RANDDTC": "",
                "COMPLRT": "",
                "MAJDVFL": "",
                "AGE": "61",
            },
        ],
    )


@pytest.fixture()
def adlb_csv(tmp_path) -> Path:
    return _write_csv(
        tmp_path / "adlb.csv",
        [
            {"STUDYID": "STUDY1", "USUBJID": "S1", "PARAMCD": "ALT", "AVAL": "20",
             "ADTC": "2023-01-05", "AVISITN": "1"},
            {"STUDYID": "STUDY1", "USUBJID": "S1", "PARAMCD": "ALT", "AVAL": "25",
             "ADTC": "2023-01-15", "AVISITN": "2"},
            {"STUDYID": "STUDY1", "USUBJID": "S1", "PARAMCD": "ALT", "AVAL": "n/a",
             "ADTC": "2023-01-22", "AVISITN": "3"},
            {"STUDYID": "STUDY1", "USUBJID": "", "PARAMCD": "ALT", "AVAL": "30",
             "ADTC": "2023-01-22", "AVISITN": "3"},
        ],
    )


class TestReadTable:
    def test_uppercases_columns(self, tmp_path) -> None:
        path = _write_csv(tmp_path / "x.csv", [{"usubjid": "S1", " paramcd ": "ALT"}])
        assert list(read_table(path).columns) == ["USUBJID", "PARAMCD"]

    def test_csv_values_are_strings(self, tmp_path) -> None:
        path = _write_csv(tmp_path / "x.csv", [{"USUBJID": "001", "AVAL": ""}])
        df = read_table(path)
        assert df.loc[0, "USUBJID"] == "001"
        assert df.loc[0, "AVAL"] == ""

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            read_table(tmp_path / "missing.csv")

    def test_unsupported_suffix(self, tmp_path) -> None:
        path = tmp_path / "data.xlsx"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported dataset format"):
            read_table(path)


class TestSubjectFromRow:
    def test_aliases_and_types(self) -> None:
        subject = subject_from_row(
            {
                "USUBJID": "S1",
                "STUDYID": "STUDY1",
                "ARM": "Drug A",
                "ACTARM": "Drug A",
                "RFXSTDTC": "2023-01-10",
                "RFICDTC": "2022-12-20",
                "MAJDVFL": "Y",
                "COMPLRT": "0.9",
            }
        )
        assert subject.planned_treatment == "Drug A"
        assert subject.first_dose_date is not None
        assert subject.first_dose_date.isoformat() == "2023-01-10"
        assert subject.major_deviation
        assert subject.compliance == 0.9

    def test_sas_numeric_id_rendered_without_decimal(self) -> None:
        subject = subject_from_row({"USUBJID": 101.0, "STUDYID": "STUDY1"})
        assert subject.subject_id == "101"

    def test_missing_subject_id(self) -> None:
        with pytest.raises(ValueError, match="USUBJID"):
            subject_from_row({"USUBJID": "", "STUDYID": "STUDY1"})

    def test_stored_population_flags(self) -> None:
        subject = subject_from_row(
            {"USUBJID": "S1", "SAFFL": "Y", "ITTFL": "N", "PPROTFL": "y", "EFFFL": ""}
        )
        assert subject.flags == {"safety": True, "intent-to-treat": False, "per-protocol": True}
        assert subject.flag(PopulationFlag.PER_PROTOCOL)
        assert not subject.flag(PopulationFlag.EFFICACY)

    def test_no_flag_columns(self) -> None:
        assert subject_from_row({"USUBJID": "S1"}).flags == {}

    def test_bad_population_flag(self) -> None:
        with pytest.raises(ValueError, match="ITTFL"):
            subject_from_row({"USUBJID": "S1", "ITTFL": "1"})

    def test_bad_flag_value(self) -> None:
        with pytest.raises(ValueError, match="MAJDVFL"):
            subject_from_row({"USUBJID": "S1", "MAJDVFL": "maybe"})


class TestMeasurementFromRow:
    def test_numeric_value(self) -> None:
        record = measurement_from_row(
            {"USUBJID": "S1", "PARAMCD": "ALT", "AVAL": "20.5", "VISITNUM": "2"}, sequence=3
        )
        assert record.value == NumericValue(value=20.5)
        assert record.visit_number == 2.0
        assert record.sequence == 3

    def test_character_value(self) -> None:
        record = measurement_from_row(
            {"USUBJID": "S1", "PARAMCD": "UPROT", "AVAL": "", "AVALC": "NEGATIVE"}, sequence=1
        )
        assert record.value == TextValue(value="NEGATIVE")

    def test_missing_value_keeps_reason(self) -> None:
        record = measurement_from_row(
            {"USUBJID": "S1", "PARAMCD": "ALT", "AVAL": "", "AVALRS": "HEMOLYZED"}, sequence=1
        )
        assert record.value == MissingValue(reason="HEMOLYZED")

    def test_partial_date(self) -> None:
        record = measurement_from_row(
            {"USUBJID": "S1", "PARAMCD": "ALT", "ADTC": "2023-01"}, sequence=1
        )
        assert record.collection_date is not None
        assert record.collection_date.precision == DatePrecision.YEAR_MONTH

    def test_stored_derivations(self) -> None:
        record = measurement_from_row(
            {
                "USUBJID": "S1",
                "PARAMCD": "ALT",
                "AVAL": "3",
                "ABLFL": "Y",
                "BASE": "0",
                "CHG": "3",
                "PCHGST": "zero_baseline",
                "ANRIND": "high",
            },
            sequence=1,
        )
        assert record.is_baseline
        assert record.baseline_value == 0.0
        assert record.percent_change == PercentChangeStatus.ZERO_BASELINE
        assert record.range_indicator == RangeIndicator.HIGH

    @pytest.mark.parametrize(
        ("column", "value"),
        [("AVAL", "n/a"), ("ADTC", "05/01/2023"), ("ANRIND", "ABNORMAL")],
    )
    def test_unparseable_field(self, column: str, value: str) -> None:
        with pytest.raises(ValueError, match=column):
            measurement_from_row({"USUBJID": "S1", "PARAMCD": "ALT", column: value}, sequence=1)


class TestLoadMeasurements:
    def test_malformed_rows_become_structural_issues(self, adlb_csv) -> None:
        name, records, issues = load_measurements(adlb_csv)
        assert name == "ADLB"
        assert len(records) == 2
        assert [i.check_id for i in issues] == ["AF-S001", "AF-S001"]
        assert all(i.severity == IssueSeverity.CRITICAL for i in issues)
        assert all(i.category == IssueCategory.STRUCTURAL for i in issues)
        assert issues[0].record_refs == ["ADLB row 3"]
        assert issues[0].subject_id == "S1"
        assert "AVAL" in issues[0].message

    def test_missing_key_column(self, tmp_path) -> None:
        path = _write_csv(tmp_path / "advs.csv", [{"USUBJID": "S1", "AVAL": "1"}])
        with pytest.raises(ValueError, match="PARAMCD"):
            load_measurements(path)


class TestLoadStudy:
    def test_load(self, adsl_csv, adlb_csv) -> None:
        result = load_study(adsl_csv, [adlb_csv])
        dataset = result.dataset
        assert dataset.study_id == "STUDY1"
        assert [s.subject_id for s in dataset.subjects] == ["S1", "S2"]
        assert list(dataset.measurements) == ["ADLB"]
        assert len(result.issues) == 2

    def test_subject_fields(self, adsl_csv) -> None:
        dataset = load_study(adsl_csv, []).dataset
        s1, s2 = dataset.subjects
        assert s1.randomization_date is not None
        assert s1.compliance == 0.95
        assert s1.age == 54.0
        assert s2.randomization_date is None
        assert s2.compliance is None
        assert not s2.major_deviation
        assert s2.first_dose_date is not None
        assert not s2.first_dose_date.is_complete

    def test_duplicate_dataset_name(self, adsl_csv, adlb_csv) -> None:
        with pytest.raises(ValueError, match="more than once"):
            load_study(adsl_csv, [adlb_csv, adlb_csv])

    def test_mixed_study_ids(self, tmp_path) -> None:
        path = _write_csv(
            tmp_path / "adsl.csv",
            [{"STUDYID": "A", "USUBJID": "S1"}, {"STUDYID": "B", "USUBJID": "S2"}],
        )
        assert load_study(path, []).dataset.study_id is None
