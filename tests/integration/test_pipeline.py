"""End-to-end tests: load -> derive -> validate -> shift -> export."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from adamforge.io.readers import load_study
from adamforge.io.writers import write_dataset
from adamforge.models.config import BaselineRule, DerivationConfig
from adamforge.models.subject import PopulationFlag
from adamforge.pipeline import run_pipeline


@pytest.fixture()
def study_files(tmp_path) -> tuple[Path, list[Path]]:
    adsl = tmp_path / "adsl.csv"
    pd.DataFrame(
        [
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "ARM": "Placebo",
             "ACTARM": "Placebo", "RANDDTC": "2014-01-02", "TRTSDTC": "2014-01-02",
             "TRTEDTC": "2014-07-02", "RFICDTC": "2013-12-26", "COMPLRT": "0.98"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1023", "ARM": "Xanomeline High Dose",
             "ACTARM": "Xanomeline High Dose", "RANDDTC": "2012-08-05",
             "TRTSDTC": "2012-08-05", "TRTEDTC": "2012-09-01", "RFICDTC": "2012-07-22",
             "COMPLRT": "0.70", "MAJDVFL": "N"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1028", "ARM": "Xanomeline Low Dose",
             "ACTARM": "", "RANDDTC": "2013-07-19", "TRTSDTC": "", "TRTEDTC": "",
             "RFICDTC": "2013-07-10", "COMPLRT": "", "MAJDVFL": "Y"},
        ]
    ).to_csv(adsl, index=False)

    adlb = tmp_path / "adlb.csv"
    pd.DataFrame(
        [
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "PARAMCD": "ALT",
             "PARAM": "Alanine Aminotransferase (U/L)", "AVAL": "27", "ADTC": "2013-12-26",
             "AVISIT": "SCREENING 1", "AVISITN": "1", "ANRLO": "6", "ANRHI": "34"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "PARAMCD": "ALT",
             "PARAM": "Alanine Aminotransferase (U/L)", "AVAL": "40", "ADTC": "2014-01-16",
             "AVISIT": "WEEK 2", "AVISITN": "4", "ANRLO": "6", "ANRHI": "34"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1023", "PARAMCD": "ALT",
             "PARAM": "Alanine Aminotransferase (U/L)", "AVAL": "12", "ADTC": "2012-07-22",
             "AVISIT": "SCREENING 1", "AVISITN": "1", "ANRLO": "6", "ANRHI": "34"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1023", "PARAMCD": "ALT",
             "PARAM": "Alanine Aminotransferase (U/L)", "AVAL": "4", "ADTC": "2012-08-19",
             "AVISIT": "WEEK 2", "AVISITN": "4", "ANRLO": "6", "ANRHI": "34"},
        ]
    ).to_csv(adlb, index=False)

    adqs = tmp_path / "adqs.csv"
    pd.DataFrame(
        [
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "PARAMCD": "ACTOT",
             "AVAL": "0", "ADTC": "2014-01-02", "AVISITN": "3"},
            {"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "PARAMCD": "ACTOT",
             "AVAL": "4", "ADTC": "2014-03-01", "AVISITN": "8"},
        ]
    ).to_csv(adqs, index=False)

    return adsl, [adlb, adqs]


class TestRunPipeline:
    def test_full_pass(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        result = run_pipeline(loaded.dataset, load_issues=loaded.issues)

        subjects = {s.subject_id: s for s in result.dataset.subjects}
        placebo = subjects["01-701-1015"]
        assert placebo.flag(PopulationFlag.SAFETY)
        assert placebo.flag(PopulationFlag.PER_PROTOCOL)
        assert placebo.flag(PopulationFlag.EFFICACY)
        assert not subjects["01-701-1023"].flag(PopulationFlag.PER_PROTOCOL)
        undosed = subjects["01-701-1028"]
        assert undosed.flag(PopulationFlag.INTENT_TO_TREAT)
        assert not undosed.flag(PopulationFlag.SAFETY)

        alt = result.dataset.measurements["ADLB"]
        assert alt[1].baseline_value == 27.0
        assert alt[1].change == 13.0
        assert alt[3].range_indicator.value == "LOW"

        actot = result.dataset.measurements["ADQS"]
        assert actot[0].is_baseline
        assert actot[1].percent_change == "ZERO_BASELINE"

        assert result.report.submittable
        assert result.report.datasets_validated == ["ADSL", "ADLB", "ADQS"]
        assert result.report.study_id == "CDISCPILOT01"

    def test_shift_tables(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        result = run_pipeline(loaded.dataset)

        alt = next(t for t in result.shift_tables if t.parameter_code == "ALT")
        assert alt.count("Placebo", "NORMAL", "HIGH") == 1
        assert alt.count("Xanomeline High Dose", "NORMAL", "LOW") == 1

    def test_shift_population(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        result = run_pipeline(loaded.dataset, shift_population=PopulationFlag.PER_PROTOCOL)

        alt = next(t for t in result.shift_tables if t.parameter_code == "ALT")
        assert alt.subject_count == 1

    def test_pipeline_idempotent(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        once = run_pipeline(loaded.dataset)
        twice = run_pipeline(once.dataset)
        assert twice.dataset == once.dataset
        assert twice.report.issues == once.report.issues

    def test_validate_as_loaded(self, study_files, tmp_path) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        derived = run_pipeline(loaded.dataset)
        paths = write_dataset(derived.dataset, tmp_path / "out")

        stored = load_study(paths[0], paths[1:])
        result = run_pipeline(stored.dataset, derive=False)
        assert result.dataset == stored.dataset
        assert result.report.submittable
        assert [s.flags for s in result.dataset.subjects] == [
            s.flags for s in derived.dataset.subjects
        ]

    def test_validate_as_loaded_keeps_stored_values(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        records = loaded.dataset.measurements["ADLB"]
        tampered = records[1].model_copy(update={"baseline_value": 27.0, "change": 99.0})
        measurements = {**loaded.dataset.measurements, "ADLB": [records[0], tampered, *records[2:]]}
        dataset = loaded.dataset.model_copy(update={"measurements": measurements})

        as_loaded = run_pipeline(dataset, derive=False)
        assert "AF-C007" in [i.check_id for i in as_loaded.report.issues]
        rederived = run_pipeline(dataset)
        assert "AF-C007" not in [i.check_id for i in rederived.report.issues]

    def test_designated_visit_config(self, study_files) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        config = DerivationConfig(
            baseline_rule=BaselineRule.DESIGNATED_VISIT, baseline_visit_number=3
        )
        result = run_pipeline(loaded.dataset, config)
        assert [r.is_baseline for r in result.dataset.measurements["ADQS"]] == [True, False]
        assert not any(r.is_baseline for r in result.dataset.measurements["ADLB"])

    def test_structural_issue_blocks_submission(self, study_files, tmp_path) -> None:
        adsl, measurement_files = study_files
        bad = tmp_path / "advs.csv"
        pd.DataFrame(
            [{"STUDYID": "CDISCPILOT01", "USUBJID": "01-701-1015", "PARAMCD": "SYSBP",
              "AVAL": "high"}]
        ).to_csv(bad, index=False)
        loaded = load_study(adsl, [*measurement_files, bad])
        result = run_pipeline(loaded.dataset, load_issues=loaded.issues)
        assert not result.report.submittable
        assert result.report.issues[0].check_id == "AF-S001"

    def test_export_round_trip(self, study_files, tmp_path) -> None:
        adsl, measurement_files = study_files
        loaded = load_study(adsl, measurement_files)
        result = run_pipeline(loaded.dataset)

        paths = write_dataset(result.dataset, tmp_path / "out")
        reloaded = load_study(paths[0], paths[1:])
        rerun = run_pipeline(reloaded.dataset)
        assert rerun.report.submittable
        assert [r.change for r in rerun.dataset.measurements["ADLB"]] == [
            r.change for r in result.dataset.measurements["ADLB"]
        ]
