"""Export derived datasets as ADSL / BDS frames, CSV, or XPT files."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import pandas as pd
from loguru import logger

from adamforge.io.xpt_writer import write_xpt
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import MeasurementRecord, PercentChangeStatus
from adamforge.models.subject import PopulationFlag, SubjectRecord
from adamforge.models.values import DateValue, NumericValue, TextValue

ADSL_LABELS: dict[str, str] = {
    "STUDYID": "Study Identifier",
    "USUBJID": "Unique Subject Identifier",
    "TRT01P": "Planned Treatment for Period 01",
    "TRT01A": "Actual Treatment for Period 01",
    "RANDDTC": "Date of Randomization",
    "TRTSDTC": "Date of First Exposure to Treatment",
    "TRTEDTC": "Date of Last Exposure to Treatment",
    "RFICDTC": "Date of Informed Consent",
    "AGE": "Age",
    "SEX": "Sex",
    "RACE": "Race",
    "MAJDVFL": "Major Protocol Deviation Flag",
    "COMPLRT": "Compliance Ratio",
    "SAFFL": "Safety Population Flag",
    "ITTFL": "Intent-To-Treat Population Flag",
    "PPROTFL": "Per-Protocol Population Flag",
    "EFFFL": "Efficacy Population Flag",
}

BDS_LABELS: dict[str, str] = {
    "STUDYID": "Study Identifier",
    "USUBJID": "Unique Subject Identifier",
    "PARAMCD": "Parameter Code",
    "PARAM": "Parameter",
    "AVAL": "Analysis Value",
    "AVALC": "Analysis Value (C)",
    "AVISIT": "Analysis Visit",
    "AVISITN": "Analysis Visit (N)",
    "ADTC": "Analysis Date",
    "ADY": "Analysis Relative Day",
    "ABLFL": "Baseline Record Flag",
    "BASE": "Baseline Value",
    "CHG": "Change from Baseline",
    "PCHG": "Percent Change from Baseline",
    "PCHGST": "Percent Change Status",
    "ANRLO": "Analysis Normal Range Lower Limit",
    "ANRHI": "Analysis Normal Range Upper Limit",
    "ANRIND": "Analysis Reference Range Indicator",
    "BNRIND": "Baseline Reference Range Indicator",
}


def _yn(flag: bool) -> str:
    return "Y" if flag else "N"


def _iso(value: object) -> str | None:
    return value.isoformat() if value is not None else None  # type: ignore[attr-defined]


def subject_row(subject: SubjectRecord) -> dict[str, object]:
    row: dict[str, object] = {
        "STUDYID": subject.study_id,
        "USUBJID": subject.subject_id,
        "TRT01P": subject.planned_treatment,
        "TRT01A": subject.actual_treatment,
        "RANDDTC": _iso(subject.randomization_date),
        "TRTSDTC": _iso(subject.first_dose_date),
        "TRTEDTC": _iso(subject.last_dose_date),
        "RFICDTC": _iso(subject.consent_date),
        "AGE": subject.age,
        "SEX": subject.sex,
        "RACE": subject.race,
        "MAJDVFL": _yn(subject.major_deviation),
        "COMPLRT": subject.compliance,
    }
    for flag in PopulationFlag:
        row[flag.adam_variable] = _yn(subject.flag(flag))
    return row


def measurement_row(record: MeasurementRecord) -> dict[str, object]:
    aval: float | None = None
    avalc: str | None = None
    if isinstance(record.value, NumericValue):
        aval = record.value.value
    elif isinstance(record.value, TextValue):
        avalc = record.value.value
    elif isinstance(record.value, DateValue):
        avalc = record.value.value.isoformat()

    pchg: float | None = None
    pchg_status: str | None = None
    if isinstance(record.percent_change, PercentChangeStatus):
        pchg_status = record.percent_change.value
    else:
        pchg = record.percent_change

    return {
        "STUDYID": record.study_id,
        "USUBJID": record.subject_id,
        "PARAMCD": record.parameter_code,
        "PARAM": record.parameter or None,
        "AVAL": aval,
        "AVALC": avalc,
        "AVISIT": record.visit,
        "AVISITN": record.visit_number,
        "ADTC": _iso(record.collection_date),
        "ADY": record.analysis_day,
        "ABLFL": "Y" if record.is_baseline else None,
        "BASE": record.baseline_value,
        "CHG": record.change,
        "PCHG": pchg,
        "PCHGST": pchg_status,
        "ANRLO": record.range_low,
        "ANRHI": record.range_high,
        "ANRIND": record.range_indicator.value if record.range_indicator else None,
        "BNRIND": (
            record.baseline_range_indicator.value if record.baseline_range_indicator else None
        ),
    }


def subjects_to_frame(subjects: list[SubjectRecord]) -> pd.DataFrame:
    """ADSL-style frame, one row per subject."""
    return pd.DataFrame([subject_row(s) for s in subjects], columns=list(ADSL_LABELS))


def measurements_to_frame(records: list[MeasurementRecord]) -> pd.DataFrame:
    """BDS-style frame, one row per record in source order."""
    frame = pd.DataFrame([measurement_row(r) for r in records], columns=list(BDS_LABELS))
    return frame.astype(
        {
            col: "float64"
            for col in ("AVAL", "AVISITN", "BASE", "CHG", "PCHG", "ANRLO", "ANRHI", "ADY")
        }
    )


def _blank_character_missing(frame: pd.DataFrame) -> pd.DataFrame:
    """SAS character missing is a blank string."""
    out = frame.copy()
    for col in out.columns:
        if out[col].dtype == object:
            out[col] = out[col].fillna("").astype(str)
    return out


def write_dataset(
    dataset: StudyDataset,
    out_dir: str | Path,
    fmt: Literal["csv", "xpt"] = "csv",
) -> list[Path]:
    """Write ADSL and every measurement dataset to ``out_dir``.

    Returns:
        Paths written, ADSL first, then measurement datasets by name.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    frames: list[tuple[str, pd.DataFrame, dict[str, str]]] = [
        ("ADSL", subjects_to_frame(dataset.subjects), ADSL_LABELS)
    ]
    for name in sorted(dataset.measurements):
        frames.append((name, measurements_to_frame(dataset.measurements[name]), BDS_LABELS))

    written: list[Path] = []
    for name, frame, labels in frames:
        path = out_dir / f"{name.lower()}.{fmt}"
        if fmt == "xpt":
            write_xpt(
                _blank_character_missing(frame), path, table_name=name, column_labels=labels
            )
        else:
            frame.to_csv(path, index=False)
        written.append(path)
        logger.info("Wrote {} ({} rows) to {}", name, len(frame), path)
    return written
