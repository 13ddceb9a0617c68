"""Load subject-level and measurement datasets into the record model.

Reads CSV files with pandas, and .sas7bdat / .xpt files with pyreadstat.
Column names follow ADaM conventions (USUBJID, STUDYID, PARAMCD, AVAL, ...),
with SDTM-style aliases accepted where they are common.

File-level problems (missing file, unknown format, missing key column)
raise. Row-level problems (unparseable date or number, missing USUBJID)
become critical STRUCTURAL issues and the row is excluded, so one bad row
never prevents loading the rest.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import pyreadstat
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import (
    MeasurementRecord,
    PercentChangeStatus,
    RangeIndicator,
)
from adamforge.models.subject import PopulationFlag, SubjectRecord
from adamforge.models.values import MissingValue, NumericValue, TextValue
from adamforge.transforms.dates import PartialDate, parse_partial_iso8601
from adamforge.validation.issues import IssueCategory, IssueSeverity, ValidationIssue

SUBJECT_REQUIRED_COLUMNS = ["USUBJID"]
MEASUREMENT_REQUIRED_COLUMNS = ["USUBJID", "PARAMCD"]

_SUPPORTED_SUFFIXES = {".csv", ".sas7bdat", ".xpt"}


class LoadResult(BaseModel):
    """A loaded dataset plus the structural issues found while loading."""

    model_config = ConfigDict(frozen=True)

    dataset: StudyDataset
    issues: list[ValidationIssue] = Field(default_factory=list)


def read_table(path: str | Path) -> pd.DataFrame:
    """Read a CSV, SAS7BDAT, or XPT file into a DataFrame with uppercase columns.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file suffix is not supported.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset file not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in _SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported dataset format '{path.suffix}' "
            f"(expected one of {', '.join(sorted(_SUPPORTED_SUFFIXES))})"
        )

    logger.info("Reading dataset: {}", path.name)
    if suffix == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif suffix == ".sas7bdat":
        df, _meta = pyreadstat.read_sas7bdat(str(path))
    else:
        df, _meta = pyreadstat.read_xport(str(path))

    df.columns = [str(c).strip().upper() for c in df.columns]
    logger.info("Read {}: {} rows x {} cols", path.name, len(df), len(df.columns))
    return df


def _is_null(value: Any) -> bool:
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _first(row: dict[str, Any], *names: str) -> Any:
    """Value of the first listed column that is present in the row."""
    for name in names:
        if name in row:
            return row[name]
    return None


def _text(value: Any) -> str | None:
    if _is_null(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _number(value: Any, column: str) -> float | None:
    if _is_null(value):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{column} is not numeric: '{value}'") from exc
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"{column} is not a finite number: '{value}'")
    return number


def _date(value: Any, column: str) -> PartialDate | None:
    if _is_null(value):
        return None
    if isinstance(value, pd.Timestamp):
        return PartialDate.from_date(value.to_pydatetime())
    if isinstance(value, datetime | date):
        return PartialDate.from_date(value)
    if not isinstance(value, str):
        raise ValueError(f"{column} is not a date: {value!r}")
    try:
        return parse_partial_iso8601(value)
    except ValueError as exc:
        raise ValueError(f"{column}: {exc}") from exc


def _yes_no(value: Any, column: str) -> bool:
    text = _text(value)
    if text is None:
        return False
    upper = text.upper()
    if upper in ("Y", "YES"):
        return True
    if upper in ("N", "NO"):
        return False
    raise ValueError(f"{column} must be Y or N, got '{text}'")


def _indicator(value: Any, column: str) -> RangeIndicator | None:
    text = _text(value)
    if text is None:
        return None
    try:
        return RangeIndicator(text.upper())
    except ValueError as exc:
        raise ValueError(f"{column} must be NORMAL, HIGH or LOW, got '{text}'") from exc


def _stored_flags(row: dict[str, Any]) -> dict[str, bool]:
    """Population flags already present on the row (SAFFL, ITTFL, ...), blanks skipped."""
    return {
        flag.value: _yes_no(row[flag.adam_variable], flag.adam_variable)
        for flag in PopulationFlag
        if _text(row.get(flag.adam_variable)) is not None
    }


def subject_from_row(row: dict[str, Any]) -> SubjectRecord:
    """Map one subject-level row to a SubjectRecord.

    Raises:
        ValueError: If USUBJID is missing or a field cannot be parsed.
    """
    subject_id = _text(row.get("USUBJID"))
    if subject_id is None:
        raise ValueError("USUBJID is missing")

    return SubjectRecord(
        subject_id=subject_id,
        study_id=_text(row.get("STUDYID")),
        planned_treatment=_text(_first(row, "TRT01P", "ARM")),
        actual_treatment=_text(_first(row, "TRT01A", "ACTARM")),
        randomization_date=_date(_first(row, "RANDDTC", "RANDDT"), "RANDDTC"),
        first_dose_date=_date(_first(row, "TRTSDTC", "TRTSDT", "RFXSTDTC"), "TRTSDTC"),
        last_dose_date=_date(_first(row, "TRTEDTC", "TRTEDT", "RFXENDTC"), "TRTEDTC"),
        consent_date=_date(_first(row, "RFICDTC", "RFICDT"), "RFICDTC"),
        age=_number(row.get("AGE"), "AGE"),
        sex=_text(row.get("SEX")),
        race=_text(row.get("RACE")),
        major_deviation=_yes_no(row.get("MAJDVFL"), "MAJDVFL"),
        compliance=_number(row.get("COMPLRT"), "COMPLRT"),
        flags=_stored_flags(row),
    )


def measurement_from_row(row: dict[str, Any], sequence: int) -> MeasurementRecord:
    """Map one BDS row to a MeasurementRecord.

    AVAL wins over AVALC; a row with neither holds a MissingValue.

    Raises:
        ValueError: If USUBJID is missing or a field cannot be parsed.
    """
    subject_id = _text(row.get("USUBJID"))
    if subject_id is None:
        raise ValueError("USUBJID is missing")

    aval = _number(row.get("AVAL"), "AVAL")
    avalc = _text(row.get("AVALC"))
    if aval is not None:
        value: NumericValue | TextValue | MissingValue = NumericValue(value=aval)
    elif avalc is not None:
        value = TextValue(value=avalc)
    else:
        value = MissingValue(reason=_text(row.get("AVALRS")) or "")

    pchg: float | PercentChangeStatus | None = _number(row.get("PCHG"), "PCHG")
    if (_text(row.get("PCHGST")) or "").upper() == PercentChangeStatus.ZERO_BASELINE:
        pchg = PercentChangeStatus.ZERO_BASELINE

    return MeasurementRecord(
        subject_id=subject_id,
        study_id=_text(row.get("STUDYID")),
        parameter_code=_text(row.get("PARAMCD")),
        parameter=_text(row.get("PARAM")) or "",
        value=value,
        visit=_text(_first(row, "AVISIT", "VISIT")),
        visit_number=_number(_first(row, "AVISITN", "VISITNUM"), "AVISITN"),
        collection_date=_date(_first(row, "ADTC", "ADT", "ADTM"), "ADTC"),
        sequence=sequence,
        is_baseline=_yes_no(row.get("ABLFL"), "ABLFL"),
        baseline_value=_number(row.get("BASE"), "BASE"),
        change=_number(row.get("CHG"), "CHG"),
        percent_change=pchg,
        range_low=_number(row.get("ANRLO"), "ANRLO"),
        range_high=_number(row.get("ANRHI"), "ANRHI"),
        range_indicator=_indicator(row.get("ANRIND"), "ANRIND"),
    )


def _structural_issue(
    dataset_name: str, row_number: int, row: dict[str, Any], exc: Exception
) -> ValidationIssue:
    return ValidationIssue(
        check_id="AF-S001",
        category=IssueCategory.STRUCTURAL,
        severity=IssueSeverity.CRITICAL,
        dataset=dataset_name,
        subject_id=_text(row.get("USUBJID")),
        record_refs=[f"{dataset_name} row {row_number}"],
        message=f"{dataset_name} row {row_number} excluded: {exc}",
    )


def _require_columns(df: pd.DataFrame, required: list[str], path: Path) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} is missing required column(s): {missing}")


def load_subjects(path: str | Path) -> tuple[list[SubjectRecord], list[ValidationIssue]]:
    """Load subject-level records; malformed rows become issues."""
    path = Path(path)
    df = read_table(path)
    _require_columns(df, SUBJECT_REQUIRED_COLUMNS, path)

    name = path.stem.upper()
    subjects: list[SubjectRecord] = []
    issues: list[ValidationIssue] = []
    for row_number, row in enumerate(df.to_dict(orient="records"), 1):
        try:
            subjects.append(subject_from_row(row))
        except ValueError as exc:
            issues.append(_structural_issue(name, row_number, row, exc))

    if issues:
        logger.warning("{}: {} row(s) excluded as malformed", name, len(issues))
    return subjects, issues


def load_measurements(
    path: str | Path,
) -> tuple[str, list[MeasurementRecord], list[ValidationIssue]]:
    """Load one measurement dataset; the dataset name is the uppercased file stem."""
    path = Path(path)
    df = read_table(path)
    _require_columns(df, MEASUREMENT_REQUIRED_COLUMNS, path)

    name = path.stem.upper()
    records: list[MeasurementRecord] = []
    issues: list[ValidationIssue] = []
    for row_number, row in enumerate(df.to_dict(orient="records"), 1):
        try:
            records.append(measurement_from_row(row, sequence=row_number))
        except ValueError as exc:
            issues.append(_structural_issue(name, row_number, row, exc))

    if issues:
        logger.warning("{}: {} row(s) excluded as malformed", name, len(issues))
    return name, records, issues


def load_study(
    subjects_path: str | Path,
    measurement_paths: list[str | Path] | list[Path],
) -> LoadResult:
    """Load a subject-level file and any number of measurement files.

    Args:
        subjects_path: ADSL-like file with one row per subject.
        measurement_paths: BDS-like files (e.g. adlb.csv, advs.xpt).

    Returns:
        LoadResult with the dataset and all structural issues.
    """
    subjects, issues = load_subjects(subjects_path)

    measurements: dict[str, list[MeasurementRecord]] = {}
    for path in measurement_paths:
        name, records, record_issues = load_measurements(path)
        if name in measurements:
            raise ValueError(f"Measurement dataset '{name}' given more than once")
        measurements[name] = records
        issues.extend(record_issues)

    study_ids = {s.study_id for s in subjects if s.study_id}
    study_id = study_ids.pop() if len(study_ids) == 1 else None

    dataset = StudyDataset(study_id=study_id, subjects=subjects, measurements=measurements)
    logger.info(
        "Loaded study {}: {} subjects, {} records in {} measurement dataset(s), "
        "{} structural issue(s)",
        study_id or "<unknown>",
        len(subjects),
        dataset.record_count,
        len(measurements),
        len(issues),
    )
    return LoadResult(dataset=dataset, issues=issues)
