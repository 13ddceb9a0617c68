"""Repeated-measure (ADaM BDS-style) record model.

One MeasurementRecord per subject x parameter x analysis timepoint.
Derived fields (baseline flag, baseline value, change, percent change,
baseline range indicator, analysis day) start empty and are filled by
the BaselineDeriver on a copy of the record.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from adamforge.models.values import AnalysisValue, MissingValue, numeric_or_none
from adamforge.transforms.dates import PartialDate


class RangeIndicator(StrEnum):
    """Reference-range indicator (ANRIND / BNRIND)."""

    NORMAL = "NORMAL"
    HIGH = "HIGH"
    LOW = "LOW"


class PercentChangeStatus(StrEnum):
    """Sentinels stored in place of a percent change that cannot be computed."""

    ZERO_BASELINE = "ZERO_BASELINE"


class MeasurementRecord(BaseModel):
    """A single analysis value for one subject, parameter, and timepoint."""

    model_config = ConfigDict(frozen=True)

    subject_id: str | None = Field(..., description="USUBJID, references a SubjectRecord")
    study_id: str | None = Field(..., description="STUDYID")
    parameter_code: str | None = Field(..., description="PARAMCD (e.g. 'ALT')")
    parameter: str = Field(default="", description="PARAM description")
    value: AnalysisValue = Field(default_factory=MissingValue, description="AVAL / AVALC")
    visit: str | None = Field(default=None, description="AVISIT label")
    visit_number: float | None = Field(default=None, description="AVISITN")
    collection_date: PartialDate | None = Field(default=None, description="ADT / ADTC")
    sequence: int | None = Field(
        default=None, description="Source row / sequence number used in issue references"
    )
    is_baseline: bool = Field(default=False, description="ABLFL = 'Y'")
    baseline_value: float | None = Field(default=None, description="BASE")
    change: float | None = Field(default=None, description="CHG")
    percent_change: float | PercentChangeStatus | None = Field(
        default=None, description="PCHG, or a sentinel when baseline is zero"
    )
    range_low: float | None = Field(default=None, description="ANRLO")
    range_high: float | None = Field(default=None, description="ANRHI")
    range_indicator: RangeIndicator | None = Field(default=None, description="ANRIND")
    baseline_range_indicator: RangeIndicator | None = Field(
        default=None, description="BNRIND"
    )
    analysis_day: int | None = Field(default=None, description="ADY")

    @property
    def numeric_value(self) -> float | None:
        return numeric_or_none(self.value)

    @property
    def timepoint(self) -> str | None:
        """Analysis timepoint used in the composite record key.

        Visit number when present, else the visit label, else the
        collection date text.
        """
        if self.visit_number is not None:
            if self.visit_number.is_integer():
                return str(int(self.visit_number))
            return repr(self.visit_number)
        if self.visit:
            return self.visit
        if self.collection_date is not None:
            return self.collection_date.isoformat()
        return None

    @property
    def reference(self) -> str:
        """Short human-readable reference to this record for issue reports."""
        parts = [self.subject_id or "<no subject>", self.parameter_code or "<no param>"]
        if self.timepoint is not None:
            parts.append(self.timepoint)
        ref = "/".join(parts)
        if self.sequence is not None:
            ref += f" (seq {self.sequence})"
        return ref
