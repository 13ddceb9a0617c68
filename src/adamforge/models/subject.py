"""Subject-level (ADSL-style) record model.

One SubjectRecord per subject. Identifiers are nullable so that records
with missing keys can still be held and reported by the validator rather
than rejected at construction time.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from adamforge.transforms.dates import PartialDate


class PopulationFlag(StrEnum):
    """Named analysis populations derived for every subject."""

    SAFETY = "safety"
    INTENT_TO_TREAT = "intent-to-treat"
    PER_PROTOCOL = "per-protocol"
    EFFICACY = "efficacy"

    @property
    def adam_variable(self) -> str:
        """ADaM ADSL variable name for this flag (e.g. 'SAFFL')."""
        return _ADAM_FLAG_VARIABLES[self]


_ADAM_FLAG_VARIABLES: dict[PopulationFlag, str] = {
    PopulationFlag.SAFETY: "SAFFL",
    PopulationFlag.INTENT_TO_TREAT: "ITTFL",
    PopulationFlag.PER_PROTOCOL: "PPROTFL",
    PopulationFlag.EFFICACY: "EFFFL",
}


class SubjectRecord(BaseModel):
    """A single trial subject with treatment, dates, and population flags."""

    model_config = ConfigDict(frozen=True)

    subject_id: str | None = Field(..., description="Unique subject identifier (USUBJID)")
    study_id: str | None = Field(..., description="Study identifier (STUDYID)")
    planned_treatment: str | None = Field(
        default=None, description="Planned treatment / randomized arm (ARM, TRT01P)"
    )
    actual_treatment: str | None = Field(
        default=None, description="Actual treatment received (ACTARM, TRT01A)"
    )
    randomization_date: PartialDate | None = Field(default=None, description="RANDDT")
    first_dose_date: PartialDate | None = Field(default=None, description="TRTSDT")
    last_dose_date: PartialDate | None = Field(default=None, description="TRTEDT")
    consent_date: PartialDate | None = Field(
        default=None, description="Informed consent / enrollment date (RFICDTC)"
    )
    age: float | None = Field(default=None, ge=0)
    sex: str | None = None
    race: str | None = None
    major_deviation: bool = Field(
        default=False, description="True if a major protocol deviation was recorded"
    )
    compliance: float | None = Field(
        default=None, ge=0, description="Dosing compliance ratio (1.0 = 100%)"
    )
    flags: dict[str, bool] = Field(
        default_factory=dict, description="Population flag name -> membership"
    )

    def flag(self, name: PopulationFlag) -> bool:
        """Return a population flag, False when it has not been derived."""
        return self.flags.get(name.value, False)

    def treatment_group(self, basis: str = "actual") -> str:
        """Treatment label used for grouping summaries.

        Falls back to the other assignment when the requested one is empty.
        """
        if basis == "planned":
            group = self.planned_treatment or self.actual_treatment
        else:
            group = self.actual_treatment or self.planned_treatment
        return group or "UNASSIGNED"
