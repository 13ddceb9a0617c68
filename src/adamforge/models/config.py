"""Study-level derivation configuration.

A DerivationConfig is immutable and passed explicitly into every deriver,
validator, and reporter, so several studies or configuration variants can
be processed side by side. Invalid settings fail at construction time.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from adamforge.models.measurement import RangeIndicator


class BaselineRule(StrEnum):
    """How the baseline record is chosen within a subject x parameter group.

    LAST_ON_OR_BEFORE_FIRST_DOSE: last non-missing value dated on or before
        the first dose date.
    LAST_BEFORE_FIRST_DOSE: last non-missing value dated strictly before
        the first dose date.
    DESIGNATED_VISIT: the non-missing value at a fixed visit number.
    """

    LAST_ON_OR_BEFORE_FIRST_DOSE = "last_on_or_before_first_dose"
    LAST_BEFORE_FIRST_DOSE = "last_before_first_dose"
    DESIGNATED_VISIT = "designated_visit"


class DerivationConfig(BaseModel):
    """Protocol-level thresholds and rule choices for one derivation pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    baseline_rule: BaselineRule = Field(
        default=BaselineRule.LAST_ON_OR_BEFORE_FIRST_DOSE,
        description="Baseline selection rule",
    )
    baseline_visit_number: float | None = Field(
        default=None, description="Visit number used by the designated_visit rule"
    )
    compliance_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Minimum compliance ratio for per-protocol"
    )
    efficacy_parameters: frozenset[str] = Field(
        default_factory=frozenset,
        description="Parameter codes that qualify a subject for efficacy (empty = all)",
    )
    change_tolerance: float = Field(
        default=1e-8, ge=0.0, description="Allowed |stored - recomputed| for derived values"
    )
    shift_order: tuple[RangeIndicator, ...] = Field(
        default=(RangeIndicator.HIGH, RangeIndicator.LOW, RangeIndicator.NORMAL),
        description="Range indicators from most to least abnormal",
    )
    treatment_basis: Literal["actual", "planned"] = Field(
        default="actual", description="Treatment assignment used for summaries"
    )

    @field_validator("efficacy_parameters")
    @classmethod
    def _uppercase_parameters(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(p.strip().upper() for p in v if p.strip())

    @field_validator("shift_order")
    @classmethod
    def _complete_shift_order(
        cls, v: tuple[RangeIndicator, ...]
    ) -> tuple[RangeIndicator, ...]:
        if sorted(v) != sorted(RangeIndicator):
            msg = (
                "shift_order must list each of "
                f"{', '.join(r.value for r in RangeIndicator)} exactly once, got {list(v)}"
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _visit_rule_needs_visit(self) -> DerivationConfig:
        if (
            self.baseline_rule == BaselineRule.DESIGNATED_VISIT
            and self.baseline_visit_number is None
        ):
            msg = "baseline_rule 'designated_visit' requires baseline_visit_number"
            raise ValueError(msg)
        return self

    def is_efficacy_parameter(self, parameter_code: str | None) -> bool:
        if parameter_code is None:
            return False
        if not self.efficacy_parameters:
            return True
        return parameter_code.upper() in self.efficacy_parameters

    def severity_rank(self, indicator: RangeIndicator) -> int:
        """Lower rank = more abnormal."""
        return self.shift_order.index(indicator)


def load_config(path: str | Path | None = None) -> DerivationConfig:
    """Load a DerivationConfig from a JSON file, or return the defaults.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        pydantic.ValidationError: If the file holds invalid settings.
    """
    if path is None:
        return DerivationConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    config = DerivationConfig.model_validate_json(path.read_text())
    logger.info(
        "Loaded derivation config from {} (baseline rule: {})",
        path.name,
        config.baseline_rule.value,
    )
    return config
