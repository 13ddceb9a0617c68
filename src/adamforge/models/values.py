"""Typed analysis values.

An analysis value is a tagged union over numeric, text, date, and
missing-with-reason. Missing is its own variant so that a missing result
can never be confused with a zero.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from adamforge.transforms.dates import PartialDate


class NumericValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = "numeric"
    value: float = Field(..., allow_inf_nan=False)


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str = Field(..., min_length=1)


class DateValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["date"] = "date"
    value: PartialDate


class MissingValue(BaseModel):
    """A result that was not obtained, with the reason when one was recorded."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["missing"] = "missing"
    reason: str = ""


AnalysisValue = Annotated[
    NumericValue | TextValue | DateValue | MissingValue,
    Field(discriminator="kind"),
]


def numeric_or_none(value: NumericValue | TextValue | DateValue | MissingValue) -> float | None:
    """Return the float for a numeric value, None for every other variant."""
    if isinstance(value, NumericValue):
        return value.value
    return None


def is_missing(value: NumericValue | TextValue | DateValue | MissingValue) -> bool:
    return isinstance(value, MissingValue)
