"""Summary reporting over derived datasets."""

from adamforge.reporting.shift import (
    ShiftCategory,
    ShiftCounts,
    ShiftTable,
    ShiftTableReporter,
    worst_indicator,
)

__all__ = [
    "ShiftCategory",
    "ShiftCounts",
    "ShiftTable",
    "ShiftTableReporter",
    "worst_indicator",
]
