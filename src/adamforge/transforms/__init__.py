"""Date parsing and day-count utilities.

Re-exports key transform functions for convenient imports:
    from adamforge.transforms import parse_partial_iso8601, calculate_analysis_day
"""

from adamforge.transforms.dates import (
    DatePrecision,
    PartialDate,
    definitely_before,
    format_partial_iso8601,
    parse_partial_iso8601,
)
from adamforge.transforms.study_day import calculate_analysis_day

__all__ = [
    # dates
    "DatePrecision",
    "PartialDate",
    "parse_partial_iso8601",
    "format_partial_iso8601",
    "definitely_before",
    # analysis day
    "calculate_analysis_day",
]
