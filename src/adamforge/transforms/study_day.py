"""ADaM analysis day (ADY) calculation.

Uses the "no Day 0" convention relative to the first dose date:
- Day 1 = first dose date
- Day -1 = day before first dose
- No Day 0 exists
"""

from __future__ import annotations

from adamforge.transforms.dates import PartialDate


def calculate_analysis_day(
    event_date: PartialDate | None,
    reference_date: PartialDate | None,
) -> int | None:
    """Calculate the analysis day of an event relative to a reference date.

    Args:
        event_date: Collection date of the record.
        reference_date: Treatment start (first dose) date of the subject.

    Returns:
        Analysis day, or None if either date is missing or partial.

    Examples:
        >>> from adamforge.transforms.dates import parse_partial_iso8601 as p
        >>> calculate_analysis_day(p("2023-01-10"), p("2023-01-10"))
        1
        >>> calculate_analysis_day(p("2023-01-09"), p("2023-01-10"))
        -1
        >>> calculate_analysis_day(p("2023-01"), p("2023-01-10")) is None
        True
    """
    if event_date is None or reference_date is None:
        return None

    event = event_date.as_date()
    reference = reference_date.as_date()
    if event is None or reference is None:
        return None

    delta_days = (event - reference).days
    if delta_days >= 0:
        return delta_days + 1
    return delta_days
