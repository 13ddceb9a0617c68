"""Partial ISO 8601 date handling for ADaM derivations.

Clinical dates arrive at varying precision:
- complete date-time: "2023-01-10T08:30" or "2023-01-10T08:30:15"
- date only: "2023-01-10"
- year-month: "2023-01"
- year only: "2023"
- explicit unknown: "UNK" (also "UN", "UNKNOWN")

SAS DATE9-style strings ("10JAN2023", "10 Jan 2023") are accepted as complete
dates. Parsing is strict: anything else raises ValueError so the loader can
report the record instead of silently guessing.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class DatePrecision(StrEnum):
    """How much of a date was actually collected."""

    DATETIME = "DATETIME"
    DATE = "DATE"
    YEAR_MONTH = "YEAR_MONTH"
    YEAR = "YEAR"
    UNKNOWN = "UNKNOWN"


_MONTH_ABBREV: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_UNKNOWN_TOKENS = frozenset({"UN", "UNK", "UNKNOWN"})

_PATTERN_DATETIME = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2})(?::(\d{2})(?::(\d{2})(?:\.\d+)?)?)?$"
)
_PATTERN_YYYY_MM_DD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_PATTERN_YYYY_MM = re.compile(r"^(\d{4})-(\d{2})$")
_PATTERN_YYYY = re.compile(r"^(\d{4})$")
_PATTERN_DDMONYYYY = re.compile(
    r"^(\d{1,2})\s*(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\s*(\d{4})$",
    re.IGNORECASE,
)


class PartialDate(BaseModel):
    """A possibly-incomplete calendar date.

    Components are contiguous from the left: a day is never present
    without a month. UNKNOWN carries no components at all.
    """

    model_config = ConfigDict(frozen=True)

    precision: DatePrecision
    year: int | None = Field(default=None, ge=1800, le=2100)
    month: int | None = Field(default=None, ge=1, le=12)
    day: int | None = Field(default=None, ge=1, le=31)
    hour: int | None = Field(default=None, ge=0, le=23)
    minute: int | None = Field(default=None, ge=0, le=59)
    second: int | None = Field(default=None, ge=0, le=59)

    @classmethod
    def unknown(cls) -> PartialDate:
        return cls(precision=DatePrecision.UNKNOWN)

    @classmethod
    def from_date(cls, value: date | datetime) -> PartialDate:
        """Build a complete PartialDate from a date or datetime object."""
        if isinstance(value, datetime):
            return cls(
                precision=DatePrecision.DATETIME,
                year=value.year,
                month=value.month,
                day=value.day,
                hour=value.hour,
                minute=value.minute,
                second=value.second,
            )
        return cls(
            precision=DatePrecision.DATE,
            year=value.year,
            month=value.month,
            day=value.day,
        )

    @property
    def is_complete(self) -> bool:
        """True when the calendar day is known."""
        return self.precision in (DatePrecision.DATE, DatePrecision.DATETIME)

    def as_date(self) -> date | None:
        """Return the calendar date, or None if the day is not known."""
        if not self.is_complete:
            return None
        return date(self.year, self.month, self.day)  # type: ignore[arg-type]

    def earliest(self) -> date | None:
        """Earliest calendar date consistent with this partial date."""
        if self.precision == DatePrecision.UNKNOWN:
            return None
        return date(self.year, self.month or 1, self.day or 1)  # type: ignore[arg-type]

    def latest(self) -> date | None:
        """Latest calendar date consistent with this partial date."""
        if self.precision == DatePrecision.UNKNOWN:
            return None
        year = self.year  # type: ignore[assignment]
        month = self.month or 12
        day = self.day or calendar.monthrange(year, month)[1]  # type: ignore[arg-type]
        return date(year, month, day)  # type: ignore[arg-type]

    def isoformat(self) -> str:
        """Render back to (truncated) ISO 8601, or "UNK" when unknown."""
        if self.precision == DatePrecision.UNKNOWN:
            return "UNK"
        return format_partial_iso8601(
            self.year,
            self.month,
            self.day,
            self.hour,
            self.minute,
            self.second,
        )

    def __str__(self) -> str:
        return self.isoformat()


def _checked(
    precision: DatePrecision,
    year: int,
    month: int | None = None,
    day: int | None = None,
    hour: int | None = None,
    minute: int | None = None,
    second: int | None = None,
    *,
    raw: str,
) -> PartialDate:
    if day is not None:
        try:
            date(year, month, day)  # type: ignore[arg-type]
        except ValueError as exc:
            raise ValueError(f"Invalid calendar date: '{raw}'") from exc
    try:
        return PartialDate(
            precision=precision,
            year=year,
            month=month,
            day=day,
            hour=hour,
            minute=minute,
            second=second,
        )
    except ValueError as exc:
        raise ValueError(f"Date components out of range: '{raw}'") from exc


def parse_partial_iso8601(value: str | None) -> PartialDate | None:
    """Parse a partial ISO 8601 string into a PartialDate.

    Args:
        value: Date string. None or blank means "not collected".

    Returns:
        PartialDate, or None when the value is empty.

    Raises:
        ValueError: If the string does not follow any supported convention
            or names an impossible calendar date.

    Examples:
        >>> parse_partial_iso8601("2023-01").precision
        <DatePrecision.YEAR_MONTH: 'YEAR_MONTH'>
        >>> parse_partial_iso8601("UNK").precision
        <DatePrecision.UNKNOWN: 'UNKNOWN'>
        >>> parse_partial_iso8601("") is None
        True
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    if s.upper() in _UNKNOWN_TOKENS:
        return PartialDate.unknown()

    m = _PATTERN_DATETIME.match(s)
    if m:
        hour = int(m.group(4))
        minute = int(m.group(5)) if m.group(5) is not None else None
        second = int(m.group(6)) if m.group(6) is not None else None
        return _checked(
            DatePrecision.DATETIME,
            int(m.group(1)),
            int(m.group(2)),
            int(m.group(3)),
            hour,
            minute,
            second,
            raw=s,
        )

    m = _PATTERN_YYYY_MM_DD.match(s)
    if m:
        return _checked(
            DatePrecision.DATE, int(m.group(1)), int(m.group(2)), int(m.group(3)), raw=s
        )

    m = _PATTERN_YYYY_MM.match(s)
    if m:
        return _checked(DatePrecision.YEAR_MONTH, int(m.group(1)), int(m.group(2)), raw=s)

    m = _PATTERN_YYYY.match(s)
    if m:
        return _checked(DatePrecision.YEAR, int(m.group(1)), raw=s)

    # "10JAN2023" / "10 Jan 2023" -- SAS DATE9 as printed in CSV exports
    m = _PATTERN_DDMONYYYY.match(s)
    if m:
        return _checked(
            DatePrecision.DATE,
            int(m.group(3)),
            _MONTH_ABBREV[m.group(2).lower()],
            int(m.group(1)),
            raw=s,
        )

    raise ValueError(f"Unrecognized date format: '{s}'")


def format_partial_iso8601(
    year: int | None = None,
    month: int | None = None,
    day: int | None = None,
    hour: int | None = None,
    minute: int | None = None,
    second: int | None = None,
) -> str:
    """Build an ISO 8601 string, truncating from the right at the first None.

    Gaps are not allowed: "2023---15" is invalid, so a missing month drops
    the day as well.

    Examples:
        >>> format_partial_iso8601(2023, 3)
        '2023-03'
        >>> format_partial_iso8601(2023, None, 15)
        '2023'
        >>> format_partial_iso8601(2023, 3, 15, 10)
        '2023-03-15T10'
    """
    if year is None:
        return ""

    result = f"{year:04d}"
    if month is None:
        return result
    result += f"-{month:02d}"
    if day is None:
        return result
    result += f"-{day:02d}"
    if hour is None:
        return result
    result += f"T{hour:02d}"
    if minute is None:
        return result
    result += f":{minute:02d}"
    if second is None:
        return result
    return result + f":{second:02d}"


def definitely_before(left: PartialDate | None, right: PartialDate | None) -> bool:
    """True only when every reading of ``left`` falls before every reading of ``right``.

    Missing or unknown dates never count as a violation.
    """
    if left is None or right is None:
        return False
    left_latest = left.latest()
    right_earliest = right.earliest()
    if left_latest is None or right_earliest is None:
        return False
    return left_latest < right_earliest
