"""
Date and number parsing helpers shared by the predicate builder, the analyzer
and the entry store.

All timestamps are timezone-aware UTC datetimes. Stored timestamps use a fixed
width ISO-8601 format so that string order in DynamoDB matches time order.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from app.core.errors import ValidationError

# year is formatted separately: strftime("%Y") does not zero-pad years below 1000 on glibc
DATE_TIME_SUFFIX_FORMAT = "-%m-%dT%H:%M:%S.%fZ"
MIN_YEAR = 1
MAX_YEAR = 9998  # the window end is (year + 1)-01-01

Window = Tuple[datetime, datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return f"{value.year:04d}" + value.strftime(DATE_TIME_SUFFIX_FORMAT)


def from_iso(text: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str], field: str) -> datetime:
    """
    Parse a user supplied ISO-8601 date or datetime.

    Date-only values mean midnight UTC, naive datetimes are read as UTC.
    """
    if value is None or not str(value).strip():
        raise ValidationError(field, f"{field} is required")
    try:
        return from_iso(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"{field} must be a valid ISO-8601 date")


def _parse_int(value: str, field: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"{field} must be an integer")


def parse_year(value: str, field: str = "year") -> int:
    year = _parse_int(value, field)
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(field, f"{field} must be between {MIN_YEAR} and {MAX_YEAR}")
    return year


def parse_month(value: str, field: str = "month") -> int:
    month = _parse_int(value, field)
    if not 1 <= month <= 12:
        raise ValidationError(field, f"{field} must be between 1 and 12")
    return month


def parse_amount(value: str, field: str) -> float:
    try:
        amount = float(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"{field} must be a number")
    if not math.isfinite(amount):
        raise ValidationError(field, f"{field} must be a finite number")
    return amount


def year_window(year: int) -> Window:
    """Half-open window [year-01-01, (year+1)-01-01)."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


def month_window(year: int, month: int) -> Window:
    """Half-open window covering one calendar month; December rolls into year + 1."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


@dataclass(frozen=True)
class ReportPeriod:
    """Closed reporting interval plus the raw inputs echoed back to the caller."""

    start: datetime
    end: datetime
    start_raw: str
    end_raw: str

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def parse_report_period(start_raw: Optional[str], end_raw: Optional[str]) -> ReportPeriod:
    start = parse_timestamp(start_raw, "startDate")
    end = parse_timestamp(end_raw, "endDate")
    if start > end:
        raise ValidationError("startDate", "startDate must not be after endDate")
    return ReportPeriod(start=start, end=end, start_raw=start_raw, end_raw=end_raw)
