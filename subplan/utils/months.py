"""
Month-key ("YYYY-MM") helpers.

A month key is a zero-padded calendar month, so lexicographic order is
chronological order. All conversions use UTC: a month starts at
YYYY-MM-01T00:00:00Z.
"""
import re
from datetime import date, datetime, timezone

from subplan.errors import InvalidArgumentError, InvalidMonthError

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def is_valid_month(value) -> bool:
    return isinstance(value, str) and MONTH_KEY_RE.match(value) is not None


def ensure_month(value) -> str:
    """Return value unchanged or raise InvalidMonthError."""
    if not is_valid_month(value):
        raise InvalidMonthError(f"Invalid month: {value!r} (expected YYYY-MM)")
    return value


def month_to_date(month: str) -> date:
    ensure_month(month)
    year, mm = month.split("-")
    return date(int(year), int(mm), 1)


def date_to_month(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def iso_to_month(iso_value: str) -> str:
    """ISO timestamp -> month key of its UTC month."""
    return date_to_month(_utc_date(_parse_iso(iso_value)))


def month_to_iso(month: str) -> str:
    """Month key -> ISO timestamp of its first instant (UTC)."""
    d = month_to_date(month)
    return datetime(d.year, d.month, 1, tzinfo=timezone.utc).isoformat()


def add_months(d: date, n: int) -> date:
    """Add n months to a date (1st-of-month safe)."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    return date(year, month, 1)


def current_month(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return date_to_month(_utc_date(now))


def normalize_start_date(value=None, today: date | None = None) -> date:
    """
    Floor any supported start value to the first day of its UTC month.

    Accepts a month key ("2025-03"), an ISO date/timestamp string, a
    date or a datetime. None means the current month.
    """
    if value is None:
        today = today or datetime.now(timezone.utc).date()
        return today.replace(day=1)

    if isinstance(value, str):
        if is_valid_month(value):
            return month_to_date(value)
        return _utc_date(_parse_iso(value)).replace(day=1)

    if isinstance(value, datetime):
        return _utc_date(value).replace(day=1)

    if isinstance(value, date):
        return value.replace(day=1)

    raise InvalidArgumentError(f"Invalid start date: {value!r}")


def offset_month(start, offset: int) -> str:
    """Month key `offset` months after the normalized start."""
    return date_to_month(add_months(normalize_start_date(start), offset))


def months_in_period(earlier: str, later: str) -> int:
    """Inclusive number of months from earlier to later ("2025-01".."2025-03" -> 3)."""
    start = month_to_date(earlier)
    end = month_to_date(later)
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def _parse_iso(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidArgumentError(f"Invalid ISO date: {value!r}") from None


def _utc_date(dt: datetime) -> date:
    # naive datetimes are taken as UTC
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()
