# parsers/values.py
import re
from datetime import date, datetime, timedelta

import pandas as pd

_NUMBER_JUNK = re.compile(r"[^0-9.\-]")
_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
# serials as text: 10000 (1927) .. 99999 (2173); bare years stay out
_SERIAL_TEXT = re.compile(r"\d{5}(\.\d+)?")
_EXCEL_EPOCH = date(1899, 12, 30)

MIN_YEAR = 1900
MAX_YEAR = 2100


class InvalidDate(ValueError):
    """A date parsed fine but falls outside MIN_YEAR..MAX_YEAR."""


def is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def clean_str(value) -> str:
    if is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        # Excel hands back ids like 4411 as 4411.0
        return str(int(value))
    return str(value).strip()


def parse_bool(value) -> bool:
    """Y / YES / TRUE / 1 -> True, anything else (including blank) -> False."""
    if isinstance(value, bool):
        return value
    return clean_str(value).upper() in {"Y", "YES", "TRUE", "1"}


def parse_number(value) -> float | None:
    """'$1,250.50' -> 1250.5; blanks and garbage -> None."""
    if is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _NUMBER_JUNK.sub("", str(value))
    if text in {"", "-", ".", "-."}:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _checked(d: date) -> str:
    if d.year < MIN_YEAR or d.year > MAX_YEAR:
        raise InvalidDate(f"{d.isoformat()} is outside {MIN_YEAR}-{MAX_YEAR}")
    return d.isoformat()


def _checked_parts(year: int, month: int, day: int) -> str | None:
    try:
        d = date(year, month, day)
    except ValueError:
        return None
    return _checked(d)


def _from_serial(days: float) -> str:
    try:
        d = _EXCEL_EPOCH + timedelta(days=int(days))
    except (OverflowError, ValueError) as exc:
        raise InvalidDate(f"serial {days} is not a date") from exc
    return _checked(d)


def parse_date(value) -> str | None:
    """
    Normalize a sheet date to 'YYYY-MM-DD'.

    Accepts datetime/date/Timestamp cells, Excel serial numbers, ISO strings
    (time and zone parts are dropped, never converted) and M/D/YYYY. Returns
    None for blanks and unparseable text; raises InvalidDate for years
    outside 1900-2100.
    """
    if is_missing(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        return _checked(value.date())
    if isinstance(value, date):
        return _checked(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_serial(value)

    text = str(value).strip()
    if not text:
        return None
    match = _ISO_PREFIX.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _checked_parts(year, month, day)
    match = _US_DATE.match(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        return _checked_parts(year, month, day)
    if _SERIAL_TEXT.fullmatch(text):
        return _from_serial(float(text))
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if is_missing(parsed):
        return None
    return _checked(parsed.date())
