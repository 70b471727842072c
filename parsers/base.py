# parsers/base.py
"""
Shared result types for the four sheet parsers.

A parser never raises on a bad row: the row is skipped and counted. It only
reports `stats.error` when the sheet is not recognizable as its layout, and
that error blocks the merge (see ParseResult.raise_for_error).
"""
import re
from dataclasses import dataclass, field

import pandas as pd

from parsers.columns import resolve_columns
from parsers.values import clean_str, is_missing
from settings import get_settings

MAX_MESSAGES = 50


class SheetLayoutError(ValueError):
    """Raised when a sheet does not match its expected column layout."""

    def __init__(self, layout: str, message: str):
        super().__init__(f"{layout}: {message}")
        self.layout = layout


@dataclass
class ParseStats:
    layout: str
    total_rows: int = 0
    found: int = 0
    skipped: int = 0
    row_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    details: dict = field(default_factory=dict)

    def row_error(self, message: str) -> None:
        self.skipped += 1
        if len(self.row_errors) < MAX_MESSAGES:
            self.row_errors.append(message)

    def warn(self, message: str) -> None:
        if len(self.warnings) < MAX_MESSAGES:
            self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "layout": self.layout,
            "total_rows": self.total_rows,
            "found": self.found,
            "skipped": self.skipped,
            "row_errors": list(self.row_errors),
            "warnings": list(self.warnings),
            "error": self.error,
            **self.details,
        }


@dataclass
class ParseResult:
    records: list[dict]
    stats: ParseStats

    @property
    def ok(self) -> bool:
        return self.stats.error is None

    def raise_for_error(self) -> None:
        if self.stats.error is not None:
            raise SheetLayoutError(self.stats.layout, self.stats.error)


@dataclass
class ContactsExportResult(ParseResult):
    accounts: list[dict] = field(default_factory=list)


# --------- stable ids ---------
def stable_id(kind: str, external_id: str) -> str:
    """'account', '4411' -> 'lmn-account-4411' (prefix from settings)."""
    return f"{get_settings().id_prefix}-{kind}-{external_id}"


def split_stable_id(value) -> tuple[str, str] | None:
    """'lmn-contact-p123' -> ('contact', 'p123'); anything else -> None."""
    text = clean_str(value)
    prefix = re.escape(get_settings().id_prefix)
    match = re.match(rf"^{prefix}-(account|contact|estimate|jobsite)-(.+)$", text, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).lower(), match.group(2)


# --------- row iteration ---------
def prepare_sheet(df: pd.DataFrame | None, layout: str, overrides=None):
    """
    Resolve the layout's columns against the sheet headers.

    Returns (columns, stats). When the sheet is empty or misses a required
    column, stats.error is set and columns is None.
    """
    stats = ParseStats(layout=layout)
    if df is None or len(df.columns) == 0:
        stats.error = "Empty or invalid file - no header row found"
        return None, stats
    columns, missing = resolve_columns(list(df.columns), layout, overrides)
    stats.total_rows = len(df)
    if missing:
        stats.error = f"Missing required columns: {', '.join(missing)}"
        return None, stats
    if len(df) == 0:
        stats.warn("Sheet has a header row but no data rows")
    return columns, stats


def iter_rows(df: pd.DataFrame, columns: dict):
    """
    Yield (row_number, values) where values maps field -> raw cell value.

    row_number is the 1-based spreadsheet row (the header is row 1).
    Unmapped fields read as None. Fully blank rows are skipped.
    """
    records = df.to_dict("records")
    for offset, raw in enumerate(records):
        values = {}
        blank = True
        for name, header in columns.items():
            value = raw.get(header) if header is not None else None
            if is_missing(value):
                value = None
            if value is not None and clean_str(value) != "":
                blank = False
            values[name] = value
        if blank:
            continue
        yield offset + 2, values
