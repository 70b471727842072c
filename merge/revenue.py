# merge/revenue.py
"""
Per-year revenue and A/B/C/D segments for merged accounts.

Only won estimates count. A contract with both start and end dates is
spread evenly over its contract years, starting at the start year; any
other estimate lands entirely in one year (contract end, else contract
start, else estimate date, else the reporting year).
"""
import math
from collections import defaultdict
from datetime import date

from parsers.values import clean_str

SEGMENT_A_SHARE = 15.0
SEGMENT_B_SHARE = 5.0
DEFAULT_SEGMENT = "C"


def _year(value) -> int | None:
    text = clean_str(value)
    if len(text) >= 4 and text[:4].isdigit():
        return int(text[:4])
    return None


def _ymd(value):
    text = clean_str(value)[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def is_won(estimate: dict) -> bool:
    if clean_str(estimate.get("status")).lower() == "won":
        return True
    return "sold" in clean_str(estimate.get("pipeline_status")).lower()


def estimate_price(estimate: dict) -> float | None:
    """total_price_with_tax when non-zero, else a positive total_price, else None."""
    with_tax = estimate.get("total_price_with_tax")
    if with_tax:
        return float(with_tax)
    price = estimate.get("total_price")
    if price and price > 0:
        return float(price)
    return None


def duration_months(start: date, end: date) -> int:
    """Apr 15 2025 -> Apr 15 2026 is 12 months; one more day makes it 13."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day > start.day:
        months += 1
    return months


def contract_years(months: int) -> int:
    if months <= 12:
        return 1
    if months <= 24:
        return 2
    if months <= 36:
        return 3
    return math.ceil(months / 12)


def allocate(estimate: dict, reporting_year: int) -> dict[int, float]:
    """{year: amount} for one won estimate; {} when it has no usable price."""
    price = estimate_price(estimate)
    if price is None:
        return {}
    start = _ymd(estimate.get("contract_start"))
    end = _ymd(estimate.get("contract_end"))
    if start and end:
        months = duration_months(start, end)
        if months > 0:
            years = contract_years(months)
            return {start.year + i: price / years for i in range(years)}
    for key in ("contract_end", "contract_start", "estimate_date"):
        year = _year(estimate.get(key))
        if year is not None:
            return {year: price}
    return {reporting_year: price}


def _segment(share: float) -> str:
    if share >= SEGMENT_A_SHARE:
        return "A"
    if share >= SEGMENT_B_SHARE:
        return "B"
    return "C"


def annotate_revenue(accounts, estimates, reporting_year: int | None = None) -> list[dict]:
    """
    Return copies of `accounts` with revenue_by_year, segment_by_year and
    revenue_segment (the reporting year's segment, default C).
    """
    reporting_year = reporting_year or date.today().year
    revenue = defaultdict(lambda: defaultdict(float))
    types = defaultdict(lambda: defaultdict(set))
    for estimate in estimates:
        account_id = estimate.get("account_id")
        if not account_id or not is_won(estimate):
            continue
        estimate_type = clean_str(estimate.get("estimate_type")).lower()
        for year, amount in allocate(estimate, reporting_year).items():
            revenue[account_id][year] += amount
            types[account_id][year].add(estimate_type)

    totals = defaultdict(float)
    for by_year in revenue.values():
        for year, amount in by_year.items():
            totals[year] += amount

    annotated = []
    for account in accounts:
        by_year = revenue.get(account["id"], {})
        segments = {}
        for year in sorted(by_year):
            year_types = types[account["id"]][year]
            if "standard" in year_types and "service" not in year_types:
                segments[year] = "D"
            elif totals[year] > 0:
                segments[year] = _segment(by_year[year] / totals[year] * 100)
            else:
                segments[year] = DEFAULT_SEGMENT
        record = dict(account)
        record["revenue_by_year"] = {year: round(by_year[year], 2) for year in sorted(by_year)}
        record["segment_by_year"] = segments
        record["revenue_segment"] = segments.get(reporting_year, DEFAULT_SEGMENT)
        annotated.append(record)
    return annotated
