# parsers/estimates_list.py
import logging

import pandas as pd

from matching.normalize import split_tags
from parsers.base import ParseResult, iter_rows, prepare_sheet, stable_id
from parsers.columns import ESTIMATES_LIST
from parsers.values import InvalidDate, clean_str, parse_bool, parse_date, parse_number

logger = logging.getLogger(__name__)

SOURCE = "estimates_list"

WON_STATUSES = {
    "contract signed",
    "work complete",
    "work in progress",
    "billing complete",
    "email contract award",
    "verbal contract award",
    "contract in progress",
    "contract + billing complete",
    "sold",
    "won",
}
LOST_MARKERS = ("lost", "on hold")
PENDING_MARKERS = ("pending", "in progress", "proposal", "review", "estimate")

DATE_FIELDS = (
    "estimate_date",
    "estimate_close_date",
    "contract_start",
    "contract_end",
)
MONEY_FIELDS = (
    "material_cost", "material_price",
    "labor_cost", "labor_price", "labor_hours",
    "equipment_cost", "equipment_price",
    "other_costs", "other_price",
    "sub_costs", "sub_price",
    "total_price", "total_price_with_tax",
    "total_cost", "total_overhead", "breakeven",
    "total_profit", "predicted_sales",
    "confidence_level",
)
TEXT_FIELDS = (
    "estimate_type", "project_name", "version", "contact_name", "address",
    "billing_address", "phone", "phone_2", "email", "salesperson",
    "estimator", "division", "referral", "referral_note",
)


def classify_status(status, pipeline_status=None) -> tuple[str, bool]:
    """
    Map the export's free-text status onto won / lost / pending.

    Returns (status, recognized). The pipeline status wins when it says
    'sold'. Unrecognized non-blank values come back as ('lost', False).
    """
    pipeline = clean_str(pipeline_status).lower()
    if "sold" in pipeline:
        return "won", True
    stat = clean_str(status).lower()
    if not stat:
        return "pending", True
    if stat in WON_STATUSES or any(won in stat for won in WON_STATUSES if " " in won):
        # 'estimate in progress - lost' must not read as won
        if not any(marker in stat for marker in LOST_MARKERS):
            return "won", True
    if any(marker in stat for marker in LOST_MARKERS):
        return "lost", True
    if any(marker in stat for marker in PENDING_MARKERS):
        return "pending", True
    return "lost", False


def parse_estimates_list(df: pd.DataFrame | None, overrides=None) -> ParseResult:
    """
    Estimates List -> one estimate per Estimate ID.

    Rows without an Estimate ID, and repeats of an ID already seen, are
    skipped and reported. Out-of-range dates are nulled with a warning;
    the estimate itself is kept.
    """
    columns, stats = prepare_sheet(df, ESTIMATES_LIST, overrides)
    if columns is None:
        logger.warning("Estimates List rejected: %s", stats.error)
        return ParseResult(records=[], stats=stats)

    if columns["estimate_date"] is None:
        stats.warn('"Estimate Date" column not found; estimate dates will not be imported')
    if columns["contract_end"] is None:
        stats.warn('"Contract End" column not found; contract end dates will not be imported')

    estimates = []
    seen = set()
    missing_ids = duplicates = invalid_dates = 0
    unrecognized = []
    for row_number, values in iter_rows(df, columns):
        estimate_id = clean_str(values["estimate_id"])
        if not estimate_id:
            missing_ids += 1
            stats.row_error(f"Row {row_number}: missing Estimate ID, skipped")
            continue
        if estimate_id in seen:
            duplicates += 1
            stats.row_error(f"Row {row_number}: duplicate Estimate ID '{estimate_id}', skipped")
            continue
        seen.add(estimate_id)

        record = {
            "id": stable_id("estimate", estimate_id),
            "external_id": estimate_id,
            "estimate_number": estimate_id,
        }
        for name in TEXT_FIELDS:
            record[name] = clean_str(values[name])
        for name in DATE_FIELDS:
            try:
                record[name] = parse_date(values[name])
            except InvalidDate as exc:
                invalid_dates += 1
                record[name] = None
                stats.warn(f"Row {row_number}: invalid {name} for estimate '{estimate_id}' ({exc}), left blank")
        for name in MONEY_FIELDS:
            record[name] = parse_number(values[name])

        contact_id = clean_str(values["contact_id"]).lower() or None
        record["external_contact_id"] = contact_id
        record["contact_id"] = stable_id("contact", contact_id) if contact_id else None
        record["account_id"] = None
        record["crm_tags"] = split_tags(values["crm_tags"])
        record["archived"] = parse_bool(values["archived"])

        raw_status = clean_str(values["status"])
        pipeline_status = clean_str(values["pipeline_status"]) or None
        status, recognized = classify_status(raw_status, pipeline_status)
        if not recognized and raw_status not in unrecognized:
            unrecognized.append(raw_status)
            stats.warn(f"Row {row_number}: unrecognized status '{raw_status}', treated as lost")
        record["status"] = status
        record["raw_status"] = raw_status
        record["pipeline_status"] = pipeline_status
        record["source"] = SOURCE
        estimates.append(record)

    with_contact = sum(1 for e in estimates if e["external_contact_id"])
    stats.found = len(estimates)
    stats.details.update({
        "missing_ids_skipped": missing_ids,
        "duplicates_skipped": duplicates,
        "invalid_dates": invalid_dates,
        "unrecognized_statuses": unrecognized,
        "with_contact_id": with_contact,
        "without_contact_id": len(estimates) - with_contact,
        "won": sum(1 for e in estimates if e["status"] == "won"),
    })
    logger.info("Estimates List: %d estimates, %d rows skipped, %d invalid dates",
                len(estimates), stats.skipped, invalid_dates)
    return ParseResult(records=estimates, stats=stats)
