# parsers/jobsite_export.py
import logging

import pandas as pd

from parsers.base import ParseResult, iter_rows, prepare_sheet, stable_id
from parsers.columns import JOBSITE_EXPORT
from parsers.values import clean_str
from settings import get_settings

logger = logging.getLogger(__name__)

SOURCE = "jobsite_export"


def parse_jobsite_export(df: pd.DataFrame | None, overrides=None) -> ParseResult:
    columns, stats = prepare_sheet(df, JOBSITE_EXPORT, overrides)
    if columns is None:
        logger.warning("Jobsite Export rejected: %s", stats.error)
        return ParseResult(records=[], stats=stats)

    default_country = get_settings().default_country
    jobsites = []
    seen = set()
    for row_number, values in iter_rows(df, columns):
        jobsite_id = clean_str(values["jobsite_id"])
        if not jobsite_id:
            stats.row_error(f"Row {row_number}: missing Jobsite ID, skipped")
            continue
        if jobsite_id in seen:
            stats.row_error(f"Row {row_number}: duplicate Jobsite ID '{jobsite_id}', skipped")
            continue
        seen.add(jobsite_id)

        contact_id = clean_str(values["contact_id"]).lower() or None
        jobsites.append({
            "id": stable_id("jobsite", jobsite_id),
            "external_id": jobsite_id,
            "external_contact_id": contact_id,
            "contact_id": stable_id("contact", contact_id) if contact_id else None,
            "account_id": None,
            "contact_name": clean_str(values["contact_name"]),
            "name": clean_str(values["jobsite_name"]),
            "address_1": clean_str(values["address_1"]),
            "address_2": clean_str(values["address_2"]),
            "city": clean_str(values["city"]),
            "state": clean_str(values["state"]),
            "postal_code": clean_str(values["postal_code"]),
            "country": clean_str(values["country"]) or default_country,
            "notes": clean_str(values["notes"]),
            "source": SOURCE,
        })

    stats.found = len(jobsites)
    logger.info("Jobsite Export: %d jobsites, %d rows skipped", len(jobsites), stats.skipped)
    return ParseResult(records=jobsites, stats=stats)
