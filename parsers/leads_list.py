# parsers/leads_list.py
import logging

import pandas as pd

from matching.normalize import normalize_email, slug
from parsers.base import ParseResult, iter_rows, prepare_sheet, stable_id
from parsers.columns import LEADS_LIST
from parsers.values import clean_str, parse_bool

logger = logging.getLogger(__name__)


def synthetic_contact_id(contact_id: str | None, email: str, lead_name: str,
                         first_name: str, last_name: str) -> str:
    """
    Identity for a contact that only exists in the Leads List.

    Uses the lead's own Contact ID when it has one, otherwise a key derived
    from the email, otherwise from the lead and person names. Re-importing
    the same row always yields the same id.
    """
    if contact_id:
        return stable_id("contact", contact_id)
    key = slug(normalize_email(email)) or slug(lead_name, first_name, last_name)
    return stable_id("contact", f"lead-{key}")


def parse_leads_list(df: pd.DataFrame | None, overrides=None) -> ParseResult:
    """Leads List -> supplemental contact rows (position, do-not flags, referral)."""
    columns, stats = prepare_sheet(df, LEADS_LIST, overrides)
    if columns is None:
        logger.warning("Leads List rejected: %s", stats.error)
        return ParseResult(records=[], stats=stats)

    leads = []
    for row_number, values in iter_rows(df, columns):
        lead_name = clean_str(values["lead_name"])
        if not lead_name:
            stats.row_error(f"Row {row_number}: missing Lead Name, skipped")
            continue
        contact_id = clean_str(values["contact_id"]).lower() or None
        first_name = clean_str(values["first_name"])
        last_name = clean_str(values["last_name"])
        email = clean_str(values["email"])
        leads.append({
            "row_number": row_number,
            "lead_name": lead_name,
            "external_contact_id": contact_id,
            "synthetic_id": synthetic_contact_id(contact_id, email, lead_name, first_name, last_name),
            "first_name": first_name,
            "last_name": last_name,
            "position": clean_str(values["position"]),
            "email": email,
            "email_2": clean_str(values["email_2"]),
            "phone": clean_str(values["phone"]),
            "phone_2": clean_str(values["phone_2"]),
            "address_1": clean_str(values["address_1"]),
            "address_2": clean_str(values["address_2"]),
            "city": clean_str(values["city"]),
            "state": clean_str(values["state"]),
            "postal_code": clean_str(values["postal_code"]),
            "country": clean_str(values["country"]),
            "do_not_email": parse_bool(values["do_not_email"]),
            "do_not_mail": parse_bool(values["do_not_mail"]),
            "do_not_call": parse_bool(values["do_not_call"]),
            "referral_source": clean_str(values["referral_source"]),
            "created_date": clean_str(values["created"]),
            "notes": clean_str(values["notes"]),
        })

    stats.found = len(leads)
    stats.details["with_contact_id"] = sum(1 for lead in leads if lead["external_contact_id"])
    logger.info("Leads List: %d leads, %d rows skipped", len(leads), stats.skipped)
    return ParseResult(records=leads, stats=stats)
