# parsers/contacts_export.py
import logging

import pandas as pd

from matching.normalize import split_tags
from parsers.base import ContactsExportResult, iter_rows, prepare_sheet, stable_id
from parsers.columns import CONTACTS_EXPORT
from parsers.values import clean_str, parse_bool
from settings import get_settings

logger = logging.getLogger(__name__)

SOURCE = "contacts_export"


def _address(values, default_country: str) -> dict:
    return {
        "address_1": clean_str(values["address_1"]),
        "address_2": clean_str(values["address_2"]),
        "city": clean_str(values["city"]),
        "state": clean_str(values["state"]),
        "postal_code": clean_str(values["postal_code"]),
        "country": clean_str(values["country"]) or default_country,
    }


def _account_from_row(crm_id: str, crm_name: str, values, default_country: str) -> dict:
    archived = parse_bool(values["archived"])
    return {
        "id": stable_id("account", crm_id),
        "external_id": crm_id,
        "name": crm_name,
        "type": (clean_str(values["type"]) or "Lead").lower(),
        "classification": (clean_str(values["classification"]) or "Undefined").lower(),
        "tags": split_tags(values["tags"]),
        "archived": archived,
        "status": "archived" if archived else "active",
        **_address(values, default_country),
        "source": SOURCE,
    }


def _contact_from_row(row_number: int, crm_id: str, crm_name: str, values, default_country: str) -> dict:
    contact_id = clean_str(values["contact_id"]).lower() or None
    if contact_id:
        record_id = stable_id("contact", contact_id)
    else:
        record_id = stable_id("contact", f"{crm_id}-row{row_number}")
    return {
        "id": record_id,
        "external_id": contact_id,
        "account_id": stable_id("account", crm_id),
        "account_name": crm_name,
        "first_name": clean_str(values["first_name"]),
        "last_name": clean_str(values["last_name"]),
        "email": clean_str(values["email"]),
        "email_2": clean_str(values["email_2"]),
        "phone": clean_str(values["phone"]),
        "phone_2": clean_str(values["phone_2"]),
        "primary_contact": parse_bool(values["primary_contact"]),
        "archived": parse_bool(values["archived"]),
        "notes": clean_str(values["notes"]),
        **_address(values, default_country),
        "position": "",
        "title": "",
        "role": "user",
        "do_not_email": False,
        "do_not_mail": False,
        "do_not_call": False,
        "referral_source": "",
        "source": SOURCE,
    }


def parse_contacts_export(df: pd.DataFrame | None, overrides=None) -> ContactsExportResult:
    """
    Contacts Export -> one account per CRM ID plus one contact per named row.

    The first row of a CRM ID supplies the account's attributes. Rows with
    no first or last name only contribute to their account.
    """
    columns, stats = prepare_sheet(df, CONTACTS_EXPORT, overrides)
    if columns is None:
        logger.warning("Contacts Export rejected: %s", stats.error)
        return ContactsExportResult(records=[], stats=stats, accounts=[])

    default_country = get_settings().default_country
    accounts: dict[str, dict] = {}
    contacts = []
    seen_contact_ids = set()
    for row_number, values in iter_rows(df, columns):
        crm_id = clean_str(values["crm_id"])
        crm_name = clean_str(values["crm_name"])
        if not crm_id or not crm_name:
            stats.row_error(f"Row {row_number}: missing CRM ID or CRM Name, skipped")
            continue

        if crm_id not in accounts:
            accounts[crm_id] = _account_from_row(crm_id, crm_name, values, default_country)

        if not (clean_str(values["first_name"]) or clean_str(values["last_name"])):
            continue
        contact = _contact_from_row(row_number, crm_id, crm_name, values, default_country)
        if contact["id"] in seen_contact_ids:
            stats.row_error(f"Row {row_number}: duplicate Contact ID '{contact['external_id']}', skipped")
            continue
        seen_contact_ids.add(contact["id"])
        contacts.append(contact)

    stats.found = len(contacts)
    stats.details.update({"accounts_found": len(accounts), "contacts_found": len(contacts)})
    logger.info("Contacts Export: %d accounts, %d contacts, %d rows skipped",
                len(accounts), len(contacts), stats.skipped)
    return ContactsExportResult(records=contacts, stats=stats, accounts=list(accounts.values()))
