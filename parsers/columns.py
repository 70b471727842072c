# parsers/columns.py
"""
Column mappings for the four upstream export layouts.

Column names belong to the exporting system, so they live here as data:
field -> accepted header names, first hit wins. Callers can replace the
accepted names per field with an overrides mapping
({layout: {field: [header, ...]}}), e.g. loaded from JSON by the CLI.
"""
import re

CONTACTS_EXPORT = "contacts_export"
LEADS_LIST = "leads_list"
ESTIMATES_LIST = "estimates_list"
JOBSITE_EXPORT = "jobsite_export"

LAYOUTS = (CONTACTS_EXPORT, LEADS_LIST, ESTIMATES_LIST, JOBSITE_EXPORT)

DEFAULT_COLUMNS = {
    CONTACTS_EXPORT: {
        "crm_id": ["CRM ID", "CrmId", "CRM_ID"],
        "crm_name": ["CRM Name", "CrmName", "Account Name"],
        "contact_id": ["Contact ID", "ContactId"],
        "type": ["Type"],
        "classification": ["Classification"],
        "primary_contact": ["PrimaryContact", "Primary Contact"],
        "first_name": ["First Name"],
        "last_name": ["Last Name"],
        "address_1": ["Address 1"],
        "address_2": ["Address 2"],
        "city": ["City"],
        "state": ["State", "Province"],
        "postal_code": ["Zip", "Postal Code"],
        "country": ["Country"],
        "phone": ["Phone 1", "Phone"],
        "phone_2": ["Phone 2"],
        "email": ["Email 1", "Email"],
        "email_2": ["Email 2"],
        "notes": ["Notes"],
        "tags": ["Tags"],
        "archived": ["Archived"],
    },
    LEADS_LIST: {
        "lead_name": ["Lead Name"],
        "contact_id": ["Contact ID", "ContactId"],
        "first_name": ["First Name"],
        "last_name": ["Last Name"],
        "position": ["Position"],
        "address_1": ["Address 1"],
        "address_2": ["Address 2"],
        "city": ["City"],
        "state": ["State", "Province"],
        "postal_code": ["Zip", "Postal Code"],
        "country": ["Country"],
        "phone": ["Phone 1", "Phone"],
        "phone_2": ["Phone 2"],
        "email": ["Email 1", "Email"],
        "email_2": ["Email 2"],
        "notes": ["Notes"],
        "type": ["Type"],
        "created": ["Created"],
        "classification": ["Classification"],
        "do_not_email": ["DoNotEmail", "Do Not Email"],
        "do_not_mail": ["DoNotMail", "Do Not Mail"],
        "do_not_call": ["DoNotCall", "Do Not Call"],
        "referral_source": ["ReferralSource", "Referral Source"],
    },
    ESTIMATES_LIST: {
        "estimate_id": ["Estimate ID", "Estimate #", "Estimate Number"],
        "estimate_type": ["Estimate Type"],
        "estimate_date": ["Estimate Date"],
        "estimate_close_date": ["Estimate Close Date", "Close Date"],
        "contract_start": ["Contract Start", "Contract Start Date"],
        "contract_end": ["Contract End", "Contract End Date", "Renewal Date"],
        "project_name": ["Project Name"],
        "version": ["Version"],
        "contact_name": ["Contact Name"],
        "crm_tags": ["CRM Tags"],
        "contact_id": ["Contact ID"],
        "address": ["Address"],
        "billing_address": ["Billing Address"],
        "phone": ["Phone 1", "Phone"],
        "phone_2": ["Phone 2"],
        "email": ["Email"],
        "salesperson": ["Salesperson"],
        "estimator": ["Estimator"],
        "status": ["Status"],
        "pipeline_status": ["Sales Pipeline Status"],
        "division": ["Division"],
        "referral": ["Referral"],
        "referral_note": ["Ref. Note"],
        "confidence_level": ["Confidence Level"],
        "archived": ["Archived"],
        "material_cost": ["Material Cost"],
        "material_price": ["Material Price"],
        "labor_cost": ["Labor Cost"],
        "labor_price": ["Labor Price"],
        "labor_hours": ["Labor Hours"],
        "equipment_cost": ["Equipment Cost"],
        "equipment_price": ["Equipment Price"],
        "other_costs": ["Other Costs"],
        "other_price": ["Other Price"],
        "sub_costs": ["Sub Costs"],
        "sub_price": ["Sub Price"],
        "total_price": ["Total Price"],
        "total_price_with_tax": ["Total Price With Tax"],
        "total_cost": ["Total Cost"],
        "total_overhead": ["Total Overhead"],
        "breakeven": ["Breakeven"],
        "total_profit": ["Total Profit"],
        "predicted_sales": ["Predicted Sales"],
    },
    JOBSITE_EXPORT: {
        "jobsite_id": ["Jobsite ID"],
        "jobsite_name": ["Jobsite Name"],
        "contact_id": ["Contact ID"],
        "contact_name": ["Contact Name"],
        "address_1": ["Address 1"],
        "address_2": ["Address 2"],
        "city": ["City"],
        "state": ["Province", "State"],
        "postal_code": ["Postal Code", "Zip"],
        "country": ["Country"],
        "notes": ["Notes"],
    },
}

REQUIRED_COLUMNS = {
    CONTACTS_EXPORT: ("crm_id", "crm_name"),
    LEADS_LIST: ("lead_name",),
    ESTIMATES_LIST: ("estimate_id",),
    JOBSITE_EXPORT: ("jobsite_id",),
}

_HEADER_JUNK = re.compile(r"[\s_]+")


def _header_key(header) -> str:
    return _HEADER_JUNK.sub(" ", str(header).strip().lower()).strip()


def column_mapping(layout: str, overrides=None) -> dict[str, list[str]]:
    if layout not in DEFAULT_COLUMNS:
        raise KeyError(f"Unknown sheet layout: {layout}")
    mapping = {name: list(headers) for name, headers in DEFAULT_COLUMNS[layout].items()}
    for name, headers in ((overrides or {}).get(layout) or {}).items():
        if isinstance(headers, str):
            headers = [headers]
        mapping[name] = list(headers)
    return mapping


def resolve_columns(headers, layout: str, overrides=None):
    """
    Map each field of `layout` to the sheet header that carries it.

    Exact (stripped) header names win over normalized ones (case, spaces and
    underscores folded). Returns (columns, missing_required) where columns
    maps field -> header or None.
    """
    exact = {}
    normalized = {}
    for header in headers:
        if header is None:
            continue
        exact.setdefault(str(header).strip(), header)
        normalized.setdefault(_header_key(header), header)

    columns = {}
    for name, accepted in column_mapping(layout, overrides).items():
        found = None
        for candidate in accepted:
            if candidate.strip() in exact:
                found = exact[candidate.strip()]
                break
        if found is None:
            for candidate in accepted:
                key = _header_key(candidate)
                if key in normalized:
                    found = normalized[key]
                    break
        columns[name] = found

    missing = [name for name in REQUIRED_COLUMNS[layout] if columns.get(name) is None]
    return columns, missing
