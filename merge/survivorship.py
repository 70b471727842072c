from collections import Counter

DECISION_MAKER_MARKERS = ("owner", "ceo", "president", "cfo", "coo", "founder")
INFLUENCER_MARKERS = ("manager", "director", "head of", "vp", "vice president")

PREFERENCE_FLAGS = ("do_not_email", "do_not_mail", "do_not_call")
# blank contact fields a matched lead may fill in
FILLABLE_FIELDS = ("email", "email_2", "phone", "phone_2")


def role_from_position(position) -> str:
    text = (position or "").lower()
    if not text:
        return "user"
    if any(marker in text for marker in DECISION_MAKER_MARKERS):
        return "decision_maker"
    if any(marker in text for marker in INFLUENCER_MARKERS):
        return "influencer"
    return "user"


def merge_notes(notes1, notes2) -> str:
    parts = []
    if notes1:
        parts.append(notes1)
    if notes2 and notes2 not in (notes1 or ""):
        parts.append(notes2)
    return "\n\n".join(parts)


def base_contact(contact: dict) -> dict:
    """Copy of a Contacts Export contact before any lead is applied."""
    merged = dict(contact)
    merged["matched"] = False
    merged["new_from_leads"] = False
    merged["data_source"] = "contacts_export"
    merged["matched_leads"] = 0
    return merged


def enrich_contact(contact: dict, lead: dict) -> dict:
    """
    Apply one matched lead to a contact and return the new record.

    Called once per matched lead, so preference flags end up OR-ed across
    every lead matched to the contact, while position, title and referral
    source keep the first non-empty value seen.
    """
    merged = dict(contact)
    for flag in PREFERENCE_FLAGS:
        merged[flag] = bool(contact.get(flag)) or bool(lead.get(flag))

    position = lead.get("position") or ""
    if not merged.get("position") and position:
        merged["position"] = position
    if not merged.get("title") and position:
        merged["title"] = position
    merged["role"] = role_from_position(merged.get("position"))

    if not merged.get("referral_source"):
        merged["referral_source"] = lead.get("referral_source") or ""
    for key in FILLABLE_FIELDS:
        if not merged.get(key) and lead.get(key):
            merged[key] = lead[key]
    merged["notes"] = merge_notes(contact.get("notes"), lead.get("notes"))

    merged["matched"] = True
    merged["data_source"] = "merged"
    merged["matched_leads"] = contact.get("matched_leads", 0) + 1
    return merged


def contact_from_lead(lead: dict, account: dict | None) -> dict:
    """New contact for a lead that matched no Contacts Export row."""
    position = lead.get("position") or ""
    return {
        "id": lead["synthetic_id"],
        "external_id": lead.get("external_contact_id"),
        "account_id": account["id"] if account else None,
        "account_name": account["name"] if account else lead.get("lead_name", ""),
        "first_name": lead.get("first_name", ""),
        "last_name": lead.get("last_name", ""),
        "email": lead.get("email", ""),
        "email_2": lead.get("email_2", ""),
        "phone": lead.get("phone", ""),
        "phone_2": lead.get("phone_2", ""),
        "primary_contact": False,
        "archived": False,
        "notes": lead.get("notes", ""),
        "address_1": lead.get("address_1", ""),
        "address_2": lead.get("address_2", ""),
        "city": lead.get("city", ""),
        "state": lead.get("state", ""),
        "postal_code": lead.get("postal_code", ""),
        "country": lead.get("country", ""),
        "position": position,
        "title": position,
        "role": role_from_position(position),
        "do_not_email": bool(lead.get("do_not_email")),
        "do_not_mail": bool(lead.get("do_not_mail")),
        "do_not_call": bool(lead.get("do_not_call")),
        "referral_source": lead.get("referral_source", ""),
        "source": "leads_list",
        "matched": False,
        "new_from_leads": True,
        "data_source": "leads_list_new_contact",
        "matched_leads": 1,
    }


def display_name(contact: dict) -> str:
    """'First Last', falling back to the email, then 'Unknown'."""
    name = f"{contact.get('first_name') or ''} {contact.get('last_name') or ''}".strip()
    return name or contact.get("email") or "Unknown"


def most_common_value(values):
    """Most frequent non-empty value (first seen on ties), or ''."""
    values = [v for v in values if v]
    if not values:
        return ""
    return Counter(values).most_common(1)[0][0]
