# merge/cascade.py
"""
Linkage cascade: an ordered tuple of (strategy_name, resolver) pairs.

A resolver takes (record, index) and returns a target id or None. The
cascade stops at the first resolver that returns an id, so a higher
priority strategy can never be overridden by a lower one.
"""
from dataclasses import dataclass, field

from matching.fuzzy import address_match, contains_either_way, find_account_by_name
from matching.normalize import (
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_tag,
)
from parsers.base import split_stable_id
from parsers.values import clean_str
from settings import get_settings


# --------- match result ---------
@dataclass(frozen=True)
class NoMatch:
    matched = False
    strategy = None
    target_id = None


@dataclass(frozen=True)
class MatchedBy:
    strategy: str
    target_id: str
    matched = True


NO_MATCH = NoMatch()


def run_cascade(record: dict, strategies, index) -> NoMatch | MatchedBy:
    for name, resolver in strategies:
        target_id = resolver(record, index)
        if target_id:
            return MatchedBy(name, target_id)
    return NO_MATCH


# --------- index ---------
@dataclass
class LinkIndex:
    """Lookup tables over accounts and contacts, built once per merge."""
    accounts_by_id: dict = field(default_factory=dict)
    accounts_by_external: dict = field(default_factory=dict)
    account_names: list = field(default_factory=list)
    account_addresses: list = field(default_factory=list)
    account_tags: list = field(default_factory=list)
    contacts_by_external: dict = field(default_factory=dict)
    contacts_by_email: dict = field(default_factory=dict)
    contacts_by_phone: dict = field(default_factory=dict)
    phone_region: str = "US"

    @classmethod
    def build(cls, accounts, contacts, phone_region: str | None = None) -> "LinkIndex":
        index = cls(phone_region=phone_region or get_settings().phone_region)
        for account in accounts:
            index.accounts_by_id[account["id"].lower()] = account
            external = clean_str(account.get("external_id")).lower()
            if external:
                index.accounts_by_external.setdefault(external, account)
            name_key = normalize_name(account.get("name"))
            if name_key:
                index.account_names.append((name_key, account["id"]))
            address_key = normalize_address(account.get("address_1"))
            if address_key:
                index.account_addresses.append((address_key, account["id"]))
            tags = {normalize_tag(t) for t in account.get("tags") or []}
            index.account_tags.append((tags - {""}, normalize_tag(external), account["id"]))

        # first contact seen wins every key
        for contact in contacts:
            external = clean_str(contact.get("external_id")).lower()
            if external:
                index.contacts_by_external.setdefault(external, contact)
            for key in ("email", "email_2"):
                email = normalize_email(contact.get(key))
                if email:
                    index.contacts_by_email.setdefault(email, contact)
            for key in ("phone", "phone_2"):
                phone = normalize_phone(contact.get(key), index.phone_region)
                if phone:
                    index.contacts_by_phone.setdefault(phone, contact)
        return index

    def account_for_contact(self, contact) -> str | None:
        if contact is None:
            return None
        return contact.get("account_id") or None

    def find_account(self, value) -> dict | None:
        """Account by stable id or bare CRM id."""
        text = clean_str(value).lower()
        if not text:
            return None
        if text in self.accounts_by_id:
            return self.accounts_by_id[text]
        parsed = split_stable_id(text)
        if parsed is not None:
            kind, external = parsed
            return self.accounts_by_external.get(external.lower()) if kind == "account" else None
        return self.accounts_by_external.get(text)


def _contact_key(record) -> str:
    external = clean_str(record.get("external_contact_id")).lower()
    if external:
        return external
    parsed = split_stable_id(record.get("contact_id"))
    if parsed is not None and parsed[0] == "contact":
        return parsed[1].lower()
    return ""


# --------- account resolvers (estimates & jobsites) ---------
def by_contact_id(record, index: LinkIndex) -> str | None:
    """Contact ID -> that contact's account, else the same value read as a CRM ID."""
    key = _contact_key(record)
    if not key:
        return None
    account_id = index.account_for_contact(index.contacts_by_external.get(key))
    if account_id:
        return account_id
    account = index.find_account(key)
    return account["id"] if account else None


def by_email(record, index: LinkIndex) -> str | None:
    email = normalize_email(record.get("email"))
    if not email:
        return None
    return index.account_for_contact(index.contacts_by_email.get(email))


def by_phone(record, index: LinkIndex) -> str | None:
    for key in ("phone", "phone_2"):
        phone = normalize_phone(record.get(key), index.phone_region)
        if not phone:
            continue
        account_id = index.account_for_contact(index.contacts_by_phone.get(phone))
        if account_id:
            return account_id
    return None


def by_crm_tags(record, index: LinkIndex) -> str | None:
    tags = [normalize_tag(t) for t in record.get("crm_tags") or []]
    tags = [t for t in tags if t]
    if not tags:
        return None
    for account_tags, external_key, account_id in index.account_tags:
        for tag in tags:
            if tag in account_tags or tag == external_key:
                return account_id
    return None


def by_address(record, index: LinkIndex) -> str | None:
    # estimates carry one 'address' column, jobsites split it into address_1
    address = normalize_address(record.get("address") or record.get("address_1"))
    if not address:
        return None
    for account_key, account_id in index.account_addresses:
        if account_key == address:
            return account_id
    for account_key, account_id in index.account_addresses:
        if address_match(address, account_key):
            return account_id
    return None


def by_jobsite_name(record, index: LinkIndex) -> str | None:
    name = clean_str(record.get("name"))
    if not name:
        return None
    for account_key, account_id in index.account_names:
        if contains_either_way(name, account_key):
            return account_id
    return None


def by_fuzzy_name(record, index: LinkIndex) -> str | None:
    return find_account_by_name(record.get("contact_name"), index)


# --------- contact resolvers (leads) ---------
def contact_by_id(lead, index: LinkIndex) -> str | None:
    key = _contact_key(lead)
    contact = index.contacts_by_external.get(key) if key else None
    return contact["id"] if contact else None


def contact_by_email(lead, index: LinkIndex) -> str | None:
    for key in ("email", "email_2"):
        email = normalize_email(lead.get(key))
        if email and email in index.contacts_by_email:
            return index.contacts_by_email[email]["id"]
    return None


def contact_by_phone(lead, index: LinkIndex) -> str | None:
    for key in ("phone", "phone_2"):
        phone = normalize_phone(lead.get(key), index.phone_region)
        if phone and phone in index.contacts_by_phone:
            return index.contacts_by_phone[phone]["id"]
    return None


LEAD_STRATEGIES = (
    ("contact_id", contact_by_id),
    ("email", contact_by_email),
    ("phone", contact_by_phone),
)

ESTIMATE_STRATEGIES = (
    ("contact_id", by_contact_id),
    ("email", by_email),
    ("phone", by_phone),
    ("crm_tags", by_crm_tags),
    ("address", by_address),
    ("name_match", by_fuzzy_name),
)

JOBSITE_STRATEGIES = (
    ("contact_id", by_contact_id),
    ("address", by_address),
    ("jobsite_name", by_jobsite_name),
    ("name_match", by_fuzzy_name),
)
