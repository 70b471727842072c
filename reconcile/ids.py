# reconcile/ids.py
from dataclasses import dataclass, field

from parsers.base import split_stable_id
from parsers.values import clean_str

KINDS = ("account", "contact", "estimate", "jobsite")


@dataclass
class ValidIds:
    """External ids present in the current sheets, one set per record kind."""
    account_ids: set = field(default_factory=set)
    contact_ids: set = field(default_factory=set)
    estimate_ids: set = field(default_factory=set)
    jobsite_ids: set = field(default_factory=set)
    _lowered: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def ids_for(self, kind: str) -> set:
        if kind not in KINDS:
            raise ValueError(f"Unknown record kind: {kind}")
        return getattr(self, f"{kind}_ids")

    def contains(self, kind: str, value) -> bool:
        """
        True when `value` names a record of `kind` in the sheets.

        Accepts the bare external id ('4411') or the stable id
        ('lmn-account-4411'); the external part is compared case-insensitively.
        """
        text = clean_str(value)
        if not text:
            return False
        parsed = split_stable_id(text)
        if parsed is not None:
            parsed_kind, text = parsed
            if parsed_kind != kind:
                return False
        return text.lower() in self._lowered_ids(kind)

    def _lowered_ids(self, kind: str) -> set:
        ids = self.ids_for(kind)
        cached = self._lowered.get(kind)
        if cached is None or cached[0] != len(ids):
            cached = (len(ids), {clean_str(v).lower() for v in ids})
            self._lowered[kind] = cached
        return cached[1]

    def to_dict(self) -> dict:
        return {f"{kind}_ids": sorted(self.ids_for(kind)) for kind in KINDS}


def _external(record: dict, external_key: str, id_key: str) -> str:
    """External id, or the tail of the stable id when there is none."""
    external = clean_str(record.get(external_key))
    if external:
        return external
    parsed = split_stable_id(record.get(id_key))
    return parsed[1] if parsed else ""


def extract_valid_ids(contacts_sheet, leads_sheet, estimates_sheet, jobsites_sheet) -> ValidIds:
    """
    Collect the ids present in the four parsed sheets.

    Accounts come from the Contacts Export only. Contacts without an
    external id contribute their deterministic id so they stay valid on
    re-import. Pure: the sheets are only read.
    """
    valid = ValidIds()
    for account in getattr(contacts_sheet, "accounts", []):
        valid.account_ids.add(account["external_id"])
    for contact in contacts_sheet.records:
        valid.contact_ids.add(_external(contact, "external_id", "id"))
    for lead in leads_sheet.records:
        valid.contact_ids.add(_external(lead, "external_contact_id", "synthetic_id"))
    valid.estimate_ids.update(e["external_id"] for e in estimates_sheet.records)
    valid.jobsite_ids.update(j["external_id"] for j in jobsites_sheet.records)
    valid.contact_ids.discard("")
    return valid


def filter_to_valid(records, valid_ids: ValidIds, kind: str) -> list:
    """Records whose identity is in the valid set for `kind`, in input order."""
    return [
        r for r in records
        if valid_ids.contains(kind, r.get("external_id") or r.get("id"))
    ]
