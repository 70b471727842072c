# reconcile/compare.py
"""
Diff merged sheet data against the records already stored in the backend.

Each record type is split into new / updated / unchanged / orphaned. An
orphan is a stored record whose id no longer appears in the sheets; it is
only reported, never deleted here.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from parsers.base import split_stable_id
from parsers.values import clean_str, is_missing
from reconcile.ids import ValidIds

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ("address_1", "address_2", "city", "state", "postal_code", "country")

COMPARED_FIELDS = {
    "account": ("name", "type", "classification", "status", "archived") + ADDRESS_FIELDS,
    "contact": (
        "first_name", "last_name", "email", "email_2", "phone", "phone_2",
        "title", "position", "do_not_email", "do_not_mail", "do_not_call", "account_id",
    ),
    "estimate": (
        "estimate_type", "estimate_date", "contract_start", "contract_end",
        "total_price", "total_price_with_tax", "status", "division",
        "project_name", "account_id",
    ),
    "jobsite": ("name",) + ADDRESS_FIELDS + ("notes", "account_id"),
}

# compared as amounts; every other field keeps digit strings as text ("01234" != "1234")
NUMERIC_FIELDS = frozenset({"total_price", "total_price_with_tax"})

MOCK_WINDOW = timedelta(days=30)

_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}.*)?$")
_SPACES = re.compile(r"\s+")


# --------- value normalization ---------
def normalize_value(value, numeric: bool = False):
    """
    Comparable form of a stored or imported value.

    None and '' are equal, strings are trimmed and whitespace-collapsed
    (case is kept), dates and timestamps become 'YYYY-MM-DD', booleans
    become 'true' / 'false'. With `numeric`, numbers and numeric strings
    become Decimal; otherwise numbers are compared as their plain text.
    """
    if value is None or (not isinstance(value, (list, tuple, set, dict)) and is_missing(value)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
        return number if numeric else format(number.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    if isinstance(value, (list, tuple, set)):
        return tuple(sorted(str(normalize_value(v, numeric)) for v in value))
    text = _SPACES.sub(" ", str(value)).strip()
    if text.lower() in ("true", "false"):
        return text.lower()
    if numeric and _NUMERIC.match(text):
        try:
            return Decimal(text)
        except InvalidOperation:
            return text
    if _ISO_DATE.match(text):
        return text[:10]
    return text


def values_equal(existing, imported, numeric: bool = False) -> bool:
    return normalize_value(existing, numeric) == normalize_value(imported, numeric)


def find_differences(imported: dict, existing: dict, fields) -> list[dict]:
    return [
        {"field": name, "existing": existing.get(name), "imported": imported.get(name)}
        for name in fields
        if not values_equal(existing.get(name), imported.get(name), numeric=name in NUMERIC_FIELDS)
    ]


# --------- orphan source ---------
def _parse_timestamp(value):
    if isinstance(value, datetime):
        stamp = value
    else:
        text = clean_str(value)
        if not text:
            return None
        try:
            stamp = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def determine_data_source(record: dict, kind: str, now: datetime | None = None) -> tuple[str, str]:
    """Best guess at where an orphaned record came from: (source, note)."""
    external = clean_str(record.get("external_id"))
    parsed = split_stable_id(record.get("id"))
    if external or (parsed is not None and parsed[0] == kind):
        source_id = external or parsed[1]
        return ("previous_import",
                f"Imported earlier ({kind} ID: {source_id}) but no longer present in the current import sheets.")

    record_id = clean_str(record.get("id"))
    if _UUID.match(record_id):
        created = _parse_timestamp(record.get("created_at"))
        now = now or datetime.now(timezone.utc)
        if created is not None and now - created < MOCK_WINDOW:
            days = (now - created).days
            return ("possibly_mock",
                    f"UUID id created {days} days ago; may be test or mock data added during development.")
        return ("unknown", "UUID id; created manually or by an earlier system version.")
    return ("unknown", "Source of this record cannot be determined.")


# --------- comparison ---------
@dataclass
class EntityComparison:
    new: list = field(default_factory=list)
    updated: list = field(default_factory=list)
    unchanged: list = field(default_factory=list)
    orphaned: list = field(default_factory=list)

    def counts(self) -> dict:
        return {
            "new": len(self.new),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "orphaned": len(self.orphaned),
        }


@dataclass
class ComparisonResult:
    accounts: EntityComparison = field(default_factory=EntityComparison)
    contacts: EntityComparison = field(default_factory=EntityComparison)
    estimates: EntityComparison = field(default_factory=EntityComparison)
    jobsites: EntityComparison = field(default_factory=EntityComparison)
    warnings: list = field(default_factory=list)

    def summary(self) -> dict:
        out = {
            name: getattr(self, name).counts()
            for name in ("accounts", "contacts", "estimates", "jobsites")
        }
        out["warnings"] = len(self.warnings)
        return out


def _identity(record: dict) -> str:
    return clean_str(record.get("external_id")) or clean_str(record.get("id"))


def _index_existing(existing, kind: str, warnings: list) -> dict:
    """Lower-cased external_id and stable id -> stored record."""
    index = {}
    for record in existing:
        keys = {clean_str(record.get("external_id")).lower(), clean_str(record.get("id")).lower()}
        keys.discard("")
        if not keys:
            warnings.append(f"Stored {kind} without an id skipped")
            continue
        for key in keys:
            if key in index and index[key] is not record:
                warnings.append(f"Duplicate stored {kind} id '{key}'")
                continue
            index[key] = record
    return index


def compare_entity(imported, existing, valid_ids: ValidIds, kind: str, warnings: list) -> EntityComparison:
    result = EntityComparison()
    orphans = []
    live = []
    for record in existing or []:
        if valid_ids.contains(kind, _identity(record)):
            live.append(record)
        else:
            orphans.append(record)
    for record in orphans:
        source, note = determine_data_source(record, kind)
        annotated = dict(record)
        annotated["_source"] = source
        annotated["_source_note"] = note
        result.orphaned.append(annotated)

    index = _index_existing(live, kind, warnings)
    fields = COMPARED_FIELDS[kind]
    for record in imported:
        stored = None
        for key in (clean_str(record.get("external_id")).lower(), clean_str(record.get("id")).lower()):
            if key and key in index:
                stored = index[key]
                break
        if stored is None:
            result.new.append(record)
            continue
        differences = find_differences(record, stored, fields)
        if differences:
            result.updated.append({"record": record, "existing": stored, "differences": differences})
        else:
            result.unchanged.append(record)
    return result


def compare_with_existing(merged, existing_accounts, existing_contacts,
                          existing_estimates, existing_jobsites, valid_ids: ValidIds) -> ComparisonResult:
    result = ComparisonResult()
    result.accounts = compare_entity(merged.accounts, existing_accounts, valid_ids, "account", result.warnings)
    result.contacts = compare_entity(merged.contacts, existing_contacts, valid_ids, "contact", result.warnings)
    result.estimates = compare_entity(merged.estimates, existing_estimates, valid_ids, "estimate", result.warnings)
    result.jobsites = compare_entity(merged.jobsites, existing_jobsites, valid_ids, "jobsite", result.warnings)
    logger.info("Comparison with stored data: %s", result.summary())
    return result
