# reconcile/references.py
import logging
import re
from dataclasses import dataclass, field

from parsers.base import split_stable_id
from parsers.values import clean_str
from reconcile.ids import ValidIds

logger = logging.getLogger(__name__)

# bare ids as the upstream exporter writes them: '4411', 'P123', 'CRM9'
SOURCE_ID_PATTERN = re.compile(r"^[A-Za-z]{0,3}\d+$")
# ids minted for rows without one: lead-<slug>, <crm id>-row<n>
DERIVED_ID_PATTERN = re.compile(r"^(lead-[a-z0-9-]+|[A-Za-z]{0,3}\d+-row\d+)$", re.IGNORECASE)

REFERENCE_FIELDS = {"account_id": "account", "contact_id": "contact"}


@dataclass
class ReferenceReport:
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"errors": list(self.errors), "warnings": list(self.warnings)}


def is_recognized_format(value, kind: str) -> bool:
    text = clean_str(value)
    parsed = split_stable_id(text)
    if parsed is not None:
        kind_of, tail = parsed
        if kind_of != kind:
            return False
        return bool(SOURCE_ID_PATTERN.match(tail) or DERIVED_ID_PATTERN.match(tail))
    return bool(SOURCE_ID_PATTERN.match(text))


def _issue(issue_type, entity, record, field_name, value, message) -> dict:
    return {
        "type": issue_type,
        "entity": entity,
        "entity_id": record.get("id"),
        "field": field_name,
        "value": value,
        "message": message,
    }


def validate_references(merged, valid_ids: ValidIds) -> ReferenceReport:
    """
    Check every estimate and jobsite account_id / contact_id against valid_ids.

    A dangling id in a recognized format is a warning (it gets nulled on
    upload); an id in no recognized format is an error.
    """
    report = ReferenceReport()
    for entity, records in (("estimate", merged.estimates), ("jobsite", merged.jobsites)):
        for record in records:
            for field_name, kind in REFERENCE_FIELDS.items():
                value = record.get(field_name)
                if not clean_str(value) or valid_ids.contains(kind, value):
                    continue
                if is_recognized_format(value, kind):
                    report.warnings.append(_issue(
                        "dangling_reference", entity, record, field_name, value,
                        f"{entity} {record.get('external_id')}: {field_name} '{value}' "
                        f"is not in the current sheets and will be cleared on import",
                    ))
                else:
                    report.errors.append(_issue(
                        "invalid_reference", entity, record, field_name, value,
                        f"{entity} {record.get('external_id')}: {field_name} '{value}' "
                        f"is not a recognized {kind} id",
                    ))
    if report.errors or report.warnings:
        logger.warning("Reference check: %d errors, %d warnings", len(report.errors), len(report.warnings))
    return report


def null_dangling_references(records, valid_ids: ValidIds, fields=None) -> list:
    """Copies of `records` with references outside valid_ids set to None."""
    fields = fields or REFERENCE_FIELDS
    cleaned = []
    for record in records:
        out = dict(record)
        for field_name, kind in fields.items():
            value = out.get(field_name)
            if clean_str(value) and not valid_ids.contains(kind, value):
                out[field_name] = None
        cleaned.append(out)
    return cleaned
