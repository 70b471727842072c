# sync/importer.py
"""
Push reviewed merge results to the backend in fixed-size chunks.

Chunks go out one at a time. A failed chunk is counted against its entity
and the loop moves on; there are no retries.
"""
import logging
from dataclasses import dataclass, field

from reconcile.ids import ValidIds, filter_to_valid
from reconcile.references import null_dangling_references
from settings import get_settings
from sync.client import BackendError

logger = logging.getLogger(__name__)

ENTITY_KINDS = (
    ("accounts", "account"),
    ("contacts", "contact"),
    ("estimates", "estimate"),
    ("jobsites", "jobsite"),
)
DEFAULT_LOOKUP_FIELD = "id"


def chunked(records, size: int):
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(records), size):
        yield records[start:start + size]


def to_payload(record: dict) -> dict:
    """Drop merge bookkeeping keys (_link_method, _is_orphaned, ...)."""
    return {k: v for k, v in record.items() if not k.startswith("_")}


@dataclass
class EntityImportResult:
    created: int = 0
    updated: int = 0
    failed: int = 0
    batches: int = 0
    failed_batches: int = 0
    records: int = 0

    def to_dict(self) -> dict:
        return {
            "records": self.records,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "batches": self.batches,
            "failed_batches": self.failed_batches,
        }


@dataclass
class ImportResults:
    accounts: EntityImportResult = field(default_factory=EntityImportResult)
    contacts: EntityImportResult = field(default_factory=EntityImportResult)
    estimates: EntityImportResult = field(default_factory=EntityImportResult)
    jobsites: EntityImportResult = field(default_factory=EntityImportResult)
    errors: list = field(default_factory=list)
    # set once every entity has been attempted; chunk failures live in counts and errors
    success: bool = False

    def entity(self, name: str) -> EntityImportResult:
        return getattr(self, name)

    def summary(self) -> dict:
        out = {name: self.entity(name).to_dict() for name, _ in ENTITY_KINDS}
        out["success"] = self.success
        out["errors"] = list(self.errors)
        return out


def records_for_upload(merged, valid_ids: ValidIds) -> dict[str, list]:
    """Per-entity records limited to the current sheets, dangling refs cleared."""
    estimates = filter_to_valid(merged.estimates, valid_ids, "estimate")
    jobsites = filter_to_valid(merged.jobsites, valid_ids, "jobsite")
    return {
        "accounts": filter_to_valid(merged.accounts, valid_ids, "account"),
        "contacts": filter_to_valid(merged.contacts, valid_ids, "contact"),
        "estimates": null_dangling_references(estimates, valid_ids),
        "jobsites": null_dangling_references(jobsites, valid_ids),
    }


def push_merged(client, merged, valid_ids: ValidIds, *, batch_size: int | None = None,
                lookup_fields: dict | None = None) -> ImportResults:
    batch_size = batch_size or get_settings().batch_size
    lookup_fields = lookup_fields or {}
    results = ImportResults()

    for entity, records in records_for_upload(merged, valid_ids).items():
        outcome = results.entity(entity)
        outcome.records = len(records)
        lookup_field = lookup_fields.get(entity, DEFAULT_LOOKUP_FIELD)
        for number, chunk in enumerate(chunked(records, batch_size), start=1):
            outcome.batches += 1
            try:
                upserted = client.bulk_upsert(entity, [to_payload(r) for r in chunk], lookup_field)
            except BackendError as exc:
                outcome.failed += len(chunk)
                outcome.failed_batches += 1
                message = f"{entity} batch {number} ({len(chunk)} records) failed: {exc}"
                results.errors.append(message)
                logger.error(message)
                continue
            outcome.created += upserted.created
            outcome.updated += upserted.updated
        logger.info("Imported %s: %d created, %d updated, %d failed",
                    entity, outcome.created, outcome.updated, outcome.failed)
    results.success = True
    return results
