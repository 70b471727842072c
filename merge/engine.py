# merge/engine.py
import logging
import time
from dataclasses import dataclass, field

from matching.fuzzy import find_account_by_name
from merge.cascade import (
    ESTIMATE_STRATEGIES,
    JOBSITE_STRATEGIES,
    LEAD_STRATEGIES,
    LinkIndex,
    run_cascade,
)
from merge.revenue import annotate_revenue
from merge.survivorship import (
    base_contact,
    contact_from_lead,
    display_name,
    enrich_contact,
    most_common_value,
)
from settings import get_settings

logger = logging.getLogger(__name__)


def _rate(part: int, total: int) -> int:
    return round(part / total * 100) if total else 0


# --------- statistics ---------
@dataclass
class LinkStats:
    """Accumulator for one cascade run: counts per strategy plus orphans."""
    total: int = 0
    orphaned: int = 0
    by_strategy: dict = field(default_factory=dict)

    @classmethod
    def for_strategies(cls, strategies) -> "LinkStats":
        return cls(by_strategy={name: 0 for name, _ in strategies})

    @property
    def linked(self) -> int:
        return sum(self.by_strategy.values())

    @property
    def link_rate(self) -> int:
        return _rate(self.linked, self.total)

    def record(self, result) -> None:
        self.total += 1
        if result.matched:
            self.by_strategy[result.strategy] = self.by_strategy.get(result.strategy, 0) + 1
        else:
            self.orphaned += 1

    def linked_by(self, name: str) -> int:
        return self.by_strategy.get(name, 0)

    def to_dict(self) -> dict:
        out = {
            "total": self.total,
            "linked": self.linked,
            "orphaned": self.orphaned,
            "link_rate": self.link_rate,
        }
        for name, count in self.by_strategy.items():
            out[f"linked_by_{name}"] = count
        return out


@dataclass
class MergeStats:
    total_accounts: int = 0
    total_contacts: int = 0
    matched_contacts: int = 0
    contact_matching: dict = field(default_factory=dict)
    estimate_linking: LinkStats = field(default_factory=LinkStats)
    jobsite_linking: LinkStats = field(default_factory=LinkStats)
    new_contacts_from_leads: list = field(default_factory=list)

    @property
    def unmatched_contacts(self) -> int:
        return self.total_contacts - self.matched_contacts

    @property
    def match_rate(self) -> int:
        return _rate(self.matched_contacts, self.total_contacts)

    def to_dict(self) -> dict:
        return {
            "total_accounts": self.total_accounts,
            "total_contacts": self.total_contacts,
            "matched_contacts": self.matched_contacts,
            "unmatched_contacts": self.unmatched_contacts,
            "match_rate": self.match_rate,
            "contact_matching": dict(self.contact_matching),
            "estimate_linking": self.estimate_linking.to_dict(),
            "jobsite_linking": self.jobsite_linking.to_dict(),
            "new_contacts_from_leads": list(self.new_contacts_from_leads),
        }


@dataclass
class MergedResult:
    accounts: list
    contacts: list
    estimates: list
    jobsites: list
    orphaned_jobsites: list
    stats: MergeStats


# --------- contacts ---------
def _merge_contacts(accounts, export_contacts, leads, stats: MergeStats):
    contacts = [base_contact(c) for c in export_contacts]
    position = {c["id"]: i for i, c in enumerate(contacts)}
    index = LinkIndex.build(accounts, export_contacts)

    stats.contact_matching = {name: 0 for name, _ in LEAD_STRATEGIES}
    unmatched: dict[str, list] = {}
    for lead in leads:
        result = run_cascade(lead, LEAD_STRATEGIES, index)
        if result.matched:
            i = position[result.target_id]
            contacts[i] = enrich_contact(contacts[i], lead)
            stats.contact_matching[result.strategy] += 1
        else:
            unmatched.setdefault(lead["synthetic_id"], []).append(lead)
    stats.contact_matching["unmatched_leads"] = sum(len(group) for group in unmatched.values())

    accounts_by_id = {a["id"]: a for a in accounts}
    for synthetic_id, group in unmatched.items():
        lead = group[0]
        account = accounts_by_id.get(find_account_by_name(lead["lead_name"], index))
        contact = contact_from_lead(lead, account)
        # repeats of the same unknown person collapse into one contact
        for extra in group[1:]:
            contact = enrich_contact(contact, extra)
        if len(group) > 1:
            contact["first_name"] = most_common_value(row["first_name"] for row in group)
            contact["last_name"] = most_common_value(row["last_name"] for row in group)
            contact.update(matched=False, data_source="leads_list_new_contact")
        contacts.append(contact)
        stats.new_contacts_from_leads.append({
            "contact_name": display_name(contact),
            "email": contact["email"],
            "account_id": contact["account_id"],
            "account_name": account["name"] if account else None,
            "contact_id": synthetic_id,
        })

    stats.total_contacts = len(contacts)
    stats.matched_contacts = sum(1 for c in contacts if c["matched"])
    return contacts


# --------- linking ---------
def _link(records, strategies, index, link_stats: LinkStats) -> list:
    verbose = get_settings().verbose
    linked = []
    for record in records:
        result = run_cascade(record, strategies, index)
        if verbose:
            logger.debug("link %s -> %s (%s)", record.get("id"), result.target_id, result.strategy)
        out = dict(record)
        out["account_id"] = result.target_id
        out["_link_method"] = result.strategy
        out["_is_orphaned"] = not result.matched
        link_stats.record(result)
        linked.append(out)
    return linked


def merge_contact_data(contacts, leads, estimates, jobsites, *, reporting_year=None) -> MergedResult:
    """
    Merge the four parsed sheets into accounts, contacts, estimates and jobsites.

    `contacts` is the ContactsExportResult; the others are ParseResults.
    Any sheet with a structural error raises SheetLayoutError. Inputs are
    left untouched; every output record is a copy.
    """
    start = time.time()
    for sheet in (contacts, leads, estimates, jobsites):
        sheet.raise_for_error()

    stats = MergeStats()
    accounts = [dict(a) for a in contacts.accounts]
    stats.total_accounts = len(accounts)

    merged_contacts = _merge_contacts(accounts, contacts.records, leads.records, stats)
    index = LinkIndex.build(accounts, merged_contacts)

    stats.estimate_linking = LinkStats.for_strategies(ESTIMATE_STRATEGIES)
    merged_estimates = _link(estimates.records, ESTIMATE_STRATEGIES, index, stats.estimate_linking)

    stats.jobsite_linking = LinkStats.for_strategies(JOBSITE_STRATEGIES)
    merged_jobsites = _link(jobsites.records, JOBSITE_STRATEGIES, index, stats.jobsite_linking)
    orphaned = [j for j in merged_jobsites if j["_is_orphaned"]]

    accounts = annotate_revenue(accounts, merged_estimates, reporting_year)

    logger.info(
        "[merge_contact_data] time: %.2fs, accounts: %d, contacts: %d (matched %d%%), "
        "estimates linked: %d/%d, jobsites linked: %d/%d",
        time.time() - start, len(accounts), len(merged_contacts), stats.match_rate,
        stats.estimate_linking.linked, stats.estimate_linking.total,
        stats.jobsite_linking.linked, stats.jobsite_linking.total,
    )
    return MergedResult(
        accounts=accounts,
        contacts=merged_contacts,
        estimates=merged_estimates,
        jobsites=merged_jobsites,
        orphaned_jobsites=orphaned,
        stats=stats,
    )
