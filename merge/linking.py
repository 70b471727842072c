# merge/linking.py
"""
Operator overrides for jobsite -> account links.

Overrides live in a patch map next to the merged result and are applied as
a last pass, so the automatic link of every jobsite stays recoverable and
`history` records each manual edit in order.
"""
import dataclasses
import logging

from merge.cascade import JOBSITE_STRATEGIES
from merge.engine import LinkStats, MergedResult
from parsers.values import clean_str

logger = logging.getLogger(__name__)

UNLINKED = "__unlinked__"
MANUAL = "manual"
MANUAL_UNLINK = "manual_unlink"


def _id_lookup(records) -> dict:
    """Lower-cased stable id and external id -> stable id."""
    lookup = {}
    for record in records:
        lookup[record["id"].lower()] = record["id"]
        external = clean_str(record.get("external_id")).lower()
        if external:
            lookup.setdefault(external, record["id"])
    return lookup


class JobsiteLinkOverrides:
    """
    Patch map jobsite id -> account id (or UNLINKED).

    Ids may be given as stable ids or bare external ids; anything not in
    the merged jobsites/accounts raises KeyError.
    """

    def __init__(self, jobsites, accounts):
        self._jobsites = _id_lookup(jobsites)
        self._accounts = _id_lookup(accounts)
        self.patches: dict[str, str] = {}
        self.history: list[tuple] = []

    @classmethod
    def from_merged(cls, merged: MergedResult) -> "JobsiteLinkOverrides":
        return cls(merged.jobsites, merged.accounts)

    def _jobsite(self, jobsite_id) -> str:
        key = clean_str(jobsite_id).lower()
        if key not in self._jobsites:
            raise KeyError(f"Unknown jobsite: {jobsite_id}")
        return self._jobsites[key]

    def _account(self, account_id) -> str:
        key = clean_str(account_id).lower()
        if key not in self._accounts:
            raise KeyError(f"Unknown account: {account_id}")
        return self._accounts[key]

    def link(self, jobsite_id, account_id) -> None:
        jobsite = self._jobsite(jobsite_id)
        account = self._account(account_id)
        self.patches[jobsite] = account
        self.history.append(("link", jobsite, account))

    def unlink(self, jobsite_id) -> None:
        jobsite = self._jobsite(jobsite_id)
        self.patches[jobsite] = UNLINKED
        self.history.append(("unlink", jobsite, None))

    def clear(self, jobsite_id) -> None:
        """Drop the override; the automatic link comes back on the next apply."""
        jobsite = self._jobsite(jobsite_id)
        self.patches.pop(jobsite, None)
        self.history.append(("clear", jobsite, None))

    def __len__(self):
        return len(self.patches)


def jobsite_link_stats(jobsites) -> LinkStats:
    stats = LinkStats.for_strategies(JOBSITE_STRATEGIES)
    stats.by_strategy[MANUAL] = 0
    for jobsite in jobsites:
        stats.total += 1
        if jobsite["_is_orphaned"]:
            stats.orphaned += 1
        else:
            method = jobsite["_link_method"]
            stats.by_strategy[method] = stats.by_strategy.get(method, 0) + 1
    return stats


def apply_overrides(merged: MergedResult, overrides: JobsiteLinkOverrides) -> MergedResult:
    """New MergedResult with the overrides applied; `merged` is left as it was."""
    jobsites = []
    for jobsite in merged.jobsites:
        patch = overrides.patches.get(jobsite["id"])
        out = dict(jobsite)
        if patch == UNLINKED:
            out.update(account_id=None, _link_method=MANUAL_UNLINK, _is_orphaned=True)
        elif patch is not None:
            out.update(account_id=patch, _link_method=MANUAL, _is_orphaned=False)
        jobsites.append(out)

    link_stats = jobsite_link_stats(jobsites)
    if overrides.patches:
        logger.info("Applied %d manual jobsite links: %d linked, %d orphaned (%d%%)",
                    len(overrides), link_stats.linked, link_stats.orphaned, link_stats.link_rate)
    stats = dataclasses.replace(merged.stats, jobsite_linking=link_stats)
    return dataclasses.replace(
        merged,
        jobsites=jobsites,
        orphaned_jobsites=[j for j in jobsites if j["_is_orphaned"]],
        stats=stats,
    )
