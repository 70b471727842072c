# app.py
"""
CRM Import Reconciliation
-------------------------
Usage example:
 python app.py --contacts exports/contacts.xlsx --leads exports/leads.xlsx \
     --estimates exports/estimates.xlsx --jobsites exports/jobsites.xlsx --out out/ \
     --link-jobsite 9001=4411 --compare --push
"""
import argparse
import logging
import sys

from io_utils.readers import load_column_overrides, load_table
from io_utils.writers import ensure_outdir, write_merged_outputs, write_report
from merge.engine import merge_contact_data
from merge.linking import JobsiteLinkOverrides, apply_overrides
from parsers.contacts_export import parse_contacts_export
from parsers.estimates_list import parse_estimates_list
from parsers.jobsite_export import parse_jobsite_export
from parsers.leads_list import parse_leads_list
from reconcile.compare import compare_with_existing
from reconcile.ids import extract_valid_ids
from reconcile.references import validate_references
from settings import get_settings
from sync.client import BackendClient, BackendError, fetch_existing_data
from sync.importer import push_merged

logger = logging.getLogger(__name__)

EXIT_BLOCKED = 2

SHEETS = (
    ("contacts", "Contacts Export", parse_contacts_export),
    ("leads", "Leads List", parse_leads_list),
    ("estimates", "Estimates List", parse_estimates_list),
    ("jobsites", "Jobsite Export", parse_jobsite_export),
)


def _link_arg(value):
    jobsite, sep, account = value.partition("=")
    if not sep or not jobsite.strip() or not account.strip():
        raise argparse.ArgumentTypeError(f"expected JOBSITE=ACCOUNT, got {value!r}")
    return jobsite.strip(), account.strip()


def build_parser():
    parser = argparse.ArgumentParser(description="CRM Import Reconciliation")
    parser.add_argument("--contacts", type=str, help="Path to the Contacts Export")
    parser.add_argument("--leads", type=str, help="Path to the Leads List")
    parser.add_argument("--estimates", type=str, help="Path to the Estimates List")
    parser.add_argument("--jobsites", type=str, help="Path to the Jobsite Export")
    parser.add_argument("--out", type=str, required=True, help="Output directory for review files")
    parser.add_argument("--columns", type=str, help="JSON file with column-name overrides")
    parser.add_argument("--link-jobsite", type=_link_arg, action="append", default=[],
                        metavar="JOBSITE=ACCOUNT", help="Manually link a jobsite to an account")
    parser.add_argument("--unlink-jobsite", action="append", default=[], metavar="JOBSITE",
                        help="Manually mark a jobsite as unlinked")
    parser.add_argument("--compare", action="store_true", help="Diff against data stored in the backend")
    parser.add_argument("--push", action="store_true", help="Bulk upsert the merged data to the backend")
    parser.add_argument("--year", type=int, help="Reporting year for revenue segments (default: this year)")
    return parser


def load_sheets(args, overrides) -> dict:
    """{name: ParseResult or None when the file was not given}."""
    results = {}
    for name, label, parse in SHEETS:
        path = getattr(args, name)
        if not path:
            results[name] = None
            continue
        result = parse(load_table(path), overrides)
        results[name] = result
        stats = result.stats
        if result.ok:
            print(f"✅ {label}: {stats.found} records ({stats.skipped} rows skipped, {len(stats.warnings)} warnings)")
        else:
            print(f"❌ {label}: {stats.error}")
    return results


def ready_to_merge(results) -> tuple[bool, list[str]]:
    """All four sheets present and structurally valid; otherwise the blocking labels."""
    blocking = []
    for name, label, _ in SHEETS:
        result = results.get(name)
        if result is None:
            blocking.append(f"{label} (missing)")
        elif not result.ok:
            blocking.append(f"{label} ({result.stats.error})")
    return not blocking, blocking


def build_overrides(merged, args) -> JobsiteLinkOverrides:
    overrides = JobsiteLinkOverrides.from_merged(merged)
    for jobsite_id, account_id in args.link_jobsite:
        overrides.link(jobsite_id, account_id)
    for jobsite_id in args.unlink_jobsite:
        overrides.unlink(jobsite_id)
    return overrides


def configure_logging(settings):
    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    ensure_outdir(args.out)
# ---- Load & parse ----
    overrides = load_column_overrides(args.columns)
    sheets = load_sheets(args, overrides)
    ready, blocking = ready_to_merge(sheets)
    if not ready:
        print(f"⛔ Merge blocked: {', '.join(blocking)}")
        return EXIT_BLOCKED
# ---- Merge & manual links ----
    merged = merge_contact_data(
        sheets["contacts"], sheets["leads"], sheets["estimates"], sheets["jobsites"],
        reporting_year=args.year,
    )
    try:
        link_overrides = build_overrides(merged, args)
    except KeyError as exc:
        print(f"⛔ Manual jobsite link rejected: {exc.args[0]}")
        return EXIT_BLOCKED
    merged = apply_overrides(merged, link_overrides)
    stats = merged.stats
    print(f"✅ Contacts: {stats.total_contacts} total, {stats.matched_contacts} matched to leads "
          f"({stats.match_rate}%), {len(stats.new_contacts_from_leads)} new from leads.")
    print(f"✅ Estimates: {stats.estimate_linking.linked}/{stats.estimate_linking.total} linked "
          f"({stats.estimate_linking.link_rate}%).")
    print(f"✅ Jobsites: {stats.jobsite_linking.linked}/{stats.jobsite_linking.total} linked "
          f"({stats.jobsite_linking.link_rate}%), {len(merged.orphaned_jobsites)} orphaned.")
# ---- Validate ----
    valid_ids = extract_valid_ids(sheets["contacts"], sheets["leads"], sheets["estimates"], sheets["jobsites"])
    references = validate_references(merged, valid_ids)
    print(f"✅ References: {len(references.errors)} errors, {len(references.warnings)} warnings.")

    report = {
        "parse": {name: result.stats.to_dict() for name, result in sheets.items()},
        "merge": stats.to_dict(),
        "manual_links": [list(entry) for entry in link_overrides.history],
        "references": references.to_dict(),
    }
    write_merged_outputs(merged, args.out)
# ---- Compare & push ----
    client = None
    if args.compare or args.push:
        try:
            client = BackendClient.from_settings(settings)
        except ValueError as exc:
            print(f"⛔ {exc}")
            write_report(report, args.out)
            return EXIT_BLOCKED
    if args.compare:
        try:
            existing = fetch_existing_data(client)
        except BackendError as exc:
            print(f"⚠️ Could not fetch stored data: {exc}")
            report["comparison_error"] = str(exc)
        else:
            comparison = compare_with_existing(
                merged, existing["accounts"], existing["contacts"],
                existing["estimates"], existing["jobsites"], valid_ids,
            )
            report["comparison"] = comparison.summary()
            for entity, counts in report["comparison"].items():
                if isinstance(counts, dict):
                    print(f"✅ {entity}: {counts['new']} new, {counts['updated']} updated, "
                          f"{counts['unchanged']} unchanged, {counts['orphaned']} orphaned")
    if args.push:
        results = push_merged(client, merged, valid_ids, batch_size=settings.batch_size)
        report["import"] = results.summary()
        for entity in ("accounts", "contacts", "estimates", "jobsites"):
            outcome = results.entity(entity)
            glyph = "✅" if not outcome.failed else "⚠️"
            print(f"{glyph} Imported {entity}: {outcome.created} created, {outcome.updated} updated, "
                  f"{outcome.failed} failed")
        for error in results.errors:
            print(f"   {error}")
# ---- Report ----
    write_report(report, args.out)
    print(f"✅ Outputs written to {args.out}.")
    print("🎉 Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
