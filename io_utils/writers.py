import json
import os
from datetime import date, datetime
from decimal import Decimal

import pandas as pd

MERGED_OUTPUTS = (
    ("accounts", "accounts.csv"),
    ("contacts", "contacts.csv"),
    ("estimates", "estimates.csv"),
    ("jobsites", "jobsites.csv"),
    ("orphaned_jobsites", "orphaned_jobsites.csv"),
)
REPORT_FILE = "import_report.json"


def ensure_outdir(outdir):
    os.makedirs(outdir, exist_ok=True)


def _cell(value):
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str, sort_keys=True)
    return value


def write_records(records, path):
    df = pd.DataFrame([{k: _cell(v) for k, v in r.items()} for r in records])
    df.to_csv(path, index=False)


def write_merged_outputs(merged, outdir) -> dict:
    """One CSV per record type; returns {name: path}."""
    ensure_outdir(outdir)
    paths = {}
    for attr, filename in MERGED_OUTPUTS:
        path = os.path.join(outdir, filename)
        write_records(getattr(merged, attr), path)
        paths[attr] = path
    return paths


def _json_default(value):
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


def write_report(report: dict, outdir) -> str:
    ensure_outdir(outdir)
    path = os.path.join(outdir, REPORT_FILE)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2, default=_json_default)
    return path
