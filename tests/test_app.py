import json
import os

import pandas as pd
import pytest

from app import EXIT_BLOCKED, main, ready_to_merge
from sheet_data import (
    CONTACTS_COLUMNS,
    CONTACTS_ROWS,
    ESTIMATES_COLUMNS,
    ESTIMATES_ROWS,
    JOBSITE_COLUMNS,
    JOBSITE_ROWS,
    LEADS_COLUMNS,
    LEADS_ROWS,
)


@pytest.fixture
def sheet_args(tmp_path):
    args = []
    for flag, columns, rows in (
        ("--contacts", CONTACTS_COLUMNS, CONTACTS_ROWS),
        ("--leads", LEADS_COLUMNS, LEADS_ROWS),
        ("--estimates", ESTIMATES_COLUMNS, ESTIMATES_ROWS),
        ("--jobsites", JOBSITE_COLUMNS, JOBSITE_ROWS),
    ):
        path = tmp_path / f"{flag.strip('-')}.csv"
        pd.DataFrame(rows, columns=columns).to_csv(path, index=False)
        args += [flag, str(path)]
    return args


def _report(outdir):
    with open(os.path.join(outdir, "import_report.json"), encoding="utf-8") as fh:
        return json.load(fh)


def test_full_run_writes_outputs(sheet_args, tmp_path, capsys):
    outdir = tmp_path / "out"
    code = main(sheet_args + ["--out", str(outdir), "--year", "2024"])
    assert code == 0
    for name in ("accounts", "contacts", "estimates", "jobsites", "orphaned_jobsites"):
        assert (outdir / f"{name}.csv").exists()

    report = _report(outdir)
    assert report["merge"]["total_accounts"] == 3
    assert report["merge"]["estimate_linking"]["linked"] == 6
    assert report["merge"]["jobsite_linking"]["orphaned"] == 1
    assert len(report["references"]["warnings"]) == 1
    assert report["parse"]["estimates"]["found"] == 7

    accounts = pd.read_csv(outdir / "accounts.csv", dtype=str)
    assert list(accounts["external_id"]) == ["A1", "A2", "A3"]
    assert "Done." in capsys.readouterr().out


def test_manual_link_from_command_line(sheet_args, tmp_path):
    outdir = tmp_path / "out"
    code = main(sheet_args + ["--out", str(outdir), "--link-jobsite", "J5=A3"])
    assert code == 0
    report = _report(outdir)
    assert report["merge"]["jobsite_linking"]["orphaned"] == 0
    assert report["merge"]["jobsite_linking"]["linked_by_manual"] == 1
    assert report["manual_links"] == [["link", "lmn-jobsite-J5", "lmn-account-A3"]]
    jobsites = pd.read_csv(outdir / "jobsites.csv", dtype=str, keep_default_na=False)
    j5 = jobsites[jobsites["external_id"] == "J5"].iloc[0]
    assert j5["account_id"] == "lmn-account-A3"
    assert j5["_link_method"] == "manual"


def test_unknown_manual_link_is_rejected(sheet_args, tmp_path, capsys):
    code = main(sheet_args + ["--out", str(tmp_path / "out"), "--link-jobsite", "J5=A99"])
    assert code == EXIT_BLOCKED
    assert "rejected" in capsys.readouterr().out


def test_missing_sheet_blocks_the_merge(sheet_args, tmp_path, capsys):
    without_leads = sheet_args[:2] + sheet_args[4:]
    outdir = tmp_path / "out"
    code = main(without_leads + ["--out", str(outdir)])
    assert code == EXIT_BLOCKED
    out = capsys.readouterr().out
    assert "Merge blocked" in out
    assert "Leads List (missing)" in out
    assert not (outdir / "contacts.csv").exists()


def test_backend_steps_need_a_base_url(sheet_args, tmp_path, capsys):
    outdir = tmp_path / "out"
    code = main(sheet_args + ["--out", str(outdir), "--compare"])
    assert code == EXIT_BLOCKED
    assert "CRM_API_BASE_URL" in capsys.readouterr().out
    assert "comparison" not in _report(outdir)


def test_ready_to_merge_lists_blocking_sheets(sheets):
    ready, blocking = ready_to_merge(sheets)
    assert ready and blocking == []
    ready, blocking = ready_to_merge({**sheets, "jobsites": None})
    assert not ready
    assert blocking == ["Jobsite Export (missing)"]
