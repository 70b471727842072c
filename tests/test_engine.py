import copy
import logging

import pandas as pd
import pytest

from merge.engine import merge_contact_data
from parsers.base import SheetLayoutError
from parsers.estimates_list import parse_estimates_list
from parsers.leads_list import parse_leads_list
from reconcile.ids import extract_valid_ids
from settings import reset_settings


def _by_id(records):
    return {r["id"]: r for r in records}


def _merge(sheets, **changes):
    parts = {**sheets, **changes}
    return merge_contact_data(parts["contacts"], parts["leads"], parts["estimates"], parts["jobsites"],
                              reporting_year=2024)


# --------- accounts ---------
def test_accounts_come_from_contacts_export_only(merged):
    assert [a["id"] for a in merged.accounts] == ["lmn-account-A1", "lmn-account-A2", "lmn-account-A3"]
    assert merged.stats.total_accounts == 3


def test_valid_account_ids_round_trip(merged, sheets):
    valid = extract_valid_ids(sheets["contacts"], sheets["leads"], sheets["estimates"], sheets["jobsites"])
    merged_external = [a["external_id"] for a in merged.accounts]
    assert sorted(merged_external) == sorted(valid.account_ids)
    assert len(set(merged_external)) == len(merged_external)


# --------- contacts ---------
def test_contact_id_match_wins_without_fallback(merged):
    jane = _by_id(merged.contacts)["lmn-contact-c1"]
    assert jane["do_not_email"] is True
    assert jane["matched"] is True
    assert jane["data_source"] == "merged"


def test_preference_flags_are_ored_across_leads(merged):
    jane = _by_id(merged.contacts)["lmn-contact-c1"]
    # lead 1 by contact id, lead 3 by phone
    assert jane["do_not_email"] is True
    assert jane["do_not_call"] is True
    assert jane["do_not_mail"] is False
    assert jane["matched_leads"] == 2


def test_lead_enrichment_fields(merged):
    contacts = _by_id(merged.contacts)
    jane = contacts["lmn-contact-c1"]
    assert jane["position"] == "Owner"
    assert jane["title"] == "Owner"
    assert jane["role"] == "decision_maker"
    assert jane["referral_source"] == "Google"
    assert jane["notes"] == "Prefers mornings\n\nGate code 12"
    bob = contacts["lmn-contact-c2"]
    assert bob["role"] == "influencer"
    assert bob["do_not_mail"] is True


def test_unmatched_contact_stays_unmatched(merged):
    sam = _by_id(merged.contacts)["lmn-contact-c3"]
    assert sam["matched"] is False
    assert sam["data_source"] == "contacts_export"


def test_unmatched_leads_become_flagged_contacts(merged):
    contacts = _by_id(merged.contacts)
    nina = contacts["lmn-contact-lead-ninacedarcom"]
    assert nina["new_from_leads"] is True
    assert nina["data_source"] == "leads_list_new_contact"
    assert nina["account_id"] == "lmn-account-A3"
    zed = contacts["lmn-contact-lead-zednowherecom"]
    assert zed["account_id"] is None

    listed = merged.stats.new_contacts_from_leads
    assert [entry["contact_id"] for entry in listed] == [
        "lmn-contact-lead-ninacedarcom",
        "lmn-contact-lead-zednowherecom",
    ]
    assert listed[0]["contact_name"] == "Nina Park"
    assert listed[0]["account_name"] == "Cedar Homes"
    assert listed[1]["account_name"] is None


def test_repeated_unknown_lead_collapses_into_one_contact(sheets, leads_df):
    extra = pd.DataFrame([{"Lead Name": "Unknown Co", "First Name": "Zed", "Last Name": "Quinn",
                           "Email 1": "zed@nowhere.com", "DoNotCall": "Y"}])
    leads = parse_leads_list(pd.concat([leads_df, extra], ignore_index=True).fillna(""))
    result = _merge(sheets, leads=leads)
    zeds = [c for c in result.contacts if c["id"] == "lmn-contact-lead-zednowherecom"]
    assert len(zeds) == 1
    assert zeds[0]["do_not_call"] is True
    assert zeds[0]["new_from_leads"] is True
    assert zeds[0]["matched"] is False


def test_contact_statistics(merged):
    stats = merged.stats
    assert stats.total_contacts == 5
    assert stats.matched_contacts == 2
    assert stats.unmatched_contacts == 3
    assert stats.match_rate == 40
    assert stats.contact_matching == {"contact_id": 1, "email": 1, "phone": 1, "unmatched_leads": 2}


# --------- estimates ---------
def test_every_estimate_appears_exactly_once(merged, sheets):
    ids = [e["external_id"] for e in merged.estimates]
    assert sorted(ids) == sorted(e["external_id"] for e in sheets["estimates"].records)
    assert len(ids) == len(set(ids))


def test_estimate_cascade_strategies(merged):
    estimates = {e["external_id"]: e for e in merged.estimates}
    expected = {
        "E1": ("contact_id", "lmn-account-A1"),
        "E2": ("email", "lmn-account-A2"),
        "E3": ("phone", "lmn-account-A2"),
        "E4": ("crm_tags", "lmn-account-A1"),
        "E5": ("address", "lmn-account-A3"),
        "E6": ("name_match", "lmn-account-A2"),
    }
    for external_id, (method, account_id) in expected.items():
        assert estimates[external_id]["_link_method"] == method, external_id
        assert estimates[external_id]["account_id"] == account_id, external_id
        assert estimates[external_id]["_is_orphaned"] is False
    e7 = estimates["E7"]
    assert e7["account_id"] is None
    assert e7["_is_orphaned"] is True
    assert e7["_link_method"] is None


def test_contact_id_beats_email_for_estimates(merged):
    # E1 carries C1 (Acme) and Bob's email (Birch): only the contact id counter moves
    e1 = next(e for e in merged.estimates if e["external_id"] == "E1")
    assert e1["account_id"] == "lmn-account-A1"
    linking = merged.stats.estimate_linking
    assert linking.linked_by("contact_id") == 1
    assert linking.linked_by("email") == 1


def test_unknown_contact_id_falls_through_to_email(sheets, estimates_df):
    only_e2 = parse_estimates_list(estimates_df[estimates_df["Estimate ID"] == "E2"])
    result = _merge(sheets, estimates=only_e2)
    estimate = result.estimates[0]
    assert estimate["account_id"] == "lmn-account-A2"
    assert estimate["_link_method"] == "email"
    assert result.stats.estimate_linking.linked_by("email") == 1
    assert result.stats.estimate_linking.linked_by("contact_id") == 0


def test_estimate_linking_statistics(merged):
    linking = merged.stats.estimate_linking
    assert linking.total == 7
    assert linking.linked == 6
    assert linking.orphaned == 1
    assert linking.link_rate == 86
    assert linking.to_dict()["linked_by_address"] == 1
    assert linking.linked_by("no_such_strategy") == 0


def test_verbose_logs_every_link_decision(sheets, monkeypatch, caplog):
    monkeypatch.setenv("IMPORT_VERBOSE", "1")
    reset_settings()
    with caplog.at_level(logging.DEBUG, logger="merge.engine"):
        _merge(sheets)
    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("link ")]
    assert len(lines) == 7 + 5
    assert "link lmn-estimate-E1 -> lmn-account-A1 (contact_id)" in lines
    assert "link lmn-estimate-E7 -> None (None)" in lines


def test_link_decisions_are_quiet_by_default(sheets, caplog):
    with caplog.at_level(logging.DEBUG, logger="merge.engine"):
        _merge(sheets)
    assert not [r for r in caplog.records if r.getMessage().startswith("link ")]


# --------- jobsites ---------
def test_jobsite_cascade(merged):
    jobsites = {j["external_id"]: j for j in merged.jobsites}
    assert (jobsites["J1"]["_link_method"], jobsites["J1"]["account_id"]) == ("contact_id", "lmn-account-A2")
    assert (jobsites["J2"]["_link_method"], jobsites["J2"]["account_id"]) == ("address", "lmn-account-A1")
    assert (jobsites["J3"]["_link_method"], jobsites["J3"]["account_id"]) == ("jobsite_name", "lmn-account-A3")
    assert (jobsites["J4"]["_link_method"], jobsites["J4"]["account_id"]) == ("name_match", "lmn-account-A1")
    assert jobsites["J5"]["account_id"] is None


def test_orphaned_jobsites_listed(merged):
    assert [j["external_id"] for j in merged.orphaned_jobsites] == ["J5"]
    linking = merged.stats.jobsite_linking
    assert (linking.total, linking.linked, linking.orphaned, linking.link_rate) == (5, 4, 1, 80)
    assert linking.linked + linking.orphaned == linking.total


# --------- whole merge ---------
def test_merge_is_idempotent(sheets):
    first = _merge(sheets)
    second = _merge(sheets)
    assert first.stats.to_dict() == second.stats.to_dict()
    for name in ("accounts", "contacts", "estimates", "jobsites", "orphaned_jobsites"):
        assert getattr(first, name) == getattr(second, name)


def test_inputs_are_not_mutated(sheets):
    before = copy.deepcopy({k: (v.records, getattr(v, "accounts", None)) for k, v in sheets.items()})
    _merge(sheets)
    after = {k: (v.records, getattr(v, "accounts", None)) for k, v in sheets.items()}
    assert before == after


def test_structural_error_blocks_merge(sheets):
    broken = parse_estimates_list(pd.DataFrame([{"Estimate": "E1"}]))
    with pytest.raises(SheetLayoutError):
        _merge(sheets, estimates=broken)


def test_accounts_carry_revenue_segments(merged):
    accounts = _by_id(merged.accounts)
    assert accounts["lmn-account-A1"]["revenue_by_year"] == {2024: 13000.0}
    assert accounts["lmn-account-A1"]["revenue_segment"] == "A"
    assert accounts["lmn-account-A2"]["revenue_segment"] == "C"
    assert accounts["lmn-account-A3"]["revenue_segment"] == "D"
