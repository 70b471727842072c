from merge.cascade import (
    ESTIMATE_STRATEGIES,
    JOBSITE_STRATEGIES,
    NO_MATCH,
    LinkIndex,
    MatchedBy,
    by_address,
    by_contact_id,
    by_crm_tags,
    by_email,
    by_fuzzy_name,
    by_jobsite_name,
    by_phone,
    contact_by_email,
    run_cascade,
)

ACCOUNTS = [
    {"id": "lmn-account-A1", "external_id": "A1", "name": "Acme Landscaping Inc",
     "address_1": "100 Main Street", "tags": ["VIP"]},
    {"id": "lmn-account-A2", "external_id": "A2", "name": "Birch Property Group",
     "address_1": "200 Oak Avenue", "tags": []},
]
CONTACTS = [
    {"id": "lmn-contact-c1", "external_id": "c1", "account_id": "lmn-account-A1",
     "email": "jane@acme.com", "email_2": "", "phone": "(604) 555-0101", "phone_2": ""},
    {"id": "lmn-contact-c2", "external_id": "c2", "account_id": "lmn-account-A2",
     "email": "bob@birch.com", "email_2": "robert@birch.com", "phone": "", "phone_2": "604-555-0202"},
    {"id": "lmn-contact-lead-x", "external_id": None, "account_id": None,
     "email": "x@nowhere.com", "email_2": "", "phone": "", "phone_2": ""},
]


def _index():
    return LinkIndex.build(ACCOUNTS, CONTACTS, phone_region="US")


def test_match_result_variants():
    assert NO_MATCH.matched is False
    assert NO_MATCH.target_id is None
    hit = MatchedBy("email", "lmn-account-A1")
    assert hit.matched is True
    assert hit == MatchedBy("email", "lmn-account-A1")


def test_run_cascade_stops_at_first_match():
    calls = []

    def first(record, index):
        calls.append("first")
        return "target-1"

    def second(record, index):
        calls.append("second")
        return "target-2"

    result = run_cascade({}, (("first", first), ("second", second)), None)
    assert result == MatchedBy("first", "target-1")
    assert calls == ["first"]


def test_run_cascade_no_match():
    assert run_cascade({}, (("never", lambda r, i: None),), None) is NO_MATCH


def test_by_contact_id_resolves_contact_then_crm_id():
    index = _index()
    assert by_contact_id({"external_contact_id": "C1"}, index) == "lmn-account-A1"
    # the exporter also puts CRM ids into the Contact ID column
    assert by_contact_id({"external_contact_id": "a2"}, index) == "lmn-account-A2"
    assert by_contact_id({"contact_id": "lmn-contact-c2"}, index) == "lmn-account-A2"
    assert by_contact_id({"external_contact_id": "c9"}, index) is None


def test_by_email_and_phone():
    index = _index()
    assert by_email({"email": " ROBERT@birch.com"}, index) == "lmn-account-A2"
    assert by_email({"email": "x@nowhere.com"}, index) is None
    assert by_phone({"phone": "604.555.0202"}, index) == "lmn-account-A2"
    assert by_phone({"phone": "", "phone_2": "+1 (604) 555-0101"}, index) == "lmn-account-A1"


def test_by_crm_tags_matches_tag_or_crm_id():
    index = _index()
    assert by_crm_tags({"crm_tags": ["vip"]}, index) == "lmn-account-A1"
    assert by_crm_tags({"crm_tags": ["A2"]}, index) == "lmn-account-A2"
    assert by_crm_tags({"crm_tags": ["other"]}, index) is None


def test_by_address_for_estimates_and_jobsites():
    index = _index()
    assert by_address({"address": "100 Main St."}, index) == "lmn-account-A1"
    assert by_address({"address_1": "200 oak ave"}, index) == "lmn-account-A2"
    assert by_address({"address": "20 Oak Ave"}, index) is None


def test_by_jobsite_name_and_fuzzy_name():
    index = _index()
    assert by_jobsite_name({"name": "Birch Property Group - Tower"}, index) == "lmn-account-A2"
    assert by_jobsite_name({"name": "Elsewhere"}, index) is None
    assert by_fuzzy_name({"contact_name": "Acme Landscaping"}, index) == "lmn-account-A1"
    assert by_fuzzy_name({"contact_name": ""}, index) is None


def test_contact_resolvers_return_contact_ids():
    index = _index()
    assert contact_by_email({"email": "", "email_2": "bob@birch.com"}, index) == "lmn-contact-c2"


def test_strategy_order():
    assert [name for name, _ in ESTIMATE_STRATEGIES] == [
        "contact_id", "email", "phone", "crm_tags", "address", "name_match",
    ]
    assert [name for name, _ in JOBSITE_STRATEGIES] == [
        "contact_id", "address", "jobsite_name", "name_match",
    ]


def test_higher_priority_strategy_wins():
    record = {"external_contact_id": "c1", "email": "bob@birch.com", "crm_tags": ["A2"]}
    assert run_cascade(record, ESTIMATE_STRATEGIES, _index()) == MatchedBy("contact_id", "lmn-account-A1")
