import pandas as pd
import pytest

from merge.engine import merge_contact_data
from parsers.contacts_export import parse_contacts_export
from parsers.estimates_list import parse_estimates_list
from parsers.jobsite_export import parse_jobsite_export
from parsers.leads_list import parse_leads_list
from settings import reset_settings
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

ENV_NAMES = (
    "CRM_API_BASE_URL", "CRM_API_TOKEN", "CRM_API_TIMEOUT", "IMPORT_BATCH_SIZE",
    "IMPORT_DEFAULT_COUNTRY", "IMPORT_PHONE_REGION", "IMPORT_ID_PREFIX",
    "LOG_LEVEL", "IMPORT_VERBOSE",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


def frame(columns, rows):
    return pd.DataFrame(rows, columns=columns)


@pytest.fixture
def contacts_df():
    return frame(CONTACTS_COLUMNS, CONTACTS_ROWS)


@pytest.fixture
def leads_df():
    return frame(LEADS_COLUMNS, LEADS_ROWS)


@pytest.fixture
def estimates_df():
    return frame(ESTIMATES_COLUMNS, ESTIMATES_ROWS)


@pytest.fixture
def jobsites_df():
    return frame(JOBSITE_COLUMNS, JOBSITE_ROWS)


@pytest.fixture
def sheets(contacts_df, leads_df, estimates_df, jobsites_df):
    return {
        "contacts": parse_contacts_export(contacts_df),
        "leads": parse_leads_list(leads_df),
        "estimates": parse_estimates_list(estimates_df),
        "jobsites": parse_jobsite_export(jobsites_df),
    }


@pytest.fixture
def merged(sheets):
    return merge_contact_data(
        sheets["contacts"], sheets["leads"], sheets["estimates"], sheets["jobsites"],
        reporting_year=2024,
    )
