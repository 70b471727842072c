from datetime import date

import pytest

from merge.revenue import (
    allocate,
    annotate_revenue,
    contract_years,
    duration_months,
    estimate_price,
    is_won,
)


def _estimate(**fields):
    base = {"status": "won", "account_id": "acc-1", "estimate_type": "Service",
            "total_price": None, "total_price_with_tax": None,
            "contract_start": None, "contract_end": None, "estimate_date": None}
    base.update(fields)
    return base


def test_duration_months_counts_partial_month_only_past_start_day():
    assert duration_months(date(2025, 4, 15), date(2026, 4, 15)) == 12
    assert duration_months(date(2025, 4, 15), date(2026, 4, 16)) == 13
    assert duration_months(date(2025, 1, 1), date(2025, 6, 30)) == 6


@pytest.mark.parametrize("months, years", [(1, 1), (12, 1), (13, 2), (24, 2), (36, 3), (48, 4), (49, 5)])
def test_contract_years(months, years):
    assert contract_years(months) == years


def test_estimate_price_fallbacks():
    assert estimate_price(_estimate(total_price_with_tax=1200.0, total_price=1000.0)) == 1200.0
    assert estimate_price(_estimate(total_price_with_tax=0.0, total_price=1000.0)) == 1000.0
    assert estimate_price(_estimate(total_price_with_tax=None, total_price=0.0)) is None


def test_is_won_reads_pipeline_status():
    assert is_won(_estimate(status="won"))
    assert is_won(_estimate(status="lost", pipeline_status="Sold"))
    assert not is_won(_estimate(status="pending"))


def test_allocate_spreads_multi_year_contracts():
    estimate = _estimate(total_price_with_tax=3000.0, contract_start="2024-03-01", contract_end="2026-03-01")
    assert allocate(estimate, 2024) == {2024: 1500.0, 2025: 1500.0}


def test_allocate_year_priority():
    assert allocate(_estimate(total_price=100.0, contract_end="2025-06-01", estimate_date="2023-01-01"), 2024) == {2025: 100.0}
    assert allocate(_estimate(total_price=100.0, contract_start="2022-06-01"), 2024) == {2022: 100.0}
    assert allocate(_estimate(total_price=100.0, estimate_date="2023-01-01"), 2024) == {2023: 100.0}
    assert allocate(_estimate(total_price=100.0), 2024) == {2024: 100.0}
    assert allocate(_estimate(), 2024) == {}


def test_segments_by_share_of_year_revenue():
    accounts = [{"id": "big"}, {"id": "mid"}, {"id": "small"}, {"id": "none"}]
    estimates = [
        _estimate(account_id="big", total_price=8000.0, estimate_date="2024-01-01"),
        _estimate(account_id="mid", total_price=1000.0, estimate_date="2024-01-01"),
        _estimate(account_id="small", total_price=100.0, estimate_date="2024-01-01"),
        _estimate(account_id="small", total_price=900.0, estimate_date="2024-01-01", status="lost"),
    ]
    result = {a["id"]: a for a in annotate_revenue(accounts, estimates, 2024)}
    assert result["big"]["revenue_segment"] == "A"
    assert result["mid"]["revenue_segment"] == "B"
    assert result["small"]["revenue_segment"] == "C"
    assert result["small"]["revenue_by_year"] == {2024: 100.0}
    assert result["none"]["revenue_segment"] == "C"
    assert result["none"]["revenue_by_year"] == {}


def test_standard_only_accounts_are_segment_d():
    accounts = [{"id": "project"}, {"id": "mixed"}]
    estimates = [
        _estimate(account_id="project", estimate_type="Standard", total_price=9000.0, estimate_date="2024-01-01"),
        _estimate(account_id="mixed", estimate_type="Standard", total_price=500.0, estimate_date="2024-01-01"),
        _estimate(account_id="mixed", estimate_type="Service", total_price=500.0, estimate_date="2024-01-01"),
    ]
    result = {a["id"]: a for a in annotate_revenue(accounts, estimates, 2024)}
    assert result["project"]["segment_by_year"] == {2024: "D"}
    assert result["mixed"]["revenue_segment"] == "B"


def test_annotate_revenue_copies_accounts():
    accounts = [{"id": "acc-1"}]
    annotate_revenue(accounts, [_estimate(total_price=10.0)], 2024)
    assert accounts == [{"id": "acc-1"}]
