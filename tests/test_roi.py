"""Tests for branch and network ROI timelines."""

import math
from datetime import date

import pytest

from laundry_model import (
    Branch,
    BranchSetupCosts,
    EmptyForecastError,
    NetworkInputError,
    calculate_branch_roi,
    calculate_network_roi,
    normalize_metrics,
)

AS_OF = date(2026, 1, 31)
SETUP_120K = {"construction_cost": 40000, "equipment_cost": 50000,
              "licensing_cost": 20000, "initial_inventory_cost": 10000}


@pytest.fixture
def earner(branch):
    """10,000 net profit every month: 3,000 orders at 10 less 20,000 rent."""
    def _make(branch_id="earner", setup_costs=SETUP_120K, **overrides):
        params = dict(average_order_price=10, monthly_rent=20000)
        params.update(overrides)
        return branch(branch_id, setup_costs=setup_costs, **params)
    return _make


@pytest.fixture
def loser(branch):
    """Loses 10,000 every month."""
    def _make(branch_id="loser", setup_costs=SETUP_120K):
        return branch(branch_id, setup_costs=setup_costs, average_order_price=10, monthly_rent=40000)
    return _make


class TestBranchROI:

    def test_twelve_month_payback(self, earner):
        roi = calculate_branch_roi(earner(), as_of=AS_OF)
        assert roi.total_investment == 120000
        assert roi.monthly_profit == 10000
        assert roi.months_to_roi == 12
        assert roi.projected_roi_date == date(2027, 1, 31)
        assert roi.current_roi_percentage == pytest.approx(100)
        assert roi.is_roi_reached

    def test_partial_payback(self, earner):
        roi = calculate_branch_roi(earner(setup_costs={"construction_cost": 240000}), as_of=AS_OF)
        assert roi.months_to_roi == 24
        assert roi.current_roi_percentage == pytest.approx(50)
        assert not roi.is_roi_reached

    def test_months_round_up(self, earner):
        roi = calculate_branch_roi(earner(setup_costs={"equipment_cost": 125000}), as_of=AS_OF)
        assert roi.months_to_roi == 13

    def test_projected_date_clamps_month_end(self, earner):
        roi = calculate_branch_roi(earner(setup_costs={"equipment_cost": 10000}), as_of=AS_OF)
        assert roi.months_to_roi == 1
        assert roi.projected_roi_date == date(2026, 2, 28)

    def test_never_breaks_even(self, loser):
        roi = calculate_branch_roi(loser(), as_of=AS_OF)
        assert roi.months_to_roi is None
        assert roi.projected_roi_date is None
        assert roi.monthly_profit == -10000
        assert roi.current_roi_percentage == pytest.approx(-100)
        assert not roi.is_roi_reached

    def test_horizon_beyond_calendar_has_no_date(self, earner):
        # 1 per month against 300,000
        b = earner(setup_costs={"construction_cost": 300000}, average_order_price=1, monthly_rent=2999)
        roi = calculate_branch_roi(b, as_of=AS_OF)
        assert roi.monthly_profit == 1
        assert roi.months_to_roi == 300000
        assert roi.projected_roi_date is None
        assert not roi.is_roi_reached

    def test_zero_investment(self, earner):
        roi = calculate_branch_roi(earner(setup_costs=None), as_of=AS_OF)
        assert roi.total_investment == 0
        assert roi.months_to_roi == 0
        assert roi.projected_roi_date == AS_OF
        assert roi.current_roi_percentage is None
        assert roi.is_roi_reached

    def test_defaults_to_today(self, earner):
        roi = calculate_branch_roi(earner())
        assert roi.projected_roi_date > date.today()

    def test_empty_series(self, metrics):
        b = Branch(id="e", name="E", location="", metrics=normalize_metrics(metrics()),
                   monthly_data=(), setup_costs=BranchSetupCosts(construction_cost=1))
        with pytest.raises(EmptyForecastError):
            calculate_branch_roi(b)


class TestNetworkROI:

    def test_empty_network(self):
        with pytest.raises(NetworkInputError):
            calculate_network_roi([])

    def test_two_branches(self, earner):
        slow = earner("slow")
        fast = earner("fast", setup_costs={"construction_cost": 60000})
        roi = calculate_network_roi([slow, fast], as_of=AS_OF)
        assert roi.total_network_investment == 180000
        assert roi.average_monthly_profit == 10000
        assert roi.average_months_to_roi == pytest.approx(9)
        assert roi.fastest_roi.branch_id == "fast" and roi.fastest_roi.months_to_roi == 6
        assert roi.slowest_roi.branch_id == "slow" and roi.slowest_roi.months_to_roi == 12
        assert roi.projected_network_roi_date == date(2026, 10, 31)
        assert roi.current_network_roi_percentage == pytest.approx(240000 / 180000 * 100)
        assert roi.is_network_roi_reached

    def test_uses_network_totals_not_mean_of_horizons(self, earner):
        a = earner("a", setup_costs={"construction_cost": 10000})                       # 1 month
        b = earner("b", setup_costs={"construction_cost": 100000}, average_order_price=20)  # 40k/month, 3 months
        roi = calculate_network_roi([a, b], as_of=AS_OF)
        assert roi.average_months_to_roi == pytest.approx(110000 / 50000)
        assert roi.average_monthly_profit == pytest.approx(25000)

    def test_unreachable_branch_is_slowest(self, earner, loser):
        roi = calculate_network_roi([loser(), earner()], as_of=AS_OF)
        assert roi.fastest_roi.branch_id == "earner"
        assert roi.slowest_roi.branch_id == "loser"
        assert roi.slowest_roi.months_to_roi is None

    def test_sole_unreachable_branch(self, loser):
        roi = calculate_network_roi([loser()], as_of=AS_OF)
        assert roi.fastest_roi == roi.slowest_roi
        assert roi.fastest_roi.months_to_roi is None
        assert roi.average_months_to_roi is not None
        assert math.isfinite(roi.average_months_to_roi)
        assert roi.projected_network_roi_date is None
        assert not roi.is_network_roi_reached

    def test_zero_total_monthly_profit(self, earner, loser):
        roi = calculate_network_roi([earner(), loser()], as_of=AS_OF)
        assert roi.average_monthly_profit == 0
        assert roi.average_months_to_roi is None
        assert roi.projected_network_roi_date is None
        assert roi.current_network_roi_percentage == pytest.approx(0)

    def test_ties_keep_input_order(self, earner):
        roi = calculate_network_roi([earner("one"), earner("two"), earner("three")], as_of=AS_OF)
        assert roi.fastest_roi.branch_id == "one"
        assert roi.slowest_roi.branch_id == "three"

    def test_branch_names_carried(self, earner):
        roi = calculate_network_roi([earner("x")], as_of=AS_OF)
        assert roi.fastest_roi.branch_name == "X"

    def test_zero_network_investment(self, earner):
        roi = calculate_network_roi([earner(setup_costs=None)], as_of=AS_OF)
        assert roi.average_months_to_roi == 0
        assert roi.projected_network_roi_date == AS_OF
        assert roi.current_network_roi_percentage is None
        assert roi.is_network_roi_reached

    def test_horizon_beyond_calendar_has_no_date(self, earner):
        b = earner(setup_costs={"construction_cost": 300000}, average_order_price=1, monthly_rent=2999)
        roi = calculate_network_roi([b], as_of=date(2026, 3, 1))
        assert roi.average_months_to_roi == pytest.approx(300000)
        assert roi.fastest_roi.months_to_roi == 300000
        assert roi.projected_network_roi_date is None
