from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from laundry_model import create_branch  # noqa: E402


def _base_metrics() -> Dict:
    """100 orders/day at 50 each, no costs, no growth, roomy capacity."""
    return {
        "daily_orders": 100,
        "branch_capacity": 1000,
        "monthly_growth_rate": 0,
        "average_order_price": 50,
        "detergent_cost": 0,
        "packaging_cost": 0,
        "other_material_costs": 0,
        "delivery_cost_per_customer": 0,
        "monthly_rent": 0,
        "monthly_staff_cost_per_person": 0,
        "monthly_utilities": 0,
        "staff_count": 0,
        "forecast_mode": "single-growth",
    }


@pytest.fixture
def metrics() -> Callable[..., Dict]:
    def _make(**overrides) -> Dict:
        m = _base_metrics()
        m.update(overrides)
        return m
    return _make


@pytest.fixture
def branch(metrics):
    def _make(branch_id="b1", name=None, setup_costs=None, **overrides):
        return create_branch(name or branch_id.upper(), "Test Street", metrics(**overrides),
                             setup_costs, branch_id=branch_id)
    return _make
