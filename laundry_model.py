"""
Laundry Network Forecast Engine
Per-branch monthly order & P&L forecast (single-growth, monthly-growth,
fixed-orders), derived branch metrics, network aggregation, network
warnings/report data and setup-cost ROI timelines.
"""
import logging
import math
import uuid
from copy import deepcopy
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12
DEFAULT_MONTHS_TO_FORECAST = MONTHS_PER_YEAR
LOW_MARGIN_THRESHOLD = 20.0

DEFAULT_MONTHLY_GROWTH_RATES = [2, 2, 3, 3, 4, 5, 5, 4, 3, 3, 2, 2]
DEFAULT_FIXED_MONTHLY_ORDERS = [300] * MONTHS_PER_YEAR

# ── Errors ──────────────────────────────────────────────────


class LaundryModelError(Exception):
    """Base class for engine errors."""


class MetricsValidationError(LaundryModelError, ValueError):
    def __init__(self, field_name, reason):
        self.field = field_name
        super().__init__(f"Invalid or missing field: {field_name} ({reason})")


class NetworkInputError(LaundryModelError, ValueError):
    pass


class EmptyForecastError(LaundryModelError, ValueError):
    pass


# ── Forecast Modes ──────────────────────────────────────────


class ForecastMode(str, Enum):
    SINGLE_GROWTH = "single-growth"
    MONTHLY_GROWTH = "monthly-growth"
    FIXED_ORDERS = "fixed-orders"


def _cyclic(values, month):
    i = (month - 1) % MONTHS_PER_YEAR
    return values[i] if i < len(values) else None


@dataclass(frozen=True)
class SingleGrowth:
    rate: float


@dataclass(frozen=True)
class MonthlyGrowth:
    rates: Tuple[Optional[float], ...]
    fallback_rate: float

    def rate_for(self, month: int) -> float:
        r = _cyclic(self.rates, month)
        return self.fallback_rate if r is None else r


@dataclass(frozen=True)
class FixedOrders:
    orders: Tuple[Optional[float], ...]
    fallback_orders: float

    def orders_for(self, month: int) -> float:
        # an empty or zero entry means no override for that month
        return _cyclic(self.orders, month) or self.fallback_orders


ForecastPlan = Union[SingleGrowth, MonthlyGrowth, FixedOrders]

# ── Data Types ──────────────────────────────────────────────


@dataclass(frozen=True)
class BusinessMetrics:
    daily_orders: float
    branch_capacity: float
    monthly_growth_rate: float
    average_order_price: float
    detergent_cost: float
    packaging_cost: float
    other_material_costs: float
    delivery_cost_per_customer: float
    monthly_rent: float
    monthly_staff_cost_per_person: float
    monthly_utilities: float
    staff_count: int
    forecast_mode: ForecastMode = ForecastMode.SINGLE_GROWTH
    monthly_growth_rates: Tuple[Optional[float], ...] = tuple(DEFAULT_MONTHLY_GROWTH_RATES)
    fixed_monthly_orders: Tuple[Optional[float], ...] = tuple(DEFAULT_FIXED_MONTHLY_ORDERS)

    @property
    def monthly_capacity(self) -> float:
        return self.branch_capacity * DAYS_PER_MONTH

    @property
    def material_cost_per_order(self) -> float:
        return self.detergent_cost + self.packaging_cost + self.other_material_costs

    @property
    def fixed_costs(self) -> float:
        return self.monthly_rent + self.monthly_staff_cost_per_person * self.staff_count + self.monthly_utilities

    @property
    def plan(self) -> ForecastPlan:
        if self.forecast_mode == ForecastMode.MONTHLY_GROWTH:
            return MonthlyGrowth(self.monthly_growth_rates, self.monthly_growth_rate)
        if self.forecast_mode == ForecastMode.FIXED_ORDERS:
            return FixedOrders(self.fixed_monthly_orders, self.daily_orders * DAYS_PER_MONTH)
        return SingleGrowth(self.monthly_growth_rate)


@dataclass(frozen=True)
class MonthlyMetrics:
    month: int
    orders: float
    revenue: float
    delivery_cost: float
    materials_cost: float
    fixed_costs: float
    total_costs: float
    net_profit: float
    profit_margin: float


@dataclass(frozen=True)
class CostBreakdown:
    materials: float
    marketing: float
    fixed: float
    total: float


@dataclass(frozen=True)
class BranchAverages:
    avg_revenue: float
    avg_orders: float
    avg_profit_margin: float
    avg_net_profit: float
    avg_total_costs: float
    avg_fixed_costs: float
    avg_materials_costs: float
    total_annual_revenue: float
    total_annual_costs: float
    total_annual_profit: float
    total_annual_orders: float


@dataclass(frozen=True)
class BranchSetupCosts:
    construction_cost: float = 0.0
    equipment_cost: float = 0.0
    licensing_cost: float = 0.0
    initial_inventory_cost: float = 0.0

    @property
    def total(self) -> float:
        return self.construction_cost + self.equipment_cost + self.licensing_cost + self.initial_inventory_cost


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    location: str
    metrics: BusinessMetrics
    monthly_data: Tuple[MonthlyMetrics, ...]
    setup_costs: BranchSetupCosts


@dataclass(frozen=True)
class BranchSummary:
    branch_id: str
    branch_name: str
    location: str
    total_revenue: float
    total_profit: float
    total_orders: float
    average_margin: float
    average_utilization: float


@dataclass(frozen=True)
class NetworkSummary:
    total_revenue: float
    total_profit: float
    total_orders: float
    average_margin: float
    average_utilization: float
    branch_summaries: Tuple[BranchSummary, ...]
    best_performer: Optional[BranchSummary] = None
    worst_performer: Optional[BranchSummary] = None


@dataclass(frozen=True)
class ROIMetrics:
    """months_to_roi / projected_roi_date are None when the branch never breaks even."""
    total_investment: float
    monthly_profit: float
    months_to_roi: Optional[int]
    projected_roi_date: Optional[date]
    current_roi_percentage: Optional[float]
    is_roi_reached: bool


@dataclass(frozen=True)
class BranchROIExtreme:
    branch_id: str
    branch_name: str
    months_to_roi: Optional[int]


@dataclass(frozen=True)
class NetworkROIMetrics:
    total_network_investment: float
    average_monthly_profit: float
    average_months_to_roi: Optional[float]
    fastest_roi: BranchROIExtreme
    slowest_roi: BranchROIExtreme
    projected_network_roi_date: Optional[date]
    current_network_roi_percentage: Optional[float]
    is_network_roi_reached: bool


# ── Default Config ──────────────────────────────────────────

METRIC_ALIASES = {
    "daily_orders": "dailyOrders",
    "branch_capacity": "branchCapacity",
    "monthly_growth_rate": "monthlyGrowthRate",
    "average_order_price": "averageOrderPrice",
    "detergent_cost": "detergentCost",
    "packaging_cost": "packagingCost",
    "other_material_costs": "otherMaterialCosts",
    "delivery_cost_per_customer": "deliveryCostPerCustomer",
    "monthly_rent": "monthlyRent",
    "monthly_staff_cost_per_person": "monthlyStaffCostPerPerson",
    "monthly_utilities": "monthlyUtilities",
    "staff_count": "staffCount",
    "forecast_mode": "forecastMode",
    "monthly_growth_rates": "monthlyGrowthRates",
    "fixed_monthly_orders": "fixedMonthlyOrders",
}
REQUIRED_METRIC_FIELDS = list(METRIC_ALIASES)[:12]

SETUP_COST_ALIASES = {
    "construction_cost": "constructionCost",
    "equipment_cost": "equipmentCost",
    "licensing_cost": "licensingCost",
    "initial_inventory_cost": "initialInventoryCost",
}

DEFAULT_METRICS = {
    "daily_orders": 0, "branch_capacity": 0, "monthly_growth_rate": 0,
    "average_order_price": 0, "detergent_cost": 0, "packaging_cost": 0,
    "other_material_costs": 0, "delivery_cost_per_customer": 0,
    "monthly_rent": 0, "monthly_staff_cost_per_person": 0,
    "monthly_utilities": 0, "staff_count": 0,
    "forecast_mode": ForecastMode.SINGLE_GROWTH.value,
    "monthly_growth_rates": list(DEFAULT_MONTHLY_GROWTH_RATES),
    "fixed_monthly_orders": list(DEFAULT_FIXED_MONTHLY_ORDERS),
}

DEFAULT_SETUP_COSTS = {"construction_cost": 0, "equipment_cost": 0, "licensing_cost": 0, "initial_inventory_cost": 0}

MAIN_BRANCH_CONFIG = {
    "branch_id": "main_001",
    "branch_name": "Main Branch",
    "location": "City Center",
    "metrics": {
        "daily_orders": 120,
        "branch_capacity": 300,
        "monthly_growth_rate": 3,
        "average_order_price": 35.0,
        "detergent_cost": 2.5,
        "packaging_cost": 1.0,
        "other_material_costs": 0.5,
        "delivery_cost_per_customer": 4.0,
        "monthly_rent": 12000.0,
        "monthly_staff_cost_per_person": 4000.0,
        "monthly_utilities": 2500.0,
        "staff_count": 4,
        "forecast_mode": "single-growth",
        "monthly_growth_rates": list(DEFAULT_MONTHLY_GROWTH_RATES),
        "fixed_monthly_orders": list(DEFAULT_FIXED_MONTHLY_ORDERS),
    },
    "setup_costs": {"construction_cost": 150000.0, "equipment_cost": 120000.0,
                    "licensing_cost": 15000.0, "initial_inventory_cost": 10000.0},
}

# ── Branch Registry ─────────────────────────────────────────


def _make_sample_branch_2():
    c = deepcopy(MAIN_BRANCH_CONFIG)
    c.update({"branch_id": "north_002", "branch_name": "North Branch", "location": "Industrial District"})
    c["metrics"].update({"daily_orders": 80, "branch_capacity": 200, "monthly_rent": 9000.0,
                         "staff_count": 3, "forecast_mode": "monthly-growth"})
    c["setup_costs"]["construction_cost"] = 110000.0
    c["setup_costs"]["equipment_cost"] = 95000.0
    return c


BRANCH_REGISTRY = {"main_001": MAIN_BRANCH_CONFIG, "north_002": _make_sample_branch_2()}


def get_branch_config(branch_id): return deepcopy(BRANCH_REGISTRY[branch_id])
def list_branches(): return [{"id": k, "name": v["branch_name"]} for k, v in BRANCH_REGISTRY.items()]
def register_branch(cfg): BRANCH_REGISTRY[cfg["branch_id"]] = deepcopy(cfg)


# ── Normalisation & Validation ──────────────────────────────


def _lookup(raw, key, aliases):
    if key in raw:
        return raw[key]
    return raw.get(aliases.get(key))


def _is_number(value):
    return isinstance(value, (int, float, np.number)) and not isinstance(value, bool)


def _require_number(raw, key, aliases=METRIC_ALIASES, minimum=0.0):
    value = _lookup(raw, key, aliases)
    if value is None:
        reason = "missing"
    elif not _is_number(value) or not math.isfinite(value):
        reason = "not a number"
    elif value < minimum:
        reason = f"below {minimum:g}"
    else:
        return float(value)
    logger.error("Invalid or missing field: %s (%s)", key, reason)
    raise MetricsValidationError(key, reason)


def _curve(raw, key, default, minimum):
    """Per-month override sequence; missing/empty falls back to the default curve,
    non-numeric entries become None (looked up as absent)."""
    values = _lookup(raw, key, METRIC_ALIASES)
    if not isinstance(values, (list, tuple)) or len(values) == 0:
        return tuple(float(v) for v in default)
    out = []
    for v in values:
        if not _is_number(v) or not math.isfinite(v):
            out.append(None)
        elif v < minimum:
            logger.error("Invalid entry in %s: %r", key, v)
            raise MetricsValidationError(key, f"entry below {minimum:g}")
        else:
            out.append(float(v))
    return tuple(out)


def _forecast_mode(raw):
    value = _lookup(raw, "forecast_mode", METRIC_ALIASES)
    try:
        return ForecastMode(value)
    except ValueError:
        logger.warning("Unknown forecast mode %r, using %s", value, ForecastMode.SINGLE_GROWTH.value)
        return ForecastMode.SINGLE_GROWTH


def normalize_metrics(raw: Union[Dict, BusinessMetrics]) -> BusinessMetrics:
    """Build a validated, fully-populated BusinessMetrics from a config dict.

    Accepts snake_case keys and the camelCase keys of stored branch records.
    A BusinessMetrics instance is re-validated through its dict form. The
    input is never modified.
    """
    if isinstance(raw, BusinessMetrics):
        raw = metrics_to_dict(raw)
    if not isinstance(raw, dict):
        raise MetricsValidationError("metrics", "expected a mapping")
    vals = {k: _require_number(raw, k) for k in REQUIRED_METRIC_FIELDS if k != "monthly_growth_rate"}
    # growth may be negative, but not below a full collapse of volume
    vals["monthly_growth_rate"] = _require_number(raw, "monthly_growth_rate", minimum=-100.0)
    if not vals["staff_count"].is_integer():
        logger.error("Invalid or missing field: staff_count (not a whole number)")
        raise MetricsValidationError("staff_count", "not a whole number")
    vals["staff_count"] = int(vals["staff_count"])
    return BusinessMetrics(
        forecast_mode=_forecast_mode(raw),
        monthly_growth_rates=_curve(raw, "monthly_growth_rates", DEFAULT_MONTHLY_GROWTH_RATES, -100.0),
        fixed_monthly_orders=_curve(raw, "fixed_monthly_orders", DEFAULT_FIXED_MONTHLY_ORDERS, 0.0),
        **vals)


def normalize_setup_costs(raw: Union[Dict, BranchSetupCosts, None]) -> BranchSetupCosts:
    if raw is None:
        return BranchSetupCosts()
    if isinstance(raw, BranchSetupCosts):
        raw = setup_costs_to_dict(raw)
    costs = {}
    for key in SETUP_COST_ALIASES:
        if _lookup(raw, key, SETUP_COST_ALIASES) is None:
            costs[key] = 0.0
        else:
            costs[key] = _require_number(raw, key, aliases=SETUP_COST_ALIASES)
    return BranchSetupCosts(**costs)


def metrics_to_dict(metrics: BusinessMetrics) -> Dict:
    d = asdict(metrics)
    mode = metrics.forecast_mode
    d["forecast_mode"] = mode.value if isinstance(mode, ForecastMode) else mode
    d["monthly_growth_rates"] = list(metrics.monthly_growth_rates or ())
    d["fixed_monthly_orders"] = list(metrics.fixed_monthly_orders or ())
    return d


def setup_costs_to_dict(costs: BranchSetupCosts) -> Dict:
    return asdict(costs)


# ── Forecast Engine ─────────────────────────────────────────


def _month_row(m, month, orders):
    revenue = orders * m.average_order_price
    delivery_cost = orders * m.delivery_cost_per_customer
    materials_cost = orders * m.material_cost_per_order
    fixed_costs = m.fixed_costs
    total_costs = delivery_cost + materials_cost + fixed_costs
    net_profit = revenue - total_costs
    profit_margin = net_profit / revenue * 100 if revenue != 0 else 0.0
    return MonthlyMetrics(month=month, orders=orders, revenue=revenue, delivery_cost=delivery_cost,
                          materials_cost=materials_cost, fixed_costs=fixed_costs, total_costs=total_costs,
                          net_profit=net_profit, profit_margin=profit_margin)


def calculate_metrics(metrics: Union[Dict, BusinessMetrics],
                      months_to_forecast: int = DEFAULT_MONTHS_TO_FORECAST) -> List[MonthlyMetrics]:
    """Project the monthly series for one branch.

    Realised orders are capped at monthly capacity before that month's
    financials are computed. In the growth modes the next month's base is
    grown from the uncapped trajectory, so a capped branch keeps its
    planned growth curve.
    """
    m = normalize_metrics(metrics)
    if not isinstance(months_to_forecast, int) or isinstance(months_to_forecast, bool) or months_to_forecast < 1:
        logger.error("Invalid forecast horizon: %r", months_to_forecast)
        raise MetricsValidationError("months_to_forecast", "must be a positive integer")
    plan = m.plan
    capacity = m.monthly_capacity
    logger.debug("Forecasting %d months in %s mode", months_to_forecast, m.forecast_mode.value)

    series = []
    if isinstance(plan, FixedOrders):
        for month in range(1, months_to_forecast + 1):
            series.append(_month_row(m, month, min(plan.orders_for(month), capacity)))
    elif isinstance(plan, (SingleGrowth, MonthlyGrowth)):
        orders = m.daily_orders * DAYS_PER_MONTH
        for month in range(1, months_to_forecast + 1):
            series.append(_month_row(m, month, min(orders, capacity)))
            rate = plan.rate if isinstance(plan, SingleGrowth) else plan.rate_for(month)
            orders = orders * (1 + rate / 100)
    else:
        raise TypeError(f"Unsupported forecast plan: {plan!r}")
    return series


# ── Branch Derived Metrics ──────────────────────────────────


def calculate_cost_breakdown(series: Sequence[MonthlyMetrics]) -> Optional[CostBreakdown]:
    """Per-order cost split of the first forecast month."""
    if not series:
        logger.warning("No monthly data available for cost breakdown.")
        return None
    first = series[0]
    if not first.orders:
        logger.warning("First month has no orders.")
        return None
    return CostBreakdown(materials=first.materials_cost / first.orders,
                         marketing=first.delivery_cost / first.orders,
                         fixed=first.fixed_costs / first.orders,
                         total=first.total_costs / first.orders)


def calculate_warnings(series: Sequence[MonthlyMetrics], branch_capacity: float) -> List[str]:
    if not series:
        logger.warning("No monthly data available for warnings.")
        return []
    warnings = []
    monthly_capacity = branch_capacity * DAYS_PER_MONTH
    if any(m.orders >= monthly_capacity for m in series):
        warnings.append(f"Branch is operating at maximum capacity ({branch_capacity:g} orders/day).")
    if series[0].profit_margin < LOW_MARGIN_THRESHOLD:
        warnings.append("Low profit margin. Consider adjusting prices or reducing costs.")
    if len(series) > 1 and series[-1].orders < series[0].orders:
        warnings.append("Order volume is declining over the forecast period. Review growth assumptions.")
    return warnings


def calculate_averages(series: Sequence[MonthlyMetrics]) -> Optional[BranchAverages]:
    if not series:
        logger.warning("No monthly data available for averaging.")
        return None
    n = len(series)
    revenue = sum(m.revenue for m in series)
    orders = sum(m.orders for m in series)
    margin = sum(m.profit_margin for m in series)
    profit = sum(m.net_profit for m in series)
    costs = sum(m.total_costs for m in series)
    fixed = sum(m.fixed_costs for m in series)
    materials = sum(m.materials_cost for m in series)
    return BranchAverages(avg_revenue=revenue / n, avg_orders=orders / n, avg_profit_margin=margin / n,
                          avg_net_profit=profit / n, avg_total_costs=costs / n, avg_fixed_costs=fixed / n,
                          avg_materials_costs=materials / n, total_annual_revenue=revenue,
                          total_annual_costs=costs, total_annual_profit=profit, total_annual_orders=orders)


# ── Branch Lifecycle ────────────────────────────────────────


def create_branch(name, location, metrics=None, setup_costs=None, branch_id=None) -> Branch:
    m = normalize_metrics(DEFAULT_METRICS if metrics is None else metrics)
    return Branch(id=branch_id or str(uuid.uuid4()), name=name, location=location, metrics=m,
                  monthly_data=tuple(calculate_metrics(m)),
                  setup_costs=normalize_setup_costs(DEFAULT_SETUP_COSTS if setup_costs is None else setup_costs))


def branch_from_config(cfg: Dict) -> Branch:
    return create_branch(cfg["branch_name"], cfg.get("location", ""), cfg["metrics"],
                         cfg.get("setup_costs"), cfg.get("branch_id"))


def update_branch_metrics(branch: Branch, key: str, value) -> Branch:
    """New branch with one metric changed and the series recomputed wholesale."""
    if key not in METRIC_ALIASES:
        key = next((k for k, alias in METRIC_ALIASES.items() if alias == key), key)
    if key not in METRIC_ALIASES:
        raise MetricsValidationError(key, "unknown metric")
    raw = metrics_to_dict(branch.metrics)
    raw[key] = value
    m = normalize_metrics(raw)
    return replace(branch, metrics=m, monthly_data=tuple(calculate_metrics(m)))


def update_branch_setup_costs(branch: Branch, setup_costs) -> Branch:
    return replace(branch, setup_costs=normalize_setup_costs(setup_costs))


def add_branch(branches: Sequence[Branch], name, location, setup_costs=None) -> Tuple[List[Branch], str]:
    b = create_branch(name, location, setup_costs=setup_costs)
    return list(branches) + [b], b.id


def replace_branch(branches: Sequence[Branch], updated: Branch) -> List[Branch]:
    return [updated if b.id == updated.id else b for b in branches]


def delete_branch(branches: Sequence[Branch], branch_id: str) -> List[Branch]:
    # the network always keeps at least one branch
    remaining = [b for b in branches if b.id != branch_id]
    if not remaining:
        remaining.append(create_branch("Main Branch", "City Center"))
    return remaining


# ── Network Aggregator ──────────────────────────────────────


def _last_month(branch):
    if not branch.monthly_data:
        raise EmptyForecastError(f"Branch {branch.id} has no monthly data")
    return branch.monthly_data[-1]


def _utilization(branch):
    last = _last_month(branch)
    capacity = branch.metrics.monthly_capacity
    return last.orders / capacity * 100 if capacity else 0.0


def calculate_branch_summary(branch: Branch) -> BranchSummary:
    utilization = _utilization(branch)
    series = branch.monthly_data
    total_revenue = sum(m.revenue for m in series)
    total_profit = sum(m.net_profit for m in series)
    total_orders = sum(m.orders for m in series)
    return BranchSummary(branch_id=branch.id, branch_name=branch.name, location=branch.location,
                         total_revenue=total_revenue, total_profit=total_profit, total_orders=total_orders,
                         average_margin=total_profit / total_revenue * 100 if total_revenue else 0.0,
                         average_utilization=utilization)


def calculate_overall_metrics(branches: Sequence[Branch]) -> NetworkSummary:
    """Network totals plus unweighted mean of per-branch margin and utilization."""
    if not branches:
        return NetworkSummary(total_revenue=0.0, total_profit=0.0, total_orders=0.0,
                              average_margin=0.0, average_utilization=0.0, branch_summaries=())
    summaries = [calculate_branch_summary(b) for b in branches]
    ranked = sorted(summaries, key=lambda s: s.total_profit, reverse=True)
    return NetworkSummary(
        total_revenue=sum(s.total_revenue for s in summaries),
        total_profit=sum(s.total_profit for s in summaries),
        total_orders=sum(s.total_orders for s in summaries),
        average_margin=float(np.mean([s.average_margin for s in summaries])),
        average_utilization=float(np.mean([s.average_utilization for s in summaries])),
        branch_summaries=tuple(summaries),
        best_performer=ranked[0],
        worst_performer=ranked[-1])


def calculate_network_warnings(branches: Sequence[Branch]) -> Dict[str, List[str]]:
    warnings, recommendations = [], []
    if not branches:
        return {"warnings": warnings, "recommendations": recommendations}
    utilization = [_utilization(b) for b in branches]
    margins = [_last_month(b).profit_margin for b in branches]
    avg_util = float(np.mean(utilization)); avg_margin = float(np.mean(margins))
    high_util = sum(1 for u in utilization if u > 85)
    low_margin = sum(1 for m in margins if m < LOW_MARGIN_THRESHOLD)

    def _plural(n): return f"{n} branch{'es' if n > 1 else ''}"

    if avg_util > 80:
        warnings.append(f"Average capacity utilization is {avg_util:.1f}% across all branches")
        recommendations.append("Consider expanding capacity or opening new branches")
    if high_util:
        warnings.append(f"{_plural(high_util)} operating above 85% capacity")
    if avg_margin < LOW_MARGIN_THRESHOLD:
        warnings.append(f"Average profit margin is below target at {avg_margin:.1f}%")
        recommendations.append("Review pricing strategy and cost structure")
    if low_margin:
        warnings.append(f"{_plural(low_margin)} operating below 20% profit margin")
    if high_util:
        recommendations.append("Optimize resource allocation across branches")
    if low_margin:
        recommendations.append("Implement cost-saving measures in underperforming branches")
    return {"warnings": warnings, "recommendations": recommendations}


# -- Tabular Views --

MONTHLY_COLUMNS = ["month", "orders", "revenue", "delivery_cost", "materials_cost",
                   "fixed_costs", "total_costs", "net_profit", "profit_margin"]

COMPARISON_SORT_KEYS = {"revenue": "total_revenue", "profit": "total_profit",
                        "margin": "average_margin", "utilization": "average_utilization"}


def monthly_frame(series: Sequence[MonthlyMetrics]) -> pd.DataFrame:
    return pd.DataFrame([asdict(m) for m in series], columns=MONTHLY_COLUMNS)


def network_monthly_frame(branches: Sequence[Branch]) -> pd.DataFrame:
    frames = []
    for b in branches:
        df = monthly_frame(b.monthly_data)
        df.insert(0, "branch_name", b.name); df.insert(0, "branch_id", b.id)
        frames.append(df)
    if not frames:
        return pd.DataFrame(columns=["branch_id", "branch_name"] + MONTHLY_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def branch_comparison_frame(branches: Sequence[Branch], sort_key="profit", descending=True) -> pd.DataFrame:
    if sort_key not in COMPARISON_SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_key}")
    df = pd.DataFrame([asdict(calculate_branch_summary(b)) for b in branches],
                      columns=[f.name for f in fields(BranchSummary)])
    df = df.sort_values(COMPARISON_SORT_KEYS[sort_key], ascending=not descending, kind="mergesort")
    return df.reset_index(drop=True)


# -- Reports --


def generate_branch_report(branch: Branch) -> Dict:
    utilization = _utilization(branch)
    series = branch.monthly_data
    margin = sum(m.profit_margin for m in series) / len(series)
    m = branch.metrics
    alerts = []
    if utilization > 90:
        alerts.append("Branch is operating near maximum capacity")
    if margin < LOW_MARGIN_THRESHOLD:
        alerts.append("Profit margin is below target threshold")
    return {"branch": branch, "metrics": monthly_frame(series),
            "performance": {"revenue": sum(x.revenue for x in series),
                            "expenses": sum(x.total_costs for x in series),
                            "profit_margin": margin, "utilization_rate": utilization},
            "staffing": {"headcount": m.staff_count,
                         "cost_per_employee": m.monthly_staff_cost_per_person,
                         "total_staff_cost": m.staff_count * m.monthly_staff_cost_per_person},
            "alerts": alerts}


def generate_network_report(branches: Sequence[Branch]) -> Dict:
    """Network totals, profit rankings, 12-month growth trends and alerts."""
    monthly = network_monthly_frame(branches)
    revenue = float(monthly["revenue"].sum()) if len(monthly) else 0.0
    expenses = float(monthly["total_costs"].sum()) if len(monthly) else 0.0
    profit = revenue - expenses
    margin = profit / revenue * 100 if revenue else 0.0

    rankings = [{"branch_id": b.id, "name": b.name, "performance": sum(x.net_profit for x in b.monthly_data)}
                for b in branches]
    rankings.sort(key=lambda r: r["performance"], reverse=True)

    months = pd.Index(range(1, MONTHS_PER_YEAR + 1), name="month")
    trends = (monthly.groupby("month")[["revenue", "orders"]].sum() if len(monthly)
              else pd.DataFrame(columns=["revenue", "orders"]))
    trends = trends.reindex(months, fill_value=0.0).astype(float)
    trends.index.name = "month"
    trends = trends.reset_index()

    alerts = []
    if revenue and margin < LOW_MARGIN_THRESHOLD:
        alerts.append("Network average profit margin is below target")
    busy = sum(1 for b in branches if _utilization(b) > 90)
    if busy:
        alerts.append(f"{busy} branches operating above 90% capacity")
    return {"branches": list(branches),
            "total_metrics": {"revenue": revenue, "expenses": expenses, "profit": profit, "average_margin": margin},
            "branch_rankings": rankings, "growth_trends": trends, "alerts": alerts}


# -- ROI Calculator --


def _add_months(start, months):
    """Calendar date `months` ahead of start, or None past the representable range."""
    try:
        return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()
    except (ValueError, OverflowError):
        logger.warning("ROI horizon of %s months is beyond the supported date range", months)
        return None


def calculate_branch_roi(branch: Branch, as_of: Optional[date] = None) -> ROIMetrics:
    if not branch.monthly_data:
        raise EmptyForecastError(f"Branch {branch.id} has no monthly data")
    total_investment = branch.setup_costs.total
    profits = [m.net_profit for m in branch.monthly_data]
    total_profit = sum(profits)
    avg_profit = total_profit / len(profits)
    months = math.ceil(total_investment / avg_profit) if avg_profit > 0 else None
    start = as_of or date.today()
    if total_investment > 0:
        pct = total_profit / total_investment * 100
        reached = pct >= 100
    else:
        # nothing to recover; percentage undefined
        pct, reached = None, total_profit > 0
    return ROIMetrics(total_investment=total_investment, monthly_profit=avg_profit, months_to_roi=months,
                      projected_roi_date=_add_months(start, months) if months is not None else None,
                      current_roi_percentage=pct, is_roi_reached=reached)


def _roi_sort_key(pair):
    months = pair[1].months_to_roi
    return (months is None, months or 0)


def calculate_network_roi(branches: Sequence[Branch], as_of: Optional[date] = None) -> NetworkROIMetrics:
    if not branches:
        raise NetworkInputError("No branches provided for ROI calculation")
    start = as_of or date.today()
    rois = [(b, calculate_branch_roi(b, start)) for b in branches]

    total_investment = sum(r.total_investment for _, r in rois)
    total_monthly_profit = sum(r.monthly_profit for _, r in rois)
    ranked = sorted(rois, key=_roi_sort_key)
    fastest, slowest = ranked[0], ranked[-1]

    # network totals rather than a mean of per-branch horizons
    avg_months = total_investment / total_monthly_profit if total_monthly_profit != 0 else None
    projected = _add_months(start, math.ceil(avg_months)) if avg_months is not None and avg_months >= 0 else None

    total_profit = sum(m.net_profit for b in branches for m in b.monthly_data)
    if total_investment > 0:
        pct = total_profit / total_investment * 100
        reached = pct >= 100
    else:
        pct, reached = None, total_profit > 0
    logger.debug("Network ROI over %d branches: investment=%.2f", len(branches), total_investment)
    return NetworkROIMetrics(
        total_network_investment=total_investment,
        average_monthly_profit=total_monthly_profit / len(branches),
        average_months_to_roi=avg_months,
        fastest_roi=BranchROIExtreme(fastest[0].id, fastest[0].name, fastest[1].months_to_roi),
        slowest_roi=BranchROIExtreme(slowest[0].id, slowest[0].name, slowest[1].months_to_roi),
        projected_network_roi_date=projected,
        current_network_roi_percentage=pct,
        is_network_roi_reached=reached)


# -- Master: Run Single Branch --


def run_single_branch(cfg=None, as_of=None):
    if cfg is None: cfg = get_branch_config("main_001")
    branch = branch_from_config(cfg)
    series = list(branch.monthly_data)
    return {"branch_id": branch.id, "branch_name": branch.name, "config": cfg, "branch": branch,
            "monthly_data": series, "monthly_frame": monthly_frame(series),
            "cost_breakdown": calculate_cost_breakdown(series),
            "warnings": calculate_warnings(series, branch.metrics.branch_capacity),
            "averages": calculate_averages(series),
            "summary": calculate_branch_summary(branch),
            "roi": calculate_branch_roi(branch, as_of),
            "report": generate_branch_report(branch)}


# -- Multi-Branch Network --


def run_network(configs=None, as_of=None):
    if configs is None:
        configs = [deepcopy(v) for v in BRANCH_REGISTRY.values()]
    branches = [branch_from_config(c) for c in configs]
    return {"branches": branches,
            "overall": calculate_overall_metrics(branches),
            "network_roi": calculate_network_roi(branches, as_of) if branches else None,
            "network_warnings": calculate_network_warnings(branches),
            "network_report": generate_network_report(branches),
            "comparison": branch_comparison_frame(branches)}


# -- Entry Point --

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    result = run_network()
    o = result["overall"]; roi = result["network_roi"]
    print(result["comparison"].to_string(index=False))
    print(f"Network revenue: {o.total_revenue:,.0f}  profit: {o.total_profit:,.0f}  "
          f"avg margin: {o.average_margin:.1f}%")
    horizon = f"{roi.average_months_to_roi:.1f} months" if roi.average_months_to_roi is not None else "never"
    print(f"Network ROI horizon: {horizon}  fastest: {roi.fastest_roi.branch_name}")
    for w in result["network_warnings"]["warnings"]:
        print(f"! {w}")
    print("Done.")
