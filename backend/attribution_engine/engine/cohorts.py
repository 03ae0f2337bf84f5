"""
Cohort Retention Engine
=======================

WHAT:
    Groups customers by the period of their first purchase and computes,
    for every later period, retention, revenue, contribution margin, LTV,
    CAC and payback.

WHY:
    Answers "how much is a customer acquired in March worth by June, and
    did they pay back what we spent to acquire them?" for any of four
    period granularities.

ALGORITHM:
    1. cohort = period bucket of the customer's first purchase
    2. periods_since_acquisition = bucket difference between an order and
       its cohort (week: whole weeks between Mondays, month: year*12+month,
       quarter: year*4+quarter, year: year). Negative periods and periods
       beyond max_periods are excluded.
    3. cohort_size = distinct customers active in period 0
    4. cac_per_customer = ad spend during the acquisition period / cohort_size
    5. CM1 = net_revenue - cogs; ad spend is allocated to period 0 only;
       CM3 = CM1 - allocated spend
    6. Cumulative series are running sums over periods ascending, divided
       by cohort_size for per-customer values (ltv_to_date etc.)

KNOWN APPROXIMATION:
    Cumulative active customers is max(previous cumulative, current
    incremental). True unique-customer tracking would need a set union per
    cohort, which this engine does not materialize.

REFERENCES:
    - services/cohort_service.py (fetches facts, builds the response)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Union

from attribution_engine.engine.formulas import safe_divide
from attribution_engine.errors import InvalidFilter


class CohortGranularity(str, Enum):
    week = "week"
    month = "month"
    quarter = "quarter"
    year = "year"


# Roughly one year of history per granularity; year capped at 2 for display
DEFAULT_MAX_PERIODS = {
    CohortGranularity.week: 52,
    CohortGranularity.month: 12,
    CohortGranularity.quarter: 4,
    CohortGranularity.year: 2,
}


def parse_cohort_granularity(value) -> CohortGranularity:
    if isinstance(value, CohortGranularity):
        return value
    try:
        return CohortGranularity(value)
    except ValueError as exc:
        raise InvalidFilter(f"Unknown cohort granularity: {value}") from exc


def default_max_periods(granularity) -> int:
    return DEFAULT_MAX_PERIODS[parse_cohort_granularity(granularity)]


# =============================================================================
# PERIOD ARITHMETIC
# =============================================================================

def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def period_start(value: Union[date, datetime], granularity: CohortGranularity) -> date:
    """First day of the bucket containing `value` (weeks start on Monday)."""
    day = _as_date(value)
    if granularity == CohortGranularity.week:
        return day - timedelta(days=day.weekday())
    if granularity == CohortGranularity.month:
        return day.replace(day=1)
    if granularity == CohortGranularity.quarter:
        return date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)
    return date(day.year, 1, 1)


def periods_between(
    cohort_date: Union[date, datetime],
    order_date: Union[date, datetime],
    granularity: CohortGranularity,
) -> int:
    """Whole periods from the cohort's bucket to the order's bucket."""
    start = period_start(cohort_date, granularity)
    end = period_start(order_date, granularity)
    if granularity == CohortGranularity.week:
        return (end - start).days // 7
    if granularity == CohortGranularity.month:
        return (end.year - start.year) * 12 + (end.month - start.month)
    if granularity == CohortGranularity.quarter:
        return (end.year - start.year) * 4 + ((end.month - 1) // 3 - (start.month - 1) // 3)
    return end.year - start.year


# =============================================================================
# INPUT FACTS
# =============================================================================

@dataclass(frozen=True)
class CohortOrder:
    """One order of a customer, joined with that customer's first purchase."""

    customer_id: str
    first_order_date: Union[date, datetime]
    order_id: str
    order_date: Union[date, datetime]
    revenue: float = 0.0
    net_revenue: float = 0.0
    cogs: float = 0.0


@dataclass(frozen=True)
class AdSpendFact:
    spend_date: Union[date, datetime]
    spend: float = 0.0


# =============================================================================
# OUTPUT RECORDS
# =============================================================================

@dataclass
class IncrementalMetrics:
    active_customers: int
    active_customers_percentage: float
    orders: int
    net_revenue: float
    contribution_margin_one: float
    contribution_margin_three: float
    average_order_value: float


@dataclass
class CumulativeMetrics:
    active_customers: int
    active_customers_percentage: float
    orders: int
    net_revenue: float
    contribution_margin_one: float
    contribution_margin_three: float
    average_order_value: float
    ltv_to_date: float
    net_ltv_to_date: float
    ltv_to_cac_ratio: float
    net_ltv_to_cac_ratio: float
    is_payback_achieved: bool
    cumulative_contribution_margin_three_per_customer: float


@dataclass
class CohortPeriod:
    period: int
    incremental: IncrementalMetrics
    cumulative: CumulativeMetrics
    revenue: float = 0.0
    cogs: float = 0.0
    ad_spend_allocated: float = 0.0

    @property
    def retention_rate(self) -> float:
        return self.incremental.active_customers_percentage

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "metrics": {
                "incremental": asdict(self.incremental),
                "cumulative": asdict(self.cumulative),
            },
        }


@dataclass
class CohortRecord:
    cohort: str
    cohort_size: int
    cohort_ad_spend: float
    cac_per_customer: float
    periods: List[CohortPeriod] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cohort": self.cohort,
            "cohort_size": self.cohort_size,
            "cohort_ad_spend": self.cohort_ad_spend,
            "cac_per_customer": self.cac_per_customer,
            "periods": [period.to_dict() for period in self.periods],
        }


@dataclass
class _PeriodActivity:
    customers: Set[str] = field(default_factory=set)
    orders: int = 0
    revenue: float = 0.0
    net_revenue: float = 0.0
    cogs: float = 0.0


# =============================================================================
# ENGINE
# =============================================================================

def _ratio_to_cac(ltv: float, cac: float) -> float:
    if cac <= 0:
        return 0.0
    return round(ltv / cac, 2)


def spend_by_period(
    spend_facts: Iterable[AdSpendFact], granularity: CohortGranularity
) -> Dict[date, float]:
    totals: Dict[date, float] = defaultdict(float)
    for fact in spend_facts:
        totals[period_start(fact.spend_date, granularity)] += fact.spend
    return totals


def build_cohorts(
    orders: Iterable[CohortOrder],
    spend_facts: Iterable[AdSpendFact],
    granularity,
    max_periods: Optional[int] = None,
) -> List[CohortRecord]:
    """
    Compute cohort records from order facts and ad spend facts.

    Parameters:
        orders: Every order of every customer whose first purchase is in range
        spend_facts: Ad spend within the requested range
        granularity: week / month / quarter / year
        max_periods: Highest period index kept (defaults per granularity)

    Returns:
        Cohorts sorted by cohort start date, periods ascending.
    """
    granularity = parse_cohort_granularity(granularity)
    if max_periods is None:
        max_periods = default_max_periods(granularity)

    activity: Dict[date, Dict[int, _PeriodActivity]] = defaultdict(dict)
    for order in orders:
        index = periods_between(order.first_order_date, order.order_date, granularity)
        if index < 0 or index > max_periods:
            continue
        cohort_key = period_start(order.first_order_date, granularity)
        bucket = activity[cohort_key].setdefault(index, _PeriodActivity())
        bucket.customers.add(order.customer_id)
        bucket.orders += 1
        bucket.revenue += order.revenue
        bucket.net_revenue += order.net_revenue
        bucket.cogs += order.cogs

    spend_lookup = spend_by_period(spend_facts, granularity)

    records = []
    for cohort_key in sorted(activity):
        periods = activity[cohort_key]
        if 0 not in periods:
            # No acquisition period inside the window: size is undefined
            continue
        records.append(
            _build_record(cohort_key, periods, spend_lookup.get(cohort_key, 0.0))
        )
    return records


def _build_record(
    cohort_key: date, periods: Dict[int, _PeriodActivity], cohort_ad_spend: float
) -> CohortRecord:
    cohort_size = len(periods[0].customers)
    cac = safe_divide(cohort_ad_spend, cohort_size)
    record = CohortRecord(
        cohort=cohort_key.isoformat(),
        cohort_size=cohort_size,
        cohort_ad_spend=cohort_ad_spend,
        cac_per_customer=cac,
    )

    cumulative_orders = 0
    cumulative_active = 0
    cumulative_revenue = 0.0
    cumulative_net_revenue = 0.0
    cumulative_cm1 = 0.0
    cumulative_cm3 = 0.0

    for index in sorted(periods):
        bucket = periods[index]
        active = len(bucket.customers)
        cm1 = bucket.net_revenue - bucket.cogs
        allocated = cohort_ad_spend if index == 0 else 0.0
        cm3 = cm1 - allocated

        cumulative_orders += bucket.orders
        cumulative_active = max(cumulative_active, active)
        cumulative_revenue += bucket.revenue
        cumulative_net_revenue += bucket.net_revenue
        cumulative_cm1 += cm1
        cumulative_cm3 += cm3

        ltv = safe_divide(cumulative_revenue, cohort_size)
        net_ltv = safe_divide(cumulative_net_revenue, cohort_size)
        cm3_per_customer = safe_divide(cumulative_cm3, cohort_size)

        incremental = IncrementalMetrics(
            active_customers=active,
            active_customers_percentage=safe_divide(active * 100.0, cohort_size),
            orders=bucket.orders,
            net_revenue=bucket.net_revenue,
            contribution_margin_one=safe_divide(cm1, active),
            contribution_margin_three=safe_divide(cm3, active),
            average_order_value=safe_divide(bucket.revenue, bucket.orders),
        )
        cumulative = CumulativeMetrics(
            active_customers=cumulative_active,
            active_customers_percentage=safe_divide(cumulative_active * 100.0, cohort_size),
            orders=cumulative_orders,
            net_revenue=cumulative_net_revenue,
            contribution_margin_one=safe_divide(cumulative_cm1, cohort_size),
            contribution_margin_three=cm3_per_customer,
            average_order_value=safe_divide(cumulative_revenue, cumulative_orders),
            ltv_to_date=ltv,
            net_ltv_to_date=net_ltv,
            ltv_to_cac_ratio=_ratio_to_cac(ltv, cac),
            net_ltv_to_cac_ratio=_ratio_to_cac(net_ltv, cac),
            is_payback_achieved=ltv >= cac,
            cumulative_contribution_margin_three_per_customer=cm3_per_customer,
        )
        record.periods.append(
            CohortPeriod(
                period=index,
                incremental=incremental,
                cumulative=cumulative,
                revenue=bucket.revenue,
                cogs=bucket.cogs,
                ad_spend_allocated=allocated,
            )
        )
    return record
