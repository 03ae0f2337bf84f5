"""
Metrics Formula Tests (Unit)
============================

WHAT: Unit tests for ROAS/CPC/CTR guards and the per-shop VAT profit policy.
WHY: Division by zero must never leak NaN/Infinity, and VAT handling drives every profit number.

REFERENCES:
- backend/attribution_engine/engine/formulas.py
"""

import pytest

from attribution_engine.engine.formulas import (
    ProfitPolicy,
    avg_order_value,
    cpc,
    ctr,
    profit_margin_pct,
    roas,
)


def test_net_profit_respects_ignore_vat() -> None:
    """revenue 10000, tax 800, cogs 3000, fees 200, no spend."""
    ignoring = ProfitPolicy(ignore_vat=True)
    deducting = ProfitPolicy(ignore_vat=False)

    assert ignoring.net_profit(10000, 800, 3000, 200, 0) == 6800
    assert deducting.net_profit(10000, 800, 3000, 200, 0) == 6000


def test_net_profit_subtracts_ad_spend() -> None:
    assert ProfitPolicy().net_profit(1000, 100, 200, 50, 300) == 350


def test_net_profit_subtracts_refunds() -> None:
    assert ProfitPolicy().net_profit(1000, 100, 200, 50, 300, refunds=50) == 300


def test_gross_revenue_removes_vat_unless_ignored() -> None:
    assert ProfitPolicy(ignore_vat=False).gross_revenue(1200, 200) == 1000
    assert ProfitPolicy(ignore_vat=True).gross_revenue(1200, 200) == 1200


@pytest.mark.parametrize("denominator", [0, 0.0, -5, None])
def test_zero_denominators_yield_zero(denominator) -> None:
    assert roas(500, denominator) == 0
    assert cpc(500, denominator) == 0
    assert ctr(10, denominator) == 0
    assert avg_order_value(500, denominator) == 0


def test_ratios() -> None:
    assert roas(400, 100) == 4
    assert cpc(50, 25) == 2
    assert ctr(5, 200) == pytest.approx(2.5)
    assert profit_margin_pct(250, 1000) == pytest.approx(25.0)
