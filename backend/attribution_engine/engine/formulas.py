"""
Metrics Formula Library
=======================

WHAT:
    Shared derived-metric formulas used by every view: ROAS, CPC, CTR,
    net profit, profit margin, average order value, revenue per order.

WHY:
    One definition per ratio keeps channel, hierarchy, campaign and
    timeseries responses consistent with each other.

DIVISION POLICY:
    Every guard returns exactly 0 when the denominator is not positive.
    NaN / Infinity / None never leave this module.

VAT POLICY:
    `ignore_vat` is a per-shop setting. Resolve it once per request into a
    ProfitPolicy and apply the same policy to every row in the response.

REFERENCES:
    - engine/hierarchy.py (post-pass ROAS)
    - engine/channel_aggregator.py (channel and non-paid campaign rows)
    - engine/dashboard.py (shop-level profit, refunds included)
"""

from __future__ import annotations

from dataclasses import dataclass


def safe_divide(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is not positive."""
    if denominator is None or denominator <= 0:
        return 0.0
    return numerator / denominator


def roas(attributed_revenue: float, ad_spend: float) -> float:
    return safe_divide(attributed_revenue, ad_spend)


def cpc(ad_spend: float, clicks: float) -> float:
    return safe_divide(ad_spend, clicks)


def ctr(clicks: float, impressions: float) -> float:
    """Click-through rate in percent."""
    return safe_divide(clicks * 100, impressions)


def avg_order_value(revenue: float, orders: float) -> float:
    return safe_divide(revenue, orders)


def revenue_per_order_touched(revenue: float, distinct_orders_touched: float) -> float:
    return safe_divide(revenue, distinct_orders_touched)


@dataclass(frozen=True)
class ProfitPolicy:
    """Per-shop profit settings, evaluated once per request."""

    ignore_vat: bool = False

    def vat_term(self, attributed_tax: float) -> float:
        return 0.0 if self.ignore_vat else attributed_tax

    def gross_revenue(self, attributed_revenue: float, attributed_tax: float) -> float:
        """Revenue with VAT removed unless the shop ignores VAT."""
        return attributed_revenue - self.vat_term(attributed_tax)

    def net_profit(
        self,
        attributed_revenue: float,
        attributed_tax: float,
        attributed_cogs: float,
        attributed_payment_fees: float,
        ad_spend: float = 0.0,
        refunds: float = 0.0,
    ) -> float:
        return (
            attributed_revenue
            - self.vat_term(attributed_tax)
            - attributed_cogs
            - attributed_payment_fees
            - ad_spend
            - refunds
        )


def profit_margin_pct(net_profit_without_ad_spend: float, revenue: float) -> float:
    """Profit margin for organic views, in percent."""
    return safe_divide(net_profit_without_ad_spend, revenue) * 100
