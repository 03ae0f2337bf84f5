"""
Attribution Model Registry
==========================

WHAT:
    Defines the five supported attribution models, the two data modes, the
    supported lookback windows, and how each model selects and weights the
    touchpoints of an order.

WHY:
    Every view (channel, hierarchy, campaign, timeseries) must credit orders
    the same way. Keeping selection and weighting here means the row source
    never re-implements a model.

MODELS:
    first_click      -> the event flagged is_first_event_overall (weight 1)
    last_click       -> the event flagged is_last_event_overall (weight 1)
    last_paid_click  -> is_last_paid_event_overall, or is_last_event_overall
                        when the order has no paid events (weight 1)
    linear_all       -> every event, weight 1 / events in order
    linear_paid      -> paid events, weight 1 / paid events in order; orders
                        without paid events fall back to linear_all

DATA MODES:
    window -> precomputed per-order attribution tables keyed by lookback
              window (one table per model, see ATTRIBUTION_TABLES)
    event  -> raw event facts filtered by event timestamp only; the model is
              applied here by apply_attribution_model()

REFERENCES:
    - services/row_source.py: Applies the registry to fetched event rows
    - services/query_plan.py: Uses get_attribution_table_name() to pick the window-mode table
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from attribution_engine.errors import InvalidFilter


class AttributionModel(str, Enum):
    first_click = "first_click"
    last_click = "last_click"
    last_paid_click = "last_paid_click"
    linear_all = "linear_all"
    linear_paid = "linear_paid"


class DataMode(str, Enum):
    window = "window"
    event = "event"


ATTRIBUTION_WINDOWS = ("1_day", "7_day", "14_day", "28_day", "90_day", "lifetime")

ATTRIBUTION_TABLES = {
    AttributionModel.linear_paid: "int_order_attribution_linear_paid",
    AttributionModel.linear_all: "int_order_attribution_linear_all",
    AttributionModel.first_click: "int_order_attribution_first_click",
    AttributionModel.last_click: "int_order_attribution_last_click",
    AttributionModel.last_paid_click: "int_order_attribution_last_paid_click",
}

SINGLE_TOUCH_MODELS = frozenset({
    AttributionModel.first_click,
    AttributionModel.last_click,
    AttributionModel.last_paid_click,
})


@dataclass(frozen=True)
class TouchpointEvent:
    """
    One recorded channel interaction that led (eventually) to an order.

    Carries the journey flags the models select on, plus the order-level
    amounts the weight is applied to. Ids may be None for non-ad events.
    """

    order_id: str
    channel: str
    event_timestamp: Optional[datetime] = None
    is_paid_channel: bool = False
    is_first_event_overall: bool = False
    is_last_event_overall: bool = False
    is_last_paid_event_overall: bool = False
    has_any_paid_events: bool = False
    campaign: Optional[str] = None
    platform_campaign_id: Optional[str] = None
    platform_ad_set_id: Optional[str] = None
    platform_ad_id: Optional[str] = None
    campaign_id: Optional[int] = None
    ad_set_id: Optional[int] = None
    ad_id: Optional[int] = None
    total_price: float = 0.0
    total_cogs: float = 0.0
    payment_fees: float = 0.0
    total_tax: float = 0.0
    is_first_customer_order: bool = False


@dataclass(frozen=True)
class WeightedTouchpoint:
    """A selected touchpoint and the share of its order it is credited with."""

    event: TouchpointEvent
    weight: float


def parse_attribution_model(value) -> AttributionModel:
    """Validate an attribution model name, raising InvalidFilter if unknown."""
    if isinstance(value, AttributionModel):
        return value
    try:
        return AttributionModel(value)
    except ValueError as exc:
        raise InvalidFilter(f"Unknown attribution model: {value}") from exc


def parse_data_mode(value) -> DataMode:
    if isinstance(value, DataMode):
        return value
    try:
        return DataMode(value)
    except ValueError as exc:
        raise InvalidFilter(f"Unknown data mode: {value}") from exc


def parse_attribution_window(value: str) -> str:
    if value not in ATTRIBUTION_WINDOWS:
        raise InvalidFilter(
            f"Unknown attribution window: {value}. Expected one of {', '.join(ATTRIBUTION_WINDOWS)}"
        )
    return value


def get_attribution_table_name(model) -> str:
    """Return the precomputed window-mode table for a model."""
    return ATTRIBUTION_TABLES[parse_attribution_model(model)]


def is_selected(event: TouchpointEvent, model: AttributionModel) -> bool:
    """Selection predicate for the single-touch models."""
    if model == AttributionModel.first_click:
        return event.is_first_event_overall
    if model == AttributionModel.last_click:
        return event.is_last_event_overall
    if model == AttributionModel.last_paid_click:
        if event.has_any_paid_events:
            return event.is_last_paid_event_overall
        return event.is_last_event_overall
    raise InvalidFilter(f"{model.value} is not a single-touch model")


def touchpoint_weights(order_events: Sequence[TouchpointEvent], model) -> List[float]:
    """
    Compute the credit each touchpoint of ONE order receives.

    Returns weights aligned with `order_events`; unselected events get 0.
    For linear models the weights always sum to 1 for a non-empty order.
    """
    model = parse_attribution_model(model)
    if not order_events:
        return []

    if model in SINGLE_TOUCH_MODELS:
        return [1.0 if is_selected(event, model) else 0.0 for event in order_events]

    if model == AttributionModel.linear_paid:
        paid_count = sum(1 for event in order_events if event.is_paid_channel)
        if paid_count > 0:
            share = 1.0 / paid_count
            return [share if event.is_paid_channel else 0.0 for event in order_events]
        # No paid touch at all: behave like linear_all for this order

    share = 1.0 / len(order_events)
    return [share] * len(order_events)


def group_by_order(events: Iterable[TouchpointEvent]) -> "OrderedDict[str, List[TouchpointEvent]]":
    """Group events by order id, keeping first-appearance order."""
    orders: "OrderedDict[str, List[TouchpointEvent]]" = OrderedDict()
    for event in events:
        orders.setdefault(event.order_id, []).append(event)
    return orders


def apply_attribution_model(events: Iterable[TouchpointEvent], model) -> List[WeightedTouchpoint]:
    """
    Select and weight touchpoints across many orders.

    Only touchpoints with a positive weight are returned. The weighting is
    always computed over the full set of an order's events, so callers must
    pass unfiltered events and narrow by channel/ad afterwards.
    """
    model = parse_attribution_model(model)
    weighted: List[WeightedTouchpoint] = []
    for order_events in group_by_order(events).values():
        for event, weight in zip(order_events, touchpoint_weights(order_events, model)):
            if weight > 0:
                weighted.append(WeightedTouchpoint(event=event, weight=weight))
    return weighted
