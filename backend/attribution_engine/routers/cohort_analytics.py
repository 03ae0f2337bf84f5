"""
Cohort Analytics Router
=======================

WHAT:
    GET /cohort-analytics - retention, LTV and payback per acquisition cohort.

USAGE:
    GET /cohort-analytics?cohort_type=month&start_date=2024-01-01&max_periods=6
    GET /cohort-analytics?cohort_type=week&start_date=2024-01-01&filter_product_id=123

REFERENCES:
    - services/cohort_service.py
    - engine/cohorts.py
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .. import schemas
from ..deps import get_account_id, get_cohort_service
from ..services.cohort_service import CohortAnalyticsService, CohortRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cohort-analytics", tags=["Cohorts"])


@router.get("", response_model=schemas.CohortAnalyticsResponse, summary="Cohort analysis")
def get_cohort_analysis(
    cohort_type: str = Query("month", description="week, month, quarter or year"),
    start_date: date = Query(..., description="First acquisition date (inclusive)"),
    end_date: Optional[date] = Query(None, description="Last acquisition date (inclusive), defaults to the shop's today"),
    max_periods: Optional[int] = Query(None, description="Periods per cohort, defaults by cohort type"),
    filter_product_id: int = Query(0, description="Only customers whose first order had this product"),
    filter_variant_id: int = Query(0, description="Only customers whose first order had this variant"),
    account_id: str = Depends(get_account_id),
    service: CohortAnalyticsService = Depends(get_cohort_service),
):
    """
    Cohort retention and lifetime value.

    WHAT: One entry per cohort with incremental and cumulative period metrics
    WHY: Shows how acquired customers keep buying and when acquisition pays back
    """
    request = CohortRequest(
        cohort_type=cohort_type,
        start_date=start_date,
        end_date=end_date,
        max_periods=max_periods,
        filter_product_id=filter_product_id,
        filter_variant_id=filter_variant_id,
    )
    result = service.get_cohort_analysis(account_id, request)
    return schemas.CohortAnalyticsResponse.model_validate(
        {"data": result.data, "metadata": result.metadata}
    )
