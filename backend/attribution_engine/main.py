"""FastAPI application entrypoint.

Configures Sentry, CORS and error handling, includes routers, and exposes a
healthcheck endpoint.
"""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from . import schemas
from .database import get_analytics_db, get_db
from .deps import get_settings
from .errors import AttributionEngineError
from .routers import analytics as analytics_router
from .routers import cohort_analytics as cohort_analytics_router
from .telemetry import capture_exception, init_sentry


def create_app() -> FastAPI:
    # Before the app exists so the FastAPI integration can hook in
    init_sentry()

    app = FastAPI(
        title="Attribution Engine API",
        description="""
        Marketing attribution and metrics aggregation for e-commerce shops.

        This API provides endpoints for:
        - Channel performance (attributed revenue, spend, ROAS, profit)
        - Paid channel hierarchy (campaign > ad set > ad)
        - Non-paid campaign performance (email, organic, referral...)
        - Spend / revenue timeseries with hourly or daily buckets
        - Customer cohort retention, LTV and payback

        ## Accounts

        Every analytics request carries an `X-Account-ID` header that is
        resolved to exactly one shop. Authentication happens upstream.
        """,
        version="1.0.0",
    )

    settings = get_settings()
    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AttributionEngineError)
    async def engine_error_handler(request: Request, exc: AttributionEngineError):
        logger.warning(
            "[API] %s %s -> %d: %s",
            request.method, request.url.path, exc.status_code, exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("[API] Unhandled error on %s %s", request.method, request.url.path)
        capture_exception(exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "statusCode": 500},
        )

    app.include_router(analytics_router.router)
    app.include_router(cohort_analytics_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="""
        Health check for load balancers.

        This endpoint:
        - Does not require an account header
        - Runs `SELECT 1` against the metadata and analytical stores
        - Reports "degraded" when either store is unreachable
        """,
    )
    def health(
        db: Session = Depends(get_db),
        analytics_db: Session = Depends(get_analytics_db),
    ):
        try:
            db.execute(text("SELECT 1"))
            analytics_db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("[HEALTH] Database check failed: %s", e)
            return schemas.HealthResponse(status="degraded", database="unavailable")
        return schemas.HealthResponse(status="ok", database="ok")

    return app


app = create_app()
