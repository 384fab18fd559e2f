"""
Module: main.py
Description: FastAPI application entry point for the Finance Dashboard API.

This module wires together:
    - Bank linking and transaction sync through Plaid
    - Account, category and transaction CRUD
    - Period summaries and spending recommendations
    - Billing subscriptions through Lemon Squeezy

Every router is mounted under /api. Successful responses are wrapped as
{"data": ...}; errors are rendered as {"error": "<message>"}.

Author: Finance Dashboard Team

Usage:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_user, is_public_route, log_auth_configuration
from config import AUTH_BYPASS, CORS_ORIGINS, ENVIRONMENT
from database import get_db, init_db
from routes import ROUTERS
from schemas import HealthResponse
from services.observability import logger, metrics


# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and report auth configuration on startup."""
    logger.info("Starting Finance Dashboard API", environment=ENVIRONMENT)
    init_db()
    log_auth_configuration()

    yield

    logger.info("Shutting down Finance Dashboard API")


# =============================================================================
# FastAPI Application Configuration
# =============================================================================

app = FastAPI(
    title="Finance Dashboard API",
    description="""
    Personal finance backend: link a bank through Plaid, keep accounts and
    transactions in sync, and summarize income and spending per period.

    ## Features
    - Plaid Link and incremental transaction sync
    - Accounts, categories and transactions CRUD
    - Period summary with change against the previous period
    - Spending recommendations for the last 30 days
    - Lemon Squeezy subscriptions
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def require_session(request: Request, call_next):
    """Reject API calls without a bearer token before they reach a route."""
    path = request.url.path
    if (
        path.startswith("/api")
        and request.method != "OPTIONS"
        and not AUTH_BYPASS
        and not is_public_route(path)
    ):
        header = request.headers.get("authorization", "")
        if not header.lower().startswith("bearer "):
            metrics.increment("auth.rejected")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Unauthorized"},
            )
    return await call_next(request)


# =============================================================================
# Error Rendering
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path, error=str(exc))
    metrics.increment("api.unhandled_errors")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error"},
    )


# =============================================================================
# System Endpoints
# =============================================================================

system = APIRouter(tags=["System"])


@system.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Check the health status of the API and database.",
)
async def health_check(db: DBSession = Depends(get_db)) -> HealthResponse:
    """
    Example:
        GET /api/health
        Response: {"status": "healthy", "database": "connected"}
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        db_status = f"error: {e}"

    overall_status = "healthy" if db_status == "connected" else "degraded"
    return HealthResponse(status=overall_status, database=db_status)


@system.get("/metrics", summary="Get application metrics")
async def get_metrics():
    """Counters, gauges and timing stats collected since startup."""
    return metrics.get_summary()


@system.get("/test-auth", summary="Check the session token")
async def test_auth(user_id: str = Depends(get_current_user)):
    return {"message": "API Route Authenticated!", "userId": user_id}


for router in ROUTERS:
    app.include_router(router, prefix="/api")
app.include_router(system, prefix="/api")


@app.api_route(
    "/api/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def api_not_found(path: str):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not Found"})


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
