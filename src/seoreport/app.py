"""FastAPI application for the SEO report service."""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from seoreport import __version__
from seoreport.aggregator import get_aggregator
from seoreport.config import get_settings
from seoreport.exceptions import ConfigMissingError, RequestValidationError
from seoreport.logging import setup_logging
from seoreport.metrics import metrics
from seoreport.models import (
    ErrorResponse,
    RateLimitDecision,
    RateLimitedResponse,
    ReportDocument,
    ReportRequest,
    UsageEvent,
)
from seoreport.presenter import get_presenter
from seoreport.rate_limiter import get_rate_limiter
from seoreport.repository import get_store
from seoreport.tracking import get_tracker
from seoreport.upstream import get_client

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger.info("seoreport_starting", version=__version__)

    store = get_store()
    try:
        await store.connect()
    except Exception as e:
        logger.error("rate_limit_store_connection_failed", error=str(e))
        raise

    yield

    # Shutdown
    await store.disconnect()
    await get_client().close()
    logger.info("seoreport_stopped")


app = FastAPI(
    title="SEO Report API",
    version=__version__,
    description="Domain SEO reports backed by DataForSEO",
    lifespan=lifespan,
)


# === Middleware ===


@app.middleware("http")
async def metrics_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Record HTTP metrics for each request."""
    if not get_settings().metrics_enabled:
        return await call_next(request)

    start_time = time.perf_counter()

    response: Response = await call_next(request)

    duration = time.perf_counter() - start_time
    endpoint = request.url.path
    method = request.method

    metrics.http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration.labels(
        method=method,
        endpoint=endpoint,
    ).observe(duration)

    return response


# === Helpers ===


def client_identity(request: Request) -> str:
    """Rate limiting key: the first forwarded client address, else 'unknown'."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.headers.get("client-ip", "").strip() or "unknown"


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at)),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


async def parse_report_request(request: Request) -> ReportRequest:
    """Read and validate the JSON body of a report request."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise RequestValidationError("Request body must be valid JSON") from e

    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object")

    try:
        return ReportRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise RequestValidationError(
            f"Invalid {location}: {first['msg']}" if location else first["msg"],
            {"errors": e.error_count()},
        ) from e


async def generate(
    request: Request, background_tasks: BackgroundTasks
) -> tuple[ReportDocument | None, RateLimitDecision]:
    """
    Shared pipeline: rate limit, validate, build, schedule tracking.

    Returns no document when the caller was rate limited.
    """
    identity = client_identity(request)
    decision = await get_rate_limiter().check(identity)
    if not decision.allowed:
        return None, decision

    report_request = await parse_report_request(request)
    user_agent = request.headers.get("user-agent")

    logger.info(
        "report_requested",
        ip=identity,
        domain=report_request.domain,
        tier=report_request.tier.value,
        remaining=decision.remaining,
        user_agent=user_agent,
    )

    document = await get_aggregator().build(report_request)

    background_tasks.add_task(
        get_tracker().track,
        UsageEvent(
            action="report_generated",
            domain=report_request.domain,
            report_type=report_request.tier.value,
        ),
        identity,
        user_agent,
        request.headers.get("referer"),
    )
    return document, decision


def rate_limited_response(decision: RateLimitDecision) -> JSONResponse:
    body = RateLimitedResponse(
        message=f"Rate limit exceeded. Try again in {decision.minutes_left} minutes.",
        retry_after=decision.retry_after_seconds,
    )
    return JSONResponse(
        status_code=429,
        content=body.model_dump(by_alias=True),
        headers=rate_limit_headers(decision),
    )


# === Health endpoints ===


@app.get("/health", tags=["Health"])
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    store = get_store()
    store_healthy = await store.health_check()

    status = "healthy" if store_healthy else "degraded"

    return {
        "status": status,
        "version": __version__,
        "checks": {
            "rate_limit_store": "ok" if store_healthy else "error",
            "credentials": "ok" if get_client().has_credentials else "missing",
        },
    }


@app.get("/ready", tags=["Health"])
async def ready() -> dict[str, str]:
    """Readiness check endpoint."""
    if not await get_store().health_check():
        raise HTTPException(status_code=503, detail="Rate limit store not available")
    return {"status": "ready"}


# === Metrics endpoint ===


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> Response:
    """Prometheus metrics endpoint."""
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Report endpoints ===


@app.post("/api/generate-report", tags=["Reports"])
async def generate_report(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Generate a report and return it as JSON."""
    document, decision = await generate(request, background_tasks)
    if document is None:
        return rate_limited_response(decision)

    return JSONResponse(
        status_code=200,
        content=document.to_response(),
        headers=rate_limit_headers(decision),
    )


@app.post("/api/report.html", tags=["Reports"], response_class=HTMLResponse)
async def generate_report_html(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Generate a report and return it rendered as HTML."""
    document, decision = await generate(request, background_tasks)
    if document is None:
        return rate_limited_response(decision)

    return HTMLResponse(
        content=get_presenter().render(document),
        headers=rate_limit_headers(decision),
    )


@app.post("/api/track-usage", tags=["Tracking"])
async def track_usage(request: Request) -> dict[str, bool]:
    """Record a usage event. Always answers 200 so tracking can't break the client."""
    try:
        event = UsageEvent.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("tracking_event_invalid", error=str(e))
        return {"tracked": False}

    tracked = await get_tracker().track(
        event,
        client_identity(request),
        request.headers.get("user-agent"),
        request.headers.get("referer"),
    )
    return {"tracked": tracked}


# === Error handlers ===


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {message}."""
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=message).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle malformed report requests."""
    logger.info("request_invalid", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message=exc.message, error=exc.code).model_dump(),
    )


@app.exception_handler(ConfigMissingError)
async def config_missing_handler(request: Request, exc: ConfigMissingError) -> JSONResponse:
    """Handle missing upstream credentials."""
    logger.error("config_missing", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message=exc.message, error=exc.code).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Failed to generate report", error=str(exc)).model_dump(),
    )


def create_app() -> FastAPI:
    """Factory function to create the app."""
    return app
