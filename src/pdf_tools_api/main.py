from __future__ import annotations

import ipaddress
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pdf_tools_api import __version__
from pdf_tools_api.api.routes import (
    build_auth_router,
    build_pdf_router,
    build_session_dependency,
)
from pdf_tools_api.errors import ApiError, InternalError, RateLimitError
from pdf_tools_api.middleware.rate_limit import build_rate_limiter
from pdf_tools_api.schemas import ErrorEnvelope, HealthResponse
from pdf_tools_api.services import MergePipeline
from pdf_tools_api.session import SessionSigner
from pdf_tools_api.settings import Settings, load_settings
from pdf_tools_api.telemetry import generate_trace_id

LOGGER = logging.getLogger(__name__)


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def _resolve_rate_limit_client_id(request: Request, *, trust_proxy_headers: bool) -> str:
    if trust_proxy_headers:
        # The rightmost entry is the one appended by the proxy we trust.
        forwarded_for = request.headers.get("x-forwarded-for", "")
        for candidate in reversed(forwarded_for.split(",")):
            forwarded_ip = _parse_ip(candidate)
            if forwarded_ip:
                return forwarded_ip
    direct_host = request.client.host if request.client else None
    return _parse_ip(direct_host) or direct_host or "unknown"


def _error_response(
    *, status_code: int, code: str, message: str, trace_id: str
) -> JSONResponse:
    payload = ErrorEnvelope(
        error={"code": code, "message": message, "trace_id": trace_id}
    )
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(),
        headers={"x-trace-id": trace_id},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    signer = SessionSigner(settings.session_secret, ttl_seconds=settings.session_ttl_seconds)
    pipeline = MergePipeline(settings)

    app = FastAPI(title=settings.app_name, version=__version__)
    app.state.settings = settings
    app.state.pipeline = pipeline

    api_rate_limiter = build_rate_limiter(
        limit_per_minute=settings.api_rate_limit_per_minute, name="API"
    )
    login_rate_limiter = build_rate_limiter(
        limit_per_minute=settings.login_rate_limit_per_minute, name="login"
    )

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        request.state.trace_id = generate_trace_id()
        start_time = time.perf_counter()
        request_path = request.url.path
        if request_path.startswith("/api"):
            rate_limiter = api_rate_limiter
        elif request_path == "/login" and request.method == "POST":
            rate_limiter = login_rate_limiter
        else:
            rate_limiter = None

        if rate_limiter is not None:
            client_id = _resolve_rate_limit_client_id(
                request, trust_proxy_headers=settings.trust_proxy_headers
            )
            request.state.client_id = client_id
            if not rate_limiter.allow(client_id):
                LOGGER.warning("Rate limit exceeded for %s on %s", client_id, request_path)
                error = RateLimitError("Request rate exceeded allowed threshold")
                return _error_response(
                    status_code=error.status_code,
                    code=error.code,
                    message=error.message,
                    trace_id=request.state.trace_id,
                )

        response = await call_next(request)
        response.headers["x-trace-id"] = request.state.trace_id
        LOGGER.debug(
            "%s %s -> %s in %.1fms",
            request.method,
            request_path,
            response.status_code,
            (time.perf_counter() - start_time) * 1000,
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        return _error_response(
            status_code=400,
            code="BAD_REQUEST",
            message="Request validation failed",
            trace_id=trace_id,
        )

    @app.exception_handler(ApiError)
    async def api_exception_handler(request: Request, exc: ApiError):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        if isinstance(exc, InternalError):
            LOGGER.error("Internal error [trace_id=%s]: %s", trace_id, exc.message)
        return _error_response(
            status_code=exc.status_code,
            code=exc.code,
            message=exc.public_message,
            trace_id=trace_id,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        LOGGER.exception("Unhandled API exception [trace_id=%s]", trace_id, exc_info=exc)
        return _error_response(
            status_code=500,
            code="INTERNAL_ERROR",
            message="Internal Server Error",
            trace_id=trace_id,
        )

    app.include_router(build_auth_router(settings=settings, signer=signer))
    app.include_router(
        build_pdf_router(pipeline, require_session=build_session_dependency(signer))
    )

    @app.get("/healthz", tags=["health"], response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(status="ok")

    return app
