"""
Middleware for trace ID propagation and request context management.

This middleware:
- Extracts trace ID from HTTP headers (X-Trace-ID or X-Request-ID)
- Generates new trace ID if not present
- Binds the account id from X-User-ID for logging
- Records RED metrics for every request
- Includes trace ID and request ID in HTTP response headers
"""
import time
from typing import Callable, Optional
from fastapi import Request, Response, HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    set_trace_id,
    set_request_id,
    set_user_id,
    set_conversation_id,
    generate_trace_id,
    generate_request_id,
    get_logger,
)
from .metrics import record_http_request
from .tracing import (
    StatusCode,
    get_trace_id_from_context,
    get_tracer,
    record_exception,
    set_span_attribute,
    set_span_status,
)

logger = get_logger(__name__)


def _format_otel_trace_id(otel_trace_id: str) -> str:
    """Render a 32-char hex OpenTelemetry trace id in UUID form."""
    if len(otel_trace_id) != 32:
        return otel_trace_id
    return (
        f"{otel_trace_id[0:8]}-{otel_trace_id[8:12]}-{otel_trace_id[12:16]}-"
        f"{otel_trace_id[16:20]}-{otel_trace_id[20:32]}"
    )


def resolve_trace_id(request: Request) -> str:
    """
    Priority: X-Trace-ID > X-Request-ID > OpenTelemetry context > generate new.
    """
    trace_id: Optional[str] = (
        request.headers.get("X-Trace-ID") or
        request.headers.get("X-Request-ID")
    )
    if trace_id:
        return trace_id
    otel_trace_id = get_trace_id_from_context()
    if otel_trace_id:
        return _format_otel_trace_id(otel_trace_id)
    return generate_trace_id()


class TraceIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle trace ID propagation and request context.

    Sets trace ID, request ID and user ID in context for structured logging
    and wraps each request in an `http.request` span.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = resolve_trace_id(request)
        request_id = generate_request_id()
        user_id = request.headers.get("X-User-ID")

        set_trace_id(trace_id)
        set_request_id(request_id)
        if user_id:
            set_user_id(user_id)

        tracer = get_tracer()
        with tracer.start_as_current_span("http.request"):
            set_span_attribute("http.method", request.method)
            set_span_attribute("http.url", str(request.url))
            set_span_attribute("http.route", request.url.path)
            if user_id:
                set_span_attribute("user.id", user_id)

            start_time = time.time()
            # Exception handlers read this to compute latency
            request.state.start_time = start_time
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                client_host=request.client.host if request.client else None,
            )

            try:
                response = await call_next(request)

                process_time = time.time() - start_time
                latency_ms = int(process_time * 1000)

                set_span_attribute("http.status_code", response.status_code)
                set_span_attribute("http.response.latency_ms", latency_ms)

                record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration_seconds=process_time,
                )

                logger.info(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    latency_ms=latency_ms,
                )

                response.headers["X-Trace-ID"] = trace_id
                response.headers["X-Request-ID"] = request_id
                return response

            except HTTPException as exc:
                # Metrics for HTTPException are recorded by the exception handler
                set_span_attribute("http.status_code", exc.status_code)
                set_span_attribute("error", True)
                set_span_attribute("error.type", "HTTPException")
                raise
            except Exception as e:
                process_time = time.time() - start_time
                latency_ms = int(process_time * 1000)

                record_exception(e)
                set_span_status(StatusCode.ERROR, str(e))
                set_span_attribute("http.status_code", 500)

                record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=500,
                    duration_seconds=process_time,
                )

                logger.error(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    error_type=type(e).__name__,
                    latency_ms=latency_ms,
                    exc_info=True,
                )
                raise
            finally:
                set_trace_id(None)
                set_request_id(None)
                set_user_id(None)
                set_conversation_id(None)
