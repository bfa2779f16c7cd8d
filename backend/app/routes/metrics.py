"""
Prometheus metrics endpoint.

GET /metrics
Returns Prometheus-formatted metrics for scraping. Provider circuit
breaker gauges are refreshed first so time-based transitions
(open -> half_open) show up without waiting for the next provider call.
"""
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from app.core.metrics import get_metrics, get_metrics_content_type
from app.core.logging import get_logger
from app.services.ai.providers.registry import get_provider_registry

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def metrics():
    """
    Prometheus metrics endpoint.

    No authentication required (standard Prometheus practice).
    """
    try:
        # Reading circuit metrics applies pending state transitions
        get_provider_registry().circuit_metrics()
        metrics_data = get_metrics()
        return Response(
            content=metrics_data,
            media_type=get_metrics_content_type(),
        )
    except Exception as e:
        logger.error(
            "metrics_endpoint_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return Response(
            content=b"# Error collecting metrics\n",
            media_type=get_metrics_content_type(),
        )
