"""
Health check endpoints.
"""
from fastapi import APIRouter

from app.core.logging import get_logger
from app.core.redis_client import get_redis_client
from app.services.ai.providers.registry import get_provider_registry
from app.services.ai.schema import ProviderKind

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/providers")
async def providers_health():
    """
    Provider health derived from circuit breaker state.

    Returns per provider:
        - configured: whether an API key is set
        - circuit: circuit breaker snapshot (state, recent requests, error rate)

    Overall status is "degraded" when any circuit is not closed or any
    provider lacks credentials, "ok" otherwise.
    """
    registry = get_provider_registry()
    circuits = registry.circuit_metrics()

    providers = {}
    degraded = False
    for kind, circuit in circuits.items():
        adapter = registry.get(ProviderKind(kind))
        configured = bool(adapter.api_key)
        providers[kind] = {
            "configured": configured,
            "model": adapter.model,
            "circuit": circuit,
        }
        if not configured or circuit["state"] != "closed":
            degraded = True

    return {
        "status": "degraded" if degraded else "ok",
        "providers": providers,
        "rate_limit_backend": "redis" if get_redis_client() else "disabled",
    }
