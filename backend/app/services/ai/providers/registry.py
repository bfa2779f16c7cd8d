"""
Provider lookup table keyed by ProviderKind.

Environment configuration:
- GROQ_API_KEY / GROQ_MODEL / GROQ_API_BASE: fast adapter
- PERPLEXITY_API_KEY / PERPLEXITY_MODEL / PERPLEXITY_API_BASE: research adapter
- ANTHROPIC_API_KEY / ANTHROPIC_MODEL / ANTHROPIC_API_BASE: complex adapter
- PROVIDER_TIMEOUT_SECONDS: request timeout for every adapter (default: 60)

A missing API key does not prevent startup; the adapter raises
MISSING_API_KEY when called, which the fallback policy treats like an
auth failure.
"""
import os
from typing import Dict, Mapping, Optional

from app.core.logging import get_logger
from app.services.ai.http_client import ProviderHTTPClient
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.providers.complex import ComplexProvider
from app.services.ai.providers.fast import FastProvider
from app.services.ai.providers.research import ResearchProvider
from app.services.ai.schema import ProviderKind

logger = get_logger(__name__)


class ProviderRegistry:
    """Maps each ProviderKind to exactly one adapter."""

    def __init__(self, adapters: Mapping[ProviderKind, ProviderAdapter]):
        missing = [kind.value for kind in ProviderKind if kind not in adapters]
        if missing:
            raise ValueError(f"No adapter registered for provider kind(s): {missing}")
        self._adapters: Dict[ProviderKind, ProviderAdapter] = dict(adapters)

    def get(self, kind: ProviderKind) -> ProviderAdapter:
        return self._adapters[kind]

    def circuit_metrics(self) -> Dict[str, dict]:
        return {
            kind.value: adapter.client.circuit_breaker.get_metrics()
            for kind, adapter in self._adapters.items()
        }


def build_provider_registry(timeout_seconds: Optional[float] = None) -> ProviderRegistry:
    """Create adapters from environment configuration."""
    timeout = timeout_seconds or float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "60") or "60")

    fast = FastProvider(
        client=ProviderHTTPClient(
            ProviderKind.FAST,
            os.getenv("GROQ_API_BASE", "https://api.groq.com/openai/v1"),
            timeout_seconds=timeout,
        ),
        api_key=os.getenv("GROQ_API_KEY"),
        model=os.getenv("GROQ_MODEL", "llama-3.1-8b-instant"),
    )
    research = ResearchProvider(
        client=ProviderHTTPClient(
            ProviderKind.RESEARCH,
            os.getenv("PERPLEXITY_API_BASE", "https://api.perplexity.ai"),
            timeout_seconds=timeout,
        ),
        api_key=os.getenv("PERPLEXITY_API_KEY"),
        model=os.getenv("PERPLEXITY_MODEL", "sonar"),
    )
    complex_ = ComplexProvider(
        client=ProviderHTTPClient(
            ProviderKind.COMPLEX,
            os.getenv("ANTHROPIC_API_BASE", "https://api.anthropic.com/v1"),
            timeout_seconds=timeout,
        ),
        api_key=os.getenv("ANTHROPIC_API_KEY"),
        model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
    )

    for adapter in (fast, research, complex_):
        if not adapter.api_key:
            logger.warning("provider_api_key_missing", provider=adapter.kind.value)

    return ProviderRegistry({
        ProviderKind.FAST: fast,
        ProviderKind.RESEARCH: research,
        ProviderKind.COMPLEX: complex_,
    })


_provider_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    """Get global provider registry."""
    global _provider_registry
    if _provider_registry is None:
        _provider_registry = build_provider_registry()
    return _provider_registry
