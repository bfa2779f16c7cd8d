"""
Common provider adapter interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from app.services.ai.http_client import ProviderHTTPClient
from app.services.ai.schema import (
    Message,
    ProviderError,
    ProviderErrorCode,
    ProviderKind,
    ProviderResponse,
    RoutingDecision,
)


class ProviderAdapter(ABC):
    """
    Adapter contract: generate(query, history, decision) -> ProviderResponse.

    Implementations raise ProviderError on any failure and return the
    backend's text unmodified.
    """

    kind: ProviderKind

    def __init__(self, client: ProviderHTTPClient, api_key: Optional[str], model: str):
        self.client = client
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        decision: RoutingDecision,
    ) -> ProviderResponse:
        ...

    def require_api_key(self) -> str:
        """Missing credentials are a backend misconfiguration (reported as 401)."""
        if not self.api_key:
            raise ProviderError(
                ProviderErrorCode.MISSING_API_KEY,
                f"{self.kind.value} provider API key not configured",
                http_status=401,
                provider=self.kind,
            )
        return self.api_key

    def chat_completion_text(self, data: Dict[str, Any]) -> str:
        """Extract the first choice from an OpenAI-style chat completion body."""
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self.client.malformed(f"{self.kind.value} provider returned no choices")
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise self.client.malformed(f"{self.kind.value} provider returned no message")
        content = message.get("content")
        if not isinstance(content, str):
            raise self.client.malformed(f"{self.kind.value} provider returned no message content")
        return content
