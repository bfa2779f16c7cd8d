"""
Fast-response adapter (Groq, OpenAI-compatible chat completions).

Single-turn: conversation history is not sent. Short completions, no
citations.
"""
from typing import Any, Dict, Sequence

from app.core.logging import get_logger
from app.services.ai.prompts import FAST_SYSTEM_PROMPT
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.schema import Message, ProviderKind, ProviderResponse, RoutingDecision

logger = get_logger(__name__)


class FastProvider(ProviderAdapter):
    kind = ProviderKind.FAST
    max_tokens = 1024

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        decision: RoutingDecision,
    ) -> ProviderResponse:
        api_key = self.require_api_key()
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": FAST_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.7,
        }
        data = await self.client.post_json(
            "/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        text = self.chat_completion_text(data)
        logger.debug("fast_provider_completed", model=self.model, output_length=len(text))
        return ProviderResponse(
            text=text,
            provider_id=self.kind,
            raw_metadata={"model": data.get("model") or self.model, "usage": data.get("usage") or {}},
        )
