"""
Complex-content adapter (Anthropic Messages API over plain HTTP).

Sends up to the last 20 history messages. Consecutive messages with the
same role are merged and leading assistant messages dropped, since the
API requires alternating roles starting with the user.
"""
from typing import Any, Dict, List, Sequence

from app.core.logging import get_logger
from app.services.ai.prompts import COMPLEX_SYSTEM_PROMPT
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.schema import Message, ProviderKind, ProviderResponse, RoutingDecision

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
HISTORY_LIMIT = 20


def build_messages(query: str, history: Sequence[Message], limit: int = HISTORY_LIMIT) -> List[Dict[str, str]]:
    turns = [{"role": m.role.value, "content": m.content} for m in list(history)[-limit:] if m.content.strip()]
    turns.append({"role": "user", "content": query})

    merged: List[Dict[str, str]] = []
    for turn in turns:
        if merged and merged[-1]["role"] == turn["role"]:
            merged[-1]["content"] = f"{merged[-1]['content']}\n\n{turn['content']}"
        else:
            merged.append(dict(turn))

    while merged and merged[0]["role"] != "user":
        merged.pop(0)
    return merged


class ComplexProvider(ProviderAdapter):
    kind = ProviderKind.COMPLEX
    max_tokens = 4096

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        decision: RoutingDecision,
    ) -> ProviderResponse:
        api_key = self.require_api_key()
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": COMPLEX_SYSTEM_PROMPT,
            "messages": build_messages(query, history),
            "temperature": 0.7,
        }
        data = await self.client.post_json(
            "/messages",
            payload,
            headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION},
        )

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise self.client.malformed("complex provider returned no content blocks")
        text = "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        )
        if not text:
            raise self.client.malformed("complex provider returned no text content")

        logger.debug(
            "complex_provider_completed",
            model=self.model,
            stop_reason=data.get("stop_reason"),
            output_length=len(text),
        )
        return ProviderResponse(
            text=text,
            provider_id=self.kind,
            raw_metadata={
                "model": data.get("model") or self.model,
                "usage": data.get("usage") or {},
                "stop_reason": data.get("stop_reason"),
            },
        )
