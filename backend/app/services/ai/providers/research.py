"""
Research adapter (Perplexity, OpenAI-compatible chat completions with web search).

- Prompt parameterized by target region and its authority domains
- Citations from the `search_results` (title + url) and `citations` (url) fields
- Large completion budget for long-form reports
- Query only; the backend requires strictly alternating roles, so history is not sent
"""
from typing import Any, Dict, List, Sequence
from urllib.parse import urlparse

from app.core.logging import get_logger
from app.services.ai.prompts import research_system_prompt
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.schema import (
    Citation,
    Message,
    ProviderKind,
    ProviderResponse,
    RoutingDecision,
)

logger = get_logger(__name__)


def source_domain(url: str) -> str:
    host = urlparse(url).netloc.lower()
    if "@" in host:
        host = host.rsplit("@", 1)[1]
    host = host.split(":", 1)[0]
    return host[4:] if host.startswith("www.") else host


def title_from_url(url: str) -> str:
    """Readable fallback title for a citation without one."""
    domain = source_domain(url)
    labels = domain.split(".")
    if "gov" in labels or "gouv" in labels or "gob" in labels:
        return f"Government Source - {domain}"
    if "edu" in labels or "ac" in labels:
        return f"Academic Source - {domain}"
    path = urlparse(url).path.rstrip("/")
    return f"{domain}{path}" if path else domain


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def extract_citations(data: Dict[str, Any]) -> List[Citation]:
    citations: List[Citation] = []
    seen = set()

    for result in _as_list(data.get("search_results")):
        if not isinstance(result, dict) or not result.get("url"):
            continue
        url = str(result["url"])
        if url in seen:
            continue
        seen.add(url)
        title = str(result.get("title") or "").strip() or title_from_url(url)
        citations.append(Citation(url=url, title=title, source_domain=source_domain(url)))

    for url in _as_list(data.get("citations")):
        if not isinstance(url, str) or url in seen:
            continue
        seen.add(url)
        citations.append(Citation(url=url, title=title_from_url(url), source_domain=source_domain(url)))

    return citations


class ResearchProvider(ProviderAdapter):
    kind = ProviderKind.RESEARCH
    max_tokens = 8000

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
                {"role": "system", "content": research_system_prompt(decision.target_region)},
                {"role": "user", "content": query},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.2,
            "top_p": 0.9,
            "search_recency_filter": "month",
            "return_images": False,
            "return_related_questions": False,
            "stream": False,
        }
        data = await self.client.post_json(
            "/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        text = self.chat_completion_text(data)
        citations = extract_citations(data)
        logger.debug(
            "research_provider_completed",
            model=self.model,
            target_region=decision.target_region,
            citations=len(citations),
        )
        return ProviderResponse(
            text=text,
            provider_id=self.kind,
            citations=citations,
            raw_metadata={
                "model": data.get("model") or self.model,
                "usage": data.get("usage") or {},
                "target_region": decision.target_region,
                "search_mode": True,
            },
        )
