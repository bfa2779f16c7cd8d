"""
Topic extraction from free-form chat requests.

"write a blog post about renewable energy" -> "renewable energy"
"research current SEO trends in the USA"  -> "current seo trends"
"""
import re
from typing import Optional

from app.services.routing.regions import region_alias_pattern

_QUOTED_RE = re.compile(r"[\"“]([^\"”]+)[\"”]")
_URL_RE = re.compile(r"https?://\S+")

REQUEST_PHRASES = (
    r"\bplease\b",
    r"\b(?:can|could|would|will) you\b",
    r"\bi (?:want|need|would like)(?: you)? to\b",
    r"\b(?:write|create|generate|make|draft|produce|give|prepare|compose)\s+(?:me\s+)?(?:an?\s+|the\s+|some\s+)?",
    r"\b(?:research|analy[sz]e|explain|describe|summari[sz]e|define|tell me about|find)\b",
    r"\b(?:detailed|comprehensive|short|quick|long[- ]form|seo[- ]optimi[sz]ed)\s+(?=(?:blog|article|post|guide))",
    r"\b(?:blog\s*posts?|blogs?|articles?|posts?|content|essays?|reports?|guides?)\s+(?:about|on|for|regarding|covering)\b",
    r"^\s*(?:about|on|for|regarding)\b",
    r"\bnear me\b",
)
_REQUEST_RES = [re.compile(p, re.IGNORECASE) for p in REQUEST_PHRASES]

_REGION_PHRASE_RE = re.compile(
    rf"\b(?:in|for|across|within|throughout)\s+(?:the\s+)?(?:{region_alias_pattern()})(?!\w)",
    re.IGNORECASE,
)
_REGION_WORD_RE = re.compile(rf"(?<![\w.])(?:{region_alias_pattern()})(?!\w)", re.IGNORECASE)
_UPPER_US_RE = re.compile(r"(?<![\w.])U\.?S\.?(?!\w)")

_EDGE_PUNCT_RE = re.compile(r"^[\s\W_]+|[\s\W_]+$", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def extract_topic(query: str) -> Optional[str]:
    """
    Reduce a request to its subject.

    A quoted phrase wins outright. Otherwise request phrasing and region
    phrases are stripped. Returns None when nothing meaningful is left.
    """
    if not query or not query.strip():
        return None

    quoted = _QUOTED_RE.search(query)
    if quoted and quoted.group(1).strip():
        return _SPACE_RE.sub(" ", quoted.group(1)).strip().lower()

    topic = _URL_RE.sub(" ", query)
    topic = _UPPER_US_RE.sub(" ", topic)
    topic = topic.lower()
    for pattern in _REQUEST_RES:
        topic = pattern.sub(" ", topic)
    topic = _REGION_PHRASE_RE.sub(" ", topic)
    topic = _REGION_WORD_RE.sub(" ", topic)
    topic = topic.replace(",", " ")
    topic = _SPACE_RE.sub(" ", topic)
    topic = _EDGE_PUNCT_RE.sub("", topic)

    if len(topic) < 3:
        fallback = _EDGE_PUNCT_RE.sub("", _SPACE_RE.sub(" ", query.lower()))
        return fallback or None
    return topic
