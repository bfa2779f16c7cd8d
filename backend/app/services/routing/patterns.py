"""
Rule tables for the query classifier.

Each category is a tuple of regular expressions evaluated against the
lower-cased query. Tables are immutable; pass a different RoutingRules
instance to QueryClassifier to change behaviour.
"""
import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple


def _compile(*patterns: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


# Blog / long-form writing requests
CONTENT_PATTERNS = _compile(
    r"\bblog\b",
    r"\bblog\s*posts?\b",
    r"\barticles?\b",
    r"\bcopywriting\b",
    r"\bcopy\s+for\b",
    r"\blong[- ]form\b",
    r"\b(?:how[- ]to|ultimate|complete|pillar)\s+guide\b",
    r"\bwrite\s+(?:me\s+)?(?:an?\s+)?(?:guide|post|essay|newsletter|landing page)\b",
    r"\bcontent\s+(?:creation|writing)\b",
)

# Trend analysis, statistics, official data, SEO / keyword research
RESEARCH_PATTERNS = _compile(
    r"\bresearch\b",
    r"\banaly[sz]e\b",
    r"\bmarket\s+analysis\b",
    r"\bcompetitive\s+analysis\b",
    r"\bstatistics?\b",
    r"\bstats\b",
    r"\bdata\b",
    r"\btrends?\b",
    r"\bindustry\s+reports?\b",
    r"\b(?:government|official|academic|census)\s+(?:data|sources?|figures|studies)\b",
    r"\bseo\b",
    r"\bkeyword\s+(?:research|analysis)\b",
    r"\bsearch\s+volume\b",
    r"\bcontent\s+(?:plan|cluster)\b",
)

# Multi-step, strategy, optimization, thoroughness
COMPLEX_PATTERNS = _compile(
    r"\bstep[- ]by[- ]step\b",
    r"\bmulti[- ]step\b",
    r"\bstrateg(?:y|ies|ic)\b",
    r"\boptimi[sz](?:e|ed|ing|ation)\b",
    r"\bcomprehensive\b",
    r"\bthorough(?:ly)?\b",
    r"\bin[- ]depth\b",
    r"\bdetailed\b",
    r"\broadmap\b",
    r"\bbusiness\s+plan\b",
    r"\b(?:grant|proposal)\b",
)

# Short factual questions and greetings, anchored at the start
SIMPLE_PATTERNS = _compile(
    r"^(?:what|who|when|where)(?:\s+is|\s+are|\s+was|\s+were|'s)\b",
    r"^define\b",
    r"^(?:hello|hi|hey|thanks|thank you|yes|no|ok|okay)\b",
    r"^good\s+(?:morning|afternoon|evening)\b",
)

# Post-processing / keyword overrides. Substring match for seo and keyword.
POST_PROCESS_OVERRIDE_PATTERNS = _compile(
    r"\bcraft\b",
    r"c\.r\.a\.f\.t",
    r"seo",
    r"keyword",
)

RESEARCH_WORD_PATTERN = re.compile(r"\bresearch")
NEWS_WORD_PATTERN = re.compile(r"\b(?:blog|article|trending|news)")


@dataclass(frozen=True)
class RoutingRules:
    """Bundle of classifier rule tables."""

    content: Tuple[Pattern[str], ...] = CONTENT_PATTERNS
    research: Tuple[Pattern[str], ...] = RESEARCH_PATTERNS
    complex: Tuple[Pattern[str], ...] = COMPLEX_PATTERNS
    simple: Tuple[Pattern[str], ...] = SIMPLE_PATTERNS
    post_process_override: Tuple[Pattern[str], ...] = POST_PROCESS_OVERRIDE_PATTERNS
    research_word: Pattern[str] = field(default=RESEARCH_WORD_PATTERN)
    news_word: Pattern[str] = field(default=NEWS_WORD_PATTERN)
    long_query_threshold: int = 100


DEFAULT_ROUTING_RULES = RoutingRules()


def any_match(patterns: Tuple[Pattern[str], ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)
