"""
Rule tables for simulated keyword research.

Volumes are estimates, not live search data. The base volume is a
deterministic function of the term so identical input gives identical
output.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Pattern, Tuple

TERM_TEMPLATES: Tuple[str, ...] = (
    "{topic}",
    "best {topic}",
    "{topic} guide",
    "{topic} tips",
    "how to {topic}",
)

# (topic trigger, related terms)
DOMAIN_SYNONYMS: Tuple[Tuple[Pattern[str], Tuple[str, ...]], ...] = (
    (re.compile(r"\broof"), ("roof repair", "roofing services", "roof installation", "roof contractors")),
    (re.compile(r"\brepairs?\b"), ("home repair", "repair services", "emergency repair")),
    (re.compile(r"\benergy\b"), ("renewable energy solutions", "clean energy benefits", "sustainable energy trends")),
    (re.compile(r"\bai\b|\bartificial intelligence\b"), ("AI tools", "artificial intelligence applications", "machine learning")),
    (re.compile(r"\bseo\b"), ("SEO optimization", "search engine ranking", "keyword research")),
    (re.compile(r"\bmarketing\b"), ("digital marketing", "content marketing", "marketing strategy")),
    (re.compile(r"\bbusiness\b"), ("local business", "business solutions", "small business tips")),
)

REGION_MULTIPLIERS: Dict[str, float] = {
    "usa": 1.0,
    "uk": 0.3,
    "germany": 0.25,
    "france": 0.2,
    "canada": 0.15,
    "spain": 0.15,
    "italy": 0.15,
    "australia": 0.1,
    "netherlands": 0.08,
    "belgium": 0.05,
}

# (minimum length exclusive, multiplier), checked in order
LENGTH_PENALTIES: Tuple[Tuple[int, float], ...] = (
    (30, 0.3),
    (20, 0.6),
)

POPULARITY_MARKERS: Tuple[Pattern[str], ...] = (
    re.compile(r"\bai\b"),
    re.compile(r"\bseo\b"),
    re.compile(r"\bmarketing\b"),
    re.compile(r"\bbusiness\b"),
    re.compile(r"\bhow to\b"),
    re.compile(r"\bbest\b"),
)

COMPETITIVE_TERMS = re.compile(r"\b(?:best|top|review|reviews|vs|versus|comparison|buy)\b")

# Ordered: the first category with a hit wins.
INTENT_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("Commercial", re.compile(r"\b(?:buy|price|prices|cost|cheap|discount|deal|deals|review|reviews|best)\b")),
    ("Navigational", re.compile(r"\b(?:login|website|official|contact|support)\b")),
    ("Transactional", re.compile(r"\b(?:download|free|trial|signup|sign up|register|order)\b")),
    ("Research", re.compile(r"\b(?:what is|how to|guide|tutorial|learn|study|tips)\b")),
    ("Comparison", re.compile(r"\b(?:vs|versus|compare|comparison|difference|alternatives?)\b")),
)
DEFAULT_INTENT = "Informational"


def _default_max_results() -> int:
    return int(os.getenv("KEYWORD_MAX_RESULTS", "10") or "10")


@dataclass(frozen=True)
class KeywordRules:
    templates: Tuple[str, ...] = TERM_TEMPLATES
    domain_synonyms: Tuple[Tuple[Pattern[str], Tuple[str, ...]], ...] = DOMAIN_SYNONYMS
    region_multipliers: Dict[str, float] = field(default_factory=lambda: dict(REGION_MULTIPLIERS))
    default_region_multiplier: float = 0.5
    length_penalties: Tuple[Tuple[int, float], ...] = LENGTH_PENALTIES
    popularity_markers: Tuple[Pattern[str], ...] = POPULARITY_MARKERS
    popularity_boost: float = 2.0
    competitive_terms: Pattern[str] = COMPETITIVE_TERMS
    long_tail_words: int = 4
    intent_patterns: Tuple[Tuple[str, Pattern[str]], ...] = INTENT_PATTERNS
    default_intent: str = DEFAULT_INTENT
    base_volume_min: int = 1000
    base_volume_span: int = 50000
    default_topic: str = "business services"
    max_results: int = field(default_factory=_default_max_results)
