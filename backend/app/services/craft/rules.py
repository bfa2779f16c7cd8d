"""
Rule tables for the C.R.A.F.T post-processor.

All word lists and thresholds used by the stages live here so the stages
can be tested against small custom tables.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple


def _words(*words: str) -> Pattern[str]:
    body = "|".join(w.replace(" ", r"[ \t]+") for w in words)
    return re.compile(rf"\b(?:{body})\b,?[ \t]*", re.IGNORECASE)


FILLER_WORDS = _words(
    "very", "really", "quite", "extremely", "absolutely", "totally",
    "completely", "definitely", "certainly", "obviously", "clearly",
    "actually", "basically", "literally", "essentially", "simply",
)

THROAT_CLEARING = _words(
    "it is important to note that",
    "it's important to note that",
    "it should be noted that",
    "it should be mentioned that",
    "it is worth noting that",
    "it's worth noting that",
    "please note that",
    "needless to say",
    "as you can see",
    "as mentioned above",
    "as stated previously",
    "as we discussed",
    "at the end of the day",
)

# (pattern, replacement)
PHRASE_REPLACEMENTS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\bin[ \t]+order[ \t]+to\b", re.IGNORECASE), "to"),
    (re.compile(r"\bin[ \t]+an[ \t]+effort[ \t]+to\b", re.IGNORECASE), "to"),
    (re.compile(r"\bfor[ \t]+the[ \t]+purpose[ \t]+of\b", re.IGNORECASE), "for"),
    (re.compile(r"\bdue[ \t]+to[ \t]+the[ \t]+fact[ \t]+that\b", re.IGNORECASE), "because"),
    (re.compile(r"\bat[ \t]+this[ \t]+point[ \t]+in[ \t]+time\b", re.IGNORECASE), "now"),
    (re.compile(r"\bin[ \t]+the[ \t]+event[ \t]+that\b", re.IGNORECASE), "if"),
)

IMPERSONAL_REWRITES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\bone[ \t]+can\b", re.IGNORECASE), "you can"),
    (re.compile(r"\bone[ \t]+should\b", re.IGNORECASE), "you should"),
    (re.compile(r"\bone[ \t]+must\b", re.IGNORECASE), "you must"),
    (re.compile(r"\bpeople[ \t]+should\b", re.IGNORECASE), "you should"),
    (re.compile(r"\busers[ \t]+will\b", re.IGNORECASE), "you will"),
    (re.compile(r"\busers[ \t]+can\b", re.IGNORECASE), "you can"),
    (re.compile(r"\breaders[ \t]+will\b", re.IGNORECASE), "you will"),
    (re.compile(r"\bindividuals[ \t]+who\b", re.IGNORECASE), "those of you who"),
)

MEDIA_TRIGGERS: Tuple[Tuple[Pattern[str], str], ...] = (
    (
        re.compile(r"\b(?:statistics?|data|percent(?:age)?)\b|\d%", re.IGNORECASE),
        "Add data visualization charts or infographics",
    ),
    (
        re.compile(r"\b(?:comparison|compare[sd]?|vs\.?|versus)\b", re.IGNORECASE),
        "Include comparison tables",
    ),
    (
        re.compile(r"\b(?:steps?|process(?:es)?|workflow)\b", re.IGNORECASE),
        "Add process flowcharts or step-by-step visuals",
    ),
    (
        re.compile(r"\b(?:examples?|case[ -]stud(?:y|ies))\b", re.IGNORECASE),
        "Include screenshots or example images",
    ),
)

STATISTIC_PATTERN = re.compile(
    r"\$\d[\d,]*(?:\.\d+)?(?:\s*(?:billion|million|thousand))?"
    r"|\b\d[\d,]*(?:\.\d+)?\s?%"
    r"|\b\d[\d,]*(?:\.\d+)?\s*(?:billion|million|thousand)\b",
    re.IGNORECASE,
)

HEDGE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\bstudies\s+(?:show|suggest|indicate)\b", re.IGNORECASE),
    re.compile(r"\bresearch\s+(?:shows|indicates|suggests|proves)\b", re.IGNORECASE),
    re.compile(r"\bexperts\s+(?:say|agree|believe)\b", re.IGNORECASE),
    re.compile(r"\b(?:scientifically\s+)?proven\b", re.IGNORECASE),
    re.compile(r"\baccording\s+to\s+(?:experts|research)\b", re.IGNORECASE),
)

CONVERSATIONAL_MARKERS = re.compile(
    r"\bhere's\b|\bhere is what\b|\blet me\b|\byou might\b|\bbottom line\b",
    re.IGNORECASE,
)

INTRO_PHRASE = "Here's what you need to know: "


def _default_author() -> str:
    return os.getenv("CRAFT_AUTHOR_NAME", "Sofeia AI")


@dataclass(frozen=True)
class CraftRules:
    """Word lists and thresholds for the five stages."""

    filler_words: Pattern[str] = FILLER_WORDS
    throat_clearing: Pattern[str] = THROAT_CLEARING
    phrase_replacements: Tuple[Tuple[Pattern[str], str], ...] = PHRASE_REPLACEMENTS
    impersonal_rewrites: Tuple[Tuple[Pattern[str], str], ...] = IMPERSONAL_REWRITES
    media_triggers: Tuple[Tuple[Pattern[str], str], ...] = MEDIA_TRIGGERS
    statistic_pattern: Pattern[str] = STATISTIC_PATTERN
    hedge_patterns: Tuple[Pattern[str], ...] = HEDGE_PATTERNS
    conversational_markers: Pattern[str] = CONVERSATIONAL_MARKERS
    intro_phrase: str = INTRO_PHRASE
    author_name: str = field(default_factory=_default_author)
    heading_min_length: int = 10
    toc_min_length: int = 2000
    toc_min_headings: int = 3
    focus_density_threshold: float = 0.005
    link_min_length: int = 500
    words_per_minute: int = 200
