"""
Target-region and language lookup tables.

Region detection is a literal alias match. Matching is case-insensitive
except for "US" / "U.S.", which only count in upper case so that the
pronoun "us" does not select a market.
"""
import re
from typing import Dict, List, Optional, Pattern, Tuple

DEFAULT_REGION = "usa"
DEFAULT_LANGUAGE = "en"

# (alias, region, case_sensitive)
REGION_ALIASES: List[Tuple[str, str, bool]] = [
    ("usa", "usa", False),
    ("u.s.a.", "usa", False),
    ("united states", "usa", False),
    ("america", "usa", False),
    ("US", "usa", True),
    ("U.S.", "usa", True),
    ("uk", "uk", False),
    ("u.k.", "uk", False),
    ("united kingdom", "uk", False),
    ("britain", "uk", False),
    ("england", "uk", False),
    ("canada", "canada", False),
    ("australia", "australia", False),
    ("germany", "germany", False),
    ("deutschland", "germany", False),
    ("france", "france", False),
    ("spain", "spain", False),
    ("españa", "spain", False),
    ("italy", "italy", False),
    ("italia", "italy", False),
    ("netherlands", "netherlands", False),
    ("nederland", "netherlands", False),
    ("holland", "netherlands", False),
    ("belgium", "belgium", False),
    ("belgië", "belgium", False),
]


def _alias_pattern(alias: str, case_sensitive: bool) -> Pattern[str]:
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf"(?<![\w.]){re.escape(alias)}(?!\w)", flags)


_COMPILED_ALIASES: List[Tuple[Pattern[str], str]] = [
    (_alias_pattern(alias, case_sensitive), region)
    for alias, region, case_sensitive in REGION_ALIASES
]

# Distinctive function words per language. English is the default and has no hints.
LANGUAGE_HINTS: Dict[str, Tuple[str, ...]] = {
    "nl": ("het", "een", "voor", "niet", "wat", "hoe", "zijn", "schrijf", "maak", "geef", "zoekwoord", "zoekvolume", "onderzoek"),
    "de": ("und", "ist", "nicht", "für", "ein", "eine", "der", "das", "schreibe", "erstelle", "über"),
    "fr": ("les", "une", "est", "pour", "avec", "sur", "écris", "comment", "bonjour", "qu'est-ce"),
    "es": ("el", "los", "las", "para", "con", "qué", "cómo", "escribe", "hola", "sobre"),
    "it": ("il", "gli", "della", "sono", "che", "scrivi", "ciao", "questo"),
}

LANGUAGE_REGIONS: Dict[str, str] = {
    "nl": "netherlands",
    "de": "germany",
    "fr": "france",
    "es": "spain",
    "it": "italy",
    "en": "usa",
}

# Authority domains favoured when sourcing for a market.
REGION_AUTHORITIES: Dict[str, Tuple[str, ...]] = {
    "usa": (".gov", ".edu"),
    "uk": (".gov.uk", ".ac.uk", ".nhs.uk"),
    "canada": (".gc.ca", ".canada.ca"),
    "australia": (".gov.au", ".edu.au"),
    "germany": (".bund.de", ".destatis.de"),
    "france": (".gouv.fr", ".insee.fr"),
    "spain": (".gob.es", ".ine.es"),
    "italy": (".gov.it", ".istat.it"),
    "netherlands": (".overheid.nl", ".rijksoverheid.nl", ".cbs.nl"),
    "belgium": (".belgium.be", ".statbel.fgov.be"),
}

_WORD_RE = re.compile(r"[\w'-]+", re.UNICODE)


def find_region(text: str) -> Optional[str]:
    """Return the region of the earliest alias in `text`, or None."""
    best: Optional[Tuple[int, str]] = None
    for pattern, region in _COMPILED_ALIASES:
        match = pattern.search(text)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), region)
    return best[1] if best else None


def region_alias_pattern() -> str:
    """Alternation of all case-insensitive aliases, longest first (for stripping)."""
    aliases = sorted(
        {alias for alias, _, case_sensitive in REGION_ALIASES if not case_sensitive},
        key=len,
        reverse=True,
    )
    return "|".join(re.escape(a) for a in aliases)


def detect_language(text: str) -> str:
    """Pick the language with the most hint-word hits; English when none."""
    words = [w.lower() for w in _WORD_RE.findall(text)]
    if not words:
        return DEFAULT_LANGUAGE

    best_language = DEFAULT_LANGUAGE
    best_hits = 0
    for language, hints in LANGUAGE_HINTS.items():
        hits = sum(1 for w in words if w in hints)
        if hits > best_hits:
            best_language, best_hits = language, hits
    return best_language


def resolve_region(text: str, language: Optional[str] = None) -> str:
    """Explicit alias first, then the language's home market, then the default."""
    region = find_region(text)
    if region:
        return region
    if language:
        return LANGUAGE_REGIONS.get(language, DEFAULT_REGION)
    return DEFAULT_REGION


def authorities_for(region: str) -> Tuple[str, ...]:
    return REGION_AUTHORITIES.get(region.lower(), REGION_AUTHORITIES[DEFAULT_REGION])
