"""
The five C.R.A.F.T stages.

Each stage is a plain function taking text plus a StageContext and
returning a StageOutcome. Add and fact-check never modify text.

Review expects Cut to have run first: focus-term density is measured on
text that has already had filler removed.
"""
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Pattern, Tuple

from app.services.craft.rules import CraftRules
from app.services.routing.regions import authorities_for

_TAG_SPLIT_RE = re.compile(r"(<[^>]*>)")
_TAG_RE = re.compile(r"<[^>]*>")
_CAPITALIZE_MARK = "\x00"
_MARK_RE = re.compile(_CAPITALIZE_MARK + r"([^\w]*)(\w)")
_WORD_RE = re.compile(r"\b[\w'-]+\b")

_TOP_HEADING_RE = re.compile(r"<h[12][\s>]|^\s{0,3}#{1,2}\s", re.IGNORECASE | re.MULTILINE)
_HEADING_LINE_RE = re.compile(r"^\s*(?:<h[1-6][\s>]|#{1,6}\s)", re.IGNORECASE)
_SUBHEADING_RE = re.compile(
    r"<(h[23])(\s[^>]*)?>(.*?)</\1>|^\s{0,3}(#{2,3})\s+(.+?)\s*#*\s*$",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_ID_ATTR_RE = re.compile(r"\bid\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_TOC_RE = re.compile(r"class\s*=\s*[\"']toc[\"']|table of contents", re.IGNORECASE)
_LINK_RE = re.compile(r"<a\s[^>]*href|https?://|\]\(", re.IGNORECASE)
_H1_CLOSE_RE = re.compile(r"</h1>", re.IGNORECASE)
_PARAGRAPH_RE = re.compile(r"<p(\s[^>]*)?>(.*?)</p>", re.IGNORECASE | re.DOTALL)
_PLAIN_LINE_START_RE = re.compile(r"^\s*(?:<|#|[-*+>|]|\d+[.)])")


@dataclass
class StageContext:
    target_region: str
    focus_term: Optional[str]
    rules: CraftRules
    today: Callable[[], date] = date.today


@dataclass
class StageOutcome:
    text: str
    applied: bool
    description: str


# ============================================================================
# HELPERS
# ============================================================================


def strip_tags(text: str) -> str:
    return _TAG_RE.sub(" ", text)


def word_count(text: str) -> int:
    return len(_WORD_RE.findall(strip_tags(text)))


def _map_text_segments(text: str, func: Callable[[str], str]) -> str:
    """Apply func to everything outside markup tags."""
    parts = _TAG_SPLIT_RE.split(text)
    return "".join(part if i % 2 else func(part) for i, part in enumerate(parts))


def _match_case(original: str, replacement: str) -> str:
    if original[:1].isupper() and replacement:
        return replacement[0].upper() + replacement[1:]
    return replacement


def slugify(value: str) -> str:
    slug = strip_tags(value).lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug).strip("-")
    return re.sub(r"-{2,}", "-", slug) or "section"


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces per line without touching line structure."""
    lines = []
    for line in text.split("\n"):
        line = re.sub(r"(?<=\S)[ \t]{2,}", " ", line)
        line = re.sub(r"[ \t]+([,.;:!?])", r"\1", line)
        lines.append(line.rstrip())
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


# ============================================================================
# CUT
# ============================================================================


def _remove(pattern: Pattern[str], segment: str) -> Tuple[str, int]:
    def repl(match: "re.Match[str]") -> str:
        return _CAPITALIZE_MARK if match.group(0)[:1].isupper() else ""

    return pattern.subn(repl, segment)


def _replace(pattern: Pattern[str], replacement: str, segment: str) -> Tuple[str, int]:
    return pattern.subn(lambda m: _match_case(m.group(0), replacement), segment)


def _cut_once(text: str, rules: CraftRules) -> Tuple[str, int]:
    removed = 0

    def cut_segment(segment: str) -> str:
        nonlocal removed
        for pattern in (rules.throat_clearing, rules.filler_words):
            segment, n = _remove(pattern, segment)
            removed += n
        for pattern, replacement in rules.phrase_replacements:
            segment, n = _replace(pattern, replacement, segment)
            removed += n
        segment = _MARK_RE.sub(lambda m: m.group(1) + m.group(2).upper(), segment)
        return segment.replace(_CAPITALIZE_MARK, "")

    return _map_text_segments(text, cut_segment), removed


def cut(text: str, ctx: StageContext) -> StageOutcome:
    """
    Remove filler and throat-clearing phrases; repeat until nothing is left to remove.

    A removal can expose a phrase that was split by the removed words, so
    passes continue to a fixed point. Every removal or replacement shortens
    the text, which bounds the loop.
    """
    total = 0
    while True:
        text, removed = _cut_once(text, ctx.rules)
        if not removed:
            break
        total += removed
        text = normalize_whitespace(text)

    if total:
        description = f"Removed {total} filler word(s) and wordy phrase(s) for clarity"
    else:
        description = "No filler words or wordy phrases found"
    return StageOutcome(text=text, applied=total > 0, description=description)


# ============================================================================
# REVIEW
# ============================================================================


def _add_heading(text: str, ctx: StageContext) -> Tuple[str, bool]:
    if _TOP_HEADING_RE.search(text):
        return text, False

    lines = text.split("\n")
    index = next((i for i, line in enumerate(lines) if line.strip()), None)
    if index is None or _HEADING_LINE_RE.match(lines[index]):
        return text, False

    heading = " ".join(strip_tags(lines[index]).split())
    if len(heading) <= ctx.rules.heading_min_length:
        return text, False

    focus = ctx.focus_term
    if focus and focus.lower() not in heading.lower():
        heading = f"{heading.rstrip('.:;!?')}: {focus}"
    lines[index] = f"<h1>{heading}</h1>"
    return "\n".join(lines), True


def _add_table_of_contents(text: str, ctx: StageContext) -> Tuple[str, bool]:
    if len(text) <= ctx.rules.toc_min_length or _TOC_RE.search(text):
        return text, False

    headings = list(_SUBHEADING_RE.finditer(text))
    if len(headings) < ctx.rules.toc_min_headings:
        return text, False

    used = set()
    entries: List[Tuple[str, str]] = []
    pieces: List[str] = []
    pos = 0
    for match in headings:
        if match.group(1):
            tag, attrs, inner = match.group(1), match.group(2) or "", match.group(3)
            title = " ".join(strip_tags(inner).split())
            existing = _ID_ATTR_RE.search(attrs)
            anchor = existing.group(1) if existing else slugify(title)
        else:
            title = match.group(5).strip()
            anchor, existing = slugify(title), None
        base, suffix = anchor, 2
        while anchor in used:
            anchor = f"{base}-{suffix}"
            suffix += 1
        used.add(anchor)
        entries.append((anchor, title))

        pieces.append(text[pos:match.start()])
        if match.group(1) and not existing:
            pieces.append(f'<{tag}{attrs} id="{anchor}">{inner}</{tag}>')
        else:
            pieces.append(match.group(0))
        pos = match.end()
    pieces.append(text[pos:])
    body = "".join(pieces)

    items = "\n".join(f'<li><a href="#{anchor}">{title}</a></li>' for anchor, title in entries)
    toc = f'<nav class="toc">\n<strong>Table of Contents</strong>\n<ul>\n{items}\n</ul>\n</nav>'

    h1_close = _H1_CLOSE_RE.search(body)
    if h1_close:
        cut_at = h1_close.end()
        return f"{body[:cut_at]}\n{toc}{body[cut_at:]}", True
    return f"{toc}\n{body}", True


def _personalize(text: str, ctx: StageContext) -> Tuple[str, bool]:
    changed = 0

    def rewrite(segment: str) -> str:
        nonlocal changed
        for pattern, replacement in ctx.rules.impersonal_rewrites:
            segment, n = _replace(pattern, replacement, segment)
            changed += n
        return segment

    return _map_text_segments(text, rewrite), changed > 0


def focus_density(text: str, focus_term: str) -> float:
    total = word_count(text)
    if not total:
        return 0.0
    term_words = max(1, len(focus_term.split()))
    pattern = re.compile(rf"\b{re.escape(focus_term)}\b", re.IGNORECASE)
    occurrences = len(pattern.findall(strip_tags(text)))
    return occurrences * term_words / total


def _reinforce_focus_term(text: str, ctx: StageContext) -> Tuple[str, bool]:
    focus = ctx.focus_term
    if not focus or not text.strip():
        return text, False
    if focus_density(text, focus) >= ctx.rules.focus_density_threshold:
        return text, False
    conclusion = (
        f"<p>Now that you understand the essentials of {focus}, "
        f"you can put these {focus} insights into practice with confidence.</p>"
    )
    return f"{text}\n\n{conclusion}", True


def _note_linking_opportunity(text: str, ctx: StageContext) -> Tuple[str, bool]:
    if len(text) <= ctx.rules.link_min_length or _LINK_RE.search(text):
        return text, False
    domains = ", ".join(authorities_for(ctx.target_region))
    note = (
        f"<!-- Linking opportunity: cite authoritative {ctx.target_region.upper()} "
        f"sources ({domains}) -->"
    )
    return f"{text}\n\n{note}", True


def review(text: str, ctx: StageContext) -> StageOutcome:
    """Structural SEO pass: heading, table of contents, second person, focus term, links."""
    fired: List[str] = []
    for label, operation in (
        ("added top-level heading", _add_heading),
        ("added table of contents", _add_table_of_contents),
        ("rewrote impersonal phrasing in second person", _personalize),
        ("reinforced focus term", _reinforce_focus_term),
        ("flagged linking opportunity", _note_linking_opportunity),
    ):
        text, changed = operation(text, ctx)
        if changed:
            fired.append(label)

    if fired:
        description = "Optimized structure and SEO elements: " + ", ".join(fired)
    else:
        description = "Structure and SEO elements already in good shape"
    return StageOutcome(text=text, applied=bool(fired), description=description)


# ============================================================================
# ADD (media suggestions)
# ============================================================================


def add_media(text: str, ctx: StageContext) -> StageOutcome:
    plain = strip_tags(text)
    suggestions = [s for pattern, s in ctx.rules.media_triggers if pattern.search(plain)]
    if suggestions:
        description = "Media suggestions: " + ", ".join(suggestions)
    else:
        description = "No media triggers found; consider adding relevant visuals to enhance engagement"
    return StageOutcome(text=text, applied=bool(suggestions), description=description)


# ============================================================================
# FACT-CHECK
# ============================================================================


def fact_check(text: str, ctx: StageContext) -> StageOutcome:
    plain = strip_tags(text)
    findings: List[str] = []

    stats: List[str] = []
    for match in ctx.rules.statistic_pattern.finditer(plain):
        value = " ".join(match.group(0).split())
        if value not in stats:
            stats.append(value)
    if stats:
        findings.append("verify statistics: " + ", ".join(stats[:3]))

    claims: List[str] = []
    for pattern in ctx.rules.hedge_patterns:
        match = pattern.search(plain)
        if match:
            claims.append(f'"{match.group(0).lower()}"')
    if claims:
        findings.append("back claims with credible sources: " + ", ".join(claims))

    if findings:
        description = "Fact-check needed: " + "; ".join(findings)
    else:
        description = "No statistical claims or unsupported assertions detected"
    return StageOutcome(text=text, applied=bool(findings), description=description)


# ============================================================================
# TRUST-BUILD
# ============================================================================


def _add_conversational_intro(text: str, ctx: StageContext) -> Tuple[str, bool]:
    if ctx.rules.conversational_markers.search(text):
        return text, False

    intro = ctx.rules.intro_phrase
    paragraph = next(
        (m for m in _PARAGRAPH_RE.finditer(text) if strip_tags(m.group(2)).strip()),
        None,
    )

    offset = 0
    plain_line = None
    for line in text.split("\n"):
        if line.strip() and not _PLAIN_LINE_START_RE.match(line):
            plain_line = (offset, line)
            break
        offset += len(line) + 1

    if plain_line and (paragraph is None or plain_line[0] < paragraph.start()):
        start, line = plain_line
        indent = len(line) - len(line.lstrip())
        at = start + indent
        return text[:at] + intro + text[at:], True

    if paragraph:
        at = paragraph.start(2) + len(paragraph.group(2)) - len(paragraph.group(2).lstrip())
        return text[:at] + intro + text[at:], True
    return text, False


def _add_author_footer(text: str, ctx: StageContext) -> Tuple[str, bool]:
    author = ctx.rules.author_name
    if "Author:" in text or author in text:
        return text, False
    minutes = max(1, math.ceil(word_count(text) / ctx.rules.words_per_minute))
    today = ctx.today()
    stamp = f"{today:%B} {today.day}, {today.year}"
    footer = f"<p><strong>Author: {author} | {minutes} min read | {stamp}</strong></p>"
    return f"{text}\n\n{footer}", True


def trust_build(text: str, ctx: StageContext) -> StageOutcome:
    """Second-person framing on the first paragraph, then the authorship footer."""
    text, intro_added = _add_conversational_intro(text, ctx)
    text, footer_added = _add_author_footer(text, ctx)

    fired = []
    if intro_added:
        fired.append("added conversational framing")
    if footer_added:
        fired.append("added authorship footer")
    if fired:
        description = "Enhanced trust signals: " + ", ".join(fired)
    else:
        description = "Conversational tone and authorship already present"
    return StageOutcome(text=text, applied=bool(fired), description=description)
