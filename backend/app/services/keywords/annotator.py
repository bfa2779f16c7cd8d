"""
Keyword annotator.

annotate(topic, target_region) builds a candidate set from the topic
(the topic itself, templated long-tail variants, domain synonyms) and
estimates volume, difficulty and intent for each. The list is sorted by
estimated volume (descending, ties by term) and capped.

Volume = seeded base * region multiplier * length penalty * popularity boost,
where the seed is an MD5 digest of the lower-cased term.
"""
import hashlib
from typing import List, Optional

from app.core.logging import get_logger
from app.core.metrics import record_keyword_annotation
from app.services.ai.schema import KeywordEntry
from app.services.keywords.rules import KeywordRules
from app.services.keywords.topics import extract_topic
from app.services.routing.regions import DEFAULT_REGION

logger = get_logger(__name__)


class KeywordAnnotator:
    """Simulated keyword research over a fixed rule table."""

    def __init__(self, rules: Optional[KeywordRules] = None):
        self.rules = rules or KeywordRules()

    def candidate_terms(self, topic: str) -> List[str]:
        rules = self.rules
        terms = [template.format(topic=topic) for template in rules.templates]
        for trigger, related in rules.domain_synonyms:
            if trigger.search(topic):
                terms.extend(related)

        seen = set()
        unique = []
        for term in terms:
            key = term.lower()
            if key not in seen:
                seen.add(key)
                unique.append(term)
        return unique

    def base_volume(self, term: str) -> int:
        digest = hashlib.md5(term.lower().encode("utf-8")).hexdigest()
        return self.rules.base_volume_min + int(digest, 16) % self.rules.base_volume_span

    def estimate_volume(self, term: str, target_region: str) -> int:
        rules = self.rules
        lowered = term.lower()

        region_multiplier = rules.region_multipliers.get(
            (target_region or "").lower(), rules.default_region_multiplier
        )

        length_multiplier = 1.0
        for min_length, multiplier in rules.length_penalties:
            if len(term) > min_length:
                length_multiplier = multiplier
                break

        popularity = 1.0
        if any(marker.search(lowered) for marker in rules.popularity_markers):
            popularity = rules.popularity_boost

        return int(self.base_volume(term) * region_multiplier * length_multiplier * popularity)

    def estimate_difficulty(self, term: str) -> str:
        lowered = term.lower()
        competitive = bool(self.rules.competitive_terms.search(lowered))
        long_tail = len(lowered.split()) >= self.rules.long_tail_words
        has_digits = any(ch.isdigit() for ch in lowered)

        if competitive and not long_tail:
            return "High"
        if long_tail or has_digits:
            return "Low"
        return "Medium"

    def classify_intent(self, term: str) -> str:
        lowered = term.lower()
        for intent, pattern in self.rules.intent_patterns:
            if pattern.search(lowered):
                return intent
        return self.rules.default_intent

    def annotate(
        self,
        topic: str,
        target_region: str = DEFAULT_REGION,
        strip_request: bool = True,
    ) -> List[KeywordEntry]:
        """
        Produce ranked keyword entries for a topic.

        Args:
            topic: Topic or raw request text
            target_region: Market used for the volume multiplier
            strip_request: Reduce `topic` to its subject first. Pass False
                for an already-extracted focus term.

        Returns:
            At most rules.max_results entries, sorted by estimated volume
        """
        if strip_request:
            clean_topic = extract_topic(topic or "")
        else:
            clean_topic = " ".join((topic or "").lower().split())
        clean_topic = clean_topic or self.rules.default_topic
        entries = [
            KeywordEntry(
                term=term,
                estimated_volume=self.estimate_volume(term, target_region),
                estimated_difficulty=self.estimate_difficulty(term),
                search_intent=self.classify_intent(term),
            )
            for term in self.candidate_terms(clean_topic)
        ]
        entries.sort(key=lambda e: (-e.estimated_volume, e.term))
        entries = entries[: self.rules.max_results]

        record_keyword_annotation(len(entries))
        logger.debug(
            "keyword_annotation_completed",
            topic=clean_topic,
            target_region=target_region,
            entries=len(entries),
        )
        return entries


_keyword_annotator: Optional[KeywordAnnotator] = None


def get_keyword_annotator() -> KeywordAnnotator:
    """Get global keyword annotator instance."""
    global _keyword_annotator
    if _keyword_annotator is None:
        _keyword_annotator = KeywordAnnotator()
    return _keyword_annotator
