"""
Rule-based query classifier.

Precedence (first category match wins; flags then pass through overrides):
1. content/blog      -> complex provider, post-process, keywords suppressed
2. research          -> research provider, post-process, keywords
3. complex analysis  -> complex provider, post-process
4. simple            -> fast provider
5. long query (>100) -> complex provider, post-process
6. default           -> complex provider, post-process

Overrides (always evaluated):
- craft / c.r.a.f.t / seo / keyword -> post-process and keywords forced on
- "research" together with blog/article/trending/news -> research provider,
  keywords forced on

classify() is pure: no I/O, no logging, no randomness. Blank input falls
through to the default branch; rejecting it is the caller's job.
"""
from typing import Optional

from app.services.ai.schema import Complexity, ProviderKind, RoutingDecision
from app.services.keywords.topics import extract_topic
from app.services.routing.patterns import DEFAULT_ROUTING_RULES, RoutingRules, any_match
from app.services.routing.regions import detect_language, resolve_region


class QueryClassifier:
    """Maps raw query text to a RoutingDecision using a RoutingRules table."""

    def __init__(self, rules: Optional[RoutingRules] = None):
        self.rules = rules or DEFAULT_ROUTING_RULES

    def classify(self, query: str) -> RoutingDecision:
        rules = self.rules
        raw = query or ""
        text = raw.strip().lower()

        if any_match(rules.content, text):
            complexity, provider, rule = Complexity.COMPLEX, ProviderKind.COMPLEX, "content"
            post_process, keywords = True, False
        elif any_match(rules.research, text):
            complexity, provider, rule = Complexity.RESEARCH, ProviderKind.RESEARCH, "research"
            post_process, keywords = True, True
        elif any_match(rules.complex, text):
            complexity, provider, rule = Complexity.COMPLEX, ProviderKind.COMPLEX, "complex"
            post_process, keywords = True, False
        elif any_match(rules.simple, text):
            complexity, provider, rule = Complexity.SIMPLE, ProviderKind.FAST, "simple"
            post_process, keywords = False, False
        elif len(raw) > rules.long_query_threshold:
            complexity, provider, rule = Complexity.COMPLEX, ProviderKind.COMPLEX, "long_query"
            post_process, keywords = True, False
        else:
            complexity, provider, rule = Complexity.COMPLEX, ProviderKind.COMPLEX, "default"
            post_process, keywords = True, False

        if any_match(rules.post_process_override, text):
            post_process, keywords = True, True
            rule = f"{rule}+seo_override"

        if rules.research_word.search(text) and rules.news_word.search(text):
            complexity, provider = Complexity.RESEARCH, ProviderKind.RESEARCH
            keywords = True
            rule = f"{rule}+research_news_override"

        language = detect_language(raw)

        return RoutingDecision(
            complexity=complexity,
            provider=provider,
            requires_post_process=post_process,
            requires_keyword_annotation=keywords,
            target_region=resolve_region(raw, language),
            detected_language=language,
            focus_term=extract_topic(raw),
            matched_rule=rule,
        )


_query_classifier: Optional[QueryClassifier] = None


def get_query_classifier() -> QueryClassifier:
    """Get global query classifier instance."""
    global _query_classifier
    if _query_classifier is None:
        _query_classifier = QueryClassifier()
    return _query_classifier


def classify(query: str) -> RoutingDecision:
    """Classify with the default rule tables."""
    return get_query_classifier().classify(query)
