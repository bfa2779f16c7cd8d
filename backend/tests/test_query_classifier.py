"""
Unit tests for the rule-based query classifier, region/language lookup
and topic extraction.
"""
import pytest

from app.services.ai.schema import Complexity, ProviderKind
from app.services.keywords.topics import extract_topic
from app.services.routing.classifier import QueryClassifier, classify
from app.services.routing.patterns import RoutingRules
from app.services.routing.regions import detect_language, find_region, resolve_region


def test_greeting_routes_to_fast_provider():
    decision = classify("hello")

    assert decision.provider == ProviderKind.FAST
    assert decision.complexity == Complexity.SIMPLE
    assert decision.requires_post_process is False
    assert decision.requires_keyword_annotation is False
    assert decision.matched_rule == "simple"


def test_short_definition_question_routes_to_fast_provider():
    decision = classify("What is a heat pump?")

    assert decision.provider == ProviderKind.FAST
    assert decision.complexity == Complexity.SIMPLE


def test_blog_request_routes_to_complex_without_keywords():
    decision = classify("write a blog post about renewable energy")

    assert decision.provider == ProviderKind.COMPLEX
    assert decision.complexity == Complexity.COMPLEX
    assert decision.requires_post_process is True
    assert decision.requires_keyword_annotation is False
    assert decision.matched_rule == "content"
    assert decision.focus_term == "renewable energy"
    assert decision.target_region == "usa"


def test_research_request_with_region():
    decision = classify("research current SEO trends in the USA")

    assert decision.provider == ProviderKind.RESEARCH
    assert decision.complexity == Complexity.RESEARCH
    assert decision.target_region == "usa"
    assert decision.requires_post_process is True
    assert decision.requires_keyword_annotation is True
    assert decision.matched_rule == "research+seo_override"
    assert decision.focus_term == "current seo trends"


@pytest.mark.parametrize(
    "query",
    [
        "show me statistics on remote work adoption",
        "analyze the latest data on electric vehicle sales",
        "what are the current trends in home fitness",
        "find government data on housing starts",
    ],
)
def test_research_patterns_select_research_provider(query):
    decision = classify(query)

    assert decision.provider == ProviderKind.RESEARCH
    assert decision.requires_keyword_annotation is True


@pytest.mark.parametrize(
    "query",
    [
        "write a blog post about SEO",
        "Give me keyword ideas for a bakery",
        "hello, can you help with my seo?",
        "apply the CRAFT framework to this paragraph",
    ],
)
def test_seo_keyword_and_craft_force_post_process_and_keywords(query):
    decision = classify(query)

    assert decision.requires_post_process is True
    assert decision.requires_keyword_annotation is True
    assert decision.matched_rule.endswith("+seo_override")


def test_content_rule_wins_over_research_rule():
    decision = classify("write an article with statistics about coffee")

    assert decision.provider == ProviderKind.COMPLEX
    assert decision.matched_rule == "content"
    assert decision.requires_keyword_annotation is False


def test_research_combined_with_article_forces_research_provider():
    decision = classify("write an article based on research about remote work")

    assert decision.provider == ProviderKind.RESEARCH
    assert decision.complexity == Complexity.RESEARCH
    assert decision.requires_keyword_annotation is True
    assert decision.requires_post_process is True
    assert decision.matched_rule == "content+research_news_override"


def test_complex_analysis_routes_to_complex_provider():
    decision = classify("create a comprehensive marketing strategy for my bakery")

    assert decision.provider == ProviderKind.COMPLEX
    assert decision.matched_rule == "complex"
    assert decision.requires_post_process is True
    assert decision.requires_keyword_annotation is False


def test_long_query_routes_to_complex_provider():
    query = "please help me decide " * 6
    assert len(query) > 100

    decision = classify(query)

    assert decision.provider == ProviderKind.COMPLEX
    assert decision.matched_rule == "long_query"
    assert decision.requires_post_process is True


def test_unmatched_medium_query_uses_default_branch():
    decision = classify("tell me about heat pumps")

    assert decision.provider == ProviderKind.COMPLEX
    assert decision.matched_rule == "default"
    assert decision.requires_post_process is True


def test_blank_query_falls_through_to_default():
    """The classifier stays total; blank input is rejected by the caller."""
    for query in ("", "   "):
        decision = classify(query)
        assert decision.provider == ProviderKind.COMPLEX
        assert decision.matched_rule == "default"
        assert decision.focus_term is None


def test_classify_is_deterministic():
    query = "research current SEO trends in the USA"
    assert classify(query) == classify(query)


def test_custom_rule_table_changes_length_threshold():
    classifier = QueryClassifier(RoutingRules(long_query_threshold=10))

    decision = classifier.classify("tell me about heat pumps")

    assert decision.matched_rule == "long_query"


# ---------------------------------------------------------------------------
# Regions and language
# ---------------------------------------------------------------------------


def test_region_alias_match():
    assert classify("best roofing companies in Germany").target_region == "germany"
    assert classify("market size for bakeries in the United Kingdom").target_region == "uk"


def test_lowercase_us_pronoun_is_not_a_region():
    assert find_region("tell us about heat pumps in canada") == "canada"
    assert find_region("can you help us") is None


def test_uppercase_us_is_a_region():
    assert find_region("solar incentives in the US") == "usa"
    assert find_region("U.S. housing market") == "usa"


def test_earliest_alias_wins():
    assert find_region("compare france and spain") == "france"


def test_region_defaults_when_absent():
    assert classify("tell me about heat pumps").target_region == "usa"


def test_language_detection_sets_home_market():
    assert detect_language("schrijf een artikel over zonnepanelen voor mijn bedrijf") == "nl"
    assert resolve_region("schrijf een artikel over zonnepanelen", "nl") == "netherlands"


def test_explicit_region_beats_language_market():
    decision = classify("Schreibe einen Artikel über Solarenergie für Frankreich und France")

    assert decision.detected_language == "de"
    assert decision.target_region == "france"


def test_english_is_default_language():
    assert detect_language("research current SEO trends") == "en"
    assert detect_language("") == "en"


# ---------------------------------------------------------------------------
# Topic extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "query,expected",
    [
        ("write a blog post about renewable energy", "renewable energy"),
        ("research current SEO trends in the USA", "current seo trends"),
        ('write about "home solar batteries" for homeowners', "home solar batteries"),
        ("Could you write an article on roof repair?", "roof repair"),
    ],
)
def test_extract_topic(query, expected):
    assert extract_topic(query) == expected


def test_extract_topic_empty():
    assert extract_topic("") is None
    assert extract_topic("   ") is None
