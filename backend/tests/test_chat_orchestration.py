"""
Tests for the chat orchestration service.

Provider backends are replaced by fake adapters registered in a real
ProviderRegistry; the classifier, C.R.A.F.T pipeline and keyword
annotator are the real implementations.
"""
import asyncio

import pytest
import pytest_asyncio

from app.services.ai.orchestration import ChatOrchestrationService
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.providers.registry import ProviderRegistry
from app.services.ai.schema import (
    Citation,
    ConversationNotFoundError,
    InsufficientCreditsError,
    InvalidMessageError,
    MessageProcessingError,
    MessageRole,
    PipelineError,
    ProviderError,
    ProviderErrorCode,
    ProviderKind,
    ProviderResponse,
)
from app.services.conversations.memory import InMemoryConversationStore
from app.services.craft.pipeline import CraftPipeline
from app.services.credits import InMemoryCreditLedger
from app.services.keywords.annotator import KeywordAnnotator


class FakeProvider(ProviderAdapter):
    """Records calls and returns canned text or raises a canned error."""

    def __init__(self, kind, text="", citations=None, error=None):
        super().__init__(client=None, api_key="test-key", model=f"{kind.value}-model")
        self.kind = kind
        self.text = text
        self.citations = citations or []
        self.error = error
        self.calls = []

    async def generate(self, query, history, decision):
        self.calls.append({"query": query, "history": list(history), "decision": decision})
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            text=self.text,
            provider_id=self.kind,
            citations=self.citations,
            raw_metadata={"model": self.model},
        )


class FailingPipeline(CraftPipeline):
    def process(self, text, target_region="usa", focus_term=None):
        raise PipelineError("post_process", "review stage failed")


class FailingAnnotator(KeywordAnnotator):
    def annotate(self, topic, target_region="usa", strip_request=True):
        raise RuntimeError("keyword source unavailable")


class RecordingAnnotator(KeywordAnnotator):
    def __init__(self):
        super().__init__()
        self.calls = []

    def annotate(self, topic, target_region="usa", strip_request=True):
        self.calls.append((topic, strip_request))
        return super().annotate(topic, target_region=target_region, strip_request=strip_request)


BLOG_TEXT = (
    "<h1>Renewable Energy for Homeowners</h1>\n"
    "<p>It is important to note that solar panels are really very popular.</p>"
)
RESEARCH_TEXT = "<h1>SEO Trends</h1>\n<p>According to recent data, 61% of marketers prioritize SEO.</p>"
CITATIONS = [Citation(url="https://www.bls.gov/data", title="BLS", source_domain="bls.gov")]


@pytest.fixture
def providers():
    return {
        ProviderKind.FAST: FakeProvider(ProviderKind.FAST, text="Hi there!"),
        ProviderKind.RESEARCH: FakeProvider(ProviderKind.RESEARCH, text=RESEARCH_TEXT, citations=CITATIONS),
        ProviderKind.COMPLEX: FakeProvider(ProviderKind.COMPLEX, text=BLOG_TEXT),
    }


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def ledger():
    return InMemoryCreditLedger(default_credits=3)


@pytest.fixture
def service(store, providers, ledger):
    return ChatOrchestrationService(store=store, registry=ProviderRegistry(providers), credit_ledger=ledger)


@pytest_asyncio.fixture
async def conversation_id(store):
    conversation = await store.create_conversation(account_id="acct-1")
    return conversation.id


# ---------------------------------------------------------------------------
# Routing scenarios
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_greeting_uses_fast_provider_without_post_processing(service, store, providers):
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "hello")

    assistant = result.assistant_message
    assert assistant.role == MessageRole.ASSISTANT
    assert assistant.content == "Hi there!"
    assert assistant.provider == ProviderKind.FAST
    assert assistant.post_process_steps == []
    assert assistant.keyword_entries == []
    assert assistant.metadata["used_fallback"] is False
    assert assistant.metadata["routing"]["provider"] == "fast"
    assert len(providers[ProviderKind.FAST].calls) == 1


@pytest.mark.asyncio
async def test_blog_request_is_post_processed_without_keywords(service, store):
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "write a blog post about renewable energy")

    assistant = result.assistant_message
    assert assistant.provider == ProviderKind.COMPLEX
    assert [s.name for s in assistant.post_process_steps] == ["cut", "review", "add", "fact-check", "trust-build"]
    assert assistant.keyword_entries == []
    assert "It is important to note that" not in assistant.content
    assert result.decision.focus_term == "renewable energy"


@pytest.mark.asyncio
async def test_research_request_returns_citations_and_keywords(service, store):
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "research current SEO trends in the USA")

    assistant = result.assistant_message
    assert assistant.provider == ProviderKind.RESEARCH
    assert assistant.citations == CITATIONS
    assert len(assistant.post_process_steps) == 5
    assert 0 < len(assistant.keyword_entries) <= 10
    volumes = [e.estimated_volume for e in assistant.keyword_entries]
    assert volumes == sorted(volumes, reverse=True)
    assert assistant.metadata["routing"]["target_region"] == "usa"


@pytest.mark.asyncio
async def test_quoted_focus_term_reaches_annotator_unchanged(store, providers):
    annotator = RecordingAnnotator()
    service = ChatOrchestrationService(store=store, registry=ProviderRegistry(providers), annotator=annotator)
    conversation = await store.create_conversation()

    await service.handle_user_message(conversation.id, 'research "seo research tools" in the USA')

    assert annotator.calls == [("seo research tools", False)]


@pytest.mark.asyncio
async def test_research_server_error_falls_back_to_complex(service, store, providers):
    providers[ProviderKind.RESEARCH].error = ProviderError(
        ProviderErrorCode.SERVER_ERROR, "research provider error 500", http_status=500
    )
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "research current SEO trends in the USA")

    assistant = result.assistant_message
    assert assistant.provider == ProviderKind.COMPLEX
    assert assistant.metadata["used_fallback"] is True
    assert assistant.metadata["original_provider"] == "research"
    assert result.decision.provider == ProviderKind.RESEARCH
    assert len(providers[ProviderKind.COMPLEX].calls) == 1


@pytest.mark.asyncio
async def test_missing_key_falls_back_to_complex(service, store, providers):
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.MISSING_API_KEY, "fast provider API key not configured", http_status=401
    )
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "hello")

    assert result.assistant_message.provider == ProviderKind.COMPLEX
    assert result.assistant_message.metadata["used_fallback"] is True


# ---------------------------------------------------------------------------
# Failure semantics
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ineligible_error_fails_turn_and_keeps_user_message(service, store, providers):
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.NOT_FOUND, "fast provider error 404", http_status=404
    )
    conversation = await store.create_conversation()

    with pytest.raises(MessageProcessingError) as exc_info:
        await service.handle_user_message(conversation.id, "hello")

    assert isinstance(exc_info.value.__cause__, ProviderError)
    history = await store.get_history(conversation.id)
    assert [(m.role, m.content) for m in history] == [(MessageRole.USER, "hello")]
    assert providers[ProviderKind.COMPLEX].calls == []


@pytest.mark.asyncio
async def test_complex_failure_is_not_retried(service, store, providers):
    providers[ProviderKind.COMPLEX].error = ProviderError(
        ProviderErrorCode.SERVICE_UNAVAILABLE, "complex provider error 503", http_status=503
    )
    conversation = await store.create_conversation()

    with pytest.raises(MessageProcessingError):
        await service.handle_user_message(conversation.id, "write a blog post about renewable energy")

    assert len(providers[ProviderKind.COMPLEX].calls) == 1


@pytest.mark.asyncio
async def test_fallback_failure_fails_turn(service, store, providers):
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.TIMEOUT, "fast provider timed out"
    )
    providers[ProviderKind.COMPLEX].error = ProviderError(
        ProviderErrorCode.SERVER_ERROR, "complex provider error 500", http_status=500
    )
    conversation = await store.create_conversation()

    with pytest.raises(MessageProcessingError):
        await service.handle_user_message(conversation.id, "hello")

    assert len(providers[ProviderKind.FAST].calls) == 1
    assert len(providers[ProviderKind.COMPLEX].calls) == 1


@pytest.mark.asyncio
async def test_pipeline_failure_degrades_turn(store, providers):
    service = ChatOrchestrationService(
        store=store,
        registry=ProviderRegistry(providers),
        pipeline=FailingPipeline(),
    )
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "write a blog post about renewable energy")

    assistant = result.assistant_message
    assert assistant.content == BLOG_TEXT
    assert assistant.post_process_steps == []
    assert assistant.metadata["post_process_failed"] is True


@pytest.mark.asyncio
async def test_keyword_failure_degrades_turn(store, providers):
    service = ChatOrchestrationService(
        store=store,
        registry=ProviderRegistry(providers),
        annotator=FailingAnnotator(),
    )
    conversation = await store.create_conversation()

    result = await service.handle_user_message(conversation.id, "research current SEO trends in the USA")

    assistant = result.assistant_message
    assert assistant.keyword_entries == []
    assert len(assistant.post_process_steps) == 5
    assert assistant.metadata["keyword_annotation_failed"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n\t"])
async def test_blank_message_is_rejected(service, store, text):
    conversation = await store.create_conversation()

    with pytest.raises(InvalidMessageError):
        await service.handle_user_message(conversation.id, text)

    assert await store.get_history(conversation.id) == []


@pytest.mark.asyncio
async def test_unknown_conversation(service):
    with pytest.raises(ConversationNotFoundError):
        await service.handle_user_message("missing", "hello")


# ---------------------------------------------------------------------------
# Persistence and credits
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_history_excludes_current_message(service, store, providers):
    conversation = await store.create_conversation()

    await service.handle_user_message(conversation.id, "write a blog post about renewable energy")
    await service.handle_user_message(conversation.id, "now write one about heat pumps for a blog")

    second_call = providers[ProviderKind.COMPLEX].calls[-1]
    assert [m.role for m in second_call["history"]] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert second_call["query"] == "now write one about heat pumps for a blog"
    assert len(await store.get_history(conversation.id)) == 4


@pytest.mark.asyncio
async def test_title_inferred_from_first_message(service, store):
    conversation = await store.create_conversation()

    await service.handle_user_message(conversation.id, "hello")
    await service.handle_user_message(conversation.id, "hello again")

    assert (await store.get_conversation(conversation.id)).title == "hello"


@pytest.mark.asyncio
async def test_successful_turn_consumes_one_credit(service, ledger, conversation_id):
    await service.handle_user_message(conversation_id, "hello", account_id="acct-1")

    assert await ledger.get_balance("acct-1") == 2


@pytest.mark.asyncio
async def test_failed_turn_consumes_no_credit(service, ledger, providers, conversation_id):
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.NOT_FOUND, "fast provider error 404", http_status=404
    )

    with pytest.raises(MessageProcessingError):
        await service.handle_user_message(conversation_id, "hello", account_id="acct-1")

    assert await ledger.get_balance("acct-1") == 3


@pytest.mark.asyncio
async def test_exhausted_credits_reject_turn_before_persisting(service, store, ledger, providers, conversation_id):
    await ledger.set_balance("acct-1", 0)

    with pytest.raises(InsufficientCreditsError):
        await service.handle_user_message(conversation_id, "hello", account_id="acct-1")

    assert await store.get_history(conversation_id) == []
    assert providers[ProviderKind.FAST].calls == []


@pytest.mark.asyncio
async def test_concurrent_turns_cannot_overspend_last_credit(store, providers):
    ledger = InMemoryCreditLedger(default_credits=1)
    service = ChatOrchestrationService(store=store, registry=ProviderRegistry(providers), credit_ledger=ledger)
    first = await store.create_conversation(account_id="acct")
    second = await store.create_conversation(account_id="acct")

    results = await asyncio.gather(
        service.handle_user_message(first.id, "hello", account_id="acct"),
        service.handle_user_message(second.id, "hello", account_id="acct"),
        return_exceptions=True,
    )

    assert sorted(type(r).__name__ for r in results) == ["InsufficientCreditsError", "TurnResult"]
    histories = [await store.get_history(c.id) for c in (first, second)]
    assert sorted(len(h) for h in histories) == [0, 2]
    assert await ledger.get_balance("acct") == 0


@pytest.mark.asyncio
async def test_failed_turn_refunds_reserved_credit_for_next_turn(service, ledger, providers, conversation_id):
    await ledger.set_balance("acct-1", 1)
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.NOT_FOUND, "fast provider error 404", http_status=404
    )

    with pytest.raises(MessageProcessingError):
        await service.handle_user_message(conversation_id, "hello", account_id="acct-1")

    providers[ProviderKind.FAST].error = None
    await service.handle_user_message(conversation_id, "hello", account_id="acct-1")

    assert await ledger.get_balance("acct-1") == 0


@pytest.mark.asyncio
async def test_reservation_is_idempotent_per_turn(ledger):
    assert await ledger.reserve("acct-2", "turn-1") == 2
    assert await ledger.reserve("acct-2", "turn-1") == 2
    await ledger.commit("acct-2", "turn-1")
    await ledger.commit("acct-2", "turn-1")

    assert await ledger.refund("acct-2", "turn-1") == 2
    assert await ledger.reserve("acct-2", "turn-1") == 2
    assert await ledger.get_balance("acct-2") == 2


@pytest.mark.asyncio
async def test_refund_returns_credit_once(ledger):
    await ledger.reserve("acct-2", "turn-1")

    assert await ledger.refund("acct-2", "turn-1") == 3
    assert await ledger.refund("acct-2", "turn-1") == 3


@pytest.mark.asyncio
async def test_settled_turns_are_bounded():
    ledger = InMemoryCreditLedger(default_credits=10, max_settled_turns=2)

    for turn_id in ("turn-1", "turn-2", "turn-3"):
        await ledger.reserve("acct", turn_id)
        await ledger.commit("acct", turn_id)

    assert list(ledger._settled) == ["turn-2", "turn-3"]
    assert ledger._pending == {}


@pytest.mark.asyncio
async def test_anonymous_turn_is_not_metered(service, store, ledger):
    conversation = await store.create_conversation()

    await service.handle_user_message(conversation.id, "hello")

    assert ledger._balances == {}
