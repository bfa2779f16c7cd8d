"""
Chat orchestration layer.

Responsibilities:
- Persist the user message before any provider call
- Classify the query and dispatch to the selected provider adapter
- Fall back at most once to the complex provider on eligible errors
- Run C.R.A.F.T post-processing and keyword annotation when flagged
- Persist the assistant message with provider, steps, citations, keywords
  and the routing decision in its metadata

Failure semantics:
- Provider failure (after fallback) fails the turn with MessageProcessingError;
  the user message stays persisted and no assistant message is written
- Post-processing or keyword annotation failure degrades the turn: the
  unprocessed text (or no keywords) is stored and the failure is flagged
  in message metadata
- Metered turns reserve a credit before anything is persisted and get it
  back when the turn fails before the assistant message is stored
"""
from typing import Any, Dict, List, Optional, Tuple

from app.core.logging import get_logger
from app.core.metrics import (
    record_chat_turn,
    record_pipeline_failure,
    record_provider_fallback,
    record_routing_decision,
)
from app.core.tracing import (
    StatusCode,
    get_tracer,
    record_exception,
    set_span_attribute,
    set_span_status,
)
from app.services.ai.fallback import FallbackPolicy, get_fallback_policy
from app.services.ai.providers.registry import ProviderRegistry, get_provider_registry
from app.services.ai.schema import (
    InvalidMessageError,
    KeywordEntry,
    Message,
    MessageProcessingError,
    MessageRole,
    PostProcessStep,
    ProviderError,
    ProviderKind,
    ProviderResponse,
    RoutingDecision,
    TurnResult,
)
from app.services.conversations.base import ConversationStore
from app.services.conversations.factory import get_conversation_store
from app.services.craft.pipeline import CraftPipeline, get_craft_pipeline
from app.services.credits import CreditLedger, get_credit_ledger
from app.services.keywords.annotator import KeywordAnnotator, get_keyword_annotator
from app.services.routing.classifier import QueryClassifier, get_query_classifier

logger = get_logger(__name__)


class ChatOrchestrationService:
    """
    Drives one user turn end to end.

    All collaborators are injected so tests can swap in fakes; the
    module-level accessor wires the process-wide singletons.
    """

    def __init__(
        self,
        store: ConversationStore,
        registry: ProviderRegistry,
        classifier: Optional[QueryClassifier] = None,
        pipeline: Optional[CraftPipeline] = None,
        annotator: Optional[KeywordAnnotator] = None,
        fallback_policy: Optional[FallbackPolicy] = None,
        credit_ledger: Optional[CreditLedger] = None,
    ):
        self.store = store
        self.registry = registry
        self.classifier = classifier or get_query_classifier()
        self.pipeline = pipeline or get_craft_pipeline()
        self.annotator = annotator or get_keyword_annotator()
        self.fallback_policy = fallback_policy or get_fallback_policy()
        self.credit_ledger = credit_ledger

    async def handle_user_message(
        self,
        conversation_id: str,
        text: str,
        account_id: Optional[str] = None,
    ) -> TurnResult:
        """
        Process one user message and return both persisted messages.

        Raises:
            InvalidMessageError: text is empty or whitespace-only
            ConversationNotFoundError: unknown conversation
            InsufficientCreditsError: account has no credits left
            MessageProcessingError: provider failed and fallback did not recover
        """
        if not text or not text.strip():
            record_chat_turn("rejected")
            raise InvalidMessageError("Message text must not be empty")

        await self.store.get_conversation(conversation_id)

        # The user message id doubles as the turn id for the credit ledger
        user_message = Message(conversation_id=conversation_id, role=MessageRole.USER, content=text)
        ledger = self.credit_ledger if account_id else None
        if ledger is not None:
            await ledger.reserve(account_id, user_message.id)

        try:
            result = await self._run_turn(conversation_id, user_message)
        except Exception:
            if ledger is not None:
                await ledger.refund(account_id, user_message.id)
            raise

        if ledger is not None:
            await ledger.commit(account_id, user_message.id)
        return result

    async def _run_turn(self, conversation_id: str, user_message: Message) -> TurnResult:
        text = user_message.content
        user_message = await self.store.append(conversation_id, user_message)
        await self.store.set_title_if_absent(conversation_id, text)

        tracer = get_tracer()
        with tracer.start_as_current_span("chat.turn"):
            set_span_attribute("chat.conversation_id", conversation_id)

            with tracer.start_as_current_span("routing.classify"):
                decision = self.classifier.classify(text)
                set_span_attribute("routing.provider", decision.provider.value)
                set_span_attribute("routing.complexity", decision.complexity.value)
                set_span_attribute("routing.matched_rule", decision.matched_rule)
            record_routing_decision(decision.provider.value, decision.complexity.value)
            logger.info(
                "chat_query_classified",
                conversation_id=conversation_id,
                provider=decision.provider.value,
                complexity=decision.complexity.value,
                matched_rule=decision.matched_rule,
                target_region=decision.target_region,
                requires_post_process=decision.requires_post_process,
                requires_keyword_annotation=decision.requires_keyword_annotation,
            )

            history = [
                message for message in await self.store.get_history(conversation_id)
                if message.id != user_message.id
            ]

            try:
                response, used_fallback = await self._generate(text, history, decision)
            except ProviderError as exc:
                record_exception(exc)
                record_chat_turn("failed")
                logger.error(
                    "chat_turn_failed",
                    conversation_id=conversation_id,
                    provider=decision.provider.value,
                    code=exc.code.value,
                    http_status=exc.http_status,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise MessageProcessingError(
                    f"Failed to generate a response: {exc.message}"
                ) from exc

            metadata: Dict[str, Any] = {
                "routing": decision.model_dump(mode="json"),
                "used_fallback": used_fallback,
                "original_provider": decision.provider.value,
            }
            if response.raw_metadata:
                metadata["provider_metadata"] = response.raw_metadata

            content, steps = self._post_process(response.text, decision, metadata)
            keyword_entries = self._annotate(text, decision, metadata)

            assistant_message = await self.store.append(
                conversation_id,
                Message(
                    conversation_id=conversation_id,
                    role=MessageRole.ASSISTANT,
                    content=content,
                    provider=response.provider_id,
                    post_process_steps=steps,
                    citations=response.citations,
                    keyword_entries=keyword_entries,
                    metadata=metadata,
                ),
            )

            set_span_attribute("chat.provider", response.provider_id.value)
            set_span_attribute("chat.used_fallback", used_fallback)
            set_span_status(StatusCode.OK)

        record_chat_turn("completed")
        logger.info(
            "chat_turn_completed",
            conversation_id=conversation_id,
            provider=response.provider_id.value,
            used_fallback=used_fallback,
            post_process_steps=len(steps),
            citations=len(response.citations),
            keyword_entries=len(keyword_entries),
        )
        return TurnResult(
            user_message=user_message,
            assistant_message=assistant_message,
            decision=decision,
        )

    async def _generate(
        self,
        query: str,
        history: List[Message],
        decision: RoutingDecision,
    ) -> Tuple[ProviderResponse, bool]:
        """Call the selected adapter, retrying once on the fallback provider."""
        selected = decision.provider
        try:
            return await self._call_provider(selected, query, history, decision), False
        except ProviderError as exc:
            if not self.fallback_policy.should_fallback(selected, exc):
                raise
            fallback = self.fallback_policy.fallback_provider
            logger.warning(
                "provider_fallback",
                from_provider=selected.value,
                to_provider=fallback.value,
                code=exc.code.value,
                http_status=exc.http_status,
            )
            record_provider_fallback(selected.value, fallback.value)
            return await self._call_provider(fallback, query, history, decision), True

    async def _call_provider(
        self,
        kind: ProviderKind,
        query: str,
        history: List[Message],
        decision: RoutingDecision,
    ) -> ProviderResponse:
        tracer = get_tracer()
        with tracer.start_as_current_span("provider.generate"):
            set_span_attribute("provider.kind", kind.value)
            try:
                response = await self.registry.get(kind).generate(query, history, decision)
            except ProviderError as exc:
                record_exception(exc)
                set_span_attribute("provider.error_code", exc.code.value)
                raise
            set_span_attribute("provider.citations", len(response.citations))
            return response

    def _post_process(
        self,
        text: str,
        decision: RoutingDecision,
        metadata: Dict[str, Any],
    ) -> Tuple[str, List[PostProcessStep]]:
        if not decision.requires_post_process:
            return text, []
        try:
            with get_tracer().start_as_current_span("craft.process"):
                result = self.pipeline.process(
                    text,
                    target_region=decision.target_region,
                    focus_term=decision.focus_term,
                )
        except Exception as exc:
            record_pipeline_failure("post_process")
            metadata["post_process_failed"] = True
            logger.error(
                "craft_pipeline_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return text, []
        return result.text, result.steps

    def _annotate(
        self,
        query: str,
        decision: RoutingDecision,
        metadata: Dict[str, Any],
    ) -> List[KeywordEntry]:
        if not decision.requires_keyword_annotation:
            return []
        try:
            with get_tracer().start_as_current_span("keywords.annotate"):
                # The focus term is already extracted; only raw text is stripped
                return self.annotator.annotate(
                    decision.focus_term or query,
                    target_region=decision.target_region,
                    strip_request=not decision.focus_term,
                )
        except Exception as exc:
            record_pipeline_failure("keyword_annotation")
            metadata["keyword_annotation_failed"] = True
            logger.error(
                "keyword_annotation_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return []


_chat_orchestration_service: Optional[ChatOrchestrationService] = None


def get_chat_orchestration_service() -> ChatOrchestrationService:
    """Global singleton accessor for the chat orchestration service."""
    global _chat_orchestration_service
    if _chat_orchestration_service is None:
        _chat_orchestration_service = ChatOrchestrationService(
            store=get_conversation_store(),
            registry=get_provider_registry(),
            credit_ledger=get_credit_ledger(),
        )
    return _chat_orchestration_service
