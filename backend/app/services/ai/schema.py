"""
Pydantic models and error types for the chat routing pipeline.

Data model:
- RoutingDecision: classifier output, embedded in assistant message metadata
- ProviderResponse / Citation: normalized provider output
- PostProcessStep: audit record emitted by every C.R.A.F.T stage
- KeywordEntry: simulated keyword metrics
- Message / Conversation: persisted records
- TurnResult: what handle_user_message returns to the web layer

Errors:
- ChatServiceError is the common base
- ProviderError carries a code and an HTTP status so the fallback policy
  can decide on retry eligibility without string matching
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field, computed_field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ProviderKind(str, Enum):
    """Provider capability selected by the classifier."""

    FAST = "fast"
    RESEARCH = "research"
    COMPLEX = "complex"


class Complexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"
    RESEARCH = "research"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# Fixed C.R.A.F.T stage names, in execution order.
STEP_NAMES = ("cut", "review", "add", "fact-check", "trust-build")


class RoutingDecision(BaseModel):
    """
    Result of classifying a single query.

    `matched_rule` names the precedence branch that chose the provider so the
    decision is auditable from message metadata.
    """

    complexity: Complexity
    provider: ProviderKind
    requires_post_process: bool = False
    requires_keyword_annotation: bool = False
    target_region: str = "usa"
    detected_language: str = "en"
    focus_term: Optional[str] = None
    matched_rule: str = "default"


class Citation(BaseModel):
    url: str
    title: str
    source_domain: str


class ProviderResponse(BaseModel):
    """Normalized provider output. `text` is passed through unmodified."""

    text: str
    provider_id: ProviderKind
    citations: List[Citation] = Field(default_factory=list)
    raw_metadata: Dict[str, Any] = Field(default_factory=dict)


class PostProcessStep(BaseModel):
    name: str = Field(..., description="cut | review | add | fact-check | trust-build")
    description: str
    applied: bool

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if value not in STEP_NAMES:
            raise ValueError(f"name must be one of {list(STEP_NAMES)}")
        return value


class PostProcessResult(BaseModel):
    text: str
    steps: List[PostProcessStep]


class KeywordEntry(BaseModel):
    """Simulated keyword metrics. Not a live data feed."""

    term: str
    estimated_volume: int = Field(..., ge=0)
    estimated_difficulty: str = Field(..., description="Low | Medium | High")
    search_intent: str

    @computed_field  # type: ignore[misc]
    @property
    def volume_label(self) -> str:
        if self.estimated_volume >= 10000:
            return f"{self.estimated_volume // 1000}k/mo"
        return f"{self.estimated_volume:,}/mo"


class Message(BaseModel):
    """
    Persisted chat message.

    `post_process_steps`, `citations` and `keyword_entries` are always lists,
    empty when the corresponding stage did not run.
    """

    id: str = Field(default_factory=_new_id)
    conversation_id: str
    role: MessageRole
    content: str
    provider: Optional[ProviderKind] = None
    post_process_steps: List[PostProcessStep] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    keyword_entries: List[KeywordEntry] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


class Conversation(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: Optional[str] = None
    account_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class TurnResult(BaseModel):
    user_message: Message
    assistant_message: Message
    decision: RoutingDecision


# ============================================================================
# ERRORS
# ============================================================================


class ChatServiceError(Exception):
    """Base class for chat pipeline errors."""


class ClassificationError(ChatServiceError):
    """Classifier failure. The classifier is total over strings, so this is not expected."""


class ProviderErrorCode(str, Enum):
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    AUTH_FAILED = "AUTH_FAILED"
    MISSING_API_KEY = "MISSING_API_KEY"
    NOT_FOUND = "NOT_FOUND"
    CLIENT_ERROR = "CLIENT_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"


class ProviderError(ChatServiceError):
    """Raised by provider adapters on transport or API failure."""

    def __init__(
        self,
        code: ProviderErrorCode,
        message: str,
        http_status: Optional[int] = None,
        provider: Optional[ProviderKind] = None,
    ):
        super().__init__(message)
        self.code = code
        self.http_status = http_status
        self.message = message
        self.provider = provider

    def __repr__(self) -> str:
        return (
            f"ProviderError(code={self.code.value!r}, http_status={self.http_status!r}, "
            f"provider={self.provider.value if self.provider else None!r})"
        )


class PipelineError(ChatServiceError):
    """Raised when post-processing or keyword annotation fails."""

    def __init__(self, component: str, message: str):
        super().__init__(message)
        self.component = component


class MessageProcessingError(ChatServiceError):
    """The assistant turn failed. The user message stays persisted."""


class InvalidMessageError(ChatServiceError):
    """Inbound message text is empty or whitespace-only."""


class ConversationNotFoundError(ChatServiceError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class InsufficientCreditsError(ChatServiceError):
    def __init__(self, account_id: str):
        super().__init__(f"No credits remaining for account {account_id}")
        self.account_id = account_id
