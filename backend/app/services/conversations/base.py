"""
ConversationStore interface.

Core logic depends only on this interface. Implementations must keep
appends to different conversations independent and serialize appends to
the same conversation.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from app.services.ai.schema import Conversation, Message

TITLE_MAX_LENGTH = 50


def derive_title(text: str) -> str:
    """First 50 characters of the message, with an ellipsis when truncated."""
    clean = " ".join(text.split())
    if len(clean) > TITLE_MAX_LENGTH:
        return clean[:TITLE_MAX_LENGTH] + "..."
    return clean


class ConversationStore(ABC):
    @abstractmethod
    async def create_conversation(
        self,
        title: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Conversation:
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Raises ConversationNotFoundError."""

    @abstractmethod
    async def list_conversations(self, account_id: Optional[str] = None) -> List[Conversation]:
        """Most recently updated first."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Deletes the conversation and its messages. Raises ConversationNotFoundError."""

    @abstractmethod
    async def append(self, conversation_id: str, message: Message) -> Message:
        """Append a message and bump the conversation's updated_at."""

    @abstractmethod
    async def get_history(self, conversation_id: str) -> List[Message]:
        """Messages in append order."""

    @abstractmethod
    async def set_title_if_absent(self, conversation_id: str, text: str) -> Optional[str]:
        """Set the title from `text` unless one exists. Returns the resulting title."""
