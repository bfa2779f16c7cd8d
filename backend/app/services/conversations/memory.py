"""
In-memory ConversationStore.

Used for tests and when no database is configured. One asyncio.Lock per
conversation serializes appends and title inference for that
conversation only.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.core.logging import get_logger
from app.services.ai.schema import Conversation, ConversationNotFoundError, Message
from app.services.conversations.base import ConversationStore, derive_title

logger = get_logger(__name__)


class InMemoryConversationStore(ConversationStore):
    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        return lock

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def create_conversation(
        self,
        title: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(title=title or None, account_id=account_id)
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        logger.info("conversation_created", conversation_id=conversation.id)
        return conversation.model_copy()

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return self._require(conversation_id).model_copy()

    async def list_conversations(self, account_id: Optional[str] = None) -> List[Conversation]:
        conversations = [
            c for c in self._conversations.values()
            if account_id is None or c.account_id == account_id
        ]
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy() for c in conversations]

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock_for(conversation_id):
            self._require(conversation_id)
            del self._conversations[conversation_id]
            self._messages.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        logger.info("conversation_deleted", conversation_id=conversation_id)

    async def append(self, conversation_id: str, message: Message) -> Message:
        async with self._lock_for(conversation_id):
            conversation = self._require(conversation_id)
            stored = message.model_copy(update={"conversation_id": conversation_id})
            self._messages[conversation_id].append(stored)
            conversation.updated_at = max(stored.created_at, datetime.now(timezone.utc))
        return stored.model_copy()

    async def get_history(self, conversation_id: str) -> List[Message]:
        self._require(conversation_id)
        return [m.model_copy() for m in self._messages[conversation_id]]

    async def set_title_if_absent(self, conversation_id: str, text: str) -> Optional[str]:
        async with self._lock_for(conversation_id):
            conversation = self._require(conversation_id)
            if not conversation.title:
                title = derive_title(text)
                if title:
                    conversation.title = title
            return conversation.title
