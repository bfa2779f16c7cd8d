"""
Supabase-backed ConversationStore.

Tables:
- conversations(id, title, account_id, created_at, updated_at)
- messages(id, conversation_id, role, content, provider, post_process_steps,
  citations, keyword_entries, metadata, created_at)

The supabase client is synchronous, so every query runs in a worker
thread. A per-conversation asyncio.Lock serializes appends within this
process; the title update is conditional on `title is null` so concurrent
writers elsewhere cannot overwrite an existing title.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from app.core.logging import get_logger
from app.services.ai.schema import Conversation, ConversationNotFoundError, Message
from app.services.conversations.base import ConversationStore, derive_title

logger = get_logger(__name__)

CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"


class SupabaseConversationStore(ConversationStore):
    def __init__(self, client: Client):
        self.client = client
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    async def _run(self, operation: str, query: Any) -> List[Dict[str, Any]]:
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error(
                "conversation_store_query_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise
        return response.data or []

    async def _fetch_conversation(self, conversation_id: str) -> Conversation:
        rows = await self._run(
            "get_conversation",
            self.client.table(CONVERSATIONS_TABLE).select("*").eq("id", conversation_id).limit(1),
        )
        if not rows:
            raise ConversationNotFoundError(conversation_id)
        return Conversation.model_validate(rows[0])

    async def create_conversation(
        self,
        title: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(title=title or None, account_id=account_id)
        rows = await self._run(
            "create_conversation",
            self.client.table(CONVERSATIONS_TABLE).insert(conversation.model_dump(mode="json")),
        )
        logger.info("conversation_created", conversation_id=conversation.id)
        return Conversation.model_validate(rows[0]) if rows else conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return await self._fetch_conversation(conversation_id)

    async def list_conversations(self, account_id: Optional[str] = None) -> List[Conversation]:
        query = self.client.table(CONVERSATIONS_TABLE).select("*")
        if account_id is not None:
            query = query.eq("account_id", account_id)
        rows = await self._run("list_conversations", query.order("updated_at", desc=True))
        return [Conversation.model_validate(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._fetch_conversation(conversation_id)
        await self._run(
            "delete_messages",
            self.client.table(MESSAGES_TABLE).delete().eq("conversation_id", conversation_id),
        )
        await self._run(
            "delete_conversation",
            self.client.table(CONVERSATIONS_TABLE).delete().eq("id", conversation_id),
        )
        self._locks.pop(conversation_id, None)
        logger.info("conversation_deleted", conversation_id=conversation_id)

    async def append(self, conversation_id: str, message: Message) -> Message:
        async with self._lock_for(conversation_id):
            await self._fetch_conversation(conversation_id)
            stored = message.model_copy(update={"conversation_id": conversation_id})
            rows = await self._run(
                "append_message",
                self.client.table(MESSAGES_TABLE).insert(stored.model_dump(mode="json")),
            )
            await self._run(
                "touch_conversation",
                self.client.table(CONVERSATIONS_TABLE)
                .update({"updated_at": datetime.now(timezone.utc).isoformat()})
                .eq("id", conversation_id),
            )
        return Message.model_validate(rows[0]) if rows else stored

    async def get_history(self, conversation_id: str) -> List[Message]:
        await self._fetch_conversation(conversation_id)
        rows = await self._run(
            "get_history",
            self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at"),
        )
        return [Message.model_validate(row) for row in rows]

    async def set_title_if_absent(self, conversation_id: str, text: str) -> Optional[str]:
        async with self._lock_for(conversation_id):
            conversation = await self._fetch_conversation(conversation_id)
            if conversation.title:
                return conversation.title
            title = derive_title(text)
            if not title:
                return None
            await self._run(
                "set_title",
                self.client.table(CONVERSATIONS_TABLE)
                .update({"title": title})
                .eq("id", conversation_id)
                .is_("title", "null"),
            )
            return (await self._fetch_conversation(conversation_id)).title
