"""
Conversation store selection.

Uses Supabase when SUPABASE_URL and SUPABASE_SERVICE_KEY are configured,
otherwise an in-memory store (conversations are lost on restart).
"""
from typing import Optional

from app.core.database import get_supabase_client
from app.core.logging import get_logger
from app.services.conversations.base import ConversationStore
from app.services.conversations.memory import InMemoryConversationStore
from app.services.conversations.supabase_store import SupabaseConversationStore

logger = get_logger(__name__)

_conversation_store: Optional[ConversationStore] = None


def get_conversation_store() -> ConversationStore:
    """Get global conversation store."""
    global _conversation_store
    if _conversation_store is None:
        client = get_supabase_client()
        if client is not None:
            _conversation_store = SupabaseConversationStore(client)
            logger.info("conversation_store_selected", backend="supabase")
        else:
            _conversation_store = InMemoryConversationStore()
            logger.warning(
                "conversation_store_selected",
                backend="memory",
                message="Supabase not configured. Conversations will not survive a restart.",
            )
    return _conversation_store
