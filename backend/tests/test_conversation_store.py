"""
Unit tests for the in-memory conversation store.
"""
import asyncio

import pytest

from app.services.ai.schema import ConversationNotFoundError, Message, MessageRole
from app.services.conversations.base import derive_title
from app.services.conversations.memory import InMemoryConversationStore


def _user(conversation_id, content):
    return Message(conversation_id=conversation_id, role=MessageRole.USER, content=content)


@pytest.fixture
def store():
    return InMemoryConversationStore()


def test_derive_title():
    assert derive_title("  write a   blog post ") == "write a blog post"
    long_text = "x" * 60
    assert derive_title(long_text) == "x" * 50 + "..."
    assert derive_title("x" * 50) == "x" * 50


@pytest.mark.asyncio
async def test_append_preserves_order(store):
    conversation = await store.create_conversation()

    for i in range(5):
        await store.append(conversation.id, _user(conversation.id, f"message {i}"))

    history = await store.get_history(conversation.id)
    assert [m.content for m in history] == [f"message {i}" for i in range(5)]


@pytest.mark.asyncio
async def test_append_binds_message_to_conversation(store):
    conversation = await store.create_conversation()

    stored = await store.append(conversation.id, _user("other", "hello"))

    assert stored.conversation_id == conversation.id


@pytest.mark.asyncio
async def test_title_set_once_from_first_message(store):
    conversation = await store.create_conversation()

    first = await store.set_title_if_absent(conversation.id, "Write a blog post about renewable energy for homeowners")
    second = await store.set_title_if_absent(conversation.id, "something else")

    assert first == "Write a blog post about renewable energy for homeo..."
    assert second == first
    assert (await store.get_conversation(conversation.id)).title == first


@pytest.mark.asyncio
async def test_explicit_title_is_kept(store):
    conversation = await store.create_conversation(title="My notes")

    assert await store.set_title_if_absent(conversation.id, "hello") == "My notes"


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost(store):
    first = await store.create_conversation()
    second = await store.create_conversation()

    await asyncio.gather(*(
        store.append(conv.id, _user(conv.id, f"{conv.id}-{i}"))
        for i in range(20)
        for conv in (first, second)
    ))

    assert len(await store.get_history(first.id)) == 20
    assert len(await store.get_history(second.id)) == 20
    assert all(m.content.startswith(first.id) for m in await store.get_history(first.id))


@pytest.mark.asyncio
async def test_unknown_conversation_raises(store):
    with pytest.raises(ConversationNotFoundError):
        await store.get_conversation("missing")
    with pytest.raises(ConversationNotFoundError):
        await store.append("missing", _user("missing", "hello"))
    with pytest.raises(ConversationNotFoundError):
        await store.get_history("missing")


@pytest.mark.asyncio
async def test_delete_removes_conversation_and_messages(store):
    conversation = await store.create_conversation()
    await store.append(conversation.id, _user(conversation.id, "hello"))

    await store.delete_conversation(conversation.id)

    with pytest.raises(ConversationNotFoundError):
        await store.get_history(conversation.id)
    with pytest.raises(ConversationNotFoundError):
        await store.delete_conversation(conversation.id)


@pytest.mark.asyncio
async def test_list_most_recently_updated_first(store):
    older = await store.create_conversation(account_id="acct")
    newer = await store.create_conversation(account_id="acct")
    await store.create_conversation(account_id="someone-else")

    await asyncio.sleep(0.001)
    await store.append(older.id, _user(older.id, "bump"))

    listed = await store.list_conversations(account_id="acct")

    assert [c.id for c in listed] == [older.id, newer.id]
    assert len(await store.list_conversations()) == 3


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    conversation = await store.create_conversation()
    conversation.title = "mutated"

    assert (await store.get_conversation(conversation.id)).title is None
