"""
Conversation and chat message endpoints.

POST   /api/conversations                      create a conversation
GET    /api/conversations                      list conversations (most recent first)
GET    /api/conversations/{conversation_id}    fetch one conversation
DELETE /api/conversations/{conversation_id}    delete a conversation and its messages
GET    /api/conversations/{conversation_id}/messages   message history
POST   /api/conversations/{conversation_id}/messages   send a user message

X-User-ID identifies the account for credits and listing. Requests
without it are anonymous and unmetered.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from pydantic import BaseModel, Field

from app.core.logging import get_logger, set_conversation_id
from app.services.ai.orchestration import (
    ChatOrchestrationService,
    get_chat_orchestration_service,
)
from app.services.ai.schema import (
    Conversation,
    ConversationNotFoundError,
    InsufficientCreditsError,
    InvalidMessageError,
    Message,
    MessageProcessingError,
    TurnResult,
)
from app.services.conversations.base import ConversationStore
from app.services.conversations.factory import get_conversation_store

logger = get_logger(__name__)

router = APIRouter()

LOGGED_TEXT_LENGTH = 80


class CreateConversationRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=200)


class SendMessageRequest(BaseModel):
    content: str = Field(..., description="User message text")


def _not_found(exc: ConversationNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: Optional[CreateConversationRequest] = None,
    x_user_id: Optional[str] = Header(None),
    store: ConversationStore = Depends(get_conversation_store),
):
    title = body.title if body and body.title and body.title.strip() else None
    conversation = await store.create_conversation(title=title, account_id=x_user_id)
    logger.info("conversation_created", conversation_id=conversation.id, has_title=title is not None)
    return conversation


@router.get("", response_model=List[Conversation])
async def list_conversations(
    x_user_id: Optional[str] = Header(None),
    store: ConversationStore = Depends(get_conversation_store),
):
    return await store.list_conversations(account_id=x_user_id)


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    try:
        return await store.get_conversation(conversation_id)
    except ConversationNotFoundError as exc:
        raise _not_found(exc)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    try:
        await store.delete_conversation(conversation_id)
    except ConversationNotFoundError as exc:
        raise _not_found(exc)
    logger.info("conversation_deleted", conversation_id=conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{conversation_id}/messages", response_model=List[Message])
async def list_messages(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    try:
        await store.get_conversation(conversation_id)
        return await store.get_history(conversation_id)
    except ConversationNotFoundError as exc:
        raise _not_found(exc)


@router.post("/{conversation_id}/messages", response_model=TurnResult)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    x_user_id: Optional[str] = Header(None),
    service: ChatOrchestrationService = Depends(get_chat_orchestration_service),
):
    """
    Route the message to a provider and return both persisted messages.

    Errors:
        400 empty message, 402 no credits, 404 unknown conversation,
        502 provider failure (the user message stays persisted)
    """
    set_conversation_id(conversation_id)
    logger.info(
        "chat_message_received",
        text=body.content[:LOGGED_TEXT_LENGTH],
        length=len(body.content),
    )
    try:
        return await service.handle_user_message(
            conversation_id,
            body.content,
            account_id=x_user_id,
        )
    except InvalidMessageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except InsufficientCreditsError:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="Insufficient credits")
    except ConversationNotFoundError as exc:
        raise _not_found(exc)
    except MessageProcessingError:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to process message")
