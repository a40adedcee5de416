"""Chat endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import logging

from talktofolder.config import settings
from talktofolder.database.session import get_db
from talktofolder.exceptions import RateLimitException
from talktofolder.models.user import User
from talktofolder.api.endpoints.folders import chat_response
from talktofolder.rag.chat_orchestrator import ChatOrchestrator, get_chat_orchestrator
from talktofolder.schemas.chat import (
    ChatRequest,
    ChatTurnResponse,
    ChatResponse,
    ChatMessagesResponse,
    MessageResponse
)
from talktofolder.security.auth import get_current_user
from talktofolder.security.rate_limiter import rate_limiter
from talktofolder.services import chat_service
from talktofolder.services.indexing_service import IndexingService, get_indexing_service

logger = logging.getLogger(__name__)

router = APIRouter()


def enforce_chat_rate_limit(current_user: User = Depends(get_current_user)) -> User:
    """Per-user message rate limit"""
    if not rate_limiter.allow_request(
        f"chat:{current_user.id}",
        limit=settings.RATE_LIMIT_MESSAGES_PER_MINUTE
    ):
        raise RateLimitException("Too many messages, please wait a moment")
    return current_user


@router.post("/chat", response_model=ChatTurnResponse, response_model_exclude_none=True)
def chat_vector_search(
    request: ChatRequest,
    current_user: User = Depends(enforce_chat_rate_limit),
    db: Session = Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator)
):
    """Answer a message from the folder's vector index"""
    chat = chat_service.get_chat_for_user(request.chat_id, current_user.id, db)
    result = orchestrator.handle_vector_turn(db, chat, current_user.id, request.message)
    return ChatTurnResponse(**result.to_dict())


@router.post("/chat-assistant", response_model=ChatTurnResponse, response_model_exclude_none=True)
def chat_assistant(
    request: ChatRequest,
    current_user: User = Depends(enforce_chat_rate_limit),
    db: Session = Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator)
):
    """Answer a message with the managed assistant, falling back to vector search"""
    chat = chat_service.get_chat_for_user(request.chat_id, current_user.id, db)
    result = orchestrator.handle_assistant_turn(db, chat, current_user.id, request.message)
    return ChatTurnResponse(**result.to_dict())


@router.get("/chat/{chat_id}/messages", response_model=ChatMessagesResponse)
def get_chat_messages(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Chat transcript, oldest first"""
    chat = chat_service.get_chat_for_user(chat_id, current_user.id, db)
    messages = chat_service.list_messages(chat.id, db)
    return ChatMessagesResponse(
        chat=chat_response(chat),
        messages=[MessageResponse.model_validate(message) for message in messages]
    )


@router.delete("/chat/{chat_id}")
def delete_chat(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    indexing_service: IndexingService = Depends(get_indexing_service)
):
    """Delete a chat and reset its folder for re-indexing"""
    chat = chat_service.get_chat_for_user(chat_id, current_user.id, db)
    indexing_service.delete_chat(db, chat)
    return {"success": True, "chat_id": chat_id}


@router.get("/chats/recent", response_model=List[ChatResponse])
def recent_chats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The user's 10 most recently active chats"""
    chats = chat_service.recent_chats(current_user.id, db, limit=10)
    return [chat_response(chat) for chat in chats]
