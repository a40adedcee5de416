"""Chat turn orchestration: managed assistant first, vector search as fallback"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
import time
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from talktofolder.exceptions import AssistantServiceError, DatabaseException
from talktofolder.models.chat import Chat
from talktofolder.models.message import Message
from talktofolder.rag.assistant_client import AssistantClient, get_assistant_client
from talktofolder.rag.config import rag_config
from talktofolder.rag.generator import Generator, get_generator
from talktofolder.rag.prompt_templates import FAILURE_MESSAGE, build_fallback_prompt
from talktofolder.rag.retriever import Retriever
from talktofolder.services import chat_service

logger = logging.getLogger(__name__)

VECTOR_SEARCH_FALLBACK = "vector-search"
ASSISTANT_ERROR = "Assistant processing error"


@dataclass
class ChatTurnResult:
    """What a chat turn produced; the reply is always persisted"""
    response: str
    message_id: str
    citations: Optional[List[Dict[str, Any]]] = None
    usage: Optional[Dict[str, Any]] = None
    fallback: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class ChatOrchestrator:
    """Runs one chat turn through the assistant, fallback and failure stages"""

    def __init__(
        self,
        assistant_client: Optional[AssistantClient] = None,
        retriever: Optional[Retriever] = None,
        generator: Optional[Generator] = None,
        history_limit: Optional[int] = None
    ):
        self._assistant_client = assistant_client
        self.retriever = retriever or Retriever()
        self._generator = generator
        self.history_limit = history_limit or rag_config.assistant_history_limit

    @property
    def assistant_client(self) -> AssistantClient:
        if self._assistant_client is None:
            self._assistant_client = get_assistant_client()
        return self._assistant_client

    @property
    def generator(self) -> Generator:
        if self._generator is None:
            self._generator = get_generator()
        return self._generator

    def _save_user_message(self, db: Session, chat: Chat, message: str) -> Message:
        try:
            return chat_service.save_user_message(chat.id, message, db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not persist user message for chat {chat.id}: {e}")
            raise DatabaseException(f"Could not save message: {e}")

    def _assistant_reply(self, db: Session, chat: Chat, user_id: str, user_message: Message) -> ChatTurnResult:
        history = chat_service.get_history(
            chat.id,
            db,
            limit=self.history_limit,
            exclude_message_id=user_message.id
        )
        reply = self.assistant_client.chat_with_assistant(
            db,
            user_id,
            user_message.content,
            history,
            folder_id=chat.folder_id
        )

        saved = chat_service.save_assistant_message(chat.id, reply.content, db, after=user_message)

        return ChatTurnResult(response=reply.content, message_id=saved.id, usage=reply.usage)

    def _vector_search_reply(self, db: Session, chat: Chat, user_id: str, user_message: Message) -> ChatTurnResult:
        results = self.retriever.retrieve(
            user_message.content,
            user_id,
            folder_id=chat.folder_id,
            top_k=rag_config.top_k,
            min_score=rag_config.min_score
        )
        context = self.retriever.format_context(results)
        citations = self.retriever.get_citations(results)

        system_prompt = build_fallback_prompt(chat.folder.name, context, user_message.content)
        response = self.generator.complete(
            system_prompt,
            user_message.content,
            temperature=rag_config.fallback_temperature,
            max_tokens=rag_config.fallback_max_tokens
        )

        saved = chat_service.save_assistant_message(
            chat.id,
            response,
            db,
            citations=citations,
            after=user_message
        )

        return ChatTurnResult(
            response=response,
            message_id=saved.id,
            citations=citations,
            fallback=VECTOR_SEARCH_FALLBACK
        )

    def _failure_reply(self, db: Session, chat: Chat, user_message: Message) -> ChatTurnResult:
        try:
            saved = chat_service.save_assistant_message(chat.id, FAILURE_MESSAGE, db, after=user_message)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not persist failure reply for chat {chat.id}: {e}")
            raise DatabaseException(f"Could not save message: {e}")

        return ChatTurnResult(response=FAILURE_MESSAGE, message_id=saved.id, error=ASSISTANT_ERROR)

    def _try_vector_search(self, db: Session, chat: Chat, user_id: str, user_message: Message) -> ChatTurnResult:
        try:
            return self._vector_search_reply(db, chat, user_id, user_message)
        except Exception as e:
            db.rollback()
            logger.error(f"[User {user_id}] Vector search fallback failed: {e}", exc_info=True)
            return self._failure_reply(db, chat, user_message)

    def handle_assistant_turn(self, db: Session, chat: Chat, user_id: str, message: str) -> ChatTurnResult:
        """
        Answer a message with the managed assistant, degrading gracefully

        Args:
            db: Database session
            chat: Chat the message belongs to
            user_id: Owner of the chat
            message: User message text

        Returns:
            ChatTurnResult; a failure still yields a persisted apologetic reply
        """
        start_time = time.time()
        user_message = self._save_user_message(db, chat, message)

        try:
            result = self._assistant_reply(db, chat, user_id, user_message)
            logger.info(f"[User {user_id}] Assistant replied in {int((time.time() - start_time) * 1000)}ms")
            return result

        except AssistantServiceError as e:
            db.rollback()
            if not e.is_terms_error:
                logger.error(f"[User {user_id}] Assistant failed ({e.reason.value}): {e}")
                return self._failure_reply(db, chat, user_message)
            logger.warning(f"[User {user_id}] Assistant terms not accepted, using vector search fallback")

        except Exception as e:
            db.rollback()
            logger.error(f"[User {user_id}] Error in assistant chat: {e}", exc_info=True)
            return self._failure_reply(db, chat, user_message)

        return self._try_vector_search(db, chat, user_id, user_message)

    def handle_vector_turn(self, db: Session, chat: Chat, user_id: str, message: str) -> ChatTurnResult:
        """Answer a message with vector search directly"""
        user_message = self._save_user_message(db, chat, message)
        return self._try_vector_search(db, chat, user_id, user_message)


def get_chat_orchestrator() -> ChatOrchestrator:
    """Orchestrator wired to the shared clients"""
    return ChatOrchestrator()
