"""Chat and message persistence"""

from sqlalchemy.orm import Session
from talktofolder.models.chat import Chat
from talktofolder.models.folder import Folder
from talktofolder.models.message import Message
from talktofolder.exceptions import NotFoundException
from datetime import datetime, timedelta
import logging
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

# Smallest step the stored timestamps can still tell apart
ORDERING_STEP = timedelta(microseconds=1)


def get_or_create_chat(folder: Folder, db: Session) -> Chat:
    """Get the folder's chat or create it"""
    chat = db.query(Chat).filter(Chat.folder_id == folder.id).first()

    if not chat:
        now = datetime.utcnow()
        chat = Chat(folder_id=folder.id, created_at=now, updated_at=now)
        db.add(chat)
        db.commit()
        db.refresh(chat)
        logger.info(f"Created new chat: {chat.id} for folder {folder.id}")

    return chat


def get_chat_for_user(chat_id: str, user_id: str, db: Session) -> Chat:
    """Load a chat owned by the user or raise NotFoundException"""
    chat = db.query(Chat).join(Folder, Chat.folder_id == Folder.id).filter(
        Chat.id == chat_id,
        Folder.user_id == user_id
    ).first()

    if not chat:
        raise NotFoundException(f"Chat {chat_id} not found")

    return chat


def save_user_message(chat_id: str, content: str, db: Session) -> Message:
    """Save user message to database"""
    message = Message(
        chat_id=chat_id,
        role="user",
        content=content,
        created_at=datetime.utcnow()
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info(f"Saved user message: {message.id}")
    return message


def save_assistant_message(
    chat_id: str,
    content: str,
    db: Session,
    citations: Optional[List[Dict[str, Any]]] = None,
    after: Optional[Message] = None
) -> Message:
    """
    Save assistant message to database

    Args:
        chat_id: Chat the reply belongs to
        content: Reply text
        db: Database session
        citations: Source records for vector-search replies
        after: Message the reply answers; the reply is timestamped strictly
            later than it

    Returns:
        The stored message
    """
    created_at = datetime.utcnow()
    if after is not None and after.created_at is not None and created_at <= after.created_at:
        created_at = after.created_at + ORDERING_STEP

    message = Message(
        chat_id=chat_id,
        role="assistant",
        content=content,
        citations=citations,
        created_at=created_at
    )
    db.add(message)
    # Chat activity moves with the reply, in the same commit
    db.query(Chat).filter(Chat.id == chat_id).update(
        {Chat.updated_at: created_at},
        synchronize_session=False
    )
    db.commit()
    db.refresh(message)
    logger.info(f"Saved assistant message: {message.id}")
    return message


def get_history(
    chat_id: str,
    db: Session,
    limit: int = 10,
    exclude_message_id: Optional[str] = None
) -> List[Dict[str, str]]:
    """
    Get recent chat history

    Args:
        chat_id: Chat ID
        db: Database session
        limit: Max number of prior messages
        exclude_message_id: Message to leave out, normally the one being answered

    Returns:
        Role/content dicts, oldest first
    """
    query = db.query(Message).filter(Message.chat_id == chat_id)
    if exclude_message_id:
        query = query.filter(Message.id != exclude_message_id)

    messages = query.order_by(Message.created_at.desc()).limit(limit).all()

    # Return in chronological order
    return [
        {"role": message.role, "content": message.content}
        for message in reversed(messages)
    ]


def list_messages(chat_id: str, db: Session) -> List[Message]:
    """Full transcript, oldest first"""
    return db.query(Message).filter(
        Message.chat_id == chat_id
    ).order_by(Message.created_at.asc()).all()


def recent_chats(user_id: str, db: Session, limit: int = 10) -> List[Chat]:
    """Most recently touched chats of a user"""
    return db.query(Chat).join(Folder, Chat.folder_id == Folder.id).filter(
        Folder.user_id == user_id
    ).order_by(Chat.updated_at.desc()).limit(limit).all()
