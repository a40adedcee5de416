"""Message model"""

import uuid
from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Index, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class Message(Base):
    """Message model for storing chat turns"""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    citations = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        Index('idx_chat_created', 'chat_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, role={self.role}, chat_id={self.chat_id})>"
