"""Managed assistant identity model"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class AssistantIdentity(Base):
    """The single managed assistant owned by a user"""

    __tablename__ = "assistant_identities"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    assistant_name = Column(String(255), nullable=False)
    # Remote OpenAI vector store; NULL until resolved or created
    vector_store_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="assistant_identity")

    def __repr__(self):
        return f"<AssistantIdentity(user_id={self.user_id}, name={self.assistant_name})>"
