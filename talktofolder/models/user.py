"""User model"""

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class User(Base):
    """Account bound to one Google identity"""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    # Written by the OAuth layer, read when extracting Drive content
    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    folders = relationship("Folder", back_populates="user", cascade="all, delete-orphan")
    assistant_identity = relationship(
        "AssistantIdentity", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
