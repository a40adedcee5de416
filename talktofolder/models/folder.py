"""Folder model"""

import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class IndexStatus(str, enum.Enum):
    """Folder-level indexing lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_counts(cls, success_count: int, error_count: int) -> "IndexStatus":
        """Final status of an indexing run"""
        if success_count > 0 and error_count == 0:
            return cls.COMPLETED
        if success_count > 0:
            return cls.PARTIAL
        return cls.FAILED


class Folder(Base):
    """Google Drive folder registered by a user"""

    __tablename__ = "folders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    drive_id = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    index_status = Column(String(20), default=IndexStatus.PENDING.value, nullable=False, index=True)
    last_indexed = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="folders")
    files = relationship("DriveFile", back_populates="folder", cascade="all, delete-orphan")
    chat = relationship("Chat", back_populates="folder", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('user_id', 'drive_id', name='uq_folder_user_drive'),
        Index('idx_folder_user_status', 'user_id', 'index_status'),
    )

    def __repr__(self):
        return f"<Folder(id={self.id}, name={self.name}, status={self.index_status})>"
