"""Drive file model"""

import uuid
from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class DriveFile(Base):
    """A document inside a registered folder"""

    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)
    drive_id = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=True)
    indexed = Column(Boolean, default=False, nullable=False)
    last_modified = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    folder = relationship("Folder", back_populates="files")
    chunks = relationship("FileChunk", back_populates="file", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_file_folder_indexed', 'folder_id', 'indexed'),
    )

    def __repr__(self):
        return f"<DriveFile(id={self.id}, name={self.name}, indexed={self.indexed})>"
