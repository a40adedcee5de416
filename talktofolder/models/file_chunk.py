"""File chunk model for tracking embedded chunks"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from talktofolder.database.base import Base


class FileChunk(Base):
    """Chunk bookkeeping; the chunk text itself lives in Qdrant"""

    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, index=True)
    file_id = Column(String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    start_index = Column(Integer, nullable=False)
    end_index = Column(Integer, nullable=False)
    point_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    file = relationship("DriveFile", back_populates="chunks")

    __table_args__ = (
        Index('idx_file_chunk', 'file_id', 'chunk_index'),
    )

    def __repr__(self):
        return f"<FileChunk(id={self.id}, file_id={self.file_id}, index={self.chunk_index})>"
