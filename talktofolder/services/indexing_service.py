"""Folder indexing coordinator

Two strategies share one status lifecycle: per-file chunking into Qdrant, and
batched upload to the user's managed assistant. A run first claims the folder
with a conditional update, so one folder is never indexed twice at once.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from talktofolder.config import settings
from talktofolder.exceptions import IndexingInProgressException
from talktofolder.models.chat import Chat
from talktofolder.models.drive_file import DriveFile
from talktofolder.models.file_chunk import FileChunk
from talktofolder.models.folder import Folder, IndexStatus
from talktofolder.rag.assistant_client import AssistantClient, get_assistant_client
from talktofolder.rag.batch_uploader import BatchEntry
from talktofolder.rag.config import rag_config
from talktofolder.rag.text_chunker import TextChunker, text_chunker
from talktofolder.rag.vector_store import VectorStore, get_vector_store, point_id_for
from talktofolder.security.rate_limiter import TokenBucket, indexing_throttle
from talktofolder.services.drive_extractor import TextExtractor

logger = logging.getLogger(__name__)

NO_CONTENT_REASON = "No content extracted"


@dataclass
class FileIndexResult:
    """Outcome for one file"""
    file_id: str
    file_name: str
    status: str  # 'success', 'error' or 'skipped'
    chunk_count: Optional[int] = None
    batch: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class FolderIndexResult:
    """Outcome of one indexing run"""
    folder_id: str
    folder_name: str
    status: str
    total_files: int
    success_count: int = 0
    error_count: int = 0
    results: List[FileIndexResult] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IndexingService:
    """Indexes folders and files for chat"""

    def __init__(
        self,
        vector_store: Optional[VectorStore] = None,
        assistant_client: Optional[AssistantClient] = None,
        chunker: Optional[TextChunker] = None,
        throttle: Optional[TokenBucket] = None,
        stale_after_minutes: Optional[int] = None
    ):
        self._vector_store = vector_store
        self._assistant_client = assistant_client
        self.chunker = chunker or text_chunker
        self.throttle = throttle or indexing_throttle()
        self.stale_after_minutes = stale_after_minutes or settings.INDEXING_STALE_AFTER_MINUTES

    @property
    def vector_store(self) -> VectorStore:
        if self._vector_store is None:
            self._vector_store = get_vector_store()
        return self._vector_store

    @property
    def assistant_client(self) -> AssistantClient:
        if self._assistant_client is None:
            self._assistant_client = get_assistant_client()
        return self._assistant_client

    # ------------------------------------------------------------------
    # Status lifecycle
    # ------------------------------------------------------------------

    def begin_indexing(self, db: Session, folder: Folder):
        """
        Claim the folder for an indexing run

        A run left in 'processing' for longer than the stale window is
        assumed dead and may be taken over.

        Raises:
            IndexingInProgressException: Another run holds the folder
        """
        now = datetime.utcnow()
        cutoff = now - timedelta(minutes=self.stale_after_minutes)

        claimed = db.query(Folder).filter(
            Folder.id == folder.id,
            or_(
                Folder.index_status != IndexStatus.PROCESSING.value,
                Folder.last_indexed.is_(None),
                Folder.last_indexed < cutoff
            )
        ).update(
            {Folder.index_status: IndexStatus.PROCESSING.value, Folder.last_indexed: now},
            synchronize_session=False
        )
        db.commit()

        if not claimed:
            logger.warning(f"Folder {folder.id} is already being indexed")
            raise IndexingInProgressException(f"Folder {folder.name} is already being indexed")

        db.refresh(folder)
        logger.info(f"Started indexing folder {folder.id} ({folder.name})")

    def _finalize(
        self,
        db: Session,
        folder: Folder,
        results: List[FileIndexResult],
        total_files: int
    ) -> FolderIndexResult:
        success_count = sum(1 for r in results if r.status == "success")
        error_count = sum(1 for r in results if r.status == "error")
        status = IndexStatus.from_counts(success_count, error_count)

        folder.index_status = status.value
        folder.last_indexed = datetime.utcnow()
        db.commit()

        logger.info(
            f"Folder {folder.id} indexing finished: {status.value}, "
            f"{success_count} success, {error_count} errors"
        )

        return FolderIndexResult(
            folder_id=folder.id,
            folder_name=folder.name,
            status=status.value,
            total_files=total_files,
            success_count=success_count,
            error_count=error_count,
            results=results
        )

    def _mark_failed(self, db: Session, folder: Folder):
        try:
            db.rollback()
            folder.index_status = IndexStatus.FAILED.value
            folder.last_indexed = datetime.utcnow()
            db.commit()
        except Exception as e:
            logger.error(f"Could not mark folder {folder.id} as failed: {e}")

    # ------------------------------------------------------------------
    # Per-file strategy
    # ------------------------------------------------------------------

    def _index_one(self, db: Session, folder: Folder, file: DriveFile, extractor: TextExtractor) -> FileIndexResult:
        """Extract, chunk and embed one file; errors are captured in the result"""
        self.throttle.acquire()

        try:
            extracted = extractor.extract(file)
            chunks = self.chunker.chunk_by_tokens(
                extracted.content,
                target_tokens=rag_config.chunk_tokens,
                overlap_tokens=rag_config.chunk_overlap_tokens
            )

            if not chunks:
                logger.info(f"No content extracted from {file.name}, skipping")
                return FileIndexResult(file.id, file.name, "skipped", reason=NO_CONTENT_REASON)

            # Remove chunks left by a longer previous version of the file
            self.vector_store.delete_file_vectors(file.id, folder.user_id)
            keys = self.vector_store.index_file_chunks(
                file_id=file.id,
                file_name=file.name,
                folder_id=folder.id,
                folder_name=folder.name,
                user_id=folder.user_id,
                mime_type=file.mime_type,
                chunks=chunks
            )

            db.query(FileChunk).filter(FileChunk.file_id == file.id).delete(synchronize_session=False)
            db.add_all([
                FileChunk(
                    file_id=file.id,
                    chunk_index=chunk.chunk_index,
                    start_index=chunk.start_index,
                    end_index=chunk.end_index,
                    point_id=point_id_for(key)
                )
                for chunk, key in zip(chunks, keys)
            ])
            file.indexed = True
            db.commit()

            return FileIndexResult(file.id, file.name, "success", chunk_count=len(chunks))

        except Exception as e:
            db.rollback()
            logger.error(f"Error indexing file {file.name}: {e}")
            return FileIndexResult(file.id, file.name, "error", error=str(e))

    def index_folder(self, db: Session, folder: Folder, extractor: TextExtractor) -> FolderIndexResult:
        """
        Index every unindexed file of a folder into the vector store

        Args:
            db: Database session
            folder: Folder to index
            extractor: Text source for the folder's files

        Returns:
            FolderIndexResult with one entry per file
        """
        files = db.query(DriveFile).filter(
            DriveFile.folder_id == folder.id,
            DriveFile.indexed.is_(False)
        ).all()

        if not files:
            logger.info(f"All files in folder {folder.id} are already indexed")
            return FolderIndexResult(
                folder_id=folder.id,
                folder_name=folder.name,
                status=folder.index_status,
                total_files=0
            )

        self.begin_indexing(db, folder)

        try:
            results = [self._index_one(db, folder, file, extractor) for file in files]
            return self._finalize(db, folder, results, total_files=len(files))
        except Exception as e:
            logger.error(f"Error indexing folder {folder.id}: {e}", exc_info=True)
            self._mark_failed(db, folder)
            raise

    def index_file(self, db: Session, file: DriveFile, extractor: TextExtractor) -> FileIndexResult:
        """
        Index a single file outside of a folder run

        The file's folder is claimed like a folder run, and its status is
        recomputed from its files afterwards.

        Raises:
            IndexingInProgressException: A run holds the folder
        """
        if file.indexed:
            return FileIndexResult(file.id, file.name, "skipped", reason="File already indexed")

        folder = file.folder
        self.begin_indexing(db, folder)

        try:
            result = self._index_one(db, folder, file, extractor)
        except Exception as e:
            logger.error(f"Error indexing file {file.id}: {e}", exc_info=True)
            self._mark_failed(db, folder)
            raise

        self._settle_folder_status(db, folder, result)
        return result

    def _settle_folder_status(self, db: Session, folder: Folder, result: FileIndexResult):
        """Folder status implied by its files after a single-file run"""
        files = db.query(DriveFile).filter(DriveFile.folder_id == folder.id).all()
        indexed = sum(1 for f in files if f.indexed)

        if files and indexed == len(files):
            status = IndexStatus.COMPLETED
        elif indexed:
            status = IndexStatus.PARTIAL
        elif result.status == "error":
            status = IndexStatus.FAILED
        else:
            status = IndexStatus.PENDING

        folder.index_status = status.value
        folder.last_indexed = datetime.utcnow()
        db.commit()
        logger.info(f"Folder {folder.id} status after single-file index: {status.value}")

    # ------------------------------------------------------------------
    # Managed assistant strategy
    # ------------------------------------------------------------------

    def index_folder_with_assistant(self, db: Session, folder: Folder, extractor: TextExtractor) -> FolderIndexResult:
        """
        Re-upload a whole folder to the user's managed assistant

        Args:
            db: Database session
            folder: Folder to index
            extractor: Text source for the folder's files

        Returns:
            FolderIndexResult; files are reported with the batch that carried them
        """
        self.begin_indexing(db, folder)
        user_id = folder.user_id
        files = list(folder.files)

        try:
            handle = self.assistant_client.create_or_get_assistant(db, user_id)
            logger.info(f"Assistant {handle.assistant_name} {'found' if handle.existed else 'created'}")
            deleted = self.assistant_client.delete_files_for_folder(db, user_id, folder.id)
            logger.info(f"Deleted {deleted} existing assistant files for folder {folder.id}")
        except Exception as e:
            db.rollback()
            logger.error(f"Error preparing assistant for folder {folder.id}: {e}")
            result = self._finalize(db, folder, [], total_files=len(files))
            result.error = f"Failed to prepare for indexing: {e}"
            return result

        try:
            # Remote copies are gone; nothing counts as indexed until re-uploaded
            for file in files:
                file.indexed = False
            db.commit()

            results: List[FileIndexResult] = []
            entries: List[BatchEntry] = []
            files_by_id = {file.id: file for file in files}

            for file in files:
                self.throttle.acquire()
                try:
                    extracted = extractor.extract(file)
                except Exception as e:
                    logger.error(f"Error extracting {file.name}: {e}")
                    results.append(FileIndexResult(file.id, file.name, "error", error=str(e)))
                    continue

                if not extracted.content or not extracted.content.strip():
                    results.append(FileIndexResult(file.id, file.name, "skipped", reason=NO_CONTENT_REASON))
                    continue

                entries.append(BatchEntry(file_name=file.name, content=extracted.content, file_id=file.id))

            if entries:
                results.extend(self._upload_entries(db, folder, entries, files_by_id))

            return self._finalize(db, folder, results, total_files=len(files))

        except Exception as e:
            logger.error(f"Error indexing folder {folder.id} with assistant: {e}", exc_info=True)
            self._mark_failed(db, folder)
            raise

    def _upload_entries(
        self,
        db: Session,
        folder: Folder,
        entries: List[BatchEntry],
        files_by_id: Dict[str, DriveFile]
    ) -> List[FileIndexResult]:
        try:
            batch_results = self.assistant_client.upload_batched_content(db, folder.user_id, folder.id, entries)
        except Exception as e:
            db.rollback()
            logger.error(f"Batch upload for folder {folder.id} failed: {e}")
            return [
                FileIndexResult(entry.file_id, entry.file_name, "error", error=str(e))
                for entry in entries
            ]

        results = []
        for batch in batch_results:
            for file_id, file_name in zip(batch.file_ids, batch.files):
                if batch.succeeded:
                    files_by_id[file_id].indexed = True
                    results.append(FileIndexResult(file_id, file_name, "success", batch=batch.batch_name))
                else:
                    results.append(FileIndexResult(
                        file_id, file_name, "error", batch=batch.batch_name, error=batch.error
                    ))
        db.commit()
        return results

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_folder(self, db: Session, folder: Folder):
        """
        Drop everything indexed for a folder and return it to 'pending'

        Remote deletions are best effort; local state is reset regardless.
        """
        try:
            self.vector_store.delete_folder_vectors(folder.id, folder.user_id)
        except Exception as e:
            logger.warning(f"Could not delete vectors for folder {folder.id}: {e}")

        try:
            self.assistant_client.delete_files_for_folder(db, folder.user_id, folder.id)
        except Exception as e:
            db.rollback()
            logger.warning(f"Could not delete assistant files for folder {folder.id}: {e}")

        file_ids = [file.id for file in db.query(DriveFile.id).filter(DriveFile.folder_id == folder.id)]
        if file_ids:
            db.query(FileChunk).filter(FileChunk.file_id.in_(file_ids)).delete(synchronize_session=False)
        db.query(DriveFile).filter(DriveFile.folder_id == folder.id).update(
            {DriveFile.indexed: False},
            synchronize_session=False
        )

        folder.index_status = IndexStatus.PENDING.value
        folder.last_indexed = None
        db.commit()
        db.expire_all()
        logger.info(f"Folder {folder.id} reset to pending")

    def delete_chat(self, db: Session, chat: Chat):
        """Delete a chat with its messages, then reset its folder"""
        folder = chat.folder
        chat_id = chat.id
        db.delete(chat)
        db.commit()
        logger.info(f"Deleted chat {chat_id}")

        self.reset_folder(db, folder)


def get_indexing_service() -> IndexingService:
    """Indexing service wired to the shared clients"""
    return IndexingService()
