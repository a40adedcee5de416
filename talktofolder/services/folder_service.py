"""Folder and file registration"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from talktofolder.exceptions import NotFoundException, ValidationException
from talktofolder.models.drive_file import DriveFile
from talktofolder.models.file_chunk import FileChunk
from talktofolder.models.folder import Folder, IndexStatus
from talktofolder.rag.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)

FOLDER_URL_PATTERN = re.compile(r"/folders/([a-zA-Z0-9_-]+)")


@dataclass
class DriveFileInfo:
    """File as listed by Drive"""
    drive_id: str
    name: str
    mime_type: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


def parse_folder_url(folder_url: str) -> str:
    """Extract the Drive folder id from a folder URL"""
    match = FOLDER_URL_PATTERN.search(folder_url)
    if not match:
        raise ValidationException("Invalid Google Drive folder URL")
    return match.group(1)


def register_folder(
    db: Session,
    user_id: str,
    drive_id: str,
    name: str,
    files: List[DriveFileInfo],
    vector_store: Optional[VectorStore] = None
) -> Folder:
    """
    Register a folder or refresh its file list

    Files missing from the listing are removed; files whose modification time
    changed are marked for re-indexing.

    Args:
        db: Database session
        user_id: Owner
        drive_id: Drive folder id
        name: Folder display name
        files: Current Drive listing of the folder
        vector_store: Index holding the vectors of removed files (default: shared store)

    Returns:
        The stored folder
    """
    folder = db.query(Folder).filter(Folder.user_id == user_id, Folder.drive_id == drive_id).first()

    if not folder:
        folder = Folder(user_id=user_id, drive_id=drive_id, name=name, index_status=IndexStatus.PENDING.value)
        db.add(folder)
        db.flush()
        logger.info(f"Registered folder {drive_id} for user {user_id}")
    else:
        folder.name = name

    existing: Dict[str, DriveFile] = {
        file.drive_id: file
        for file in db.query(DriveFile).filter(DriveFile.folder_id == folder.id)
    }
    listed = set()

    for info in files:
        listed.add(info.drive_id)
        file = existing.get(info.drive_id)

        if file is None:
            db.add(DriveFile(
                folder_id=folder.id,
                drive_id=info.drive_id,
                name=info.name,
                mime_type=info.mime_type,
                size=info.size,
                last_modified=info.last_modified,
                indexed=False
            ))
            continue

        if info.last_modified and file.last_modified != info.last_modified:
            file.indexed = False
        file.name = info.name
        file.mime_type = info.mime_type
        file.size = info.size
        file.last_modified = info.last_modified

    removed = [file for drive_file_id, file in existing.items() if drive_file_id not in listed]
    if removed:
        _drop_removed_files(db, folder, removed, vector_store or get_vector_store())

    db.commit()
    db.refresh(folder)

    logger.info(f"Folder {folder.id} synced: {len(files)} files, {len(removed)} removed")
    return folder


def _drop_removed_files(db: Session, folder: Folder, removed: List[DriveFile], vector_store: VectorStore):
    """Delete files gone from Drive along with their vectors"""
    for file in removed:
        try:
            vector_store.delete_file_vectors(file.id, folder.user_id)
        except Exception as e:
            logger.warning(f"Could not delete vectors for removed file {file.id}: {e}")
        db.delete(file)

    # Assistant copies are purged by the next assistant run
    if any(file.indexed for file in removed) and folder.index_status != IndexStatus.PROCESSING.value:
        folder.index_status = IndexStatus.PENDING.value


def get_folder_by_drive_id(db: Session, user_id: str, drive_id: str) -> Folder:
    """Load the user's folder by its Drive id or raise NotFoundException"""
    folder = db.query(Folder).filter(Folder.user_id == user_id, Folder.drive_id == drive_id).first()
    if not folder:
        raise NotFoundException("Folder not found")
    return folder


def get_file_for_user(db: Session, user_id: str, file_id: str) -> DriveFile:
    """Load a file inside one of the user's folders or raise NotFoundException"""
    file = db.query(DriveFile).join(Folder, DriveFile.folder_id == Folder.id).filter(
        DriveFile.id == file_id,
        Folder.user_id == user_id
    ).first()
    if not file:
        raise NotFoundException("File not found")
    return file


def count_file_chunks(db: Session, file_id: str) -> int:
    return db.query(FileChunk).filter(FileChunk.file_id == file_id).count()
