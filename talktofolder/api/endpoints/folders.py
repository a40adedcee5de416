"""Folder registration and indexing endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from talktofolder.database.session import get_db
from talktofolder.models.user import User
from talktofolder.rag.vector_store import VectorStore, get_vector_store
from talktofolder.schemas.chat import ChatResponse
from talktofolder.schemas.folder import (
    FolderRegisterRequest,
    FolderResponse,
    FolderIndexResponse,
    FileIndexResultResponse,
    FileStatusResponse
)
from talktofolder.security.auth import get_current_user
from talktofolder.services import chat_service, folder_service
from talktofolder.services.drive_extractor import TextExtractor, extractor_for_user
from talktofolder.services.indexing_service import IndexingService, get_indexing_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_extractor(current_user: User = Depends(get_current_user)) -> TextExtractor:
    """Drive extractor for the requesting user"""
    return extractor_for_user(current_user)


def chat_response(chat) -> ChatResponse:
    folder = chat.folder
    return ChatResponse(
        id=chat.id,
        folder_id=folder.id,
        folder_name=folder.name,
        drive_id=folder.drive_id,
        index_status=folder.index_status,
        created_at=chat.created_at,
        updated_at=chat.updated_at
    )


@router.post("/folders", response_model=FolderResponse)
def register_folder(
    request: FolderRegisterRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store)
):
    """Register a Drive folder, or refresh the file list of a known one"""
    drive_id = request.drive_id or folder_service.parse_folder_url(request.folder_url)
    files = [folder_service.DriveFileInfo(**file.model_dump()) for file in request.files]

    folder = folder_service.register_folder(
        db, current_user.id, drive_id, request.name, files, vector_store=vector_store
    )

    return FolderResponse(
        id=folder.id,
        drive_id=folder.drive_id,
        name=folder.name,
        index_status=folder.index_status,
        last_indexed=folder.last_indexed,
        file_count=len(folder.files)
    )


@router.post("/folders/{drive_id}/chat", response_model=ChatResponse)
def open_folder_chat(
    drive_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get or create the chat of a folder"""
    folder = folder_service.get_folder_by_drive_id(db, current_user.id, drive_id)
    chat = chat_service.get_or_create_chat(folder, db)
    return chat_response(chat)


@router.post("/folders/{drive_id}/index", response_model=FolderIndexResponse)
def index_folder(
    drive_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    extractor: TextExtractor = Depends(get_extractor),
    indexing_service: IndexingService = Depends(get_indexing_service)
):
    """Chunk and embed every unindexed file of a folder"""
    folder = folder_service.get_folder_by_drive_id(db, current_user.id, drive_id)
    result = indexing_service.index_folder(db, folder, extractor)
    return FolderIndexResponse(**result.to_dict())


@router.post("/folders/{drive_id}/index-assistant", response_model=FolderIndexResponse)
def index_folder_with_assistant(
    drive_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    extractor: TextExtractor = Depends(get_extractor),
    indexing_service: IndexingService = Depends(get_indexing_service)
):
    """Upload a folder's documents to the user's managed assistant"""
    folder = folder_service.get_folder_by_drive_id(db, current_user.id, drive_id)
    result = indexing_service.index_folder_with_assistant(db, folder, extractor)
    return FolderIndexResponse(**result.to_dict())


@router.post("/files/{file_id}/index", response_model=FileIndexResultResponse)
def index_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    extractor: TextExtractor = Depends(get_extractor),
    indexing_service: IndexingService = Depends(get_indexing_service)
):
    """Index a single file"""
    file = folder_service.get_file_for_user(db, current_user.id, file_id)
    result = indexing_service.index_file(db, file, extractor)
    return FileIndexResultResponse.model_validate(result)


@router.get("/files/{file_id}/status", response_model=FileStatusResponse)
def file_status(
    file_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Index status of a file"""
    file = folder_service.get_file_for_user(db, current_user.id, file_id)
    return FileStatusResponse(
        file_id=file.id,
        name=file.name,
        indexed=file.indexed,
        chunk_count=folder_service.count_file_chunks(db, file.id)
    )
