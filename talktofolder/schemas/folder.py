"""Folder and indexing schemas"""

from pydantic import BaseModel, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime


class DriveFileIn(BaseModel):
    """File as listed by Drive"""
    drive_id: str
    name: str
    mime_type: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


class FolderRegisterRequest(BaseModel):
    """Register a folder by Drive id or folder URL"""
    drive_id: Optional[str] = None
    folder_url: Optional[str] = None
    name: str
    files: List[DriveFileIn] = []

    @model_validator(mode="after")
    def require_folder_reference(self):
        if not self.drive_id and not self.folder_url:
            raise ValueError("drive_id or folder_url is required")
        return self


class FolderResponse(BaseModel):
    """Folder response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    drive_id: str
    name: str
    index_status: str
    last_indexed: Optional[datetime] = None
    file_count: int = 0


class FileIndexResultResponse(BaseModel):
    """Per-file indexing outcome"""
    model_config = ConfigDict(from_attributes=True)

    file_id: str
    file_name: str
    status: str
    chunk_count: Optional[int] = None
    batch: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None


class FolderIndexResponse(BaseModel):
    """Outcome of a folder indexing run"""
    model_config = ConfigDict(from_attributes=True)

    folder_id: str
    folder_name: str
    status: str
    total_files: int
    success_count: int
    error_count: int
    results: List[FileIndexResultResponse]
    error: Optional[str] = None


class FileStatusResponse(BaseModel):
    """Index status of one file"""
    file_id: str
    name: str
    indexed: bool
    chunk_count: int
