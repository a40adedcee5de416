"""Database models package"""

from talktofolder.models.user import User
from talktofolder.models.folder import Folder, IndexStatus
from talktofolder.models.drive_file import DriveFile
from talktofolder.models.file_chunk import FileChunk
from talktofolder.models.chat import Chat
from talktofolder.models.message import Message
from talktofolder.models.assistant_identity import AssistantIdentity

__all__ = [
    "User",
    "Folder",
    "IndexStatus",
    "DriveFile",
    "FileChunk",
    "Chat",
    "Message",
    "AssistantIdentity"
]
