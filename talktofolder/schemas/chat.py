"""Chat schemas"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class ChatRequest(BaseModel):
    """A user turn sent to a folder's chat"""
    chat_id: str
    message: str = Field(..., min_length=1, max_length=10000)


class Citation(BaseModel):
    """Source chunk behind a vector-search reply"""
    file_name: str
    file_id: str
    score: float
    chunk_index: int


class ChatTurnResponse(BaseModel):
    """Reply to one chat turn"""
    response: str
    message_id: str
    citations: Optional[List[Citation]] = None
    usage: Optional[Dict[str, Any]] = None
    fallback: Optional[str] = None
    error: Optional[str] = None


class MessageResponse(BaseModel):
    """Message response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    role: str
    content: str
    citations: Optional[List[Citation]] = None
    created_at: datetime


class ChatResponse(BaseModel):
    """Chat with its folder summary"""
    id: str
    folder_id: str
    folder_name: str
    drive_id: str
    index_status: str
    created_at: datetime
    updated_at: datetime


class ChatMessagesResponse(BaseModel):
    """Chat transcript"""
    chat: ChatResponse
    messages: List[MessageResponse]
