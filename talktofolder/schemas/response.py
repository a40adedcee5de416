"""Generic response schemas"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class ErrorResponse(BaseModel):
    """Error response schema"""
    error: str
    detail: str
    timestamp: datetime = datetime.utcnow()


class HealthResponse(BaseModel):
    """Health check response schema"""
    status: str
    timestamp: datetime = datetime.utcnow()
    dependencies: dict


class VectorDBInitResponse(BaseModel):
    """Collection bootstrap result"""
    status: str
    collection: str
    points_count: Optional[int] = None
