"""Custom exception classes"""

import enum
from typing import Optional


class TalkToFolderException(Exception):
    """Base exception for the service"""
    status_code = 500


class NotFoundException(TalkToFolderException):
    """Requested folder, file or chat does not exist for this user"""
    status_code = 404


class ValidationException(TalkToFolderException):
    """Validation errors"""
    status_code = 400


class RateLimitException(TalkToFolderException):
    """Rate limit exceeded"""
    status_code = 429


class IndexingInProgressException(TalkToFolderException):
    """Another indexing run currently holds the folder"""
    status_code = 409


class ExtractionException(TalkToFolderException):
    """Text extraction failed for a single file"""
    pass


class RAGException(TalkToFolderException):
    """RAG pipeline errors"""
    pass


class DatabaseException(TalkToFolderException):
    """Database operation errors"""
    pass


class ExternalAPIException(TalkToFolderException):
    """External API errors (Drive, OpenAI, Qdrant)"""
    pass


class AssistantErrorReason(str, enum.Enum):
    """Structured cause of a managed-assistant failure"""
    TERMS_NOT_ACCEPTED = "terms_not_accepted"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UPLOAD_FAILED = "upload_failed"
    SERVICE_ERROR = "service_error"


class AssistantServiceError(ExternalAPIException):
    """Managed assistant call failed"""

    def __init__(
        self,
        message: str,
        reason: AssistantErrorReason = AssistantErrorReason.SERVICE_ERROR,
        code: Optional[str] = None
    ):
        super().__init__(message)
        self.reason = reason
        self.code = code

    @property
    def is_terms_error(self) -> bool:
        return self.reason == AssistantErrorReason.TERMS_NOT_ACCEPTED
