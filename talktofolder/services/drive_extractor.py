"""Google Drive text extraction"""

import io
from dataclasses import dataclass
from typing import Optional, Protocol

import docx
import httpx
import PyPDF2
import logging

from talktofolder.config import settings
from talktofolder.exceptions import ExtractionException, ValidationException
from talktofolder.models.drive_file import DriveFile

logger = logging.getLogger(__name__)

GOOGLE_DOC = "application/vnd.google-apps.document"
GOOGLE_SHEET = "application/vnd.google-apps.spreadsheet"
GOOGLE_SLIDES = "application/vnd.google-apps.presentation"

# Native Google formats have no binary content and must be exported
EXPORT_MIME_TYPES = {
    GOOGLE_DOC: "text/plain",
    GOOGLE_SHEET: "text/csv",
    GOOGLE_SLIDES: "text/plain",
}

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME_TYPES = ("application/json", "application/xml", "application/javascript")


@dataclass
class ExtractedText:
    """Plain text pulled out of one file"""
    content: str


class TextExtractor(Protocol):
    """Anything that turns a DriveFile into plain text"""

    def extract(self, file: DriveFile) -> ExtractedText:
        ...


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES


def parse_pdf(data: bytes) -> str:
    """Read PDF bytes page by page"""
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def parse_docx(data: bytes) -> str:
    """Read DOCX bytes paragraph by paragraph"""
    document = docx.Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


class DriveTextExtractor:
    """Fetches Drive content with the user's OAuth access token"""

    def __init__(self, access_token: str, base_url: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None):
        self.access_token = access_token
        self.base_url = (base_url or settings.DRIVE_API_URL).rstrip('/')
        self.transport = transport
        self.timeout = 60.0

    def _get(self, path: str, params: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.get(f"{self.base_url}{path}", params=params, headers=headers)
            response.raise_for_status()
            return response

    def extract(self, file: DriveFile) -> ExtractedText:
        """
        Extract plain text from a Drive file

        Args:
            file: File record with its Drive id and MIME type

        Returns:
            ExtractedText; content may be empty for unsupported formats

        Raises:
            ExtractionException: Download or parsing failed
        """
        try:
            export_type = EXPORT_MIME_TYPES.get(file.mime_type)
            if export_type:
                response = self._get(f"/files/{file.drive_id}/export", {"mimeType": export_type})
                return ExtractedText(content=response.text)

            if file.mime_type == PDF_MIME_TYPE:
                data = self._get(f"/files/{file.drive_id}", {"alt": "media"}).content
                return ExtractedText(content=parse_pdf(data))

            if file.mime_type == DOCX_MIME_TYPE:
                data = self._get(f"/files/{file.drive_id}", {"alt": "media"}).content
                return ExtractedText(content=parse_docx(data))

            if is_text_mime_type(file.mime_type):
                data = self._get(f"/files/{file.drive_id}", {"alt": "media"}).content
                return ExtractedText(content=data.decode("utf-8", errors="replace"))

            logger.info(f"Unsupported MIME type {file.mime_type} for {file.name}, skipping")
            return ExtractedText(content="")

        except httpx.HTTPError as e:
            logger.error(f"Drive API error for {file.name}: {str(e)}")
            if hasattr(e, 'response') and e.response is not None:
                logger.error(f"Response body: {e.response.text}")
            raise ExtractionException(f"Could not download {file.name}: {e}")

        except Exception as e:
            logger.error(f"Error extracting text from {file.name}: {e}")
            raise ExtractionException(f"Could not extract text from {file.name}: {e}")


def extractor_for_user(user) -> DriveTextExtractor:
    """Extractor authorised with the user's stored Google token"""
    if not user.google_access_token:
        raise ValidationException("No Google access token found")
    return DriveTextExtractor(user.google_access_token)
