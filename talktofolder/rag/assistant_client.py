"""Managed document assistant backed by OpenAI vector stores

Each user owns exactly one assistant: an OpenAI vector store named after the
user id, queried through the Responses API ``file_search`` tool. Documents are
uploaded as plain-text files whose attributes record the owning user and
folder, so a folder's files can be found and purged again.
"""

import hashlib
import json
import os
import re
import tempfile
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Union

import openai
from openai import OpenAI
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from talktofolder.exceptions import AssistantErrorReason, AssistantServiceError
from talktofolder.models.assistant_identity import AssistantIdentity
from talktofolder.rag.batch_uploader import (
    BatchEntry,
    BatchUploadResult,
    ContentBatch,
    pack_batches,
    upload_batches
)
from talktofolder.rag.config import rag_config
from talktofolder.rag.prompt_templates import (
    ASSISTANT_INSTRUCTIONS,
    EMPTY_ASSISTANT_REPLY,
    build_assistant_messages
)

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')

# OpenAI limits attribute string values to 512 characters
MAX_ATTRIBUTE_LENGTH = 512

AttributeValue = Union[str, float, bool]


class AssistantFileMetadata(BaseModel):
    """Attributes attached to every file uploaded to an assistant"""
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1
    user_id: str
    folder_id: str
    uploaded_at: str
    file_name: Optional[str] = None
    batch_file_name: Optional[str] = None
    included_files: Optional[List[str]] = None
    file_count: Optional[int] = None
    file_id: Optional[str] = None
    mime_type: Optional[str] = None

    def to_attributes(self) -> Dict[str, AttributeValue]:
        """Serialize to the remote file's attribute map"""
        attributes: Dict[str, AttributeValue] = {
            "schemaVersion": self.schema_version,
            "userId": self.user_id,
            "folderId": self.folder_id,
            "uploadedAt": self.uploaded_at,
        }
        optional = {
            "fileName": self.file_name,
            "batchFileName": self.batch_file_name,
            "fileCount": self.file_count,
            "fileId": self.file_id,
            "mimeType": self.mime_type,
        }
        for key, value in optional.items():
            if value is not None:
                attributes[key] = value[:MAX_ATTRIBUTE_LENGTH] if isinstance(value, str) else value

        if self.included_files is not None:
            # Truncated lists stay readable for humans; the authoritative
            # batch membership is the upload result, not this attribute
            attributes["includedFiles"] = json.dumps(self.included_files)[:MAX_ATTRIBUTE_LENGTH]

        return attributes

    @classmethod
    def from_attributes(cls, attributes: Optional[Dict[str, Any]]) -> Optional["AssistantFileMetadata"]:
        """Parse a remote attribute map; None if it is not one of ours"""
        if not attributes or "userId" not in attributes or "folderId" not in attributes:
            return None

        included = attributes.get("includedFiles")
        if isinstance(included, str):
            try:
                included = json.loads(included)
            except ValueError:
                included = None

        file_count = attributes.get("fileCount")
        return cls(
            schema_version=int(attributes.get("schemaVersion", 1)),
            user_id=str(attributes["userId"]),
            folder_id=str(attributes["folderId"]),
            uploaded_at=str(attributes.get("uploadedAt", "")),
            file_name=attributes.get("fileName"),
            batch_file_name=attributes.get("batchFileName"),
            included_files=included if isinstance(included, list) else None,
            file_count=int(file_count) if file_count is not None else None,
            file_id=attributes.get("fileId"),
            mime_type=attributes.get("mimeType")
        )


@dataclass
class AssistantHandle:
    """Resolved assistant for one user"""
    vector_store_id: str
    assistant_name: str
    existed: bool


@dataclass
class AssistantReply:
    """Assistant chat response"""
    content: str
    usage: Optional[Dict[str, Any]] = None


def assistant_name_for(user_id: str) -> str:
    """Deterministic assistant name for a user; the digest keeps it unique"""
    safe_id = re.sub(r"[^a-zA-Z0-9-]", "-", user_id)
    digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:8]
    return f"{rag_config.assistant_name_prefix}-{safe_id}-{digest}".lower()


def classify_error(exc: Exception, terms_error_codes: List[str], action: str) -> AssistantServiceError:
    """
    Convert an SDK exception into a typed assistant error

    Args:
        exc: Exception raised by the OpenAI SDK
        terms_error_codes: Error codes that mean the account has not accepted
            the service terms
        action: What we were doing, for the message

    Returns:
        AssistantServiceError carrying a structured reason
    """
    if isinstance(exc, AssistantServiceError):
        return exc

    code = getattr(exc, "code", None)

    if code and code in terms_error_codes:
        reason = AssistantErrorReason.TERMS_NOT_ACCEPTED
    elif isinstance(exc, openai.NotFoundError):
        reason = AssistantErrorReason.NOT_FOUND
    elif isinstance(exc, openai.PermissionDeniedError):
        reason = AssistantErrorReason.PERMISSION_DENIED
    elif isinstance(exc, openai.RateLimitError):
        reason = AssistantErrorReason.RATE_LIMITED
    elif isinstance(exc, openai.APIConnectionError):
        reason = AssistantErrorReason.UNAVAILABLE
    else:
        reason = AssistantErrorReason.SERVICE_ERROR

    return AssistantServiceError(f"Failed to {action}: {exc}", reason=reason, code=code)


class AssistantClient:
    """Lifecycle and I/O for the per-user managed assistant"""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        ready_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        temp_dir: Optional[str] = None
    ):
        self._client = client
        self.model = rag_config.assistant_model
        self.ready_delay = rag_config.assistant_ready_delay if ready_delay is None else ready_delay
        self.terms_error_codes = list(rag_config.assistant_terms_error_codes)
        self.max_batch_bytes = rag_config.max_batch_bytes
        self._sleep = sleep
        self.temp_dir = temp_dir or tempfile.gettempdir()

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=rag_config.openai_api_key or None)
        return self._client

    def _wrap(self, exc: Exception, action: str) -> AssistantServiceError:
        error = classify_error(exc, self.terms_error_codes, action)
        logger.error(f"Assistant error ({error.reason.value}): {error}")
        return error

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def _claim_identity(self, db: Session, user_id: str) -> AssistantIdentity:
        """Insert the user's identity row, or read the one that already exists"""
        identity = db.query(AssistantIdentity).filter(AssistantIdentity.user_id == user_id).first()
        if identity:
            return identity

        db.add(AssistantIdentity(user_id=user_id, assistant_name=assistant_name_for(user_id)))
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request inserted first; use its row
            db.rollback()
            logger.info(f"Assistant identity for user {user_id} was created concurrently")

        return db.query(AssistantIdentity).filter(AssistantIdentity.user_id == user_id).one()

    def _store_remote_id(self, db: Session, user_id: str, vector_store_id: str) -> str:
        """Record the remote id unless another request already did; return the winner"""
        db.query(AssistantIdentity).filter(
            AssistantIdentity.user_id == user_id,
            AssistantIdentity.vector_store_id.is_(None)
        ).update({AssistantIdentity.vector_store_id: vector_store_id}, synchronize_session=False)
        db.commit()

        identity = db.query(AssistantIdentity).filter(AssistantIdentity.user_id == user_id).one()
        db.refresh(identity)
        return identity.vector_store_id

    def _clear_remote_id(self, db: Session, user_id: str, stale_id: str):
        db.query(AssistantIdentity).filter(
            AssistantIdentity.user_id == user_id,
            AssistantIdentity.vector_store_id == stale_id
        ).update({AssistantIdentity.vector_store_id: None}, synchronize_session=False)
        db.commit()

    def _find_store_by_name(self, name: str, user_id: str):
        """Existing store with this name, only if it carries the owner's id"""
        for store in self.client.vector_stores.list(limit=100):
            if store.name != name:
                continue
            owner = (store.metadata or {}).get("user_id")
            if owner == user_id:
                return store
            logger.warning(f"Vector store {store.id} is named {name} but belongs to {owner}, ignoring it")
        return None

    def get_assistant(self, db: Session, user_id: str) -> Optional[AssistantHandle]:
        """Return the user's assistant if one was ever resolved, without creating it"""
        identity = db.query(AssistantIdentity).filter(AssistantIdentity.user_id == user_id).first()
        if identity is None or not identity.vector_store_id:
            return None
        return AssistantHandle(
            vector_store_id=identity.vector_store_id,
            assistant_name=identity.assistant_name,
            existed=True
        )

    def create_or_get_assistant(self, db: Session, user_id: str) -> AssistantHandle:
        """
        Resolve the user's assistant, creating it on first use

        Args:
            db: Database session
            user_id: Owner of the assistant

        Returns:
            Handle with the remote vector store id and whether it already existed
        """
        identity = self._claim_identity(db, user_id)
        name = identity.assistant_name

        if identity.vector_store_id:
            try:
                self.client.vector_stores.retrieve(identity.vector_store_id)
                return AssistantHandle(identity.vector_store_id, name, existed=True)
            except openai.NotFoundError:
                logger.warning(f"Vector store {identity.vector_store_id} for user {user_id} is gone, resolving again")
                self._clear_remote_id(db, user_id, identity.vector_store_id)
            except Exception as e:
                raise self._wrap(e, f"describe assistant {name}")

        try:
            store = self._find_store_by_name(name, user_id)
            existed = store is not None
            if store is None:
                logger.info(f"Creating new assistant: {name}")
                store = self.client.vector_stores.create(name=name, metadata={"user_id": user_id})
        except Exception as e:
            raise self._wrap(e, f"create assistant {name}")

        winner_id = self._store_remote_id(db, user_id, store.id)

        if winner_id != store.id:
            # Lost a creation race; converge on the stored assistant
            if not existed:
                try:
                    self.client.vector_stores.delete(store.id)
                except Exception as e:
                    logger.warning(f"Could not delete duplicate vector store {store.id}: {e}")
            return AssistantHandle(winner_id, name, existed=True)

        if not existed and self.ready_delay > 0:
            logger.info(f"Assistant {name} created, waiting {self.ready_delay}s for readiness")
            self._sleep(self.ready_delay)

        return AssistantHandle(store.id, name, existed=existed)

    def delete_assistant(self, db: Session, user_id: str) -> bool:
        """User-level teardown: remove the remote store and the identity row"""
        identity = db.query(AssistantIdentity).filter(AssistantIdentity.user_id == user_id).first()
        if identity is None:
            return False

        if identity.vector_store_id:
            try:
                self.client.vector_stores.delete(identity.vector_store_id)
            except openai.NotFoundError:
                logger.info(f"Vector store {identity.vector_store_id} already deleted")
            except Exception as e:
                raise self._wrap(e, f"delete assistant {identity.assistant_name}")

        db.delete(identity)
        db.commit()
        logger.info(f"Assistant {identity.assistant_name} deleted")
        return True

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def _write_temp_file(self, content: str, file_name: str) -> str:
        sanitized = UNSAFE_FILENAME_CHARS.sub("-", file_name)
        if not sanitized.lower().endswith(".txt"):
            sanitized = f"{sanitized}.txt"

        path = os.path.join(
            self.temp_dir,
            f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{sanitized}"
        )
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        return path

    def _upload_text(
        self,
        vector_store_id: str,
        content: str,
        file_name: str,
        metadata: AssistantFileMetadata
    ) -> str:
        """Upload text through a transient file; the file is always removed"""
        temp_path = self._write_temp_file(content, file_name)
        remote_name = os.path.basename(temp_path).split("-", 2)[-1]

        try:
            with open(temp_path, "rb") as handle:
                uploaded = self.client.files.create(file=(remote_name, handle), purpose="assistants")

            store_file = self.client.vector_stores.files.create_and_poll(
                file_id=uploaded.id,
                vector_store_id=vector_store_id,
                attributes=metadata.to_attributes()
            )
            if store_file.status == "failed":
                last_error = getattr(store_file, "last_error", None)
                detail = last_error.message if last_error else "processing failed"
                raise AssistantServiceError(
                    f"Assistant could not process {file_name}: {detail}",
                    reason=AssistantErrorReason.UPLOAD_FAILED
                )

            logger.info(f"File content {file_name} uploaded to assistant")
            return uploaded.id

        except Exception as e:
            raise self._wrap(e, f"upload {file_name}")

        finally:
            try:
                os.remove(temp_path)
            except OSError as e:
                logger.warning(f"Could not delete temp file {temp_path}: {e}")

    def upload_file_content_to_assistant(
        self,
        db: Session,
        user_id: str,
        folder_id: str,
        content: str,
        file_name: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Upload one document's text to the user's assistant

        Args:
            db: Database session
            user_id: Owner
            folder_id: Folder the document belongs to
            content: Extracted text
            file_name: Document name
            metadata: Extra AssistantFileMetadata fields (file_id, mime_type)

        Returns:
            Remote file id
        """
        handle = self.create_or_get_assistant(db, user_id)
        file_metadata = AssistantFileMetadata(
            user_id=user_id,
            folder_id=folder_id,
            file_name=file_name,
            uploaded_at=datetime.utcnow().isoformat(),
            **(metadata or {})
        )
        return self._upload_text(handle.vector_store_id, content, file_name, file_metadata)

    def upload_batched_content(
        self,
        db: Session,
        user_id: str,
        folder_id: str,
        files: List[BatchEntry]
    ) -> List[BatchUploadResult]:
        """
        Pack documents into size-bounded batches and upload each one

        Args:
            db: Database session
            user_id: Owner
            folder_id: Folder the documents belong to
            files: Documents in upload order

        Returns:
            One result per batch; a failed batch does not stop the others
        """
        handle = self.create_or_get_assistant(db, user_id)
        batches = pack_batches(folder_id, files, self.max_batch_bytes)
        logger.info(f"Uploading {len(files)} files for folder {folder_id} in {len(batches)} batches")

        def upload(batch: ContentBatch):
            metadata = AssistantFileMetadata(
                user_id=user_id,
                folder_id=folder_id,
                batch_file_name=batch.name,
                included_files=batch.files,
                file_count=len(batch.files),
                uploaded_at=datetime.utcnow().isoformat()
            )
            self._upload_text(handle.vector_store_id, batch.content, batch.name, metadata)

        return upload_batches(batches, upload)

    # ------------------------------------------------------------------
    # Listing and deletion
    # ------------------------------------------------------------------

    def list_assistant_files(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """List the files attached to the user's assistant"""
        handle = self.get_assistant(db, user_id)
        if handle is None:
            return []

        try:
            store_files = list(self.client.vector_stores.files.list(
                vector_store_id=handle.vector_store_id,
                limit=100
            ))
        except Exception as e:
            raise self._wrap(e, "list assistant files")

        return [
            {
                "id": store_file.id,
                "status": store_file.status,
                "metadata": AssistantFileMetadata.from_attributes(store_file.attributes)
            }
            for store_file in store_files
        ]

    def delete_files_for_folder(self, db: Session, user_id: str, folder_id: str) -> int:
        """
        Delete every assistant file that belongs to a folder

        Args:
            db: Database session
            user_id: Owner
            folder_id: Folder whose files are purged

        Returns:
            Number of files deleted; individual failures are logged and skipped
        """
        files = self.list_assistant_files(db, user_id)
        if not files:
            return 0

        vector_store_id = self.get_assistant(db, user_id).vector_store_id
        deleted = 0

        for store_file in files:
            metadata = store_file["metadata"]
            if metadata is None or metadata.folder_id != folder_id:
                continue

            try:
                self.client.vector_stores.files.delete(store_file["id"], vector_store_id=vector_store_id)
            except Exception as e:
                logger.warning(f"Could not delete assistant file {store_file['id']}: {e}")
                continue

            deleted += 1
            try:
                self.client.files.delete(store_file["id"])
            except Exception as e:
                logger.warning(f"Detached file {store_file['id']} but could not delete it: {e}")

        logger.info(f"Deleted {deleted} assistant files for folder {folder_id}")
        return deleted

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat_with_assistant(
        self,
        db: Session,
        user_id: str,
        message: str,
        history: List[Dict[str, str]],
        folder_id: Optional[str] = None
    ) -> AssistantReply:
        """
        Ask the user's assistant a question

        Args:
            db: Database session
            user_id: Owner
            message: New user message
            history: Prior turns, oldest first
            folder_id: Restrict file search to one folder's files

        Returns:
            The assistant's reply and token usage
        """
        handle = self.create_or_get_assistant(db, user_id)
        messages = build_assistant_messages(history, message)

        tool: Dict[str, Any] = {"type": "file_search", "vector_store_ids": [handle.vector_store_id]}
        if folder_id:
            tool["filters"] = {"type": "eq", "key": "folderId", "value": folder_id}

        logger.info(f"Sending chat request to assistant {handle.assistant_name} with {len(messages)} messages")
        try:
            response = self.client.responses.create(
                model=self.model,
                instructions=ASSISTANT_INSTRUCTIONS,
                input=messages,
                tools=[tool]
            )
        except Exception as e:
            raise self._wrap(e, "chat with assistant")

        usage = response.usage.model_dump() if getattr(response, "usage", None) else None
        return AssistantReply(content=response.output_text or EMPTY_ASSISTANT_REPLY, usage=usage)


@lru_cache
def get_assistant_client() -> AssistantClient:
    """Get the shared assistant client"""
    return AssistantClient()
