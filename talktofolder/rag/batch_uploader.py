"""Size-bounded batching of file contents for the managed assistant

Uploading one remote file per document is slow and every upload is processed
separately on the assistant side, so documents are concatenated into a few
text files instead. Packing is greedy in arrival order; a file is never split.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_BYTES = 10 * 1024 * 1024

FILE_BLOCK_TEMPLATE = "\n\n=== FILE: {file_name} ===\n\n{content}\n"


@dataclass
class BatchEntry:
    """One file's extracted text waiting to be batched"""
    file_name: str
    content: str
    file_id: Optional[str] = None


@dataclass
class ContentBatch:
    """A sealed upload unit"""
    name: str
    content: str
    files: List[str] = field(default_factory=list)
    file_ids: List[Optional[str]] = field(default_factory=list)
    size_bytes: int = 0


@dataclass
class BatchUploadResult:
    """Outcome of uploading one batch"""
    batch_name: str
    files: List[str]
    status: str  # 'success' or 'error'
    file_ids: List[Optional[str]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def format_file_block(file_name: str, content: str) -> str:
    """Marker-prefixed block for one file inside a batch"""
    return FILE_BLOCK_TEMPLATE.format(file_name=file_name, content=content)


def batch_name_for(folder_id: str, number: int) -> str:
    return f"folder_{folder_id}_batch_{number}.txt"


def pack_batches(
    folder_id: str,
    files: Iterable[BatchEntry],
    max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES
) -> List[ContentBatch]:
    """
    Pack files into batches no larger than max_batch_bytes

    Args:
        folder_id: Folder the files belong to, used in batch names
        files: Entries in upload order
        max_batch_bytes: UTF-8 byte ceiling per batch

    Returns:
        Sealed batches; a file whose block alone exceeds the ceiling gets a
        batch of its own
    """
    batches: List[ContentBatch] = []
    parts: List[str] = []
    names: List[str] = []
    ids: List[Optional[str]] = []
    total = 0

    def seal():
        batch = ContentBatch(
            name=batch_name_for(folder_id, len(batches) + 1),
            content="".join(parts),
            files=list(names),
            file_ids=list(ids),
            size_bytes=total
        )
        batches.append(batch)
        logger.debug(f"Sealed {batch.name}: {len(batch.files)} files, {batch.size_bytes} bytes")

    for entry in files:
        if not entry.content or not entry.content.strip():
            continue

        block = format_file_block(entry.file_name, entry.content)
        block_size = len(block.encode("utf-8"))

        if total > 0 and total + block_size > max_batch_bytes:
            seal()
            parts, names, ids, total = [], [], [], 0

        if block_size > max_batch_bytes:
            logger.warning(
                f"File {entry.file_name} is {block_size} bytes, above the "
                f"{max_batch_bytes} byte batch limit; uploading it alone"
            )

        parts.append(block)
        names.append(entry.file_name)
        ids.append(entry.file_id)
        total += block_size

    if total > 0:
        seal()

    return batches


def upload_batches(
    batches: List[ContentBatch],
    upload: Callable[[ContentBatch], None]
) -> List[BatchUploadResult]:
    """
    Upload every batch, isolating failures per batch

    Args:
        batches: Sealed batches
        upload: Callable that uploads one batch and raises on failure

    Returns:
        One result per batch, in batch order
    """
    results = []

    for batch in batches:
        try:
            upload(batch)
            results.append(BatchUploadResult(
                batch_name=batch.name,
                files=batch.files,
                file_ids=batch.file_ids,
                status="success"
            ))
            logger.info(f"Uploaded {batch.name} with {len(batch.files)} files")
        except Exception as e:
            logger.error(f"Error uploading {batch.name}: {e}")
            results.append(BatchUploadResult(
                batch_name=batch.name,
                files=batch.files,
                file_ids=batch.file_ids,
                status="error",
                error=str(e)
            ))

    return results
