"""Vector database management endpoint"""

from fastapi import APIRouter, Depends
import logging

from talktofolder.exceptions import ExternalAPIException
from talktofolder.models.user import User
from talktofolder.rag.vector_store import VectorStore, get_vector_store
from talktofolder.schemas.response import VectorDBInitResponse
from talktofolder.security.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/vector-db/init", response_model=VectorDBInitResponse)
def init_vector_db(
    current_user: User = Depends(get_current_user),
    vector_store: VectorStore = Depends(get_vector_store)
):
    """Create the Qdrant collection and payload indexes if missing"""
    try:
        vector_store.ensure_collection()
        info = vector_store.get_collection_info()
    except Exception as e:
        logger.error(f"Error initializing vector database: {e}")
        raise ExternalAPIException(f"Failed to initialize vector database: {e}")

    logger.info(f"Vector database initialized by user {current_user.id}")
    return VectorDBInitResponse(
        status="ready",
        collection=vector_store.collection_name,
        points_count=info.get("points_count")
    )
