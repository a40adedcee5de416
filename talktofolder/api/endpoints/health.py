"""Health check endpoint"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.orm import Session
from talktofolder.database.session import get_db
from talktofolder.rag.vector_store import VectorStore, get_vector_store
from talktofolder.schemas.response import HealthResponse
from talktofolder.config import settings
from redis import Redis
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
def health_check(
    response: Response,
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store)
):
    """
    Health check endpoint
    Checks connectivity to:
    - Database
    - Redis
    - Qdrant (optional)
    """
    health_status = {
        "status": "healthy",
        "dependencies": {}
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        health_status["dependencies"]["database"] = "connected"
    except Exception as e:
        health_status["dependencies"]["database"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"
        logger.error(f"Database health check failed: {str(e)}")

    # Check Redis
    try:
        redis_client = Redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        redis_client.ping()
        health_status["dependencies"]["redis"] = "connected"
    except Exception as e:
        health_status["dependencies"]["redis"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"
        logger.error(f"Redis health check failed: {str(e)}")

    # Check Qdrant (optional - don't fail if not available)
    if vector_store.health_check():
        health_status["dependencies"]["qdrant"] = "connected"
    else:
        health_status["dependencies"]["qdrant"] = "not available"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(**health_status)
