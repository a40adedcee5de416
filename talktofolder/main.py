"""FastAPI application entry point"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from talktofolder import __version__
from talktofolder.api.endpoints import chat, folders, health, vector_db
from talktofolder.database.session import engine
from talktofolder.database.base import Base
from talktofolder.config import settings
from talktofolder.utils.logger import setup_logging
from talktofolder.exceptions import TalkToFolderException
import talktofolder.models  # noqa: F401  registers tables on Base

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    - Startup: Initialize database tables
    - Shutdown: Log
    """
    logger.info(f"Starting {settings.APP_NAME}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    from talktofolder.rag.config import rag_config
    logger.info(f"Chat model: {rag_config.llm_model}, assistant model: {rag_config.assistant_model}")
    logger.info(f"Embedding: {rag_config.embedding_model} ({rag_config.vector_size} dims)")
    logger.info("OpenAI API key set" if rag_config.openai_api_key else "OpenAI API key NOT SET")

    # Create database tables
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Database initialization error: {str(e)}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Chat with the documents in your Google Drive folders",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(folders.router, prefix="/api", tags=["folders"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(vector_db.router, prefix="/api", tags=["vector-database"])


# Exception handlers
@app.exception_handler(TalkToFolderException)
async def talktofolder_exception_handler(request: Request, exc: TalkToFolderException):
    """Handle application exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {str(exc)}")
    else:
        logger.warning(f"{exc.__class__.__name__}: {str(exc)}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.__class__.__name__,
            "detail": str(exc)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "detail": "An unexpected error occurred"
        }
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.DEBUG else "disabled"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("talktofolder.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
