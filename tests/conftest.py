"""Pytest configuration and fixtures"""

import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["EMBEDDING_DIMENSION"] = "8"
os.environ["RAG_ENABLE_CACHE"] = "false"
os.environ["ASSISTANT_READY_DELAY_SECONDS"] = "0"
os.environ["INDEXING_FILES_PER_SECOND"] = "0"
os.environ["REDIS_URL"] = "redis://localhost:1/0"
os.environ["QDRANT_COLLECTION"] = "test_chunks"

import re
from types import SimpleNamespace

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from qdrant_client import QdrantClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from talktofolder.main import app
from talktofolder.database.base import Base
from talktofolder.database.session import get_db
from talktofolder.models import User, Folder, DriveFile, Chat
from talktofolder.rag.assistant_client import AssistantClient
from talktofolder.rag.chat_orchestrator import ChatOrchestrator, get_chat_orchestrator
from talktofolder.rag.retriever import Retriever
from talktofolder.rag.vector_store import VectorStore, get_vector_store
from talktofolder.security.auth import get_current_user
from talktofolder.security.rate_limiter import TokenBucket
from talktofolder.services.drive_extractor import ExtractedText
from talktofolder.services.indexing_service import IndexingService, get_indexing_service
from talktofolder.api.endpoints.chat import enforce_chat_rate_limit
from talktofolder.api.endpoints.folders import get_extractor

# In-memory database shared by every connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

VOCABULARY = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta"]


class FakeEmbeddings:
    """Keyword-count vectors: texts sharing words score high"""

    def __init__(self):
        self.calls = 0

    def _vector(self, text):
        words = re.findall(r"[a-z]+", text.lower())
        vector = [float(words.count(word)) for word in VOCABULARY]
        vector.append(0.01)
        return vector

    def generate_embedding(self, text):
        self.calls += 1
        return self._vector(text)

    def generate_embeddings_batch(self, texts):
        self.calls += 1
        return [self._vector(text) for text in texts]


def make_api_error(error_class, status_code, code=None):
    """Build an OpenAI SDK status error the way the SDK raises it"""
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status_code, request=request)
    return error_class(f"Error code: {status_code}", response=response, body={"code": code, "message": "failed"})


def make_connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/responses"))


class FakeUsage:
    def model_dump(self):
        return {"input_tokens": 12, "output_tokens": 8, "total_tokens": 20}


class FakeStoreFiles:
    def __init__(self, parent):
        self.parent = parent
        self.files = {}
        self.status = "completed"

    def create_and_poll(self, file_id, *, vector_store_id, attributes=None, **kwargs):
        last_error = SimpleNamespace(message="unsupported file") if self.status == "failed" else None
        store_file = SimpleNamespace(id=file_id, status=self.status, attributes=attributes, last_error=last_error)
        self.files.setdefault(vector_store_id, []).append(store_file)
        return store_file

    def list(self, vector_store_id, **kwargs):
        if self.parent.error:
            raise self.parent.error
        return list(self.files.get(vector_store_id, []))

    def delete(self, file_id, *, vector_store_id):
        self.files[vector_store_id] = [f for f in self.files.get(vector_store_id, []) if f.id != file_id]


class FakeVectorStores:
    def __init__(self):
        self.stores = {}
        self.deleted = []
        self.created = 0
        self.error = None
        self.on_create = None
        self.files = FakeStoreFiles(self)

    def create(self, name, metadata=None):
        if self.error:
            raise self.error
        self.created += 1
        store = SimpleNamespace(id=f"vs_{self.created}", name=name, metadata=metadata)
        self.stores[store.id] = store
        if self.on_create:
            self.on_create(store)
        return store

    def list(self, **kwargs):
        if self.error:
            raise self.error
        return list(self.stores.values())

    def retrieve(self, vector_store_id):
        if vector_store_id not in self.stores:
            raise make_api_error(openai.NotFoundError, 404)
        return self.stores[vector_store_id]

    def delete(self, vector_store_id):
        self.stores.pop(vector_store_id, None)
        self.deleted.append(vector_store_id)


class FakeFiles:
    def __init__(self):
        self.uploads = []
        self.deleted = []
        self.error = None

    def create(self, file, purpose):
        if self.error:
            raise self.error
        name, handle = file
        upload = SimpleNamespace(id=f"file_{len(self.uploads) + 1}", name=name, content=handle.read().decode("utf-8"))
        self.uploads.append(upload)
        return upload

    def delete(self, file_id):
        self.deleted.append(file_id)


class FakeResponses:
    def __init__(self):
        self.calls = []
        self.error = None
        self.output_text = "Answer from your documents."

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(output_text=self.output_text, usage=FakeUsage())


class FakeOpenAI:
    """The slice of the OpenAI client the assistant uses"""

    def __init__(self):
        self.vector_stores = FakeVectorStores()
        self.files = FakeFiles()
        self.responses = FakeResponses()


class FakeGenerator:
    def __init__(self, reply="Fallback answer."):
        self.reply = reply
        self.error = None
        self.calls = []

    def complete(self, system_prompt, user_message, temperature=None, max_tokens=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "temperature": temperature,
            "max_tokens": max_tokens
        })
        if self.error:
            raise self.error
        return self.reply


class FakeExtractor:
    """Content by file name; an Exception value is raised"""

    def __init__(self, contents):
        self.contents = contents

    def extract(self, file):
        content = self.contents.get(file.name, "")
        if isinstance(content, Exception):
            raise content
        return ExtractedText(content=content)


@pytest.fixture(scope="function")
def db():
    """Database session fixture"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    user = User(id="user-1", email="ana@example.com", name="Ana", google_access_token="token")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def folder(db, user):
    folder = Folder(user_id=user.id, drive_id="drive-folder-1", name="Research")
    db.add(folder)
    db.commit()
    return folder


@pytest.fixture
def add_files(db, folder):
    def _add(*names, mime_type="text/plain"):
        files = [
            DriveFile(folder_id=folder.id, drive_id=f"drive-{name}", name=name, mime_type=mime_type)
            for name in names
        ]
        db.add_all(files)
        db.commit()
        return files
    return _add


@pytest.fixture
def chat(db, folder):
    chat = Chat(folder_id=folder.id)
    db.add(chat)
    db.commit()
    return chat


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddings()


@pytest.fixture
def vector_store(fake_embeddings):
    return VectorStore(client=QdrantClient(":memory:"), embeddings=fake_embeddings)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def assistant_client(fake_openai, tmp_path, sleeps):
    return AssistantClient(client=fake_openai, ready_delay=0, sleep=sleeps.append, temp_dir=str(tmp_path))


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def orchestrator(assistant_client, vector_store, fake_generator):
    return ChatOrchestrator(
        assistant_client=assistant_client,
        retriever=Retriever(vector_store=vector_store),
        generator=fake_generator
    )


@pytest.fixture
def indexing_service(vector_store, assistant_client):
    return IndexingService(
        vector_store=vector_store,
        assistant_client=assistant_client,
        throttle=TokenBucket(rate=0)
    )


@pytest.fixture
def extractor():
    return FakeExtractor({})


@pytest.fixture(scope="function")
def client(db, user, orchestrator, indexing_service, vector_store, extractor):
    """Test client fixture"""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[enforce_chat_rate_limit] = lambda: user
    app.dependency_overrides[get_chat_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_indexing_service] = lambda: indexing_service
    app.dependency_overrides[get_vector_store] = lambda: vector_store
    app.dependency_overrides[get_extractor] = lambda: extractor

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
