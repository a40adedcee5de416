"""Test embeddings service batching and caching"""

from types import SimpleNamespace

import pytest

from talktofolder.exceptions import RAGException
from talktofolder.rag import embeddings as embeddings_module
from talktofolder.rag.embeddings import EmbeddingsService


class FakeEmbeddingsAPI:
    def __init__(self):
        self.requests = []
        self.error = None

    def create(self, input, model, **kwargs):
        if self.error:
            raise self.error
        texts = [input] if isinstance(input, str) else input
        self.requests.append(texts)
        data = [
            SimpleNamespace(index=i, embedding=[float(len(text))])
            for i, text in enumerate(texts)
        ]
        # Out of order on purpose
        return SimpleNamespace(data=list(reversed(data)))


class FakeRedis:
    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value


@pytest.fixture
def api():
    return FakeEmbeddingsAPI()


def make_service(api, redis_client=None):
    return EmbeddingsService(
        client=SimpleNamespace(embeddings=api),
        redis_client=redis_client,
        cache_enabled=redis_client is not None
    )


def test_batch_keeps_input_order(api):
    service = make_service(api)

    assert service.generate_embeddings_batch(["a", "bbb", "cc"]) == [[1.0], [3.0], [2.0]]


def test_batch_is_sliced(api, monkeypatch):
    monkeypatch.setattr(embeddings_module, "MAX_INPUTS_PER_REQUEST", 2)
    service = make_service(api)

    result = service.generate_embeddings_batch(["a", "bb", "ccc", "dddd", "eeeee"])

    assert [len(request) for request in api.requests] == [2, 2, 1]
    assert result == [[1.0], [2.0], [3.0], [4.0], [5.0]]


def test_cached_texts_are_not_requested(api):
    service = make_service(api, redis_client=FakeRedis())
    service.generate_embeddings_batch(["a", "bb"])

    result = service.generate_embeddings_batch(["bb", "ccc", "a"])

    assert api.requests[-1] == ["ccc"]
    assert result == [[2.0], [3.0], [1.0]]


def test_empty_batch_makes_no_request(api):
    assert make_service(api).generate_embeddings_batch([]) == []
    assert api.requests == []


def test_api_failure_raises_rag_exception(api):
    api.error = RuntimeError("boom")

    with pytest.raises(RAGException):
        make_service(api).generate_embeddings_batch(["a"])
