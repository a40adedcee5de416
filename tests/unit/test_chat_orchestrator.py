"""Test chat turn orchestration"""

from datetime import datetime, timedelta

import openai
import pytest

from talktofolder.exceptions import DatabaseException
from talktofolder.models import Message
from talktofolder.rag.prompt_templates import FAILURE_MESSAGE, NO_CONTEXT_MESSAGE
from talktofolder.rag.text_chunker import TextChunk
from talktofolder.services import chat_service
from conftest import make_api_error, make_connection_error


@pytest.fixture
def indexed_chunks(vector_store, folder, user):
    """Two chunks in the chat's folder, one in another folder"""
    def chunk(text, index):
        return TextChunk(content=text, start_index=0, end_index=len(text), chunk_index=index)

    vector_store.index_file_chunks(
        "file-a", "plan.txt", folder.id, folder.name, user.id, "text/plain",
        [chunk("alpha launch plan", 0), chunk("gamma budget", 1)]
    )
    vector_store.index_file_chunks(
        "file-b", "other.txt", "other-folder", "Other", user.id, "text/plain",
        [chunk("alpha elsewhere", 0)]
    )


def terms_error():
    return make_api_error(openai.PermissionDeniedError, 403, code="unsupported_country_region_territory")


def transcript(db, chat):
    return db.query(Message).filter(Message.chat_id == chat.id).order_by(Message.created_at).all()


def test_assistant_success(db, chat, user, orchestrator, fake_openai, fake_generator):
    result = orchestrator.handle_assistant_turn(db, chat, user.id, "What is the plan?")

    assert result.response == "Answer from your documents."
    assert result.usage["total_tokens"] == 20
    assert result.fallback is None
    assert result.error is None
    assert fake_generator.calls == []

    messages = transcript(db, chat)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].id == result.message_id
    assert messages[1].citations is None


def test_terms_error_falls_back_to_vector_search(
    db, chat, folder, user, orchestrator, fake_openai, fake_generator, indexed_chunks
):
    fake_openai.responses.error = terms_error()

    result = orchestrator.handle_assistant_turn(db, chat, user.id, "alpha")

    assert result.fallback == "vector-search"
    assert result.response == "Fallback answer."
    assert [c["file_name"] for c in result.citations] == ["plan.txt"]
    assert set(result.citations[0]) == {"file_name", "file_id", "score", "chunk_index"}

    call = fake_generator.calls[0]
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 1000
    assert call["user_message"] == "alpha"
    assert "plan.txt: alpha launch plan" in call["system_prompt"]
    assert folder.name in call["system_prompt"]
    assert "elsewhere" not in call["system_prompt"]

    saved = transcript(db, chat)[-1]
    assert saved.citations[0]["file_id"] == "file-a"


def test_fallback_without_matches_uses_sentinel(db, chat, user, orchestrator, fake_openai, fake_generator):
    fake_openai.responses.error = terms_error()

    result = orchestrator.handle_assistant_turn(db, chat, user.id, "alpha")

    assert result.citations == []
    assert NO_CONTEXT_MESSAGE in fake_generator.calls[0]["system_prompt"]


@pytest.mark.parametrize("error", [
    make_api_error(openai.NotFoundError, 404),
    make_api_error(openai.RateLimitError, 429),
    make_connection_error(),
])
def test_other_assistant_errors_skip_fallback(db, chat, user, orchestrator, fake_openai, fake_generator, error):
    fake_openai.responses.error = error

    result = orchestrator.handle_assistant_turn(db, chat, user.id, "alpha")

    assert result.response == FAILURE_MESSAGE
    assert result.error == "Assistant processing error"
    assert fake_generator.calls == []
    assert [m.content for m in transcript(db, chat)] == ["alpha", FAILURE_MESSAGE]


def test_fallback_failure_gives_failure_message(db, chat, user, orchestrator, fake_openai, fake_generator):
    fake_openai.responses.error = terms_error()
    fake_generator.error = RuntimeError("completion down")

    result = orchestrator.handle_assistant_turn(db, chat, user.id, "alpha")

    assert result.response == FAILURE_MESSAGE
    assert result.citations is None
    assert transcript(db, chat)[-1].citations is None


def test_user_message_is_kept_on_failure(db, chat, user, orchestrator, fake_openai):
    fake_openai.vector_stores.error = make_connection_error()

    orchestrator.handle_assistant_turn(db, chat, user.id, "keep me")

    messages = transcript(db, chat)
    assert messages[0].role == "user"
    assert messages[0].content == "keep me"


def test_reply_is_strictly_after_user_message(db, chat, user, orchestrator):
    result = orchestrator.handle_assistant_turn(db, chat, user.id, "hello")

    user_message, reply = transcript(db, chat)
    assert reply.id == result.message_id
    assert user_message.created_at < reply.created_at


def test_save_assistant_message_orders_after_future_timestamp(db, chat):
    user_message = chat_service.save_user_message(chat.id, "hi", db)
    user_message.created_at = datetime.utcnow() + timedelta(seconds=5)
    db.commit()

    reply = chat_service.save_assistant_message(chat.id, "hello", db, after=user_message)

    assert reply.created_at > user_message.created_at


def test_chat_touched_only_on_success(db, chat, user, orchestrator, fake_openai):
    old = datetime(2020, 1, 1)
    chat.updated_at = old
    db.commit()

    fake_openai.responses.error = make_api_error(openai.NotFoundError, 404)
    orchestrator.handle_assistant_turn(db, chat, user.id, "first")
    db.refresh(chat)
    assert chat.updated_at == old

    fake_openai.responses.error = None
    orchestrator.handle_assistant_turn(db, chat, user.id, "second")
    db.refresh(chat)
    assert chat.updated_at > old


def test_history_excludes_new_message(db, chat, user, orchestrator, fake_openai):
    orchestrator.handle_assistant_turn(db, chat, user.id, "first question")
    orchestrator.handle_assistant_turn(db, chat, user.id, "second question")

    sent = fake_openai.responses.calls[-1]["input"]
    assert [m["content"] for m in sent] == [
        "first question", "Answer from your documents.", "second question"
    ]


def test_history_is_limited(db, chat, user, assistant_client, fake_openai, orchestrator):
    orchestrator.history_limit = 2
    for i in range(3):
        orchestrator.handle_assistant_turn(db, chat, user.id, f"question {i}")

    sent = fake_openai.responses.calls[-1]["input"]
    assert len(sent) == 3
    assert sent[-1]["content"] == "question 2"


def test_vector_turn(db, chat, user, orchestrator, fake_openai, fake_generator, indexed_chunks):
    result = orchestrator.handle_vector_turn(db, chat, user.id, "alpha")

    assert result.fallback == "vector-search"
    assert result.citations[0]["file_id"] == "file-a"
    assert fake_openai.responses.calls == []


def test_vector_turn_failure(db, chat, user, orchestrator, fake_generator):
    fake_generator.error = RuntimeError("down")

    result = orchestrator.handle_vector_turn(db, chat, user.id, "alpha")

    assert result.response == FAILURE_MESSAGE
    assert result.error


def test_user_message_persist_failure_raises(db, chat, user, orchestrator, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("db gone"))

    monkeypatch.setattr(chat_service, "save_user_message", broken)

    with pytest.raises(DatabaseException):
        orchestrator.handle_assistant_turn(db, chat, user.id, "hello")


def test_result_dict_omits_empty_fields(db, chat, user, orchestrator):
    result = orchestrator.handle_assistant_turn(db, chat, user.id, "hello")

    data = result.to_dict()
    assert "citations" not in data
    assert "error" not in data
    assert data["message_id"] == result.message_id


def test_reply_and_chat_activity_share_one_commit(db, chat, user, orchestrator):
    result = orchestrator.handle_assistant_turn(db, chat, user.id, "Hello")

    db.refresh(chat)
    reply = db.query(Message).filter(Message.id == result.message_id).one()
    assert chat.updated_at == reply.created_at
    assistant_messages = [m for m in transcript(db, chat) if m.role == "assistant"]
    assert [m.content for m in assistant_messages] == ["Answer from your documents."]
