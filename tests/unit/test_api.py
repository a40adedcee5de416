"""Test HTTP endpoints"""

import openai

from talktofolder.models import Chat, DriveFile, Folder, Message
from talktofolder.rag.prompt_templates import FAILURE_MESSAGE
from conftest import make_api_error


def register(client, drive_id="drive-folder-9", files=None):
    return client.post("/api/folders", json={
        "drive_id": drive_id,
        "name": "Projects",
        "files": files if files is not None else [
            {"drive_id": "d1", "name": "a.txt", "mime_type": "text/plain"},
            {"drive_id": "d2", "name": "b.txt", "mime_type": "text/plain"},
        ]
    })


def test_register_folder(client, db):
    response = register(client)

    assert response.status_code == 200
    data = response.json()
    assert data["drive_id"] == "drive-folder-9"
    assert data["index_status"] == "pending"
    assert data["file_count"] == 2


def test_register_folder_from_url(client):
    response = client.post("/api/folders", json={
        "folder_url": "https://drive.google.com/drive/folders/AbC_123-x?usp=sharing",
        "name": "Shared"
    })

    assert response.status_code == 200
    assert response.json()["drive_id"] == "AbC_123-x"


def test_register_folder_bad_url(client):
    response = client.post("/api/folders", json={"folder_url": "https://example.com/nothing", "name": "x"})

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationException"


def test_refresh_removes_missing_files(client, db):
    register(client)
    register(client, files=[{"drive_id": "d2", "name": "b-renamed.txt", "mime_type": "text/plain"}])

    files = db.query(DriveFile).all()
    assert [f.name for f in files] == ["b-renamed.txt"]
    assert db.query(Folder).count() == 1


def test_unknown_folder_is_404(client):
    response = client.post("/api/folders/missing/chat")

    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundException"


def test_open_chat_is_idempotent(client, folder):
    first = client.post(f"/api/folders/{folder.drive_id}/chat").json()
    second = client.post(f"/api/folders/{folder.drive_id}/chat").json()

    assert first["id"] == second["id"]
    assert first["folder_name"] == folder.name


def test_index_folder_and_file_status(client, db, folder, add_files, extractor):
    (f,) = add_files("a.txt")
    extractor.contents["a.txt"] = "alpha beta"

    response = client.post(f"/api/folders/{folder.drive_id}/index")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["results"][0]["chunk_count"] == 1

    status = client.get(f"/api/files/{f.id}/status").json()
    assert status == {"file_id": f.id, "name": "a.txt", "indexed": True, "chunk_count": 1}


def test_index_in_progress_is_409(client, db, folder, add_files):
    from datetime import datetime

    add_files("a.txt")
    folder.index_status = "processing"
    folder.last_indexed = datetime.utcnow()
    db.commit()

    response = client.post(f"/api/folders/{folder.drive_id}/index")

    assert response.status_code == 409


def test_index_with_assistant(client, folder, add_files, extractor):
    add_files("a.txt")
    extractor.contents["a.txt"] = "alpha"

    response = client.post(f"/api/folders/{folder.drive_id}/index-assistant")

    assert response.status_code == 200
    assert response.json()["results"][0]["batch"] == f"folder_{folder.id}_batch_1.txt"


def test_index_single_file(client, folder, add_files, extractor):
    (f,) = add_files("a.txt")
    extractor.contents["a.txt"] = "alpha"

    response = client.post(f"/api/files/{f.id}/index")

    assert response.status_code == 200
    assert response.json()["status"] == "success"


def test_chat_assistant_turn(client, chat):
    response = client.post("/api/chat-assistant", json={"chat_id": chat.id, "message": "Hi"})

    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "Answer from your documents."
    assert "citations" not in data


def test_chat_assistant_failure_is_soft(client, chat, fake_openai):
    fake_openai.responses.error = make_api_error(openai.NotFoundError, 404)

    response = client.post("/api/chat-assistant", json={"chat_id": chat.id, "message": "Hi"})

    assert response.status_code == 200
    assert response.json()["response"] == FAILURE_MESSAGE
    assert response.json()["error"] == "Assistant processing error"


def test_vector_chat_turn(client, chat):
    response = client.post("/api/chat", json={"chat_id": chat.id, "message": "alpha"})

    assert response.status_code == 200
    assert response.json()["fallback"] == "vector-search"


def test_empty_message_rejected(client, chat):
    response = client.post("/api/chat", json={"chat_id": chat.id, "message": ""})
    assert response.status_code == 422


def test_chat_of_other_user_is_404(client, db):
    other = Folder(user_id="someone-else", drive_id="x", name="Private")
    db.add(other)
    db.commit()
    foreign_chat = Chat(folder_id=other.id)
    db.add(foreign_chat)
    db.commit()

    response = client.post("/api/chat", json={"chat_id": foreign_chat.id, "message": "hi"})

    assert response.status_code == 404


def test_messages_transcript(client, chat):
    client.post("/api/chat-assistant", json={"chat_id": chat.id, "message": "First"})

    data = client.get(f"/api/chat/{chat.id}/messages").json()

    assert data["chat"]["id"] == chat.id
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
    assert data["messages"][0]["content"] == "First"


def test_delete_chat(client, db, chat, folder):
    client.post("/api/chat-assistant", json={"chat_id": chat.id, "message": "First"})

    response = client.delete(f"/api/chat/{chat.id}")

    assert response.status_code == 200
    assert db.query(Chat).count() == 0
    assert db.query(Message).count() == 0
    db.refresh(folder)
    assert folder.index_status == "pending"


def test_recent_chats_ordered_by_activity(client, db, user):
    chats = []
    for i in range(3):
        folder = Folder(user_id=user.id, drive_id=f"drive-{i}", name=f"F{i}")
        db.add(folder)
        db.commit()
        chat = Chat(folder_id=folder.id)
        db.add(chat)
        db.commit()
        chats.append(chat)

    client.post("/api/chat-assistant", json={"chat_id": chats[0].id, "message": "wake up"})

    recent = client.get("/api/chats/recent").json()

    assert len(recent) == 3
    assert recent[0]["id"] == chats[0].id


def test_vector_db_init(client):
    response = client.post("/api/vector-db/init")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
