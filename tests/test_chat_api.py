from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from api.main import create_app
from services.chat_service import ChatService, get_chat_service


@pytest.fixture
def app(chat_service):
    app = create_app()
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def test_new_conversation_then_history(client, llm_service):
    response = client.post("/api/chat/message", json={"message": "Hi"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == llm_service.reply
    assert body["sessionId"]
    assert body["messageId"]
    assert body["timestamp"]

    response = client.get("/api/chat/message", params={"sessionId": body["sessionId"]})

    assert response.status_code == 200
    history = response.json()
    assert history["sessionId"] == body["sessionId"]
    assert history["createdAt"] and history["updatedAt"]
    assert [(m["sender"], m["text"]) for m in history["messages"]] == [
        ("user", "Hi"),
        ("assistant", llm_service.reply),
    ]
    assert history["messages"][1]["id"] == body["messageId"]


def test_continue_conversation(client):
    session_id = client.post("/api/chat/message", json={"message": "one"}).json()["sessionId"]

    response = client.post("/api/chat/message", json={"message": "two", "sessionId": session_id})

    assert response.status_code == 200
    assert response.json()["sessionId"] == session_id
    history = client.get("/api/chat/message", params={"sessionId": session_id}).json()
    assert [m["text"] for m in history["messages"] if m["sender"] == "user"] == ["one", "two"]


@pytest.mark.parametrize("payload", [{"message": ""}, {"message": "x" * 2001}, {}, {"message": 5}])
def test_invalid_body_is_400(client, payload):
    response = client.post("/api/chat/message", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["details"][0]["path"] == ["message"]


def test_exactly_2000_chars_is_accepted(client):
    response = client.post("/api/chat/message", json={"message": "x" * 2000})
    assert response.status_code == 200


def test_malformed_json_is_400(client):
    response = client.post(
        "/api/chat/message", content="{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON in request body"}


def test_unknown_session_is_404_on_both_endpoints(client):
    response = client.post("/api/chat/message", json={"message": "Hi", "sessionId": "unknown"})
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}

    response = client.get("/api/chat/message", params={"sessionId": "unknown"})
    assert response.status_code == 404


def test_history_without_session_id_is_400(client):
    response = client.get("/api/chat/message")

    assert response.status_code == 400
    assert response.json()["error"] == "sessionId is required"


def test_storage_failure_is_generic_500(llm_service, cache):
    conversation_service = MagicMock()
    conversation_service.create_conversation = AsyncMock(
        side_effect=ServerSelectionTimeoutError("mongo-host:27017: connection refused")
    )
    app = create_app()
    app.dependency_overrides[get_chat_service] = lambda: ChatService(conversation_service, llm_service, cache)

    response = TestClient(app).post("/api/chat/message", json={"message": "Hi"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "An error occurred processing your message",
        "message": "Please try again later or contact support",
    }
    assert "mongo-host" not in response.text


def test_history_storage_failure_is_generic_500(llm_service, cache):
    conversation_service = MagicMock()
    conversation_service.load_snapshot = AsyncMock(
        side_effect=ServerSelectionTimeoutError("mongo-host:27017: connection refused")
    )
    app = create_app()
    app.dependency_overrides[get_chat_service] = lambda: ChatService(conversation_service, llm_service, cache)

    response = TestClient(app).get("/api/chat/message", params={"sessionId": "some-session"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to retrieve conversation",
        "message": "Please try again later or contact support",
    }
    assert "mongo-host" not in response.text
