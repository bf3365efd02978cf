import pytest
from fastapi.testclient import TestClient

from conftest import aiml, category
from golem.server import create_app


@pytest.fixture()
def client(bot):
    bot.load_corpus(aiml(
        category("HELLO", "Hi there!"),
        category("CALL ME *", '<think><set name="name"><star/></set></think>OK <get name="name"/>'),
    ))
    return TestClient(create_app(bot))


def test_chat_round_trip(client):
    resp = client.post("/chat", json={"message": "hello", "session_id": "web-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == "Hi there!"
    assert body["session_id"] == "web-1"
    assert body["pattern"] == "HELLO"
    assert body["is_fallback"] is False


def test_chat_fallback_and_validation(client, bot):
    resp = client.post("/chat", json={"message": "unknown words", "session_id": "web-2"})
    assert resp.json()["is_fallback"] is True
    assert resp.json()["text"] == bot.config.not_understood_response
    assert client.post("/chat", json={"message": "   "}).status_code == 400
    assert client.post("/chat", json={}).status_code == 422


def test_session_endpoints(client):
    created = client.post("/sessions", json={"session_id": "s-1"})
    assert created.status_code == 201
    assert created.json()["id"] == "s-1"
    assert client.post("/sessions", json={"session_id": "s-1"}).status_code == 409

    client.post("/chat", json={"message": "call me Ada", "session_id": "s-1"})
    sessions = client.get("/sessions").json()["sessions"]
    assert [s["id"] for s in sessions] == ["s-1"]
    assert sessions[0]["variables"] == {"name": "Ada"}
    assert sessions[0]["turns"] == 1

    assert client.delete("/sessions/s-1").json() == {"status": "deleted", "session_id": "s-1"}
    assert client.delete("/sessions/s-1").status_code == 404


def test_stats_endpoint(client):
    client.post("/chat", json={"message": "hello"})
    stats = client.get("/stats").json()
    assert stats["sessions"] == 1
    assert stats["knowledge_base"]["categories"] == 2
