"""Tests for the FastAPI bridge."""

import json

import pytest
from fastapi.testclient import TestClient

from mynotes.backend.config import Settings
from mynotes.backend.exceptions import UnableToGetDocumentsDirectoryError
from mynotes.backend.main import create_app
from mynotes.backend.notes_service import NotesService


class StubRequest:
    """Stands in for the Starlette request a streaming route polls."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def route_endpoint(app, path):
    [route] = [r for r in app.routes if getattr(r, "path", None) == path]
    return route.endpoint


@pytest.fixture
def client(tmp_path):
    app = create_app(Settings(data_dir=tmp_path))
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["auth_state"] == "loading"


def test_register_and_login_flow(client):
    response = client.post("/auth/initialize", params={"wait": True})
    assert response.json()["state"] == "logged_out"

    response = client.post("/auth/should-register", params={"wait": True})
    assert response.json()["state"] == "registering"

    creds = {"email": "alice@mynotes.io", "password": "secret1"}
    response = client.post("/auth/register", json=creds, params={"wait": True})
    assert response.json()["state"] == "needs_verification"

    response = client.post("/auth/logout", params={"wait": True})
    assert response.json()["state"] == "logged_out"
    assert response.json()["error"] is None

    response = client.post("/auth/login", json={**creds, "password": "wrong-one"}, params={"wait": True})
    body = response.json()
    assert body["state"] == "logged_out"
    assert body["error"] == {"kind": "wrong-password", "message": "Wrong credentials"}

    response = client.post("/auth/login", json=creds, params={"wait": True})
    assert response.json()["state"] == "needs_verification"
    assert client.get("/auth/state").json()["state"] == "needs_verification"


def test_register_errors_are_reported_in_state(client):
    client.post("/auth/initialize", params={"wait": True})

    response = client.post(
        "/auth/register",
        json={"email": "not-an-email", "password": "secret1"},
        params={"wait": True},
    )

    body = response.json()
    assert body["state"] == "registering"
    assert body["error"]["kind"] == "invalid-email"
    assert body["error"]["message"] == "Invalid email"


def test_forgot_password_without_email(client):
    response = client.post("/auth/forgot-password", json={}, params={"wait": True})

    body = response.json()
    assert body["state"] == "forgot_password"
    assert body["has_sent_email"] is False
    assert body["is_loading"] is False


def test_note_crud(client):
    user = client.post("/users", json={"email": "X@Y.com"}).json()
    assert user["email"] == "x@y.com"

    created = client.post("/notes", json={"email": "x@y.com"}).json()["note"]
    assert created["text"] == ""
    assert created["is_synced_with_cloud"] is False

    updated = client.put(f"/notes/{created['id']}", json={"text": "hello"}).json()["note"]
    assert updated["text"] == "hello"

    cache = client.get("/notes/cache").json()
    assert cache["count"] == 1
    assert cache["notes"][0]["text"] == "hello"
    assert client.get("/notes").json()["notes"] == cache["notes"]
    assert client.get(f"/notes/{created['id']}").json()["note"] == updated

    assert client.delete(f"/notes/{created['id']}").status_code == 200
    response = client.delete(f"/notes/{created['id']}")
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "could-not-delete-note",
        "detail": "Could not delete note",
    }


def test_missing_entities(client):
    assert client.get("/notes/999").status_code == 404
    assert client.get("/users/nobody@y.com").status_code == 404
    assert client.post("/notes", json={"email": "nobody@y.com"}).status_code == 404
    assert client.put("/notes/999", json={"text": "x"}).status_code == 404
    assert client.delete("/users/nobody@y.com").status_code == 400


def test_delete_all_notes(client):
    client.post("/users", json={"email": "x@y.com"})
    client.post("/notes", json={"email": "x@y.com"})
    client.post("/notes", json={"email": "x@y.com"})

    response = client.delete("/notes")

    assert response.json() == {"success": True, "deleted": 2}
    assert client.get("/notes/cache").json()["count"] == 0


def test_forgot_password_for_unknown_account(client):
    client.post("/auth/initialize", params={"wait": True})

    response = client.post(
        "/auth/forgot-password",
        json={"email": "nobody@mynotes.io"},
        params={"wait": True},
    )

    body = response.json()
    assert body["has_sent_email"] is False
    assert body["error"] == {
        "kind": "user-not-found",
        "message": "We could not process your request. Please try again.",
    }


def test_unusable_data_dir_is_a_store_error(tmp_path):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("")

    with pytest.raises(UnableToGetDocumentsDirectoryError):
        create_app(Settings(data_dir=not_a_dir))


def test_corrupt_notes_database_is_reported(tmp_path):
    (tmp_path / "notes.db").write_bytes(b"this is not a sqlite database" * 100)

    with TestClient(create_app(Settings(data_dir=tmp_path))) as client:
        response = client.get("/notes")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "could-not-open-database",
        "detail": "Could not open the notes database",
    }

class TestNotesStream:

    @pytest.mark.asyncio
    async def test_one_frame_per_cache_change(self, tmp_path):
        notes = NotesService(data_dir=tmp_path)
        app = create_app(Settings(data_dir=tmp_path), notes_service=notes)
        request = StubRequest()

        response = await route_endpoint(app, "/notes/stream")(request)
        events = response.body_iterator

        assert response.media_type == "text/event-stream"
        assert notes.subscriber_count == 1

        owner = await notes.create_user("x@y.com")
        note = await notes.create_note(owner)

        # Opening the store publishes the empty cache first
        assert await anext(events) == "data: []\n\n"
        frame = await anext(events)
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == [note.to_dict()]

        request.disconnected = True
        await notes.delete_note(note.id)

        with pytest.raises(StopAsyncIteration):
            await anext(events)
        assert notes.subscriber_count == 0
        await notes.close()

    @pytest.mark.asyncio
    async def test_closing_the_response_unsubscribes(self, tmp_path):
        notes = NotesService(data_dir=tmp_path)
        app = create_app(Settings(data_dir=tmp_path), notes_service=notes)

        response = await route_endpoint(app, "/notes/stream")(StubRequest())
        await notes.open()
        assert await anext(response.body_iterator) == "data: []\n\n"

        await response.body_iterator.aclose()

        assert notes.subscriber_count == 0
        await notes.close()
