"""Tests for the messaging REST API."""

import json
from unittest.mock import AsyncMock


async def _create(api_client, participants, title=None):
    body = {"participants": participants}
    if title is not None:
        body["title"] = title
    return await api_client.post("/api/messages/conversations", json=body)


async def _post(api_client, conversation_id, **form):
    return await api_client.post(
        f"/api/messages/conversations/{conversation_id}/messages", data=form
    )


class TestSystemRoutes:
    """Tests for status endpoints."""

    async def test_api_root(self, api_client):
        """Test the liveness message."""
        response = await api_client.get("/api")
        assert response.status_code == 200
        assert response.json() == {
            "message": "WorkiT API is running",
            "storageStatus": "connected",
        }

    async def test_db_status(self, api_client):
        """Test the repository connection report."""
        response = await api_client.get("/api/dbstatus")
        assert response.status_code == 200
        assert response.json() == {"isConnected": True, "database": ":memory:"}


class TestConversationRoutes:
    """Tests for conversation endpoints."""

    async def test_create_then_reuse(self, api_client):
        """Test that the same participant set yields the same conversation."""
        first = await _create(api_client, ["u1", "u2"], "API work")
        second = await _create(api_client, ["u2", "u1"])

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["id"] == second.json()["id"]
        assert first.json()["title"] == "API work"

    async def test_create_requires_two_participants(self, api_client):
        """Test the 400 envelope for too few participants."""
        response = await _create(api_client, ["u1"])
        assert response.status_code == 400
        assert response.json() == {"message": "At least two participants are required"}

        response = await _create(api_client, ["u1", "u1"])
        assert response.status_code == 400

    async def test_invalid_body(self, api_client):
        """Test that a malformed body is reported as 400 with a message."""
        response = await api_client.post(
            "/api/messages/conversations", json={"participants": "u1"}
        )
        assert response.status_code == 400
        assert "message" in response.json()

    async def test_list_for_user(self, api_client):
        """Test that only the user's conversations are listed, newest first."""
        a = (await _create(api_client, ["u1", "u2"])).json()
        b = (await _create(api_client, ["u1", "u3"])).json()
        await _create(api_client, ["u4", "u5"])
        await _post(api_client, a["id"], content="bump", senderId="u2", receiverId="u1")

        response = await api_client.get("/api/messages/conversations/u1")

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [a["id"], b["id"]]


class TestMessageRoutes:
    """Tests for message endpoints."""

    async def test_send_and_list(self, api_client):
        """Test posting a message and reading it back."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await _post(api_client, conv["id"], content="Hello", senderId="u1", receiverId="u2")
        assert response.status_code == 201
        message = response.json()
        assert message["senderId"] == "u1"
        assert message["isRead"] is False

        response = await api_client.get(f"/api/messages/conversations/{conv['id']}/messages")
        assert response.status_code == 200
        assert [m["content"] for m in response.json()] == ["Hello"]

    async def test_send_requires_fields(self, api_client):
        """Test the 400 envelope for a message without sender."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await _post(api_client, conv["id"], content="Hello", receiverId="u2")

        assert response.status_code == 400
        assert response.json() == {"message": "Content, senderId, and receiverId are required"}

    async def test_send_to_unknown_conversation(self, api_client):
        """Test that posting into a missing conversation is a 404."""
        response = await _post(api_client, "missing", content="Hello", senderId="u1", receiverId="u2")
        assert response.status_code == 404
        assert response.json() == {"message": "Conversation not found"}

    async def test_messages_of_unknown_conversation(self, api_client):
        """Test that listing a missing conversation is a 404."""
        response = await api_client.get("/api/messages/conversations/missing/messages")
        assert response.status_code == 404

    async def test_send_as_outsider(self, api_client):
        """Test that sender and receiver must both be participants."""
        conv = (await _create(api_client, ["u1", "u2"])).json()
        response = await _post(api_client, conv["id"], content="Hi", senderId="u3", receiverId="u2")
        assert response.status_code == 400

    async def test_upload_attachment(self, api_client, application):
        """Test that an uploaded file is stored and served."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await api_client.post(
            f"/api/messages/conversations/{conv['id']}/messages",
            data={"content": "", "senderId": "u1", "receiverId": "u2"},
            files=[("attachments", ("brief.txt", b"scope of work", "text/plain"))],
        )

        assert response.status_code == 201
        [attachment] = response.json()["attachments"]
        assert attachment["type"] == "file"
        assert attachment["name"] == "brief.txt"
        assert attachment["size"] == len(b"scope of work")
        assert attachment["url"].startswith("/uploads/")

        stored = application.uploads_dir / attachment["url"].removeprefix("/uploads/")
        assert stored.read_bytes() == b"scope of work"

        served = await api_client.get(attachment["url"])
        assert served.status_code == 200
        assert served.content == b"scope of work"

    async def test_upload_invalid_type(self, api_client):
        """Test that disallowed file types are rejected."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await api_client.post(
            f"/api/messages/conversations/{conv['id']}/messages",
            data={"content": "run me", "senderId": "u1", "receiverId": "u2"},
            files=[("attachments", ("tool.exe", b"MZ", "application/x-msdownload"))],
        )

        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid file type")

    async def test_link_attachments(self, api_client):
        """Test that links travel as a JSON form field."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await _post(
            api_client,
            conv["id"],
            content="",
            senderId="u1",
            receiverId="u2",
            links=json.dumps([{"type": "link", "url": "https://example.com"}]),
        )

        assert response.status_code == 201
        assert response.json()["attachments"][0]["url"] == "https://example.com"


class TestReadRoutes:
    """Tests for read state endpoints."""

    async def test_mark_read_and_unread_count(self, api_client):
        """Test that mark read clears the receiver's unread count."""
        conv = (await _create(api_client, ["u1", "u2"])).json()
        await _post(api_client, conv["id"], content="one", senderId="u1", receiverId="u2")
        await _post(api_client, conv["id"], content="two", senderId="u1", receiverId="u2")

        response = await api_client.get("/api/messages/unread/u2")
        assert response.json() == {"count": 2}

        response = await api_client.put(
            f"/api/messages/conversations/{conv['id']}/read", json={"userId": "u2"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        response = await api_client.get("/api/messages/unread/u2")
        assert response.json() == {"count": 0}

    async def test_mark_read_requires_user(self, api_client):
        """Test the 400 envelope for a missing userId."""
        conv = (await _create(api_client, ["u1", "u2"])).json()
        response = await api_client.put(f"/api/messages/conversations/{conv['id']}/read", json={})
        assert response.status_code == 400
        assert response.json() == {"message": "userId is required"}

    async def test_mark_read_unknown_conversation(self, api_client):
        """Test that marking a missing conversation is a 404."""
        response = await api_client.put(
            "/api/messages/conversations/missing/read", json={"userId": "u2"}
        )
        assert response.status_code == 404


class TestMessageWriteFailures:
    """Tests for posts that must leave neither rows nor files behind."""

    async def test_client_attachment_ids_are_ignored(self, api_client):
        """Test that duplicate link ids from the client do not break the post."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await _post(
            api_client,
            conv["id"],
            content="x",
            senderId="u1",
            receiverId="u2",
            links=json.dumps(
                [
                    {"type": "link", "url": "https://a.example", "id": "dup"},
                    {"type": "link", "url": "https://b.example", "id": "dup"},
                ]
            ),
        )

        assert response.status_code == 201
        ids = [a["id"] for a in response.json()["attachments"]]
        assert len(set(ids)) == 2
        assert "dup" not in ids

        response = await api_client.get(f"/api/messages/conversations/{conv['id']}/messages")
        assert [m["content"] for m in response.json()] == ["x"]

    async def test_invalid_upload_writes_no_files(self, api_client, application):
        """Test that one disallowed file keeps the valid ones off the disk."""
        conv = (await _create(api_client, ["u1", "u2"])).json()

        response = await api_client.post(
            f"/api/messages/conversations/{conv['id']}/messages",
            data={"content": "", "senderId": "u1", "receiverId": "u2"},
            files=[
                ("attachments", ("brief.txt", b"scope", "text/plain")),
                ("attachments", ("tool.exe", b"MZ", "application/x-msdownload")),
            ],
        )

        assert response.status_code == 400
        assert list(application.uploads_dir.iterdir()) == []

    async def test_failed_insert_removes_written_files(self, api_client, application, monkeypatch):
        """Test that files written for a message that could not be stored are deleted."""
        conv = (await _create(api_client, ["u1", "u2"])).json()
        monkeypatch.setattr(
            application.repository,
            "add_message",
            AsyncMock(side_effect=RuntimeError("database is locked")),
        )

        response = await api_client.post(
            f"/api/messages/conversations/{conv['id']}/messages",
            data={"content": "", "senderId": "u1", "receiverId": "u2"},
            files=[("attachments", ("brief.txt", b"scope", "text/plain"))],
        )

        assert response.status_code == 500
        assert list(application.uploads_dir.iterdir()) == []
