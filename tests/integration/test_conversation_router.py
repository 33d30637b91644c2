"""Integration tests for the conversation router."""

from httpx import AsyncClient

from app.models.message import ASSISTANT_ROLE, USER_ROLE
from tests.conftest import fetch_conversation, fetch_messages, seed_conversation


class TestCreateAndList:
    """POST and GET /api/v1/conversations."""

    async def test_create_conversation(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post(
            "/api/v1/conversations",
            json={"title": "Trip planning", "description": "Summer"},
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["title"] == "Trip planning"
        assert data["description"] == "Summer"
        assert data["is_shared"] is False

    async def test_list_only_own_conversations(
        self, authed_client: AsyncClient
    ) -> None:
        await seed_conversation(owner_id=1, title="Mine")
        await seed_conversation(owner_id=2, title="Theirs")

        resp = await authed_client.get("/api/v1/conversations")

        assert resp.status_code == 200
        titles = [c["title"] for c in resp.json()["data"]["conversations"]]
        assert titles == ["Mine"]

    async def test_cursor_pagination(self, authed_client: AsyncClient) -> None:
        for i in range(3):
            await seed_conversation(title=f"c{i}")

        first = await authed_client.get("/api/v1/conversations", params={"limit": 2})
        cursor = first.json()["data"]["next_cursor"]
        second = await authed_client.get(
            "/api/v1/conversations", params={"limit": 2, "cursor": cursor}
        )

        assert first.json()["data"]["has_next"] is True
        assert [c["title"] for c in first.json()["data"]["conversations"]] == ["c2", "c1"]
        assert [c["title"] for c in second.json()["data"]["conversations"]] == ["c0"]

    async def test_invalid_cursor(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.get("/api/v1/conversations", params={"cursor": "@@"})

        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_CURSOR"


class TestMessages:
    """GET /api/v1/conversations/{id}/messages."""

    async def test_history_in_order(self, authed_client: AsyncClient) -> None:
        conversation, _ = await seed_conversation(
            messages=[(USER_ROLE, "Hello"), (ASSISTANT_ROLE, "Hi there")]
        )

        resp = await authed_client.get(f"/api/v1/conversations/{conversation.id}/messages")

        assert resp.status_code == 200
        contents = [m["content"] for m in resp.json()["data"]["messages"]]
        assert contents == ["Hello", "Hi there"]

    async def test_foreign_history_is_forbidden(self, other_client: AsyncClient) -> None:
        conversation, _ = await seed_conversation(messages=[(USER_ROLE, "private")])

        resp = await other_client.get(f"/api/v1/conversations/{conversation.id}/messages")

        assert resp.status_code == 403

    async def test_missing_conversation(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.get("/api/v1/conversations/missing/messages")

        assert resp.status_code == 404
        assert resp.json()["code"] == "CONVERSATION_NOT_FOUND"


class TestUpdateAndDelete:
    """PATCH and DELETE /api/v1/conversations/{id}."""

    async def test_update_title_only(self, authed_client: AsyncClient) -> None:
        created = await authed_client.post(
            "/api/v1/conversations", json={"title": "Old", "description": "Keep"}
        )
        conversation_id = created.json()["data"]["id"]

        resp = await authed_client.patch(
            f"/api/v1/conversations/{conversation_id}", json={"title": "New"}
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["title"] == "New"
        assert data["description"] == "Keep"

    async def test_delete_cascades(self, authed_client: AsyncClient) -> None:
        conversation, _ = await seed_conversation(messages=[(USER_ROLE, "bye")])

        resp = await authed_client.delete(f"/api/v1/conversations/{conversation.id}")

        assert resp.status_code == 200
        assert await fetch_conversation(conversation.id) is None
        assert await fetch_messages(conversation.id) == []

    async def test_delete_foreign_conversation(self, other_client: AsyncClient) -> None:
        conversation, _ = await seed_conversation()

        resp = await other_client.delete(f"/api/v1/conversations/{conversation.id}")

        assert resp.status_code == 403
        assert await fetch_conversation(conversation.id) is not None


class TestSharing:
    """POST/DELETE /api/v1/conversations/{id}/share and the public view."""

    async def test_share_and_read_publicly(
        self, authed_client: AsyncClient, async_client: AsyncClient
    ) -> None:
        conversation, _ = await seed_conversation(
            title="Public", messages=[(USER_ROLE, "Hello"), (ASSISTANT_ROLE, "Hi there")]
        )

        resp = await authed_client.post(f"/api/v1/conversations/{conversation.id}/share")

        assert resp.status_code == 200
        share = resp.json()["data"]
        assert share["share_url"] == f"http://test/share/{share['share_token']}"

        public = await async_client.get(f"/api/v1/shared/{share['share_token']}")
        assert public.status_code == 200
        data = public.json()["data"]
        assert data["title"] == "Public"
        assert [m["content"] for m in data["messages"]] == ["Hello", "Hi there"]

    async def test_unshare_hides_public_view(
        self, authed_client: AsyncClient, async_client: AsyncClient
    ) -> None:
        conversation, _ = await seed_conversation()
        share = await authed_client.post(f"/api/v1/conversations/{conversation.id}/share")
        token = share.json()["data"]["share_token"]

        resp = await authed_client.delete(f"/api/v1/conversations/{conversation.id}/share")

        assert resp.status_code == 200
        public = await async_client.get(f"/api/v1/shared/{token}")
        assert public.status_code == 404

    async def test_share_foreign_conversation(self, other_client: AsyncClient) -> None:
        conversation, _ = await seed_conversation()

        resp = await other_client.post(f"/api/v1/conversations/{conversation.id}/share")

        assert resp.status_code == 403
