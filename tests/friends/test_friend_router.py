"""HTTP tests for the friends endpoints."""

from __future__ import annotations

import pytest


class TestFriendRequests:
    @pytest.mark.asyncio
    async def test_request_accept_flow(self, client, headers_for, users) -> None:
        created = await client.post("/api/v1/friends", json={"friendId": 2}, headers=headers_for(1))
        assert created.status_code == 201
        assert created.json()["isAccepted"] is False

        inbound = await client.get("/api/v1/friends/requests", headers=headers_for(2))
        assert [e["userId"] for e in inbound.json()["data"]] == [1]

        accepted = await client.post("/api/v1/friends/1/accept", headers=headers_for(2))
        assert accepted.status_code == 200
        assert accepted.json()["userId"] == 2
        assert accepted.json()["friendId"] == 1
        assert accepted.json()["isAccepted"] is True

        friends = await client.get("/api/v1/friends", params={"isAccepted": "true"}, headers=headers_for(1))
        assert friends.json()["total"] == 1
        assert (await client.get("/api/v1/friends/requests", headers=headers_for(2))).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_request_by_email(self, client, headers_for, users) -> None:
        response = await client.post("/api/v1/friends", json={"email": "chi@example.com"}, headers=headers_for(1))
        assert response.status_code == 201
        assert response.json()["friendId"] == 3

    @pytest.mark.asyncio
    async def test_unknown_email(self, client, headers_for, users) -> None:
        response = await client.post("/api/v1/friends", json={"email": "nobody@example.com"}, headers=headers_for(1))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_target_required(self, client, headers_for, users) -> None:
        response = await client.post("/api/v1/friends", json={}, headers=headers_for(1))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cannot_befriend_self(self, client, headers_for, users) -> None:
        response = await client.post("/api/v1/friends", json={"friendId": 1}, headers=headers_for(1))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_accept_missing_request(self, client, headers_for, users) -> None:
        response = await client.post("/api/v1/friends/3/accept", headers=headers_for(1))
        assert response.status_code == 404


class TestFriendshipEdges:
    @pytest.mark.asyncio
    async def test_lookup_either_direction(self, client, headers_for, users, befriend) -> None:
        await befriend(2, 1, accepted=False, mutual=False)

        response = await client.get("/api/v1/friends/with/2", headers=headers_for(1))
        missing = await client.get("/api/v1/friends/with/3", headers=headers_for(1))

        assert response.status_code == 200
        assert (response.json()["userId"], response.json()["friendId"]) == (2, 1)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_block_then_messaging_refused(self, client, headers_for, users, befriend) -> None:
        mine, _ = await befriend(1, 2)

        patched = await client.patch(f"/api/v1/friends/{mine.id}", json={"isBlocked": True}, headers=headers_for(1))
        send = await client.post("/api/v1/messages", json={"receiverId": 1, "content": "hi"}, headers=headers_for(2))

        assert patched.status_code == 200
        assert patched.json()["isBlocked"] is True
        assert send.status_code == 403
        assert send.json()["reason"] == "blocked"

    @pytest.mark.asyncio
    async def test_requester_cannot_accept_through_patch(self, client, headers_for, users) -> None:
        created = await client.post("/api/v1/friends", json={"friendId": 2}, headers=headers_for(1))

        patched = await client.patch(
            f"/api/v1/friends/{created.json()['id']}", json={"isAccepted": True}, headers=headers_for(1)
        )
        send = await client.post("/api/v1/messages", json={"receiverId": 2, "content": "hi"}, headers=headers_for(1))

        assert patched.status_code == 400
        assert send.status_code == 403
        assert send.json()["reason"] == "request_pending"

    @pytest.mark.asyncio
    async def test_update_foreign_edge(self, client, headers_for, users, befriend) -> None:
        mine, _ = await befriend(1, 2)
        response = await client.patch(f"/api/v1/friends/{mine.id}", json={"isBlocked": True}, headers=headers_for(3))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove(self, client, headers_for, users, befriend) -> None:
        mine, _ = await befriend(1, 2)

        response = await client.delete(f"/api/v1/friends/{mine.id}", headers=headers_for(1))
        friends = await client.get("/api/v1/friends", headers=headers_for(2))

        assert response.status_code == 204
        assert friends.json()["total"] == 0
