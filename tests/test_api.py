"""
Tests for the REST routes in roomchat.api.

Verifies:
- Session gate on every route
- Input validation mapped to 400
- Room, membership and message flows end to end
- Unexpected storage failures mapped to 500
"""

import pytest

from roomchat import security


PROTECTED_ROUTES = [
    ("GET", "/api/auth/user"),
    ("POST", "/api/auth/logout"),
    ("GET", "/api/rooms"),
    ("GET", "/api/rooms/all"),
    ("POST", "/api/rooms"),
    ("POST", "/api/rooms/1/join"),
    ("POST", "/api/rooms/1/leave"),
    ("GET", "/api/rooms/1/messages"),
    ("POST", "/api/rooms/1/messages"),
    ("GET", "/api/rooms/1/members"),
]


async def create_room(client, name="general", description=None):
    response = await client.post("/api/rooms", json={"name": name, "description": description})
    assert response.status_code == 201, response.text
    return response.json()


async def send(client, room_id, content):
    response = await client.post(f"/api/rooms/{room_id}/messages", json={"content": content})
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Authentication
# =============================================================================


class TestSessionGate:
    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    async def test_rejects_requests_without_session(self, make_client, method, path):
        client = await make_client()

        response = await client.request(method, path, json={"name": "x", "content": "x"})

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    async def test_rejects_tampered_cookie(self, make_client):
        client = await make_client()
        client.cookies.set(security.SESSION_COOKIE_NAME, "not-a-signed-value")

        response = await client.get("/api/auth/user")

        assert response.status_code == 401

    async def test_rejects_signed_cookie_for_unknown_session(self, make_client):
        client = await make_client()
        client.cookies.set(security.SESSION_COOKIE_NAME, security.sign_session_id("never-issued"))

        response = await client.get("/api/auth/user")

        assert response.status_code == 401


class TestLogin:
    async def test_login_returns_profile_in_camel_case(self, make_client):
        client = await make_client()

        response = await client.post(
            "/api/auth/login",
            json={"id": "carol", "email": "carol@example.com", "firstName": "Carol", "profileImageUrl": "http://img/c.png"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "carol"
        assert body["firstName"] == "Carol"
        assert body["profileImageUrl"] == "http://img/c.png"
        assert "createdAt" in body
        assert security.SESSION_COOKIE_NAME in response.cookies

    async def test_current_user_after_login(self, client):
        response = await client.get("/api/auth/user")

        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"

    async def test_login_again_updates_profile(self, client):
        response = await client.post("/api/auth/login", json={"id": "alice", "firstName": "Alicia"})

        assert response.status_code == 200
        profile = (await client.get("/api/auth/user")).json()
        assert profile["firstName"] == "Alicia"
        assert profile["email"] == "alice@example.com"

    async def test_login_requires_identity(self, make_client):
        client = await make_client()

        response = await client.post("/api/auth/login", json={"email": "nobody@example.com"})

        assert response.status_code == 400

    async def test_logout_ends_session(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 200

        assert (await client.get("/api/auth/user")).status_code == 401


# =============================================================================
# Rooms
# =============================================================================


class TestRooms:
    async def test_create_room_lists_it_for_creator(self, client):
        room = await create_room(client, description="Chit-chat")

        assert room["name"] == "general"
        assert room["description"] == "Chit-chat"
        assert room["createdBy"] == "alice"

        mine = (await client.get("/api/rooms")).json()
        assert [r["id"] for r in mine] == [room["id"]]

    async def test_join_raises_member_count(self, client, make_client):
        room = await create_room(client)
        bob = await make_client("bob", firstName="Bob")

        [listed] = (await client.get("/api/rooms/all")).json()
        assert listed["memberCount"] == 1
        assert listed["creator"]["firstName"] == "Alice"
        assert (await bob.get("/api/rooms")).json() == []

        response = await bob.post(f"/api/rooms/{room['id']}/join")
        assert response.status_code == 200
        assert response.json() == {"message": "Joined room successfully"}

        [listed] = (await bob.get("/api/rooms/all")).json()
        assert listed["memberCount"] == 2
        assert [r["id"] for r in (await bob.get("/api/rooms")).json()] == [room["id"]]

    async def test_join_is_idempotent(self, client):
        room = await create_room(client)

        response = await client.post(f"/api/rooms/{room['id']}/join")

        assert response.status_code == 200
        [listed] = (await client.get("/api/rooms/all")).json()
        assert listed["memberCount"] == 1

    async def test_join_unknown_room_is_not_found(self, client):
        response = await client.post("/api/rooms/999/join")

        assert response.status_code == 404

    async def test_leave_twice_succeeds(self, client):
        room = await create_room(client)

        for _ in range(2):
            response = await client.post(f"/api/rooms/{room['id']}/leave")
            assert response.status_code == 200

        assert (await client.get("/api/rooms")).json() == []

    async def test_members_lists_profiles(self, client, make_client):
        room = await create_room(client)
        bob = await make_client("bob", firstName="Bob")
        await bob.post(f"/api/rooms/{room['id']}/join")

        members = (await client.get(f"/api/rooms/{room['id']}/members")).json()

        assert [member["id"] for member in members] == ["alice", "bob"]

    async def test_room_name_is_stripped(self, client):
        room = await create_room(client, name="  general  ")

        assert room["name"] == "general"

    @pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "   "}, {"name": "x" * 101}])
    async def test_invalid_room_body_is_client_error(self, client, body):
        response = await client.post("/api/rooms", json=body)

        assert response.status_code == 400

    @pytest.mark.parametrize("path", ["/api/rooms/abc/join", "/api/rooms/abc/leave", "/api/rooms/1.5/members"])
    async def test_non_numeric_room_id_is_client_error(self, client, path):
        response = await client.request("GET" if path.endswith("members") else "POST", path)

        assert response.status_code == 400


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    async def test_send_returns_message_with_author(self, client):
        room = await create_room(client)

        message = await send(client, room["id"], "hi")

        assert message["content"] == "hi"
        assert message["roomId"] == room["id"]
        assert message["userId"] == "alice"
        assert message["user"]["firstName"] == "Alice"

    async def test_messages_listed_oldest_first(self, client):
        room = await create_room(client)
        await send(client, room["id"], "hi")
        await send(client, room["id"], "there")

        response = await client.get(f"/api/rooms/{room['id']}/messages", params={"limit": 50})

        assert [m["content"] for m in response.json()] == ["hi", "there"]

    async def test_limit_and_offset(self, client):
        room = await create_room(client)
        for content in ("a", "b", "c", "d"):
            await send(client, room["id"], content)

        response = await client.get(f"/api/rooms/{room['id']}/messages", params={"limit": 2, "offset": 1})

        assert [m["content"] for m in response.json()] == ["b", "c"]

    async def test_since_returns_only_newer_messages(self, client):
        room = await create_room(client)
        hi = await send(client, room["id"], "hi")
        await send(client, room["id"], "there")

        response = await client.get(f"/api/rooms/{room['id']}/messages", params={"since": hi["createdAt"]})

        assert [m["content"] for m in response.json()] == ["there"]

    async def test_since_wins_over_paging(self, client):
        room = await create_room(client)
        hi = await send(client, room["id"], "hi")
        await send(client, room["id"], "there")

        response = await client.get(
            f"/api/rooms/{room['id']}/messages", params={"since": hi["createdAt"], "limit": 1, "offset": 5}
        )

        assert [m["content"] for m in response.json()] == ["there"]

    @pytest.mark.parametrize("params", [{"since": "yesterday"}, {"limit": 0}, {"limit": 101}, {"offset": -1}])
    async def test_bad_query_is_client_error(self, client, params):
        room = await create_room(client)

        response = await client.get(f"/api/rooms/{room['id']}/messages", params=params)

        assert response.status_code == 400

    async def test_empty_content_is_client_error(self, client):
        room = await create_room(client)

        response = await client.post(f"/api/rooms/{room['id']}/messages", json={"content": ""})

        assert response.status_code == 400

    async def test_message_to_missing_room_is_server_error(self, client):
        response = await client.post("/api/rooms/404/messages", json={"content": "hello?"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to send message"}
