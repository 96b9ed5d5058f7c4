"""Tests for registration, login, token refresh, profiles and user search."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.core.security import create_refresh_token

TEST_PASSWORD = "secret123"


# ── Registration ────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_register(async_client: AsyncClient):
    resp = await async_client.post(
        "/api/auth/register",
        json={"email": " Ann@Example.com ", "password": "pw", "firstName": " Ann ", "surname": "Lee"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "ann@example.com"
    assert body["firstName"] == "Ann"
    assert body["surname"] == "Lee"
    assert "password" not in body
    assert "hashedPassword" not in body


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: AsyncClient, make_user):
    await make_user("ann@example.com")
    resp = await async_client.post(
        "/api/auth/register",
        json={"email": "ANN@example.com", "password": "pw", "firstName": "Ann", "surname": "Lee"},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "Email already registered."


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"email": "ann@example.com", "password": "pw", "firstName": "Ann"},
        {"email": "ann@example.com", "password": "pw", "firstName": "   ", "surname": "Lee"},
        {"email": "not-an-email", "password": "pw", "firstName": "Ann", "surname": "Lee"},
        {"email": "ann@example.com", "password": "", "firstName": "Ann", "surname": "Lee"},
    ],
)
async def test_register_invalid(async_client: AsyncClient, body):
    resp = await async_client.post("/api/auth/register", json=body)
    assert resp.status_code == 400
    assert "error" in resp.json()


# ── Login / refresh / logout ────────────────────────────────────────
@pytest.mark.asyncio
async def test_login_returns_tokens_and_cookies(async_client: AsyncClient, make_user):
    user = await make_user("ann@example.com", "Ann", "Lee")
    resp = await async_client.post(
        "/api/auth/login", data={"username": "ANN@example.com ", "password": TEST_PASSWORD}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["user"]["id"] == user.id
    assert body["user"]["firstName"] == "Ann"

    set_cookies = resp.headers.get_list("set-cookie")
    assert any(c.startswith("access_token=") and "HttpOnly" in c for c in set_cookies)
    assert any(c.startswith("refresh_token=") for c in set_cookies)

    me = await async_client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == "ann@example.com"


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient, make_user):
    await make_user("ann@example.com")
    resp = await async_client.post("/api/auth/login", data={"username": "ann@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials."

    unknown = await async_client.post("/api/auth/login", data={"username": "who@example.com", "password": "x"})
    assert unknown.status_code == 401


@pytest.mark.asyncio
async def test_inactive_user_rejected(async_client: AsyncClient, make_user, auth_headers, db_session: AsyncSession):
    user = await make_user("ann@example.com")
    user.is_active = False
    await db_session.commit()

    login = await async_client.post("/api/auth/login", data={"username": user.email, "password": TEST_PASSWORD})
    assert login.status_code == 403
    assert (await async_client.get("/api/auth/me", headers=auth_headers(user))).status_code == 403


@pytest.mark.asyncio
async def test_cookie_authentication(async_client: AsyncClient, make_user, auth_headers):
    user = await make_user("ann@example.com")
    bearer = auth_headers(user)["Authorization"]
    resp = await async_client.get("/api/auth/me", headers={"Cookie": f"access_token={bearer}"})
    assert resp.status_code == 200
    assert resp.json()["id"] == user.id


@pytest.mark.asyncio
async def test_refresh_token(async_client: AsyncClient, make_user):
    user = await make_user("ann@example.com")
    resp = await async_client.post(
        "/api/auth/refresh", json={"refresh_token": create_refresh_token(user.id)}
    )
    assert resp.status_code == 200
    assert resp.json()["access_token"]

    missing = await async_client.post("/api/auth/refresh")
    assert missing.status_code == 401

    # An access token is not a refresh token
    login = await async_client.post("/api/auth/login", data={"username": user.email, "password": TEST_PASSWORD})
    wrong_type = await async_client.post(
        "/api/auth/refresh", json={"refresh_token": login.json()["access_token"]}
    )
    assert wrong_type.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_cookies(async_client: AsyncClient):
    resp = await async_client.post("/api/auth/logout")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Logged out"}
    cleared = resp.headers.get_list("set-cookie")
    assert any(c.startswith("access_token=") for c in cleared)
    assert any(c.startswith("refresh_token=") for c in cleared)


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["garbage", ""])
async def test_bad_tokens_are_401(async_client: AsyncClient, token):
    resp = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


# ── Profile & team leader ───────────────────────────────────────────
@pytest.mark.asyncio
async def test_profile(async_client: AsyncClient, make_user, auth_headers, admin):
    leader = await make_user("lead@example.com", "Lena", "Leader")
    user = await make_user("ann@example.com", "Ann", "Lee", leader=leader)

    body = (await async_client.get("/api/users/me", headers=auth_headers(user))).json()
    assert body["isAdmin"] is False
    assert body["teamLeader"] == {"id": leader.id, "name": "Lena Leader", "email": "lead@example.com"}

    admin_body = (await async_client.get("/api/users/me", headers=auth_headers(admin))).json()
    assert admin_body["isAdmin"] is True
    assert admin_body["teamLeader"] is None


@pytest.mark.asyncio
async def test_select_team_leader(async_client: AsyncClient, make_user, auth_headers):
    leader = await make_user("lead@example.com", "Lena", "Leader")
    user = await make_user("ann@example.com")

    resp = await async_client.put(
        "/api/users/team-leader", json={"leaderUserId": leader.id}, headers=auth_headers(user)
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    body = (await async_client.get("/api/users/me", headers=auth_headers(user))).json()
    assert body["teamLeader"]["id"] == leader.id


@pytest.mark.asyncio
async def test_select_team_leader_errors(async_client: AsyncClient, make_user, auth_headers):
    user = await make_user("ann@example.com")
    headers = auth_headers(user)

    missing = await async_client.put("/api/users/team-leader", json={}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["error"] == "leaderUserId is required"

    self_pick = await async_client.put("/api/users/team-leader", json={"leaderUserId": user.id}, headers=headers)
    assert self_pick.status_code == 400
    assert self_pick.json()["error"] == "You cannot select yourself."

    unknown = await async_client.put("/api/users/team-leader", json={"leaderUserId": 9999}, headers=headers)
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "Leader not found"


# ── Search ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_user_search(async_client: AsyncClient, make_user, auth_headers):
    caller = await make_user("caller@example.com", "Carl", "Caller")
    await make_user("ann@client.example", "Ann", "Lee")
    await make_user("zed@client.example", "Zed", "Annex")

    headers = auth_headers(caller)
    by_name = (await async_client.get("/api/users/search", params={"query": "ANN"}, headers=headers)).json()
    assert [u["name"] for u in by_name["users"]] == ["Ann Lee", "Zed Annex"]

    by_email = (await async_client.get("/api/users/search", params={"query": "client.example"}, headers=headers)).json()
    assert len(by_email["users"]) == 2
    assert by_email["users"][0]["email"] == "ann@client.example"

    empty = (await async_client.get("/api/users/search", headers=headers)).json()
    assert empty == {"users": []}


@pytest.mark.asyncio
async def test_user_search_limit(async_client: AsyncClient, make_user, auth_headers):
    caller = await make_user("caller@example.com", "Carl", "Caller")
    for i in range(12):
        await make_user(f"member{i:02d}@example.com", f"Member{i:02d}", "Crowd")
    resp = await async_client.get("/api/users/search", params={"query": "crowd"}, headers=auth_headers(caller))
    assert len(resp.json()["users"]) == 10


# ── Health ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "db": True}
