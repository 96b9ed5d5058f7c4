"""Tests for groups: creation, invitations, membership and member search."""

import pytest
from httpx import AsyncClient


async def _create_group(client: AsyncClient, headers) -> int:
    resp = await client.post("/api/groups/create", headers=headers)
    assert resp.status_code == 200
    return resp.json()["groupId"]


@pytest.mark.asyncio
async def test_create_group_named_after_manager(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com", "Maya", "Grant")
    resp = await async_client.post("/api/groups/create", headers=auth_headers(manager))
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["groupName"] == "Maya Grant"

    listing = (await async_client.get("/api/groups", headers=auth_headers(manager))).json()
    assert [g["id"] for g in listing["groups"]] == [body["groupId"]]
    assert listing["groups"][0]["managerId"] == manager.id
    assert listing["groups"][0]["members"] == []


@pytest.mark.asyncio
async def test_invite_accept_flow(async_client: AsyncClient, make_user, auth_headers):
    """Invite → pending list → accept → membership visible to the manager."""
    manager = await make_user("mgr@example.com", "Maya", "Grant")
    member = await make_user("ann@example.com", "Ann", "Lee")
    group_id = await _create_group(async_client, auth_headers(manager))

    resp = await async_client.post(
        "/api/groups/invite",
        json={"groupId": group_id, "userEmail": "  ANN@example.com "},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200

    invites = (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"]
    assert len(invites) == 1
    assert invites[0]["groupId"] == group_id
    assert invites[0]["groupName"] == "Maya Grant"
    assert invites[0]["status"] == "pending"

    resp = await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invites[0]["inviteId"], "status": "accepted"},
        headers=auth_headers(member),
    )
    assert resp.status_code == 200

    assert (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"] == []
    groups = (await async_client.get("/api/groups", headers=auth_headers(manager))).json()["groups"]
    assert groups[0]["members"] == [{"id": member.id, "name": "Ann Lee", "email": "ann@example.com"}]


@pytest.mark.asyncio
async def test_declined_invite_adds_no_member(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com")
    member = await make_user("ann@example.com")
    group_id = await _create_group(async_client, auth_headers(manager))
    await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=auth_headers(manager)
    )
    invite_id = (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"][0]["inviteId"]

    resp = await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "declined"},
        headers=auth_headers(member),
    )
    assert resp.status_code == 200
    groups = (await async_client.get("/api/groups", headers=auth_headers(manager))).json()["groups"]
    assert groups[0]["members"] == []

    # Already answered
    again = await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "accepted"},
        headers=auth_headers(member),
    )
    assert again.status_code == 409
    assert again.json()["error"] == "Invite has already been answered."


@pytest.mark.asyncio
async def test_invite_errors(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com")
    other = await make_user("other@example.com")
    member = await make_user("ann@example.com")
    group_id = await _create_group(async_client, auth_headers(manager))
    headers = auth_headers(manager)

    missing_group = await async_client.post(
        "/api/groups/invite", json={"groupId": 999, "userEmail": member.email}, headers=headers
    )
    assert missing_group.status_code == 404
    assert missing_group.json()["error"] == "Group not found."

    not_manager = await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=auth_headers(other)
    )
    assert not_manager.status_code == 403
    assert not_manager.json()["error"] == "Not authorized."

    unknown_user = await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": "nobody@example.com"}, headers=headers
    )
    assert unknown_user.status_code == 404
    assert unknown_user.json()["error"] == "User not found."

    first = await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=headers
    )
    assert first.status_code == 200
    duplicate = await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=headers
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "An invite is already pending."


@pytest.mark.asyncio
async def test_inviting_existing_member_conflicts(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com")
    member = await make_user("ann@example.com")
    group_id = await _create_group(async_client, auth_headers(manager))
    body = {"groupId": group_id, "userEmail": member.email}
    await async_client.post("/api/groups/invite", json=body, headers=auth_headers(manager))
    invite_id = (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"][0]["inviteId"]
    await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "accepted"},
        headers=auth_headers(member),
    )

    resp = await async_client.post("/api/groups/invite", json=body, headers=auth_headers(manager))
    assert resp.status_code == 409
    assert resp.json()["error"] == "User is already a member."


@pytest.mark.asyncio
async def test_respond_validation(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com")
    member = await make_user("ann@example.com")
    stranger = await make_user("eve@example.com")
    group_id = await _create_group(async_client, auth_headers(manager))
    await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=auth_headers(manager)
    )
    invite_id = (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"][0]["inviteId"]

    bad_status = await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "maybe"},
        headers=auth_headers(member),
    )
    assert bad_status.status_code == 400

    # Someone else's invite looks like a missing one
    foreign = await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "accepted"},
        headers=auth_headers(stranger),
    )
    assert foreign.status_code == 404
    assert foreign.json()["error"] == "Invite not found."


@pytest.mark.asyncio
async def test_remove_member(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("mgr@example.com")
    member = await make_user("ann@example.com")
    group_id = await _create_group(async_client, auth_headers(manager))
    await async_client.post(
        "/api/groups/invite", json={"groupId": group_id, "userEmail": member.email}, headers=auth_headers(manager)
    )
    invite_id = (await async_client.get("/api/groups/invites", headers=auth_headers(member))).json()["invites"][0]["inviteId"]
    await async_client.post(
        "/api/groups/invite/respond",
        json={"inviteId": invite_id, "status": "accepted"},
        headers=auth_headers(member),
    )

    denied = await async_client.post(
        "/api/groups/remove", json={"groupId": group_id, "memberId": member.id}, headers=auth_headers(member)
    )
    assert denied.status_code == 403

    resp = await async_client.post(
        "/api/groups/remove", json={"groupId": group_id, "memberId": member.id}, headers=auth_headers(manager)
    )
    assert resp.status_code == 200
    groups = (await async_client.get("/api/groups", headers=auth_headers(manager))).json()["groups"]
    assert groups[0]["members"] == []


@pytest.mark.asyncio
async def test_group_search_hides_email(async_client: AsyncClient, make_user, auth_headers):
    caller = await make_user("mgr@example.com", "Maya", "Grant")
    await make_user("ann@example.com", "Ann", "Lee")
    await make_user("annabel@example.com", "Annabel", "Moss")

    resp = await async_client.get(
        "/api/groups/search-users", params={"query": "ann"}, headers=auth_headers(caller)
    )
    users = resp.json()["users"]
    assert [u["name"] for u in users] == ["Ann Lee", "Annabel Moss"]

    # Email is not a search column here
    by_email = await async_client.get(
        "/api/groups/search-users", params={"query": "example.com"}, headers=auth_headers(caller)
    )
    assert by_email.json()["users"] == []

    blank = await async_client.get("/api/groups/search-users", params={"query": "  "}, headers=auth_headers(caller))
    assert blank.json() == {"users": []}


@pytest.mark.asyncio
async def test_groups_require_auth(async_client: AsyncClient):
    assert (await async_client.get("/api/groups")).status_code == 401
    assert (await async_client.post("/api/groups/create")).status_code == 401
