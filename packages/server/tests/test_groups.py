"""
Tests for groups, membership and invitations.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from app.core.auth import get_role_in_group
from app.core.errors import Conflict, NotFound
from app.services import groups as group_service
from app.services.users import upsert_telegram_user
from studyhub_shared.schemas.common import GroupRole
from studyhub_shared.schemas.groups import GroupCreateRequest


class TestGroupService:
    @pytest.mark.asyncio
    async def test_creator_becomes_leader(self, session, make_user):
        user = await make_user()
        group = await group_service.create_group(GroupCreateRequest(name="Physics"), user.id, session)
        await session.commit()

        groups = await group_service.list_user_groups(user.id, session)
        assert groups == [
            {"id": group.id, "name": "Physics", "description": None, "role": "leader"}
        ]

    @pytest.mark.asyncio
    async def test_last_leader_cannot_be_demoted(self, session, study_group):
        g = study_group
        with pytest.raises(Conflict):
            await group_service.update_member_role(
                g.group.id, g.leader.id, GroupRole.MEMBER, session
            )

    @pytest.mark.asyncio
    async def test_leader_can_be_demoted_when_another_exists(self, session, study_group):
        g = study_group
        await group_service.update_member_role(g.group.id, g.assistant.id, GroupRole.LEADER, session)
        membership = await group_service.update_member_role(
            g.group.id, g.leader.id, GroupRole.ASSISTANT, session
        )
        assert membership.role == "assistant"

    @pytest.mark.asyncio
    async def test_last_leader_cannot_be_removed(self, session, study_group):
        with pytest.raises(Conflict):
            await group_service.remove_member(study_group.group.id, study_group.leader.id, session)

    @pytest.mark.asyncio
    async def test_remove_unknown_member(self, session, study_group):
        with pytest.raises(NotFound):
            await group_service.remove_member(study_group.group.id, uuid.uuid4(), session)

    @pytest.mark.asyncio
    async def test_members_listed_with_roles(self, session, study_group):
        members = await group_service.list_members(study_group.group.id, session)
        roles = {m["first_name"]: m["role"] for m in members}
        assert roles == {"Lena": "leader", "Artem": "assistant", "Alice": "member", "Bob": "member"}


class TestInvitations:
    @pytest.mark.asyncio
    async def test_accept_adds_member_once(self, session, study_group, make_user):
        g = study_group
        newcomer = await make_user("Nina", "New")
        invitation = await group_service.create_invitation(g.group.id, g.leader.id, session)
        await session.commit()

        group, role = await group_service.accept_invitation(invitation.token, newcomer.id, session)
        await session.commit()
        assert group.id == g.group.id
        assert role == GroupRole.MEMBER

        other = await make_user("Oleg", "Late")
        with pytest.raises(NotFound):
            await group_service.accept_invitation(invitation.token, other.id, session)

    @pytest.mark.asyncio
    async def test_existing_member_conflict(self, session, study_group):
        g = study_group
        invitation = await group_service.create_invitation(g.group.id, g.leader.id, session)
        await session.commit()
        with pytest.raises(Conflict):
            await group_service.accept_invitation(invitation.token, g.alice.id, session)

    @pytest.mark.asyncio
    async def test_unknown_token(self, session, make_user):
        user = await make_user()
        with pytest.raises(NotFound):
            await group_service.accept_invitation(uuid.uuid4(), user.id, session)


class TestGroupEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, make_user, headers):
        user = await make_user()
        response = await client.post(
            "/api/v1/groups", json={"name": "Maths"}, headers=headers(user)
        )
        assert response.status_code == 201
        group_id = response.json()["id"]

        response = await client.get("/api/v1/groups", headers=headers(user))
        assert response.status_code == 200
        assert response.json()["data"] == [
            {"id": group_id, "name": "Maths", "description": None, "role": "leader"}
        ]

    @pytest.mark.asyncio
    async def test_invitation_flow(self, client: AsyncClient, study_group, make_user, headers):
        g = study_group
        newcomer = await make_user("Nina", "New")

        response = await client.post(
            f"/api/v1/groups/{g.group.id}/invitations", headers=headers(g.leader)
        )
        assert response.status_code == 201
        token = response.json()["token"]

        response = await client.post(f"/api/v1/invitations/{token}/accept", headers=headers(newcomer))
        assert response.status_code == 200
        assert response.json()["role"] == "member"

        response = await client.get(f"/api/v1/groups/{g.group.id}", headers=headers(newcomer))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_assistant_cannot_invite(self, client: AsyncClient, study_group, headers):
        g = study_group
        response = await client.post(
            f"/api/v1/groups/{g.group.id}/invitations", headers=headers(g.assistant)
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_leader_changes_role(self, client: AsyncClient, study_group, headers):
        g = study_group
        response = await client.patch(
            f"/api/v1/groups/{g.group.id}/members/{g.alice.id}",
            json={"role": "assistant"},
            headers=headers(g.leader),
        )
        assert response.status_code == 200
        assert response.json()["role"] == "assistant"

    @pytest.mark.asyncio
    async def test_remove_member(self, client: AsyncClient, study_group, headers):
        g = study_group
        response = await client.delete(
            f"/api/v1/groups/{g.group.id}/members/{g.bob.id}", headers=headers(g.leader)
        )
        assert response.status_code == 204

        response = await client.get(f"/api/v1/groups/{g.group.id}", headers=headers(g.bob))
        assert response.status_code == 404


class TestIdentity:
    @pytest.mark.asyncio
    async def test_role_in_group(self, session, study_group, make_user):
        g = study_group
        outsider = await make_user("Eve", "Outsider")
        assert await get_role_in_group(session, g.assistant.id, g.group.id) == GroupRole.ASSISTANT
        assert await get_role_in_group(session, outsider.id, g.group.id) is None

    @pytest.mark.asyncio
    async def test_upsert_telegram_user(self, session):
        user = await upsert_telegram_user(session, "42", "Ivan", "Petrov")
        await session.commit()
        again = await upsert_telegram_user(
            session, "42", "Ivan", "Petrov", middle_name="Ivanovich", telegram_username="ivan"
        )
        assert again.id == user.id
        assert again.middle_name == "Ivanovich"
        assert again.telegram_username == "ivan"
