"""
Script to create a local user, a study group led by them, and a bearer token
for trying the API by hand.

    python -m app.scripts.create_local_group --telegram-id 1001 \
        --first-name Ada --last-name Lovelace --group "CS-101"
"""

import argparse
import asyncio

from sqlmodel import select

from app.core.auth import create_jwt
from app.core.database import get_session_context
from app.models.group import Group
from app.models.group_member import GroupMember
from app.services.groups import create_group
from app.services.users import upsert_telegram_user
from studyhub_shared.schemas.groups import GroupCreateRequest


async def create_local_group(
    telegram_id: str, first_name: str, last_name: str, group_name: str
) -> None:
    async with get_session_context() as session:
        user = await upsert_telegram_user(session, telegram_id, first_name, last_name)
        print(f"User: {user.first_name} {user.last_name} ({user.id})")

        # Reuse a group of the same name the user already leads
        result = await session.execute(
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .where(Group.name == group_name, GroupMember.user_id == user.id)
        )
        group = result.scalars().first()

        if group is None:
            group = await create_group(GroupCreateRequest(name=group_name), user.id, session)
            print(f"Created group '{group_name}' ({group.id}) with {first_name} as leader.")
        else:
            print(f"Group '{group_name}' already exists ({group.id}).")

    token, _ = create_jwt(user.id)
    print(f"Bearer token:\n{token}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local user and study group.")
    parser.add_argument("--telegram-id", required=True, help="Telegram account id of the user")
    parser.add_argument("--first-name", required=True)
    parser.add_argument("--last-name", required=True)
    parser.add_argument("--group", default="Local Study Group", help="Group name")

    args = parser.parse_args()

    asyncio.run(create_local_group(args.telegram_id, args.first_name, args.last_name, args.group))
