"""Alert recipient lookup against the user directory."""
from dataclasses import dataclass
from typing import Iterable, List, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from refurbops.core.permissions import Role
from refurbops.models.user import User


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str


async def get_active_user(db: AsyncSession, user_id: Optional[uuid.UUID]) -> Optional[User]:
    if user_id is None:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def users_with_roles(db: AsyncSession, roles: Iterable[Role]) -> List[Recipient]:
    result = await db.execute(
        select(User.email, User.name)
        .where(
            User.is_active == True,  # noqa: E712
            User.role.in_([Role(r).value for r in roles]),
        )
        .order_by(User.email)
    )
    return [Recipient(email=email, name=name) for email, name in result.all()]


def unique_by_email(recipients: Iterable[Recipient]) -> List[Recipient]:
    """Keep the first recipient per e-mail address (case-insensitive)."""
    seen = set()
    unique = []
    for recipient in recipients:
        key = recipient.email.strip().lower()
        if key and key not in seen:
            seen.add(key)
            unique.append(recipient)
    return unique
