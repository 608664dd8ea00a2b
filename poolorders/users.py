"""
User administration (super-admin only).
"""
import logging

from poolorders.auth import ROLES, Identity
from poolorders.errors import NotFound, ValidationError
from poolorders.models import User

logger = logging.getLogger(__name__)


async def list_users(db) -> list[User]:
    async with db.connection() as repo:
        return await repo.list_users()


async def change_role(db, identity: Identity, user_id: str, role: str) -> User:
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if user_id == identity.user_id:
        raise ValidationError("You cannot change your own role")
    async with db.transaction() as repo:
        user = await repo.update_user_role(user_id, role)
    if user is None:
        raise NotFound("User not found")
    logger.info("User %s role set to %s by %s", user_id, role, identity.user_id)
    return user
