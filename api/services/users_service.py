"""User service for user-related business logic."""

from sqlalchemy.ext.asyncio import AsyncSession

from models import User
from repositories.user_repository import UserRepository


class NotCreatorError(Exception):
    """Raised when a user without the creator role tries a creator action."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a creator")


async def ensure_user_exists(db: AsyncSession, user_id: str) -> User:
    """Ensure user row exists in DB (for FK constraints).

    The user will be created as a placeholder if they don't exist yet (first
    authenticated request). New users are never creators.
    """
    return await UserRepository(db).get_or_create(user_id)


async def require_creator(db: AsyncSession, user_id: str) -> User:
    """Return the user if they hold the creator role.

    Raises:
        NotCreatorError: If the user is not a creator
    """
    user = await ensure_user_exists(db, user_id)
    if not user.is_creator:
        raise NotCreatorError(user_id)
    return user
