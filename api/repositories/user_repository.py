"""User repository for database operations."""

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models import User


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> User | None:
        """Get a user by their ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> User:
        """Get user from DB or create a placeholder row.

        Uses INSERT ... ON CONFLICT so concurrent first requests are safe.
        New users are never creators; the flag is granted out of band.
        """
        user = await self.get_by_id(user_id)
        if user:
            return user

        stmt = (
            pg_insert(User)
            .values(id=user_id, email=f"{user_id}@placeholder.local", is_creator=False)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await self.db.execute(stmt)

        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one()

    async def set_creator(self, user_id: str, is_creator: bool) -> User | None:
        user = await self.get_by_id(user_id)
        if user is None:
            return None
        user.is_creator = is_creator
        await self.db.flush()
        return user
