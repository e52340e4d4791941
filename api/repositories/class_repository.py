"""Repository for class (course offering) operations."""

import uuid
from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import CourseClass


class ClassRepository:
    """Repository for CourseClass CRUD operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_id(self, class_id: str) -> CourseClass | None:
        result = await self.db.execute(
            select(CourseClass).where(CourseClass.id == class_id)
        )
        return result.scalar_one_or_none()

    async def exists(self, class_id: str) -> bool:
        result = await self.db.execute(
            select(CourseClass.id).where(CourseClass.id == class_id)
        )
        return result.scalar_one_or_none() is not None

    async def list_by_owner(
        self,
        owner_id: str,
        *,
        limit: int = 100,
    ) -> Sequence[CourseClass]:
        """Get classes owned by a creator, newest first."""
        result = await self.db.execute(
            select(CourseClass)
            .where(CourseClass.owner_id == owner_id)
            .order_by(CourseClass.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    async def create(
        self,
        owner_id: str,
        title: str,
        description: str,
        ceu_hours: Decimal,
    ) -> CourseClass:
        """Create a class with a generated id.

        Calls flush() but does NOT commit; the caller is responsible for
        transaction management.
        """
        course_class = CourseClass(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            title=title,
            description=description,
            ceu_hours=ceu_hours,
        )
        self.db.add(course_class)
        await self.db.flush()
        return course_class

    async def update(self, course_class: CourseClass, **fields) -> CourseClass:
        """Apply the given fields; None values are skipped."""
        for name, value in fields.items():
            if value is not None:
                setattr(course_class, name, value)
        await self.db.flush()
        return course_class
