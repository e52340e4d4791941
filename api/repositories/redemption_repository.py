"""Repository for redemption records.

Redemptions are written by two parties only: the public redemption route
(insert) and the certificate pipeline (merge-patch through ``patch``).
"""

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import DEFAULT_CERT_ID, Redemption, RedemptionStatus

# Columns the pipeline is allowed to patch
PATCHABLE_FIELDS = frozenset(
    {
        "status",
        "processed_at",
        "certificate_path",
        "certificate_url",
        "email_error",
        "email_error_at",
    }
)


class RedemptionRepository:
    """Repository for Redemption inserts, lookups and merge-patches."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, class_id: str, redemption_id: str) -> Redemption | None:
        result = await self.db.execute(
            select(Redemption).where(
                Redemption.class_id == class_id,
                Redemption.id == redemption_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        class_id: str,
        learner_email: str,
        status: RedemptionStatus,
        learner_name: str | None = None,
        license_number: str | None = None,
        cert_id: str = DEFAULT_CERT_ID,
    ) -> Redemption:
        """Insert a new redemption. Flushes but does NOT commit."""
        redemption = Redemption(
            id=uuid.uuid4().hex,
            class_id=class_id,
            cert_id=cert_id,
            learner_email=learner_email,
            learner_name=learner_name,
            license_number=license_number,
            status=status,
        )
        self.db.add(redemption)
        await self.db.flush()
        return redemption

    async def patch(self, class_id: str, redemption_id: str, **fields: Any) -> None:
        """Merge-patch: UPDATE only the given columns, never the whole row."""
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch redemption fields: {sorted(unknown)}")

        await self.db.execute(
            update(Redemption)
            .where(
                Redemption.class_id == class_id,
                Redemption.id == redemption_id,
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )

    async def list_by_class(
        self,
        class_id: str,
        *,
        status: RedemptionStatus | None = None,
        limit: int = 50,
    ) -> Sequence[Redemption]:
        """Redemptions for a class, newest first."""
        query = select(Redemption).where(Redemption.class_id == class_id)
        if status is not None:
            query = query.where(Redemption.status == status)
        result = await self.db.execute(
            query.order_by(Redemption.created_at.desc()).limit(limit)
        )
        return result.scalars().all()

    async def list_email_failures(
        self,
        *,
        class_id: str | None = None,
        limit: int = 100,
    ) -> Sequence[Redemption]:
        """Non-terminal redemptions that carry a recorded email error."""
        query = select(Redemption).where(
            Redemption.status != RedemptionStatus.PROCESSED,
            Redemption.email_error.is_not(None),
        )
        if class_id is not None:
            query = query.where(Redemption.class_id == class_id)
        result = await self.db.execute(
            query.order_by(Redemption.created_at.asc()).limit(limit)
        )
        return result.scalars().all()
