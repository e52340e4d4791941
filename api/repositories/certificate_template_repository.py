"""Repository for certificate template operations."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models import DEFAULT_CERT_ID, CertificateTemplate, QrMode


class CertificateTemplateRepository:
    """Repository for CertificateTemplate reads, upserts and counters."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(
        self,
        class_id: str,
        cert_id: str = DEFAULT_CERT_ID,
    ) -> CertificateTemplate | None:
        result = await self.db.execute(
            select(CertificateTemplate).where(
                CertificateTemplate.class_id == class_id,
                CertificateTemplate.cert_id == cert_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_isolated(
        self,
        class_id: str,
        cert_id: str = DEFAULT_CERT_ID,
    ) -> CertificateTemplate | None:
        """get() inside a SAVEPOINT.

        A failed read (statement timeout, bad row) rolls back to the savepoint
        and leaves the caller's transaction usable for later writes.
        """
        async with self.db.begin_nested():
            return await self.get(class_id, cert_id)

    async def upsert(
        self,
        class_id: str,
        *,
        owner_id: str,
        title: str,
        ceu_hours: Decimal,
        issuer_org_name: str,
        instructor_name: str | None,
        logo_url: str | None,
        qr_mode: QrMode,
        max_issues: int | None,
        cert_id: str = DEFAULT_CERT_ID,
    ) -> CertificateTemplate:
        """Insert or overwrite a template in a single statement.

        issued_count and created_at survive re-saves.
        """
        now = datetime.now(UTC)
        editable = {
            "title": title,
            "ceu_hours": ceu_hours,
            "issuer_org_name": issuer_org_name,
            "instructor_name": instructor_name,
            "logo_url": logo_url,
            "qr_mode": qr_mode,
            "owner_id": owner_id,
            "max_issues": max_issues,
            "updated_at": now,
        }

        stmt = (
            pg_insert(CertificateTemplate)
            .values(
                class_id=class_id,
                cert_id=cert_id,
                issued_count=0,
                created_at=now,
                **editable,
            )
            .on_conflict_do_update(
                index_elements=["class_id", "cert_id"],
                set_=editable,
            )
            .returning(CertificateTemplate)
        )
        result = await self.db.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def increment_issued(
        self,
        class_id: str,
        cert_id: str = DEFAULT_CERT_ID,
    ) -> None:
        """Atomically bump issued_count (no read-modify-write)."""
        await self.db.execute(
            update(CertificateTemplate)
            .where(
                CertificateTemplate.class_id == class_id,
                CertificateTemplate.cert_id == cert_id,
            )
            .values(issued_count=CertificateTemplate.issued_count + 1)
        )
