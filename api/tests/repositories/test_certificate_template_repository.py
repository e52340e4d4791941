"""Integration tests for CertificateTemplateRepository."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from models import QrMode
from repositories.certificate_template_repository import (
    CertificateTemplateRepository,
)
from tests.factories import CourseClassFactory, CreatorFactory, create_async

pytestmark = pytest.mark.integration


def _template_fields(owner_id: str, **overrides) -> dict:
    fields = {
        "owner_id": owner_id,
        "title": "HVAC 101",
        "ceu_hours": Decimal("1.50"),
        "issuer_org_name": "Cool Air Inc",
        "instructor_name": None,
        "logo_url": None,
        "qr_mode": QrMode.LIVE,
        "max_issues": None,
    }
    fields.update(overrides)
    return fields


class TestCertificateTemplateRepository:
    """Tests for upsert, get and increment_issued."""

    async def test_upsert_inserts_then_overwrites(self, db_session: AsyncSession):
        """Test a re-save replaces editable fields and keeps the counter."""
        owner = await create_async(CreatorFactory, db_session)
        course_class = await create_async(
            CourseClassFactory, db_session, owner_id=owner.id
        )
        repo = CertificateTemplateRepository(db_session)

        created = await repo.upsert(course_class.id, **_template_fields(owner.id))
        assert created.issued_count == 0

        await repo.increment_issued(course_class.id)
        await repo.increment_issued(course_class.id)

        updated = await repo.upsert(
            course_class.id,
            **_template_fields(owner.id, title="HVAC 201", qr_mode=QrMode.TEST),
        )

        assert updated.title == "HVAC 201"
        assert updated.qr_mode == QrMode.TEST
        assert updated.issued_count == 2

    async def test_get_missing_returns_none(self, db_session: AsyncSession):
        """Test an unknown (class_id, cert_id) pair reads as None."""
        repo = CertificateTemplateRepository(db_session)

        assert await repo.get("nope") is None
        assert await repo.get("nope", "other") is None
