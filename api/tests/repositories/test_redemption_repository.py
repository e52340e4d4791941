"""Integration tests for RedemptionRepository."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from models import RedemptionStatus
from repositories.redemption_repository import RedemptionRepository
from tests.factories import (
    CourseClassFactory,
    CreatorFactory,
    RedemptionFactory,
    create_async,
)

pytestmark = pytest.mark.integration


@pytest.fixture
async def course_class(db_session: AsyncSession):
    owner = await create_async(CreatorFactory, db_session)
    return await create_async(CourseClassFactory, db_session, owner_id=owner.id)


class TestRedemptionRepositoryCreate:
    """Tests for RedemptionRepository.create."""

    async def test_create_generates_id(self, db_session: AsyncSession, course_class):
        """Test a new record gets a hex id and the default cert id."""
        repo = RedemptionRepository(db_session)

        redemption = await repo.create(
            course_class.id, "a@b.com", RedemptionStatus.PENDING
        )

        assert len(redemption.id) == 32
        assert redemption.cert_id == "default"
        assert redemption.status == RedemptionStatus.PENDING
        assert redemption.processed_at is None


class TestRedemptionRepositoryPatch:
    """Tests for RedemptionRepository.patch merge semantics."""

    async def test_patch_leaves_other_fields_untouched(
        self, db_session: AsyncSession, course_class
    ):
        """Test only the named columns change."""
        redemption = await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            learner_name="Ada",
            license_number="LIC-1",
        )
        repo = RedemptionRepository(db_session)
        now = datetime.now(UTC)

        await repo.patch(
            course_class.id,
            redemption.id,
            status=RedemptionStatus.PROCESSED,
            processed_at=now,
            certificate_path=f"certificates/{course_class.id}/{redemption.id}.pdf",
        )
        db_session.expire_all()

        stored = await repo.get(course_class.id, redemption.id)
        assert stored.status == RedemptionStatus.PROCESSED
        assert stored.processed_at == now
        assert stored.learner_name == "Ada"
        assert stored.license_number == "LIC-1"
        assert stored.email_error is None

    async def test_patch_rejects_unknown_fields(
        self, db_session: AsyncSession, course_class
    ):
        """Test learner fields can't be overwritten through a patch."""
        repo = RedemptionRepository(db_session)

        with pytest.raises(ValueError, match="learner_email"):
            await repo.patch(course_class.id, "R1", learner_email="x@y.com")


class TestRedemptionRepositoryQueries:
    """Tests for list_by_class and list_email_failures."""

    async def test_list_by_class_newest_first_with_status_filter(
        self, db_session: AsyncSession, course_class
    ):
        """Test ordering and the optional status filter."""
        now = datetime.now(UTC)
        older = await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            status=RedemptionStatus.PROCESSED,
            created_at=now - timedelta(hours=1),
        )
        newer = await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            status=RedemptionStatus.PROCESSED,
            created_at=now,
        )
        await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            status=RedemptionStatus.PENDING,
        )
        repo = RedemptionRepository(db_session)

        processed = await repo.list_by_class(
            course_class.id, status=RedemptionStatus.PROCESSED
        )
        everything = await repo.list_by_class(course_class.id)

        assert [r.id for r in processed] == [newer.id, older.id]
        assert len(everything) == 3

    async def test_list_email_failures_skips_processed(
        self, db_session: AsyncSession, course_class
    ):
        """Test only non-terminal records with an email error are returned."""
        failed = await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            email_error="Inactive recipient",
        )
        await create_async(
            RedemptionFactory,
            db_session,
            class_id=course_class.id,
            status=RedemptionStatus.PROCESSED,
            email_error="old error",
        )
        await create_async(RedemptionFactory, db_session, class_id=course_class.id)
        repo = RedemptionRepository(db_session)

        failures = await repo.list_email_failures(class_id=course_class.id)

        assert [r.id for r in failures] == [failed.id]
