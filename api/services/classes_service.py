"""Class and certificate template business logic.

Classes are owned by exactly one creator. Only the owner can read the full
class, change it, or configure its certificate; the public redemption page
only sees CertificateTemplatePublic.
"""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger
from models import DEFAULT_CERT_ID, CertificateTemplate, CourseClass
from repositories.certificate_template_repository import (
    CertificateTemplateRepository,
)
from repositories.class_repository import ClassRepository
from schemas import CertificateTemplateUpsert, ClassCreate, ClassUpdate
from services.users_service import ensure_user_exists, require_creator

logger = get_logger(__name__)


class ClassNotFoundError(Exception):
    """Raised when a class does not exist."""

    def __init__(self, class_id: str):
        self.class_id = class_id
        super().__init__(f"Class {class_id} not found")


class NotClassOwnerError(Exception):
    """Raised when a user acts on a class they don't own."""

    def __init__(self, user_id: str, class_id: str):
        self.user_id = user_id
        self.class_id = class_id
        super().__init__(f"User {user_id} does not own class {class_id}")


async def create_class(
    db: AsyncSession, user_id: str, payload: ClassCreate
) -> CourseClass:
    """Create a class owned by the calling creator.

    Raises:
        NotCreatorError: If the user is not a creator
    """
    await require_creator(db, user_id)
    course_class = await ClassRepository(db).create(
        owner_id=user_id,
        title=payload.title,
        description=payload.description,
        ceu_hours=payload.ceu_hours,
    )
    logger.info("class.created", class_id=course_class.id, owner_id=user_id)
    return course_class


async def list_owned_classes(db: AsyncSession, user_id: str) -> Sequence[CourseClass]:
    await ensure_user_exists(db, user_id)
    return await ClassRepository(db).list_by_owner(user_id)


async def get_owned_class(
    db: AsyncSession, user_id: str, class_id: str
) -> CourseClass:
    """Load a class and check ownership.

    Raises:
        ClassNotFoundError: If the class doesn't exist
        NotClassOwnerError: If the user doesn't own the class
    """
    course_class = await ClassRepository(db).get_by_id(class_id)
    if course_class is None:
        raise ClassNotFoundError(class_id)
    if course_class.owner_id != user_id:
        raise NotClassOwnerError(user_id, class_id)
    return course_class


async def update_class(
    db: AsyncSession, user_id: str, class_id: str, payload: ClassUpdate
) -> CourseClass:
    course_class = await get_owned_class(db, user_id, class_id)
    return await ClassRepository(db).update(
        course_class,
        title=payload.title.strip() if payload.title else None,
        description=payload.description,
        ceu_hours=payload.ceu_hours,
    )


async def save_certificate_template(
    db: AsyncSession,
    user_id: str,
    class_id: str,
    payload: CertificateTemplateUpsert,
    cert_id: str = DEFAULT_CERT_ID,
) -> CertificateTemplate:
    """Create or overwrite the class's certificate template.

    The issued counter is preserved across saves.
    """
    await get_owned_class(db, user_id, class_id)
    template = await CertificateTemplateRepository(db).upsert(
        class_id,
        owner_id=user_id,
        title=payload.title,
        ceu_hours=payload.ceu_hours,
        issuer_org_name=payload.issuer_org_name,
        instructor_name=payload.instructor_name,
        logo_url=payload.logo_url,
        qr_mode=payload.qr_mode,
        max_issues=payload.max_issues,
        cert_id=cert_id,
    )
    logger.info(
        "certificate_template.saved",
        class_id=class_id,
        cert_id=cert_id,
        qr_mode=template.qr_mode.value,
    )
    return template


async def get_public_template(
    db: AsyncSession,
    class_id: str,
    cert_id: str = DEFAULT_CERT_ID,
) -> CertificateTemplate | None:
    """Template summary for the public redemption page; None if unset.

    Raises:
        ClassNotFoundError: If the class doesn't exist
    """
    if not await ClassRepository(db).exists(class_id):
        raise ClassNotFoundError(class_id)
    return await CertificateTemplateRepository(db).get(class_id, cert_id)
