"""Class and certificate template endpoints.

Everything here is owner-only except GET /{class_id}/certificate, which the
public redemption page uses to show what the learner is about to claim.
"""

from fastapi import APIRouter, HTTPException

from core.auth import UserId
from core.database import DbSession
from schemas import (
    CertificateTemplatePublic,
    CertificateTemplateResponse,
    CertificateTemplateUpsert,
    ClassCreate,
    ClassListResponse,
    ClassResponse,
    ClassUpdate,
)
from services.classes_service import (
    ClassNotFoundError,
    NotClassOwnerError,
    create_class,
    get_owned_class,
    get_public_template,
    list_owned_classes,
    save_certificate_template,
    update_class,
)
from services.users_service import NotCreatorError

router = APIRouter(prefix="/api/classes", tags=["classes"])

_OWNER_RESPONSES = {
    401: {"description": "Not authenticated"},
    403: {"description": "Not the class owner"},
    404: {"description": "Class not found"},
}


def class_error_to_http(
    e: ClassNotFoundError | NotClassOwnerError | NotCreatorError,
) -> HTTPException:
    """Map class service errors to HTTP errors."""
    if isinstance(e, ClassNotFoundError):
        return HTTPException(status_code=404, detail="Class not found")
    if isinstance(e, NotClassOwnerError):
        return HTTPException(status_code=403, detail="You do not own this class")
    return HTTPException(status_code=403, detail="Creator account required")


@router.post(
    "",
    response_model=ClassResponse,
    status_code=201,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Creator account required"},
    },
)
async def create_class_endpoint(
    body: ClassCreate,
    user_id: UserId,
    db: DbSession,
) -> ClassResponse:
    try:
        course_class = await create_class(db, user_id, body)
    except NotCreatorError as e:
        raise class_error_to_http(e) from e
    return ClassResponse.model_validate(course_class)


@router.get(
    "",
    response_model=ClassListResponse,
    responses={401: {"description": "Not authenticated"}},
)
async def list_classes_endpoint(user_id: UserId, db: DbSession) -> ClassListResponse:
    """Classes owned by the authenticated user."""
    classes = await list_owned_classes(db, user_id)
    return ClassListResponse(
        classes=[ClassResponse.model_validate(c) for c in classes]
    )


@router.get(
    "/{class_id}",
    response_model=ClassResponse,
    responses=_OWNER_RESPONSES,
)
async def get_class_endpoint(
    class_id: str,
    user_id: UserId,
    db: DbSession,
) -> ClassResponse:
    try:
        course_class = await get_owned_class(db, user_id, class_id)
    except (ClassNotFoundError, NotClassOwnerError) as e:
        raise class_error_to_http(e) from e
    return ClassResponse.model_validate(course_class)


@router.patch(
    "/{class_id}",
    response_model=ClassResponse,
    responses=_OWNER_RESPONSES,
)
async def update_class_endpoint(
    class_id: str,
    body: ClassUpdate,
    user_id: UserId,
    db: DbSession,
) -> ClassResponse:
    try:
        course_class = await update_class(db, user_id, class_id, body)
    except (ClassNotFoundError, NotClassOwnerError) as e:
        raise class_error_to_http(e) from e
    return ClassResponse.model_validate(course_class)


@router.put(
    "/{class_id}/certificate",
    response_model=CertificateTemplateResponse,
    responses=_OWNER_RESPONSES,
)
async def save_certificate_endpoint(
    class_id: str,
    body: CertificateTemplateUpsert,
    user_id: UserId,
    db: DbSession,
) -> CertificateTemplateResponse:
    """Create or overwrite the class's certificate template."""
    try:
        template = await save_certificate_template(db, user_id, class_id, body)
    except (ClassNotFoundError, NotClassOwnerError) as e:
        raise class_error_to_http(e) from e
    return CertificateTemplateResponse.model_validate(template)


@router.get(
    "/{class_id}/certificate",
    response_model=CertificateTemplatePublic,
    responses={404: {"description": "Class or certificate not found"}},
)
async def get_certificate_endpoint(
    class_id: str,
    db: DbSession,
) -> CertificateTemplatePublic:
    """Certificate summary for the public redemption page."""
    try:
        template = await get_public_template(db, class_id)
    except ClassNotFoundError as e:
        raise class_error_to_http(e) from e
    if template is None:
        raise HTTPException(status_code=404, detail="Certificate not configured")
    return CertificateTemplatePublic.model_validate(template)
