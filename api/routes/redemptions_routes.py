"""Redemption endpoints.

POST /api/classes/{class_id}/redemptions is public (QR code landing page)
and rate limited per client IP. The record is committed before the certificate
pipeline is scheduled as a background task, so the task always sees it.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.auth import UserId
from core.database import DbSession
from core.ratelimit import REDEMPTION_LIMIT, limiter
from models import RedemptionStatus
from routes.classes_routes import class_error_to_http
from schemas import (
    RedemptionAccepted,
    RedemptionListResponse,
    RedemptionRequest,
    RedemptionResendResponse,
    RedemptionResponse,
)
from services.artifact_store import ArtifactStore
from services.classes_service import ClassNotFoundError, NotClassOwnerError
from services.notification_service import Notifier
from services.redemptions_service import (
    RedemptionAlreadyProcessedError,
    RedemptionNotFoundError,
    create_redemption,
    list_class_redemptions,
    resend_certificate,
    run_redemption_pipeline,
)

router = APIRouter(prefix="/api/classes/{class_id}/redemptions", tags=["redemptions"])


def get_session_maker(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_maker


def get_artifact_store(request: Request) -> ArtifactStore:
    store = getattr(request.app.state, "artifact_store", None)
    if store is None:
        raise HTTPException(
            status_code=503, detail="Certificate storage is not configured"
        )
    return store


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


SessionMaker = Annotated[
    async_sessionmaker[AsyncSession], Depends(get_session_maker)
]
Store = Annotated[ArtifactStore, Depends(get_artifact_store)]
CertificateNotifier = Annotated[Notifier, Depends(get_notifier)]


@router.post(
    "",
    response_model=RedemptionAccepted,
    status_code=202,
    responses={
        404: {"description": "Class not found"},
        422: {"description": "Invalid email address"},
        429: {"description": "Rate limit exceeded"},
    },
)
@limiter.limit(REDEMPTION_LIMIT)
async def redeem_endpoint(
    request: Request,
    class_id: str,
    body: RedemptionRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
    session_maker: SessionMaker,
    store: Store,
    notifier: CertificateNotifier,
) -> RedemptionAccepted:
    """Claim a certificate. Delivery happens in the background."""
    try:
        redemption = await create_redemption(
            db,
            class_id,
            learner_email=body.email,
            learner_name=body.name,
            license_number=body.license_number,
        )
    except ClassNotFoundError as e:
        raise class_error_to_http(e) from e

    await db.commit()

    background_tasks.add_task(
        run_redemption_pipeline,
        session_maker,
        store,
        notifier,
        class_id,
        redemption.id,
    )

    message = (
        "Test redemption recorded. No email will be sent."
        if redemption.status == RedemptionStatus.TEST
        else "Your certificate is on its way. Check your inbox in a few minutes."
    )
    return RedemptionAccepted(
        id=redemption.id, status=redemption.status, message=message
    )


@router.get(
    "",
    response_model=RedemptionListResponse,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Not the class owner"},
        404: {"description": "Class not found"},
    },
)
async def list_redemptions_endpoint(
    class_id: str,
    user_id: UserId,
    db: DbSession,
    status: RedemptionStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
) -> RedemptionListResponse:
    """Certificates issued for a class, newest first."""
    try:
        redemptions = await list_class_redemptions(
            db, user_id, class_id, status=status, limit=limit
        )
    except (ClassNotFoundError, NotClassOwnerError) as e:
        raise class_error_to_http(e) from e

    return RedemptionListResponse(
        redemptions=[RedemptionResponse.model_validate(r) for r in redemptions]
    )


@router.post(
    "/{redemption_id}/resend",
    response_model=RedemptionResendResponse,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Not the class owner"},
        404: {"description": "Class or redemption not found"},
        409: {"description": "Redemption already processed"},
    },
)
async def resend_endpoint(
    class_id: str,
    redemption_id: str,
    user_id: UserId,
    session_maker: SessionMaker,
    store: Store,
    notifier: CertificateNotifier,
) -> RedemptionResendResponse:
    """Re-run certificate delivery for a redemption that did not complete."""
    try:
        result = await resend_certificate(
            session_maker, store, notifier, user_id, class_id, redemption_id
        )
    except (ClassNotFoundError, NotClassOwnerError) as e:
        raise class_error_to_http(e) from e
    except RedemptionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Redemption not found") from e
    except RedemptionAlreadyProcessedError as e:
        raise HTTPException(
            status_code=409, detail="Redemption already processed"
        ) from e

    if result is None:
        raise HTTPException(status_code=404, detail="Redemption not found")
    return RedemptionResendResponse(id=redemption_id, result=result.value)
