"""Redemption business logic: intake and the certificate pipeline.

A redemption is created by the public redemption route and then processed
exactly once by the pipeline:

    normalize -> guard -> load template -> render -> store -> deliver

Failure semantics:
- Template load failures are recovered (rendered with fallbacks).
- Render and store failures propagate; the record stays non-terminal.
- Email failures are recorded on the record (email_error) and leave it
  non-terminal so resend_certificate can pick it up later.

Every write to the record goes through apply_outcome, which only patches the
columns that outcome owns.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import bound_contextvars, get_logger
from models import (
    DEFAULT_CERT_ID,
    CertificateTemplate,
    QrMode,
    Redemption,
    RedemptionStatus,
    utcnow,
)
from rendering.certificates import CertificateInput, render_certificate_pdf_async
from repositories.certificate_template_repository import (
    CertificateTemplateRepository,
)
from repositories.class_repository import ClassRepository
from repositories.redemption_repository import RedemptionRepository
from services.artifact_store import ArtifactStore, StoredArtifact
from services.classes_service import ClassNotFoundError, get_owned_class
from services.notification_service import CertificateEmail, Notifier

logger = get_logger(__name__)

DEFAULT_SUBJECT_TITLE = "CEU Certificate"

Renderer = Callable[[CertificateInput], Awaitable[bytes]]


class RedemptionNotFoundError(Exception):
    """Raised when a redemption does not exist in the given class."""

    pass


class RedemptionAlreadyProcessedError(Exception):
    """Raised when a retry is requested for an already processed redemption."""

    pass


class PipelineResult(StrEnum):
    SKIPPED = "skipped"
    NO_CREDENTIAL = "no_credential"
    TEST_MODE = "test_mode"
    SENT = "sent"
    EMAIL_FAILED = "email_failed"


@dataclass(frozen=True)
class RedemptionCreated:
    """A newly created redemption record, as delivered to the pipeline."""

    class_id: str
    redemption_id: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TemplateLookup:
    template: CertificateTemplate | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class Processed:
    artifact: StoredArtifact


@dataclass(frozen=True)
class EmailFailed:
    artifact: StoredArtifact
    error: str


Outcome = Processed | EmailFailed


@dataclass(frozen=True)
class _Normalized:
    learner_email: str
    learner_name: str
    license_number: str | None
    cert_id: str
    status: RedemptionStatus


def _normalize_status(value: object) -> RedemptionStatus:
    if value is None:
        return RedemptionStatus.PENDING
    try:
        return RedemptionStatus(getattr(value, "value", value))
    except ValueError:
        return RedemptionStatus.PENDING


def normalize_redemption(data: Mapping[str, Any]) -> _Normalized:
    """Apply defaults to a raw redemption body.

    Missing name falls back to the email, missing cert_id to "default" and a
    missing or unknown status to pending.
    """
    email = str(data.get("learner_email") or "")
    return _Normalized(
        learner_email=email,
        learner_name=str(data.get("learner_name") or email),
        license_number=data.get("license_number") or None,
        cert_id=str(data.get("cert_id") or DEFAULT_CERT_ID),
        status=_normalize_status(data.get("status")),
    )


def redemption_data(redemption: Redemption) -> dict[str, Any]:
    """Record body handed to the pipeline."""
    return {
        "cert_id": redemption.cert_id,
        "learner_email": redemption.learner_email,
        "learner_name": redemption.learner_name,
        "license_number": redemption.license_number,
        "status": redemption.status,
        "created_at": redemption.created_at,
    }


def build_subject(template: CertificateTemplate | None) -> str:
    title = (template.title if template else None) or DEFAULT_SUBJECT_TITLE
    return f"{title} — Your Certificate"


async def load_template(
    templates: CertificateTemplateRepository,
    class_id: str,
    cert_id: str,
) -> TemplateLookup:
    """Best-effort template read; errors are reported, never raised."""
    try:
        template = await templates.get_isolated(class_id, cert_id)
    except Exception as e:
        logger.warning(
            "template.load_failed",
            cert_id=cert_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return TemplateLookup(error=e)
    return TemplateLookup(template=template)


async def apply_outcome(
    redemptions: RedemptionRepository,
    class_id: str,
    redemption_id: str,
    outcome: Outcome,
) -> None:
    """Merge-patch the record with the fields owned by this outcome."""
    now = utcnow()
    match outcome:
        case Processed(artifact=artifact):
            await redemptions.patch(
                class_id,
                redemption_id,
                status=RedemptionStatus.PROCESSED,
                processed_at=now,
                certificate_path=artifact.path,
                certificate_url=artifact.url,
            )
        case EmailFailed(artifact=artifact, error=error):
            await redemptions.patch(
                class_id,
                redemption_id,
                email_error=error,
                email_error_at=now,
                certificate_path=artifact.path,
                certificate_url=artifact.url,
            )


async def process_redemption(
    event: RedemptionCreated,
    *,
    templates: CertificateTemplateRepository,
    redemptions: RedemptionRepository,
    store: ArtifactStore,
    notifier: Notifier,
    render: Renderer = render_certificate_pdf_async,
) -> PipelineResult:
    """Render, store and deliver the certificate for one redemption.

    Render and store errors propagate to the caller.
    """
    class_id, redemption_id = event.class_id, event.redemption_id
    data = normalize_redemption(event.data)

    with bound_contextvars(class_id=class_id, redemption_id=redemption_id):
        if data.status == RedemptionStatus.PROCESSED:
            logger.info("redemption.already_processed")
            return PipelineResult.SKIPPED

        lookup = await load_template(templates, class_id, data.cert_id)
        template = lookup.template

        pdf = await render(
            CertificateInput(
                learner_name=data.learner_name,
                learner_email=data.learner_email,
                class_id=class_id,
                redemption_id=redemption_id,
                template=template,
                license_number=data.license_number,
            )
        )
        artifact = await store.store(pdf, class_id, redemption_id)

        async def finish(outcome: Outcome) -> None:
            await apply_outcome(redemptions, class_id, redemption_id, outcome)
            if isinstance(outcome, Processed) and template is not None:
                await templates.increment_issued(class_id, data.cert_id)

        if not notifier.is_configured:
            logger.warning("email.not_configured", to=data.learner_email)
            await finish(Processed(artifact))
            return PipelineResult.NO_CREDENTIAL

        if data.status == RedemptionStatus.TEST:
            logger.info("redemption.test_mode", path=artifact.path)
            await finish(Processed(artifact))
            return PipelineResult.TEST_MODE

        result = await notifier.send(
            CertificateEmail(
                to_email=data.learner_email,
                to_name=data.learner_name,
                signed_url=artifact.url,
                subject=build_subject(template),
            )
        )
        if not result.ok:
            await finish(EmailFailed(artifact, result.error or "Unknown error"))
            return PipelineResult.EMAIL_FAILED

        await finish(Processed(artifact))
        return PipelineResult.SENT


async def run_redemption_pipeline(
    session_maker: async_sessionmaker[AsyncSession],
    store: ArtifactStore,
    notifier: Notifier,
    class_id: str,
    redemption_id: str,
) -> PipelineResult | None:
    """Process one stored redemption in its own session and transaction.

    Used as the post-commit background task of the redemption route and by
    the CLI. Returns None when the record no longer exists.
    """
    async with session_maker() as session:
        redemptions = RedemptionRepository(session)
        redemption = await redemptions.get(class_id, redemption_id)
        if redemption is None:
            logger.warning(
                "redemption.not_found",
                class_id=class_id,
                redemption_id=redemption_id,
            )
            return None

        event = RedemptionCreated(class_id, redemption_id, redemption_data(redemption))
        try:
            result = await process_redemption(
                event,
                templates=CertificateTemplateRepository(session),
                redemptions=redemptions,
                store=store,
                notifier=notifier,
                render=render_certificate_pdf_async,
            )
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(
                "redemption.pipeline_failed",
                class_id=class_id,
                redemption_id=redemption_id,
                email=event.data.get("learner_email"),
            )
            raise

    logger.info(
        "redemption.pipeline_completed",
        class_id=class_id,
        redemption_id=redemption_id,
        result=result.value,
    )
    return result


async def create_redemption(
    db: AsyncSession,
    class_id: str,
    *,
    learner_email: str,
    learner_name: str | None = None,
    license_number: str | None = None,
) -> Redemption:
    """Record a learner's redemption request.

    The email must already be normalized. Status is test when the class's
    certificate is in test mode, otherwise pending.

    Raises:
        ClassNotFoundError: If the class doesn't exist
    """
    if not await ClassRepository(db).exists(class_id):
        raise ClassNotFoundError(class_id)

    template = await CertificateTemplateRepository(db).get(class_id)
    status = (
        RedemptionStatus.TEST
        if template is not None and template.qr_mode == QrMode.TEST
        else RedemptionStatus.PENDING
    )

    redemption = await RedemptionRepository(db).create(
        class_id,
        learner_email=learner_email,
        status=status,
        learner_name=learner_name,
        license_number=license_number,
    )
    logger.info(
        "redemption.created",
        class_id=class_id,
        redemption_id=redemption.id,
        status=status.value,
    )
    return redemption


async def list_class_redemptions(
    db: AsyncSession,
    user_id: str,
    class_id: str,
    *,
    status: RedemptionStatus | None = None,
    limit: int = 50,
) -> Sequence[Redemption]:
    """Certificates listing for the class owner.

    Raises:
        ClassNotFoundError: If the class doesn't exist
        NotClassOwnerError: If the user doesn't own the class
    """
    await get_owned_class(db, user_id, class_id)
    return await RedemptionRepository(db).list_by_class(
        class_id, status=status, limit=limit
    )


async def get_retryable_redemption(
    db: AsyncSession,
    class_id: str,
    redemption_id: str,
) -> Redemption:
    """Load a redemption that may be re-run through the pipeline.

    Raises:
        RedemptionNotFoundError: If the redemption doesn't exist
        RedemptionAlreadyProcessedError: If it already reached processed
    """
    redemption = await RedemptionRepository(db).get(class_id, redemption_id)
    if redemption is None:
        raise RedemptionNotFoundError(redemption_id)
    if redemption.status == RedemptionStatus.PROCESSED:
        raise RedemptionAlreadyProcessedError(redemption_id)
    return redemption


async def resend_certificate(
    session_maker: async_sessionmaker[AsyncSession],
    store: ArtifactStore,
    notifier: Notifier,
    user_id: str,
    class_id: str,
    redemption_id: str,
) -> PipelineResult | None:
    """Owner-initiated retry for a redemption left non-terminal.

    The artifact is re-rendered and overwritten at the same path.

    Raises:
        ClassNotFoundError: If the class doesn't exist
        NotClassOwnerError: If the user doesn't own the class
        RedemptionNotFoundError: If the redemption doesn't exist
        RedemptionAlreadyProcessedError: If it already reached processed
    """
    async with session_maker() as session:
        await get_owned_class(session, user_id, class_id)
        await get_retryable_redemption(session, class_id, redemption_id)

    logger.info("redemption.resend", class_id=class_id, redemption_id=redemption_id)
    return await run_redemption_pipeline(
        session_maker, store, notifier, class_id, redemption_id
    )


async def retry_failed_emails(
    session_maker: async_sessionmaker[AsyncSession],
    store: ArtifactStore,
    notifier: Notifier,
    *,
    class_id: str | None = None,
    limit: int = 100,
) -> dict[str, int]:
    """Re-run the pipeline for every non-terminal record with an email error.

    Returns counts keyed by PipelineResult value. Records whose pipeline run
    raised are counted under "error" and don't stop the batch.
    """
    async with session_maker() as session:
        failures = await RedemptionRepository(session).list_email_failures(
            class_id=class_id, limit=limit
        )
        targets = [(r.class_id, r.id) for r in failures]

    counts: dict[str, int] = {}
    for target_class_id, target_id in targets:
        try:
            result = await run_redemption_pipeline(
                session_maker, store, notifier, target_class_id, target_id
            )
        except Exception:
            # already logged by run_redemption_pipeline
            counts["error"] = counts.get("error", 0) + 1
            continue
        if result is not None:
            counts[result.value] = counts.get(result.value, 0) + 1

    logger.info(
        "redemption.retry_batch_completed",
        attempted=len(targets),
        results=counts,
    )
    return counts
