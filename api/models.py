"""SQLAlchemy models for CEU classes, certificate templates and redemptions."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base

DEFAULT_CERT_ID = "default"


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class QrMode(str, PyEnum):
    """Whether redemptions for a template deliver email (live) or not (test)."""

    LIVE = "live"
    TEST = "test"


class RedemptionStatus(str, PyEnum):
    """Lifecycle of a redemption.

    PENDING and TEST are awaiting processing; PROCESSED is terminal.
    An email failure leaves the record in its pre-processing status with
    email_error set, so it can be retried.
    """

    PENDING = "pending"
    TEST = "test"
    PROCESSED = "processed"


class User(TimestampMixin, Base):
    """User model - identity comes from Clerk, role flag is local."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_creator: Mapped[bool] = mapped_column(Boolean, default=False)

    classes: Mapped[list["CourseClass"]] = relationship(back_populates="owner")


class CourseClass(TimestampMixin, Base):
    """A course offering for which CEU certificates are issued."""

    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ceu_hours: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    owner_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    owner: Mapped[User] = relationship(back_populates="classes")
    certificate_templates: Mapped[list["CertificateTemplate"]] = relationship(
        back_populates="course_class",
        cascade="all, delete-orphan",
    )


class CertificateTemplate(TimestampMixin, Base):
    """Per-class certificate configuration, keyed by (class_id, cert_id)."""

    __tablename__ = "certificate_templates"

    class_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("classes.id", ondelete="CASCADE"),
        primary_key=True,
    )
    cert_id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=DEFAULT_CERT_ID
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    ceu_hours: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    issuer_org_name: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    instructor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    qr_mode: Mapped[QrMode] = mapped_column(
        Enum(
            QrMode,
            name="qr_mode",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=QrMode.LIVE,
    )
    owner_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    max_issues: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issued_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    course_class: Mapped[CourseClass] = relationship(
        back_populates="certificate_templates"
    )


class Redemption(Base):
    """One learner's request to receive a certificate for a class."""

    __tablename__ = "redemptions"
    __table_args__ = (
        Index("ix_redemptions_class_status", "class_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    cert_id: Mapped[str] = mapped_column(
        String(64), nullable=False, default=DEFAULT_CERT_ID
    )
    learner_email: Mapped[str] = mapped_column(String(320), nullable=False)
    learner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    license_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[RedemptionStatus] = mapped_column(
        Enum(
            RedemptionStatus,
            name="redemption_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=RedemptionStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    certificate_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    certificate_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    email_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_error_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
