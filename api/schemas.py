"""Pydantic schemas for API request/response validation."""

import re
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import QrMode, RedemptionStatus

# Same shape check the redemption form has always used: something@something.tld
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value: str) -> str:
    """Trim, lower-case and shape-check an email address."""
    email = value.strip().lower()
    if not email or not EMAIL_PATTERN.match(email):
        raise ValueError("Enter a valid email address.")
    return email


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class HealthResponse(BaseModel):
    status: str
    service: str


# --- Classes ---


class ClassCreate(BaseModel):
    """Create a class (creator only)."""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=10_000)
    ceu_hours: Decimal = Field(default=Decimal("0"), ge=0, max_digits=6, decimal_places=2)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required.")
        return v


class ClassUpdate(BaseModel):
    """Partial class update; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10_000)
    ceu_hours: Decimal | None = Field(default=None, ge=0, max_digits=6, decimal_places=2)


class ClassResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    ceu_hours: Decimal
    owner_id: str
    created_at: datetime


class ClassListResponse(BaseModel):
    classes: list[ClassResponse]


# --- Certificate templates ---


class CertificateTemplateUpsert(BaseModel):
    """Full certificate template as saved from the creator's form."""

    title: str = Field(min_length=1, max_length=255)
    ceu_hours: Decimal = Field(ge=0, max_digits=6, decimal_places=2)
    issuer_org_name: str = Field(default="", max_length=255)
    instructor_name: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=2048)
    qr_mode: QrMode = QrMode.LIVE
    max_issues: int | None = Field(default=None, gt=0)

    @field_validator("title", "issuer_org_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("instructor_name", "logo_url")
    @classmethod
    def blank_optional(cls, v: str | None) -> str | None:
        return _blank_to_none(v)


class CertificateTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_id: str
    cert_id: str
    title: str
    ceu_hours: Decimal
    issuer_org_name: str
    instructor_name: str | None = None
    logo_url: str | None = None
    qr_mode: QrMode
    max_issues: int | None = None
    issued_count: int
    updated_at: datetime | None = None


class CertificateTemplatePublic(BaseModel):
    """What the public redemption page shows about a certificate."""

    model_config = ConfigDict(from_attributes=True)

    title: str
    ceu_hours: Decimal
    issuer_org_name: str
    logo_url: str | None = None
    qr_mode: QrMode


# --- Redemptions ---


class RedemptionRequest(BaseModel):
    """Submitted by the learner from the QR redemption page."""

    email: str = Field(max_length=320)
    name: str | None = Field(default=None, max_length=255)
    license_number: str | None = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("name", "license_number")
    @classmethod
    def blank_optional(cls, v: str | None) -> str | None:
        return _blank_to_none(v)


class RedemptionAccepted(BaseModel):
    id: str
    status: RedemptionStatus
    message: str


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    class_id: str
    cert_id: str
    learner_email: str
    learner_name: str | None = None
    license_number: str | None = None
    status: RedemptionStatus
    created_at: datetime
    certificate_path: str | None = None
    certificate_url: str | None = None
    processed_at: datetime | None = None
    email_error: str | None = None
    email_error_at: datetime | None = None


class RedemptionListResponse(BaseModel):
    redemptions: list[RedemptionResponse]


class RedemptionResendResponse(BaseModel):
    id: str
    result: str
