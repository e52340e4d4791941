"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping routes thin and focused
on HTTP handling. They flush but never commit; the caller owns the
transaction.
"""

from repositories.certificate_template_repository import (
    CertificateTemplateRepository,
)
from repositories.class_repository import ClassRepository
from repositories.redemption_repository import RedemptionRepository
from repositories.user_repository import UserRepository

__all__ = [
    "CertificateTemplateRepository",
    "ClassRepository",
    "RedemptionRepository",
    "UserRepository",
]
