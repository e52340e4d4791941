"""Durable storage for generated certificate PDFs (Azure Blob Storage).

Objects live at a deterministic path per (class, redemption); storing again
overwrites the previous object. Readers get a read-only SAS URL that expires
after CERTIFICATE_URL_TTL. SDK errors are not retried here: a failed upload
aborts the pipeline invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from azure.storage.blob import BlobSasPermissions, ContentSettings, generate_blob_sas
from azure.storage.blob.aio import BlobServiceClient

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

CERTIFICATE_URL_TTL = timedelta(days=7)
PDF_CONTENT_TYPE = "application/pdf"
PDF_CACHE_CONTROL = "public, max-age=3600"


def certificate_path(class_id: str, redemption_id: str) -> str:
    return f"certificates/{class_id}/{redemption_id}.pdf"


@dataclass(frozen=True)
class StoredArtifact:
    """Where a certificate was written and how to fetch it."""

    path: str
    url: str


class ArtifactStore(Protocol):
    async def store(
        self, data: bytes, class_id: str, redemption_id: str
    ) -> StoredArtifact: ...


class AzureBlobArtifactStore:
    """ArtifactStore backed by one Azure Blob Storage container."""

    def __init__(self, service_client: BlobServiceClient, container: str) -> None:
        self._service_client = service_client
        self._container = container

    @classmethod
    def from_settings(cls) -> AzureBlobArtifactStore:
        settings = get_settings()
        client = BlobServiceClient.from_connection_string(
            settings.azure_storage_connection_string
        )
        return cls(client, settings.azure_storage_container)

    async def store(
        self, data: bytes, class_id: str, redemption_id: str
    ) -> StoredArtifact:
        path = certificate_path(class_id, redemption_id)
        blob = self._service_client.get_blob_client(self._container, path)

        await blob.upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(
                content_type=PDF_CONTENT_TYPE,
                cache_control=PDF_CACHE_CONTROL,
            ),
        )

        url = f"{blob.url}?{self._sign(path)}"
        logger.info("certificate.uploaded", path=path, size_bytes=len(data))
        return StoredArtifact(path=path, url=url)

    def _sign(self, path: str) -> str:
        """Read-only SAS token for one blob, valid for CERTIFICATE_URL_TTL."""
        credential = self._service_client.credential
        return generate_blob_sas(
            account_name=self._service_client.account_name,
            container_name=self._container,
            blob_name=path,
            account_key=credential.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(UTC) + CERTIFICATE_URL_TTL,
            content_type=PDF_CONTENT_TYPE,
        )

    async def close(self) -> None:
        await self._service_client.close()
