# backend/catalog_service/catalog/storage.py
"""Object storage for product images (Azure Blob Storage).

Images are uploaded by clients beforehand; this service only signs read URLs
for stored objects and streams their bytes back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas

from . import messages
from .config import Settings
from .errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class BlobObject:
    key: str
    content_type: str
    size: int
    chunks: Iterator[bytes]


class BlobStorage:
    def __init__(
        self,
        client: Optional[BlobServiceClient],
        container_name: str,
        account_name: Optional[str] = None,
        account_key: Optional[str] = None,
        sas_expiry_hours: int = 24,
    ):
        self._client = client
        self.container_name = container_name
        self._account_name = account_name
        self._account_key = account_key
        self.sas_expiry_hours = sas_expiry_hours

    @classmethod
    def from_settings(cls, settings: Settings) -> "BlobStorage":
        client = None
        if settings.object_storage_enabled:
            client = BlobServiceClient(
                account_url=f"https://{settings.azure_account_name}.blob.core.windows.net",
                credential=settings.azure_account_key,
            )
            logger.info("Catalog Service: Azure BlobServiceClient initialized.")
        else:
            logger.warning(
                "Catalog Service: Azure Storage credentials not found. Image URLs and downloads will be disabled."
            )
        return cls(
            client,
            settings.azure_container_name,
            account_name=settings.azure_account_name,
            account_key=settings.azure_account_key,
            sas_expiry_hours=settings.azure_sas_expiry_hours,
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _require_client(self) -> BlobServiceClient:
        if self._client is None:
            raise TransportError(messages.OBJECT_STORAGE_UNAVAILABLE)
        return self._client

    def ensure_container(self) -> None:
        if self._client is None:
            return
        try:
            self._client.get_container_client(self.container_name).create_container()
            logger.info(
                f"Catalog Service: Azure container '{self.container_name}' created."
            )
        except ResourceExistsError:
            logger.info(
                f"Catalog Service: Azure container '{self.container_name}' already exists."
            )
        except AzureError as e:
            raise TransportError(
                messages.OBJECT_STORAGE_UNAVAILABLE, detail=self.container_name, cause=e
            ) from e

    def presign(self, key: str, expiry_hours: Optional[int] = None) -> str:
        """Read-only SAS URL for ``key``."""
        client = self._require_client()
        hours = expiry_hours or self.sas_expiry_hours
        try:
            blob_client = client.get_blob_client(container=self.container_name, blob=key)
            sas_token = generate_blob_sas(
                account_name=self._account_name,
                account_key=self._account_key,
                container_name=self.container_name,
                blob_name=key,
                permission=BlobSasPermissions(read=True),
                expiry=datetime.now(timezone.utc) + timedelta(hours=hours),
            )
        except AzureError as e:
            raise TransportError(
                messages.FAILED_GET_PRESIGNED_URL, detail=key, cause=e
            ) from e
        return f"{blob_client.url}?{sas_token}"

    def stream(self, key: str) -> BlobObject:
        client = self._require_client()
        try:
            downloader = client.get_blob_client(
                container=self.container_name, blob=key
            ).download_blob()
        except ResourceNotFoundError as e:
            raise NotFoundError(messages.IMAGE_NOT_FOUND, detail=key, cause=e) from e
        except AzureError as e:
            logger.error(f"Catalog Service: Failed to download blob '{key}': {e}")
            raise TransportError(
                messages.FAILED_GET_IMAGE_OBJECT, detail=key, cause=e
            ) from e

        content_settings = downloader.properties.content_settings
        content_type = getattr(content_settings, "content_type", None) or DEFAULT_CONTENT_TYPE
        return BlobObject(
            key=key,
            content_type=content_type,
            size=downloader.size,
            chunks=downloader.chunks(),
        )
