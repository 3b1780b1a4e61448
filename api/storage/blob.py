"""
Azure Blob Storage client wrapper.

`BlobStorage` owns one async `BlobServiceClient` for the process. It is opened
on startup and closed on shutdown (see `api/main.py`). Authentication:

- `AZURE_STORAGE_CONNECTION_STRING` when set
- otherwise `DefaultAzureCredential` against `https://<account>.blob.core.windows.net`
  (managed identity in Azure, CLI login locally)

With neither configured the storage stays closed and every upload raises
`StorageUnavailableError`, which the uploader turns into its pending fallback.
"""

from __future__ import annotations

import logging

from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError
from azure.identity.aio import DefaultAzureCredential
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from core.errors import StorageError, StorageUnavailableError
from core.settings import Settings

logger = logging.getLogger(__name__)

# Category -> container role; unlisted categories use the default container.
CATEGORY_CONTAINERS = {"PackagingEvidence": "packaging"}


class BlobStorage:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: BlobServiceClient | None = None
        self._credential: DefaultAzureCredential | None = None

    @property
    def default_container(self) -> str:
        return self._settings.azure_container

    @property
    def packaging_container(self) -> str:
        return self._settings.azure_packaging_container

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        if self._client is not None:
            return None

        settings = self._settings
        if settings.azure_connection_string:
            logger.info("blob_storage_open auth=connection_string")
            self._client = BlobServiceClient.from_connection_string(settings.azure_connection_string)
            return None

        if settings.azure_account_url:
            logger.info(
                "blob_storage_open auth=credential account=%s managed_identity=%s",
                settings.azure_account,
                settings.azure_use_managed_identity,
            )
            self._credential = DefaultAzureCredential()
            self._client = BlobServiceClient(settings.azure_account_url, credential=self._credential)
            return None

        logger.warning("blob_storage_disabled reason=no_connection_string_or_account")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._credential is not None:
            await self._credential.close()
            self._credential = None

    def _service(self) -> BlobServiceClient:
        if self._client is None:
            raise StorageUnavailableError("Blob storage is not configured.")
        return self._client

    async def upload(self, container: str, blob_path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes as a block blob and return its URL.
        """
        blob = self._service().get_container_client(container).get_blob_client(blob_path)
        try:
            await blob.upload_blob(
                data,
                length=len(data),
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )
        except (ServiceRequestError, ClientAuthenticationError) as exc:
            raise StorageUnavailableError(str(exc)) from exc
        except Exception as exc:
            raise StorageError(str(exc)) from exc
        return blob.url

    def container_for(self, category: str) -> str:
        if CATEGORY_CONTAINERS.get(category) == "packaging":
            return self.packaging_container
        return self.default_container
