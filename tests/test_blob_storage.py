"""
Tests for the Azure blob wrapper. The azure client is mocked; nothing leaves the process.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.core.exceptions import ResourceExistsError, ServiceRequestError

from core.errors import StorageError, StorageUnavailableError
from core.settings import Settings
from storage.blob import BlobStorage


def _storage_with_client(upload_side_effect=None) -> tuple[BlobStorage, MagicMock]:
    storage = BlobStorage(Settings(azure_container="evidence", azure_packaging_container="packaging"))
    blob_client = MagicMock()
    blob_client.url = "https://acct.blob.core.windows.net/c/p"
    blob_client.upload_blob = AsyncMock(side_effect=upload_side_effect)
    service = MagicMock()
    service.get_container_client.return_value.get_blob_client.return_value = blob_client
    storage._client = service
    return storage, service


def test_container_for_category():
    storage = BlobStorage(Settings(azure_container="evidence", azure_packaging_container="packaging"))
    assert storage.container_for("PackagingEvidence") == "packaging"
    assert storage.container_for("Weight") == "evidence"
    assert storage.container_for("other") == "evidence"


async def test_open_without_configuration_stays_disabled():
    storage = BlobStorage(Settings())
    await storage.open()
    assert storage.is_open is False
    with pytest.raises(StorageUnavailableError):
        await storage.upload("evidence", "a/b.pdf", b"x", "application/pdf")


async def test_upload_returns_blob_url():
    storage, service = _storage_with_client()
    url = await storage.upload("evidence", "2024/CM/SKU/C/Weight/a_1.pdf", b"data", "application/pdf")

    assert url == "https://acct.blob.core.windows.net/c/p"
    service.get_container_client.assert_called_once_with("evidence")
    blob_client = service.get_container_client.return_value.get_blob_client.return_value
    kwargs = blob_client.upload_blob.await_args.kwargs
    assert kwargs["length"] == 4
    assert kwargs["overwrite"] is True
    assert kwargs["content_settings"].content_type == "application/pdf"


async def test_upload_network_failure_is_unavailable():
    storage, _ = _storage_with_client(ServiceRequestError("no route"))
    with pytest.raises(StorageUnavailableError):
        await storage.upload("evidence", "p", b"x", "text/plain")


async def test_upload_service_failure_is_storage_error():
    storage, _ = _storage_with_client(ResourceExistsError("exists"))
    with pytest.raises(StorageError) as info:
        await storage.upload("evidence", "p", b"x", "text/plain")
    assert not isinstance(info.value, StorageUnavailableError)

