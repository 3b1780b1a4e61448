"""
Evidence upload orchestration.

Files are uploaded category by category, in a fixed order, to

    {year}/{cm_code}/{sku_code}/{component_code}/{category}/{stem}_{millis}{ext}

One bad file never stops the batch; it is recorded in `errors`. When the
backend becomes unreachable the rest of the batch switches to fallback mode:
files not yet stored are returned with a `pending-azure-upload/` placeholder
URL so evidence metadata can still be stored, and `success` is False.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from core.errors import StorageUnavailableError, UploadError

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "Weight",
    "weightUOM",
    "Packaging Type",
    "Material Type",
    "PackagingEvidence",
    "other",
)
PENDING_URL_PREFIX = "pending-azure-upload/"
DEFAULT_MIMETYPE = "application/octet-stream"


class BlobBackend(Protocol):
    def container_for(self, category: str) -> str: ...

    async def upload(self, container: str, blob_path: str, data: bytes, content_type: str) -> str: ...


class UploadableFile(Protocol):
    filename: str
    mimetype: str
    data: Any


@dataclass(frozen=True)
class UploadedFile:
    original_name: str
    blob_name: str
    blob_url: str
    size: int
    mimetype: str

    @property
    def is_pending(self) -> bool:
        return self.blob_url.startswith(PENDING_URL_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalName": self.original_name,
            "blobName": self.blob_name,
            "blobUrl": self.blob_url,
            "size": self.size,
            "mimetype": self.mimetype,
        }


@dataclass
class UploadResult:
    success: bool = True
    uploaded_files: dict[str, list[UploadedFile]] = field(default_factory=dict)
    errors: list[UploadError] = field(default_factory=list)
    error: str | None = None

    @property
    def uploaded_count(self) -> int:
        return sum(len(files) for files in self.uploaded_files.values())

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": self.success,
            "uploadedFiles": {
                category: [f.to_dict() for f in files] for category, files in self.uploaded_files.items()
            },
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.error is not None:
            body["error"] = self.error
        return body


def unique_blob_name(filename: str, *, now_ms: int | None = None) -> str:
    """
    Insert a millisecond timestamp before the extension: `a.pdf` -> `a_1700000000000.pdf`.
    """
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return f"{filename}_{stamp}"
    return f"{stem}_{stamp}.{ext}"


def blob_folder(year: Any, cm_code: Any, sku_code: Any, component_code: Any, category: str) -> str:
    return f"{year}/{cm_code}/{sku_code}/{component_code}/{category}/"


def _payload_problem(data: Any) -> str | None:
    if data is None:
        return "No file data available"
    if not isinstance(data, (bytes, bytearray)):
        return "Invalid file data format - not a byte buffer"
    if len(data) == 0:
        return "Empty file data"
    return None


def _pending(f: UploadableFile, mimetype: str) -> UploadedFile:
    return UploadedFile(
        original_name=f.filename,
        blob_name=f.filename,
        blob_url=f"{PENDING_URL_PREFIX}{f.filename}",
        size=len(f.data),
        mimetype=mimetype,
    )


async def upload_files(
    backend: BlobBackend,
    files_by_category: Mapping[str, Sequence[UploadableFile]],
    *,
    year: Any,
    cm_code: Any,
    sku_code: Any,
    component_code: Any,
) -> UploadResult:
    """
    Upload every file in `files_by_category` and report per-file outcomes.

    Once the backend reports itself unavailable, no further uploads are
    attempted: files already stored keep their real URLs, files still
    waiting get a pending placeholder.

    Categories outside `CATEGORIES` are ignored; the classifier never produces them.
    """
    result = UploadResult()
    outage: str | None = None

    for category in CATEGORIES:
        files = files_by_category.get(category) or []
        if not files:
            continue

        uploaded = result.uploaded_files.setdefault(category, [])
        container = backend.container_for(category)
        folder = blob_folder(year, cm_code, sku_code, component_code, category)

        for f in files:
            problem = _payload_problem(f.data)
            if problem is not None:
                logger.warning("upload_skipped category=%s file=%s reason=%s", category, f.filename, problem)
                result.errors.append(UploadError(file_name=f.filename, category=category, error=problem))
                continue

            mimetype = f.mimetype or DEFAULT_MIMETYPE
            if outage is not None:
                uploaded.append(_pending(f, mimetype))
                continue

            blob_name = unique_blob_name(f.filename)
            blob_path = f"{folder}{blob_name}"
            try:
                url = await backend.upload(container, blob_path, bytes(f.data), mimetype)
            except StorageUnavailableError as exc:
                outage = str(exc)
                logger.error("blob_storage_unavailable error=%s mode=fallback", exc)
                uploaded.append(_pending(f, mimetype))
                continue
            except Exception as exc:
                logger.warning("upload_failed container=%s path=%s error=%s", container, blob_path, exc)
                result.errors.append(UploadError(file_name=f.filename, category=category, error=str(exc)))
                continue

            uploaded.append(
                UploadedFile(
                    original_name=f.filename,
                    blob_name=blob_name,
                    blob_url=url,
                    size=len(f.data),
                    mimetype=mimetype,
                )
            )
            logger.info("upload_ok container=%s path=%s size=%s", container, blob_path, len(f.data))

    if outage is not None:
        result.success = False
        result.error = outage

    logger.info(
        "upload_summary uploaded=%s errors=%s fallback=%s",
        result.uploaded_count,
        len(result.errors),
        outage is not None,
    )
    return result
