"""
Tests for evidence upload orchestration.
"""

from __future__ import annotations

from components.files import FileRecord
from storage.uploader import (
    CATEGORIES,
    PENDING_URL_PREFIX,
    blob_folder,
    unique_blob_name,
    upload_files,
)
from tests.conftest import FakeBlobBackend

LOCATION = {"year": "2024", "cm_code": "CM001", "sku_code": "SKU001", "component_code": "COMP001"}


def _file(name: str, data, category: str = "Weight", mimetype: str = "application/pdf") -> FileRecord:
    return FileRecord(
        field_name="weight_evidence_files",
        filename=name,
        mimetype=mimetype,
        category=category,
        data=data,
        size=len(data) if isinstance(data, bytes) else 0,
    )


def test_unique_blob_name():
    assert unique_blob_name("scale.pdf", now_ms=1700000000000) == "scale_1700000000000.pdf"
    assert unique_blob_name("archive.tar.gz", now_ms=5) == "archive.tar_5.gz"
    assert unique_blob_name("README", now_ms=5) == "README_5"


def test_blob_folder_layout():
    assert blob_folder("2024", "CM001", "SKU001", "COMP001", "Packaging Type") == (
        "2024/CM001/SKU001/COMP001/Packaging Type/"
    )


async def test_empty_file_does_not_stop_the_batch():
    backend = FakeBlobBackend()
    result = await upload_files(
        backend,
        {"Weight": [_file("empty.pdf", b""), _file("good.pdf", b"%PDF")]},
        **LOCATION,
    )

    assert result.success is True
    assert result.uploaded_count == 1
    assert [e.to_dict() for e in result.errors] == [
        {"fileName": "empty.pdf", "category": "Weight", "error": "Empty file data"}
    ]
    uploaded = result.uploaded_files["Weight"][0]
    assert uploaded.original_name == "good.pdf"
    assert uploaded.blob_name.startswith("good_") and uploaded.blob_name.endswith(".pdf")
    assert uploaded.blob_url.startswith("https://blob.test/evidence/2024/CM001/SKU001/COMP001/Weight/good_")

    container, path, data, content_type = backend.uploads[0]
    assert container == "evidence"
    assert data == b"%PDF"
    assert content_type == "application/pdf"


async def test_payload_problems_are_reported_per_file():
    result = await upload_files(
        FakeBlobBackend(),
        {"Weight": [_file("none.pdf", None), _file("text.pdf", "not bytes")]},
        **LOCATION,
    )
    assert result.success is True
    assert [e.error for e in result.errors] == [
        "No file data available",
        "Invalid file data format - not a byte buffer",
    ]
    assert result.uploaded_count == 0


async def test_backend_failure_for_one_file_continues():
    backend = FakeBlobBackend(fail_for={"bad"})
    result = await upload_files(
        backend,
        {"Weight": [_file("bad.pdf", b"1"), _file("fine.pdf", b"2")]},
        **LOCATION,
    )
    assert result.success is True
    assert [f.original_name for f in result.uploaded_files["Weight"]] == ["fine.pdf"]
    assert result.errors[0].file_name == "bad.pdf"
    assert result.errors[0].error == "upload rejected"


async def test_categories_upload_in_fixed_order_with_other_last():
    backend = FakeBlobBackend()
    await upload_files(
        backend,
        {
            "other": [_file("o.pdf", b"o", category="other")],
            "PackagingEvidence": [_file("p.pdf", b"p", category="PackagingEvidence")],
            "Weight": [_file("w.pdf", b"w")],
        },
        **LOCATION,
    )
    folders = [path.split("/")[4] for _, path, _, _ in backend.uploads]
    assert folders == ["Weight", "PackagingEvidence", "other"]
    assert CATEGORIES[-1] == "other"
    assert backend.uploads[1][0] == "packaging"


async def test_unavailable_backend_switches_to_fallback():
    files = {
        "Weight": [_file("a.pdf", b"a")],
        "Material Type": [_file("b.pdf", b"bb", category="Material Type", mimetype="")],
    }
    result = await upload_files(FakeBlobBackend(unavailable=True), files, **LOCATION)

    assert result.success is False
    assert result.error == "Blob storage is not configured."
    assert result.errors == []
    assert result.uploaded_count == 2
    pending = result.uploaded_files["Material Type"][0]
    assert pending.blob_url == f"{PENDING_URL_PREFIX}b.pdf"
    assert pending.is_pending
    assert pending.size == 2
    assert pending.mimetype == "application/octet-stream"

    body = result.to_dict()
    assert body["success"] is False
    assert body["error"] == "Blob storage is not configured."
    assert body["uploadedFiles"]["Weight"][0]["blobUrl"] == "pending-azure-upload/a.pdf"


class FlakyBackend(FakeBlobBackend):
    """Stores the first file, then reports the account as unreachable."""

    async def upload(self, container: str, blob_path: str, data: bytes, content_type: str) -> str:
        if self.uploads:
            self.unavailable = True
        return await super().upload(container, blob_path, data, content_type)


async def test_outage_mid_batch_keeps_files_already_stored():
    backend = FlakyBackend()
    result = await upload_files(
        backend,
        {
            "Weight": [_file("a.pdf", b"a"), _file("b.pdf", b"b"), _file("empty.pdf", b"")],
            "other": [_file("c.pdf", b"c", category="other")],
        },
        **LOCATION,
    )

    assert len(backend.uploads) == 1
    stored_path = backend.uploads[0][1]
    assert stored_path.startswith("2024/CM001/SKU001/COMP001/Weight/a_")

    assert result.success is False
    assert result.error == "Blob storage is not configured."

    first, second = result.uploaded_files["Weight"]
    assert first.original_name == "a.pdf"
    assert first.blob_url == f"https://blob.test/evidence/{stored_path}"
    assert first.blob_name == stored_path.rsplit("/", 1)[-1]
    assert not first.is_pending
    assert second.blob_url == f"{PENDING_URL_PREFIX}b.pdf"
    assert result.uploaded_files["other"][0].blob_url == f"{PENDING_URL_PREFIX}c.pdf"

    assert [e.to_dict() for e in result.errors] == [
        {"fileName": "empty.pdf", "category": "Weight", "error": "Empty file data"}
    ]
