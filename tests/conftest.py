"""
Pytest configuration and fixtures.

The API package is importable through `pythonpath = ["api"]` in pyproject.toml,
so tests import `main`, `components`, `core`, ... exactly as the app does.
No database or blob account is needed: repositories and storage are replaced
with the in-memory fakes below.
"""

from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi.testclient import TestClient

TEST_JWT_SECRET = "test-secret-not-for-production"

os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ.setdefault("DATABASE_URL", "postgresql://test@localhost:5432/sdp_test")
os.environ.pop("AZURE_STORAGE_CONNECTION_STRING", None)
os.environ.pop("AZURE_STORAGE_ACCOUNT", None)


class FakeComponentRepository:
    """In-memory stand-in for `ComponentRepository`; records every write."""

    def __init__(self) -> None:
        self.components: list[dict[str, Any]] = []
        self.mappings: list[dict[str, Any]] = []
        self.audit_logs: list[dict[str, Any]] = []
        self.evidence: list[dict[str, Any]] = []
        self.periods: dict[int, str] = {3: "2024"}
        self.duplicate: dict[str, Any] | None = None
        self.fail_evidence_for: set[str] = set()
        self._next_id = 100

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def find_component_by_code(self, component_code: str) -> dict[str, Any] | None:
        for row in self.components:
            if row.get("component_code") == component_code and row.get("is_active", True):
                return row
        return None

    async def find_duplicate(self, **_: Any) -> dict[str, Any] | None:
        return self.duplicate

    async def get_period_name(self, period_id: Any) -> str | None:
        return self.periods.get(period_id)

    async def insert_component(self, data: dict[str, Any]) -> dict[str, Any]:
        row = {**data, "id": self._id()}
        self.components.append(row)
        return row

    async def find_mapping(self, *, cm_code: str, sku_code: str, component_code: str, version: Any):
        for row in self.mappings:
            if (row["cm_code"], row["sku_code"], row["component_code"], row["version"]) == (
                cm_code,
                sku_code,
                component_code,
                version,
            ):
                return row
        return None

    async def insert_mapping(self, data: dict[str, Any]) -> dict[str, Any]:
        row = {**data, "id": self._id()}
        self.mappings.append(row)
        return row

    async def insert_audit_log(self, component_id: int, data: dict[str, Any]) -> dict[str, Any]:
        row = {**data, "component_id": component_id, "id": self._id()}
        self.audit_logs.append(row)
        return row

    async def insert_evidence(self, data: dict[str, Any]) -> dict[str, Any]:
        if data["evidence_file_name"] in self.fail_evidence_for:
            raise RuntimeError("evidence insert rejected")
        row = {**data, "id": self._id()}
        self.evidence.append(row)
        return row

    async def get_components_by_sku_reference(self, cm_code: str, sku_code: str) -> list[dict[str, Any]]:
        return [
            row
            for row in self.components
            if row.get("cm_code") == cm_code and sku_code in str(row.get("sku_code") or "").split(",")
        ]

    async def get_components_by_code(self, component_code: str) -> list[dict[str, Any]]:
        return [row for row in self.components if row.get("component_code") == component_code]

    async def get_evidence_for_components(self, component_ids: list[int]) -> list[dict[str, Any]]:
        return [row for row in self.evidence if row["component_id"] in component_ids]


class FakeBlobBackend:
    """Records uploads; can simulate an outage or per-file failures."""

    def __init__(self, *, unavailable: bool = False, fail_for: set[str] | None = None) -> None:
        self.unavailable = unavailable
        self.fail_for = fail_for or set()
        self.uploads: list[tuple[str, str, bytes, str]] = []

    def container_for(self, category: str) -> str:
        return "packaging" if category == "PackagingEvidence" else "evidence"

    async def upload(self, container: str, blob_path: str, data: bytes, content_type: str) -> str:
        from core.errors import StorageError, StorageUnavailableError

        if self.unavailable:
            raise StorageUnavailableError("Blob storage is not configured.")
        if any(blob_path.split("/")[-1].startswith(name) for name in self.fail_for):
            raise StorageError("upload rejected")
        self.uploads.append((container, blob_path, data, content_type))
        return f"https://blob.test/{container}/{blob_path}"


@pytest.fixture
def component_repo() -> FakeComponentRepository:
    return FakeComponentRepository()


@pytest.fixture
def blob_backend() -> FakeBlobBackend:
    return FakeBlobBackend()


@pytest.fixture
def access_token() -> str:
    from auth.security import build_access_token

    return build_access_token(subject="42", secret=TEST_JWT_SECRET)


@pytest.fixture
def auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def app():
    from main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """FastAPI test client. The lifespan is not run, so no pool is opened."""
    return TestClient(app)


@pytest.fixture
def component_form() -> dict[str, str]:
    return {
        "cm_code": "CM001",
        "sku_code": "SKU001",
        "component_code": "COMP001",
        "version": "1",
        "period_id": "3",
        "year": "3",
        "component_description": "Bottle cap",
        "component_valid_from": "2024-01-01",
        "component_valid_to": "2024-12-31",
        "component_quantity": "2.5",
        "is_active": "true",
    }
