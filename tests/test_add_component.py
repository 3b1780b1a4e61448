"""
End-to-end tests for POST /add-component with in-memory repository and blob fakes.
"""

from __future__ import annotations

from datetime import date

import pytest

from components.dependencies import get_component_ingestion
from components.service import ALWAYS_INSERT, REQUIRED_FIELDS, ComponentIngestion, IngestOptions
from tests.conftest import FakeBlobBackend, FakeComponentRepository

FORM_FIELDS = {
    "cm_code": "CM001",
    "sku_code": "SKU001",
    "component_code": "COMP001",
    "version": "1",
    "period_id": "3",
    "year": "3",
    "component_description": "Cap",
    "component_valid_from": "2024-01-01",
    "component_valid_to": "2024-12-31",
}


@pytest.fixture
def wire(app, component_repo, blob_backend):
    """Route the endpoint to the fakes. Tests swap `options` or `backend` in the returned dict."""
    state = {"options": IngestOptions(), "backend": blob_backend}

    def _ingestion() -> ComponentIngestion:
        return ComponentIngestion(component_repo, state["backend"], state["options"])

    app.dependency_overrides[get_component_ingestion] = _ingestion
    return state


def test_requires_bearer_token(client, wire, component_form):
    response = client.post("/add-component", data=component_form)
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_add_component_with_files(client, wire, component_repo, blob_backend, auth_headers, component_form):
    response = client.post(
        "/add-component",
        data=component_form,
        files=[
            ("weight_evidence_files", ("scale.pdf", b"%PDF-1.7", "application/pdf")),
            ("weight_evidence_files", ("scale2.pdf", b"%PDF-1.4", "application/pdf")),
            ("evidence_of_recycled_or_bio_source", ("bio.png", b"\x89PNG", "image/png")),
        ],
        headers=auth_headers,
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["action"] == "component_and_mapping"
    assert data["mapping_status"] == "new_mapping"
    assert data["period"] == "2024"
    assert data["component_id"] == component_repo.components[0]["id"]
    assert len(data["evidence_ids"]) == 3
    assert data["evidence_id"] == data["evidence_ids"][-1]

    processing = data["fileProcessing"]
    assert processing["uploadSuccess"] is True
    assert processing["uploadErrors"] == []
    assert [f["originalName"] for f in processing["uploadedFiles"]["Weight"]] == ["scale.pdf", "scale2.pdf"]
    assert len(processing["uploadedFiles"]["PackagingEvidence"]) == 1

    component = component_repo.components[0]
    assert component["version"] == 1
    assert component["period_id"] == 3
    assert component["component_valid_from"] == date(2024, 1, 1)
    assert component["component_quantity"] == 2.5
    assert component["is_active"] is True
    assert component["weight_evidence"] == "scale.pdf, scale2.pdf"
    assert component["created_by"] == "42"

    assert len(component_repo.mappings) == 1
    assert len(component_repo.audit_logs) == 1
    assert component_repo.audit_logs[0]["component_id"] == component["id"]

    categories = sorted(e["category"] for e in component_repo.evidence)
    assert categories == ["component_evidence", "weight_evidence", "weight_evidence"]

    paths = [path for _, path, _, _ in blob_backend.uploads]
    assert all(p.startswith("2024/CM001/SKU001/COMP001/") for p in paths)
    assert blob_backend.uploads[-1][0] == "packaging"


def test_add_component_without_files(client, wire, component_repo, blob_backend, auth_headers, component_form):
    response = client.post("/add-component", data=component_form, headers=auth_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["evidence_id"] is None
    assert data["evidence_ids"] == []
    assert data["mapping_status"] == "new_mapping"
    assert data["fileProcessing"]["uploadSuccess"] is True
    assert blob_backend.uploads == []
    assert component_repo.evidence == []


def test_missing_required_fields(client, wire, component_repo, auth_headers):
    response = client.post("/add-component", data={"cm_code": "CM001"}, headers=auth_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Missing required fields"
    assert body["missingFields"] == [f for f in REQUIRED_FIELDS if f != "cm_code"]
    assert component_repo.components == []


def test_duplicate_stops_before_any_write(client, wire, component_repo, blob_backend, auth_headers, component_form):
    component_repo.duplicate = {"id": 7, "component_code": "COMP001"}

    response = client.post(
        "/add-component",
        data=component_form,
        files=[("weight_evidence_files", ("scale.pdf", b"%PDF", "application/pdf"))],
        headers=auth_headers,
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "DUPLICATE_RECORD"
    assert body["duplicate"]["id"] == 7
    assert component_repo.components == []
    assert component_repo.mappings == []
    assert component_repo.audit_logs == []
    assert blob_backend.uploads == []


def test_storage_outage_still_records_evidence(client, wire, component_repo, auth_headers, component_form):
    wire["backend"] = FakeBlobBackend(unavailable=True)

    response = client.post(
        "/add-component",
        data=component_form,
        files=[("weight_evidence_files", ("scale.pdf", b"%PDF", "application/pdf"))],
        headers=auth_headers,
    )

    assert response.status_code == 201
    processing = response.json()["data"]["fileProcessing"]
    assert processing["uploadSuccess"] is False
    assert processing["uploadError"] == "Blob storage is not configured."
    assert processing["uploadedFiles"]["Weight"][0]["blobUrl"] == "pending-azure-upload/scale.pdf"
    assert component_repo.evidence[0]["evidence_file_url"] == "pending-azure-upload/scale.pdf"


def test_empty_upload_is_not_sent(client, wire, blob_backend, auth_headers, component_form):
    response = client.post(
        "/add-component",
        data=component_form,
        files=[("weight_evidence_files", ("empty.pdf", b"", "application/pdf"))],
        headers=auth_headers,
    )

    assert response.status_code == 201
    processing = response.json()["data"]["fileProcessing"]
    assert blob_backend.uploads == []
    assert processing["fileDetails"][0]["files"][0]["warning"] == "No valid buffer found"


def test_reuse_existing_component(client, wire, component_repo, auth_headers, component_form):
    component_repo.components.append({"id": 5, "component_code": "COMP001", "is_active": True})

    response = client.post("/add-component", data=component_form, headers=auth_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["component_id"] == 5
    assert data["action"] == "mapping_only"
    assert len(component_repo.components) == 1
    assert component_repo.audit_logs[0]["component_id"] == 5


def test_always_insert_strategy(client, wire, component_repo, auth_headers, component_form):
    wire["options"] = IngestOptions(component_write_strategy=ALWAYS_INSERT)
    component_repo.components.append({"id": 5, "component_code": "COMP001", "is_active": True})

    response = client.post("/add-component", data=component_form, headers=auth_headers)

    assert response.json()["data"]["action"] == "component_and_mapping"
    assert len(component_repo.components) == 2


def test_mapping_existence_check(client, wire, component_repo, auth_headers, component_form):
    wire["options"] = IngestOptions(mapping_existence_check=True)
    component_repo.mappings.append(
        {"id": 9, "cm_code": "CM001", "sku_code": "SKU001", "component_code": "COMP001", "version": 1}
    )

    response = client.post("/add-component", data=component_form, headers=auth_headers)

    data = response.json()["data"]
    assert data["mapping_status"] == "existing_mapping"
    assert data["mapping_id"] == 9
    assert len(component_repo.mappings) == 1


def test_json_body_is_accepted(client, wire, component_repo, auth_headers, component_form):
    response = client.post("/add-component", json=component_form, headers=auth_headers)
    assert response.status_code == 201
    assert component_repo.components[0]["component_code"] == "COMP001"


async def test_evidence_insert_failure_is_reported():
    repo = FakeComponentRepository()
    repo.fail_evidence_for = {"bad.pdf"}
    ingestion = ComponentIngestion(repo, FakeBlobBackend())

    class Upload:
        def __init__(self, filename: str) -> None:
            self.filename = filename

        async def read(self) -> bytes:
            return b"content"

    fields = {**FORM_FIELDS, "weight_evidence_files": [Upload("bad.pdf"), Upload("good.pdf")]}
    result = await ingestion.ingest(fields, user_id="7")

    data = result.value["data"]
    assert data["evidence_ids"] == [repo.evidence[0]["id"]]
    assert data["fileProcessing"]["evidenceErrors"] == [{"fileName": "bad.pdf", "error": "evidence insert rejected"}]
    assert repo.components[0]["created_by"] == "7"


async def test_unexpected_repository_error_becomes_err():
    class FailingRepo(FakeComponentRepository):
        async def insert_component(self, data):
            raise RuntimeError("connection reset")

    result = await ComponentIngestion(FailingRepo(), FakeBlobBackend()).ingest(
        FORM_FIELDS
    )

    assert result.error.status_code == 500
    assert result.error.message == "Failed to add component"
    assert result.error.error == "connection reset"
