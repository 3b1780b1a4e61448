"""
Component "service layer".

`ComponentIngestion` turns one multipart `/add-component` payload into stored
rows. Stages run in a fixed order and each returns `Ok`/`Err`:

    parse -> validate -> duplicate check -> period -> component
          -> upload -> mapping + audit + evidence -> respond

Validation and duplicate failures stop the flow before any write. Upload and
per-file evidence failures are reported, never fatal. Steps after the component
insert are independent statements: a failure there leaves the component row in
place.

The lookup helpers at the bottom back the two read endpoints.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    UnknownError,
    ValidationError,
)
from core.result import Err, Ok, Result
from storage.uploader import BlobBackend, UploadResult, upload_files

from .files import EVIDENCE_CATEGORY_BY_BUCKET, ClassifiedForm, classify_form
from .repository import ComponentRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = (
    "cm_code",
    "sku_code",
    "component_code",
    "version",
    "period_id",
    "year",
    "component_description",
    "component_valid_from",
    "component_valid_to",
)

REUSE_EXISTING = "reuse_existing"
ALWAYS_INSERT = "always_insert"

DEFAULT_CREATED_BY = "1"


@dataclass(frozen=True)
class IngestOptions:
    component_write_strategy: str = REUSE_EXISTING
    mapping_existence_check: bool = False


@dataclass
class PersistedRecords:
    mapping_id: Any
    mapping_status: str
    audit_id: Any
    evidence_id: Any = None
    evidence_ids: list[Any] = field(default_factory=list)
    evidence_errors: list[dict[str, str]] = field(default_factory=list)


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _stage(name: str, **fields: Any) -> None:
    extra = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.info("ingest_stage stage=%s %s", name, extra)


def missing_required_fields(values: Mapping[str, Any]) -> list[str]:
    return [name for name in REQUIRED_FIELDS if _is_blank(values.get(name))]


class ComponentIngestion:
    def __init__(
        self,
        repository: ComponentRepository,
        storage: BlobBackend,
        options: IngestOptions | None = None,
    ) -> None:
        self._repo = repository
        self._storage = storage
        self._options = options or IngestOptions()

    async def ingest(self, raw_fields: Mapping[str, Any], *, user_id: str | None = None) -> Result[dict[str, Any]]:
        try:
            return await self._run(raw_fields, user_id=user_id)
        except PersistenceError as exc:
            logger.exception("ingest_failed stage=persistence")
            return Err(PersistenceError("Failed to add component", error=exc.error))
        except Exception as exc:
            logger.exception("ingest_failed stage=unexpected")
            return Err(UnknownError("Failed to add component", error=str(exc)))

    async def _run(self, raw_fields: Mapping[str, Any], *, user_id: str | None) -> Result[dict[str, Any]]:
        form = await self._parse(raw_fields)

        validated = self._validate(form)
        if isinstance(validated, Err):
            return validated
        values = validated.value
        if _is_blank(values.get("created_by")):
            values["created_by"] = user_id or DEFAULT_CREATED_BY

        duplicate = await self._check_duplicate(values)
        if isinstance(duplicate, Err):
            return duplicate

        year_label = await self._resolve_period(values)

        component_id, action = await self._persist_component(values)

        upload = await self._upload(form, values, year_label)

        records = await self._persist_records(component_id, values, upload)

        _stage("respond", component_id=component_id, action=action)
        return Ok(self._response(form, component_id, action, records, upload, year_label))

    async def _parse(self, raw_fields: Mapping[str, Any]) -> ClassifiedForm:
        form = await classify_form(raw_fields)
        _stage(
            "parse",
            fields=form.total_fields,
            values=len(form.values),
            file_fields=len(form.file_fields),
            files=len(form.all_files()),
        )
        return form

    def _validate(self, form: ClassifiedForm) -> Result[dict[str, Any]]:
        missing = missing_required_fields(form.values)
        _stage("validate", missing=",".join(missing) or "-")
        if missing:
            return Err(
                ValidationError(
                    "Missing required fields",
                    details={"missingFields": missing},
                )
            )
        return Ok(dict(form.values))

    async def _check_duplicate(self, values: dict[str, Any]) -> Result[None]:
        existing = await self._repo.find_duplicate(
            cm_code=values["cm_code"],
            sku_code=values["sku_code"],
            component_code=values["component_code"],
            valid_from=values["component_valid_from"],
            valid_to=values["component_valid_to"],
        )
        _stage("duplicate_check", found=existing is not None)
        if existing is not None:
            return Err(
                ConflictError(
                    "Duplicate component record: this CM code, SKU code, component code "
                    "and validity period already exist",
                    error="DUPLICATE_RECORD",
                    details={"duplicate": existing},
                )
            )
        return Ok(None)

    async def _resolve_period(self, values: dict[str, Any]) -> Any:
        period_ref = values.get("year") if not _is_blank(values.get("year")) else values.get("periods")
        try:
            name = await self._repo.get_period_name(period_ref)
        except Exception as exc:
            logger.warning("ingest_stage stage=period resolved=false period=%s error=%s", period_ref, exc)
            return period_ref
        _stage("period", period=period_ref, resolved=name is not None)
        return name if name is not None else period_ref

    async def _persist_component(self, values: dict[str, Any]) -> tuple[int, str]:
        if self._options.component_write_strategy == REUSE_EXISTING:
            existing = await self._repo.find_component_by_code(values["component_code"])
            if existing is not None:
                _stage("persist_component", component_id=existing["id"], reused=True)
                return int(existing["id"]), "mapping_only"

        row = await self._repo.insert_component(values)
        _stage("persist_component", component_id=row["id"], reused=False)
        return int(row["id"]), "component_and_mapping"

    async def _upload(self, form: ClassifiedForm, values: dict[str, Any], year_label: Any) -> UploadResult | None:
        uploadable = {
            category: [f for f in files if f.has_data]
            for category, files in form.files_by_category().items()
        }
        uploadable = {k: v for k, v in uploadable.items() if v}
        if not uploadable:
            _stage("upload", files=0)
            return None

        result = await upload_files(
            self._storage,
            uploadable,
            year=year_label,
            cm_code=values["cm_code"],
            sku_code=values["sku_code"],
            component_code=values["component_code"],
        )
        _stage("upload", uploaded=result.uploaded_count, errors=len(result.errors), success=result.success)
        return result

    async def _persist_records(
        self,
        component_id: int,
        values: dict[str, Any],
        upload: UploadResult | None,
    ) -> PersistedRecords:
        mapping_data = {
            "cm_code": values.get("cm_code"),
            "sku_code": values.get("sku_code"),
            "component_code": values.get("component_code"),
            "version": values.get("version"),
            "component_packaging_type_id": values.get("component_packaging_type_id"),
            "period_id": values.get("period_id"),
            "component_valid_from": values.get("component_valid_from"),
            "component_valid_to": values.get("component_valid_to"),
            "created_by": values.get("created_by"),
            "is_active": values.get("is_active"),
        }

        mapping = None
        if self._options.mapping_existence_check:
            mapping = await self._repo.find_mapping(
                cm_code=mapping_data["cm_code"],
                sku_code=mapping_data["sku_code"],
                component_code=mapping_data["component_code"],
                version=mapping_data["version"],
            )
        if mapping is not None:
            mapping_status = "existing_mapping"
        else:
            mapping = await self._repo.insert_mapping(mapping_data)
            mapping_status = "new_mapping"

        audit = await self._repo.insert_audit_log(component_id, values)

        records = PersistedRecords(
            mapping_id=mapping["id"],
            mapping_status=mapping_status,
            audit_id=audit["id"],
        )

        for category, files in (upload.uploaded_files.items() if upload else ()):
            for uploaded in files:
                try:
                    row = await self._repo.insert_evidence(
                        {
                            "component_id": component_id,
                            "evidence_file_name": uploaded.original_name,
                            "evidence_file_url": uploaded.blob_url,
                            "category": EVIDENCE_CATEGORY_BY_BUCKET.get(category, "other_evidence"),
                            "created_by": values.get("created_by"),
                        }
                    )
                except Exception as exc:
                    logger.warning("evidence_insert_failed file=%s error=%s", uploaded.original_name, exc)
                    records.evidence_errors.append({"fileName": uploaded.original_name, "error": str(exc)})
                    continue
                records.evidence_ids.append(row["id"])
                records.evidence_id = row["id"]

        _stage(
            "persist_records",
            mapping_id=records.mapping_id,
            audit_id=records.audit_id,
            evidence=len(records.evidence_ids),
            evidence_errors=len(records.evidence_errors),
        )
        return records

    def _response(
        self,
        form: ClassifiedForm,
        component_id: int,
        action: str,
        records: PersistedRecords,
        upload: UploadResult | None,
        year_label: Any,
    ) -> dict[str, Any]:
        upload_body = upload.to_dict() if upload else {"success": True, "uploadedFiles": {}, "errors": []}
        file_details = []
        for field_name, files in form.files.items():
            details = []
            for f in files:
                entry = f.summary()
                if f.warning:
                    entry["warning"] = f.warning
                details.append(entry)
            file_details.append({"field": field_name, "count": len(files), "files": details})

        return {
            "success": True,
            "message": "Component added successfully",
            "data": {
                "component_id": component_id,
                "mapping_id": records.mapping_id,
                "audit_id": records.audit_id,
                "evidence_id": records.evidence_id,
                "evidence_ids": records.evidence_ids,
                "action": action,
                "mapping_status": records.mapping_status,
                "period": year_label,
                "fileProcessing": {
                    "totalFileFields": len(form.file_fields),
                    "filesWithData": len(form.files),
                    "uploadSuccess": upload_body["success"],
                    "uploadedFiles": upload_body["uploadedFiles"],
                    "uploadErrors": upload_body["errors"],
                    "uploadError": upload_body.get("error"),
                    "evidenceErrors": records.evidence_errors,
                    "fileDetails": file_details,
                    "notes": form.notes,
                },
                "fieldSummary": {
                    "totalFields": form.total_fields,
                    "regularFields": len(form.values),
                    "fileFields": len(form.file_fields),
                    "requiredFields": len(REQUIRED_FIELDS),
                },
            },
        }


async def components_by_sku_reference(repo: ComponentRepository, cm_code: str, sku_code: str) -> dict[str, Any]:
    cm_code = (cm_code or "").strip()
    sku_code = (sku_code or "").strip()
    if not cm_code:
        raise ValidationError("CM code is required")
    if not sku_code:
        raise ValidationError("SKU code is required")

    rows = await repo.get_components_by_sku_reference(cm_code, sku_code)
    if not rows:
        raise NotFoundError(
            "No active component details found for the given CM code and SKU code",
            details={"cm_code": cm_code, "sku_code": sku_code},
        )
    return {"success": True, "count": len(rows), "cm_code": cm_code, "sku_code": sku_code, "data": rows}


async def component_code_data(repo: ComponentRepository, component_code: str | None) -> dict[str, Any]:
    component_code = (component_code or "").strip()
    if not component_code:
        raise ValidationError("Missing required parameter: component_code")

    components = await repo.get_components_by_code(component_code)
    evidence = await repo.get_evidence_for_components([int(c["id"]) for c in components])

    by_component: dict[int, list[dict[str, Any]]] = {}
    for row in evidence:
        by_component.setdefault(int(row["component_id"]), []).append(row)

    results = [
        {"component_details": c, "evidence_files": by_component.get(int(c["id"]), [])}
        for c in components
    ]
    total_evidence = sum(len(r["evidence_files"]) for r in results)

    return {
        "success": True,
        "message": (
            f"Found {len(results)} components with {total_evidence} total evidence files "
            f"for component_code: {component_code}"
        ),
        "data": {
            "search_criteria": {"component_code": component_code},
            "summary": {"total_components": len(results), "total_evidence_files": total_evidence},
            "components_with_evidence": results,
        },
    }
