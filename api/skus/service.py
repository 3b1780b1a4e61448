"""
SKU business logic.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from components.fields import coerce_value
from components.repository import ComponentRepository
from core.errors import ConflictError, DuplicateDescriptionError, NotFoundError, ValidationError

from . import schemas
from .repository import TOGGLE_TABLES, SkuRepository

logger = logging.getLogger(__name__)

MAPPING_ONLY = "mapping_only"
APPEND_SKU = "append_sku"

DASHBOARD_INCLUDES: tuple[str, ...] = (
    "skus",
    "descriptions",
    "references",
    "audit_logs",
    "component_data",
    "master_data",
)
DEFAULT_DASHBOARD_INCLUDES: tuple[str, ...] = ("skus",)


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


async def skus_by_cm_code(repo: SkuRepository, cm_code: str) -> dict[str, Any]:
    rows = await repo.list_by_cm_code(cm_code)
    return {"success": True, "count": len(rows), "cm_code": cm_code, "data": rows}


async def all_skus(repo: SkuRepository) -> dict[str, Any]:
    rows = await repo.list_all()
    return {"success": True, "count": len(rows), "data": rows}


async def set_is_active(repo: SkuRepository, sku_id: int, is_active: Any) -> dict[str, Any]:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")
    row = await repo.update_is_active(sku_id, is_active)
    if row is None:
        raise NotFoundError("SKU detail not found")
    return {"success": True, "data": row}


async def active_years(repo: SkuRepository) -> dict[str, Any]:
    years = await repo.active_years()
    return {"success": True, "count": len(years), "years": years}


async def sku_descriptions(repo: SkuRepository) -> dict[str, Any]:
    rows = await repo.all_descriptions()
    return {"success": True, "count": len(rows), "data": rows}


async def _link_component(
    sku_repo: SkuRepository,
    component_repo: ComponentRepository,
    sku: schemas.SkuData,
    component: schemas.ComponentLink,
    *,
    strategy: str,
    check_mapping: bool,
) -> dict[str, Any]:
    if strategy == APPEND_SKU:
        updated = await sku_repo.append_sku_to_component_code(sku.sku_code or "", component.component_code or "")
        return {
            "component_code": component.component_code,
            "mapping_action": "sku_appended" if updated else "unchanged",
            "updated_components": len(updated),
        }

    mapping = {
        "cm_code": sku.cm_code,
        "sku_code": sku.sku_code,
        "component_code": component.component_code,
        "version": component.version or 1,
        "component_packaging_type_id": component.component_packaging_type_id,
        "period_id": coerce_value("period_id", sku.period) or component.period_id,
        "component_valid_from": coerce_value("component_valid_from", component.component_valid_from),
        "component_valid_to": coerce_value("component_valid_to", component.component_valid_to),
        "created_by": sku.created_by or component.created_by or "1",
    }

    if check_mapping:
        existing = await component_repo.find_mapping(
            cm_code=mapping["cm_code"],
            sku_code=mapping["sku_code"],
            component_code=mapping["component_code"],
            version=mapping["version"],
        )
        if existing is not None:
            return {
                "component_code": component.component_code,
                "mapping_action": "exists",
                "mapping_id": existing["id"],
            }

    inserted = await component_repo.insert_mapping(mapping)
    return {
        "component_code": component.component_code,
        "mapping_action": "inserted",
        "mapping_id": inserted["id"],
    }


async def insert_sku(
    sku_repo: SkuRepository,
    component_repo: ComponentRepository,
    payload: schemas.InsertSkuRequest,
    *,
    skutype: str | None = None,
    link_strategy: str = MAPPING_ONLY,
    check_mapping: bool = False,
) -> dict[str, Any]:
    sku = payload.sku_data
    if sku is None:
        raise ValidationError("sku_data is required")
    if _blank(sku.sku_code):
        raise ValidationError("A value is required for SKU code")
    if _blank(sku.sku_description):
        raise ValidationError("A value is required for SKU description")

    if await sku_repo.sku_code_exists(sku.sku_code):
        raise ConflictError(f"SKU code '{sku.sku_code}' already exists in the system")

    if await sku_repo.description_exists(sku.sku_description):
        similar = await sku_repo.similar_descriptions(sku.sku_description)
        raise DuplicateDescriptionError(
            "SKU description already exists in the system",
            details={
                "details": {
                    "original_description": sku.sku_description,
                    "similar_existing_descriptions": [
                        {"sku_code": d.get("sku_code"), "description": d.get("sku_description")} for d in similar
                    ],
                }
            },
        )

    data = sku.model_dump()
    if skutype:
        data["skutype"] = skutype
    inserted = await sku_repo.insert_sku(data)
    logger.info("sku_inserted sku_code=%s components=%s strategy=%s", sku.sku_code, len(payload.components), link_strategy)

    results = []
    for component in payload.components:
        try:
            results.append(
                await _link_component(
                    sku_repo,
                    component_repo,
                    sku,
                    component,
                    strategy=link_strategy,
                    check_mapping=check_mapping,
                )
            )
        except Exception as exc:
            logger.warning("sku_component_link_failed sku_code=%s component=%s error=%s", sku.sku_code, component.component_code, exc)
            results.append(
                {
                    "component_code": component.component_code,
                    "mapping_action": "error",
                    "error": str(exc),
                }
            )

    return {
        "success": True,
        "sku_data": inserted,
        "mapping_processed": len(results),
        "mapping_results": results,
    }


async def update_sku(repo: SkuRepository, sku_code: str, payload: schemas.UpdateSkuRequest) -> dict[str, Any]:
    if _blank(sku_code):
        raise ValidationError("A value is required for SKU code")

    data = payload.model_dump(exclude={"components"}, exclude_none=True)
    if not data and not payload.components:
        raise ValidationError(
            "At least one field must be provided for update (sku_description, sku_reference, skutype, "
            "site, formulation_reference, bulk_expert) or components array"
        )

    updated = await repo.update_by_sku_code(sku_code, data)
    if updated is None:
        raise NotFoundError("SKU detail not found")

    component_updates: dict[str, Any] | None = None
    if payload.components:
        ids = [c.component_id or c.id for c in payload.components]
        removed = await repo.remove_sku_from_components(sku_code)
        added = await repo.add_sku_to_components(sku_code, [int(i) for i in ids if i is not None])
        component_updates = {
            "removed_from_all": {
                "message": f"Removed SKU code '{sku_code}' from all component details",
                "updated_components": len(removed),
                "details": removed,
            },
            "added_to_specific": {
                "message": f"Added SKU code '{sku_code}' to specified components",
                "updated_components": len(added),
                "details": added,
            },
        }
    elif payload.skutype == "external":
        removed = await repo.remove_sku_from_components(sku_code)
        component_updates = {
            "message": f"Removed SKU code '{sku_code}' from all component details",
            "updated_components": len(removed),
            "details": removed,
        }

    return {"success": True, "data": updated, "component_updates": component_updates}


async def master_data(repo: SkuRepository) -> dict[str, Any]:
    data = await repo.master_data()
    return {"success": True, "message": "Master data retrieved successfully", "data": data}


def parse_includes(include: str | None) -> list[str]:
    items = [item.strip() for item in (include or "").split(",") if item.strip()]
    invalid = [item for item in items if item not in DASHBOARD_INCLUDES]
    if invalid:
        raise ValidationError(
            f"Invalid include parameters: {', '.join(invalid)}. Valid options: {', '.join(DASHBOARD_INCLUDES)}"
        )
    return items or list(DEFAULT_DASHBOARD_INCLUDES)


async def consolidated_dashboard(
    repo: SkuRepository,
    cm_code: str,
    *,
    include: str | None = None,
    period: str | None = None,
    search: str | None = None,
    component_id: int | None = None,
) -> dict[str, Any]:
    if _blank(cm_code):
        raise ValidationError("CM code is required")
    includes = parse_includes(include)

    data: dict[str, Any] = {"cm_code": cm_code, "include": includes}
    if "skus" in includes:
        data["skus"] = await repo.dashboard_skus(cm_code, period=period, search=search)
    if "descriptions" in includes:
        data["descriptions"] = await repo.dashboard_descriptions(cm_code)
    if "references" in includes:
        data["references"] = await repo.dashboard_references(cm_code)
    if "audit_logs" in includes:
        data["audit_logs"] = await repo.dashboard_audit_logs(cm_code, component_id=component_id)
    if "component_data" in includes:
        data["component_data"] = await repo.dashboard_components(cm_code, component_id=component_id)
    if "master_data" in includes:
        data["master_data"] = await repo.master_data()

    return {"success": True, "message": "Consolidated dashboard data retrieved successfully", "data": data}


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


async def toggle_status(repo: SkuRepository, payload: schemas.ToggleStatusRequest) -> dict[str, Any]:
    if _blank(payload.type):
        raise ValidationError("Type is required")
    if _blank(payload.id):
        raise ValidationError("ID is required")
    if payload.is_active is None:
        raise ValidationError("is_active is required")
    if payload.type not in TOGGLE_TABLES:
        raise ValidationError("Invalid type provided. Must be 'sku' or 'component'")
    row_id = _positive_int(payload.id)
    if row_id is None:
        raise ValidationError(f"Invalid ID: {payload.id}. Must be a positive integer")
    if not isinstance(payload.is_active, bool):
        raise ValidationError(f"Invalid is_active: {payload.is_active}. Must be a boolean")

    row = await repo.toggle_status(payload.type, row_id, payload.is_active)
    if row is None:
        raise NotFoundError(f"{payload.type.capitalize()} with ID {row_id} not found")

    logger.info(
        "status_changed type=%s id=%s is_active=%s",
        payload.type,
        row_id,
        payload.is_active,
    )
    return {
        "success": True,
        "message": "Status updated successfully",
        "data": {"type": payload.type, "id": row_id, "is_active": row["is_active"]},
    }


async def export_excel(repo: SkuRepository, cm_code: str) -> dict[str, Any]:
    if _blank(cm_code):
        raise ValidationError("cm_code is required in request body")
    skus = await repo.list_by_cm_code(cm_code)
    if not skus:
        raise NotFoundError(f"No data found for CM code: {cm_code}")
    mappings = await repo.mappings_by_cm_code(cm_code)
    return {
        "success": True,
        "message": "Excel export data prepared successfully",
        "data": {
            "cm_code": cm_code,
            "export_date": datetime.now(timezone.utc).isoformat(),
            "sku_count": len(skus),
            "mapping_count": len(mappings),
            "data": {"skus": skus, "mappings": mappings},
        },
        "download_ready": True,
    }


async def sku_component_mapping(repo: SkuRepository, cm_code: str, sku_code: str) -> dict[str, Any]:
    if _blank(cm_code):
        raise ValidationError("cm_code is required in request body")
    if _blank(sku_code):
        raise ValidationError("sku_code is required in request body")

    mappings = await repo.mappings_by_cm_and_sku(cm_code, sku_code)
    if not mappings:
        raise NotFoundError(f"No mapping records found for CM Code: {cm_code} and SKU Code: {sku_code}")

    codes = [m["component_code"] for m in mappings if m.get("component_code") is not None]
    components = await repo.components_by_codes(codes)
    by_code: dict[str, dict[str, Any]] = {}
    for component in components:
        by_code.setdefault(component["component_code"], component)

    combined = [{"mapping": m, "component": by_code.get(m.get("component_code"))} for m in mappings]
    return {
        "success": True,
        "message": "SKU component mapping data retrieved successfully",
        "request": {"cm_code": cm_code, "sku_code": sku_code},
        "summary": {
            "mapping_records_count": len(mappings),
            "component_details_count": len(components),
            "combined_records_count": len(combined),
        },
        "data": {
            "mapping_records": mappings,
            "component_details": components,
            "combined_data": combined,
        },
    }

