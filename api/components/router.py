"""
FastAPI router for component endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData

from auth import dependencies as auth_dependencies
from core.result import Err

from . import schemas, service
from .dependencies import get_component_ingestion, get_component_repository
from .repository import ComponentRepository

router = APIRouter()


def form_fields(form: FormData) -> dict[str, Any]:
    """
    Flatten multipart form data: one value per name, a list for repeated names.
    """
    fields: dict[str, Any] = {}
    for key in form.keys():
        values = form.getlist(key)
        fields[key] = values[0] if len(values) == 1 else list(values)
    return fields


@router.post("/add-component", status_code=201)
async def add_component(
    request: Request,
    ingestion: service.ComponentIngestion = Depends(get_component_ingestion),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> JSONResponse:
    """
    Create a component (or reuse one), its SKU mapping, an audit snapshot and
    evidence rows from a multipart form. JSON bodies are accepted too.
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        async with request.form() as form:
            result = await ingestion.ingest(form_fields(form), user_id=current_user.get("id"))
    else:
        body = await request.json() if content_type.startswith("application/json") else {}
        result = await ingestion.ingest(body if isinstance(body, dict) else {}, user_id=current_user.get("id"))

    if isinstance(result, Err):
        return JSONResponse(status_code=result.error.status_code, content=jsonable_encoder(result.error.to_body()))
    return JSONResponse(status_code=201, content=jsonable_encoder(result.value))


@router.post("/getcomponetbyskurefrence")
async def get_component_by_sku_reference(
    payload: schemas.SkuReferenceRequest,
    repository: ComponentRepository = Depends(get_component_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Active components of a CM whose comma-separated `sku_code` list contains the SKU.
    """
    return await service.components_by_sku_reference(repository, payload.cm_code, payload.sku_code)


@router.get("/component-code-data")
async def get_component_code_data(
    component_code: str | None = Query(default=None),
    repository: ComponentRepository = Depends(get_component_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Components with a given code plus their evidence files.
    """
    return await service.component_code_data(repository, component_code)
