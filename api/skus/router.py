"""
FastAPI router for SKU management endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from auth import dependencies as auth_dependencies
from components.dependencies import get_component_repository
from components.repository import ComponentRepository
from core.db import Database, get_database

from . import schemas, service
from .repository import SkuRepository

router = APIRouter()


def get_sku_repository(db: Database = Depends(get_database)) -> SkuRepository:
    return SkuRepository(db)


@router.get("/sku-details")
async def list_sku_details(
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.all_skus(repository)


@router.get("/sku-details/{cm_code}")
async def list_sku_details_by_cm_code(
    cm_code: str,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.skus_by_cm_code(repository, cm_code)


@router.patch("/sku-details/{sku_id}/is-active")
async def update_is_active(
    sku_id: int,
    payload: schemas.IsActiveRequest,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.set_is_active(repository, sku_id, payload.is_active)


@router.get("/sku-details-active-years")
async def get_active_years(
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.active_years(repository)


@router.get("/sku-descriptions")
async def get_sku_descriptions(
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.sku_descriptions(repository)


@router.post("/sku-details/add", status_code=201)
async def insert_sku_detail(
    request: Request,
    payload: schemas.InsertSkuRequest,
    skutype: str | None = Query(default=None),
    repository: SkuRepository = Depends(get_sku_repository),
    component_repository: ComponentRepository = Depends(get_component_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Insert a SKU and link its components.

    How components are linked (mapping rows vs. appending the SKU code to the
    component rows) follows SKU_COMPONENT_LINK_STRATEGY.
    """
    settings = request.app.state.settings
    return await service.insert_sku(
        repository,
        component_repository,
        payload,
        skutype=skutype,
        link_strategy=settings.sku_component_link_strategy,
        check_mapping=settings.mapping_existence_check,
    )


@router.put("/sku-details/update/{sku_code}")
async def update_sku_detail(
    sku_code: str,
    payload: schemas.UpdateSkuRequest,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.update_sku(repository, sku_code, payload)


@router.get("/masterdata")
async def get_master_data(
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.master_data(repository)


@router.get("/cm-dashboard/{cm_code}")
async def get_consolidated_dashboard(
    cm_code: str,
    include: str = Query(default=""),
    period: str | None = Query(default=None),
    search: str | None = Query(default=None),
    component_id: int | None = Query(default=None),
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.consolidated_dashboard(
        repository,
        cm_code,
        include=include,
        period=period,
        search=search,
        component_id=component_id,
    )


@router.post("/toggle-status")
async def toggle_status(
    payload: schemas.ToggleStatusRequest,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.toggle_status(repository, payload)


@router.post("/export-excel")
async def export_excel(
    payload: schemas.CmCodeRequest,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.export_excel(repository, payload.cm_code)


@router.post("/skucomponentmapping")
async def sku_component_mapping(
    payload: schemas.CmSkuRequest,
    repository: SkuRepository = Depends(get_sku_repository),
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.sku_component_mapping(repository, payload.cm_code, payload.sku_code)
