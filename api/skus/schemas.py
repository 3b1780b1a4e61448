"""
Pydantic schemas for SKU endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SkuData(BaseModel):
    model_config = ConfigDict(extra="allow")

    sku_code: str | None = None
    sku_description: str | None = None
    cm_code: str | None = None
    cm_description: str | None = None
    sku_reference: str | None = None
    period: str | int | None = None
    created_by: str | None = None
    skutype: str | None = None


class ComponentLink(BaseModel):
    model_config = ConfigDict(extra="allow")

    component_id: int | None = None
    id: int | None = None
    component_code: str | None = None
    version: int | None = None
    component_packaging_type_id: int | None = None
    period_id: int | None = None
    component_valid_from: str | None = None
    component_valid_to: str | None = None
    created_by: str | None = None


class InsertSkuRequest(BaseModel):
    sku_data: SkuData | None = None
    components: list[ComponentLink] = Field(default_factory=list)


class UpdateSkuRequest(BaseModel):
    sku_description: str | None = None
    sku_reference: str | None = None
    skutype: str | None = None
    site: str | None = None
    formulation_reference: str | None = None
    bulk_expert: str | None = None
    components: list[ComponentLink] = Field(default_factory=list)


class IsActiveRequest(BaseModel):
    is_active: Any = None


class ToggleStatusRequest(BaseModel):
    type: str | None = None
    id: Any = None
    is_active: Any = None


class CmCodeRequest(BaseModel):
    cm_code: str = ""


class CmSkuRequest(BaseModel):
    cm_code: str = ""
    sku_code: str = ""
