"""
Pydantic schemas for component endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel


class SkuReferenceRequest(BaseModel):
    # Blank values are rejected by the service with a 400, not by pydantic with a 422.
    cm_code: str = ""
    sku_code: str = ""
