"""
FastAPI dependencies wiring component services to the app's shared resources.
"""

from __future__ import annotations

from fastapi import Depends, Request

from core.db import Database, get_database

from .repository import ComponentRepository
from .service import ComponentIngestion, IngestOptions


def get_component_repository(db: Database = Depends(get_database)) -> ComponentRepository:
    return ComponentRepository(db)


def get_component_ingestion(
    request: Request,
    repository: ComponentRepository = Depends(get_component_repository),
) -> ComponentIngestion:
    settings = request.app.state.settings
    return ComponentIngestion(
        repository,
        request.app.state.storage,
        IngestOptions(
            component_write_strategy=settings.component_write_strategy,
            mapping_existence_check=settings.mapping_existence_check,
        ),
    )
