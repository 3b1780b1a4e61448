"""
Component persistence.
This module is where component, mapping, audit and evidence SQL lives.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from core.db import Database

COMPONENT_TABLE = "sdp_component_details"
MAPPING_TABLE = "sdp_sku_component_mapping_details"
AUDIT_TABLE = "sdp_component_details_auditlog"
EVIDENCE_TABLE = "sdp_evidence"
PERIOD_TABLE = "sdp_period"

COMPONENT_COLUMNS: tuple[str, ...] = (
    "sku_code",
    "formulation_reference",
    "material_type_id",
    "components_reference",
    "component_code",
    "component_description",
    "component_valid_from",
    "component_valid_to",
    "component_material_group",
    "component_quantity",
    "component_uom_id",
    "component_base_quantity",
    "component_base_uom_id",
    "percent_w_w",
    "evidence",
    "component_packaging_type_id",
    "component_packaging_material",
    "helper_column",
    "component_unit_weight",
    "weight_unit_measure_id",
    "percent_mechanical_pcr_content",
    "percent_mechanical_pir_content",
    "percent_chemical_recycled_content",
    "percent_bio_sourced",
    "material_structure_multimaterials",
    "component_packaging_color_opacity",
    "component_packaging_level_id",
    "component_dimensions",
    "packaging_specification_evidence",
    "evidence_of_recycled_or_bio_source",
    "last_update_date",
    "category_entry_id",
    "data_verification_entry_id",
    "user_id",
    "signed_off_by",
    "signed_off_date",
    "mandatory_fields_completion_status",
    "evidence_provided",
    "document_status",
    "is_active",
    "created_by",
    "created_date",
    "year",
    "component_unit_weight_id",
    "cm_code",
    "periods",
)

MAPPING_COLUMNS: tuple[str, ...] = (
    "cm_code",
    "sku_code",
    "component_code",
    "version",
    "component_packaging_type_id",
    "period_id",
    "component_valid_from",
    "component_valid_to",
    "created_by",
    "is_active",
)

EVIDENCE_COLUMNS: tuple[str, ...] = (
    "component_id",
    "evidence_file_name",
    "evidence_file_url",
    "category",
    "created_by",
    "created_date",
)

_COMPONENT_SELECT = ", ".join(("id",) + COMPONENT_COLUMNS)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *"


def component_row_values(data: dict[str, Any]) -> list[Any]:
    """
    Positional values for COMPONENT_COLUMNS, with the insert-time defaults applied.
    """
    now = _utc_now()
    values: list[Any] = []
    for column in COMPONENT_COLUMNS:
        value = data.get(column)
        if column == "is_active" and value is None:
            value = True
        elif column in {"last_update_date", "created_date"} and value is None:
            value = now
        values.append(value)
    return values


def _like_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sku_reference_patterns(sku_code: str) -> list[str]:
    """
    LIKE patterns matching `sku_code` as one element of a comma-separated list.

    Wildcards in the code are escaped, so `A_1` never matches `AB1`. The last
    entry is the raw code for the exact-match comparison.
    """
    escaped = _like_escape(sku_code)
    return [
        f"{escaped},%",
        f"%,{escaped},%",
        f"%,{escaped}",
        sku_code,
    ]


class ComponentRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def find_component_by_code(self, component_code: str) -> dict[str, Any] | None:
        return await self._db.fetch_one(
            f"""
            SELECT id, component_code, sku_code, cm_code
            FROM {COMPONENT_TABLE}
            WHERE component_code = $1
              AND is_active = true
            ORDER BY id
            LIMIT 1
            """,
            component_code,
        )

    async def find_duplicate(
        self,
        *,
        cm_code: str,
        sku_code: str,
        component_code: str,
        valid_from: Any,
        valid_to: Any,
    ) -> dict[str, Any] | None:
        """
        Active component row with the same natural key, or None.
        """
        return await self._db.fetch_one(
            f"""
            SELECT id, cm_code, sku_code, component_code, component_valid_from, component_valid_to
            FROM {COMPONENT_TABLE}
            WHERE cm_code = $1
              AND sku_code = $2
              AND component_code = $3
              AND component_valid_from = $4
              AND component_valid_to = $5
              AND is_active = true
            LIMIT 1
            """,
            cm_code,
            sku_code,
            component_code,
            valid_from,
            valid_to,
        )

    async def get_period_name(self, period_id: Any) -> str | None:
        row = await self._db.fetch_one(
            f"SELECT period FROM {PERIOD_TABLE} WHERE id = $1",
            period_id,
        )
        if row is None or row.get("period") is None:
            return None
        return str(row["period"])

    async def insert_component(self, data: dict[str, Any]) -> dict[str, Any]:
        row = await self._db.fetch_one(_insert_sql(COMPONENT_TABLE, COMPONENT_COLUMNS), *component_row_values(data))
        if row is None or "id" not in row:
            raise RuntimeError("Failed to insert component.")
        return row

    async def find_mapping(
        self,
        *,
        cm_code: str,
        sku_code: str,
        component_code: str,
        version: Any,
    ) -> dict[str, Any] | None:
        return await self._db.fetch_one(
            f"""
            SELECT id
            FROM {MAPPING_TABLE}
            WHERE cm_code = $1
              AND sku_code = $2
              AND component_code = $3
              AND version = $4
            LIMIT 1
            """,
            cm_code,
            sku_code,
            component_code,
            version,
        )

    async def insert_mapping(self, data: dict[str, Any]) -> dict[str, Any]:
        values = [data.get(c) for c in MAPPING_COLUMNS]
        values[MAPPING_COLUMNS.index("version")] = data.get("version") or 1
        if data.get("is_active") is None:
            values[MAPPING_COLUMNS.index("is_active")] = True
        row = await self._db.fetch_one(_insert_sql(MAPPING_TABLE, MAPPING_COLUMNS), *values)
        if row is None or "id" not in row:
            raise RuntimeError("Failed to insert component mapping.")
        return row

    async def insert_audit_log(self, component_id: int, data: dict[str, Any]) -> dict[str, Any]:
        """
        Append a snapshot of the component as submitted in this ingestion.
        """
        columns = ("component_id",) + COMPONENT_COLUMNS
        row = await self._db.fetch_one(
            _insert_sql(AUDIT_TABLE, columns),
            component_id,
            *component_row_values(data),
        )
        if row is None or "id" not in row:
            raise RuntimeError("Failed to insert component audit log.")
        return row

    async def insert_evidence(self, data: dict[str, Any]) -> dict[str, Any]:
        values = [data.get(c) for c in EVIDENCE_COLUMNS]
        if data.get("created_date") is None:
            values[EVIDENCE_COLUMNS.index("created_date")] = _utc_now()
        row = await self._db.fetch_one(_insert_sql(EVIDENCE_TABLE, EVIDENCE_COLUMNS), *values)
        if row is None or "id" not in row:
            raise RuntimeError("Failed to insert evidence file.")
        return row

    async def get_components_by_sku_reference(self, cm_code: str, sku_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT {_COMPONENT_SELECT}
            FROM public.{COMPONENT_TABLE}
            WHERE cm_code = $1
              AND (
                sku_code LIKE $2 ESCAPE '\\'
                OR sku_code LIKE $3 ESCAPE '\\'
                OR sku_code LIKE $4 ESCAPE '\\'
                OR sku_code = $5
              )
              AND is_active = true
            ORDER BY component_code
            """,
            cm_code,
            *sku_reference_patterns(sku_code),
        )

    async def get_components_by_code(self, component_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT {_COMPONENT_SELECT}
            FROM public.{COMPONENT_TABLE}
            WHERE component_code = $1
            ORDER BY id
            """,
            component_code,
        )

    async def get_evidence_for_components(self, component_ids: list[int]) -> list[dict[str, Any]]:
        if not component_ids:
            return []
        return await self._db.fetch_all(
            f"""
            SELECT id, {', '.join(EVIDENCE_COLUMNS)}
            FROM public.{EVIDENCE_TABLE}
            WHERE component_id = ANY($1::int[])
            ORDER BY component_id, id
            """,
            component_ids,
        )
