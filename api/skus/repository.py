"""
SKU persistence.
This module is where SKU, lookup-table and dashboard SQL lives.
"""

from __future__ import annotations

from typing import Any

from components.repository import AUDIT_TABLE, COMPONENT_TABLE, MAPPING_TABLE, PERIOD_TABLE
from core.db import Database

SKU_TABLE = "sdp_skudetails"

SKU_INSERT_COLUMNS: tuple[str, ...] = (
    "sku_code",
    "sku_description",
    "cm_code",
    "cm_description",
    "sku_reference",
    "is_active",
    "created_by",
    "period",
    "purchased_quantity",
    "sku_reference_check",
    "formulation_reference",
    "skutype",
    "site",
    "bulk_expert",
)

SKU_UPDATABLE_COLUMNS: tuple[str, ...] = (
    "sku_description",
    "sku_reference",
    "skutype",
    "site",
    "formulation_reference",
    "bulk_expert",
)

# Response key -> lookup table. Table names never come from user input.
MASTER_DATA_TABLES: dict[str, str] = {
    "periods": "sdp_period",
    "regions": "sdp_region",
    "material_types": "sdp_material_type",
    "component_uoms": "sdp_component_uom",
    "packaging_materials": "sdp_component_packaging_material",
    "packaging_levels": "sdp_component_packaging_level",
    "component_base_uoms": "sdp_component_base_uom",
    "cm_codes": "sdp_cm_codes",
}

TOGGLE_TABLES: dict[str, str] = {
    "sku": SKU_TABLE,
    "component": COMPONENT_TABLE,
}


def normalize_description(text: str) -> str:
    return " ".join((text or "").split()).lower()


class SkuRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_by_cm_code(self, cm_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{SKU_TABLE}
            WHERE cm_code = $1
            ORDER BY id DESC
            """,
            cm_code,
        )

    async def list_all(self) -> list[dict[str, Any]]:
        return await self._db.fetch_all(f"SELECT * FROM public.{SKU_TABLE} ORDER BY id DESC")

    async def get_by_sku_code(self, sku_code: str) -> dict[str, Any] | None:
        return await self._db.fetch_one(
            f"SELECT * FROM public.{SKU_TABLE} WHERE sku_code = $1 LIMIT 1",
            sku_code,
        )

    async def sku_code_exists(self, sku_code: str) -> bool:
        row = await self._db.fetch_one(
            f"SELECT 1 AS ok FROM public.{SKU_TABLE} WHERE sku_code = $1 LIMIT 1",
            sku_code,
        )
        return row is not None

    async def description_exists(self, description: str) -> bool:
        """
        Case- and whitespace-insensitive match on `sku_description`.
        """
        row = await self._db.fetch_one(
            f"""
            SELECT 1 AS ok
            FROM public.{SKU_TABLE}
            WHERE lower(regexp_replace(trim(sku_description), '\\s+', ' ', 'g')) = $1
            LIMIT 1
            """,
            normalize_description(description),
        )
        return row is not None

    async def similar_descriptions(self, description: str, *, limit: int = 10) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT sku_code, sku_description
            FROM public.{SKU_TABLE}
            WHERE lower(regexp_replace(trim(sku_description), '\\s+', ' ', 'g')) LIKE '%' || $1 || '%'
            ORDER BY sku_code
            LIMIT $2
            """,
            normalize_description(description),
            limit,
        )

    async def insert_sku(self, data: dict[str, Any]) -> dict[str, Any]:
        values = [data.get(c) for c in SKU_INSERT_COLUMNS]
        if data.get("is_active") is None:
            values[SKU_INSERT_COLUMNS.index("is_active")] = True
        placeholders = ", ".join(f"${i}" for i in range(1, len(SKU_INSERT_COLUMNS) + 1))
        row = await self._db.fetch_one(
            f"""
            INSERT INTO {SKU_TABLE} ({', '.join(SKU_INSERT_COLUMNS)}, created_date)
            VALUES ({placeholders}, now())
            RETURNING *
            """,
            *values,
        )
        if row is None:
            raise RuntimeError("Failed to insert SKU detail.")
        return row

    async def update_by_sku_code(self, sku_code: str, data: dict[str, Any]) -> dict[str, Any] | None:
        columns = [c for c in SKU_UPDATABLE_COLUMNS if c in data]
        if not columns:
            return await self.get_by_sku_code(sku_code)
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=2))
        return await self._db.fetch_one(
            f"""
            UPDATE {SKU_TABLE}
            SET {assignments}
            WHERE sku_code = $1
            RETURNING *
            """,
            sku_code,
            *[data[c] for c in columns],
        )

    async def update_is_active(self, sku_id: int, is_active: bool) -> dict[str, Any] | None:
        return await self._db.fetch_one(
            f"""
            UPDATE {SKU_TABLE}
            SET is_active = $2
            WHERE id = $1
            RETURNING *
            """,
            sku_id,
            is_active,
        )

    async def toggle_status(self, kind: str, row_id: int, is_active: bool) -> dict[str, Any] | None:
        table = TOGGLE_TABLES[kind]
        return await self._db.fetch_one(
            f"""
            UPDATE {table}
            SET is_active = $2
            WHERE id = $1
            RETURNING id, is_active
            """,
            row_id,
            is_active,
        )

    async def active_years(self) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT id, period
            FROM public.{PERIOD_TABLE}
            WHERE is_active = true
            ORDER BY id
            """
        )

    async def all_descriptions(self) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT DISTINCT cm_code, cm_description, sku_description
            FROM public.{SKU_TABLE}
            WHERE sku_description IS NOT NULL
            ORDER BY cm_code, sku_description
            """
        )

    async def master_data(self) -> dict[str, list[dict[str, Any]]]:
        data: dict[str, list[dict[str, Any]]] = {}
        for key, table in MASTER_DATA_TABLES.items():
            data[key] = await self._db.fetch_all(f"SELECT * FROM public.{table} ORDER BY id")
        return data

    async def remove_sku_from_components(self, sku_code: str) -> list[dict[str, Any]]:
        """
        Drop `sku_code` from every component's comma-separated `sku_code` list.
        """
        return await self._db.fetch_all(
            f"""
            UPDATE {COMPONENT_TABLE}
            SET sku_code = NULLIF(array_to_string(array_remove(string_to_array(sku_code, ','), $1), ','), '')
            WHERE $1 = ANY(string_to_array(sku_code, ','))
            RETURNING id, component_code, sku_code
            """,
            sku_code,
        )

    async def add_sku_to_components(self, sku_code: str, component_ids: list[int]) -> list[dict[str, Any]]:
        if not component_ids:
            return []
        return await self._db.fetch_all(
            f"""
            UPDATE {COMPONENT_TABLE}
            SET sku_code = CASE
                WHEN sku_code IS NULL OR sku_code = '' THEN $1
                ELSE sku_code || ',' || $1
            END
            WHERE id = ANY($2::int[])
              AND NOT ($1 = ANY(string_to_array(COALESCE(sku_code, ''), ',')))
            RETURNING id, component_code, sku_code
            """,
            sku_code,
            component_ids,
        )

    async def append_sku_to_component_code(self, sku_code: str, component_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            UPDATE {COMPONENT_TABLE}
            SET sku_code = CASE
                WHEN sku_code IS NULL OR sku_code = '' THEN $1
                ELSE sku_code || ',' || $1
            END
            WHERE component_code = $2
              AND is_active = true
              AND NOT ($1 = ANY(string_to_array(COALESCE(sku_code, ''), ',')))
            RETURNING id, component_code, sku_code
            """,
            sku_code,
            component_code,
        )

    async def mappings_by_cm_and_sku(self, cm_code: str, sku_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{MAPPING_TABLE}
            WHERE cm_code = $1 AND sku_code = $2
            ORDER BY component_code ASC, version ASC, component_packaging_type_id ASC
            """,
            cm_code,
            sku_code,
        )

    async def mappings_by_cm_code(self, cm_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{MAPPING_TABLE}
            WHERE cm_code = $1
            ORDER BY sku_code ASC, component_code ASC, version ASC
            """,
            cm_code,
        )

    async def components_by_codes(self, component_codes: list[str]) -> list[dict[str, Any]]:
        if not component_codes:
            return []
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{COMPONENT_TABLE}
            WHERE component_code = ANY($1::text[])
            ORDER BY id ASC
            """,
            component_codes,
        )

    async def dashboard_skus(
        self,
        cm_code: str,
        *,
        period: str | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{SKU_TABLE}
            WHERE cm_code = $1
              AND ($2::text IS NULL OR period::text = $2)
              AND ($3::text IS NULL OR sku_code ILIKE '%' || $3 || '%' OR sku_description ILIKE '%' || $3 || '%')
            ORDER BY id DESC
            """,
            cm_code,
            period,
            search,
        )

    async def dashboard_descriptions(self, cm_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT DISTINCT sku_description
            FROM public.{SKU_TABLE}
            WHERE cm_code = $1 AND sku_description IS NOT NULL
            ORDER BY sku_description
            """,
            cm_code,
        )

    async def dashboard_references(self, cm_code: str) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT DISTINCT sku_reference
            FROM public.{SKU_TABLE}
            WHERE cm_code = $1 AND sku_reference IS NOT NULL
            ORDER BY sku_reference
            """,
            cm_code,
        )

    async def dashboard_audit_logs(self, cm_code: str, *, component_id: int | None = None) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{AUDIT_TABLE}
            WHERE cm_code = $1
              AND ($2::int IS NULL OR component_id = $2)
            ORDER BY id DESC
            """,
            cm_code,
            component_id,
        )

    async def dashboard_components(self, cm_code: str, *, component_id: int | None = None) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            f"""
            SELECT *
            FROM public.{COMPONENT_TABLE}
            WHERE cm_code = $1
              AND ($2::int IS NULL OR id = $2)
            ORDER BY component_code, id
            """,
            cm_code,
            component_id,
        )
