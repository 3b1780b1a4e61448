"""
Scalar form-field handling.

Two steps turn a raw multipart value into something the database accepts:

- `extract_value` digs the scalar out of whatever wrapper the client or the
  multipart parser produced (plain string, `{"value": ...}`, `{"fields": [...]}`,
  nested objects).
- `coerce_value` converts that scalar to the column type registered for the
  field name in `FIELD_TYPES`.

Both are total: bad input yields `None` (or the documented default), never an
exception.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

logger = logging.getLogger(__name__)

MAX_EXTRACT_DEPTH = 3
VALUE_KEYS = ("value", "data", "text", "content", "input")

INTEGER = "integer"
DECIMAL = "decimal"
VERSION = "version"
BOOLEAN = "boolean"
DATETIME = "datetime"
DATE = "date"
TEXT = "text"

FIELD_TYPES: dict[str, str] = {
    "version": VERSION,
    "period_id": INTEGER,
    "year": INTEGER,
    "periods": INTEGER,
    # Lookup-table foreign keys.
    "material_type_id": INTEGER,
    "component_uom_id": INTEGER,
    "component_base_uom_id": INTEGER,
    "component_packaging_type_id": INTEGER,
    "weight_unit_measure_id": INTEGER,
    "component_packaging_level_id": INTEGER,
    "category_entry_id": INTEGER,
    "data_verification_entry_id": INTEGER,
    "component_unit_weight_id": INTEGER,
    "component_quantity": DECIMAL,
    "component_base_quantity": DECIMAL,
    "component_unit_weight": DECIMAL,
    "percent_w_w": DECIMAL,
    "percent_mechanical_pcr_content": DECIMAL,
    "percent_mechanical_pir_content": DECIMAL,
    "percent_chemical_recycled_content": DECIMAL,
    "percent_bio_sourced": DECIMAL,
    "is_active": BOOLEAN,
    "created_date": DATETIME,
    "last_update_date": DATETIME,
    "signed_off_date": DATETIME,
    "component_valid_from": DATE,
    "component_valid_to": DATE,
}

DEFAULT_VERSION = 1


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _get(obj: Any, key: str) -> Any:
    """
    Read `key` from a mapping or an attribute-style wrapper; None when absent.
    """
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _first_property(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        for key in obj:
            return obj[key]
        return None
    props = getattr(obj, "__dict__", None)
    if props:
        for key in props:
            return props[key]
    return None


def _resolve(candidate: Any, depth: int, visited: set[int]) -> Any:
    if candidate is None or isinstance(candidate, (bytes, bytearray)):
        return None
    if _is_scalar(candidate) or isinstance(candidate, bool):
        return candidate
    return _extract(candidate, depth + 1, visited)


def _extract(obj: Any, depth: int, visited: set[int]) -> Any:
    if depth > MAX_EXTRACT_DEPTH or id(obj) in visited:
        return None
    visited.add(id(obj))

    for key in ("value", "data"):
        candidate = _get(obj, key)
        if candidate is not None:
            return _resolve(candidate, depth, visited)

    fields = _get(obj, "fields")
    if fields is not None:
        if isinstance(fields, (list, tuple)) and fields:
            return _resolve(_get(fields[0], "value"), depth, visited)
        return None

    for key in VALUE_KEYS:
        candidate = _get(obj, key)
        if candidate is not None:
            return _resolve(candidate, depth, visited)

    return _resolve(_first_property(obj), depth, visited)


def extract_value(field_value: Any) -> Any:
    """
    Recover the scalar carried by a form field.

    Strings and numbers are returned unchanged. Wrapper objects are searched for
    `value`, `data`, `fields[0].value`, the usual value-like keys, and finally
    their first property. Recursion stops at depth 3 and never revisits an
    object, so self-referencing wrappers terminate with None.
    """
    if field_value is None:
        return None
    if _is_scalar(field_value) or isinstance(field_value, bool):
        return field_value
    try:
        return _extract(field_value, 0, set())
    except Exception:
        logger.warning("field_extract_failed type=%s", type(field_value).__name__, exc_info=True)
        return None


def _parse_int(text: str) -> int | None:
    # Leading-integer semantics: "2024-01" -> 2024, "12.7" -> 12.
    sign = ""
    if text[:1] in {"+", "-"}:
        sign, text = text[0], text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    if not digits:
        return None
    return int(sign + digits)


def _parse_float(text: str) -> float | None:
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _parse_datetime(text: str) -> datetime | None:
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _parse_date(text: str) -> date | None:
    parsed = _parse_datetime(text)
    return parsed.date() if parsed is not None else None


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() == "true"


def coerce_value(field_name: str, raw_value: Any) -> Any:
    """
    Convert a raw scalar to the type registered for `field_name`.

    None and "" always map to None. `version` floors to an int and falls back
    to 1 when unparseable; other numeric fields fall back to None.
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, str) and raw_value.strip() == "":
        return None

    kind = FIELD_TYPES.get(field_name, TEXT)

    if kind == BOOLEAN:
        return _coerce_boolean(raw_value)

    if isinstance(raw_value, (date, datetime)) and kind in {DATE, DATETIME}:
        return raw_value

    text = str(raw_value).strip()

    if kind == VERSION:
        number = _parse_float(text)
        if number is None:
            return DEFAULT_VERSION
        return math.floor(number)

    if kind == INTEGER:
        return _parse_int(text)

    if kind == DECIMAL:
        return _parse_float(text)

    if kind == DATETIME:
        return _parse_datetime(text)

    if kind == DATE:
        return _parse_date(text)

    return text or None
