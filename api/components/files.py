"""
Multipart field classification and file-buffer recovery.

The multipart parser hands us one value per field name; its shape depends on
the client and the parser (plain strings, Starlette `UploadFile`, lists of
uploads for repeated keys, dict wrappers with `_buf`/`data`/`buffer` bytes or
a `fields` array). `classify_field` decides the shape once, at the ingestion
boundary, and returns one of:

- `ScalarField`     a regular form value, already extracted and coerced
- `FileField`       one uploaded file
- `FileArrayField`  several files posted under the same name
- `UnknownField`    a file field whose shape we could not read

Everything downstream works with these variants only.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .fields import coerce_value, extract_value

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"
FILE_FIELD_SUFFIX = "_files"

OTHER_CATEGORY = "other"


@dataclass(frozen=True)
class FileCategory:
    name: str
    evidence_category: str


# Field name -> upload bucket. The bucket names double as blob folder names.
FILE_CATEGORIES: dict[str, FileCategory] = {
    "weight_evidence_files": FileCategory("Weight", "weight_evidence"),
    "weight_uom_evidence_files": FileCategory("weightUOM", "weight_uom_evidence"),
    "packaging_type_evidence_files": FileCategory("Packaging Type", "packaging_type_evidence"),
    "material_type_evidence_files": FileCategory("Material Type", "material_type_evidence"),
    "evidence_of_recycled_or_bio_source": FileCategory("PackagingEvidence", "component_evidence"),
}
OTHER_FILE_CATEGORY = FileCategory(OTHER_CATEGORY, "other_evidence")

EVIDENCE_CATEGORY_BY_BUCKET: dict[str, str] = {
    **{c.name: c.evidence_category for c in FILE_CATEGORIES.values()},
    OTHER_CATEGORY: OTHER_FILE_CATEGORY.evidence_category,
}


@dataclass
class FileRecord:
    field_name: str
    filename: str
    mimetype: str
    category: str
    data: bytes | None = None
    size: int = 0
    warning: str | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.data)

    def summary(self) -> dict[str, Any]:
        return {"filename": self.filename, "size": self.size, "mimetype": self.mimetype}


@dataclass(frozen=True)
class ScalarField:
    name: str
    raw: Any
    value: Any


@dataclass(frozen=True)
class FileField:
    name: str
    file: FileRecord


@dataclass(frozen=True)
class FileArrayField:
    name: str
    files: tuple[FileRecord, ...]


@dataclass(frozen=True)
class UnknownField:
    name: str
    note: str


ClassifiedField = Union[ScalarField, FileField, FileArrayField, UnknownField]


@dataclass
class ClassifiedForm:
    values: dict[str, Any] = field(default_factory=dict)
    files: dict[str, list[FileRecord]] = field(default_factory=dict)
    file_fields: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    total_fields: int = 0

    def all_files(self) -> list[FileRecord]:
        return [f for records in self.files.values() for f in records]

    def files_by_category(self) -> dict[str, list[FileRecord]]:
        grouped: dict[str, list[FileRecord]] = {}
        for record in self.all_files():
            grouped.setdefault(record.category, []).append(record)
        return grouped


def is_file_field(name: str) -> bool:
    return name in FILE_CATEGORIES or name.endswith(FILE_FIELD_SUFFIX)


def category_for(name: str) -> FileCategory:
    """
    Map a file field name to its bucket. Unknown names go to `other`.
    """
    known = FILE_CATEGORIES.get(name)
    if known is not None:
        return known
    base = base_field_name(name)
    for candidate, category in FILE_CATEGORIES.items():
        if base_field_name(candidate) == base:
            return category
    return OTHER_FILE_CATEGORY


def base_field_name(name: str) -> str:
    """
    `weight_evidence_files` -> `weight_evidence`.
    """
    if name.endswith(FILE_FIELD_SUFFIX):
        return name[: -len(FILE_FIELD_SUFFIX)]
    return name


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _filename(obj: Any) -> str | None:
    for key in ("filename", "name"):
        value = _get(obj, key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _mimetype(obj: Any) -> str:
    for key in ("mimetype", "content_type", "type"):
        value = _get(obj, key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return DEFAULT_MIMETYPE


def _as_bytes(value: Any) -> bytes | None:
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return data or None
    return None


async def extract_buffer(obj: Any) -> bytes | None:
    """
    Recover a file's bytes.

    Tries the eager properties `_buf`, `data`, `buffer`, then the async
    `to_buffer()` / `read()` capabilities. The first non-empty byte string
    wins; None when nothing yields one.
    """
    for key in ("_buf", "data", "buffer"):
        data = _as_bytes(_get(obj, key))
        if data is not None:
            return data

    for method_name in ("to_buffer", "read"):
        method = _get(obj, method_name)
        if not callable(method):
            continue
        try:
            result = method()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning("file_buffer_read_failed method=%s error=%s", method_name, exc)
            continue
        data = _as_bytes(result)
        if data is not None:
            return data
    return None


async def _file_record(field_name: str, obj: Any, *, fallback_name: str) -> FileRecord:
    category = category_for(field_name)
    record = FileRecord(
        field_name=field_name,
        filename=_filename(obj) or fallback_name,
        mimetype=_mimetype(obj),
        category=category.name,
    )
    record.data = await extract_buffer(obj)
    if record.data is None:
        record.warning = "No valid buffer found"
        logger.warning("file_without_buffer field=%s filename=%s", field_name, record.filename)
    record.size = len(record.data or b"")
    return record


def _file_items(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return list(value)
    fields = _get(value, "fields")
    if isinstance(fields, (list, tuple)):
        return list(fields)
    return None


async def classify_field(name: str, value: Any) -> ClassifiedField:
    """
    Decide the shape of one multipart field.

    Never raises: a file field that cannot be read becomes `UnknownField`.
    """
    if not is_file_field(name):
        raw = extract_value(value)
        return ScalarField(name=name, raw=raw, value=coerce_value(name, raw))

    try:
        if value is None or isinstance(value, (str, bytes, bytearray)):
            return UnknownField(name=name, note="file field without a file payload")

        if _filename(value) is not None:
            return FileField(name=name, file=await _file_record(name, value, fallback_name="unknown"))

        items = _file_items(value)
        if items is not None:
            records = []
            for index, item in enumerate(items):
                if item is None or _filename(item) is None:
                    continue
                records.append(await _file_record(name, item, fallback_name=f"file_{index}"))
            if records:
                return FileArrayField(name=name, files=tuple(records))
            return UnknownField(name=name, note="file array without named files")

        return UnknownField(name=name, note=f"unrecognised file shape {type(value).__name__}")
    except Exception as exc:
        logger.warning("file_classify_failed field=%s error=%s", name, exc)
        return UnknownField(name=name, note=f"file extraction failed: {exc}")


async def classify_form(fields: Mapping[str, Any]) -> ClassifiedForm:
    """
    Classify every field sequentially (buffer reads may await).

    File fields also record their file names under the base field name
    (`weight_evidence` for `weight_evidence_files`), comma-joined.
    """
    form = ClassifiedForm(total_fields=len(fields))
    for name, value in fields.items():
        classified = await classify_field(name, value)

        if isinstance(classified, ScalarField):
            form.values[name] = classified.value
            continue

        form.file_fields.append(name)
        if isinstance(classified, FileField):
            records = [classified.file]
        elif isinstance(classified, FileArrayField):
            records = list(classified.files)
        else:
            form.notes.append(f"{classified.name}: {classified.note}")
            logger.info("file_field_skipped field=%s note=%s", classified.name, classified.note)
            continue

        form.files[name] = records
        form.values[base_field_name(name)] = ", ".join(r.filename for r in records)

    return form
