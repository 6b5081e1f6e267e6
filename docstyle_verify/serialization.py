from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

from . import config
from .models import DirectFormatPattern, FormattingContext, MismatchRecord, StyleRecord
from .properties import from_labelled_dict, to_labelled_dict

SCHEMA_VERSION = "1.0"
_SAFE_ID = re.compile(r"^[\w.-]+$")


def context_to_dict(context: FormattingContext) -> dict[str, object]:
    return {
        "context_key": context.context_key,
        "element_type": context.element_type,
        "structural_role": context.structural_role,
        "sample_text": context.sample_text,
        "document_part": context.document_part,
        "header_footer_type": context.header_footer_type,
        "nested_table_level": context.nested_table_level,
        "row_span": context.row_span,
        "col_span": context.col_span,
        "is_merged_cell": context.is_merged_cell,
        "cell_merge_type": context.cell_merge_type,
        "content_control_tag": context.content_control_tag,
        "content_control_type": context.content_control_type,
        "content_control_title": context.content_control_title,
        "list_level": context.list_level,
        "list_number_style": context.list_number_style,
        "paragraph_range": list(context.paragraph_range) if context.paragraph_range else None,
    }


def context_from_dict(data: dict[str, object]) -> FormattingContext:
    paragraph_range = data.get("paragraph_range")
    return FormattingContext.from_key(
        str(data.get("context_key") or ""),
        element_type=str(data.get("element_type") or ""),
        structural_role=str(data.get("structural_role") or ""),
        sample_text=str(data.get("sample_text") or ""),
        document_part=str(data.get("document_part") or "Body"),
        header_footer_type=data.get("header_footer_type"),
        nested_table_level=int(data.get("nested_table_level") or 0),
        row_span=data.get("row_span"),
        col_span=data.get("col_span"),
        is_merged_cell=bool(data.get("is_merged_cell")),
        cell_merge_type=data.get("cell_merge_type"),
        content_control_tag=data.get("content_control_tag"),
        content_control_type=data.get("content_control_type"),
        content_control_title=data.get("content_control_title"),
        list_level=data.get("list_level"),
        list_number_style=data.get("list_number_style"),
        paragraph_range=tuple(paragraph_range) if paragraph_range else None,  # type: ignore[arg-type]
    )


def pattern_to_dict(pattern: DirectFormatPattern) -> dict[str, object]:
    return {
        "pattern_name": pattern.pattern_name,
        "pattern_context": pattern.pattern_context,
        "overrides": to_labelled_dict(pattern.overrides),
        "sample_text": pattern.sample_text,
        "occurrence_count": pattern.occurrence_count,
        "owner_index": pattern.owner_index,
    }


def pattern_from_dict(data: dict[str, object]) -> DirectFormatPattern:
    return DirectFormatPattern(
        pattern_name=str(data["pattern_name"]),
        pattern_context=str(data["pattern_context"]),
        overrides=from_labelled_dict(data.get("overrides") or {}),  # type: ignore[arg-type]
        sample_text=str(data.get("sample_text") or ""),
        occurrence_count=int(data.get("occurrence_count") or 1),
        owner_index=data.get("owner_index"),  # type: ignore[arg-type]
    )


def record_to_dict(record: StyleRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "owning_document_id": record.owning_document_id,
        "style_type": record.style_type,
        "name": record.name,
        "style_id": record.style_id,
        "based_on_style_id": record.based_on_style_id,
        "signature": record.signature,
        "properties": to_labelled_dict(record.resolved_properties),
        "context": context_to_dict(record.context),
        "direct_format_patterns": [pattern_to_dict(p) for p in record.direct_format_patterns],
    }


def record_from_dict(data: dict[str, object]) -> StyleRecord:
    for key in ("id", "style_type", "name", "signature"):
        if key not in data:
            raise ValueError(f"style record is missing {key!r}")
    return StyleRecord(
        id=int(data["id"]),  # type: ignore[arg-type]
        owning_document_id=str(data.get("owning_document_id") or ""),
        style_type=str(data["style_type"]),
        name=str(data["name"]),
        resolved_properties=from_labelled_dict(data.get("properties") or {}),  # type: ignore[arg-type]
        signature=str(data["signature"]),
        context=context_from_dict(data.get("context") or {}),  # type: ignore[arg-type]
        based_on_style_id=data.get("based_on_style_id"),  # type: ignore[arg-type]
        style_id=data.get("style_id"),  # type: ignore[arg-type]
        direct_format_patterns=[
            pattern_from_dict(item) for item in data.get("direct_format_patterns") or []  # type: ignore[union-attr]
        ],
    )


def records_to_payload(
    records: Sequence[StyleRecord],
    meta: dict[str, object] | None = None,
) -> dict[str, object]:
    return {
        "schema_version": SCHEMA_VERSION,
        "records": [record_to_dict(record) for record in records],
        "meta": dict(meta) if meta is not None else {},
    }


def records_from_payload(payload: dict[str, object]) -> list[StyleRecord]:
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise ValueError(f"schema_version must be {SCHEMA_VERSION!r}, got {version!r}")
    items = payload.get("records")
    if not isinstance(items, list):
        raise ValueError("payload has no records list")
    return [record_from_dict(item) for item in items]


def mismatches_to_payload(
    mismatches: Iterable[MismatchRecord],
    meta: dict[str, object] | None = None,
) -> dict[str, object]:
    return {
        "schema_version": SCHEMA_VERSION,
        "mismatches": [mismatch.to_dict() for mismatch in mismatches],
        "meta": dict(meta) if meta is not None else {},
    }


def save_template_catalog(
    records: Sequence[StyleRecord],
    output_path: Path,
    meta: dict[str, object] | None = None,
) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = records_to_payload(records, meta)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
    return output_path


def load_template_catalog(path: Path) -> list[StyleRecord]:
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{path} does not hold a style record payload")
    return records_from_payload(payload)


def _checked_id(value: str) -> str:
    if not value or not _SAFE_ID.match(value):
        raise ValueError(f"invalid identifier {value!r}")
    return value


class JsonTemplateCatalog:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = Path(directory) if directory is not None else config.TEMPLATE_CATALOG_DIR

    def path_for(self, template_id: str) -> Path:
        return self.directory / f"{_checked_id(template_id)}.json"

    def save(self, template_id: str, records: Sequence[StyleRecord]) -> Path:
        return save_template_catalog(
            records,
            self.path_for(template_id),
            meta={"template_id": template_id, "saved_at": datetime.now().isoformat()},
        )

    def get_styles_for_template(self, template_id: str) -> list[StyleRecord]:
        path = self.path_for(template_id)
        if not path.is_file():
            raise KeyError(f"unknown template {template_id!r}")
        return load_template_catalog(path)


class InMemoryTemplateCatalog:
    def __init__(self, templates: dict[str, list[StyleRecord]] | None = None) -> None:
        self.templates: dict[str, list[StyleRecord]] = dict(templates or {})

    def save(self, template_id: str, records: Sequence[StyleRecord]) -> None:
        self.templates[template_id] = list(records)

    def get_styles_for_template(self, template_id: str) -> list[StyleRecord]:
        if template_id not in self.templates:
            raise KeyError(f"unknown template {template_id!r}")
        return list(self.templates[template_id])


class JsonResultSink:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = Path(directory) if directory is not None else config.REPORT_DIR
        self.written: list[Path] = []

    def persist(self, mismatches: Sequence[MismatchRecord], metadata: dict[str, object]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime(config.LOG_TIMESTAMP_FORMAT)
        template_id = re.sub(r"[^\w.-]", "_", str(metadata.get("template_id") or "template"))
        path = self.directory / f"report_{template_id}_{stamp}_{len(self.written)}.json"
        payload = mismatches_to_payload(mismatches, metadata)
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        self.written.append(path)
        return path


class InMemoryResultSink:
    def __init__(self) -> None:
        self.reports: list[tuple[list[MismatchRecord], dict[str, object]]] = []

    def persist(self, mismatches: Sequence[MismatchRecord], metadata: dict[str, object]) -> None:
        self.reports.append((list(mismatches), dict(metadata)))
