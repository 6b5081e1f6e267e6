from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from lxml import etree

from .log_state import ExtractionLogState, warn
from .models import DirectFormatPattern, StyleRecord
from .ooxml import NS, read_paragraph_properties, read_run_properties, text_of
from .properties import FIELD_NAMES, FormattingProperties, set_fields
from .theme import ThemeData

VISUAL_RUN_TAGS = frozenset(
    {
        "b",
        "bCs",
        "i",
        "iCs",
        "u",
        "strike",
        "dstrike",
        "color",
        "sz",
        "szCs",
        "rFonts",
        "highlight",
        "shd",
        "bdr",
        "spacing",
        "caps",
        "smallCaps",
        "shadow",
        "outline",
        "emboss",
        "imprint",
        "position",
        "kern",
        "vertAlign",
        "effect",
        "em",
        "rtl",
        "w",
    }
)
VISUAL_PARAGRAPH_TAGS = frozenset(
    {
        "jc",
        "spacing",
        "ind",
        "pBdr",
        "shd",
        "tabs",
        "keepNext",
        "keepLines",
        "widowControl",
        "suppressLineNumbers",
        "pageBreakBefore",
    }
)

Scope = tuple[tuple[str, int], ...]


def has_direct_formatting(r_pr: etree._Element | None) -> bool:
    return _has_any_child(r_pr, VISUAL_RUN_TAGS)


def has_paragraph_direct_formatting(p_pr: etree._Element | None) -> bool:
    return _has_any_child(p_pr, VISUAL_PARAGRAPH_TAGS)


def deviation(overrides: FormattingProperties, base: FormattingProperties) -> FormattingProperties:
    """Keep only the override fields whose value differs from what the base already implies.

    An unset toggle on the base means off, so an explicit off is not a deviation.
    """
    values = {}
    for name, value in set_fields(overrides).items():
        inherited = getattr(base, name)
        if value is False and inherited is None:
            continue
        if inherited != value:
            values[name] = value
    return FormattingProperties(**values)


def pattern_context(scope: Scope, paragraph_index: int, run_index: int | None = None) -> str:
    parts = [f"{label}:{index}" for label, index in scope]
    parts.append(f"Paragraph:{paragraph_index}")
    if run_index is not None:
        parts.append(f"Run:{run_index}")
    return ",".join(parts)


def detect_run_pattern(
    run: etree._Element,
    paragraph_index: int,
    run_index: int,
    base: FormattingProperties,
    theme: ThemeData | None = None,
    scope: Scope = (),
) -> DirectFormatPattern | None:
    r_pr = run.find("w:rPr", namespaces=NS)
    if not has_direct_formatting(r_pr):
        return None
    overrides = deviation(read_run_properties(r_pr, theme), base)
    if overrides.is_empty():
        return None
    return DirectFormatPattern(
        pattern_name=_pattern_name(scope, f"Run_{paragraph_index}_{run_index}"),
        pattern_context=pattern_context(scope, paragraph_index, run_index),
        overrides=overrides,
        sample_text=text_of(run),
    )


def detect_paragraph_pattern(
    paragraph: etree._Element,
    paragraph_index: int,
    base: FormattingProperties,
    theme: ThemeData | None = None,
    scope: Scope = (),
) -> DirectFormatPattern | None:
    p_pr = paragraph.find("w:pPr", namespaces=NS)
    if not has_paragraph_direct_formatting(p_pr):
        return None
    overrides = deviation(read_paragraph_properties(p_pr, theme), base)
    if overrides.is_empty():
        return None
    return DirectFormatPattern(
        pattern_name=_pattern_name(scope, f"Paragraph_{paragraph_index}_Direct"),
        pattern_context=pattern_context(scope, paragraph_index),
        overrides=overrides,
        sample_text=text_of(paragraph),
    )


def associate(
    patterns: Sequence[DirectFormatPattern],
    records: Sequence[StyleRecord],
    log_state: ExtractionLogState | None = None,
) -> tuple[list[DirectFormatPattern], list[DirectFormatPattern]]:
    paragraph_owners: dict[int, int] = {}
    cell_owners: dict[int, int] = {}
    header_footer_owners: dict[tuple[str, int, int], int] = {}
    section_ranges: list[tuple[int, int, int]] = []
    for index, record in enumerate(records):
        context = record.context
        paragraph_index = context.paragraph_index
        if context.is_in_header_footer:
            if paragraph_index is not None:
                key = (context.header_footer_kind or "", context.header_footer_index or 0, paragraph_index)
                header_footer_owners.setdefault(key, index)
        elif record.style_type == "Section":
            if context.paragraph_range is not None:
                first, last = context.paragraph_range
                section_ranges.append((first, last, index))
        elif record.style_type == "TableCellParagraph":
            if paragraph_index is not None:
                cell_owners.setdefault(paragraph_index, index)
        elif context.element_type == "Paragraph" and paragraph_index is not None:
            paragraph_owners.setdefault(paragraph_index, index)

    resolved: list[DirectFormatPattern] = []
    dropped: list[DirectFormatPattern] = []
    for pattern in patterns:
        values = pattern.context_values()
        paragraph_index = values.get("Paragraph")
        owner: int | None = None
        if paragraph_index is not None:
            kind = "Header" if "Header" in values else "Footer" if "Footer" in values else None
            if kind is not None:
                owner = header_footer_owners.get((kind, values[kind], paragraph_index))
            else:
                owner = paragraph_owners.get(paragraph_index)
                if owner is None:
                    owner = cell_owners.get(paragraph_index)
                if owner is None:
                    owner = _section_owner(section_ranges, paragraph_index)
        if owner is None:
            warn(
                log_state,
                rule="association",
                reason=f"no style record owns pattern {pattern.pattern_name} ({pattern.pattern_context})",
                paragraph_index=paragraph_index,
            )
            dropped.append(pattern)
            continue
        resolved.append(replace(pattern, owner_index=owner))
    if log_state is not None:
        log_state.dropped_pattern_count += len(dropped)
    return resolved, dropped


def attach_patterns(
    records: Sequence[StyleRecord],
    patterns: Sequence[DirectFormatPattern],
) -> list[StyleRecord]:
    grouped: dict[int, list[DirectFormatPattern]] = {}
    for pattern in patterns:
        if pattern.owner_index is not None:
            grouped.setdefault(pattern.owner_index, []).append(pattern)
    return [
        replace(record, direct_format_patterns=grouped.get(index, []))
        for index, record in enumerate(records)
    ]


def merged_overrides(patterns: Sequence[DirectFormatPattern]) -> FormattingProperties:
    values: dict[str, object] = {}
    for pattern in patterns:
        values.update(set_fields(pattern.overrides))
    return FormattingProperties(**{name: values[name] for name in FIELD_NAMES if name in values})


def _section_owner(section_ranges: list[tuple[int, int, int]], paragraph_index: int) -> int | None:
    for first, last, index in section_ranges:
        if first <= paragraph_index <= last:
            return index
    return None


def _pattern_name(scope: Scope, name: str) -> str:
    if not scope:
        return name
    prefix = "_".join(f"{label}{index}" for label, index in scope)
    return f"{prefix}_{name}"


def _has_any_child(parent: etree._Element | None, tags: frozenset[str]) -> bool:
    if parent is None:
        return False
    for child in parent:
        if not isinstance(child.tag, str):
            continue
        if etree.QName(child).localname in tags:
            return True
    return False
