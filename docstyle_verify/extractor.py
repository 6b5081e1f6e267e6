from __future__ import annotations

from dataclasses import dataclass, field, replace
from io import BytesIO
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Iterable, TypeVar

from lxml import etree

from .cancellation import CancellationToken
from .direct_formatting import (
    associate,
    attach_patterns,
    detect_paragraph_pattern,
    detect_run_pattern,
)
from .errors import PartialDataError, StructuralError
from .log_state import ExtractionLogState, new_log_state, warn, write_log
from .models import DirectFormatPattern, ExtractionResult, FormattingContext, StyleRecord
from .numbering import NumberingCatalog, parse_numbering
from .ooxml import (
    NS,
    R_NS,
    attr,
    child_val,
    on_off_child,
    read_cell_properties,
    read_paragraph_properties,
    read_row_properties,
    read_run_properties,
    read_table_properties,
    text_of,
    w,
)
from .package import (
    NUMBERING_PART,
    SETTINGS_PART,
    STYLES_PART,
    THEME_PART,
    DocxPackage,
    Relationship,
    parse_optional_xml,
    read_source,
)
from .properties import FormattingProperties, apply_overrides, inherit, text_properties
from .signature import compute_signature
from .style_reader import StyleCatalog, parse_styles_xml
from .theme import ThemeData, parse_theme
from .units import emu_to_pt, parse_int, twips_to_pt

SAMPLE_TEXT_LIMIT = 100
T = TypeVar("T")

_WRAP_TYPES = {
    "wrapSquare": "Square",
    "wrapTight": "Tight",
    "wrapThrough": "Through",
    "wrapTopAndBottom": "TopAndBottom",
    "wrapNone": "None",
}
_CONTROL_TYPES = (
    "richText",
    "text",
    "date",
    "dropDownList",
    "comboBox",
    "picture",
    "docPartObj",
    "docPartList",
    "group",
    "citation",
    "bibliography",
    "equation",
)
_ELEMENT_ERRORS = (ValueError, KeyError, TypeError, AttributeError, etree.LxmlError)


@dataclass
class BodyIndex:
    paragraphs: dict[etree._Element, int] = field(default_factory=dict)
    paragraph_sections: dict[etree._Element, int] = field(default_factory=dict)
    tables: dict[etree._Element, int] = field(default_factory=dict)
    table_sections: dict[etree._Element, int] = field(default_factory=dict)
    section_properties: list[etree._Element | None] = field(default_factory=list)
    section_ranges: list[tuple[int, int]] = field(default_factory=list)

    def section_of(self, elem: etree._Element) -> int:
        for ancestor in _self_and_ancestors(elem):
            if ancestor in self.paragraph_sections:
                return self.paragraph_sections[ancestor]
            if ancestor in self.table_sections:
                return self.table_sections[ancestor]
        return 0

    def paragraph_of(self, elem: etree._Element) -> tuple[etree._Element | None, int | None]:
        for ancestor in _self_and_ancestors(elem):
            if ancestor in self.paragraphs:
                return ancestor, self.paragraphs[ancestor]
        return None, None


@dataclass
class ExtractionContext:
    document_id: str
    package: DocxPackage
    body: etree._Element
    index: BodyIndex
    catalog: StyleCatalog
    numbering: NumberingCatalog
    theme: ThemeData
    relationships: dict[str, Relationship]
    settings: etree._Element | None
    token: CancellationToken
    log_state: ExtractionLogState | None = None


@dataclass
class PassResult:
    records: list[StyleRecord] = field(default_factory=list)
    patterns: list[DirectFormatPattern] = field(default_factory=list)

    def extend(self, other: "PassResult") -> None:
        self.records.extend(other.records)
        self.patterns.extend(other.patterns)


class StyleExtractor:
    def __init__(
        self,
        write_logs: bool = True,
        include_headers_footers: bool = True,
        include_style_definitions: bool = True,
    ) -> None:
        self.write_logs = write_logs
        self.include_headers_footers = include_headers_footers
        self.include_style_definitions = include_style_definitions
        self._last_log_state: ExtractionLogState | None = None

    @property
    def last_log_state(self) -> ExtractionLogState | None:
        return self._last_log_state

    def extract(
        self,
        source: bytes | str | Path,
        document_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> ExtractionResult:
        label = str(source) if isinstance(source, (str, Path)) else (document_id or "<bytes>")
        log_state = new_log_state(label)
        started = perf_counter()
        try:
            data = read_source(source)
            result = self._extract(data, document_id or label, token or CancellationToken(), log_state)
        except Exception as exc:
            log_state.error = str(exc)
            log_state.elapsed_sec = perf_counter() - started
            self._finish(log_state)
            raise
        log_state.elapsed_sec = perf_counter() - started
        self._finish(log_state)
        return result

    def _finish(self, log_state: ExtractionLogState) -> None:
        self._last_log_state = log_state
        if self.write_logs:
            write_log(log_state)

    def _extract(
        self,
        data: bytes,
        document_id: str,
        token: CancellationToken,
        log_state: ExtractionLogState,
    ) -> ExtractionResult:
        package = DocxPackage.from_bytes(data)
        root = package.document_root()
        body = root.find("w:body", namespaces=NS)
        if body is None:
            raise StructuralError("document has no body")
        for part_name in (STYLES_PART, NUMBERING_PART, THEME_PART):
            if package.part(part_name) is None:
                warn(log_state, rule="missing_part", reason=f"missing {part_name}, using defaults")
        theme = _load_optional(lambda: parse_theme(package.part(THEME_PART)), ThemeData(), log_state)
        catalog = _load_optional(
            lambda: parse_styles_xml(package.part(STYLES_PART), theme),
            StyleCatalog(),
            log_state,
        )
        numbering = _load_optional(
            lambda: parse_numbering(parse_optional_xml(package, NUMBERING_PART), theme),
            NumberingCatalog(),
            log_state,
        )
        settings = _load_optional(lambda: parse_optional_xml(package, SETTINGS_PART), None, log_state)
        relationships = _load_optional(package.relationships, {}, log_state)
        ctx = ExtractionContext(
            document_id=document_id,
            package=package,
            body=body,
            index=build_body_index(body),
            catalog=catalog,
            numbering=numbering,
            theme=theme,
            relationships=relationships,
            settings=settings,
            token=token,
            log_state=log_state,
        )
        passes: list[Callable[[ExtractionContext], PassResult]] = [
            extract_paragraphs,
            extract_tables,
        ]
        if self.include_headers_footers:
            passes.append(extract_headers_footers)
        passes.extend(
            [
                extract_content_controls,
                extract_lists,
                extract_drawings,
                extract_sections,
                extract_fields,
                extract_hyperlinks,
            ]
        )
        if self.include_style_definitions:
            passes.append(extract_style_definitions)

        records: list[StyleRecord] = []
        patterns: list[DirectFormatPattern] = []
        for sub_pass in passes:
            token.check()
            outcome = sub_pass(ctx)
            records.extend(outcome.records)
            patterns.extend(outcome.patterns)
        # record ids are arena positions, assigned once all passes are concatenated
        records = [replace(record, id=index) for index, record in enumerate(records)]
        resolved, dropped = associate(patterns, records, log_state)
        records = attach_patterns(records, resolved)
        log_state.record_count = len(records)
        log_state.pattern_count = len(resolved)
        return ExtractionResult(
            document_id=document_id,
            records=records,
            patterns=resolved,
            dropped_patterns=dropped,
            warnings=list(log_state.warnings),
        )


def build_body_index(body: etree._Element) -> BodyIndex:
    index = BodyIndex()
    section = 0
    first_paragraph = 0
    paragraph_count = 0
    table_count = 0
    for elem in body.iter(w("p"), w("tbl")):
        if _in_text_box(elem):
            continue
        if elem.tag == w("tbl"):
            index.tables[elem] = table_count
            index.table_sections[elem] = section
            table_count += 1
            continue
        index.paragraphs[elem] = paragraph_count
        index.paragraph_sections[elem] = section
        sect_pr = elem.find("w:pPr/w:sectPr", namespaces=NS)
        if sect_pr is not None:
            index.section_properties.append(sect_pr)
            index.section_ranges.append((first_paragraph, paragraph_count))
            section += 1
            first_paragraph = paragraph_count + 1
        paragraph_count += 1
    body_sect_pr = body.find("w:sectPr", namespaces=NS)
    if body_sect_pr is not None or first_paragraph < paragraph_count:
        index.section_properties.append(body_sect_pr)
        index.section_ranges.append((first_paragraph, paragraph_count - 1))
    return index


def classify_paragraph_style(style_name: str | None) -> str:
    if not style_name:
        return "Paragraph"
    lowered = style_name.lower()
    if lowered.startswith("heading") or lowered in {"title", "subtitle"}:
        return "Heading"
    if "list" in lowered:
        return "List"
    if "toc" in lowered:
        return "TOC"
    if "caption" in lowered:
        return "Caption"
    if "quote" in lowered:
        return "Quote"
    if "header" in lowered or "footer" in lowered:
        return "HeaderFooter"
    if "note" in lowered:
        return "Note"
    return "Paragraph"


def structural_role_for(style_id: str | None) -> str:
    if not style_id:
        return "Body"
    lowered = style_id.lower()
    if "heading" in lowered or "title" in lowered:
        return "Heading"
    if "toc" in lowered:
        return "TableOfContents"
    if "caption" in lowered:
        return "Caption"
    if "quote" in lowered:
        return "Quote"
    return "Body"


def extract_paragraphs(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for paragraph, p_index in ctx.index.paragraphs.items():
        ctx.token.check()
        if _inside(paragraph, "tc"):
            continue
        section = ctx.index.paragraph_sections[paragraph]
        path = (("Section", section), ("Paragraph", p_index))
        outcome = _guarded(
            ctx,
            "paragraph",
            _key(path),
            lambda: paragraph_entry(ctx, paragraph, p_index, path),
        )
        if outcome is not None:
            result.extend(outcome)
    return result


def paragraph_entry(
    ctx: ExtractionContext,
    paragraph: etree._Element,
    p_index: int,
    path: tuple[tuple[str, int], ...],
    *,
    scope: tuple[tuple[str, int], ...] = (),
    style_type: str | None = None,
    name: str | None = None,
    element_type: str = "Paragraph",
    role: str | None = None,
    base_without_style: FormattingProperties | None = None,
    context_extra: dict[str, Any] | None = None,
) -> PassResult:
    result = PassResult()
    p_pr = paragraph.find("w:pPr", namespaces=NS)
    runs = _runs_of(paragraph)
    has_run_formatting = any(run.find("w:rPr", namespaces=NS) is not None for run in runs)
    if p_pr is None and not has_run_formatting:
        return result
    catalog = ctx.catalog
    style_id = child_val(p_pr, "pStyle")
    if style_id:
        base = catalog.resolve(style_id)
        style_name = catalog.style_name(style_id) or style_id
        default_type = classify_paragraph_style(style_name)
        default_name = f"{style_name}_{p_index}"
    else:
        base = base_without_style or catalog.resolve_default_paragraph()
        if p_pr is not None:
            default_type, default_name = "Paragraph", f"Paragraph_{p_index}"
        else:
            default_type, default_name = "DirectFormatting", f"DirectFormat_Paragraph_{p_index}"
    paragraph_level = apply_overrides(base, read_paragraph_properties(p_pr, ctx.theme))
    props = paragraph_level
    if runs:
        first_r_pr = runs[0].find("w:rPr", namespaces=NS)
        props = catalog.resolve_with_character_style(props, child_val(first_r_pr, "rStyle"))
        props = apply_overrides(props, read_run_properties(first_r_pr, ctx.theme))
    num_pr = p_pr.find("w:numPr", namespaces=NS) if p_pr is not None else None
    if num_pr is not None:
        props = apply_overrides(props, _list_properties(ctx, num_pr))
    context = FormattingContext(
        element_type=element_type,
        structural_role=role or structural_role_for(style_id),
        path=path,
        sample_text=_sample(text_of(paragraph)),
        **(context_extra or {}),
    )
    result.records.append(
        _new_record(
            ctx,
            style_type=style_type or default_type,
            name=name or default_name,
            props=props,
            context=context,
            style_id=style_id,
            based_on=catalog.get(style_id).based_on if catalog.get(style_id) else None,
        )
    )
    paragraph_pattern = detect_paragraph_pattern(paragraph, p_index, base, ctx.theme, scope)
    if paragraph_pattern is not None:
        result.patterns.append(paragraph_pattern)
    for r_index, run in enumerate(runs):
        r_pr = run.find("w:rPr", namespaces=NS)
        run_base = catalog.resolve_with_character_style(paragraph_level, child_val(r_pr, "rStyle"))
        pattern = detect_run_pattern(run, p_index, r_index, run_base, ctx.theme, scope)
        if pattern is not None:
            result.patterns.append(pattern)
    return result


def extract_tables(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for table in ctx.index.tables:
        ctx.token.check()
        if _inside(table, "tc"):
            continue
        section = ctx.index.table_sections[table]
        prefix = (("Section", section),)
        outcome = _guarded(
            ctx,
            "table",
            _key(prefix + (("Table", ctx.index.tables[table]),)),
            lambda: _table_entry(ctx, table, prefix, 0),
        )
        if outcome is not None:
            result.extend(outcome)
    return result


def _table_entry(
    ctx: ExtractionContext,
    table: etree._Element,
    prefix: tuple[tuple[str, int], ...],
    level: int,
) -> PassResult:
    result = PassResult()
    catalog = ctx.catalog
    t_index = ctx.index.tables[table]
    path = prefix + (("Table", t_index),)
    table_props = read_table_properties(table.find("w:tblPr", namespaces=NS), ctx.theme)
    style_id = table_props.table_style_id or catalog.default_style_id("table")
    base = apply_overrides(catalog.resolve(style_id), table_props)
    result.records.append(
        _new_record(
            ctx,
            style_type="Table",
            name=f"Table_{t_index}",
            props=base,
            context=FormattingContext(
                element_type="Table",
                structural_role="Table",
                path=path,
                sample_text=_sample(text_of(table)),
                nested_table_level=level,
            ),
            style_id=style_id,
        )
    )
    paragraph_base = inherit(
        [text_properties(catalog.chain_properties(style_id)), catalog.resolve_default_paragraph()]
    )
    rows = list(_table_rows(table))
    grid = [_row_cells(row) for row in rows]
    for r_index, row in enumerate(rows):
        ctx.token.check()
        row_path = path + (("Row", r_index),)
        row_props = apply_overrides(base, read_row_properties(row.find("w:trPr", namespaces=NS)))
        result.records.append(
            _new_record(
                ctx,
                style_type="TableRow",
                name=f"TableRow_{t_index}_{r_index}",
                props=row_props,
                context=FormattingContext(
                    element_type="TableRow",
                    structural_role="TableRow",
                    path=row_path,
                    sample_text=_sample(text_of(row)),
                    nested_table_level=level,
                ),
            )
        )
        for c_index, (grid_col, span, merge, cell) in enumerate(grid[r_index]):
            cell_path = row_path + (("Cell", c_index),)
            cell_props = apply_overrides(
                base,
                read_cell_properties(cell.find("w:tcPr", namespaces=NS), ctx.theme),
            )
            row_span = _row_span(grid, r_index, grid_col) if merge == "Restart" else 1
            result.records.append(
                _new_record(
                    ctx,
                    style_type="TableCell",
                    name=f"TableCell_{t_index}_{r_index}_{c_index}",
                    props=cell_props,
                    context=FormattingContext(
                        element_type="TableCell",
                        structural_role="TableCell",
                        path=cell_path,
                        sample_text=_sample(text_of(cell)),
                        nested_table_level=level,
                        row_span=row_span,
                        col_span=span,
                        is_merged_cell=merge is not None or span > 1,
                        cell_merge_type=merge,
                    ),
                )
            )
            for child in _block_children(cell):
                if child.tag == w("tbl"):
                    result.extend(_table_entry(ctx, child, cell_path, level + 1))
                    continue
                p_index = ctx.index.paragraphs.get(child)
                if p_index is None:
                    continue
                result.extend(
                    paragraph_entry(
                        ctx,
                        child,
                        p_index,
                        cell_path + (("Paragraph", p_index),),
                        style_type="TableCellParagraph",
                        name=f"TableCellParagraph_{t_index}_{r_index}_{c_index}_{p_index}",
                        element_type="TableCellParagraph",
                        role="TableCellParagraph",
                        base_without_style=paragraph_base,
                        context_extra={"nested_table_level": level},
                    )
                )
    return result


def extract_headers_footers(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    try:
        from docx import Document
    except ImportError as exc:
        raise ImportError("python-docx is required to read headers and footers") from exc
    try:
        document = Document(BytesIO(ctx.package.raw))
    except Exception as exc:
        warn(ctx.log_state, rule="header_footer", reason=f"load document failed ({exc})")
        return result
    counters = {"Header": 0, "Footer": 0}
    seen: set[str] = set()
    for section in document.sections:
        variants = (
            ("Header", "default", section.header),
            ("Header", "first", section.first_page_header),
            ("Header", "even", section.even_page_header),
            ("Footer", "default", section.footer),
            ("Footer", "first", section.first_page_footer),
            ("Footer", "even", section.even_page_footer),
        )
        for kind, variant, header_footer in variants:
            ctx.token.check()
            if header_footer.is_linked_to_previous:
                continue
            partname = str(header_footer.part.partname)
            if partname in seen:
                continue
            seen.add(partname)
            hf_index = counters[kind]
            counters[kind] += 1
            scope = ((kind, hf_index),)
            for p_index, paragraph in enumerate(header_footer.paragraphs):
                element = paragraph._p
                path = scope + (("Paragraph", p_index),)
                outcome = _guarded(
                    ctx,
                    "header_footer",
                    _key(path),
                    lambda: paragraph_entry(
                        ctx,
                        element,
                        p_index,
                        path,
                        scope=scope,
                        style_type=kind,
                        name=f"{kind}_{hf_index}_{p_index}",
                        element_type=f"{kind}Paragraph",
                        role=kind,
                        context_extra={"document_part": kind, "header_footer_type": variant},
                    ),
                )
                if outcome is not None:
                    result.extend(outcome)
    return result


def extract_content_controls(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for c_index, sdt in enumerate(ctx.body.iter(w("sdt"))):
        ctx.token.check()
        outcome = _guarded(
            ctx,
            "content_control",
            f"ContentControl:{c_index}",
            lambda: _content_control_record(ctx, sdt, c_index),
        )
        if outcome is not None:
            result.records.append(outcome)
    return result


def _content_control_record(ctx: ExtractionContext, sdt: etree._Element, c_index: int) -> StyleRecord:
    control_type = _content_control_kind(sdt)
    style_type = {
        "Block": "ContentControl",
        "Inline": "InlineContentControl",
        "Cell": "CellContentControl",
        "Row": "RowContentControl",
    }[control_type]
    sdt_pr = sdt.find("w:sdtPr", namespaces=NS)
    props = apply_overrides(
        ctx.catalog.resolve_default_paragraph(),
        read_run_properties(
            sdt_pr.find("w:rPr", namespaces=NS) if sdt_pr is not None else None,
            ctx.theme,
        ),
    )
    kind = None
    if sdt_pr is not None:
        kind = next(
            (tag for tag in _CONTROL_TYPES if sdt_pr.find(f"w:{tag}", namespaces=NS) is not None),
            None,
        )
    path = (("Section", ctx.index.section_of(sdt)), ("ContentControl", c_index))
    return _new_record(
        ctx,
        style_type=style_type,
        name=f"{style_type}_{c_index}",
        props=props,
        context=FormattingContext(
            element_type="ContentControl",
            structural_role="ContentControl",
            path=path,
            sample_text=_sample(text_of(sdt)),
            content_control_tag=child_val(sdt_pr, "tag"),
            content_control_type=f"{control_type}:{kind}" if kind else control_type,
            content_control_title=child_val(sdt_pr, "alias"),
        ),
    )


def extract_lists(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for n_index, abstract in enumerate(ctx.numbering.abstracts):
        outcome = _guarded(
            ctx,
            "numbering",
            f"Numbering:{n_index}",
            lambda: _new_record(
                ctx,
                style_type="List",
                name=f"Numbering_{n_index}",
                props=ctx.numbering.abstract_properties(abstract),
                context=FormattingContext(
                    element_type="Numbering",
                    structural_role="Numbering",
                    path=(("Numbering", n_index),),
                    sample_text=f"Numbering definition {n_index + 1}",
                    document_part="Numbering",
                ),
            ),
        )
        if outcome is not None:
            result.records.append(outcome)
    item_index = 0
    for paragraph, p_index in ctx.index.paragraphs.items():
        ctx.token.check()
        num_pr = paragraph.find("w:pPr/w:numPr", namespaces=NS)
        if num_pr is None:
            continue
        num_id = parse_int(child_val(num_pr, "numId"))
        if not num_id:
            continue
        outcome = _guarded(
            ctx,
            "list_item",
            f"Paragraph:{p_index}",
            lambda: _list_item_record(ctx, paragraph, p_index, num_pr, num_id, item_index),
        )
        if outcome is not None:
            result.records.append(outcome)
            item_index += 1
    return result


def _list_item_record(
    ctx: ExtractionContext,
    paragraph: etree._Element,
    p_index: int,
    num_pr: etree._Element,
    num_id: int,
    item_index: int,
) -> StyleRecord:
    level = parse_int(child_val(num_pr, "ilvl")) or 0
    p_pr = paragraph.find("w:pPr", namespaces=NS)
    style_id = child_val(p_pr, "pStyle")
    base = ctx.catalog.resolve(style_id) if style_id else ctx.catalog.resolve_default_paragraph()
    props = apply_overrides(
        base,
        read_paragraph_properties(p_pr, ctx.theme),
        _list_properties(ctx, num_pr),
    )
    text = text_of(paragraph)
    path = (
        ("Section", ctx.index.paragraph_sections[paragraph]),
        ("ListItem", item_index),
        ("Paragraph", p_index),
    )
    return _new_record(
        ctx,
        style_type="ListItem",
        name=f"ListItem_L{level}_N{num_id}_{item_index}",
        props=props,
        context=FormattingContext(
            element_type="ListItem",
            structural_role="ListItem",
            path=path,
            sample_text=_sample(f"[L{level}:N{num_id}] " + (text or "[Empty list item]")),
            list_level=level,
            list_number_style=props.list_number_format,
        ),
        style_id=style_id,
    )


def extract_drawings(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for d_index, drawing in enumerate(ctx.body.iter(w("drawing"))):
        ctx.token.check()
        outcome = _guarded(
            ctx,
            "drawing",
            f"Drawing:{d_index}",
            lambda: _drawing_record(ctx, drawing, d_index),
        )
        if outcome is not None:
            result.records.append(outcome)
    return result


def _drawing_record(ctx: ExtractionContext, drawing: etree._Element, d_index: int) -> StyleRecord:
    inline = drawing.find("wp:inline", namespaces=NS)
    anchor = drawing.find("wp:anchor", namespaces=NS)
    container = inline if inline is not None else anchor
    props = FormattingProperties()
    if container is not None:
        extent = container.find("wp:extent", namespaces=NS)
        if extent is not None:
            props.image_width = emu_to_pt(extent.get("cx"))
            props.image_height = emu_to_pt(extent.get("cy"))
        distances = []
        for side in ("T", "B", "L", "R"):
            value = emu_to_pt(container.get(f"dist{side}"))
            if value is not None:
                distances.append(f"{side}:{value:g}")
        props.image_distance_from_text = ",".join(distances) or None
        doc_pr = container.find("wp:docPr", namespaces=NS)
        if doc_pr is not None:
            props.image_alt_text = doc_pr.get("descr") or ""
            props.image_title = doc_pr.get("title") or ""
        locks = container.find("wp:cNvGraphicFramePr/a:graphicFrameLocks", namespaces=NS)
        if locks is not None:
            props.image_lock_aspect_ratio = locks.get("noChangeAspect") in {"1", "true"}
    if inline is not None:
        props.image_wrap_type = "Inline"
        props.image_position = "Inline"
    elif anchor is not None:
        props.image_wrap_type = "Anchored"
        for child in anchor:
            if isinstance(child.tag, str) and etree.QName(child).localname in _WRAP_TYPES:
                props.image_wrap_type = _WRAP_TYPES[etree.QName(child).localname]
                break
        positions = []
        for axis, tag in (("H", "positionH"), ("V", "positionV")):
            position = anchor.find(f"wp:{tag}", namespaces=NS)
            if position is None:
                continue
            entry = f"{axis}:{position.get('relativeFrom')}"
            offset = position.find("wp:posOffset", namespaces=NS)
            align = position.find("wp:align", namespaces=NS)
            if offset is not None and offset.text:
                points = emu_to_pt(offset.text.strip())
                if points is None:
                    raise ValueError(f"invalid {tag} offset {offset.text.strip()!r}")
                entry += f"+{points:g}pt"
            elif align is not None and align.text:
                entry += f":{align.text.strip()}"
            positions.append(entry)
        props.image_position = ",".join(positions) or None
    paragraph, p_index = ctx.index.paragraph_of(drawing)
    path: tuple[tuple[str, int], ...] = (("Drawing", d_index),)
    if paragraph is not None and p_index is not None:
        path = (
            ("Section", ctx.index.paragraph_sections[paragraph]),
            ("Paragraph", p_index),
            ("Drawing", d_index),
        )
    sample = props.image_alt_text or props.image_title or f"Drawing {d_index + 1}"
    return _new_record(
        ctx,
        style_type="Drawing",
        name=f"Drawing_{d_index}",
        props=props,
        context=FormattingContext(
            element_type="Drawing",
            structural_role="Drawing",
            path=path,
            sample_text=_sample(sample),
        ),
    )


def extract_sections(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    mirror = on_off_child(ctx.settings, "mirrorMargins")
    for s_index, (sect_pr, (first, last)) in enumerate(
        zip(ctx.index.section_properties, ctx.index.section_ranges)
    ):
        outcome = _guarded(
            ctx,
            "section",
            f"Section:{s_index}",
            lambda: _section_record(ctx, sect_pr, s_index, first, last, bool(mirror)),
        )
        if outcome is not None:
            result.records.append(outcome)
    return result


def _section_record(
    ctx: ExtractionContext,
    sect_pr: etree._Element | None,
    s_index: int,
    first: int,
    last: int,
    mirror: bool,
) -> StyleRecord:
    props = _section_properties(sect_pr)
    props.mirror_margins = mirror
    return _new_record(
        ctx,
        style_type="Section",
        name=f"Section_{s_index}",
        props=props,
        context=FormattingContext(
            element_type="Section",
            structural_role="Section",
            path=(("Section", s_index),),
            sample_text=f"Section {s_index + 1}",
            paragraph_range=(first, last) if first <= last else None,
        ),
    )


def _section_properties(sect_pr: etree._Element | None) -> FormattingProperties:
    props = FormattingProperties()
    if sect_pr is None:
        return props
    pg_sz = sect_pr.find("w:pgSz", namespaces=NS)
    if pg_sz is not None:
        props.page_width = twips_to_pt(attr(pg_sz, "w") or "12240")
        props.page_height = twips_to_pt(attr(pg_sz, "h") or "15840")
        orient = attr(pg_sz, "orient")
        props.orientation = orient.capitalize() if orient else "Portrait"
    pg_mar = sect_pr.find("w:pgMar", namespaces=NS)
    if pg_mar is not None:
        props.top_margin = twips_to_pt(attr(pg_mar, "top") or "1440")
        props.bottom_margin = twips_to_pt(attr(pg_mar, "bottom") or "1440")
        props.left_margin = twips_to_pt(attr(pg_mar, "left") or "1440")
        props.right_margin = twips_to_pt(attr(pg_mar, "right") or "1440")
        props.header_distance = twips_to_pt(attr(pg_mar, "header") or "720")
        props.footer_distance = twips_to_pt(attr(pg_mar, "footer") or "720")
        props.gutter = twips_to_pt(attr(pg_mar, "gutter") or "0")
    cols = sect_pr.find("w:cols", namespaces=NS)
    if cols is not None:
        props.column_count = parse_int(attr(cols, "num")) or 1
        props.column_spacing = twips_to_pt(attr(cols, "space") or "720")
        props.has_column_separator = (attr(cols, "sep") or "0").lower() in {"1", "true", "on"}
    props.section_type = child_val(sect_pr, "type") or "nextPage"
    pg_num = sect_pr.find("w:pgNumType", namespaces=NS)
    if pg_num is not None:
        props.page_number_format = attr(pg_num, "fmt") or "decimal"
        props.page_number_start = parse_int(attr(pg_num, "start"))
    props.title_page = on_off_child(sect_pr, "titlePg")
    return props


def extract_fields(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    open_fields: list[dict[str, Any]] = []
    finished: list[tuple[int, StyleRecord]] = []
    f_index = 0
    for elem in ctx.body.iter(w("fldSimple"), w("r")):
        ctx.token.check()
        if elem.tag == w("fldSimple"):
            code = (attr(elem, "instr") or "").strip()
            record = _guarded(
                ctx,
                "field",
                f"Field:{f_index}",
                lambda: _field_record(
                    ctx,
                    elem,
                    f_index,
                    kind="Simple",
                    code=code,
                    result_text=text_of(elem),
                    locked=(attr(elem, "fldLock") or "").lower() in {"1", "true", "on"},
                    dirty=(attr(elem, "dirty") or "").lower() in {"1", "true", "on"},
                ),
            )
            if record is not None:
                finished.append((f_index, record))
            f_index += 1
            continue
        fld_char = elem.find("w:fldChar", namespaces=NS)
        if fld_char is not None:
            char_type = attr(fld_char, "fldCharType")
            if char_type == "begin":
                open_fields.append(
                    {
                        "index": f_index,
                        "run": elem,
                        "code": [],
                        "result": [],
                        "in_result": False,
                        "locked": (attr(fld_char, "fldLock") or "").lower() in {"1", "true", "on"},
                        "dirty": (attr(fld_char, "dirty") or "").lower() in {"1", "true", "on"},
                    }
                )
                f_index += 1
            elif char_type == "separate" and open_fields:
                open_fields[-1]["in_result"] = True
            elif char_type == "end" and open_fields:
                state = open_fields.pop()
                record = _guarded(
                    ctx,
                    "field",
                    f"Field:{state['index']}",
                    lambda: _field_record(
                        ctx,
                        state["run"],
                        state["index"],
                        kind="Complex",
                        code="".join(state["code"]).strip(),
                        result_text="".join(state["result"]),
                        locked=state["locked"],
                        dirty=state["dirty"],
                    ),
                )
                if record is not None:
                    finished.append((state["index"], record))
            continue
        if not open_fields:
            continue
        state = open_fields[-1]
        for instr in elem.findall("w:instrText", namespaces=NS):
            state["code"].append(instr.text or "")
        if state["in_result"]:
            state["result"].append(text_of(elem))
    for state in open_fields:
        warn(
            ctx.log_state,
            rule="field",
            reason=f"complex field {state['index']} has no end marker",
        )
    finished.sort(key=lambda item: item[0])
    result.records.extend(record for _, record in finished)
    return result


def _field_record(
    ctx: ExtractionContext,
    anchor: etree._Element,
    f_index: int,
    kind: str,
    code: str,
    result_text: str,
    locked: bool,
    dirty: bool,
) -> StyleRecord:
    paragraph, p_index = ctx.index.paragraph_of(anchor)
    base = _paragraph_base(ctx, paragraph)
    run = anchor if anchor.tag == w("r") else anchor.find("w:r", namespaces=NS)
    r_pr = run.find("w:rPr", namespaces=NS) if run is not None else None
    props = apply_overrides(
        ctx.catalog.resolve_with_character_style(base, child_val(r_pr, "rStyle")),
        read_run_properties(r_pr, ctx.theme),
    )
    props.field_type = kind
    props.field_code = code
    props.field_result = result_text
    props.field_locked = locked
    props.field_dirty = dirty
    keyword = code.split()[0].upper() if code.split() else None
    path = _inline_path(ctx, paragraph, p_index, ("Field", f_index))
    return _new_record(
        ctx,
        style_type="Field",
        name=f"{kind}Field_{f_index}",
        props=props,
        context=FormattingContext(
            element_type="Field",
            structural_role="Field",
            path=path,
            sample_text=_sample(result_text or f"{kind} Field {keyword or f_index}"),
        ),
    )


def extract_hyperlinks(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for h_index, link in enumerate(ctx.body.iter(w("hyperlink"))):
        ctx.token.check()
        outcome = _guarded(
            ctx,
            "hyperlink",
            f"Hyperlink:{h_index}",
            lambda: _hyperlink_record(ctx, link, h_index),
        )
        if outcome is not None:
            result.records.append(outcome)
    return result


def _hyperlink_record(ctx: ExtractionContext, link: etree._Element, h_index: int) -> StyleRecord:
    paragraph, p_index = ctx.index.paragraph_of(link)
    base = _paragraph_base(ctx, paragraph)
    run = link.find("w:r", namespaces=NS)
    r_pr = run.find("w:rPr", namespaces=NS) if run is not None else None
    props = apply_overrides(
        ctx.catalog.resolve_with_character_style(base, child_val(r_pr, "rStyle")),
        read_run_properties(r_pr, ctx.theme),
    )
    rel_id = link.get(f"{{{R_NS}}}id")
    if rel_id:
        relationship = ctx.relationships.get(rel_id)
        if relationship is None:
            warn(
                ctx.log_state,
                rule="hyperlink",
                reason=f"unknown relationship {rel_id}",
                paragraph_index=p_index,
            )
        else:
            props.hyperlink_url = relationship.target
    props.hyperlink_anchor = attr(link, "anchor")
    props.hyperlink_tooltip = attr(link, "tooltip")
    props.hyperlink_target_frame = attr(link, "tgtFrame")
    props.hyperlink_visited = (attr(link, "history") or "0").lower() in {"1", "true", "on"}
    return _new_record(
        ctx,
        style_type="Hyperlink",
        name=f"Hyperlink_{h_index}",
        props=props,
        context=FormattingContext(
            element_type="Hyperlink",
            structural_role="Hyperlink",
            path=_inline_path(ctx, paragraph, p_index, ("Hyperlink", h_index)),
            sample_text=_sample(text_of(link)),
        ),
    )


def extract_style_definitions(ctx: ExtractionContext) -> PassResult:
    result = PassResult()
    for s_index, definition in enumerate(ctx.catalog.styles.values()):
        ctx.token.check()
        name = definition.name or f"Style_{s_index}"
        outcome = _guarded(
            ctx,
            "style_definition",
            f"DocumentStyle:{s_index}",
            lambda: _new_record(
                ctx,
                style_type="NamedStyleDefinition",
                name=name,
                props=ctx.catalog.resolve(definition.style_id),
                context=FormattingContext(
                    element_type=f"DocumentStyle_{definition.style_type or 'Unknown'}",
                    structural_role="DocumentStyle",
                    path=(("DocumentStyle", s_index),),
                    sample_text=name,
                    document_part="Styles",
                ),
                style_id=definition.style_id,
                based_on=definition.based_on,
            ),
        )
        if outcome is not None:
            result.records.append(outcome)
    return result


def _new_record(
    ctx: ExtractionContext,
    style_type: str,
    name: str,
    props: FormattingProperties,
    context: FormattingContext,
    style_id: str | None = None,
    based_on: str | None = None,
) -> StyleRecord:
    return StyleRecord(
        id=0,
        owning_document_id=ctx.document_id,
        style_type=style_type,
        name=name,
        resolved_properties=props,
        signature=compute_signature(props, style_type),
        context=context,
        based_on_style_id=based_on,
        style_id=style_id,
    )


def _list_properties(ctx: ExtractionContext, num_pr: etree._Element) -> FormattingProperties:
    num_id = parse_int(child_val(num_pr, "numId"))
    if not num_id:
        return FormattingProperties()
    level = parse_int(child_val(num_pr, "ilvl")) or 0
    if num_id not in ctx.numbering.instances:
        warn(ctx.log_state, rule="numbering", reason=f"unknown numId {num_id}")
    return ctx.numbering.list_item_properties(num_id, level)


def _paragraph_base(ctx: ExtractionContext, paragraph: etree._Element | None) -> FormattingProperties:
    if paragraph is None:
        return ctx.catalog.resolve_default_paragraph()
    p_pr = paragraph.find("w:pPr", namespaces=NS)
    style_id = child_val(p_pr, "pStyle")
    base = ctx.catalog.resolve(style_id) if style_id else ctx.catalog.resolve_default_paragraph()
    return apply_overrides(base, read_paragraph_properties(p_pr, ctx.theme))


def _inline_path(
    ctx: ExtractionContext,
    paragraph: etree._Element | None,
    p_index: int | None,
    segment: tuple[str, int],
) -> tuple[tuple[str, int], ...]:
    if paragraph is None or p_index is None:
        return (segment,)
    return (("Section", ctx.index.paragraph_sections[paragraph]), ("Paragraph", p_index), segment)


def _content_control_kind(sdt: etree._Element) -> str:
    content = sdt.find("w:sdtContent", namespaces=NS)
    if content is not None:
        tags = {etree.QName(child).localname for child in content if isinstance(child.tag, str)}
        if "tr" in tags:
            return "Row"
        if "tc" in tags:
            return "Cell"
        if tags & {"r", "hyperlink", "fldSimple", "smartTag"}:
            return "Inline"
    parent = sdt.getparent()
    if parent is not None and parent.tag == w("p"):
        return "Inline"
    return "Block"


def _table_rows(table: etree._Element) -> Iterable[etree._Element]:
    for child in table:
        if child.tag == w("tr"):
            yield child
        elif child.tag == w("sdt"):
            yield from child.findall("w:sdtContent/w:tr", namespaces=NS)


def _row_cells(row: etree._Element) -> list[tuple[int, int, str | None, etree._Element]]:
    cells = []
    grid_col = 0
    grid_before = parse_int(child_val(row.find("w:trPr", namespaces=NS), "gridBefore")) or 0
    grid_col += grid_before
    for child in row:
        if child.tag == w("tc"):
            candidates = [child]
        elif child.tag == w("sdt"):
            candidates = child.findall("w:sdtContent/w:tc", namespaces=NS)
        else:
            continue
        for cell in candidates:
            tc_pr = cell.find("w:tcPr", namespaces=NS)
            span = parse_int(child_val(tc_pr, "gridSpan")) or 1
            merge = None
            v_merge = tc_pr.find("w:vMerge", namespaces=NS) if tc_pr is not None else None
            if v_merge is not None:
                merge = "Restart" if attr(v_merge, "val") == "restart" else "Continue"
            cells.append((grid_col, span, merge, cell))
            grid_col += span
    return cells


def _row_span(
    grid: list[list[tuple[int, int, str | None, etree._Element]]],
    r_index: int,
    grid_col: int,
) -> int:
    span = 1
    for row in grid[r_index + 1:]:
        match = next((cell for cell in row if cell[0] == grid_col), None)
        if match is None or match[2] != "Continue":
            break
        span += 1
    return span


def _block_children(cell: etree._Element) -> Iterable[etree._Element]:
    for child in cell:
        if child.tag in (w("p"), w("tbl")):
            yield child
        elif child.tag == w("sdt"):
            content = child.find("w:sdtContent", namespaces=NS)
            if content is not None:
                yield from _block_children(content)


def _runs_of(paragraph: etree._Element) -> list[etree._Element]:
    return [
        run
        for run in paragraph.iter(w("r"))
        if next(run.iterancestors(w("p")), None) is paragraph
    ]


def _inside(elem: etree._Element, tag: str) -> bool:
    return next(elem.iterancestors(w(tag)), None) is not None


def _in_text_box(elem: etree._Element) -> bool:
    return _inside(elem, "txbxContent")


def _self_and_ancestors(elem: etree._Element) -> Iterable[etree._Element]:
    yield elem
    yield from elem.iterancestors()


def _sample(text: str) -> str:
    if len(text) <= SAMPLE_TEXT_LIMIT:
        return text
    return text[:SAMPLE_TEXT_LIMIT]


def _key(path: tuple[tuple[str, int], ...]) -> str:
    return ":".join(f"{label}:{index}" for label, index in path)


def _guarded(
    ctx: ExtractionContext,
    rule: str,
    context_key: str,
    build: Callable[[], T],
) -> T | None:
    try:
        return build()
    except _ELEMENT_ERRORS as exc:
        warn(ctx.log_state, rule=rule, reason=f"skipped element ({exc})", context_key=context_key)
        return None


def _load_optional(
    load: Callable[[], T],
    fallback: T,
    log_state: ExtractionLogState | None,
) -> T:
    try:
        return load()
    except PartialDataError as exc:
        warn(log_state, rule="partial_data", reason=str(exc))
        return fallback
