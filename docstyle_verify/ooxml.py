from __future__ import annotations

from lxml import etree

from .properties import FormattingProperties, TabStop
from .theme import ThemeData, normalize_color
from .units import (
    eighth_points_to_pt,
    half_points_to_pt,
    line_to_multiple,
    parse_int,
    twips_to_pt,
    width_to_pt_or_percent,
)

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
WP_NS = "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
NS = {"w": W_NS, "r": R_NS, "wp": WP_NS, "a": A_NS}

_BORDER_SIDES = ("top", "left", "start", "bottom", "right", "end", "insideH", "insideV", "between", "bar")
_EMPTY_BORDERS = {"nil", "none"}


def w(tag: str) -> str:
    return f"{{{W_NS}}}{tag}"


def attr(elem: etree._Element | None, name: str) -> str | None:
    if elem is None:
        return None
    return elem.get(w(name))


def child_val(parent: etree._Element | None, tag: str) -> str | None:
    if parent is None:
        return None
    return attr(parent.find(f"w:{tag}", namespaces=NS), "val")


def parse_on_off(elem: etree._Element) -> bool:
    val = attr(elem, "val")
    if val is None:
        return True
    val_lower = val.lower()
    if val_lower in {"0", "false", "off"}:
        return False
    return True


def on_off_child(parent: etree._Element | None, tag: str) -> bool | None:
    if parent is None:
        return None
    elem = parent.find(f"w:{tag}", namespaces=NS)
    if elem is None:
        return None
    return parse_on_off(elem)


def map_alignment(val: str | None) -> str | None:
    if val is None:
        return None
    val_lower = val.lower()
    if val_lower in {"left", "start"}:
        return "LEFT"
    if val_lower in {"center", "centercontinuous"}:
        return "CENTER"
    if val_lower in {"right", "end"}:
        return "RIGHT"
    if val_lower in {"both", "distribute", "distributed", "justify"}:
        return "JUSTIFY"
    return val.upper()


def text_of(elem: etree._Element) -> str:
    return "".join(t.text or "" for t in elem.iter(w("t")))


def read_color(elem: etree._Element | None, theme: ThemeData | None) -> str | None:
    if elem is None:
        return None
    theme_color = attr(elem, "themeColor")
    if theme_color:
        resolved = (theme or ThemeData()).color(theme_color)
        if resolved:
            return resolved
    return normalize_color(attr(elem, "val"))


def read_font_family(r_fonts: etree._Element | None, theme: ThemeData | None) -> str | None:
    if r_fonts is None:
        return None
    theme = theme or ThemeData()
    for name in ("ascii", "hAnsi"):
        value = attr(r_fonts, name)
        if value:
            return value
    for name in ("asciiTheme", "hAnsiTheme"):
        value = theme.font(attr(r_fonts, name))
        if value:
            return value
    east_asia = attr(r_fonts, "eastAsia")
    if east_asia:
        return east_asia
    return theme.font(attr(r_fonts, "eastAsiaTheme"))


def read_run_properties(
    r_pr: etree._Element | None,
    theme: ThemeData | None = None,
) -> FormattingProperties:
    props = FormattingProperties()
    if r_pr is None:
        return props
    props.font_family = read_font_family(r_pr.find("w:rFonts", namespaces=NS), theme)
    props.font_size = half_points_to_pt(child_val(r_pr, "sz"))
    props.is_bold = on_off_child(r_pr, "b")
    props.is_italic = on_off_child(r_pr, "i")
    underline = r_pr.find("w:u", namespaces=NS)
    if underline is not None:
        style = attr(underline, "val") or "single"
        props.is_underline = style.lower() != "none"
        props.underline_style = style
    props.is_strikethrough = on_off_child(r_pr, "strike")
    props.is_double_strikethrough = on_off_child(r_pr, "dstrike")
    props.is_all_caps = on_off_child(r_pr, "caps")
    props.is_small_caps = on_off_child(r_pr, "smallCaps")
    props.has_shadow = on_off_child(r_pr, "shadow")
    props.has_outline = on_off_child(r_pr, "outline")
    props.has_emboss = on_off_child(r_pr, "emboss")
    props.has_imprint = on_off_child(r_pr, "imprint")
    props.highlighting = child_val(r_pr, "highlight")
    props.character_spacing = twips_to_pt(child_val(r_pr, "spacing"))
    props.kerning = half_points_to_pt(child_val(r_pr, "kern"))
    props.character_position = half_points_to_pt(child_val(r_pr, "position"))
    props.character_scale = parse_int(child_val(r_pr, "w"))
    props.vertical_align = child_val(r_pr, "vertAlign")
    props.language = child_val(r_pr, "lang")
    props.color = read_color(r_pr.find("w:color", namespaces=NS), theme)
    return props


def read_paragraph_properties(
    p_pr: etree._Element | None,
    theme: ThemeData | None = None,
) -> FormattingProperties:
    props = FormattingProperties()
    if p_pr is None:
        return props
    jc = p_pr.find("w:jc", namespaces=NS)
    if jc is not None:
        props.alignment = map_alignment(attr(jc, "val"))
    spacing = p_pr.find("w:spacing", namespaces=NS)
    if spacing is not None:
        props.spacing_before = twips_to_pt(attr(spacing, "before"))
        props.spacing_after = twips_to_pt(attr(spacing, "after"))
        line = attr(spacing, "line")
        rule = attr(spacing, "lineRule") or ("auto" if line is not None else None)
        props.line_spacing_rule = rule
        if rule == "auto":
            props.line_spacing = line_to_multiple(line)
        else:
            props.line_spacing = twips_to_pt(line)
    ind = p_pr.find("w:ind", namespaces=NS)
    if ind is not None:
        props.indentation_left = twips_to_pt(attr(ind, "left") or attr(ind, "start"))
        props.indentation_right = twips_to_pt(attr(ind, "right") or attr(ind, "end"))
        props.first_line_indent = twips_to_pt(attr(ind, "firstLine"))
        props.hanging_indent = twips_to_pt(attr(ind, "hanging"))
    props.widow_orphan_control = on_off_child(p_pr, "widowControl")
    props.keep_with_next = on_off_child(p_pr, "keepNext")
    props.keep_together = on_off_child(p_pr, "keepLines")
    props.page_break_before = on_off_child(p_pr, "pageBreakBefore")
    props.outline_level = parse_int(child_val(p_pr, "outlineLvl"))
    style, color, width, directions = read_borders(p_pr.find("w:pBdr", namespaces=NS), theme)
    props.border_style = style
    props.border_color = color
    props.border_width = width
    props.border_directions = directions
    fill, _ = read_shading(p_pr.find("w:shd", namespaces=NS))
    props.paragraph_shading = fill
    props.tab_stops = read_tab_stops(p_pr.find("w:tabs", namespaces=NS))
    return props


def read_borders(
    borders: etree._Element | None,
    theme: ThemeData | None = None,
) -> tuple[str | None, str | None, float | None, tuple[str, ...] | None]:
    if borders is None:
        return None, None, None, None
    style = color = None
    width = None
    directions: list[str] = []
    for side in _BORDER_SIDES:
        elem = borders.find(f"w:{side}", namespaces=NS)
        if elem is None:
            continue
        val = attr(elem, "val")
        if val is None or val in _EMPTY_BORDERS:
            continue
        directions.append(side)
        if style is None:
            style = val
            color = read_color(elem, theme)
            width = eighth_points_to_pt(attr(elem, "sz"))
    if not directions:
        return "none", None, None, ()
    return style, color, width, tuple(directions)


def read_shading(shd: etree._Element | None) -> tuple[str | None, str | None]:
    if shd is None:
        return None, None
    fill = attr(shd, "fill")
    fill = None if fill is None or fill.lower() == "auto" else normalize_color(fill)
    return fill, attr(shd, "val")


def read_tab_stops(tabs: etree._Element | None) -> tuple[TabStop, ...] | None:
    if tabs is None:
        return None
    stops = []
    for tab in tabs.findall("w:tab", namespaces=NS):
        kind = attr(tab, "val")
        if kind == "clear":
            continue
        position = twips_to_pt(attr(tab, "pos"))
        if position is None:
            continue
        stops.append(TabStop(position=position, alignment=kind, leader=attr(tab, "leader")))
    return tuple(stops)


def read_margins(mar: etree._Element | None) -> dict[str, float | None]:
    result: dict[str, float | None] = {"top": None, "bottom": None, "left": None, "right": None}
    if mar is None:
        return result
    for side, aliases in (
        ("top", ("top",)),
        ("bottom", ("bottom",)),
        ("left", ("left", "start")),
        ("right", ("right", "end")),
    ):
        for alias in aliases:
            elem = mar.find(f"w:{alias}", namespaces=NS)
            if elem is not None:
                result[side] = width_to_pt_or_percent(attr(elem, "w"), attr(elem, "type"))
                break
    return result


def read_table_properties(
    tbl_pr: etree._Element | None,
    theme: ThemeData | None = None,
) -> FormattingProperties:
    props = FormattingProperties()
    if tbl_pr is None:
        return props
    props.table_style_id = child_val(tbl_pr, "tblStyle")
    style, color, width, directions = read_borders(tbl_pr.find("w:tblBorders", namespaces=NS), theme)
    props.table_border_style = style
    props.table_border_color = color
    props.table_border_width = width
    props.table_border_directions = directions
    tbl_w = tbl_pr.find("w:tblW", namespaces=NS)
    if tbl_w is not None:
        props.table_width_type = attr(tbl_w, "type")
        props.table_width = width_to_pt_or_percent(attr(tbl_w, "w"), props.table_width_type)
    jc = tbl_pr.find("w:jc", namespaces=NS)
    if jc is not None:
        props.table_alignment = map_alignment(attr(jc, "val"))
    spacing = tbl_pr.find("w:tblCellSpacing", namespaces=NS)
    if spacing is not None:
        props.table_cell_spacing = width_to_pt_or_percent(attr(spacing, "w"), attr(spacing, "type"))
    margins = read_margins(tbl_pr.find("w:tblCellMar", namespaces=NS))
    props.cell_margin_top = margins["top"]
    props.cell_margin_bottom = margins["bottom"]
    props.cell_margin_left = margins["left"]
    props.cell_margin_right = margins["right"]
    fill, pattern = read_shading(tbl_pr.find("w:shd", namespaces=NS))
    props.table_shading_color = fill
    props.table_shading_pattern = pattern
    ind = tbl_pr.find("w:tblInd", namespaces=NS)
    if ind is not None:
        props.table_indent = width_to_pt_or_percent(attr(ind, "w"), attr(ind, "type"))
    return props


def read_row_properties(tr_pr: etree._Element | None) -> FormattingProperties:
    props = FormattingProperties()
    if tr_pr is None:
        return props
    height = tr_pr.find("w:trHeight", namespaces=NS)
    if height is not None:
        props.table_row_height = twips_to_pt(attr(height, "val"))
        props.table_row_height_rule = attr(height, "hRule") or "atLeast"
    header = on_off_child(tr_pr, "tblHeader")
    if header is not None:
        props.is_table_header = header
        props.repeat_on_new_page = header
    props.row_cant_split = on_off_child(tr_pr, "cantSplit")
    return props


def read_cell_properties(
    tc_pr: etree._Element | None,
    theme: ThemeData | None = None,
) -> FormattingProperties:
    props = FormattingProperties()
    if tc_pr is None:
        return props
    style, color, width, directions = read_borders(tc_pr.find("w:tcBorders", namespaces=NS), theme)
    props.table_border_style = style
    props.table_border_color = color
    props.table_border_width = width
    props.table_border_directions = directions
    fill, pattern = read_shading(tc_pr.find("w:shd", namespaces=NS))
    props.cell_background_color = fill
    props.table_shading_pattern = pattern
    margins = read_margins(tc_pr.find("w:tcMar", namespaces=NS))
    props.cell_margin_top = margins["top"]
    props.cell_margin_bottom = margins["bottom"]
    props.cell_margin_left = margins["left"]
    props.cell_margin_right = margins["right"]
    tc_w = tc_pr.find("w:tcW", namespaces=NS)
    if tc_w is not None:
        props.table_cell_width = width_to_pt_or_percent(attr(tc_w, "w"), attr(tc_w, "type"))
    props.vertical_alignment = child_val(tc_pr, "vAlign")
    props.text_direction = child_val(tc_pr, "textDirection")
    return props
