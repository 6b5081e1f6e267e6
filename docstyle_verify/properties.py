from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Iterable

from . import config


@dataclass(frozen=True)
class TabStop:
    position: float
    alignment: str | None = None
    leader: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"Position": self.position, "Alignment": self.alignment, "Leader": self.leader}


@dataclass
class FormattingProperties:
    # character
    font_family: str | None = None
    font_size: float | None = None
    is_bold: bool | None = None
    is_italic: bool | None = None
    is_underline: bool | None = None
    underline_style: str | None = None
    is_strikethrough: bool | None = None
    is_double_strikethrough: bool | None = None
    is_all_caps: bool | None = None
    is_small_caps: bool | None = None
    has_shadow: bool | None = None
    has_outline: bool | None = None
    has_emboss: bool | None = None
    has_imprint: bool | None = None
    highlighting: str | None = None
    character_spacing: float | None = None
    kerning: float | None = None
    character_position: float | None = None
    character_scale: int | None = None
    vertical_align: str | None = None
    language: str | None = None
    color: str | None = None
    # paragraph
    alignment: str | None = None
    spacing_before: float | None = None
    spacing_after: float | None = None
    line_spacing: float | None = None
    line_spacing_rule: str | None = None
    indentation_left: float | None = None
    indentation_right: float | None = None
    first_line_indent: float | None = None
    hanging_indent: float | None = None
    widow_orphan_control: bool | None = None
    keep_with_next: bool | None = None
    keep_together: bool | None = None
    page_break_before: bool | None = None
    outline_level: int | None = None
    border_style: str | None = None
    border_color: str | None = None
    border_width: float | None = None
    border_directions: tuple[str, ...] | None = None
    paragraph_shading: str | None = None
    tab_stops: tuple[TabStop, ...] | None = None
    # table, row, cell
    table_style_id: str | None = None
    table_border_style: str | None = None
    table_border_color: str | None = None
    table_border_width: float | None = None
    table_border_directions: tuple[str, ...] | None = None
    table_alignment: str | None = None
    table_width: float | None = None
    table_width_type: str | None = None
    table_indent: float | None = None
    table_cell_spacing: float | None = None
    table_shading_color: str | None = None
    table_shading_pattern: str | None = None
    table_cell_width: float | None = None
    table_row_height: float | None = None
    table_row_height_rule: str | None = None
    is_table_header: bool | None = None
    repeat_on_new_page: bool | None = None
    row_cant_split: bool | None = None
    cell_margin_top: float | None = None
    cell_margin_bottom: float | None = None
    cell_margin_left: float | None = None
    cell_margin_right: float | None = None
    cell_background_color: str | None = None
    vertical_alignment: str | None = None
    text_direction: str | None = None
    # list / numbering
    numbering_id: int | None = None
    abstract_numbering_id: int | None = None
    list_level: int | None = None
    list_start_value: int | None = None
    list_number_format: str | None = None
    list_level_text: str | None = None
    list_bullet_font: str | None = None
    list_level_summary: str | None = None
    list_tab_position: float | None = None
    list_indent_position: float | None = None
    # image / drawing
    image_width: float | None = None
    image_height: float | None = None
    image_wrap_type: str | None = None
    image_position: str | None = None
    image_distance_from_text: str | None = None
    image_alt_text: str | None = None
    image_title: str | None = None
    image_lock_aspect_ratio: bool | None = None
    # hyperlink
    hyperlink_url: str | None = None
    hyperlink_anchor: str | None = None
    hyperlink_tooltip: str | None = None
    hyperlink_target_frame: str | None = None
    hyperlink_visited: bool | None = None
    # field
    field_type: str | None = None
    field_code: str | None = None
    field_result: str | None = None
    field_locked: bool | None = None
    field_dirty: bool | None = None
    # section / page
    section_type: str | None = None
    column_count: int | None = None
    column_spacing: float | None = None
    has_column_separator: bool | None = None
    header_distance: float | None = None
    footer_distance: float | None = None
    page_number_format: str | None = None
    page_number_start: int | None = None
    mirror_margins: bool | None = None
    title_page: bool | None = None
    page_width: float | None = None
    page_height: float | None = None
    top_margin: float | None = None
    bottom_margin: float | None = None
    left_margin: float | None = None
    right_margin: float | None = None
    gutter: float | None = None
    orientation: str | None = None

    def is_empty(self) -> bool:
        return not set_fields(self)

    def copy(self) -> "FormattingProperties":
        return replace(self)


FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(FormattingProperties))


def label_for(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


FIELD_LABELS: dict[str, str] = {name: label_for(name) for name in FIELD_NAMES}
LABEL_FIELDS: dict[str, str] = {label: name for name, label in FIELD_LABELS.items()}


def set_fields(props: FormattingProperties) -> dict[str, Any]:
    return {
        name: getattr(props, name)
        for name in FIELD_NAMES
        if getattr(props, name) is not None
    }


def inherit(chain: Iterable[FormattingProperties]) -> FormattingProperties:
    """Fold ancestor bags, closest first: the first bag that sets a field wins."""
    values: dict[str, Any] = {}
    for props in chain:
        for name, value in set_fields(props).items():
            values.setdefault(name, value)
    return FormattingProperties(**values)


def apply_overrides(
    base: FormattingProperties,
    *overrides: FormattingProperties,
) -> FormattingProperties:
    """Fold override bags onto a base: the last bag that sets a field wins."""
    values = set_fields(base)
    for props in overrides:
        values.update(set_fields(props))
    return FormattingProperties(**values)


def with_fallbacks(props: FormattingProperties) -> FormattingProperties:
    fallback = FormattingProperties(
        font_family=config.DEFAULT_FONT_FAMILY,
        font_size=config.DEFAULT_FONT_SIZE_PT,
        color=config.DEFAULT_COLOR,
        line_spacing=config.DEFAULT_LINE_SPACING,
    )
    return inherit([props, fallback])


def to_labelled_dict(props: FormattingProperties) -> dict[str, object]:
    data: dict[str, object] = {}
    for name, value in set_fields(props).items():
        if name == "tab_stops":
            value = [stop.to_dict() for stop in value]
        elif isinstance(value, tuple):
            value = list(value)
        data[FIELD_LABELS[name]] = value
    return data


def from_labelled_dict(data: dict[str, object]) -> FormattingProperties:
    values: dict[str, Any] = {}
    for label, value in data.items():
        name = LABEL_FIELDS.get(label)
        if name is None or value is None:
            continue
        if name == "tab_stops":
            value = tuple(
                TabStop(
                    position=float(item["Position"]),
                    alignment=item.get("Alignment"),
                    leader=item.get("Leader"),
                )
                for item in value  # type: ignore[union-attr]
            )
        elif isinstance(value, list):
            value = tuple(value)
        values[name] = value
    return FormattingProperties(**values)


TEXT_FIELD_NAMES: tuple[str, ...] = FIELD_NAMES[: FIELD_NAMES.index("tab_stops") + 1]


def text_properties(props: FormattingProperties) -> FormattingProperties:
    return FormattingProperties(
        **{name: value for name, value in set_fields(props).items() if name in TEXT_FIELD_NAMES}
    )
