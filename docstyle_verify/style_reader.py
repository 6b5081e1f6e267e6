from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from lxml import etree

from .errors import PartialDataError
from .ooxml import (
    NS,
    attr,
    child_val,
    on_off_child,
    read_paragraph_properties,
    read_run_properties,
    read_table_properties,
)
from .properties import FormattingProperties, apply_overrides, inherit, with_fallbacks
from .theme import ThemeData
from .units import parse_int

STYLES_PART = "word/styles.xml"


@dataclass
class NamedStyleDefinition:
    style_id: str
    name: str | None
    style_type: str | None
    based_on: str | None
    next_style_id: str | None = None
    priority: int | None = None
    hidden: bool = False
    is_custom: bool = False
    is_default: bool = False
    properties: FormattingProperties = field(default_factory=FormattingProperties)


@dataclass
class StyleCatalog:
    styles: dict[str, NamedStyleDefinition] = field(default_factory=dict)
    defaults: FormattingProperties = field(default_factory=FormattingProperties)

    def get(self, style_id: str | None) -> NamedStyleDefinition | None:
        if style_id is None:
            return None
        return self.styles.get(style_id)

    def style_name(self, style_id: str | None) -> str | None:
        style = self.get(style_id)
        if style is not None and style.name:
            return style.name
        return style_id

    def default_style_id(self, style_type: str = "paragraph") -> str | None:
        for style in self.styles.values():
            if style.is_default and style.style_type == style_type:
                return style.style_id
        return None

    def chain_properties(self, style_id: str | None) -> FormattingProperties:
        if style_id is None:
            return FormattingProperties()
        return inherit(style.properties for style in collect_style_chain(self.styles, style_id))

    def resolve(self, style_id: str | None) -> FormattingProperties:
        return with_fallbacks(inherit([self.chain_properties(style_id), self.defaults]))

    def resolve_default_paragraph(self) -> FormattingProperties:
        return self.resolve(self.default_style_id("paragraph"))

    def resolve_with_character_style(
        self,
        paragraph_props: FormattingProperties,
        character_style_id: str | None,
    ) -> FormattingProperties:
        if character_style_id is None or character_style_id not in self.styles:
            return paragraph_props
        return apply_overrides(paragraph_props, self.chain_properties(character_style_id))


def parse_styles_xml(
    source: bytes | Path | None,
    theme: ThemeData | None = None,
) -> StyleCatalog:
    if source is None:
        return StyleCatalog()
    try:
        if isinstance(source, Path):
            root = etree.parse(str(source)).getroot()
        else:
            root = etree.fromstring(source)
    except (OSError, etree.XMLSyntaxError) as exc:
        raise PartialDataError(STYLES_PART, f"failed to parse ({exc})") from exc
    defaults = _parse_doc_defaults(root, theme)
    styles: dict[str, NamedStyleDefinition] = {}
    for style in root.findall("w:style", namespaces=NS):
        style_id = attr(style, "styleId")
        if not style_id:
            continue
        style_type = attr(style, "type")
        props = apply_overrides(
            read_paragraph_properties(style.find("w:pPr", namespaces=NS), theme),
            read_run_properties(style.find("w:rPr", namespaces=NS), theme),
        )
        if style_type == "table":
            props = apply_overrides(props, read_table_properties(style.find("w:tblPr", namespaces=NS), theme))
        styles[style_id] = NamedStyleDefinition(
            style_id=style_id,
            name=child_val(style, "name"),
            style_type=style_type,
            based_on=child_val(style, "basedOn"),
            next_style_id=child_val(style, "next"),
            priority=parse_int(child_val(style, "uiPriority")),
            hidden=bool(on_off_child(style, "semiHidden") or on_off_child(style, "hidden")),
            is_custom=_truthy(attr(style, "customStyle")),
            is_default=_truthy(attr(style, "default")),
            properties=props,
        )
    return StyleCatalog(styles=styles, defaults=defaults)


def collect_style_chain(
    styles: dict[str, NamedStyleDefinition],
    style_id: str,
) -> Iterable[NamedStyleDefinition]:
    visited: set[str] = set()
    chain: list[NamedStyleDefinition] = []
    current_id: str | None = style_id
    while current_id is not None:
        if current_id in visited:
            break
        visited.add(current_id)
        current = styles.get(current_id)
        if current is None:
            break
        chain.append(current)
        current_id = current.based_on
    return chain


def _parse_doc_defaults(root: etree._Element, theme: ThemeData | None) -> FormattingProperties:
    r_pr_default = root.find("w:docDefaults/w:rPrDefault/w:rPr", namespaces=NS)
    p_pr_default = root.find("w:docDefaults/w:pPrDefault/w:pPr", namespaces=NS)
    return apply_overrides(
        read_paragraph_properties(p_pr_default, theme),
        read_run_properties(r_pr_default, theme),
    )


def _truthy(value: str | None) -> bool:
    return value is not None and value.lower() in {"1", "true", "on"}
