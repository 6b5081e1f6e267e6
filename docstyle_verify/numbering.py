from __future__ import annotations

from dataclasses import dataclass, field

from lxml import etree

from .ooxml import NS, attr, child_val, map_alignment, read_font_family
from .properties import FormattingProperties
from .theme import ThemeData
from .units import parse_int, twips_to_pt


@dataclass
class LevelDefinition:
    level: int
    number_format: str | None = None
    level_text: str | None = None
    start: int | None = None
    justification: str | None = None
    indent_left: float | None = None
    hanging: float | None = None
    bullet_font: str | None = None

    def summary(self) -> str:
        text = f"L{self.level}:{self.number_format or 'bullet'}"
        if self.level_text:
            text += f":'{self.level_text}'"
        if self.start not in (None, 1):
            text += f":Start{self.start}"
        if (self.indent_left or 0) > 0 or (self.hanging or 0) > 0:
            text += f":Indent({_fmt(self.indent_left)}pt,{_fmt(self.hanging)}pt)"
        return text


@dataclass
class AbstractNumbering:
    abstract_id: int
    levels: dict[int, LevelDefinition] = field(default_factory=dict)

    def primary_level(self) -> LevelDefinition | None:
        if not self.levels:
            return None
        return self.levels[min(self.levels)]


@dataclass
class NumberingInstance:
    num_id: int
    abstract_id: int
    start_overrides: dict[int, int] = field(default_factory=dict)
    level_overrides: dict[int, LevelDefinition] = field(default_factory=dict)


@dataclass
class NumberingCatalog:
    abstracts: list[AbstractNumbering] = field(default_factory=list)
    instances: dict[int, NumberingInstance] = field(default_factory=dict)

    def abstract(self, abstract_id: int) -> AbstractNumbering | None:
        for item in self.abstracts:
            if item.abstract_id == abstract_id:
                return item
        return None

    def level_for(self, num_id: int, level: int) -> LevelDefinition | None:
        instance = self.instances.get(num_id)
        if instance is None:
            return None
        if level in instance.level_overrides:
            return instance.level_overrides[level]
        abstract = self.abstract(instance.abstract_id)
        if abstract is None:
            return None
        definition = abstract.levels.get(level)
        if definition is None:
            return None
        if level in instance.start_overrides:
            definition = LevelDefinition(
                level=definition.level,
                number_format=definition.number_format,
                level_text=definition.level_text,
                start=instance.start_overrides[level],
                justification=definition.justification,
                indent_left=definition.indent_left,
                hanging=definition.hanging,
                bullet_font=definition.bullet_font,
            )
        return definition

    def list_item_properties(self, num_id: int, level: int) -> FormattingProperties:
        props = FormattingProperties(numbering_id=num_id, list_level=level)
        instance = self.instances.get(num_id)
        if instance is not None:
            props.abstract_numbering_id = instance.abstract_id
        definition = self.level_for(num_id, level)
        if definition is not None:
            _apply_level(props, definition)
            props.list_level_summary = definition.summary()
        return props

    def abstract_properties(self, abstract: AbstractNumbering) -> FormattingProperties:
        props = FormattingProperties(abstract_numbering_id=abstract.abstract_id)
        primary = abstract.primary_level()
        if primary is not None:
            props.list_level = primary.level
            _apply_level(props, primary)
            props.alignment = primary.justification
        if abstract.levels:
            props.list_level_summary = " | ".join(
                abstract.levels[level].summary() for level in sorted(abstract.levels)
            )
        return props


def parse_numbering(root: etree._Element | None, theme: ThemeData | None = None) -> NumberingCatalog:
    catalog = NumberingCatalog()
    if root is None:
        return catalog
    for abstract in root.findall("w:abstractNum", namespaces=NS):
        abstract_id = parse_int(attr(abstract, "abstractNumId"))
        if abstract_id is None:
            continue
        item = AbstractNumbering(abstract_id=abstract_id)
        for lvl in abstract.findall("w:lvl", namespaces=NS):
            definition = _parse_level(lvl, theme)
            if definition is not None:
                item.levels[definition.level] = definition
        catalog.abstracts.append(item)
    for num in root.findall("w:num", namespaces=NS):
        num_id = parse_int(attr(num, "numId"))
        abstract_id = parse_int(child_val(num, "abstractNumId"))
        if num_id is None or abstract_id is None:
            continue
        instance = NumberingInstance(num_id=num_id, abstract_id=abstract_id)
        for override in num.findall("w:lvlOverride", namespaces=NS):
            level = parse_int(attr(override, "ilvl"))
            if level is None:
                continue
            start = parse_int(child_val(override, "startOverride"))
            if start is not None:
                instance.start_overrides[level] = start
            lvl = override.find("w:lvl", namespaces=NS)
            if lvl is not None:
                definition = _parse_level(lvl, theme)
                if definition is not None:
                    instance.level_overrides[level] = definition
        catalog.instances[num_id] = instance
    return catalog


def _parse_level(lvl: etree._Element, theme: ThemeData | None) -> LevelDefinition | None:
    level = parse_int(attr(lvl, "ilvl"))
    if level is None:
        return None
    definition = LevelDefinition(
        level=level,
        number_format=child_val(lvl, "numFmt"),
        level_text=child_val(lvl, "lvlText"),
        start=parse_int(child_val(lvl, "start")),
        justification=map_alignment(child_val(lvl, "lvlJc")),
    )
    ind = lvl.find("w:pPr/w:ind", namespaces=NS)
    if ind is not None:
        definition.indent_left = twips_to_pt(attr(ind, "left") or attr(ind, "start"))
        definition.hanging = twips_to_pt(attr(ind, "hanging"))
    r_fonts = lvl.find("w:rPr/w:rFonts", namespaces=NS)
    definition.bullet_font = read_font_family(r_fonts, theme)
    return definition


def _apply_level(props: FormattingProperties, definition: LevelDefinition) -> None:
    props.list_number_format = definition.number_format
    props.list_level_text = definition.level_text
    props.list_start_value = definition.start
    props.list_indent_position = definition.indent_left
    props.list_tab_position = definition.hanging
    props.list_bullet_font = definition.bullet_font


def _fmt(value: float | None) -> str:
    if value is None:
        return "0"
    return f"{value:g}"
