from __future__ import annotations

import re
from dataclasses import dataclass, field

from lxml import etree

from . import config
from .errors import PartialDataError

A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
_A = {"a": A_NS}
_HEX_COLOR = re.compile(r"^[0-9A-Fa-f]{6}$")

THEME_COLOR_FALLBACKS = {
    "accent1": "4F81BD",
    "accent2": "F79646",
    "accent3": "9BBB59",
    "accent4": "8064A2",
    "accent5": "4BACC6",
    "accent6": "F24C4C",
    "background1": "FFFFFF",
    "background2": "F2F2F2",
    "text1": "000000",
    "text2": "1F497D",
    "dark1": "000000",
    "dark2": "1F497D",
    "light1": "FFFFFF",
    "light2": "EEECE1",
    "hyperlink": "0000FF",
    "followedHyperlink": "800080",
}

# w:themeColor names -> a:clrScheme element names
_SCHEME_SLOTS = {
    "dark1": "dk1",
    "text1": "dk1",
    "light1": "lt1",
    "background1": "lt1",
    "dark2": "dk2",
    "text2": "dk2",
    "light2": "lt2",
    "background2": "lt2",
    "accent1": "accent1",
    "accent2": "accent2",
    "accent3": "accent3",
    "accent4": "accent4",
    "accent5": "accent5",
    "accent6": "accent6",
    "hyperlink": "hlink",
    "followedHyperlink": "folHlink",
}


@dataclass
class ThemeData:
    fonts: dict[str, str] = field(default_factory=dict)
    colors: dict[str, str] = field(default_factory=dict)

    def font(self, token: str | None) -> str | None:
        return resolve_theme_font(token, self.fonts)

    def color(self, name: str | None) -> str | None:
        return resolve_theme_color(name, self.colors)


def parse_theme(theme_bytes: bytes | None) -> ThemeData:
    if not theme_bytes:
        return ThemeData()
    try:
        root = etree.fromstring(theme_bytes)
    except etree.XMLSyntaxError as exc:
        raise PartialDataError("word/theme/theme1.xml", f"failed to parse ({exc})") from exc
    return ThemeData(fonts=_read_font_scheme(root), colors=_read_color_scheme(root))


def _read_font_scheme(root: etree._Element) -> dict[str, str]:
    scheme = root.find(".//a:fontScheme", namespaces=_A)
    if scheme is None:
        return {}
    mapping: dict[str, str] = {}

    def _read_font(prefix: str, elem: etree._Element | None) -> None:
        if elem is None:
            return
        latin = elem.find("a:latin", namespaces=_A)
        if latin is not None:
            typeface = latin.get("typeface")
            if typeface:
                mapping[f"{prefix}Ascii"] = typeface
                mapping[f"{prefix}HAnsi"] = typeface
        ea = elem.find("a:ea", namespaces=_A)
        if ea is not None:
            typeface = ea.get("typeface")
            if typeface:
                mapping[f"{prefix}EastAsia"] = typeface
        cs = elem.find("a:cs", namespaces=_A)
        if cs is not None:
            typeface = cs.get("typeface")
            if typeface:
                mapping[f"{prefix}Bidi"] = typeface

    _read_font("major", scheme.find("a:majorFont", namespaces=_A))
    _read_font("minor", scheme.find("a:minorFont", namespaces=_A))
    return mapping


def _read_color_scheme(root: etree._Element) -> dict[str, str]:
    scheme = root.find(".//a:clrScheme", namespaces=_A)
    if scheme is None:
        return {}
    slots: dict[str, str] = {}
    for child in scheme:
        if not isinstance(child.tag, str):
            continue
        slot = etree.QName(child).localname
        srgb = child.find("a:srgbClr", namespaces=_A)
        sys_clr = child.find("a:sysClr", namespaces=_A)
        value = None
        if srgb is not None:
            value = srgb.get("val")
        elif sys_clr is not None:
            value = sys_clr.get("lastClr")
        if value and _HEX_COLOR.match(value):
            slots[slot] = value.upper()
    colors: dict[str, str] = {}
    for name, slot in _SCHEME_SLOTS.items():
        if slot in slots:
            colors[name] = slots[slot]
    return colors


def resolve_theme_font(token: str | None, theme_fonts: dict[str, str] | None = None) -> str | None:
    if not token:
        return None
    if theme_fonts and token in theme_fonts:
        return theme_fonts[token]
    lowered = token.lower()
    if lowered.startswith("+mn-") or lowered.startswith("minor"):
        if theme_fonts and "minorAscii" in theme_fonts:
            return theme_fonts["minorAscii"]
        return config.DEFAULT_FONT_FAMILY
    if lowered.startswith("+mj-") or lowered.startswith("major"):
        if theme_fonts and "majorAscii" in theme_fonts:
            return theme_fonts["majorAscii"]
        return config.DEFAULT_MAJOR_FONT_FAMILY
    return None


def resolve_theme_color(name: str | None, theme_colors: dict[str, str] | None = None) -> str | None:
    if not name:
        return None
    if theme_colors and name in theme_colors:
        return theme_colors[name]
    return THEME_COLOR_FALLBACKS.get(name)


def normalize_color(value: str | None) -> str | None:
    if value is None:
        return None
    if value.lower() == "auto":
        return config.DEFAULT_COLOR
    if _HEX_COLOR.match(value):
        return value.upper()
    return config.DEFAULT_COLOR
