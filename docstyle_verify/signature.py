from __future__ import annotations

import hashlib
import json

from .properties import FormattingProperties

SIGNATURE_FIELDS = (
    ("FontFamily", "font_family"),
    ("FontSize", "font_size"),
    ("IsBold", "is_bold"),
    ("IsItalic", "is_italic"),
    ("IsUnderline", "is_underline"),
    ("Color", "color"),
    ("Alignment", "alignment"),
    ("SpacingBefore", "spacing_before"),
    ("SpacingAfter", "spacing_after"),
    ("IndentationLeft", "indentation_left"),
    ("IndentationRight", "indentation_right"),
    ("FirstLineIndent", "first_line_indent"),
    ("LineSpacing", "line_spacing"),
)


def compute_signature(props: FormattingProperties, style_type: str) -> str:
    payload: list[list[object]] = []
    for label, name in SIGNATURE_FIELDS:
        payload.append([label, _canonical(getattr(props, name))])
    payload.append(["StyleType", style_type])
    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _canonical(value: object) -> object:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return round(float(value), 2)
    if isinstance(value, str):
        return value
    return str(value)
