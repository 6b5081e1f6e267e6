from __future__ import annotations

EMU_PER_POINT = 12700
TWIPS_PER_POINT = 20
LINE_UNITS_PER_SINGLE = 240
PCT_UNITS_PER_PERCENT = 50


def parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        try:
            return int(float(value))
        except ValueError:
            return None


def twips_to_pt(value: str | int | None) -> float | None:
    numeric = parse_int(value) if isinstance(value, str) or value is None else value
    if numeric is None:
        return None
    return numeric / TWIPS_PER_POINT


def half_points_to_pt(value: str | None) -> float | None:
    numeric = _parse_float(value)
    if numeric is None:
        return None
    return numeric / 2


def eighth_points_to_pt(value: str | None) -> float | None:
    numeric = _parse_float(value)
    if numeric is None:
        return None
    return numeric / 8


def emu_to_pt(value: str | int | None) -> float | None:
    numeric = parse_int(value) if isinstance(value, str) or value is None else value
    if numeric is None:
        return None
    return numeric / EMU_PER_POINT


def line_to_multiple(value: str | None) -> float | None:
    numeric = parse_int(value)
    if numeric is None:
        return None
    return numeric / LINE_UNITS_PER_SINGLE


def width_to_pt_or_percent(value: str | None, width_type: str | None) -> float | None:
    if value is None:
        return None
    if width_type == "pct":
        if value.endswith("%"):
            return _parse_float(value[:-1])
        numeric = _parse_float(value)
        return None if numeric is None else numeric / PCT_UNITS_PER_PERCENT
    if width_type in (None, "dxa"):
        return twips_to_pt(value)
    if width_type == "auto":
        return None
    return twips_to_pt(value)


def _parse_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
