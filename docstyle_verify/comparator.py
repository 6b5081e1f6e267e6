from __future__ import annotations

from typing import Any, Iterable, Sequence

from . import config
from .cancellation import CancellationToken
from .direct_formatting import merged_overrides
from .models import (
    DIRECT_FORMATTING_MISMATCH,
    EXTRA_DIRECT_FORMATTING,
    EXTRA_STYLE,
    MISSING_DIRECT_FORMATTING,
    MISSING_STYLE,
    PROPERTY_MISMATCH,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    UNEXPECTED_FORMATTING,
    DirectFormatPattern,
    MismatchRecord,
    StyleRecord,
)
from .properties import FIELD_LABELS, FormattingProperties, apply_overrides, set_fields

EXTRA_PREFIX = "Extra_"
_CASE_INSENSITIVE_FIELDS = {"FontFamily", "Alignment"}


class StyleComparator:
    def compare(
        self,
        template_styles: Sequence[StyleRecord],
        document_styles: Sequence[StyleRecord],
        strict_mode: bool = True,
        ignored_style_types: Iterable[str] = config.DEFAULT_IGNORED_STYLE_TYPES,
        token: CancellationToken | None = None,
    ) -> list[MismatchRecord]:
        ignored = set(ignored_style_types)
        template = [record for record in template_styles if record.style_type not in ignored]
        document = [record for record in document_styles if record.style_type not in ignored]
        tolerance = config.tolerance_for(strict_mode)
        matcher = _DocumentIndex(document)

        mismatches: list[MismatchRecord] = []
        matched: set[int] = set()
        for template_style in template:
            if token is not None:
                token.check()
            document_style = matcher.match(template_style)
            if document_style is None:
                mismatches.append(missing_style_mismatch(template_style))
                continue
            matched.add(id(document_style))
            mismatches.extend(compare_pair(template_style, document_style, tolerance))

        template_index = _DocumentIndex(template)
        for document_style in document:
            if id(document_style) in matched:
                continue
            if template_index.match(document_style) is not None:
                continue
            if document_style.structural_role in config.STRUCTURAL_ROLES:
                mismatches.append(unexpected_formatting_mismatch(document_style))
            else:
                mismatches.append(extra_style_mismatch(document_style))

        return [mismatch for mismatch in mismatches if mismatch.sample_text.strip()]


class _DocumentIndex:
    def __init__(self, records: Sequence[StyleRecord]) -> None:
        self.by_context: dict[str, StyleRecord] = {}
        self.by_signature: dict[str, StyleRecord] = {}
        self.by_name: dict[tuple[str, str], StyleRecord] = {}
        self.by_position: dict[tuple[Any, ...], StyleRecord] = {}
        for record in records:
            self.by_context.setdefault(record.context_key, record)
            self.by_signature.setdefault(record.signature, record)
            self.by_name.setdefault((record.name, record.style_type), record)
            self.by_position.setdefault(_position_key(record), record)

    def match(self, record: StyleRecord) -> StyleRecord | None:
        for table, key in (
            (self.by_context, record.context_key),
            (self.by_signature, record.signature),
            (self.by_name, (record.name, record.style_type)),
            (self.by_position, _position_key(record)),
        ):
            found = table.get(key)
            if found is not None:
                return found
        return None


def _position_key(record: StyleRecord) -> tuple[Any, ...]:
    return (record.structural_role,) + record.context.positional_indices()


def effective_properties(record: StyleRecord) -> dict[str, object]:
    props = apply_overrides(
        record.resolved_properties,
        *(pattern.overrides for pattern in record.direct_format_patterns),
    )
    return _non_default(props)


def _non_default(props: FormattingProperties) -> dict[str, object]:
    values: dict[str, object] = {}
    for name, value in set_fields(props).items():
        if value is False or value == "" or value == () or value == 0:
            continue
        if name == "tab_stops":
            value = [stop.to_dict() for stop in value]
        elif isinstance(value, tuple):
            value = list(value)
        values[FIELD_LABELS[name]] = value
    return values


def property_differences(
    expected: dict[str, object],
    actual: dict[str, object],
    tolerance: float,
) -> list[str]:
    differences: list[str] = []
    for label, value in expected.items():
        if label not in actual or not values_equal(label, value, actual[label], tolerance):
            differences.append(label)
    for label in actual:
        if label not in expected:
            differences.append(f"{EXTRA_PREFIX}{label}")
    return differences


def values_equal(label: str, expected: object, actual: object, tolerance: float) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return expected == actual
    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return abs(float(expected) - float(actual)) <= tolerance
    if label in _CASE_INSENSITIVE_FIELDS and isinstance(expected, str) and isinstance(actual, str):
        return expected.lower() == actual.lower()
    return expected == actual


def property_severity(fields: Iterable[str]) -> str:
    names = [name[len(EXTRA_PREFIX):] if name.startswith(EXTRA_PREFIX) else name for name in fields]
    if any(name in config.HIGH_SEVERITY_FIELDS for name in names):
        return SEVERITY_HIGH
    if any(name in config.MEDIUM_SEVERITY_FIELDS for name in names):
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def pattern_severity(fields: Iterable[str]) -> str:
    names = list(fields)
    if any(name in config.PATTERN_HIGH_FIELDS for name in names):
        return SEVERITY_HIGH
    if any(name in config.PATTERN_MEDIUM_FIELDS for name in names):
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def recommended_action(
    differences: Sequence[str],
    template_style: StyleRecord,
    document_style: StyleRecord,
) -> str:
    has_patterns = bool(document_style.direct_format_patterns)
    needs_patterns = bool(template_style.direct_format_patterns)
    if has_patterns and not needs_patterns:
        return f"Remove direct formatting from '{document_style.name}' and apply only the base style"
    if needs_patterns and not has_patterns:
        return (
            f"Apply the required direct formatting to '{document_style.name}' "
            "as specified in the template"
        )
    if len(differences) == 1:
        return f"Correct the {differences[0]} property to match the template"
    return f"Correct the following properties to match the template: {', '.join(differences)}"


def compare_pair(
    template_style: StyleRecord,
    document_style: StyleRecord,
    tolerance: float,
) -> list[MismatchRecord]:
    mismatches: list[MismatchRecord] = []
    expected = effective_properties(template_style)
    actual = effective_properties(document_style)
    differences = property_differences(expected, actual, tolerance)
    if differences:
        mismatches.append(
            MismatchRecord(
                context_key=template_style.context_key,
                location=_location(template_style, document_style),
                structural_role=template_style.structural_role or document_style.structural_role,
                expected=expected,
                actual=actual,
                mismatched_fields=differences,
                sample_text=_sample_text(document_style, template_style),
                severity=property_severity(differences),
                recommended_action=recommended_action(differences, template_style, document_style),
                mismatch_type=PROPERTY_MISMATCH,
                style_name=template_style.name,
            )
        )
    mismatches.extend(compare_patterns(template_style, document_style, tolerance))
    return mismatches


def compare_patterns(
    template_style: StyleRecord,
    document_style: StyleRecord,
    tolerance: float,
) -> list[MismatchRecord]:
    template_patterns = _first_by_context(template_style.direct_format_patterns)
    document_patterns = _first_by_context(document_style.direct_format_patterns)
    context_key = template_style.context_key
    location = _location(template_style, document_style)
    mismatches: list[MismatchRecord] = []
    for pattern_context, template_pattern in template_patterns.items():
        document_pattern = document_patterns.get(pattern_context)
        if document_pattern is None:
            mismatches.append(
                _pattern_mismatch(
                    context_key,
                    location,
                    pattern_context,
                    expected=_non_default(template_pattern.overrides),
                    actual={"Status": "Missing"},
                    fields=["DirectFormatting"],
                    sample_text=template_pattern.sample_text,
                    severity=SEVERITY_MEDIUM,
                    action=f"Apply the missing direct formatting pattern '{template_pattern.pattern_name}'",
                    mismatch_type=MISSING_DIRECT_FORMATTING,
                )
            )
            continue
        expected = _non_default(template_pattern.overrides)
        actual = _non_default(document_pattern.overrides)
        differences = property_differences(expected, actual, tolerance)
        if differences:
            mismatches.append(
                _pattern_mismatch(
                    context_key,
                    location,
                    pattern_context,
                    expected=expected,
                    actual=actual,
                    fields=differences,
                    sample_text=document_pattern.sample_text,
                    severity=pattern_severity(differences),
                    action=(
                        f"Correct the direct formatting pattern '{document_pattern.pattern_name}' "
                        "to match template"
                    ),
                    mismatch_type=DIRECT_FORMATTING_MISMATCH,
                )
            )
    for pattern_context, document_pattern in document_patterns.items():
        if pattern_context in template_patterns:
            continue
        mismatches.append(
            _pattern_mismatch(
                context_key,
                location,
                pattern_context,
                expected={"Status": "Should not exist"},
                actual=_non_default(document_pattern.overrides),
                fields=["DirectFormatting"],
                sample_text=document_pattern.sample_text,
                severity=SEVERITY_HIGH,
                action=f"Remove the unexpected direct formatting pattern '{document_pattern.pattern_name}'",
                mismatch_type=EXTRA_DIRECT_FORMATTING,
            )
        )
    return mismatches


def missing_style_mismatch(template_style: StyleRecord) -> MismatchRecord:
    return MismatchRecord(
        context_key=template_style.context_key,
        location=template_style.context.location,
        structural_role=template_style.structural_role,
        expected=effective_properties(template_style),
        actual={"Status": "Missing"},
        mismatched_fields=["EntireStyle"],
        sample_text=template_style.context.sample_text,
        severity=SEVERITY_HIGH,
        recommended_action=f"Apply the expected style '{template_style.name}' to this location",
        mismatch_type=MISSING_STYLE,
        style_name=template_style.name,
    )


def unexpected_formatting_mismatch(document_style: StyleRecord) -> MismatchRecord:
    if document_style.direct_format_patterns:
        extra = _non_default(merged_overrides(document_style.direct_format_patterns))
    else:
        extra = effective_properties(document_style)
    role = document_style.structural_role
    return MismatchRecord(
        context_key=document_style.context_key,
        location=document_style.context.location,
        structural_role=role,
        expected={"ExtraFormatting": "None"},
        actual=extra,
        mismatched_fields=[f"{EXTRA_PREFIX}{label}" for label in extra],
        sample_text=document_style.context.sample_text,
        severity=SEVERITY_MEDIUM,
        recommended_action=f"Remove the extra formatting from this {(role or 'element').lower()} to match the template",
        mismatch_type=UNEXPECTED_FORMATTING,
        style_name=document_style.name,
    )


def extra_style_mismatch(document_style: StyleRecord) -> MismatchRecord:
    return MismatchRecord(
        context_key=document_style.context_key,
        location=document_style.context.location,
        structural_role=document_style.structural_role,
        expected={"Status": "Should not exist"},
        actual=effective_properties(document_style),
        mismatched_fields=["EntireStyle"],
        sample_text=document_style.context.sample_text,
        severity=SEVERITY_MEDIUM,
        recommended_action=f"Remove the unexpected style '{document_style.name}' from this location",
        mismatch_type=EXTRA_STYLE,
        style_name=document_style.name,
    )


def _pattern_mismatch(
    context_key: str,
    location: str,
    pattern_context: str,
    expected: dict[str, object],
    actual: dict[str, object],
    fields: list[str],
    sample_text: str,
    severity: str,
    action: str,
    mismatch_type: str,
) -> MismatchRecord:
    return MismatchRecord(
        context_key=f"{context_key}:{pattern_context}" if context_key else pattern_context,
        location=f"{location} > {pattern_context}" if location else pattern_context,
        structural_role="DirectFormatting",
        expected=expected,
        actual=actual,
        mismatched_fields=fields,
        sample_text=sample_text,
        severity=severity,
        recommended_action=action,
        mismatch_type=mismatch_type,
    )


def _first_by_context(patterns: Iterable[DirectFormatPattern]) -> dict[str, DirectFormatPattern]:
    grouped: dict[str, DirectFormatPattern] = {}
    for pattern in patterns:
        grouped.setdefault(pattern.pattern_context, pattern)
    return grouped


def _location(template_style: StyleRecord, document_style: StyleRecord) -> str:
    return template_style.context.location or document_style.context.location


def _sample_text(document_style: StyleRecord, template_style: StyleRecord) -> str:
    if document_style.context.sample_text.strip():
        return document_style.context.sample_text
    return template_style.context.sample_text
