from __future__ import annotations

from dataclasses import dataclass, field

from .log_state import WarningEntry
from .properties import FormattingProperties

SEVERITY_HIGH = "High"
SEVERITY_MEDIUM = "Medium"
SEVERITY_LOW = "Low"

MISSING_STYLE = "MissingStyle"
PROPERTY_MISMATCH = "PropertyMismatch"
MISSING_DIRECT_FORMATTING = "MissingDirectFormatting"
DIRECT_FORMATTING_MISMATCH = "DirectFormattingMismatch"
EXTRA_DIRECT_FORMATTING = "ExtraDirectFormatting"
UNEXPECTED_FORMATTING = "UnexpectedFormatting"
EXTRA_STYLE = "ExtraStyle"

STATUS_PENDING = "Pending"
STATUS_COMPLETED = "Completed"
STATUS_FAILED = "Failed"

_HEADER_FOOTER_LABELS = ("Header", "Footer")


def parse_context_key(key: str) -> tuple[tuple[str, int], ...]:
    if not key:
        return ()
    parts = key.split(":")
    path: list[tuple[str, int]] = []
    for label, raw in zip(parts[0::2], parts[1::2]):
        try:
            path.append((label, int(raw)))
        except ValueError:
            continue
    return tuple(path)


def parse_pattern_context(pattern_context: str) -> dict[str, int]:
    values: dict[str, int] = {}
    for chunk in pattern_context.split(","):
        label, _, raw = chunk.strip().partition(":")
        try:
            values[label] = int(raw)
        except ValueError:
            continue
    return values


@dataclass
class FormattingContext:
    element_type: str
    structural_role: str
    path: tuple[tuple[str, int], ...] = ()
    sample_text: str = ""
    document_part: str = "Body"
    header_footer_type: str | None = None
    nested_table_level: int = 0
    row_span: int | None = None
    col_span: int | None = None
    is_merged_cell: bool = False
    cell_merge_type: str | None = None
    content_control_tag: str | None = None
    content_control_type: str | None = None
    content_control_title: str | None = None
    list_level: int | None = None
    list_number_style: str | None = None
    paragraph_range: tuple[int, int] | None = None

    @classmethod
    def from_key(cls, context_key: str, element_type: str, structural_role: str, **kwargs) -> "FormattingContext":
        return cls(element_type, structural_role, parse_context_key(context_key), **kwargs)

    @property
    def context_key(self) -> str:
        return ":".join(f"{label}:{index}" for label, index in self.path)

    @property
    def parent_context_key(self) -> str | None:
        if len(self.path) < 2:
            return None
        return ":".join(f"{label}:{index}" for label, index in self.path[:-1])

    @property
    def location(self) -> str:
        return ", ".join(f"{label} {index + 1}" for label, index in self.path)

    def index_of(self, label: str) -> int | None:
        for current, index in reversed(self.path):
            if current == label:
                return index
        return None

    @property
    def section_index(self) -> int | None:
        return self.index_of("Section")

    @property
    def table_index(self) -> int | None:
        return self.index_of("Table")

    @property
    def row_index(self) -> int | None:
        return self.index_of("Row")

    @property
    def cell_index(self) -> int | None:
        return self.index_of("Cell")

    @property
    def paragraph_index(self) -> int | None:
        return self.index_of("Paragraph")

    @property
    def run_index(self) -> int | None:
        return self.index_of("Run")

    @property
    def header_footer_kind(self) -> str | None:
        if self.path and self.path[0][0] in _HEADER_FOOTER_LABELS:
            return self.path[0][0]
        return None

    @property
    def header_footer_index(self) -> int | None:
        if self.header_footer_kind is None:
            return None
        return self.path[0][1]

    @property
    def is_in_header_footer(self) -> bool:
        return self.header_footer_kind is not None

    def positional_indices(self) -> tuple[int | None, ...]:
        return (
            self.section_index,
            self.table_index,
            self.row_index,
            self.cell_index,
            self.paragraph_index,
        )


@dataclass
class DirectFormatPattern:
    pattern_name: str
    pattern_context: str
    overrides: FormattingProperties
    sample_text: str = ""
    occurrence_count: int = 1
    owner_index: int | None = None

    def context_values(self) -> dict[str, int]:
        return parse_pattern_context(self.pattern_context)


@dataclass
class StyleRecord:
    id: int
    owning_document_id: str
    style_type: str
    name: str
    resolved_properties: FormattingProperties
    signature: str
    context: FormattingContext
    based_on_style_id: str | None = None
    style_id: str | None = None
    direct_format_patterns: list[DirectFormatPattern] = field(default_factory=list)

    @property
    def context_key(self) -> str:
        return self.context.context_key

    @property
    def structural_role(self) -> str:
        return self.context.structural_role


@dataclass
class MismatchRecord:
    context_key: str
    location: str
    structural_role: str
    expected: dict[str, object]
    actual: dict[str, object]
    mismatched_fields: list[str]
    sample_text: str
    severity: str
    recommended_action: str
    mismatch_type: str
    style_name: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "contextKey": self.context_key,
            "location": self.location,
            "structuralRole": self.structural_role,
            "expected": self.expected,
            "actual": self.actual,
            "mismatchedFields": list(self.mismatched_fields),
            "sampleText": self.sample_text,
            "severity": self.severity,
            "recommendedAction": self.recommended_action,
            "mismatchType": self.mismatch_type,
            "styleName": self.style_name,
        }


@dataclass
class ExtractionResult:
    document_id: str
    records: list[StyleRecord]
    patterns: list[DirectFormatPattern]
    dropped_patterns: list[DirectFormatPattern] = field(default_factory=list)
    warnings: list[WarningEntry] = field(default_factory=list)

    def context_keys(self) -> list[str]:
        return [record.context_key for record in self.records]

    def by_type(self, style_type: str) -> list[StyleRecord]:
        return [record for record in self.records if record.style_type == style_type]

    def owner_of(self, pattern: DirectFormatPattern) -> StyleRecord | None:
        if pattern.owner_index is None:
            return None
        return self.records[pattern.owner_index]


@dataclass
class VerificationResult:
    template_id: str
    document_id: str
    status: str = STATUS_PENDING
    mismatches: list[MismatchRecord] = field(default_factory=list)
    error_message: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)
    elapsed_sec: float | None = None

    def severity_counts(self) -> dict[str, int]:
        counts = {SEVERITY_HIGH: 0, SEVERITY_MEDIUM: 0, SEVERITY_LOW: 0}
        for mismatch in self.mismatches:
            counts[mismatch.severity] = counts.get(mismatch.severity, 0) + 1
        return counts
