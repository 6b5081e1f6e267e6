from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from . import config


@dataclass
class WarningEntry:
    rule: str
    reason: str
    context_key: str | None = None
    style_id: str | None = None
    paragraph_index: int | None = None


@dataclass
class ExtractionLogState:
    source: str
    start_time: datetime
    warnings: list[WarningEntry] = field(default_factory=list)
    record_count: int = 0
    pattern_count: int = 0
    dropped_pattern_count: int = 0
    mismatch_count: int | None = None
    template_id: str | None = None
    error: str | None = None
    elapsed_sec: float | None = None


def new_log_state(source: str) -> ExtractionLogState:
    return ExtractionLogState(source=source, start_time=datetime.now())


def warn(
    log_state: ExtractionLogState | None,
    rule: str,
    reason: str,
    context_key: str | None = None,
    style_id: str | None = None,
    paragraph_index: int | None = None,
) -> None:
    if log_state is None:
        return
    log_state.warnings.append(
        WarningEntry(
            rule=rule,
            reason=reason,
            context_key=context_key,
            style_id=style_id,
            paragraph_index=paragraph_index,
        )
    )


def write_log(log_state: ExtractionLogState) -> None:
    config.ensure_base_dirs()
    config.cleanup_logs(now=log_state.start_time)
    log_path = config.build_log_path(log_state.start_time)
    lines = [
        f"source: {log_state.source}",
        f"elapsed_sec: {log_state.elapsed_sec:.3f}"
        if log_state.elapsed_sec is not None
        else "elapsed_sec: unknown",
        f"records_count: {log_state.record_count}",
        f"patterns_count: {log_state.pattern_count}",
        f"dropped_patterns_count: {log_state.dropped_pattern_count}",
    ]
    if log_state.template_id is not None:
        lines.append(f"template_id: {log_state.template_id}")
    if log_state.mismatch_count is not None:
        lines.append(f"mismatches_count: {log_state.mismatch_count}")
    if log_state.error:
        lines.append(f"error: {log_state.error}")
    lines.append(f"warnings_count: {len(log_state.warnings)}")
    for warning in log_state.warnings:
        parts = [f"rule={warning.rule}", f"reason={warning.reason}"]
        if warning.context_key:
            parts.append(f"context_key={warning.context_key}")
        if warning.style_id:
            parts.append(f"style_id={warning.style_id}")
        if warning.paragraph_index is not None:
            parts.append(f"paragraph_index={warning.paragraph_index}")
        lines.append("warning: " + " ".join(parts))
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write("\n".join(lines) + "\n")
