from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from time import perf_counter
from typing import Any, Iterable, Protocol, Sequence

from . import config
from .cancellation import CancellationToken
from .comparator import StyleComparator
from .errors import ProcessingCancelled, StructuralError
from .extractor import StyleExtractor
from .log_state import new_log_state, warn, write_log
from .models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    ExtractionResult,
    MismatchRecord,
    StyleRecord,
    VerificationResult,
)

_FAILURES = (
    StructuralError,
    ProcessingCancelled,
    KeyError,
    FileNotFoundError,
    IsADirectoryError,
    PermissionError,
)


class TemplateStyleCatalog(Protocol):
    def get_styles_for_template(self, template_id: str) -> Any:
        ...


class ResultSink(Protocol):
    def persist(self, mismatches: Sequence[MismatchRecord], metadata: dict[str, object]) -> Any:
        ...


class StyleVerifier:
    def __init__(
        self,
        template_catalog: TemplateStyleCatalog,
        result_sink: ResultSink | None = None,
        extractor: StyleExtractor | None = None,
        comparator: StyleComparator | None = None,
        timeout_sec: float | None = config.DEFAULT_PROCESSING_TIMEOUT_SEC,
        write_logs: bool = True,
    ) -> None:
        self.template_catalog = template_catalog
        self.result_sink = result_sink
        self.extractor = extractor or StyleExtractor(write_logs=False)
        self.comparator = comparator or StyleComparator()
        self.timeout_sec = timeout_sec
        self.write_logs = write_logs

    def extract_template(
        self,
        source: bytes | str | Path,
        template_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> ExtractionResult:
        result = self.extractor.extract(source, document_id=template_id, token=token)
        save = getattr(self.template_catalog, "save", None)
        if template_id is not None and save is not None:
            save(template_id, result.records)
        return result

    async def verify(
        self,
        template_id: str,
        source: bytes | str | Path,
        strict_mode: bool = True,
        ignored_style_types: Iterable[str] = config.DEFAULT_IGNORED_STYLE_TYPES,
        token: CancellationToken | None = None,
        document_id: str | None = None,
    ) -> VerificationResult:
        label = document_id or (str(source) if isinstance(source, (str, Path)) else "<bytes>")
        token = token or CancellationToken(self.timeout_sec)
        log_state = new_log_state(label)
        log_state.template_id = template_id
        result = VerificationResult(template_id=template_id, document_id=label)
        started = perf_counter()
        try:
            template_styles: list[StyleRecord] = list(
                await _resolve(self.template_catalog.get_styles_for_template(template_id))
            )
            token.check()
            extraction = await asyncio.to_thread(self.extractor.extract, source, label, token)
            mismatches = await asyncio.to_thread(
                self.comparator.compare,
                template_styles,
                extraction.records,
                strict_mode,
                tuple(ignored_style_types),
                token,
            )
        except _FAILURES as exc:
            result.status = STATUS_FAILED
            result.error_message = _message(exc)
            result.elapsed_sec = perf_counter() - started
            log_state.error = result.error_message
            log_state.elapsed_sec = result.elapsed_sec
            self._write(log_state)
            return result

        result.status = STATUS_COMPLETED
        result.mismatches = mismatches
        result.elapsed_sec = perf_counter() - started
        result.metadata = {
            "template_id": template_id,
            "document_id": label,
            "strict_mode": strict_mode,
            "ignored_style_types": sorted(set(ignored_style_types)),
            "template_style_count": len(template_styles),
            "document_style_count": len(extraction.records),
            "dropped_pattern_count": len(extraction.dropped_patterns),
            "warning_count": len(extraction.warnings),
            "severity_counts": result.severity_counts(),
        }
        log_state.warnings.extend(extraction.warnings)
        log_state.record_count = len(extraction.records)
        log_state.pattern_count = len(extraction.patterns)
        log_state.dropped_pattern_count = len(extraction.dropped_patterns)
        log_state.mismatch_count = len(mismatches)
        if self.result_sink is not None:
            try:
                await _resolve(self.result_sink.persist(mismatches, dict(result.metadata)))
            except (OSError, ValueError) as exc:
                warn(log_state, rule="result_sink", reason=f"persist failed ({exc})")
                result.metadata["persist_error"] = str(exc)
        log_state.elapsed_sec = perf_counter() - started
        self._write(log_state)
        return result

    def _write(self, log_state) -> None:
        if self.write_logs:
            write_log(log_state)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _message(exc: BaseException) -> str:
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc) or exc.__class__.__name__
