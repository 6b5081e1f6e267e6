from __future__ import annotations

from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
OUTPUT_DIR = PROJECT_ROOT / "output"
LOG_DIR = PROJECT_ROOT / "logs"
TEMPLATE_CATALOG_DIR = OUTPUT_DIR / "templates"
REPORT_DIR = OUTPUT_DIR / "reports"

LOG_FILE_PREFIX = "style_verify"
LOG_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
LOG_RETENTION_DAYS = 5

STRICT_TOLERANCE = 0.1
LENIENT_TOLERANCE = 1.0

HIGH_SEVERITY_FIELDS = ("FontFamily", "Color")
MEDIUM_SEVERITY_FIELDS = ("FontSize", "Alignment", "IsBold", "IsItalic", "LineSpacing")
PATTERN_HIGH_FIELDS = ("Color", "FontFamily")
PATTERN_MEDIUM_FIELDS = ("IsBold", "IsItalic", "FontSize")
STRUCTURAL_ROLES = frozenset(
    {"TableCell", "TableCellParagraph", "Paragraph", "Heading", "Body", "Table"}
)

DEFAULT_FONT_FAMILY = "Calibri"
DEFAULT_MAJOR_FONT_FAMILY = "Cambria"
DEFAULT_FONT_SIZE_PT = 11.0
DEFAULT_COLOR = "000000"
DEFAULT_LINE_SPACING = 1.0
DEFAULT_IGNORED_STYLE_TYPES: tuple[str, ...] = ()

DEFAULT_PROCESSING_TIMEOUT_SEC = 300.0


def tolerance_for(strict_mode: bool) -> float:
    return STRICT_TOLERANCE if strict_mode else LENIENT_TOLERANCE


def ensure_base_dirs() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def build_log_path(ts: datetime | None = None) -> Path:
    if ts is None:
        ts = datetime.now()
    name = f"{LOG_FILE_PREFIX}_{ts.strftime(LOG_TIMESTAMP_FORMAT)}.log"
    return LOG_DIR / name


def cleanup_logs(retention_days: int = LOG_RETENTION_DAYS, now: datetime | None = None) -> int:
    if retention_days <= 0:
        return 0
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError:
        return 0
    base_time = now or datetime.now()
    cutoff = base_time.timestamp() - retention_days * 86400
    removed = 0
    for path in LOG_DIR.glob(f"{LOG_FILE_PREFIX}_*.log"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed
