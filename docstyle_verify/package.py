from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from zipfile import BadZipFile, ZipFile

from lxml import etree

from .errors import PartialDataError, StructuralError

DOCUMENT_PART = "word/document.xml"
STYLES_PART = "word/styles.xml"
NUMBERING_PART = "word/numbering.xml"
THEME_PART = "word/theme/theme1.xml"
SETTINGS_PART = "word/settings.xml"
DOCUMENT_RELS_PART = "word/_rels/document.xml.rels"
OPTIONAL_PARTS = (STYLES_PART, NUMBERING_PART, THEME_PART, SETTINGS_PART, DOCUMENT_RELS_PART)

_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"


@dataclass
class Relationship:
    rel_id: str
    rel_type: str
    target: str
    external: bool


@dataclass
class DocxPackage:
    raw: bytes
    document_xml: bytes
    parts: dict[str, bytes | None] = field(default_factory=dict)

    @classmethod
    def from_path(cls, path: Path) -> "DocxPackage":
        ensure_readable_file(path)
        return cls.from_bytes(path.read_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> "DocxPackage":
        try:
            with ZipFile(BytesIO(data)) as archive:
                names = set(archive.namelist())
                if DOCUMENT_PART not in names:
                    raise StructuralError(f"missing required part in docx: {DOCUMENT_PART}")
                document_xml = archive.read(DOCUMENT_PART)
                parts = {
                    name: archive.read(name) if name in names else None
                    for name in OPTIONAL_PARTS
                }
        except BadZipFile as exc:
            raise StructuralError("invalid docx file") from exc
        return cls(raw=data, document_xml=document_xml, parts=parts)

    def part(self, name: str) -> bytes | None:
        return self.parts.get(name)

    def document_root(self) -> etree._Element:
        try:
            root = etree.fromstring(self.document_xml)
        except etree.XMLSyntaxError as exc:
            raise StructuralError(f"failed to parse {DOCUMENT_PART} ({exc})") from exc
        return root

    def relationships(self) -> dict[str, Relationship]:
        data = self.part(DOCUMENT_RELS_PART)
        if not data:
            return {}
        try:
            root = etree.fromstring(data)
        except etree.XMLSyntaxError as exc:
            raise PartialDataError(DOCUMENT_RELS_PART, f"failed to parse ({exc})") from exc
        rels: dict[str, Relationship] = {}
        for rel in root.findall(f"{{{_REL_NS}}}Relationship"):
            rel_id = rel.get("Id")
            if not rel_id:
                continue
            rels[rel_id] = Relationship(
                rel_id=rel_id,
                rel_type=rel.get("Type", ""),
                target=rel.get("Target", ""),
                external=rel.get("TargetMode") == "External",
            )
        return rels


def ensure_readable_file(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(f"document not found: {path}")
    if not path.is_file():
        raise IsADirectoryError(f"document path is not a file: {path}")
    try:
        with path.open("rb"):
            pass
    except PermissionError as exc:
        raise PermissionError(f"document is not readable: {path}") from exc


def read_source(source: bytes | str | Path) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    path = Path(source)
    ensure_readable_file(path)
    return path.read_bytes()


def parse_optional_xml(package: DocxPackage, part_name: str) -> etree._Element | None:
    data = package.part(part_name)
    if not data:
        return None
    try:
        return etree.fromstring(data)
    except etree.XMLSyntaxError as exc:
        raise PartialDataError(part_name, f"failed to parse ({exc})") from exc
