from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from pathlib import Path

from .errors import StructuralError
from .ooxml import NS, text_of, w
from .package import DocxPackage, read_source


@dataclass
class DocumentMetadata:
    title: str | None = None
    author: str | None = None
    subject: str | None = None
    created: datetime | None = None
    modified: datetime | None = None
    paragraph_count: int = 0
    table_count: int = 0
    word_count: int = 0
    styles_in_use: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "author": self.author,
            "subject": self.subject,
            "created": self.created.isoformat() if self.created else None,
            "modified": self.modified.isoformat() if self.modified else None,
            "paragraph_count": self.paragraph_count,
            "table_count": self.table_count,
            "word_count": self.word_count,
            "styles_in_use": list(self.styles_in_use),
        }


def validate_document_format(source: bytes | str | Path) -> bool:
    try:
        package = DocxPackage.from_bytes(read_source(source))
        root = package.document_root()
    except (StructuralError, OSError):
        return False
    return root.find("w:body", namespaces=NS) is not None


def get_document_metadata(source: bytes | str | Path) -> DocumentMetadata:
    try:
        from docx import Document
    except ImportError as exc:
        raise ImportError("python-docx is required to read document metadata") from exc

    data = read_source(source)
    body = DocxPackage.from_bytes(data).document_root().find("w:body", namespaces=NS)
    if body is None:
        raise StructuralError("document has no body")
    document = Document(BytesIO(data))
    core = document.core_properties

    used_ids: set[str] = set()
    for tag in ("pStyle", "rStyle", "tblStyle"):
        for elem in body.iter(w(tag)):
            style_id = elem.get(w("val"))
            if style_id:
                used_ids.add(style_id)
    names = sorted(
        style.name or style.style_id
        for style in document.styles
        if style.style_id in used_ids
    )

    paragraphs = list(body.iter(w("p")))
    words = sum(len(text_of(paragraph).split()) for paragraph in paragraphs)
    return DocumentMetadata(
        title=core.title or None,
        author=core.author or None,
        subject=core.subject or None,
        created=core.created,
        modified=core.modified,
        paragraph_count=len(paragraphs),
        table_count=len(list(body.iter(w("tbl")))),
        word_count=words,
        styles_in_use=names,
    )
