import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from zipfile import ZipFile

from docstyle_verify.errors import PartialDataError, StructuralError
from docstyle_verify.package import (
    DOCUMENT_PART,
    DOCUMENT_RELS_PART,
    STYLES_PART,
    DocxPackage,
    parse_optional_xml,
    read_source,
)

DOCUMENT_XML = (
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body><w:p/></w:body></w:document>"
)
RELS_XML = (
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles"'
    ' Target="styles.xml"/>'
    '<Relationship Id="rId2" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink"'
    ' Target="https://example.com" TargetMode="External"/>'
    "</Relationships>"
)


def _zip(parts: dict[str, str]) -> bytes:
    buffer = BytesIO()
    with ZipFile(buffer, "w") as archive:
        for name, content in parts.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class PackageTests(unittest.TestCase):
    def test_reads_parts(self) -> None:
        package = DocxPackage.from_bytes(_zip({DOCUMENT_PART: DOCUMENT_XML, DOCUMENT_RELS_PART: RELS_XML}))
        self.assertIsNone(package.part(STYLES_PART))
        self.assertEqual(package.document_root().tag.split("}")[1], "document")
        rels = package.relationships()
        self.assertEqual(rels["rId2"].target, "https://example.com")
        self.assertTrue(rels["rId2"].external)
        self.assertFalse(rels["rId1"].external)

    def test_invalid_zip(self) -> None:
        with self.assertRaises(StructuralError):
            DocxPackage.from_bytes(b"PK but not really")

    def test_missing_document_part(self) -> None:
        with self.assertRaisesRegex(StructuralError, "word/document.xml"):
            DocxPackage.from_bytes(_zip({STYLES_PART: "<w:styles/>"}))

    def test_malformed_document_part(self) -> None:
        package = DocxPackage.from_bytes(_zip({DOCUMENT_PART: "<w:document><w:body>"}))
        with self.assertRaises(StructuralError):
            package.document_root()

    def test_malformed_optional_parts(self) -> None:
        package = DocxPackage.from_bytes(
            _zip({DOCUMENT_PART: DOCUMENT_XML, DOCUMENT_RELS_PART: "<Relationships", STYLES_PART: "<broken"})
        )
        with self.assertRaises(PartialDataError) as ctx:
            package.relationships()
        self.assertEqual(ctx.exception.part_name, DOCUMENT_RELS_PART)
        with self.assertRaises(PartialDataError):
            parse_optional_xml(package, STYLES_PART)

    def test_read_source(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "doc.docx"
            path.write_bytes(b"data")
            self.assertEqual(read_source(path), b"data")
            self.assertEqual(read_source(str(path)), b"data")
            with self.assertRaises(FileNotFoundError):
                read_source(Path(tmpdir) / "missing.docx")
            with self.assertRaises(IsADirectoryError):
                read_source(tmpdir)
        self.assertEqual(read_source(bytearray(b"raw")), b"raw")


if __name__ == "__main__":
    unittest.main()
