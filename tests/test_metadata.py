import tempfile
import unittest
from io import BytesIO
from pathlib import Path

from docx import Document

from docstyle_verify.errors import StructuralError
from docstyle_verify.metadata import get_document_metadata, validate_document_format


def _document() -> bytes:
    document = Document()
    document.core_properties.title = "Annual Report"
    document.core_properties.author = "Finance Team"
    document.add_paragraph("Annual results", style="Heading 1")
    document.add_paragraph("Revenue grew in every region.")
    table = document.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Q1"
    table.cell(0, 1).text = "Q2 totals"
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


class ValidateFormatTests(unittest.TestCase):
    def test_valid_document(self) -> None:
        self.assertTrue(validate_document_format(_document()))

    def test_invalid_inputs(self) -> None:
        self.assertFalse(validate_document_format(b"plain text"))
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertFalse(validate_document_format(Path(tmpdir) / "missing.docx"))
            self.assertFalse(validate_document_format(Path(tmpdir)))


class MetadataTests(unittest.TestCase):
    def test_core_properties_and_counts(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "report.docx"
            path.write_bytes(_document())
            metadata = get_document_metadata(path)
        self.assertEqual(metadata.title, "Annual Report")
        self.assertEqual(metadata.author, "Finance Team")
        self.assertEqual(metadata.paragraph_count, 4)
        self.assertEqual(metadata.table_count, 1)
        self.assertEqual(metadata.word_count, 10)
        self.assertIn("Heading 1", metadata.styles_in_use)

    def test_to_dict(self) -> None:
        data = get_document_metadata(_document()).to_dict()
        self.assertEqual(data["title"], "Annual Report")
        self.assertIsInstance(data["styles_in_use"], list)
        self.assertTrue(data["modified"] is None or isinstance(data["modified"], str))

    def test_invalid_document_raises(self) -> None:
        with self.assertRaises(StructuralError):
            get_document_metadata(b"plain text")


if __name__ == "__main__":
    unittest.main()
