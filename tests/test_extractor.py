import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from zipfile import ZipFile

from docx import Document
from docx.enum.section import WD_ORIENT, WD_SECTION
from docx.shared import Inches, Pt, RGBColor
from lxml import etree

from docstyle_verify import config
from docstyle_verify.errors import StructuralError
from docstyle_verify.extractor import StyleExtractor, build_body_index
from docstyle_verify.ooxml import NS


def _save(document) -> bytes:
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _basic_document() -> bytes:
    document = Document()
    document.add_paragraph("Title text", style="Heading 1")
    paragraph = document.add_paragraph()
    paragraph.add_run("Red words").font.color.rgb = RGBColor(0xFF, 0x00, 0x00)
    paragraph.add_run(" then normal")
    document.add_paragraph("plain")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "A"
    table.cell(0, 1).text = "B"
    cell_paragraph = table.cell(1, 0).paragraphs[0]
    cell_paragraph.add_run("Big").font.size = Pt(20)
    header = document.sections[0].header
    header.is_linked_to_previous = False
    header_paragraph = header.paragraphs[0]
    header_paragraph.text = "Header text"
    header_paragraph.runs[0].bold = True
    return _save(document)


class ExtractorTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.data = _basic_document()
        cls.result = StyleExtractor(write_logs=False).extract(cls.data, document_id="basic")

    def _by_key(self, context_key: str):
        matches = [r for r in self.result.records if r.context_key == context_key]
        self.assertTrue(matches, f"no record at {context_key}")
        return matches[0]

    def test_ids_are_arena_positions(self) -> None:
        self.assertEqual([r.id for r in self.result.records], list(range(len(self.result.records))))
        self.assertTrue(all(r.owning_document_id == "basic" for r in self.result.records))

    def test_heading_paragraph(self) -> None:
        record = self._by_key("Section:0:Paragraph:0")
        self.assertEqual(record.style_type, "Heading")
        self.assertEqual(record.structural_role, "Heading")
        self.assertEqual(record.style_id, "Heading1")
        self.assertEqual(record.context.sample_text, "Title text")
        self.assertEqual(record.context.location, "Section 1, Paragraph 1")
        self.assertIsNotNone(record.resolved_properties.font_family)
        self.assertIsNotNone(record.resolved_properties.font_size)

    def test_run_only_paragraph_is_direct_formatting(self) -> None:
        record = self._by_key("Section:0:Paragraph:1")
        self.assertEqual(record.style_type, "DirectFormatting")
        self.assertEqual(record.name, "DirectFormat_Paragraph_1")
        self.assertEqual(record.resolved_properties.color, "FF0000")
        self.assertEqual(len(record.direct_format_patterns), 1)
        pattern = record.direct_format_patterns[0]
        self.assertEqual(pattern.pattern_context, "Paragraph:1,Run:0")
        self.assertEqual(pattern.overrides.color, "FF0000")
        self.assertEqual(pattern.owner_index, record.id)
        self.assertEqual(pattern.sample_text, "Red words")

    def test_unformatted_paragraph_has_no_record(self) -> None:
        keys = self.result.context_keys()
        self.assertNotIn("Section:0:Paragraph:2", keys)

    def test_table_records(self) -> None:
        table = self._by_key("Section:0:Table:0")
        self.assertEqual(table.style_type, "Table")
        self.assertEqual(table.name, "Table_0")
        rows = self.result.by_type("TableRow")
        self.assertEqual([r.name for r in rows], ["TableRow_0_0", "TableRow_0_1"])
        cells = self.result.by_type("TableCell")
        self.assertEqual(len(cells), 4)
        self.assertEqual(cells[1].context_key, "Section:0:Table:0:Row:0:Cell:1")
        self.assertEqual(cells[1].context.sample_text, "B")
        self.assertEqual(cells[0].structural_role, "TableCell")

    def test_cell_paragraph_owns_run_pattern(self) -> None:
        # paragraphs 0-2 are in the body, cell paragraphs follow in document order
        record = self._by_key("Section:0:Table:0:Row:1:Cell:0:Paragraph:5")
        self.assertEqual(record.style_type, "TableCellParagraph")
        self.assertEqual(record.name, "TableCellParagraph_0_1_0_5")
        self.assertEqual(record.resolved_properties.font_size, 20.0)
        self.assertEqual(record.direct_format_patterns[0].pattern_context, "Paragraph:5,Run:0")
        self.assertIs(self.result.owner_of(record.direct_format_patterns[0]), record)

    def test_header_paragraph(self) -> None:
        record = self._by_key("Header:0:Paragraph:0")
        self.assertEqual(record.style_type, "Header")
        self.assertEqual(record.name, "Header_0_0")
        self.assertTrue(record.context.is_in_header_footer)
        self.assertEqual(record.context.header_footer_type, "default")
        self.assertEqual(record.context.sample_text, "Header text")
        self.assertTrue(record.resolved_properties.is_bold)
        pattern = record.direct_format_patterns[0]
        self.assertEqual(pattern.pattern_name, "Header0_Run_0_0")
        self.assertEqual(pattern.pattern_context, "Header:0,Paragraph:0,Run:0")

    def test_linked_footer_skipped(self) -> None:
        self.assertEqual(self.result.by_type("Footer"), [])

    def test_section_record(self) -> None:
        sections = self.result.by_type("Section")
        self.assertEqual(len(sections), 1)
        self.assertEqual(sections[0].context_key, "Section:0")
        self.assertEqual(sections[0].context.paragraph_range, (0, 6))
        self.assertIsNotNone(sections[0].resolved_properties.page_width)

    def test_style_definitions(self) -> None:
        definitions = self.result.by_type("NamedStyleDefinition")
        self.assertTrue(definitions)
        ids = {r.style_id for r in definitions}
        self.assertIn("Normal", ids)
        self.assertTrue(all(r.structural_role == "DocumentStyle" for r in definitions))

    def test_context_keys_deterministic(self) -> None:
        again = StyleExtractor(write_logs=False).extract(self.data, document_id="basic")
        self.assertEqual(self.result.context_keys(), again.context_keys())
        self.assertEqual(
            [r.signature for r in self.result.records],
            [r.signature for r in again.records],
        )

    def test_no_dropped_patterns(self) -> None:
        self.assertEqual(self.result.dropped_patterns, [])
        self.assertEqual(len(self.result.patterns), sum(len(r.direct_format_patterns) for r in self.result.records))


class SectionExtractionTests(unittest.TestCase):
    def test_multiple_sections(self) -> None:
        document = Document()
        document.sections[0].left_margin = Inches(1.25)
        document.add_paragraph("First section")
        document.add_section(WD_SECTION.NEW_PAGE)
        document.add_paragraph("Second section")
        last = document.sections[-1]
        last.orientation = WD_ORIENT.LANDSCAPE
        last.page_width = Inches(11)
        last.page_height = Inches(8.5)

        result = StyleExtractor(write_logs=False).extract(_save(document))

        sections = result.by_type("Section")
        self.assertEqual([s.name for s in sections], ["Section_0", "Section_1"])
        self.assertEqual(sections[0].context.paragraph_range, (0, 1))
        self.assertEqual(sections[1].context.paragraph_range, (2, 2))
        self.assertEqual(sections[0].resolved_properties.left_margin, 90.0)
        self.assertEqual(sections[0].resolved_properties.section_type, "nextPage")
        self.assertEqual(sections[1].resolved_properties.orientation, "Landscape")
        self.assertEqual(sections[1].resolved_properties.page_width, 792.0)
        self.assertEqual(sections[1].resolved_properties.page_height, 612.0)
        self.assertFalse(sections[1].resolved_properties.mirror_margins)


class BodyIndexTests(unittest.TestCase):
    def test_section_break_paragraph_closes_section(self) -> None:
        document = Document()
        document.add_paragraph("a")
        document.add_section()
        document.add_paragraph("b")
        package = ZipFile(BytesIO(_save(document)))
        root = etree.fromstring(package.read("word/document.xml"))
        index = build_body_index(root.find("w:body", namespaces=NS))
        self.assertEqual(index.section_ranges, [(0, 1), (2, 2)])
        self.assertEqual(sorted(index.paragraphs.values()), [0, 1, 2])


class ExtractorErrorTests(unittest.TestCase):
    def test_invalid_zip(self) -> None:
        with self.assertRaises(StructuralError):
            StyleExtractor(write_logs=False).extract(b"not a zip file")

    def test_missing_main_part(self) -> None:
        buffer = BytesIO()
        with ZipFile(buffer, "w") as archive:
            archive.writestr("word/styles.xml", "<w:styles/>")
        with self.assertRaises(StructuralError):
            StyleExtractor(write_logs=False).extract(buffer.getvalue())

    def test_malformed_main_part(self) -> None:
        data = _replace_part(_save(Document()), "word/document.xml", b"<w:document")
        with self.assertRaises(StructuralError):
            StyleExtractor(write_logs=False).extract(data)

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(FileNotFoundError):
                StyleExtractor(write_logs=False).extract(Path(tmpdir) / "missing.docx")
            with self.assertRaises(IsADirectoryError):
                StyleExtractor(write_logs=False).extract(Path(tmpdir))

    def test_malformed_styles_part_falls_back(self) -> None:
        document = Document()
        document.add_paragraph("Heading", style="Heading 1")
        data = _replace_part(_save(document), "word/styles.xml", b"<w:styles")

        extractor = StyleExtractor(write_logs=False, include_headers_footers=False)
        result = extractor.extract(data)

        record = [r for r in result.records if r.context_key == "Section:0:Paragraph:0"][0]
        self.assertEqual(record.resolved_properties.font_family, "Calibri")
        self.assertEqual(record.resolved_properties.font_size, 11.0)
        self.assertIn("partial_data", [w.rule for w in result.warnings])
        self.assertEqual(result.by_type("NamedStyleDefinition"), [])

    def test_malformed_anchor_offset_skips_drawing_only(self) -> None:
        document_xml = (
            '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'
            ' xmlns:wp="http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing">'
            "<w:body>"
            '<w:p><w:pPr><w:jc w:val="center"/></w:pPr><w:r><w:t>Text</w:t></w:r></w:p>'
            "<w:p><w:r><w:drawing><wp:anchor>"
            '<wp:positionH relativeFrom="column"><wp:posOffset>abc</wp:posOffset></wp:positionH>'
            '<wp:extent cx="635000" cy="635000"/>'
            "</wp:anchor></w:drawing></w:r></w:p>"
            "</w:body></w:document>"
        )
        data = _replace_part(_save(Document()), "word/document.xml", document_xml.encode("utf-8"))

        result = StyleExtractor(write_logs=False, include_headers_footers=False).extract(data)

        keys = [record.context_key for record in result.records]
        self.assertIn("Section:0:Paragraph:0", keys)
        self.assertEqual(result.by_type("Drawing"), [])
        drawing_warnings = [w for w in result.warnings if w.rule == "drawing"]
        self.assertEqual(len(drawing_warnings), 1)
        self.assertEqual(drawing_warnings[0].context_key, "Drawing:0")
        self.assertIn("abc", drawing_warnings[0].reason)

    def test_log_file_written(self) -> None:
        original_log_dir = config.LOG_DIR
        with tempfile.TemporaryDirectory() as tmpdir:
            config.LOG_DIR = Path(tmpdir)
            try:
                path = Path(tmpdir) / "doc.docx"
                path.write_bytes(_basic_document())
                extractor = StyleExtractor(write_logs=True)
                extractor.extract(path)
                logs = list(Path(tmpdir).glob(f"{config.LOG_FILE_PREFIX}_*.log"))
                self.assertEqual(len(logs), 1)
                content = logs[0].read_text(encoding="utf-8")
                self.assertIn(f"source: {path}", content)
                self.assertIn("records_count:", content)
                self.assertGreater(extractor.last_log_state.record_count, 0)
            finally:
                config.LOG_DIR = original_log_dir

    def test_failed_extraction_logs_error(self) -> None:
        extractor = StyleExtractor(write_logs=False)
        with self.assertRaises(StructuralError):
            extractor.extract(b"junk")
        self.assertEqual(extractor.last_log_state.error, "invalid docx file")


def _replace_part(data: bytes, name: str, content: bytes) -> bytes:
    with ZipFile(BytesIO(data)) as archive:
        parts = {item: archive.read(item) for item in archive.namelist()}
    parts[name] = content
    buffer = BytesIO()
    with ZipFile(buffer, "w") as archive:
        for item, payload in parts.items():
            archive.writestr(item, payload)
    return buffer.getvalue()


if __name__ == "__main__":
    unittest.main()
