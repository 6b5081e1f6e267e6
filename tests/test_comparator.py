import unittest

from docstyle_verify.cancellation import CancellationToken
from docstyle_verify.comparator import StyleComparator, property_differences, property_severity
from docstyle_verify.errors import ProcessingCancelled
from docstyle_verify.models import (
    DIRECT_FORMATTING_MISMATCH,
    EXTRA_DIRECT_FORMATTING,
    EXTRA_STYLE,
    MISSING_DIRECT_FORMATTING,
    MISSING_STYLE,
    PROPERTY_MISMATCH,
    UNEXPECTED_FORMATTING,
    DirectFormatPattern,
    FormattingContext,
    StyleRecord,
)
from docstyle_verify.properties import FormattingProperties
from docstyle_verify.signature import compute_signature


def _style(
    name: str,
    context_key: str,
    props: FormattingProperties,
    style_type: str = "Paragraph",
    role: str = "Body",
    sample_text: str = "Some text",
    patterns: list[DirectFormatPattern] | None = None,
) -> StyleRecord:
    return StyleRecord(
        id=0,
        owning_document_id="doc",
        style_type=style_type,
        name=name,
        resolved_properties=props,
        signature=compute_signature(props, style_type),
        context=FormattingContext.from_key(context_key, "Paragraph", role, sample_text=sample_text),
        direct_format_patterns=list(patterns or []),
    )


def _pattern(context: str, sample_text: str = "Red text", **overrides) -> DirectFormatPattern:
    return DirectFormatPattern(
        pattern_name=f"Run_{context}",
        pattern_context=context,
        overrides=FormattingProperties(**overrides),
        sample_text=sample_text,
    )


ARIAL = FormattingProperties(font_family="Arial", font_size=14.0, is_bold=True)
CALIBRI = FormattingProperties(font_family="Calibri", font_size=12.0, is_bold=False)


class PropertyDiffTests(unittest.TestCase):
    def test_scenario_font_mismatch(self) -> None:
        template = [_style("Body_5", "Section:0:Paragraph:5", ARIAL)]
        document = [_style("Body_5", "Section:0:Paragraph:5", CALIBRI)]

        mismatches = StyleComparator().compare(template, document, strict_mode=True)

        self.assertEqual(len(mismatches), 1)
        mismatch = mismatches[0]
        self.assertEqual(mismatch.mismatched_fields, ["FontFamily", "FontSize", "IsBold"])
        self.assertEqual(mismatch.severity, "High")
        self.assertEqual(mismatch.mismatch_type, PROPERTY_MISMATCH)
        self.assertEqual(mismatch.context_key, "Section:0:Paragraph:5")
        self.assertEqual(mismatch.location, "Section 1, Paragraph 6")
        self.assertEqual(mismatch.expected["FontFamily"], "Arial")
        self.assertEqual(mismatch.actual["FontFamily"], "Calibri")
        self.assertNotIn("IsBold", mismatch.actual)
        self.assertEqual(
            mismatch.recommended_action,
            "Correct the following properties to match the template: FontFamily, FontSize, IsBold",
        )

    def test_tolerance_by_mode(self) -> None:
        template = [_style("P", "Section:0:Paragraph:0", FormattingProperties(font_size=12.0))]
        document = [_style("P", "Section:0:Paragraph:0", FormattingProperties(font_size=12.5))]
        comparator = StyleComparator()
        strict = comparator.compare(template, document, strict_mode=True)
        lenient = comparator.compare(template, document, strict_mode=False)
        self.assertEqual(strict[0].mismatched_fields, ["FontSize"])
        self.assertEqual(strict[0].severity, "Medium")
        self.assertEqual(strict[0].recommended_action, "Correct the FontSize property to match the template")
        self.assertEqual(lenient, [])

    def test_case_insensitive_font_and_alignment(self) -> None:
        template = [_style("P", "Section:0:Paragraph:0", FormattingProperties(font_family="Arial", alignment="CENTER"))]
        document = [_style("P", "Section:0:Paragraph:0", FormattingProperties(font_family="arial", alignment="center"))]
        self.assertEqual(StyleComparator().compare(template, document), [])

    def test_extra_field_on_document_side(self) -> None:
        differences = property_differences({"FontFamily": "Arial"}, {"FontFamily": "Arial", "Color": "FF0000"}, 0.1)
        self.assertEqual(differences, ["Extra_Color"])
        self.assertEqual(property_severity(differences), "High")
        self.assertEqual(property_severity(["SpacingBefore"]), "Low")
        self.assertEqual(property_severity(["Extra_LineSpacing"]), "Medium")


class MatchingTests(unittest.TestCase):
    def test_signature_fallback_reports_nothing(self) -> None:
        template = [_style("Body_5", "Section:0:Paragraph:5", ARIAL)]
        document = [_style("Body_9", "Section:0:Paragraph:9", ARIAL)]
        self.assertEqual(StyleComparator().compare(template, document), [])

    def test_name_and_type_fallback(self) -> None:
        template = [_style("Quote_1", "Section:0:Paragraph:1", ARIAL)]
        document = [_style("Quote_1", "Section:1:Paragraph:4", CALIBRI)]
        mismatches = StyleComparator().compare(template, document)
        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0].mismatch_type, PROPERTY_MISMATCH)

    def test_role_and_position_fallback(self) -> None:
        template = [_style("Normal_3", "Section:0:Paragraph:3", ARIAL)]
        document = [_style("Body Text_3", "Section:0:ListItem:0:Paragraph:3", CALIBRI)]
        self.assertNotEqual(template[0].signature, document[0].signature)

        mismatches = StyleComparator().compare(template, document)

        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0].mismatch_type, PROPERTY_MISMATCH)
        self.assertEqual(mismatches[0].context_key, "Section:0:Paragraph:3")
        self.assertEqual(mismatches[0].mismatched_fields, ["FontFamily", "FontSize", "IsBold"])

    def test_missing_style(self) -> None:
        template = [_style("Heading 1_0", "Section:0:Paragraph:0", ARIAL, style_type="Heading", role="Heading")]
        mismatches = StyleComparator().compare(template, [])
        self.assertEqual(len(mismatches), 1)
        mismatch = mismatches[0]
        self.assertEqual(mismatch.mismatch_type, MISSING_STYLE)
        self.assertEqual(mismatch.actual, {"Status": "Missing"})
        self.assertEqual(mismatch.mismatched_fields, ["EntireStyle"])
        self.assertEqual(mismatch.severity, "High")
        self.assertEqual(mismatch.recommended_action, "Apply the expected style 'Heading 1_0' to this location")

    def test_ignored_style_types(self) -> None:
        template = [_style("Heading 1_0", "Section:0:Paragraph:0", ARIAL, style_type="Heading")]
        self.assertEqual(StyleComparator().compare(template, [], ignored_style_types=["Heading"]), [])

    def test_cancellation_checked(self) -> None:
        token = CancellationToken()
        token.cancel()
        template = [_style("P", "Section:0:Paragraph:0", ARIAL)]
        with self.assertRaises(ProcessingCancelled):
            StyleComparator().compare(template, template, token=token)


class UnmatchedDocumentTests(unittest.TestCase):
    def test_structural_role_gives_unexpected_formatting(self) -> None:
        document = [
            _style(
                "TableCell_0_0_0",
                "Section:0:Table:0:Row:0:Cell:0",
                FormattingProperties(cell_background_color="FFFF00"),
                style_type="TableCell",
                role="TableCell",
            )
        ]
        mismatches = StyleComparator().compare([], document)
        self.assertEqual(len(mismatches), 1)
        mismatch = mismatches[0]
        self.assertEqual(mismatch.mismatch_type, UNEXPECTED_FORMATTING)
        self.assertEqual(mismatch.severity, "Medium")
        self.assertEqual(mismatch.expected, {"ExtraFormatting": "None"})
        self.assertEqual(mismatch.mismatched_fields, ["Extra_CellBackgroundColor"])
        self.assertEqual(
            mismatch.recommended_action,
            "Remove the extra formatting from this tablecell to match the template",
        )

    def test_unexpected_formatting_prefers_pattern_overrides(self) -> None:
        document = [
            _style(
                "Paragraph_3",
                "Section:0:Paragraph:3",
                ARIAL,
                patterns=[_pattern("Paragraph:3,Run:0", color="FF0000")],
            )
        ]
        mismatch = StyleComparator().compare([], document)[0]
        self.assertEqual(mismatch.actual, {"Color": "FF0000"})
        self.assertEqual(mismatch.mismatched_fields, ["Extra_Color"])

    def test_other_role_should_not_exist(self) -> None:
        document = [
            _style(
                "Drawing_0",
                "Section:0:Paragraph:2:Drawing:0",
                FormattingProperties(image_width=100.0),
                style_type="Drawing",
                role="Drawing",
            )
        ]
        mismatch = StyleComparator().compare([], document)[0]
        self.assertEqual(mismatch.mismatch_type, EXTRA_STYLE)
        self.assertEqual(mismatch.expected, {"Status": "Should not exist"})
        self.assertEqual(mismatch.mismatched_fields, ["EntireStyle"])
        self.assertEqual(mismatch.severity, "Medium")

    def test_noise_filtering(self) -> None:
        template = [_style("P", "Section:0:Paragraph:0", ARIAL, sample_text="")]
        document = [
            _style("P", "Section:0:Paragraph:0", CALIBRI, sample_text="   "),
            _style("Drawing_0", "Drawing:0", FormattingProperties(image_width=1.0), role="Drawing", sample_text=""),
        ]
        self.assertEqual(StyleComparator().compare(template, document), [])


class PatternDiffTests(unittest.TestCase):
    def test_missing_direct_formatting(self) -> None:
        template = [
            _style("Body_5", "Section:0:Paragraph:5", ARIAL, patterns=[_pattern("Paragraph:5,Run:0", color="FF0000")])
        ]
        document = [_style("Body_5", "Section:0:Paragraph:5", ARIAL)]

        mismatches = StyleComparator().compare(template, document)

        missing = [m for m in mismatches if m.mismatch_type == MISSING_DIRECT_FORMATTING]
        self.assertEqual(len(missing), 1)
        self.assertEqual(missing[0].severity, "Medium")
        self.assertEqual(missing[0].context_key, "Section:0:Paragraph:5:Paragraph:5,Run:0")
        self.assertEqual(missing[0].expected, {"Color": "FF0000"})
        self.assertEqual(missing[0].actual, {"Status": "Missing"})
        self.assertEqual(missing[0].structural_role, "DirectFormatting")
        property_mismatch = [m for m in mismatches if m.mismatch_type == PROPERTY_MISMATCH]
        self.assertEqual(property_mismatch[0].mismatched_fields, ["Color"])
        self.assertEqual(
            property_mismatch[0].recommended_action,
            "Apply the required direct formatting to 'Body_5' as specified in the template",
        )

    def test_differing_and_extra_patterns(self) -> None:
        template = [
            _style("Body_1", "Section:0:Paragraph:1", ARIAL, patterns=[_pattern("Paragraph:1,Run:0", is_italic=True)])
        ]
        document = [
            _style(
                "Body_1",
                "Section:0:Paragraph:1",
                ARIAL,
                patterns=[
                    _pattern("Paragraph:1,Run:0", is_italic=True, font_size=20.0),
                    _pattern("Paragraph:1,Run:1", color="00FF00"),
                ],
            )
        ]

        mismatches = StyleComparator().compare(template, document)

        by_type = {m.mismatch_type: m for m in mismatches}
        self.assertEqual(by_type[DIRECT_FORMATTING_MISMATCH].mismatched_fields, ["Extra_FontSize"])
        self.assertEqual(by_type[DIRECT_FORMATTING_MISMATCH].severity, "Low")
        self.assertEqual(by_type[EXTRA_DIRECT_FORMATTING].severity, "High")
        self.assertEqual(by_type[EXTRA_DIRECT_FORMATTING].expected, {"Status": "Should not exist"})

    def test_pattern_severity_by_field(self) -> None:
        template = [
            _style("Body_1", "Section:0:Paragraph:1", ARIAL, patterns=[_pattern("Paragraph:1,Run:0", font_size=20.0)])
        ]
        document = [
            _style("Body_1", "Section:0:Paragraph:1", ARIAL, patterns=[_pattern("Paragraph:1,Run:0", font_size=10.0)])
        ]
        mismatches = StyleComparator().compare(template, document)
        pattern_mismatch = [m for m in mismatches if m.mismatch_type == DIRECT_FORMATTING_MISMATCH][0]
        self.assertEqual(pattern_mismatch.mismatched_fields, ["FontSize"])
        self.assertEqual(pattern_mismatch.severity, "Medium")


if __name__ == "__main__":
    unittest.main()
