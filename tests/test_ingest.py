from __future__ import annotations

import unittest

from apps.analyzer.ingest import chapter_from_payload, chapter_from_text, sections_from_markdown
from chaptercheck.core.validation import ChapterInputError, check_chapter_input

MARKDOWN = "Opening words.\n\n# Alpha\nAlpha body.\n\n## Beta\nBeta body.\n```\n# not a heading\n```\n# Alpha\nAgain.\n"


class MarkdownSectionTests(unittest.TestCase):
    def test_sections_are_contiguous_and_cover_text(self) -> None:
        sections = sections_from_markdown(MARKDOWN, fallback_title="Preface")
        self.assertEqual([s.id for s in sections], ["preface", "alpha", "beta", "alpha-2"])
        self.assertEqual([s.level for s in sections], [1, 1, 2, 1])
        self.assertEqual(sections[0].start, 0)
        self.assertEqual(sections[-1].end, len(MARKDOWN))
        for left, right in zip(sections, sections[1:]):
            self.assertEqual(left.end, right.start)
        for section in sections:
            self.assertEqual(MARKDOWN[section.start : section.end], section.text)
        self.assertIn("# not a heading", sections[2].text)

    def test_text_without_headings_is_one_section(self) -> None:
        sections = sections_from_markdown("Just prose.", fallback_title="Untitled")
        self.assertEqual(len(sections), 1)
        self.assertEqual(sections[0].id, "section-1")
        self.assertEqual((sections[0].start, sections[0].end), (0, len("Just prose.")))

    def test_preamble_without_title_gets_positional_id(self) -> None:
        sections = sections_from_markdown("Lead in.\n# Heading\nBody.\n")
        self.assertEqual([s.id for s in sections], ["section-1", "heading"])


class ChapterFromTextTests(unittest.TestCase):
    def test_defaults(self) -> None:
        chapter = chapter_from_text("Some chapter text.", title="Intro", domain="chemistry")
        self.assertTrue(chapter.id.startswith("chapter-"))
        self.assertEqual(chapter.id, chapter_from_text("Some chapter text.").id)
        self.assertEqual(len(chapter.sections), 1)
        self.assertEqual(chapter.sections[0].title, "Intro")
        self.assertEqual(chapter.metadata.domain, "chemistry")
        self.assertEqual(chapter.word_count, 3)

    def test_rejects_non_text(self) -> None:
        for bad in (None, 42, b"bytes"):
            with self.assertRaises(ChapterInputError):
                chapter_from_text(bad)

    def test_check_reports_every_problem(self) -> None:
        result = check_chapter_input("text", [])
        self.assertFalse(result.valid)
        empty = check_chapter_input("", [])
        self.assertTrue(empty.valid)
        self.assertTrue(empty.has_warnings)


class PayloadTests(unittest.TestCase):
    CONTENT = "Part one text. Part two text."

    def test_payload_with_offsets_and_camel_case_config(self) -> None:
        payload = {
            "chapter": {
                "id": "c1",
                "title": "Sample",
                "content": self.CONTENT,
                "sections": [
                    {"id": "one", "title": "One", "startOffset": 0, "endOffset": 14},
                    {"id": "two", "title": "Two", "startOffset": 15, "endOffset": len(self.CONTENT)},
                ],
            },
            "config": {"domain": "Chemistry", "readingLevel": "college", "conceptExtractionThreshold": 0.5, "detailedReport": True},
        }
        chapter, config = chapter_from_payload(payload)
        self.assertEqual(chapter.id, "c1")
        self.assertEqual([s.text for s in chapter.sections], ["Part one text.", "Part two text."])
        self.assertEqual(config.domain, "chemistry")
        self.assertEqual(config.reading_level, "college")
        self.assertTrue(config.detailed_report)
        self.assertEqual(chapter.metadata.reading_level, "college")

    def test_sections_located_by_text(self) -> None:
        payload = {"content": self.CONTENT, "sections": [{"text": "Part one text."}, {"text": "Part two text."}]}
        chapter, config = chapter_from_payload(payload)
        self.assertEqual([(s.start, s.end) for s in chapter.sections], [(0, 14), (15, 29)])
        self.assertEqual(config.domain, "general")

    def test_missing_sections_get_whole_text_section(self) -> None:
        chapter, _ = chapter_from_payload({"chapter": {"content": self.CONTENT}})
        self.assertEqual(len(chapter.sections), 1)
        self.assertEqual(chapter.sections[0].end, len(self.CONTENT))

    def test_mismatched_offsets_are_input_errors(self) -> None:
        payload = {"content": self.CONTENT, "sections": [{"start": 0, "end": 99}]}
        with self.assertRaises(ChapterInputError):
            chapter_from_payload(payload)
        payload = {"content": self.CONTENT, "sections": [{"start": 0, "end": 5, "text": "Other"}]}
        with self.assertRaises(ChapterInputError):
            chapter_from_payload(payload)

    def test_invalid_config_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            chapter_from_payload({"chapter": {"content": self.CONTENT}, "config": {"conceptExtractionThreshold": 0}})

    def test_non_text_content(self) -> None:
        with self.assertRaises(ChapterInputError):
            chapter_from_payload({"chapter": {"content": ["not", "text"]}})
