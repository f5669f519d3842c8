#!/usr/bin/env python3
"""
Tests for content_generator.py with a fake Gemini model factory.

Run with:
    python -m pytest tests/test_content_generator.py
"""
import json
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from attachments import FileAttachment
from content_generator import (
    DEFAULT_DESCRIPTION, GeminiGameGenerator, clean_html_response, fallback_title,
)
from errors import GenerationError, ValidationError
from settings_store import DEFAULT_MAIN_PROMPT

HTML = "<!DOCTYPE html><html><body>Game</body></html>"


def _factory(text=None, error=None):
    """Returns (factory, model) where every call answers ``text`` or raises ``error``."""
    model = MagicMock()
    if error is not None:
        model.generate_content.side_effect = error
    else:
        model.generate_content.return_value = MagicMock(text=text)
    factory = MagicMock(return_value=model)
    return factory, model


class TestCleanHtmlResponse(unittest.TestCase):

    def test_strips_markdown_fence(self):
        self.assertEqual(clean_html_response(f"```html\n{HTML}\n```"), HTML)

    def test_drops_chatter_before_doctype(self):
        self.assertEqual(clean_html_response(f"Sure! Here is your game:\n{HTML}"), HTML)

    def test_without_doctype_starts_at_first_tag(self):
        self.assertEqual(clean_html_response("Here: <html></html>"), "<html></html>")

    def test_no_html_is_an_error(self):
        with self.assertRaises(GenerationError):
            clean_html_response("I cannot help with that.")


class TestGenerate(unittest.TestCase):

    def test_generate_returns_clean_html_and_uses_fast_model(self):
        factory, model = _factory(f"```html\n{HTML}\n```")
        generator = GeminiGameGenerator(model_factory=factory, fast_model='fast-x', thinking_model='pro-x')
        self.assertEqual(generator.generate("Fraction number line quiz"), HTML)
        factory.assert_called_with('fast-x')
        contents = model.generate_content.call_args[0][0]
        self.assertIn(DEFAULT_MAIN_PROMPT, contents[0])
        self.assertIn("Fraction number line quiz", contents[0])

    def test_thinking_mode_and_custom_instruction(self):
        factory, model = _factory(HTML)
        generator = GeminiGameGenerator(model_factory=factory, fast_model='fast-x', thinking_model='pro-x')
        generator.generate("Volcano quiz", mode='thinking', instruction="CUSTOM INSTRUCTION")
        factory.assert_called_with('pro-x')
        self.assertTrue(model.generate_content.call_args[0][0][0].startswith("CUSTOM INSTRUCTION"))

    def test_unknown_mode(self):
        factory, _ = _factory(HTML)
        with self.assertRaises(ValidationError):
            GeminiGameGenerator(model_factory=factory).generate("quiz", mode='turbo')

    def test_empty_prompt_without_attachments(self):
        factory, model = _factory(HTML)
        with self.assertRaises(ValidationError):
            GeminiGameGenerator(model_factory=factory).generate("   ")
        model.generate_content.assert_not_called()

    def test_attachment_only_request_sends_parts(self):
        factory, model = _factory(HTML)
        image = FileAttachment('map.png', 'image/png', b'png-bytes')
        blocked = FileAttachment('virus.exe', 'application/octet-stream', b'MZ')
        GeminiGameGenerator(model_factory=factory).generate("", [image, blocked])
        contents = model.generate_content.call_args[0][0]
        self.assertEqual(contents[1:], [{'mime_type': 'image/png', 'data': b'png-bytes'}])

    def test_model_failure_becomes_generation_error(self):
        factory, _ = _factory(error=RuntimeError("quota exceeded"))
        with self.assertRaises(GenerationError):
            GeminiGameGenerator(model_factory=factory).generate("Fraction quiz")


class TestRefine(unittest.TestCase):

    def test_refine_sends_current_html_and_change(self):
        factory, model = _factory("<!DOCTYPE html><html>H2</html>")
        result = GeminiGameGenerator(model_factory=factory).refine("add a timer", "<html>H1</html>")
        self.assertEqual(result, "<!DOCTYPE html><html>H2</html>")
        prompt = model.generate_content.call_args[0][0][0]
        self.assertIn("<html>H1</html>", prompt)
        self.assertIn("add a timer", prompt)

    def test_refine_requires_change(self):
        factory, _ = _factory(HTML)
        with self.assertRaises(ValidationError):
            GeminiGameGenerator(model_factory=factory).refine("", HTML)

    def test_refine_failure(self):
        factory, _ = _factory(error=RuntimeError("boom"))
        with self.assertRaises(GenerationError):
            GeminiGameGenerator(model_factory=factory).refine("add a timer", HTML)


class TestMetadata(unittest.TestCase):

    def test_title_strips_quotes_and_bold(self):
        factory, _ = _factory('"**Fraction Frenzy**"')
        self.assertEqual(GeminiGameGenerator(model_factory=factory).title("fractions"), "Fraction Frenzy")

    def test_title_falls_back_to_prompt(self):
        factory, _ = _factory(error=RuntimeError("down"))
        prompt = "A very long prompt about the water cycle"
        self.assertEqual(GeminiGameGenerator(model_factory=factory).title(prompt), fallback_title(prompt))
        self.assertEqual(fallback_title(prompt), prompt[:22] + '...')
        self.assertEqual(fallback_title("Short prompt"), "Short prompt")

    def test_description_falls_back(self):
        factory, _ = _factory(error=RuntimeError("down"))
        self.assertEqual(GeminiGameGenerator(model_factory=factory).describe("x"), DEFAULT_DESCRIPTION)


class TestIdeas(unittest.TestCase):

    IDEAS = [{'title': f"Idea {i}", 'description': 'd', 'prompt': 'p'} for i in range(4)]

    def test_returns_three_ideas_from_thinking_model(self):
        factory, _ = _factory(f"```json\n{json.dumps(self.IDEAS)}\n```")
        generator = GeminiGameGenerator(model_factory=factory, thinking_model='pro-x')
        ideas = generator.ideas('Science', 5, 'planets')
        self.assertEqual([i['title'] for i in ideas], ['Idea 0', 'Idea 1', 'Idea 2'])
        factory.assert_called_with('pro-x')

    def test_too_few_ideas(self):
        factory, _ = _factory(json.dumps(self.IDEAS[:2]))
        with self.assertRaises(GenerationError):
            GeminiGameGenerator(model_factory=factory).ideas('Science', 5)

    def test_unparseable_ideas(self):
        factory, _ = _factory("not json")
        with self.assertRaises(GenerationError):
            GeminiGameGenerator(model_factory=factory).ideas('Math', 2)

    def test_unknown_subject(self):
        factory, _ = _factory("[]")
        with self.assertRaises(ValidationError):
            GeminiGameGenerator(model_factory=factory).ideas('Cooking', 2)


if __name__ == '__main__':
    unittest.main()
