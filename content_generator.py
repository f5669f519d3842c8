# content_generator.py

import google.generativeai as genai
from google.generativeai.types import HarmCategory, HarmBlockThreshold
import json
import logging
import os
import re

from attachments import filter_attachments
from constants import SUBJECTS
from errors import GenerationError, ValidationError
from settings_store import DEFAULT_MAIN_PROMPT, DEFAULT_REFINEMENT_PROMPT

DEFAULT_FAST_MODEL = 'gemini-1.5-flash-latest'
DEFAULT_THINKING_MODEL = 'gemini-1.5-pro-latest'
GENERATION_MODES = ('fast', 'thinking')

DEFAULT_DESCRIPTION = "An AI-generated learning game that makes practice fun and interactive."

SAFETY_SETTINGS = {HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE}

GENERATE_TEMPLATE = """{instruction}

---
USER REQUEST:
{request}
---

Create the game now. Start directly with <!DOCTYPE html>"""

ATTACHMENT_ONLY_REQUEST = "Build the game from the attached material."

REFINE_TEMPLATE = """{instruction}

---
CURRENT GAME CODE:
{current_html}
---

REQUESTED CHANGE:
{change}
---

Return the complete updated HTML code now. Start directly with <!DOCTYPE html>"""

DESCRIPTION_TEMPLATE = """Write a short, engaging description (at most 15 words) for this learning game:

"{prompt}"

Rules:
- Briefly explain what players do and learn
- Use active, inviting language suitable for students
- ONLY the description, nothing else"""

TITLE_TEMPLATE = """Create a short, catchy game title (2-4 words) for:

"{prompt}"

Rules:
- Creative and child-friendly
- No colon, no quotation marks
- ONLY the title, nothing else"""

IDEAS_TEMPLATE = """You are a creative designer of educational games.

TASK: Generate 3 COMPLETELY DIFFERENT and CREATIVE game ideas for:
- Subject: {subject}
- Grade: {grade}{keywords}

OUTPUT FORMAT (JSON array, nothing else):
[
  {{
    "title": "Short, catchy title",
    "description": "1-2 sentences on what makes the game special",
    "prompt": "Detailed prompt for generating the game (at least 50 words)"
  }}
]

Answer ONLY with the JSON array, no markdown, no explanations."""


def clean_html_response(text: str) -> str:
    """Strips markdown fences and any chatter before the HTML document."""
    html = (text or '').strip()
    html = re.sub(r'^```(?:html)?\s*', '', html, flags=re.IGNORECASE)
    html = re.sub(r'\s*```$', '', html)
    html = html.strip()

    doctype_index = html.lower().find('<!doctype')
    if doctype_index > 0:
        html = html[doctype_index:]
    elif doctype_index == -1:
        tag_index = html.find('<')
        if tag_index == -1:
            raise GenerationError("The AI did not return a valid game. Please try again.")
        html = html[tag_index:]
    return html


def _clean_json_response(text: str) -> str:
    clean = (text or '').strip()
    clean = re.sub(r'^```(?:json)?\s*', '', clean, flags=re.IGNORECASE)
    clean = re.sub(r'\s*```$', '', clean)
    return clean.strip()


def fallback_title(prompt: str) -> str:
    return f"{prompt[:22]}..." if len(prompt) > 25 else prompt


class GeminiGameGenerator:
    """
    Turns prompts (and optional attachments) into self-contained HTML games
    using Gemini. The model factory is injectable so tests can pass a fake.
    """

    def __init__(self, model_factory=None, fast_model: str = None, thinking_model: str = None):
        self._model_factory = model_factory or genai.GenerativeModel
        self._model_names = {
            'fast': fast_model or os.getenv('GEMINI_FAST_MODEL', DEFAULT_FAST_MODEL),
            'thinking': thinking_model or os.getenv('GEMINI_THINKING_MODEL', DEFAULT_THINKING_MODEL),
        }

    def _model(self, mode: str):
        if mode not in GENERATION_MODES:
            raise ValidationError(f"Unknown generation mode '{mode}'.", field='mode')
        return self._model_factory(self._model_names[mode])

    def _ask(self, mode: str, contents) -> str:
        response = self._model(mode).generate_content(contents, safety_settings=SAFETY_SETTINGS)
        return response.text.strip()

    @staticmethod
    def _contents(text: str, attachments) -> list:
        parts = [text]
        for attachment in attachments:
            parts.append({'mime_type': attachment.mime_type, 'data': attachment.data})
        return parts

    def generate(self, prompt: str, attachments=(), mode: str = 'fast', instruction: str = None) -> str:
        """Generates a complete HTML game from a prompt and/or attachments."""
        prompt = (prompt or '').strip()
        accepted, _ = filter_attachments(attachments)
        if not prompt and not accepted:
            raise ValidationError("Please describe your game or attach a file.", field='prompt')

        full_prompt = GENERATE_TEMPLATE.format(
            instruction=instruction or DEFAULT_MAIN_PROMPT,
            request=prompt or ATTACHMENT_ONLY_REQUEST,
        )
        try:
            raw = self._ask(mode, self._contents(full_prompt, accepted))
        except ValidationError:
            raise
        except Exception as e:
            logging.error(f"Gemini generation failed for prompt '{prompt[:60]}': {e}")
            raise GenerationError("The game could not be generated. Please try again.") from e
        return clean_html_response(raw)

    def refine(self, change: str, current_html: str, attachments=(), mode: str = 'fast',
               instruction: str = None) -> str:
        """Applies a requested change to the current HTML and returns the full new document."""
        change = (change or '').strip()
        accepted, _ = filter_attachments(attachments)
        if not change and not accepted:
            raise ValidationError("Please describe the change you want.", field='instruction')
        if not current_html:
            raise ValidationError("There is no game to refine.", field='htmlContent')

        full_prompt = REFINE_TEMPLATE.format(
            instruction=instruction or DEFAULT_REFINEMENT_PROMPT,
            current_html=current_html,
            change=change or ATTACHMENT_ONLY_REQUEST,
        )
        try:
            raw = self._ask(mode, self._contents(full_prompt, accepted))
        except ValidationError:
            raise
        except Exception as e:
            logging.error(f"Gemini refinement failed for change '{change[:60]}': {e}")
            raise GenerationError("The game could not be updated. Please try again.") from e
        return clean_html_response(raw)

    def describe(self, prompt: str) -> str:
        try:
            text = self._ask('fast', DESCRIPTION_TEMPLATE.format(prompt=prompt))
            return text or DEFAULT_DESCRIPTION
        except Exception as e:
            logging.warning(f"Description generation failed, using default: {e}")
            return DEFAULT_DESCRIPTION

    def title(self, prompt: str) -> str:
        try:
            text = self._ask('fast', TITLE_TEMPLATE.format(prompt=prompt))
            text = re.sub(r'^["\']|["\']$', '', text).replace('**', '').strip()
            return text or fallback_title(prompt)
        except Exception as e:
            logging.warning(f"Title generation failed, using prompt: {e}")
            return fallback_title(prompt)

    def ideas(self, subject: str, grade: int, keywords: str = None) -> list:
        """Returns three game ideas ({title, description, prompt}) for a subject and grade."""
        if subject not in SUBJECTS:
            raise ValidationError(f"Please choose a subject: {', '.join(SUBJECTS)}.", field='subject')

        keyword_part = f"\n- Optional topics/keywords: {keywords}" if keywords else ''
        prompt = IDEAS_TEMPLATE.format(subject=subject, grade=grade, keywords=keyword_part)
        try:
            raw = self._ask('thinking', prompt)
            ideas = json.loads(_clean_json_response(raw))
        except Exception as e:
            logging.error(f"Could not generate or parse game ideas for {subject}/{grade}: {e}")
            raise GenerationError("Game ideas could not be generated. Please try again.") from e

        valid = [
            {'title': str(i['title']), 'description': str(i['description']), 'prompt': str(i['prompt'])}
            for i in ideas if isinstance(i, dict) and all(i.get(k) for k in ('title', 'description', 'prompt'))
        ] if isinstance(ideas, list) else []
        if len(valid) < 3:
            logging.error(f"AI returned {len(valid)} usable ideas for {subject}/{grade}: {raw[:200]}")
            raise GenerationError("Game ideas could not be generated. Please try again.")
        return valid[:3]
