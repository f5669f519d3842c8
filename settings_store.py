# settings_store.py

import json
import logging
import os
import re
import tempfile

MIN_PROMPT_LENGTH = 50
MAX_PROMPT_LENGTH = 10000
REQUIRED_PROMPT_TERMS = ('html', 'game')
UNSAFE_PROMPT_PATTERNS = (
    ('eval(', re.compile(r'eval\s*\(', re.IGNORECASE)),
    ('document.write', re.compile(r'document\.write', re.IGNORECASE)),
    ('innerHTML=', re.compile(r'innerHTML\s*=', re.IGNORECASE)),
    ('outerHTML=', re.compile(r'outerHTML\s*=', re.IGNORECASE)),
)

DEFAULT_MAIN_PROMPT = """
You are an experienced web developer who specializes in interactive, fun and educational browser minigames for children.

YOUR TASK:
Generate the complete code for a minigame based on the user's request.

TECHNICAL REQUIREMENTS:
- The whole game must live in a single HTML file
- CSS inside a <style> tag in the <head>
- JavaScript inside a <script> tag at the end of the <body>
- No external libraries, CDNs, fonts, images or other assets
- The game runs inside a sandboxed frame that only allows scripts and forms: no top-level navigation, no popups, no cookies or storage
- Responsive design (works on desktop and tablet)

DESIGN REQUIREMENTS:
- Modern, child-friendly look with vivid colours
- Clear, readable fonts (at least 16px)
- Large, easy to click buttons (at least 44x44px)
- Visual feedback on interaction and rewarding animations on success

GAME STRUCTURE:
1. Start screen with a title and a "Start game" button
2. Clear instructions
3. Interactive gameplay with a score
4. Feedback for right and wrong answers
5. End screen with the result and a "Play again" option

TEACHING:
- Age-appropriate content and difficulty
- Positive reinforcement for success, encouragement after mistakes
- Clear learning goals

OUTPUT FORMAT:
Your answer must be ONLY the raw HTML code.
Start directly with <!DOCTYPE html> - NO markdown, NO explanations.
""".strip()

DEFAULT_REFINEMENT_PROMPT = """
You are a web developer improving an existing single-file HTML minigame.

YOUR TASK:
Implement the requested changes and return the complete, updated HTML code of the game.

RULES:
- Keep the single-file structure (inline CSS and JS, no external resources)
- Keep every existing feature that is not supposed to change
- Make sure the game is fully playable after the change
- The game still runs inside a sandboxed frame that only allows scripts and forms

OUTPUT FORMAT:
Your answer must be ONLY the raw HTML code.
Start directly with <!DOCTYPE html> - NO markdown, NO explanations.
""".strip()


def default_settings() -> dict:
    return {
        'mainPrompt': DEFAULT_MAIN_PROMPT,
        'refinementPrompt': DEFAULT_REFINEMENT_PROMPT,
        'useCustomPrompts': False,
    }


def validate_prompt(prompt: str):
    """
    Checks a candidate custom instruction prompt.
    Returns (is_valid, errors) so the settings surface can show every problem at once.
    """
    errors = []
    if not isinstance(prompt, str):
        return False, ['Prompt must be text.']

    if len(prompt) < MIN_PROMPT_LENGTH:
        errors.append(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long.")
    if len(prompt) > MAX_PROMPT_LENGTH:
        errors.append(f"Prompt must be at most {MAX_PROMPT_LENGTH:,} characters long.")

    lowered = prompt.lower()
    for term in REQUIRED_PROMPT_TERMS:
        if term not in lowered:
            errors.append(f"Prompt must mention '{term}'.")

    for label, pattern in UNSAFE_PROMPT_PATTERNS:
        if pattern.search(prompt):
            errors.append(f"Prompt contains an unsafe pattern: {label}")

    return not errors, errors


def resolve_instruction(settings: dict, kind: str) -> str:
    """
    Picks the instruction text for 'main' or 'refinement' generation.
    A custom prompt is used only when enabled and valid; otherwise the
    built-in default is returned without surfacing an error.
    """
    key = 'mainPrompt' if kind == 'main' else 'refinementPrompt'
    default = default_settings()[key]
    if not settings or not settings.get('useCustomPrompts'):
        return default

    custom = settings.get(key)
    is_valid, errors = validate_prompt(custom)
    if not is_valid:
        logging.info(f"Custom {kind} prompt rejected, using default: {errors}")
        return default
    return custom


class SettingsStore:
    """
    Holds the generation settings and persists them as a JSON file.

    The file is written atomically (temp file + rename). A missing, corrupt or
    structurally invalid file yields the defaults.
    """

    def __init__(self, file_path: str = None):
        self._path = file_path or os.path.join(os.path.expanduser('~'), '.edugame', 'settings.json')
        self.settings = self._load()

    def _load(self) -> dict:
        if os.path.exists(self._path):
            try:
                with open(self._path, 'r', encoding='utf-8') as fh:
                    parsed = json.load(fh)
                if (isinstance(parsed, dict) and isinstance(parsed.get('mainPrompt'), str)
                        and isinstance(parsed.get('refinementPrompt'), str)):
                    merged = {**default_settings(), **parsed}
                    merged['useCustomPrompts'] = bool(parsed.get('useCustomPrompts'))
                    return merged
                logging.warning(f"Ignoring settings file with unexpected structure: {self._path}")
            except (json.JSONDecodeError, OSError) as e:
                logging.warning(f"Failed to load settings from {self._path}: {e}")
        return default_settings()

    def _save(self):
        dir_name = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(dir_name, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(self.settings, fh, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            logging.warning(f"Failed to save settings to {self._path}: {e}")
            try:
                os.unlink(tmp_path)
            except OSError:
                pass

    def update(self, **updates) -> dict:
        unknown = set(updates) - set(default_settings())
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self.settings = {**self.settings, **updates}
        self._save()
        return self.settings

    def reset_to_defaults(self) -> dict:
        self.settings = default_settings()
        self._save()
        return self.settings

    def instruction_for(self, kind: str) -> str:
        return resolve_instruction(self.settings, kind)
