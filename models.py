# models.py
"""
Helpers for game records.

Games travel as plain dicts keyed by their JSON field names. Whether a game is
a local draft or a stored record is answered by :func:`provenance`, which looks
at the save state instead of parsing the id prefix.
"""

import random
import string
import time
from datetime import datetime
from typing import NamedTuple, Optional, Union

from constants import GRADES, SUBJECTS
from errors import ValidationError

REQUIRED_GAME_FIELDS = ('id', 'title', 'description', 'grade', 'subject', 'htmlContent')
EDITABLE_GAME_FIELDS = ('title', 'description', 'grade', 'subject', 'htmlContent', 'isPublic', 'creatorName')

UNSET_GRADE = 0
UNSET_SUBJECT = ''


class LocalDraft(NamedTuple):
    temp_id: str


class Persisted(NamedTuple):
    id: str
    owner_id: Optional[str]


def provenance(game: dict) -> Union[LocalDraft, Persisted]:
    if game.get('isSavedToDB'):
        return Persisted(game['id'], game.get('userId'))
    return LocalDraft(game['id'])


def is_persisted(game: dict) -> bool:
    return isinstance(provenance(game), Persisted)


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_draft_id() -> str:
    return f"gen-{_now_ms()}"


def new_fork_id() -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"fork-{_now_ms()}-{suffix}"


def new_draft(title: str, description: str, html_content: str) -> dict:
    """Builds a freshly generated game with grade and subject left unset."""
    return {
        'id': new_draft_id(),
        'title': title,
        'description': description,
        'grade': UNSET_GRADE,
        'subject': UNSET_SUBJECT,
        'htmlContent': html_content,
        'isSavedToDB': False,
        'isPublic': False,
        'playCount': 0,
        'likes': 0,
        'dislikes': 0,
        'likedBy': [],
        'dislikedBy': [],
    }


def is_valid_grade(grade) -> bool:
    return isinstance(grade, int) and not isinstance(grade, bool) and grade in GRADES


def is_valid_subject(subject) -> bool:
    return isinstance(subject, str) and subject in SUBJECTS


def validate_grade_and_subject(fields: dict):
    """Raises ValidationError if a present grade or subject is out of range."""
    if 'grade' in fields and not is_valid_grade(fields['grade']):
        raise ValidationError('Please choose a grade between 1 and 13.', field='grade')
    if 'subject' in fields and not is_valid_subject(fields['subject']):
        raise ValidationError(f"Please choose a subject: {', '.join(SUBJECTS)}.", field='subject')


def validate_required_fields(game: dict):
    missing = [field for field in REQUIRED_GAME_FIELDS if not game.get(field)]
    if missing:
        raise ValidationError(f"All fields are required (missing: {', '.join(missing)})", field=missing[0])


def to_iso(value):
    """Formats Firestore timestamps the way they are sent over the wire."""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value else None


def parse_iso(value) -> float:
    """Returns a sortable epoch value for an ISO string or datetime (0 if missing)."""
    if isinstance(value, datetime):
        return value.timestamp()
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).timestamp()
    except ValueError:
        return 0.0
