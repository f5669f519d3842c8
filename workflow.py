# workflow.py
"""
Authoring workflow: create a game from a prompt, refine it through a chat
transcript, save it, or fork someone else's game and keep editing.

This is the only layer that turns errors into user-facing text. Lower layers
raise; the workflow stores the message in ``last_error`` and re-raises.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import NamedTuple

from attachments import filter_attachments
from errors import EduGameError, GenerationError, PersistenceError, ValidationError, WorkflowBusyError
from models import Persisted, is_persisted, new_draft, provenance, validate_grade_and_subject


class WorkflowState(Enum):
    IDLE = 'idle'
    GENERATING = 'generating'
    GENERATED_UNSAVED = 'generated_unsaved'
    REFINING = 'refining'
    SAVING = 'saving'
    SAVED = 'saved'
    ERROR = 'error'


class ChatMessage(NamedTuple):
    sender: str  # 'user', 'ai' or 'system'
    text: str


def user_message(action: str, error: EduGameError) -> str:
    if isinstance(error, (ValidationError, WorkflowBusyError)):
        return error.message
    return f"Could not {action} the game. {error.message}"


class _SingleFlight:
    """Non-blocking guard: a second step while one runs is rejected."""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        if not self._lock.acquire(blocking=False):
            raise WorkflowBusyError()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._lock.release()
        return False


class GenerationWorkflow:
    """
    One authoring session.

    ``generator`` is anything with generate/refine/describe/title (the Gemini
    adapter or the remote client generator). ``store`` is the
    SessionGameStore, ``client`` the games API client and ``settings`` a
    SettingsStore supplying the instruction texts.
    """

    def __init__(self, generator, store, client, settings, listener=None):
        self.generator = generator
        self.store = store
        self.client = client
        self.settings = settings
        self.listener = listener

        self.state = WorkflowState.IDLE
        self.last_error = None
        self.warnings = []
        self.transcript = []
        self.mode = 'fast'
        self.game_id = None
        self._guard = _SingleFlight()

    @property
    def game(self):
        return self.store.get_game(self.game_id) if self.game_id else None

    def _set_state(self, state: WorkflowState):
        self.state = state
        logging.debug(f"Workflow state -> {state.value}")
        if self.listener:
            self.listener(state)

    def _fail(self, action: str, error: EduGameError, stable_state: WorkflowState):
        self.last_error = user_message(action, error)
        self._set_state(WorkflowState.ERROR)
        self._set_state(stable_state)

    def _require_game(self) -> dict:
        game = self.game
        if game is None:
            raise ValidationError('Open a game first.')
        return game

    def _accept(self, attachments):
        accepted, self.warnings = filter_attachments(attachments)
        return accepted

    # --- Create ---

    def create(self, prompt: str, attachments=(), mode: str = 'fast') -> dict:
        """Generates a new draft; grade and subject are left for the user to pick."""
        with self._guard:
            prompt = (prompt or '').strip()
            accepted = self._accept(attachments)
            if not prompt and not accepted:
                error = ValidationError('Please describe your game or attach a file.', field='prompt')
                self.last_error = error.message
                raise error

            self.last_error = None
            self.mode = mode
            self._set_state(WorkflowState.GENERATING)
            topic = prompt or ', '.join(a.name for a in accepted)
            instruction = self.settings.instruction_for('main')
            try:
                with ThreadPoolExecutor(max_workers=3) as pool:
                    html = pool.submit(self.generator.generate, prompt, accepted, mode, instruction)
                    description = pool.submit(self.generator.describe, topic)
                    title = pool.submit(self.generator.title, topic)
                    game = new_draft(title.result(), description.result(), html.result())
            except EduGameError as e:
                self._fail('create', e, WorkflowState.IDLE)
                raise
            except Exception as e:
                logging.error(f"Unexpected error while creating a game: {e}")
                error = GenerationError()
                self._fail('create', error, WorkflowState.IDLE)
                raise error from e

            self.store.create_game(game)
            self.game_id = game['id']
            self.transcript = []
            self._set_state(WorkflowState.GENERATED_UNSAVED)
            logging.info(f"Created draft {game['id']}")
            return game

    def update_details(self, **fields) -> dict:
        game = self._require_game()
        updated = self.store.update_game_details(game['id'], fields)
        if self.state == WorkflowState.SAVED:
            self._set_state(WorkflowState.GENERATED_UNSAVED)
        return updated

    # --- Save ---

    def save(self, creator_name: str = None) -> dict:
        """
        Saves the open game under the signed-in user. A stored game owned by
        someone else is never written; it has to be remixed first.
        """
        with self._guard:
            game = self._require_game()
            try:
                origin = provenance(game)
                if isinstance(origin, Persisted) and origin.owner_id != self.store.user_id:
                    raise ValidationError('This game belongs to someone else. Remix it to save your own copy.')
                validate_grade_and_subject({'grade': game.get('grade'), 'subject': game.get('subject')})
            except ValidationError as e:
                self.last_error = e.message
                raise

            stable_state = self.state
            self.last_error = None
            self._set_state(WorkflowState.SAVING)
            payload = {
                'id': game['id'],
                'title': game.get('title'),
                'description': game.get('description'),
                'grade': game['grade'],
                'subject': game['subject'],
                'htmlContent': game.get('htmlContent'),
                'isPublic': bool(game.get('isPublic')),
                'creatorName': creator_name or game.get('creatorName'),
            }
            if game.get('forkedFrom'):
                payload['forkedFrom'] = game['forkedFrom']
            try:
                record = self.client.save_game(payload)
            except EduGameError as e:
                self._fail('save', e, stable_state)
                if isinstance(e, (ValidationError, PersistenceError)):
                    raise
                raise PersistenceError(e.message) from e
            except Exception as e:
                logging.error(f"Unexpected error while saving game {game['id']}: {e}")
                error = PersistenceError()
                self._fail('save', error, stable_state)
                raise error from e

            saved = self.store.reconcile_saved(record)
            self._set_state(WorkflowState.SAVED)
            return saved

    # --- Refine ---

    def refine(self, instruction_text: str, attachments=(), mode: str = None) -> str:
        """
        Asks for a change to the latest version of the open game. The
        transcript gets the user's turn, then either the reply or an error.
        """
        with self._guard:
            game = self._require_game()
            text = (instruction_text or '').strip()
            accepted = self._accept(attachments)
            if not text and not accepted:
                error = ValidationError('Please describe the change you want.', field='instruction')
                self.last_error = error.message
                raise error

            self.transcript.append(ChatMessage('user', text or ', '.join(a.name for a in accepted)))
            stable_state = self.state
            self.last_error = None
            self._set_state(WorkflowState.REFINING)
            try:
                html = self.generator.refine(
                    text, game['htmlContent'], accepted, mode or self.mode,
                    self.settings.instruction_for('refinement'))
            except EduGameError as e:
                self._fail('update', e, stable_state)
                self.transcript.append(ChatMessage('system', self.last_error))
                raise
            except Exception as e:
                logging.error(f"Unexpected error while refining game {game['id']}: {e}")
                error = GenerationError('The game could not be updated. Please try again.')
                self._fail('update', error, stable_state)
                self.transcript.append(ChatMessage('system', self.last_error))
                raise error from e

            self.store.update_game_content(game['id'], html)
            self.transcript.append(ChatMessage('ai', "I've updated the game. Take a look!"))
            self._set_state(WorkflowState.GENERATED_UNSAVED)
            return html

    # --- Fork ---

    def fork(self, game_id: str, creator_name: str = None) -> dict:
        """Remixes a game into a private copy and opens it for editing."""
        with self._guard:
            stable_state = self.state
            self.last_error = None
            self._set_state(WorkflowState.SAVING)
            try:
                record = self.client.fork_game(game_id, creator_name)
            except EduGameError as e:
                self._fail('remix', e, stable_state)
                raise
            except Exception as e:
                logging.error(f"Unexpected error while remixing game {game_id}: {e}")
                error = PersistenceError()
                self._fail('remix', error, stable_state)
                raise error from e

            game = self.store.create_game({**record, 'isSavedToDB': True})
            self.game_id = game['id']
            self.transcript = []
            self._set_state(WorkflowState.SAVED)
            return game

    # --- Viewer session ---

    def open(self, game: dict):
        self.store.play_game(game)
        self.game_id = game['id']
        self.transcript = []
        self.last_error = None
        self._set_state(WorkflowState.SAVED if is_persisted(game) else WorkflowState.GENERATED_UNSAVED)

    def close(self):
        self.store.close_viewer()
        self.game_id = None
        self.transcript = []
        self.warnings = []
        self._set_state(WorkflowState.IDLE)
