# session_store.py

import copy
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import reactions
from constants import ALL, SAMPLE_GAMES, SESSION_SORT_OPTIONS
from errors import EduGameError, NotFoundError, PersistenceError, ValidationError
from models import is_persisted, parse_iso

# Server-side reaction flags returned next to the record; not game fields.
_RESPONSE_ONLY_FIELDS = ('userLiked', 'userDisliked')
DETAIL_FIELDS = ('title', 'description', 'grade', 'subject', 'isPublic', 'creatorName')


def _as_persistence_error(error: EduGameError) -> PersistenceError:
    if isinstance(error, PersistenceError):
        return error
    return PersistenceError(error.message)


class SessionGameStore:
    """
    The client's in-memory working set of games.

    ``games`` holds local drafts and the signed-in user's stored games. Remote
    games opened from an explore listing are kept in a side cache so they can
    be viewed and reacted to without joining the working set. The active game
    is only an id; :attr:`active_game` looks it up every time.

    All mutations hold one re-entrant lock. Remote calls made by the store run
    outside the lock.
    """

    def __init__(self, client, initial_games=SAMPLE_GAMES, executor=None):
        self.client = client
        self._initial_games = copy.deepcopy(list(initial_games))
        self._lock = threading.RLock()
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix='edugame-play')

        self.games = copy.deepcopy(self._initial_games)
        self.user_id = None
        self._active_id = None
        self._viewed = {}

        self.selected_grade = ALL
        self.selected_subject = ALL
        self.search_term = ''
        self.sort_option = 'newest'

    # --- Lookups ---

    def _index_of(self, game_id: str) -> int:
        for i, game in enumerate(self.games):
            if game['id'] == game_id:
                return i
        return -1

    def get_game(self, game_id: str):
        with self._lock:
            i = self._index_of(game_id)
            if i >= 0:
                return self.games[i]
            return self._viewed.get(game_id)

    @property
    def active_game(self):
        if self._active_id is None:
            return None
        return self.get_game(self._active_id)

    def _replace(self, game_id: str, change) -> dict:
        """Applies ``change`` to the game wherever it lives and returns the new dict."""
        with self._lock:
            i = self._index_of(game_id)
            if i >= 0:
                self.games[i] = change(self.games[i])
                return self.games[i]
            if game_id in self._viewed:
                self._viewed[game_id] = change(self._viewed[game_id])
                return self._viewed[game_id]
        raise NotFoundError(f"Game {game_id} is not loaded.")

    # --- Viewer ---

    def play_game(self, game: dict):
        """Opens a game in the viewer and counts the play if it is stored."""
        with self._lock:
            if self._index_of(game['id']) < 0:
                self._viewed[game['id']] = dict(game)
            self._active_id = game['id']
        if is_persisted(game):
            self._executor.submit(self._count_play, game['id'])

    def _count_play(self, game_id: str):
        try:
            self.client.increment_play_count(game_id)
        except EduGameError as e:
            logging.warning(f"Could not count play for game {game_id}: {e.message}")

    def close_viewer(self):
        with self._lock:
            self._active_id = None

    # --- Working set mutations ---

    def create_game(self, game: dict):
        with self._lock:
            self._viewed.pop(game['id'], None)
            self.games.insert(0, game)
            self._active_id = game['id']
        return game

    def update_game_content(self, game_id: str, html: str) -> dict:
        return self._replace(game_id, lambda g: {**g, 'htmlContent': html})

    def update_game_details(self, game_id: str, fields: dict) -> dict:
        unknown = set(fields) - set(DETAIL_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
        return self._replace(game_id, lambda g: {**g, **fields})

    def reconcile_saved(self, record: dict) -> dict:
        """Merges a stored record into the working set (insert if new)."""
        server_fields = {k: v for k, v in record.items() if k not in _RESPONSE_ONLY_FIELDS}
        with self._lock:
            i = self._index_of(record['id'])
            if i >= 0:
                self.games[i] = {**self.games[i], **server_fields, 'isSavedToDB': True}
                return self.games[i]
            merged = {**self._viewed.pop(record['id'], {}), **server_fields, 'isSavedToDB': True}
            self.games.insert(0, merged)
            return merged

    def delete_game(self, game_id: str):
        """
        Deletes a game. Stored games are deleted remotely first; the local
        list only changes once that succeeded.
        """
        game = self.get_game(game_id)
        if game is None:
            raise NotFoundError(f"Game {game_id} is not loaded.")
        if is_persisted(game):
            try:
                self.client.delete_game(game_id)
            except EduGameError as e:
                raise _as_persistence_error(e) from e
        with self._lock:
            self.games = [g for g in self.games if g['id'] != game_id]
            self._viewed.pop(game_id, None)
            if self._active_id == game_id:
                self._active_id = None

    def reset(self):
        with self._lock:
            self.games = copy.deepcopy(self._initial_games)
            self._viewed = {}
            self._active_id = None

    def on_identity_changed(self, user_id):
        """
        Signing out restores the initial games. Signing in as a different
        user starts from them too; then the user's stored games are merged in.
        """
        with self._lock:
            if user_id is None or (self.user_id is not None and self.user_id != user_id):
                self.reset()
            self.user_id = user_id
        if user_id is None:
            return
        owned = self.client.list_owned()
        with self._lock:
            if self.user_id != user_id:
                return
            # Oldest first so the newest ends up on top after prepending.
            for record in reversed(owned):
                self.reconcile_saved(record)
        logging.info(f"Loaded {len(owned)} stored games for user {user_id}")

    # --- Derived view ---

    def filtered_games(self) -> list:
        with self._lock:
            games = list(self.games)
            grade, subject = self.selected_grade, self.selected_subject
            search, sort = self.search_term.strip().lower(), self.sort_option

        if grade != ALL:
            games = [g for g in games if str(g.get('grade')) == str(grade)]
        if subject != ALL:
            games = [g for g in games if g.get('subject') == subject]
        if search:
            games = [g for g in games if search in f"{g.get('title', '')} {g.get('description', '')}".lower()]

        if sort not in SESSION_SORT_OPTIONS:
            sort = 'newest'
        if sort == 'likes':
            key = lambda g: g.get('likes', 0)
        elif sort == 'plays':
            key = lambda g: g.get('playCount', 0)
        else:
            # Drafts have no timestamp yet and count as the newest.
            key = lambda g: parse_iso(g['createdAt']) if g.get('createdAt') else float('inf')
        # sorted() is stable, also with reverse=True.
        return sorted(games, key=key, reverse=True)

    # --- Optimistic social actions ---

    def toggle_like(self, game_id: str) -> dict:
        return self._react(game_id, 'like', self.client.toggle_like)

    def toggle_dislike(self, game_id: str) -> dict:
        return self._react(game_id, 'dislike', self.client.toggle_dislike)

    def _react(self, game_id: str, reaction: str, remote_call) -> dict:
        if not self.user_id:
            raise ValidationError('Please sign in to rate games.')
        game = self._require_stored(game_id)
        transition = reactions.toggle_reaction(game, self.user_id, reaction)
        return self._apply_optimistically(game_id, transition, lambda: remote_call(game_id))

    def set_visibility(self, game_id: str, is_public: bool) -> dict:
        game = self._require_stored(game_id)
        transition = reactions.set_visibility(game, is_public)
        return self._apply_optimistically(
            game_id, transition, lambda: self.client.set_visibility(game_id, is_public))

    def _require_stored(self, game_id: str) -> dict:
        game = self.get_game(game_id)
        if game is None:
            raise NotFoundError(f"Game {game_id} is not loaded.")
        if not is_persisted(game):
            raise ValidationError('Save the game first.')
        return game

    def _apply_optimistically(self, game_id: str, transition, request) -> dict:
        self._replace(game_id, transition.forward)
        try:
            record = request()
        except EduGameError as e:
            self._replace(game_id, transition.inverse)
            logging.warning(f"Reverted optimistic change on game {game_id}: {e.message}")
            raise _as_persistence_error(e) from e
        server_fields = {k: v for k, v in record.items() if k not in _RESPONSE_ONLY_FIELDS}
        return self._replace(game_id, lambda g: {**g, **server_fields})

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
