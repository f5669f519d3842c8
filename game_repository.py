# game_repository.py

import logging
import math
import re
from datetime import datetime, timezone

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from constants import ALL, EXPLORE_SORT_OPTIONS
from errors import AuthorizationError, NotFoundError, TransientHistoryError, ValidationError
from models import (
    EDITABLE_GAME_FIELDS, new_fork_id, to_iso, validate_grade_and_subject, validate_required_fields,
)

GAMES_COLLECTION = 'games'
HISTORY_COLLECTION = 'play_history'

DEFAULT_PAGE_SIZE = 12
HISTORY_LIMIT = 50
# Newest public games considered when searching or sorting by counters.
EXPLORE_SCAN_LIMIT = 1000
# Firestore caps the number of values in an 'in' filter.
IN_QUERY_CHUNK = 30

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

NOT_FOUND_OR_UNAUTHORIZED = 'Game not found or unauthorized'


def game_document_key(game_id: str, user_id: str) -> str:
    """Firestore document id for a game; one per (id, owner) pair."""
    return f"{user_id}__{game_id}".replace('/', '_')


def _created(game: dict):
    value = game.get('createdAt')
    return value if isinstance(value, datetime) else _EPOCH


def _sort_key(sort: str):
    if sort == 'trending':
        return lambda g: (g.get('likes', 0), g.get('playCount', 0), _created(g))
    if sort == 'mostLiked':
        return lambda g: (g.get('likes', 0), _created(g))
    if sort == 'mostPlayed':
        return lambda g: (g.get('playCount', 0), _created(g))
    return _created


def serialize_game(data: dict) -> dict:
    """Formats a stored game for the wire."""
    game = dict(data)
    game['createdAt'] = to_iso(game.get('createdAt'))
    game['updatedAt'] = to_iso(game.get('updatedAt'))
    game.setdefault('playCount', 0)
    game.setdefault('likes', 0)
    game.setdefault('dislikes', 0)
    game.setdefault('likedBy', [])
    game.setdefault('dislikedBy', [])
    game.setdefault('isPublic', False)
    game['isSavedToDB'] = True
    return game


class GameRepository:
    """
    Game records in Firestore.

    Owner-scoped writes address the document by (id, owner) so another user's
    game behaves exactly like a missing one. Counters and reaction sets are
    only changed through Firestore field transforms.
    """

    def __init__(self, db):
        self.db = db

    @property
    def _games(self):
        return self.db.collection(GAMES_COLLECTION)

    def _owned_ref(self, game_id: str, user_id: str):
        return self._games.document(game_document_key(game_id, user_id))

    def _find_snapshot(self, game_id: str, caller_id: str = None):
        """
        The record a caller reaches through a bare game id: the public one if
        any, otherwise the caller's own. Other users' private records are
        never returned, even when they share the id.
        """
        public = (self._games.where(filter=FieldFilter('id', '==', game_id))
                  .where(filter=FieldFilter('isPublic', '==', True))
                  .limit(1))
        snapshot = next(iter(public.stream()), None)
        if snapshot is None and caller_id:
            own = self._owned_ref(game_id, caller_id).get()
            snapshot = own if own.exists else None
        return snapshot

    def _read(self, ref) -> dict:
        return serialize_game(ref.get().to_dict())

    # --- Lookups ---

    def find(self, game_id: str, caller_id: str = None):
        snapshot = self._find_snapshot(game_id, caller_id)
        return serialize_game(snapshot.to_dict()) if snapshot else None

    def find_many(self, game_ids, caller_id: str = None) -> dict:
        """
        Returns {game id: record} for the ids that still exist and that the
        caller may see, resolved the same way as a single lookup.
        """
        ids = list(dict.fromkeys(game_ids))
        found = {}
        for start in range(0, len(ids), IN_QUERY_CHUNK):
            chunk = ids[start:start + IN_QUERY_CHUNK]
            for doc in self._games.where(filter=FieldFilter('id', 'in', chunk)).stream():
                data = doc.to_dict()
                current = found.get(data['id'])
                if data.get('isPublic'):
                    if current is None or not current['isPublic']:
                        found[data['id']] = serialize_game(data)
                elif caller_id and data.get('userId') == caller_id and current is None:
                    found[data['id']] = serialize_game(data)
        return found

    # --- Owner-scoped writes ---

    def save(self, game: dict, user_id: str) -> dict:
        """Creates or updates the caller's copy of a game and returns the stored record."""
        if not user_id:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        validate_required_fields(game)
        validate_grade_and_subject(game)

        ref = self._owned_ref(game['id'], user_id)
        payload = {
            'id': game['id'],
            'title': game['title'].strip(),
            'description': game['description'].strip(),
            'grade': game['grade'],
            'subject': game['subject'],
            'htmlContent': game['htmlContent'],
            'userId': user_id,
            'creatorName': game.get('creatorName'),
            'isPublic': bool(game.get('isPublic', False)),
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }
        if not ref.get().exists:
            payload.update({
                'createdAt': firestore.SERVER_TIMESTAMP,
                'playCount': 0, 'likes': 0, 'dislikes': 0,
                'likedBy': [], 'dislikedBy': [],
                'forkedFrom': game.get('forkedFrom'),
            })
        ref.set(payload, merge=True)
        logging.info(f"Game {game['id']} saved for user {user_id}")
        return self._read(ref)

    def update(self, game_id: str, user_id: str, fields: dict) -> dict:
        updates = {k: v for k, v in (fields or {}).items() if k in EDITABLE_GAME_FIELDS and v is not None}
        validate_grade_and_subject(updates)
        for key in ('title', 'description', 'htmlContent'):
            if key in updates and not str(updates[key]).strip():
                raise ValidationError(f"'{key}' cannot be empty.", field=key)
        if 'isPublic' in updates:
            updates['isPublic'] = bool(updates['isPublic'])

        ref = self._owned_ref(game_id, user_id)
        if not user_id or not ref.get().exists:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        updates['updatedAt'] = firestore.SERVER_TIMESTAMP
        ref.update(updates)
        return self._read(ref)

    def set_visibility(self, game_id: str, user_id: str, is_public) -> dict:
        if not isinstance(is_public, bool):
            raise ValidationError('isPublic status is required', field='isPublic')
        ref = self._owned_ref(game_id, user_id)
        if not user_id or not ref.get().exists:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        ref.update({'isPublic': is_public})
        return self._read(ref)

    def delete(self, game_id: str, user_id: str):
        ref = self._owned_ref(game_id, user_id)
        if not user_id or not ref.get().exists:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        ref.delete()
        logging.info(f"Game {game_id} deleted by user {user_id}")

    # --- Listings ---

    def list_owned(self, user_id: str) -> list:
        query = (self._games.where(filter=FieldFilter('userId', '==', user_id))
                 .order_by('createdAt', direction=firestore.Query.DESCENDING))
        return [serialize_game(doc.to_dict()) for doc in query.stream()]

    def list_public(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, subject: str = None,
                    grade=None, search: str = None, sort: str = 'newest') -> dict:
        """
        Paginated explore listing. Equality filters always run in Firestore.
        The default newest-first listing also pages in Firestore. A search or
        a counter sort is applied here over at most EXPLORE_SCAN_LIMIT of the
        newest matching games.
        """
        page = max(int(page or 1), 1)
        page_size = max(int(page_size or DEFAULT_PAGE_SIZE), 1)
        if sort not in EXPLORE_SORT_OPTIONS:
            sort = 'newest'
        start = (page - 1) * page_size

        query = self._games.where(filter=FieldFilter('isPublic', '==', True))
        if subject and subject != ALL:
            query = query.where(filter=FieldFilter('subject', '==', subject))
        if grade not in (None, '', ALL):
            try:
                query = query.where(filter=FieldFilter('grade', '==', int(grade)))
            except (TypeError, ValueError):
                raise ValidationError('Grade must be a number between 1 and 13.', field='grade')

        newest = query.order_by('createdAt', direction=firestore.Query.DESCENDING)
        searching = bool(search and search.strip())

        if sort == 'newest' and not searching:
            total = query.count().get()[0][0].value
            docs = newest.offset(start).limit(page_size).stream()
            games = [serialize_game(doc.to_dict()) for doc in docs]
        else:
            games = [doc.to_dict() for doc in newest.limit(EXPLORE_SCAN_LIMIT).stream()]
            if searching:
                pattern = re.compile(re.escape(search.strip()), re.IGNORECASE)
                games = [g for g in games
                         if pattern.search(g.get('title') or '') or pattern.search(g.get('description') or '')]
            games.sort(key=_sort_key(sort), reverse=True)
            total = len(games)
            games = [serialize_game(g) for g in games[start:start + page_size]]

        return {
            'games': games,
            'currentPage': page,
            'totalPages': math.ceil(total / page_size),
            'totalGames': total,
        }

    def spotlight(self):
        query = (self._games.where(filter=FieldFilter('isPublic', '==', True))
                 .order_by('likes', direction=firestore.Query.DESCENDING)
                 .order_by('playCount', direction=firestore.Query.DESCENDING)
                 .limit(1))
        doc = next(iter(query.stream()), None)
        return serialize_game(doc.to_dict()) if doc else None

    def liked_games(self, caller_id: str) -> list:
        """Games the caller liked that are public or their own, newest first."""
        query = (self._games.where(filter=FieldFilter('likedBy', 'array_contains', caller_id))
                 .order_by('createdAt', direction=firestore.Query.DESCENDING))
        games = [doc.to_dict() for doc in query.stream()]
        return [serialize_game(g) for g in games if g.get('isPublic') or g.get('userId') == caller_id]

    def history(self, caller_id: str, limit: int = HISTORY_LIMIT) -> list:
        """The caller's most recently played distinct games that still exist."""
        query = (self.db.collection(HISTORY_COLLECTION)
                 .where(filter=FieldFilter('userId', '==', caller_id))
                 .order_by('playedAt', direction=firestore.Query.DESCENDING)
                 .limit(limit))
        entries = [doc.to_dict() for doc in query.stream()]
        keys = list(dict.fromkeys((e.get('gameId'), e.get('gameOwnerId')) for e in entries if e.get('gameId')))
        # Entries written before the owner was recorded resolve like a bare id.
        legacy = self.find_many([gid for gid, owner in keys if not owner], caller_id)

        games = []
        for game_id, owner_id in keys:
            if not owner_id:
                game = legacy.get(game_id)
            else:
                snapshot = self._owned_ref(game_id, owner_id).get()
                data = snapshot.to_dict() if snapshot.exists else None
                visible = data and (data.get('isPublic') or data.get('userId') == caller_id)
                game = serialize_game(data) if visible else None
            if game:
                games.append(game)
        return games

    # --- Social interactions ---

    def increment_play_count(self, game_id: str, caller_id: str = None) -> dict:
        snapshot = self._find_snapshot(game_id, caller_id)
        if snapshot is None:
            raise NotFoundError('Game not found')
        snapshot.reference.update({'playCount': firestore.Increment(1)})

        if caller_id:
            try:
                self._record_play(caller_id, game_id, snapshot.to_dict().get('userId'))
            except TransientHistoryError as e:
                logging.warning(f"Failed to record play history for user {caller_id}: {e}")
        return self._read(snapshot.reference)

    def _record_play(self, caller_id: str, game_id: str, owner_id: str):
        try:
            self.db.collection(HISTORY_COLLECTION).add({
                'userId': caller_id,
                'gameId': game_id,
                'gameOwnerId': owner_id,
                'playedAt': firestore.SERVER_TIMESTAMP,
            })
        except Exception as e:
            raise TransientHistoryError(str(e)) from e

    def toggle_like(self, game_id: str, caller_id: str):
        return self._toggle_reaction(game_id, caller_id, 'like')

    def toggle_dislike(self, game_id: str, caller_id: str):
        return self._toggle_reaction(game_id, caller_id, 'dislike')

    def _toggle_reaction(self, game_id: str, caller_id: str, reaction: str):
        """
        Toggles the caller's reaction and clears the opposite one in the same
        write. Returns (record, user_liked, user_disliked).
        """
        if not caller_id:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        snapshot = self._find_snapshot(game_id, caller_id)
        if snapshot is None:
            raise NotFoundError('Game not found')

        data = snapshot.to_dict()
        field, counter = ('likedBy', 'likes') if reaction == 'like' else ('dislikedBy', 'dislikes')
        other_field, other_counter = ('dislikedBy', 'dislikes') if reaction == 'like' else ('likedBy', 'likes')
        had_reaction = caller_id in (data.get(field) or [])
        had_other = caller_id in (data.get(other_field) or [])

        if had_reaction:
            update = {field: firestore.ArrayRemove([caller_id]), counter: firestore.Increment(-1)}
        else:
            update = {field: firestore.ArrayUnion([caller_id]), counter: firestore.Increment(1)}
            if had_other:
                update[other_field] = firestore.ArrayRemove([caller_id])
                update[other_counter] = firestore.Increment(-1)
        snapshot.reference.update(update)

        reacted = not had_reaction
        if reaction == 'like':
            return self._read(snapshot.reference), reacted, False
        return self._read(snapshot.reference), False, reacted

    def fork(self, game_id: str, new_owner_id: str, creator_name: str = None) -> dict:
        """
        Copies a public game, or one of the caller's own, into a new private
        record owned by the caller.
        """
        if not new_owner_id:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        snapshot = self._find_snapshot(game_id, new_owner_id)
        if snapshot is None:
            raise NotFoundError('Game not found')
        source = snapshot.to_dict()

        new_id = new_fork_id()
        ref = self._owned_ref(new_id, new_owner_id)
        ref.set({
            'id': new_id,
            'title': f"{source['title']} (Remix)",
            'description': source.get('description'),
            'htmlContent': source.get('htmlContent'),
            'grade': source.get('grade'),
            'subject': source.get('subject'),
            'userId': new_owner_id,
            'creatorName': creator_name or 'Anonymous',
            'isPublic': False,
            'playCount': 0, 'likes': 0, 'dislikes': 0,
            'likedBy': [], 'dislikedBy': [],
            'forkedFrom': source['id'],
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        logging.info(f"Game {game_id} forked as {new_id} by user {new_owner_id}")
        return self._read(ref)
