# playlist_repository.py

import logging

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from errors import AuthorizationError, ValidationError
from models import to_iso

PLAYLISTS_COLLECTION = 'playlists'
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

NOT_FOUND_OR_UNAUTHORIZED = 'Playlist not found or unauthorized'


def serialize_playlist(playlist_id: str, data: dict) -> dict:
    playlist = dict(data)
    playlist['_id'] = playlist_id
    playlist['games'] = list(playlist.get('games') or [])
    playlist['createdAt'] = to_iso(playlist.get('createdAt'))
    playlist['updatedAt'] = to_iso(playlist.get('updatedAt'))
    return playlist


def _clean_title(title) -> str:
    title = (title or '').strip() if isinstance(title, str) else ''
    if not title:
        raise ValidationError('Title is required', field='title')
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters.", field='title')
    return title


def _clean_description(description):
    if description is None:
        return None
    description = str(description).strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters.",
                              field='description')
    return description


class PlaylistRepository:
    """Named, ordered collections of game ids, owned per user."""

    def __init__(self, db, games):
        self.db = db
        self.games = games

    @property
    def _playlists(self):
        return self.db.collection(PLAYLISTS_COLLECTION)

    def _load_owned(self, playlist_id: str, owner_id: str):
        """Loads the playlist and checks the owner before any mutation."""
        ref = self._playlists.document(playlist_id)
        snapshot = ref.get()
        if not owner_id or not snapshot.exists or snapshot.to_dict().get('userId') != owner_id:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        return ref

    def _read(self, ref) -> dict:
        snapshot = ref.get()
        return serialize_playlist(snapshot.id, snapshot.to_dict())

    def create(self, user_id: str, title: str, description: str = None, is_public: bool = False) -> dict:
        if not user_id:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        ref = self._playlists.document()
        ref.set({
            'userId': user_id,
            'title': _clean_title(title),
            'description': _clean_description(description),
            'isPublic': bool(is_public),
            'games': [],
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        logging.info(f"Playlist {ref.id} created for user {user_id}")
        return self._read(ref)

    def list(self, user_id: str) -> list:
        query = (self._playlists.where(filter=FieldFilter('userId', '==', user_id))
                 .order_by('createdAt', direction=firestore.Query.DESCENDING))
        playlists = []
        for doc in query.stream():
            playlist = serialize_playlist(doc.id, doc.to_dict())
            playlist['gameCount'] = len(playlist['games'])
            playlists.append(playlist)
        return playlists

    def get(self, playlist_id: str, caller_id: str = None) -> dict:
        """
        Returns the playlist with its games resolved to full records in the
        stored order. Only games the caller may see are included.
        """
        snapshot = self._playlists.document(playlist_id).get()
        if not snapshot.exists:
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)
        playlist = serialize_playlist(snapshot.id, snapshot.to_dict())
        if playlist.get('userId') != caller_id and not playlist.get('isPublic'):
            raise AuthorizationError(NOT_FOUND_OR_UNAUTHORIZED)

        found = self.games.find_many(playlist['games'], caller_id)
        playlist['games'] = [found[gid] for gid in playlist['games'] if gid in found]
        playlist['gameCount'] = len(playlist['games'])
        return playlist

    def update(self, playlist_id: str, owner_id: str, fields: dict) -> dict:
        ref = self._load_owned(playlist_id, owner_id)
        fields = fields or {}
        updates = {}
        if fields.get('title') is not None:
            updates['title'] = _clean_title(fields['title'])
        if 'description' in fields:
            updates['description'] = _clean_description(fields['description'])
        if fields.get('isPublic') is not None:
            updates['isPublic'] = bool(fields['isPublic'])
        updates['updatedAt'] = firestore.SERVER_TIMESTAMP
        ref.update(updates)
        return self._read(ref)

    def delete(self, playlist_id: str, owner_id: str):
        ref = self._load_owned(playlist_id, owner_id)
        ref.delete()
        logging.info(f"Playlist {playlist_id} deleted by user {owner_id}")

    def add_game(self, playlist_id: str, owner_id: str, game_id: str) -> dict:
        if not game_id:
            raise ValidationError('Game ID is required', field='gameId')
        ref = self._load_owned(playlist_id, owner_id)
        # ArrayUnion appends only missing values, keeping the existing order.
        ref.update({'games': firestore.ArrayUnion([game_id]), 'updatedAt': firestore.SERVER_TIMESTAMP})
        return self._read(ref)

    def remove_game(self, playlist_id: str, owner_id: str, game_id: str) -> dict:
        ref = self._load_owned(playlist_id, owner_id)
        ref.update({'games': firestore.ArrayRemove([game_id]), 'updatedAt': firestore.SERVER_TIMESTAMP})
        return self._read(ref)
