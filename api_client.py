# api_client.py
"""
HTTP client for the EduGame server.

``EduGameClient`` covers the game and playlist endpoints and is what the
session store and workflow use for persistence. ``RemoteGameGenerator`` wraps
the generation endpoints behind the same interface as GeminiGameGenerator, so
a front end can run the workflow without holding a Gemini key.
"""

import logging

import requests

from attachments import to_payload
from content_generator import DEFAULT_DESCRIPTION, fallback_title
from errors import (
    AuthorizationError, EduGameError, GenerationError, PersistenceError, ValidationError,
)

DEFAULT_BASE_URL = "http://localhost:5001"
_DEFAULT_TIMEOUT = 30
_GENERATION_TIMEOUT = 300


class EduGameClient:
    """Bearer-token client for the game and playlist resources."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: str = None, user_api_key: str = None,
                 timeout: int = _DEFAULT_TIMEOUT, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.user_api_key = user_api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        if self.user_api_key:
            headers['X-User-API-Key'] = self.user_api_key
        return headers

    def request(self, method: str, path: str, json=None, params=None, failure=PersistenceError,
                timeout: int = None):
        """
        Sends a request and returns the decoded JSON body.

        Error responses become EduGameError subclasses: 400 is a
        ValidationError, 401 and 404 an AuthorizationError, anything else (and
        transport failures) the ``failure`` class.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=json, params=params, headers=self._headers(),
                                             timeout=timeout or self.timeout)
        except requests.RequestException as e:
            logging.error(f"{method} {path} failed: {e}")
            raise failure("The server could not be reached. Please try again.") from e

        if response.status_code < 400:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get('error') or f"Request failed with status {response.status_code}"
        logging.warning(f"{method} {path} returned {response.status_code}: {message}")
        if response.status_code == 400:
            raise ValidationError(message, field=body.get('field'))
        if response.status_code == 401:
            raise AuthorizationError("Please sign in to continue.")
        if response.status_code == 404:
            raise AuthorizationError(message)
        raise failure(message)

    # --- Games ---

    def save_game(self, game: dict) -> dict:
        return self.request('POST', '/games', json=game)

    def list_owned(self, user_id: str = None) -> list:
        params = {'userId': user_id} if user_id else None
        return self.request('GET', '/games', params=params)

    def list_public(self, page: int = 1, limit: int = 12, subject: str = None, grade=None,
                    search: str = None, sort: str = 'newest') -> dict:
        params = {'page': page, 'limit': limit, 'sort': sort}
        if subject:
            params['subject'] = subject
        if grade is not None:
            params['grade'] = grade
        if search:
            params['search'] = search
        return self.request('GET', '/games/explore', params=params)

    def spotlight(self):
        return self.request('GET', '/games/spotlight')['game']

    def history(self, limit: int = 50) -> list:
        return self.request('GET', '/games/history', params={'limit': limit})

    def liked_games(self) -> list:
        return self.request('GET', '/games/liked')

    def update_game(self, game_id: str, fields: dict) -> dict:
        return self.request('PUT', f"/games/{game_id}", json=fields)

    def delete_game(self, game_id: str):
        self.request('DELETE', f"/games/{game_id}")

    def set_visibility(self, game_id: str, is_public: bool) -> dict:
        return self.request('POST', f"/games/{game_id}/share", json={'isPublic': is_public})

    def increment_play_count(self, game_id: str) -> dict:
        return self.request('POST', f"/games/{game_id}/play")

    def toggle_like(self, game_id: str) -> dict:
        return self.request('POST', f"/games/{game_id}/like")

    def toggle_dislike(self, game_id: str) -> dict:
        return self.request('POST', f"/games/{game_id}/dislike")

    def fork_game(self, game_id: str, creator_name: str = None) -> dict:
        return self.request('POST', f"/games/{game_id}/fork", json={'creatorName': creator_name})

    # --- Playlists ---

    def list_playlists(self, user_id: str = None) -> list:
        params = {'userId': user_id} if user_id else None
        return self.request('GET', '/playlists', params=params)

    def create_playlist(self, title: str, description: str = None, is_public: bool = False) -> dict:
        return self.request('POST', '/playlists',
                            json={'title': title, 'description': description, 'isPublic': is_public})

    def get_playlist(self, playlist_id: str) -> dict:
        return self.request('GET', f"/playlists/{playlist_id}")

    def update_playlist(self, playlist_id: str, fields: dict) -> dict:
        return self.request('PUT', f"/playlists/{playlist_id}", json=fields)

    def delete_playlist(self, playlist_id: str):
        self.request('DELETE', f"/playlists/{playlist_id}")

    def add_to_playlist(self, playlist_id: str, game_id: str) -> dict:
        return self.request('POST', f"/playlists/{playlist_id}/games", json={'gameId': game_id})

    def remove_from_playlist(self, playlist_id: str, game_id: str) -> dict:
        return self.request('DELETE', f"/playlists/{playlist_id}/games/{game_id}")


class RemoteGameGenerator:
    """Generator interface backed by the server's generation endpoints."""

    def __init__(self, client: EduGameClient):
        self.client = client

    def _post(self, path: str, body: dict) -> dict:
        return self.client.request('POST', path, json=body, failure=GenerationError, timeout=_GENERATION_TIMEOUT)

    def _html(self, path: str, body: dict) -> str:
        html = (self._post(path, body) or {}).get('htmlContent')
        if not html:
            raise GenerationError()
        return html

    def generate(self, prompt: str, attachments=(), mode: str = 'fast', instruction: str = None) -> str:
        body = {'prompt': prompt, 'mode': mode, 'attachments': [to_payload(a) for a in attachments]}
        if instruction:
            body['customInstruction'] = instruction
        return self._html('/generate', body)

    def refine(self, change: str, current_html: str, attachments=(), mode: str = 'fast',
               instruction: str = None) -> str:
        body = {
            'instruction': change,
            'htmlContent': current_html,
            'mode': mode,
            'attachments': [to_payload(a) for a in attachments],
        }
        if instruction:
            body['customInstruction'] = instruction
        return self._html('/refine', body)

    def describe(self, prompt: str) -> str:
        try:
            return self._post('/metadata', {'prompt': prompt})['description'] or DEFAULT_DESCRIPTION
        except EduGameError as e:
            logging.warning(f"Remote description failed, using default: {e.message}")
            return DEFAULT_DESCRIPTION

    def title(self, prompt: str) -> str:
        try:
            return self._post('/metadata', {'prompt': prompt})['title'] or fallback_title(prompt)
        except EduGameError as e:
            logging.warning(f"Remote title failed, using prompt: {e.message}")
            return fallback_title(prompt)

    def ideas(self, subject: str, grade: int, keywords: str = None) -> list:
        body = {'subject': subject, 'grade': grade}
        if keywords:
            body['keywords'] = keywords
        return self._post('/ideas', body)['ideas']
