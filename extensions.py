# extensions.py

from flask import g, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def get_request_identifier():
    # Logged-in users are limited per account, guests per IP.
    return g.get("user_id") or get_remote_address()


def uses_own_api_key() -> bool:
    """Callers bringing their own Gemini key are exempt from generation limits."""
    return bool(request.headers.get('X-User-API-Key'))


limiter = Limiter(key_func=get_request_identifier, storage_uri="memory://")
