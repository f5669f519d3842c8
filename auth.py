# auth.py
"""
Caller identity for the HTTP layer.

Only an identity verified from the bearer token may be used for writes. The
client-asserted ``userId`` header/query parameter is a fallback for read-only
listings.
"""

from functools import wraps

import jwt
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions
from flask import current_app, g, jsonify, request


def _bearer_token():
    header = request.headers.get('Authorization', '')
    return header.split(' ')[-1] if header.startswith('Bearer ') else None


def verify_identity_token(token: str):
    """Returns the user id for a valid token, or None."""
    provider = current_app.config.get('AUTH_PROVIDER', 'firebase')
    if provider == 'jwt':
        try:
            data = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=["HS256"])
            return data.get('user_id')
        except jwt.PyJWTError as e:
            current_app.logger.info(f"Rejected JWT: {e}")
            return None
    try:
        return firebase_auth.verify_id_token(token)['uid']
    except (ValueError, firebase_exceptions.FirebaseError) as e:
        current_app.logger.info(f"Rejected Firebase ID token: {e}")
        return None


def _resolve_verified_user():
    g.user_id = None
    token = _bearer_token()
    if token:
        g.user_id = verify_identity_token(token)
    return g.user_id


def token_optional(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = _resolve_verified_user()
        return f(user_id, *args, **kwargs)
    return decorated


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if not _bearer_token():
            return jsonify({"error": "Unauthorized: No token provided"}), 401
        user_id = _resolve_verified_user()
        if not user_id:
            return jsonify({"error": "Unauthorized: Invalid token"}), 401
        return f(user_id, *args, **kwargs)
    return decorated


def caller_identity(verified_user_id):
    """Verified identity first, then the client-asserted one (read-only use)."""
    return verified_user_id or request.headers.get('userId') or request.args.get('userId')
