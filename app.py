# app.py

import base64
import binascii
import json
import os
from datetime import datetime, timezone

import firebase_admin
from dotenv import load_dotenv
from firebase_admin import credentials, firestore
from flask import Flask, jsonify
from flask_cors import CORS

from content_generator import GeminiGameGenerator
from errors import EduGameError, ValidationError
from extensions import limiter
from game_repository import GameRepository
from playlist_repository import PlaylistRepository
from routes.game_routes import game_bp
from routes.generation_routes import generation_bp
from routes.playlist_routes import playlist_bp

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"


def init_firestore(app):
    """Initializes the Firebase Admin SDK from a base64 service-account key."""
    service_account_key_base64 = os.getenv('FIREBASE_SERVICE_ACCOUNT_KEY_BASE64')
    if not service_account_key_base64:
        app.logger.warning("FIREBASE_SERVICE_ACCOUNT_KEY_BASE64 not found.")
        return None
    try:
        decoded_key_bytes = base64.b64decode(service_account_key_base64)
        service_account_info = json.loads(decoded_key_bytes.decode('utf-8'))
        if not firebase_admin._apps:
            cred = credentials.Certificate(service_account_info)
            firebase_admin.initialize_app(cred)
        db = firestore.client()
        app.logger.info("Firebase Admin SDK initialized successfully.")
        return db
    except (binascii.Error, ValueError) as e:
        app.logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
        return None


def create_app(config: dict = None, db=None, generator=None):
    load_dotenv()
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'fallback_secret_key_for_dev_only_change_me')
    app.config['AUTH_PROVIDER'] = os.getenv('AUTH_PROVIDER', 'firebase')
    app.config['GENERATION_RATE_LIMIT'] = os.getenv('GENERATION_RATE_LIMIT', '50/day')
    app.config['CORS_ORIGINS'] = os.getenv('CORS_ORIGINS', DEFAULT_CORS_ORIGINS)
    app.config.update(config or {})

    CORS(app, resources={r"/*": {"origins": app.config['CORS_ORIGINS'].split(',')}},
         supports_credentials=True, expose_headers=["Content-Type", "Authorization"],
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-User-API-Key", "userId"])

    if db is None and not app.config.get('TESTING'):
        db = init_firestore(app)

    games = GameRepository(db) if db is not None else None
    app.extensions['edugame'] = {
        'games': games,
        'playlists': PlaylistRepository(db, games) if db is not None else None,
        'generator': generator or GeminiGameGenerator(),
    }

    limiter.init_app(app)
    app.register_blueprint(game_bp)
    app.register_blueprint(playlist_bp)
    app.register_blueprint(generation_bp)

    @app.errorhandler(EduGameError)
    def handle_app_error(e):
        body = {"error": e.message}
        if isinstance(e, ValidationError) and e.field:
            body["field"] = e.field
        return jsonify(body), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify(error=f"Rate limit exceeded: {e.description}"), 429

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "firestore": "connected" if db is not None else "disconnected",
        })

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    create_app().run(host='0.0.0.0', port=port)
