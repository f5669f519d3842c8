from flask import Blueprint, current_app, jsonify, request

from auth import caller_identity, token_optional, token_required
from errors import ServiceUnavailableError, ValidationError

playlist_bp = Blueprint('playlist_bp', __name__, url_prefix='/playlists')


def _playlists():
    repository = current_app.extensions['edugame']['playlists']
    if repository is None:
        raise ServiceUnavailableError("Database not configured")
    return repository


@playlist_bp.route('', methods=['GET'])
@token_optional
def list_playlists_route(current_user_id):
    user_id = caller_identity(current_user_id)
    if not user_id:
        raise ValidationError('User ID is required', field='userId')
    return jsonify(_playlists().list(user_id)), 200


@playlist_bp.route('', methods=['POST'])
@token_required
def create_playlist_route(current_user_id):
    data = request.get_json(silent=True) or {}
    playlist = _playlists().create(
        current_user_id, data.get('title'), data.get('description'), bool(data.get('isPublic')))
    return jsonify(playlist), 201


@playlist_bp.route('/<playlist_id>', methods=['GET'])
@token_optional
def get_playlist_route(current_user_id, playlist_id):
    return jsonify(_playlists().get(playlist_id, caller_identity(current_user_id))), 200


@playlist_bp.route('/<playlist_id>', methods=['PUT'])
@token_required
def update_playlist_route(current_user_id, playlist_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_playlists().update(playlist_id, current_user_id, data)), 200


@playlist_bp.route('/<playlist_id>', methods=['DELETE'])
@token_required
def delete_playlist_route(current_user_id, playlist_id):
    _playlists().delete(playlist_id, current_user_id)
    return jsonify({"message": "Playlist deleted"}), 200


@playlist_bp.route('/<playlist_id>/games', methods=['POST'])
@token_required
def add_game_route(current_user_id, playlist_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_playlists().add_game(playlist_id, current_user_id, data.get('gameId'))), 200


@playlist_bp.route('/<playlist_id>/games/<game_id>', methods=['DELETE'])
@token_required
def remove_game_route(current_user_id, playlist_id, game_id):
    return jsonify(_playlists().remove_game(playlist_id, current_user_id, game_id)), 200
