from flask import Blueprint, current_app, jsonify, request

from auth import caller_identity, token_optional, token_required
from errors import ServiceUnavailableError, ValidationError

# Create a Blueprint for game-related routes
game_bp = Blueprint('game_bp', __name__, url_prefix='/games')


def _games():
    repository = current_app.extensions['edugame']['games']
    if repository is None:
        raise ServiceUnavailableError("Database not configured")
    return repository


def _require_reader(current_user_id):
    user_id = caller_identity(current_user_id)
    if not user_id:
        raise ValidationError('User ID is required', field='userId')
    return user_id


@game_bp.route('', methods=['POST'])
@token_required
def save_game_route(current_user_id):
    data = request.get_json(silent=True) or {}
    game = _games().save(data, current_user_id)
    return jsonify(game), 200


@game_bp.route('', methods=['GET'])
@token_optional
def list_owned_route(current_user_id):
    user_id = _require_reader(current_user_id)
    return jsonify(_games().list_owned(user_id)), 200


@game_bp.route('/explore', methods=['GET'])
def explore_route():
    result = _games().list_public(
        page=request.args.get('page', 1, type=int),
        page_size=request.args.get('limit', 12, type=int),
        subject=request.args.get('subject'),
        grade=request.args.get('grade'),
        search=request.args.get('search'),
        sort=request.args.get('sort', 'newest'),
    )
    return jsonify(result), 200


@game_bp.route('/spotlight', methods=['GET'])
def spotlight_route():
    return jsonify({"game": _games().spotlight()}), 200


@game_bp.route('/history', methods=['GET'])
@token_optional
def history_route(current_user_id):
    user_id = _require_reader(current_user_id)
    limit = request.args.get('limit', 50, type=int)
    return jsonify(_games().history(user_id, limit=limit)), 200


@game_bp.route('/liked', methods=['GET'])
@token_optional
def liked_route(current_user_id):
    user_id = _require_reader(current_user_id)
    return jsonify(_games().liked_games(user_id)), 200


@game_bp.route('/<game_id>', methods=['PUT'])
@token_required
def update_game_route(current_user_id, game_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_games().update(game_id, current_user_id, data)), 200


@game_bp.route('/<game_id>', methods=['DELETE'])
@token_required
def delete_game_route(current_user_id, game_id):
    _games().delete(game_id, current_user_id)
    return jsonify({"message": "Game deleted successfully"}), 200


@game_bp.route('/<game_id>/play', methods=['POST'])
@token_optional
def play_game_route(current_user_id, game_id):
    # History is only written for a verified caller.
    current_app.logger.info(f"Incrementing play count for game: {game_id}")
    return jsonify(_games().increment_play_count(game_id, current_user_id)), 200


@game_bp.route('/<game_id>/like', methods=['POST'])
@token_required
def like_game_route(current_user_id, game_id):
    game, liked, disliked = _games().toggle_like(game_id, current_user_id)
    return jsonify({**game, "userLiked": liked, "userDisliked": disliked}), 200


@game_bp.route('/<game_id>/dislike', methods=['POST'])
@token_required
def dislike_game_route(current_user_id, game_id):
    game, liked, disliked = _games().toggle_dislike(game_id, current_user_id)
    return jsonify({**game, "userLiked": liked, "userDisliked": disliked}), 200


@game_bp.route('/<game_id>/share', methods=['POST'])
@token_required
def share_game_route(current_user_id, game_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_games().set_visibility(game_id, current_user_id, data.get('isPublic'))), 200


@game_bp.route('/<game_id>/fork', methods=['POST'])
@token_required
def fork_game_route(current_user_id, game_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_games().fork(game_id, current_user_id, data.get('creatorName'))), 200
