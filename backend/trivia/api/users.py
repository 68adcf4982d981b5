from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from trivia.services.users import get_leaderboard, get_or_create_user

users = Blueprint('users', __name__)


@users.route('/sync', methods=['POST'])
def sync_user():
    """Create (or return) the local user for an identity-provider account."""
    data = request.get_json(silent=True) or {}
    external_id = data.get('external_id')
    username = data.get('username')
    if not all([external_id, username]):
        return jsonify({'error': 'external_id and username are required'}), 400
    user = get_or_create_user(str(external_id), str(username), data.get('avatar_url'))
    return jsonify(user.to_dict())


@users.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())


@users.route('/leaderboard', methods=['GET'])
def leaderboard():
    limit = request.args.get('limit', default=10, type=int)
    limit = max(1, min(limit, 100))
    return jsonify([u.to_dict() for u in get_leaderboard(limit)])
