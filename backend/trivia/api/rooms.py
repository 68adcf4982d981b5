from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from trivia.errors import RoomNotFound
from trivia.services.games import rooms as room_service
from trivia.socketio_events import broadcast_room_update

rooms = Blueprint('rooms', __name__)


@rooms.route('', methods=['POST'])
@login_required
def create_room():
    data = request.get_json(silent=True) or {}
    room_id, code = room_service.create_room(
        current_user.id, data.get('settings'), bool(data.get('is_public', False))
    )
    return jsonify({'room_id': room_id, 'code': code}), 201


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not code:
        return jsonify({'error': 'Room code is required'}), 400
    room_id = room_service.join_room(code, current_user.id)
    room = room_service.get_room_by_id(room_id)
    broadcast_room_update(room.code)
    return jsonify({'room_id': room_id, 'code': room.code})


@rooms.route('/public', methods=['GET'])
def public_rooms():
    return jsonify(room_service.get_public_rooms())


@rooms.route('/<int:room_id>', methods=['GET'])
def get_room(room_id):
    room = room_service.get_room_by_id(room_id)
    if not room:
        raise RoomNotFound()
    return jsonify(room.to_dict())


@rooms.route('/code/<string:code>', methods=['GET'])
def get_room_by_code(code):
    room = room_service.get_room_by_code(code)
    if not room:
        raise RoomNotFound()
    return jsonify(room.to_dict())


@rooms.route('/<int:room_id>/ready', methods=['POST'])
@login_required
def set_ready(room_id):
    data = request.get_json(silent=True) or {}
    started = room_service.set_player_ready(room_id, current_user.id, bool(data.get('is_ready', True)))
    room = room_service.get_room_by_id(room_id)
    broadcast_room_update(room.code)
    return jsonify({'started': started, 'room': room.to_dict()})


@rooms.route('/<int:room_id>/leave', methods=['POST'])
@login_required
def leave(room_id):
    left = room_service.leave_room(room_id, current_user.id)
    room = room_service.get_room_by_id(room_id)
    if left:
        broadcast_room_update(room.code)
    return jsonify({'left': left, 'room': room.to_dict()})
