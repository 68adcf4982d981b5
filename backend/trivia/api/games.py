from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from trivia.errors import NotHost, RoomNotFound
from trivia.models import Room
from trivia.services.games import engine, questions, scoring
from trivia.services.games.rooms import get_room_by_id
from trivia.socketio_events import broadcast_room_update
from trivia.utils import clock


games = Blueprint('games', __name__)


def _load_room(room_id: int) -> Room:
    room = get_room_by_id(room_id)
    if not room:
        raise RoomNotFound()
    return room


def _require_host(room: Room) -> None:
    if room.host_id != current_user.id:
        raise NotHost()


def _optional_int(data: dict, key: str):
    value = data.get(key)
    return int(value) if value is not None else None


@games.route('/<int:room_id>/start', methods=['POST'])
@login_required
def start_game(room_id):
    _require_host(_load_room(room_id))
    room = engine.start_game(room_id)
    broadcast_room_update(room.code)
    return jsonify(room.to_dict())


@games.route('/<int:room_id>/reveal', methods=['POST'])
@login_required
def reveal_question(room_id):
    data = request.get_json(silent=True) or {}
    if data.get('question_index') is None:
        return jsonify({'error': 'question_index is required'}), 400
    room = _load_room(room_id)
    _require_host(room)
    question = questions.reveal_question(room_id, int(data['question_index']))
    broadcast_room_update(room.code)
    return jsonify(question.to_dict())


@games.route('/<int:room_id>/next-question', methods=['POST'])
@login_required
def next_question(room_id):
    data = request.get_json(silent=True) or {}
    room = _load_room(room_id)
    _require_host(room)
    result = engine.next_question(
        room_id,
        expected_round=_optional_int(data, 'expected_round'),
        expected_index=_optional_int(data, 'expected_index'),
    )
    broadcast_room_update(room.code)
    return jsonify(result)


@games.route('/<int:room_id>/next-round', methods=['POST'])
@login_required
def next_round(room_id):
    data = request.get_json(silent=True) or {}
    room = _load_room(room_id)
    _require_host(room)
    result = engine.next_round(room_id, expected_round=_optional_int(data, 'expected_round'))
    broadcast_room_update(room.code)
    return jsonify(result)


@games.route('/<int:room_id>/current-question', methods=['GET'])
def current_question(room_id):
    _load_room(room_id)
    return jsonify({'question': questions.get_current_question(room_id)})


@games.route('/<int:room_id>/rounds/<int:round_number>/questions', methods=['GET'])
def round_questions(room_id, round_number):
    room = _load_room(room_id)
    now = clock.now_ms()
    return jsonify([
        q.to_dict(include_answer=q.is_resolved(room, now))
        for q in questions.get_questions_by_round(room_id, round_number)
    ])


@games.route('/<int:room_id>/answers', methods=['POST'])
@login_required
def submit_answer(room_id):
    data = request.get_json(silent=True) or {}
    question_id = data.get('question_id')
    answer = data.get('answer')
    if question_id is None or not answer:
        return jsonify({'error': 'question_id and answer are required'}), 400
    result = scoring.submit_answer(room_id, current_user.id, int(question_id), str(answer))
    broadcast_room_update(_load_room(room_id).code)
    return jsonify(result), 201


@games.route('/questions/<int:question_id>/results', methods=['GET'])
def question_results(question_id):
    return jsonify(scoring.get_question_results(question_id))


@games.route('/<int:room_id>/results', methods=['GET'])
def game_results(room_id):
    return jsonify(engine.get_game_results(room_id))
