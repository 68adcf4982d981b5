import json
import random
import string
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from trivia import db
from trivia.errors import (
    GameAlreadyStarted,
    InvalidSettings,
    InvalidTransition,
    ParticipantNotFound,
    RoomCodeExhausted,
    RoomFull,
    RoomNotFound,
    UserNotFound,
)
from trivia.models import (
    IN_PROGRESS,
    STATUS_ORDER,
    WAITING,
    Finished,
    InProgress,
    Participant,
    Room,
    User,
    Waiting,
)
from trivia.utils import clock
from .locks import locked_room


ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
DIFFICULTIES = ('easy', 'medium', 'hard')
RECOMMENDED_ROUNDS = (3, 5, 7, 10)
RECOMMENDED_TIME_LIMITS = (10, 20, 30, 45, 60)


def _positive_int(settings: dict, key: str) -> int:
    value = settings.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidSettings(f'{key} must be a positive integer')
    return value


def validate_settings(settings: Optional[dict]) -> Dict:
    """Check a settings payload and return the snapshot stored on the room."""
    if not isinstance(settings, dict):
        raise InvalidSettings('settings must be an object')
    max_players = _positive_int(settings, 'max_players')
    if not 2 <= max_players <= 4:
        raise InvalidSettings('max_players must be between 2 and 4')
    rounds = _positive_int(settings, 'rounds')
    questions_per_round = _positive_int(settings, 'questions_per_round')
    time_limit = _positive_int(settings, 'time_limit')
    categories = settings.get('categories')
    if (not isinstance(categories, list) or not categories
            or not all(isinstance(c, str) and c.strip() for c in categories)):
        raise InvalidSettings('categories must be a non-empty list of names')
    difficulty = settings.get('difficulty')
    if difficulty not in DIFFICULTIES:
        raise InvalidSettings(f"difficulty must be one of {', '.join(DIFFICULTIES)}")

    if rounds not in RECOMMENDED_ROUNDS or time_limit not in RECOMMENDED_TIME_LIMITS:
        current_app.logger.warning(
            f"[settings] unusual settings rounds={rounds} time_limit={time_limit}"
        )
    return {
        'max_players': max_players,
        'rounds': rounds,
        'questions_per_round': questions_per_round,
        'time_limit': time_limit,
        'categories': list(dict.fromkeys(c.strip() for c in categories)),
        'difficulty': difficulty,
    }


def generate_room_code() -> str:
    """Generate a join code no existing room holds.

    Retries until a free code turns up; ROOM_CODE_MAX_ATTEMPTS caps the
    loop when set.
    """
    max_attempts = int(current_app.config.get('ROOM_CODE_MAX_ATTEMPTS', 0))
    attempts = 0
    while True:
        code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))
        if not Room.query.filter_by(code=code).first():
            return code
        attempts += 1
        if max_attempts and attempts >= max_attempts:
            raise RoomCodeExhausted()


def create_room(host_user_id: int, settings: dict, is_public: bool = False) -> Tuple[int, str]:
    snapshot = validate_settings(settings)
    if not db.session.get(User, host_user_id):
        raise UserNotFound()

    while True:
        now = clock.now_ms()
        room = Room(
            code=generate_room_code(),
            host_id=host_user_id,
            settings_json=json.dumps(snapshot),
            status=WAITING,
            is_public=bool(is_public),
            current_round=0,
            created_at=now,
        )
        db.session.add(room)
        try:
            db.session.flush()
            db.session.add(Participant(
                room_id=room.id,
                user_id=host_user_id,
                score=0,
                is_ready=False,
                is_active=True,
                joined_at=now,
            ))
            db.session.commit()
        except IntegrityError:
            # Lost a race for the code; draw another one
            db.session.rollback()
            continue
        current_app.logger.info(f"[room-create] room={room.id} code={room.code} host={host_user_id}")
        return room.id, room.code


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def get_room_by_id(room_id: int) -> Optional[Room]:
    return db.session.get(Room, room_id)


def get_room_by_code(code: str) -> Optional[Room]:
    return Room.query.filter_by(code=normalize_code(code)).first()


def get_public_rooms() -> List[Dict]:
    rooms = Room.query.filter_by(is_public=True, status=WAITING).order_by(Room.created_at.desc()).all()
    result = []
    for room in rooms:
        data = room.to_dict(include_participants=False)
        data['participant_count'] = len(room.active_participants)
        result.append(data)
    return result


def join_room(code: str, user_id: int) -> int:
    room = get_room_by_code(code)
    if not room:
        raise RoomNotFound()
    if not db.session.get(User, user_id):
        raise UserNotFound()

    with locked_room(room.id) as room:
        if room.status != WAITING:
            raise GameAlreadyStarted()

        existing = Participant.query.filter_by(room_id=room.id, user_id=user_id).first()
        if existing:
            if not existing.is_active:
                existing.is_active = True
                existing.is_ready = False
                db.session.commit()
                current_app.logger.info(f"[room-rejoin] room={room.id} user={user_id}")
            return room.id

        if Participant.query.filter_by(room_id=room.id).count() >= room.settings['max_players']:
            raise RoomFull()

        db.session.add(Participant(
            room_id=room.id,
            user_id=user_id,
            score=0,
            is_ready=False,
            is_active=True,
            joined_at=clock.now_ms(),
        ))
        try:
            db.session.commit()
        except IntegrityError:
            # Same user joined concurrently from another worker
            db.session.rollback()
        current_app.logger.info(f"[room-join] room={room.id} user={user_id}")
        return room.id


def ready_to_start(room: Room) -> bool:
    """All active participants ready and enough of them to play."""
    active = Participant.query.filter_by(room_id=room.id, is_active=True).all()
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    return len(active) >= min_players and all(p.is_ready for p in active)


def _auto_start_if_ready(room: Room) -> bool:
    if room.status != WAITING or not ready_to_start(room):
        return False
    room.apply_state(InProgress(1, 0), clock.now_ms())
    current_app.logger.info(f"[auto-start] room={room.id} all players ready")
    return True


def set_player_ready(room_id: int, user_id: int, is_ready: bool) -> bool:
    """Toggle readiness; returns True when this toggle started the game."""
    with locked_room(room_id) as room:
        participant = Participant.query.filter_by(room_id=room.id, user_id=user_id).first()
        if not participant:
            raise ParticipantNotFound()
        participant.is_ready = bool(is_ready)
        started = _auto_start_if_ready(room)
        db.session.commit()

    if started:
        from .engine import open_round
        open_round(room_id, 1)
    return started


def leave_room(room_id: int, user_id: int) -> bool:
    """Soft-delete a participant, handing the host role on if needed."""
    started = False
    with locked_room(room_id) as room:
        participant = Participant.query.filter_by(room_id=room.id, user_id=user_id).first()
        if not participant:
            return False
        participant.is_active = False
        active = (
            Participant.query.filter_by(room_id=room.id, is_active=True)
            .order_by(Participant.joined_at, Participant.id)
            .all()
        )
        if room.host_id == user_id:
            if active:
                room.host_id = active[0].user_id
                current_app.logger.info(f"[host-promote] room={room.id} host={room.host_id}")
            elif room.status == IN_PROGRESS:
                from .engine import finish_game
                finish_game(room)
            elif room.status == WAITING:
                room.apply_state(Finished(), clock.now_ms())
                current_app.logger.info(f"[room-close] room={room.id} abandoned before start")
        if room.status == WAITING and active:
            started = _auto_start_if_ready(room)
        db.session.commit()
        current_app.logger.info(f"[room-leave] room={room.id} user={user_id}")

    if started:
        from .engine import open_round
        open_round(room_id, 1)
    return True


def update_room_status(room_id: int, status: Optional[str] = None,
                       current_round: Optional[int] = None,
                       current_question_index: Optional[int] = None) -> Room:
    """Partial update of the room's state; status never moves backwards."""
    with locked_room(room_id) as room:
        target = status or room.status
        if target not in STATUS_ORDER:
            raise InvalidTransition(f'Unknown status {target}')
        if target == WAITING:
            if current_round or current_question_index is not None:
                raise InvalidTransition('A waiting room has no round or question')
            state = Waiting()
        elif target == IN_PROGRESS:
            if current_round is None:
                current_round = room.current_round or 1
            if current_question_index is None:
                current_question_index = room.current_question_index or 0
            state = InProgress(current_round, current_question_index)
        else:
            state = Finished()
        room.apply_state(state, clock.now_ms())
        db.session.commit()
        return room
