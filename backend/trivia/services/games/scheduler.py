import time
from typing import Set, Tuple

from trivia import db, socketio
from trivia.errors import GameError
from trivia.models import IN_PROGRESS, Room
from trivia.socketio_events import broadcast_room_update


_scheduled_question_keys: Set[Tuple[int, int, int]] = set()


def schedule_question_timer(app, room_id: int) -> None:
    """Schedule auto-advance past the room's live question.

    - No-ops when AUTO_ADVANCE is off, and in TESTING mode
    - Ensures a single timer per (room_id, round, question)
    - Fires after the question's time limit plus the results hold
    """
    if not app.config.get('AUTO_ADVANCE', True):
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        room = db.session.get(Room, room_id)
        if not room or room.status != IN_PROGRESS:
            return
        state = room.state
        key = (room.id, state.round, state.question_index)
        if key in _scheduled_question_keys:
            app.logger.info(f"[timer-skip] room={room.id} round={state.round} question={state.question_index} already scheduled")
            return
        _scheduled_question_keys.add(key)
        delay = int(room.settings['time_limit']) + int(app.config.get('QUESTION_RESULTS_DURATION_SEC', 5))
        app.logger.info(
            f"[timer-set] room={room.id} round={state.round} question={state.question_index} delay={delay}s"
        )

    def _worker(rid: int, expected_round: int, expected_index: int, seconds: int):
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        if hb > 0:
            slept = 0
            while slept < seconds:
                step = min(hb, seconds - slept)
                time.sleep(step)
                slept += step
                app.logger.info(
                    f"[timer-heartbeat] room={rid} round={expected_round} question={expected_index} remaining={max(0, seconds - slept)}s"
                )
        else:
            time.sleep(seconds)
        with app.app_context():
            try:
                fire_question_timer(app, rid, expected_round, expected_index)
            finally:
                _scheduled_question_keys.discard((rid, expected_round, expected_index))

    if app.config.get('TESTING'):
        _worker(room_id, state.round, state.question_index, delay)
    else:
        socketio.start_background_task(_worker, room_id, state.round, state.question_index, delay)


def fire_question_timer(app, room_id: int, expected_round: int, expected_index: int) -> bool:
    """Advance the room if it still shows the question the timer was set for."""
    from .engine import next_question

    room = db.session.get(Room, room_id)
    if not room:
        return False
    app.logger.info(
        f"[timer-fire] room={room_id} expected={expected_round}/{expected_index} actual={room.current_round}/{room.current_question_index}"
    )
    if (room.status != IN_PROGRESS or room.current_round != expected_round
            or room.current_question_index != expected_index):
        app.logger.info(f"[timer-abort] room={room_id} mismatch status/round/question")
        return False
    try:
        next_question(room_id, expected_round=expected_round, expected_index=expected_index)
    except GameError as exc:
        # The host advanced between our check and the lock
        app.logger.info(f"[timer-abort] room={room_id} {exc.code}")
        return False
    broadcast_room_update(room.code)
    return True
