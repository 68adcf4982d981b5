"""Game orchestration: the room state machine above rooms, questions and scoring.

waiting -> in_progress(round, question) -> finished. Host actions and the
scheduler both drive it through ``next_question`` / ``next_round``; passing
the (round, question) the caller saw makes a repeated trigger fail with
``StaleQuestion`` instead of skipping ahead twice.
"""
from typing import Dict, List, Optional

from flask import current_app

from trivia import db
from trivia.errors import GameAlreadyStarted, InvalidTransition, NotReady, RoomNotFound, StaleQuestion
from trivia.models import IN_PROGRESS, WAITING, Answer, Finished, InProgress, Participant, Question, Room
from trivia.services.users import update_user_stats
from trivia.utils import clock
from . import questions, scheduler
from .locks import locked_room
from .rooms import ready_to_start


def _require_in_progress(room: Room) -> None:
    if room.status != IN_PROGRESS:
        raise InvalidTransition('Game is not in progress')


def _schedule(room_id: int) -> None:
    scheduler.schedule_question_timer(current_app._get_current_object(), room_id)


def start_game(room_id: int) -> Room:
    """Host-issued start; re-checks readiness under the room lock."""
    with locked_room(room_id) as room:
        if room.status != WAITING:
            raise GameAlreadyStarted('Game already started or finished')
        if not ready_to_start(room):
            raise NotReady()
        room.apply_state(InProgress(1, 0), clock.now_ms())
        db.session.commit()
        current_app.logger.info(f"[start] room={room.id} started by host")

    open_round(room_id, 1)
    return db.session.get(Room, room_id)


def open_round(room_id: int, round_number: int) -> Optional[Question]:
    """Generate a round's questions and reveal the first one."""
    room = db.session.get(Room, room_id)
    if not room:
        raise RoomNotFound()
    settings = room.settings
    questions.generate_questions(
        room.id, round_number, settings['categories'], settings['difficulty'], settings['questions_per_round']
    )
    db.session.refresh(room)
    if room.status != IN_PROGRESS or room.current_round != round_number:
        current_app.logger.info(f"[open-round-skip] room={room.id} round={round_number} room moved on")
        return None
    question = questions.reveal_question(room.id, 0)
    _schedule(room.id)
    return question


def next_question(room_id: int, expected_round: Optional[int] = None,
                  expected_index: Optional[int] = None) -> Dict:
    with locked_room(room_id) as room:
        _require_in_progress(room)
        state = room.state
        if ((expected_round is not None and expected_round != state.round)
                or (expected_index is not None and expected_index != state.question_index)):
            raise StaleQuestion('The game has already moved past that question')
        next_index = state.question_index + 1
        round_complete = next_index >= room.settings['questions_per_round']
        if not round_complete:
            questions.reveal_question(room.id, next_index)

    if round_complete:
        result = next_round(room_id, expected_round=state.round)
        result['round_complete'] = True
        return result

    _schedule(room_id)
    return {'round_complete': False, 'current_round': state.round, 'current_question_index': next_index}


def next_round(room_id: int, expected_round: Optional[int] = None) -> Dict:
    with locked_room(room_id) as room:
        _require_in_progress(room)
        if expected_round is not None and expected_round != room.current_round:
            raise StaleQuestion('The game has already moved past that round')
        upcoming = room.current_round + 1
        game_finished = upcoming > room.settings['rounds']
        if game_finished:
            rankings = finish_game(room)
        else:
            room.apply_state(InProgress(upcoming, 0), clock.now_ms())
            current_app.logger.info(f"[next-round] room={room.id} advance round {upcoming - 1} -> {upcoming}")
        db.session.commit()

    if game_finished:
        return {'game_finished': True, 'rankings': rankings}
    open_round(room_id, upcoming)
    return {'game_finished': False, 'next_round': upcoming}


def finish_game(room: Room) -> List[Dict]:
    """Close the room and fold each participant's result into their stats.

    Ranking is a stable sort by descending score over join order; on a tied
    top score the earliest joiner is recorded as the winner. Leaves the
    commit to the caller.
    """
    participants = (
        Participant.query.filter_by(room_id=room.id)
        .order_by(Participant.joined_at, Participant.id)
        .all()
    )
    ranked = sorted(participants, key=lambda p: -(p.score or 0))
    categories = sorted({q.category for q in Question.query.filter_by(room_id=room.id).all()})

    room.apply_state(Finished(), clock.now_ms())
    rankings = []
    for rank, participant in enumerate(ranked):
        won = rank == 0
        update_user_stats(participant.user_id, won=won, score=participant.score or 0, categories=categories)
        rankings.append({
            'rank': rank + 1,
            'user_id': participant.user_id,
            'score': participant.score or 0,
            'won': won,
        })
    current_app.logger.info(
        f"[finish] room={room.id} finished at round={room.current_round} winner={rankings[0]['user_id'] if rankings else None}"
    )
    return rankings


def get_game_results(room_id: int) -> Dict:
    room = db.session.get(Room, room_id)
    if not room:
        raise RoomNotFound()
    answers = Answer.query.filter_by(room_id=room.id).all()
    participants = []
    for participant in room.participants:
        own = [a for a in answers if a.user_id == participant.user_id]
        correct = sum(1 for a in own if a.is_correct)
        data = participant.to_dict()
        data['stats'] = {
            'correct_answers': correct,
            'total_answers': len(own),
            'accuracy': (correct / len(own)) * 100 if own else 0,
            'average_response_time': int(round(sum(a.response_time for a in own) / len(own))) if own else 0,
        }
        participants.append(data)
    participants.sort(key=lambda p: -p['score'])
    settings = room.settings
    return {
        'room': room.to_dict(include_participants=False),
        'participants': participants,
        'total_questions': settings['rounds'] * settings['questions_per_round'],
    }
