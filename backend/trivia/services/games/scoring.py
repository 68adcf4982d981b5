from typing import Dict

from flask import current_app
from sqlalchemy.exc import IntegrityError

from trivia import db
from trivia.errors import DuplicateAnswer, InvalidAnswer, ParticipantNotFound, QuestionNotFound, StaleQuestion
from trivia.models import IN_PROGRESS, Answer, Participant, Question
from trivia.utils import clock
from .locks import locked_room


BASE_POINTS = 100
SPEED_BONUS_POINTS = 50


def calculate_points(is_correct: bool, response_time_ms: int, time_limit_sec: int) -> int:
    """100 for a correct answer plus up to 50 for speed.

    The bonus decays linearly from 50 at 0 ms to 0 at the time limit.
    """
    if not is_correct:
        return 0
    limit_ms = int(time_limit_sec) * 1000
    remaining_ms = max(0, limit_ms - max(0, int(response_time_ms)))
    return BASE_POINTS + (SPEED_BONUS_POINTS * remaining_ms) // limit_ms


def submit_answer(room_id: int, user_id: int, question_id: int, answer: str) -> Dict:
    """Record a player's single answer to the live question and score it."""
    with locked_room(room_id) as room:
        if Answer.query.filter_by(user_id=user_id, question_id=question_id).first():
            raise DuplicateAnswer()

        question = db.session.get(Question, question_id)
        if not question or question.room_id != room.id:
            raise QuestionNotFound()

        participant = Participant.query.filter_by(room_id=room.id, user_id=user_id).first()
        if not participant or not participant.is_active:
            raise ParticipantNotFound()

        state = room.state
        if room.status != IN_PROGRESS or (question.round_number, question.order_in_round) != (
                state.round, state.question_index):
            raise StaleQuestion()
        now = clock.now_ms()
        # Answers close when the question expires
        if question.expires_at is not None and now >= question.expires_at:
            raise StaleQuestion('Time is up for this question')
        if answer not in {o['id'] for o in question.options}:
            raise InvalidAnswer()

        is_correct = answer == question.correct_answer
        response_time = max(0, now - question.revealed_at) if question.revealed_at else 0
        points = calculate_points(is_correct, response_time, room.settings['time_limit'])

        db.session.add(Answer(
            user_id=user_id,
            question_id=question.id,
            room_id=room.id,
            answer=answer,
            is_correct=is_correct,
            response_time=response_time,
            points_earned=points,
            answered_at=now,
        ))
        participant.score = (participant.score or 0) + points
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateAnswer()

        current_app.logger.info(
            f"[answer] room={room.id} user={user_id} question={question.id} correct={is_correct} points={points} rt={response_time}ms"
        )
        return {'is_correct': is_correct, 'points_earned': points, 'response_time': response_time}


def get_question_results(question_id: int) -> Dict:
    question = db.session.get(Question, question_id)
    if not question:
        raise QuestionNotFound()
    answers = Answer.query.filter_by(question_id=question.id).order_by(Answer.answered_at, Answer.id).all()
    resolved = question.is_resolved(question.room, clock.now_ms())
    return {
        'question': question.to_dict(include_answer=resolved),
        'resolved': resolved,
        'answers': [a.to_dict(include_user=True, include_result=resolved) for a in answers],
    }
