import json
import random
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from trivia import db
from trivia.errors import InvalidTransition, QuestionNotFound
from trivia.models import IN_PROGRESS, InProgress, Question, Room
from trivia.services import ai
from trivia.utils import clock
from .locks import locked_room


FALLBACK_DETAILS = 'Fallback question - manually verified'

# Hand-authored, pre-verified questions used whenever the generator is down
FALLBACK_QUESTIONS: List[Dict] = [
    {
        'content': 'What is the capital of France?',
        'options': [
            {'id': 'a', 'text': 'London'},
            {'id': 'b', 'text': 'Paris'},
            {'id': 'c', 'text': 'Berlin'},
            {'id': 'd', 'text': 'Madrid'},
        ],
        'correct_answer': 'b',
        'explanation': 'Paris has been the capital of France since the 10th century.',
    },
    {
        'content': 'Who painted the Mona Lisa?',
        'options': [
            {'id': 'a', 'text': 'Vincent van Gogh'},
            {'id': 'b', 'text': 'Pablo Picasso'},
            {'id': 'c', 'text': 'Leonardo da Vinci'},
            {'id': 'd', 'text': 'Michelangelo'},
        ],
        'correct_answer': 'c',
        'explanation': 'Leonardo da Vinci painted the Mona Lisa in the early 16th century.',
    },
    {
        'content': 'What is the largest planet in our solar system?',
        'options': [
            {'id': 'a', 'text': 'Saturn'},
            {'id': 'b', 'text': 'Jupiter'},
            {'id': 'c', 'text': 'Neptune'},
            {'id': 'd', 'text': 'Earth'},
        ],
        'correct_answer': 'b',
        'explanation': 'Jupiter is more than twice as massive as all other planets combined.',
    },
    {
        'content': 'What is the chemical symbol for gold?',
        'options': [
            {'id': 'a', 'text': 'Go'},
            {'id': 'b', 'text': 'Gd'},
            {'id': 'c', 'text': 'Au'},
            {'id': 'd', 'text': 'Ag'},
        ],
        'correct_answer': 'c',
        'explanation': "Au comes from the Latin word 'aurum'.",
    },
    {
        'content': 'Who was the first President of the United States?',
        'options': [
            {'id': 'a', 'text': 'George Washington'},
            {'id': 'b', 'text': 'Thomas Jefferson'},
            {'id': 'c', 'text': 'John Adams'},
            {'id': 'd', 'text': 'Benjamin Franklin'},
        ],
        'correct_answer': 'a',
        'explanation': 'George Washington served as president from 1789 to 1797.',
    },
    {
        'content': 'What is the capital of Japan?',
        'options': [
            {'id': 'a', 'text': 'Seoul'},
            {'id': 'b', 'text': 'Tokyo'},
            {'id': 'c', 'text': 'Beijing'},
            {'id': 'd', 'text': 'Bangkok'},
        ],
        'correct_answer': 'b',
        'explanation': 'Tokyo became the capital of Japan in 1868.',
    },
]


def get_questions_by_round(room_id: int, round_number: int) -> List[Question]:
    return (
        Question.query.filter_by(room_id=room_id, round_number=round_number)
        .order_by(Question.order_in_round)
        .all()
    )


def _fallback_candidates(categories: List[str], count: int) -> List[Dict]:
    candidates = []
    for i in range(count):
        sample = FALLBACK_QUESTIONS[i % len(FALLBACK_QUESTIONS)]
        candidates.append(dict(
            sample,
            category=random.choice(categories),
            fact_checked=True,
            fact_check_details=FALLBACK_DETAILS,
        ))
    return candidates


def _generated_candidates(categories: List[str], difficulty: str, count: int) -> List[Dict]:
    threshold = float(current_app.config.get('FACT_CHECK_CONFIDENCE_THRESHOLD', 0.7))
    candidates = []
    for question in ai.generate_trivia_questions(categories, difficulty, count):
        correct_text = next(
            (o['text'] for o in question['options'] if o['id'] == question['correct_answer']), ''
        )
        verdict = ai.fact_check_question(question['content'], correct_text, question.get('explanation'))
        candidates.append(dict(
            question,
            category=question.get('category') or random.choice(categories),
            fact_checked=bool(verdict['is_accurate']) and float(verdict['confidence']) > threshold,
            fact_check_details=verdict.get('details'),
        ))
    return candidates


def generate_questions(room_id: int, round_number: int, categories: List[str],
                       difficulty: str, count: int) -> List[Question]:
    """Create the questions for one round of a room.

    Talks to the generator and fact-checker first and only then writes, in a
    single commit, so a half-built round is never visible. If the round
    already has questions they are returned as they are.
    """
    existing = get_questions_by_round(room_id, round_number)
    if existing:
        return existing

    try:
        candidates = _generated_candidates(categories, difficulty, count)
    except Exception as exc:
        current_app.logger.warning(
            f"[generate-fallback] room={room_id} round={round_number} generator failed: {exc}"
        )
        candidates = _fallback_candidates(categories, count)

    for order, candidate in enumerate(candidates):
        db.session.add(Question(
            room_id=room_id,
            round_number=round_number,
            order_in_round=order,
            content=candidate['content'],
            options_json=json.dumps(candidate['options']),
            correct_answer=candidate['correct_answer'],
            explanation=candidate.get('explanation'),
            category=candidate['category'],
            difficulty=difficulty,
            fact_checked=candidate['fact_checked'],
            fact_check_details=candidate.get('fact_check_details'),
        ))
    try:
        db.session.commit()
    except IntegrityError:
        # Another worker stored this round first
        db.session.rollback()
        current_app.logger.info(f"[generate-skip] room={room_id} round={round_number} already stored")
    else:
        current_app.logger.info(
            f"[generate] room={room_id} round={round_number} stored={len(candidates)}"
        )
    return get_questions_by_round(room_id, round_number)


def find_question(room: Room, round_number: int, question_index: int) -> Optional[Question]:
    return Question.query.filter_by(
        room_id=room.id, round_number=round_number, order_in_round=question_index
    ).first()


def get_current_question(room_id: int) -> Optional[Dict]:
    """The room's live question with the correct answer stripped, or None."""
    room = db.session.get(Room, room_id)
    if not room or room.status != IN_PROGRESS:
        return None
    state = room.state
    question = find_question(room, state.round, state.question_index)
    if not question:
        return None
    return question.to_dict(include_answer=False)


def reveal_question(room_id: int, question_index: int) -> Question:
    """Make a question of the current round live and start its timer.

    Calling it twice re-stamps the timer, so callers reveal each question
    exactly once.
    """
    with locked_room(room_id) as room:
        if room.status != IN_PROGRESS:
            raise InvalidTransition('Questions can only be revealed while the game is in progress')
        question = find_question(room, room.current_round, question_index)
        if not question:
            raise QuestionNotFound()
        now = clock.now_ms()
        room.apply_state(InProgress(room.current_round, question_index), now)
        question.revealed_at = now
        question.expires_at = now + room.time_limit_ms
        db.session.commit()
        current_app.logger.info(
            f"[reveal] room={room.id} round={room.current_round} question={question_index} expires={question.expires_at}"
        )
        return question
