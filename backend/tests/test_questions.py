import pytest

from conftest import make_settings
from trivia import db
from trivia.errors import GenerationUnavailable, InvalidTransition, QuestionNotFound
from trivia.models import Question, Room
from trivia.services import ai
from trivia.services.games import questions, rooms


def _candidate(n, category='Science'):
    return {
        'content': f'Question {n}?',
        'options': [{'id': 'a', 'text': 'Yes'}, {'id': 'b', 'text': 'No'}],
        'correct_answer': 'a',
        'category': category,
        'explanation': f'Because {n}.',
    }


@pytest.fixture()
def room(users):
    room_id, _ = rooms.create_room(users[0].id, make_settings(questions_per_round=3, time_limit=20))
    return db.session.get(Room, room_id)


@pytest.fixture()
def started_room(users):
    alice, bob = users[:2]
    room_id, code = rooms.create_room(alice.id, make_settings(questions_per_round=3, time_limit=20))
    rooms.join_room(code, bob.id)
    rooms.set_player_ready(room_id, alice.id, True)
    rooms.set_player_ready(room_id, bob.id, True)
    return db.session.get(Room, room_id)


def test_generator_failure_falls_back_to_verified_pool(room, monkeypatch):
    def boom(categories, difficulty, count):
        raise GenerationUnavailable('down')
    monkeypatch.setattr(ai, 'generate_trivia_questions', boom)

    stored = questions.generate_questions(room.id, 1, ['History', 'Art'], 'hard', 8)
    assert len(stored) == 8
    assert [q.order_in_round for q in stored] == list(range(8))
    assert all(q.fact_checked for q in stored)
    assert all(q.category in ('History', 'Art') for q in stored)
    assert all(q.difficulty == 'hard' for q in stored)
    # The pool is cycled when more questions are needed than it holds
    pool_size = len(questions.FALLBACK_QUESTIONS)
    assert stored[0].content == stored[pool_size].content


def test_unexpected_generator_error_also_falls_back(room, monkeypatch):
    def broken(categories, difficulty, count):
        raise RuntimeError('socket closed')
    monkeypatch.setattr(ai, 'generate_trivia_questions', broken)
    assert len(questions.generate_questions(room.id, 1, ['Science'], 'easy', 2)) == 2


def test_generated_questions_are_fact_checked(room, monkeypatch):
    monkeypatch.setattr(ai, 'generate_trivia_questions',
                        lambda categories, difficulty, count: [_candidate(i) for i in range(count)])
    verdicts = iter([
        {'is_accurate': True, 'confidence': 0.95, 'details': 'solid'},
        {'is_accurate': True, 'confidence': 0.7, 'details': 'borderline'},
        {'is_accurate': False, 'confidence': 0.99, 'details': 'wrong'},
    ])
    checked = []

    def fake_check(question, answer, explanation=None):
        checked.append((question, answer, explanation))
        return next(verdicts)
    monkeypatch.setattr(ai, 'fact_check_question', fake_check)

    stored = questions.generate_questions(room.id, 1, ['Science'], 'medium', 3)
    assert [q.fact_checked for q in stored] == [True, False, False]
    assert [q.fact_check_details for q in stored] == ['solid', 'borderline', 'wrong']
    assert checked[0] == ('Question 0?', 'Yes', 'Because 0.')
    assert stored[0].options == [{'id': 'a', 'text': 'Yes'}, {'id': 'b', 'text': 'No'}]


def test_generation_is_idempotent_per_round(room):
    first = questions.generate_questions(room.id, 1, ['Science'], 'easy', 3)
    again = questions.generate_questions(room.id, 1, ['Science'], 'easy', 3)
    assert [q.id for q in first] == [q.id for q in again]
    assert Question.query.filter_by(room_id=room.id).count() == 3


def test_questions_by_round_are_ordered(room):
    questions.generate_questions(room.id, 2, ['Science'], 'easy', 3)
    questions.generate_questions(room.id, 1, ['Science'], 'easy', 2)
    assert [q.order_in_round for q in questions.get_questions_by_round(room.id, 2)] == [0, 1, 2]
    assert len(questions.get_questions_by_round(room.id, 1)) == 2


def test_current_question_is_none_before_start(room):
    assert questions.get_current_question(room.id) is None


def test_current_question_hides_correct_answer(started_room):
    current = questions.get_current_question(started_room.id)
    assert current is not None
    assert current['order_in_round'] == 0
    assert 'correct_answer' not in current
    assert 'explanation' not in current


def test_reveal_stamps_timer_and_moves_index(fake_clock, started_room):
    fake_clock.advance(2500)
    question = questions.reveal_question(started_room.id, 1)
    assert question.revealed_at == fake_clock.now
    assert question.expires_at == fake_clock.now + 20_000
    assert db.session.get(Room, started_room.id).current_question_index == 1
    assert questions.get_current_question(started_room.id)['id'] == question.id


def test_reveal_unknown_index_changes_nothing(started_room):
    with pytest.raises(QuestionNotFound):
        questions.reveal_question(started_room.id, 7)
    assert db.session.get(Room, started_room.id).current_question_index == 0


def test_reveal_requires_game_in_progress(room):
    with pytest.raises(InvalidTransition):
        questions.reveal_question(room.id, 0)


def test_answer_visibility_follows_resolution(fake_clock, started_room):
    current, upcoming = questions.get_questions_by_round(started_room.id, 1)[:2]
    room = db.session.get(Room, started_room.id)
    now = fake_clock.now
    assert not current.is_resolved(room, now)
    assert not upcoming.is_resolved(room, now)
    assert current.is_resolved(room, current.expires_at)

    questions.reveal_question(room.id, 1)
    assert current.is_resolved(db.session.get(Room, room.id), fake_clock.now)
