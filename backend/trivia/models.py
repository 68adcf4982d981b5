from trivia import db
from trivia.errors import InvalidTransition
from flask_login import UserMixin
from dataclasses import dataclass
from typing import Union
import json

WAITING = 'waiting'
IN_PROGRESS = 'in_progress'
FINISHED = 'finished'
STATUS_ORDER = {WAITING: 0, IN_PROGRESS: 1, FINISHED: 2}


@dataclass(frozen=True)
class Waiting:
    status = WAITING


@dataclass(frozen=True)
class InProgress:
    round: int
    question_index: int
    status = IN_PROGRESS


@dataclass(frozen=True)
class Finished:
    status = FINISHED


RoomState = Union[Waiting, InProgress, Finished]


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(128), unique=True, nullable=False, index=True)
    username = db.Column(db.String(64), nullable=False, index=True)
    avatar_url = db.Column(db.String(512), nullable=True)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    games_won = db.Column(db.Integer, default=0, nullable=False)
    total_score = db.Column(db.Integer, default=0, nullable=False)
    category_stats_json = db.Column(db.Text, nullable=True)

    @property
    def category_stats(self):
        return json.loads(self.category_stats_json) if self.category_stats_json else {}

    @category_stats.setter
    def category_stats(self, value):
        self.category_stats_json = json.dumps(value)

    def to_dict(self, include_stats=True):
        data = {
            'id': self.id,
            'external_id': self.external_id,
            'username': self.username,
            'avatar_url': self.avatar_url,
        }
        if include_stats:
            data['stats'] = {
                'games_played': self.games_played,
                'games_won': self.games_won,
                'total_score': self.total_score,
                'category_stats': self.category_stats,
            }
        return data


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    host_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    settings_json = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), default=WAITING, nullable=False, index=True)
    is_public = db.Column(db.Boolean, default=False, nullable=False)
    current_round = db.Column(db.Integer, default=0, nullable=False)
    current_question_index = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False)
    started_at = db.Column(db.BigInteger, nullable=True)
    finished_at = db.Column(db.BigInteger, nullable=True)

    host = db.relationship('User', foreign_keys=[host_id])
    participants = db.relationship(
        'Participant', back_populates='room',
        order_by='Participant.id'
    )

    @property
    def settings(self):
        return json.loads(self.settings_json)

    @property
    def time_limit_ms(self) -> int:
        return int(self.settings['time_limit']) * 1000

    @property
    def active_participants(self):
        return [p for p in self.participants if p.is_active]

    @property
    def state(self) -> RoomState:
        if self.status == IN_PROGRESS:
            return InProgress(int(self.current_round or 0), int(self.current_question_index or 0))
        if self.status == FINISHED:
            return Finished()
        return Waiting()

    def apply_state(self, state: RoomState, now: int) -> None:
        """Move the room to ``state``; status may only move forward."""
        if STATUS_ORDER[state.status] < STATUS_ORDER[self.status]:
            raise InvalidTransition(f'Cannot move room from {self.status} to {state.status}')
        if isinstance(state, InProgress):
            if self.status == WAITING:
                self.started_at = now
            self.current_round = state.round
            self.current_question_index = state.question_index
        elif isinstance(state, Finished) and self.status != FINISHED:
            self.finished_at = now
        self.status = state.status

    def to_dict(self, include_participants=True):
        data = {
            'id': self.id,
            'code': self.code,
            'host_id': self.host_id,
            'settings': self.settings,
            'status': self.status,
            'is_public': self.is_public,
            'current_round': self.current_round,
            'current_question_index': self.current_question_index,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
        }
        if include_participants:
            data['participants'] = [p.to_dict() for p in self.participants]
        return data


class Participant(db.Model):
    __tablename__ = 'participant'
    __table_args__ = (db.UniqueConstraint('room_id', 'user_id', name='uq_participant_room_user'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    is_ready = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    joined_at = db.Column(db.BigInteger, nullable=False)

    room = db.relationship('Room', back_populates='participants')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'user_id': self.user_id,
            'score': self.score,
            'is_ready': self.is_ready,
            'is_active': self.is_active,
            'joined_at': self.joined_at,
            'user': self.user.to_dict(include_stats=False) if self.user else None,
        }


class Question(db.Model):
    __tablename__ = 'question'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'round_number', 'order_in_round', name='uq_question_room_round_order'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    order_in_round = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=False)
    options_json = db.Column(db.Text, nullable=False)  # JSON-encoded list of {id, text}
    correct_answer = db.Column(db.String(16), nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False)
    difficulty = db.Column(db.String(16), nullable=False)
    fact_checked = db.Column(db.Boolean, default=False, nullable=False)
    fact_check_details = db.Column(db.Text, nullable=True)
    revealed_at = db.Column(db.BigInteger, nullable=True)
    expires_at = db.Column(db.BigInteger, nullable=True)

    room = db.relationship('Room')

    @property
    def options(self):
        return json.loads(self.options_json)

    def is_resolved(self, room: Room, now: int) -> bool:
        """True once clients may see the correct answer."""
        if room.status == FINISHED:
            return True
        if room.status != IN_PROGRESS:
            return False
        position = (self.round_number, self.order_in_round)
        current = (room.current_round, room.current_question_index or 0)
        if position < current:
            return True
        if position == current:
            return self.expires_at is not None and now >= self.expires_at
        return False

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'room_id': self.room_id,
            'round_number': self.round_number,
            'order_in_round': self.order_in_round,
            'content': self.content,
            'options': self.options,
            'category': self.category,
            'difficulty': self.difficulty,
            'fact_checked': self.fact_checked,
            'fact_check_details': self.fact_check_details,
            'revealed_at': self.revealed_at,
            'expires_at': self.expires_at,
        }
        if include_answer:
            data['correct_answer'] = self.correct_answer
            data['explanation'] = self.explanation
        return data


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (db.UniqueConstraint('user_id', 'question_id', name='uq_answer_user_question'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    answer = db.Column(db.String(16), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    response_time = db.Column(db.Integer, nullable=False)
    points_earned = db.Column(db.Integer, nullable=False)
    answered_at = db.Column(db.BigInteger, nullable=False)

    user = db.relationship('User')

    def to_dict(self, include_user=False, include_result=True):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'question_id': self.question_id,
            'room_id': self.room_id,
            'answered_at': self.answered_at,
        }
        # Until the question resolves, other players only learn that someone answered
        if include_result:
            data.update({
                'answer': self.answer,
                'is_correct': self.is_correct,
                'response_time': self.response_time,
                'points_earned': self.points_earned,
            })
        if include_user:
            data['user'] = self.user.to_dict(include_stats=False) if self.user else None
        return data
