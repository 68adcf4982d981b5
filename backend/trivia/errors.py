"""Domain errors raised by the game services.

Every error is recoverable: services roll back before raising, and the
HTTP layer renders them as ``{"error": message, "code": code}``.
"""


class GameError(Exception):
    code = 'game_error'
    status_code = 400
    message = 'Game error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class RoomNotFound(GameError):
    code = 'room_not_found'
    status_code = 404
    message = 'Room not found'


class GameAlreadyStarted(GameError):
    code = 'game_already_started'
    status_code = 409
    message = 'Game already started'


class RoomFull(GameError):
    code = 'room_full'
    status_code = 409
    message = 'Room is full'


class ParticipantNotFound(GameError):
    code = 'participant_not_found'
    status_code = 404
    message = 'Participant not found'


class DuplicateAnswer(GameError):
    code = 'duplicate_answer'
    status_code = 409
    message = 'Answer already submitted'


class QuestionNotFound(GameError):
    code = 'question_not_found'
    status_code = 404
    message = 'Question not found'


class StaleQuestion(GameError):
    code = 'stale_question'
    status_code = 409
    message = 'Question is no longer current'


class InvalidTransition(GameError):
    code = 'invalid_transition'
    status_code = 409
    message = 'Invalid room state transition'


class NotReady(GameError):
    code = 'not_ready'
    status_code = 400
    message = 'Not all players are ready or insufficient players'


class NotHost(GameError):
    code = 'not_host'
    status_code = 403
    message = 'Only the host may do that'


class InvalidSettings(GameError):
    code = 'invalid_settings'
    status_code = 400
    message = 'Invalid room settings'


class UserNotFound(GameError):
    code = 'user_not_found'
    status_code = 404
    message = 'User not found'


class RoomCodeExhausted(GameError):
    code = 'room_code_exhausted'
    status_code = 503
    message = 'Could not allocate a room code'


class GenerationUnavailable(GameError):
    """The question generator could not produce a usable batch.

    Never reaches a caller: the question bank falls back to its own pool.
    """
    code = 'generation_unavailable'
    status_code = 503
    message = 'Question generation unavailable'


class InvalidAnswer(GameError):
    code = 'invalid_answer'
    status_code = 400
    message = 'Answer is not one of the question options'
