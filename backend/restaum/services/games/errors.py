"""Domain errors raised by the live game services.

Each error carries the HTTP status the API layer answers with, so routes
can let them propagate to the blueprint error handler.
"""


class LiveGameError(Exception):
    status_code = 400
    default_message = 'Live game error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


# Validation
class InvalidInput(LiveGameError):
    default_message = 'Invalid input'


class NumberOutOfRange(LiveGameError):
    default_message = 'Lucky number is out of range'


# Lookups
class GameNotFound(LiveGameError):
    status_code = 404
    default_message = 'Game not found'


class ParticipantNotFound(LiveGameError):
    status_code = 404
    default_message = 'Participant not found'


# Conflicts
class GameNotJoinable(LiveGameError):
    status_code = 409
    default_message = 'Game has already started and is not accepting participants'


class NumberAlreadyTaken(LiveGameError):
    status_code = 409
    default_message = 'This number has already been taken'


class UserAlreadyJoined(LiveGameError):
    status_code = 409
    default_message = 'You are already participating in this game'


class GameFull(LiveGameError):
    status_code = 409
    default_message = 'Game is full'


class GameClosed(LiveGameError):
    status_code = 409
    default_message = 'Game is closed'


# Preconditions
class PreconditionFailed(LiveGameError):
    default_message = 'Precondition failed'


class GameAlreadyFinished(LiveGameError):
    status_code = 409
    default_message = 'Game has already finished'
