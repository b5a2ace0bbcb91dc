"""Number claims: users joining a waiting game with a lucky number.

The pre-checks below give precise refusal reasons, but they are not what
keeps the game consistent: the participant counter is bumped with a
conditional UPDATE and the storage unique constraints on
``(game_id, lucky_number)`` and ``(game_id, user_id)`` decide any race.
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError

from restaum import db
from restaum.models import LiveGame, LiveParticipant, utcnow
from .broadcast import broadcast_game_event
from .errors import (
    GameFull,
    GameNotJoinable,
    InvalidInput,
    NumberAlreadyTaken,
    NumberOutOfRange,
    UserAlreadyJoined,
)
from .lifecycle import get_game


def list_participants(game_id: str):
    game = get_game(game_id)
    return game.participants.all()


def available_numbers(game_id: str):
    game = get_game(game_id)
    taken = {n for (n,) in db.session.query(LiveParticipant.lucky_number).filter_by(game_id=game.id)}
    return [n for n in range(1, game.max_participants + 1) if n not in taken]


def _coerce_number(raw) -> int:
    if isinstance(raw, bool) or raw is None:
        raise InvalidInput('lucky_number must be an integer')
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw.lstrip('-').isdigit():
            raise InvalidInput('lucky_number must be an integer')
    try:
        number = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput('lucky_number must be an integer')
    if isinstance(raw, float) and raw != number:
        raise InvalidInput('lucky_number must be an integer')
    return number


def _user_has_joined(game_id: str, user_id: str) -> bool:
    return LiveParticipant.query.filter_by(game_id=game_id, user_id=user_id).first() is not None


def _number_taken(game_id: str, number: int) -> bool:
    return LiveParticipant.query.filter_by(game_id=game_id, lucky_number=number).first() is not None


def _conflict_error(game_id: str, user_id: str, number: int):
    """Map a unique-constraint violation back to the refusal it stands for.

    Returns None when neither claim exists, i.e. the violation was something
    else (foreign key, capacity check) and should propagate unchanged.
    """
    claims = LiveParticipant.query.filter_by(game_id=game_id)
    if claims.filter_by(user_id=user_id).count():
        return UserAlreadyJoined()
    if claims.filter_by(lucky_number=number).count():
        return NumberAlreadyTaken(f'Number {number} has already been taken')
    return None


def join_game(game_id: str, user_id: str, lucky_number) -> LiveParticipant:
    game = get_game(game_id)
    if game.status != 'waiting':
        raise GameNotJoinable()

    number = _coerce_number(lucky_number)
    if not 1 <= number <= game.max_participants:
        raise NumberOutOfRange(f'Lucky number must be between 1 and {game.max_participants}')
    if game.current_participants >= game.max_participants:
        raise GameFull()
    if _user_has_joined(game.id, user_id):
        raise UserAlreadyJoined()
    if _number_taken(game.id, number):
        raise NumberAlreadyTaken(f'Number {number} has already been taken')

    participant = LiveParticipant(
        game_id=game.id,
        user_id=user_id,
        lucky_number=number,
        status='active',
        joined_at=utcnow(),
    )
    try:
        claimed = LiveGame.query.filter(
            LiveGame.id == game.id,
            LiveGame.status == 'waiting',
            LiveGame.current_participants < LiveGame.max_participants,
        ).update(
            {'current_participants': LiveGame.current_participants + 1, 'updated_at': utcnow()},
            synchronize_session=False,
        )
        if not claimed:
            db.session.rollback()
            db.session.refresh(game)
            if game.status != 'waiting':
                raise GameNotJoinable()
            raise GameFull()
        db.session.add(participant)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        conflict = _conflict_error(game.id, user_id, number)
        if conflict is None:
            current_app.logger.error(f"[join-failed] game={game.id} user={user_id} number={number}")
            raise
        current_app.logger.info(f"[join-conflict] game={game.id} user={user_id} number={number}")
        raise conflict

    db.session.refresh(game)
    current_app.logger.info(
        f"[join] game={game.id} user={user_id} number={number} count={game.current_participants}/{game.max_participants}"
    )
    broadcast_game_event(game, 'participant_joined', participant=participant.to_dict())
    return participant
