from typing import Optional

from flask import current_app

from restaum import db
from restaum.models import LiveGame, GAME_STATUSES, utcnow
from .broadcast import broadcast_game_event
from .errors import (
    GameAlreadyFinished,
    GameClosed,
    GameNotFound,
    InvalidInput,
    PreconditionFailed,
)


def get_game(game_id: str) -> LiveGame:
    game = db.session.get(LiveGame, game_id) if game_id else None
    if game is None:
        raise GameNotFound()
    return game


def list_games(status: Optional[str] = None):
    query = LiveGame.query
    if status:
        if status not in GAME_STATUSES:
            raise InvalidInput(f'Unknown status filter: {status}')
        query = query.filter_by(status=status)
    return query.order_by(LiveGame.created_at.desc()).all()


def _int_field(data: dict, name: str, default: int) -> int:
    value = data.get(name)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise InvalidInput(f'{name} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput(f'{name} must be an integer')


def create_game(admin_user_id: str, data: dict) -> LiveGame:
    cfg = current_app.config
    title = (data.get('title') or '').strip()
    if not title:
        raise InvalidInput('Title is required')

    max_participants = _int_field(data, 'max_participants', int(cfg.get('DEFAULT_MAX_PARTICIPANTS', 50)))
    limit = int(cfg.get('MAX_PARTICIPANTS_LIMIT', 999))
    if not 2 <= max_participants <= limit:
        raise InvalidInput(f'max_participants must be between 2 and {limit}')

    interval = _int_field(data, 'elimination_interval', int(cfg.get('DEFAULT_ELIMINATION_INTERVAL_SEC', 60)))
    ceiling = int(cfg.get('MAX_ELIMINATION_INTERVAL_SEC', 3600))
    if not 1 <= interval <= ceiling:
        raise InvalidInput(f'elimination_interval must be between 1 and {ceiling} seconds')

    game = LiveGame(
        title=title,
        description=(data.get('description') or '').strip(),
        max_participants=max_participants,
        elimination_interval=interval,
        status='waiting',
        created_by=admin_user_id,
    )
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(
        f"[create] game={game.id} max={game.max_participants} interval={game.elimination_interval}s by={admin_user_id}"
    )
    broadcast_game_event(game, 'game_created')
    return game


def _refuse_terminal(game: LiveGame) -> None:
    if game.status == 'finished':
        raise GameAlreadyFinished()
    if game.status == 'cancelled':
        raise GameClosed('Game was cancelled')


def start_game(game_id: str) -> LiveGame:
    """Move a waiting game to ``active``.

    Starting an already active game is a no-op. The caller is responsible
    for arming the elimination timer.
    """
    game = get_game(game_id)
    if game.status == 'active':
        return game
    _refuse_terminal(game)

    min_participants = int(current_app.config.get('MIN_PARTICIPANTS', 2))
    active = game.active_count()
    if active < min_participants:
        raise PreconditionFailed(f'At least {min_participants} participants are required to start')

    now = utcnow()
    updated = LiveGame.query.filter_by(id=game.id, status='waiting').update(
        {'status': 'active', 'started_at': now, 'updated_at': now}, synchronize_session=False
    )
    if not updated:
        db.session.rollback()
        game = get_game(game_id)
        if game.status == 'active':
            return game
        _refuse_terminal(game)
        raise PreconditionFailed('Game could not be started')
    db.session.commit()
    db.session.refresh(game)

    current_app.logger.info(f"[start] game={game.id} participants={active} interval={game.elimination_interval}s")
    broadcast_game_event(game, 'game_started')
    return game


def cancel_game(game_id: str, reason: str = 'admin') -> LiveGame:
    """Administrator override: any non-terminal game becomes ``cancelled``.

    Either the whole transition is committed or the game keeps its prior
    state (the write is a single conditional update).
    """
    game = get_game(game_id)
    _refuse_terminal(game)

    now = utcnow()
    updated = LiveGame.query.filter(
        LiveGame.id == game.id, LiveGame.status.in_(('waiting', 'active'))
    ).update({'status': 'cancelled', 'cancelled_at': now, 'updated_at': now}, synchronize_session=False)
    if not updated:
        db.session.rollback()
        _refuse_terminal(get_game(game_id))
        raise GameClosed()
    db.session.commit()
    db.session.refresh(game)

    current_app.logger.info(f"[cancel] game={game.id} reason={reason}")
    broadcast_game_event(game, 'game_cancelled', reason=reason)
    return game
