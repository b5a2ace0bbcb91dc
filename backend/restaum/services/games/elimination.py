import random
from typing import NamedTuple, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from restaum import db
from restaum.models import LiveGame, LiveParticipant, utcnow
from restaum.services.messaging import notify_elimination
from .broadcast import broadcast_game_event
from .closure import finalize_game
from .errors import LiveGameError

_system_rng = random.SystemRandom()

ELIMINATED = 'eliminated'
FINISHED = 'finished'
STOPPED = 'stopped'
FAILED = 'failed'


class TickResult(NamedTuple):
    outcome: str
    participant: Optional[LiveParticipant] = None
    game: Optional[LiveGame] = None


def _finish(game: LiveGame, active) -> TickResult:
    winner_id = active[0].id if active else None
    game = finalize_game(game.id, winner_id)
    return TickResult(FINISHED, active[0] if active else None, game)


def run_elimination_tick(game_id: str, rng=None) -> TickResult:
    """One elimination step for an active game.

    - one or zero active participants: finalize, nobody is eliminated
    - otherwise: eliminate one active participant chosen uniformly at random,
      and finalize straight away if that leaves a single survivor

    Persistence failures roll back and come back as ``FAILED``; the active
    set is then unchanged.
    """
    rng = rng or _system_rng
    game = db.session.get(LiveGame, game_id)
    if game is None or game.status != 'active':
        return TickResult(STOPPED, game=game)

    try:
        active = LiveParticipant.query.filter_by(game_id=game.id, status='active').all()
        if len(active) <= 1:
            return _finish(game, active)

        victim = rng.choice(active)
        now = utcnow()
        round_no = int(game.current_round or 0) + 1

        # Guard on status so a concurrent cancel/finish wins over this tick.
        game_rows = LiveGame.query.filter_by(id=game.id, status='active').update(
            {'current_round': round_no, 'last_elimination_at': now, 'updated_at': now},
            synchronize_session=False,
        )
        if not game_rows:
            db.session.rollback()
            return TickResult(STOPPED, game=game)
        victim_rows = LiveParticipant.query.filter_by(id=victim.id, status='active').update(
            {'status': 'eliminated', 'eliminated_at': now, 'eliminated_in_round': round_no},
            synchronize_session=False,
        )
        if not victim_rows:
            db.session.rollback()
            current_app.logger.warning(f"[tick-skip] game={game.id} participant={victim.id} no longer active")
            return TickResult(FAILED, game=game)
        db.session.commit()
    except LiveGameError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[tick-stop] game={game_id} error={exc.message}")
        return TickResult(STOPPED, game=game)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[tick-failed] game={game_id} error={exc}")
        return TickResult(FAILED, game=game)

    db.session.refresh(game)
    db.session.refresh(victim)
    remaining = len(active) - 1
    current_app.logger.info(
        f"[eliminate] game={game.id} number={victim.lucky_number} user={victim.user_id} round={round_no} remaining={remaining}"
    )
    broadcast_game_event(game, 'participant_eliminated', participant=victim.to_dict(), remaining=remaining)
    notify_elimination(current_app._get_current_object(), victim.id)

    if remaining == 1:
        survivors = LiveParticipant.query.filter_by(game_id=game.id, status='active').all()
        if len(survivors) <= 1:
            try:
                _finish(game, survivors)
            except LiveGameError as exc:
                # Elimination is durable; the next tick retries the close.
                current_app.logger.warning(f"[finish-deferred] game={game.id} error={exc.message}")
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"[finish-deferred] game={game.id} error={exc}")
            else:
                db.session.refresh(game)
    return TickResult(ELIMINATED, victim, game)
