from typing import Optional

from flask import current_app

from restaum import db
from restaum.models import LiveGame, LiveParticipant, utcnow
from restaum.services.messaging import notify_winner
from .broadcast import broadcast_game_event
from .errors import GameAlreadyFinished, GameClosed, ParticipantNotFound, PreconditionFailed
from .lifecycle import get_game


def _same_winner(game: LiveGame, winner_participant_id: Optional[str]) -> bool:
    return (game.winner_participant_id or None) == (winner_participant_id or None)


def _refuse_closed(game: LiveGame, winner_participant_id: Optional[str]) -> Optional[LiveGame]:
    if game.status == 'finished':
        if _same_winner(game, winner_participant_id):
            return game
        raise GameAlreadyFinished('Game already finished with a different winner')
    if game.status == 'cancelled':
        raise GameClosed('Game was cancelled')
    if game.status != 'active':
        raise PreconditionFailed('Game has not started')
    return None


def finalize_game(game_id: str, winner_participant_id: Optional[str]) -> LiveGame:
    """Close an active game with its last standing participant.

    ``winner_participant_id`` must name the only active participant, or be
    ``None`` when nobody is active (the game then finishes without winner).
    Repeating the call with the same winner once finished is a no-op.
    """
    game = get_game(game_id)
    done = _refuse_closed(game, winner_participant_id)
    if done is not None:
        return done

    active = LiveParticipant.query.filter_by(game_id=game.id, status='active').all()
    if len(active) > 1:
        raise PreconditionFailed(f'{len(active)} participants are still active')

    winner = None
    if winner_participant_id:
        winner = LiveParticipant.query.filter_by(id=winner_participant_id, game_id=game.id).first()
        if winner is None:
            raise ParticipantNotFound()
        if not active or active[0].id != winner.id:
            raise PreconditionFailed('Winner must be the last active participant')
    elif active:
        raise PreconditionFailed('The last active participant must be named as winner')

    now = utcnow()
    updated = LiveGame.query.filter_by(id=game.id, status='active').update(
        {
            'status': 'finished',
            'finished_at': now,
            'updated_at': now,
            'winner_participant_id': winner.id if winner else None,
            'winner_user_id': winner.user_id if winner else None,
            'winner_number': winner.lucky_number if winner else None,
        },
        synchronize_session=False,
    )
    if not updated:
        # Lost a race with another finalize or a cancel.
        db.session.rollback()
        db.session.refresh(game)
        done = _refuse_closed(game, winner_participant_id)
        if done is not None:
            return done
        raise PreconditionFailed('Game could not be finalized')
    db.session.commit()
    db.session.refresh(game)

    if winner:
        current_app.logger.info(
            f"[finish] game={game.id} winner={winner.user_id} number={winner.lucky_number} rounds={game.current_round}"
        )
    else:
        current_app.logger.warning(f"[finish] game={game.id} no active participant left, finished without winner")

    broadcast_game_event(game, 'game_finished', winner=winner.to_dict() if winner else None)
    if winner:
        notify_winner(current_app._get_current_object(), game.id)
    return game
