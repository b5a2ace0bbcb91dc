import time
from datetime import datetime, timedelta
from typing import Optional, Set

from restaum import db, socketio
from restaum.models import LiveGame, utcnow
from restaum.services.context import app_context_for
from .elimination import FAILED, FINISHED, STOPPED, TickResult, run_elimination_tick
from .errors import LiveGameError
from .lifecycle import cancel_game


_scheduled_games: Set[str] = set()
_stop_requested: Set[str] = set()
# Floor between ticks, so a failing store is never retried back to back.
MIN_TICK_DELAY_SEC = 1


def seconds_until_next_tick(game: LiveGame, now: Optional[datetime] = None) -> Optional[float]:
    """Wall-clock delay before the game's next elimination tick.

    Anchored on the last successful elimination (or the start), so a
    restarted process picks up where the previous one left off.
    """
    if game.status != 'active' or not game.started_at:
        return None
    now = now or utcnow()
    anchor = game.last_elimination_at or game.started_at
    due = anchor + timedelta(seconds=int(game.elimination_interval or 0))
    return max(0.0, (due - now).total_seconds())


def _exceeded_max_duration(app, game: LiveGame, now: Optional[datetime] = None) -> bool:
    limit = int(app.config.get('MAX_GAME_DURATION_SEC', 0) or 0)
    if limit <= 0 or not game.started_at:
        return False
    now = now or utcnow()
    return (now - game.started_at).total_seconds() > limit


def is_timer_running(game_id: str) -> bool:
    return game_id in _scheduled_games


def stop_elimination_timer(game_id: str) -> None:
    """Ask a running timer to exit at its next wake-up."""
    if game_id in _scheduled_games:
        _stop_requested.add(game_id)


def schedule_elimination_timer(app, game_id: str) -> bool:
    """Arm the elimination loop for an active game.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set (then runs inline)
    - Ensures a single timer per game id
    - Delay to the first tick is recomputed from wall-clock
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False

    with app_context_for(app):
        game = db.session.get(LiveGame, game_id)
        if not game or game.status != 'active':
            return False

        if game.id in _scheduled_games:
            app.logger.info(f"[timer-skip] game={game.id} already scheduled")
            return False

        _scheduled_games.add(game.id)
        _stop_requested.discard(game.id)
        delay = seconds_until_next_tick(game) or 0.0
        app.logger.info(
            f"[timer-set] game={game.id} interval={game.elimination_interval}s first_tick_in={delay:.1f}s"
        )

    if app.config.get('TESTING'):
        _worker(app, game_id, delay)
    else:
        socketio.start_background_task(_worker, app, game_id, delay)
    return True


def _sleep(app, gid: str, delay: float) -> None:
    try:
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    except (TypeError, ValueError):
        hb = 0
    if delay <= 0:
        return
    if hb and hb > 0:
        slept = 0.0
        while slept < delay and gid not in _stop_requested:
            step = min(hb, delay - slept)
            time.sleep(step)
            slept += step
            app.logger.info(f"[timer-heartbeat] game={gid} remaining={max(0.0, delay - slept):.1f}s")
    else:
        time.sleep(delay)


def _worker(app, gid: str, delay: float) -> None:
    try:
        while True:
            _sleep(app, gid, delay)
            if gid in _stop_requested:
                app.logger.info(f"[timer-stop] game={gid}")
                return

            with app_context_for(app):
                game = db.session.get(LiveGame, gid)
                if game is not None:
                    db.session.refresh(game)
                if not game or game.status != 'active':
                    app.logger.info(f"[timer-abort] game={gid} status={game.status if game else None}")
                    return

                if _exceeded_max_duration(app, game):
                    app.logger.warning(f"[timer-expired] game={gid} exceeded MAX_GAME_DURATION_SEC")
                    try:
                        cancel_game(gid, reason='max_duration')
                    except LiveGameError as exc:
                        app.logger.warning(f"[timer-expired] game={gid} cancel refused: {exc.message}")
                    return

                interval = max(int(game.elimination_interval or 0), MIN_TICK_DELAY_SEC)
                try:
                    result = run_elimination_tick(gid)
                except Exception:
                    # A tick must never take the loop down; retry next interval.
                    db.session.rollback()
                    app.logger.exception(f"[tick-error] game={gid}")
                    result = TickResult(FAILED)

                app.logger.info(f"[timer-fire] game={gid} outcome={result.outcome}")
                if result.outcome in (FINISHED, STOPPED):
                    return
                if result.game is not None and result.game.status != 'active':
                    return
            delay = interval
    finally:
        _scheduled_games.discard(gid)
        _stop_requested.discard(gid)


def resume_live_games(app) -> int:
    """Re-arm timers for every active game (after a process restart)."""
    with app_context_for(app):
        game_ids = [g.id for g in LiveGame.query.filter_by(status='active').all()]
    resumed = 0
    for gid in game_ids:
        if schedule_elimination_timer(app, gid):
            resumed += 1
    app.logger.info(f"[resume] active_games={len(game_ids)} resumed={resumed}")
    return resumed
