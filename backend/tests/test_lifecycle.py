import pytest

from restaum import db
from restaum.models import LiveGame
from restaum.services.games.errors import (
    GameAlreadyFinished,
    GameClosed,
    InvalidInput,
    PreconditionFailed,
)
from restaum.services.games.lifecycle import cancel_game, create_game, list_games, start_game
from restaum.services.games.registration import join_game
from restaum.services.games.elimination import run_elimination_tick


def test_create_uses_defaults(users):
    game = create_game('admin', {'title': '  Sorteio ao vivo  '})
    assert game.title == 'Sorteio ao vivo'
    assert game.status == 'waiting'
    assert game.max_participants == 50
    assert game.elimination_interval == 60
    assert game.current_participants == 0
    assert game.started_at is None and game.finished_at is None and game.winner_user_id is None


@pytest.mark.parametrize('data', [
    {},
    {'title': 'x', 'max_participants': 1},
    {'title': 'x', 'max_participants': 1000},
    {'title': 'x', 'max_participants': 'many'},
    {'title': 'x', 'elimination_interval': -5},
    {'title': 'x', 'elimination_interval': 0},
    {'title': 'x', 'elimination_interval': 3601},
    {'title': 'x', 'elimination_interval': float('inf')},
    {'title': 'x', 'max_participants': float('inf')},
])
def test_create_validation(users, data):
    with pytest.raises(InvalidInput):
        create_game('admin', data)
    assert LiveGame.query.count() == 0


@pytest.mark.parametrize('interval', [0, -1, 10 ** 12])
def test_model_rejects_unschedulable_interval(users, interval):
    with pytest.raises(InvalidInput):
        LiveGame(title='x', max_participants=10, elimination_interval=interval)


def test_interval_ceiling_comes_from_config(flask_app, users, monkeypatch):
    monkeypatch.setitem(flask_app.config, 'MAX_ELIMINATION_INTERVAL_SEC', 300)
    assert create_game('admin', {'title': 'x', 'elimination_interval': 300}).elimination_interval == 300
    with pytest.raises(InvalidInput):
        create_game('admin', {'title': 'y', 'elimination_interval': 301})


def test_list_games_filters_by_status(users, make_game):
    waiting = make_game(title='A')
    other = make_game(title='B')
    cancel_game(other.id)
    assert [g.id for g in list_games('waiting')] == [waiting.id]
    assert {g.id for g in list_games()} == {waiting.id, other.id}
    with pytest.raises(InvalidInput):
        list_games('paused')


def test_start_requires_two_participants(users, make_game):
    game = make_game()
    join_game(game.id, 'alice', 1)
    with pytest.raises(PreconditionFailed):
        start_game(game.id)
    game = db.session.get(LiveGame, game.id)
    assert game.status == 'waiting'
    assert game.started_at is None


def test_start_records_timestamp_and_is_idempotent(users, make_game):
    game = make_game()
    join_game(game.id, 'alice', 1)
    join_game(game.id, 'bob', 2)
    started = start_game(game.id)
    assert started.status == 'active'
    first_started_at = started.started_at
    assert first_started_at is not None
    again = start_game(game.id)
    assert again.status == 'active'
    assert again.started_at == first_started_at


def test_cancel_waiting_and_active_games(users, make_game):
    waiting = make_game(title='W')
    assert cancel_game(waiting.id).status == 'cancelled'

    active = make_game(title='A')
    join_game(active.id, 'alice', 1)
    join_game(active.id, 'bob', 2)
    start_game(active.id)
    cancelled = cancel_game(active.id)
    assert cancelled.status == 'cancelled'
    assert cancelled.cancelled_at is not None


def test_cancelled_game_is_immutable(users, make_game):
    game = make_game()
    join_game(game.id, 'alice', 1)
    join_game(game.id, 'bob', 2)
    start_game(game.id)
    cancel_game(game.id)
    with pytest.raises(GameClosed):
        cancel_game(game.id)
    with pytest.raises(GameClosed):
        start_game(game.id)
    result = run_elimination_tick(game.id)
    assert result.outcome == 'stopped'
    game = db.session.get(LiveGame, game.id)
    assert game.active_count() == 2
    assert game.current_round == 0


def test_cancel_finished_game_is_refused(users, make_game):
    game = make_game()
    join_game(game.id, 'alice', 1)
    join_game(game.id, 'bob', 2)
    start_game(game.id)
    run_elimination_tick(game.id)
    assert db.session.get(LiveGame, game.id).status == 'finished'
    with pytest.raises(GameAlreadyFinished):
        cancel_game(game.id)
    with pytest.raises(GameAlreadyFinished):
        start_game(game.id)
