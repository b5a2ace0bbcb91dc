from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from restaum.services.games.errors import LiveGameError
from restaum.services.games.lifecycle import (
    cancel_game as svc_cancel_game,
    create_game as svc_create_game,
    get_game as svc_get_game,
    list_games as svc_list_games,
    start_game as svc_start_game,
)
from restaum.services.games.registration import (
    available_numbers as svc_available_numbers,
    join_game as svc_join_game,
    list_participants as svc_list_participants,
)
from restaum.services.games.closure import finalize_game as svc_finalize_game
from restaum.services.games.scheduler import (
    is_timer_running as svc_is_timer_running,
    schedule_elimination_timer as svc_schedule_elimination_timer,
    seconds_until_next_tick as svc_seconds_until_next_tick,
    stop_elimination_timer as svc_stop_elimination_timer,
)


games = Blueprint('games', __name__)


@games.errorhandler(LiveGameError)
def handle_live_game_error(exc: LiveGameError):
    return jsonify(exc.to_dict()), exc.status_code


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not getattr(current_user, 'is_admin', False):
            return jsonify({'error': 'Administrator access required', 'code': 'Forbidden'}), 403
        return view(*args, **kwargs)
    return wrapped


@games.route('', methods=['GET'])
def list_live_games():
    status = request.args.get('status') or None
    return jsonify([g.to_dict() for g in svc_list_games(status)])


@games.route('', methods=['POST'])
@admin_required
def create_live_game():
    data = request.get_json(silent=True) or {}
    game = svc_create_game(current_user.id, data)
    return jsonify(game.to_dict()), 201


@games.route('/<string:game_id>/state', methods=['GET'])
def get_game_state(game_id):
    game = svc_get_game(game_id)
    payload = game.to_dict(include_participants=True)
    payload['available_numbers'] = svc_available_numbers(game.id) if game.status == 'waiting' else []
    # Polling clients render the countdown from this
    payload['next_tick_in'] = svc_seconds_until_next_tick(game)
    payload['timer_running'] = svc_is_timer_running(game.id)
    payload['min_participants'] = int(current_app.config.get('MIN_PARTICIPANTS', 2))
    return jsonify(payload)


@games.route('/<string:game_id>/participants', methods=['GET'])
def get_participants(game_id):
    return jsonify([p.to_dict() for p in svc_list_participants(game_id)])


@games.route('/<string:game_id>/join', methods=['POST'])
@login_required
def join_live_game(game_id):
    data = request.get_json(silent=True) or {}
    participant = svc_join_game(game_id, current_user.id, data.get('lucky_number'))
    return jsonify(participant.to_dict()), 201


@games.route('/<string:game_id>/start', methods=['POST'])
@admin_required
def start_live_game(game_id):
    game = svc_start_game(game_id)
    svc_schedule_elimination_timer(current_app._get_current_object(), game.id)
    game = svc_get_game(game.id)
    return jsonify(game.to_dict(include_participants=True))


@games.route('/<string:game_id>/cancel', methods=['POST'])
@admin_required
def cancel_live_game(game_id):
    data = request.get_json(silent=True) or {}
    game = svc_cancel_game(game_id, reason=data.get('reason') or 'admin')
    svc_stop_elimination_timer(game.id)
    return jsonify(game.to_dict())


@games.route('/<string:game_id>/finalize', methods=['POST'])
@admin_required
def finalize_live_game(game_id):
    data = request.get_json(silent=True) or {}
    game = svc_finalize_game(game_id, data.get('winner_participant_id'))
    svc_stop_elimination_timer(game.id)
    return jsonify(game.to_dict(include_participants=True))
