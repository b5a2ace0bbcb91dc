from flask_socketio import join_room, leave_room, emit
from restaum import db
from restaum.models import LiveGame
from restaum.services.games.broadcast import LOBBY_ROOM, game_room


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Rooms are cleaned up by Socket.IO; the elimination loop is server-side
    # and does not depend on any connected client.
    pass


def handle_join_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    game = db.session.get(LiveGame, game_id)
    if not game:
        emit('error', {'message': 'Game not found', 'game_id': game_id})
        return
    room = game_room(game.id)
    join_room(room)
    emit('joined', {'room': room})
    # Late joiners get the current projection straight away
    emit('state_update', {'game_id': game.id, 'game': game.to_dict()})


def handle_leave_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    room = game_room(game_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_watch_games(data=None):
    join_room(LOBBY_ROOM)
    emit('joined', {'room': LOBBY_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from restaum import socketio

    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('watch_games', handle_watch_games, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
