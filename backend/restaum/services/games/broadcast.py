from flask import current_app
from restaum import socketio
from restaum.models import LiveGame

LOBBY_ROOM = 'live_games'
NAMESPACE = '/ws'


def game_room(game_id: str) -> str:
    return f"live_game:{game_id}"


def broadcast_game_event(game: LiveGame, event: str, **payload) -> None:
    """Push a committed change to everyone watching the game or the lobby.

    Emits the named event (if any) followed by a full ``state_update`` so
    clients can always re-render from the latest projection.
    """
    state = game.to_dict()
    try:
        if event and event != 'state_update':
            body = {'game_id': game.id, **payload}
            socketio.emit(event, body, to=game_room(game.id), namespace=NAMESPACE)
            socketio.emit(event, body, to=LOBBY_ROOM, namespace=NAMESPACE)
        socketio.emit('state_update', {'game_id': game.id, 'game': state}, to=game_room(game.id), namespace=NAMESPACE)
        socketio.emit('state_update', {'game_id': game.id, 'game': state}, to=LOBBY_ROOM, namespace=NAMESPACE)
    except Exception as exc:
        # The row is already committed; a lost push is recovered by polling.
        current_app.logger.warning(f"[broadcast-failed] game={game.id} event={event} error={exc}")
