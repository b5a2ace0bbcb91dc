from restaum import create_app, socketio
from restaum.services.games.scheduler import resume_live_games

app = create_app()

if __name__ == '__main__':
    # Pick up elimination loops interrupted by a restart
    resume_live_games(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
