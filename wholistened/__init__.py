from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def create_app(config_class=Config, timers=None, track_supplier=None):
    """Build the Flask app and wire the game engine.

    ``timers`` and ``track_supplier`` default to the real background timers
    and the Spotify supplier; tests pass fakes.
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Game engine composition root: one registry, one timer runtime per process
    from wholistened.services.games import build_game_services
    from wholistened.services.notifier import RoomNotifier
    from wholistened.services.games.timers import RoomTimers
    from wholistened.services.tracks.spotify import SpotifyTrackSupplier

    if timers is None:
        timers = RoomTimers(
            spawn=socketio.start_background_task,
            sleep=socketio.sleep,
            logger=flask_app.logger,
            heartbeat=int(flask_app.config.get('TIMER_HEARTBEAT_SEC', 0)),
        )
    if track_supplier is None:
        track_supplier = SpotifyTrackSupplier(
            client_id=flask_app.config.get('SPOTIFY_CLIENT_ID', ''),
            client_secret=flask_app.config.get('SPOTIFY_CLIENT_SECRET', ''),
            redirect_uri=flask_app.config.get('SPOTIFY_REDIRECT_URI', ''),
            limit=int(flask_app.config.get('TRACK_FETCH_LIMIT', 50)),
        )
    flask_app.extensions['wholistened'] = build_game_services(
        flask_app,
        timers=timers,
        notifier=RoomNotifier(socketio),
        track_supplier=track_supplier,
    )

    # Import and register blueprints here
    from wholistened.main import main
    flask_app.register_blueprint(main)

    from wholistened.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from wholistened.api.users import users
    flask_app.register_blueprint(users, url_prefix='/api/users')

    # Register Socket.IO event handlers
    from wholistened.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        import wholistened.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
