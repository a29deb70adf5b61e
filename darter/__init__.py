from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    origins = flask_app.config.get('CORS_ORIGINS') or []
    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins,
         expose_headers=['Content-Type'], allow_headers=['Content-Type', 'X-Session-ID'])

    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Import and register blueprints here
    from darter.main import main
    flask_app.register_blueprint(main)

    from darter.api.match_types import match_types
    flask_app.register_blueprint(match_types, url_prefix='/api/match-types')

    from darter.api.tournaments import tournaments, tournament_types
    flask_app.register_blueprint(tournaments, url_prefix='/api/tournaments')
    flask_app.register_blueprint(tournament_types, url_prefix='/api/tournament-types')

    from darter.api.matches import matches
    from darter.api.locks import locks
    from darter.api.throws import throws
    # Lock and throw routes live under a match, mounted at the same prefix
    flask_app.register_blueprint(matches, url_prefix='/api/matches')
    flask_app.register_blueprint(locks, url_prefix='/api/matches')
    flask_app.register_blueprint(throws, url_prefix='/api/matches')

    from darter.api.errors import register_error_handlers
    register_error_handlers(flask_app)

    from darter.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from darter.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, user_id)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from darter.seed import seed_match_types, seed_tournament_types
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            created = seed_match_types()
            types = seed_tournament_types()
            click.echo(f'Database has been reset and seeded with {created} match types and {types} tournament types!')

    @click.command('db-seed')
    def db_seed_command():
        """Inserts the default match and tournament types that are not present yet."""
        from darter.seed import seed_match_types, seed_tournament_types
        with flask_app.app_context():
            created = seed_match_types()
            types = seed_tournament_types()
            click.echo(f'Seeded {created} match types and {types} tournament types.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(db_seed_command)

    return flask_app
