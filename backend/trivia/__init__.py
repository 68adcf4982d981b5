from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or Config.CORS_ORIGINS

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from trivia.api.users import users
    flask_app.register_blueprint(users, url_prefix='/api/users')

    from trivia.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from trivia.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from trivia.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from trivia.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        db.session.rollback()
        flask_app.logger.info(f"[game-error] {exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    # Identity comes from a trusted upstream header carrying the external user id
    from trivia.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(request):
        external_id = request.headers.get(flask_app.config.get('IDENTITY_HEADER', 'X-User-Id'))
        if not external_id:
            return None
        return User.query.filter_by(external_id=external_id).first()

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from trivia.services.users import get_or_create_user
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            for i in range(1, 4):
                get_or_create_user(f'dev-user-{i}', f'testuser{i}')

            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
