from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

# HTTP status -> error code for failures werkzeug raises before a view runs
HTTP_ERROR_CODES = {
    400: 'BAD_REQUEST',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    413: 'PAYLOAD_TOO_LARGE',
    415: 'UNSUPPORTED_MEDIA_TYPE',
}


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from pixeltrivia.services.rooms.ratelimit import EXTENSION_KEY, RateLimiter
    flask_app.extensions[EXTENSION_KEY] = RateLimiter()

    from pixeltrivia.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    register_error_handlers(flask_app)

    # Importing here ensures the handlers bind to the initialized socketio instance
    from pixeltrivia.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    register_commands(flask_app)

    return flask_app


def register_error_handlers(flask_app):
    from pixeltrivia.errors import AppError, RateLimitError

    @flask_app.errorhandler(AppError)
    def handle_app_error(exc):
        if exc.status_code >= 500:
            flask_app.logger.error(f"[error] {exc.code}: {exc.message}")
        response = jsonify(exc.to_dict())
        response.status_code = exc.status_code
        if isinstance(exc, RateLimitError):
            response.headers['Retry-After'] = str(exc.retry_after)
        return response

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(exc):
        code = HTTP_ERROR_CODES.get(exc.code, 'HTTP_ERROR')
        response = jsonify({'error': exc.description, 'code': code})
        response.status_code = exc.code
        return response

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc):
        flask_app.logger.exception(f"[error] unhandled {type(exc).__name__}")
        db.session.rollback()
        message = str(exc) if flask_app.debug else 'An unexpected error occurred'
        return jsonify({'error': message, 'code': 'INTERNAL_SERVER_ERROR'}), 500


def register_commands(flask_app):
    @click.command('db-reset')
    @click.option('--seed/--no-seed', default=True, help='Load the bundled question bank afterwards.')
    def db_reset_command(seed):
        """Drops, recreates, and seeds the database."""
        from pixeltrivia.services.rooms.questions import seed_question_bank
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            if seed:
                added = seed_question_bank(flask_app.config.get('QUESTION_BANK_PATH'))
                click.echo(f'Database has been reset and seeded with {added} questions!')
            else:
                click.echo('Database has been reset!')

    @click.command('seed-questions')
    @click.option('--path', type=click.Path(exists=True, dir_okay=False), default=None,
                  help='JSON file of questions; defaults to the bundled bank.')
    @click.option('--replace', is_flag=True, help='Delete existing bank questions first.')
    def seed_questions_command(path, replace):
        """Load questions into the bank table."""
        from pixeltrivia.services.rooms.questions import seed_question_bank
        with flask_app.app_context():
            added = seed_question_bank(path or flask_app.config.get('QUESTION_BANK_PATH'), replace=replace)
            click.echo(f'Added {added} questions.')

    @click.command('purge-rooms')
    @click.option('--max-age', type=int, default=None,
                  help='Delete rooms older than this many seconds (default: ROOM_TTL_SECONDS).')
    def purge_rooms_command(max_age):
        """Delete expired rooms with their players, answers and question sets."""
        from pixeltrivia.services.rooms.store import RoomStore
        with flask_app.app_context():
            max_age = max_age if max_age is not None else flask_app.config['ROOM_TTL_SECONDS']
            removed = RoomStore.from_config(flask_app.config).purge_expired(max_age)
            flask_app.logger.info(f"[purge-rooms] removed={removed} max_age={max_age}")
            click.echo(f'Removed {removed} rooms.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_questions_command)
    flask_app.cli.add_command(purge_rooms_command)
