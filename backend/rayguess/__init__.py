from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from rayguess.coordinator import GameCoordinator
    from rayguess.identity import IdentityVerifier

    bot_token = flask_app.config.get('TELEGRAM_BOT_TOKEN') or ''
    if not bot_token:
        flask_app.logger.warning("[config] TELEGRAM_BOT_TOKEN is empty, Telegram logins will all fail")
    verifier = IdentityVerifier(bot_token, max_age_sec=int(flask_app.config.get('AUTH_MAX_AGE_SEC', 0)))
    flask_app.extensions['rayguess'] = GameCoordinator(
        verifier,
        operator_id=int(flask_app.config.get('OPERATOR_TELEGRAM_ID', 0)),
        production_mode=bool(flask_app.config.get('PRODUCTION_MODE', True)),
    )

    from rayguess.routes import main
    flask_app.register_blueprint(main)

    # Importing here ensures the handlers bind to the initialized socketio instance
    from rayguess.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('sign-assertion')
    @click.option('--user-id', type=int, required=True)
    @click.option('--first-name', required=True)
    @click.option('--last-name', default=None)
    @click.option('--username', default=None)
    def sign_assertion_command(user_id, first_name, last_name, username):
        """Print Telegram login data signed with the configured bot token."""
        import time
        from rayguess.identity import sign_init_data

        user = {'id': user_id, 'first_name': first_name}
        if last_name:
            user['last_name'] = last_name
        if username:
            user['username'] = username
        click.echo(sign_init_data(bot_token, user, auth_date=int(time.time())))

    flask_app.cli.add_command(sign_assertion_command)

    return flask_app
