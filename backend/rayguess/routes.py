from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the rayguess game server!'})


@main.route('/api/health')
def health():
    status = current_app.extensions['rayguess'].status()
    return jsonify(dict(status, ok=True))


@main.route('/api/history')
def history():
    """Closed rounds, newest first. Closed rounds are public."""
    return jsonify({'rounds': current_app.extensions['rayguess'].public_history()})
