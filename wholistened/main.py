from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Who Listened? game server!'})

@main.route('/api/health')
def health():
    services = current_app.extensions['wholistened']
    return jsonify({'status': 'ok', 'active_games': len(services.store.room_codes())})
