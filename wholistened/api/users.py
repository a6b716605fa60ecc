from datetime import datetime, timedelta
from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from wholistened import db
from wholistened.models import AccountLink, User


users = Blueprint('users', __name__)


@users.errorhandler(SQLAlchemyError)
def handle_db_error(exc):
    db.session.rollback()
    current_app.logger.exception(f"[db-error] {request.method} {request.path}")
    return jsonify({'error': 'Something went wrong, please try again'}), 500


@users.route('/<int:user_id>', methods=['GET'])
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(user.to_dict())


@users.route('/<int:user_id>/account', methods=['POST'])
def link_account(user_id):
    """Store the music-account tokens obtained by the OAuth flow."""
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    data = request.get_json(silent=True) or {}
    access_token = data.get('access_token')
    if not access_token:
        return jsonify({'error': 'access_token is required'}), 400
    try:
        expires_in = int(data.get('expires_in') or 3600)
    except (TypeError, ValueError):
        return jsonify({'error': 'expires_in must be a number'}), 400

    link = user.account_link or AccountLink(user_id=user.id)
    link.provider = data.get('provider') or 'spotify'
    link.access_token = access_token
    link.refresh_token = data.get('refresh_token') or link.refresh_token
    link.expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
    user.account_connected = True
    if data.get('avatar_url'):
        user.avatar_url = data['avatar_url']
    db.session.add(link)
    db.session.add(user)
    db.session.commit()
    return jsonify({'connected': True, 'user': user.to_dict()})


@users.route('/<int:user_id>/account', methods=['GET'])
def account_status(user_id):
    user = db.session.get(User, user_id)
    return jsonify({'connected': bool(user and user.account_connected)})


@users.route('/<int:user_id>/account', methods=['DELETE'])
def unlink_account(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if user.account_link:
        db.session.delete(user.account_link)
    user.account_connected = False
    db.session.add(user)
    db.session.commit()
    return jsonify({'connected': False})
