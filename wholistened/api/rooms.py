from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from wholistened import db, bcrypt
from wholistened.errors import (
    GameError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from wholistened.models import Room, RoomPlayer, User, generate_unique_display_name, generate_unique_room_code
from wholistened.services.games.snapshot import final_standings, game_snapshot


rooms = Blueprint('rooms', __name__)

MAX_NAME_LENGTH = 32


def _services():
    return current_app.extensions['wholistened']


def _get_room(code):
    room = Room.query.filter_by(code=(code or '').upper()).first()
    if not room:
        raise NotFoundError('Room not found')
    return room


def _int_field(data, key, default, low, high):
    value = data.get(key)
    if value is None:
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number')
    if value < low or value > high:
        raise ValidationError(f'{key} must be between {low} and {high}')
    return value


def _user_id_field(data, key):
    value = data.get(key)
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{key} is required')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a player id')


def _clean_name(raw, label):
    name = (raw or '').strip() if isinstance(raw, str) else ''
    if not name:
        raise ValidationError(f'{label} is required')
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f'{label} must be at most {MAX_NAME_LENGTH} characters')
    return name


@rooms.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': exc.message}), exc.status_code


@rooms.errorhandler(SQLAlchemyError)
def handle_db_error(exc):
    db.session.rollback()
    current_app.logger.exception(f"[db-error] {request.method} {request.path}")
    return jsonify({'error': 'Something went wrong, please try again'}), 500


@rooms.route('', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    name = _clean_name(data.get('name'), 'Room name')
    cfg = current_app.config
    max_players = _int_field(data, 'max_players', int(cfg.get('DEFAULT_MAX_PLAYERS', 8)), 2, 20)
    total_rounds = _int_field(data, 'total_rounds', int(cfg.get('DEFAULT_TOTAL_ROUNDS', 10)), 1, 50)
    round_duration = _int_field(data, 'round_duration', int(cfg.get('ROUND_DURATION_SEC', 20)), 5, 120)
    is_public = data.get('is_public') is not False
    password = data.get('password') or None

    room = Room(
        code=generate_unique_room_code(),
        name=name,
        max_players=max_players,
        is_public=is_public,
        password_hash=bcrypt.generate_password_hash(password).decode('utf-8') if password else None,
        total_rounds=total_rounds,
        round_duration=round_duration,
    )
    db.session.add(room)
    db.session.commit()
    return jsonify({'id': room.id, 'code': room.code, 'name': room.name}), 201


@rooms.route('/<string:code>/info', methods=['GET'])
def room_info(code):
    return jsonify(_get_room(code).public_info())


@rooms.route('/<string:code>', methods=['GET'])
def get_room(code):
    return jsonify(_get_room(code).to_dict())


@rooms.route('/<string:code>/join', methods=['POST'])
def join_room(code):
    data = request.get_json(silent=True) or {}
    display_name = _clean_name(data.get('display_name'), 'Display name')
    room = _get_room(code)

    if room.status == 'playing':
        raise StateConflictError('Game in progress, you cannot join right now')
    if room.requires_password:
        password = data.get('password')
        if not password:
            raise GameError('Password required', 401)
        if not bcrypt.check_password_hash(room.password_hash, password):
            raise GameError('Wrong password', 401)

    player_count = RoomPlayer.query.filter_by(room_id=room.id).count()
    if player_count >= (room.max_players or 8):
        raise StateConflictError('Room is full')

    user = User(display_name=display_name, unique_name=generate_unique_display_name(display_name))
    db.session.add(user)
    db.session.flush()
    db.session.add(RoomPlayer(room_id=room.id, user_id=user.id))
    if room.host_user_id is None:
        room.host_user_id = user.id
        db.session.add(room)
    db.session.commit()

    _services().notifier.notify_room(room.code, 'player_joined', {'user_id': user.id, 'display_name': user.display_name})
    return jsonify({'user_id': user.id, 'room_id': room.id, 'unique_name': user.unique_name, 'is_host': room.host_user_id == user.id}), 201


@rooms.route('/<string:code>/kick', methods=['POST'])
def kick_player(code):
    data = request.get_json(silent=True) or {}
    requester_id = _user_id_field(data, 'requester_id')
    target_id = _user_id_field(data, 'target_user_id')
    room = _get_room(code)

    players = RoomPlayer.query.filter_by(room_id=room.id).all()
    if not any(p.user_id == requester_id for p in players):
        raise PermissionDeniedError('You are not in this room')
    if room.host_user_id != requester_id:
        raise PermissionDeniedError('Only the host can kick players')
    if requester_id == target_id:
        raise ValidationError('You cannot kick yourself')
    if room.status == 'playing':
        raise StateConflictError('Players cannot be kicked during a game')
    target = next((p for p in players if p.user_id == target_id), None)
    if target is None:
        raise NotFoundError('Player not found')

    db.session.delete(target)
    db.session.commit()
    _services().notifier.notify_room(room.code, 'player_kicked', {'user_id': target_id})
    return jsonify({'success': True})


@rooms.route('/<string:code>/start', methods=['POST'])
def start_game(code):
    data = request.get_json(silent=True) or {}
    requester_id = _user_id_field(data, 'requester_id')
    room = _get_room(code)
    _services().scheduler.start_game(room.code, requester_id)
    return jsonify({'success': True})


@rooms.route('/<string:code>/answer', methods=['POST'])
def submit_answer(code):
    data = request.get_json(silent=True) or {}
    user_id = _user_id_field(data, 'user_id')
    room = _get_room(code)
    _services().collector.submit_answer(room.code, user_id, data.get('selected_user_ids'))
    return jsonify({'success': True})


@rooms.route('/<string:code>/game', methods=['GET'])
def get_game(code):
    room = _get_room(code)
    return jsonify(game_snapshot(room, _services().store.get(room.code)))


@rooms.route('/<string:code>/results', methods=['GET'])
def get_results(code):
    return jsonify(final_standings(_get_room(code)))


@rooms.route('/<string:code>/return-lobby', methods=['POST'])
def return_to_lobby(code):
    data = request.get_json(silent=True) or {}
    requester_id = _user_id_field(data, 'requester_id')
    room = _get_room(code)
    _services().scheduler.return_to_lobby(room.code, requester_id)
    return jsonify({'success': True})


@rooms.route('/<string:code>/rematch', methods=['POST'])
def rematch(code):
    data = request.get_json(silent=True) or {}
    requester_id = _user_id_field(data, 'requester_id')
    room = _get_room(code)
    _services().scheduler.rematch(room.code, requester_id)
    return jsonify({'success': True})
