from wholistened import db
from datetime import datetime
import json
import random


def _load_ids(raw):
    try:
        return [int(i) for i in json.loads(raw)] if raw else []
    except (TypeError, ValueError):
        return []


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(64), nullable=False)
    unique_name = db.Column(db.String(80), unique=True, nullable=False, index=True)
    account_connected = db.Column(db.Boolean, default=False, nullable=False)
    avatar_url = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    account_link = db.relationship('AccountLink', backref='user', uselist=False, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name,
            'unique_name': self.unique_name,
            'account_connected': bool(self.account_connected),
            'avatar_url': self.avatar_url,
        }


class AccountLink(db.Model):
    """Music-account credential for one user."""
    __tablename__ = 'account_link'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    provider = db.Column(db.String(32), nullable=False, default='spotify')
    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < datetime.utcnow()


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(7), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    max_players = db.Column(db.Integer, default=8, nullable=False)
    is_public = db.Column(db.Boolean, default=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=True)
    host_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, playing, finished
    current_round = db.Column(db.Integer, default=0, nullable=False)
    total_rounds = db.Column(db.Integer, default=10, nullable=False)
    round_duration = db.Column(db.Integer, default=20, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    players = db.relationship('RoomPlayer', back_populates='room', order_by='RoomPlayer.id')

    @property
    def requires_password(self):
        return not self.is_public and bool(self.password_hash)

    def public_info(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'max_players': self.max_players,
            'is_public': self.is_public,
            'status': self.status,
            'host_user_id': self.host_user_id,
            'requires_password': self.requires_password,
        }

    def to_dict(self, include_players=True):
        data = self.public_info()
        data.update({
            'current_round': self.current_round,
            'total_rounds': self.total_rounds,
            'round_duration': self.round_duration,
        })
        if include_players:
            data['players'] = [p.to_dict() for p in self.players]
        return data


class RoomPlayer(db.Model):
    __tablename__ = 'room_player'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    total_score = db.Column(db.Integer, default=0, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)
    room = db.relationship('Room', back_populates='players')
    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('room_id', 'user_id', name='uq_room_player_room_user'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'display_name': self.user.display_name if self.user else None,
            'unique_name': self.user.unique_name if self.user else None,
            'avatar_url': self.user.avatar_url if self.user else None,
            'account_connected': bool(self.user.account_connected) if self.user else False,
            'total_score': self.total_score or 0,
        }


class Track(db.Model):
    """One entry of a room's track pool."""
    __tablename__ = 'track'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    external_id = db.Column(db.String(128), nullable=False)
    name = db.Column(db.String(256), nullable=False)
    artist = db.Column(db.String(256), nullable=True)
    art_url = db.Column(db.Text, nullable=True)
    preview_url = db.Column(db.Text, nullable=True)
    listener_ids_json = db.Column(db.Text, nullable=False)  # JSON-encoded list of user ids

    __table_args__ = (
        db.UniqueConstraint('room_id', 'external_id', name='uq_track_room_external'),
    )

    @property
    def listener_ids(self):
        return _load_ids(self.listener_ids_json)

    @listener_ids.setter
    def listener_ids(self, ids):
        self.listener_ids_json = json.dumps([int(i) for i in ids])

    def to_dict(self, include_listeners=False):
        data = {
            'id': self.id,
            'external_id': self.external_id,
            'name': self.name,
            'artist': self.artist,
            'art_url': self.art_url,
            'preview_url': self.preview_url,
        }
        if include_listeners:
            data['listener_ids'] = self.listener_ids
        return data


class Round(db.Model):
    __tablename__ = 'round'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    track_id = db.Column(db.Integer, db.ForeignKey('track.id'), nullable=True)
    correct_user_ids_json = db.Column(db.Text, nullable=False)  # snapshot taken at round creation
    is_lightning = db.Column(db.Boolean, default=False, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False)
    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)
    track = db.relationship('Track')
    answers = db.relationship('Answer', backref='round', lazy='dynamic')

    @property
    def correct_user_ids(self):
        return _load_ids(self.correct_user_ids_json)

    @correct_user_ids.setter
    def correct_user_ids(self, ids):
        self.correct_user_ids_json = json.dumps([int(i) for i in ids])

    @classmethod
    def latest_for_room(cls, room_id):
        return cls.query.filter_by(room_id=room_id).order_by(cls.round_number.desc(), cls.id.desc()).first()


class Answer(db.Model):
    __tablename__ = 'answer'
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    selected_user_ids_json = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=True)
    is_partial_correct = db.Column(db.Boolean, nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    answered_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('round_id', 'user_id', name='uq_answer_round_user'),
    )

    @property
    def selected_user_ids(self):
        return _load_ids(self.selected_user_ids_json)

    @selected_user_ids.setter
    def selected_user_ids(self, ids):
        self.selected_user_ids_json = json.dumps([int(i) for i in ids])

    @classmethod
    def for_round(cls, round_id):
        return cls.query.filter_by(round_id=round_id).order_by(cls.id).all()

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'selected_user_ids': self.selected_user_ids,
            'is_correct': self.is_correct,
            'is_partial_correct': self.is_partial_correct,
            'score': self.score or 0,
        }


def generate_unique_room_code(max_attempts=10):
    """Generate an unused 6-digit room code or raise RoomCodeUnavailable."""
    from wholistened.errors import RoomCodeUnavailable
    for _ in range(max_attempts):
        code = str(random.randint(100000, 999999))
        if not Room.query.filter_by(code=code).first():
            return code
    raise RoomCodeUnavailable('Could not generate a unique room code')


def generate_unique_display_name(base):
    """Return ``base`` or the first free ``base#2``, ``base#3``, ..."""
    unique_name = base
    counter = 2
    while User.query.filter_by(unique_name=unique_name).first():
        unique_name = f"{base}#{counter}"
        counter += 1
    return unique_name
