from restaum import db
from restaum.services.games.errors import InvalidInput
from flask_login import UserMixin
from sqlalchemy.orm import validates
from datetime import datetime, timezone
import uuid

GAME_STATUSES = ('waiting', 'active', 'finished', 'cancelled')
TERMINAL_STATUSES = ('finished', 'cancelled')
PARTICIPANT_STATUSES = ('active', 'eliminated')
# Storage-level bounds for the timer; the configured ceiling is tighter.
ELIMINATION_INTERVAL_RANGE = (1, 86400)


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so we never store it)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(120), nullable=False)
    whatsapp = db.Column(db.String(32), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'is_admin': bool(self.is_admin),
        }


class LiveGame(db.Model):
    __tablename__ = 'live_game'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), default='waiting', nullable=False, index=True)  # waiting, active, finished, cancelled
    max_participants = db.Column(db.Integer, default=50, nullable=False)
    current_participants = db.Column(db.Integer, default=0, nullable=False)
    elimination_interval = db.Column(db.Integer, default=60, nullable=False)  # seconds
    current_round = db.Column(db.Integer, default=0, nullable=False)
    created_by = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    last_elimination_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    winner_user_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=True)
    winner_participant_id = db.Column(db.String(36), nullable=True)
    winner_number = db.Column(db.Integer, nullable=True)

    participants = db.relationship(
        'LiveParticipant', back_populates='game', lazy='dynamic', order_by='LiveParticipant.lucky_number'
    )
    winner = db.relationship('User', foreign_keys=[winner_user_id])

    __table_args__ = (
        db.CheckConstraint('current_participants <= max_participants', name='ck_live_game_capacity'),
    )

    @validates('status')
    def validate_status(self, key, value):
        if value not in GAME_STATUSES:
            raise InvalidInput(f'Unknown game status: {value!r}')
        return value

    @validates('max_participants')
    def validate_max_participants(self, key, value):
        if value is None or int(value) < 2:
            raise InvalidInput('max_participants must be at least 2')
        return int(value)

    @validates('elimination_interval')
    def validate_elimination_interval(self, key, value):
        low, high = ELIMINATION_INTERVAL_RANGE
        if value is None or not low <= int(value) <= high:
            raise InvalidInput(f'elimination_interval must be between {low} and {high} seconds')
        return int(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def active_count(self) -> int:
        return self.participants.filter_by(status='active').count()

    def to_dict(self, include_participants=False):
        payload = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'max_participants': self.max_participants,
            'current_participants': self.current_participants,
            'active_participants': self.active_count(),
            'elimination_interval': self.elimination_interval,
            'current_round': self.current_round,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'started_at': _iso(self.started_at),
            'last_elimination_at': _iso(self.last_elimination_at),
            'finished_at': _iso(self.finished_at),
            'cancelled_at': _iso(self.cancelled_at),
            'winner_user_id': self.winner_user_id,
            'winner_participant_id': self.winner_participant_id,
            'winner_number': self.winner_number,
            'winner_name': self.winner.name if self.winner else None,
        }
        if include_participants:
            payload['participants'] = [p.to_dict() for p in self.participants]
        return payload


class LiveParticipant(db.Model):
    __tablename__ = 'live_participant'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    game_id = db.Column(db.String(36), db.ForeignKey('live_game.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=False)
    lucky_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), default='active', nullable=False)  # active, eliminated
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    eliminated_at = db.Column(db.DateTime, nullable=True)
    eliminated_in_round = db.Column(db.Integer, nullable=True)
    notification_sent = db.Column(db.Boolean, default=False, nullable=False)

    game = db.relationship('LiveGame', back_populates='participants')
    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('game_id', 'lucky_number', name='uq_live_participant_game_number'),
        db.UniqueConstraint('game_id', 'user_id', name='uq_live_participant_game_user'),
    )

    @validates('status')
    def validate_status(self, key, value):
        if value not in PARTICIPANT_STATUSES:
            raise InvalidInput(f'Unknown participant status: {value!r}')
        return value

    @validates('lucky_number')
    def validate_lucky_number(self, key, value):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidInput('lucky_number must be a positive integer')
        return value

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'lucky_number': self.lucky_number,
            'status': self.status,
            'joined_at': _iso(self.joined_at),
            'eliminated_at': _iso(self.eliminated_at),
            'eliminated_in_round': self.eliminated_in_round,
        }
