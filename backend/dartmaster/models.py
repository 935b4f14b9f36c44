from datetime import datetime, timezone

from dartmaster import db, bcrypt
from flask_login import UserMixin

# Match lifecycle
MATCH_SCHEDULED = 'scheduled'
MATCH_LIVE = 'live'
MATCH_AWAITING_CONFIRMATION = 'awaiting_confirmation'
MATCH_COMPLETED = 'completed'

# Tournament lifecycle
TOURNAMENT_DRAFT = 'draft'
TOURNAMENT_ACTIVE = 'active'
TOURNAMENT_COMPLETED = 'completed'

MATCH_FORMATS = {'301': 301, '501': 501, '701': 701}


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(120), nullable=False, default='')
    role = db.Column(db.String(32), nullable=False, default='player')  # player, admin, spectator
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'last_login': _iso(self.last_login),
        }


class Tournament(db.Model):
    __tablename__ = 'tournament'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(32), nullable=False, default=TOURNAMENT_DRAFT)  # draft, active, completed
    # Stored for display only; no bracket logic consumes it
    format = db.Column(db.String(32), nullable=False, default='group')
    match_format = db.Column(db.String(8), nullable=False, default='501')
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    registration_deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    max_players = db.Column(db.Integer, nullable=False, default=100)
    number_of_groups = db.Column(db.Integer, nullable=False, default=1)
    admin_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    admin = db.relationship('User')
    participants = db.relationship('TournamentParticipant', back_populates='tournament', cascade='all, delete-orphan',
                                   order_by='TournamentParticipant.id')
    matches = db.relationship('Match', back_populates='tournament', cascade='all, delete-orphan')
    statistics = db.relationship('PlayerStatistics', back_populates='tournament', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'format': self.format,
            'match_format': self.match_format,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'registration_deadline': _iso(self.registration_deadline),
            'max_players': self.max_players,
            'number_of_groups': self.number_of_groups,
            'admin_id': self.admin_id,
            'admin_name': self.admin.username if self.admin else None,
            'participants_count': len(self.participants),
            'created_at': _iso(self.created_at),
        }


class TournamentParticipant(db.Model):
    __tablename__ = 'tournament_participant'
    __table_args__ = (db.UniqueConstraint('tournament_id', 'user_id', name='uq_tournament_participant'),)
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(32), nullable=False, default='registered')  # registered, withdrawn
    registered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    tournament = db.relationship('Tournament', back_populates='participants')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'status': self.status,
            'registered_at': _iso(self.registered_at),
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False, index=True)
    match_format = db.Column(db.String(8), nullable=True)  # falls back to the tournament's format
    status = db.Column(db.String(32), nullable=False, default=MATCH_SCHEDULED)
    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tournament = db.relationship('Tournament', back_populates='matches')
    participants = db.relationship('MatchParticipant', back_populates='match', cascade='all, delete-orphan',
                                   order_by='MatchParticipant.id')
    throws = db.relationship('DartThrow', back_populates='match', cascade='all, delete-orphan', lazy='dynamic')
    confirmations = db.relationship('MatchConfirmation', back_populates='match', cascade='all, delete-orphan')

    @property
    def effective_format(self):
        return self.match_format or (self.tournament.match_format if self.tournament else None)

    def participant_for(self, user_id):
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'match_format': self.effective_format,
            'status': self.status,
            'scheduled_start': _iso(self.scheduled_start),
            'actual_start': _iso(self.actual_start),
            'actual_end': _iso(self.actual_end),
            'participants': [p.to_dict() for p in self.participants],
            'participants_count': len(self.participants),
            'dart_throws_count': self.throws.count(),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class MatchParticipant(db.Model):
    __tablename__ = 'match_participant'
    __table_args__ = (db.UniqueConstraint('match_id', 'user_id', name='uq_match_participant'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    finishing_score = db.Column(db.Integer, nullable=True)  # 0 for the finisher
    position = db.Column(db.Integer, nullable=True)
    is_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    # Last sequence number handed to one of this player's throws
    throw_sequence = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Every UPDATE checks and bumps `version`; a concurrent writer gets StaleDataError
    __mapper_args__ = {'version_id_col': version}

    match = db.relationship('Match', back_populates='participants')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'finishing_score': self.finishing_score,
            'position': self.position,
            'is_confirmed': self.is_confirmed,
        }


class DartThrow(db.Model):
    __tablename__ = 'dart_throw'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'user_id', 'sequence', name='uq_dart_throw_sequence'),
        db.UniqueConstraint('match_id', 'user_id', 'round_number', 'throw_number', name='uq_dart_throw_slot'),
        db.Index('ix_dart_throw_match_round', 'match_id', 'round_number'),
    )
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    throw_number = db.Column(db.Integer, nullable=False)  # 1-3 within a round
    points = db.Column(db.Integer, nullable=False)
    remaining_score = db.Column(db.Integer, nullable=False)
    is_double = db.Column(db.Boolean, nullable=False, default=False)
    sequence = db.Column(db.Integer, nullable=False)
    thrown_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    match = db.relationship('Match', back_populates='throws')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'user_id': self.user_id,
            'points': self.points,
            'remaining_score': self.remaining_score,
            'is_double': self.is_double,
            'round_number': self.round_number,
            'throw_number': self.throw_number,
            'sequence': self.sequence,
            'thrown_at': _iso(self.thrown_at),
        }


class MatchConfirmation(db.Model):
    __tablename__ = 'match_confirmation'
    __table_args__ = (db.UniqueConstraint('match_id', 'user_id', name='uq_match_confirmation'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    confirmed = db.Column(db.Boolean, nullable=False, default=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    match = db.relationship('Match', back_populates='confirmations')


class PlayerStatistics(db.Model):
    __tablename__ = 'player_statistics'
    __table_args__ = (db.UniqueConstraint('tournament_id', 'user_id', name='uq_player_statistics'),)
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    matches_played = db.Column(db.Integer, nullable=False, default=0)
    matches_won = db.Column(db.Integer, nullable=False, default=0)
    matches_lost = db.Column(db.Integer, nullable=False, default=0)
    win_loss_ratio = db.Column(db.Float, nullable=False, default=0.0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    darts_thrown = db.Column(db.Integer, nullable=False, default=0)
    points_scored = db.Column(db.Integer, nullable=False, default=0)
    ranking = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tournament = db.relationship('Tournament', back_populates='statistics')

    def to_dict(self):
        return {
            'tournament_id': self.tournament_id,
            'user_id': self.user_id,
            'matches_played': self.matches_played,
            'matches_won': self.matches_won,
            'matches_lost': self.matches_lost,
            'win_loss_ratio': self.win_loss_ratio,
            'average_score': self.average_score,
            'darts_thrown': self.darts_thrown,
            'ranking': self.ranking,
        }
