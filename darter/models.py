from darter import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import uuid

CHECKOUT_RULES = ('straight', 'double_out', 'master_out')
FORMAT_TYPES = ('first_to', 'best_of', 'unlimited')
MATCH_STATUSES = ('setup', 'in_progress', 'paused', 'completed', 'cancelled')
TERMINAL_STATUSES = ('completed', 'cancelled')


def utcnow():
    """Naive UTC timestamp; SQLite drops tzinfo so every stored value stays naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    if value is None:
        return None
    return value.isoformat(timespec='milliseconds') + 'Z'


def new_id():
    return str(uuid.uuid4())


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class MatchType(db.Model):
    __tablename__ = 'match_type'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), unique=True, nullable=False)
    default_start_score = db.Column(db.Integer, nullable=False, default=501)
    default_checkout_rule = db.Column(db.String(50), nullable=False, default='double_out')
    default_format_type = db.Column(db.String(50), nullable=False, default='first_to')
    default_legs_count = db.Column(db.Integer, nullable=True)
    default_sets_count = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self, detail=False):
        data = {
            'id': self.id,
            'name': self.name,
            'default_start_score': self.default_start_score,
            'default_checkout_rule': self.default_checkout_rule,
            'default_format_type': self.default_format_type,
            'default_legs_count': self.default_legs_count,
            'default_sets_count': self.default_sets_count,
            'description': self.description,
            'is_active': self.is_active,
        }
        if detail:
            data['created_at'] = isoformat(self.created_at)
            data['updated_at'] = isoformat(self.updated_at)
        return data


class Match(db.Model):
    __tablename__ = 'match'
    __table_args__ = (
        db.CheckConstraint(
            '(player1_user_id IS NOT NULL AND player1_guest_name IS NULL) OR '
            '(player1_user_id IS NULL AND player1_guest_name IS NOT NULL)',
            name='player1_xor_constraint'),
        db.CheckConstraint(
            '(player2_user_id IS NOT NULL AND player2_guest_name IS NULL) OR '
            '(player2_user_id IS NULL AND player2_guest_name IS NOT NULL)',
            name='player2_xor_constraint'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    match_type_id = db.Column(db.String(36), db.ForeignKey('match_type.id'), nullable=False)
    player1_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    player1_guest_name = db.Column(db.String(255), nullable=True)
    player2_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    player2_guest_name = db.Column(db.String(255), nullable=True)

    start_score = db.Column(db.Integer, nullable=False, default=501)
    checkout_rule = db.Column(db.String(50), nullable=False, default='double_out')
    format_type = db.Column(db.String(50), nullable=False, default='first_to')
    legs_count = db.Column(db.Integer, nullable=True)
    sets_count = db.Column(db.Integer, nullable=True)

    current_leg = db.Column(db.Integer, nullable=False, default=1)
    current_set = db.Column(db.Integer, nullable=False, default=1)
    player1_legs_won = db.Column(db.Integer, nullable=False, default=0)
    player2_legs_won = db.Column(db.Integer, nullable=False, default=0)
    player1_sets_won = db.Column(db.Integer, nullable=False, default=0)
    player2_sets_won = db.Column(db.Integer, nullable=False, default=0)

    winner_player_number = db.Column(db.Integer, nullable=True)
    match_status = db.Column(db.String(50), nullable=False, default='setup', index=True)
    is_private = db.Column(db.Boolean, nullable=False, default=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    created_by_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    created_by_session_id = db.Column(db.String(255), nullable=True)

    @property
    def is_terminal(self):
        return self.match_status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'match_type_id': self.match_type_id,
            'player1_user_id': self.player1_user_id,
            'player1_guest_name': self.player1_guest_name,
            'player2_user_id': self.player2_user_id,
            'player2_guest_name': self.player2_guest_name,
            'start_score': self.start_score,
            'checkout_rule': self.checkout_rule,
            'format_type': self.format_type,
            'legs_count': self.legs_count,
            'sets_count': self.sets_count,
            'current_leg': self.current_leg,
            'current_set': self.current_set,
            'player1_legs_won': self.player1_legs_won,
            'player2_legs_won': self.player2_legs_won,
            'player1_sets_won': self.player1_sets_won,
            'player2_sets_won': self.player2_sets_won,
            'winner_player_number': self.winner_player_number,
            'match_status': self.match_status,
            'is_private': self.is_private,
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'duration_seconds': self.duration_seconds,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'created_by_user_id': self.created_by_user_id,
        }

    def to_list_item(self):
        return {
            'id': self.id,
            'match_type_id': self.match_type_id,
            'player1_guest_name': self.player1_guest_name,
            'player2_guest_name': self.player2_guest_name,
            'player1_legs_won': self.player1_legs_won,
            'player2_legs_won': self.player2_legs_won,
            'winner_player_number': self.winner_player_number,
            'match_status': self.match_status,
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'duration_seconds': self.duration_seconds,
        }


class Throw(db.Model):
    __tablename__ = 'match_throw'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'leg_number', 'set_number', 'player_number',
                            'throw_number', 'round_number', name='unique_throw'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    match_id = db.Column(db.String(36), db.ForeignKey('match.id'), nullable=False, index=True)
    leg_number = db.Column(db.Integer, nullable=False)
    set_number = db.Column(db.Integer, nullable=False, default=1)
    player_number = db.Column(db.Integer, nullable=False)
    throw_number = db.Column(db.Integer, nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=False)
    remaining_score = db.Column(db.Integer, nullable=False)
    is_checkout_attempt = db.Column(db.Boolean, nullable=False, default=False)
    winner_player_number = db.Column(db.Integer, nullable=True)
    winning_checkout = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_winning(self):
        return self.remaining_score == 0

    def sort_key(self):
        return (self.set_number, self.leg_number, self.round_number, self.throw_number)

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'leg_number': self.leg_number,
            'set_number': self.set_number,
            'player_number': self.player_number,
            'throw_number': self.throw_number,
            'round_number': self.round_number,
            'score': self.score,
            'remaining_score': self.remaining_score,
            'is_checkout_attempt': self.is_checkout_attempt,
            'winner_player_number': self.winner_player_number,
            'winning_checkout': self.winning_checkout,
            'created_at': isoformat(self.created_at),
        }


class MatchLock(db.Model):
    __tablename__ = 'match_lock'
    match_id = db.Column(db.String(36), db.ForeignKey('match.id'), primary_key=True)
    locked_by_session_id = db.Column(db.String(255), nullable=False, unique=True)
    device_info = db.Column(db.JSON, nullable=False, default=dict)
    locked_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    auto_extend = db.Column(db.Boolean, nullable=False, default=True)
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def is_expired(self, now=None):
        return self.expires_at <= (now or utcnow())

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'locked_by_session_id': self.locked_by_session_id,
            'device_info': self.device_info or {},
            'locked_at': isoformat(self.locked_at),
            'expires_at': isoformat(self.expires_at),
            'auto_extend': self.auto_extend,
            'last_activity_at': isoformat(self.last_activity_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }


class MatchStats(db.Model):
    __tablename__ = 'match_stats'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'player_number', name='unique_match_player'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    match_id = db.Column(db.String(36), db.ForeignKey('match.id'), nullable=False, index=True)
    player_number = db.Column(db.Integer, nullable=False)
    total_score = db.Column(db.Integer, nullable=False, default=0)
    darts_thrown = db.Column(db.Integer, nullable=False, default=0)
    rounds_played = db.Column(db.Integer, nullable=False, default=0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    first_9_average = db.Column(db.Float, nullable=True)
    scores_60_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_80_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_100_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_120_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_140_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_170_plus = db.Column(db.Integer, nullable=False, default=0)
    scores_180 = db.Column(db.Integer, nullable=False, default=0)
    checkout_attempts = db.Column(db.Integer, nullable=False, default=0)
    successful_checkouts = db.Column(db.Integer, nullable=False, default=0)
    high_finish = db.Column(db.Integer, nullable=True)
    finishes_100_plus = db.Column(db.Integer, nullable=False, default=0)
    best_leg_darts = db.Column(db.Integer, nullable=True)
    worst_leg_darts = db.Column(db.Integer, nullable=True)
    legs_won_on_own_throw = db.Column(db.Integer, nullable=False, default=0)
    legs_won_on_opponent_throw = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    STAT_FIELDS = (
        'total_score', 'darts_thrown', 'rounds_played', 'average_score', 'first_9_average',
        'scores_60_plus', 'scores_80_plus', 'scores_100_plus', 'scores_120_plus',
        'scores_140_plus', 'scores_170_plus', 'scores_180',
        'checkout_attempts', 'successful_checkouts', 'high_finish', 'finishes_100_plus',
        'best_leg_darts', 'worst_leg_darts', 'legs_won_on_own_throw', 'legs_won_on_opponent_throw',
    )

    def to_dict(self):
        data = {
            'id': self.id,
            'match_id': self.match_id,
            'player_number': self.player_number,
        }
        for field in self.STAT_FIELDS:
            data[field] = getattr(self, field)
        data['created_at'] = isoformat(self.created_at)
        data['updated_at'] = isoformat(self.updated_at)
        return data


class TournamentType(db.Model):
    __tablename__ = 'tournament_type'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Tournament(db.Model):
    __tablename__ = 'tournament'
    __table_args__ = (
        db.CheckConstraint('final_place IS NULL OR final_place > 0', name='final_place_positive'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    tournament_type_id = db.Column(db.Integer, db.ForeignKey('tournament_type.id'), nullable=False, default=1)
    final_place = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    tournament_type = db.relationship('TournamentType')
    results = db.relationship('TournamentMatchResult', backref='tournament', cascade='all, delete-orphan',
                              order_by='TournamentMatchResult.position')

    def to_dict(self, detail=False):
        data = {
            'id': self.id,
            'name': self.name,
            'date': self.date.isoformat(),
            'tournament_type_id': self.tournament_type_id,
            'tournament_type_name': self.tournament_type.name if self.tournament_type else None,
            'final_place': self.final_place,
            'created_at': isoformat(self.created_at),
        }
        if detail:
            data['results'] = [r.to_dict() for r in self.results]
        return data


class TournamentMatchResult(db.Model):
    """Summary line of one match a user played in a tournament, entered by hand."""
    __tablename__ = 'tournament_match_result'
    __table_args__ = (
        db.CheckConstraint('checkout_percentage >= 0 AND checkout_percentage <= 100',
                           name='checkout_percentage_range'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tournament_id = db.Column(db.String(36), db.ForeignKey('tournament.id', ondelete='CASCADE'),
                              nullable=False, index=True)
    match_type_id = db.Column(db.String(36), db.ForeignKey('match_type.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    opponent_name = db.Column(db.String(255), nullable=True)
    player_score = db.Column(db.Integer, nullable=False, default=0)
    opponent_score = db.Column(db.Integer, nullable=False, default=0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    first_nine_avg = db.Column(db.Float, nullable=False, default=0.0)
    checkout_percentage = db.Column(db.Float, nullable=False, default=0.0)
    score_60_count = db.Column(db.Integer, nullable=False, default=0)
    score_100_count = db.Column(db.Integer, nullable=False, default=0)
    score_140_count = db.Column(db.Integer, nullable=False, default=0)
    score_180_count = db.Column(db.Integer, nullable=False, default=0)
    high_finish = db.Column(db.Integer, nullable=False, default=0)
    best_leg = db.Column(db.Integer, nullable=False, default=0)
    worst_leg = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    match_type = db.relationship('MatchType')

    RESULT_FIELDS = (
        'match_type_id', 'opponent_name', 'player_score', 'opponent_score',
        'average_score', 'first_nine_avg', 'checkout_percentage',
        'score_60_count', 'score_100_count', 'score_140_count', 'score_180_count',
        'high_finish', 'best_leg', 'worst_leg',
    )

    def to_dict(self):
        data = {'id': self.id}
        for field in self.RESULT_FIELDS:
            data[field] = getattr(self, field)
        data['created_at'] = isoformat(self.created_at)
        return data
