from datetime import datetime, timezone

from pixeltrivia import db

ROOM_STATUSES = ('waiting', 'active', 'finished')


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value):
    value = as_utc(value)
    return value.isoformat() if value else None


class Room(db.Model):
    __tablename__ = 'room'
    code = db.Column(db.String(6), primary_key=True)
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, active, finished
    max_players = db.Column(db.Integer, nullable=False)
    game_mode = db.Column(db.String(20), nullable=False, default='quick')
    category = db.Column(db.String(50), nullable=True)
    difficulty = db.Column(db.String(20), nullable=True)
    time_limit = db.Column(db.Integer, nullable=False)
    question_count = db.Column(db.Integer, nullable=False)
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    total_questions = db.Column(db.Integer, nullable=True)
    question_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    players = db.relationship(
        'Player', back_populates='room', cascade='all, delete-orphan',
        order_by=lambda: [Player.joined_at, Player.id],
    )
    questions = db.relationship(
        'GameQuestion', cascade='all, delete-orphan', order_by='GameQuestion.question_index',
    )

    @property
    def host(self):
        return next((p for p in self.players if p.is_host), None)

    def to_dict(self, include_players=True):
        payload = {
            'code': self.code,
            'status': self.status,
            'max_players': self.max_players,
            'game_mode': self.game_mode,
            'category': self.category,
            'difficulty': self.difficulty,
            'time_limit': self.time_limit,
            'question_count': self.question_count,
            'current_question_index': self.current_question_index,
            'total_questions': self.total_questions,
            'question_start_time': isoformat(self.question_start_time),
            'created_at': isoformat(self.created_at),
        }
        if include_players:
            payload['players'] = [p.to_dict() for p in self.players]
        return payload


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(6), db.ForeignKey('room.code', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    avatar = db.Column(db.String(20), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    # Per-question "has answered" marker, cleared whenever a new question becomes active
    current_answer = db.Column(db.Integer, nullable=True)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    room = db.relationship('Room', back_populates='players')
    answers = db.relationship(
        'PlayerAnswer', backref='player', cascade='all, delete-orphan',
        order_by='PlayerAnswer.question_index',
    )

    @property
    def has_answered(self):
        return self.current_answer is not None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'avatar': self.avatar,
            'is_host': self.is_host,
            'score': self.score,
            'has_answered': self.has_answered,
            'joined_at': isoformat(self.joined_at),
        }


class PlayerAnswer(db.Model):
    __tablename__ = 'player_answer'
    # One row per (player, question): the unique constraint is what makes answers exactly-once
    __table_args__ = (db.UniqueConstraint('player_id', 'question_index', name='uq_player_answer_question'),)
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id', ondelete='CASCADE'), nullable=False, index=True)
    room_code = db.Column(db.String(6), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    selected_answer = db.Column(db.Integer, nullable=False)
    time_ms = db.Column(db.Integer, nullable=False)
    correct = db.Column(db.Boolean, nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'question_index': self.question_index,
            'selected_answer': self.selected_answer,
            'time_ms': self.time_ms,
            'correct': self.correct,
            'score': self.score,
        }


class GameQuestion(db.Model):
    __tablename__ = 'game_question'
    __table_args__ = (db.UniqueConstraint('room_code', 'question_index', name='uq_game_question_index'),)
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(6), db.ForeignKey('room.code', ondelete='CASCADE'), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False)
    correct_answer_index = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(50), nullable=True)
    difficulty = db.Column(db.String(20), nullable=True)

    def to_dict(self, include_answer=False):
        payload = {
            'index': self.question_index,
            'text': self.text,
            'options': list(self.options or []),
            'category': self.category,
            'difficulty': self.difficulty,
        }
        if include_answer:
            payload['correct_answer'] = self.correct_answer_index
        return payload


class Question(db.Model):
    """Static question bank that game question sets are drawn from."""
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False)
    correct_answer_index = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(50), nullable=True, index=True)
    difficulty = db.Column(db.String(20), nullable=False, default='medium', index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
