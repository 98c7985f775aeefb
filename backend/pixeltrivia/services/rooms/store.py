"""Room Store: the system of record for rooms, players, answers and question sets.

All cross-request coordination goes through here. Two rules keep concurrent
requests honest:

- status / question-index transitions are conditional UPDATEs guarded by the
  expected current state, so a duplicate ``start`` or ``next`` finds zero
  matching rows and is rejected instead of applied twice;
- answers are plain INSERTs against ``UNIQUE(player_id, question_index)``, so
  a racing duplicate submission fails at the database instead of being
  double-counted.
"""

from datetime import timedelta
from typing import Callable, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pixeltrivia import db
from pixeltrivia.errors import (
    ConflictError, DatabaseError, RoomError, RoomFullError, RoomNotFoundError, ValidationError,
)
from pixeltrivia.models import ROOM_STATUSES, GameQuestion, Player, PlayerAnswer, Room, as_utc, utcnow
from .codes import generate_room_code


class RoomStore:
    def __init__(self, session=None, code_generator: Callable[[], str] = generate_room_code,
                 max_code_attempts: int = 10, room_ttl_seconds: int = 0,
                 clock: Callable = utcnow):
        self.session = session or db.session
        self.code_generator = code_generator
        self.max_code_attempts = max_code_attempts
        self.room_ttl_seconds = room_ttl_seconds
        self.clock = clock

    @classmethod
    def from_config(cls, config, **kwargs) -> 'RoomStore':
        return cls(
            max_code_attempts=int(config.get('ROOM_CODE_MAX_ATTEMPTS', 10)),
            room_ttl_seconds=int(config.get('ROOM_TTL_SECONDS', 0)),
            **kwargs,
        )

    # ---- transactions ----

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error(f"[store-commit-failed] {exc}")
            raise DatabaseError('Database write failed', exc) from exc

    def rollback(self):
        self.session.rollback()

    # ---- rooms ----

    def create_room(self, settings: dict, host: Optional[dict] = None) -> Room:
        """Insert a room under a fresh code, optionally with its host, in one transaction.

        Regenerates the code on collision up to ``max_code_attempts`` times,
        then gives up with ConflictError.
        """
        for attempt in range(1, self.max_code_attempts + 1):
            code = self.code_generator()
            if self.session.get(Room, code) is not None:
                current_app.logger.info(f"[room-code-collision] code={code} attempt={attempt}")
                continue
            room = Room(code=code, status='waiting', created_at=self.clock(), **settings)
            self.session.add(room)
            if host is not None:
                self.session.add(Player(room_code=code, is_host=True, joined_at=self.clock(), **host))
            try:
                self.session.commit()
            except IntegrityError:
                # Lost a race for the same code between the check and the insert
                self.session.rollback()
                current_app.logger.info(f"[room-code-collision] code={code} attempt={attempt} (insert)")
                continue
            except SQLAlchemyError as exc:
                self.session.rollback()
                raise DatabaseError('Failed to create room', exc) from exc
            return room
        raise ConflictError(f'Unable to generate a unique room code after {self.max_code_attempts} attempts')

    def is_expired(self, room):
        if not self.room_ttl_seconds:
            return False
        return as_utc(room.created_at) + timedelta(seconds=self.room_ttl_seconds) < self.clock()

    def get_room(self, code: str, for_update: bool = False) -> Optional[Room]:
        query = Room.query.filter_by(code=code)
        if for_update:
            query = query.with_for_update().populate_existing()
        room = query.first()
        if room is None or self.is_expired(room):
            return None
        return room

    def require_room(self, code: str, for_update: bool = False) -> Room:
        room = self.get_room(code, for_update=for_update)
        if room is None:
            raise RoomNotFoundError(code)
        return room

    def update_room_status(self, code: str, new_status: str, expected_status: str,
                           expected_index: Optional[int] = None, commit: bool = True, **fields) -> None:
        """Atomically move a room to ``new_status`` together with ``fields``.

        The UPDATE only matches while the room is still in ``expected_status``
        (and at ``expected_index`` when given). Zero matched rows means another
        request got there first; the transaction is rolled back and RoomError
        raised.
        """
        if ROOM_STATUSES.index(new_status) < ROOM_STATUSES.index(expected_status):
            raise RoomError(f"Room status cannot go back from '{expected_status}' to '{new_status}'", code)
        query = Room.query.filter(Room.code == code, Room.status == expected_status)
        if expected_index is not None:
            query = query.filter(Room.current_question_index == expected_index)
        values = dict(fields)
        values['status'] = new_status
        matched = query.update(values, synchronize_session=False)
        if matched != 1:
            self.session.rollback()
            current_app.logger.warning(
                f"[room-transition-stale] room={code} expected={expected_status}/{expected_index} wanted={new_status}"
            )
            raise RoomError(f"Room '{code}' has already moved on from this state", code, status_code=409)
        if commit:
            self.commit()

    def begin_game(self, code: str, questions: Iterable[dict], started_at) -> int:
        """Flip waiting -> active, persist the question set and reset scores, all in one commit."""
        questions = list(questions)
        self.update_room_status(
            code, 'active', 'waiting', commit=False,
            current_question_index=0, total_questions=len(questions), question_start_time=started_at,
        )
        try:
            self.save_questions(code, questions, commit=False)
        except IntegrityError as exc:
            self.session.rollback()
            raise RoomError('Game has already started', code, status_code=409) from exc
        PlayerAnswer.query.filter_by(room_code=code).delete(synchronize_session=False)
        Player.query.filter_by(room_code=code).update(
            {'score': 0, 'current_answer': None, 'answered_at': None}, synchronize_session=False,
        )
        self.commit()
        return len(questions)

    def advance_question(self, code: str, from_index: int, started_at) -> int:
        next_index = from_index + 1
        self.update_room_status(
            code, 'active', 'active', expected_index=from_index, commit=False,
            current_question_index=next_index, question_start_time=started_at,
        )
        self.reset_player_answers(code, commit=False)
        self.commit()
        return next_index

    def finish_game(self, code, from_index):
        self.update_room_status(code, 'finished', 'active', expected_index=from_index, question_start_time=None)

    def close_room(self, code: str) -> bool:
        """Force a room to finished from whatever live state it is in."""
        matched = Room.query.filter(Room.code == code, Room.status.in_(('waiting', 'active'))).update(
            {'status': 'finished', 'question_start_time': None}, synchronize_session=False,
        )
        self.commit()
        return matched == 1

    def purge_expired(self, max_age_seconds: int) -> int:
        cutoff = self.clock() - timedelta(seconds=max_age_seconds)
        removed = 0
        # ORM deletes so players, answers and question sets cascade
        for room in Room.query.filter(Room.created_at < cutoff).all():
            self.session.delete(room)
            removed += 1
        self.commit()
        return removed

    # ---- players ----

    def add_player(self, code: str, name: str, avatar: str, is_host: bool = False,
                   require_status: Optional[str] = None) -> Player:
        # Row lock on the room serializes concurrent joins so the roster cannot overfill
        room = self.require_room(code, for_update=True)
        if require_status is not None and room.status != require_status:
            self.session.rollback()
            raise RoomError('This room is no longer accepting players. The game may have already started.', code)
        if Player.query.filter_by(room_code=code, name=name).first() is not None:
            self.session.rollback()
            raise ValidationError('A player with this name is already in the room', 'player_name')
        count = Player.query.filter_by(room_code=code).count()
        if count >= room.max_players:
            self.session.rollback()
            raise RoomFullError(code, room.max_players)
        player = Player(room_code=code, name=name, avatar=avatar, is_host=is_host, joined_at=self.clock())
        self.session.add(player)
        self.commit()
        return player

    def remove_player(self, code: str, player_id: int) -> bool:
        """Delete a player; a missing player is not an error here."""
        player = self.get_player(code, player_id)
        if player is None:
            return False
        self.session.delete(player)
        self.commit()
        return True

    def get_player(self, code, player_id):
        return Player.query.filter_by(id=player_id, room_code=code).first()

    def list_players(self, code):
        return Player.query.filter_by(room_code=code).order_by(Player.joined_at, Player.id).all()

    def count_players(self, code):
        return Player.query.filter_by(room_code=code).count()

    def reset_player_answers(self, code: str, commit: bool = True) -> None:
        """Clear the per-question answered marker; recorded answers stay."""
        Player.query.filter_by(room_code=code).update(
            {'current_answer': None, 'answered_at': None}, synchronize_session=False,
        )
        if commit:
            self.commit()

    # ---- answers ----

    def record_answer(self, code: str, player_id: int, entry: dict) -> Optional[PlayerAnswer]:
        """Insert-if-absent for ``(player_id, entry['question_index'])``.

        Returns the stored answer, or None when one already exists for that
        question (the earlier answer is kept untouched). The score increment
        rides in the same transaction as the insert.
        """
        question_index = entry.get('question_index')
        # Lock the room row so a concurrent advance cannot slip between the check and the insert
        room = Room.query.filter_by(code=code).with_for_update().populate_existing().first()
        if room is None or room.status != 'active' or room.current_question_index != question_index:
            self.session.rollback()
            raise RoomError('This question is no longer accepting answers', code, status_code=409)
        answer = PlayerAnswer(player_id=player_id, room_code=code, created_at=self.clock(), **entry)
        self.session.add(answer)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            current_app.logger.warning(
                f"[answer-duplicate] room={code} player={player_id} question={question_index}"
            )
            return None
        Player.query.filter_by(id=player_id, room_code=code).update(
            {
                'score': Player.score + answer.score,
                'current_answer': answer.selected_answer,
                'answered_at': answer.created_at,
            },
            synchronize_session=False,
        )
        self.commit()
        return answer

    def list_answers(self, code, question_index=None):
        query = PlayerAnswer.query.filter_by(room_code=code)
        if question_index is not None:
            query = query.filter_by(question_index=question_index)
        return query.order_by(PlayerAnswer.player_id, PlayerAnswer.question_index).all()

    # ---- questions ----

    def save_questions(self, code: str, questions: Iterable[dict], commit: bool = True) -> None:
        for index, q in enumerate(questions):
            self.session.add(GameQuestion(
                room_code=code,
                question_index=index,
                text=q['text'],
                options=list(q['options']),
                correct_answer_index=q['correct_answer_index'],
                category=q.get('category'),
                difficulty=q.get('difficulty'),
            ))
        self.session.flush()
        if commit:
            self.commit()

    def get_question(self, code, index):
        return GameQuestion.query.filter_by(room_code=code, question_index=index).first()

    def list_questions(self, code):
        return GameQuestion.query.filter_by(room_code=code).order_by(GameQuestion.question_index).all()
