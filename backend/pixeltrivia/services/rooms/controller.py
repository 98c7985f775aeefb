"""Room Lifecycle Controller: the multiplayer state machine.

Room status only moves forward::

    waiting --start_game--> active --next_question (last)--> finished
       \\____________________ host leaves _____________________/

Within ``active`` the current question is tracked by
``current_question_index`` plus each player's answered marker. Every
operation validates its preconditions before touching the store, and the
store makes each transition a single guarded write, so concurrent or
repeated calls are rejected rather than applied twice.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from flask import current_app

from pixeltrivia.errors import (
    AuthorizationError,
    DatabaseError,
    NotFoundError,
    RoomError,
    ValidationError,
)
from pixeltrivia.models import isoformat, utcnow
from .codes import format_room_code, is_valid_room_code, normalize_room_code
from .notifier import RoomNotifier
from .questions import VALID_DIFFICULTIES
from .scoring import ScoredAnswer, ScoringConfig, calculate_game_score, calculate_points

GAME_MODES = ('quick', 'custom', 'advanced')
NICKNAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-_]+$')
MAX_CATEGORY_LENGTH = 50


@dataclass(frozen=True)
class RoomSettings:
    min_players: int = 2
    max_players: int = 16
    default_max_players: int = 8
    min_players_to_start: int = 2
    min_time_limit: int = 5
    max_time_limit: int = 120
    default_time_limit: int = 30
    min_questions: int = 1
    max_questions: int = 50
    default_question_count: int = 10
    min_nickname_length: int = 1
    max_nickname_length: int = 20
    max_avatar_length: int = 20
    default_avatar: str = 'knight'

    @classmethod
    def from_config(cls, config) -> 'RoomSettings':
        defaults = cls()
        values = {}
        for name in cls.__dataclass_fields__:
            values[name] = config.get(name.upper(), getattr(defaults, name))
        return cls(**values)


def _by_score(players):
    # sorted() is stable, so equal scores keep join order
    return sorted(players, key=lambda p: -p.score)


class RoomController:
    def __init__(self, store, loader, scoring: Optional[ScoringConfig] = None,
                 notifier: Optional[RoomNotifier] = None, clock: Callable = utcnow,
                 settings: Optional[RoomSettings] = None):
        self.store = store
        self.loader = loader
        self.scoring = scoring or ScoringConfig()
        self.notifier = notifier
        self.clock = clock
        self.settings = settings or RoomSettings()

    # ---- operations ----

    def create_room(self, host_name, avatar=None, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        name = self._validate_name(host_name)
        avatar = self._validate_avatar(avatar)
        room_settings = self._validate_room_config(config or {})
        room = self.store.create_room(room_settings, host={'name': name, 'avatar': avatar})
        host = room.host
        current_app.logger.info(
            f"[room-create] room={room.code} host={host.id} max_players={room.max_players} "
            f"questions={room.question_count} time_limit={room.time_limit}"
        )
        self._notify(room.code, 'room_created')
        return {
            'room_code': room.code,
            'display_code': format_room_code(room.code),
            'player_id': host.id,
            'status': room.status,
            'max_players': room.max_players,
            'time_limit': room.time_limit,
            'question_count': room.question_count,
            'game_mode': room.game_mode,
            'category': room.category,
            'difficulty': room.difficulty,
            'created_at': isoformat(room.created_at),
        }

    def join_room(self, code, player_name, avatar=None) -> Dict[str, Any]:
        code = self._validate_code(code)
        name = self._validate_name(player_name)
        avatar = self._validate_avatar(avatar)
        room = self.store.require_room(code)
        if room.status != 'waiting':
            raise RoomError('This room is no longer accepting players. The game may have already started.', code)
        player = self.store.add_player(code, name, avatar, require_status='waiting')
        current_app.logger.info(f"[room-join] room={code} player={player.id} name={name!r}")
        self._notify(code, 'player_joined', {'player_id': player.id})
        return {'player_id': player.id, 'room': self.get_room_state(code)}

    def get_room_state(self, code) -> Dict[str, Any]:
        code = self._validate_code(code)
        room = self.store.require_room(code)
        return room.to_dict(include_players=True)

    def start_game(self, code, requester_id) -> Dict[str, Any]:
        code = self._validate_code(code)
        requester_id = self._validate_player_id(requester_id)
        room = self.store.require_room(code)
        self._require_host(code, requester_id, 'Only the host can start the game')
        if room.status != 'waiting':
            raise RoomError('Game has already started or finished', code, status_code=409)
        player_count = self.store.count_players(code)
        if player_count < self.settings.min_players_to_start:
            raise RoomError(f'Need at least {self.settings.min_players_to_start} players to start', code)

        category, difficulty, count = room.category, room.difficulty, room.question_count
        started_at = self.clock()
        questions = self.loader.load(code, category, difficulty, count, started_at=started_at)
        if not questions:
            raise RoomError('No questions available for this game configuration', code)

        first = self.store.get_question(code, 0)
        current_app.logger.info(
            f"[room-start] room={code} players={player_count} questions={len(questions)} "
            f"category={category} difficulty={difficulty}"
        )
        self._notify(code, 'game_started', {'total_questions': len(questions)})
        return {
            'started': True,
            'total_questions': len(questions),
            'current_question': first.to_dict(),
            'question_start_time': isoformat(started_at),
            'time_limit': room.time_limit,
        }

    def submit_answer(self, code, player_id, selected_index, time_ms) -> Dict[str, Any]:
        code = self._validate_code(code)
        player_id = self._validate_player_id(player_id)
        if isinstance(selected_index, bool) or not isinstance(selected_index, int) or selected_index < 0:
            raise ValidationError('Answer index is required', 'answer')
        time_ms = self._validate_time_ms(time_ms)

        room = self.store.require_room(code)
        if room.status != 'active':
            raise RoomError('Game is not in progress', code)
        player = self.store.get_player(code, player_id)
        if player is None:
            raise NotFoundError('player', str(player_id))
        index, time_limit = room.current_question_index, room.time_limit
        if player.has_answered:
            current_app.logger.info(f"[answer-repeat] room={code} player={player_id} question={index}")
            return self._rejected_answer(player.score)

        question = self.store.get_question(code, index)
        if question is None:
            raise DatabaseError(f'Question {index} is missing for room {code}')
        if selected_index >= len(question.options or []):
            raise ValidationError('Answer index is out of range', 'answer')

        correct = selected_index == question.correct_answer_index
        clamped_ms = min(time_ms, time_limit * 1000.0)
        points = calculate_points(correct, clamped_ms / 1000.0, self.scoring.with_reference_time(time_limit))
        answer = self.store.record_answer(code, player_id, {
            'question_index': index,
            'selected_answer': selected_index,
            'time_ms': int(clamped_ms),
            'correct': correct,
            'score': points,
        })
        player = self.store.get_player(code, player_id)
        if answer is None:
            return self._rejected_answer(player.score if player else 0)

        current_app.logger.info(
            f"[answer] room={code} player={player_id} question={index} correct={correct} points={points}"
        )
        self._notify(code, 'answer_submitted', {'player_id': player_id, 'question_index': index})
        return {
            'accepted': True,
            'correct': correct,
            'score_gained': points,
            'total_score': player.score,
            'question_index': index,
        }

    def next_question(self, code, requester_id) -> Dict[str, Any]:
        code = self._validate_code(code)
        requester_id = self._validate_player_id(requester_id)
        room = self.store.require_room(code)
        self._require_host(code, requester_id, 'Only the host can advance questions')
        if room.status != 'active':
            raise RoomError('Game is not in progress', code, status_code=409)

        index, total = room.current_question_index, room.total_questions or 0
        question = self.store.get_question(code, index)
        correct_answer = question.correct_answer_index if question else None
        results = self._question_results(code, index)

        if index + 1 >= total:
            self.store.finish_game(code, index)
            final_scores = self._final_scores(code, total)
            current_app.logger.info(f"[room-finish] room={code} questions={total}")
            self._notify(code, 'game_finished')
            return {
                'game_over': True,
                'correct_answer': correct_answer,
                'question_results': results,
                'final_scores': final_scores,
            }

        started_at = self.clock()
        next_index = self.store.advance_question(code, index, started_at)
        upcoming = self.store.get_question(code, next_index)
        current_app.logger.info(f"[room-advance] room={code} question {index} -> {next_index}")
        self._notify(code, 'question_advanced', {'question_index': next_index})
        return {
            'game_over': False,
            'correct_answer': correct_answer,
            'question_results': results,
            'next_question': upcoming.to_dict() if upcoming else None,
            'question_start_time': isoformat(started_at),
        }

    def leave_room(self, code, player_id) -> Dict[str, str]:
        """Remove a player. The host leaving closes the room for everyone.

        Leaving twice, or with an id that is not in the room, is a no-op.
        """
        code = self._validate_code(code)
        player_id = self._validate_player_id(player_id)
        self.store.require_room(code)
        player = self.store.get_player(code, player_id)
        if player is None:
            current_app.logger.info(f"[room-leave-noop] room={code} player={player_id}")
            return {'action': 'player_left'}
        if player.is_host:
            self.store.close_room(code)
            current_app.logger.info(f"[room-close] room={code} host={player_id} left")
            self._notify(code, 'room_closed')
            return {'action': 'room_closed'}
        self.store.remove_player(code, player_id)
        current_app.logger.info(f"[room-leave] room={code} player={player_id}")
        self._notify(code, 'player_left', {'player_id': player_id})
        return {'action': 'player_left'}

    def get_current_question(self, code, player_id) -> Dict[str, Any]:
        code = self._validate_code(code)
        player_id = self._validate_player_id(player_id)
        room = self.store.require_room(code)
        player = self.store.get_player(code, player_id)
        if player is None:
            raise NotFoundError('player', str(player_id))
        if room.status != 'active':
            raise RoomError('Game is not in progress', code)
        question = self.store.get_question(code, room.current_question_index)
        if question is None:
            raise NotFoundError('question', str(room.current_question_index))
        return {
            # Only the host may see the answer key before the reveal
            'question': question.to_dict(include_answer=player.is_host),
            'total_questions': room.total_questions,
            'question_start_time': isoformat(room.question_start_time),
            'time_limit': room.time_limit,
            'has_answered': player.has_answered,
            'players': [p.to_dict() for p in _by_score(self.store.list_players(code))],
        }

    def get_results(self, code) -> Dict[str, Any]:
        code = self._validate_code(code)
        room = self.store.require_room(code)
        if room.status == 'waiting':
            raise RoomError('Game has not started yet', code)
        return {
            'room_code': code,
            'status': room.status,
            'total_questions': room.total_questions,
            'players': self._final_scores(code, room.total_questions or 0),
        }

    # ---- projections ----

    def _question_results(self, code: str, index: int) -> List[Dict[str, Any]]:
        answers = {a.player_id: a for a in self.store.list_answers(code, question_index=index)}
        results = []
        for p in _by_score(self.store.list_players(code)):
            a = answers.get(p.id)
            results.append({
                'player_id': p.id,
                'player_name': p.name,
                'answer': a.selected_answer if a else None,
                'correct': a.correct if a else False,
                'score_gained': a.score if a else 0,
                'total_score': p.score,
            })
        return results

    def _final_scores(self, code: str, total_questions: int) -> List[Dict[str, Any]]:
        scores = []
        for rank, p in enumerate(_by_score(self.store.list_players(code)), start=1):
            summary = calculate_game_score(
                (ScoredAnswer(a.correct, a.time_ms / 1000.0) for a in p.answers),
                total_questions,
                self.scoring,
            )
            scores.append({
                'rank': rank,
                'player_id': p.id,
                'player_name': p.name,
                'avatar': p.avatar,
                'total_score': p.score,
                'correct_answers': summary.correct_answers,
                'accuracy': summary.accuracy,
                'total_time': summary.total_time,
                'average_time': summary.average_time,
                'grade': summary.grade,
            })
        return scores

    @staticmethod
    def _rejected_answer(total_score: int) -> Dict[str, Any]:
        return {'accepted': False, 'correct': None, 'score_gained': 0, 'total_score': total_score}

    def _notify(self, code: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if self.notifier is not None:
            self.notifier.room_changed(code, event, payload)

    def _require_host(self, code: str, player_id: int, message: str):
        player = self.store.get_player(code, player_id)
        if player is None:
            raise NotFoundError('player', str(player_id))
        if not player.is_host:
            current_app.logger.warning(f"[host-only] room={code} player={player_id} denied")
            raise AuthorizationError(message)
        return player

    # ---- validation ----

    def _validate_code(self, code) -> str:
        code = normalize_room_code(code)
        if not is_valid_room_code(code):
            raise ValidationError('Invalid room code format', 'room_code')
        return code

    @staticmethod
    def _validate_time_ms(value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError('Time taken is required', 'time_ms')
        try:
            value = float(value)
        except OverflowError:
            raise ValidationError('Time taken is required', 'time_ms')
        if not math.isfinite(value) or value < 0:
            raise ValidationError('Time taken is required', 'time_ms')
        return value

    @staticmethod
    def _validate_player_id(value) -> int:
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError('Player ID is required', 'player_id')
        return value

    def _validate_name(self, name) -> str:
        s = self.settings
        name = name.strip() if isinstance(name, str) else ''
        if not s.min_nickname_length <= len(name) <= s.max_nickname_length:
            raise ValidationError(
                f'Player name must be between {s.min_nickname_length} and {s.max_nickname_length} characters',
                'player_name',
            )
        if not NICKNAME_PATTERN.fullmatch(name):
            raise ValidationError(
                'Player name may only contain letters, numbers, spaces, dashes and underscores', 'player_name'
            )
        return name

    def _validate_avatar(self, avatar) -> str:
        if avatar is None:
            return self.settings.default_avatar
        if not isinstance(avatar, str):
            raise ValidationError('Avatar must be a string', 'avatar')
        avatar = avatar.strip() or self.settings.default_avatar
        if len(avatar) > self.settings.max_avatar_length:
            raise ValidationError(f'Avatar must be at most {self.settings.max_avatar_length} characters', 'avatar')
        return avatar

    @staticmethod
    def _bounded_int(config, key, low, high, default) -> int:
        value = config.get(key)
        if value is None:
            return default
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f'{key} must be an integer', key)
        if not low <= value <= high:
            raise ValidationError(f'{key} must be between {low} and {high}', key)
        return value

    def _validate_room_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        s = self.settings
        game_mode = config.get('game_mode') or 'quick'
        if game_mode not in GAME_MODES:
            raise ValidationError(f"game_mode must be one of {', '.join(GAME_MODES)}", 'game_mode')
        category = config.get('category')
        if category is not None:
            if not isinstance(category, str):
                raise ValidationError('category must be a string', 'category')
            category = category.strip() or None
            if category and len(category) > MAX_CATEGORY_LENGTH:
                raise ValidationError(f'category must be at most {MAX_CATEGORY_LENGTH} characters', 'category')
        difficulty = config.get('difficulty') or None
        if difficulty is not None and difficulty not in VALID_DIFFICULTIES:
            raise ValidationError(f"difficulty must be one of {', '.join(VALID_DIFFICULTIES)}", 'difficulty')
        return {
            'game_mode': game_mode,
            'category': category,
            'difficulty': difficulty,
            'max_players': self._bounded_int(config, 'max_players', s.min_players, s.max_players, s.default_max_players),
            'time_limit': self._bounded_int(config, 'time_limit', s.min_time_limit, s.max_time_limit, s.default_time_limit),
            'question_count': self._bounded_int(
                config, 'question_count', s.min_questions, s.max_questions, s.default_question_count,
            ),
        }
