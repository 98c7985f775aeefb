"""Answer scoring and end-of-game aggregation.

Everything here is a pure function of its inputs: no database access, so the
controller and the tests can call it freely.
"""

import math
from dataclasses import dataclass, replace
from typing import Iterable, Optional


@dataclass(frozen=True)
class ScoringConfig:
    base_points: int = 100
    max_time_bonus: int = 50
    reference_time: float = 30.0

    @classmethod
    def from_config(cls, config) -> 'ScoringConfig':
        return cls(
            base_points=int(config.get('SCORE_BASE_POINTS', 100)),
            max_time_bonus=int(config.get('SCORE_MAX_TIME_BONUS', 50)),
        )

    def with_reference_time(self, seconds: float) -> 'ScoringConfig':
        return replace(self, reference_time=float(seconds))


@dataclass(frozen=True)
class ScoredAnswer:
    is_correct: bool
    time_spent: float  # seconds


@dataclass(frozen=True)
class ScoreResult:
    correct_answers: int
    total_questions: int
    accuracy: float
    total_time: float
    average_time: float
    score: int
    grade: str

    def to_dict(self):
        return {
            'correct_answers': self.correct_answers,
            'total_questions': self.total_questions,
            'accuracy': self.accuracy,
            'total_time': self.total_time,
            'average_time': self.average_time,
            'score': self.score,
            'grade': self.grade,
        }


def round_half_up(value, digits=0):
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def calculate_time_bonus(time_spent: float, config: Optional[ScoringConfig] = None) -> float:
    """Linear bonus: full ``max_time_bonus`` at 0s, nothing at or past ``reference_time``."""
    config = config or ScoringConfig()
    if config.reference_time <= 0:
        return 0.0
    raw = (config.reference_time - time_spent) * config.max_time_bonus / config.reference_time
    return max(0.0, min(float(config.max_time_bonus), raw))


def calculate_points(is_correct: bool, time_spent: float, config: Optional[ScoringConfig] = None) -> int:
    config = config or ScoringConfig()
    if not is_correct:
        return 0
    return config.base_points + int(round_half_up(calculate_time_bonus(time_spent, config)))


def get_grade(accuracy):
    if accuracy >= 90:
        return 'A'
    if accuracy >= 80:
        return 'B'
    if accuracy >= 70:
        return 'C'
    if accuracy >= 60:
        return 'D'
    return 'F'


def calculate_game_score(answers: Iterable[ScoredAnswer], total_questions: int,
                         config: Optional[ScoringConfig] = None) -> ScoreResult:
    """Reduce a player's answers to accuracy, timing, score and letter grade.

    Unanswered questions count against accuracy because ``total_questions``
    rather than ``len(answers)`` is the denominator.
    """
    config = config or ScoringConfig()
    answers = list(answers)
    correct = sum(1 for a in answers if a.is_correct)
    accuracy = (correct / total_questions) * 100 if total_questions > 0 else 0.0
    total_time = sum(a.time_spent for a in answers)
    average_time = total_time / total_questions if total_questions > 0 else 0.0
    bonus = sum(calculate_time_bonus(a.time_spent, config) for a in answers if a.is_correct)
    accuracy = round_half_up(accuracy, 1)
    return ScoreResult(
        correct_answers=correct,
        total_questions=total_questions,
        accuracy=accuracy,
        total_time=round_half_up(total_time, 1),
        average_time=round_half_up(average_time, 1),
        score=int(round_half_up(correct * config.base_points + bonus)),
        grade=get_grade(accuracy),
    )
