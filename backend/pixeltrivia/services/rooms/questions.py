"""Question Set Loader.

A room's questions are drawn once, at game start, from a *question source*
and written against the room code so every player sees the same fixed
sequence. Sources are plain callables ``(category, difficulty, count) ->
list[QuestionData]``; the bundled one reads the ``question`` bank table, but
an AI generator or a static list plugs in the same way.
"""

import json
import random
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from flask import current_app

from pixeltrivia import db
from pixeltrivia.models import Question

DEFAULT_BANK_PATH = Path(__file__).resolve().parents[2] / 'data' / 'questions.json'
VALID_DIFFICULTIES = ('easy', 'medium', 'hard')


@dataclass
class QuestionData:
    text: str
    options: List[str]
    correct_answer_index: int
    category: Optional[str] = None
    difficulty: Optional[str] = None

    def is_well_formed(self) -> bool:
        return (
            bool(self.text)
            and len(self.options) >= 2
            and isinstance(self.correct_answer_index, int)
            and 0 <= self.correct_answer_index < len(self.options)
        )

    def to_dict(self):
        return asdict(self)


QuestionSource = Callable[[Optional[str], Optional[str], int], Sequence[QuestionData]]


def question_bank_source(category: Optional[str], difficulty: Optional[str], count: int,
                         rng: Optional[random.Random] = None) -> List[QuestionData]:
    """Pick up to ``count`` random bank questions matching category/difficulty.

    Category matching is a case-insensitive substring match; ``None`` means
    any category or any difficulty.
    """
    query = Question.query
    if category:
        query = query.filter(Question.category.ilike(f'%{category}%'))
    if difficulty:
        query = query.filter(Question.difficulty == difficulty)
    pool = [
        QuestionData(
            text=q.text,
            options=list(q.options or []),
            correct_answer_index=q.correct_answer_index,
            category=q.category,
            difficulty=q.difficulty,
        )
        for q in query.order_by(Question.id).all()
    ]
    rng = rng or random.SystemRandom()
    rng.shuffle(pool)
    return pool[:count]


@dataclass
class QuestionSetLoader:
    store: object
    source: QuestionSource = field(default=question_bank_source)

    def fetch(self, category: Optional[str], difficulty: Optional[str], count: int) -> List[QuestionData]:
        """Ask the source for ``count`` questions, dropping malformed ones.

        Returning fewer than ``count`` is a valid, degraded result.
        """
        questions = [q for q in self.source(category, difficulty, count) if q.is_well_formed()]
        if len(questions) < count:
            current_app.logger.info(
                f"[questions-short] category={category} difficulty={difficulty} wanted={count} got={len(questions)}"
            )
        return questions[:count]

    def load(self, room_code: str, category: Optional[str], difficulty: Optional[str], count: int,
             started_at=None) -> List[QuestionData]:
        """Fetch a question set and persist it against the room as the game begins."""
        questions = self.fetch(category, difficulty, count)
        if questions:
            self.store.begin_game(room_code, [q.to_dict() for q in questions], started_at)
        return questions


def seed_question_bank(path=None, replace=False) -> int:
    """Load bank questions from a JSON list; returns how many rows were added."""
    path = Path(path) if path else DEFAULT_BANK_PATH
    with open(path, 'r', encoding='utf-8') as fh:
        entries = json.load(fh)
    if replace:
        Question.query.delete()
    added = 0
    for entry in entries:
        data = QuestionData(
            text=entry['text'],
            options=list(entry['options']),
            correct_answer_index=int(entry['correct_answer_index']),
            category=entry.get('category'),
            difficulty=entry.get('difficulty', 'medium'),
        )
        if not data.is_well_formed() or data.difficulty not in VALID_DIFFICULTIES:
            current_app.logger.warning(f"[seed-skip] malformed question: {entry.get('text')!r}")
            continue
        db.session.add(Question(**data.to_dict()))
        added += 1
    db.session.commit()
    return added
