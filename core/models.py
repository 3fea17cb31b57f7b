"""Domain models for vocab arena: level ladder, config and word progress."""

import copy
import math
import uuid
from datetime import datetime

from .config import (
    DEFAULT_LEVELS, DEFAULT_WRONG_MAKES_IMMEDIATELY_DUE, DEFAULT_WRONG_RESETS_STREAK,
    MIN_INTERVAL_DAYS, MAX_INTERVAL_DAYS, MIN_PROMOTE_AFTER, MAX_PROMOTE_AFTER,
    MAX_STREAK, MAX_TOTAL_COUNT
)
from .utils import clamp_int, parse_iso, to_iso, utc_now

RIGHT = 'right'
WRONG = 'wrong'


def _pick(data: dict, snake: str, camel: str, default=None):
    """Read a field stored under either its snake_case or camelCase name."""
    if snake in data and data[snake] is not None:
        return data[snake]
    if camel in data and data[camel] is not None:
        return data[camel]
    return default


class LevelConfig:
    """One rung of the level ladder."""

    def __init__(self, id: int, name: str, promote_after_correct: int, interval_days: int):
        self.id = id
        self.name = name
        self.promote_after_correct = promote_after_correct
        self.interval_days = interval_days

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'promote_after_correct': self.promote_after_correct,
            'interval_days': self.interval_days
        }

    @classmethod
    def from_dict(cls, data: dict, position: int = 0) -> 'LevelConfig':
        """Build a clamped level. position is used when the id is unusable."""
        raw_id = data.get('id')
        try:
            level_id = float(raw_id)
            level_id = int(level_id) if math.isfinite(level_id) else position + 1
        except (TypeError, ValueError):
            level_id = position + 1
        name = data.get('name')
        return cls(
            id=level_id,
            name=str(name) if name is not None else f'Level {position + 1}',
            promote_after_correct=clamp_int(
                _pick(data, 'promote_after_correct', 'promoteAfterCorrect', 1),
                MIN_PROMOTE_AFTER, MAX_PROMOTE_AFTER
            ),
            interval_days=clamp_int(
                _pick(data, 'interval_days', 'intervalDays', 0),
                MIN_INTERVAL_DAYS, MAX_INTERVAL_DAYS
            )
        )


class AppConfig:
    """Scheduler configuration: an ordered level ladder plus wrong-answer policy.

    Always constructed through from_dict/normalize so that the ladder is
    sorted by id, ids are unique and at least one level exists.
    """

    def __init__(self, levels: list[LevelConfig], wrong_makes_immediately_due: bool,
                 wrong_resets_streak: bool):
        self.levels = levels
        self.wrong_makes_immediately_due = wrong_makes_immediately_due
        self.wrong_resets_streak = wrong_resets_streak

    @classmethod
    def default(cls) -> 'AppConfig':
        return cls.from_dict({
            'levels': DEFAULT_LEVELS,
            'wrong_makes_immediately_due': DEFAULT_WRONG_MAKES_IMMEDIATELY_DUE,
            'wrong_resets_streak': DEFAULT_WRONG_RESETS_STREAK
        })

    def to_dict(self) -> dict:
        return {
            'levels': [level.to_dict() for level in self.levels],
            'wrong_makes_immediately_due': self.wrong_makes_immediately_due,
            'wrong_resets_streak': self.wrong_resets_streak
        }

    @classmethod
    def from_dict(cls, data) -> 'AppConfig':
        return normalize_config(data)

    @property
    def level_ids(self) -> list[int]:
        return [level.id for level in self.levels]

    @property
    def first_level_id(self) -> int:
        return self.levels[0].id

    @property
    def max_level_id(self) -> int:
        return self.levels[-1].id

    def clamp_level_id(self, level_id) -> int:
        """Map any id onto an existing level: below/above the ladder go to its
        ends, gaps go to the closest id (lower one on ties)."""
        try:
            wanted = int(level_id)
        except (TypeError, ValueError):
            return self.first_level_id
        ids = self.level_ids
        if wanted in ids:
            return wanted
        if wanted < ids[0]:
            return ids[0]
        if wanted > ids[-1]:
            return ids[-1]
        return min(ids, key=lambda candidate: abs(candidate - wanted))

    def get_level(self, level_id) -> LevelConfig:
        """Look up a level, clamping unknown ids to the nearest configured one."""
        clamped = self.clamp_level_id(level_id)
        for level in self.levels:
            if level.id == clamped:
                return level
        return self.levels[0]

    def next_higher_level_id(self, level_id: int) -> int:
        for candidate in self.level_ids:
            if candidate > level_id:
                return candidate
        return level_id

    def is_max_level(self, level_id: int) -> bool:
        return level_id >= self.max_level_id


def normalize_config(data) -> AppConfig:
    """Coerce an externally sourced config into a valid AppConfig. Never raises."""
    if isinstance(data, AppConfig):
        data = data.to_dict()
    if not isinstance(data, dict):
        data = {}

    raw_levels = data.get('levels')
    if not isinstance(raw_levels, list):
        raw_levels = DEFAULT_LEVELS

    levels = []
    for position, raw in enumerate(raw_levels):
        if isinstance(raw, LevelConfig):
            raw = raw.to_dict()
        if not isinstance(raw, dict):
            continue
        levels.append(LevelConfig.from_dict(raw, position))
    levels.sort(key=lambda level: level.id)

    unique = []
    seen = set()
    for level in levels:
        if level.id in seen:
            continue
        seen.add(level.id)
        unique.append(level)

    if not unique:
        unique = [LevelConfig.from_dict(raw, i) for i, raw in enumerate(DEFAULT_LEVELS)]

    return AppConfig(
        levels=unique,
        wrong_makes_immediately_due=bool(_pick(
            data, 'wrong_makes_immediately_due', 'wrongMakesImmediatelyDue', False)),
        wrong_resets_streak=bool(_pick(data, 'wrong_resets_streak', 'wrongResetsStreak', False))
    )


class WordItem:
    """A word joined with one user's learning progress."""

    def __init__(self, id: str, word: str, hint: str = '', definition: str = '',
                 level_id: int = 1, streak_correct: int = 0, total_right: int = 0,
                 total_wrong: int = 0, last_reviewed_at: datetime | None = None,
                 due_at: datetime | None = None, last_result: str | None = None,
                 image_url: str | None = None, created_at: datetime | None = None,
                 updated_at: datetime | None = None):
        self.id = id
        self.word = word
        self.hint = hint
        self.definition = definition
        self.image_url = image_url
        self.level_id = level_id
        self.streak_correct = streak_correct
        self.total_right = total_right
        self.total_wrong = total_wrong
        self.last_reviewed_at = last_reviewed_at
        self.due_at = due_at or utc_now()
        self.last_result = last_result
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def attempted(self) -> bool:
        """True once the word has been reviewed or answered at least once."""
        return bool(self.last_reviewed_at) or self.total_right > 0 or self.total_wrong > 0

    def copy(self) -> 'WordItem':
        return copy.copy(self)

    def progress_dict(self) -> dict:
        """Fields persisted per user x word."""
        return {
            'level_id': self.level_id,
            'streak_correct': self.streak_correct,
            'total_right': self.total_right,
            'total_wrong': self.total_wrong,
            'last_reviewed_at': to_iso(self.last_reviewed_at),
            'due_at': to_iso(self.due_at),
            'last_result': self.last_result
        }

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'word': self.word,
            'hint': self.hint,
            'definition': self.definition,
            'image_url': self.image_url,
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
            **self.progress_dict()
        }

    @classmethod
    def from_dict(cls, data: dict, config: AppConfig | None = None,
                  now: datetime | None = None) -> 'WordItem':
        return normalize_word(data, config or AppConfig.default(), now)


def normalize_word(data: dict, config: AppConfig, now: datetime | None = None) -> WordItem:
    """Build a WordItem with counts clamped and the level mapped onto the ladder."""
    now = now or utc_now()
    last_result = data.get('last_result', data.get('lastResult'))
    return WordItem(
        id=str(data.get('id') or uuid.uuid4()),
        word=str(data.get('word') or '').strip(),
        hint=str(data.get('hint') or '').strip(),
        definition=str(data.get('definition') or '').strip(),
        image_url=_pick(data, 'image_url', 'imageUrl'),
        level_id=config.clamp_level_id(_pick(data, 'level_id', 'levelId', config.first_level_id)),
        streak_correct=clamp_int(_pick(data, 'streak_correct', 'streakCorrect', 0), 0, MAX_STREAK),
        total_right=clamp_int(_pick(data, 'total_right', 'totalRight', 0), 0, MAX_TOTAL_COUNT),
        total_wrong=clamp_int(_pick(data, 'total_wrong', 'totalWrong', 0), 0, MAX_TOTAL_COUNT),
        last_reviewed_at=parse_iso(_pick(data, 'last_reviewed_at', 'lastReviewedAt')),
        due_at=parse_iso(_pick(data, 'due_at', 'dueAt')) or now,
        last_result=last_result if last_result in (RIGHT, WRONG) else None,
        created_at=parse_iso(_pick(data, 'created_at', 'createdAt')) or now,
        updated_at=parse_iso(_pick(data, 'updated_at', 'updatedAt')) or now
    )
