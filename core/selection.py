"""Word sampling, versus word picking and multiple-choice question building.

Every function takes an optional `rng` (anything with the `random` module's
interface, e.g. a seeded random.Random); the module-level generator is used
when none is given.
"""

import random

from .config import (
    ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, REVERSE_DISTRACTOR_COUNT,
    DISTRACTOR_LENGTH_WINDOW, DISTRACTOR_LENGTH_SCORE, DISTRACTOR_FIRST_LETTER_SCORE,
    DISTRACTOR_SHORT_WORD_LENGTH, DISTRACTOR_SHORT_WORD_PENALTY, DISTRACTOR_JITTER
)
from .errors import InsufficientWords


def _attr(item, name: str):
    """Read a field from either a dict row or a model object."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _is_attempted(item) -> bool:
    if isinstance(item, dict):
        return bool(item.get('last_reviewed_at')) or (item.get('total_right') or 0) > 0 \
            or (item.get('total_wrong') or 0) > 0
    return item.attempted


def generate_room_code(rng=None) -> str:
    rng = rng or random
    return ''.join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def select_random_words(pool: list, count: int, rng=None) -> list:
    """Uniform sample of `count` distinct items from pool."""
    rng = rng or random
    if len(pool) < count:
        raise InsufficientWords(f"Not enough words: need {count}, have {len(pool)}")
    return rng.sample(list(pool), count)


def pick_versus_words(words: list, count: int, rng=None) -> list:
    """Pick up to `count` words, preferring ones the owner has already attempted.

    Attempted and unattempted words are shuffled separately, attempted ones
    fill the quota first, and the combined pick is shuffled once more so the
    order does not reveal which group a word came from.
    """
    rng = rng or random
    if not words:
        raise InsufficientWords("Word pool is empty")

    attempted = [w for w in words if _is_attempted(w)]
    unattempted = [w for w in words if not _is_attempted(w)]
    rng.shuffle(attempted)
    rng.shuffle(unattempted)

    selected = attempted[:count] + unattempted[:max(0, count - len(attempted))]
    rng.shuffle(selected)
    return selected[:count]


def score_distractor(candidate: str, target: str, rng=None) -> float:
    """Similarity score: higher means a more plausible wrong answer."""
    rng = rng or random
    candidate_lower = candidate.lower()
    target_lower = target.lower()
    score = 0.0

    if abs(len(candidate) - len(target)) <= DISTRACTOR_LENGTH_WINDOW:
        score += DISTRACTOR_LENGTH_SCORE
    if candidate_lower[:1] and candidate_lower[:1] == target_lower[:1]:
        score += DISTRACTOR_FIRST_LETTER_SCORE
    for i in range(len(target_lower) - 2):
        if target_lower[i:i + 3] in candidate_lower:
            score += 1
    if len(candidate) <= DISTRACTOR_SHORT_WORD_LENGTH:
        score -= DISTRACTOR_SHORT_WORD_PENALTY

    # Jitter keeps equal scores from always resolving the same way
    score += rng.uniform(0, DISTRACTOR_JITTER)
    return score


def generate_distractors(target, pool: list, count: int = REVERSE_DISTRACTOR_COUNT,
                         rng=None) -> list[dict]:
    """Top `count` most similar non-target words as {id, word} options."""
    rng = rng or random
    target_id = _attr(target, 'id')
    target_word = _attr(target, 'word') or ''
    candidates = [w for w in pool if _attr(w, 'id') != target_id]
    if len(candidates) < count:
        raise InsufficientWords(f"Not enough words to generate {count} wrong answers")

    scored = [(score_distractor(_attr(w, 'word') or '', target_word, rng), w) for w in candidates]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [{'id': _attr(w, 'id'), 'word': _attr(w, 'word')} for _, w in scored[:count]]


class Question:
    """A definition with three shuffled word options, one of them correct."""

    def __init__(self, word_id: str, word: str, definition: str, options: list[dict]):
        self.word_id = word_id
        self.word = word
        self.definition = definition
        self.options = options

    def is_correct(self, selected_word_id: str) -> bool:
        return bool(selected_word_id) and selected_word_id == self.word_id

    def to_dict(self) -> dict:
        return {
            'word_id': self.word_id,
            'word': self.word,
            'definition': self.definition,
            'options': [dict(o) for o in self.options]
        }

    def public_dict(self) -> dict:
        """What players see while the question is open: no answer id."""
        return {
            'definition': self.definition,
            'options': [{'id': o['id'], 'word': o['word']} for o in self.options]
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> 'Question | None':
        if not data:
            return None
        return cls(
            word_id=data.get('word_id'),
            word=data.get('word', ''),
            definition=data.get('definition', ''),
            options=[{'id': o.get('id'), 'word': o.get('word')} for o in data.get('options', [])]
        )


def build_question(target, pool: list, rng=None) -> Question:
    """Assemble a question for target against the full word pool."""
    rng = rng or random
    options = [{'id': _attr(target, 'id'), 'word': _attr(target, 'word')}]
    options += generate_distractors(target, pool, REVERSE_DISTRACTOR_COUNT, rng)
    rng.shuffle(options)
    return Question(
        word_id=_attr(target, 'id'),
        word=_attr(target, 'word'),
        definition=_attr(target, 'definition') or '',
        options=options
    )
