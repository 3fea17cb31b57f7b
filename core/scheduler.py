"""Spaced-repetition scheduling over a configurable level ladder.

All functions are pure: they return updated copies, take `now` from the
caller and never raise on odd input (unknown level ids are clamped onto
the ladder).
"""

from datetime import datetime, timedelta

from .models import AppConfig, WordItem, RIGHT, WRONG
from .utils import utc_now


def start_of_local_day(now: datetime) -> datetime:
    """Midnight of now's calendar day in the local timezone."""
    return local_midnight_after(now, 0)


def local_midnight_after(now: datetime, days: int) -> datetime:
    """Local midnight `days` calendar days after now's local date.

    Days are added to the naive local date and the result is localized
    afterwards, so the offset is the one in force on the target day.
    """
    target = now.astimezone().date() + timedelta(days=days)
    return datetime.combine(target, datetime.min.time()).astimezone()


def is_due(word: WordItem, now: datetime | None = None) -> bool:
    return word.due_at <= (now or utc_now())


def due_words(words: list[WordItem], now: datetime | None = None) -> list[WordItem]:
    """Words whose due time has passed, earliest due first."""
    now = now or utc_now()
    due = [w for w in words if is_due(w, now)]
    due.sort(key=lambda w: w.due_at)
    return due


def apply_answer(word: WordItem, right: bool, config: AppConfig,
                 is_clean_run: bool = True, now: datetime | None = None) -> WordItem:
    """Return the word's next learning state after one answer.

    Wrong: count it, optionally reset the streak and make the word due now.
    Right: count it; a clean run (not failed earlier this session) extends
    the streak; the word is due `interval_days` after today's local midnight.
    When a clean-run streak reaches the level's threshold below the top
    level, the word moves up one rung, the streak resets and the due date
    is recomputed from the new level's interval.
    """
    now = now or utc_now()
    level = config.get_level(word.level_id)

    updated = word.copy()
    updated.level_id = level.id
    updated.updated_at = now
    updated.last_reviewed_at = now
    updated.last_result = RIGHT if right else WRONG

    if not right:
        updated.total_wrong = word.total_wrong + 1
        if config.wrong_resets_streak:
            updated.streak_correct = 0
        if config.wrong_makes_immediately_due:
            updated.due_at = now
        return updated

    updated.total_right = word.total_right + 1
    streak = word.streak_correct + 1 if is_clean_run else word.streak_correct
    updated.streak_correct = streak

    updated.due_at = local_midnight_after(now, level.interval_days)

    if is_clean_run and not config.is_max_level(level.id) and streak >= level.promote_after_correct:
        next_level = config.get_level(config.next_higher_level_id(level.id))
        updated.level_id = next_level.id
        updated.streak_correct = 0
        updated.due_at = local_midnight_after(now, next_level.interval_days)

    return updated


def set_level(word: WordItem, level_id: int, config: AppConfig,
              now: datetime | None = None) -> WordItem:
    """Manual level override: clamp onto the ladder, reset streak, due now."""
    now = now or utc_now()
    updated = word.copy()
    updated.level_id = config.clamp_level_id(level_id)
    updated.streak_correct = 0
    updated.due_at = now
    updated.updated_at = now
    return updated
