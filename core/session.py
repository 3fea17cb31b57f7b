"""Practice session controller: one user working through a bounded lesson."""

import logging
import random
from concurrent.futures import Executor
from typing import Callable

from .config import LESSON_SIZE
from .errors import Conflict, PersistenceFailure
from .interfaces import WordStore
from .models import AppConfig, WordItem, normalize_word
from .scheduler import apply_answer, due_words
from .utils import utc_now

logger = logging.getLogger(__name__)

IDLE = 'idle'
LESSON = 'lesson'
REVIEW = 'review'
FINISHED = 'finished'


class PracticeSession:
    """Drives a lesson of up to LESSON_SIZE due words, then reviews misses.

    The session's word snapshots are the local source of truth. Each answer
    is written back to the WordStore best-effort: write failures are logged
    and collected in `persistence_failures` but never interrupt the lesson.
    Pass an `executor` to run those writes off the caller's thread.
    """

    def __init__(self, word_store: WordStore, user_id: str, config: AppConfig,
                 rng=None, clock: Callable = utc_now, executor: Executor | None = None):
        self.word_store = word_store
        self.user_id = user_id
        self.config = config
        self.rng = rng or random
        self.clock = clock
        self.executor = executor

        self.state = IDLE
        self.words: dict[str, WordItem] = {}
        self.plan: list[str] = []
        self.position = 0
        self.wrong_pool: list[str] = []
        self.failed_this_session: set[str] = set()
        self.current_id: str | None = None
        self.last_review_id: str | None = None
        self.seen_count = 0
        self.right_count = 0
        self.wrong_count = 0
        self.persistence_failures: list[PersistenceFailure] = []

    @property
    def active(self) -> bool:
        return self.state in (LESSON, REVIEW)

    @property
    def current_word(self) -> WordItem | None:
        if self.current_id is None:
            return None
        return self.words.get(self.current_id)

    def load_words(self) -> list[WordItem]:
        rows = self.word_store.get_words_with_progress(self.user_id)
        now = self.clock()
        return [normalize_word(row, self.config, now) for row in rows]

    def start(self, words: list[WordItem] | None = None) -> WordItem | None:
        """Sample the lesson plan from the due words and show the first one."""
        if words is None:
            words = self.load_words()
        due = due_words(words, self.clock())

        sample = self.rng.sample(due, min(LESSON_SIZE, len(due)))
        self.words = {w.id: w for w in words}
        self.plan = [w.id for w in sample]
        self.position = 0
        self.wrong_pool = []
        self.failed_this_session = set()
        self.last_review_id = None
        self.seen_count = 0
        self.right_count = 0
        self.wrong_count = 0

        if not self.plan:
            logger.info(f"No due words for {self.user_id}, nothing to practice")
            self._finish()
            return None

        self.state = LESSON
        self.current_id = self.plan[0]
        logger.info(f"Practice started for {self.user_id}: {len(self.plan)} words")
        return self.current_word

    def stop(self) -> None:
        self._finish()

    def answer(self, right: bool) -> WordItem:
        """Record an answer for the current word and move to the next one."""
        word = self.current_word
        if not self.active or word is None:
            raise Conflict("No practice word is waiting for an answer")

        clean_run = word.id not in self.failed_this_session
        if not right:
            self.failed_this_session.add(word.id)

        updated = apply_answer(word, right, self.config, clean_run, self.clock())
        self.words[updated.id] = updated
        self._persist(updated)

        self.seen_count += 1
        if right:
            self.right_count += 1
        else:
            self.wrong_count += 1

        if self.state == REVIEW:
            self._advance_review(updated.id, right)
        else:
            self._advance_lesson(updated.id, right)
        return updated

    def _advance_lesson(self, word_id: str, right: bool) -> None:
        if not right and word_id not in self.wrong_pool:
            self.wrong_pool.append(word_id)

        self.position += 1
        if self.position < len(self.plan):
            self.current_id = self.plan[self.position]
            return

        if self.wrong_pool:
            self.state = REVIEW
            self.current_id = self.rng.choice(self.wrong_pool)
            self.last_review_id = self.current_id
            logger.info(f"Lesson done for {self.user_id}, reviewing {len(self.wrong_pool)} missed words")
        else:
            self._finish()

    def _advance_review(self, word_id: str, right: bool) -> None:
        self.last_review_id = word_id
        if right and word_id in self.wrong_pool:
            self.wrong_pool.remove(word_id)
        if not self.wrong_pool:
            self._finish()
            return

        candidates = self.wrong_pool
        if len(candidates) > 1:
            candidates = [w for w in candidates if w != word_id]
        self.current_id = self.rng.choice(candidates)

    def _finish(self) -> None:
        if self.state != FINISHED:
            logger.info(f"Practice finished for {self.user_id}: "
                        f"{self.right_count} right, {self.wrong_count} wrong")
        self.state = FINISHED
        self.current_id = None

    def _persist(self, word: WordItem) -> None:
        progress = word.progress_dict()
        if self.executor is not None:
            self.executor.submit(self._write_progress, word.id, progress)
        else:
            self._write_progress(word.id, progress)

    def _write_progress(self, word_id: str, progress: dict) -> None:
        try:
            self.word_store.save_progress(self.user_id, word_id, progress)
        except Exception as e:
            failure = PersistenceFailure('save_progress', self.user_id, word_id, e)
            logger.warning(f"Progress not saved, continuing session: {failure}")
            self.persistence_failures.append(failure)

    def to_dict(self) -> dict:
        word = self.current_word
        return {
            'state': self.state,
            'current_word': {
                'id': word.id,
                'word': word.word,
                'hint': word.hint,
                'definition': word.definition,
                'image_url': word.image_url,
                'level_id': word.level_id
            } if word else None,
            'position': self.position,
            'lesson_size': len(self.plan),
            'reviewing': self.state == REVIEW,
            'wrong_pool_size': len(self.wrong_pool),
            'seen_count': self.seen_count,
            'right_count': self.right_count,
            'wrong_count': self.wrong_count,
            'persistence_failures': [f.to_dict() for f in self.persistence_failures]
        }
