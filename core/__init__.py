from .models import LevelConfig, AppConfig, WordItem, normalize_config, normalize_word
from .interfaces import RoomStore, WordStore, Subscription
from .errors import (
    VocabError, NotFound, Conflict, RoomUnavailable, RoomFull, NotYourTurn, NotHost,
    QuestionClosed, InsufficientWords, CreationExhausted, RoomCreationExhausted,
    PersistenceFailure, UniqueViolation
)
from .scheduler import apply_answer, set_level, is_due, due_words, start_of_local_day, local_midnight_after
from .selection import (
    select_random_words, pick_versus_words, generate_distractors, build_question,
    generate_room_code, Question
)
from .session import PracticeSession
from .versus import VersusRoom, VersusGame, merge_versus_snapshot
from .reverse import (
    ReverseRoom, ReversePlayer, ReverseAnswer, PlayerStats, ReverseGame, ReverseAutopilot,
    merge_reverse_snapshot
)
from .sync import RoomMirror, ReverseMirror, versus_mirror
from .config import LESSON_SIZE, VERSUS_WORDS_PER_PLAYER, REVERSE_TOTAL_QUESTIONS, REVERSE_MAX_PLAYERS

__all__ = [
    'LevelConfig', 'AppConfig', 'WordItem', 'normalize_config', 'normalize_word',
    'RoomStore', 'WordStore', 'Subscription',
    'VocabError', 'NotFound', 'Conflict', 'RoomUnavailable', 'RoomFull', 'NotYourTurn', 'NotHost',
    'QuestionClosed', 'InsufficientWords', 'CreationExhausted', 'RoomCreationExhausted',
    'PersistenceFailure', 'UniqueViolation',
    'apply_answer', 'set_level', 'is_due', 'due_words', 'start_of_local_day', 'local_midnight_after',
    'select_random_words', 'pick_versus_words', 'generate_distractors', 'build_question',
    'generate_room_code', 'Question',
    'PracticeSession',
    'VersusRoom', 'VersusGame', 'merge_versus_snapshot',
    'ReverseRoom', 'ReversePlayer', 'ReverseAnswer', 'PlayerStats', 'ReverseGame',
    'ReverseAutopilot', 'merge_reverse_snapshot',
    'RoomMirror', 'ReverseMirror', 'versus_mirror',
    'LESSON_SIZE', 'VERSUS_WORDS_PER_PLAYER', 'REVERSE_TOTAL_QUESTIONS', 'REVERSE_MAX_PLAYERS'
]
