"""Configuration constants for the vocab arena application."""

# Practice sessions
LESSON_SIZE = 10              # Due words sampled into one lesson

# Level ladder bounds (applied when normalizing persisted config/progress)
MIN_INTERVAL_DAYS = 0
MAX_INTERVAL_DAYS = 3650
MIN_PROMOTE_AFTER = 1
MAX_PROMOTE_AFTER = 99
MAX_STREAK = 9999
MAX_TOTAL_COUNT = 999999

DEFAULT_LEVELS = [
    {'id': 1, 'name': 'Level 1', 'promote_after_correct': 3, 'interval_days': 1},
    {'id': 2, 'name': 'Level 2', 'promote_after_correct': 2, 'interval_days': 7},
    {'id': 3, 'name': 'Level 3', 'promote_after_correct': 1, 'interval_days': 30},
]
DEFAULT_WRONG_MAKES_IMMEDIATELY_DUE = True
DEFAULT_WRONG_RESETS_STREAK = True

# Room codes
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'  # No 0/O/1/I
ROOM_CODE_LENGTH = 4
ROOM_CODE_MAX_ATTEMPTS = 10

# Versus mode
VERSUS_WORDS_PER_PLAYER = 10

# Reverse mode
REVERSE_TOTAL_QUESTIONS = 10
REVERSE_MAX_PLAYERS = 5
REVERSE_DISTRACTOR_COUNT = 2
REVERSE_EXTRA_WORDS = 3                 # Pool must hold questions + this many words
QUESTION_DURATION_MS = 15000
RESULTS_DELAY_SECONDS = 5
ANSWER_POLL_SECONDS = 1

# Distractor scoring
DISTRACTOR_LENGTH_WINDOW = 2
DISTRACTOR_LENGTH_SCORE = 3
DISTRACTOR_FIRST_LETTER_SCORE = 2
DISTRACTOR_SHORT_WORD_LENGTH = 3
DISTRACTOR_SHORT_WORD_PENALTY = 1
DISTRACTOR_JITTER = 2

# Store collections
USERS = 'users'
WORDS = 'words'
PROGRESS = 'progress'
VERSUS_ROOMS = 'versus_rooms'
REVERSE_ROOMS = 'reverse_rooms'
REVERSE_PLAYERS = 'reverse_players'
REVERSE_ANSWERS = 'reverse_answers'

# Unique constraints enforced by room stores: collection -> tuple of fields
UNIQUE_KEYS = {
    VERSUS_ROOMS: [('room_code',)],
    REVERSE_ROOMS: [('room_code',)],
    REVERSE_PLAYERS: [('room_id', 'user_id')],
    REVERSE_ANSWERS: [('room_id', 'question_index', 'user_id')],
}

# Child collections removed together with their room
CASCADES = {
    REVERSE_ROOMS: [(REVERSE_PLAYERS, 'room_id'), (REVERSE_ANSWERS, 'room_id')],
}
