"""Versus mode: a two-player, turn-based duel.

Each player reads the opponent's words aloud; the listener defines them and
the reader marks the answer right or wrong. A right answer lets the reader
continue, a wrong one passes the turn. Every state change is a partial
update of the room row; both players' clients follow the row through the
store's change feed. Turn switches are last-write-wins.
"""

import logging
import random
from typing import Callable

from .config import VERSUS_ROOMS, VERSUS_WORDS_PER_PLAYER
from .errors import Conflict, InsufficientWords, NotYourTurn, RoomFull, RoomUnavailable
from .interfaces import RoomStore, WordStore
from .models import AppConfig, normalize_word
from .rooms import (
    find_room_by_code, insert_with_room_code, json_list, require_user, user_name, word_snapshot
)
from .selection import pick_versus_words
from .utils import elapsed_ms, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

WAITING = 'waiting'
ACTIVE = 'active'
FINISHED = 'finished'

SIDES = ('a', 'b')


def other_side(side: str) -> str:
    return 'b' if side == 'a' else 'a'


class VersusRoom:
    """Snapshot of a versus room row (plus player names when known)."""

    FIELDS = [
        'id', 'room_code', 'player_a_id', 'player_b_id', 'status', 'current_turn',
        'player_a_words', 'player_b_words', 'player_a_index', 'player_b_index',
        'player_a_right_count', 'player_b_right_count',
        'player_a_wrong_count', 'player_b_wrong_count',
        'player_a_time', 'player_b_time', 'turn_start_time', 'winner_id',
        'created_at', 'updated_at'
    ]

    def __init__(self, id: str, room_code: str, player_a_id: str, player_b_id: str | None = None,
                 status: str = WAITING):
        self.id = id
        self.room_code = room_code
        self.player_a_id = player_a_id
        self.player_b_id = player_b_id
        self.player_a_name = None
        self.player_b_name = None
        self.status = status
        self.current_turn = None
        self.player_a_words = []
        self.player_b_words = []
        self.player_a_index = 0
        self.player_b_index = 0
        self.player_a_right_count = 0
        self.player_b_right_count = 0
        self.player_a_wrong_count = 0
        self.player_b_wrong_count = 0
        self.player_a_time = 0
        self.player_b_time = 0
        self.turn_start_time = None
        self.winner_id = None
        self.created_at = None
        self.updated_at = None

    # Per-side accessors
    def player_id(self, side: str) -> str | None:
        return getattr(self, f'player_{side}_id')

    def words(self, side: str) -> list[dict]:
        return getattr(self, f'player_{side}_words')

    def index(self, side: str) -> int:
        return getattr(self, f'player_{side}_index')

    def right_count(self, side: str) -> int:
        return getattr(self, f'player_{side}_right_count')

    def wrong_count(self, side: str) -> int:
        return getattr(self, f'player_{side}_wrong_count')

    def time_ms(self, side: str) -> int:
        return getattr(self, f'player_{side}_time')

    def exhausted(self, side: str) -> bool:
        return self.index(side) >= len(self.words(side))

    def side_of(self, user_id: str) -> str | None:
        if user_id and user_id == self.player_a_id:
            return 'a'
        if user_id and user_id == self.player_b_id:
            return 'b'
        return None

    def current_word(self, side: str) -> dict | None:
        words = self.words(side)
        index = self.index(side)
        return words[index] if index < len(words) else None

    def live_time_ms(self, side: str, now) -> int:
        """Cumulative time including the running turn for the side holding it."""
        total = self.time_ms(side)
        if self.status == ACTIVE and self.current_turn == self.player_id(side):
            total += elapsed_ms(self.turn_start_time, now)
        return total

    def apply(self, updates: dict) -> None:
        for key, value in updates.items():
            setattr(self, key, value)

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in self.FIELDS}
        data['player_a_name'] = self.player_a_name
        data['player_b_name'] = self.player_b_name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'VersusRoom':
        room = cls(data['id'], data.get('room_code'), data.get('player_a_id'),
                   data.get('player_b_id'), data.get('status') or WAITING)
        room.player_a_name = data.get('player_a_name')
        room.player_b_name = data.get('player_b_name')
        room.current_turn = data.get('current_turn')
        room.player_a_words = json_list(data.get('player_a_words'))
        room.player_b_words = json_list(data.get('player_b_words'))
        for side in SIDES:
            for field in ('index', 'right_count', 'wrong_count', 'time'):
                name = f'player_{side}_{field}'
                setattr(room, name, int(data.get(name) or 0))
        room.turn_start_time = to_iso(parse_iso(data.get('turn_start_time')))
        room.winner_id = data.get('winner_id')
        room.created_at = data.get('created_at')
        room.updated_at = data.get('updated_at')
        return room


def merge_versus_snapshot(known: VersusRoom | None, incoming: VersusRoom) -> VersusRoom:
    """Reconcile a pushed room row with the locally known snapshot.

    Change-feed payloads do not carry joined player names, and may arrive
    without the word lists; keep the locally known values in that case.
    """
    if known is None or known.id != incoming.id:
        return incoming
    for side in SIDES:
        words_field = f'player_{side}_words'
        if not getattr(incoming, words_field) and getattr(known, words_field):
            setattr(incoming, words_field, list(getattr(known, words_field)))
        name_field = f'player_{side}_name'
        same_player = incoming.player_id(side) == known.player_id(side)
        if not getattr(incoming, name_field) and getattr(known, name_field) and same_player:
            setattr(incoming, name_field, getattr(known, name_field))
    return incoming


class VersusGame:
    """Versus room lifecycle against an injected RoomStore and WordStore."""

    def __init__(self, room_store: RoomStore, word_store: WordStore,
                 config: AppConfig | None = None, rng=None, clock: Callable = utc_now):
        self.room_store = room_store
        self.word_store = word_store
        self.config = config or AppConfig.default()
        self.rng = rng or random
        self.clock = clock

    def get_room(self, room_id: str) -> VersusRoom:
        room = VersusRoom.from_dict(self.room_store.get(VERSUS_ROOMS, room_id))
        room.player_a_name = user_name(self.word_store, room.player_a_id)
        room.player_b_name = user_name(self.word_store, room.player_b_id)
        return room

    def create_room(self, user_id: str) -> VersusRoom:
        require_user(self.word_store, user_id)
        room_id = insert_with_room_code(self.room_store, VERSUS_ROOMS, {
            'player_a_id': user_id,
            'player_b_id': None,
            'status': WAITING,
            'current_turn': None,
            'player_a_words': [],
            'player_b_words': [],
            'player_a_index': 0,
            'player_b_index': 0,
            'player_a_right_count': 0,
            'player_b_right_count': 0,
            'player_a_wrong_count': 0,
            'player_b_wrong_count': 0,
            'player_a_time': 0,
            'player_b_time': 0,
            'turn_start_time': None,
            'winner_id': None
        }, self.rng)
        room = self.get_room(room_id)
        logger.info(f"Versus room {room.room_code} created by {user_id}")
        return room

    def join_room(self, room_code: str, user_id: str) -> VersusRoom:
        """Take the open seat and start the game, or reconnect to a held seat."""
        row = find_room_by_code(self.room_store, VERSUS_ROOMS, room_code)
        room_id = row['id']

        if user_id in (row.get('player_a_id'), row.get('player_b_id')):
            logger.info(f"{user_id} reconnected to versus room {row['room_code']}")
            return self.get_room(room_id)

        if row.get('status') != WAITING:
            raise RoomUnavailable("Room is not available")
        if row.get('player_b_id'):
            raise RoomFull("Room is full")
        require_user(self.word_store, user_id)

        claimed = self.room_store.compare_and_update(
            VERSUS_ROOMS, room_id,
            {'player_b_id': user_id},
            {'player_b_id': None, 'status': WAITING}
        )
        if not claimed:
            raise RoomFull("Room is full")
        logger.info(f"{user_id} joined versus room {row['room_code']}")
        return self.start_game(room_id)

    def _load_pool(self, user_id: str) -> list:
        now = self.clock()
        rows = self.word_store.get_words_with_progress(user_id)
        return [normalize_word(r, self.config, now) for r in rows]

    def start_game(self, room_id: str) -> VersusRoom:
        """Deal ten words per player and hand player A the first turn.

        Each player is quizzed on the other's words, favouring words the
        owner has already attempted. Nothing is written if either pool is
        empty. Also used for "play again" on a finished room.
        """
        room = self.get_room(room_id)
        if not room.player_b_id:
            raise Conflict("Waiting for an opponent")
        if room.status == ACTIVE:
            raise Conflict("Game already in progress")

        pool_a = self._load_pool(room.player_a_id)
        pool_b = self._load_pool(room.player_b_id)
        for player_id, pool in ((room.player_a_id, pool_a), (room.player_b_id, pool_b)):
            if not pool:
                raise InsufficientWords(
                    f"{user_name(self.word_store, player_id) or player_id} has no words in their vocabulary"
                )

        selected_a = pick_versus_words(pool_a, VERSUS_WORDS_PER_PLAYER, self.rng)
        selected_b = pick_versus_words(pool_b, VERSUS_WORDS_PER_PLAYER, self.rng)

        updates = {
            'status': ACTIVE,
            'player_a_words': [word_snapshot(w) for w in selected_b],
            'player_b_words': [word_snapshot(w) for w in selected_a],
            'player_a_index': 0,
            'player_b_index': 0,
            'player_a_right_count': 0,
            'player_b_right_count': 0,
            'player_a_wrong_count': 0,
            'player_b_wrong_count': 0,
            'player_a_time': 0,
            'player_b_time': 0,
            'winner_id': None,
            'current_turn': room.player_a_id,
            'turn_start_time': to_iso(self.clock())
        }
        self.room_store.update(VERSUS_ROOMS, room_id, updates)
        room.apply(updates)
        logger.info(f"Versus game started in room {room.room_code}")
        return room

    def play_again(self, room_id: str, user_id: str) -> VersusRoom:
        room = self.get_room(room_id)
        if room.side_of(user_id) is None:
            raise Conflict("Not a player in this room")
        if room.status != FINISHED:
            raise Conflict("Game is not finished")
        return self.start_game(room_id)

    def answer(self, room_id: str, user_id: str, correct: bool) -> VersusRoom:
        """The reader marks the listener's definition right or wrong."""
        room = self.get_room(room_id)
        if room.status != ACTIVE:
            raise Conflict("Game is not active")
        if room.current_turn != user_id:
            raise NotYourTurn("It is not your turn")

        now = self.clock()
        reader = room.side_of(user_id)
        listener = other_side(reader)
        new_index = room.index(reader) + 1
        finished = new_index >= len(room.words(reader))
        turn_ms = elapsed_ms(room.turn_start_time, now)

        updates = {f'player_{reader}_index': new_index}
        if correct:
            updates[f'player_{listener}_right_count'] = room.right_count(listener) + 1
            if finished:
                updates[f'player_{reader}_time'] = room.time_ms(reader) + turn_ms
        else:
            updates[f'player_{listener}_wrong_count'] = room.wrong_count(listener) + 1
            updates[f'player_{reader}_time'] = room.time_ms(reader) + turn_ms
            if not finished:
                # A listener with no words left cannot take the turn
                next_turn = listener if not room.exhausted(listener) else reader
                updates['current_turn'] = room.player_id(next_turn)
                updates['turn_start_time'] = to_iso(now)

        self.room_store.update(VERSUS_ROOMS, room_id, updates)
        room.apply(updates)

        if finished:
            self.finish_game(room, reader)
        return room

    def finish_game(self, room: VersusRoom, finished_side: str) -> VersusRoom:
        """Settle the match after one side has read all of its words.

        Both sides done: most right answers wins, ties go to the faster
        cumulative time. Only this side done: a side that never lost the
        turn hands it over so the opponent can catch up; otherwise the
        current right counts decide now, ties favouring the side that
        finished.
        """
        other = other_side(finished_side)
        now = self.clock()

        if room.exhausted(other):
            winner = self._leader(room)
            if winner is None:
                winner = 'a' if room.player_a_time < room.player_b_time else 'b'
            updates = self._finished_updates(room, winner)
        elif room.wrong_count(finished_side) == 0:
            updates = {'current_turn': room.player_id(other), 'turn_start_time': to_iso(now)}
        else:
            winner = self._leader(room) or finished_side
            updates = self._finished_updates(room, winner)

        self.room_store.update(VERSUS_ROOMS, room.id, updates)
        room.apply(updates)
        if room.status == FINISHED:
            logger.info(f"Versus room {room.room_code} finished, winner {room.winner_id}")
        return room

    @staticmethod
    def _leader(room: VersusRoom) -> str | None:
        if room.player_a_right_count > room.player_b_right_count:
            return 'a'
        if room.player_b_right_count > room.player_a_right_count:
            return 'b'
        return None

    @staticmethod
    def _finished_updates(room: VersusRoom, winner_side: str) -> dict:
        return {
            'status': FINISHED,
            'winner_id': room.player_id(winner_side),
            'current_turn': None
        }

    def leave(self, room_id: str, user_id: str) -> VersusRoom:
        """Abandon the match: finished with no winner."""
        room = self.get_room(room_id)
        if room.side_of(user_id) is None:
            raise Conflict("Not a player in this room")
        updates = {'status': FINISHED, 'winner_id': None}
        self.room_store.update(VERSUS_ROOMS, room_id, updates)
        room.apply(updates)
        logger.info(f"{user_id} left versus room {room.room_code}")
        return room

    def delete_room(self, room_id: str) -> bool:
        return self.room_store.delete(VERSUS_ROOMS, room_id)
