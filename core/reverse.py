"""Reverse mode: a simultaneous multiple-choice quiz for up to five players.

The host starts the game; every question shows a definition with three
word options. Players answer independently, one answer row each. When every
seated player has answered, the room moves to results exactly once and a
sole correct answerer earns a bonus point. After a short delay the next
question opens, until the fixed game word list is used up.
"""

import asyncio
import logging
import random
from typing import Callable

from .config import (
    REVERSE_ROOMS, REVERSE_PLAYERS, REVERSE_ANSWERS,
    REVERSE_TOTAL_QUESTIONS, REVERSE_MAX_PLAYERS, REVERSE_EXTRA_WORDS,
    QUESTION_DURATION_MS, RESULTS_DELAY_SECONDS, ANSWER_POLL_SECONDS
)
from .errors import (
    Conflict, InsufficientWords, NotFound, NotHost, QuestionClosed,
    RoomFull, RoomUnavailable, UniqueViolation
)
from .interfaces import RoomStore, WordStore
from .rooms import (
    find_room_by_code, insert_with_room_code, json_list, json_object, require_user, word_snapshot
)
from .selection import Question, build_question, select_random_words
from .utils import elapsed_ms, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

WAITING = 'waiting'
ACTIVE = 'active'
QUESTION = 'question'
RESULTS = 'results'
FINISHED = 'finished'

NO_SELECTION = ''


class ReversePlayer:
    def __init__(self, id: str, room_id: str, user_id: str, player_name: str, join_order: int,
                 total_score: int = 0, is_connected: bool = True, last_heartbeat: str | None = None):
        self.id = id
        self.room_id = room_id
        self.user_id = user_id
        self.player_name = player_name
        self.join_order = join_order
        self.total_score = total_score
        self.is_connected = is_connected
        self.last_heartbeat = last_heartbeat

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'room_id': self.room_id,
            'user_id': self.user_id,
            'player_name': self.player_name,
            'join_order': self.join_order,
            'total_score': self.total_score,
            'is_connected': self.is_connected,
            'last_heartbeat': self.last_heartbeat
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ReversePlayer':
        return cls(
            id=data['id'],
            room_id=data.get('room_id'),
            user_id=data.get('user_id'),
            player_name=data.get('player_name') or '',
            join_order=int(data.get('join_order') or 0),
            total_score=int(data.get('total_score') or 0),
            is_connected=bool(data.get('is_connected', True)),
            last_heartbeat=data.get('last_heartbeat')
        )


class ReverseAnswer:
    def __init__(self, id: str, room_id: str, question_index: int, user_id: str,
                 selected_word_id: str, is_correct: bool, was_only_correct: bool = False,
                 points_earned: int = 0, answer_time_ms: int | None = None):
        self.id = id
        self.room_id = room_id
        self.question_index = question_index
        self.user_id = user_id
        self.selected_word_id = selected_word_id
        self.is_correct = is_correct
        self.was_only_correct = was_only_correct
        self.points_earned = points_earned
        self.answer_time_ms = answer_time_ms

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'room_id': self.room_id,
            'question_index': self.question_index,
            'user_id': self.user_id,
            'selected_word_id': self.selected_word_id,
            'is_correct': self.is_correct,
            'was_only_correct': self.was_only_correct,
            'points_earned': self.points_earned,
            'answer_time_ms': self.answer_time_ms
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ReverseAnswer':
        return cls(
            id=data['id'],
            room_id=data.get('room_id'),
            question_index=int(data.get('question_index') or 0),
            user_id=data.get('user_id'),
            selected_word_id=data.get('selected_word_id') or NO_SELECTION,
            is_correct=bool(data.get('is_correct')),
            was_only_correct=bool(data.get('was_only_correct')),
            points_earned=int(data.get('points_earned') or 0),
            answer_time_ms=data.get('answer_time_ms')
        )


class ReverseRoom:
    """Snapshot of a reverse room row together with its seated players."""

    def __init__(self, id: str, room_code: str, host_id: str, status: str = WAITING,
                 total_questions: int = REVERSE_TOTAL_QUESTIONS, current_question_index: int = 0,
                 current_question: Question | None = None, game_words: list | None = None,
                 question_start_time: str | None = None,
                 question_duration_ms: int = QUESTION_DURATION_MS,
                 players: list[ReversePlayer] | None = None):
        self.id = id
        self.room_code = room_code
        self.host_id = host_id
        self.status = status
        self.total_questions = total_questions
        self.current_question_index = current_question_index
        self.current_question = current_question
        self.game_words = game_words or []
        self.question_start_time = question_start_time
        self.question_duration_ms = question_duration_ms
        self.players = players or []

    def player(self, user_id: str) -> ReversePlayer | None:
        for p in self.players:
            if p.user_id == user_id:
                return p
        return None

    def remaining_ms(self, now) -> int:
        """Time left on the open question; 0 when no question is open."""
        if self.status != QUESTION:
            return 0
        return max(0, self.question_duration_ms - elapsed_ms(self.question_start_time, now))

    def to_dict(self, reveal: bool = False) -> dict:
        """Serialize; the open question hides its answer unless reveal is set."""
        question = None
        if self.current_question is not None:
            if reveal or self.status != QUESTION:
                question = self.current_question.to_dict()
            else:
                question = self.current_question.public_dict()
        return {
            'id': self.id,
            'room_code': self.room_code,
            'host_id': self.host_id,
            'status': self.status,
            'total_questions': self.total_questions,
            'current_question_index': self.current_question_index,
            'current_question': question,
            'game_words': [dict(w) for w in self.game_words] if reveal or self.status == FINISHED else [],
            'question_start_time': self.question_start_time,
            'question_duration_ms': self.question_duration_ms,
            'players': [p.to_dict() for p in self.players]
        }

    @classmethod
    def from_dict(cls, data: dict, players: list[dict] | None = None) -> 'ReverseRoom':
        rows = players if players is not None else data.get('players') or []
        seated = sorted((ReversePlayer.from_dict(p) for p in rows), key=lambda p: p.join_order)
        return cls(
            id=data['id'],
            room_code=data.get('room_code'),
            host_id=data.get('host_id'),
            status=data.get('status') or WAITING,
            total_questions=int(data.get('total_questions') or REVERSE_TOTAL_QUESTIONS),
            current_question_index=int(data.get('current_question_index') or 0),
            current_question=Question.from_dict(json_object(data.get('current_question'))),
            game_words=json_list(data.get('game_words')),
            question_start_time=to_iso(parse_iso(data.get('question_start_time'))),
            question_duration_ms=int(data.get('question_duration_ms') or QUESTION_DURATION_MS),
            players=seated
        )


class PlayerStats:
    def __init__(self, user_id: str, player_name: str, total_score: int, correct_answers: int,
                 wrong_answers: int, bonus_points: int, average_answer_time_ms: int,
                 fastest_answer_ms: int, slowest_answer_ms: int):
        self.user_id = user_id
        self.player_name = player_name
        self.total_score = total_score
        self.correct_answers = correct_answers
        self.wrong_answers = wrong_answers
        self.bonus_points = bonus_points
        self.average_answer_time_ms = average_answer_time_ms
        self.fastest_answer_ms = fastest_answer_ms
        self.slowest_answer_ms = slowest_answer_ms

    def to_dict(self) -> dict:
        return dict(self.__dict__)

    @classmethod
    def from_answers(cls, player: ReversePlayer, answers: list[ReverseAnswer]) -> 'PlayerStats':
        correct = sum(1 for a in answers if a.is_correct)
        times = [a.answer_time_ms for a in answers if a.answer_time_ms is not None]
        return cls(
            user_id=player.user_id,
            player_name=player.player_name,
            total_score=player.total_score,
            correct_answers=correct,
            wrong_answers=len(answers) - correct,
            bonus_points=sum(1 for a in answers if a.was_only_correct),
            average_answer_time_ms=round(sum(times) / len(times)) if times else 0,
            fastest_answer_ms=min(times) if times else 0,
            slowest_answer_ms=max(times) if times else 0
        )


def merge_reverse_snapshot(known: ReverseRoom | None, incoming: ReverseRoom) -> ReverseRoom:
    """Reconcile a pushed room row with the locally known snapshot.

    Room-row notifications carry neither the player list nor (sometimes)
    the game words; keep what is known locally.
    """
    if known is None or known.id != incoming.id:
        return incoming
    if not incoming.players and known.players:
        incoming.players = list(known.players)
    if not incoming.game_words and known.game_words:
        incoming.game_words = list(known.game_words)
    if incoming.current_question is None and known.current_question is not None \
            and incoming.current_question_index == known.current_question_index \
            and incoming.status in (QUESTION, RESULTS):
        incoming.current_question = known.current_question
    return incoming


class ReverseGame:
    """Reverse room lifecycle against an injected RoomStore and WordStore."""

    def __init__(self, room_store: RoomStore, word_store: WordStore, rng=None,
                 clock: Callable = utc_now, total_questions: int = REVERSE_TOTAL_QUESTIONS,
                 question_duration_ms: int = QUESTION_DURATION_MS):
        self.room_store = room_store
        self.word_store = word_store
        self.rng = rng or random
        self.clock = clock
        self.total_questions = total_questions
        self.question_duration_ms = question_duration_ms

    # Reads

    def _players(self, room_id: str) -> list[dict]:
        return self.room_store.find(REVERSE_PLAYERS, room_id=room_id)

    def get_room(self, room_id: str) -> ReverseRoom:
        row = self.room_store.get(REVERSE_ROOMS, room_id)
        return ReverseRoom.from_dict(row, self._players(room_id))

    def question_answers(self, room_id: str, question_index: int) -> list[ReverseAnswer]:
        rows = self.room_store.find(REVERSE_ANSWERS, room_id=room_id, question_index=question_index)
        return [ReverseAnswer.from_dict(r) for r in rows]

    def player_stats(self, room_id: str) -> list[PlayerStats]:
        """Per-player aggregates over the full answer history, best score first."""
        room = self.get_room(room_id)
        answers = [ReverseAnswer.from_dict(r)
                   for r in self.room_store.find(REVERSE_ANSWERS, room_id=room_id)]
        stats = [PlayerStats.from_answers(p, [a for a in answers if a.user_id == p.user_id])
                 for p in room.players]
        stats.sort(key=lambda s: s.total_score, reverse=True)
        return stats

    # Lobby

    def _seat(self, room_id: str, user_id: str, name: str, join_order: int) -> None:
        now = to_iso(self.clock())
        self.room_store.insert(REVERSE_PLAYERS, {
            'room_id': room_id,
            'user_id': user_id,
            'player_name': name,
            'join_order': join_order,
            'total_score': 0,
            'is_connected': True,
            'last_heartbeat': now,
            'joined_at': now
        })

    def create_room(self, host_id: str) -> ReverseRoom:
        user = require_user(self.word_store, host_id)
        room_id = insert_with_room_code(self.room_store, REVERSE_ROOMS, {
            'host_id': host_id,
            'status': WAITING,
            'total_questions': self.total_questions,
            'current_question_index': 0,
            'current_question': None,
            'game_words': [],
            'question_start_time': None,
            'question_duration_ms': self.question_duration_ms
        }, self.rng)
        self._seat(room_id, host_id, user['name'], 1)
        room = self.get_room(room_id)
        logger.info(f"Reverse room {room.room_code} created by {host_id}")
        return room

    def join_room(self, room_code: str, user_id: str) -> ReverseRoom:
        """Seat a new player in the lobby, or refresh a seated player's heartbeat."""
        row = find_room_by_code(self.room_store, REVERSE_ROOMS, room_code)
        room_id = row['id']
        players = self._players(room_id)

        if any(p['user_id'] == user_id for p in players):
            self.heartbeat(room_id, user_id)
            logger.info(f"{user_id} rejoined reverse room {row['room_code']}")
            return self.get_room(room_id)

        if row.get('status') != WAITING:
            raise RoomUnavailable("Room has already started")
        if len(players) >= REVERSE_MAX_PLAYERS:
            raise RoomFull(f"Room is full (maximum {REVERSE_MAX_PLAYERS} players)")

        user = require_user(self.word_store, user_id)
        next_order = max((int(p.get('join_order') or 0) for p in players), default=0) + 1
        try:
            self._seat(room_id, user_id, user['name'], next_order)
        except UniqueViolation:
            # Same user joining twice concurrently
            self.heartbeat(room_id, user_id)
        logger.info(f"{user_id} joined reverse room {row['room_code']} as player {next_order}")
        return self.get_room(room_id)

    def _player_row(self, room_id: str, user_id: str) -> dict:
        rows = self.room_store.find(REVERSE_PLAYERS, room_id=room_id, user_id=user_id)
        if not rows:
            raise NotFound(f"Player {user_id} is not in room {room_id}")
        return rows[0]

    def heartbeat(self, room_id: str, user_id: str) -> None:
        row = self._player_row(room_id, user_id)
        self.room_store.update(REVERSE_PLAYERS, row['id'], {
            'is_connected': True,
            'last_heartbeat': to_iso(self.clock())
        })

    def leave(self, room_id: str, user_id: str) -> None:
        """Mark the player disconnected; the seat and score are kept."""
        row = self._player_row(room_id, user_id)
        self.room_store.update(REVERSE_PLAYERS, row['id'], {'is_connected': False})
        logger.info(f"{user_id} left reverse room {room_id}")

    def delete_room(self, room_id: str) -> bool:
        return self.room_store.delete(REVERSE_ROOMS, room_id)

    # Game flow

    def _word_pool(self, room: ReverseRoom) -> list[dict]:
        return self.word_store.get_words_with_progress(room.host_id)

    def start(self, room_id: str, user_id: str) -> ReverseRoom:
        """Host-only: sample the game words and open the first question."""
        room = self.get_room(room_id)
        if user_id != room.host_id:
            raise NotHost("Only the host can start the game")
        if room.status != WAITING:
            raise Conflict("Game has already started")

        pool = self._word_pool(room)
        needed = room.total_questions + REVERSE_EXTRA_WORDS
        if len(pool) < needed:
            raise InsufficientWords(f"Need at least {needed} words to play, have {len(pool)}")
        game_words = [word_snapshot(w) for w in select_random_words(pool, room.total_questions, self.rng)]

        started = self.room_store.compare_and_update(REVERSE_ROOMS, room_id, {
            'status': ACTIVE,
            'game_words': game_words,
            'current_question_index': -1,
            'current_question': None
        }, {'status': WAITING})
        if not started:
            raise Conflict("Game has already started")
        logger.info(f"Reverse game started in room {room.room_code} with {len(room.players)} players")
        return self.advance(room_id, -1, pool)

    def advance(self, room_id: str, from_index: int, pool: list | None = None) -> ReverseRoom:
        """Open the question after `from_index`, or finish after the last one.

        Only advances when the room still sits at `from_index` in the active
        or results state; a late or repeated call returns the room unchanged.
        """
        room = self.get_room(room_id)
        if room.current_question_index != from_index or room.status not in (ACTIVE, RESULTS):
            return room

        next_index = from_index + 1
        expected = {'status': room.status, 'current_question_index': from_index}
        if next_index >= room.total_questions:
            if self.room_store.compare_and_update(REVERSE_ROOMS, room_id, {'status': FINISHED}, expected):
                logger.info(f"Reverse game in room {room.room_code} finished")
            return self.get_room(room_id)

        if pool is None:
            pool = self._word_pool(room)
        question = build_question(room.game_words[next_index], pool, self.rng)
        opened = self.room_store.compare_and_update(REVERSE_ROOMS, room_id, {
            'status': QUESTION,
            'current_question_index': next_index,
            'current_question': question.to_dict(),
            'question_start_time': to_iso(self.clock())
        }, expected)
        if opened:
            logger.info(f"Room {room.room_code} question {next_index + 1}/{room.total_questions}")
        return self.get_room(room_id)

    def submit_answer(self, room_id: str, question_index: int, user_id: str,
                      selected_word_id: str | None) -> ReverseAnswer:
        """Record one answer per player per question; repeats return the first.

        A correct answer adds one point to the player's score immediately.
        """
        existing = self.room_store.find(REVERSE_ANSWERS, room_id=room_id,
                                        question_index=question_index, user_id=user_id)
        if existing:
            return ReverseAnswer.from_dict(existing[0])

        room = self.get_room(room_id)
        player = room.player(user_id)
        if player is None:
            raise NotFound(f"Player {user_id} is not in room {room.room_code}")
        if room.status != QUESTION or room.current_question_index != question_index \
                or room.current_question is None:
            raise QuestionClosed(f"Question {question_index} is not open")

        selected = selected_word_id or NO_SELECTION
        is_correct = room.current_question.is_correct(selected)
        fields = {
            'room_id': room_id,
            'question_index': question_index,
            'user_id': user_id,
            'selected_word_id': selected,
            'is_correct': is_correct,
            'was_only_correct': False,
            'points_earned': 1 if is_correct else 0,
            'answer_time_ms': elapsed_ms(room.question_start_time, self.clock()),
            'answered_at': to_iso(self.clock())
        }
        try:
            answer_id = self.room_store.insert(REVERSE_ANSWERS, fields)
        except UniqueViolation:
            rows = self.room_store.find(REVERSE_ANSWERS, room_id=room_id,
                                        question_index=question_index, user_id=user_id)
            return ReverseAnswer.from_dict(rows[0])

        if is_correct:
            self.room_store.atomic_increment(REVERSE_PLAYERS, player.id, 'total_score', 1)
        return ReverseAnswer.from_dict({**fields, 'id': answer_id})

    def expire_question(self, room_id: str, question_index: int) -> int:
        """Submit an empty answer for every seated player who has not answered.

        Returns how many answers were filled in.
        """
        room = self.get_room(room_id)
        if room.status != QUESTION or room.current_question_index != question_index:
            return 0
        answered = {a.user_id for a in self.question_answers(room_id, question_index)}
        filled = 0
        for player in room.players:
            if player.user_id in answered:
                continue
            try:
                self.submit_answer(room_id, question_index, player.user_id, NO_SELECTION)
                filled += 1
            except QuestionClosed:
                break
        if filled:
            logger.info(f"Question {question_index} timed out in room {room.room_code}, "
                        f"{filled} players auto-submitted")
        return filled

    def check_all_answered(self, room_id: str, question_index: int) -> bool:
        """Move to results once every seated player has answered.

        The status change is conditional on the room still showing this
        question, so only one caller wins it and only that caller applies
        the sole-correct bonus. Returns True once the question is settled.
        """
        room = self.get_room(room_id)
        if room.current_question_index != question_index:
            return room.current_question_index > question_index
        if room.status != QUESTION:
            return room.status in (RESULTS, FINISHED)

        answers = self.question_answers(room_id, question_index)
        if len(answers) < len(room.players):
            return False

        moved = self.room_store.compare_and_update(
            REVERSE_ROOMS, room_id, {'status': RESULTS},
            {'status': QUESTION, 'current_question_index': question_index}
        )
        if not moved:
            return True

        correct = [a for a in answers if a.is_correct]
        if len(correct) == 1:
            winner = correct[0]
            self.room_store.update(REVERSE_ANSWERS, winner.id, {
                'was_only_correct': True,
                'points_earned': 2
            })
            player = room.player(winner.user_id)
            if player is not None:
                self.room_store.atomic_increment(REVERSE_PLAYERS, player.id, 'total_score', 1)
            logger.info(f"Bonus point for {winner.user_id} on question {question_index} "
                        f"in room {room.room_code}")
        return True


class ReverseAutopilot:
    """Drives a reverse room forward on the server's event loop.

    While a question is open it polls the all-answered check and, once the
    question's time is up, fills in empty answers for the players who never
    answered. After results it waits the results delay and advances, and a
    room left active without an open question is advanced straight away.
    A failed step is logged and retried after the poll interval. Stops when
    the room finishes or disappears.
    """

    def __init__(self, game: ReverseGame, room_id: str,
                 results_delay: float = RESULTS_DELAY_SECONDS,
                 poll_interval: float = ANSWER_POLL_SECONDS,
                 sleep: Callable = asyncio.sleep):
        self.game = game
        self.room_id = room_id
        self.results_delay = results_delay
        self.poll_interval = poll_interval
        self.sleep = sleep

    async def run(self) -> None:
        while True:
            try:
                if await self._step():
                    return
            except NotFound:
                logger.info(f"Reverse room {self.room_id} removed, autopilot stopped")
                return
            except Exception as e:
                logger.error(f"Reverse autopilot step for room {self.room_id} failed, retrying: {e}")
                await self.sleep(self.poll_interval)

    async def _step(self) -> bool:
        """Move the room one stage along. Returns True once it has finished."""
        room = self.game.get_room(self.room_id)
        if room.status == FINISHED:
            return True
        if room.status == QUESTION:
            await self._drive_question(room)
        elif room.status == RESULTS:
            await self.sleep(self.results_delay)
            self.game.advance(self.room_id, room.current_question_index)
        elif room.status == ACTIVE:
            # started but the first question never opened
            self.game.advance(self.room_id, room.current_question_index)
        else:
            await self.sleep(self.poll_interval)
        return False

    async def _drive_question(self, room: ReverseRoom) -> None:
        index = room.current_question_index
        while not self.game.check_all_answered(self.room_id, index):
            remaining_ms = room.remaining_ms(self.game.clock())
            if remaining_ms <= 0:
                self.game.expire_question(self.room_id, index)
                self.game.check_all_answered(self.room_id, index)
                return
            await self.sleep(min(self.poll_interval, remaining_ms / 1000))
