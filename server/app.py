"""FastAPI server for the vocab arena application."""

import asyncio
import functools
import logging
import os

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional

logger = logging.getLogger(__name__)

from core.errors import (
    VocabError, NotFound, Conflict, InsufficientWords, CreationExhausted
)
from core.interfaces import RoomStore, WordStore
from core.models import AppConfig, normalize_config, normalize_word
from core.reverse import ReverseAutopilot, ReverseGame
from core.scheduler import due_words, set_level
from core.session import PracticeSession
from core.utils import utc_now
from core.versus import VersusGame

from server.file_storage import FileStorage
from server.memory_storage import InMemoryRoomStore
from server.postgres_storage import PostgresStorage


# Pydantic models for API
class CreateUserRequest(BaseModel):
    name: str


class WordRequest(BaseModel):
    word: str
    hint: str = ""
    definition: str = ""
    image_url: Optional[str] = None


class SetLevelRequest(BaseModel):
    user_id: str
    level_id: int


class LevelModel(BaseModel):
    id: int
    name: str = ""
    promote_after_correct: int = 1
    interval_days: int = 0


class ConfigModel(BaseModel):
    levels: list[LevelModel] = []
    wrong_makes_immediately_due: bool = True
    wrong_resets_streak: bool = True


class UserRequest(BaseModel):
    user_id: str


class PracticeAnswerRequest(BaseModel):
    user_id: str
    right: bool


class JoinRequest(BaseModel):
    room_code: str
    user_id: str


class VersusAnswerRequest(BaseModel):
    user_id: str
    correct: bool


class ReverseAnswerRequest(BaseModel):
    user_id: str
    question_index: int
    selected_word_id: Optional[str] = None


class CheckAnswersRequest(BaseModel):
    question_index: int


class AdvanceRequest(BaseModel):
    user_id: str
    question_index: int


class CurrentWord(BaseModel):
    id: str
    word: str
    hint: str
    definition: str
    image_url: Optional[str]
    level_id: int


class PracticeStatusResponse(BaseModel):
    state: str
    current_word: Optional[CurrentWord]
    position: int
    lesson_size: int
    reviewing: bool
    wrong_pool_size: int
    seen_count: int
    right_count: int
    wrong_count: int
    persistence_failures: list[dict]


# Global state (in production, use proper DI)
word_store: WordStore = None
room_store: RoomStore = None
practice_sessions: dict[str, PracticeSession] = {}  # user_id -> session
autopilot_tasks: dict[str, asyncio.Task] = {}  # room_id -> task
autopilot_enabled = True


def init_storage(words: WordStore, rooms: RoomStore) -> None:
    """Install the stores used by every endpoint."""
    global word_store, room_store
    word_store = words
    room_store = rooms
    practice_sessions.clear()


def load_app_config() -> AppConfig:
    return normalize_config(word_store.load_config())


def versus_game() -> VersusGame:
    return VersusGame(room_store, word_store, load_app_config())


def reverse_game() -> ReverseGame:
    return ReverseGame(room_store, word_store)


def versus_view(game: VersusGame, room) -> dict:
    data = room.to_dict()
    now = game.clock()
    data['player_a_live_time'] = room.live_time_ms('a', now)
    data['player_b_live_time'] = room.live_time_ms('b', now)
    return data


def start_autopilot(room_id: str) -> None:
    """Drive a reverse room forward in the background until it finishes."""
    if not autopilot_enabled or room_id in autopilot_tasks:
        return
    task = asyncio.create_task(ReverseAutopilot(reverse_game(), room_id).run())
    autopilot_tasks[room_id] = task
    task.add_done_callback(functools.partial(autopilot_finished, room_id))


def autopilot_finished(room_id: str, task: asyncio.Task) -> None:
    if autopilot_tasks.get(room_id) is task:
        del autopilot_tasks[room_id]
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Autopilot for reverse room {room_id} stopped: {error!r}")


def resume_autopilot(room) -> None:
    """Restart the background driver for a game that is under way."""
    if room.status not in ('waiting', 'finished'):
        start_autopilot(room.id)


app = FastAPI(title="Vocab Arena API", description="Spaced-repetition vocabulary trainer with multiplayer games")

ERROR_STATUS = [
    (NotFound, 404),
    (Conflict, 409),
    (InsufficientWords, 422),
    (CreationExhausted, 503),
]


@app.exception_handler(VocabError)
async def vocab_error_handler(request: Request, exc: VocabError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status == 500:
        logger.error(f"Unhandled application error on {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": str(exc)})


@app.on_event("startup")
async def startup():
    """Initialize storage on startup."""
    if word_store is not None:
        return

    # File storage by default, set VOCAB_STORAGE=postgres to use PostgreSQL
    storage_type = os.environ.get('VOCAB_STORAGE', 'file')
    if storage_type == 'postgres':
        storage = PostgresStorage()
        init_storage(storage, storage)
        print("Using PostgreSQL storage")
    else:
        init_storage(FileStorage(state_dir=os.environ.get('VOCAB_STATE_DIR')), InMemoryRoomStore())
        print("Using file storage with in-memory rooms")


@app.on_event("shutdown")
async def shutdown():
    for task in list(autopilot_tasks.values()):
        task.cancel()


@app.get("/")
async def root():
    return {"name": "Vocab Arena API", "docs": "/docs"}


# User Management Endpoints
@app.get("/api/users")
async def list_users():
    """List all users."""
    return {"users": word_store.list_users()}


@app.post("/api/users")
async def create_user(request: CreateUserRequest):
    """Create a user; every existing word becomes due for them."""
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    user_id = word_store.create_user(name)
    return {"user": word_store.get_user(user_id)}


# Word Endpoints
@app.get("/api/words")
async def list_words(user_id: str, due_only: bool = False):
    """Words joined with the user's progress; due words come earliest-due first."""
    if word_store.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    config = load_app_config()
    now = utc_now()
    words = [normalize_word(row, config, now) for row in word_store.get_words_with_progress(user_id)]
    due = due_words(words, now)
    shown = due if due_only else words
    return {"words": [w.to_dict() for w in shown], "due_count": len(due)}


@app.post("/api/words")
async def create_word(request: WordRequest):
    if not request.word.strip():
        raise HTTPException(status_code=400, detail="Word is required")
    word_id = word_store.create_word(request.word, request.hint, request.definition, request.image_url)
    return {"id": word_id}


@app.put("/api/words/{word_id}")
async def update_word(word_id: str, request: WordRequest):
    if not request.word.strip():
        raise HTTPException(status_code=400, detail="Word is required")
    word_store.update_word(word_id, request.word, request.hint, request.definition, request.image_url)
    return {"success": True}


@app.delete("/api/words/{word_id}")
async def delete_word(word_id: str):
    if not word_store.delete_word(word_id):
        raise HTTPException(status_code=404, detail="Word not found")
    return {"success": True}


@app.post("/api/words/{word_id}/level")
async def set_word_level(word_id: str, request: SetLevelRequest):
    """Manually move a word to a level for one user."""
    config = load_app_config()
    rows = [r for r in word_store.get_words_with_progress(request.user_id) if r['id'] == word_id]
    if not rows:
        raise HTTPException(status_code=404, detail="Word not found")
    word = set_level(normalize_word(rows[0], config), request.level_id, config)
    word_store.save_progress(request.user_id, word_id, word.progress_dict())
    return {"word": word.to_dict()}


# Config Endpoints
@app.get("/api/config")
async def get_config():
    return load_app_config().to_dict()


@app.put("/api/config")
async def put_config(request: ConfigModel):
    """Normalize and persist the level ladder and answer options."""
    config = normalize_config(request.model_dump())
    word_store.save_config(config.to_dict())
    return config.to_dict()


# Practice Endpoints
def get_practice(user_id: str) -> PracticeSession:
    session = practice_sessions.get(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No practice session")
    return session


@app.post("/api/practice/start", response_model=PracticeStatusResponse)
async def start_practice(request: UserRequest):
    """Start a lesson over the user's due words."""
    if word_store.get_user(request.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    session = PracticeSession(word_store, request.user_id, load_app_config())
    session.start()
    practice_sessions[request.user_id] = session
    return session.to_dict()


@app.post("/api/practice/answer", response_model=PracticeStatusResponse)
async def answer_practice(request: PracticeAnswerRequest):
    session = get_practice(request.user_id)
    session.answer(request.right)
    return session.to_dict()


@app.get("/api/practice/status", response_model=PracticeStatusResponse)
async def practice_status(user_id: str):
    return get_practice(user_id).to_dict()


@app.post("/api/practice/stop", response_model=PracticeStatusResponse)
async def stop_practice(request: UserRequest):
    session = practice_sessions.pop(request.user_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="No practice session")
    session.stop()
    return session.to_dict()


# Versus Endpoints
@app.post("/api/versus/rooms")
async def create_versus_room(request: UserRequest):
    game = versus_game()
    return versus_view(game, game.create_room(request.user_id))


@app.post("/api/versus/join")
async def join_versus_room(request: JoinRequest):
    """Join by code; the second player's join starts the game."""
    game = versus_game()
    return versus_view(game, game.join_room(request.room_code, request.user_id))


@app.get("/api/versus/rooms/{room_id}")
async def get_versus_room(room_id: str):
    game = versus_game()
    return versus_view(game, game.get_room(room_id))


@app.post("/api/versus/rooms/{room_id}/start")
async def start_versus_game(room_id: str, request: UserRequest):
    """Start a waiting room whose first start failed, or play again after a finish."""
    game = versus_game()
    room = game.get_room(room_id)
    if room.side_of(request.user_id) is None:
        raise HTTPException(status_code=403, detail="Not a player in this room")
    if room.status == 'finished':
        return versus_view(game, game.play_again(room_id, request.user_id))
    return versus_view(game, game.start_game(room_id))


@app.post("/api/versus/rooms/{room_id}/answer")
async def answer_versus(room_id: str, request: VersusAnswerRequest):
    game = versus_game()
    return versus_view(game, game.answer(room_id, request.user_id, request.correct))


@app.post("/api/versus/rooms/{room_id}/leave")
async def leave_versus(room_id: str, request: UserRequest):
    game = versus_game()
    return versus_view(game, game.leave(room_id, request.user_id))


@app.delete("/api/versus/rooms/{room_id}")
async def delete_versus_room(room_id: str):
    if not versus_game().delete_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    return {"success": True}


# Reverse Endpoints
@app.post("/api/reverse/rooms")
async def create_reverse_room(request: UserRequest):
    return reverse_game().create_room(request.user_id).to_dict()


@app.post("/api/reverse/join")
async def join_reverse_room(request: JoinRequest):
    return reverse_game().join_room(request.room_code, request.user_id).to_dict()


@app.get("/api/reverse/rooms/{room_id}")
async def get_reverse_room(room_id: str):
    game = reverse_game()
    room = game.get_room(room_id)
    resume_autopilot(room)
    data = room.to_dict()
    data['remaining_ms'] = room.remaining_ms(game.clock())
    return data


@app.post("/api/reverse/rooms/{room_id}/start")
async def start_reverse_game(room_id: str, request: UserRequest):
    """Host starts the quiz; the server then runs the question timers."""
    room = reverse_game().start(room_id, request.user_id)
    start_autopilot(room_id)
    return room.to_dict()


@app.post("/api/reverse/rooms/{room_id}/answer")
async def answer_reverse(room_id: str, request: ReverseAnswerRequest):
    game = reverse_game()
    answer = game.submit_answer(room_id, request.question_index, request.user_id,
                                request.selected_word_id)
    settled = game.check_all_answered(room_id, request.question_index)
    return {"answer": answer.to_dict(), "all_answered": settled}


@app.post("/api/reverse/rooms/{room_id}/check")
async def check_reverse_answers(room_id: str, request: CheckAnswersRequest):
    game = reverse_game()
    settled = game.check_all_answered(room_id, request.question_index)
    resume_autopilot(game.get_room(room_id))
    return {"all_answered": settled}


@app.post("/api/reverse/rooms/{room_id}/advance")
async def advance_reverse(room_id: str, request: AdvanceRequest):
    """Open the next question once results for `question_index` have been shown.

    Repeated or late calls leave the room as it is.
    """
    game = reverse_game()
    if game.get_room(room_id).player(request.user_id) is None:
        raise HTTPException(status_code=403, detail="Not a player in this room")
    room = game.advance(room_id, request.question_index)
    resume_autopilot(room)
    return room.to_dict()


@app.get("/api/reverse/rooms/{room_id}/answers")
async def reverse_answers(room_id: str, question_index: int):
    game = reverse_game()
    room = game.get_room(room_id)
    if room.current_question_index == question_index and room.status == 'question':
        raise HTTPException(status_code=409, detail="Question is still open")
    return {"answers": [a.to_dict() for a in game.question_answers(room_id, question_index)]}


@app.get("/api/reverse/rooms/{room_id}/stats")
async def reverse_stats(room_id: str):
    return {"stats": [s.to_dict() for s in reverse_game().player_stats(room_id)]}


@app.post("/api/reverse/rooms/{room_id}/heartbeat")
async def reverse_heartbeat(room_id: str, request: UserRequest):
    reverse_game().heartbeat(room_id, request.user_id)
    return {"success": True}


@app.post("/api/reverse/rooms/{room_id}/leave")
async def leave_reverse(room_id: str, request: UserRequest):
    reverse_game().leave(room_id, request.user_id)
    return {"success": True}


@app.delete("/api/reverse/rooms/{room_id}")
async def delete_reverse_room(room_id: str):
    task = autopilot_tasks.pop(room_id, None)
    if task is not None:
        task.cancel()
    if not reverse_game().delete_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    return {"success": True}


def create_app():
    """Factory function for creating the app (useful for testing)."""
    return app
