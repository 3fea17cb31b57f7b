"""Helpers shared by the versus and reverse room controllers."""

import json
import logging

from .config import ROOM_CODE_MAX_ATTEMPTS
from .errors import NotFound, RoomCreationExhausted, UniqueViolation
from .interfaces import RoomStore, WordStore
from .selection import generate_room_code

logger = logging.getLogger(__name__)


def insert_with_room_code(store: RoomStore, collection: str, fields: dict, rng=None) -> str:
    """Insert a room under a fresh random code, retrying on code collisions."""
    for attempt in range(1, ROOM_CODE_MAX_ATTEMPTS + 1):
        code = generate_room_code(rng)
        try:
            return store.insert(collection, {**fields, 'room_code': code})
        except UniqueViolation:
            logger.info(f"Room code {code} taken (attempt {attempt}/{ROOM_CODE_MAX_ATTEMPTS})")
    raise RoomCreationExhausted(
        f"Could not generate unique room code after {ROOM_CODE_MAX_ATTEMPTS} attempts"
    )


def find_room_by_code(store: RoomStore, collection: str, room_code: str) -> dict:
    code = (room_code or '').strip().upper()
    rows = store.find(collection, room_code=code)
    if not rows:
        raise NotFound(f"Room {code} not found")
    return rows[0]


def require_user(word_store: WordStore, user_id: str) -> dict:
    user = word_store.get_user(user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def user_name(word_store: WordStore, user_id: str | None) -> str | None:
    if not user_id:
        return None
    user = word_store.get_user(user_id)
    return user['name'] if user else None


def json_list(value) -> list:
    """JSON columns can arrive as strings from change feeds."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.error(f"Could not decode JSON list column: {value[:80]!r}")
            return []
    return value if isinstance(value, list) else []


def json_object(value) -> dict | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.error(f"Could not decode JSON object column: {value[:80]!r}")
            return None
    return value if isinstance(value, dict) else None


def word_snapshot(word) -> dict:
    """The word fields frozen into a room at game start."""
    get = word.get if isinstance(word, dict) else lambda name: getattr(word, name, None)
    return {
        'id': get('id'),
        'word': get('word'),
        'hint': get('hint') or '',
        'definition': get('definition') or '',
        'image_url': get('image_url')
    }
